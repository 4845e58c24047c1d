"""Physical connection factories.

a connector knows how to open ONE dbapi connection to an engine. pooling and
retries are layered on top by the executor, so connectors stay dumb.
"""

import logging
from typing import Any, Protocol

import duckdb

from lakedash.auth.credentials import Credential
from lakedash.errors import ConfigError
from lakedash.models.settings import ConnectionSettings, DatasourceSettings

logger = logging.getLogger(__name__)

USER_AGENT = "lakedash"


class Connector(Protocol):
    """Opens physical DB-API connections."""

    name: str

    def connect(self) -> Any: ...


class DatabricksConnector:
    """Connects to a Databricks SQL warehouse over databricks-sql-connector.

    the credential is handed to the driver as a credentials_provider, so the
    driver asks it for headers on every http request - retries included.
    """

    name = "databricks"

    def __init__(
        self,
        hostname: str,
        http_path: str,
        credential: Credential,
        port: int = 443,
        settings: ConnectionSettings | None = None,
    ) -> None:
        self.hostname = hostname.removeprefix("https://").removeprefix("http://").rstrip("/")
        self.http_path = http_path
        self.port = port
        self.credential = credential
        self.settings = settings or ConnectionSettings()

    def connect(self) -> Any:
        # imported here - the driver pulls in thrift and friends, not needed for duckdb
        from databricks import sql as dbsql

        logger.debug("Opening Databricks connection to %s%s", self.hostname, self.http_path)
        return dbsql.connect(
            server_hostname=self.hostname,
            http_path=self.http_path,
            credentials_provider=self.credential,
            user_agent_entry=USER_AGENT,
            _port=self.port,
            # the driver rejects retry knobs outside these bounds
            _retry_stop_after_attempts_count=_clamp(self.settings.retry_count, 1, 60),
            _retry_delay_min=_clamp(self.settings.retry_backoff.total_seconds(), 0.1, 60),
            _retry_stop_after_attempts_duration=_clamp(
                self.settings.max_retry_duration.total_seconds(), 1, 900
            ),
        )


def _clamp(value, low, high):
    return max(low, min(value, high))


class DuckDBConnector:
    """Local DuckDB engine - handy for development and tests.

    ":memory:" gives every physical connection its own empty database, so
    anything stateful wants a file path.
    """

    name = "duckdb"

    def __init__(self, database_path: str | None = None) -> None:
        self.database_path = database_path

    def connect(self) -> Any:
        return duckdb.connect(self.database_path or ":memory:")


def build_connector(settings: DatasourceSettings, credential: Credential | None) -> Connector:
    """Pick a connector for a datasource's engine."""
    if settings.engine == "duckdb":
        return DuckDBConnector(settings.database)
    if credential is None:
        raise ConfigError("Databricks connector needs a credential")
    return DatabricksConnector(
        hostname=settings.hostname,
        http_path=settings.path,
        credential=credential,
        port=settings.port,
        settings=settings.connection,
    )
