"""Pydantic models for datasource configuration.

field aliases follow the host's json settings (camelCase) so a settings blob
can be validated directly. secrets live on the same model - the host hands us
them already decrypted.
"""

from datetime import timedelta
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class AuthMethod(str, Enum):
    """Supported ways of authenticating against the engine."""

    DSN = "dsn"  # static personal access token
    OAUTH2_CLIENT_CREDENTIALS = "oauth2_client_credentials"
    M2M = "m2m"  # client credentials against the workspace's own oidc endpoint
    OAUTH2_PASS_THROUGH = "oauth2_pass_through"
    AZURE_ENTRA_PASS_THROUGH = "azure_entra_pass_thru"

    @property
    def is_pass_through(self) -> bool:
        return self in (AuthMethod.OAUTH2_PASS_THROUGH, AuthMethod.AZURE_ENTRA_PASS_THROUGH)


class ConnectionSettings(BaseModel):
    """Pool and driver tuning applied to every physical connection.

    zero means "no limit" for the counts and durations, same convention as the
    go database/sql knobs these were modelled on.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    max_open_conns: int = Field(default=0, ge=0, alias="maxOpenConns")
    max_idle_conns: int = Field(default=2, ge=0, alias="maxIdleConns")
    conn_max_lifetime: timedelta = Field(default=timedelta(0), alias="connMaxLifetime")
    conn_max_idle_time: timedelta = Field(default=timedelta(hours=6), alias="connMaxIdleTime")
    retry_count: int = Field(default=5, ge=0, alias="retryCount")
    retry_backoff: timedelta = Field(default=timedelta(seconds=1), alias="retryBackoff")
    max_retry_duration: timedelta = Field(default=timedelta(seconds=900), alias="maxRetryDuration")
    query_timeout: timedelta = Field(default=timedelta(0), alias="queryTimeout")
    max_rows: int = Field(default=0, ge=0, alias="maxRows")
    pool_timeout: timedelta = Field(default=timedelta(seconds=30), alias="poolTimeout")


class DatasourceSettings(BaseModel):
    """Configuration of one datasource instance."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = "default"
    engine: Literal["databricks", "duckdb"] = "databricks"
    hostname: str = ""
    port: int = 443
    path: str = ""  # http path of the sql warehouse / cluster
    database: str | None = None  # duckdb file, None for in-memory
    authentication_method: AuthMethod = Field(default=AuthMethod.DSN, alias="authenticationMethod")
    token: str = ""
    client_id: str = Field(default="", alias="clientId")
    client_secret: str = Field(default="", alias="clientSecret")
    external_credentials_url: str = Field(default="", alias="externalCredentialsUrl")
    oauth_scopes: str = Field(default="", alias="oauthScopes")  # comma-separated
    connection: ConnectionSettings = Field(default_factory=ConnectionSettings)

    @property
    def scopes(self) -> list[str]:
        return [s.strip() for s in self.oauth_scopes.split(",") if s.strip()]

    def missing_fields(self) -> list[str]:
        """Names of required settings that are empty for this engine/auth combo."""
        if self.engine == "duckdb":
            return []

        required = {"hostname": self.hostname, "path": self.path}
        method = self.authentication_method
        if method == AuthMethod.DSN:
            required["token"] = self.token
        elif method == AuthMethod.OAUTH2_CLIENT_CREDENTIALS:
            required["clientId"] = self.client_id
            required["clientSecret"] = self.client_secret
            required["externalCredentialsUrl"] = self.external_credentials_url
        elif method == AuthMethod.M2M:
            required["clientId"] = self.client_id
            required["clientSecret"] = self.client_secret

        return [name for name, value in required.items() if not value]
