"""Datasource instance: the composition root for dashboard queries.

one Datasource per configured datasource. it owns the credential, the
resilient executor (and through it the connection pool) and the macro
expander, and walks each dashboard query through them:

    expand macros -> reject empty -> exec the preamble -> query the last
    statement -> frame it -> maybe pivot long to wide

errors never escape a batch. each query gets its own DataResponse and a
broken query doesn't take its siblings down with it.
"""

import logging
import time
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import ValidationError

from lakedash.auth.context import identity_context, token_from_headers
from lakedash.auth.credentials import Credential, build_credential
from lakedash.compiler.macros import MacroExpander
from lakedash.errors import ConfigError, DatasourceError, EmptyQueryError, FrameError, TemplateError
from lakedash.executor.cancellation import CallContext
from lakedash.executor.connectors import Connector, build_connector
from lakedash.executor.resilient import ResilientExecutor
from lakedash.frames import frame_from_rowset, long_to_wide
from lakedash.models.query import (
    DataQuery,
    DataResponse,
    Frame,
    HealthResult,
    HealthStatus,
    QueryContext,
)
from lakedash.models.settings import DatasourceSettings
from lakedash.resources import CatalogBrowser

logger = logging.getLogger(__name__)

STATEMENT_SEPARATOR = ";"
HEALTH_OK_MESSAGE = "Data source is working"


def split_statements(sql: str) -> tuple[list[str], str]:
    """Split a script into (statements to exec, final statement to query).

    splitting is plain text on ";" - a semicolon inside a string literal
    splits too. every fragment is stripped and blank ones are dropped
    wherever they are, not just the one a trailing ";" leaves behind: an
    empty statement would only come back from the engine as a parse error.
    """
    statements = [part.strip() for part in sql.split(STATEMENT_SEPARATOR)]
    statements = [part for part in statements if part]
    if not statements:
        raise EmptyQueryError("Query is empty after macro expansion")
    return statements[:-1], statements[-1]


class Datasource:
    """A configured datasource, ready to run dashboard queries."""

    def __init__(
        self,
        settings: DatasourceSettings,
        executor: ResilientExecutor,
        credential: Credential | None = None,
        expander: MacroExpander | None = None,
    ) -> None:
        self.settings = settings
        self.executor = executor
        self.credential = credential
        self.expander = expander or MacroExpander()
        self.browser = CatalogBrowser(executor)

    @classmethod
    def from_settings(
        cls,
        settings: DatasourceSettings,
        connector: Connector | None = None,
        validate: bool = True,
    ) -> "Datasource":
        """Build a datasource, failing fast on bad settings.

        with validate=True the connection is pinged right away, so a wrong
        hostname or token shows up when the datasource is saved rather than
        on the first dashboard load. pass-through datasources skip the ping,
        there is no caller identity to authenticate with yet.
        """
        missing = settings.missing_fields()
        if missing:
            raise ConfigError(f"Missing required settings: {', '.join(missing)}")

        credential = None
        if settings.engine == "databricks":
            credential = build_credential(settings)
        if connector is None:
            connector = build_connector(settings, credential)

        executor = ResilientExecutor(connector, settings.connection)
        datasource = cls(settings, executor, credential)

        if validate and not settings.authentication_method.is_pass_through:
            try:
                executor.ping(datasource._call_context())
            except Exception:
                # no half-built datasource left holding a pool
                datasource.dispose()
                raise
            logger.info("Datasource %s connected", settings.name)

        return datasource

    @property
    def name(self) -> str:
        return self.settings.name

    # --- queries ---

    def query_data(
        self,
        queries: Iterable[DataQuery | Mapping[str, Any]],
        headers: Mapping[str, str] | None = None,
    ) -> dict[str, DataResponse]:
        """Run a batch of dashboard queries, keyed by ref id.

        `headers` are the inbound request headers; the identity header (if
        any) becomes the call-scoped identity for pass-through auth.
        """
        responses: dict[str, DataResponse] = {}
        with identity_context(token_from_headers(headers)):
            for raw in queries:
                try:
                    query = _parse_query(raw)
                except TemplateError as exc:
                    ref_id = _raw_ref_id(raw)
                    logger.info("Invalid query payload %s: %s", ref_id, exc)
                    responses[ref_id] = DataResponse(ref_id=ref_id, error=str(exc), error_code=exc.code)
                    continue
                responses[query.ref_id] = self.query(query)
        return responses

    def query(self, query: DataQuery, ctx: CallContext | None = None) -> DataResponse:
        """Run one dashboard query. Failures land on the response, not raised."""
        try:
            frame = self._run_query(query, ctx or self._call_context())
        except Exception as exc:
            logger.info("Query %s failed: %s", query.ref_id, exc)
            code = exc.code if isinstance(exc, DatasourceError) else "query_error"
            return DataResponse(ref_id=query.ref_id, error=str(exc), error_code=code)
        return DataResponse(ref_id=query.ref_id, frames=[frame])

    def _run_query(self, query: DataQuery, ctx: CallContext) -> Frame:
        sql = self.expander.expand(query.raw_sql, QueryContext.from_query(query))
        if not sql.strip():
            raise EmptyQueryError("Query is empty after macro expansion")

        preamble, final = split_statements(sql)

        start = time.perf_counter()
        for statement in preamble:
            logger.debug("Executing statement: %s", statement)
            self.executor.exec(statement, ctx)
        rowset = self.executor.query(final, ctx)
        elapsed_ms = (time.perf_counter() - start) * 1000

        frame = frame_from_rowset(rowset, sql=sql, execution_time_ms=elapsed_ms)

        settings = query.query_settings
        if settings.convert_long_to_wide:
            try:
                frame = long_to_wide(frame, settings.fill_mode, settings.fill_value)
            except FrameError as exc:
                # the long frame is still a valid answer
                logger.warning("Could not convert %s to wide series: %s", query.ref_id, exc)

        return frame

    # --- health ---

    def check_health(self, headers: Mapping[str, str] | None = None) -> HealthResult:
        """Ping the engine with SELECT 1."""
        with identity_context(token_from_headers(headers)):
            try:
                self.executor.ping(self._call_context())
            except Exception as exc:
                logger.info("Health check failed for %s: %s", self.name, exc)
                return HealthResult(status=HealthStatus.ERROR, message=f"SQL Connection Failed: {exc}")
        return HealthResult(status=HealthStatus.OK, message=HEALTH_OK_MESSAGE)

    # --- resources ---

    def call_resource(
        self,
        path: str,
        body: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> tuple[int, Any]:
        """Serve a query-editor resource request (catalogs, schemas, ...)."""
        with identity_context(token_from_headers(headers)):
            try:
                return self.browser.call(path, dict(body or {}), self._call_context())
            except Exception as exc:
                logger.error("Resource %s failed: %s", path, exc)
                return 500, str(exc)

    # --- lifecycle ---

    def dispose(self) -> None:
        """Release the connection pool. The datasource is unusable afterwards."""
        logger.debug("Disposing datasource %s", self.name)
        self.executor.close()

    def __enter__(self) -> "Datasource":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.dispose()

    def _call_context(self) -> CallContext:
        return CallContext.with_timeout(self.settings.connection.query_timeout)


def _parse_query(raw: DataQuery | Mapping[str, Any]) -> DataQuery:
    if isinstance(raw, DataQuery):
        return raw
    try:
        return DataQuery.model_validate(raw)
    except ValidationError as exc:
        raise TemplateError(f"Invalid query: {exc}") from exc


def _raw_ref_id(raw: Any) -> str:
    if isinstance(raw, Mapping):
        return str(raw.get("refId") or raw.get("ref_id") or "A")
    return "A"
