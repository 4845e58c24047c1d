"""Resilient SQL execution over a pooled connection.

the warehouse drops sessions whenever it feels like it (idle timeouts,
restarts, scaling). the driver then fails the next call with an
"Invalid SessionHandle" error and every pooled connection is poisoned. the
fix that works in practice: throw the whole pool away, build a fresh one and
try the same statement exactly once more. anything else - including a second
failure - goes back to the caller untouched.

pooling itself is sqlalchemy's QueuePool; this module only reacts to its
failures and re-applies the ConnectionSettings whenever it rebuilds.
"""

import concurrent.futures
import contextvars
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import event
from sqlalchemy import exc as sa_exc
from sqlalchemy.pool import QueuePool

from lakedash.errors import QueryCancelledError, SessionExpiredError, TransportError
from lakedash.executor.cancellation import CallContext
from lakedash.executor.connectors import Connector
from lakedash.models.settings import ConnectionSettings

logger = logging.getLogger(__name__)

# TODO: switch to the driver's structured error code once it exposes one for
# expired sessions - substring matching breaks if the message is reworded
SESSION_EXPIRED_MARKERS = ("Invalid SessionHandle",)

CANCEL_POLL_INTERVAL_SECONDS = 0.05
_CHECKED_IN_AT = "lakedash_checked_in_at"


def is_session_expired(exc: BaseException) -> bool:
    """True when `exc` means the connection's server-side session is gone."""
    if isinstance(exc, SessionExpiredError) or getattr(exc, "code", None) == SessionExpiredError.code:
        return True
    message = str(exc)
    return any(marker in message for marker in SESSION_EXPIRED_MARKERS)


@dataclass
class RowSet:
    """Raw rows plus column metadata straight from the cursor."""

    columns: list[str]
    rows: list[tuple]
    column_types: list[str | None] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)


class ResilientExecutor:
    """Runs SQL on a pooled connection, rebuilding the pool on stale sessions.

    the pool handle is the only shared mutable state here. it's swapped under
    a lock, and only if nobody else already swapped it - two requests hitting
    the same dead session shouldn't rebuild twice.
    """

    def __init__(self, connector: Connector, settings: ConnectionSettings | None = None) -> None:
        self.connector = connector
        self.settings = settings or ConnectionSettings()
        self.rebuild_count = 0
        self._lock = threading.Lock()
        self._closed = False
        self._pool = self._build_pool()
        # statements run here when the caller has a deadline/cancel signal,
        # so we can walk away from a hung network call
        self._workers = concurrent.futures.ThreadPoolExecutor(
            max_workers=self.settings.max_open_conns or None,
            thread_name_prefix="lakedash-exec",
        )

    def query(self, sql: str, ctx: CallContext | None = None) -> RowSet:
        """Execute a row-returning statement."""
        return self._run(sql, ctx, fetch=True)

    def exec(self, sql: str, ctx: CallContext | None = None) -> None:
        """Execute a statement and discard any result."""
        self._run(sql, ctx, fetch=False)

    def ping(self, ctx: CallContext | None = None) -> None:
        """Round-trip a trivial statement to prove the connection works."""
        self.query("SELECT 1", ctx)

    def rebuild(self) -> None:
        """Force a fresh pool, e.g. after settings or credentials changed."""
        self._rebuild(stale=self._current_pool())

    def close(self) -> None:
        """Release the pool and worker threads. Safe to call twice."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            pool = self._pool
        self._workers.shutdown(wait=False, cancel_futures=True)
        pool.dispose()

    # context manager support, same as every other resource holder here
    def __enter__(self) -> "ResilientExecutor":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    # --- internals ---

    def _run(self, sql: str, ctx: CallContext | None, fetch: bool) -> Any:
        pool = self._current_pool()
        try:
            return self._attempt(pool, sql, ctx, fetch)
        except Exception as exc:
            if not is_session_expired(exc):
                raise
            logger.warning("Session expired on %s, rebuilding connection: %s", self.connector.name, exc)

        # a cancelled caller gets its answer now, not after another round trip
        if ctx is not None and ctx.done:
            raise QueryCancelledError("Query cancelled before retry")

        pool = self._rebuild(stale=pool)
        return self._attempt(pool, sql, ctx, fetch)

    def _current_pool(self) -> QueuePool:
        with self._lock:
            if self._closed:
                raise TransportError("Executor is closed")
            return self._pool

    def _rebuild(self, stale: QueuePool) -> QueuePool:
        with self._lock:
            if self._closed:
                raise TransportError("Executor is closed")
            if self._pool is stale:
                self._pool = self._build_pool()
                self.rebuild_count += 1
                # closes idle connections, checked-out ones go away with the old pool
                stale.dispose()
                logger.warning("Rebuilt %s connection pool", self.connector.name)
            return self._pool

    def _build_pool(self) -> QueuePool:
        s = self.settings
        pool_size = max(s.max_idle_conns, 1)
        if s.max_open_conns:
            pool_size = min(pool_size, s.max_open_conns)
            max_overflow = s.max_open_conns - pool_size
        else:
            max_overflow = -1  # unbounded

        pool = QueuePool(
            self.connector.connect,
            pool_size=pool_size,
            max_overflow=max_overflow,
            timeout=s.pool_timeout.total_seconds(),
            recycle=int(s.conn_max_lifetime.total_seconds()) or -1,
            # neither engine does transactions, a rollback on checkin just errors
            reset_on_return=None,
        )
        max_idle = s.conn_max_idle_time.total_seconds()
        if max_idle > 0:
            _install_idle_timeout(pool, max_idle)
        return pool

    def _attempt(self, pool: QueuePool, sql: str, ctx: CallContext | None, fetch: bool) -> Any:
        if ctx is not None and ctx.done:
            raise QueryCancelledError("Query cancelled before execution")

        if ctx is None:
            return self._checkout_and_execute(pool, sql, fetch)

        # checkout happens in the worker too, so waiting on a full pool is
        # bounded by the caller's deadline rather than pool_timeout.
        # copy_context so the pass-through identity follows us into the worker
        statement = _Statement()
        future = self._workers.submit(
            contextvars.copy_context().run, self._checkout_and_execute, pool, sql, fetch, statement
        )
        try:
            return _wait(future, ctx)
        except QueryCancelledError:
            # still queued: it never touches the engine
            if not future.cancel():
                statement.abandon()
            raise

    def _checkout_and_execute(
        self,
        pool: QueuePool,
        sql: str,
        fetch: bool,
        statement: "_Statement | None" = None,
    ) -> RowSet | None:
        try:
            connection = pool.connect()
        except sa_exc.TimeoutError as exc:
            raise TransportError(f"Timed out waiting for a connection from the pool: {exc}") from exc
        try:
            cursor = connection.cursor()
        except Exception:
            connection.close()
            raise

        if statement is not None and not statement.attach(cursor):
            _release(cursor, connection)
            raise QueryCancelledError("Query cancelled before execution")

        try:
            return self._execute(cursor, sql, fetch)
        finally:
            # an interrupted connection is not handed to the next caller
            abandoned = statement is not None and statement.abandoned
            _release(cursor, connection, invalidate=abandoned)

    def _execute(self, cursor: Any, sql: str, fetch: bool) -> RowSet | None:
        cursor.execute(sql)
        if not fetch:
            return None

        description = cursor.description or []
        columns = [desc[0] for desc in description]
        column_types = [str(desc[1]) if desc[1] is not None else None for desc in description]
        max_rows = self.settings.max_rows
        rows = cursor.fetchmany(max_rows) if max_rows else cursor.fetchall()
        if max_rows and len(rows) >= max_rows:
            logger.warning("Result hit max rows cap (%s)", max_rows)
        return RowSet(columns=columns, rows=[tuple(row) for row in rows], column_types=column_types)


class _Statement:
    """Hands the worker's cursor to the caller so it can interrupt it."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._cursor: Any = None
        self.abandoned = False

    def attach(self, cursor: Any) -> bool:
        """Register the running cursor. False if the caller already gave up."""
        with self._lock:
            if self.abandoned:
                return False
            self._cursor = cursor
            return True

    def abandon(self) -> None:
        with self._lock:
            self.abandoned = True
            cursor = self._cursor
        if cursor is not None:
            _interrupt(cursor)


def _wait(future: concurrent.futures.Future, ctx: CallContext) -> Any:
    while True:
        if ctx.cancelled:
            raise QueryCancelledError("Query was cancelled")
        remaining = ctx.remaining()
        if remaining is not None and remaining <= 0:
            raise QueryCancelledError("Query exceeded its deadline")

        timeout = CANCEL_POLL_INTERVAL_SECONDS
        if remaining is not None:
            timeout = min(timeout, remaining)
        done, _ = concurrent.futures.wait([future], timeout=timeout)
        if done:
            return future.result()


def _interrupt(cursor: Any) -> None:
    # databricks cursors have cancel(), duckdb connections have interrupt()
    for name in ("cancel", "interrupt"):
        method = getattr(cursor, name, None)
        if callable(method):
            try:
                method()
            except Exception as exc:
                logger.warning("Could not cancel running statement: %s", exc)
            return


def _release(cursor: Any, connection: Any, invalidate: bool = False) -> None:
    try:
        cursor.close()
    except Exception as exc:
        # the statement's own error already went to the caller
        logger.debug("Ignoring error while closing cursor: %s", exc)
    if invalidate:
        connection.invalidate()
    connection.close()


def _install_idle_timeout(pool: QueuePool, max_idle_seconds: float) -> None:
    """Discard pooled connections that sat idle longer than `max_idle_seconds`."""

    @event.listens_for(pool, "checkin")
    def _stamp_checkin(dbapi_connection: Any, connection_record: Any) -> None:
        connection_record.info[_CHECKED_IN_AT] = time.monotonic()

    @event.listens_for(pool, "checkout")
    def _expire_idle(dbapi_connection: Any, connection_record: Any, connection_proxy: Any) -> None:
        # popped so the replacement connection doesn't trip over the old stamp
        checked_in_at = connection_record.info.pop(_CHECKED_IN_AT, None)
        if checked_in_at is not None and time.monotonic() - checked_in_at > max_idle_seconds:
            logger.debug("Discarding connection idle for more than %ss", max_idle_seconds)
            # the pool invalidates this connection and opens a new one
            raise sa_exc.DisconnectionError("Connection exceeded max idle time")
