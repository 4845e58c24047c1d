"""Fake DB-API objects for executor and datasource tests."""

import threading
from typing import Any


class FakeCursor:
    """DB-API cursor that replays canned results and scripted failures."""

    def __init__(self, connection: "FakeConnection") -> None:
        self.connection = connection
        self.connector = connection.connector
        self.description: list[tuple] | None = None
        self._rows: list[tuple] = []
        self.cancelled = threading.Event()
        self.closed = False

    def execute(self, sql: str) -> None:
        connector = self.connector
        if connector.credential is not None:
            # what the databricks driver does for every request it sends
            connector.seen_headers.append(connector.credential()())
        connector.executed.append(sql)

        if connector.block:
            connector.started.set()
            self.cancelled.wait(timeout=5)
            raise RuntimeError("statement interrupted")

        if connector.errors:
            raise connector.errors.pop(0)

        columns, rows = connector.results.get(sql, (["1"], [(1,)]))
        self.description = [(name, None, None, None, None, None, None) for name in columns]
        self._rows = list(rows)

    def fetchall(self) -> list[tuple]:
        return self._rows

    def fetchmany(self, size: int) -> list[tuple]:
        return self._rows[:size]

    def cancel(self) -> None:
        self.connector.cancel_calls += 1
        self.cancelled.set()

    def close(self) -> None:
        self.closed = True


class FakeConnection:
    def __init__(self, connector: "FakeConnector") -> None:
        self.connector = connector
        self.closed = False

    def cursor(self) -> FakeCursor:
        return FakeCursor(self)

    def rollback(self) -> None:
        pass

    def commit(self) -> None:
        pass

    def close(self) -> None:
        self.closed = True


class FakeConnector:
    """Connector whose connections record every statement they run.

    `errors` are raised by the next statements, one per statement.
    `results` maps sql text to (columns, rows).
    """

    name = "fake"

    def __init__(
        self,
        results: dict[str, tuple[list[str], list[tuple]]] | None = None,
        errors: list[Exception] | None = None,
        credential: Any = None,
    ) -> None:
        self.results = results or {}
        self.errors = list(errors or [])
        self.credential = credential
        self.executed: list[str] = []
        self.seen_headers: list[dict[str, str]] = []
        self.connections: list[FakeConnection] = []
        self.cancel_calls = 0
        self.block = False
        self.started = threading.Event()

    def connect(self) -> FakeConnection:
        connection = FakeConnection(self)
        self.connections.append(connection)
        return connection
