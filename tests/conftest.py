"""Pytest fixtures for lakedash tests."""

from collections.abc import Generator
from datetime import datetime, timedelta, timezone
from pathlib import Path

import duckdb
import pytest

from lakedash.datasource import Datasource
from lakedash.executor.connectors import DuckDBConnector
from lakedash.executor.resilient import ResilientExecutor
from lakedash.models.query import QueryContext
from lakedash.models.settings import DatasourceSettings

from fakes import FakeConnector

RANGE_FROM = datetime(2024, 1, 1, tzinfo=timezone.utc)
RANGE_TO = datetime(2024, 1, 2, tzinfo=timezone.utc)


@pytest.fixture
def fake_connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def fake_executor(fake_connector: FakeConnector) -> Generator[ResilientExecutor, None, None]:
    executor = ResilientExecutor(fake_connector)
    yield executor
    executor.close()


@pytest.fixture
def query_context() -> QueryContext:
    """A one-day range with a one-minute interval."""
    return QueryContext(time_from=RANGE_FROM, time_to=RANGE_TO, interval=timedelta(seconds=60))


@pytest.fixture
def duckdb_path(tmp_path: Path) -> str:
    """File-backed DuckDB with a small long-format metrics table.

    a file, not :memory: - every pooled connection must see the same data.
    """
    path = str(tmp_path / "lakedash.duckdb")
    conn = duckdb.connect(path)
    conn.execute("""
        CREATE TABLE metrics (
            ts TIMESTAMP,
            host VARCHAR,
            value DOUBLE
        )
    """)
    conn.executemany(
        "INSERT INTO metrics VALUES (?, ?, ?)",
        [
            (datetime(2024, 1, 1, 0, 0), "a", 1.0),
            (datetime(2024, 1, 1, 0, 0), "b", 10.0),
            (datetime(2024, 1, 1, 0, 1), "a", 2.0),
            (datetime(2024, 1, 1, 0, 2), "a", 3.0),
            (datetime(2024, 1, 1, 0, 2), "b", 30.0),
            # outside the test range
            (datetime(2024, 1, 5, 0, 0), "a", 99.0),
        ],
    )
    conn.close()
    return path


@pytest.fixture
def duckdb_settings(duckdb_path: str) -> DatasourceSettings:
    return DatasourceSettings(name="local", engine="duckdb", database=duckdb_path)


@pytest.fixture
def duckdb_datasource(duckdb_settings: DatasourceSettings) -> Generator[Datasource, None, None]:
    datasource = Datasource.from_settings(duckdb_settings, connector=DuckDBConnector(duckdb_settings.database))
    yield datasource
    datasource.dispose()


@pytest.fixture
def config_file(tmp_path: Path, duckdb_path: str) -> Path:
    path = tmp_path / "lakedash.yaml"
    path.write_text(f"""
datasources:
  - name: local
    engine: duckdb
    database: {duckdb_path}

  - name: warehouse
    hostname: adb-1234.azuredatabricks.net
    path: /sql/1.0/warehouses/abc
    authenticationMethod: dsn
    token: ${{LAKEDASH_TEST_TOKEN}}
""")
    return path
