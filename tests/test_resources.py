"""Tests for catalog browsing."""

import pytest

from lakedash.executor.resilient import ResilientExecutor
from lakedash.resources import CatalogBrowser, quote_name

from fakes import FakeConnector


@pytest.fixture
def browser(fake_executor: ResilientExecutor) -> CatalogBrowser:
    return CatalogBrowser(fake_executor)


class TestQuoteName:
    def test_plain(self):
        """Simple identifiers stay unquoted."""
        assert quote_name("main.sales") == "main.sales"

    def test_needs_quoting(self):
        """Odd identifiers get backticks, per part."""
        assert quote_name("my-catalog.sales") == "`my-catalog`.sales"


class TestCatalogBrowser:
    def test_catalogs(self, browser: CatalogBrowser, fake_connector: FakeConnector):
        """SHOW CATALOGS, first column."""
        fake_connector.results["SHOW CATALOGS"] = (["catalog"], [("main",), ("samples",)])
        assert browser.catalogs() == ["main", "samples"]

    def test_schemas_in_catalog(self, browser: CatalogBrowser, fake_connector: FakeConnector):
        """Schemas can be scoped to a catalog."""
        fake_connector.results["SHOW SCHEMAS IN `my-catalog`"] = (["databaseName"], [("sales",)])
        assert browser.schemas("my-catalog") == ["sales"]

    def test_schemas_default(self, browser: CatalogBrowser, fake_connector: FakeConnector):
        """No catalog lists the current one."""
        browser.schemas()
        assert fake_connector.executed == ["SHOW SCHEMAS"]

    def test_tables(self, browser: CatalogBrowser, fake_connector: FakeConnector):
        """Table name is the second column."""
        fake_connector.results["SHOW TABLES IN main.sales"] = (
            ["database", "tableName", "isTemporary"],
            [("sales", "orders", False), ("sales", "refunds", False)],
        )
        assert browser.tables("main", "sales") == ["orders", "refunds"]

    def test_columns(self, browser: CatalogBrowser, fake_connector: FakeConnector):
        """DESCRIBE TABLE gives name/type pairs."""
        fake_connector.results["DESCRIBE TABLE main.sales.orders"] = (
            ["col_name", "data_type", "comment"],
            [("id", "bigint", None), ("ts", "timestamp", None)],
        )
        assert browser.columns("main.sales.orders") == [
            {"name": "id", "type": "bigint"},
            {"name": "ts", "type": "timestamp"},
        ]

    def test_defaults(self, browser: CatalogBrowser, fake_connector: FakeConnector):
        """Current catalog and schema."""
        fake_connector.results["SELECT current_catalog(), current_schema()"] = (
            ["current_catalog()", "current_schema()"],
            [("main", "default")],
        )
        assert browser.defaults() == {"defaultCatalog": "main", "defaultSchema": "default"}

    def test_call_dispatch(self, browser: CatalogBrowser, fake_connector: FakeConnector):
        """call() routes by path and passes the body through."""
        fake_connector.results["SHOW TABLES IN main.sales"] = (["database", "tableName", "isTemporary"], [])
        assert browser.call("tables", {"catalog": "main", "schema": "sales"}) == (200, [])

    def test_unknown_path(self, browser: CatalogBrowser):
        """Unknown paths are a 404."""
        assert browser.call("warehouses") == (404, "Unknown URL")
