"""Catalog introspection for the query editor's autocompletion.

plain SHOW/DESCRIBE statements run through the same resilient executor as
dashboard queries, so they get the stale-session retry for free. identifiers
are quoted by sqlglot for the databricks dialect - they come straight from
the editor and must not be pasted into sql as-is.
"""

import logging
from typing import Any

from sqlglot import exp

from lakedash.executor.cancellation import CallContext
from lakedash.executor.resilient import ResilientExecutor

logger = logging.getLogger(__name__)

DIALECT = "databricks"


def quote_name(name: str) -> str:
    """Quote a possibly dotted name (catalog.schema.table) part by part."""
    return ".".join(exp.to_identifier(part).sql(dialect=DIALECT) for part in name.split("."))


class CatalogBrowser:
    """Lists catalogs, schemas, tables and columns visible to the datasource."""

    def __init__(self, executor: ResilientExecutor) -> None:
        self.executor = executor

    def catalogs(self, ctx: CallContext | None = None) -> list[str]:
        rowset = self.executor.query("SHOW CATALOGS", ctx)
        return [str(row[0]) for row in rowset.rows]

    def schemas(self, catalog: str = "", ctx: CallContext | None = None) -> list[str]:
        sql = "SHOW SCHEMAS"
        if catalog:
            sql = f"SHOW SCHEMAS IN {quote_name(catalog)}"
        logger.debug("Listing schemas: %s", sql)
        rowset = self.executor.query(sql, ctx)
        return [str(row[0]) for row in rowset.rows]

    def tables(self, catalog: str = "", schema: str = "", ctx: CallContext | None = None) -> list[str]:
        sql = "SHOW TABLES"
        if schema:
            target = f"{catalog}.{schema}" if catalog else schema
            sql = f"SHOW TABLES IN {quote_name(target)}"
        logger.debug("Listing tables: %s", sql)
        rowset = self.executor.query(sql, ctx)
        # rows are (database, tableName, isTemporary)
        return [str(row[1]) for row in rowset.rows]

    def columns(self, table: str, ctx: CallContext | None = None) -> list[dict[str, str]]:
        sql = f"DESCRIBE TABLE {quote_name(table)}"
        logger.debug("Describing table: %s", sql)
        rowset = self.executor.query(sql, ctx)
        # rows are (col_name, data_type, comment), types may be NULL for partition headers
        return [
            {"name": row[0] or "", "type": row[1] or ""}
            for row in rowset.rows
        ]

    def defaults(self, ctx: CallContext | None = None) -> dict[str, str]:
        rowset = self.executor.query("SELECT current_catalog(), current_schema()", ctx)
        if not rowset.rows:
            raise LookupError("No rows returned")
        current_catalog, current_schema = rowset.rows[0][:2]
        return {
            "defaultCatalog": current_catalog or "",
            "defaultSchema": current_schema or "",
        }

    def call(self, path: str, body: dict[str, Any] | None = None, ctx: CallContext | None = None) -> tuple[int, Any]:
        """Dispatch an editor resource request. Returns (status, payload)."""
        body = body or {}
        catalog = body.get("catalog") or ""
        schema = body.get("schema") or ""
        table = body.get("table") or ""

        if path == "catalogs":
            return 200, self.catalogs(ctx)
        if path == "schemas":
            return 200, self.schemas(catalog, ctx)
        if path == "tables":
            return 200, self.tables(catalog, schema, ctx)
        if path == "columns":
            return 200, self.columns(table, ctx)
        if path == "defaults":
            return 200, self.defaults(ctx)

        logger.error("Unknown resource path: %s", path)
        return 404, "Unknown URL"
