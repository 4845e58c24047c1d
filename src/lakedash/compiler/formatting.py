"""Pretty-printing expanded SQL for humans.

sqlglot's pretty printer makes a one-line dashboard query readable. the
expanded sql is what the engine accepted, not necessarily what sqlglot
can parse, so anything it chokes on comes back untouched.
"""

import sqlglot
from sqlglot.errors import SqlglotError

DIALECT = "databricks"


def pretty_sql(sql: str, dialect: str = DIALECT) -> str:
    """Format `sql` (possibly several statements) or return it as-is."""
    try:
        statements = sqlglot.transpile(sql, read=dialect, write=dialect, pretty=True)
    except SqlglotError:
        return sql
    return ";\n\n".join(statements)
