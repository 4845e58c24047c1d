"""lakedash - dashboard datasource backend for Databricks SQL.

dashboard sql templates go in, macros get expanded against the panel's time
range, statements run on a pooled connection that survives expired sessions,
and frames come out.
"""

from lakedash.compiler.interval import format_interval
from lakedash.compiler.macros import MacroExpander, expand_macros
from lakedash.config.loader import DatasourceRegistry, load_datasources
from lakedash.datasource import Datasource, split_statements
from lakedash.errors import DatasourceError
from lakedash.executor.resilient import ResilientExecutor
from lakedash.models.query import DataQuery, DataResponse, Frame, QueryContext
from lakedash.models.settings import ConnectionSettings, DatasourceSettings

__version__ = "0.1.0"

__all__ = [
    "ConnectionSettings",
    "DataQuery",
    "DataResponse",
    "Datasource",
    "DatasourceError",
    "DatasourceRegistry",
    "DatasourceSettings",
    "Frame",
    "MacroExpander",
    "QueryContext",
    "ResilientExecutor",
    "expand_macros",
    "format_interval",
    "load_datasources",
    "split_statements",
]
