"""SQL execution against pooled engine connections."""

from lakedash.executor.cancellation import CallContext
from lakedash.executor.connectors import (
    Connector,
    DatabricksConnector,
    DuckDBConnector,
    build_connector,
)
from lakedash.executor.resilient import ResilientExecutor, RowSet, is_session_expired

__all__ = [
    "CallContext",
    "Connector",
    "DatabricksConnector",
    "DuckDBConnector",
    "ResilientExecutor",
    "RowSet",
    "build_connector",
    "is_session_expired",
]
