"""Pydantic models for lakedash."""

from lakedash.models.query import (
    DataQuery,
    DataResponse,
    FillMode,
    Frame,
    HealthResult,
    HealthStatus,
    QueryContext,
    QuerySettings,
    TimeRange,
)
from lakedash.models.settings import AuthMethod, ConnectionSettings, DatasourceSettings

__all__ = [
    "AuthMethod",
    "ConnectionSettings",
    "DataQuery",
    "DataResponse",
    "DatasourceSettings",
    "FillMode",
    "Frame",
    "HealthResult",
    "HealthStatus",
    "QueryContext",
    "QuerySettings",
    "TimeRange",
]
