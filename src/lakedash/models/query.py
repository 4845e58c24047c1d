"""Pydantic models for dashboard queries and their results.

the payload models mirror what the dashboard frontend sends (camelCase on the
wire, snake_case in python). QueryContext is the trimmed-down, immutable view
the macro expander works from.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum, IntEnum
from functools import cached_property
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from lakedash.compiler.interval import format_interval


class FillMode(IntEnum):
    """How missing samples are filled when pivoting long to wide.

    numeric values match the frontend's encoding so payloads validate as-is.
    """

    PREVIOUS = 0
    NULL = 1
    VALUE = 2


class QuerySettings(BaseModel):
    """Per-query result shaping options."""

    model_config = ConfigDict(populate_by_name=True)

    convert_long_to_wide: bool = Field(default=False, alias="convertLongToWide")
    fill_mode: FillMode = Field(default=FillMode.NULL, alias="fillMode")
    fill_value: float = Field(default=0.0, alias="fillValue")


class TimeRange(BaseModel):
    """Absolute time range of a dashboard panel."""

    model_config = ConfigDict(populate_by_name=True)

    from_: datetime = Field(alias="from")
    to: datetime


class DataQuery(BaseModel):
    """A single dashboard query as received from the host."""

    model_config = ConfigDict(populate_by_name=True)

    ref_id: str = Field(default="A", alias="refId")
    raw_sql: str = Field(default="", alias="rawSqlQuery")
    query_settings: QuerySettings = Field(default_factory=QuerySettings, alias="querySettings")
    time_range: TimeRange = Field(alias="timeRange")
    interval: timedelta = timedelta(0)

    @model_validator(mode="before")
    @classmethod
    def accept_interval_ms(cls, data: Any) -> Any:
        """Accept the host's `intervalMs` in place of `interval`."""
        if isinstance(data, dict) and "interval" not in data and "intervalMs" in data:
            data = dict(data)
            data["interval"] = timedelta(milliseconds=float(data.pop("intervalMs")))
        return data


@dataclass(frozen=True)
class QueryContext:
    """Everything the macro expander may look at for one query invocation."""

    time_from: datetime
    time_to: datetime
    interval: timedelta
    raw_template: str = ""

    @classmethod
    def from_query(cls, query: DataQuery) -> "QueryContext":
        return cls(
            time_from=query.time_range.from_,
            time_to=query.time_range.to,
            interval=query.interval,
            raw_template=query.raw_sql,
        )

    @cached_property
    def interval_string(self) -> str:
        # computed once per context, every interval macro reuses it
        return format_interval(self.interval)

    @property
    def utc_from(self) -> datetime:
        return _as_utc(self.time_from)

    @property
    def utc_to(self) -> datetime:
        return _as_utc(self.time_to)


def _as_utc(value: datetime) -> datetime:
    # naive datetimes are taken to already be utc
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Frame(BaseModel):
    """Tabular result of a query.

    keeping the executed sql on the frame makes "what actually ran?" a
    one-liner when a panel looks wrong.
    """

    name: str = "response"
    sql: str = ""
    columns: list[str]
    data: list[dict]  # one dict per row, keyed by column name
    row_count: int
    execution_time_ms: float = 0.0


class DataResponse(BaseModel):
    """Outcome of one query in a batch - frames or an error, never both."""

    ref_id: str
    frames: list[Frame] = Field(default_factory=list)
    error: str | None = None
    error_code: str | None = None


class HealthStatus(str, Enum):
    OK = "OK"
    ERROR = "ERROR"


class HealthResult(BaseModel):
    status: HealthStatus
    message: str
