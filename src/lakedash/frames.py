"""Turning row sets into output frames.

frame_from_rowset is a straight copy with one twist: DATE values become
midnight-utc timestamps so date columns can sit on a time axis.

long_to_wide pivots "one row per sample" results into "one column per
series", which is what time series panels want. pandas does the heavy
lifting - groupby/unstack is exactly this operation.
"""

import logging
from datetime import date, datetime, time, timezone
from typing import Any

import numpy as np
import pandas as pd

from lakedash.errors import FrameError
from lakedash.executor.resilient import RowSet
from lakedash.models.query import FillMode, Frame

logger = logging.getLogger(__name__)


def frame_from_rowset(
    rowset: RowSet,
    sql: str = "",
    execution_time_ms: float = 0.0,
    name: str = "response",
) -> Frame:
    """Build a Frame from executor output."""
    data = [
        {column: _convert_value(value) for column, value in zip(rowset.columns, row)}
        for row in rowset.rows
    ]
    return Frame(
        name=name,
        sql=sql,
        columns=list(rowset.columns),
        data=data,
        row_count=len(data),
        execution_time_ms=round(execution_time_ms, 2),
    )


def _convert_value(value: Any) -> Any:
    # datetime is a date subclass, only bare dates get converted
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    return value


def long_to_wide(
    frame: Frame,
    fill_mode: FillMode = FillMode.NULL,
    fill_value: float = 0.0,
) -> Frame:
    """Pivot a long frame to wide.

    the first temporal column is the time index, string/bool columns are
    series labels, everything else is a value. each (value column, label
    combination) becomes one output column, e.g. `value {host="a"}`.
    samples missing from a series are filled according to `fill_mode`.
    """
    if not frame.data:
        return frame

    df = pd.DataFrame(frame.data, columns=frame.columns)
    time_column = _find_time_column(df)
    if time_column is None:
        raise FrameError("Can not convert to wide series, input is missing a time field")

    others = [c for c in frame.columns if c != time_column]
    label_columns = [c for c in others if _is_label(df[c])]
    value_columns = [c for c in others if c not in label_columns]
    if not value_columns:
        raise FrameError("Can not convert to wide series, input has no value fields")
    if not label_columns:
        # nothing to split on - the frame is already wide
        return frame

    # last() also collapses duplicate samples for the same series/time
    grouped = df.groupby([time_column, *label_columns], sort=True, dropna=False)[value_columns].last()
    wide = grouped.unstack(label_columns).sort_index()

    if fill_mode == FillMode.PREVIOUS:
        wide = wide.ffill()
    elif fill_mode == FillMode.VALUE:
        wide = wide.fillna(fill_value)

    series_names = []
    for key in wide.columns:
        value_column, *label_values = key
        series_names.append(_series_name(value_column, label_columns, label_values))

    data = []
    for timestamp, values in zip(wide.index, wide.itertuples(index=False, name=None)):
        row = {time_column: _to_python(timestamp)}
        row.update({name: _to_python(value) for name, value in zip(series_names, values)})
        data.append(row)

    return Frame(
        name=frame.name,
        sql=frame.sql,
        columns=[time_column, *series_names],
        data=data,
        row_count=len(data),
        execution_time_ms=frame.execution_time_ms,
    )


def _find_time_column(df: pd.DataFrame) -> str | None:
    for column in df.columns:
        if pd.api.types.is_datetime64_any_dtype(df[column]):
            return column
        # mixed timezones keep pandas from inferring a datetime dtype
        sample = df[column].dropna()
        if not sample.empty and all(isinstance(v, datetime) for v in sample):
            return column
    return None


def _is_label(series: pd.Series) -> bool:
    if pd.api.types.is_bool_dtype(series):
        return True
    # object columns can also hold Decimals - those are values, not labels
    sample = series.dropna()
    return not sample.empty and all(isinstance(v, (str, bool)) for v in sample)


def _series_name(value_column: str, label_columns: list[str], label_values: list[Any]) -> str:
    labels = ", ".join(
        f'{column}="{_to_python(value)}"' for column, value in zip(label_columns, label_values)
    )
    return f"{value_column} {{{labels}}}"


def _to_python(value: Any) -> Any:
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if pd.api.types.is_scalar(value) and pd.isna(value):
        return None
    if isinstance(value, np.generic):
        return value.item()
    return value
