"""Upstream query semantics over a metric frame (``__time``, ``value``, dimensions)."""

import json
from typing import Callable

import numpy as np
import pandas as pd

from metrics_compare.application.services.default_range import format_instant, parse_instant
from metrics_compare.domain.entities import QueryDescriptor
from metrics_compare.domain.enums import QueryKind
from metrics_compare.domain.types import (
    BreakupRowDict,
    JsonValue,
    LastDataTsRowDict,
    QueryRow,
    SortOrderRowDict,
    TotalsRowDict,
)

TIME_COLUMN = "__time"
VALUE_COLUMN = "value"

# Query kinds grouping by the descriptor's dimension column
GROUPED_KINDS = frozenset({QueryKind.DIMENSIONS_BREAKUP, QueryKind.ENCODED_BREAKUP, QueryKind.SORT_ORDER})


def prepare_frame(frame: pd.DataFrame) -> pd.DataFrame:
    """Normalize time column to UTC and values to float."""
    frame = frame.copy()
    frame[TIME_COLUMN] = pd.to_datetime(frame[TIME_COLUMN], utc=True)
    frame[VALUE_COLUMN] = frame[VALUE_COLUMN].astype("float64")
    return frame


def select_rows(frame: pd.DataFrame, descriptor: QueryDescriptor) -> pd.DataFrame:
    """Apply time range (inclusive) and the optional ``dim_name == dim_val`` filter."""
    mask = pd.Series(True, index=frame.index)
    if descriptor.start_time:
        mask &= frame[TIME_COLUMN] >= pd.Timestamp(parse_instant(descriptor.start_time))
    if descriptor.end_time:
        mask &= frame[TIME_COLUMN] <= pd.Timestamp(parse_instant(descriptor.end_time))
    if descriptor.filter_dimension and descriptor.filter_value is not None:
        mask &= frame[descriptor.filter_dimension].astype(str) == descriptor.filter_value
    return frame[mask]


def _format_time(value: pd.Timestamp) -> str:
    return format_instant(pd.Timestamp(value).to_pydatetime())


def _cell(value: object) -> float | None:
    if value is None or pd.isna(value):
        return None
    return float(value)


def _label(value: object) -> JsonValue:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return None
    if isinstance(value, np.generic):
        return value.item()
    return value


def _sum_by_time_and_dimension(frame: pd.DataFrame, dimension: str) -> pd.DataFrame:
    return (
        frame.groupby([TIME_COLUMN, dimension], dropna=False, sort=True)[VALUE_COLUMN]
        .sum(min_count=1)
        .reset_index()
    )


def dimensions_breakup(frame: pd.DataFrame, dimension: str | None) -> list[BreakupRowDict]:
    """One row per (timestamp, dimension value)."""
    grouped = _sum_by_time_and_dimension(frame, dimension)
    return [
        {
            "__time": _format_time(record[TIME_COLUMN]),
            "dim_val": _label(record[dimension]),
            "sum_kpi": _cell(record[VALUE_COLUMN]),
        }
        for record in grouped.to_dict("records")
    ]


def encoded_breakup(frame: pd.DataFrame, dimension: str | None) -> list[BreakupRowDict]:
    """One row per timestamp; labels and sums as JSON arrays, largest first."""
    grouped = _sum_by_time_and_dimension(frame, dimension)
    rows: list[BreakupRowDict] = []
    for timestamp, group in grouped.groupby(TIME_COLUMN, sort=True):
        group = group.sort_values(VALUE_COLUMN, ascending=False, na_position="last", kind="mergesort")
        rows.append(
            {
                "__time": _format_time(timestamp),
                "dim_val": json.dumps([_label(v) for v in group[dimension]]),
                "sum_kpi": json.dumps([_cell(v) for v in group[VALUE_COLUMN]]),
            }
        )
    return rows


def totals(frame: pd.DataFrame, dimension: str | None = None) -> list[TotalsRowDict]:
    """One row per timestamp with the aggregate as a one-element JSON array."""
    sums = frame.groupby(TIME_COLUMN, sort=True)[VALUE_COLUMN].sum(min_count=1)
    return [{"__time": _format_time(timestamp), "y": json.dumps([_cell(value)])} for timestamp, value in sums.items()]


def sort_order(frame: pd.DataFrame, dimension: str | None) -> list[SortOrderRowDict]:
    """Dimension values by total over the range, largest first."""
    sums = (
        frame.groupby(dimension, dropna=False, sort=True)[VALUE_COLUMN]
        .sum(min_count=1)
        .sort_values(ascending=False, na_position="last", kind="mergesort")
    )
    return [
        {"dim_name": _label(label), "sort_order": position}
        for position, label in enumerate(sums.index, start=1)
    ]


def last_data_ts(frame: pd.DataFrame, dimension: str | None = None) -> list[LastDataTsRowDict]:
    """Latest timestamp with data, or no rows."""
    if frame.empty:
        return []
    return [{"last_data_ts": _format_time(frame[TIME_COLUMN].max())}]


_QUERIES: dict[QueryKind, Callable[[pd.DataFrame, str | None], list]] = {
    QueryKind.DIMENSIONS_BREAKUP: dimensions_breakup,
    QueryKind.ENCODED_BREAKUP: encoded_breakup,
    QueryKind.TOTALS: totals,
    QueryKind.SORT_ORDER: sort_order,
    QueryKind.LAST_DATA_TS: last_data_ts,
}


def run_frame_query(descriptor: QueryDescriptor, frame: pd.DataFrame) -> list[QueryRow]:
    """Run a logical query against a metric frame."""
    selected = select_rows(prepare_frame(frame), descriptor)
    return _QUERIES[descriptor.kind](selected, descriptor.dimension_name)
