"""Domain types and aliases."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, TypedDict

Timestamp = datetime

# JSON-serializable types (recursive)
if TYPE_CHECKING:
    JsonValue = str | int | float | bool | None | dict[str, "JsonValue"] | list["JsonValue"]
else:
    JsonValue = str | int | float | bool | None | dict | list

# A raw row as returned by the upstream query layer
QueryRow = dict[str, JsonValue]

# Expression evaluation scope: constituent name -> value
Scope = dict[str, float | None]

# Upstream rows use a "__time" column, which can't be a class attribute
BreakupRowDict = TypedDict(
    "BreakupRowDict",
    {"__time": str, "dim_val": JsonValue, "sum_kpi": JsonValue},
)
TotalsRowDict = TypedDict("TotalsRowDict", {"__time": str, "y": str})


class SortOrderRowDict(TypedDict):
    """Canonical sort order row."""
    dim_name: str | None
    sort_order: int


class LastDataTsRowDict(TypedDict):
    """Last data timestamp row."""
    last_data_ts: str
