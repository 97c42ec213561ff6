"""Canonical ordering of dimension breakup rows."""

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

from metrics_compare.domain.entities import SortOrderEntry

T = TypeVar("T")

NULL_LABEL = "null"


@dataclass(frozen=True)
class Ranked:
    """Label found in the canonical order."""

    position: int


@dataclass(frozen=True)
class Unranked:
    """Label absent from the canonical order."""


Rank = Ranked | Unranked


def normalize_label(label: object) -> str:
    """Labels compare as strings; a missing label is the literal "null"."""
    return NULL_LABEL if label is None else str(label)


def row_label(row: Any) -> object:
    """Label of a result row or of a raw upstream mapping."""
    if isinstance(row, dict):
        return row.get("dim_val")
    return row.label


def build_positions(canonical_order: Sequence[SortOrderEntry]) -> dict[str, int]:
    """Map each label to its first position in the canonical order."""
    positions: dict[str, int] = {}
    for position, entry in enumerate(canonical_order):
        positions.setdefault(normalize_label(entry.label), position)
    return positions


def rank_of(label: object, positions: dict[str, int]) -> Rank:
    """Rank of a label against canonical positions."""
    position = positions.get(normalize_label(label))
    return Unranked() if position is None else Ranked(position)


def _sort_key(rank: Rank) -> tuple[int, int]:
    if isinstance(rank, Ranked):
        return (0, rank.position)
    return (1, 0)


def sort_by_canonical_order(
    rows: list[T],
    canonical_order: Sequence[SortOrderEntry],
    key: Callable[[T], object] = row_label,
) -> list[T]:
    """Sort rows in place by canonical label position and return the same list.

    Ranked rows come first by position; unranked rows follow in their input
    order (``list.sort`` is stable).
    """
    positions = build_positions(canonical_order)
    rows.sort(key=lambda row: _sort_key(rank_of(key(row), positions)))
    return rows
