"""Ratio metric breakup calculation."""

import json
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Callable

import structlog

from metrics_compare.application.services.expression_eval import evaluate_expression
from metrics_compare.domain.entities import ComparisonResultRow
from metrics_compare.domain.errors import UpstreamQueryError
from metrics_compare.domain.types import JsonValue, QueryRow, Scope

logger = structlog.get_logger()

Evaluate = Callable[[str, Scope], float | None]


@dataclass
class RatioBreakup:
    """Rows computed for a ratio metric."""

    rows: list[ComparisonResultRow] = field(default_factory=list)


def decode_array(value: JsonValue) -> list[JsonValue]:
    """Decode an upstream array cell.

    Cells arrive JSON-encoded (``'["USA", "UK"]'``), already decoded, or as a
    single scalar.
    """
    if value is None:
        return []
    if isinstance(value, str):
        try:
            decoded = json.loads(value)
        except json.JSONDecodeError as e:
            raise UpstreamQueryError(f"Malformed array cell: {value!r}") from e
    else:
        decoded = value
    if isinstance(decoded, (list, tuple)):
        return list(decoded)
    return [decoded]


def decode_aggregate(value: JsonValue) -> JsonValue:
    """Decode a single-aggregate cell (scalar or one-element array)."""
    decoded = decode_array(value)
    return decoded[0] if decoded else None


def _aligned_denominator(
    denominator_series: Sequence[QueryRow],
    numerator_length: int,
    index: int,
) -> JsonValue:
    """Pick the denominator value aligned with numerator index."""
    if len(denominator_series) >= numerator_length:
        # Tail alignment: the most recent denominators match the most recent numerators
        offset = len(denominator_series) - numerator_length
        return decode_aggregate(denominator_series[offset + index].get("y"))
    if index < len(denominator_series):
        return decode_aggregate(denominator_series[index].get("y"))
    return None


def calculate_ratio_breakup(
    numerator_series: Sequence[QueryRow],
    denominator_series: Sequence[QueryRow],
    numerator_name: str,
    denominator_name: str,
    expression: str,
    evaluate: Evaluate = evaluate_expression,
) -> RatioBreakup:
    """Combine numerator breakup and denominator totals through expression."""
    result = RatioBreakup()
    if not numerator_series:
        return result

    for index, point in enumerate(numerator_series):
        labels = decode_array(point.get("dim_val"))
        values = decode_array(point.get("sum_kpi"))
        if not labels or not values:
            continue

        denominator = _aligned_denominator(denominator_series, len(numerator_series), index)
        timestamp = point.get("__time")
        if len(labels) != len(values):
            logger.warning(
                "breakup_length_mismatch",
                data_ts=timestamp,
                labels=len(labels),
                values=len(values),
            )

        for label, value in zip(labels, values):
            ratio = evaluate(
                expression,
                {numerator_name: value, denominator_name: denominator},
            )
            result.rows.append(ComparisonResultRow(timestamp=timestamp, label=label, value=ratio))

    return result
