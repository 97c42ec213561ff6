"""Builders for upstream query descriptors."""

from metrics_compare.domain.entities import QueryDescriptor, TimeRange
from metrics_compare.domain.enums import Frequency, QueryKind


def dimensions_breakup_query(
    tenant_id: str,
    metric_id: str,
    frequency: Frequency,
    dimension_name: str,
    time_range: TimeRange,
    metric_category: str | None = None,
    filter_dimension: str | None = None,
    filter_value: str | None = None,
) -> QueryDescriptor:
    """One row per (timestamp, dimension value): ``__time, dim_val, sum_kpi``."""
    return QueryDescriptor(
        kind=QueryKind.DIMENSIONS_BREAKUP,
        tenant_id=tenant_id,
        metric_id=metric_id,
        frequency=frequency,
        dimension_name=dimension_name,
        start_time=time_range.start,
        end_time=time_range.end,
        metric_category=metric_category,
        filter_dimension=filter_dimension,
        filter_value=filter_value,
    )


def encoded_breakup_query(
    tenant_id: str,
    metric_id: str,
    frequency: Frequency,
    dimension_name: str,
    time_range: TimeRange,
    metric_category: str | None = None,
    filter_dimension: str | None = None,
    filter_value: str | None = None,
) -> QueryDescriptor:
    """One row per timestamp with JSON-encoded ``dim_val``/``sum_kpi`` arrays."""
    return QueryDescriptor(
        kind=QueryKind.ENCODED_BREAKUP,
        tenant_id=tenant_id,
        metric_id=metric_id,
        frequency=frequency,
        dimension_name=dimension_name,
        start_time=time_range.start,
        end_time=time_range.end,
        metric_category=metric_category,
        filter_dimension=filter_dimension,
        filter_value=filter_value,
    )


def totals_query(
    tenant_id: str,
    metric_id: str,
    frequency: Frequency,
    time_range: TimeRange,
    metric_category: str | None = None,
    filter_dimension: str | None = None,
    filter_value: str | None = None,
) -> QueryDescriptor:
    """One row per timestamp with the JSON-encoded aggregate ``y``."""
    return QueryDescriptor(
        kind=QueryKind.TOTALS,
        tenant_id=tenant_id,
        metric_id=metric_id,
        frequency=frequency,
        start_time=time_range.start,
        end_time=time_range.end,
        metric_category=metric_category,
        filter_dimension=filter_dimension,
        filter_value=filter_value,
    )


def sort_order_query(
    tenant_id: str,
    metric_id: str,
    frequency: Frequency,
    dimension_name: str,
    time_range: TimeRange,
    metric_category: str | None = None,
) -> QueryDescriptor:
    """Canonical order of the dimension's values: ``dim_name, sort_order``."""
    return QueryDescriptor(
        kind=QueryKind.SORT_ORDER,
        tenant_id=tenant_id,
        metric_id=metric_id,
        frequency=frequency,
        dimension_name=dimension_name,
        start_time=time_range.start,
        end_time=time_range.end,
        metric_category=metric_category,
    )


def last_data_ts_query(
    tenant_id: str,
    frequency: Frequency,
    metric_id: str,
    dimension_name: str | None,
    metric_category: str | None,
) -> QueryDescriptor:
    """Last observed data timestamp: ``last_data_ts``."""
    return QueryDescriptor(
        kind=QueryKind.LAST_DATA_TS,
        tenant_id=tenant_id,
        metric_id=metric_id,
        frequency=frequency,
        dimension_name=dimension_name,
        metric_category=metric_category,
    )
