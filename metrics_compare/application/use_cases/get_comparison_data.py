"""Metric comparison - main orchestration."""

import structlog

from metrics_compare.application.dto.requests import ComparisonRequest
from metrics_compare.application.services.default_range import parse_frequency, resolve_default_range
from metrics_compare.application.services.dimension_sorter import sort_by_canonical_order
from metrics_compare.application.services.expression_eval import ExpressionEvaluator
from metrics_compare.application.services.query_builder import (
    dimensions_breakup_query,
    encoded_breakup_query,
    sort_order_query,
    totals_query,
)
from metrics_compare.application.services.ratio_calculator import calculate_ratio_breakup
from metrics_compare.domain.entities import (
    ComparisonEntry,
    ComparisonResultRow,
    DimensionDefinition,
    MetricDefinition,
    QueryDescriptor,
    QueryResponse,
    SortOrderEntry,
    TimeRange,
)
from metrics_compare.domain.enums import Frequency
from metrics_compare.domain.errors import (
    DimensionNotFoundError,
    MetricNotFoundError,
    MissingConstituentMetricsError,
    UpstreamQueryError,
)
from metrics_compare.domain.ports import (
    ClockPort,
    DimensionRepositoryPort,
    ExpressionEvaluatorPort,
    MetricRepositoryPort,
    QueryExecutorPort,
)
from metrics_compare.domain.types import QueryRow
from metrics_compare.infrastructure.observability.metrics import (
    upstream_fallback_queries,
    upstream_query_duration_seconds,
)
from metrics_compare.infrastructure.runtime.clock import SystemClock

logger = structlog.get_logger()

# Statuses meaning "not found on the primary source"
FALLBACK_STATUSES = frozenset({400, 404})


class MetricsComparisonService:
    """Dimension breakup comparison for simple and ratio metrics."""

    def __init__(
        self,
        metrics: MetricRepositoryPort,
        dimensions: DimensionRepositoryPort,
        executor: QueryExecutorPort,
        evaluator: ExpressionEvaluatorPort | None = None,
        clock: ClockPort | None = None,
    ) -> None:
        """Initialize service with its collaborators."""
        self.metrics = metrics
        self.dimensions = dimensions
        self.executor = executor
        self.evaluator = evaluator or ExpressionEvaluator()
        self.clock = clock or SystemClock()

    async def get_comparison_data(self, request: ComparisonRequest) -> list[ComparisonEntry]:
        """Get metric values broken down by dimension, grouped by timestamp.

        An empty primary series returns no entries and skips the sort order
        and denominator queries.
        """
        metric_id = request.metric_id
        frequency = parse_frequency(request.frequency)

        logger.info(
            "comparison_requested",
            kpi_id=metric_id,
            dimension_id=request.dimension_id,
            tenant_id=request.tenant_id,
            frequency=frequency.value,
        )

        metric = await self._resolve_metric(metric_id, request.tenant_id)
        dimension = await self._resolve_dimension(request.dimension_id)

        if metric.is_ratio and not metric.has_constituents:
            logger.error("missing_constituent_metrics", kpi_id=metric_id)
            raise MissingConstituentMetricsError(
                f"No Constituent metrics configured for kpi_id: {metric_id}"
            )

        time_range = request.time_range
        if time_range is None:
            time_range = await self.get_default_time_range(
                request.tenant_id,
                frequency,
                metric_id,
                dimension.name,
                metric.category,
            )

        if metric.is_ratio:
            rows, canonical_order = await self._ratio_rows(metric, dimension, request, frequency, time_range)
        else:
            rows, canonical_order = await self._simple_rows(metric, dimension, request, frequency, time_range)

        entries = self._assemble(rows, canonical_order)

        logger.info(
            "comparison_completed",
            kpi_id=metric_id,
            dimension_id=dimension.id,
            timestamps=len(entries),
            row_count=len(rows),
        )
        return entries

    async def get_default_time_range(
        self,
        tenant_id: str,
        frequency: Frequency | str,
        metric_id: str,
        dimension_name: str | None,
        metric_category: str | None,
    ) -> TimeRange:
        """Default range ending at the last observed data timestamp."""
        return await resolve_default_range(
            self.execute_query_with_fallback,
            self.clock,
            tenant_id,
            frequency,
            metric_id,
            dimension_name,
            metric_category,
        )

    async def execute_query_with_fallback(self, descriptor: QueryDescriptor) -> QueryResponse:
        """Run query, retrying once on the fallback source on 404/400."""
        response = await self._run(descriptor)

        if response.status in FALLBACK_STATUSES:
            logger.warning(
                "query_fallback",
                query_kind=descriptor.kind.value,
                status=response.status,
                tenant_id=descriptor.tenant_id,
                kpi_id=descriptor.metric_id,
            )
            upstream_fallback_queries.labels(query_kind=descriptor.kind.value).inc()
            response = await self._run(descriptor.with_fallback())

        return response

    # ========================================================================
    # Resolution
    # ========================================================================

    async def _resolve_metric(self, metric_id: str, tenant_id: str) -> MetricDefinition:
        metric = await self.metrics.get_by_id(metric_id, tenant_id)
        if metric is None:
            message = f"Metric not found for kpi_id: {metric_id}"
            logger.error("metric_not_found", kpi_id=metric_id, tenant_id=tenant_id)
            raise MetricNotFoundError(message)
        return metric

    async def _resolve_dimension(self, dimension_id: str) -> DimensionDefinition:
        dimension = await self.dimensions.get_by_id(dimension_id)
        if dimension is None:
            message = f"Dimension not found for dimension_id: {dimension_id}"
            logger.error("dimension_not_found", dimension_id=dimension_id)
            raise DimensionNotFoundError(message)
        return dimension

    # ========================================================================
    # Series fetching
    # ========================================================================

    async def _simple_rows(
        self,
        metric: MetricDefinition,
        dimension: DimensionDefinition,
        request: ComparisonRequest,
        frequency: Frequency,
        time_range: TimeRange,
    ) -> tuple[list[ComparisonResultRow], list[SortOrderEntry]]:
        breakup = await self._fetch_rows(
            dimensions_breakup_query(
                request.tenant_id,
                metric.id,
                frequency,
                dimension.name,
                time_range,
                metric.category,
                request.dim_name,
                request.dim_val,
            )
        )
        if not breakup:
            logger.info("empty_primary_series", kpi_id=metric.id, dimension_id=dimension.id)
            return [], []

        canonical_order = await self._fetch_sort_order(
            request.tenant_id, metric.id, frequency, dimension.name, time_range, metric.category
        )

        rows = [
            ComparisonResultRow(
                timestamp=row.get("__time"),
                label=row.get("dim_val"),
                value=row.get("sum_kpi"),
            )
            for row in breakup
        ]
        return rows, canonical_order

    async def _ratio_rows(
        self,
        metric: MetricDefinition,
        dimension: DimensionDefinition,
        request: ComparisonRequest,
        frequency: Frequency,
        time_range: TimeRange,
    ) -> tuple[list[ComparisonResultRow], list[SortOrderEntry]]:
        numerator = metric.numerator[0]
        denominator = metric.denominator[0]

        numerator_series = await self._fetch_rows(
            encoded_breakup_query(
                request.tenant_id,
                numerator.id,
                frequency,
                dimension.name,
                time_range,
                metric.category,
                request.dim_name,
                request.dim_val,
            )
        )
        if not numerator_series:
            logger.info("empty_primary_series", kpi_id=metric.id, dimension_id=dimension.id)
            return [], []

        canonical_order = await self._fetch_sort_order(
            request.tenant_id, numerator.id, frequency, dimension.name, time_range, metric.category
        )

        denominator_series = await self._fetch_rows(
            totals_query(
                request.tenant_id,
                denominator.id,
                frequency,
                time_range,
                metric.category,
                request.dim_name,
                request.dim_val,
            )
        )

        breakup = calculate_ratio_breakup(
            numerator_series,
            denominator_series,
            numerator.name,
            denominator.name,
            metric.expression,
            evaluate=self.evaluator.evaluate,
        )
        return breakup.rows, canonical_order

    async def _fetch_sort_order(
        self,
        tenant_id: str,
        metric_id: str,
        frequency: Frequency,
        dimension_name: str,
        time_range: TimeRange,
        metric_category: str | None,
    ) -> list[SortOrderEntry]:
        rows = await self._fetch_rows(
            sort_order_query(tenant_id, metric_id, frequency, dimension_name, time_range, metric_category)
        )
        return [SortOrderEntry(label=row.get("dim_name"), rank=row.get("sort_order")) for row in rows]

    async def _fetch_rows(self, descriptor: QueryDescriptor) -> list[QueryRow]:
        """Run query with fallback and fail on a non-success final response."""
        response = await self.execute_query_with_fallback(descriptor)
        if not response.success or response.status != 200:
            logger.error(
                "upstream_query_failed",
                query_kind=descriptor.kind.value,
                status=response.status,
                tenant_id=descriptor.tenant_id,
                kpi_id=descriptor.metric_id,
            )
            raise UpstreamQueryError(
                f"Error while fetching data from upstream: {descriptor.kind.value} query "
                f"for kpi_id {descriptor.metric_id} returned status {response.status}",
                status=response.status,
            )
        return response.data

    async def _run(self, descriptor: QueryDescriptor) -> QueryResponse:
        with upstream_query_duration_seconds.labels(query_kind=descriptor.kind.value).time():
            return await self.executor.run(descriptor)

    # ========================================================================
    # Assembly
    # ========================================================================

    @staticmethod
    def _assemble(
        rows: list[ComparisonResultRow],
        canonical_order: list[SortOrderEntry],
    ) -> list[ComparisonEntry]:
        """Group rows by timestamp in first-seen order, each group in canonical order."""
        entries: dict[str, ComparisonEntry] = {}
        for row in rows:
            entry = entries.get(row.timestamp)
            if entry is None:
                entry = ComparisonEntry(timestamp=row.timestamp)
                entries[row.timestamp] = entry
            entry.results.append(row)

        for entry in entries.values():
            sort_by_canonical_order(entry.results, canonical_order)

        return list(entries.values())
