"""Comparison request runner."""

from typing import Any, Callable

import structlog
from pydantic import ValidationError

from metrics_compare.application.dto.requests import ComparisonRequest
from metrics_compare.application.services.value_format import format_impact_percentage, format_impact_value
from metrics_compare.application.use_cases.get_comparison_data import MetricsComparisonService
from metrics_compare.domain.entities import ComparisonEntry
from metrics_compare.domain.enums import ValueFormat
from metrics_compare.domain.errors import classify_error
from metrics_compare.domain.ports import MetricRepositoryPort
from metrics_compare.infrastructure.observability.metrics import (
    comparison_requests,
    comparison_requests_failed,
)

logger = structlog.get_logger()

DISPLAY_FORMATTERS: dict[ValueFormat, Callable[[float | None], str]] = {
    ValueFormat.NUMBER: format_impact_value,
    ValueFormat.CURRENCY: format_impact_value,
    ValueFormat.PERCENTAGE: format_impact_percentage,
}


class ComparisonRunner:
    """Parses comparison payloads, runs the service and renders the response."""

    def __init__(self, service: MetricsComparisonService, metrics: MetricRepositoryPort) -> None:
        """Initialize runner."""
        self.service = service
        self.metrics = metrics

    async def handle(self, payload: dict[str, Any]) -> list[dict[str, Any]]:
        """Handle a raw request payload (``kpis``, ``pipeline_schedule``, ...)."""
        comparison_requests.inc()
        try:
            request = ComparisonRequest.model_validate(payload)
            entries = await self.service.get_comparison_data(request)
            formatter = await self._formatter(request)
        except ValidationError as e:
            comparison_requests_failed.labels(error_code="INVALID_REQUEST").inc()
            logger.error("invalid_comparison_request", error=str(e))
            raise
        except Exception as e:
            code, status = classify_error(e)
            comparison_requests_failed.labels(error_code=code).inc()
            logger.error("comparison_failed", error_code=code, status=status, error=str(e), exc_info=True)
            raise

        return render_entries(entries, formatter)

    async def _formatter(self, request: ComparisonRequest) -> Callable[[float | None], str]:
        metric = await self.metrics.get_by_id(request.metric_id, request.tenant_id)
        if metric is None:
            return format_impact_value
        return DISPLAY_FORMATTERS.get(metric.value_format, format_impact_value)


def render_entries(
    entries: list[ComparisonEntry],
    formatter: Callable[[float | None], str] = format_impact_value,
) -> list[dict[str, Any]]:
    """Render entries as ``{"timestamp", "results": [{"dim_val", "value", "display_value"}]}``."""
    return [
        {
            "timestamp": entry.timestamp,
            "results": [
                {
                    "dim_val": row.label,
                    "value": row.value,
                    "display_value": formatter(row.value),
                }
                for row in entry.results
            ],
        }
        for entry in entries
    ]
