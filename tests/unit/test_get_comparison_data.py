"""Unit tests for get_comparison_data use case."""

from dataclasses import replace
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from structlog.testing import capture_logs

from metrics_compare.application.dto.requests import ComparisonRequest
from metrics_compare.application.services.query_builder import last_data_ts_query
from metrics_compare.application.use_cases.get_comparison_data import MetricsComparisonService
from metrics_compare.domain.entities import (
    ComparisonResultRow,
    ConstituentMetric,
    DimensionDefinition,
    MetricDefinition,
    QueryResponse,
)
from metrics_compare.domain.enums import Frequency, MetricKind, QueryKind
from metrics_compare.domain.errors import (
    DimensionNotFoundError,
    MetricNotFoundError,
    EvaluationError,
    InvalidExpressionError,
    MissingConstituentMetricsError,
    UpstreamQueryError,
)
from metrics_compare.domain.ports import (
    ClockPort,
    DimensionRepositoryPort,
    MetricRepositoryPort,
    QueryExecutorPort,
)

SIMPLE_METRIC = MetricDefinition(id="kpi-1", name="revenue", category="web")

RATIO_METRIC = MetricDefinition(
    id="kpi-r",
    name="conversion",
    kind=MetricKind.RATIO,
    numerator=(ConstituentMetric("kpi-n", "checkouts"),),
    denominator=(ConstituentMetric("kpi-d", "visitors"),),
    expression="checkouts / visitors",
)

DIMENSION = DimensionDefinition(id="dim-1", name="country")

BREAKUP_ROWS = [
    {"__time": "T1", "dim_val": "UK", "sum_kpi": 50.0},
    {"__time": "T1", "dim_val": "USA", "sum_kpi": 100.0},
    {"__time": "T2", "dim_val": "USA", "sum_kpi": 80.0},
    {"__time": "T2", "dim_val": "IN", "sum_kpi": 30.0},
]

SORT_ROWS = [
    {"dim_name": "USA", "sort_order": 1},
    {"dim_name": "UK", "sort_order": 2},
]


@pytest.fixture
def mock_metrics():
    """Create mock metric repository."""
    metrics = MagicMock(spec=MetricRepositoryPort)
    metrics.get_by_id = AsyncMock(return_value=SIMPLE_METRIC)
    return metrics


@pytest.fixture
def mock_dimensions():
    """Create mock dimension repository."""
    dimensions = MagicMock(spec=DimensionRepositoryPort)
    dimensions.get_by_id = AsyncMock(return_value=DIMENSION)
    return dimensions


@pytest.fixture
def mock_executor():
    """Create mock query executor."""
    executor = MagicMock(spec=QueryExecutorPort)
    executor.run = AsyncMock()
    return executor


@pytest.fixture
def mock_clock():
    """Create mock clock."""
    clock = MagicMock(spec=ClockPort)
    clock.now.return_value = datetime(2025, 1, 15, tzinfo=timezone.utc)
    return clock


@pytest.fixture
def service(mock_metrics, mock_dimensions, mock_executor, mock_clock):
    """Create comparison service."""
    return MetricsComparisonService(mock_metrics, mock_dimensions, mock_executor, clock=mock_clock)


def _request(**overrides):
    payload = {
        "kpis": "kpi-1",
        "dimension_id": "dim-1",
        "tenant_id": "t1",
        "pipeline_schedule": "d",
        "start_time": "2025-01-08T00:00:00.000Z",
        "end_time": "2025-01-15T00:00:00.000Z",
    }
    payload.update(overrides)
    return ComparisonRequest.model_validate(payload)


def _descriptor():
    return last_data_ts_query("t1", Frequency.DAILY, "kpi-1", "country", None)


def _kinds(executor):
    return [call.args[0].kind for call in executor.run.call_args_list]


def _fallbacks(executor):
    return [call.args[0].use_fallback for call in executor.run.call_args_list]


# ============================================================================
# Simple metrics
# ============================================================================


@pytest.mark.asyncio
async def test_simple_metric_grouped_and_sorted(service, mock_executor):
    """Test simple metric rows are grouped by timestamp and sorted canonically."""
    mock_executor.run.side_effect = [QueryResponse.ok(BREAKUP_ROWS), QueryResponse.ok(SORT_ROWS)]

    entries = await service.get_comparison_data(_request())

    assert [entry.timestamp for entry in entries] == ["T1", "T2"]
    assert entries[0].results == [
        ComparisonResultRow(timestamp="T1", label="USA", value=100.0),
        ComparisonResultRow(timestamp="T1", label="UK", value=50.0),
    ]
    # IN is not in the canonical order and goes last
    assert [row.label for row in entries[1].results] == ["USA", "IN"]
    assert _kinds(mock_executor) == [QueryKind.DIMENSIONS_BREAKUP, QueryKind.SORT_ORDER]


@pytest.mark.asyncio
async def test_simple_metric_query_descriptors(service, mock_executor):
    """Test descriptors carry tenant, metric, dimension, range and filter."""
    mock_executor.run.side_effect = [QueryResponse.ok(BREAKUP_ROWS), QueryResponse.ok(SORT_ROWS)]

    await service.get_comparison_data(_request(dim_name="device", dim_val="ios"))

    breakup = mock_executor.run.call_args_list[0].args[0]
    assert breakup.tenant_id == "t1"
    assert breakup.metric_id == "kpi-1"
    assert breakup.dimension_name == "country"
    assert breakup.metric_category == "web"
    assert (breakup.start_time, breakup.end_time) == ("2025-01-08T00:00:00.000Z", "2025-01-15T00:00:00.000Z")
    assert (breakup.filter_dimension, breakup.filter_value) == ("device", "ios")


@pytest.mark.asyncio
async def test_timestamps_keep_first_seen_order(service, mock_executor):
    """Test groups follow the order timestamps first appear upstream."""
    rows = [
        {"__time": "T2", "dim_val": "USA", "sum_kpi": 1.0},
        {"__time": "T1", "dim_val": "USA", "sum_kpi": 2.0},
        {"__time": "T2", "dim_val": "UK", "sum_kpi": 3.0},
    ]
    mock_executor.run.side_effect = [QueryResponse.ok(rows), QueryResponse.ok(SORT_ROWS)]

    entries = await service.get_comparison_data(_request())

    assert [entry.timestamp for entry in entries] == ["T2", "T1"]
    assert [row.label for row in entries[0].results] == ["USA", "UK"]


@pytest.mark.asyncio
async def test_empty_primary_series(service, mock_executor):
    """Test an empty breakup returns no entries without further queries."""
    mock_executor.run.side_effect = [QueryResponse.ok([])]

    entries = await service.get_comparison_data(_request())

    assert entries == []
    assert mock_executor.run.call_count == 1


# ============================================================================
# Ratio metrics
# ============================================================================


@pytest.mark.asyncio
async def test_ratio_metric_flow(service, mock_metrics, mock_executor):
    """Test ratio metrics query numerator, sort order, then denominator."""
    mock_metrics.get_by_id.return_value = RATIO_METRIC
    numerator = [
        {"__time": "T1", "dim_val": '["UK", "USA"]', "sum_kpi": "[20, 100]"},
    ]
    denominator = [{"__time": "T1", "y": "[200]"}]
    mock_executor.run.side_effect = [
        QueryResponse.ok(numerator),
        QueryResponse.ok(SORT_ROWS),
        QueryResponse.ok(denominator),
    ]

    entries = await service.get_comparison_data(_request(kpis="kpi-r"))

    assert _kinds(mock_executor) == [QueryKind.ENCODED_BREAKUP, QueryKind.SORT_ORDER, QueryKind.TOTALS]
    metric_ids = [call.args[0].metric_id for call in mock_executor.run.call_args_list]
    assert metric_ids == ["kpi-n", "kpi-n", "kpi-d"]
    assert len(entries) == 1
    assert [(row.label, row.value) for row in entries[0].results] == [("USA", 0.5), ("UK", 0.1)]


@pytest.mark.asyncio
async def test_ratio_metric_uses_injected_evaluator(mock_metrics, mock_dimensions, mock_executor, mock_clock):
    """Test the injected evaluator computes ratio values."""
    mock_metrics.get_by_id.return_value = RATIO_METRIC
    evaluator = MagicMock()
    evaluator.evaluate.return_value = 42.0
    mock_executor.run.side_effect = [
        QueryResponse.ok([{"__time": "T1", "dim_val": '["USA"]', "sum_kpi": "[100]"}]),
        QueryResponse.ok(SORT_ROWS),
        QueryResponse.ok([{"__time": "T1", "y": "[200]"}]),
    ]
    service = MetricsComparisonService(mock_metrics, mock_dimensions, mock_executor, evaluator, mock_clock)

    entries = await service.get_comparison_data(_request(kpis="kpi-r"))

    evaluator.evaluate.assert_called_once_with("checkouts / visitors", {"checkouts": 100, "visitors": 200})
    assert entries[0].results[0].value == 42.0


@pytest.mark.asyncio
async def test_ratio_metric_empty_numerator(service, mock_metrics, mock_executor):
    """Test an empty numerator series skips sort order and denominator."""
    mock_metrics.get_by_id.return_value = RATIO_METRIC
    mock_executor.run.side_effect = [QueryResponse.ok([])]

    entries = await service.get_comparison_data(_request(kpis="kpi-r"))

    assert entries == []
    assert mock_executor.run.call_count == 1


@pytest.mark.asyncio
async def test_ratio_metric_invalid_expression(service, mock_metrics, mock_executor):
    """Test a malformed ratio expression raises after the three queries."""
    mock_metrics.get_by_id.return_value = replace(RATIO_METRIC, expression="checkouts / ")
    mock_executor.run.side_effect = [
        QueryResponse.ok([{"__time": "T1", "dim_val": '["USA"]', "sum_kpi": "[100]"}]),
        QueryResponse.ok(SORT_ROWS),
        QueryResponse.ok([{"__time": "T1", "y": "[200]"}]),
    ]

    with pytest.raises(InvalidExpressionError):
        await service.get_comparison_data(_request(kpis="kpi-r"))

    assert mock_executor.run.call_count == 3


@pytest.mark.asyncio
async def test_ratio_metric_undefined_symbol(service, mock_metrics, mock_executor):
    """Test an expression naming an unknown metric raises an evaluation error."""
    mock_metrics.get_by_id.return_value = replace(RATIO_METRIC, expression="checkouts / sessions")
    mock_executor.run.side_effect = [
        QueryResponse.ok([{"__time": "T1", "dim_val": '["USA"]', "sum_kpi": "[100]"}]),
        QueryResponse.ok(SORT_ROWS),
        QueryResponse.ok([{"__time": "T1", "y": "[200]"}]),
    ]

    with pytest.raises(EvaluationError, match="sessions"):
        await service.get_comparison_data(_request(kpis="kpi-r"))


@pytest.mark.asyncio
async def test_ratio_metric_without_constituents(service, mock_metrics, mock_executor):
    """Test ratio metrics without constituents fail before any query."""
    mock_metrics.get_by_id.return_value = MetricDefinition(id="kpi-r", name="conversion", kind=MetricKind.RATIO)

    with pytest.raises(MissingConstituentMetricsError, match="No Constituent metrics configured"):
        await service.get_comparison_data(_request(kpis="kpi-r", start_time=None, end_time=None))

    mock_executor.run.assert_not_called()


# ============================================================================
# Resolution errors
# ============================================================================


@pytest.mark.asyncio
async def test_metric_not_found(service, mock_metrics, mock_executor):
    """Test unknown metric."""
    mock_metrics.get_by_id.return_value = None

    with pytest.raises(MetricNotFoundError, match="Metric not found for kpi_id: kpi-x"):
        await service.get_comparison_data(_request(kpis="kpi-x"))

    mock_metrics.get_by_id.assert_called_once_with("kpi-x", "t1")
    mock_executor.run.assert_not_called()


@pytest.mark.asyncio
async def test_dimension_not_found(service, mock_dimensions, mock_executor):
    """Test unknown dimension."""
    mock_dimensions.get_by_id.return_value = None

    with pytest.raises(DimensionNotFoundError, match="Dimension not found for dimension_id: dim-x"):
        await service.get_comparison_data(_request(dimension_id="dim-x"))

    mock_executor.run.assert_not_called()


# ============================================================================
# Default range
# ============================================================================


@pytest.mark.asyncio
async def test_default_range_queried_first(service, mock_executor):
    """Test a request without range resolves it from the last data timestamp."""
    mock_executor.run.side_effect = [
        QueryResponse.ok([{"last_data_ts": "2025-01-15T00:00:00.000Z"}]),
        QueryResponse.ok(BREAKUP_ROWS),
        QueryResponse.ok(SORT_ROWS),
    ]

    await service.get_comparison_data(_request(start_time=None, end_time=None))

    assert _kinds(mock_executor) == [QueryKind.LAST_DATA_TS, QueryKind.DIMENSIONS_BREAKUP, QueryKind.SORT_ORDER]
    last_ts = mock_executor.run.call_args_list[0].args[0]
    assert (last_ts.metric_id, last_ts.dimension_name, last_ts.metric_category) == ("kpi-1", "country", "web")
    breakup = mock_executor.run.call_args_list[1].args[0]
    assert breakup.start_time == "2025-01-08T00:00:00.000Z"
    assert breakup.end_time == "2025-01-15T00:00:00.000Z"


@pytest.mark.asyncio
async def test_default_range_falls_back_to_clock(service, mock_executor, mock_clock):
    """Test a failed last timestamp query (after fallback) uses the clock."""
    mock_executor.run.side_effect = [
        QueryResponse.failed(404),
        QueryResponse.failed(404),
        QueryResponse.ok(BREAKUP_ROWS),
        QueryResponse.ok(SORT_ROWS),
    ]

    await service.get_comparison_data(_request(start_time=None, end_time=None))

    assert _fallbacks(mock_executor) == [False, True, False, False]
    mock_clock.now.assert_called_once()
    breakup = mock_executor.run.call_args_list[2].args[0]
    assert breakup.end_time == "2025-01-15T00:00:00.000Z"


@pytest.mark.asyncio
async def test_partial_range_uses_default(service, mock_executor):
    """Test a request with only a start time resolves the default range."""
    mock_executor.run.side_effect = [
        QueryResponse.ok([{"last_data_ts": "2025-01-15T00:00:00.000Z"}]),
        QueryResponse.ok([]),
    ]

    await service.get_comparison_data(_request(end_time=None))

    assert _kinds(mock_executor)[0] == QueryKind.LAST_DATA_TS


# ============================================================================
# Fallback
# ============================================================================


@pytest.mark.asyncio
async def test_fallback_on_404_for_every_query(service, mock_executor):
    """Test each query is retried once on the fallback source."""
    mock_executor.run.side_effect = [
        QueryResponse.failed(404),
        QueryResponse.ok(BREAKUP_ROWS),
        QueryResponse.failed(404),
        QueryResponse.ok(SORT_ROWS),
    ]

    with capture_logs() as logs:
        entries = await service.get_comparison_data(_request())

    assert mock_executor.run.call_count == 4
    assert _fallbacks(mock_executor) == [False, True, False, True]
    warnings = [log for log in logs if log["event"] == "query_fallback"]
    assert len(warnings) == 2
    assert all(log["log_level"] == "warning" for log in warnings)
    assert [row.label for row in entries[0].results] == ["USA", "UK"]


@pytest.mark.asyncio
async def test_fallback_on_400(service, mock_executor):
    """Test status 400 also triggers the fallback."""
    mock_executor.run.side_effect = [
        QueryResponse.failed(400),
        QueryResponse.ok(BREAKUP_ROWS),
        QueryResponse.ok(SORT_ROWS),
    ]

    await service.get_comparison_data(_request())

    assert _fallbacks(mock_executor) == [False, True, False]


@pytest.mark.asyncio
async def test_fallback_failure_raises_without_third_attempt(service, mock_executor):
    """Test a failed fallback raises and is not retried again."""
    mock_executor.run.side_effect = [QueryResponse.failed(404), QueryResponse.failed(404)]

    with pytest.raises(UpstreamQueryError, match="Error while fetching data from upstream") as exc_info:
        await service.get_comparison_data(_request())

    assert exc_info.value.status == 404
    assert mock_executor.run.call_count == 2


@pytest.mark.asyncio
async def test_server_error_not_retried(service, mock_executor):
    """Test status 500 raises without a fallback query."""
    mock_executor.run.side_effect = [QueryResponse.failed(500)]

    with pytest.raises(UpstreamQueryError) as exc_info:
        await service.get_comparison_data(_request())

    assert exc_info.value.status == 500
    assert mock_executor.run.call_count == 1


@pytest.mark.asyncio
async def test_execute_query_with_fallback_returns_final_response(service, mock_executor):
    """Test the fallback response is returned as is."""
    mock_executor.run.side_effect = [QueryResponse.failed(404), QueryResponse.failed(503)]
    response = await service.execute_query_with_fallback(_descriptor())

    assert response == QueryResponse.failed(503)
    assert _fallbacks(mock_executor) == [False, True]


@pytest.mark.asyncio
async def test_execute_query_success_single_call(service, mock_executor):
    """Test a successful primary query is not retried."""
    mock_executor.run.return_value = QueryResponse.ok([{"last_data_ts": "T1"}])

    response = await service.execute_query_with_fallback(_descriptor())

    assert response.success is True
    assert mock_executor.run.call_count == 1


@pytest.mark.asyncio
async def test_default_range_transport_error_propagates(service, mock_executor, mock_clock):
    """Test an executor exception during range resolution reaches the caller."""
    mock_executor.run.side_effect = UpstreamQueryError("connection reset", status=502)

    with pytest.raises(UpstreamQueryError, match="connection reset"):
        await service.get_comparison_data(_request(start_time=None, end_time=None))

    assert _kinds(mock_executor) == [QueryKind.LAST_DATA_TS]
    mock_clock.now.assert_not_called()
