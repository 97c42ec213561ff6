"""Default reporting time range."""

from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable

import structlog

from metrics_compare.application.services.query_builder import last_data_ts_query
from metrics_compare.domain.entities import QueryDescriptor, QueryResponse, TimeRange
from metrics_compare.domain.enums import Frequency
from metrics_compare.domain.errors import InvalidFrequencyError
from metrics_compare.domain.ports import ClockPort
from metrics_compare.domain.types import Timestamp

logger = structlog.get_logger()

RunQuery = Callable[[QueryDescriptor], Awaitable[QueryResponse]]

LOOKBACK_DAYS: dict[Frequency, int] = {
    Frequency.HOURLY: 2,
    Frequency.DAILY: 7,
    Frequency.WEEKLY: 30,
    Frequency.MONTHLY: 90,
}


def parse_frequency(value: Frequency | str) -> Frequency:
    """Parse reporting frequency code."""
    try:
        return Frequency(value)
    except ValueError:
        raise InvalidFrequencyError(f"Unsupported frequency: {value!r}") from None


def lookback(frequency: Frequency | str) -> timedelta:
    """Lookback window for a reporting frequency."""
    return timedelta(days=LOOKBACK_DAYS[parse_frequency(frequency)])


def parse_instant(value: Timestamp | str) -> Timestamp:
    """Parse ISO-8601 instant; naive values are taken as UTC."""
    if isinstance(value, str):
        value = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def format_instant(value: Timestamp) -> str:
    """Format instant as UTC ISO-8601 with milliseconds, e.g. 2025-01-08T00:00:00.000Z."""
    return (
        parse_instant(value)
        .astimezone(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


async def resolve_default_range(
    run_query: RunQuery,
    clock: ClockPort,
    tenant_id: str,
    frequency: Frequency | str,
    metric_id: str,
    dimension_name: str | None,
    metric_category: str | None,
) -> TimeRange:
    """Default range ending at the last observed data timestamp (or now)."""
    window = lookback(frequency)

    response = await run_query(
        last_data_ts_query(tenant_id, parse_frequency(frequency), metric_id, dimension_name, metric_category)
    )

    last_data_ts = None
    if response.status == 200 and response.data:
        last_data_ts = response.data[0].get("last_data_ts")

    if last_data_ts is None:
        logger.info(
            "default_range_from_clock",
            tenant_id=tenant_id,
            kpi_id=metric_id,
            status=response.status,
        )
        end = clock.now()
        end_time = format_instant(end)
    else:
        end = parse_instant(last_data_ts)
        end_time = last_data_ts if isinstance(last_data_ts, str) else format_instant(end)

    start_time = format_instant(parse_instant(end) - window)
    return TimeRange(start=start_time, end=end_time)
