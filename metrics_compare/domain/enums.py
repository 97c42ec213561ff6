"""Domain enums for metrics, frequencies and upstream queries."""

from enum import Enum


class MetricKind(str, Enum):
    """Metric kind enum."""

    SIMPLE = "simple"
    RATIO = "ratio"


class ValueFormat(str, Enum):
    """Metric value format enum."""

    NUMBER = "number"
    PERCENTAGE = "percentage"
    CURRENCY = "currency"


class Frequency(str, Enum):
    """Reporting frequency (pipeline schedule) enum."""

    HOURLY = "h"
    DAILY = "d"
    WEEKLY = "w"
    MONTHLY = "m"


class QueryKind(str, Enum):
    """Upstream query kind enum."""

    DIMENSIONS_BREAKUP = "dimensions_breakup"
    ENCODED_BREAKUP = "encoded_breakup"  # Per-timestamp arrays, used for ratio numerators
    TOTALS = "totals"  # Per-timestamp aggregate, used for ratio denominators
    SORT_ORDER = "sort_order"
    LAST_DATA_TS = "last_data_ts"


class DataSource(str, Enum):
    """Upstream data source enum."""

    PRIMARY = "primary"
    FALLBACK = "fallback"
