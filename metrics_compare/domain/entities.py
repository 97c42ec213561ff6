"""Domain entities."""

from dataclasses import dataclass, field, replace

from metrics_compare.domain.enums import DataSource, Frequency, MetricKind, QueryKind, ValueFormat
from metrics_compare.domain.types import QueryRow


@dataclass(frozen=True)
class ConstituentMetric:
    """Reference to a metric used inside a ratio expression."""

    id: str
    name: str


@dataclass(frozen=True)
class MetricDefinition:
    """Metric (KPI) definition."""

    id: str
    name: str
    kind: MetricKind = MetricKind.SIMPLE
    display_name: str | None = None
    value_format: ValueFormat = ValueFormat.NUMBER
    source_id: str | None = None
    category: str | None = None
    numerator: tuple[ConstituentMetric, ...] = ()
    denominator: tuple[ConstituentMetric, ...] = ()
    expression: str | None = None

    @property
    def is_ratio(self) -> bool:
        """Whether the metric is derived from constituent metrics."""
        return self.kind == MetricKind.RATIO

    @property
    def has_constituents(self) -> bool:
        """Whether numerator, denominator and expression are all configured."""
        return bool(self.numerator and self.denominator and self.expression and self.expression.strip())


@dataclass(frozen=True)
class DimensionDefinition:
    """Dimension definition."""

    id: str
    name: str
    display_name: str | None = None
    type: str = "categorical"


@dataclass(frozen=True)
class TimeRange:
    """Reporting time range as ISO-8601 instants."""

    start: str
    end: str


@dataclass(frozen=True)
class SortOrderEntry:
    """Entry of a canonical dimension-value ordering."""

    label: str | None
    rank: int | None = None


@dataclass
class ComparisonResultRow:
    """One (timestamp, dimension value) result."""

    timestamp: str
    label: str | None
    value: float | None


@dataclass
class ComparisonEntry:
    """Results of a single timestamp."""

    timestamp: str
    results: list[ComparisonResultRow] = field(default_factory=list)


@dataclass(frozen=True)
class QueryDescriptor:
    """Logical upstream query."""

    kind: QueryKind
    tenant_id: str
    metric_id: str
    frequency: Frequency
    dimension_name: str | None = None
    start_time: str | None = None
    end_time: str | None = None
    metric_category: str | None = None
    filter_dimension: str | None = None
    filter_value: str | None = None
    use_fallback: bool = False

    @property
    def source(self) -> DataSource:
        """Data source the query is aimed at."""
        return DataSource.FALLBACK if self.use_fallback else DataSource.PRIMARY

    def with_fallback(self) -> "QueryDescriptor":
        """Return the same logical query aimed at the fallback source."""
        return replace(self, use_fallback=True)


@dataclass(frozen=True)
class QueryResponse:
    """Upstream query response."""

    status: int
    success: bool
    data: list[QueryRow] = field(default_factory=list)

    @classmethod
    def ok(cls, data: list[QueryRow]) -> "QueryResponse":
        """Build a successful response."""
        return cls(status=200, success=True, data=data)

    @classmethod
    def failed(cls, status: int) -> "QueryResponse":
        """Build a failed response."""
        return cls(status=status, success=False, data=[])
