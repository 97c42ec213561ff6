"""Catalog DTOs."""

from pydantic import BaseModel, ConfigDict, Field

from metrics_compare.domain.entities import ConstituentMetric, DimensionDefinition, MetricDefinition
from metrics_compare.domain.enums import MetricKind, ValueFormat


class ConstituentRecord(BaseModel):
    """Constituent metric reference."""

    id: str
    name: str


class ConstituentMetricsRecord(BaseModel):
    """Numerator and denominator of a ratio metric."""

    numerator: list[ConstituentRecord] = Field(default_factory=list)
    denominator: list[ConstituentRecord] = Field(default_factory=list)


class MetricRecord(BaseModel):
    """Metric (KPI) definition as stored in the catalog."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    tenant_id: str | None = None
    kpi_name: str
    display_name: str | None = None
    type: MetricKind = MetricKind.SIMPLE
    kpi_format: ValueFormat = ValueFormat.NUMBER
    metric_source_id: str | None = None
    metric_category: str | None = None
    rca_aggregation_operation: str | None = None
    constituent_metrics: ConstituentMetricsRecord | None = None

    def to_entity(self) -> MetricDefinition:
        """Convert to domain entity."""
        constituents = self.constituent_metrics or ConstituentMetricsRecord()
        return MetricDefinition(
            id=self.id,
            name=self.kpi_name,
            kind=self.type,
            display_name=self.display_name,
            value_format=self.kpi_format,
            source_id=self.metric_source_id,
            category=self.metric_category,
            numerator=tuple(ConstituentMetric(c.id, c.name) for c in constituents.numerator),
            denominator=tuple(ConstituentMetric(c.id, c.name) for c in constituents.denominator),
            expression=self.rca_aggregation_operation,
        )


class DimensionRecord(BaseModel):
    """Dimension definition as stored in the catalog."""

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    display_name: str | None = None
    type: str = "categorical"

    def to_entity(self) -> DimensionDefinition:
        """Convert to domain entity."""
        return DimensionDefinition(
            id=self.id,
            name=self.name,
            display_name=self.display_name,
            type=self.type,
        )


class CatalogRecord(BaseModel):
    """Catalog document: ``{"metrics": [...], "dimensions": [...]}``."""

    model_config = ConfigDict(extra="ignore")

    metrics: list[MetricRecord] = Field(default_factory=list)
    dimensions: list[DimensionRecord] = Field(default_factory=list)
