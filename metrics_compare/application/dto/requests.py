"""Request DTOs."""

from pydantic import BaseModel, ConfigDict, Field

from metrics_compare.domain.entities import TimeRange
from metrics_compare.domain.enums import Frequency


class ComparisonRequest(BaseModel):
    """Metric comparison request."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    metric_id: str = Field(alias="kpis")
    dimension_id: str
    tenant_id: str
    frequency: Frequency = Field(alias="pipeline_schedule")
    start_time: str | None = None
    end_time: str | None = None
    # Optional filter on another dimension: dim_name == dim_val
    dim_name: str | None = None
    dim_val: str | None = None

    @property
    def time_range(self) -> TimeRange | None:
        """Caller supplied time range, if complete."""
        if self.start_time and self.end_time:
            return TimeRange(start=self.start_time, end=self.end_time)
        return None
