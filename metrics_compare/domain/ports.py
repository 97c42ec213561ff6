"""Ports (interfaces) for infrastructure adapters."""

from abc import ABC, abstractmethod

from metrics_compare.domain.entities import (
    DimensionDefinition,
    MetricDefinition,
    QueryDescriptor,
    QueryResponse,
)
from metrics_compare.domain.types import Scope, Timestamp


class MetricRepositoryPort(ABC):
    """Port for reading metric definitions."""

    @abstractmethod
    async def get_by_id(self, metric_id: str, tenant_id: str) -> MetricDefinition | None:
        """Get metric definition by id, or None if absent for the tenant."""


class DimensionRepositoryPort(ABC):
    """Port for reading dimension definitions."""

    @abstractmethod
    async def get_by_id(self, dimension_id: str) -> DimensionDefinition | None:
        """Get dimension definition by id, or None if absent."""


class QueryExecutorPort(ABC):
    """Port for running upstream metric queries."""

    @abstractmethod
    async def run(self, descriptor: QueryDescriptor) -> QueryResponse:
        """Run query and return status, success flag and rows."""


class ExpressionEvaluatorPort(ABC):
    """Port for evaluating ratio expressions."""

    @abstractmethod
    def evaluate(self, expression: str, scope: Scope) -> float | None:
        """Evaluate expression with the given name bindings."""


class ClockPort(ABC):
    """Port for time operations."""

    @abstractmethod
    def now(self) -> Timestamp:
        """Get current timestamp."""
