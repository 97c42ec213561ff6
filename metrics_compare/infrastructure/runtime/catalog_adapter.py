"""Catalog adapters."""

import structlog

from metrics_compare.application.dto.catalog import CatalogRecord
from metrics_compare.domain.entities import DimensionDefinition, MetricDefinition
from metrics_compare.domain.ports import DimensionRepositoryPort, MetricRepositoryPort
from metrics_compare.infrastructure.aws.s3_io import S3IO

logger = structlog.get_logger()


class S3CatalogAdapter:
    """S3-based JSON catalog of metric and dimension definitions."""

    def __init__(self, s3_io: S3IO, catalog_path: str) -> None:
        """Initialize catalog adapter."""
        self.s3_io = s3_io
        self.catalog_path = catalog_path
        self._catalog: CatalogRecord | None = None

    async def load(self) -> CatalogRecord:
        """Load catalog from S3 once and cache it."""
        if self._catalog is not None:
            return self._catalog

        logger.info("loading_catalog", catalog_path=self.catalog_path, bucket=self.s3_io.bucket)
        try:
            payload = await self.s3_io.get_json(self.catalog_path)
        except RuntimeError as e:
            logger.error("catalog_not_found", catalog_path=self.catalog_path, bucket=self.s3_io.bucket)
            raise RuntimeError(
                f"Catalog not found: {self.catalog_path} (bucket: {self.s3_io.bucket})"
            ) from e

        self._catalog = CatalogRecord.model_validate(payload)
        logger.info(
            "catalog_loaded",
            metrics=len(self._catalog.metrics),
            dimensions=len(self._catalog.dimensions),
        )
        return self._catalog


class S3MetricRepository(MetricRepositoryPort):
    """Metric definitions from the S3 catalog."""

    def __init__(self, catalog: S3CatalogAdapter) -> None:
        """Initialize repository."""
        self.catalog = catalog

    async def get_by_id(self, metric_id: str, tenant_id: str) -> MetricDefinition | None:
        """Get tenant metric by id; untenanted metrics are shared."""
        catalog = await self.catalog.load()
        for record in catalog.metrics:
            if record.id == metric_id and record.tenant_id in (None, tenant_id):
                return record.to_entity()
        return None


class S3DimensionRepository(DimensionRepositoryPort):
    """Dimension definitions from the S3 catalog."""

    def __init__(self, catalog: S3CatalogAdapter) -> None:
        """Initialize repository."""
        self.catalog = catalog

    async def get_by_id(self, dimension_id: str) -> DimensionDefinition | None:
        """Get dimension by id."""
        catalog = await self.catalog.load()
        for record in catalog.dimensions:
            if record.id == dimension_id:
                return record.to_entity()
        return None
