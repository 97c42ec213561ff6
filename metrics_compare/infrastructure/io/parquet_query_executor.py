"""Query executor over per-metric parquet datasets."""

import pyarrow as pa
import pyarrow.parquet as pq
import structlog
from tenacity import RetryError

from metrics_compare.domain.entities import QueryDescriptor, QueryResponse
from metrics_compare.domain.errors import UpstreamQueryError
from metrics_compare.domain.ports import QueryExecutorPort
from metrics_compare.infrastructure.aws.s3_io import S3IO
from metrics_compare.infrastructure.aws.s3_path import S3Path
from metrics_compare.infrastructure.io.frame_queries import GROUPED_KINDS, run_frame_query
from metrics_compare.infrastructure.observability.metrics import s3_read_mb

logger = structlog.get_logger()


class ParquetQueryExecutor(QueryExecutorPort):
    """Runs logical queries on ``<prefix>/<tenant>/<frequency>/<metric_id>.parquet``."""

    def __init__(self, s3_io: S3IO, primary_prefix: str, fallback_prefix: str) -> None:
        """Initialize executor."""
        self.s3_io = s3_io
        self.primary_prefix = primary_prefix
        self.fallback_prefix = fallback_prefix

    def dataset_key(self, descriptor: QueryDescriptor) -> str:
        """Key of the dataset a query reads."""
        prefix = self.fallback_prefix if descriptor.use_fallback else self.primary_prefix
        return S3Path.dataset_key(prefix, descriptor.tenant_id, descriptor.frequency.value, descriptor.metric_id)

    async def run(self, descriptor: QueryDescriptor) -> QueryResponse:
        """Run query; 404 for a missing dataset, 400 for a missing column.

        S3 failures other than "not found" raise ``UpstreamQueryError`` (502).
        """
        key = self.dataset_key(descriptor)

        try:
            exists = await self.s3_io.object_exists(key)
            body = await self.s3_io.get_bytes(key) if exists else None
        except (RuntimeError, RetryError) as e:
            logger.error(
                "dataset_read_failed",
                key=key,
                source=descriptor.source.value,
                query_kind=descriptor.kind.value,
                error=str(e),
            )
            raise UpstreamQueryError(f"Failed to read dataset {key}: {e}", status=502) from e

        if not exists:
            logger.info(
                "dataset_not_found",
                key=key,
                source=descriptor.source.value,
                query_kind=descriptor.kind.value,
            )
            return QueryResponse.failed(404)

        table = pq.read_table(pa.BufferReader(body))
        s3_read_mb.observe(table.nbytes / (1024 * 1024))

        required = []
        if descriptor.kind in GROUPED_KINDS:
            required.append(descriptor.dimension_name)
        if descriptor.filter_dimension and descriptor.filter_value is not None:
            required.append(descriptor.filter_dimension)
        missing = [column for column in required if column not in table.column_names]
        if missing:
            logger.warning(
                "dimension_column_missing",
                key=key,
                missing=missing,
                query_kind=descriptor.kind.value,
            )
            return QueryResponse.failed(400)

        rows = run_frame_query(descriptor, table.to_pandas())

        logger.info(
            "query_executed",
            key=key,
            source=descriptor.source.value,
            query_kind=descriptor.kind.value,
            row_count=len(rows),
        )
        return QueryResponse.ok(rows)
