"""Main entrypoint."""

import asyncio
import json
import os
import sys

import structlog
from pydantic import ValidationError

from metrics_compare.application.use_cases.get_comparison_data import MetricsComparisonService
from metrics_compare.domain.errors import classify_error
from metrics_compare.infrastructure.aws.s3_io import S3IO
from metrics_compare.infrastructure.config.settings import Settings
from metrics_compare.infrastructure.io.parquet_query_executor import ParquetQueryExecutor
from metrics_compare.infrastructure.observability.logging import configure_logging
from metrics_compare.infrastructure.runtime.catalog_adapter import (
    S3CatalogAdapter,
    S3DimensionRepository,
    S3MetricRepository,
)
from metrics_compare.infrastructure.runtime.clock import SystemClock
from metrics_compare.infrastructure.runtime.health import start_metrics_server
from metrics_compare.interfaces.runners.comparison_runner import ComparisonRunner

logger = structlog.get_logger()


def export_credentials(settings: Settings) -> None:
    """Load AWS credentials from Settings to environment for boto3."""
    if settings.aws_access_key_id:
        os.environ["AWS_ACCESS_KEY_ID"] = settings.aws_access_key_id
    if settings.aws_secret_access_key:
        os.environ["AWS_SECRET_ACCESS_KEY"] = settings.aws_secret_access_key
    if settings.aws_session_token:
        os.environ["AWS_SESSION_TOKEN"] = settings.aws_session_token


def build_runner(settings: Settings) -> ComparisonRunner:
    """Wire adapters and service."""
    s3_io = S3IO(settings)
    catalog = S3CatalogAdapter(s3_io, settings.catalog_path)
    metrics = S3MetricRepository(catalog)
    service = MetricsComparisonService(
        metrics=metrics,
        dimensions=S3DimensionRepository(catalog),
        executor=ParquetQueryExecutor(
            s3_io,
            settings.primary_source_prefix,
            settings.fallback_source_prefix,
        ),
        clock=SystemClock(),
    )
    return ComparisonRunner(service, metrics)


def read_payload(argv: list[str]) -> dict:
    """Read JSON request from the file given as first argument, or stdin."""
    if argv:
        with open(argv[0], encoding="utf-8") as f:
            return json.load(f)
    return json.load(sys.stdin)


async def main_async(argv: list[str]) -> int:
    """Run a single comparison request and print the JSON response."""
    settings = Settings()
    configure_logging(settings.log_level, settings.log_json)
    export_credentials(settings)

    logger.info(
        "settings_loaded",
        region=settings.aws_region,
        bucket=settings.aws_s3_bucket,
        catalog_path=settings.catalog_path,
        primary_source_prefix=settings.primary_source_prefix,
        fallback_source_prefix=settings.fallback_source_prefix,
    )

    if settings.metrics_server_enabled:
        start_metrics_server(settings)

    runner = build_runner(settings)
    payload = read_payload(argv)

    try:
        response = await runner.handle(payload)
    except ValidationError as e:
        print(json.dumps({"error": "INVALID_REQUEST", "status": 400, "message": str(e)}))
        return 1
    except Exception as e:
        code, status = classify_error(e)
        print(json.dumps({"error": code, "status": status, "message": str(e)}))
        return 1

    print(json.dumps(response, default=str))
    return 0


def main() -> None:
    """Entrypoint."""
    sys.exit(asyncio.run(main_async(sys.argv[1:])))


if __name__ == "__main__":
    main()
