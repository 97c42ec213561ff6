"""S3 I/O operations."""

import json

import boto3
from botocore.exceptions import ClientError
from tenacity import retry, stop_after_attempt, wait_exponential

from metrics_compare.domain.types import JsonValue
from metrics_compare.infrastructure.config.settings import Settings


# Error codes S3 returns for a missing object
MISSING_OBJECT_CODES = frozenset({"404", "NoSuchKey", "NotFound"})


class S3IO:
    """S3 I/O operations."""

    def __init__(self, settings: Settings) -> None:
        """Initialize S3 client."""
        self.settings = settings
        self.s3_client = boto3.client("s3", region_name=settings.aws_region)
        self.bucket = settings.aws_s3_bucket

    @retry(stop=stop_after_attempt(3), wait=wait_exponential(multiplier=1, min=2, max=10))
    async def get_json(self, key: str) -> dict[str, JsonValue]:
        """Get JSON object from S3."""
        try:
            response = self.s3_client.get_object(Bucket=self.bucket, Key=key)
            content = response["Body"].read().decode("utf-8")
            return json.loads(content)
        except ClientError as e:
            raise RuntimeError(f"Failed to read S3 object {key}: {e}") from e

    @retry(stop=stop_after_attempt(3), wait=wait_exponential(multiplier=1, min=2, max=10))
    async def get_bytes(self, key: str) -> bytes:
        """Get raw object body from S3."""
        try:
            response = self.s3_client.get_object(Bucket=self.bucket, Key=key)
            return response["Body"].read()
        except ClientError as e:
            raise RuntimeError(f"Failed to read S3 object {key}: {e}") from e

    async def object_exists(self, key: str) -> bool:
        """Check if object exists in S3; errors other than "not found" raise."""
        try:
            self.s3_client.head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in MISSING_OBJECT_CODES:
                return False
            raise RuntimeError(f"Failed to check S3 object {key}: {e}") from e
