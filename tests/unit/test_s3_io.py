"""Unit tests for S3 I/O operations."""

from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from metrics_compare.infrastructure.aws.s3_io import S3IO


@pytest.fixture
def mock_settings():
    """Create mock settings."""
    settings = MagicMock()
    settings.aws_region = "us-east-1"
    settings.aws_s3_bucket = "test-bucket"
    return settings


@pytest.fixture
def s3_io(mock_settings):
    """Create S3IO instance."""
    with patch("metrics_compare.infrastructure.aws.s3_io.boto3") as mock_boto3:
        mock_client = MagicMock()
        mock_boto3.client.return_value = mock_client
        s3 = S3IO(mock_settings)
        s3.s3_client = mock_client
        return s3


@pytest.mark.asyncio
async def test_get_json_success(s3_io):
    """Test getting JSON from S3 successfully."""
    mock_response = {"Body": MagicMock()}
    mock_response["Body"].read.return_value = b'{"metrics": [], "dimensions": []}'

    s3_io.s3_client.get_object = MagicMock(return_value=mock_response)

    result = await s3_io.get_json("catalog/catalog.json")

    assert result == {"metrics": [], "dimensions": []}
    s3_io.s3_client.get_object.assert_called_once_with(Bucket="test-bucket", Key="catalog/catalog.json")


@pytest.mark.asyncio
async def test_get_json_client_error(s3_io):
    """Test getting JSON from S3 with ClientError."""
    from tenacity import RetryError

    s3_io.s3_client.get_object = MagicMock(side_effect=ClientError({"Error": {"Code": "NoSuchKey"}}, "GetObject"))

    with pytest.raises((RuntimeError, RetryError), match="Failed to read S3 object|RetryError"):
        await s3_io.get_json("catalog/catalog.json")


@pytest.mark.asyncio
async def test_get_bytes_success(s3_io):
    """Test getting raw bytes from S3."""
    mock_response = {"Body": MagicMock()}
    mock_response["Body"].read.return_value = b"PAR1"

    s3_io.s3_client.get_object = MagicMock(return_value=mock_response)

    result = await s3_io.get_bytes("datasets/primary/t1/d/kpi-1.parquet")

    assert result == b"PAR1"


@pytest.mark.asyncio
async def test_object_exists_true(s3_io):
    """Test checking if object exists (exists)."""
    s3_io.s3_client.head_object = MagicMock()

    result = await s3_io.object_exists("test-key")

    assert result is True


@pytest.mark.asyncio
async def test_object_exists_false(s3_io):
    """Test checking if object exists (doesn't exist)."""
    s3_io.s3_client.head_object = MagicMock(side_effect=ClientError({"Error": {"Code": "404"}}, "HeadObject"))

    result = await s3_io.object_exists("test-key")

    assert result is False


@pytest.mark.asyncio
async def test_object_exists_false_on_no_such_key(s3_io):
    """Test NoSuchKey also means the object is missing."""
    s3_io.s3_client.head_object = MagicMock(side_effect=ClientError({"Error": {"Code": "NoSuchKey"}}, "HeadObject"))

    assert await s3_io.object_exists("test-key") is False


@pytest.mark.asyncio
@pytest.mark.parametrize("code", ["403", "AccessDenied", "500", "SlowDown"])
async def test_object_exists_raises_on_other_errors(s3_io, code):
    """Test errors other than a missing object are raised."""
    s3_io.s3_client.head_object = MagicMock(side_effect=ClientError({"Error": {"Code": code}}, "HeadObject"))

    with pytest.raises(RuntimeError, match="Failed to check S3 object test-key"):
        await s3_io.object_exists("test-key")
