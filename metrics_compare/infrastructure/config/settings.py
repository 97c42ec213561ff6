"""Application settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    aws_region: str = "us-east-1"
    aws_s3_bucket: str
    # JSON catalog with metric and dimension definitions
    catalog_path: str = "catalog/catalog.json"
    # Parquet datasets: <prefix>/<tenant>/<frequency>/<metric_id>.parquet
    primary_source_prefix: str = "datasets/primary"
    fallback_source_prefix: str = "datasets/fallback"
    log_level: str = "INFO"
    log_json: bool = True
    prometheus_port: int = 9300
    metrics_server_enabled: bool = False

    # AWS Credentials (optional - picked up by boto3 from environment variables)
    aws_access_key_id: str | None = None
    aws_secret_access_key: str | None = None
    aws_session_token: str | None = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_prefix="",
        extra="ignore",
    )
