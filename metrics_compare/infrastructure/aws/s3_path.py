"""S3 path utilities."""


class S3Path:
    """S3 key helpers."""

    S3_PREFIX = "s3://"

    @staticmethod
    def normalize(path: str) -> str:
        """Strip an ``s3://bucket/`` prefix, leaving the object key.

        Args:
            path: S3 URI or plain key

        Returns:
            Object key without scheme or bucket
        """
        if path.startswith(S3Path.S3_PREFIX):
            without_scheme = path[len(S3Path.S3_PREFIX):]
            return without_scheme.split("/", 1)[1] if "/" in without_scheme else ""
        return path.lstrip("/")

    @staticmethod
    def join(*parts: str) -> str:
        """Join path parts, normalizing separators.

        Args:
            *parts: Path parts to join

        Returns:
            Joined path with normalized separators
        """
        normalized_parts = [part.strip("/") for part in parts if part]
        return "/".join(normalized_parts)

    @staticmethod
    def dataset_key(prefix: str, tenant_id: str, frequency: str, metric_id: str) -> str:
        """Key of a metric's parquet dataset.

        Args:
            prefix: Source prefix (primary or fallback)
            tenant_id: Tenant identifier
            frequency: Frequency code (h, d, w, m)
            metric_id: Metric identifier

        Returns:
            ``<prefix>/<tenant>/<frequency>/<metric_id>.parquet``
        """
        return S3Path.join(S3Path.normalize(prefix), tenant_id, frequency, f"{metric_id}.parquet")
