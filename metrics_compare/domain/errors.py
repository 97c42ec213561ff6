"""Domain errors."""


class DomainError(Exception):
    """Base domain error."""


class MetricNotFoundError(DomainError):
    """Metric definition not found for tenant."""


class DimensionNotFoundError(DomainError):
    """Dimension definition not found."""


class MissingConstituentMetricsError(DomainError):
    """Ratio metric has no numerator/denominator configured."""


class InvalidFrequencyError(DomainError):
    """Reporting frequency is not supported."""


class UpstreamQueryError(DomainError):
    """Upstream query failed (non-retryable status or fallback exhausted)."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class EvaluationError(DomainError):
    """Error evaluating ratio expression."""


class InvalidExpressionError(EvaluationError):
    """Expression string could not be parsed."""


_ERROR_CODES: list[tuple[type[Exception], str, int]] = [
    (MetricNotFoundError, "NOT_FOUND", 404),
    (DimensionNotFoundError, "NOT_FOUND", 404),
    (MissingConstituentMetricsError, "CONFIGURATION_ERROR", 400),
    (InvalidFrequencyError, "CONFIGURATION_ERROR", 400),
    (UpstreamQueryError, "UPSTREAM_ERROR", 502),
    (EvaluationError, "EVALUATION_ERROR", 500),
]


def classify_error(error: Exception) -> tuple[str, int]:
    """Classify error and return error code and HTTP-like status."""
    for error_type, code, status in _ERROR_CODES:
        if isinstance(error, error_type):
            return code, status
    return "INTERNAL_ERROR", 500
