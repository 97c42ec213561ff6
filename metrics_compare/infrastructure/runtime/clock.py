"""Clock implementation."""

from datetime import datetime, timezone

from metrics_compare.domain.ports import ClockPort
from metrics_compare.domain.types import Timestamp


class SystemClock(ClockPort):
    """System clock implementation."""

    def now(self) -> Timestamp:
        """Get current UTC timestamp."""
        return datetime.now(timezone.utc)
