"""
Exception types for the matrix pipeline.

Every failure carries a short machine code so that summary records and CSV
rows can report it without cross-referencing the console log.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional


class ScrapeError(Exception):
    """
    Base exception for pipeline errors.

    Attributes:
        code: Error code (e.g., "ITEM_NOT_FOUND")
        message: Human-readable message
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp,
        }


class UnresolvedIdError(ScrapeError):
    """Locator did not contain a recognizable item id."""

    def __init__(self, locator: str):
        super().__init__(
            code="UNRESOLVED_ID",
            message=f"could not parse item id from {locator}",
            details={"locator": locator},
        )


class NotFoundError(ScrapeError):
    """Discovery produced no dimensions, or no values for the first one."""

    def __init__(self, item_id: str, reason: str):
        super().__init__(
            code="ITEM_NOT_FOUND",
            message=reason,
            details={"item_id": item_id},
        )


class NetworkError(ScrapeError):
    """Transport failure or non-success status after the retry budget."""

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        attempts: int = 0,
        status: Optional[int] = None,
        code: str = "NETWORK_ERROR",
    ):
        super().__init__(
            code=code,
            message=message,
            details={"url": url, "attempts": attempts, "status": status},
        )
        self.url = url
        self.attempts = attempts
        self.status = status


class FetchTimeoutError(NetworkError):
    """Final attempt timed out."""

    def __init__(self, message: str, url: Optional[str] = None, attempts: int = 0):
        super().__init__(message, url=url, attempts=attempts, code="TIMEOUT")


class ParseError(ScrapeError):
    """Response body is not the data we expected. Never retried."""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(
            code="PARSE_ERROR",
            message=message,
            details={"url": url},
        )


class PoolCancelledError(ScrapeError):
    """Slot was never dispatched because the pool was cancelled."""

    def __init__(self, index: int):
        super().__init__(
            code="CANCELLED",
            message=f"task {index} not dispatched (cancelled)",
            details={"index": index},
        )


class InputFormatError(ScrapeError):
    """Input CSV is missing required headers."""

    def __init__(self, path: str, header: Any):
        super().__init__(
            code="INPUT_FORMAT",
            message='input CSV must have headers: "sku,url"',
            details={"path": path, "header": header},
        )


class AggregationWarning(UserWarning):
    """Same combination key written twice; the later record wins."""

    def __init__(self, key: Any, item_id: Optional[str] = None):
        self.key = key
        self.item_id = item_id
        super().__init__(f"duplicate combination {key} for {item_id}; keeping latest")
