from __future__ import annotations

from typing import Optional


class BackendError(Exception):
    """
    Base class for search backend failures.
    Raised directly it is non-retryable (e.g. a 4xx the backend will keep refusing).
    """
    def __init__(self, message: str, *, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class TransientBackendError(BackendError):
    """Network error, timeout or 5xx: worth another attempt."""


class RateLimitedError(TransientBackendError):
    def __init__(self, message: str, *, status: Optional[int] = 429, retry_after: Optional[float] = None) -> None:
        super().__init__(message, status=status)
        self.retry_after = retry_after


class BackendDecodeError(BackendError):
    """Response body could not be decoded into the expected search payload."""


class FatalCrawlError(RuntimeError):
    """The crawl cannot start, e.g. the full price domain could not be probed."""
