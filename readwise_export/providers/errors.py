"""Exceptions raised by the Readwise client."""

from __future__ import annotations


class ReadwiseError(Exception):
    """Base exception for Readwise API errors."""


class ReadwiseConfigError(ReadwiseError, ValueError):
    """Client was constructed with a missing or invalid setting."""


class ReadwiseRequestError(ReadwiseError):
    """Request failed at the transport level or returned a non-success status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ReadwiseAuthError(ReadwiseRequestError):
    """Authentication failed."""


class ReadwiseRateLimitError(ReadwiseError):
    """Write request was rejected with HTTP 429."""

    def __init__(self, message: str, retry_after: int | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class ReadwiseParseError(ReadwiseError):
    """Response body does not have the expected shape."""


class ReadwisePaginationLimitError(ReadwiseError):
    """Export kept returning cursors past the configured bound."""

    def __init__(self, message: str, pages_fetched: int) -> None:
        super().__init__(message)
        self.pages_fetched = pages_fetched
