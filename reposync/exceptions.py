"""Custom exceptions for reposync."""

from __future__ import annotations


class SyncError(Exception):
    """Base exception for all reposync errors."""


class InvalidFormatError(SyncError):
    """Raised when a source repository identifier is not ``owner/repo``."""

    def __init__(self) -> None:
        super().__init__("The source repository must be in the format 'owner/repo'")


class UnconfiguredSourceError(SyncError):
    """Raised when the source repository is not part of the sync group."""

    def __init__(self, source_repository: str) -> None:
        self.source_repository = source_repository
        super().__init__(
            f"Source repository {source_repository} is not in the list of repositories to sync"
        )


class UpstreamApiError(SyncError):
    """Raised when the GitHub API rejects or fails a request."""

    def __init__(
        self,
        message: str,
        *,
        method: str | None = None,
        path: str | None = None,
        status_code: int | None = None,
    ) -> None:
        self.method = method
        self.path = path
        self.status_code = status_code
        super().__init__(message)


class RateLimitError(UpstreamApiError):
    """Raised when GitHub rate limit is exhausted and we need to wait."""

    def __init__(self, retry_after: int, *, path: str | None = None) -> None:
        self.retry_after = retry_after
        super().__init__(
            f"rate limit exceeded, retry after {retry_after}s",
            method="GET",
            path=path,
            status_code=403,
        )


class ConfigError(SyncError):
    """Raised when the sync configuration cannot be loaded or validated."""


class EventPayloadError(SyncError):
    """Raised when a push event payload lacks the fields needed to sync."""
