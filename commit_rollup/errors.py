"""Exception hierarchy shared by the sync pipeline."""

from __future__ import annotations

from datetime import datetime


class CommitRollupError(RuntimeError):
    """Base class for every error raised by this package."""


class GitHubError(CommitRollupError):
    """Error while talking to the GitHub API."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class AuthError(GitHubError):
    """The token was rejected or lacks access."""


class RateLimitError(GitHubError):
    """GitHub throttled the request."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        reset_at: datetime | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, status_code)
        self.reset_at = reset_at
        self.retry_after = retry_after


class UpstreamError(GitHubError):
    """Any other non-success response or a connectivity failure."""


class RequestTimeoutError(GitHubError):
    """A request exceeded the configured deadline."""


class ParseError(CommitRollupError):
    """A response body could not be decoded into the expected shape."""


class StoreError(CommitRollupError):
    """Schema creation, a write transaction or a query failed."""


__all__ = [
    "AuthError",
    "CommitRollupError",
    "GitHubError",
    "ParseError",
    "RateLimitError",
    "RequestTimeoutError",
    "StoreError",
    "UpstreamError",
]
