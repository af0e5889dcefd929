"""Error types shared by the GitHub adapter, the domain rules and the use-cases."""

from __future__ import annotations

from datetime import datetime
from typing import Any


class GitHubError(RuntimeError):
    """A failed call to the GitHub REST API.

    The message always names the operation and its target so the error can be
    diagnosed without looking at ``payload``.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        detail: str | None = None,
        operation: str | None = None,
        target: str | None = None,
        payload: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail
        self.operation = operation
        self.target = target
        self.payload = payload


class GitHubNotConfiguredError(GitHubError):
    """Raised when GITHUB_TOKEN is missing."""


class GitHubAuthError(GitHubError):
    """Raised when GitHub returns 401, or 403 without a rate-limit signal."""


class GitHubNotFoundError(GitHubError):
    """Raised when GitHub returns 404."""


class GitHubConflictError(GitHubError):
    """Raised when GitHub returns 409, or 405 from the merge endpoint."""


class GitHubValidationError(GitHubError):
    """Raised when GitHub returns 422."""


class GitHubServerError(GitHubError):
    """Raised for 5xx responses."""


class GitHubTransportError(GitHubError):
    """Raised when the request never produced a response (DNS, TLS, timeout)."""


class GitHubRateLimitError(GitHubError):
    """Raised when the primary rate limit is exhausted."""

    def __init__(self, message: str, *, reset_at: datetime | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.reset_at = reset_at


class GitHubSecondaryRateLimitError(GitHubRateLimitError):
    """Raised when GitHub reports a secondary (abuse) rate limit."""

    def __init__(self, message: str, *, retry_after: float | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class OperationCancelledError(Exception):
    """Raised when a cancellation event fires while waiting to call GitHub.

    Attributes:
        operation: Name of the operation that was abandoned
        attempts: Number of calls already made before cancellation
    """

    def __init__(self, operation: str, attempts: int = 0) -> None:
        self.operation = operation
        self.attempts = attempts
        super().__init__(f"{operation} cancelled after {attempts} attempt(s)")


class DomainRuleError(ValueError):
    """A request rejected by a business rule before any remote call."""


class UseCaseError(RuntimeError):
    """A remote failure re-raised with use-case context; see ``__cause__``."""


class ConfigError(ValueError):
    """Raised when repos.json cannot be read or validated."""
