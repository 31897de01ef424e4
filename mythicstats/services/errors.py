"""
Sync error taxonomy.

Every failure the synchronization core can surface is one of these classes.

PROPAGATION:
- UpstreamNetworkError is retried by the sync client, then surfaced as-is
- RateLimitExceededError is NEVER retried inline; jobs turn it into a deferral
- UpstreamApiError / ResponseValidationError are never retried
- CatalogNotFoundError is swallowed per record during batch and game-wide syncs
"""

from datetime import datetime
from typing import Any

from mythicstats.models.failure import FailureKind, KnownError
from mythicstats.models.upstream import UsageReport


class RateLimitExceededError(KnownError):
    """
    Upstream quota is exhausted (or would be by the next call).

    Carries the time at which a blocked caller should retry.
    """

    def __init__(
        self,
        reason: str,
        reset_time: datetime | None = None,
        usage: UsageReport | None = None,
    ):
        self.reason = reason
        self.reset_time = reset_time
        self.usage = usage
        suggestion = "Please try again later."
        if reset_time is not None:
            suggestion = f"Please try again after {reset_time.isoformat()}."
        super().__init__(
            kind=FailureKind.RATE_LIMITED,
            message="The pricing API request limit has been reached.",
            detail=reason,
            suggestion=suggestion,
            status_code=429,
        )


class UpstreamApiError(KnownError):
    """The pricing API answered with an error that retrying will not fix."""

    def __init__(
        self,
        message: str,
        code: int | None = None,
        raw_response: Any = None,
        kind: FailureKind = FailureKind.UPSTREAM_ERROR,
    ):
        self.code = code
        self.raw_response = raw_response
        super().__init__(
            kind=kind,
            message=message,
            detail=f"Upstream code: {code}" if code is not None else None,
            suggestion="The pricing API rejected the request.",
            status_code=502,
        )


class ResponseValidationError(UpstreamApiError):
    """The pricing API response does not have the expected shape."""

    def __init__(self, message: str, raw_response: Any = None):
        super().__init__(
            message=message,
            raw_response=raw_response,
            kind=FailureKind.MALFORMED_RESPONSE,
        )


class UpstreamNetworkError(KnownError):
    """Transport failure talking to the pricing API (timeout, reset, DNS)."""

    def __init__(self, cause: Exception):
        self.cause = cause
        super().__init__(
            kind=FailureKind.UPSTREAM_UNAVAILABLE,
            message="The pricing API could not be reached.",
            detail=f"{type(cause).__name__}: {cause}",
            suggestion="Check your connection and try again.",
            status_code=503,
        )


class CatalogNotFoundError(KnownError):
    """A catalog entity referenced by id does not exist locally."""

    def __init__(self, entity_type: str, key: Any):
        self.entity_type = entity_type
        self.key = key
        super().__init__(
            kind=FailureKind.NOT_FOUND,
            message=f"{entity_type} '{key}' was not found.",
            status_code=404,
        )
