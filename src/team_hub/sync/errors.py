"""Error taxonomy for the team hub sync core.

Identity and subscription failures are recovered where they happen
(degraded identity, stale view). Validation and not-found failures are
reported to the caller before any write. Write failures are reported and
never retried by the core.
"""

from __future__ import annotations


class HubError(Exception):
    """Base class for all team hub sync errors."""


class IdentityUnavailable(HubError):
    """Raised when the identity provider is unreachable or rejects every session strategy."""


class SubscriptionError(HubError):
    """Raised (or delivered to an error callback) when a change stream reports an error."""


class NotFound(HubError):
    """Raised when a mutation targets a profile absent from the local view."""


class ValidationRejected(HubError):
    """Raised when a locally checked constraint fails."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field


class NotAuthorized(HubError):
    """Raised when the advisory admin check fails at the client boundary."""


class StoreError(HubError):
    """Raised by document store adapters when an operation is rejected."""


class DocumentMissing(StoreError):
    """Raised by ``update`` when the target document does not exist."""


class WriteFailed(HubError):
    """Raised when the document store rejects a write.

    The optimistic overlay is not rolled back here; the next roster delivery
    supersedes it.
    """
