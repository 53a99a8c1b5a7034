"""
TrustCore - Errors
==================

Exception taxonomy shared by every service. Each error carries a
human-readable `reason` that is safe to show to end users.
"""

from typing import Optional, Sequence


class TrustCoreError(Exception):
    """Base class for every TrustCore rejection or failure."""

    default_reason = "Request could not be completed."

    def __init__(self, reason: Optional[str] = None) -> None:
        self.reason = reason or self.default_reason
        super().__init__(self.reason)


class Unauthorized(TrustCoreError):
    """Caller is missing or lacks the role the operation needs."""

    default_reason = "You are not allowed to perform this action."


class NotFound(TrustCoreError):
    """A referenced actor, content item or queue entry does not exist."""

    default_reason = "Not found."


class RateLimited(TrustCoreError):
    """An abuse rule rejected the action. `rule` names the rule that fired."""

    default_reason = "Too many requests."

    def __init__(self, rule: str, reason: Optional[str] = None) -> None:
        self.rule = rule
        super().__init__(reason)


class ContentRejected(TrustCoreError):
    """Content failed moderation (blacklist or semantic check)."""

    default_reason = "Content blocked for safety."

    def __init__(self, reason: Optional[str] = None, matched_keywords: Sequence[str] = ()) -> None:
        self.matched_keywords = list(matched_keywords)
        super().__init__(reason)


class InvalidState(TrustCoreError):
    """Operation is not valid for the current state (e.g. resolving a resolved entry)."""

    default_reason = "This item is no longer in a state that allows this action."


class DependencyFailure(TrustCoreError):
    """An external collaborator failed. Never crosses the classifier boundary."""

    default_reason = "A required service is unavailable."


class ConcurrentUpdateError(TrustCoreError):
    """The database was busy or locked by a concurrent writer."""

    default_reason = "The item was updated concurrently. Please retry."


__all__ = [
    "TrustCoreError",
    "Unauthorized",
    "NotFound",
    "RateLimited",
    "ContentRejected",
    "InvalidState",
    "DependencyFailure",
    "ConcurrentUpdateError",
]
