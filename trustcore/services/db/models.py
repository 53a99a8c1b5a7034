"""
TrustCore - Database Models
===========================

Dataclass definitions for database records and transaction outcomes.
"""

from dataclasses import dataclass, field
from typing import Optional


# =============================================================================
# Actor Models
# =============================================================================

@dataclass
class Actor:
    """A platform member as seen by the trust-and-safety rules."""
    id: str
    display_name: str = ""
    reputation: int = 0
    tier: int = 1
    is_expert: bool = False
    is_sme: bool = False
    is_admin: bool = False
    messaging_banned: bool = False
    messaging_suspended_until: Optional[str] = None
    allows_guest_messages: bool = True
    is_active: bool = True
    created_at: Optional[str] = None

    @property
    def is_verified(self) -> bool:
        """Verified expert (manual grant) or reputation-derived SME."""
        return self.is_expert or self.is_sme


# =============================================================================
# Messaging Models
# =============================================================================

@dataclass
class Message:
    """Direct message between two actors."""
    id: int
    sender_id: str
    recipient_id: str
    content: str
    is_read: bool = False
    created_at: Optional[str] = None


@dataclass
class MessagingSnapshot:
    """Everything the abuse rules need, read in one consistent view."""
    sender: Actor
    recipient: Actor
    has_prior_conversation: bool
    recent_recipient_count: int  # distinct recipients in the new-conversation window
    duplicate_count: int  # identical sends in the duplicate window, excluding this one


@dataclass
class ConversationSummary:
    """Latest message exchanged with one counterpart."""
    other_id: str
    other_display_name: str
    last_message: Message
    unread_count: int = 0


# =============================================================================
# Content Models
# =============================================================================

@dataclass
class ContentItem:
    """Discussion, comment or review subject to moderation."""
    id: str
    kind: str
    author_id: str
    body: str
    parent_id: Optional[str] = None
    is_flagged: bool = False
    flag_count: int = 0
    is_removed: bool = False
    raise_hand_count: int = 0
    vote_score: int = 0
    created_at: Optional[str] = None


@dataclass
class ContributionCounts:
    """Non-removed contributions per kind for one author."""
    discussions: int = 0
    comments: int = 0
    reviews: int = 0


# =============================================================================
# Moderation Models
# =============================================================================

@dataclass
class QueueEntry:
    """Moderation queue entry with a snapshot of the flagged content."""
    id: int
    content_id: str
    content_kind: str
    author_id: str
    body: str
    parent_id: Optional[str]
    original_created_at: Optional[str]
    flag_count: int
    source: str
    reason: Optional[str]
    status: str = "pending"
    dispute_reason: Optional[str] = None
    queued_at: Optional[str] = None
    resolved_at: Optional[str] = None
    resolved_by: Optional[str] = None


@dataclass
class AdminAction:
    """Append-only audit record of an administrative action."""
    id: int
    admin_id: str
    action: str
    target_type: str
    target_id: str
    reason: Optional[str] = None
    metadata: dict = field(default_factory=dict)
    created_at: Optional[str] = None


@dataclass
class BlacklistKeyword:
    """Keyword that rejects content on a case-insensitive substring match."""
    id: int
    keyword: str
    reason: Optional[str] = None
    is_active: bool = True
    created_at: Optional[str] = None


# =============================================================================
# Signal Models
# =============================================================================

@dataclass
class ToggleOutcome:
    """Result of a membership toggle, with counters from the same transaction."""
    content: ContentItem
    active: bool
    before: int
    after: int
    queue_entry: Optional[QueueEntry] = None  # set when the toggle enqueued the content
    queue_created: bool = False


@dataclass
class VoteOutcome:
    """Result of a vote toggle."""
    content: ContentItem
    vote_state: int  # -1, 0 or 1
    before: int
    after: int


@dataclass
class Notification:
    """Inbox notification for one actor."""
    id: int
    actor_id: str
    title: str
    message: str
    severity: str = "info"
    link: Optional[str] = None
    is_read: bool = False
    created_at: Optional[str] = None


__all__ = [
    "Actor",
    "Message",
    "MessagingSnapshot",
    "ConversationSummary",
    "ContentItem",
    "ContributionCounts",
    "QueueEntry",
    "AdminAction",
    "BlacklistKeyword",
    "ToggleOutcome",
    "VoteOutcome",
    "Notification",
]
