"""
TrustCore - Database Package
============================

Modular SQLite database with mixins for different features.
"""

from trustcore.services.db.database import TrustDatabase
from trustcore.services.db.models import (
    Actor,
    Message,
    MessagingSnapshot,
    ConversationSummary,
    ContentItem,
    ContributionCounts,
    QueueEntry,
    AdminAction,
    BlacklistKeyword,
    ToggleOutcome,
    VoteOutcome,
    Notification,
)

__all__ = [
    "TrustDatabase",
    # Models
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
