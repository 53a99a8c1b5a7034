"""
TrustCore - Service Container
=============================

Wires the database, the five trust-and-safety components and the
notification sink together, and exposes the core operations.
"""

from typing import Optional

from trustcore.core.config import DB_PATH, NOTIFY_WEBHOOK_URL
from trustcore.core.logger import logger
from trustcore.services.abuse_guard import AbuseGuard
from trustcore.services.classifier import (
    ClassificationResult,
    ContentClassifier,
    OpenAISemanticClassifier,
)
from trustcore.services.db import Message, QueueEntry, TrustDatabase
from trustcore.services.moderation_queue import ModerationQueue
from trustcore.services.notifications import NotificationSink
from trustcore.services.reputation import RecomputeResult, ReputationEngine
from trustcore.services.signals import (
    RaiseHandResult,
    ReactionResult,
    SignalEscalation,
    VoteResult,
)
from trustcore.utils.helpers import Clock, utcnow


class TrustCore:
    """
    Trust-and-safety core.

    Components, leaf to root:
    - guard: AbuseGuard (messaging limits)
    - classifier: ContentClassifier (blacklist + semantic check)
    - queue: ModerationQueue (human review, admin actions)
    - reputation: ReputationEngine (score and tier)
    - signals: SignalEscalation (raise-hands, reactions, votes)
    """

    def __init__(
        self,
        db_path: str = DB_PATH,
        semantic=None,
        webhook_url: Optional[str] = NOTIFY_WEBHOOK_URL,
        clock: Clock = utcnow,
        screen_messages: bool = True,
    ) -> None:
        self.db = TrustDatabase(db_path)
        self.semantic = semantic if semantic is not None else OpenAISemanticClassifier()
        self.notifier = NotificationSink(self.db, webhook_url, clock)
        self.classifier = ContentClassifier(self.db, self.semantic, clock)
        self.guard = AbuseGuard(self.db, self.classifier if screen_messages else None, clock)
        self.queue = ModerationQueue(self.db, clock)
        self.reputation = ReputationEngine(self.db)
        self.signals = SignalEscalation(self.db, self.notifier, clock)

        logger.tree("TrustCore Initialized", [
            ("Database", db_path),
            ("Semantic Classifier", type(self.semantic).__name__),
            ("Message Screening", "On" if screen_messages else "Off"),
            ("Webhook", "On" if webhook_url else "Off"),
        ], emoji="🛡️")

    # =========================================================================
    # Core Operations
    # =========================================================================

    async def send_message(
        self,
        sender_id: str,
        recipient_id: str,
        content: str,
        honeypot: Optional[str] = None,
    ) -> Message:
        return await self.guard.send_message(sender_id, recipient_id, content, honeypot)

    async def classify_content(self, text: str, profile: str = "general") -> ClassificationResult:
        return await self.classifier.classify(text, profile)

    async def toggle_raise_hand(self, actor_id: str, content_id: str) -> RaiseHandResult:
        return await self.signals.toggle_raise_hand(actor_id, content_id)

    async def toggle_reaction(self, actor_id: str, content_id: str, kind: str) -> ReactionResult:
        return await self.signals.toggle_reaction(actor_id, content_id, kind)

    async def toggle_vote(self, actor_id: str, content_id: str, value: int) -> VoteResult:
        return await self.signals.toggle_vote(actor_id, content_id, value)

    async def resolve_queue_entry(
        self,
        admin_id: str,
        entry_id: int,
        decision: str,
        reason: Optional[str] = None,
    ) -> QueueEntry:
        return await self.queue.resolve(admin_id, entry_id, decision, reason)

    async def recompute_reputation(self, actor_id: str) -> RecomputeResult:
        return await self.reputation.recompute_and_persist(actor_id)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def close(self) -> None:
        """Wait for webhook forwards, then checkpoint and close the database."""
        await self.notifier.drain()
        self.db.close()


__all__ = ["TrustCore"]
