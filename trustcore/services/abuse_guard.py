"""
TrustCore - Abuse Guard
=======================

Abuse-prevention rules for direct messaging.

Rules, in order (each is a hard reject, nothing is persisted):
1. Honeypot field filled (bot traffic)
2. Sender banned or temporarily suspended from messaging
3. New users limited to 3 new conversations per hour
4. Identical content broadcast 5 times within 2 minutes
5. Recipient only accepts messages from experts or high reputation

All rules run against one consistent read inside the transaction that
inserts the message. When a content screen is attached the rules are
first evaluated on a read-only snapshot, the screen runs outside any
lock, and the rules are evaluated again atomically with the insert.
"""

import asyncio
import sqlite3
from datetime import datetime
from typing import Optional

from trustcore.core.constants import (
    DUPLICATE_LIMIT,
    DUPLICATE_WINDOW_SECONDS,
    GUEST_MESSAGE_REPUTATION,
    LOW_REPUTATION_THRESHOLD,
    NEW_CONVERSATION_LIMIT,
    NEW_CONVERSATION_WINDOW_SECONDS,
    REASON_BANNED,
    REASON_DUPLICATE,
    REASON_EMPTY_MESSAGE,
    REASON_HONEYPOT,
    REASON_NEW_CONVERSATIONS,
    REASON_RECIPIENT_PREFERENCE,
    REASON_SUSPENDED,
    REASON_UNAVAILABLE,
)
from trustcore.core.errors import ContentRejected, NotFound, RateLimited
from trustcore.core.logger import logger
from trustcore.services.classifier import ContentClassifier
from trustcore.services.db import ConversationSummary, Message, MessagingSnapshot, TrustDatabase
from trustcore.utils.helpers import Clock, parse_timestamp, to_timestamp, utcnow, window_start


def evaluate_rules(snapshot: MessagingSnapshot, now: datetime) -> None:
    """
    Apply rules 2-5 to a snapshot.

    Raises:
        NotFound: Sender or recipient deactivated
        RateLimited: A rule fired; `rule` names it
    """
    sender = snapshot.sender
    recipient = snapshot.recipient

    if not sender.is_active:
        raise NotFound("Sender not found.")
    if not recipient.is_active:
        raise NotFound("Recipient not found.")

    if sender.messaging_banned:
        raise RateLimited("suspended", REASON_BANNED)

    suspended_until = parse_timestamp(sender.messaging_suspended_until)
    if suspended_until is not None and suspended_until > now:
        raise RateLimited("suspended", REASON_SUSPENDED)

    is_new_user = sender.reputation < LOW_REPUTATION_THRESHOLD and not sender.is_verified
    if not snapshot.has_prior_conversation and is_new_user:
        if snapshot.recent_recipient_count >= NEW_CONVERSATION_LIMIT:
            raise RateLimited("new_conversations", REASON_NEW_CONVERSATIONS)

    # The send being attempted counts toward the cap
    if snapshot.duplicate_count + 1 >= DUPLICATE_LIMIT:
        raise RateLimited("duplicate_content", REASON_DUPLICATE)

    if not recipient.allows_guest_messages:
        if not sender.is_verified and sender.reputation < GUEST_MESSAGE_REPUTATION:
            raise RateLimited("recipient_preference", REASON_RECIPIENT_PREFERENCE)


class AbuseGuard:
    """Guards direct message sends."""

    def __init__(
        self,
        database: TrustDatabase,
        classifier: Optional[ContentClassifier] = None,
        clock: Clock = utcnow,
        screen_profile: str = "general",
    ) -> None:
        self.db = database
        self.classifier = classifier
        self.clock = clock
        self.screen_profile = screen_profile

    def _log_rejection(self, error: RateLimited, sender_id: str, recipient_id: str) -> None:
        logger.rejection_tree("Message Rejected", error.rule, sender_id, error.reason, [
            ("Recipient", recipient_id),
        ])

    async def send_message(
        self,
        sender_id: str,
        recipient_id: str,
        content: str,
        honeypot: Optional[str] = None,
    ) -> Message:
        """
        Validate and persist a direct message.

        Raises:
            RateLimited: An abuse rule fired
            ContentRejected: Empty or unsafe content
            NotFound: Unknown sender or recipient
        """
        if honeypot:
            error = RateLimited("honeypot", REASON_HONEYPOT)
            self._log_rejection(error, sender_id, recipient_id)
            raise error

        if not content or not content.strip():
            raise ContentRejected(REASON_EMPTY_MESSAGE)

        now = self.clock()
        conversation_since = window_start(now, NEW_CONVERSATION_WINDOW_SECONDS)
        duplicate_since = window_start(now, DUPLICATE_WINDOW_SECONDS)

        def check(snapshot: MessagingSnapshot) -> None:
            evaluate_rules(snapshot, now)

        try:
            if self.classifier is not None:
                snapshot = await asyncio.to_thread(
                    self.db.get_messaging_snapshot,
                    sender_id, recipient_id, content, conversation_since, duplicate_since,
                )
                check(snapshot)
                await self.classifier.ensure_safe(content, self.screen_profile)

            message = await asyncio.to_thread(
                self.db.insert_message_guarded,
                sender_id, recipient_id, content, to_timestamp(now),
                conversation_since, duplicate_since, check,
            )
        except RateLimited as e:
            self._log_rejection(e, sender_id, recipient_id)
            raise
        except sqlite3.Error as e:
            logger.error_tree("Message Send Failed", e, [
                ("Sender", sender_id),
                ("Recipient", recipient_id),
            ])
            raise RateLimited("unavailable", REASON_UNAVAILABLE) from e

        logger.tree("Message Sent", [
            ("ID", message.id),
            ("Sender", sender_id),
            ("Recipient", recipient_id),
            ("Length", len(content)),
        ], emoji="✉️")
        return message

    async def mark_conversation_read(self, reader_id: str, other_id: str) -> int:
        """Mark messages from `other_id` to `reader_id` as read."""
        return await self.db.mark_conversation_read_async(reader_id, other_id)

    async def list_conversations(self, actor_id: str) -> list[ConversationSummary]:
        return await self.db.list_conversations_async(actor_id)

    async def get_conversation(self, actor_id: str, other_id: str, limit: int = 100) -> list[Message]:
        return await self.db.get_conversation_async(actor_id, other_id, limit)


__all__ = ["AbuseGuard", "evaluate_rules"]
