"""
TrustCore - Messages Database Mixin
===================================

Direct message storage plus the consistent read the abuse rules run on.
"""

import asyncio
import sqlite3
from typing import Callable

from trustcore.services.db.models import ConversationSummary, Message, MessagingSnapshot


MESSAGE_COLUMNS = "id, sender_id, recipient_id, content, is_read, created_at"


def row_to_message(row: sqlite3.Row) -> Message:
    return Message(
        id=row["id"],
        sender_id=row["sender_id"],
        recipient_id=row["recipient_id"],
        content=row["content"],
        is_read=bool(row["is_read"]),
        created_at=row["created_at"],
    )


class MessagesMixin:
    """Mixin for direct messaging operations."""

    def _read_messaging_snapshot(
        self,
        cursor: sqlite3.Cursor,
        sender_id: str,
        recipient_id: str,
        content: str,
        conversation_since: str,
        duplicate_since: str,
    ) -> MessagingSnapshot:
        sender = self._require_actor(cursor, sender_id, "Sender")
        recipient = self._require_actor(cursor, recipient_id, "Recipient")

        cursor.execute(
            "SELECT 1 FROM messages WHERE sender_id = ? AND recipient_id = ? LIMIT 1",
            (sender_id, recipient_id)
        )
        has_prior = cursor.fetchone() is not None

        cursor.execute(
            """SELECT COUNT(DISTINCT recipient_id) FROM messages
               WHERE sender_id = ? AND created_at > ?""",
            (sender_id, conversation_since)
        )
        recent_recipients = cursor.fetchone()[0]

        cursor.execute(
            """SELECT COUNT(*) FROM messages
               WHERE sender_id = ? AND created_at > ? AND content = ?""",
            (sender_id, duplicate_since, content)
        )
        duplicates = cursor.fetchone()[0]

        return MessagingSnapshot(
            sender=sender,
            recipient=recipient,
            has_prior_conversation=has_prior,
            recent_recipient_count=recent_recipients,
            duplicate_count=duplicates,
        )

    def get_messaging_snapshot(
        self,
        sender_id: str,
        recipient_id: str,
        content: str,
        conversation_since: str,
        duplicate_since: str,
    ) -> MessagingSnapshot:
        """Read-only snapshot for evaluating the abuse rules ahead of a send."""
        with self._reader() as cursor:
            return self._read_messaging_snapshot(
                cursor, sender_id, recipient_id, content, conversation_since, duplicate_since
            )

    def insert_message_guarded(
        self,
        sender_id: str,
        recipient_id: str,
        content: str,
        now: str,
        conversation_since: str,
        duplicate_since: str,
        check: Callable[[MessagingSnapshot], None],
    ) -> Message:
        """
        Evaluate `check` on a fresh snapshot and insert, in one transaction.

        `check` raises to reject; nothing is written in that case.
        """
        with self._transaction() as cursor:
            snapshot = self._read_messaging_snapshot(
                cursor, sender_id, recipient_id, content, conversation_since, duplicate_since
            )
            check(snapshot)
            cursor.execute(
                """INSERT INTO messages (sender_id, recipient_id, content, created_at)
                   VALUES (?, ?, ?, ?)""",
                (sender_id, recipient_id, content, now)
            )
            return Message(
                id=cursor.lastrowid,
                sender_id=sender_id,
                recipient_id=recipient_id,
                content=content,
                is_read=False,
                created_at=now,
            )

    # =========================================================================
    # Conversations
    # =========================================================================

    def mark_conversation_read(self, reader_id: str, other_id: str) -> int:
        """Mark every message from `other_id` to `reader_id` as read. Returns rows changed."""
        with self._transaction() as cursor:
            cursor.execute(
                """UPDATE messages SET is_read = 1
                   WHERE recipient_id = ? AND sender_id = ? AND is_read = 0""",
                (reader_id, other_id)
            )
            return cursor.rowcount

    async def mark_conversation_read_async(self, reader_id: str, other_id: str) -> int:
        """Async wrapper for mark_conversation_read."""
        return await asyncio.to_thread(self.mark_conversation_read, reader_id, other_id)

    def get_conversation(self, actor_id: str, other_id: str, limit: int = 100) -> list[Message]:
        """Messages exchanged between two actors, oldest first."""
        with self._reader() as cursor:
            cursor.execute(
                f"""SELECT {MESSAGE_COLUMNS} FROM (
                        SELECT {MESSAGE_COLUMNS} FROM messages
                        WHERE (sender_id = ? AND recipient_id = ?)
                           OR (sender_id = ? AND recipient_id = ?)
                        ORDER BY created_at DESC, id DESC
                        LIMIT ?
                    ) ORDER BY created_at ASC, id ASC""",
                (actor_id, other_id, other_id, actor_id, limit)
            )
            return [row_to_message(row) for row in cursor.fetchall()]

    async def get_conversation_async(self, actor_id: str, other_id: str, limit: int = 100) -> list[Message]:
        """Async wrapper for get_conversation."""
        return await asyncio.to_thread(self.get_conversation, actor_id, other_id, limit)

    def list_conversations(self, actor_id: str) -> list[ConversationSummary]:
        """Latest message per counterpart, most recent conversation first."""
        with self._reader() as cursor:
            cursor.execute(
                """SELECT m.id, m.sender_id, m.recipient_id, m.content, m.is_read, m.created_at,
                          a.id AS other_id, a.display_name AS other_name,
                          (SELECT COUNT(*) FROM messages u
                           WHERE u.sender_id = a.id AND u.recipient_id = ? AND u.is_read = 0) AS unread
                   FROM messages m
                   JOIN actors a ON a.id = CASE WHEN m.sender_id = ? THEN m.recipient_id ELSE m.sender_id END
                   WHERE m.id IN (
                       SELECT MAX(id) FROM messages
                       WHERE sender_id = ? OR recipient_id = ?
                       GROUP BY CASE WHEN sender_id = ? THEN recipient_id ELSE sender_id END
                   )
                   ORDER BY m.created_at DESC, m.id DESC""",
                (actor_id, actor_id, actor_id, actor_id, actor_id)
            )
            return [
                ConversationSummary(
                    other_id=row["other_id"],
                    other_display_name=row["other_name"],
                    last_message=row_to_message(row),
                    unread_count=row["unread"],
                )
                for row in cursor.fetchall()
            ]

    async def list_conversations_async(self, actor_id: str) -> list[ConversationSummary]:
        """Async wrapper for list_conversations."""
        return await asyncio.to_thread(self.list_conversations, actor_id)
