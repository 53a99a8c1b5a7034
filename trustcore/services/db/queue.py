"""
TrustCore - Moderation Queue Database Mixin
===========================================

Queue entries snapshot flagged content so it can be restored after
removal. At most one pending entry exists per content item.
"""

import asyncio
import sqlite3
from typing import Optional

from trustcore.core.constants import QUEUE_STATUSES
from trustcore.core.errors import InvalidState, NotFound, Unauthorized
from trustcore.services.db.models import ContentItem, QueueEntry


QUEUE_COLUMNS = (
    "id, content_id, content_kind, author_id, body, parent_id, original_created_at, "
    "flag_count, source, reason, status, dispute_reason, queued_at, resolved_at, resolved_by"
)


def row_to_entry(row: sqlite3.Row) -> QueueEntry:
    return QueueEntry(
        id=row["id"],
        content_id=row["content_id"],
        content_kind=row["content_kind"],
        author_id=row["author_id"],
        body=row["body"],
        parent_id=row["parent_id"],
        original_created_at=row["original_created_at"],
        flag_count=row["flag_count"],
        source=row["source"],
        reason=row["reason"],
        status=row["status"],
        dispute_reason=row["dispute_reason"],
        queued_at=row["queued_at"],
        resolved_at=row["resolved_at"],
        resolved_by=row["resolved_by"],
    )


class QueueMixin:
    """Mixin for moderation queue operations."""

    def _fetch_entry(self, cursor: sqlite3.Cursor, entry_id: int) -> Optional[QueueEntry]:
        cursor.execute(f"SELECT {QUEUE_COLUMNS} FROM moderation_queue WHERE id = ?", (entry_id,))
        row = cursor.fetchone()
        return row_to_entry(row) if row else None

    def _require_entry(self, cursor: sqlite3.Cursor, entry_id: int) -> QueueEntry:
        entry = self._fetch_entry(cursor, entry_id)
        if entry is None:
            raise NotFound("Queue entry not found.")
        return entry

    def _enqueue_in_tx(
        self,
        cursor: sqlite3.Cursor,
        content: ContentItem,
        source: str,
        reason: Optional[str],
        now: str,
    ) -> tuple[QueueEntry, bool]:
        """Flag the content and open a pending entry unless one is already open."""
        cursor.execute(
            "UPDATE content_items SET is_flagged = 1, flag_count = flag_count + 1 WHERE id = ?",
            (content.id,)
        )
        flag_count = content.flag_count + 1

        cursor.execute(
            f"SELECT {QUEUE_COLUMNS} FROM moderation_queue WHERE content_id = ? AND status = 'pending'",
            (content.id,)
        )
        existing = cursor.fetchone()
        if existing:
            cursor.execute(
                "UPDATE moderation_queue SET flag_count = ? WHERE id = ?",
                (flag_count, existing["id"])
            )
            return self._require_entry(cursor, existing["id"]), False

        cursor.execute(
            """INSERT INTO moderation_queue (
                   content_id, content_kind, author_id, body, parent_id,
                   original_created_at, flag_count, source, reason, queued_at
               ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                content.id, content.kind, content.author_id, content.body, content.parent_id,
                content.created_at, flag_count, source, reason, now,
            )
        )
        return self._require_entry(cursor, cursor.lastrowid), True

    def enqueue_content(
        self,
        content_id: str,
        source: str,
        reason: Optional[str],
        now: str,
    ) -> tuple[QueueEntry, bool]:
        """Insert-if-no-open-entry. Returns (entry, created)."""
        with self._transaction() as cursor:
            content = self._require_content(cursor, content_id)
            return self._enqueue_in_tx(cursor, content, source, reason, now)

    async def enqueue_content_async(
        self,
        content_id: str,
        source: str,
        reason: Optional[str],
        now: str,
    ) -> tuple[QueueEntry, bool]:
        """Async wrapper for enqueue_content."""
        return await asyncio.to_thread(self.enqueue_content, content_id, source, reason, now)

    def resolve_entry(
        self,
        entry_id: int,
        admin_id: str,
        decision: str,
        now: str,
    ) -> tuple[QueueEntry, Optional[ContentItem]]:
        """
        Apply a restore or purge decision to a pending entry.

        Restore clears the flags and brings the live row back from the
        snapshot if it is gone. Purge soft-removes the live row.

        Raises:
            NotFound: Entry does not exist
            InvalidState: Entry was already resolved
        """
        with self._transaction() as cursor:
            entry = self._require_entry(cursor, entry_id)
            if entry.status != "pending":
                raise InvalidState(f"Queue entry was already {entry.status}.")

            live = self._fetch_content(cursor, entry.content_id)

            if decision == "restore":
                if live is None:
                    cursor.execute(
                        """INSERT INTO content_items (id, kind, author_id, body, parent_id, created_at)
                           VALUES (?, ?, ?, ?, ?, ?)""",
                        (
                            entry.content_id, entry.content_kind, entry.author_id, entry.body,
                            entry.parent_id, entry.original_created_at or now,
                        )
                    )
                else:
                    cursor.execute(
                        """UPDATE content_items
                           SET is_flagged = 0, flag_count = 0, is_removed = 0
                           WHERE id = ?""",
                        (entry.content_id,)
                    )
                status = "approved"
            else:
                if live is not None:
                    cursor.execute(
                        "UPDATE content_items SET is_removed = 1, is_flagged = 0 WHERE id = ?",
                        (entry.content_id,)
                    )
                status = "rejected"

            cursor.execute(
                """UPDATE moderation_queue
                   SET status = ?, resolved_at = ?, resolved_by = ?
                   WHERE id = ?""",
                (status, now, admin_id, entry_id)
            )
            return self._require_entry(cursor, entry_id), self._fetch_content(cursor, entry.content_id)

    def record_dispute(self, entry_id: int, author_id: str, reason: str) -> QueueEntry:
        """
        Attach the author's dispute to a pending entry. The entry stays pending.

        Raises:
            NotFound: Entry does not exist
            Unauthorized: Caller is not the content author
            InvalidState: Entry was already resolved
        """
        with self._transaction() as cursor:
            entry = self._require_entry(cursor, entry_id)
            if entry.author_id != author_id:
                raise Unauthorized("Only the author can dispute this moderation decision.")
            if entry.status != "pending":
                raise InvalidState(f"Queue entry was already {entry.status}.")
            cursor.execute(
                "UPDATE moderation_queue SET dispute_reason = ? WHERE id = ?",
                (reason, entry_id)
            )
            return self._require_entry(cursor, entry_id)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_entry(self, entry_id: int) -> Optional[QueueEntry]:
        """Get a queue entry by ID, or None."""
        with self._reader() as cursor:
            return self._fetch_entry(cursor, entry_id)

    def list_entries(self, status: Optional[str] = "pending", limit: int = 50, offset: int = 0) -> list[QueueEntry]:
        """Queue entries, oldest first. `status=None` lists every entry."""
        if status is not None and status not in QUEUE_STATUSES:
            raise ValueError(f"Unknown queue status: {status}")
        with self._reader() as cursor:
            if status is None:
                cursor.execute(
                    f"SELECT {QUEUE_COLUMNS} FROM moderation_queue ORDER BY queued_at, id LIMIT ? OFFSET ?",
                    (limit, offset)
                )
            else:
                cursor.execute(
                    f"""SELECT {QUEUE_COLUMNS} FROM moderation_queue
                        WHERE status = ? ORDER BY queued_at, id LIMIT ? OFFSET ?""",
                    (status, limit, offset)
                )
            return [row_to_entry(row) for row in cursor.fetchall()]

    def list_entries_by_author(self, author_id: str) -> list[QueueEntry]:
        """Every queue entry for the author's content, newest first."""
        with self._reader() as cursor:
            cursor.execute(
                f"""SELECT {QUEUE_COLUMNS} FROM moderation_queue
                    WHERE author_id = ? ORDER BY queued_at DESC, id DESC""",
                (author_id,)
            )
            return [row_to_entry(row) for row in cursor.fetchall()]
