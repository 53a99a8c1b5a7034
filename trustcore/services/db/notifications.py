"""
TrustCore - Notifications Database Mixin
========================================

Notification inbox rows written by the notification sink.
"""

import sqlite3
from typing import Iterable, Optional

from trustcore.services.db.models import Notification


def row_to_notification(row: sqlite3.Row) -> Notification:
    return Notification(
        id=row["id"],
        actor_id=row["actor_id"],
        title=row["title"],
        message=row["message"],
        severity=row["severity"],
        link=row["link"],
        is_read=bool(row["is_read"]),
        created_at=row["created_at"],
    )


class NotificationsMixin:
    """Mixin for notification inbox operations."""

    def insert_notifications(
        self,
        actor_ids: Iterable[str],
        title: str,
        message: str,
        severity: str,
        link: Optional[str],
        now: str,
    ) -> list[Notification]:
        """Write one notification per actor in a single transaction."""
        created: list[Notification] = []
        with self._transaction() as cursor:
            for actor_id in actor_ids:
                cursor.execute(
                    """INSERT INTO notifications (actor_id, title, message, severity, link, created_at)
                       VALUES (?, ?, ?, ?, ?, ?)""",
                    (actor_id, title, message, severity, link, now)
                )
                created.append(Notification(
                    id=cursor.lastrowid,
                    actor_id=actor_id,
                    title=title,
                    message=message,
                    severity=severity,
                    link=link,
                    is_read=False,
                    created_at=now,
                ))
        return created

    def list_notifications(self, actor_id: str, unread_only: bool = False, limit: int = 50) -> list[Notification]:
        """Notifications for one actor, newest first."""
        query = "SELECT * FROM notifications WHERE actor_id = ?"
        if unread_only:
            query += " AND is_read = 0"
        query += " ORDER BY created_at DESC, id DESC LIMIT ?"
        with self._reader() as cursor:
            cursor.execute(query, (actor_id, limit))
            return [row_to_notification(row) for row in cursor.fetchall()]

    def mark_notifications_read(self, actor_id: str) -> int:
        with self._transaction() as cursor:
            cursor.execute(
                "UPDATE notifications SET is_read = 1 WHERE actor_id = ? AND is_read = 0",
                (actor_id,)
            )
            return cursor.rowcount
