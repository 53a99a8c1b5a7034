"""
TrustCore - Audit Database Mixin
================================

Append-only admin action log. Writing an entry never blocks the action
being audited: failures are logged and reported as None.
"""

import json
import sqlite3
from typing import Optional

from trustcore.core.errors import ConcurrentUpdateError
from trustcore.core.logger import logger
from trustcore.services.db.models import AdminAction


def row_to_action(row: sqlite3.Row) -> AdminAction:
    metadata = {}
    if row["metadata"]:
        try:
            metadata = json.loads(row["metadata"])
        except json.JSONDecodeError:
            metadata = {"raw": row["metadata"]}
    return AdminAction(
        id=row["id"],
        admin_id=row["admin_id"],
        action=row["action"],
        target_type=row["target_type"],
        target_id=row["target_id"],
        reason=row["reason"],
        metadata=metadata,
        created_at=row["created_at"],
    )


class AuditMixin:
    """Mixin for admin audit logging."""

    def log_admin_action(
        self,
        admin_id: str,
        action: str,
        target_type: str,
        target_id: str,
        now: str,
        reason: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> Optional[int]:
        """Append an admin action. Returns the row ID, or None if the write failed."""
        try:
            with self._transaction() as cursor:
                cursor.execute(
                    """INSERT INTO admin_logs
                       (admin_id, action, target_type, target_id, reason, metadata, created_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?)""",
                    (
                        admin_id, action, target_type, str(target_id), reason,
                        json.dumps(metadata or {}, default=str), now,
                    )
                )
                return cursor.lastrowid
        except (sqlite3.Error, ConcurrentUpdateError, TypeError, ValueError) as e:
            logger.error("Admin Action Audit Failed", [
                ("Admin", admin_id),
                ("Action", action),
                ("Target", f"{target_type}:{target_id}"),
                ("Error", str(e)),
            ])
            return None

    def list_admin_actions(
        self,
        target_type: Optional[str] = None,
        target_id: Optional[str] = None,
        limit: int = 100,
    ) -> list[AdminAction]:
        """Audit entries, newest first, optionally filtered by target."""
        query = "SELECT * FROM admin_logs"
        clauses: list[str] = []
        params: list = []
        if target_type:
            clauses.append("target_type = ?")
            params.append(target_type)
        if target_id:
            clauses.append("target_id = ?")
            params.append(str(target_id))
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY created_at DESC, id DESC LIMIT ?"
        params.append(limit)

        with self._reader() as cursor:
            cursor.execute(query, params)
            return [row_to_action(row) for row in cursor.fetchall()]
