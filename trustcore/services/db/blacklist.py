"""
TrustCore - Blacklist Database Mixin
====================================

Keyword blacklist. Keywords are stored lowercased and matched
case-insensitively; removal deactivates rather than deletes.
"""

import sqlite3
from typing import Optional

from trustcore.core.errors import NotFound
from trustcore.services.db.models import BlacklistKeyword


def row_to_keyword(row: sqlite3.Row) -> BlacklistKeyword:
    return BlacklistKeyword(
        id=row["id"],
        keyword=row["keyword"],
        reason=row["reason"],
        is_active=bool(row["is_active"]),
        created_at=row["created_at"],
    )


class BlacklistMixin:
    """Mixin for keyword blacklist operations."""

    def add_keyword(self, keyword: str, reason: Optional[str], now: str) -> BlacklistKeyword:
        """Add a keyword, reactivating it if it was removed earlier."""
        normalized = keyword.strip().lower()
        if not normalized:
            raise ValueError("Keyword cannot be empty")
        with self._transaction() as cursor:
            cursor.execute(
                """INSERT INTO blacklist_keywords (keyword, reason, is_active, created_at)
                   VALUES (?, ?, 1, ?)
                   ON CONFLICT(keyword) DO UPDATE SET is_active = 1, reason = excluded.reason""",
                (normalized, reason, now)
            )
            cursor.execute("SELECT * FROM blacklist_keywords WHERE keyword = ?", (normalized,))
            return row_to_keyword(cursor.fetchone())

    def deactivate_keyword(self, keyword_id: int) -> BlacklistKeyword:
        """Deactivate a keyword by ID. Raises NotFound."""
        with self._transaction() as cursor:
            cursor.execute("UPDATE blacklist_keywords SET is_active = 0 WHERE id = ?", (keyword_id,))
            cursor.execute("SELECT * FROM blacklist_keywords WHERE id = ?", (keyword_id,))
            row = self._require(cursor.fetchone(), "Keyword")
            return row_to_keyword(row)

    def list_keywords(self, active_only: bool = True) -> list[BlacklistKeyword]:
        """Blacklist keywords, newest first."""
        with self._reader() as cursor:
            if active_only:
                cursor.execute(
                    "SELECT * FROM blacklist_keywords WHERE is_active = 1 ORDER BY created_at DESC, id DESC"
                )
            else:
                cursor.execute("SELECT * FROM blacklist_keywords ORDER BY created_at DESC, id DESC")
            return [row_to_keyword(row) for row in cursor.fetchall()]

    def get_keyword(self, keyword_id: int) -> BlacklistKeyword:
        with self._reader() as cursor:
            cursor.execute("SELECT * FROM blacklist_keywords WHERE id = ?", (keyword_id,))
            row = cursor.fetchone()
            if row is None:
                raise NotFound("Keyword not found.")
            return row_to_keyword(row)
