"""
TrustCore - Content Database Mixin
==================================

Discussions, comments and reviews, plus the contribution counts the
reputation engine reads.
"""

import asyncio
import sqlite3
from typing import Optional

from trustcore.core.errors import NotFound
from trustcore.services.db.models import ContentItem, ContributionCounts


CONTENT_COLUMNS = (
    "id, kind, author_id, body, parent_id, is_flagged, flag_count, "
    "is_removed, raise_hand_count, vote_score, created_at"
)

# Parent hops followed when resolving a thread root
MAX_THREAD_DEPTH = 50


def row_to_content(row: sqlite3.Row) -> ContentItem:
    return ContentItem(
        id=row["id"],
        kind=row["kind"],
        author_id=row["author_id"],
        body=row["body"],
        parent_id=row["parent_id"],
        is_flagged=bool(row["is_flagged"]),
        flag_count=row["flag_count"],
        is_removed=bool(row["is_removed"]),
        raise_hand_count=row["raise_hand_count"],
        vote_score=row["vote_score"],
        created_at=row["created_at"],
    )


class ContentMixin:
    """Mixin for moderatable content operations."""

    def _fetch_content(self, cursor: sqlite3.Cursor, content_id: str) -> Optional[ContentItem]:
        cursor.execute(f"SELECT {CONTENT_COLUMNS} FROM content_items WHERE id = ?", (content_id,))
        row = cursor.fetchone()
        return row_to_content(row) if row else None

    def _require_content(self, cursor: sqlite3.Cursor, content_id: str, include_removed: bool = False) -> ContentItem:
        content = self._fetch_content(cursor, content_id)
        if content is None or (content.is_removed and not include_removed):
            raise NotFound("Content not found.")
        return content

    def insert_content(
        self,
        content_id: str,
        kind: str,
        author_id: str,
        body: str,
        now: str,
        parent_id: Optional[str] = None,
    ) -> ContentItem:
        """Persist a new content item. Raises NotFound for an unknown author or parent."""
        with self._transaction() as cursor:
            self._require_actor(cursor, author_id, "Author")
            if parent_id is not None:
                self._require_content(cursor, parent_id)
            cursor.execute(
                """INSERT INTO content_items (id, kind, author_id, body, parent_id, created_at)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (content_id, kind, author_id, body, parent_id, now)
            )
            return self._require_content(cursor, content_id)

    async def insert_content_async(
        self,
        content_id: str,
        kind: str,
        author_id: str,
        body: str,
        now: str,
        parent_id: Optional[str] = None,
    ) -> ContentItem:
        """Async wrapper for insert_content."""
        return await asyncio.to_thread(
            self.insert_content, content_id, kind, author_id, body, now, parent_id
        )

    def get_content(self, content_id: str) -> Optional[ContentItem]:
        """Get a content item (including removed items), or None."""
        with self._reader() as cursor:
            return self._fetch_content(cursor, content_id)

    async def get_content_async(self, content_id: str) -> Optional[ContentItem]:
        """Async wrapper for get_content."""
        return await asyncio.to_thread(self.get_content, content_id)

    def get_thread_root(self, content_id: str) -> str:
        """ID of the top-level item of the thread containing `content_id`."""
        with self._reader() as cursor:
            current = content_id
            for _ in range(MAX_THREAD_DEPTH):
                cursor.execute("SELECT parent_id FROM content_items WHERE id = ?", (current,))
                row = cursor.fetchone()
                if row is None:
                    if current == content_id:
                        raise NotFound("Content not found.")
                    return current
                if row["parent_id"] is None:
                    return current
                current = row["parent_id"]
            return current

    def list_flagged_content(self, limit: int = 100) -> list[ContentItem]:
        """Visible content that is flagged or has been flagged, most flags first."""
        with self._reader() as cursor:
            cursor.execute(
                f"""SELECT {CONTENT_COLUMNS} FROM content_items
                    WHERE is_removed = 0 AND (is_flagged = 1 OR flag_count > 0)
                    ORDER BY flag_count DESC, created_at DESC
                    LIMIT ?""",
                (limit,)
            )
            return [row_to_content(row) for row in cursor.fetchall()]

    # =========================================================================
    # Contribution Counts
    # =========================================================================

    def _read_contribution_counts(self, cursor: sqlite3.Cursor, author_id: str) -> ContributionCounts:
        cursor.execute(
            """SELECT kind, COUNT(*) AS n FROM content_items
               WHERE author_id = ? AND is_removed = 0
               GROUP BY kind""",
            (author_id,)
        )
        counts = {row["kind"]: row["n"] for row in cursor.fetchall()}
        return ContributionCounts(
            discussions=counts.get("discussion", 0),
            comments=counts.get("comment", 0),
            reviews=counts.get("review", 0),
        )

    def get_contribution_counts(self, author_id: str) -> ContributionCounts:
        """Non-removed contributions per kind for an author."""
        with self._reader() as cursor:
            self._require_actor(cursor, author_id)
            return self._read_contribution_counts(cursor, author_id)

    def clear_content_flags(self, content_id: str) -> ContentItem:
        """Reset is_flagged and flag_count on a content item."""
        with self._transaction() as cursor:
            self._require_content(cursor, content_id, include_removed=True)
            cursor.execute(
                "UPDATE content_items SET is_flagged = 0, flag_count = 0 WHERE id = ?",
                (content_id,)
            )
            return self._require_content(cursor, content_id, include_removed=True)
