"""
TrustCore - Actors Database Mixin
=================================

Actor directory: lookups, upserts and trust-flag updates.
"""

import asyncio
import sqlite3
from typing import Optional

from trustcore.core.errors import NotFound
from trustcore.services.db.models import Actor


ACTOR_COLUMNS = (
    "id, display_name, reputation, tier, is_expert, is_sme, is_admin, "
    "messaging_banned, messaging_suspended_until, allows_guest_messages, "
    "is_active, created_at"
)

# Columns update_actor may change
UPDATABLE_FIELDS = frozenset({
    "display_name", "reputation", "tier", "is_expert", "is_sme", "is_admin",
    "messaging_banned", "messaging_suspended_until", "allows_guest_messages",
    "is_active",
})

_BOOL_FIELDS = frozenset({
    "is_expert", "is_sme", "is_admin", "messaging_banned",
    "allows_guest_messages", "is_active",
})


def row_to_actor(row: sqlite3.Row) -> Actor:
    return Actor(
        id=row["id"],
        display_name=row["display_name"],
        reputation=row["reputation"],
        tier=row["tier"],
        is_expert=bool(row["is_expert"]),
        is_sme=bool(row["is_sme"]),
        is_admin=bool(row["is_admin"]),
        messaging_banned=bool(row["messaging_banned"]),
        messaging_suspended_until=row["messaging_suspended_until"],
        allows_guest_messages=bool(row["allows_guest_messages"]),
        is_active=bool(row["is_active"]),
        created_at=row["created_at"],
    )


class ActorsMixin:
    """Mixin for actor directory operations."""

    def _fetch_actor(self, cursor: sqlite3.Cursor, actor_id: str) -> Optional[Actor]:
        cursor.execute(f"SELECT {ACTOR_COLUMNS} FROM actors WHERE id = ?", (actor_id,))
        row = cursor.fetchone()
        return row_to_actor(row) if row else None

    def _require_actor(self, cursor: sqlite3.Cursor, actor_id: str, role: str = "Actor") -> Actor:
        actor = self._fetch_actor(cursor, actor_id)
        if actor is None:
            raise NotFound(f"{role} not found.")
        return actor

    def _apply_actor_fields(self, cursor: sqlite3.Cursor, actor_id: str, fields: dict) -> None:
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown actor fields: {', '.join(sorted(unknown))}")
        if not fields:
            return
        values = [int(v) if k in _BOOL_FIELDS else v for k, v in fields.items()]
        assignments = ", ".join(f"{k} = ?" for k in fields)
        cursor.execute(f"UPDATE actors SET {assignments} WHERE id = ?", (*values, actor_id))

    # =========================================================================
    # Directory Operations
    # =========================================================================

    def upsert_actor(self, actor_id: str, now: str, display_name: str = "", **fields) -> Actor:
        """Create the actor if missing, then apply any given fields."""
        with self._transaction() as cursor:
            cursor.execute(
                "INSERT OR IGNORE INTO actors (id, display_name, created_at) VALUES (?, ?, ?)",
                (actor_id, display_name, now)
            )
            if display_name:
                fields["display_name"] = display_name
            self._apply_actor_fields(cursor, actor_id, fields)
            return self._require_actor(cursor, actor_id)

    async def upsert_actor_async(self, actor_id: str, now: str, display_name: str = "", **fields) -> Actor:
        """Async wrapper for upsert_actor."""
        return await asyncio.to_thread(self.upsert_actor, actor_id, now, display_name, **fields)

    def get_actor(self, actor_id: str) -> Optional[Actor]:
        """Get an actor by ID, or None."""
        with self._reader() as cursor:
            return self._fetch_actor(cursor, actor_id)

    async def get_actor_async(self, actor_id: str) -> Optional[Actor]:
        """Async wrapper for get_actor."""
        return await asyncio.to_thread(self.get_actor, actor_id)

    def update_actor(self, actor_id: str, **fields) -> Actor:
        """Update trust fields on an existing actor. Raises NotFound."""
        with self._transaction() as cursor:
            self._require_actor(cursor, actor_id)
            self._apply_actor_fields(cursor, actor_id, fields)
            return self._require_actor(cursor, actor_id)

    async def update_actor_async(self, actor_id: str, **fields) -> Actor:
        """Async wrapper for update_actor."""
        return await asyncio.to_thread(self.update_actor, actor_id, **fields)

    def list_experts(self, exclude: tuple = (), limit: int = 10) -> list[Actor]:
        """Active experts (verified or SME), highest reputation first."""
        placeholders = ",".join("?" * len(exclude)) or "''"
        with self._reader() as cursor:
            cursor.execute(
                f"""SELECT {ACTOR_COLUMNS} FROM actors
                    WHERE (is_expert = 1 OR is_sme = 1) AND is_active = 1
                    AND id NOT IN ({placeholders})
                    ORDER BY reputation DESC, id
                    LIMIT ?""",
                (*exclude, limit)
            )
            return [row_to_actor(row) for row in cursor.fetchall()]

    def list_active_actor_ids(self) -> list[str]:
        """IDs of every active actor."""
        with self._reader() as cursor:
            cursor.execute("SELECT id FROM actors WHERE is_active = 1 ORDER BY id")
            return [row["id"] for row in cursor.fetchall()]
