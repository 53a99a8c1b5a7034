"""
TrustCore - Moderation Queue
============================

Human review of flagged content.

Entries move pending -> approved (restore) or pending -> rejected (purge)
and are terminal once resolved. Flagging content that already has an
open entry returns that entry; flagging resolved content opens a new one.
Every admin action is written to the audit log on a best-effort basis.
"""

import asyncio
from datetime import datetime
from typing import Optional

from trustcore.core.constants import ADMIN_ACTIONS, QUEUE_DECISIONS, QUEUE_SOURCES, REASON_TRUNCATION_LENGTH
from trustcore.core.errors import NotFound, Unauthorized
from trustcore.core.logger import logger
from trustcore.services.db import (
    Actor,
    AdminAction,
    BlacklistKeyword,
    ContentItem,
    QueueEntry,
    TrustDatabase,
)
from trustcore.utils.helpers import Clock, to_timestamp, truncate, utcnow
from trustcore.utils.retry import retry_once


class ModerationQueue:
    """Queue state machine plus the admin and author operations around it."""

    def __init__(self, database: TrustDatabase, clock: Clock = utcnow) -> None:
        self.db = database
        self.clock = clock

    def _now(self) -> str:
        return to_timestamp(self.clock())

    async def require_admin(self, admin_id: Optional[str]) -> Actor:
        actor = await self.db.get_actor_async(admin_id) if admin_id else None
        if actor is None or not actor.is_admin or not actor.is_active:
            raise Unauthorized("Only administrators can perform this action.")
        return actor

    async def _audit(
        self,
        admin_id: str,
        action: str,
        target_type: str,
        target_id: str,
        reason: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> None:
        if action not in ADMIN_ACTIONS:
            raise ValueError(f"Unknown admin action: {action}")
        await asyncio.to_thread(
            self.db.log_admin_action,
            admin_id, action, target_type, str(target_id), self._now(), reason, metadata,
        )

    # =========================================================================
    # Queue State Machine
    # =========================================================================

    async def enqueue(
        self,
        content_id: str,
        source: str = "manual",
        reason: Optional[str] = None,
    ) -> tuple[QueueEntry, bool]:
        """
        Flag content and open a pending entry unless one is already open.

        Returns:
            (entry, created)
        """
        if source not in QUEUE_SOURCES:
            raise ValueError(f"Unknown queue source: {source}")

        entry, created = await self.db.enqueue_content_async(content_id, source, reason, self._now())
        logger.tree("Content Queued For Review" if created else "Content Re-flagged", [
            ("Entry", entry.id),
            ("Content", content_id),
            ("Source", source),
            ("Flags", entry.flag_count),
        ], emoji="🚩")
        return entry, created

    @retry_once()
    async def resolve(
        self,
        admin_id: str,
        entry_id: int,
        decision: str,
        reason: Optional[str] = None,
    ) -> QueueEntry:
        """
        Restore or purge a pending entry.

        Raises:
            Unauthorized: Caller is not an admin
            NotFound: Entry does not exist
            InvalidState: Entry already resolved
        """
        if decision not in QUEUE_DECISIONS:
            raise ValueError(f"Unknown decision: {decision}")
        await self.require_admin(admin_id)

        entry, content = await asyncio.to_thread(
            self.db.resolve_entry, entry_id, admin_id, decision, self._now()
        )

        await self._audit(admin_id, decision, "content", entry.content_id, reason, {
            "queue_entry_id": entry.id,
            "content_kind": entry.content_kind,
            "author_id": entry.author_id,
        })

        logger.tree("Queue Entry Resolved", [
            ("Entry", entry.id),
            ("Decision", decision),
            ("Status", entry.status),
            ("Admin", admin_id),
            ("Content Visible", "Yes" if content is not None and not content.is_removed else "No"),
        ], emoji="⚖️")
        return entry

    async def get_entry(self, entry_id: int) -> QueueEntry:
        entry = await asyncio.to_thread(self.db.get_entry, entry_id)
        if entry is None:
            raise NotFound("Queue entry not found.")
        return entry

    async def list_pending(self, admin_id: str, limit: int = 50, offset: int = 0) -> list[QueueEntry]:
        """Pending entries, oldest first (admin only)."""
        await self.require_admin(admin_id)
        return await asyncio.to_thread(self.db.list_entries, "pending", limit, offset)

    async def list_flagged_content(self, admin_id: str, limit: int = 100) -> list[ContentItem]:
        """Visible content carrying flags (admin only)."""
        await self.require_admin(admin_id)
        return await asyncio.to_thread(self.db.list_flagged_content, limit)

    # =========================================================================
    # Author Operations
    # =========================================================================

    async def submit_dispute(self, author_id: str, entry_id: int, reason: str) -> QueueEntry:
        """Record the author's objection. The entry stays pending for an admin."""
        if not reason or not reason.strip():
            raise ValueError("Dispute reason cannot be empty")
        entry = await asyncio.to_thread(self.db.record_dispute, entry_id, author_id, reason.strip())
        logger.tree("Moderation Dispute Submitted", [
            ("Entry", entry.id),
            ("Author", author_id),
            ("Reason", truncate(reason, REASON_TRUNCATION_LENGTH)),
        ], emoji="📨")
        return entry

    async def list_my_flagged(self, author_id: str) -> list[QueueEntry]:
        """Every queue entry for the author's own content."""
        return await asyncio.to_thread(self.db.list_entries_by_author, author_id)

    # =========================================================================
    # Admin Operations
    # =========================================================================

    @retry_once()
    async def ban_user(
        self,
        admin_id: str,
        actor_id: str,
        reason: Optional[str] = None,
        until: Optional[datetime] = None,
    ) -> Actor:
        """Permanent messaging ban, or a timed suspension when `until` is given."""
        await self.require_admin(admin_id)
        if until is None:
            actor = await self.db.update_actor_async(actor_id, messaging_banned=True)
        else:
            actor = await self.db.update_actor_async(
                actor_id, messaging_suspended_until=to_timestamp(until)
            )

        await self._audit(admin_id, "ban", "user", actor_id, reason, {
            "until": actor.messaging_suspended_until if until else "permanent",
        })
        logger.tree("User Banned From Messaging", [
            ("User", actor_id),
            ("Admin", admin_id),
            ("Until", actor.messaging_suspended_until if until else "Permanent"),
            ("Reason", reason or "none"),
        ], emoji="🔨")
        return actor

    @retry_once()
    async def unban_user(self, admin_id: str, actor_id: str, reason: Optional[str] = None) -> Actor:
        """Lift both the permanent ban and any timed suspension."""
        await self.require_admin(admin_id)
        actor = await self.db.update_actor_async(
            actor_id, messaging_banned=False, messaging_suspended_until=None
        )
        await self._audit(admin_id, "unban", "user", actor_id, reason)
        logger.tree("User Unbanned", [
            ("User", actor_id),
            ("Admin", admin_id),
        ], emoji="🔓")
        return actor

    @retry_once()
    async def add_blacklist_keyword(self, admin_id: str, keyword: str, reason: Optional[str] = None) -> BlacklistKeyword:
        await self.require_admin(admin_id)
        entry = await asyncio.to_thread(self.db.add_keyword, keyword, reason, self._now())
        await self._audit(admin_id, "blacklist-add", "keyword", entry.id, reason, {"keyword": entry.keyword})
        logger.tree("Blacklist Keyword Added", [
            ("Keyword", entry.keyword),
            ("Admin", admin_id),
        ], emoji="🚫")
        return entry

    @retry_once()
    async def remove_blacklist_keyword(self, admin_id: str, keyword_id: int) -> BlacklistKeyword:
        await self.require_admin(admin_id)
        entry = await asyncio.to_thread(self.db.deactivate_keyword, keyword_id)
        await self._audit(admin_id, "blacklist-remove", "keyword", keyword_id, None, {"keyword": entry.keyword})
        logger.tree("Blacklist Keyword Removed", [
            ("Keyword", entry.keyword),
            ("Admin", admin_id),
        ], emoji="♻️")
        return entry

    async def list_blacklist(self, admin_id: str) -> list[BlacklistKeyword]:
        await self.require_admin(admin_id)
        return await asyncio.to_thread(self.db.list_keywords, True)

    @retry_once()
    async def grant_expert(self, admin_id: str, actor_id: str, reason: Optional[str] = None) -> Actor:
        """Mark an actor as a verified expert."""
        await self.require_admin(admin_id)
        actor = await self.db.update_actor_async(actor_id, is_expert=True)
        await self._audit(admin_id, "grant-expert", "user", actor_id, reason)
        logger.tree("Expert Status Granted", [
            ("User", actor_id),
            ("Admin", admin_id),
        ], emoji="🎓")
        return actor

    @retry_once()
    async def revoke_expert(self, admin_id: str, actor_id: str, reason: Optional[str] = None) -> Actor:
        await self.require_admin(admin_id)
        actor = await self.db.update_actor_async(actor_id, is_expert=False)
        await self._audit(admin_id, "revoke-expert", "user", actor_id, reason)
        logger.tree("Expert Status Revoked", [
            ("User", actor_id),
            ("Admin", admin_id),
        ], emoji="🎓")
        return actor

    @retry_once()
    async def reset_reputation(self, admin_id: str, actor_id: str, reason: Optional[str] = None) -> Actor:
        """Zero the stored reputation. The next recompute derives it again from history."""
        await self.require_admin(admin_id)
        before = await self.db.get_actor_async(actor_id)
        if before is None:
            raise NotFound("Actor not found.")
        actor = await self.db.update_actor_async(actor_id, reputation=0, tier=1, is_sme=False)
        await self._audit(admin_id, "reset-reputation", "user", actor_id, reason, {
            "old_reputation": before.reputation,
            "old_tier": before.tier,
        })
        logger.tree("Reputation Reset", [
            ("User", actor_id),
            ("Old Reputation", before.reputation),
            ("Admin", admin_id),
        ], emoji="🔄")
        return actor

    @retry_once()
    async def clear_flags(self, admin_id: str, content_id: str, reason: Optional[str] = None) -> ContentItem:
        """Reset flags on content without touching queue entries."""
        await self.require_admin(admin_id)
        content = await asyncio.to_thread(self.db.clear_content_flags, content_id)
        await self._audit(admin_id, "clear-flags", "content", content_id, reason)
        logger.tree("Content Flags Cleared", [
            ("Content", content_id),
            ("Admin", admin_id),
        ], emoji="🧹")
        return content

    async def list_admin_actions(
        self,
        admin_id: str,
        target_type: Optional[str] = None,
        target_id: Optional[str] = None,
        limit: int = 100,
    ) -> list[AdminAction]:
        await self.require_admin(admin_id)
        return await asyncio.to_thread(self.db.list_admin_actions, target_type, target_id, limit)


__all__ = ["ModerationQueue"]
