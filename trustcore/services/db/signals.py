"""
TrustCore - Signals Database Mixin
==================================

Raise-hands, reactions and votes. Every signal is a set membership with
a uniqueness constraint, so each call toggles. Counters are read and
written in the same transaction and the before/after values returned
are the ones that transaction saw.
"""

import asyncio
from typing import Optional

from trustcore.core.constants import CONCERN_QUEUE_THRESHOLD, CONCERN_REACTION_KIND
from trustcore.services.db.models import ToggleOutcome, VoteOutcome


class SignalsMixin:
    """Mixin for community signal toggles."""

    def toggle_raise_hand(self, actor_id: str, content_id: str, now: str) -> ToggleOutcome:
        """Add or remove the actor's raised hand on a content item."""
        with self._transaction() as cursor:
            self._require_actor(cursor, actor_id)
            content = self._require_content(cursor, content_id)
            before = content.raise_hand_count

            cursor.execute(
                "DELETE FROM raise_hands WHERE actor_id = ? AND content_id = ?",
                (actor_id, content_id)
            )
            if cursor.rowcount:
                active = False
                after = max(0, before - 1)
            else:
                cursor.execute(
                    "INSERT INTO raise_hands (actor_id, content_id, created_at) VALUES (?, ?, ?)",
                    (actor_id, content_id, now)
                )
                active = True
                after = before + 1

            cursor.execute(
                "UPDATE content_items SET raise_hand_count = ? WHERE id = ?",
                (after, content_id)
            )
            content.raise_hand_count = after
            return ToggleOutcome(content=content, active=active, before=before, after=after)

    async def toggle_raise_hand_async(self, actor_id: str, content_id: str, now: str) -> ToggleOutcome:
        """Async wrapper for toggle_raise_hand."""
        return await asyncio.to_thread(self.toggle_raise_hand, actor_id, content_id, now)

    def toggle_reaction(self, actor_id: str, content_id: str, kind: str, now: str) -> ToggleOutcome:
        """
        Add or remove the actor's reaction of `kind`.

        Adding a concern reaction while the count is above the queue
        threshold flags the content in the same transaction: it joins the
        open entry, or opens a new one when none is pending.
        """
        with self._transaction() as cursor:
            self._require_actor(cursor, actor_id)
            content = self._require_content(cursor, content_id)

            cursor.execute(
                "SELECT count FROM reaction_counts WHERE content_id = ? AND kind = ?",
                (content_id, kind)
            )
            row = cursor.fetchone()
            before = row["count"] if row else 0

            cursor.execute(
                "DELETE FROM reactions WHERE actor_id = ? AND content_id = ? AND kind = ?",
                (actor_id, content_id, kind)
            )
            if cursor.rowcount:
                active = False
                after = max(0, before - 1)
            else:
                cursor.execute(
                    "INSERT INTO reactions (actor_id, content_id, kind, created_at) VALUES (?, ?, ?, ?)",
                    (actor_id, content_id, kind, now)
                )
                active = True
                after = before + 1

            cursor.execute(
                """INSERT INTO reaction_counts (content_id, kind, count) VALUES (?, ?, ?)
                   ON CONFLICT(content_id, kind) DO UPDATE SET count = excluded.count""",
                (content_id, kind, after)
            )

            queue_entry, queue_created = None, False
            if kind == CONCERN_REACTION_KIND and active and after > CONCERN_QUEUE_THRESHOLD:
                queue_entry, queue_created = self._enqueue_in_tx(
                    cursor,
                    content,
                    "reactions",
                    f"Community concern reactions exceeded {CONCERN_QUEUE_THRESHOLD}",
                    now,
                )
                content = self._require_content(cursor, content_id)

            return ToggleOutcome(
                content=content, active=active, before=before, after=after,
                queue_entry=queue_entry, queue_created=queue_created,
            )

    async def toggle_reaction_async(self, actor_id: str, content_id: str, kind: str, now: str) -> ToggleOutcome:
        """Async wrapper for toggle_reaction."""
        return await asyncio.to_thread(self.toggle_reaction, actor_id, content_id, kind, now)

    def toggle_vote(self, actor_id: str, content_id: str, value: int, now: str) -> VoteOutcome:
        """
        Cast, flip or withdraw a vote.

        Score deltas: no vote -> v adds v; v -> -v adds -2v; v -> v again
        withdraws the vote and adds -v.
        """
        with self._transaction() as cursor:
            self._require_actor(cursor, actor_id)
            content = self._require_content(cursor, content_id)
            before = content.vote_score

            cursor.execute(
                "SELECT value FROM votes WHERE actor_id = ? AND content_id = ?",
                (actor_id, content_id)
            )
            row = cursor.fetchone()
            existing = row["value"] if row else 0

            if existing == 0:
                cursor.execute(
                    "INSERT INTO votes (actor_id, content_id, value, created_at) VALUES (?, ?, ?, ?)",
                    (actor_id, content_id, value, now)
                )
                delta = value
                vote_state = value
            elif existing == value:
                cursor.execute(
                    "DELETE FROM votes WHERE actor_id = ? AND content_id = ?",
                    (actor_id, content_id)
                )
                delta = -value
                vote_state = 0
            else:
                cursor.execute(
                    "UPDATE votes SET value = ?, created_at = ? WHERE actor_id = ? AND content_id = ?",
                    (value, now, actor_id, content_id)
                )
                delta = 2 * value
                vote_state = value

            after = before + delta
            cursor.execute("UPDATE content_items SET vote_score = ? WHERE id = ?", (after, content_id))
            content.vote_score = after
            return VoteOutcome(content=content, vote_state=vote_state, before=before, after=after)

    async def toggle_vote_async(self, actor_id: str, content_id: str, value: int, now: str) -> VoteOutcome:
        """Async wrapper for toggle_vote."""
        return await asyncio.to_thread(self.toggle_vote, actor_id, content_id, value, now)

    def get_signal_counts(self, content_id: str, viewer_id: Optional[str] = None) -> dict:
        """Counters for one content item plus the viewer's own signals."""
        with self._reader() as cursor:
            content = self._require_content(cursor, content_id)

            cursor.execute(
                "SELECT kind, count FROM reaction_counts WHERE content_id = ?",
                (content_id,)
            )
            reactions = {row["kind"]: row["count"] for row in cursor.fetchall()}

            viewer_reactions: set[str] = set()
            raised = False
            vote_state = 0
            if viewer_id:
                cursor.execute(
                    "SELECT kind FROM reactions WHERE actor_id = ? AND content_id = ?",
                    (viewer_id, content_id)
                )
                viewer_reactions = {row["kind"] for row in cursor.fetchall()}
                cursor.execute(
                    "SELECT 1 FROM raise_hands WHERE actor_id = ? AND content_id = ?",
                    (viewer_id, content_id)
                )
                raised = cursor.fetchone() is not None
                cursor.execute(
                    "SELECT value FROM votes WHERE actor_id = ? AND content_id = ?",
                    (viewer_id, content_id)
                )
                row = cursor.fetchone()
                vote_state = row["value"] if row else 0

            return {
                "content": content,
                "reactions": reactions,
                "viewer_reactions": viewer_reactions,
                "viewer_raised_hand": raised,
                "viewer_vote": vote_state,
            }
