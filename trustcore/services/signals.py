"""
TrustCore - Signal Escalation
=============================

Community attention signals and their threshold effects.

- Raise-hand reaching 5: trending (logged only)
- Raise-hand reaching 10: one "Urgent SME Request" fan-out to experts
- Concern reactions above 3: content enqueued for review (in the DB toggle)

Threshold decisions use only the before/after counts returned by the
toggle transaction, so concurrent raisers cannot fire a crossing twice.
"""

import asyncio
import sqlite3
from dataclasses import dataclass
from typing import Optional

from trustcore.core.constants import (
    REACTION_KINDS,
    TRENDING_THRESHOLD,
    URGENT_MESSAGE,
    URGENT_NOTIFY_LIMIT,
    URGENT_SEVERITY,
    URGENT_THRESHOLD,
    URGENT_TITLE,
)
from trustcore.core.errors import ConcurrentUpdateError
from trustcore.core.logger import logger
from trustcore.services.db import ToggleOutcome, TrustDatabase
from trustcore.services.notifications import NotificationSink
from trustcore.utils.helpers import Clock, to_timestamp, utcnow


def crossed(before: int, after: int, threshold: int) -> bool:
    """True when a count moves upward across `threshold` (before < t <= after)."""
    return before < threshold <= after


@dataclass
class RaiseHandResult:
    signaled: bool
    count: int
    trending: bool = False
    urgent: bool = False
    notified: int = 0

    def to_dict(self) -> dict:
        return {"signaled": self.signaled, "count": self.count}


@dataclass
class ReactionResult:
    active: bool
    count: int
    queued_entry_id: Optional[int] = None
    queued_new: bool = False

    def to_dict(self) -> dict:
        return {"active": self.active, "count": self.count}


@dataclass
class VoteResult:
    vote_state: int
    score: int

    def to_dict(self) -> dict:
        return {"vote_state": self.vote_state, "score": self.score}


class SignalEscalation:
    """Toggles community signals and fires their threshold effects."""

    def __init__(
        self,
        database: TrustDatabase,
        notifier: NotificationSink,
        clock: Clock = utcnow,
    ) -> None:
        self.db = database
        self.notifier = notifier
        self.clock = clock

    def _now(self) -> str:
        return to_timestamp(self.clock())

    # =========================================================================
    # Raise Hand
    # =========================================================================

    async def toggle_raise_hand(self, actor_id: str, content_id: str) -> RaiseHandResult:
        """
        Toggle the actor's raised hand.

        Raises:
            NotFound: Unknown actor or content
        """
        outcome = await self.db.toggle_raise_hand_async(actor_id, content_id, self._now())
        result = RaiseHandResult(signaled=outcome.active, count=outcome.after)

        if not outcome.active:
            return result

        if crossed(outcome.before, outcome.after, TRENDING_THRESHOLD):
            result.trending = True
            logger.tree("Signal Trending", [
                ("Content", content_id),
                ("Kind", outcome.content.kind),
                ("Raised Hands", outcome.after),
            ], emoji="📈")

        if crossed(outcome.before, outcome.after, URGENT_THRESHOLD):
            result.urgent = True
            result.notified = await self._notify_experts(outcome, actor_id)

        return result

    async def _notify_experts(self, outcome: ToggleOutcome, raiser_id: str) -> int:
        content = outcome.content
        try:
            root_id = await asyncio.to_thread(self.db.get_thread_root, content.id)
            experts = await asyncio.to_thread(
                self.db.list_experts,
                (content.author_id, raiser_id),
                URGENT_NOTIFY_LIMIT,
            )
            link = f"/discussions/{root_id}?commentId={content.id}"
            created = await self.notifier.notify(
                [expert.id for expert in experts],
                URGENT_TITLE,
                URGENT_MESSAGE,
                URGENT_SEVERITY,
                link,
            )
        except (sqlite3.Error, ConcurrentUpdateError) as e:
            logger.error_tree("Expert Notification Failed", e, [
                ("Content", content.id),
                ("Raised Hands", outcome.after),
            ])
            return 0

        logger.tree("Urgent SME Request", [
            ("Content", content.id),
            ("Raised Hands", outcome.after),
            ("Experts Notified", len(created)),
        ], emoji="🚨")
        return len(created)

    # =========================================================================
    # Reactions & Votes
    # =========================================================================

    async def toggle_reaction(self, actor_id: str, content_id: str, kind: str) -> ReactionResult:
        """Toggle one reaction kind for the actor."""
        if kind not in REACTION_KINDS:
            raise ValueError(f"Unknown reaction kind: {kind}")

        outcome = await self.db.toggle_reaction_async(actor_id, content_id, kind, self._now())
        result = ReactionResult(active=outcome.active, count=outcome.after)

        if outcome.queue_entry is not None:
            result.queued_entry_id = outcome.queue_entry.id
            result.queued_new = outcome.queue_created
            emoji, label = REACTION_KINDS[kind]
            title = (
                "Content Queued By Community Concern" if outcome.queue_created
                else "Content Re-flagged By Community Concern"
            )
            logger.tree(title, [
                ("Content", content_id),
                ("Reaction", f"{emoji} {label}"),
                ("Count", outcome.after),
                ("Queue Entry", outcome.queue_entry.id),
            ], emoji="🚩")
        return result

    async def toggle_vote(self, actor_id: str, content_id: str, value: int) -> VoteResult:
        """Cast, flip or withdraw a +1/-1 vote."""
        if value not in (1, -1):
            raise ValueError("Vote value must be 1 or -1")

        outcome = await self.db.toggle_vote_async(actor_id, content_id, value, self._now())
        logger.debug("Vote Toggled", [
            ("Content", content_id),
            ("Voter", actor_id),
            ("State", outcome.vote_state),
            ("Score", f"{outcome.before} -> {outcome.after}"),
        ])
        return VoteResult(vote_state=outcome.vote_state, score=outcome.after)

    async def get_signal_summary(self, content_id: str, viewer_id: Optional[str] = None) -> dict:
        """Per-kind reaction counts, raise-hand count and vote score."""
        counts = await asyncio.to_thread(self.db.get_signal_counts, content_id, viewer_id)
        content = counts["content"]
        return {
            "content_id": content.id,
            "reactions": {
                kind: {
                    "emoji": emoji,
                    "label": label,
                    "count": counts["reactions"].get(kind, 0),
                    "reacted": kind in counts["viewer_reactions"],
                }
                for kind, (emoji, label) in REACTION_KINDS.items()
            },
            "raise_hand_count": content.raise_hand_count,
            "raised_hand": counts["viewer_raised_hand"],
            "vote_score": content.vote_score,
            "vote_state": counts["viewer_vote"],
        }


__all__ = [
    "SignalEscalation",
    "RaiseHandResult",
    "ReactionResult",
    "VoteResult",
    "crossed",
]
