"""
TrustCore - Reputation Database Mixin
=====================================

Reads contribution history and persists recomputed reputation.
"""

import asyncio
from typing import Callable

from trustcore.services.db.models import Actor, ContributionCounts


# scorer(actor, counts) -> (score, tier, is_sme)
Scorer = Callable[[Actor, ContributionCounts], tuple[int, int, bool]]


class ReputationMixin:
    """Mixin for reputation persistence."""

    def read_score_inputs(self, actor_id: str) -> tuple[Actor, ContributionCounts]:
        """Actor row and contribution counts from one consistent read."""
        with self._reader() as cursor:
            actor = self._require_actor(cursor, actor_id)
            return actor, self._read_contribution_counts(cursor, actor_id)

    async def read_score_inputs_async(self, actor_id: str) -> tuple[Actor, ContributionCounts]:
        """Async wrapper for read_score_inputs."""
        return await asyncio.to_thread(self.read_score_inputs, actor_id)

    def persist_reputation(self, actor_id: str, scorer: Scorer) -> tuple[Actor, Actor]:
        """
        Recompute and store reputation in one transaction.

        Returns:
            (actor before, actor after)
        """
        with self._transaction() as cursor:
            before = self._require_actor(cursor, actor_id)
            counts = self._read_contribution_counts(cursor, actor_id)
            score, tier, is_sme = scorer(before, counts)
            cursor.execute(
                "UPDATE actors SET reputation = ?, tier = ?, is_sme = ? WHERE id = ?",
                (score, tier, int(is_sme), actor_id)
            )
            return before, self._require_actor(cursor, actor_id)

    async def persist_reputation_async(self, actor_id: str, scorer: Scorer) -> tuple[Actor, Actor]:
        """Async wrapper for persist_reputation."""
        return await asyncio.to_thread(self.persist_reputation, actor_id, scorer)
