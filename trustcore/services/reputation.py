"""
TrustCore - Reputation Engine
=============================

Converts contribution history into a score and a tier.

Score = 10 per discussion + 5 per comment + 20 per review, plus 500 for
verified experts. Removed content does not count. Reaching the tier 5
threshold (1000) makes an actor a reputation-derived expert (SME);
dropping below it clears that status.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Optional

from trustcore.core.constants import (
    CONTRIBUTION_WEIGHTS,
    SME_SCORE_THRESHOLD,
    TIER_LADDER,
    VERIFIED_EXPERT_BONUS,
)
from trustcore.core.errors import ConcurrentUpdateError, NotFound
from trustcore.core.logger import logger
from trustcore.services.db import Actor, ContributionCounts, TrustDatabase
from trustcore.utils.retry import retry_once


# =============================================================================
# Data Classes
# =============================================================================

@dataclass(frozen=True)
class ScoreResult:
    """Score, tier and the per-source breakdown for one actor."""
    score: int
    tier: int
    tier_name: str
    breakdown: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "tier": self.tier,
            "tier_name": self.tier_name,
            "breakdown": dict(self.breakdown),
            "next_tier": next_tier(self.tier),
        }


@dataclass(frozen=True)
class RecomputeResult:
    """Stored reputation before and after a recompute."""
    actor_id: str
    old_score: int
    old_tier: int
    new_score: int
    new_tier: int
    promoted: bool
    demoted: bool
    sme_changed: bool
    is_sme: bool

    def to_dict(self) -> dict:
        return {
            "actor_id": self.actor_id,
            "old_score": self.old_score,
            "old_tier": self.old_tier,
            "new_score": self.new_score,
            "new_tier": self.new_tier,
            "promoted": self.promoted,
            "demoted": self.demoted,
            "sme_changed": self.sme_changed,
            "is_sme": self.is_sme,
        }


# =============================================================================
# Pure Scoring
# =============================================================================

def tier_for_score(score: int) -> tuple[int, str]:
    """Highest tier whose threshold is at or below the score. Never fails."""
    tier, name = TIER_LADDER[0][1], TIER_LADDER[0][2]
    for threshold, ladder_tier, ladder_name in TIER_LADDER:
        if score >= threshold:
            tier, name = ladder_tier, ladder_name
    return tier, name


def next_tier(tier: int) -> Optional[dict]:
    """The rung above `tier`, or None at the top of the ladder."""
    for threshold, ladder_tier, ladder_name in TIER_LADDER:
        if ladder_tier > tier:
            return {"tier": ladder_tier, "name": ladder_name, "threshold": threshold}
    return None


def score_contributions(counts: ContributionCounts, is_expert: bool) -> ScoreResult:
    breakdown = {
        "discussions": counts.discussions * CONTRIBUTION_WEIGHTS["discussion"],
        "comments": counts.comments * CONTRIBUTION_WEIGHTS["comment"],
        "reviews": counts.reviews * CONTRIBUTION_WEIGHTS["review"],
        "expert_bonus": VERIFIED_EXPERT_BONUS if is_expert else 0,
    }
    score = max(0, sum(breakdown.values()))
    tier, name = tier_for_score(score)
    return ScoreResult(score=score, tier=tier, tier_name=name, breakdown=breakdown)


def _scorer(actor: Actor, counts: ContributionCounts) -> tuple[int, int, bool]:
    result = score_contributions(counts, actor.is_expert)
    return result.score, result.tier, result.score >= SME_SCORE_THRESHOLD


# =============================================================================
# Reputation Engine
# =============================================================================

class ReputationEngine:
    """Computes and persists reputation."""

    def __init__(self, database: TrustDatabase) -> None:
        self.db = database

    async def compute_score(self, actor_id: str) -> ScoreResult:
        """Score an actor from current history without writing anything."""
        actor, counts = await self.db.read_score_inputs_async(actor_id)
        return score_contributions(counts, actor.is_expert)

    @retry_once()
    async def recompute_and_persist(self, actor_id: str) -> RecomputeResult:
        """
        Recompute and store reputation, tier and SME status in one transaction.

        Raises:
            NotFound: Unknown actor
        """
        before, after = await self.db.persist_reputation_async(actor_id, _scorer)

        result = RecomputeResult(
            actor_id=actor_id,
            old_score=before.reputation,
            old_tier=before.tier,
            new_score=after.reputation,
            new_tier=after.tier,
            promoted=after.tier > before.tier,
            demoted=after.tier < before.tier,
            sme_changed=after.is_sme != before.is_sme,
            is_sme=after.is_sme,
        )

        if result.promoted or result.demoted or result.sme_changed:
            logger.tree_section("Reputation Tier Changed", {
                "Before": [
                    ("Score", before.reputation),
                    ("Tier", before.tier),
                    ("SME", "Yes" if before.is_sme else "No"),
                ],
                "After": [
                    ("Score", after.reputation),
                    ("Tier", after.tier),
                    ("SME", "Yes" if after.is_sme else "No"),
                ],
            }, emoji="🏅")
        else:
            logger.debug("Reputation Recomputed", [
                ("Actor", actor_id),
                ("Score", after.reputation),
                ("Tier", after.tier),
            ])
        return result

    async def recompute_all(self) -> list[RecomputeResult]:
        """Batch recompute over every active actor. Failures are logged and skipped."""
        actor_ids = await asyncio.to_thread(self.db.list_active_actor_ids)
        results: list[RecomputeResult] = []
        failed = 0
        for actor_id in actor_ids:
            try:
                results.append(await self.recompute_and_persist(actor_id))
            except (NotFound, ConcurrentUpdateError) as e:
                failed += 1
                logger.warning("Reputation Recompute Skipped", [
                    ("Actor", actor_id),
                    ("Error", e.reason),
                ])

        logger.tree("Reputation Batch Complete", [
            ("Actors", len(actor_ids)),
            ("Promoted", sum(1 for r in results if r.promoted)),
            ("Demoted", sum(1 for r in results if r.demoted)),
            ("Failed", failed),
        ], emoji="📊")
        return results


__all__ = [
    "ScoreResult",
    "RecomputeResult",
    "ReputationEngine",
    "tier_for_score",
    "next_tier",
    "score_contributions",
]
