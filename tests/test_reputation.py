import pytest

from trustcore.core.errors import NotFound
from trustcore.services.db import ContributionCounts
from trustcore.services.reputation import next_tier, score_contributions, tier_for_score


class TestTierLadder:
    @pytest.mark.parametrize("score, tier", [
        (0, 1), (99, 1), (100, 2), (299, 2), (300, 3),
        (600, 4), (999, 4), (1000, 5), (2000, 6), (4999, 6), (5000, 7), (10 ** 6, 7),
    ])
    def test_boundaries(self, score, tier):
        assert tier_for_score(score)[0] == tier

    def test_next_tier(self):
        assert next_tier(1) == {"tier": 2, "name": "Creative Contributor", "threshold": 100}
        assert next_tier(7) is None


class TestScoring:
    def test_weights(self):
        result = score_contributions(ContributionCounts(discussions=2, comments=3, reviews=1), False)
        assert result.score == 2 * 10 + 3 * 5 + 20
        assert result.breakdown["expert_bonus"] == 0

    def test_expert_bonus(self):
        result = score_contributions(ContributionCounts(), True)
        assert result.score == 500
        assert result.tier == 3

    async def test_twenty_comments_reach_tier_two(self, reputation, make_actor, make_content):
        make_actor("member")
        for _ in range(20):
            make_content("member", kind="comment")

        result = await reputation.compute_score("member")
        assert result.score == 100
        assert result.tier == 2
        assert result.tier_name == "Creative Contributor"

    async def test_compute_is_pure(self, reputation, db, make_actor, make_content):
        make_actor("member")
        make_content("member", kind="review")

        first = await reputation.compute_score("member")
        second = await reputation.compute_score("member")
        assert first == second
        assert db.get_actor("member").reputation == 0

    async def test_removed_content_excluded(self, reputation, db, make_actor, make_content):
        make_actor("member")
        kept = make_content("member", kind="discussion")
        removed = make_content("member", kind="discussion")
        with db._transaction() as cursor:
            cursor.execute("UPDATE content_items SET is_removed = 1 WHERE id = ?", (removed.id,))

        result = await reputation.compute_score("member")
        assert result.score == 10
        assert kept.id != removed.id

    async def test_unknown_actor(self, reputation):
        with pytest.raises(NotFound):
            await reputation.compute_score("ghost")


class TestRecompute:
    async def test_promotion_persisted(self, reputation, db, make_actor, make_content):
        make_actor("member")
        for _ in range(5):
            make_content("member", kind="review")

        result = await reputation.recompute_and_persist("member")
        assert (result.old_score, result.new_score) == (0, 100)
        assert (result.old_tier, result.new_tier) == (1, 2)
        assert result.promoted is True
        assert result.demoted is False

        stored = db.get_actor("member")
        assert stored.reputation == 100
        assert stored.tier == 2

    async def test_sme_promotion_and_demotion(self, reputation, db, make_actor, make_content):
        make_actor("member")
        reviews = [make_content("member", kind="review") for _ in range(50)]

        result = await reputation.recompute_and_persist("member")
        assert result.new_score == 1000
        assert result.sme_changed is True
        assert db.get_actor("member").is_sme is True

        with db._transaction() as cursor:
            cursor.execute("UPDATE content_items SET is_removed = 1 WHERE id = ?", (reviews[0].id,))

        result = await reputation.recompute_and_persist("member")
        assert result.new_score == 980
        assert result.demoted is True
        assert result.sme_changed is True
        assert db.get_actor("member").is_sme is False

    async def test_unchanged_recompute(self, reputation, make_actor):
        make_actor("member")
        result = await reputation.recompute_and_persist("member")
        assert not (result.promoted or result.demoted or result.sme_changed)

    async def test_reset_then_recompute_restores(self, reputation, queue, admin, db, make_actor, make_content):
        make_actor("member")
        for _ in range(10):
            make_content("member", kind="discussion")
        await reputation.recompute_and_persist("member")

        await queue.reset_reputation("admin", "member")
        assert db.get_actor("member").reputation == 0

        result = await reputation.recompute_and_persist("member")
        assert result.new_score == 100

    async def test_recompute_all(self, reputation, db, make_actor, make_content):
        make_actor("a")
        make_actor("b")
        make_actor("gone", is_active=False)
        make_content("a", kind="review")

        results = await reputation.recompute_all()
        assert sorted(r.actor_id for r in results) == ["a", "b"]
        assert db.get_actor("a").reputation == 20
