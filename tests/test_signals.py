import asyncio

import pytest

from trustcore.core.constants import URGENT_TITLE
from trustcore.core.errors import NotFound
from trustcore.services.db import TrustDatabase
from trustcore.services.moderation_queue import ModerationQueue
from trustcore.services.notifications import NotificationSink
from trustcore.services.signals import SignalEscalation, crossed


def test_crossed():
    assert crossed(9, 10, 10)
    assert crossed(4, 6, 5)
    assert not crossed(10, 11, 10)
    assert not crossed(10, 9, 10)
    assert not crossed(8, 9, 10)


class TestRaiseHand:
    async def test_toggle_is_idempotent(self, signals, db, make_actor, make_content):
        make_actor("author")
        make_actor("u")
        content = make_content("author")

        first = await signals.toggle_raise_hand("u", content.id)
        assert (first.signaled, first.count) == (True, 1)

        second = await signals.toggle_raise_hand("u", content.id)
        assert (second.signaled, second.count) == (False, 0)
        assert db.get_content(content.id).raise_hand_count == 0

    async def test_trending_at_five(self, signals, make_actor, make_content):
        make_actor("author")
        content = make_content("author")
        results = []
        for i in range(6):
            make_actor(f"u{i}")
            results.append(await signals.toggle_raise_hand(f"u{i}", content.id))

        assert [r.trending for r in results] == [False, False, False, False, True, False]

    async def test_urgent_notifies_once(self, signals, sink, make_actor, make_content):
        make_actor("author")
        make_actor("expert", is_expert=True)
        content = make_content("author")

        results = []
        for i in range(11):
            make_actor(f"u{i}")
            results.append(await signals.toggle_raise_hand(f"u{i}", content.id))

        assert [r.urgent for r in results].count(True) == 1
        assert results[9].urgent is True
        assert results[9].notified == 1
        assert results[10].urgent is False
        assert len(sink.sent) == 1
        assert sink.sent[0]["title"] == URGENT_TITLE

    async def test_fan_out_excludes_author_and_raiser_and_is_capped(
        self, signals, sink, db, make_actor, make_content
    ):
        make_actor("author", is_expert=True)
        for i in range(12):
            make_actor(f"expert{i:02d}", is_expert=True, reputation=100 - i)
        content = make_content("author")

        # Nine non-expert raisers, then an expert pushes it to ten
        for i in range(9):
            make_actor(f"u{i}")
            await signals.toggle_raise_hand(f"u{i}", content.id)
        result = await signals.toggle_raise_hand("expert00", content.id)

        assert result.urgent is True
        assert result.notified == 10
        notified = sink.sent[0]["actor_ids"]
        assert "author" not in notified
        assert "expert00" not in notified
        assert len(notified) == 10
        assert db.list_notifications("expert01")[0].title == URGENT_TITLE

    async def test_link_points_at_thread_root(self, signals, sink, make_actor, make_content):
        make_actor("author")
        make_actor("sme", is_sme=True)
        root = make_content("author", kind="discussion", content_id="root")
        reply = make_content("author", kind="comment", parent_id=root.id, content_id="reply")

        for i in range(10):
            make_actor(f"u{i}")
            await signals.toggle_raise_hand(f"u{i}", reply.id)

        assert sink.sent[0]["link"] == "/discussions/root?commentId=reply"
        assert sink.sent[0]["actor_ids"] == ["sme"]

    async def test_no_experts_available(self, signals, sink, make_actor, make_content):
        make_actor("author")
        content = make_content("author")
        results = []
        for i in range(10):
            make_actor(f"u{i}")
            results.append(await signals.toggle_raise_hand(f"u{i}", content.id))

        assert results[-1].urgent is True
        assert results[-1].notified == 0
        assert sink.sent == []

    async def test_unknown_content(self, signals, make_actor):
        make_actor("u")
        with pytest.raises(NotFound):
            await signals.toggle_raise_hand("u", "missing")


class TestReactions:
    async def test_toggle_restores_count(self, signals, make_actor, make_content):
        make_actor("author")
        make_actor("u")
        content = make_content("author")

        on = await signals.toggle_reaction("u", content.id, "scientific")
        off = await signals.toggle_reaction("u", content.id, "scientific")
        assert (on.active, on.count) == (True, 1)
        assert (off.active, off.count) == (False, 0)

    async def test_kinds_are_independent(self, signals, make_actor, make_content):
        make_actor("author")
        make_actor("u")
        content = make_content("author")

        await signals.toggle_reaction("u", content.id, "scientific")
        await signals.toggle_reaction("u", content.id, "innovation")
        summary = await signals.get_signal_summary(content.id, "u")

        assert summary["reactions"]["scientific"]["count"] == 1
        assert summary["reactions"]["innovation"]["reacted"] is True
        assert summary["reactions"]["safety"]["count"] == 0

    async def test_unknown_kind(self, signals):
        with pytest.raises(ValueError):
            await signals.toggle_reaction("u", "c", "angry")


class TestVotes:
    async def test_vote_deltas(self, signals, make_actor, make_content):
        make_actor("author")
        make_actor("u")
        content = make_content("author")

        up = await signals.toggle_vote("u", content.id, 1)
        assert (up.vote_state, up.score) == (1, 1)

        flipped = await signals.toggle_vote("u", content.id, -1)
        assert (flipped.vote_state, flipped.score) == (-1, -1)

        withdrawn = await signals.toggle_vote("u", content.id, -1)
        assert (withdrawn.vote_state, withdrawn.score) == (0, 0)

    async def test_invalid_value(self, signals):
        with pytest.raises(ValueError):
            await signals.toggle_vote("u", "c", 2)

    async def test_summary_reports_viewer_state(self, signals, make_actor, make_content):
        make_actor("author")
        make_actor("u")
        content = make_content("author")
        await signals.toggle_vote("u", content.id, 1)
        await signals.toggle_raise_hand("u", content.id)

        summary = await signals.get_signal_summary(content.id, "u")
        assert summary["vote_score"] == 1
        assert summary["vote_state"] == 1
        assert summary["raised_hand"] is True
        assert summary["raise_hand_count"] == 1

        anonymous = await signals.get_signal_summary(content.id)
        assert anonymous["vote_state"] == 0
        assert anonymous["raised_hand"] is False


class TestConcurrentSignals:
    """Counters and threshold effects hold when toggles race."""

    async def test_racing_raisers_fire_urgent_once(self, signals, sink, db, make_actor, make_content):
        make_actor("author")
        make_actor("expert", is_expert=True)
        content = make_content("author")
        raisers = [f"u{i}" for i in range(12)]
        for actor_id in raisers:
            make_actor(actor_id)

        results = await asyncio.gather(
            *(signals.toggle_raise_hand(actor_id, content.id) for actor_id in raisers)
        )

        assert sorted(r.count for r in results) == list(range(1, 13))
        assert sum(r.urgent for r in results) == 1
        assert sum(r.trending for r in results) == 1
        assert len(sink.sent) == 1
        assert db.get_content(content.id).raise_hand_count == 12

    async def test_racing_reactions_keep_exact_count(self, signals, db, make_actor, make_content):
        make_actor("author")
        content = make_content("author")
        for i in range(8):
            make_actor(f"u{i}")

        await asyncio.gather(
            *(signals.toggle_reaction(f"u{i}", content.id, "scientific") for i in range(8))
        )

        summary = await signals.get_signal_summary(content.id)
        assert summary["reactions"]["scientific"]["count"] == 8

    async def test_two_instances_share_one_database(self, tmp_path, db, clock, make_actor, make_content):
        make_actor("author")
        content = make_content("author")
        for i in range(10):
            make_actor(f"u{i}")

        other = TrustDatabase(str(tmp_path / "trustcore.db"))
        try:
            first = SignalEscalation(db, NotificationSink(db, None, clock), clock)
            second = SignalEscalation(other, NotificationSink(other, None, clock), clock)
            await asyncio.gather(*(
                (first if i % 2 else second).toggle_raise_hand(f"u{i}", content.id)
                for i in range(10)
            ))
            assert db.get_content(content.id).raise_hand_count == 10
            assert other.get_content(content.id).raise_hand_count == 10
        finally:
            other.close()

    async def test_racing_flags_open_one_entry(self, db, clock, make_actor, make_content):
        make_actor("author")
        content = make_content("author")
        queue = ModerationQueue(db, clock)

        results = await asyncio.gather(*(queue.enqueue(content.id, "manual", "Spam") for _ in range(6)))

        assert sum(created for _, created in results) == 1
        assert len({entry.id for entry, _ in results}) == 1
        assert len(db.list_entries("pending")) == 1
        assert db.get_content(content.id).flag_count == 6
