import asyncio
import sqlite3
from datetime import timedelta
from types import SimpleNamespace
from unittest.mock import MagicMock

import openai
import pytest

from trustcore.core.constants import (
    REASON_API_ERROR,
    REASON_BLACKLIST_UNAVAILABLE,
    REASON_INVALID_RESPONSE,
    REASON_NO_RESPONSE,
    REASON_NOT_CONFIGURED,
    REASON_UNPARSEABLE,
)
from trustcore.core.errors import ContentRejected, DependencyFailure, NotFound, Unauthorized
from trustcore.services.classifier import (
    ContentClassifier,
    OpenAISemanticClassifier,
    SemanticVerdict,
    parse_verdict,
)
from trustcore.utils.helpers import to_timestamp

from tests.conftest import StubSemantic


def completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def openai_semantic(create):
    semantic = OpenAISemanticClassifier(api_key=None, timeout=1)
    semantic.openai_client = MagicMock()
    semantic.openai_client.chat.completions.create.side_effect = create
    return semantic


class TestParseVerdict:
    def test_valid_verdict(self):
        verdict = parse_verdict('{"isSafe": true, "reason": "Technical discussion", "confidence": "high"}')
        assert verdict == SemanticVerdict(is_safe=True, reason="Technical discussion", confidence="high")

    def test_missing_reason_gets_placeholder(self):
        assert parse_verdict('{"isSafe": false}').reason == "No reason given"

    @pytest.mark.parametrize("raw, reason", [
        (None, REASON_NO_RESPONSE),
        ("   ", REASON_NO_RESPONSE),
        ("not json", REASON_UNPARSEABLE),
        ('{"isSafe": "true"}', REASON_INVALID_RESPONSE),
        ('{"reason": "ok"}', REASON_INVALID_RESPONSE),
        ("[true]", REASON_INVALID_RESPONSE),
    ])
    def test_malformed_raises(self, raw, reason):
        with pytest.raises(DependencyFailure) as exc:
            parse_verdict(raw)
        assert exc.value.reason == reason


class TestFailClosed:
    """Every semantic failure mode yields an unsafe verdict."""

    async def test_no_api_key(self, db, clock):
        classifier = ContentClassifier(db, OpenAISemanticClassifier(api_key=None), clock)
        result = await classifier.classify("hello there")
        assert result.safe is False
        assert result.reason == REASON_NOT_CONFIGURED

    async def test_api_error(self, db, clock):
        def create(**kwargs):
            raise openai.APIConnectionError(request=MagicMock())

        classifier = ContentClassifier(db, openai_semantic(create), clock)
        result = await classifier.classify("hello there")
        assert result.safe is False
        assert result.reason == REASON_API_ERROR

    async def test_malformed_json(self, db, clock):
        classifier = ContentClassifier(db, openai_semantic(lambda **kwargs: completion("{oops")), clock)
        result = await classifier.classify("hello there")
        assert result.safe is False
        assert result.reason == REASON_UNPARSEABLE

    async def test_empty_choices(self, db, clock):
        classifier = ContentClassifier(
            db, openai_semantic(lambda **kwargs: SimpleNamespace(choices=[])), clock
        )
        result = await classifier.classify("hello there")
        assert result.safe is False
        assert result.reason == REASON_NO_RESPONSE

    async def test_timeout(self, db, clock):
        classifier = ContentClassifier(db, StubSemantic(error=asyncio.TimeoutError()), clock)
        result = await classifier.classify("hello there")
        assert result.safe is False
        assert result.reason == REASON_API_ERROR

    async def test_unexpected_exception(self, db, clock):
        classifier = ContentClassifier(db, StubSemantic(error=RuntimeError("boom")), clock)
        result = await classifier.classify("hello there")
        assert result.safe is False
        assert "boom" not in result.reason

    async def test_openai_success(self, db, clock):
        create = MagicMock(return_value=completion('{"isSafe": true, "reason": "Clean"}'))
        semantic = openai_semantic(create)
        classifier = ContentClassifier(db, semantic, clock)

        result = await classifier.classify("This protocol helped me sleep", "guest")
        assert result.safe is True
        kwargs = create.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["max_tokens"] == 150


class TestBlacklist:
    async def test_keyword_match_is_case_insensitive(self, db, classifier, semantic, clock):
        db.add_keyword("Miracle Cure", "Health misinformation", to_timestamp(clock()))
        result = await classifier.classify("Try this MIRACLE CURE today")
        assert result.safe is False
        assert result.matched_keywords == ["miracle cure"]
        assert "Health misinformation" in result.reason
        assert semantic.calls == []

    async def test_deactivated_keyword_ignored(self, db, classifier, clock):
        keyword = db.add_keyword("spam", None, to_timestamp(clock()))
        db.deactivate_keyword(keyword.id)
        result = await classifier.classify("not spam at all")
        assert result.safe is True

    async def test_blacklist_unavailable(self, db, classifier, monkeypatch):
        def broken(active_only=True):
            raise sqlite3.OperationalError("disk I/O error")

        monkeypatch.setattr(db, "list_keywords", broken)
        result = await classifier.classify("hello")
        assert result.safe is False
        assert result.reason == REASON_BLACKLIST_UNAVAILABLE

    async def test_unknown_profile(self, classifier):
        with pytest.raises(ValueError):
            await classifier.classify("hello", "nonexistent")


class TestPublishContent:
    async def test_safe_content_published(self, classifier, make_actor, db):
        make_actor("author")
        content = await classifier.publish_content("author", "discussion", "Magnesium and sleep")
        assert db.get_content(content.id).body == "Magnesium and sleep"

    async def test_unsafe_content_not_persisted(self, db, make_actor, clock):
        semantic = StubSemantic(SemanticVerdict(is_safe=False, reason="Contains hate speech"))
        classifier = ContentClassifier(db, semantic, clock)
        make_actor("author")

        with pytest.raises(ContentRejected) as exc:
            await classifier.publish_content("author", "comment", "nasty words")
        assert exc.value.reason == "Contains hate speech"
        assert db.table_count("content_items") == 0

    async def test_unknown_kind(self, classifier, make_actor):
        make_actor("author")
        with pytest.raises(ValueError):
            await classifier.publish_content("author", "poll", "body")

    async def test_empty_body(self, classifier, make_actor):
        make_actor("author")
        with pytest.raises(ContentRejected):
            await classifier.publish_content("author", "comment", "  ")

    async def test_banned_author(self, classifier, make_actor):
        make_actor("author", messaging_banned=True)
        with pytest.raises(Unauthorized):
            await classifier.publish_content("author", "comment", "hello")

    async def test_suspended_author_until_expiry(self, classifier, make_actor, clock):
        make_actor("author", messaging_suspended_until=to_timestamp(clock() + timedelta(days=3)))
        with pytest.raises(Unauthorized):
            await classifier.publish_content("author", "comment", "hello")

        clock.advance(days=3, seconds=1)
        content = await classifier.publish_content("author", "comment", "hello")
        assert content.author_id == "author"

    async def test_unknown_parent(self, classifier, make_actor):
        make_actor("author")
        with pytest.raises(NotFound):
            await classifier.publish_content("author", "comment", "hello", parent_id="missing")


class TestRecheck:
    async def test_safe_content_left_alone(self, classifier, make_actor, make_content):
        make_actor("author")
        content = make_content("author")
        result, entry = await classifier.recheck_content(content.id)
        assert result.safe is True
        assert entry is None

    async def test_blacklisted_content_queued(self, db, classifier, make_actor, make_content, clock):
        make_actor("author")
        content = make_content("author", body="buy cheap pills here")
        db.add_keyword("cheap pills", "Spam", to_timestamp(clock()))

        result, entry = await classifier.recheck_content(content.id)
        assert result.safe is False
        assert entry.source == "blacklist"
        assert entry.status == "pending"

        stored = db.get_content(content.id)
        assert stored.is_flagged is True
        assert stored.is_removed is False

    async def test_classifier_rejection_queued(self, db, make_actor, make_content, clock):
        semantic = StubSemantic(SemanticVerdict(is_safe=False, reason="Spam/promotional content"))
        classifier = ContentClassifier(db, semantic, clock)
        make_actor("author")
        content = make_content("author")

        _, entry = await classifier.recheck_content(content.id)
        assert entry.source == "classifier"
        assert entry.reason == "Spam/promotional content"
