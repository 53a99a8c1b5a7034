import os

# Must be set before trustcore.core.logger is imported
os.environ["TRUSTCORE_LOG_TO_FILE"] = "0"

from datetime import datetime, timedelta, timezone

import pytest

from trustcore.services.abuse_guard import AbuseGuard
from trustcore.services.classifier import ContentClassifier, SemanticVerdict
from trustcore.services.db import TrustDatabase
from trustcore.services.moderation_queue import ModerationQueue
from trustcore.services.notifications import NotificationSink
from trustcore.services.reputation import ReputationEngine
from trustcore.services.signals import SignalEscalation
from trustcore.utils.helpers import to_timestamp


class FakeClock:
    """Controllable clock; call it to read, `advance` to move forward."""

    def __init__(self, start=None):
        self.now = start or datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class StubSemantic:
    """Semantic classifier stand-in returning a fixed verdict or raising."""

    def __init__(self, verdict=None, error=None):
        self.verdict = verdict or SemanticVerdict(is_safe=True, reason="Clean")
        self.error = error
        self.calls = []

    async def classify(self, text, profile="general"):
        self.calls.append((text, profile))
        if self.error is not None:
            raise self.error
        return self.verdict


class RecordingSink(NotificationSink):
    """NotificationSink that also remembers every notify call."""

    def __init__(self, database, clock):
        super().__init__(database, webhook_url=None, clock=clock)
        self.sent = []

    async def notify(self, actor_ids, title, message, severity="info", link=None):
        actor_ids = list(actor_ids)
        self.sent.append({
            "actor_ids": actor_ids,
            "title": title,
            "message": message,
            "severity": severity,
            "link": link,
        })
        return await super().notify(actor_ids, title, message, severity, link)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def db(tmp_path):
    database = TrustDatabase(str(tmp_path / "trustcore.db"))
    yield database
    database.close()


@pytest.fixture
def make_actor(db, clock):
    def _make(actor_id, **fields):
        return db.upsert_actor(actor_id, to_timestamp(clock()), display_name=actor_id.title(), **fields)
    return _make


@pytest.fixture
def make_content(db, clock):
    counter = {"n": 0}

    def _make(author_id, kind="comment", body="Helpful comment", parent_id=None, content_id=None):
        counter["n"] += 1
        return db.insert_content(
            content_id or f"c{counter['n']}", kind, author_id, body, to_timestamp(clock()), parent_id
        )
    return _make


@pytest.fixture
def semantic():
    return StubSemantic()


@pytest.fixture
def classifier(db, semantic, clock):
    return ContentClassifier(db, semantic, clock)


@pytest.fixture
def guard(db, clock):
    return AbuseGuard(db, clock=clock)


@pytest.fixture
def queue(db, clock):
    return ModerationQueue(db, clock)


@pytest.fixture
def sink(db, clock):
    return RecordingSink(db, clock)


@pytest.fixture
def signals(db, sink, clock):
    return SignalEscalation(db, sink, clock)


@pytest.fixture
def reputation(db):
    return ReputationEngine(db)


@pytest.fixture
def admin(make_actor):
    return make_actor("admin", is_admin=True, reputation=100)
