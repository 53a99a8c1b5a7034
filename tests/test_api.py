import pytest

from trustcore.service import TrustCore
from trustcore.services.api import TrustCoreAPI
from trustcore.services.classifier import SemanticVerdict
from trustcore.utils.helpers import parse_timestamp, to_timestamp
from trustcore.utils.rate_limit import RateLimiter

from tests.conftest import StubSemantic


@pytest.fixture
def core(tmp_path, clock):
    service = TrustCore(
        db_path=str(tmp_path / "api.db"),
        semantic=StubSemantic(),
        webhook_url=None,
        clock=clock,
    )
    now = to_timestamp(clock())
    service.db.upsert_actor("admin", now, is_admin=True, reputation=100)
    service.db.upsert_actor("alice", now, reputation=50)
    service.db.upsert_actor("bob", now, reputation=50)
    yield service
    service.db.close()


@pytest.fixture
async def client(aiohttp_client, core):
    return await aiohttp_client(TrustCoreAPI(core).app)


def as_actor(actor_id):
    return {"X-Actor-Id": actor_id}


async def publish(client, author="alice", body="Magnesium helped my sleep", kind="discussion"):
    resp = await client.post("/api/content", json={"kind": kind, "body": body}, headers=as_actor(author))
    assert resp.status == 201
    return await resp.json()


class TestHealth:
    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.status == 200
        data = await resp.json()
        assert data["status"] == "healthy"
        assert data["database"]["wal_mode"] is True

    async def test_security_headers(self, client):
        resp = await client.get("/health")
        assert resp.headers["X-Content-Type-Options"] == "nosniff"
        assert resp.headers["X-Frame-Options"] == "DENY"


class TestMessagingEndpoints:
    async def test_requires_caller(self, client):
        resp = await client.post("/api/messages", json={"recipient_id": "bob", "content": "hi"})
        assert resp.status == 401

    async def test_send_and_list(self, client):
        resp = await client.post(
            "/api/messages", json={"recipient_id": "bob", "content": "hi bob"}, headers=as_actor("alice")
        )
        assert resp.status == 201
        assert (await resp.json())["recipient_id"] == "bob"

        resp = await client.get("/api/messages", headers=as_actor("bob"))
        conversations = (await resp.json())["conversations"]
        assert conversations[0]["other_id"] == "alice"
        assert conversations[0]["unread_count"] == 1

    async def test_honeypot_is_429_with_rule(self, client):
        resp = await client.post(
            "/api/messages",
            json={"recipient_id": "bob", "content": "hi", "honeypot": "x"},
            headers=as_actor("alice"),
        )
        assert resp.status == 429
        assert (await resp.json())["rule"] == "honeypot"

    async def test_unknown_recipient_is_404(self, client):
        resp = await client.post(
            "/api/messages", json={"recipient_id": "ghost", "content": "hi"}, headers=as_actor("alice")
        )
        assert resp.status == 404

    async def test_malformed_json_is_400(self, client):
        resp = await client.post(
            "/api/messages",
            data="{not json",
            headers={**as_actor("alice"), "Content-Type": "application/json"},
        )
        assert resp.status == 400


class TestContentEndpoints:
    async def test_classify_blacklisted(self, client, core, clock):
        core.db.add_keyword("miracle cure", None, to_timestamp(clock()))
        resp = await client.post("/api/classify", json={"text": "A miracle cure!"}, headers=as_actor("alice"))
        assert resp.status == 200
        data = await resp.json()
        assert data["safe"] is False
        assert data["matched_keywords"] == ["miracle cure"]

    async def test_unsafe_publish_is_422(self, client, core):
        core.semantic.verdict = SemanticVerdict(is_safe=False, reason="Contains personal attacks")
        resp = await client.post(
            "/api/content", json={"kind": "comment", "body": "you fool"}, headers=as_actor("alice")
        )
        assert resp.status == 422
        assert (await resp.json())["error"] == "Contains personal attacks"

    async def test_signals_round_trip(self, client):
        content = await publish(client)
        path = f"/api/content/{content['id']}"

        resp = await client.post(f"{path}/raise-hand", headers=as_actor("bob"))
        assert await resp.json() == {"signaled": True, "count": 1}

        resp = await client.post(f"{path}/reactions", json={"kind": "scientific"}, headers=as_actor("bob"))
        assert await resp.json() == {"active": True, "count": 1}

        resp = await client.post(f"{path}/vote", json={"value": -1}, headers=as_actor("bob"))
        assert await resp.json() == {"vote_state": -1, "score": -1}

        resp = await client.get(f"{path}/signals", headers=as_actor("bob"))
        summary = await resp.json()
        assert summary["raised_hand"] is True
        assert summary["reactions"]["scientific"]["count"] == 1

    async def test_invalid_vote_is_400(self, client):
        content = await publish(client)
        resp = await client.post(
            f"/api/content/{content['id']}/vote", json={"value": 3}, headers=as_actor("bob")
        )
        assert resp.status == 400

    async def test_unknown_content_is_404(self, client):
        resp = await client.get("/api/content/missing/signals")
        assert resp.status == 404


class TestModerationEndpoints:
    async def test_queue_requires_admin(self, client):
        resp = await client.get("/api/moderation/queue", headers=as_actor("alice"))
        assert resp.status == 403

    async def test_flag_resolve_and_terminality(self, client):
        content = await publish(client)
        resp = await client.post(
            f"/api/content/{content['id']}/flag", json={"reason": "Looks like spam"}, headers=as_actor("bob")
        )
        assert resp.status == 201
        entry_id = (await resp.json())["entry"]["id"]

        resp = await client.get("/api/moderation/queue", headers=as_actor("admin"))
        assert [e["id"] for e in (await resp.json())["entries"]] == [entry_id]

        resolve = f"/api/moderation/queue/{entry_id}/resolve"
        resp = await client.post(resolve, json={"decision": "purge"}, headers=as_actor("admin"))
        assert resp.status == 200
        assert (await resp.json())["status"] == "rejected"

        resp = await client.post(resolve, json={"decision": "restore"}, headers=as_actor("admin"))
        assert resp.status == 409

    async def test_dispute_by_author_only(self, client):
        content = await publish(client)
        resp = await client.post(f"/api/content/{content['id']}/flag", headers=as_actor("bob"))
        entry_id = (await resp.json())["entry"]["id"]

        dispute = f"/api/moderation/queue/{entry_id}/dispute"
        resp = await client.post(dispute, json={"reason": "Not spam"}, headers=as_actor("bob"))
        assert resp.status == 403

        resp = await client.post(dispute, json={"reason": "Not spam"}, headers=as_actor("alice"))
        assert resp.status == 200
        assert (await resp.json())["status"] == "pending"

    async def test_timed_ban(self, client, core, clock):
        resp = await client.post(
            "/api/admin/users/bob/ban", json={"duration": "3d", "reason": "Spam"}, headers=as_actor("admin")
        )
        assert resp.status == 200
        data = await resp.json()
        assert data["duration"] == "3 days"
        until = parse_timestamp(data["actor"]["messaging_suspended_until"])
        assert (until - clock()).days == 3

        resp = await client.post(
            "/api/messages", json={"recipient_id": "alice", "content": "hi"}, headers=as_actor("bob")
        )
        assert resp.status == 429
        assert (await resp.json())["rule"] == "suspended"

    async def test_invalid_ban_duration(self, client):
        resp = await client.post(
            "/api/admin/users/bob/ban", json={"duration": "someday"}, headers=as_actor("admin")
        )
        assert resp.status == 400


class TestReputationEndpoints:
    async def test_score_and_recompute(self, client):
        await publish(client, kind="review")

        resp = await client.get("/api/reputation/alice")
        data = await resp.json()
        assert data["score"] == 20
        assert data["next_tier"]["threshold"] == 100

        resp = await client.post("/api/reputation/alice/recompute", headers=as_actor("bob"))
        assert resp.status == 403

        resp = await client.post("/api/reputation/alice/recompute", headers=as_actor("alice"))
        assert resp.status == 200
        assert (await resp.json())["new_score"] == 20

    async def test_unknown_actor_is_404(self, client):
        resp = await client.get("/api/reputation/ghost")
        assert resp.status == 404


class TestRequestRateLimit:
    async def test_limit_returns_retry_after(self, aiohttp_client, core):
        api = TrustCoreAPI(core, rate_limiter=RateLimiter(requests_per_minute=2, burst_limit=10))
        client = await aiohttp_client(api.app)

        for _ in range(2):
            resp = await client.get("/api/reputation/alice")
            assert resp.status == 200

        resp = await client.get("/api/reputation/alice")
        assert resp.status == 429
        assert int(resp.headers["Retry-After"]) >= 1

        resp = await client.get("/health")
        assert resp.status == 200

    async def test_rotating_actor_header_shares_ip_bucket(self, aiohttp_client, core):
        api = TrustCoreAPI(core, rate_limiter=RateLimiter(requests_per_minute=2, burst_limit=10))
        client = await aiohttp_client(api.app)

        for actor_id in ("alice", "bob"):
            resp = await client.get("/api/reputation/alice", headers=as_actor(actor_id))
            assert resp.status == 200

        resp = await client.get("/api/reputation/alice", headers=as_actor("admin"))
        assert resp.status == 429
