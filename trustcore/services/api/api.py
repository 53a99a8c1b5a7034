"""
TrustCore - HTTP API Server
===========================

aiohttp front end for the trust-and-safety core.

The calling actor is identified by the X-Actor-Id header, set by the
gateway in front of this service.
"""

import asyncio
from dataclasses import asdict
from datetime import datetime
from typing import Optional

from aiohttp import web

from trustcore.core.config import (
    API_BURST_LIMIT,
    API_HOST,
    API_PORT,
    API_REQUESTS_PER_MINUTE,
)
from trustcore.core.errors import Unauthorized
from trustcore.core.logger import logger
from trustcore.service import TrustCore
from trustcore.services.api.constants import (
    CLEANUP_INTERVAL,
    CONVERSATION_PAGE_SIZE,
    DEFAULT_BAN_DURATION,
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
)
from trustcore.services.api.middleware import (
    ACTOR_HEADER,
    RATE_LIMITER_KEY,
    error_middleware,
    rate_limit_middleware,
    security_headers_middleware,
)
from trustcore.utils.duration import format_duration, parse_duration
from trustcore.utils.rate_limit import RateLimiter


def _caller(request: web.Request) -> str:
    actor_id = request.headers.get(ACTOR_HEADER, "").strip()
    if not actor_id:
        raise Unauthorized("Sign in required.")
    return actor_id


async def _json_body(request: web.Request) -> dict:
    if not request.can_read_body:
        return {}
    data = await request.json()
    if not isinstance(data, dict):
        raise ValueError("Request body must be a JSON object")
    return data


def _page(request: web.Request, default: int = DEFAULT_PAGE_SIZE) -> tuple[int, int]:
    limit = int(request.query.get("limit", default))
    offset = int(request.query.get("offset", 0))
    if limit < 1 or offset < 0:
        raise ValueError("limit must be positive and offset non-negative")
    return min(limit, MAX_PAGE_SIZE), offset


def _entry_id(request: web.Request) -> int:
    try:
        return int(request.match_info["entry_id"])
    except ValueError:
        raise ValueError("Queue entry id must be an integer") from None


class TrustCoreAPI:
    """API server for TrustCore."""

    def __init__(
        self,
        core: TrustCore,
        host: str = API_HOST,
        port: int = API_PORT,
        rate_limiter: Optional[RateLimiter] = None,
    ) -> None:
        self.core = core
        self.host = host
        self.port = port
        self._start_time: Optional[datetime] = None
        self.app = web.Application(middlewares=[
            security_headers_middleware,
            rate_limit_middleware,
            error_middleware,
        ])
        self.app[RATE_LIMITER_KEY] = rate_limiter or RateLimiter(
            requests_per_minute=API_REQUESTS_PER_MINUTE,
            burst_limit=API_BURST_LIMIT,
        )
        self.runner: Optional[web.AppRunner] = None
        self._cleanup_task: Optional[asyncio.Task] = None
        self._setup_routes()

    def _setup_routes(self) -> None:
        """Configure API routes."""
        router = self.app.router

        # Messaging
        router.add_post("/api/messages", self.handle_send_message)
        router.add_get("/api/messages", self.handle_list_conversations)
        router.add_get("/api/messages/{other_id}", self.handle_get_conversation)
        router.add_post("/api/messages/{other_id}/read", self.handle_mark_read)

        # Classification & content
        router.add_post("/api/classify", self.handle_classify)
        router.add_post("/api/content", self.handle_publish)
        router.add_post("/api/content/{content_id}/raise-hand", self.handle_raise_hand)
        router.add_post("/api/content/{content_id}/reactions", self.handle_reaction)
        router.add_post("/api/content/{content_id}/vote", self.handle_vote)
        router.add_get("/api/content/{content_id}/signals", self.handle_signals)
        router.add_post("/api/content/{content_id}/flag", self.handle_flag)
        router.add_post("/api/content/{content_id}/recheck", self.handle_recheck)

        # Moderation queue
        router.add_get("/api/moderation/queue", self.handle_queue)
        router.add_get("/api/moderation/mine", self.handle_my_flagged)
        router.add_post("/api/moderation/queue/{entry_id}/resolve", self.handle_resolve)
        router.add_post("/api/moderation/queue/{entry_id}/dispute", self.handle_dispute)

        # Admin
        router.add_post("/api/admin/users/{actor_id}/ban", self.handle_ban)
        router.add_post("/api/admin/users/{actor_id}/unban", self.handle_unban)
        router.add_post("/api/admin/users/{actor_id}/expert", self.handle_grant_expert)
        router.add_delete("/api/admin/users/{actor_id}/expert", self.handle_revoke_expert)
        router.add_get("/api/admin/blacklist", self.handle_list_blacklist)
        router.add_post("/api/admin/blacklist", self.handle_add_blacklist)
        router.add_delete("/api/admin/blacklist/{keyword_id}", self.handle_remove_blacklist)
        router.add_get("/api/admin/actions", self.handle_admin_actions)

        # Reputation & notifications
        router.add_get("/api/reputation/{actor_id}", self.handle_reputation)
        router.add_post("/api/reputation/{actor_id}/recompute", self.handle_recompute)
        router.add_get("/api/notifications", self.handle_notifications)
        router.add_post("/api/notifications/read", self.handle_notifications_read)

        router.add_get("/health", self.handle_health)

    # =========================================================================
    # Messaging Handlers
    # =========================================================================

    async def handle_send_message(self, request: web.Request) -> web.Response:
        """POST /api/messages - Send a direct message through the abuse guard."""
        sender_id = _caller(request)
        data = await _json_body(request)
        recipient_id = data.get("recipient_id")
        if not recipient_id:
            raise ValueError("recipient_id is required")

        message = await self.core.send_message(
            sender_id, str(recipient_id), data.get("content") or "", data.get("honeypot")
        )
        return web.json_response(asdict(message), status=201)

    async def handle_list_conversations(self, request: web.Request) -> web.Response:
        """GET /api/messages - Latest message per counterpart."""
        actor_id = _caller(request)
        conversations = await self.core.guard.list_conversations(actor_id)
        return web.json_response({"conversations": [asdict(c) for c in conversations]})

    async def handle_get_conversation(self, request: web.Request) -> web.Response:
        actor_id = _caller(request)
        limit, _ = _page(request, CONVERSATION_PAGE_SIZE)
        messages = await self.core.guard.get_conversation(
            actor_id, request.match_info["other_id"], limit
        )
        return web.json_response({"messages": [asdict(m) for m in messages]})

    async def handle_mark_read(self, request: web.Request) -> web.Response:
        actor_id = _caller(request)
        updated = await self.core.guard.mark_conversation_read(actor_id, request.match_info["other_id"])
        return web.json_response({"marked_read": updated})

    # =========================================================================
    # Content Handlers
    # =========================================================================

    async def handle_classify(self, request: web.Request) -> web.Response:
        """POST /api/classify - Run the moderation pipeline without persisting."""
        _caller(request)
        data = await _json_body(request)
        text = data.get("text")
        if not isinstance(text, str):
            raise ValueError("text is required")

        result = await self.core.classify_content(text, data.get("profile", "general"))
        return web.json_response(result.to_dict())

    async def handle_publish(self, request: web.Request) -> web.Response:
        """POST /api/content - Screen and publish a discussion, comment or review."""
        author_id = _caller(request)
        data = await _json_body(request)
        content = await self.core.classifier.publish_content(
            author_id,
            data.get("kind", ""),
            data.get("body") or "",
            data.get("parent_id"),
            data.get("profile", "general"),
        )
        return web.json_response(asdict(content), status=201)

    async def handle_raise_hand(self, request: web.Request) -> web.Response:
        actor_id = _caller(request)
        result = await self.core.toggle_raise_hand(actor_id, request.match_info["content_id"])
        return web.json_response(result.to_dict())

    async def handle_reaction(self, request: web.Request) -> web.Response:
        actor_id = _caller(request)
        data = await _json_body(request)
        result = await self.core.toggle_reaction(
            actor_id, request.match_info["content_id"], data.get("kind", "")
        )
        return web.json_response(result.to_dict())

    async def handle_vote(self, request: web.Request) -> web.Response:
        actor_id = _caller(request)
        data = await _json_body(request)
        value = data.get("value")
        if not isinstance(value, int) or isinstance(value, bool):
            raise ValueError("value must be 1 or -1")
        result = await self.core.toggle_vote(actor_id, request.match_info["content_id"], value)
        return web.json_response(result.to_dict())

    async def handle_signals(self, request: web.Request) -> web.Response:
        """GET /api/content/{id}/signals - Counts plus the viewer's own state."""
        viewer_id = request.headers.get(ACTOR_HEADER) or None
        summary = await self.core.signals.get_signal_summary(
            request.match_info["content_id"], viewer_id
        )
        return web.json_response(summary)

    async def handle_flag(self, request: web.Request) -> web.Response:
        """POST /api/content/{id}/flag - Manual report by a member."""
        reporter_id = _caller(request)
        data = await _json_body(request)
        entry, created = await self.core.queue.enqueue(
            request.match_info["content_id"],
            "manual",
            data.get("reason") or f"Reported by {reporter_id}",
        )
        return web.json_response({"entry": asdict(entry), "created": created}, status=201 if created else 200)

    async def handle_recheck(self, request: web.Request) -> web.Response:
        admin_id = _caller(request)
        await self.core.queue.require_admin(admin_id)
        data = await _json_body(request)
        result, entry = await self.core.classifier.recheck_content(
            request.match_info["content_id"], data.get("profile", "general")
        )
        return web.json_response({
            "result": result.to_dict(),
            "entry": asdict(entry) if entry else None,
        })

    # =========================================================================
    # Moderation Handlers
    # =========================================================================

    async def handle_queue(self, request: web.Request) -> web.Response:
        """GET /api/moderation/queue - Pending entries, oldest first."""
        admin_id = _caller(request)
        limit, offset = _page(request)
        entries = await self.core.queue.list_pending(admin_id, limit, offset)
        return web.json_response({
            "entries": [asdict(e) for e in entries],
            "limit": limit,
            "offset": offset,
        })

    async def handle_my_flagged(self, request: web.Request) -> web.Response:
        author_id = _caller(request)
        entries = await self.core.queue.list_my_flagged(author_id)
        return web.json_response({"entries": [asdict(e) for e in entries]})

    async def handle_resolve(self, request: web.Request) -> web.Response:
        """POST /api/moderation/queue/{id}/resolve - Restore or purge."""
        admin_id = _caller(request)
        data = await _json_body(request)
        entry = await self.core.resolve_queue_entry(
            admin_id, _entry_id(request), data.get("decision", ""), data.get("reason")
        )
        return web.json_response(asdict(entry))

    async def handle_dispute(self, request: web.Request) -> web.Response:
        author_id = _caller(request)
        data = await _json_body(request)
        entry = await self.core.queue.submit_dispute(author_id, _entry_id(request), data.get("reason") or "")
        return web.json_response(asdict(entry))

    # =========================================================================
    # Admin Handlers
    # =========================================================================

    async def handle_ban(self, request: web.Request) -> web.Response:
        """POST /api/admin/users/{id}/ban - Permanent ban or timed suspension."""
        admin_id = _caller(request)
        data = await _json_body(request)
        duration = parse_duration(data.get("duration") or DEFAULT_BAN_DURATION)
        until = self.core.queue.clock() + duration if duration else None

        actor = await self.core.queue.ban_user(
            admin_id, request.match_info["actor_id"], data.get("reason"), until
        )
        return web.json_response({"actor": asdict(actor), "duration": format_duration(duration)})

    async def handle_unban(self, request: web.Request) -> web.Response:
        admin_id = _caller(request)
        data = await _json_body(request)
        actor = await self.core.queue.unban_user(admin_id, request.match_info["actor_id"], data.get("reason"))
        return web.json_response({"actor": asdict(actor)})

    async def handle_grant_expert(self, request: web.Request) -> web.Response:
        admin_id = _caller(request)
        data = await _json_body(request)
        actor = await self.core.queue.grant_expert(admin_id, request.match_info["actor_id"], data.get("reason"))
        return web.json_response({"actor": asdict(actor)})

    async def handle_revoke_expert(self, request: web.Request) -> web.Response:
        admin_id = _caller(request)
        actor = await self.core.queue.revoke_expert(admin_id, request.match_info["actor_id"])
        return web.json_response({"actor": asdict(actor)})

    async def handle_list_blacklist(self, request: web.Request) -> web.Response:
        admin_id = _caller(request)
        keywords = await self.core.queue.list_blacklist(admin_id)
        return web.json_response({"keywords": [asdict(k) for k in keywords]})

    async def handle_add_blacklist(self, request: web.Request) -> web.Response:
        admin_id = _caller(request)
        data = await _json_body(request)
        keyword = (data.get("keyword") or "").strip()
        if not keyword:
            raise ValueError("keyword is required")
        entry = await self.core.queue.add_blacklist_keyword(admin_id, keyword, data.get("reason"))
        return web.json_response(asdict(entry), status=201)

    async def handle_remove_blacklist(self, request: web.Request) -> web.Response:
        admin_id = _caller(request)
        try:
            keyword_id = int(request.match_info["keyword_id"])
        except ValueError:
            raise ValueError("Keyword id must be an integer") from None
        entry = await self.core.queue.remove_blacklist_keyword(admin_id, keyword_id)
        return web.json_response(asdict(entry))

    async def handle_admin_actions(self, request: web.Request) -> web.Response:
        admin_id = _caller(request)
        limit, _ = _page(request)
        actions = await self.core.queue.list_admin_actions(
            admin_id,
            request.query.get("target_type"),
            request.query.get("target_id"),
            limit,
        )
        return web.json_response({"actions": [asdict(a) for a in actions]})

    # =========================================================================
    # Reputation & Notification Handlers
    # =========================================================================

    async def handle_reputation(self, request: web.Request) -> web.Response:
        """GET /api/reputation/{id} - Score computed from current history."""
        actor_id = request.match_info["actor_id"]
        result = await self.core.reputation.compute_score(actor_id)
        payload = result.to_dict()
        payload["actor_id"] = actor_id
        return web.json_response(payload)

    async def handle_recompute(self, request: web.Request) -> web.Response:
        """POST /api/reputation/{id}/recompute - Self or admin only."""
        caller_id = _caller(request)
        actor_id = request.match_info["actor_id"]
        if caller_id != actor_id:
            await self.core.queue.require_admin(caller_id)
        result = await self.core.recompute_reputation(actor_id)
        return web.json_response(result.to_dict())

    async def handle_notifications(self, request: web.Request) -> web.Response:
        actor_id = _caller(request)
        limit, _ = _page(request)
        unread_only = request.query.get("unread") in ("1", "true")
        notifications = await asyncio.to_thread(
            self.core.db.list_notifications, actor_id, unread_only, limit
        )
        return web.json_response({"notifications": [asdict(n) for n in notifications]})

    async def handle_notifications_read(self, request: web.Request) -> web.Response:
        actor_id = _caller(request)
        updated = await asyncio.to_thread(self.core.db.mark_notifications_read, actor_id)
        return web.json_response({"marked_read": updated})

    async def handle_health(self, request: web.Request) -> web.Response:
        """GET /health - Database health and uptime."""
        db_health = await asyncio.to_thread(self.core.db.health_check)
        uptime = None
        if self._start_time:
            uptime = int((datetime.now() - self._start_time).total_seconds())
        return web.json_response(
            {
                "status": "healthy" if db_health["healthy"] else "degraded",
                "service": "TrustCore",
                "database": db_health,
                "uptime_seconds": uptime,
            },
            status=200 if db_health["healthy"] else 503,
        )

    # =========================================================================
    # Server Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Start the API server."""
        self._start_time = datetime.now()
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()

        site = web.TCPSite(self.runner, self.host, self.port)
        await site.start()

        self._cleanup_task = asyncio.create_task(self._cleanup_loop())

        logger.success("TrustCore API Started", [
            ("Host", self.host),
            ("Port", str(self.port)),
            ("Routes", str(len(self.app.router.routes()))),
        ])

    async def stop(self) -> None:
        """Stop the API server."""
        if self._cleanup_task:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass

        if self.runner:
            await self.runner.cleanup()
            logger.info("TrustCore API Stopped")

    async def _cleanup_loop(self) -> None:
        """Periodically clean up rate limiter entries."""
        while True:
            try:
                await asyncio.sleep(CLEANUP_INTERVAL)
                removed = await self.app[RATE_LIMITER_KEY].cleanup()
                if removed:
                    logger.debug("Rate Limiter Cleanup", [("Removed", str(removed))])
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.debug("Rate limiter cleanup error", [("Error", str(e))])


__all__ = ["TrustCoreAPI"]
