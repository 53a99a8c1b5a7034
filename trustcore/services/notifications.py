"""
TrustCore - Notification Sink
=============================

Delivers notifications to actors' inboxes (the notifications table) and
optionally forwards each batch to a webhook as a fire-and-forget task.
"""

import asyncio
from typing import Iterable, Optional

import aiohttp

from trustcore.core.config import NETWORK_TIMEOUT, NOTIFY_WEBHOOK_URL
from trustcore.core.constants import NOTIFICATION_SEVERITIES
from trustcore.core.logger import logger
from trustcore.services.db import Notification, TrustDatabase
from trustcore.utils.helpers import Clock, to_timestamp, utcnow
from trustcore.utils.retry import exponential_backoff


# =============================================================================
# Helper Functions
# =============================================================================

def _handle_task_exception(task: asyncio.Task) -> None:
    """Handle exceptions from background asyncio tasks."""
    try:
        if not task.cancelled() and task.exception():
            logger.warning("Background Webhook Task Failed", [
                ("Error", str(task.exception())),
            ])
    except asyncio.InvalidStateError:
        pass


def _create_background_task(coro) -> asyncio.Task:
    """Create a background task with error handling."""
    task = asyncio.create_task(coro)
    task.add_done_callback(_handle_task_exception)
    return task


class WebhookRejected(aiohttp.ClientError):
    """Webhook answered with a retryable non-2xx status."""


# =============================================================================
# Notification Sink
# =============================================================================

class NotificationSink:
    """Persists notifications and forwards them to an optional webhook."""

    def __init__(
        self,
        database: TrustDatabase,
        webhook_url: Optional[str] = NOTIFY_WEBHOOK_URL,
        clock: Clock = utcnow,
    ) -> None:
        self.db = database
        self.webhook_url = webhook_url
        self.clock = clock
        self._tasks: set[asyncio.Task] = set()

        if self.webhook_url:
            webhook_display = self.webhook_url[:50] + "..." if len(self.webhook_url) > 50 else self.webhook_url
            logger.tree("Notification Webhook", [
                ("Status", "Enabled"),
                ("URL", webhook_display),
            ], emoji="🔔")

    async def notify(
        self,
        actor_ids: Iterable[str],
        title: str,
        message: str,
        severity: str = "info",
        link: Optional[str] = None,
    ) -> list[Notification]:
        """Write one notification per actor. Returns the stored rows."""
        if severity not in NOTIFICATION_SEVERITIES:
            raise ValueError(f"Unknown severity: {severity}")

        actor_ids = list(actor_ids)
        if not actor_ids:
            return []

        created = await asyncio.to_thread(
            self.db.insert_notifications,
            actor_ids, title, message, severity, link, to_timestamp(self.clock()),
        )

        logger.tree("Notifications Delivered", [
            ("Title", title),
            ("Recipients", len(created)),
            ("Severity", severity),
            ("Link", link or "none"),
        ], emoji="🔔")

        if self.webhook_url:
            task = _create_background_task(self._forward(created))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        return created

    @exponential_backoff(max_retries=3, base_delay=1.0)
    async def _post(self, payload: dict) -> None:
        async with aiohttp.ClientSession() as session:
            async with session.post(
                self.webhook_url,
                json=payload,
                timeout=aiohttp.ClientTimeout(total=NETWORK_TIMEOUT)
            ) as response:
                if response.status == 429 or response.status >= 500:
                    raise WebhookRejected(f"Webhook returned {response.status}")
                if response.status >= 400:
                    logger.warning("Webhook Refused Notification", [
                        ("Status", response.status),
                    ])

    async def _forward(self, notifications: list[Notification]) -> None:
        payload = {
            "title": notifications[0].title,
            "message": notifications[0].message,
            "severity": notifications[0].severity,
            "link": notifications[0].link,
            "recipients": [n.actor_id for n in notifications],
        }
        await self._post(payload)
        logger.debug("Webhook Forwarded", [
            ("Title", payload["title"]),
            ("Recipients", len(payload["recipients"])),
        ])

    async def drain(self) -> None:
        """Wait for in-flight webhook forwards (used at shutdown)."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)


__all__ = ["NotificationSink"]
