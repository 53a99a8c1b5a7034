import asyncio
from datetime import datetime, timedelta, timezone

import aiohttp
import pytest

from trustcore.core.config import validate_config
from trustcore.core.errors import ConcurrentUpdateError, RateLimited
from trustcore.utils.duration import format_duration, parse_duration
from trustcore.utils.helpers import parse_timestamp, to_timestamp, truncate
from trustcore.utils.rate_limit import RateLimiter
from trustcore.utils.retry import exponential_backoff, retry_once


class TestDuration:
    @pytest.mark.parametrize("text, expected", [
        ("30m", timedelta(minutes=30)),
        ("6h", timedelta(hours=6)),
        ("3 days", timedelta(days=3)),
        ("2w", timedelta(weeks=2)),
        ("1mo", timedelta(days=30)),
    ])
    def test_parse(self, text, expected):
        assert parse_duration(text) == expected

    def test_permanent(self):
        assert parse_duration("Permanent") is None
        assert format_duration(None) == "Permanent"

    @pytest.mark.parametrize("text", ["", "soon", "0h", "-3d"])
    def test_invalid(self, text):
        with pytest.raises(ValueError):
            parse_duration(text)

    def test_format(self):
        assert format_duration(timedelta(hours=1)) == "1 hour"
        assert format_duration(timedelta(days=3)) == "3 days"


class TestTimestamps:
    def test_round_trip_preserves_instant(self):
        moment = datetime(2025, 3, 1, 8, 30, 15, 123456, tzinfo=timezone.utc)
        assert parse_timestamp(to_timestamp(moment)) == moment

    def test_lexical_order_matches_time_order(self):
        earlier = to_timestamp(datetime(2025, 1, 1, 9, 59, 59, tzinfo=timezone.utc))
        later = to_timestamp(datetime(2025, 1, 1, 10, 0, 0, tzinfo=timezone.utc))
        assert earlier < later

    def test_parse_empty(self):
        assert parse_timestamp(None) is None

    def test_truncate(self):
        assert truncate("short", 10) == "short"
        assert truncate("a" * 20, 10) == "aaaaaaa..."


class TestRetryOnce:
    async def test_retries_concurrent_update(self):
        calls = []

        @retry_once(delay=0)
        async def flaky():
            calls.append(1)
            if len(calls) == 1:
                raise ConcurrentUpdateError()
            return "ok"

        assert await flaky() == "ok"
        assert len(calls) == 2

    async def test_second_failure_propagates(self):
        @retry_once(delay=0)
        async def always_busy():
            raise ConcurrentUpdateError()

        with pytest.raises(ConcurrentUpdateError):
            await always_busy()

    async def test_rejections_not_retried(self):
        calls = []

        @retry_once(delay=0)
        async def rejected():
            calls.append(1)
            raise RateLimited("duplicate_content")

        with pytest.raises(RateLimited):
            await rejected()
        assert len(calls) == 1


class TestExponentialBackoff:
    async def test_retries_then_succeeds(self, monkeypatch):
        sleeps = []

        async def fake_sleep(delay):
            sleeps.append(delay)

        monkeypatch.setattr(asyncio, "sleep", fake_sleep)
        attempts = []

        @exponential_backoff(max_retries=3, base_delay=1.0)
        async def post():
            attempts.append(1)
            if len(attempts) < 3:
                raise aiohttp.ClientError("connection reset")
            return "sent"

        assert await post() == "sent"
        assert len(sleeps) == 2
        assert 1.0 <= sleeps[0] <= 1.1
        assert 2.0 <= sleeps[1] <= 2.2

    async def test_exhausted(self, monkeypatch):
        async def fake_sleep(delay):
            return None

        monkeypatch.setattr(asyncio, "sleep", fake_sleep)

        @exponential_backoff(max_retries=2)
        async def post():
            raise asyncio.TimeoutError()

        with pytest.raises(asyncio.TimeoutError):
            await post()

    async def test_non_retryable_raises_immediately(self):
        attempts = []

        @exponential_backoff(max_retries=3)
        async def post():
            attempts.append(1)
            raise KeyError("bad payload")

        with pytest.raises(KeyError):
            await post()
        assert len(attempts) == 1


class TestRateLimiter:
    async def test_burst_limit(self):
        now = [100.0]
        limiter = RateLimiter(requests_per_minute=100, burst_limit=3, clock=lambda: now[0])

        for _ in range(3):
            assert (await limiter.is_allowed("a"))[0] is True
        assert await limiter.is_allowed("a") == (False, 1)
        assert (await limiter.is_allowed("b"))[0] is True

        now[0] += 1.5
        assert (await limiter.is_allowed("a"))[0] is True

    async def test_minute_window(self):
        now = [0.0]
        limiter = RateLimiter(requests_per_minute=2, burst_limit=10, clock=lambda: now[0])

        await limiter.is_allowed("a")
        now[0] = 10.0
        await limiter.is_allowed("a")
        allowed, retry_after = await limiter.is_allowed("a")
        assert allowed is False
        assert retry_after == 51

        now[0] = 60.5
        assert (await limiter.is_allowed("a"))[0] is True

    async def test_cleanup(self):
        now = [0.0]
        limiter = RateLimiter(clock=lambda: now[0])
        await limiter.is_allowed("idle")
        now[0] = 500.0
        assert await limiter.cleanup() == 1


class TestConfigValidation:
    def test_defaults_are_valid(self, monkeypatch):
        for var in ("CLASSIFIER_TIMEOUT", "TRUSTCORE_API_PORT", "NOTIFY_WEBHOOK_URL"):
            monkeypatch.delenv(var, raising=False)
        assert validate_config().valid is True

    def test_bad_port(self, monkeypatch):
        monkeypatch.setenv("TRUSTCORE_API_PORT", "70000")
        result = validate_config()
        assert result.valid is False
        assert result.invalid_format[0][0] == "TRUSTCORE_API_PORT"

    def test_non_numeric_timeout(self, monkeypatch):
        monkeypatch.setenv("CLASSIFIER_TIMEOUT", "soon")
        assert validate_config().valid is False

    def test_webhook_scheme(self, monkeypatch):
        monkeypatch.setenv("NOTIFY_WEBHOOK_URL", "ftp://example.com/hook")
        assert validate_config().valid is False
