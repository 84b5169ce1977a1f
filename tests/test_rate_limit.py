"""
Tests for Rate Limiting
=======================
Storage-backed windows and blocked-history queries.
"""

import asyncio
from datetime import timedelta

import pytest

PHONE = "+260971234567"


class TestStorageRateLimiter:
    """Tests for the fixed-window limiter."""

    @pytest.mark.asyncio
    async def test_allows_until_limit(self, sessions, clock):
        from authlife_core.rate_limit import RateLimitResult, StorageRateLimiter

        limiter = StorageRateLimiter(sessions, rate=3, window=60, clock=clock)

        first = await limiter.check("otp:sms:+1")
        await limiter.check("otp:sms:+1")
        third = await limiter.check("otp:sms:+1")
        fourth = await limiter.check("otp:sms:+1")

        assert first.allowed is True
        assert first.remaining == 2
        assert third.remaining == 0
        assert fourth.allowed is False
        assert fourth.result == RateLimitResult.BLOCKED
        assert fourth.retry_after == 60

    @pytest.mark.asyncio
    async def test_new_window_resets(self, sessions, clock):
        from authlife_core.rate_limit import StorageRateLimiter

        limiter = StorageRateLimiter(sessions, rate=1, window=60, clock=clock)

        assert (await limiter.check("k")).allowed is True
        assert (await limiter.check("k")).allowed is False
        clock.advance(seconds=61)
        assert (await limiter.check("k")).allowed is True

    @pytest.mark.asyncio
    async def test_keys_are_independent(self, sessions, clock):
        from authlife_core.rate_limit import StorageRateLimiter

        limiter = StorageRateLimiter(sessions, rate=1, window=60, clock=clock)

        assert (await limiter.check("a")).allowed is True
        assert (await limiter.check("b")).allowed is True

    @pytest.mark.asyncio
    async def test_concurrent_checks_never_exceed_limit(self, sessions, clock):
        from authlife_core.rate_limit import StorageRateLimiter

        limiter = StorageRateLimiter(sessions, rate=5, window=3600, clock=clock)

        results = await asyncio.gather(*[limiter.check("burst") for _ in range(12)])

        assert sum(1 for r in results if r.allowed) == 5


class TestRateLimitSurface:
    """Tests for is_rate_limited and get_blocked_history."""

    @pytest.mark.asyncio
    async def test_is_rate_limited_lookback(self, audit_store, clock):
        from authlife_core.audit import AuditAction
        from authlife_core.rate_limit import RateLimitSurface

        surface = RateLimitSurface(audit_store, clock=clock)
        await audit_store.append(
            AuditAction.OTP_REQUESTED,
            created_at=clock() - timedelta(hours=1),
            destination=PHONE,
            blocked=True,
        )

        assert await surface.is_rate_limited(PHONE) is True
        assert await surface.is_rate_limited(PHONE, within_hours=0.5) is False
        assert await surface.is_rate_limited("+260970000000") is False

    @pytest.mark.asyncio
    async def test_unblocked_events_do_not_count(self, audit_store, clock):
        from authlife_core.audit import AuditAction
        from authlife_core.rate_limit import RateLimitSurface

        await audit_store.append(
            AuditAction.OTP_REQUESTED, created_at=clock(), destination=PHONE, blocked=False
        )

        assert await RateLimitSurface(audit_store, clock=clock).is_rate_limited(PHONE) is False

    @pytest.mark.asyncio
    async def test_blocked_history_newest_first(self, audit_store, clock):
        from authlife_core.audit import AuditAction
        from authlife_core.rate_limit import RateLimitSurface

        for minutes in (30, 10, 20):
            await audit_store.append(
                AuditAction.USER_REPEATED_SIGNUP,
                created_at=clock() - timedelta(minutes=minutes),
                destination=PHONE,
                blocked=True,
            )
        await audit_store.append(
            AuditAction.USER_SIGNUP, created_at=clock(), destination=PHONE, blocked=False
        )

        history = await RateLimitSurface(audit_store, clock=clock).get_blocked_history(PHONE, limit=2)

        assert len(history) == 2
        assert history[0].created_at == clock() - timedelta(minutes=10)
        assert history[1].created_at == clock() - timedelta(minutes=20)
