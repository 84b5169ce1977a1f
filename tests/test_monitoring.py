"""
Tests for the Monitoring Router
===============================
"""

from datetime import timedelta

import httpx
import pytest
from fastapi import FastAPI

PHONE = "+260971234567"


@pytest.fixture
def app(audit_store, clock):
    from authlife_core.audit import AnomalyDetector
    from authlife_core.monitoring import create_monitoring_router
    from authlife_core.rate_limit import RateLimitSurface

    application = FastAPI()
    application.include_router(create_monitoring_router(
        AnomalyDetector(audit_store, clock=clock),
        RateLimitSurface(audit_store, clock=clock),
    ))
    return application


@pytest.fixture
def client(app):
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")


class TestMonitoringRouter:
    """Tests for /auth-monitoring endpoints."""

    @pytest.mark.asyncio
    async def test_health(self, client, audit_store, clock):
        from authlife_core.audit import AuditAction

        await audit_store.append(AuditAction.USER_SIGNUP, created_at=clock(), blocked=False)

        async with client:
            response = await client.get("/auth-monitoring/health", params={"hours": 24})

        assert response.status_code == 200
        assert response.json()["successful"] == 1

    @pytest.mark.asyncio
    async def test_anomalies(self, client):
        async with client:
            response = await client.get("/auth-monitoring/anomalies")

        assert response.status_code == 200
        body = response.json()
        assert len(body) == 1
        assert body[0]["severity"] == "INFO"
        assert body[0]["kind"] == "NONE"

    @pytest.mark.asyncio
    async def test_rate_limited_normalizes_destination(self, client, audit_store, clock):
        from authlife_core.audit import AuditAction

        await audit_store.append(
            AuditAction.OTP_REQUESTED,
            created_at=clock() - timedelta(minutes=5),
            destination=PHONE,
            blocked=True,
        )

        async with client:
            response = await client.get(
                "/auth-monitoring/rate-limited", params={"destination": "+260 97 123 4567"}
            )

        assert response.status_code == 200
        assert response.json() == {"destination": PHONE, "rate_limited": True}

    @pytest.mark.asyncio
    async def test_blocked_history(self, client, audit_store, clock):
        from authlife_core.audit import AuditAction

        await audit_store.append(
            AuditAction.USER_REPEATED_SIGNUP,
            created_at=clock(),
            destination="someone@example.com",
            blocked=True,
        )

        async with client:
            response = await client.get(
                "/auth-monitoring/blocked-history",
                params={"destination": "Someone@Example.com"},
            )

        assert response.status_code == 200
        assert [e["action"] for e in response.json()] == ["user_repeated_signup"]

    @pytest.mark.asyncio
    async def test_invalid_destination_422(self, client):
        async with client:
            response = await client.get(
                "/auth-monitoring/rate-limited", params={"destination": "not-a-phone"}
            )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_retry_safe_and_metrics(self, client):
        async with client:
            retry_safe = await client.get("/auth-monitoring/retry-safe")
            metrics = await client.get("/auth-monitoring/metrics")

        assert retry_safe.status_code == 200
        assert retry_safe.json() == []
        assert "authlife_anomaly_reports_total" in metrics.text

    @pytest.mark.asyncio
    async def test_recent_blocked(self, client, audit_store, clock):
        from authlife_core.audit import AuditAction

        await audit_store.append(
            AuditAction.USER_SIGNUP,
            created_at=clock() - timedelta(minutes=40),
            destination="late@example.com",
            blocked=True,
        )

        async with client:
            response = await client.get("/auth-monitoring/recent-blocked")

        assert response.status_code == 200
        body = response.json()
        assert [r["destination"] for r in body] == ["late@example.com"]
        assert body[0]["rate_limit_status"] == "expiring_soon"
        assert body[0]["actions"] == ["user_signup"]

    @pytest.mark.asyncio
    async def test_legitimate_blocked(self, client, audit_store, clock):
        from authlife_core.audit import AuditAction

        for destination in ("real@example.com", "bot@guerrillamail.com"):
            for minutes in (90, 120):
                await audit_store.append(
                    AuditAction.USER_SIGNUP,
                    created_at=clock() - timedelta(minutes=minutes),
                    destination=destination,
                    source_ip="10.0.0.1",
                    blocked=True,
                )

        async with client:
            response = await client.get("/auth-monitoring/legitimate-blocked")

        assert response.status_code == 200
        body = response.json()
        assert [c["destination"] for c in body] == ["real@example.com"]
        assert body[0]["blocked_attempts"] == 2
        assert body[0]["unique_source_count"] == 1

    @pytest.mark.asyncio
    async def test_investigate_actor(self, client, audit_store, clock):
        from authlife_core.audit import AuditAction

        await audit_store.append(
            AuditAction.USER_SIGNUP,
            created_at=clock(),
            actor_ref="actor-9",
            destination="nine@example.com",
            blocked=True,
        )

        async with client:
            found = await client.get("/auth-monitoring/investigate/actor-9")
            missing = await client.get("/auth-monitoring/investigate/nobody")

        assert found.status_code == 200
        assert found.json()["conclusion"] == "blocked_only"
        assert found.json()["blocked_attempts"] == 1
        assert missing.status_code == 404
