"""Shared fixtures: a file-backed SQLite engine per test and a controllable clock."""

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio


class MutableClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock(datetime(2025, 11, 24, 12, 0, 0, tzinfo=timezone.utc))


@pytest_asyncio.fixture
async def engine(tmp_path):
    from authlife_core.database import create_async_engine, init_models

    db_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'authlife.db'}")
    await init_models(db_engine)
    yield db_engine
    await db_engine.dispose()


@pytest.fixture
def sessions(engine):
    from authlife_core.database import create_session_factory

    return create_session_factory(engine)


@pytest.fixture
def audit_store(sessions):
    from authlife_core.audit import AuditEventStore

    return AuditEventStore(sessions)


@pytest.fixture
def dispatcher():
    from authlife_core.delivery import InMemoryDispatcher

    return InMemoryDispatcher()


@pytest.fixture
def otp_manager(sessions, audit_store, dispatcher, clock):
    from authlife_core.audit import AuditRecorder
    from authlife_core.config import OTPConfig
    from authlife_core.otp import ChallengeStore, OTPManager
    from authlife_core.rate_limit import StorageRateLimiter

    config = OTPConfig(hash_pepper="test-pepper")
    return OTPManager(
        store=ChallengeStore(sessions),
        dispatcher=dispatcher,
        rate_limiter=StorageRateLimiter(
            sessions,
            rate=config.requests_per_window,
            window=config.rate_window_seconds,
            clock=clock,
        ),
        recorder=AuditRecorder(audit_store, clock=clock),
        config=config,
        clock=clock,
    )


def sent_code(dispatcher, destination: str) -> str:
    """Pull the six-digit code out of the last message to ``destination``."""
    body = dispatcher.last_to(destination).body
    return body.split("code is ")[1][:6]
