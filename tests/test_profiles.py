"""
Tests for Profile Reconciliation
================================
Exactly-once creation under concurrency and transient-failure handling.
"""

import asyncio

import pytest
from sqlalchemy import func, select


class FlakyStore:
    """Profile store stand-in that fails a fixed number of times."""

    def __init__(self, failures: int):
        self.failures = failures
        self.calls = 0

    async def create(self, account_id, metadata, now):
        from authlife_core.errors import TransientStorageError
        from authlife_core.profiles import IdentityProfile

        self.calls += 1
        if self.calls <= self.failures:
            raise TransientStorageError("foreign key violation: account not yet visible")
        return IdentityProfile(
            account_id=account_id,
            account_type=metadata.account_type,
            created_at=now,
            updated_at=now,
        )

    async def fetch(self, account_id):
        return None


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class TestAccountType:
    """Tests for account metadata parsing."""

    def test_parse_is_case_insensitive(self):
        from authlife_core.profiles import AccountType

        assert AccountType.parse("sme") == AccountType.SME
        assert AccountType.parse("NGO") == AccountType.NGO
        assert AccountType.parse("Sole_Proprietor") == AccountType.SOLE_PROPRIETOR

    def test_unknown_falls_back_to_default(self):
        from authlife_core.profiles import AccountType, DEFAULT_ACCOUNT_TYPE

        assert AccountType.parse("pirate") == DEFAULT_ACCOUNT_TYPE
        assert AccountType.parse(None) == DEFAULT_ACCOUNT_TYPE

    def test_metadata_from_dict(self):
        from authlife_core.profiles import AccountMetadata, AccountType

        meta = AccountMetadata.from_dict(
            {"email": "a@example.com", "full_name": "Ada", "account_type": "investor"}
        )

        assert meta.display_name == "Ada"
        assert meta.account_type == AccountType.INVESTOR


class TestProfileReconciler:
    """Tests for reconcile and backfill."""

    @pytest.mark.asyncio
    async def test_creates_profile(self, sessions, clock):
        from authlife_core.profiles import (
            AccountMetadata,
            AccountType,
            ProfileReconciler,
            ProfileStore,
        )

        reconciler = ProfileReconciler(ProfileStore(sessions), clock=clock)
        result = await reconciler.reconcile(
            "acct-1", AccountMetadata(email="a@example.com", account_type=AccountType.DONOR)
        )

        assert result.ok
        assert result.created is True
        assert result.attempts == 1
        assert result.profile.account_type == AccountType.DONOR
        assert result.profile.created_at == clock()

    @pytest.mark.asyncio
    async def test_adopts_existing_profile(self, sessions, clock):
        """A trigger-created row is adopted, not overwritten."""
        from authlife_core.profiles import (
            AccountMetadata,
            AccountType,
            ProfileReconciler,
            ProfileStore,
        )

        store = ProfileStore(sessions)
        await store.create("acct-1", AccountMetadata(display_name="Trigger"), clock())

        result = await ProfileReconciler(store, clock=clock).reconcile(
            "acct-1", AccountMetadata(display_name="App", account_type=AccountType.NGO)
        )

        assert result.ok
        assert result.created is False
        assert result.profile.display_name == "Trigger"

    @pytest.mark.asyncio
    async def test_ten_concurrent_reconciles_one_row(self, sessions, clock):
        from authlife_core.profiles import ProfileReconciler, ProfileStore
        from authlife_core.storage.models import ProfileRow

        reconciler = ProfileReconciler(ProfileStore(sessions), clock=clock)

        results = await asyncio.gather(*[
            reconciler.reconcile("acct-race") for _ in range(10)
        ])

        assert all(r.ok for r in results)
        assert sum(1 for r in results if r.created) == 1
        async with sessions() as session:
            count = await session.scalar(select(func.count()).select_from(ProfileRow))
        assert count == 1

    @pytest.mark.asyncio
    async def test_transient_errors_retried_with_linear_backoff(self, clock):
        from authlife_core.profiles import ProfileReconciler

        sleep = RecordingSleep()
        reconciler = ProfileReconciler(FlakyStore(failures=2), clock=clock, sleep=sleep)

        result = await reconciler.reconcile("acct-1")

        assert result.ok
        assert result.attempts == 3
        assert sleep.delays == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_exhaustion_returns_warning(self, clock):
        """Never raises; the caller gets a warning instead."""
        from authlife_core.profiles import ProfileReconciler

        sleep = RecordingSleep()
        reconciler = ProfileReconciler(FlakyStore(failures=10), clock=clock, sleep=sleep)

        result = await reconciler.reconcile("acct-1")

        assert not result.ok
        assert result.profile is None
        assert result.attempts == 3
        assert "foreign key" in result.warning
        assert sleep.delays == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_backfill(self, sessions, clock):
        from authlife_core.profiles import AccountMetadata, ProfileReconciler, ProfileStore

        store = ProfileStore(sessions)
        await store.create("acct-2", AccountMetadata(), clock())
        reconciler = ProfileReconciler(store, clock=clock)

        results = await reconciler.backfill({
            "acct-1": AccountMetadata(email="one@example.com"),
            "acct-2": None,
            "acct-3": None,
        })

        assert [r.created for r in results] == [True, False, True]

    @pytest.mark.asyncio
    async def test_update_profile(self, sessions, clock):
        from authlife_core.profiles import AccountMetadata, ProfileStore

        store = ProfileStore(sessions)
        await store.create("acct-1", AccountMetadata(), clock())
        clock.advance(minutes=5)

        updated = await store.update("acct-1", clock(), completed=True)

        assert updated.completed is True
        assert updated.updated_at == clock()
        assert await store.update("missing", clock(), completed=True) is None
