"""
Profile Reconciler
==================
Exactly one profile per account, whoever creates it first.

An auto-provisioning trigger and the application bootstrap path may both
try to create the row. The reconciler creates optimistically, adopts the
existing row on a uniqueness conflict and retries transient failures with
linear backoff. Storage errors never reach the caller; exhaustion comes
back as a warning on the result.
"""

import asyncio
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional, Tuple
import structlog

from authlife_core.config import ReconcilerConfig
from authlife_core.database import utcnow
from authlife_core.errors import DuplicateKey, StorageError, TransientStorageError
from authlife_core.metrics import record_reconciliation
from authlife_core.retry import RetryExhausted, retry_with_backoff
from .models import AccountMetadata, IdentityProfile, ReconcileResult
from .store import ProfileStore

logger = structlog.get_logger(__name__)


class ProfileReconciler:
    """Ensures a profile row exists for an authenticated account."""

    def __init__(
        self,
        store: ProfileStore,
        config: Optional[ReconcilerConfig] = None,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.store = store
        self.config = config or ReconcilerConfig()
        self.clock = clock
        self.sleep = sleep

    async def reconcile(
        self,
        account_id: str,
        metadata: Optional[AccountMetadata] = None,
    ) -> ReconcileResult:
        """
        Ensure ``account_id`` has a profile.

        Args:
            account_id: Identity store account id
            metadata: Defaults for a newly created profile

        Returns:
            ReconcileResult; ``warning`` is set if every attempt failed
        """
        if not account_id:
            raise ValueError("account_id is required")

        metadata = metadata or AccountMetadata()
        attempts = 0

        async def _create_or_adopt() -> Tuple[IdentityProfile, bool]:
            nonlocal attempts
            attempts += 1
            try:
                return await self.store.create(account_id, metadata, self.clock()), True
            except DuplicateKey:
                existing = await self.store.fetch(account_id)
                if existing is None:
                    # Conflicting row not visible to us yet
                    raise TransientStorageError("Existing profile not yet visible")
                return existing, False

        try:
            profile, created = await retry_with_backoff(
                _create_or_adopt,
                max_attempts=self.config.max_attempts,
                base_delay=self.config.backoff_seconds,
                linear=True,
                jitter=False,
                retryable_exceptions={TransientStorageError},
                sleep=self.sleep,
            )
        except RetryExhausted as e:
            return self._warn(account_id, attempts, str(e.last_exception))
        except StorageError as e:
            return self._warn(account_id, attempts, e.message)

        record_reconciliation("created" if created else "existing")
        logger.info(
            "Profile reconciled",
            account_id=account_id,
            created=created,
            attempts=attempts,
        )
        return ReconcileResult(
            account_id=account_id,
            profile=profile,
            created=created,
            attempts=attempts,
        )

    def _warn(self, account_id: str, attempts: int, error: str) -> ReconcileResult:
        record_reconciliation("warning")
        logger.warning(
            "Profile reconciliation incomplete",
            account_id=account_id,
            attempts=attempts,
            error=error,
        )
        return ReconcileResult(
            account_id=account_id,
            attempts=attempts,
            warning=f"Profile not yet created for account; will retry on next request ({error})",
        )

    async def backfill(
        self,
        accounts: Dict[str, Optional[AccountMetadata]],
    ) -> List[ReconcileResult]:
        """
        Reconcile a batch of accounts that may be missing profiles.

        Accounts are processed one at a time.
        """
        results = []
        for account_id, metadata in accounts.items():
            results.append(await self.reconcile(account_id, metadata))

        logger.info(
            "Profile backfill finished",
            accounts=len(results),
            created=sum(1 for r in results if r.created),
            warnings=sum(1 for r in results if r.warning),
        )
        return results
