"""
Profile Store
=============
Create and fetch rows in ``profiles``. Uniqueness comes from the primary key.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import structlog

from authlife_core.database import session_scope
from authlife_core.storage.errors import classify_storage_error
from authlife_core.storage.models import ProfileRow
from .models import AccountMetadata, AccountType, IdentityProfile

logger = structlog.get_logger(__name__)


class ProfileStore:
    """Persistence for identity profiles."""

    def __init__(self, sessions: async_sessionmaker[AsyncSession]):
        self.sessions = sessions

    async def create(
        self,
        account_id: str,
        metadata: AccountMetadata,
        now: datetime,
    ) -> IdentityProfile:
        """
        Insert a profile.

        Raises:
            DuplicateKey: A profile for the account already exists
            TransientStorageError: Lock, visibility or connection trouble
        """
        row = ProfileRow(
            account_id=account_id,
            email=metadata.email,
            display_name=metadata.display_name,
            account_type=metadata.account_type.value,
            created_at=now,
            updated_at=now,
            completed=False,
        )
        try:
            async with session_scope(self.sessions) as session:
                session.add(row)
                await session.flush()
        except SQLAlchemyError as e:
            raise classify_storage_error(e) from e
        return IdentityProfile.from_row(row)

    async def fetch(self, account_id: str) -> Optional[IdentityProfile]:
        try:
            async with self.sessions() as session:
                row = await session.get(ProfileRow, account_id)
                return IdentityProfile.from_row(row) if row else None
        except SQLAlchemyError as e:
            raise classify_storage_error(e) from e

    async def update(
        self,
        account_id: str,
        now: datetime,
        display_name: Optional[str] = None,
        account_type: Optional[AccountType] = None,
        completed: Optional[bool] = None,
    ) -> Optional[IdentityProfile]:
        """
        Update the given fields; ``None`` leaves a field unchanged.

        Returns:
            The updated profile, or None if the account has no profile
        """
        try:
            async with session_scope(self.sessions) as session:
                row = await session.get(ProfileRow, account_id)
                if row is None:
                    return None
                if display_name is not None:
                    row.display_name = display_name
                if account_type is not None:
                    row.account_type = account_type.value
                if completed is not None:
                    row.completed = completed
                row.updated_at = now
                await session.flush()
                return IdentityProfile.from_row(row)
        except SQLAlchemyError as e:
            raise classify_storage_error(e) from e
