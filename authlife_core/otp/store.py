"""
Challenge Store
===============
Durable OTP challenges keyed by (destination, channel).

Every mutation is a single conditional statement so concurrent processes
cannot double-charge, double-consume or hold two active challenges.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import structlog

from authlife_core.database import session_scope
from authlife_core.storage.errors import classify_storage_error
from authlife_core.storage.models import ChallengeRow
from .models import Challenge, Channel

logger = structlog.get_logger(__name__)


def _active(destination: str, channel: Channel):
    return (
        ChallengeRow.destination == destination,
        ChallengeRow.channel == channel.value,
        ChallengeRow.consumed.is_(False),
        ChallengeRow.superseded_at.is_(None),
    )


class ChallengeStore:
    """CRUD plus atomic counters over the ``challenges`` table."""

    def __init__(self, sessions: async_sessionmaker[AsyncSession]):
        self.sessions = sessions

    async def issue(self, challenge: Challenge, now: datetime) -> Challenge:
        """
        Supersede any active challenge for the pair and insert ``challenge``.

        Both writes share one transaction.

        Raises:
            DuplicateKey: A concurrent request inserted first
            TransientStorageError: Lock or connection trouble
        """
        try:
            async with session_scope(self.sessions) as session:
                result = await session.execute(
                    update(ChallengeRow)
                    .where(*_active(challenge.destination, challenge.channel))
                    .values(superseded_at=now)
                )
                if result.rowcount:
                    logger.info(
                        "Superseded active challenge",
                        channel=challenge.channel.value,
                        superseded=result.rowcount,
                    )
                session.add(ChallengeRow(
                    id=challenge.id,
                    destination=challenge.destination,
                    channel=challenge.channel.value,
                    code_hash=challenge.code_hash,
                    salt=challenge.salt,
                    created_at=challenge.created_at,
                    expires_at=challenge.expires_at,
                    attempt_count=challenge.attempt_count,
                    max_attempts=challenge.max_attempts,
                    consumed=False,
                    account_id=challenge.account_id,
                ))
                await session.flush()
        except SQLAlchemyError as e:
            raise classify_storage_error(e) from e
        return challenge

    async def find_active(self, destination: str, channel: Channel) -> Optional[Challenge]:
        """Return the unconsumed, unsuperseded challenge for the pair, if any."""
        try:
            async with self.sessions() as session:
                result = await session.execute(
                    select(ChallengeRow)
                    .where(*_active(destination, channel))
                    .order_by(ChallengeRow.created_at.desc())
                    .limit(1)
                )
                row = result.scalars().first()
                return Challenge.from_row(row) if row else None
        except SQLAlchemyError as e:
            raise classify_storage_error(e) from e

    async def get(self, challenge_id: str) -> Optional[Challenge]:
        try:
            async with self.sessions() as session:
                row = await session.get(ChallengeRow, challenge_id)
                return Challenge.from_row(row) if row else None
        except SQLAlchemyError as e:
            raise classify_storage_error(e) from e

    async def charge_attempt(self, challenge_id: str) -> Optional[int]:
        """
        Atomically increment the attempt counter if budget remains.

        Returns:
            The new attempt count, or None if the budget was already spent
        """
        try:
            async with session_scope(self.sessions) as session:
                result = await session.execute(
                    update(ChallengeRow)
                    .where(
                        ChallengeRow.id == challenge_id,
                        ChallengeRow.attempt_count < ChallengeRow.max_attempts,
                    )
                    .values(attempt_count=ChallengeRow.attempt_count + 1)
                )
                if result.rowcount != 1:
                    return None
                count = await session.scalar(
                    select(ChallengeRow.attempt_count).where(ChallengeRow.id == challenge_id)
                )
                return int(count)
        except SQLAlchemyError as e:
            raise classify_storage_error(e) from e

    async def consume(self, challenge_id: str, now: datetime) -> bool:
        """
        Mark the challenge consumed if it is still active.

        Returns:
            True for exactly one caller per challenge
        """
        try:
            async with session_scope(self.sessions) as session:
                result = await session.execute(
                    update(ChallengeRow)
                    .where(
                        ChallengeRow.id == challenge_id,
                        ChallengeRow.consumed.is_(False),
                        ChallengeRow.superseded_at.is_(None),
                    )
                    .values(consumed=True, consumed_at=now)
                )
                return result.rowcount == 1
        except SQLAlchemyError as e:
            raise classify_storage_error(e) from e

    async def count_active(self, destination: str, channel: Channel) -> int:
        try:
            async with self.sessions() as session:
                result = await session.execute(
                    select(ChallengeRow.id).where(*_active(destination, channel))
                )
                return len(result.all())
        except SQLAlchemyError as e:
            raise classify_storage_error(e) from e
