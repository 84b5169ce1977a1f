"""
Storage Rate Limiter
====================
Fixed-window counter kept in the relational store, shared by every process.
"""

from datetime import datetime
from typing import Callable, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import structlog

from authlife_core.database import session_scope, utcnow
from authlife_core.storage.errors import classify_storage_error, is_unique_violation
from authlife_core.storage.models import RateLimitWindowRow
from .models import RateLimitInfo

logger = structlog.get_logger(__name__)


class StorageRateLimiter:
    """
    Fixed-window rate limiter over ``rate_limit_windows``.

    A request is admitted by a conditional increment
    (``count < limit``); the first request of a window inserts the row.
    """

    def __init__(
        self,
        sessions: async_sessionmaker[AsyncSession],
        rate: int = 5,
        window: int = 3600,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Args:
            sessions: Session factory
            rate: Number of requests allowed per window
            window: Window size in seconds
            clock: Current-time source
        """
        self.sessions = sessions
        self.rate = rate
        self.window = window
        self.clock = clock

    async def check(self, key: str) -> RateLimitInfo:
        """
        Count one request against ``key``.

        Args:
            key: Unique identifier (e.g., ``otp:sms:+260971234567``)

        Returns:
            RateLimitInfo with decision and quota
        """
        now = int(self.clock().timestamp())
        window_start = (now // self.window) * self.window
        reset_at = window_start + self.window

        try:
            count = await self._admit(key, window_start)
            if count is None:
                # A concurrent request created the window row first
                count = await self._admit(key, window_start)
        except SQLAlchemyError as e:
            raise classify_storage_error(e) from e

        if count is None or count > self.rate:
            logger.info("Rate limit exceeded", key_prefix=key.split(":")[0], limit=self.rate)
            return RateLimitInfo(
                allowed=False,
                remaining=0,
                limit=self.rate,
                reset_at=reset_at,
                retry_after=max(reset_at - now, 1),
            )

        return RateLimitInfo(
            allowed=True,
            remaining=self.rate - count,
            limit=self.rate,
            reset_at=reset_at,
        )

    async def _admit(self, key: str, window_start: int) -> Optional[int]:
        """
        Returns:
            The new count if admitted, ``rate + 1`` if the window is full,
            or None if the row was inserted concurrently
        """
        try:
            async with session_scope(self.sessions) as session:
                result = await session.execute(
                    update(RateLimitWindowRow)
                    .where(
                        RateLimitWindowRow.key == key,
                        RateLimitWindowRow.window_start == window_start,
                        RateLimitWindowRow.count < self.rate,
                    )
                    .values(count=RateLimitWindowRow.count + 1)
                )
                if result.rowcount == 1:
                    return await session.scalar(
                        select(RateLimitWindowRow.count).where(
                            RateLimitWindowRow.key == key,
                            RateLimitWindowRow.window_start == window_start,
                        )
                    )

                exists = await session.scalar(
                    select(RateLimitWindowRow.id).where(
                        RateLimitWindowRow.key == key,
                        RateLimitWindowRow.window_start == window_start,
                    )
                )
                if exists is not None:
                    return self.rate + 1

                if self.rate < 1:
                    return self.rate + 1

                session.add(RateLimitWindowRow(key=key, window_start=window_start, count=1))
                await session.flush()
                return 1
        except IntegrityError as e:
            if is_unique_violation(e):
                return None
            raise
