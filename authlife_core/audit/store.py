"""
Audit Event Store
=================
Append and windowed reads over ``audit_events``. Rows are never updated
or deleted.
"""

import uuid
from datetime import datetime
from typing import Iterable, List, Optional, Set

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import structlog

from authlife_core.database import session_scope
from authlife_core.storage.errors import classify_storage_error
from authlife_core.storage.models import AuditEventRow, ProfileRow
from .event_types import AuditAction
from .models import AuditEvent

logger = structlog.get_logger(__name__)


class AuditEventStore:
    """Persistence for audit events."""

    def __init__(self, sessions: async_sessionmaker[AsyncSession]):
        self.sessions = sessions

    async def append(
        self,
        action: AuditAction,
        created_at: datetime,
        actor_ref: Optional[str] = None,
        destination: Optional[str] = None,
        source_ip: Optional[str] = None,
        blocked: bool = False,
    ) -> AuditEvent:
        """
        Insert one event.

        Raises:
            StorageError: classified driver failure
        """
        if action == AuditAction.UNKNOWN:
            raise ValueError("Cannot record an unknown audit action")

        event = AuditEvent(
            id=str(uuid.uuid4()),
            action=action,
            actor_ref=actor_ref,
            destination=destination,
            source_ip=source_ip,
            created_at=created_at,
            blocked=blocked,
        )
        try:
            async with session_scope(self.sessions) as session:
                session.add(AuditEventRow(
                    id=event.id,
                    action=action.value,
                    actor_ref=actor_ref,
                    destination=destination,
                    source_ip=source_ip,
                    created_at=created_at,
                    blocked=blocked,
                ))
        except SQLAlchemyError as e:
            raise classify_storage_error(e) from e
        return event

    async def list_window(self, start: datetime, end: datetime) -> List[AuditEvent]:
        """Events with ``start <= created_at <= end``, oldest first."""
        try:
            async with self.sessions() as session:
                result = await session.execute(
                    select(AuditEventRow)
                    .where(
                        AuditEventRow.created_at >= start,
                        AuditEventRow.created_at <= end,
                    )
                    .order_by(AuditEventRow.created_at)
                )
                return [AuditEvent.from_row(row) for row in result.scalars()]
        except SQLAlchemyError as e:
            raise classify_storage_error(e) from e

    async def list_for_destination(
        self,
        destination: str,
        limit: int = 50,
        blocked_only: bool = False,
    ) -> List[AuditEvent]:
        """Events for one destination, newest first."""
        query = select(AuditEventRow).where(AuditEventRow.destination == destination)
        if blocked_only:
            query = query.where(AuditEventRow.blocked.is_(True))
        query = query.order_by(AuditEventRow.created_at.desc()).limit(limit)

        try:
            async with self.sessions() as session:
                result = await session.execute(query)
                return [AuditEvent.from_row(row) for row in result.scalars()]
        except SQLAlchemyError as e:
            raise classify_storage_error(e) from e

    async def list_for_actor(self, actor_ref: str, limit: int = 200) -> List[AuditEvent]:
        """Events recorded against one actor, newest first."""
        try:
            async with self.sessions() as session:
                result = await session.execute(
                    select(AuditEventRow)
                    .where(AuditEventRow.actor_ref == actor_ref)
                    .order_by(AuditEventRow.created_at.desc())
                    .limit(limit)
                )
                return [AuditEvent.from_row(row) for row in result.scalars()]
        except SQLAlchemyError as e:
            raise classify_storage_error(e) from e

    async def has_blocked_since(self, destination: str, since: datetime) -> bool:
        """True if any blocked event for ``destination`` is at or after ``since``."""
        try:
            async with self.sessions() as session:
                result = await session.execute(
                    select(AuditEventRow.id)
                    .where(
                        AuditEventRow.destination == destination,
                        AuditEventRow.blocked.is_(True),
                        AuditEventRow.created_at >= since,
                    )
                    .limit(1)
                )
                return result.first() is not None
        except SQLAlchemyError as e:
            raise classify_storage_error(e) from e

    async def destinations_with_success(self, destinations: Iterable[str]) -> Set[str]:
        """
        Subset of ``destinations`` that ever got through.

        A destination counts if it has any unblocked event, at any time,
        or a profile was created under it.
        """
        wanted = list(set(destinations))
        if not wanted:
            return set()

        try:
            async with self.sessions() as session:
                unblocked = await session.execute(
                    select(AuditEventRow.destination)
                    .where(
                        AuditEventRow.destination.in_(wanted),
                        AuditEventRow.blocked.is_(False),
                    )
                    .distinct()
                )
                profiled = await session.execute(
                    select(ProfileRow.email)
                    .where(ProfileRow.email.in_(wanted))
                    .distinct()
                )
                return set(unblocked.scalars()) | set(profiled.scalars())
        except SQLAlchemyError as e:
            raise classify_storage_error(e) from e

    async def has_profile(self, account_id: str) -> bool:
        try:
            async with self.sessions() as session:
                row = await session.get(ProfileRow, account_id)
                return row is not None
        except SQLAlchemyError as e:
            raise classify_storage_error(e) from e
