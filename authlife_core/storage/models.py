"""
Storage Models
==============
Tables owned by the engine: challenges, profiles, audit events and
rate-limit windows.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, Index, Integer, String, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from authlife_core.database import Base, UTCDateTime


def _new_id() -> str:
    return str(uuid.uuid4())


class ChallengeRow(Base):
    """One OTP issuance-to-verification cycle."""

    __tablename__ = "challenges"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    destination: Mapped[str] = mapped_column(String(64), nullable=False)
    channel: Mapped[str] = mapped_column(String(16), nullable=False)
    code_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    salt: Mapped[str] = mapped_column(String(32), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    attempt_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    consumed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    consumed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    superseded_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    account_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    __table_args__ = (
        # At most one active challenge per (destination, channel)
        Index(
            "uq_challenges_active_destination_channel",
            "destination",
            "channel",
            unique=True,
            postgresql_where=text("consumed = false AND superseded_at IS NULL"),
            sqlite_where=text("consumed = 0 AND superseded_at IS NULL"),
        ),
        Index("ix_challenges_destination_channel", "destination", "channel"),
    )


class ProfileRow(Base):
    """The durable one-per-account identity record."""

    __tablename__ = "profiles"

    account_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    email: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)
    display_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    account_type: Mapped[str] = mapped_column(String(32), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class AuditEventRow(Base):
    """
    Append-only authentication event.

    Columns are nullable: rows written by other systems may be sparse.
    """

    __tablename__ = "audit_events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    actor_ref: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    action: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    destination: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)
    source_ip: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    blocked: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)

    __table_args__ = (
        Index("ix_audit_events_created_at", "created_at"),
        Index("ix_audit_events_destination", "destination"),
    )


class RateLimitWindowRow(Base):
    """Counted fixed window keyed by limiter key."""

    __tablename__ = "rate_limit_windows"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(String(128), nullable=False)
    window_start: Mapped[int] = mapped_column(Integer, nullable=False)  # Unix timestamp
    count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("key", "window_start", name="uq_rate_limit_windows_key_window"),
    )
