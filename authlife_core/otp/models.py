"""
OTP Models
==========
Data models and enums for OTP challenges and verification outcomes.
"""

from datetime import datetime
from typing import Optional
from dataclasses import dataclass
from enum import Enum


class Channel(str, Enum):
    """OTP delivery channels. They differ only in destination formatting."""
    SMS = "sms"
    WHATSAPP = "whatsapp"

    @classmethod
    def parse(cls, value) -> "Channel":
        if isinstance(value, cls):
            return value
        return cls(str(value or "sms").strip().lower())


class ChallengeState(str, Enum):
    """Lifecycle states of a challenge."""
    ACTIVE = "active"
    CONSUMED = "consumed"
    SUPERSEDED = "superseded"
    EXHAUSTED = "exhausted"
    EXPIRED = "expired"


class VerificationStatus(str, Enum):
    """Expected, user-facing verification outcomes."""
    VERIFIED = "verified"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"
    INVALID_CODE = "invalid_code"


@dataclass
class Challenge:
    """One outstanding OTP attempt. Only the code hash is ever held."""
    id: str
    destination: str
    channel: Channel
    code_hash: str
    salt: str
    created_at: datetime
    expires_at: datetime
    attempt_count: int = 0
    max_attempts: int = 5
    consumed: bool = False
    consumed_at: Optional[datetime] = None
    superseded_at: Optional[datetime] = None
    account_id: Optional[str] = None

    @classmethod
    def from_row(cls, row) -> "Challenge":
        return cls(
            id=row.id,
            destination=row.destination,
            channel=Channel(row.channel),
            code_hash=row.code_hash,
            salt=row.salt,
            created_at=row.created_at,
            expires_at=row.expires_at,
            attempt_count=row.attempt_count,
            max_attempts=row.max_attempts,
            consumed=row.consumed,
            consumed_at=row.consumed_at,
            superseded_at=row.superseded_at,
            account_id=row.account_id,
        )

    @property
    def attempts_remaining(self) -> int:
        return max(self.max_attempts - self.attempt_count, 0)

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def is_exhausted(self) -> bool:
        return self.attempt_count >= self.max_attempts

    def state(self, now: datetime) -> ChallengeState:
        if self.consumed:
            return ChallengeState.CONSUMED
        if self.superseded_at is not None:
            return ChallengeState.SUPERSEDED
        if self.is_expired(now):
            return ChallengeState.EXPIRED
        if self.is_exhausted():
            return ChallengeState.EXHAUSTED
        return ChallengeState.ACTIVE


@dataclass
class ChallengeTicket:
    """What the caller gets back from a successful OTP request."""
    challenge_id: str
    destination: str
    channel: Channel
    expires_at: datetime
    delivery_id: Optional[str] = None


@dataclass
class VerificationResult:
    """Outcome of a verify call."""
    status: VerificationStatus
    challenge_id: Optional[str] = None
    account_id: Optional[str] = None
    attempts_remaining: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.status == VerificationStatus.VERIFIED

    @property
    def message(self) -> str:
        if self.status == VerificationStatus.VERIFIED:
            return "Verified"
        if self.status == VerificationStatus.NOT_FOUND:
            return "No active code for this destination. Request a new code."
        if self.status == VerificationStatus.EXPIRED:
            return "Code expired. Request a new code."
        if self.status == VerificationStatus.EXHAUSTED:
            return "Too many attempts. Request a new code."
        return f"Invalid code. {self.attempts_remaining} attempts remaining"
