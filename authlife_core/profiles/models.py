"""
Profile Models
==============
Identity profile records and reconciliation outcomes.
"""

from datetime import datetime
from typing import Any, Dict, Optional
from dataclasses import dataclass
from enum import Enum


class AccountType(str, Enum):
    """Closed set of account types."""
    SOLE_PROPRIETOR = "sole_proprietor"
    SME = "SME"
    INVESTOR = "investor"
    DONOR = "donor"
    PROFESSIONAL = "professional"
    GOVERNMENT = "government"
    NGO = "NGO"

    @classmethod
    def parse(cls, value: Optional[str], default: "AccountType" = None) -> "AccountType":
        """Case-insensitive lookup; unknown or missing values map to ``default``."""
        fallback = default or DEFAULT_ACCOUNT_TYPE
        if isinstance(value, cls):
            return value
        if not value:
            return fallback
        needle = str(value).strip().lower()
        for member in cls:
            if member.value.lower() == needle:
                return member
        return fallback


DEFAULT_ACCOUNT_TYPE = AccountType.SME


@dataclass
class AccountMetadata:
    """Defaults for a new profile, taken from the identity store's account."""
    email: Optional[str] = None
    display_name: Optional[str] = None
    account_type: AccountType = DEFAULT_ACCOUNT_TYPE

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "AccountMetadata":
        """Build from raw user metadata (``full_name`` is accepted for the name)."""
        data = data or {}
        return cls(
            email=data.get("email") or None,
            display_name=data.get("display_name") or data.get("full_name") or None,
            account_type=AccountType.parse(data.get("account_type")),
        )


@dataclass
class IdentityProfile:
    """The one durable profile per account."""
    account_id: str
    account_type: AccountType
    created_at: datetime
    updated_at: datetime
    email: Optional[str] = None
    display_name: Optional[str] = None
    completed: bool = False

    @classmethod
    def from_row(cls, row) -> "IdentityProfile":
        return cls(
            account_id=row.account_id,
            account_type=AccountType.parse(row.account_type),
            created_at=row.created_at,
            updated_at=row.updated_at,
            email=row.email,
            display_name=row.display_name,
            completed=row.completed,
        )


@dataclass
class ReconcileResult:
    """
    Outcome of a reconcile call.

    ``warning`` is set only when every attempt failed; the calling flow
    should carry on and let the next authenticated request heal the gap.
    """
    account_id: str
    profile: Optional[IdentityProfile] = None
    created: bool = False
    attempts: int = 0
    warning: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.profile is not None and self.warning is None
