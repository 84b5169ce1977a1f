"""
Identity Profiles
=================
Exactly-once profile reconciliation.
"""

from .models import (
    AccountType,
    DEFAULT_ACCOUNT_TYPE,
    AccountMetadata,
    IdentityProfile,
    ReconcileResult,
)
from .store import ProfileStore
from .reconciler import ProfileReconciler

__all__ = [
    "AccountType",
    "DEFAULT_ACCOUNT_TYPE",
    "AccountMetadata",
    "IdentityProfile",
    "ReconcileResult",
    "ProfileStore",
    "ProfileReconciler",
]
