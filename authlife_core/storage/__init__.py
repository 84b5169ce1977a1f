"""
Storage Layer
=============
Table mappings and driver error classification.
"""

from .errors import classify_storage_error, is_unique_violation
from .models import AuditEventRow, ChallengeRow, ProfileRow, RateLimitWindowRow

__all__ = [
    "classify_storage_error",
    "is_unique_violation",
    "AuditEventRow",
    "ChallengeRow",
    "ProfileRow",
    "RateLimitWindowRow",
]
