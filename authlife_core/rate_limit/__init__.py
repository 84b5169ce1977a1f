"""
Rate Limiting
=============
Storage-backed OTP request limits and blocked-history queries.
"""

from .models import RateLimitResult, RateLimitInfo
from .storage_limiter import StorageRateLimiter
from .surface import RateLimitSurface

__all__ = [
    "RateLimitResult",
    "RateLimitInfo",
    "StorageRateLimiter",
    "RateLimitSurface",
]
