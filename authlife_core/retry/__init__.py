"""
Retry Logic with Backoff
========================
Retry mechanism for transient failures.
"""

from .exceptions import RetryExhausted
from .backoff import compute_delay, retry_with_backoff, with_retry

__all__ = [
    "RetryExhausted",
    "compute_delay",
    "retry_with_backoff",
    "with_retry",
]
