"""
Engine Exceptions
=================
Exception taxonomy for the authentication lifecycle engine.

Verification outcomes (not found, expired, exhausted, invalid code) are
returned values, not exceptions. See ``authlife_core.otp.VerificationStatus``.
"""

from typing import Optional


class AuthLifecycleError(Exception):
    """Base exception for all engine errors."""

    def __init__(self, message: str, code: str = "AUTHLIFE_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class ValidationError(AuthLifecycleError):
    """Bad destination format or malformed code. Never retried."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, code="VALIDATION_ERROR")
        self.field = field


class RateLimited(AuthLifecycleError):
    """Too many OTP requests for one destination in the current window."""

    def __init__(self, message: str, retry_after: Optional[int] = None):
        super().__init__(message, code="RATE_LIMITED")
        self.retry_after = retry_after


class DeliveryFailed(AuthLifecycleError):
    """
    The OTP could not be delivered.

    The challenge was still created; the caller may request a new one.
    """

    def __init__(
        self,
        message: str,
        challenge_id: Optional[str] = None,
        transient: bool = True,
    ):
        super().__init__(message, code="DELIVERY_FAILED")
        self.challenge_id = challenge_id
        self.transient = transient


class StorageError(AuthLifecycleError):
    """Base class for classified storage-layer failures."""

    def __init__(self, message: str, code: str, original: Optional[BaseException] = None):
        super().__init__(message, code=code)
        self.original = original


class DuplicateKey(StorageError):
    """A uniqueness constraint rejected the write."""

    def __init__(self, message: str, original: Optional[BaseException] = None):
        super().__init__(message, code="DUPLICATE_KEY", original=original)


class TransientStorageError(StorageError):
    """A failure that may succeed on retry (locks, visibility, connections)."""

    def __init__(self, message: str, original: Optional[BaseException] = None):
        super().__init__(message, code="TRANSIENT_STORAGE", original=original)
