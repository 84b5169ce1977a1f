"""
Audit Actions
=============
Authentication event actions recorded in ``audit_events``.
"""

from enum import Enum
from typing import Optional


class AuditAction(str, Enum):
    """
    Known audit actions.

    Closed on write; on read any unrecognized string becomes ``UNKNOWN``.
    """
    USER_SIGNUP = "user_signup"
    USER_SIGNEDUP = "user_signedup"
    USER_REPEATED_SIGNUP = "user_repeated_signup"
    USER_CONFIRMATION_REQUESTED = "user_confirmation_requested"
    OTP_REQUESTED = "otp_requested"
    OTP_VERIFIED = "otp_verified"
    OTP_FAILED = "otp_failed"

    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> "AuditAction":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


# Unblocked events of these kinds count as successful authentications
SUCCESS_ACTIONS = frozenset({
    AuditAction.USER_SIGNUP,
    AuditAction.USER_SIGNEDUP,
    AuditAction.OTP_VERIFIED,
})
