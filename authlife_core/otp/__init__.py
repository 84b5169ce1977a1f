"""
OTP Challenges
==============
One-time passcode issuance and verification.
"""

from .models import (
    Channel,
    ChallengeState,
    VerificationStatus,
    Challenge,
    ChallengeTicket,
    VerificationResult,
)
from .hashing import generate_otp, generate_salt, hash_otp, verify_otp_hash, is_well_formed_code
from .destinations import canonicalize_destination, format_for_channel, validate_e164
from .store import ChallengeStore
from .manager import OTPManager, render_message

__all__ = [
    "Channel",
    "ChallengeState",
    "VerificationStatus",
    "Challenge",
    "ChallengeTicket",
    "VerificationResult",
    "generate_otp",
    "generate_salt",
    "hash_otp",
    "verify_otp_hash",
    "is_well_formed_code",
    "canonicalize_destination",
    "format_for_channel",
    "validate_e164",
    "ChallengeStore",
    "OTPManager",
    "render_message",
]
