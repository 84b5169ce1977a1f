"""
OTP Hashing Utilities
=====================
Code generation and one-way hashing bound to the destination.
"""

import secrets
import hashlib
import hmac


def generate_otp(length: int = 6) -> str:
    """
    Generate a cryptographically random numeric OTP.

    Args:
        length: Number of digits

    Returns:
        Zero-padded numeric string
    """
    otp = secrets.randbelow(10 ** length)
    return str(otp).zfill(length)


def generate_salt() -> str:
    """Generate a random per-challenge salt."""
    return secrets.token_hex(16)


def hash_otp(otp: str, destination: str, salt: str, pepper: str = "") -> str:
    """
    Hash an OTP bound to its destination.

    The same code sent to two destinations never yields the same hash.

    Args:
        otp: Plain OTP
        destination: Canonical destination the code was sent to
        salt: Per-challenge random salt
        pepper: Optional deployment-wide secret

    Returns:
        Hex-encoded HMAC-SHA256 digest
    """
    message = f"{salt}:{destination}:{otp}".encode()
    return hmac.new(pepper.encode(), message, hashlib.sha256).hexdigest()


def verify_otp_hash(
    otp: str,
    destination: str,
    salt: str,
    stored_hash: str,
    pepper: str = "",
) -> bool:
    """
    Verify an OTP against its stored hash.

    Uses constant-time comparison to prevent timing attacks.
    """
    computed_hash = hash_otp(otp, destination, salt, pepper)
    return hmac.compare_digest(computed_hash, stored_hash)


def is_well_formed_code(code: str, length: int = 6) -> bool:
    """True if ``code`` is exactly ``length`` ASCII digits."""
    return (
        isinstance(code, str)
        and len(code) == length
        and code.isascii()
        and code.isdigit()
    )
