"""
Destination Utilities
=====================
Canonical form and channel-specific formatting of OTP destinations.
"""

import re

from authlife_core.errors import ValidationError
from .models import Channel

E164_PATTERN = re.compile(r'^\+[1-9]\d{1,14}$')
WHATSAPP_PREFIX = "whatsapp:"


def validate_e164(phone: str) -> bool:
    """
    Validate E.164 phone number format.

    Args:
        phone: Phone number

    Returns:
        True if valid E.164 format
    """
    return bool(E164_PATTERN.match(phone))


def canonicalize_destination(destination: str, channel: Channel) -> str:
    """
    Reduce a destination to its canonical E.164 form.

    Strips a ``whatsapp:`` prefix, whitespace, dashes, dots and parentheses.

    Raises:
        ValidationError: If the result is not E.164
    """
    if not isinstance(destination, str) or not destination.strip():
        raise ValidationError("Destination is required", field="destination")

    value = destination.strip()
    if value.lower().startswith(WHATSAPP_PREFIX):
        value = value[len(WHATSAPP_PREFIX):]

    value = re.sub(r'[\s\-().]', '', value)
    if value.startswith("00"):
        value = "+" + value[2:]

    if not validate_e164(value):
        raise ValidationError(
            f"Destination must be an E.164 phone number for {channel.value}",
            field="destination",
        )
    return value


def format_for_channel(destination: str, channel: Channel) -> str:
    """Format a canonical destination the way the transport expects it."""
    if channel == Channel.WHATSAPP:
        return f"{WHATSAPP_PREFIX}{destination}"
    return destination
