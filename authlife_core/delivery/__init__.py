"""
OTP Delivery
============
SMS and WhatsApp transports behind one ``send`` capability.
"""

from .base import DeliveryDispatcher, DeliveryError, DeliveryReceipt
from .memory import InMemoryDispatcher, SentMessage
from .twilio import TwilioDispatcher

__all__ = [
    "DeliveryDispatcher",
    "DeliveryError",
    "DeliveryReceipt",
    "InMemoryDispatcher",
    "SentMessage",
    "TwilioDispatcher",
]
