"""
Structured Logging
==================
structlog configuration shared by every engine component.
"""

from .structured import (
    setup_logging,
    bind_request_context,
    clear_request_context,
    mask_destination,
    request_id_var,
    service_name_var,
)

__all__ = [
    "setup_logging",
    "bind_request_context",
    "clear_request_context",
    "mask_destination",
    "request_id_var",
    "service_name_var",
]
