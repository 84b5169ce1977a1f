"""
Structured Logging Setup
========================
Configures structlog on top of the standard library logging module.

Usage:
    from authlife_core.logging import setup_logging, bind_request_context

    # Setup at startup
    setup_logging(service_name="authlife-core")

    # Per request
    bind_request_context(request_id="req_123")
"""

import logging
import sys
import uuid
from contextvars import ContextVar
from typing import Optional

import structlog

# Context variables for request tracking
request_id_var: ContextVar[str] = ContextVar("request_id", default="")
service_name_var: ContextVar[str] = ContextVar("service_name", default="unknown")


def _add_service_name(logger, method_name, event_dict):
    event_dict.setdefault("service", service_name_var.get())
    return event_dict


def setup_logging(
    service_name: str,
    level: str = "INFO",
    json_output: bool = True,
) -> None:
    """
    Configure structlog and the root logger for a service.

    Args:
        service_name: Name of the service (e.g., "authlife-core")
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: Render JSON lines (production) instead of console output
    """
    service_name_var.set(service_name)
    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            _add_service_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        cache_logger_on_first_use=True,
    )

    structlog.get_logger(__name__).info(
        "Logging configured", service=service_name, level=level.upper()
    )


def bind_request_context(request_id: Optional[str] = None, **values) -> str:
    """
    Bind a request id (generated if missing) and extra values to the log context.

    Returns:
        The bound request id
    """
    request_id = request_id or str(uuid.uuid4())
    request_id_var.set(request_id)
    structlog.contextvars.bind_contextvars(request_id=request_id, **values)
    return request_id


def clear_request_context() -> None:
    """Drop all per-request log context."""
    request_id_var.set("")
    structlog.contextvars.clear_contextvars()


def mask_destination(destination: Optional[str]) -> str:
    """Mask a phone number or e-mail for logs (keeps a short prefix)."""
    if not destination:
        return "unknown"
    if "@" in destination:
        local, _, domain = destination.partition("@")
        return f"{local[:2]}***@{domain}"
    return f"{destination[:5]}***"
