"""
Shared logging configuration for the River Monitoring Portal.

Every service logs one JSON object per line through structlog. Request and
actor correlation travel in context variables so log calls deep inside the
service layer do not need them passed explicitly.
"""

import sys
import uuid
import logging
from contextvars import ContextVar
from typing import Any, Dict, Optional

import structlog

# Correlation for the request currently being served
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
actor_id_var: ContextVar[Optional[str]] = ContextVar("actor_id", default=None)
actor_role_var: ContextVar[Optional[str]] = ContextVar("actor_role", default=None)
agency_var: ContextVar[Optional[str]] = ContextVar("agency", default=None)

# Event keys whose values never reach the log stream
SENSITIVE_KEYS = frozenset({"password", "password_hash", "token", "authorization", "jwt_secret"})

_service_name: Optional[str] = None


def configure_logging(service_name: str, log_level: str = "info") -> None:
    """Configure structured JSON logging for a service."""
    global _service_name
    _service_name = service_name

    level = getattr(logging, log_level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            add_service_context,
            add_correlation_context,
            redact_sensitive,
            structlog.processors.JSONRenderer(default=str)
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # structlog hands rendered lines to the stdlib root logger
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )
    logging.getLogger().setLevel(level)


def add_service_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    if _service_name:
        event_dict.setdefault("service", _service_name)
    return event_dict


def add_correlation_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Attach the request id and, once authenticated, the acting administrator."""
    for key, var in (
        ("request_id", request_id_var),
        ("actor_id", actor_id_var),
        ("actor_role", actor_role_var),
        ("agency", agency_var),
    ):
        value = var.get()
        if value and key not in event_dict:
            event_dict[key] = value
    return event_dict


def redact_sensitive(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    for key in SENSITIVE_KEYS.intersection(event_dict):
        event_dict[key] = "[redacted]"
    return event_dict


def set_request_id(request_id: Optional[str] = None) -> str:
    """Set request ID in context, generating one when the client sent none."""
    if not request_id:
        request_id = str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


def set_actor_context(actor_id: Optional[str] = None, role: Optional[str] = None, agency: Optional[str] = None):
    """Record the authenticated administrator for the rest of the request."""
    if actor_id:
        actor_id_var.set(actor_id)
    if role:
        actor_role_var.set(role)
    if agency:
        agency_var.set(agency)


def clear_context():
    for var in (request_id_var, actor_id_var, actor_role_var, agency_var):
        var.set(None)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
