"""
Shared logging configuration for the RBAC decision core.

Loggers are named ``rbac.<component>`` (``rbac.decision_engine``,
``rbac.cache.decisions``...). Every event carries the current user and
tenant, and events emitted while a check runs also carry its ``check_id``
so resolver and cache lines can be tied back to one decision.
"""

import sys
import uuid
import structlog
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional
from contextvars import ContextVar

# Correlation
user_id_var: ContextVar[Optional[str]] = ContextVar('user_id', default=None)
tenant_id_var: ContextVar[Optional[str]] = ContextVar('tenant_id', default=None)
check_id_var: ContextVar[Optional[str]] = ContextVar('check_id', default=None)


def configure_logging(service_name: str, log_level: str = "info", json_logs: bool = True) -> None:
    """Configure structured logging for the decision core.

    ``json_logs=False`` switches to the console renderer for local runs.
    """
    level = getattr(logging, log_level.upper())
    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()

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
            add_component_context,
            add_correlation_context,
            renderer
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    logging.getLogger(service_name).setLevel(level)


def add_component_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Split ``rbac.cache.decisions`` into service ``rbac`` and component ``cache.decisions``."""
    logger_name = event_dict.get("logger", "")
    if "." in logger_name:
        service, component = logger_name.split(".", 1)
        event_dict["service"] = service
        event_dict.setdefault("component", component)

    return event_dict


def add_correlation_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add the current user, tenant and check id; explicit event keys win."""
    for key, var in (("user_id", user_id_var), ("tenant_id", tenant_id_var), ("check_id", check_id_var)):
        value = var.get()
        if value and key not in event_dict:
            event_dict[key] = value

    return event_dict


def set_user_context(user_id: Optional[str] = None, tenant_id: Optional[str] = None):
    """Set user context in logging."""
    user_id_var.set(user_id)
    tenant_id_var.set(tenant_id)


def clear_context():
    """Clear all context variables."""
    user_id_var.set(None)
    tenant_id_var.set(None)
    check_id_var.set(None)


@contextmanager
def check_scope(check_id: Optional[str] = None) -> Iterator[str]:
    """Tag every log event inside the block with one check id."""
    token = check_id_var.set(check_id or uuid.uuid4().hex[:16])
    try:
        yield check_id_var.get()
    finally:
        check_id_var.reset(token)


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
