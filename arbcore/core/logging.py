"""Structured logging for arbcore.

Console output in development, JSON when ``ARBCORE_ENV=production``.
Every record passes through ``redact_secrets`` so signer keys, keystore
passphrases and API keys are masked even when a caller logs them raw.
``order_context`` binds the order id (and any extra keys such as the trading
mode) to everything logged while one order is in flight; the audit trail in
``log_order_event`` relies on it.
"""

from __future__ import annotations

import os
import sys
from typing import TYPE_CHECKING, Any, cast

import structlog

if TYPE_CHECKING:
    from contextlib import AbstractContextManager

    from structlog.types import EventDict, Processor, WrappedLogger

AUDIT_LOGGER = "arbcore.audit"

SECRET_KEYS = frozenset({
    "private_key",
    "keystore_password",
    "password",
    "passphrase",
    "api_key",
    "auth_key",
    "secret",
})

_LEVELS = {
    "debug": 10,
    "info": 20,
    "warning": 30,
    "warn": 30,
    "error": 40,
    "exception": 40,
    "critical": 50,
}

_CONFIGURED = False


def mask_secret(value: str) -> str:
    """Mask all but the last 4 characters of a secret."""
    if len(value) <= 4:
        return "****"
    return "*" * (len(value) - 4) + value[-4:]


def redact_secrets(_logger: WrappedLogger, _method: str, event_dict: EventDict) -> EventDict:
    for key in SECRET_KEYS.intersection(event_dict):
        event_dict[key] = mask_secret(str(event_dict[key]))
    return event_dict


def level_filter(level_name: str) -> Processor:
    """Processor dropping records below ``level_name`` (unknown names mean INFO)."""
    threshold = _LEVELS.get(level_name.lower(), _LEVELS["info"])

    def drop_below(_logger: WrappedLogger, method: str, event_dict: EventDict) -> EventDict:
        if _LEVELS.get(method, _LEVELS["info"]) < threshold:
            raise structlog.DropEvent
        return event_dict

    return drop_below


def configure_logging(env: str | None = None, level: str | None = None) -> None:
    """Configure structlog from ``ARBCORE_ENV`` and ``ARBCORE_LOG_LEVEL``."""
    global _CONFIGURED
    env = env or os.environ.get("ARBCORE_ENV", "development")
    level = level or os.environ.get("ARBCORE_LOG_LEVEL", "INFO")

    if env == "production":
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            level_filter(level),
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            redact_secrets,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _CONFIGURED = True


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Named logger; configures structlog on first use."""
    if not _CONFIGURED:
        configure_logging()
    return cast(structlog.stdlib.BoundLogger, structlog.get_logger(name))


def order_context(order_id: str, **context: Any) -> AbstractContextManager[Any]:
    """Bind ``order_id`` and ``context`` to every record logged inside the block."""
    return structlog.contextvars.bound_contextvars(order_id=order_id, **context)


def log_order_event(action: str, order_id: str, **kwargs: Any) -> None:
    """Write one order lifecycle step (admit, fill, reject, error, ...) to the audit trail."""
    get_logger(AUDIT_LOGGER).info(
        "order_event",
        event_type="audit",
        action=action,
        order_id=order_id,
        **kwargs,
    )
