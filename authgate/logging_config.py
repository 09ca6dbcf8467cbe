"""Structured logging for the credential service.

``configure_logging`` is called once by the entry point.  It routes both
structlog events and stdlib records (uvicorn, SQLAlchemy, redis-py) through
one processor chain rendered as JSON, or as coloured console output when
``LOG_PRETTY=1``.

Credentials must never reach a log line.  Call sites pass identifiers
through :pyfunc:`redact`; as a second line the ``mask_credentials``
processor blanks any event field whose name marks it as a secret.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

import structlog

__all__ = [
    "configure_logging",
    "bind_request_context",
    "get_logger",
    "mask_credentials",
    "redact",
]

SENSITIVE_FIELDS = frozenset(
    {
        "access_token",
        "refresh_token",
        "token",
        "password",
        "client_secret",
        "jwt_secret",
        "authorization",
    }
)
MASK = "***"


def redact(value: Optional[str], keep: int = 6) -> str:
    """Keep only the first *keep* characters of an identifier."""
    if not value:
        return ""
    return value[:keep] + "…"


def mask_credentials(_logger: Any, _method: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """structlog processor replacing secret-bearing fields with a mask.

    Values already shortened by ``redact`` are left as they are.
    """
    for key in SENSITIVE_FIELDS.intersection(event_dict):
        value = event_dict[key]
        if isinstance(value, str) and value.endswith("…"):
            continue
        event_dict[key] = MASK
    return event_dict


def _renderer():
    if os.getenv("LOG_PRETTY", "0").lower() in {"1", "true", "yes"}:
        return structlog.dev.ConsoleRenderer()
    return structlog.processors.JSONRenderer()


def configure_logging(force: bool = False) -> None:
    """Install the processor chain and the root handler.

    Repeated calls are no-ops unless *force* is set.
    """
    if getattr(structlog, "_authgate_configured", False) and not force:
        return

    level = getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)
    renderer = _renderer()

    pre_chain = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        mask_credentials,
    ]

    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.format_exc_info,
                renderer,
            ],
        )
    )

    root = logging.getLogger()
    # Replace handlers so repeated configuration never duplicates output
    root.handlers[:] = [handler]
    root.setLevel(level)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *pre_chain,
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    structlog._authgate_configured = True  # type: ignore[attr-defined]


def bind_request_context(
    request_id: Optional[str] = None,
    client_id: Optional[str] = None,
) -> None:
    """Attach correlation IDs to every log line of the current request."""
    context = {
        key: value
        for key, value in (("request_id", request_id), ("client_id", client_id))
        if value
    }
    if context:
        structlog.contextvars.bind_contextvars(**context)


def get_logger(name: Optional[str] = None):
    """Return a structlog logger, configuring logging first if needed."""
    configure_logging()
    return structlog.get_logger(name) if name else structlog.get_logger()
