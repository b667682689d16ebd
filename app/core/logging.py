"""
Structured logging setup.

Every handler logs through ``get_logger(TAG)`` so each line carries the
function tag it came from (``STRIPE-WEBHOOK``, ``CANCEL-BOOKING`` ...).
"""
import logging
import re

import structlog

from app.core.config import settings

_SECRET_PATTERNS = [
    (re.compile(r"\b(sk|rk)_(live|test)_[0-9A-Za-z]+"), r"\1_\2_REDACTED"),
    (re.compile(r"\bwhsec_[0-9A-Za-z]+"), "whsec_REDACTED"),
    (re.compile(r"(Bearer\s+)[A-Za-z0-9\-_.]+"), r"\1REDACTED"),
    (re.compile(r"([?&]access_token=)[^&\s]+"), r"\1REDACTED"),
]


def _scrub(value):
    if isinstance(value, str):
        for pattern, repl in _SECRET_PATTERNS:
            value = pattern.sub(repl, value)
        return value
    if isinstance(value, list):
        return [_scrub(v) for v in value]
    if isinstance(value, dict):
        return {k: _scrub(v) for k, v in value.items()}
    return value


def redact_secrets(logger, method_name, event_dict):
    for key, value in list(event_dict.items()):
        event_dict[key] = _scrub(value)
    return event_dict


_configured = False


def configure_logging() -> None:
    global _configured
    if _configured:
        return

    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(message)s",  # structlog handles formatting
        handlers=[logging.StreamHandler()],
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            redact_secrets,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _configured = True


def get_logger(tag: str):
    configure_logging()
    return structlog.get_logger("stackd").bind(tag=tag)
