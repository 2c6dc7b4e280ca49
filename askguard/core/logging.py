"""
Structured logging for the ask service.

Two entry points:
  get_logger   -- per-module logger (stdout, level from settings)
  audit_event  -- one-line ``key=value`` record on the ``askguard.audit``
                  logger for operator-facing security events (guard
                  rejections, scope failures, default-tenant fallbacks)
"""
from __future__ import annotations

import logging
import sys
from typing import Any

from askguard.core.config import get_settings

_AUDIT_LOGGER = "askguard.audit"
_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def get_logger(name: str) -> logging.Logger:
    settings = get_settings()
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        logger.addHandler(handler)
    logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    return logger


def _format_value(value: Any) -> str:
    text = str(value)
    if not text or any(ch.isspace() for ch in text) or "=" in text:
        return repr(" ".join(text.split()))
    return text


def audit_event(event: str, level: int = logging.WARNING, **fields: Any) -> None:
    """Emit a single-line audit record, e.g.

    ``guard_rejected tenant_id=74 reason='missing LIMIT' sql='SELECT ...'``
    """
    parts = [event] + [f"{k}={_format_value(v)}" for k, v in fields.items()]
    get_logger(_AUDIT_LOGGER).log(level, " ".join(parts))
