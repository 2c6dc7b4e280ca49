"""
Tenant (restaurant) resolution.

Resolved exactly once per request, in this order:

  1. a restaurant id stated in the question ("restaurant 74",
     "restaurant id: 74", "restaurant_id=74", "for restaurant 74");
  2. the id supplied by the caller;
  3. the configured ``DEFAULT_TENANT_ID`` -- only when set, and logged as
     a WARNING on every use.

If none applies a ``TenantResolutionError`` is raised; the request is
refused rather than run against an arbitrary restaurant.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal

from askguard.core.config import Settings, get_settings
from askguard.core.logging import audit_event, get_logger

logger = get_logger(__name__)

TenantSource = Literal["question", "caller", "default"]

_TYPOS = (
    (re.compile(r"\bresturant"), "restaurant"),
    (re.compile(r"\brestuarant"), "restaurant"),
)

_PATTERNS = (
    re.compile(r"\brestaurant[\s_]*id\s*[:=]?\s*([0-9]{1,18})\b"),
    re.compile(r"\brestaurant\s*[:=#]?\s*([0-9]{1,18})\b"),
    re.compile(r"\bfor\s+restaurant\s+([0-9]{1,18})\b"),
)
_CALLER_ID_RE = re.compile(r"[0-9]{1,18}")


class TenantResolutionError(ValueError):
    """No restaurant id in the question, from the caller, or configured."""


@dataclass(frozen=True)
class TenantResolution:
    tenant_id: int
    source: TenantSource


def detect_tenant_id(question: str | None) -> int | None:
    """Restaurant id stated in *question*, tolerating common misspellings."""
    if not question:
        return None
    q = question.lower()
    for typo, fixed in _TYPOS:
        q = typo.sub(fixed, q)
    for pattern in _PATTERNS:
        m = pattern.search(q)
        if m:
            return int(m.group(1))
    return None


def _coerce_caller_id(value: object) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, str) and _CALLER_ID_RE.fullmatch(value.strip()):
        return int(value.strip())
    return None


def resolve_tenant_id(
    question: str | None,
    caller_tenant_id: object = None,
    settings: Settings | None = None,
) -> TenantResolution:
    """Resolve the tenant for one request.

    Raises
    ------
    TenantResolutionError
        When no source yields a restaurant id.
    """
    detected = detect_tenant_id(question)
    if detected is not None:
        if caller_tenant_id is not None and _coerce_caller_id(caller_tenant_id) != detected:
            logger.info("Question names restaurant %d; overriding caller value %r",
                        detected, caller_tenant_id)
        return TenantResolution(detected, "question")

    caller = _coerce_caller_id(caller_tenant_id)
    if caller is not None:
        return TenantResolution(caller, "caller")
    if caller_tenant_id is not None:
        logger.warning("Ignoring malformed caller restaurant id %r", caller_tenant_id)

    if settings is None:
        settings = get_settings()
    if settings.default_tenant_id is not None:
        logger.warning("No restaurant id in request -- falling back to DEFAULT_TENANT_ID=%d",
                       settings.default_tenant_id)
        audit_event("default_tenant_used", tenant_id=settings.default_tenant_id)
        return TenantResolution(settings.default_tenant_id, "default")

    raise TenantResolutionError(
        "Could not determine the restaurant. Mention it in the question "
        "(e.g. 'for restaurant 74') or pass restaurant_id."
    )
