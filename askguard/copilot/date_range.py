"""
Natural-language date range resolution.

Recognised phrases (first match wins):

  today                   [today, today+1)
  yesterday               [today-1, today)
  last week               [today-7, today)   rolling, not an ISO week
  N days ago              [today-N, today-N+1)
  N weeks ago             [today-7N, today-7N+1)   one day, not a 7-day span
  between <d> and <d>     [earlier, later+1)  either order
  on <d>                  [d, d+1)
  week of <d>             [d, d+7)

``<d>`` is ``YYYY-MM-DD`` or ``D/M/YYYY`` (``-`` also accepted as separator).
The numeric form is always day/month/year; it is never inferred.

All arithmetic is on UTC calendar days.  No match → ``None`` and the caller
applies its own default window.
"""
from __future__ import annotations

import re
from datetime import date, datetime, timedelta, timezone

from askguard.copilot.models import DateRange

_ISO_RE = re.compile(r"^([0-9]{4})-([0-9]{2})-([0-9]{2})$")
_DMY_RE = re.compile(r"^([0-9]{1,2})[/\-]([0-9]{1,2})[/\-]([0-9]{4})$")

_TODAY_RE = re.compile(r"\btoday\b")
_YESTERDAY_RE = re.compile(r"\byesterday\b")
_LAST_WEEK_RE = re.compile(r"\blast\s+week\b")
_DAYS_AGO_RE = re.compile(r"\b([0-9]{1,9})\s+days?\s+ago\b")
_WEEKS_AGO_RE = re.compile(r"\b([0-9]{1,9})\s+weeks?\s+ago\b")
_BETWEEN_RE = re.compile(r"\bbetween\s+([0-9/\-]+)\s+and\s+([0-9/\-]+)\b")
_ON_RE = re.compile(r"\bon\s+([0-9/\-]{8,10})\b")
_WEEK_OF_RE = re.compile(r"\bweek\s+of\s+([0-9/\-]{8,10})\b")


def utc_today(now: datetime | None = None) -> date:
    """UTC calendar day of *now* (naive datetimes are taken as UTC)."""
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc).date()


def today_range(now: datetime | None = None) -> DateRange:
    """The default one-day window callers use when nothing was stated."""
    today = utc_today(now)
    return DateRange(start=today, end=today + timedelta(days=1), label="today")


def parse_date(text: str | None) -> date | None:
    """Parse ``YYYY-MM-DD`` or day/month/year; None when not a real date."""
    if not text:
        return None
    m = _ISO_RE.match(text)
    if m:
        y, mo, d = m.groups()
    else:
        m = _DMY_RE.match(text)
        if not m:
            return None
        d, mo, y = m.groups()
    try:
        return date(int(y), int(mo), int(d))
    except ValueError:
        return None


def _window(start: date, days: int, label: str) -> DateRange:
    return DateRange(start=start, end=start + timedelta(days=days), label=label)


def resolve_date_range(question: str | None, now: datetime | None = None) -> DateRange | None:
    """Extract a date range from *question*, or None when none is stated.

    Never raises for malformed text.
    """
    if not question or not isinstance(question, str):
        return None

    try:
        return _resolve(question.lower(), utc_today(now))
    except (OverflowError, ValueError):
        # day counts or dates beyond the calendar
        return None


def _resolve(q: str, today: date) -> DateRange | None:
    if _TODAY_RE.search(q):
        return _window(today, 1, "today")

    if _YESTERDAY_RE.search(q):
        return _window(today - timedelta(days=1), 1, "yesterday")

    if _LAST_WEEK_RE.search(q):
        return _window(today - timedelta(days=7), 7, "last week")

    m = _DAYS_AGO_RE.search(q)
    if m:
        n = int(m.group(1))
        return _window(today - timedelta(days=n), 1, f"{n} days ago")

    m = _WEEKS_AGO_RE.search(q)
    if m:
        n = int(m.group(1))
        return _window(today - timedelta(days=7 * n), 1, f"{n} weeks ago")

    m = _BETWEEN_RE.search(q)
    if m:
        a, b = parse_date(m.group(1)), parse_date(m.group(2))
        if a and b:
            first, last = min(a, b), max(a, b)
            return DateRange(start=first, end=last + timedelta(days=1), label="between")

    m = _ON_RE.search(q)
    if m:
        d = parse_date(m.group(1))
        if d:
            return _window(d, 1, "on")

    m = _WEEK_OF_RE.search(q)
    if m:
        d = parse_date(m.group(1))
        if d:
            return _window(d, 7, "week of")

    return None
