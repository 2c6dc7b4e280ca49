"""
Value types passed between the resolver, the synthesizer, the guard and the
ask handler.  All are immutable and built fresh per request.
"""
from __future__ import annotations

import re
from datetime import date
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

_LIMIT_RE = re.compile(r"\bLIMIT\b", re.IGNORECASE)


class DateRange(BaseModel):
    """Closed-open calendar interval ``[start, end)`` in UTC days."""

    model_config = ConfigDict(frozen=True)

    start: date = Field(..., description="First day included")
    end: date = Field(..., description="First day excluded")
    label: str | None = Field(None, description="Phrase that produced the range, e.g. 'last week'")

    @model_validator(mode="after")
    def _check_order(self) -> "DateRange":
        if self.start >= self.end:
            raise ValueError(f"DateRange start {self.start} must be before end {self.end}")
        return self

    @property
    def start_iso(self) -> str:
        return self.start.isoformat()

    @property
    def end_iso(self) -> str:
        return self.end.isoformat()

    @property
    def days(self) -> int:
        return (self.end - self.start).days

    def describe(self) -> str:
        """Human-readable period with inclusive end, e.g. '2025-09-01 to 2025-09-07'."""
        if self.days == 1:
            return self.start_iso
        last = date.fromordinal(self.end.toordinal() - 1)
        return f"{self.start_iso} to {last.isoformat()}"


class Provenance(str, Enum):
    TEMPLATE = "template"
    EXTERNAL = "external"


class SqlStatement(BaseModel):
    """SQL text plus where it came from.  Never rewritten once produced."""

    model_config = ConfigDict(frozen=True)

    text: str
    provenance: Provenance
    intent: str | None = Field(None, description="Template intent name (template provenance only)")

    @property
    def has_limit(self) -> bool:
        return bool(_LIMIT_RE.search(self.text))

    def with_limit(self, limit: int) -> "SqlStatement":
        """Append ``LIMIT n`` when no LIMIT is present; otherwise return self."""
        if self.has_limit:
            return self
        return self.model_copy(update={"text": f"{self.text.rstrip()} LIMIT {int(limit)}"})
