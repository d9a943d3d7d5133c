"""Value types for date resolution."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Literal

DateKind = Literal["dmy", "mdy", "iso", "text", "freeform"]
ResolutionPolicy = Literal["deterministic", "heuristic"]


@dataclass(frozen=True)
class DateCandidate:
    """One valid interpretation of a raw date string."""

    kind: DateKind
    value: date
    source: str


@dataclass(frozen=True)
class ResolvedDate:
    """The single chosen calendar date for a raw string."""

    value: date
    kind: DateKind
