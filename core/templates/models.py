"""Placeholder scan results for ``{FIELD_NAME}`` templates."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

UnsupportedKind = Literal["cross_run", "invalid_format", "stray_close", "unclosed_bracket"]


@dataclass(frozen=True)
class Occurrence:
    """A ``{FIELD_NAME}`` tag that sits inside one run.

    ``start``/``end`` are offsets into that run's text.
    """

    field_name: str
    run_id: str
    start: int
    end: int


@dataclass(frozen=True)
class UnsupportedOccurrence:
    kind: UnsupportedKind
    text: str
    run_id: str | None
    start: int | None
    end: int | None


@dataclass
class ParseResult:
    """Field names in first-seen order plus every tag found."""

    fields: list[str] = field(default_factory=list)
    occurrences: list[Occurrence] = field(default_factory=list)
    unsupported: list[UnsupportedOccurrence] = field(default_factory=list)
