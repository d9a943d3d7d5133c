"""Record types flowing through one ingestion cycle."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

from core.dates.models import ResolvedDate


@dataclass(frozen=True)
class RawRecord:
    """One fetched row or submission before normalization.

    ``row`` keeps the original column order so that fields can be read by index.
    Push-shaped records have no meaningful column order and leave it empty.
    """

    values: Mapping[str, str]
    row: tuple[str, ...] = ()
    record_id: str | None = None


@dataclass(frozen=True)
class NormalizedRecord:
    """Canonical worksheet fields for one raw record."""

    fields: Mapping[str, str]
    raw: RawRecord
    record_id: str | None = None

    def get(self, name: str) -> str:
        return self.fields.get(name, "")


@dataclass(frozen=True)
class DatedRecord:
    """A normalized record paired with its resolved date, if any."""

    record: NormalizedRecord
    raw_date: str
    resolved: ResolvedDate | None = None


@dataclass
class RetentionResult:
    """Outcome of applying a trailing retention window."""

    kept: list[DatedRecord] = field(default_factory=list)
    expired: list[DatedRecord] = field(default_factory=list)
    unresolved: list[DatedRecord] = field(default_factory=list)
