"""Trailing time-window filtering over resolved records."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import datetime, time, timedelta
from typing import TypeVar

from core.dates.models import ResolvedDate
from core.ingest.models import DatedRecord, NormalizedRecord, RetentionResult

T = TypeVar("T")

SECONDS_PER_DAY = 86400


def resolve_records(
    records: Sequence[NormalizedRecord],
    resolver: Callable[[str], ResolvedDate | None],
    *,
    date_field: str = "DATE",
) -> list[DatedRecord]:
    """Pair each record with the resolver's reading of its date field."""

    dated: list[DatedRecord] = []
    for record in records:
        raw_date = record.get(date_field)
        dated.append(DatedRecord(record=record, raw_date=raw_date, resolved=resolver(raw_date)))
    return dated


def retention_cutoff(window_days: int, now: datetime | None = None) -> datetime:
    """Return ``now - window_days * 86400s``."""

    reference = now if now is not None else datetime.now()
    return reference - timedelta(seconds=window_days * SECONDS_PER_DAY)


def apply_retention(
    records: Sequence[DatedRecord],
    window_days: int,
    *,
    now: datetime | None = None,
) -> RetentionResult:
    """Keep records whose resolved date is not older than the cutoff.

    A resolved date counts as local midnight of that day and the comparison is
    inclusive. ``window_days <= 0`` disables filtering and keeps every record,
    including those without a resolved date. Input order is preserved.
    """

    result = RetentionResult()
    if window_days <= 0:
        result.kept = list(records)
        return result

    cutoff = retention_cutoff(window_days, now)
    for item in records:
        if item.resolved is None:
            result.unresolved.append(item)
            continue
        if datetime.combine(item.resolved.value, time.min) >= cutoff:
            result.kept.append(item)
        else:
            result.expired.append(item)
    return result


def cap_most_recent(records: Sequence[T], last_n: int) -> list[T]:
    """Keep only the trailing ``last_n`` records; ``last_n <= 0`` keeps all."""

    if last_n <= 0:
        return list(records)
    return list(records[-last_n:])
