"""Record source and audit sink interfaces."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Protocol

import httpx

from core.ingest.models import RawRecord

DEFAULT_TIMEOUT_SECONDS = 10.0


class RecordSource(Protocol):
    """Supplies an ordered batch of raw records, oldest first."""

    name: str

    def fetch(self) -> list[RawRecord]:
        """Fetch the current batch of records."""


class StaticRecordSource:
    """Serve a fixed batch, e.g. one pushed webhook submission."""

    def __init__(self, records: list[RawRecord], *, name: str = "static") -> None:
        self._records = list(records)
        self.name = name

    def fetch(self) -> list[RawRecord]:
        return list(self._records)


@dataclass(frozen=True)
class AuditRow:
    """Fixed-shape row appended after each generated artifact."""

    name: str
    contact: str
    date: str
    work_still_to_do: str
    timestamp: str

    def as_values(self) -> list[str]:
        return [self.name, self.contact, self.date, self.work_still_to_do, self.timestamp]


class AuditSink(Protocol):
    """Append-only audit destination."""

    def append(self, row: AuditRow) -> None:
        """Append one row."""


@contextmanager
def http_client(
    client: httpx.Client | None, timeout: float = DEFAULT_TIMEOUT_SECONDS
) -> Iterator[httpx.Client]:
    """Yield the injected client, or a short-lived one that is closed afterwards."""

    if client is not None:
        yield client
        return
    with httpx.Client(timeout=timeout) as owned:
        yield owned
