"""Persisted cursor over processed record identifiers."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

from core.utils.log_events import log_event

logger = logging.getLogger("worksheet.ingest")

OrderKey = Callable[[str], Any]


def default_order_key(record_id: str) -> tuple[int, int, str]:
    """Order numeric identifiers numerically and everything else lexically.

    Numeric identifiers sort before non-numeric ones so the order stays total.
    """

    value = record_id.strip()
    if value.isdigit():
        return (0, int(value), "")
    return (1, 0, value)


class WatermarkTracker:
    """Single-value watermark stored in a text file.

    The watermark is only advanced by the caller after the artifact for that
    record has been durably written. A single writer is assumed.
    """

    def __init__(self, path: Path, order_key: OrderKey = default_order_key) -> None:
        self._path = path
        self._order_key = order_key

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> str | None:
        try:
            value = self._path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        return value or None

    def accepts(self, record_id: str | None, watermark: str | None) -> bool:
        """Return True when ``record_id`` is newer than ``watermark``."""

        if record_id is None or not record_id.strip():
            return True
        if watermark is None:
            return True
        return self._order_key(record_id) > self._order_key(watermark)

    def advance(self, record_id: str) -> bool:
        """Persist ``record_id`` unless it would move the watermark backwards."""

        current = self.load()
        if current is not None and not self.accepts(record_id, current):
            return False

        self._path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self._path.with_suffix(f"{self._path.suffix}.tmp")
        with temp_path.open("w", encoding="utf-8") as handle:
            handle.write(record_id)
            handle.flush()
            os.fsync(handle.fileno())
        temp_path.replace(self._path)

        log_event(
            logger,
            logging.DEBUG,
            "watermark_advanced",
            path=str(self._path),
            previous=current,
            watermark=record_id,
        )
        return True
