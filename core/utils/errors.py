"""Custom exceptions for core logic."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from core.templates.models import ParseResult


class ConfigurationError(Exception):
    """Raised when a required external resource reference is missing."""

    def __init__(self, message: str, *, setting: str | None = None) -> None:
        super().__init__(message)
        self.setting = setting


class SourceFetchError(Exception):
    """Raised when the record source cannot be read for the current cycle."""

    def __init__(self, message: str, *, source: str | None = None) -> None:
        super().__init__(message)
        self.source = source


class FilenameIntegrityError(Exception):
    """Raised when a computed artifact filename does not match the strict shape."""

    def __init__(
        self,
        message: str,
        *,
        raw_date: str | None = None,
        date_token: str | None = None,
        kind: str | None = None,
    ) -> None:
        super().__init__(message)
        self.raw_date = raw_date
        self.date_token = date_token
        self.kind = kind


class LockContentionError(Exception):
    """Raised when another runner already holds the generation lock."""

    def __init__(
        self,
        message: str,
        *,
        lock_path: Path,
        owner: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.lock_path = lock_path
        self.owner = owner or {}


class RecordGenerationError(Exception):
    """Raised when one record cannot be rendered or written."""

    def __init__(self, message: str, *, record_id: str | None = None) -> None:
        super().__init__(message)
        self.record_id = record_id


class TemplateError(Exception):
    """Raised when template placeholders are unsupported in strict/error mode."""

    def __init__(self, message: str, *, result: ParseResult | None = None) -> None:
        super().__init__(message)
        self.result = result
