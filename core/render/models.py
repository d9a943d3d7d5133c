"""Render report models."""

from __future__ import annotations

from typing import Literal

from docx.document import Document as DocxDocument
from pydantic import BaseModel, ConfigDict, Field

from core.templates.models import ParseResult

UnsupportedMode = Literal["error", "warn"]


class ReplaceLogEntry(BaseModel):
    """Single replacement/unsupported/missing log item."""

    model_config = ConfigDict(extra="forbid")

    status: Literal["replaced", "missing", "unsupported"]
    field_name: str | None = None
    run_id: str | None = None
    original_text: str | None = None
    reason: str | None = None


class ReplaceSummary(BaseModel):
    """Aggregate replacement counts for diagnostics."""

    model_config = ConfigDict(extra="forbid")

    total_placeholders: int
    replaced_count: int
    missing_count: int
    unsupported_count: int
    unsupported_mode: UnsupportedMode


class ReplaceReport(BaseModel):
    """Full replacement report including touched runs."""

    model_config = ConfigDict(extra="forbid")

    entries: list[ReplaceLogEntry] = Field(default_factory=list)
    summary: ReplaceSummary
    touched_runs: list[str] = Field(default_factory=list)

    @property
    def missing_fields(self) -> list[str]:
        names = {entry.field_name for entry in self.entries if entry.status == "missing"}
        return sorted(name for name in names if name is not None)


class RenderOutput(BaseModel):
    """In-memory render output."""

    model_config = ConfigDict(arbitrary_types_allowed=True, extra="forbid")

    document: DocxDocument
    parse_result: ParseResult
    replace_report: ReplaceReport
