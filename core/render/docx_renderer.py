"""Docx renderer for run-level placeholder replacement."""

from __future__ import annotations

import io
import logging
from collections import defaultdict
from collections.abc import Mapping
from pathlib import Path

from docx import Document
from docx.document import Document as DocxDocument
from docx.text.run import Run

from core.render.models import (
    RenderOutput,
    ReplaceLogEntry,
    ReplaceReport,
    ReplaceSummary,
    UnsupportedMode,
)
from core.templates.models import Occurrence, ParseResult
from core.templates.placeholder_parser import build_run_lookup, parse_placeholders
from core.utils.errors import ConfigurationError, TemplateError
from core.utils.log_events import log_event

logger = logging.getLogger("worksheet.render")


class DocxTemplateRenderer:
    """Render a ``.docx`` template once per record."""

    extension = "docx"

    def __init__(self, template_path: Path, unsupported_mode: UnsupportedMode = "error") -> None:
        if unsupported_mode not in {"error", "warn"}:
            raise ValueError(f"Unsupported mode: {unsupported_mode}")
        if not template_path.is_file():
            raise ConfigurationError(
                f"Template not found at: {template_path}", setting="template_path"
            )
        self._template_path = template_path
        self._unsupported_mode: UnsupportedMode = unsupported_mode

    def render(self, fields: Mapping[str, str]) -> bytes:
        document = Document(str(self._template_path))
        output = render_docx(document, fields, unsupported_mode=self._unsupported_mode)

        summary = output.replace_report.summary
        log_event(
            logger,
            logging.DEBUG,
            "template_rendered",
            template=str(self._template_path),
            replaced=summary.replaced_count,
            missing=output.replace_report.missing_fields,
            unsupported=summary.unsupported_count,
        )

        buffer = io.BytesIO()
        output.document.save(buffer)
        return buffer.getvalue()


def render_docx(
    document: DocxDocument,
    field_values: Mapping[str, str],
    unsupported_mode: UnsupportedMode = "error",
) -> RenderOutput:
    """Replace placeholders in ``document`` in place.

    Fields absent from ``field_values`` render as an empty string. Newlines in
    values become line breaks.
    """

    if unsupported_mode not in {"error", "warn"}:
        raise ValueError(f"Unsupported mode: {unsupported_mode}")

    parse_result = parse_placeholders(document, strict=False)
    if parse_result.unsupported and unsupported_mode == "error":
        raise TemplateError("Unsupported placeholders found in template", result=parse_result)

    entries = [
        ReplaceLogEntry(
            status="unsupported",
            run_id=item.run_id,
            original_text=item.text,
            reason=item.kind,
        )
        for item in parse_result.unsupported
    ]

    replaced_entries, touched_runs = _replace_occurrences(
        occurrences=parse_result.occurrences,
        run_lookup=build_run_lookup(document),
        field_values=field_values,
    )
    entries.extend(replaced_entries)

    return RenderOutput(
        document=document,
        parse_result=parse_result,
        replace_report=_build_replace_report(parse_result, entries, touched_runs, unsupported_mode),
    )


def _replace_occurrences(
    occurrences: list[Occurrence],
    run_lookup: Mapping[str, Run],
    field_values: Mapping[str, str],
) -> tuple[list[ReplaceLogEntry], set[str]]:
    grouped: dict[str, list[Occurrence]] = defaultdict(list)
    for occurrence in occurrences:
        grouped[occurrence.run_id].append(occurrence)

    entries: list[ReplaceLogEntry] = []
    touched_runs: set[str] = set()

    for run_id in sorted(grouped.keys()):
        run = run_lookup.get(run_id)
        if run is None:
            continue

        run_text = run.text or ""
        for occurrence in sorted(grouped[run_id], key=lambda item: item.start, reverse=True):
            token_text = run_text[occurrence.start : occurrence.end]
            replacement = field_values.get(occurrence.field_name)
            status = "replaced"
            if replacement is None:
                replacement = ""
                status = "missing"

            run_text = run_text[: occurrence.start] + replacement + run_text[occurrence.end :]
            entries.append(
                ReplaceLogEntry(
                    status=status,
                    field_name=occurrence.field_name,
                    run_id=run_id,
                    original_text=token_text,
                    reason="missing_field" if status == "missing" else None,
                )
            )

        run.text = run_text
        touched_runs.add(run_id)

    return entries, touched_runs


def _build_replace_report(
    parse_result: ParseResult,
    entries: list[ReplaceLogEntry],
    touched_runs: set[str],
    unsupported_mode: UnsupportedMode,
) -> ReplaceReport:
    summary = ReplaceSummary(
        total_placeholders=len(parse_result.occurrences) + len(parse_result.unsupported),
        replaced_count=sum(1 for item in entries if item.status == "replaced"),
        missing_count=sum(1 for item in entries if item.status == "missing"),
        unsupported_count=len(parse_result.unsupported),
        unsupported_mode=unsupported_mode,
    )
    return ReplaceReport(entries=entries, summary=summary, touched_runs=sorted(touched_runs))
