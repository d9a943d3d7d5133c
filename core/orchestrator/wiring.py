"""Build cycle collaborators from settings."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from core.config import Settings
from core.ingest.normalizer import FieldSpec, load_field_spec
from core.output.lock import GenerationLock
from core.render.base import TemplateRenderer
from core.render.docx_renderer import DocxTemplateRenderer
from core.sources.base import AuditSink, RecordSource
from core.sources.jotform import JotFormRecordSource
from core.sources.sheets import SheetsAuditSink, SheetsRecordSource
from core.utils.errors import ConfigurationError

SourceKind = Literal["sheets", "jotform"]


def build_source(kind: SourceKind, settings: Settings) -> RecordSource:
    if kind == "jotform":
        return build_jotform_source(settings)
    return SheetsRecordSource(
        settings.require_sheet_id(),
        settings.require_google_access_token(),
        sheet_range=settings.sheet_range,
    )


def build_jotform_source(settings: Settings) -> JotFormRecordSource:
    return JotFormRecordSource(
        settings.require_jotform_form_id(),
        settings.require_jotform_api_key(),
        api_host=settings.jotform_api_host,
    )


def build_renderer(template_path: Path) -> TemplateRenderer:
    return DocxTemplateRenderer(template_path)


def build_audit_sink(settings: Settings) -> AuditSink | None:
    """Return the audit sink when an audit sheet is configured."""

    if not settings.audit_sheet_id:
        return None
    return SheetsAuditSink(
        settings.audit_sheet_id,
        settings.require_google_access_token(),
        sheet_range=settings.audit_range,
    )


def build_lock(settings: Settings, output_dir: Path | None = None) -> GenerationLock:
    return GenerationLock(
        settings.lock_path_for(output_dir), stale_after_seconds=settings.lock_stale_seconds
    )


def build_field_spec(settings: Settings) -> FieldSpec:
    try:
        return load_field_spec(settings.field_map_path)
    except ValueError as exc:
        raise ConfigurationError(str(exc), setting="field_map_path") from exc
