"""One ingestion cycle: fetch -> normalize -> gate -> resolve -> filter -> generate."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from core.dates.models import ResolutionPolicy, ResolvedDate
from core.dates.resolver import format_date_token, resolve
from core.ingest.models import DatedRecord, NormalizedRecord
from core.ingest.normalizer import FieldSpec, normalize_record
from core.ingest.retention import apply_retention, cap_most_recent, resolve_records
from core.ingest.watermark import WatermarkTracker
from core.output.models import WriteStatus, select_write_mode
from core.output.writer import ArtifactWriter
from core.render.base import TemplateRenderer
from core.sources.base import AuditRow, AuditSink, RecordSource
from core.utils.errors import RecordGenerationError, SourceFetchError
from core.utils.log_events import log_event

logger = logging.getLogger("worksheet.pipeline")

RecordStatus = Literal["written", "skipped", "dry_run", "failed"]

NAME_FIELD = "NAME"
JOB_FIELD = "JOB_NO"
DATE_FIELD = "DATE"
CONTACT_FIELD = "EMAIL"
FOLLOW_UP_FIELD = "WORK_STILL_TO_DO"


@dataclass(frozen=True)
class CycleOptions:
    """Per-run knobs. ``prune_to=None`` disables pruning."""

    window_days: int = 7
    last_n: int = 0
    prune_to: int | None = None
    force: bool = False
    dry_run: bool = False
    policy: ResolutionPolicy = "deterministic"


class RecordOutcome(BaseModel):
    model_config = ConfigDict(extra="forbid")

    record_id: str | None = None
    raw_date: str = ""
    date_kind: str | None = None
    date_token: str | None = None
    path: str | None = None
    status: RecordStatus
    error: str | None = None


class CycleReport(BaseModel):
    """End-of-cycle counts plus one outcome per selected record."""

    model_config = ConfigDict(extra="forbid")

    source: str
    dry_run: bool = False
    fetched: int = 0
    below_watermark: int = 0
    unresolved: int = 0
    expired: int = 0
    capped: int = 0
    generated: int = 0
    skipped: int = 0
    planned: int = 0
    failed: int = 0
    watermark_before: str | None = None
    watermark_after: str | None = None
    pruned: list[str] = Field(default_factory=list)
    prune_failed: list[str] = Field(default_factory=list)
    records: list[RecordOutcome] = Field(default_factory=list)

    @property
    def has_failures(self) -> bool:
        return self.failed > 0


def run_cycle(
    source: RecordSource,
    renderer: TemplateRenderer,
    writer: ArtifactWriter,
    options: CycleOptions,
    *,
    field_spec: FieldSpec,
    watermark: WatermarkTracker | None = None,
    audit_sink: AuditSink | None = None,
    now: datetime | None = None,
) -> CycleReport:
    """Run one cycle and return its report.

    ``FilenameIntegrityError`` and ``SourceFetchError`` propagate. Any other
    failure is confined to its record: it is logged and counted, and from then
    on the watermark stays where it is for the rest of the cycle.
    """

    source_name = str(getattr(source, "name", type(source).__name__))
    report = CycleReport(source=source_name, dry_run=options.dry_run)

    try:
        raw_records = source.fetch()
    except SourceFetchError:
        raise
    except Exception as exc:  # noqa: BLE001
        raise SourceFetchError(f"{source_name} fetch failed: {exc}", source=source_name) from exc
    report.fetched = len(raw_records)

    normalized = [normalize_record(raw, field_spec) for raw in raw_records]
    normalized = _apply_watermark_gate(normalized, watermark, report)

    dated = resolve_records(
        normalized, lambda raw: resolve(raw, options.policy), date_field=DATE_FIELD
    )
    _log_date_diagnostics(dated, report)

    retention = apply_retention(dated, options.window_days, now=now)
    report.expired = len(retention.expired)
    selected = cap_most_recent(retention.kept, options.last_n)
    report.capped = len(retention.kept) - len(selected)

    mode = select_write_mode(force=options.force, dry_run=options.dry_run)
    watermark_blocked = False

    for item in selected:
        record = item.record
        # FilenameIntegrityError propagates and aborts the cycle.
        descriptor = writer.describe(
            item.resolved,
            record.get(NAME_FIELD),
            record.get(JOB_FIELD),
            mode,
            raw_date=item.raw_date,
        )
        outcome = RecordOutcome(
            record_id=record.record_id,
            raw_date=item.raw_date,
            date_kind=item.resolved.kind if item.resolved is not None else None,
            date_token=descriptor.date_token,
            path=str(descriptor.path),
            status="skipped",
        )
        report.records.append(outcome)

        status: WriteStatus
        try:
            if descriptor.will_skip:
                status = "skipped"
                if not watermark_blocked:
                    _advance(watermark, record.record_id)
            else:
                status = writer.write(descriptor, renderer.render(record.fields)).status
                if status == "written" and not watermark_blocked:
                    _advance(watermark, record.record_id)
        except Exception as exc:  # noqa: BLE001
            error = RecordGenerationError(
                f"{type(exc).__name__}: {exc}", record_id=record.record_id
            )
            outcome.status = "failed"
            outcome.error = str(error)
            report.failed += 1
            watermark_blocked = True
            log_event(
                logger,
                logging.ERROR,
                "record_failed",
                record_id=error.record_id,
                path=outcome.path,
                error=str(error),
            )
            continue

        outcome.status = status
        if status == "dry_run":
            report.planned += 1
            continue
        if status == "skipped":
            log_event(
                logger,
                logging.INFO,
                "record_skipped",
                record_id=record.record_id,
                path=outcome.path,
            )
            report.skipped += 1
            continue

        report.generated += 1
        if audit_sink is not None:
            _append_audit(audit_sink, record, item.resolved, now)

    if options.prune_to is not None:
        pruned = writer.prune(options.prune_to, dry_run=options.dry_run)
        report.pruned = [str(path) for path in pruned.removed]
        report.prune_failed = [str(path) for path in pruned.failed]

    report.watermark_after = watermark.load() if watermark is not None else None
    log_event(
        logger,
        logging.INFO,
        "cycle_complete",
        source=source_name,
        fetched=report.fetched,
        generated=report.generated,
        skipped=report.skipped,
        planned=report.planned,
        failed=report.failed,
        unresolved=report.unresolved,
        expired=report.expired,
        watermark=report.watermark_after,
    )
    return report


def build_audit_row(
    record: NormalizedRecord,
    now: datetime | None = None,
    *,
    resolved: ResolvedDate | None = None,
) -> AuditRow:
    """Audit row: name, contact, date, follow-up work, ISO timestamp.

    The date is the resolved ISO date when there is one, otherwise the text as
    submitted (falling back to the submission's ``_created_at``).
    """

    timestamp = (now or datetime.now(timezone.utc)).isoformat()
    if resolved is not None:
        date_value = resolved.value.isoformat()
    else:
        date_value = record.get(DATE_FIELD) or str(record.raw.values.get("_created_at", ""))
    return AuditRow(
        name=record.get(NAME_FIELD),
        contact=record.get(CONTACT_FIELD),
        date=date_value,
        work_still_to_do=record.get(FOLLOW_UP_FIELD),
        timestamp=timestamp,
    )


def _apply_watermark_gate(
    records: list[NormalizedRecord],
    watermark: WatermarkTracker | None,
    report: CycleReport,
) -> list[NormalizedRecord]:
    if watermark is None:
        return records

    current = watermark.load()
    report.watermark_before = current
    fresh = [record for record in records if watermark.accepts(record.record_id, current)]
    report.below_watermark = len(records) - len(fresh)
    return fresh


def _log_date_diagnostics(dated: list[DatedRecord], report: CycleReport) -> None:
    for item in dated:
        if item.resolved is None:
            report.unresolved += 1
            log_event(
                logger,
                logging.WARNING,
                "date_unresolved",
                record_id=item.record.record_id,
                raw_date=item.raw_date,
            )
            continue
        log_event(
            logger,
            logging.DEBUG,
            "date_resolved",
            record_id=item.record.record_id,
            raw_date=item.raw_date,
            kind=item.resolved.kind,
            date_token=format_date_token(item.resolved),
        )


def _advance(watermark: WatermarkTracker | None, record_id: str | None) -> None:
    if watermark is None or not record_id:
        return
    watermark.advance(record_id)


def _append_audit(
    sink: AuditSink,
    record: NormalizedRecord,
    resolved: ResolvedDate | None,
    now: datetime | None,
) -> None:
    try:
        sink.append(build_audit_row(record, now, resolved=resolved))
    except Exception as exc:  # noqa: BLE001
        log_event(
            logger,
            logging.WARNING,
            "audit_append_failed",
            record_id=record.record_id,
            error=f"{type(exc).__name__}: {exc}",
        )
