"""Human-readable cycle summary rendering for CLI output."""

from __future__ import annotations

from collections import Counter

from core.orchestrator.pipeline import CycleReport

_MAX_LISTED_FAILURES = 5


def render_cycle_summary(report: CycleReport, *, verbose: bool = False) -> str:
    """Render a short multi-line summary of one cycle."""

    lines: list[str] = []
    header = "cycle_summary (dry-run):" if report.dry_run else "cycle_summary:"
    lines.append(header)
    lines.append(
        f"source={report.source} fetched={report.fetched} "
        f"below_watermark={report.below_watermark}"
    )
    lines.append(
        f"filtered: expired={report.expired} unresolved={report.unresolved} "
        f"capped={report.capped}"
    )
    if report.dry_run:
        lines.append(f"result: planned={report.planned} skipped={report.skipped}")
    else:
        lines.append(
            f"result: generated={report.generated} skipped={report.skipped} "
            f"failed={report.failed}"
        )

    kinds: Counter[str] = Counter(
        outcome.date_kind or "unresolved" for outcome in report.records
    )
    if kinds:
        kinds_text = ", ".join(f"{kind}={kinds[kind]}" for kind in sorted(kinds))
        lines.append(f"date_kinds: {kinds_text}")

    failures = [outcome for outcome in report.records if outcome.status == "failed"]
    for outcome in failures[:_MAX_LISTED_FAILURES]:
        lines.append(f"failed: record={outcome.record_id} error={outcome.error}")
    if len(failures) > _MAX_LISTED_FAILURES:
        lines.append(f"failed: ... {len(failures) - _MAX_LISTED_FAILURES} more")

    if report.pruned or report.prune_failed:
        verb = "would_prune" if report.dry_run else "pruned"
        lines.append(f"{verb}={len(report.pruned)} prune_failed={len(report.prune_failed)}")

    if report.watermark_before is not None or report.watermark_after is not None:
        lines.append(f"watermark: {report.watermark_before}->{report.watermark_after}")

    if verbose:
        for outcome in report.records:
            lines.append(
                f"record={outcome.record_id} raw_date={outcome.raw_date!r} "
                f"kind={outcome.date_kind} status={outcome.status} path={outcome.path}"
            )

    return "\n".join(lines)
