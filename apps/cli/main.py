"""Typer CLI entrypoint for worksheet-agent."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Annotated, cast

import typer

from apps.cli.format_human import render_cycle_summary
from apps.cli.io import write_fallback_report_atomic, write_run_report_atomic
from core.config import load_settings
from core.dates.models import ResolutionPolicy
from core.dates.resolver import format_date_token, resolve
from core.ingest.watermark import WatermarkTracker
from core.orchestrator.pipeline import CycleOptions, CycleReport, run_cycle
from core.orchestrator.wiring import (
    SourceKind,
    build_audit_sink,
    build_field_spec,
    build_lock,
    build_renderer,
    build_source,
)
from core.output.writer import ArtifactWriter
from core.sources.base import AuditRow
from core.utils.errors import (
    ConfigurationError,
    FilenameIntegrityError,
    LockContentionError,
    SourceFetchError,
)

app = typer.Typer(help="Worksheet document generator CLI", rich_markup_mode=None)

EXIT_OK = 0
EXIT_RECORD_FAILURES = 1
EXIT_CONFIGURATION = 2
EXIT_SOURCE_FETCH = 3
EXIT_FILENAME_INTEGRITY = 4
EXIT_LOCK_CONTENTION = 5

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


@app.callback()
def cli_callback() -> None:
    """Generate one document per form submission."""


@app.command("generate")
def generate_command(
    source: Annotated[str, typer.Option(help="Record source: sheets or jotform.")] = "sheets",
    days: Annotated[
        int | None,
        typer.Option("--days", help="Trailing window in days; 0 disables the filter."),
    ] = None,
    last: Annotated[
        int, typer.Option("--last", help="Keep only the N most recent records.")
    ] = 0,
    prune: Annotated[
        int | None,
        typer.Option("--prune", help="After generating, keep only the N newest artifacts."),
    ] = None,
    force: Annotated[
        bool, typer.Option("--force", help="Overwrite artifacts that already exist.")
    ] = False,
    dry_run: Annotated[
        bool, typer.Option("--dry-run", help="Report what would happen without writing.")
    ] = False,
    verbose: Annotated[bool, typer.Option("--verbose", help="Per-record diagnostics.")] = False,
    output: Annotated[Path | None, typer.Option("--output")] = None,
    template: Annotated[Path | None, typer.Option("--template")] = None,
    policy: Annotated[str, typer.Option("--policy")] = "deterministic",
    watermark: Annotated[
        Path | None,
        typer.Option("--watermark", help="Only process records newer than this cursor file."),
    ] = None,
    report: Annotated[
        Path | None, typer.Option("--report", help="Write the cycle report as JSON.")
    ] = None,
) -> None:
    """Run one batch generation over the configured source."""

    configure_logging(verbose)
    settings = load_settings()
    exit_code = EXIT_OK
    stage = "configure"
    cycle_report: CycleReport | None = None
    error: Exception | None = None

    try:
        options = CycleOptions(
            window_days=settings.default_days if days is None else days,
            last_n=last,
            prune_to=prune,
            force=force,
            dry_run=dry_run,
            policy=_parse_policy(policy),
        )
        source_kind = _parse_source(source)
        output_dir = output or settings.output_dir
        record_source = build_source(source_kind, settings)
        renderer = build_renderer(template or settings.template_path)
        field_spec = build_field_spec(settings)
        writer = ArtifactWriter(output_dir, extension=renderer.extension)
        tracker = WatermarkTracker(watermark) if watermark is not None else None
        audit_sink = None if dry_run else build_audit_sink(settings)

        stage = "lock"
        lock = None if dry_run else build_lock(settings, output_dir)
        if lock is not None:
            lock.install_signal_handlers()
            lock.acquire()
        try:
            stage = "cycle"
            cycle_report = run_cycle(
                record_source,
                renderer,
                writer,
                options,
                field_spec=field_spec,
                watermark=tracker,
                audit_sink=audit_sink,
            )
        finally:
            if lock is not None:
                lock.release()

        typer.echo(render_cycle_summary(cycle_report, verbose=verbose))
        if cycle_report.has_failures:
            exit_code = EXIT_RECORD_FAILURES
            typer.echo(f"ERROR: {cycle_report.failed} record(s) failed")
        else:
            typer.echo("INFO: success")
    except ConfigurationError as exc:
        error = exc
        exit_code = EXIT_CONFIGURATION
        typer.echo(f"ERROR: configuration: {exc}")
    except LockContentionError as exc:
        error = exc
        exit_code = EXIT_LOCK_CONTENTION
        typer.echo(f"ERROR: {exc} ({exc.lock_path}, owner={exc.owner or 'unknown'})")
    except SourceFetchError as exc:
        error = exc
        exit_code = EXIT_SOURCE_FETCH
        typer.echo(f"ERROR: source fetch failed: {exc}")
    except FilenameIntegrityError as exc:
        error = exc
        exit_code = EXIT_FILENAME_INTEGRITY
        typer.echo(
            f"ERROR: filename integrity check failed: raw_date={exc.raw_date!r} "
            f"kind={exc.kind} token={exc.date_token!r}"
        )

    if report is not None:
        _write_report(report, cycle_report, error, stage, exit_code)

    raise typer.Exit(code=exit_code)


@app.command("poll")
def poll_command(
    source: Annotated[str, typer.Option(help="Record source: jotform or sheets.")] = "jotform",
    once: Annotated[bool, typer.Option("--once", help="Run a single cycle and exit.")] = False,
    interval: Annotated[
        float | None, typer.Option("--interval", help="Seconds between cycles.")
    ] = None,
    days: Annotated[int, typer.Option("--days")] = 0,
    output: Annotated[Path | None, typer.Option("--output")] = None,
    template: Annotated[Path | None, typer.Option("--template")] = None,
    policy: Annotated[str, typer.Option("--policy")] = "deterministic",
    watermark: Annotated[Path | None, typer.Option("--watermark")] = None,
    verbose: Annotated[bool, typer.Option("--verbose")] = False,
) -> None:
    """Poll the source and generate artifacts for records past the watermark."""

    configure_logging(verbose)
    settings = load_settings()

    try:
        options = CycleOptions(window_days=days, policy=_parse_policy(policy))
        record_source = build_source(_parse_source(source), settings)
        renderer = build_renderer(template or settings.template_path)
        field_spec = build_field_spec(settings)
        audit_sink = build_audit_sink(settings)
    except ConfigurationError as exc:
        typer.echo(f"ERROR: configuration: {exc}")
        raise typer.Exit(code=EXIT_CONFIGURATION) from exc

    output_dir = output or settings.output_dir
    writer = ArtifactWriter(output_dir, extension=renderer.extension)
    tracker = WatermarkTracker(watermark or settings.watermark_path_for(output_dir))
    lock = build_lock(settings, output_dir)
    lock.install_signal_handlers()
    sleep_seconds = settings.poll_interval_seconds if interval is None else interval

    typer.echo(f"INFO: polling {record_source.name} every {sleep_seconds:g}s")
    exit_code = EXIT_OK
    while True:
        try:
            with lock:
                cycle_report = run_cycle(
                    record_source,
                    renderer,
                    writer,
                    options,
                    field_spec=field_spec,
                    watermark=tracker,
                    audit_sink=audit_sink,
                )
            if cycle_report.generated or cycle_report.failed or verbose:
                typer.echo(render_cycle_summary(cycle_report, verbose=verbose))
            exit_code = EXIT_RECORD_FAILURES if cycle_report.has_failures else EXIT_OK
        except LockContentionError as exc:
            typer.echo(f"INFO: cycle skipped, generation lock held ({exc.lock_path})")
            exit_code = EXIT_LOCK_CONTENTION
        except SourceFetchError as exc:
            typer.echo(f"ERROR: source fetch failed: {exc}")
            exit_code = EXIT_SOURCE_FETCH
        except FilenameIntegrityError as exc:
            typer.echo(
                f"ERROR: filename integrity check failed: raw_date={exc.raw_date!r} "
                f"token={exc.date_token!r}"
            )
            raise typer.Exit(code=EXIT_FILENAME_INTEGRITY) from exc

        if once:
            raise typer.Exit(code=exit_code)
        time.sleep(sleep_seconds)


@app.command("resolve-date")
def resolve_date_command(
    raw: Annotated[str, typer.Argument(help="Date text as submitted.")],
    policy: Annotated[str, typer.Option("--policy")] = "deterministic",
) -> None:
    """Show how a raw date string resolves and which filename token it yields."""

    resolved = resolve(raw, _parse_policy(policy))
    if resolved is None:
        typer.echo(f"ERROR: unresolved: {raw!r}")
        raise typer.Exit(code=1)
    typer.echo(
        f"kind={resolved.kind} date={resolved.value.isoformat()} "
        f"token={format_date_token(resolved)}"
    )


@app.command("webhook")
def webhook_command(
    host: Annotated[str, typer.Option("--host")] = "127.0.0.1",
    port: Annotated[int, typer.Option("--port")] = 3000,
    verbose: Annotated[bool, typer.Option("--verbose")] = False,
) -> None:
    """Serve the JotForm webhook receiver."""

    import uvicorn

    configure_logging(verbose)
    uvicorn.run("apps.api.main:app", host=host, port=port, log_level="info")


@app.command("audit-append")
def audit_append_command(
    name: Annotated[str, typer.Option("--name")],
    contact: Annotated[str, typer.Option("--contact")] = "",
    date: Annotated[str, typer.Option("--date")] = "",
    work: Annotated[str, typer.Option("--work", help="Work still to do.")] = "",
) -> None:
    """Append one row to the audit sheet by hand."""

    configure_logging(False)
    try:
        sink = build_audit_sink(load_settings())
        if sink is None:
            raise ConfigurationError(
                "Missing required setting WORKSHEET_AUDIT_SHEET_ID", setting="audit_sheet_id"
            )
    except ConfigurationError as exc:
        typer.echo(f"ERROR: configuration: {exc}")
        raise typer.Exit(code=EXIT_CONFIGURATION) from exc

    row = AuditRow(
        name=name,
        contact=contact,
        date=date,
        work_still_to_do=work,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )
    try:
        sink.append(row)
    except Exception as exc:  # noqa: BLE001
        typer.echo(f"ERROR: audit append failed: {type(exc).__name__}: {exc}")
        raise typer.Exit(code=1) from exc
    typer.echo("INFO: audit row appended")


def configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format=_LOG_FORMAT)
    logging.getLogger("worksheet").setLevel(level)


def _parse_policy(raw: str) -> ResolutionPolicy:
    normalized = raw.lower().strip()
    if normalized not in {"deterministic", "heuristic"}:
        typer.echo("ERROR: --policy must be one of: deterministic, heuristic.")
        raise typer.Exit(code=EXIT_CONFIGURATION)
    return cast(ResolutionPolicy, normalized)


def _parse_source(raw: str) -> SourceKind:
    normalized = raw.lower().strip()
    if normalized not in {"sheets", "jotform"}:
        typer.echo("ERROR: --source must be one of: sheets, jotform.")
        raise typer.Exit(code=EXIT_CONFIGURATION)
    return cast(SourceKind, normalized)


def _write_report(
    path: Path,
    cycle_report: CycleReport | None,
    error: Exception | None,
    stage: str,
    exit_code: int,
) -> None:
    try:
        if cycle_report is not None:
            write_run_report_atomic(path, cycle_report)
        else:
            write_fallback_report_atomic(
                path,
                error_type=type(error).__name__ if error is not None else "UnknownError",
                error_message=str(error) if error is not None else "no report produced",
                stage=stage,
                exit_code=exit_code,
            )
    except OSError as exc:
        typer.echo(f"ERROR: report write failed: {exc}")


def main() -> None:
    """Console script entrypoint."""

    app()


if __name__ == "__main__":
    main()
