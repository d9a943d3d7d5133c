from __future__ import annotations

import json
import os
from collections.abc import Mapping
from pathlib import Path

import pytest
from docx import Document
from typer.testing import CliRunner

import apps.cli.main as cli_main
from apps.cli.main import app
from core.ingest.models import RawRecord
from core.output.lock import GenerationLock
from core.sources.base import StaticRecordSource

runner = CliRunner()


class FailingRenderer:
    extension = "docx"

    def render(self, fields: Mapping[str, str]) -> bytes:
        raise RuntimeError("template exploded")


class BrokenSource:
    name = "broken"

    def fetch(self) -> list[RawRecord]:
        raise ConnectionError("network unreachable")


def _record(record_id: str, date: str, name: str, job: str) -> RawRecord:
    return RawRecord(values={"Date": date, "Name": name, "Job Number": job}, record_id=record_id)


def _use_source(monkeypatch: pytest.MonkeyPatch, source) -> None:
    monkeypatch.setattr(cli_main, "build_source", lambda kind, settings: source)


@pytest.fixture
def out_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    for name in list(os.environ):
        if name.startswith("WORKSHEET_"):
            monkeypatch.delenv(name)

    template = tmp_path / "template.docx"
    document = Document()
    document.add_paragraph("{NAME} / {JOB_NO}")
    document.save(str(template))

    output = tmp_path / "out"
    monkeypatch.setenv("WORKSHEET_TEMPLATE_PATH", str(template))
    monkeypatch.setenv("WORKSHEET_OUTPUT_DIR", str(output))
    monkeypatch.setattr(GenerationLock, "install_signal_handlers", lambda self: None)
    return output


def test_generate_writes_documents_and_reports_success(
    out_dir: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _use_source(monkeypatch, StaticRecordSource([_record("2", "5/1/26", "J Smith", "42")]))

    result = runner.invoke(app, ["generate", "--days", "0"])

    assert result.exit_code == 0
    assert "cycle_summary:" in result.output
    assert "generated=1" in result.output
    assert "INFO: success" in result.output
    assert (out_dir / "5-1-2026-J_Smith-42.docx").exists()
    assert not (out_dir / ".worksheet.lock").exists()


def test_second_generate_skips_existing_documents(
    out_dir: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _use_source(monkeypatch, StaticRecordSource([_record("2", "5/1/26", "J Smith", "42")]))

    runner.invoke(app, ["generate", "--days", "0"])
    result = runner.invoke(app, ["generate", "--days", "0"])

    assert result.exit_code == 0
    assert "generated=0 skipped=1" in result.output


def test_dry_run_writes_nothing(out_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _use_source(monkeypatch, StaticRecordSource([_record("2", "5/1/26", "J Smith", "42")]))

    result = runner.invoke(app, ["generate", "--days", "0", "--dry-run", "--verbose"])

    assert result.exit_code == 0
    assert "cycle_summary (dry-run):" in result.output
    assert "planned=1" in result.output
    assert "status=dry_run" in result.output
    assert not out_dir.exists()


def test_record_failures_exit_1_and_report(
    out_dir: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _use_source(monkeypatch, StaticRecordSource([_record("2", "5/1/26", "J Smith", "42")]))
    monkeypatch.setattr(cli_main, "build_renderer", lambda template: FailingRenderer())
    report = tmp_path / "report.json"

    result = runner.invoke(app, ["generate", "--days", "0", "--report", str(report)])

    assert result.exit_code == 1
    assert "ERROR: 1 record(s) failed" in result.output
    payload = json.loads(report.read_text(encoding="utf-8"))
    assert payload["failed"] == 1
    assert payload["records"][0]["status"] == "failed"
    assert "template exploded" in payload["records"][0]["error"]


def test_missing_configuration_exits_2_with_fallback_report(
    out_dir: Path, tmp_path: Path
) -> None:
    report = tmp_path / "report.json"

    result = runner.invoke(app, ["generate", "--report", str(report)])

    assert result.exit_code == 2
    assert "WORKSHEET_SHEET_ID" in result.output
    payload = json.loads(report.read_text(encoding="utf-8"))
    assert payload["exit_code"] == 2
    assert payload["error"]["error_type"] == "ConfigurationError"
    assert payload["error"]["stage"] == "configure"


def test_unknown_policy_exits_2(out_dir: Path) -> None:
    result = runner.invoke(app, ["generate", "--policy", "guess"])

    assert result.exit_code == 2
    assert "--policy must be one of" in result.output


def test_source_failure_exits_3(out_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _use_source(monkeypatch, BrokenSource())

    result = runner.invoke(app, ["generate", "--days", "0"])

    assert result.exit_code == 3
    assert "source fetch failed" in result.output
    assert not (out_dir / ".worksheet.lock").exists()


def test_filename_integrity_failure_exits_4(
    out_dir: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _use_source(monkeypatch, StaticRecordSource([_record("2", "1/1/999", "A", "1")]))

    result = runner.invoke(app, ["generate", "--days", "0"])

    assert result.exit_code == 4
    assert "filename integrity check failed" in result.output
    assert not (out_dir / ".worksheet.lock").exists()


def test_held_lock_exits_5(out_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _use_source(monkeypatch, StaticRecordSource([_record("2", "5/1/26", "J Smith", "42")]))
    held = GenerationLock(out_dir / ".worksheet.lock")
    held.acquire()
    try:
        result = runner.invoke(app, ["generate", "--days", "0"])
    finally:
        held.release()

    assert result.exit_code == 5
    assert not (out_dir / "5-1-2026-J_Smith-42.docx").exists()


def test_signal_handlers_are_installed_before_lock_is_taken(
    out_dir: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _use_source(monkeypatch, StaticRecordSource([_record("2", "5/1/26", "J Smith", "42")]))
    calls: list[str] = []
    original_acquire = GenerationLock.acquire

    def recording_acquire(self: GenerationLock) -> None:
        calls.append("acquire")
        original_acquire(self)

    monkeypatch.setattr(
        GenerationLock, "install_signal_handlers", lambda self: calls.append("signals")
    )
    monkeypatch.setattr(GenerationLock, "acquire", recording_acquire)

    result = runner.invoke(app, ["generate", "--days", "0"])

    assert result.exit_code == 0
    assert calls == ["signals", "acquire"]


def test_dry_run_ignores_held_lock(out_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _use_source(monkeypatch, StaticRecordSource([_record("2", "5/1/26", "J Smith", "42")]))
    held = GenerationLock(out_dir / ".worksheet.lock")
    held.acquire()
    try:
        result = runner.invoke(app, ["generate", "--days", "0", "--dry-run"])
    finally:
        held.release()

    assert result.exit_code == 0


def test_poll_once_advances_watermark(out_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    records = [_record("2", "5/1/26", "J Smith", "42"), _record("3", "6/1/26", "A Jones", "7")]
    _use_source(monkeypatch, StaticRecordSource(records))

    first = runner.invoke(app, ["poll", "--once"])
    second = runner.invoke(app, ["poll", "--once", "--verbose"])

    assert first.exit_code == 0
    assert "generated=2" in first.output
    assert (out_dir / ".worksheet-watermark").read_text(encoding="utf-8").strip() == "3"
    assert second.exit_code == 0
    assert "below_watermark=2" in second.output
    assert len(list(out_dir.glob("*.docx"))) == 2


def test_poll_once_skips_cycle_when_locked(
    out_dir: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _use_source(monkeypatch, StaticRecordSource([_record("2", "5/1/26", "J Smith", "42")]))
    held = GenerationLock(out_dir / ".worksheet.lock")
    held.acquire()
    try:
        result = runner.invoke(app, ["poll", "--once"])
    finally:
        held.release()

    assert result.exit_code == 5
    assert "cycle skipped" in result.output
    assert list(out_dir.glob("*.docx")) == []


def test_resolve_date_prints_token(out_dir: Path) -> None:
    result = runner.invoke(app, ["resolve-date", "5/1/26"])

    assert result.exit_code == 0
    assert "kind=dmy date=2026-01-05 token=5-1-2026" in result.output


def test_resolve_date_reports_unresolved(out_dir: Path) -> None:
    result = runner.invoke(app, ["resolve-date", "31/04/2025"])

    assert result.exit_code == 1
    assert "unresolved" in result.output


def test_audit_append_requires_audit_sheet(out_dir: Path) -> None:
    result = runner.invoke(app, ["audit-append", "--name", "J Smith"])

    assert result.exit_code == 2
    assert "WORKSHEET_AUDIT_SHEET_ID" in result.output
