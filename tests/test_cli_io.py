from __future__ import annotations

import json
from pathlib import Path

import pytest

from apps.cli.io import write_fallback_report_atomic, write_run_report_atomic
from core.orchestrator.pipeline import CycleReport, RecordOutcome


def _report() -> CycleReport:
    return CycleReport(
        source="static",
        fetched=1,
        generated=1,
        records=[
            RecordOutcome(
                record_id="2",
                raw_date="5/1/26",
                date_kind="dmy",
                date_token="5-1-2026",
                path="out/5-1-2026-J_Smith-42.docx",
                status="written",
            )
        ],
    )


def test_run_report_is_written_and_tmp_cleaned(tmp_path: Path) -> None:
    path = tmp_path / "reports" / "run.json"

    write_run_report_atomic(path, _report())

    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["generated"] == 1
    assert payload["records"][0]["date_token"] == "5-1-2026"
    assert list(path.parent.glob("run.json.*.tmp")) == []


def test_fallback_report_carries_error_metadata(tmp_path: Path) -> None:
    path = tmp_path / "run.json"

    write_fallback_report_atomic(
        path,
        error_type="SourceFetchError",
        error_message="boom",
        stage="cycle",
        exit_code=3,
    )

    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload == {
        "error": {"error_type": "SourceFetchError", "error_message": "boom", "stage": "cycle"},
        "exit_code": 3,
    }


def test_failed_replace_leaves_previous_report(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    path = tmp_path / "run.json"
    path.write_text("{}", encoding="utf-8")

    def broken_replace(self: Path, target: Path) -> Path:
        raise OSError("disk full")

    monkeypatch.setattr(Path, "replace", broken_replace)

    with pytest.raises(OSError, match="disk full"):
        write_run_report_atomic(path, _report())

    assert path.read_text(encoding="utf-8") == "{}"
