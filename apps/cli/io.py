"""CLI I/O helpers for atomic report writing."""

from __future__ import annotations

import json
import tempfile
from pathlib import Path
from typing import Any

from core.orchestrator.pipeline import CycleReport


def write_run_report_atomic(path: Path, report: CycleReport) -> None:
    """Write the cycle report JSON atomically using a temporary file + replace."""

    path.parent.mkdir(parents=True, exist_ok=True)
    _atomic_write_json(path, report.model_dump(mode="json"))


def write_fallback_report_atomic(
    path: Path,
    *,
    error_type: str,
    error_message: str,
    stage: str,
    exit_code: int,
) -> None:
    """Write a report with error metadata for runs that ended before a cycle report existed."""

    payload = {
        "error": {
            "error_type": error_type,
            "error_message": error_message,
            "stage": stage,
        },
        "exit_code": exit_code,
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    _atomic_write_json(path, payload)


def _atomic_write_json(path: Path, payload: dict[str, Any]) -> None:
    with tempfile.NamedTemporaryFile(
        mode="w",
        encoding="utf-8",
        dir=path.parent,
        delete=False,
        prefix=f"{path.name}.",
        suffix=".tmp",
    ) as tmp:
        tmp_path = Path(tmp.name)
        json.dump(payload, tmp, ensure_ascii=False, sort_keys=True, separators=(",", ":"))

    tmp_path.replace(path)
