from __future__ import annotations

import os
from datetime import date
from pathlib import Path

import pytest

from core.dates.models import ResolvedDate
from core.output.models import select_write_mode
from core.output.writer import ArtifactWriter, compose_filename, sanitize_component
from core.utils.errors import FilenameIntegrityError

JAN_5 = ResolvedDate(value=date(2026, 1, 5), kind="dmy")


def test_scenario_filename(tmp_path: Path) -> None:
    writer = ArtifactWriter(tmp_path)

    descriptor = writer.describe(JAN_5, "J Smith", "42", "skip_if_exists")

    assert descriptor.path == tmp_path / "5-1-2026-J_Smith-42.docx"
    assert descriptor.date_token == "5-1-2026"
    assert not descriptor.exists


def test_unresolved_date_uses_sentinel(tmp_path: Path) -> None:
    writer = ArtifactWriter(tmp_path)

    descriptor = writer.describe(None, "J Smith", "42", "skip_if_exists")

    assert descriptor.path.name == "nodate-J_Smith-42.docx"


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("J Smith", "J_Smith"),
        ("  Mary   Ann  ", "Mary_Ann"),
        ("a/b\\c?d%e*f:g|h\"i<j>k", "a-b-c-d-e-f-g-h-i-j-k"),
        ("..hidden", "hidden"),
        ("", "FALLBACK"),
        ("   ", "FALLBACK"),
    ],
)
def test_sanitize_component(value: str, expected: str) -> None:
    assert sanitize_component(value, "FALLBACK") == expected


def test_empty_name_and_job_fall_back() -> None:
    assert compose_filename("5-1-2026", "", "", "docx") == "5-1-2026-NONAME-NOJOBNO.docx"


def test_integrity_check_rejects_malformed_token(tmp_path: Path) -> None:
    writer = ArtifactWriter(tmp_path)
    bad = ResolvedDate(value=date(999, 1, 1), kind="dmy")

    with pytest.raises(FilenameIntegrityError) as exc_info:
        writer.describe(bad, "J Smith", "42", "skip_if_exists", raw_date="1/1/999")

    assert exc_info.value.date_token == "1-1-999"
    assert exc_info.value.raw_date == "1/1/999"
    assert not list(tmp_path.iterdir())


def test_skip_if_exists_writes_once(tmp_path: Path) -> None:
    writer = ArtifactWriter(tmp_path / "out")

    first = writer.write(writer.describe(JAN_5, "J Smith", "42", "skip_if_exists"), b"first")
    second_descriptor = writer.describe(JAN_5, "J Smith", "42", "skip_if_exists")
    second = writer.write(second_descriptor, b"second")

    assert first.status == "written"
    assert second_descriptor.will_skip
    assert second.skipped
    assert [path.name for path in (tmp_path / "out").iterdir()] == ["5-1-2026-J_Smith-42.docx"]
    assert (tmp_path / "out" / "5-1-2026-J_Smith-42.docx").read_bytes() == b"first"


def test_force_overwrite_always_rewrites(tmp_path: Path) -> None:
    writer = ArtifactWriter(tmp_path)
    writer.write(writer.describe(JAN_5, "J Smith", "42", "skip_if_exists"), b"first")

    descriptor = writer.describe(JAN_5, "J Smith", "42", "force_overwrite")
    result = writer.write(descriptor, b"second")

    assert descriptor.exists
    assert not descriptor.will_skip
    assert not result.skipped
    assert result.status == "written"
    assert descriptor.path.read_bytes() == b"second"


def test_dry_run_never_touches_filesystem(tmp_path: Path) -> None:
    writer = ArtifactWriter(tmp_path / "out")

    result = writer.write(writer.describe(JAN_5, "J Smith", "42", "dry_run"), b"payload")

    assert result.status == "dry_run"
    assert not (tmp_path / "out").exists()


def test_atomic_write_leaves_no_temp_files(tmp_path: Path) -> None:
    writer = ArtifactWriter(tmp_path)
    writer.write(writer.describe(JAN_5, "J Smith", "42", "skip_if_exists"), b"x")

    assert not list(tmp_path.glob("*.tmp"))


def test_select_write_mode() -> None:
    assert select_write_mode(force=False, dry_run=False) == "skip_if_exists"
    assert select_write_mode(force=True, dry_run=False) == "force_overwrite"
    assert select_write_mode(force=True, dry_run=True) == "dry_run"


def _make_artifacts(directory: Path, count: int) -> list[Path]:
    paths = []
    base = 1_700_000_000
    for index in range(count):
        path = directory / f"{index + 1}-1-2026-N-{index}.docx"
        path.write_bytes(b"x")
        os.utime(path, (base + index, base + index))
        paths.append(path)
    return paths


def test_prune_keeps_newest_by_mtime(tmp_path: Path) -> None:
    paths = _make_artifacts(tmp_path, 5)
    (tmp_path / "notes.txt").write_text("keep me", encoding="utf-8")
    writer = ArtifactWriter(tmp_path)

    result = writer.prune(2)

    assert sorted(result.kept) == sorted(paths[3:])
    assert sorted(result.removed) == sorted(paths[:3])
    assert sorted(path.name for path in tmp_path.glob("*.docx")) == sorted(
        path.name for path in paths[3:]
    )
    assert (tmp_path / "notes.txt").exists()


def test_prune_dry_run_removes_nothing(tmp_path: Path) -> None:
    paths = _make_artifacts(tmp_path, 3)
    writer = ArtifactWriter(tmp_path)

    result = writer.prune(1, dry_run=True)

    assert len(result.removed) == 2
    assert all(path.exists() for path in paths)


def test_prune_continues_after_a_failed_delete(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    paths = _make_artifacts(tmp_path, 4)
    writer = ArtifactWriter(tmp_path)
    original_unlink = Path.unlink

    def flaky_unlink(self: Path, missing_ok: bool = False) -> None:
        if self == paths[0]:
            raise PermissionError("locked")
        original_unlink(self, missing_ok=missing_ok)

    monkeypatch.setattr(Path, "unlink", flaky_unlink)

    result = writer.prune(1)

    assert result.failed == [paths[0]]
    assert sorted(result.removed) == sorted(paths[1:3])
    assert paths[0].exists()


def test_prune_rejects_negative_count(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        ArtifactWriter(tmp_path).prune(-1)
