"""Idempotent artifact writer with strict filename composition and pruning."""

from __future__ import annotations

import logging
import os
import re
import tempfile
from pathlib import Path

from core.dates.models import ResolvedDate
from core.dates.resolver import format_date_token
from core.output.models import (
    NO_DATE_TOKEN,
    ArtifactDescriptor,
    PruneResult,
    WriteMode,
    WriteResult,
)
from core.utils.errors import FilenameIntegrityError
from core.utils.log_events import log_event

logger = logging.getLogger("worksheet.output")

DATE_TOKEN_RE = re.compile(r"^\d{1,2}-\d{1,2}-\d{4}$")
_PATH_HOSTILE_RE = re.compile(r'[/\\?%*:|"<>]')
_WHITESPACE_RE = re.compile(r"\s+")

DEFAULT_NAME = "NONAME"
DEFAULT_JOB_ID = "NOJOBNO"


def sanitize_component(value: str, fallback: str) -> str:
    """Make ``value`` safe for use inside a filename."""

    cleaned = _PATH_HOSTILE_RE.sub("-", str(value or "")).strip()
    cleaned = _WHITESPACE_RE.sub("_", cleaned).lstrip(".")
    return cleaned or fallback


def compose_filename(date_token: str, name: str, job_id: str, extension: str) -> str:
    safe_name = sanitize_component(name, DEFAULT_NAME)
    safe_job = sanitize_component(job_id, DEFAULT_JOB_ID)
    return f"{date_token}-{safe_name}-{safe_job}.{extension}"


class ArtifactWriter:
    """Write one artifact per record under a single output directory."""

    def __init__(self, output_dir: Path, *, extension: str = "docx") -> None:
        self._output_dir = output_dir
        self._extension = extension.lstrip(".")

    @property
    def output_dir(self) -> Path:
        return self._output_dir

    def describe(
        self,
        resolved: ResolvedDate | None,
        name: str,
        job_id: str,
        mode: WriteMode,
        *,
        raw_date: str | None = None,
    ) -> ArtifactDescriptor:
        """Compute the target path; raise ``FilenameIntegrityError`` on a bad date token."""

        date_token = format_date_token(resolved) or NO_DATE_TOKEN
        if date_token != NO_DATE_TOKEN and not DATE_TOKEN_RE.fullmatch(date_token):
            log_event(
                logger,
                logging.ERROR,
                "filename_integrity_failed",
                raw_date=raw_date,
                kind=resolved.kind if resolved is not None else None,
                date_token=date_token,
            )
            raise FilenameIntegrityError(
                f"Computed filename date does not match D-M-YYYY: {date_token}",
                raw_date=raw_date,
                date_token=date_token,
                kind=resolved.kind if resolved is not None else None,
            )

        path = self._output_dir / compose_filename(date_token, name, job_id, self._extension)
        return ArtifactDescriptor(path=path, exists=path.exists(), mode=mode, date_token=date_token)

    def write(self, descriptor: ArtifactDescriptor, payload: bytes) -> WriteResult:
        """Write ``payload`` according to the descriptor's mode."""

        path = descriptor.path
        if descriptor.mode == "skip_if_exists" and path.exists():
            log_event(logger, logging.INFO, "artifact_skipped", path=str(path))
            return WriteResult(descriptor=descriptor, status="skipped")

        if descriptor.mode == "dry_run":
            log_event(
                logger,
                logging.INFO,
                "artifact_dry_run",
                path=str(path),
                exists=descriptor.exists,
                bytes=len(payload),
            )
            return WriteResult(descriptor=descriptor, status="dry_run")

        path.parent.mkdir(parents=True, exist_ok=True)
        _atomic_write_bytes(path, payload)
        log_event(
            logger,
            logging.INFO,
            "artifact_written",
            path=str(path),
            overwritten=descriptor.exists,
            bytes=len(payload),
        )
        return WriteResult(descriptor=descriptor, status="written")

    def list_artifacts(self) -> list[Path]:
        """Return artifacts ordered by modification time, newest first."""

        if not self._output_dir.is_dir():
            return []
        artifacts = [
            path for path in self._output_dir.glob(f"*.{self._extension}") if path.is_file()
        ]
        return sorted(artifacts, key=lambda path: (path.stat().st_mtime, path.name), reverse=True)

    def prune(self, retain_count: int, *, dry_run: bool = False) -> PruneResult:
        """Delete every artifact beyond the ``retain_count`` newest.

        A failed deletion is logged and the remaining deletions still run.
        """

        if retain_count < 0:
            raise ValueError(f"retain_count must be >= 0, got {retain_count}")

        artifacts = self.list_artifacts()
        result = PruneResult(kept=artifacts[:retain_count], dry_run=dry_run)
        for path in artifacts[retain_count:]:
            if dry_run:
                result.removed.append(path)
                continue
            try:
                path.unlink()
            except OSError as exc:
                result.failed.append(path)
                log_event(
                    logger,
                    logging.WARNING,
                    "prune_delete_failed",
                    path=str(path),
                    error=f"{type(exc).__name__}: {exc}",
                )
                continue
            result.removed.append(path)

        log_event(
            logger,
            logging.INFO,
            "artifacts_pruned",
            retain_count=retain_count,
            removed=len(result.removed),
            failed=len(result.failed),
            dry_run=dry_run,
        )
        return result


def _atomic_write_bytes(path: Path, payload: bytes) -> None:
    fd, raw_tmp_path = tempfile.mkstemp(
        dir=path.parent,
        prefix=f"{path.name}.",
        suffix=".tmp",
    )
    tmp_path = Path(raw_tmp_path)

    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
        tmp_path.replace(path)
    except Exception:
        if tmp_path.exists():
            tmp_path.unlink(missing_ok=True)
        raise
