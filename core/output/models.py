"""Artifact write models."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

WriteMode = Literal["skip_if_exists", "force_overwrite", "dry_run"]
WriteStatus = Literal["written", "skipped", "dry_run"]

NO_DATE_TOKEN = "nodate"


def select_write_mode(*, force: bool, dry_run: bool) -> WriteMode:
    """Map CLI-level flags to a write mode. Dry-run wins over force."""

    if dry_run:
        return "dry_run"
    if force:
        return "force_overwrite"
    return "skip_if_exists"


class ArtifactDescriptor(BaseModel):
    """Target path and write decision for one record's artifact."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    path: Path
    exists: bool
    mode: WriteMode
    date_token: str

    @property
    def will_skip(self) -> bool:
        return self.mode == "skip_if_exists" and self.exists


class WriteResult(BaseModel):
    """Outcome of one artifact write."""

    model_config = ConfigDict(extra="forbid")

    descriptor: ArtifactDescriptor
    status: WriteStatus

    @property
    def skipped(self) -> bool:
        return self.status == "skipped"


class PruneResult(BaseModel):
    """Outcome of pruning old artifacts."""

    model_config = ConfigDict(extra="forbid")

    kept: list[Path] = Field(default_factory=list)
    removed: list[Path] = Field(default_factory=list)
    failed: list[Path] = Field(default_factory=list)
    dry_run: bool = False
