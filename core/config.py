"""Runtime settings read from ``WORKSHEET_*`` environment variables."""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path

from pydantic import BaseModel, ConfigDict

from core.utils.errors import ConfigurationError

ENV_PREFIX = "WORKSHEET_"

_DEFAULT_SHEET_RANGE = "Form Responses 1"
_DEFAULT_JOTFORM_HOST = "api.jotform.com"
_DEFAULT_POLL_INTERVAL_SECONDS = 15.0
_DEFAULT_DAYS = 7
_DEFAULT_OUTPUT_DIR = Path("output")
_DEFAULT_TEMPLATE_PATH = Path("template.docx")
_LOCK_FILENAME = ".worksheet.lock"
_WATERMARK_FILENAME = ".worksheet-watermark"


class Settings(BaseModel):
    """Resolved configuration for one process."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    sheet_id: str | None = None
    sheet_range: str = _DEFAULT_SHEET_RANGE
    google_access_token: str | None = None
    audit_sheet_id: str | None = None
    audit_range: str | None = None

    jotform_api_key: str | None = None
    jotform_form_id: str | None = None
    jotform_api_host: str = _DEFAULT_JOTFORM_HOST

    poll_interval_seconds: float = _DEFAULT_POLL_INTERVAL_SECONDS
    default_days: int = _DEFAULT_DAYS

    template_path: Path = _DEFAULT_TEMPLATE_PATH
    output_dir: Path = _DEFAULT_OUTPUT_DIR
    lock_path: Path | None = None
    lock_stale_seconds: float | None = None
    watermark_path: Path | None = None
    field_map_path: Path | None = None

    webhook_secret: str | None = None

    def lock_path_for(self, output_dir: Path | None = None) -> Path:
        return self.lock_path or (output_dir or self.output_dir) / _LOCK_FILENAME

    def watermark_path_for(self, output_dir: Path | None = None) -> Path:
        return self.watermark_path or (output_dir or self.output_dir) / _WATERMARK_FILENAME

    def require_sheet_id(self) -> str:
        return _require(self.sheet_id, "sheet_id")

    def require_google_access_token(self) -> str:
        return _require(self.google_access_token, "google_access_token")

    def require_jotform_api_key(self) -> str:
        return _require(self.jotform_api_key, "jotform_api_key")

    def require_jotform_form_id(self) -> str:
        return _require(self.jotform_form_id, "jotform_form_id")


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Build settings from the environment.

    Unparseable or non-positive numeric values fall back to their defaults.
    """

    env = os.environ if environ is None else environ

    return Settings(
        sheet_id=_text(env, "SHEET_ID"),
        sheet_range=_text(env, "SHEET_RANGE") or _DEFAULT_SHEET_RANGE,
        google_access_token=_text(env, "GOOGLE_ACCESS_TOKEN"),
        audit_sheet_id=_text(env, "AUDIT_SHEET_ID"),
        audit_range=_text(env, "AUDIT_RANGE"),
        jotform_api_key=_text(env, "JOTFORM_API_KEY"),
        jotform_form_id=_text(env, "JOTFORM_FORM_ID"),
        jotform_api_host=_text(env, "JOTFORM_API_HOST") or _DEFAULT_JOTFORM_HOST,
        poll_interval_seconds=_positive_float(
            env, "POLL_INTERVAL_SECONDS", _DEFAULT_POLL_INTERVAL_SECONDS
        ),
        default_days=_non_negative_int(env, "DAYS", _DEFAULT_DAYS),
        template_path=_path(env, "TEMPLATE_PATH") or _DEFAULT_TEMPLATE_PATH,
        output_dir=_path(env, "OUTPUT_DIR") or _DEFAULT_OUTPUT_DIR,
        lock_path=_path(env, "LOCK_PATH"),
        lock_stale_seconds=_optional_positive_float(env, "LOCK_STALE_SECONDS"),
        watermark_path=_path(env, "WATERMARK_PATH"),
        field_map_path=_path(env, "FIELD_MAP_PATH"),
        webhook_secret=_text(env, "WEBHOOK_SECRET"),
    )


def _require(value: str | None, setting: str) -> str:
    if not value:
        raise ConfigurationError(
            f"Missing required setting {ENV_PREFIX}{setting.upper()}", setting=setting
        )
    return value


def _text(env: Mapping[str, str], name: str) -> str | None:
    raw = env.get(f"{ENV_PREFIX}{name}")
    if raw is None:
        return None
    value = raw.strip()
    return value or None


def _path(env: Mapping[str, str], name: str) -> Path | None:
    value = _text(env, name)
    return Path(value) if value else None


def _positive_float(env: Mapping[str, str], name: str, default: float) -> float:
    parsed = _optional_positive_float(env, name)
    return default if parsed is None else parsed


def _optional_positive_float(env: Mapping[str, str], name: str) -> float | None:
    raw = _text(env, name)
    if raw is None:
        return None
    try:
        parsed = float(raw)
    except ValueError:
        return None
    return parsed if parsed > 0 else None


def _non_negative_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = _text(env, name)
    if raw is None:
        return default
    try:
        parsed = int(raw)
    except ValueError:
        return default
    return parsed if parsed >= 0 else default
