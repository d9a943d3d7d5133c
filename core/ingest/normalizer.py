"""Map raw records to canonical worksheet fields."""

from __future__ import annotations

import re
from pathlib import Path

import yaml  # type: ignore[import-untyped]
from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt, ValidationError

from core.ingest.models import NormalizedRecord, RawRecord

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")


class FieldSpec(BaseModel):
    """Accepted spellings, composites and column overrides per canonical field."""

    model_config = ConfigDict(extra="forbid")

    fields: dict[str, list[str]] = Field(default_factory=dict)
    composite_fields: dict[str, list[list[str]]] = Field(default_factory=dict)
    positional_overrides: dict[str, NonNegativeInt] = Field(default_factory=dict)
    composite_separator: str = ", "

    def canonical_fields(self) -> list[str]:
        names = list(self.fields)
        for name in [*self.composite_fields, *self.positional_overrides]:
            if name not in names:
                names.append(name)
        return names


def load_field_spec(path: Path | None = None) -> FieldSpec:
    """Load and validate the field map from YAML."""

    spec_path = path or Path(__file__).with_name("field_map.yaml")

    try:
        raw = yaml.safe_load(spec_path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ValueError(f"Field map file not found: {spec_path}") from exc
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in field map file: {spec_path}") from exc

    if not isinstance(raw, dict):
        raise ValueError(f"Field map file must contain a mapping: {spec_path}")

    try:
        return FieldSpec.model_validate(raw)
    except ValidationError as exc:
        raise ValueError(f"Invalid field map schema: {spec_path}") from exc


def normalize_key(value: str) -> str:
    """Lowercase and drop everything outside a-z / 0-9."""

    return _NON_ALNUM_RE.sub("", str(value).lower())


def normalize_record(raw: RawRecord, spec: FieldSpec) -> NormalizedRecord:
    """Build canonical fields for ``raw``.

    Positional overrides win over name lookup when the indexed column holds a
    value. Unmapped fields are present with an empty string.
    """

    lookup: dict[str, str] = {}
    for key, value in raw.values.items():
        text = _clean(value)
        norm = normalize_key(key)
        if text and not lookup.get(norm):
            lookup[norm] = text
        else:
            lookup.setdefault(norm, text)

    fields: dict[str, str] = {}
    for name in spec.canonical_fields():
        positional = _pick_by_index(raw.row, spec.positional_overrides.get(name))
        if positional:
            fields[name] = positional
            continue
        if name in spec.composite_fields:
            parts = [_pick(lookup, spellings) for spellings in spec.composite_fields[name]]
            fields[name] = spec.composite_separator.join(part for part in parts if part)
            continue
        fields[name] = _pick(lookup, spec.fields.get(name, [name]))

    return NormalizedRecord(fields=fields, raw=raw, record_id=raw.record_id)


def _pick(lookup: dict[str, str], spellings: list[str]) -> str:
    for spelling in spellings:
        value = lookup.get(normalize_key(spelling), "")
        if value:
            return value
    return ""


def _pick_by_index(row: tuple[str, ...], index: int | None) -> str:
    if index is None or index >= len(row):
        return ""
    return _clean(row[index])


def _clean(value: object) -> str:
    if value is None:
        return ""
    return str(value).strip()
