from __future__ import annotations

from pathlib import Path

import pytest

from core.ingest.models import RawRecord
from core.ingest.normalizer import FieldSpec, load_field_spec, normalize_key, normalize_record


@pytest.fixture(scope="module")
def spec() -> FieldSpec:
    return load_field_spec()


def test_default_field_map_loads(spec: FieldSpec) -> None:
    names = spec.canonical_fields()

    assert {"NAME", "DATE", "JOB_NO", "ADDRESS", "SUPPLIER_O", "SUPPLIER"} <= set(names)
    assert spec.positional_overrides == {"SUPPLIER_O": 14, "SUPPLIER": 18}


def test_header_matching_ignores_case_and_punctuation(spec: FieldSpec) -> None:
    raw = RawRecord(values={"full NAME": "J Smith", "job-number": "42", " date ": "5/1/26"})

    record = normalize_record(raw, spec)

    assert record.get("NAME") == "J Smith"
    assert record.get("JOB_NO") == "42"
    assert record.get("DATE") == "5/1/26"


def test_unmapped_fields_default_to_empty(spec: FieldSpec) -> None:
    record = normalize_record(RawRecord(values={"Name": "A"}), spec)

    assert record.get("MATERIALS") == ""
    assert record.fields["HOURS"] == ""
    assert set(record.fields) == set(spec.canonical_fields())


def test_first_non_empty_spelling_wins(spec: FieldSpec) -> None:
    raw = RawRecord(values={"Work Still to do": "", "to go back": "Fit cover plate"})

    record = normalize_record(raw, spec)

    assert record.get("WORK_STILL_TO_DO") == "Fit cover plate"


def test_address_joins_non_empty_parts(spec: FieldSpec) -> None:
    raw = RawRecord(
        values={
            "Address - Street Address": "1 High St",
            "Address - Street Address Line 2": "",
            "Address - City": "Leeds",
            "Address - Postal / Zip Code": "LS1 1AA",
        }
    )

    record = normalize_record(raw, spec)

    assert record.get("ADDRESS") == "1 High St, Leeds, LS1 1AA"


def test_positional_overrides_win_over_duplicate_headers(spec: FieldSpec) -> None:
    header = [f"col{index}" for index in range(20)]
    header[14] = "Supplier"
    header[18] = "Supplier"
    row = [""] * 20
    row[14] = "Wolseley"
    row[18] = "CEF"
    raw = RawRecord(values=dict(zip(header, row)), row=tuple(row))

    record = normalize_record(raw, spec)

    assert record.get("SUPPLIER_O") == "Wolseley"
    assert record.get("SUPPLIER") == "CEF"


def test_positional_override_falls_back_to_names_for_short_rows(spec: FieldSpec) -> None:
    raw = RawRecord(values={"Supplier": "Screwfix"}, row=("a", "b"))

    record = normalize_record(raw, spec)

    assert record.get("SUPPLIER") == "Screwfix"


def test_record_id_is_carried(spec: FieldSpec) -> None:
    record = normalize_record(RawRecord(values={}, record_id="7"), spec)

    assert record.record_id == "7"
    assert record.raw.record_id == "7"


def test_normalize_key() -> None:
    assert normalize_key("Work Still to do/Need to go back") == "workstilltodoneedtogoback"


def test_invalid_field_map_schema_raises(tmp_path: Path) -> None:
    path = tmp_path / "map.yaml"
    path.write_text("fields:\n  NAME: [Name]\nunknown_key: 1\n", encoding="utf-8")

    with pytest.raises(ValueError, match="Invalid field map schema"):
        load_field_spec(path)


def test_missing_field_map_raises(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="not found"):
        load_field_spec(tmp_path / "absent.yaml")
