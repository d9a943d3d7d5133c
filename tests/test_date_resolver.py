from __future__ import annotations

from datetime import date

import pytest

from core.dates.resolver import collect_candidates, format_date_token, resolve


def test_numeric_dates_are_day_first() -> None:
    resolved = resolve("05/01/2026")

    assert resolved is not None
    assert resolved.value == date(2026, 1, 5)
    assert resolved.kind == "dmy"


def test_two_digit_year_and_unpadded_parts() -> None:
    resolved = resolve("5/1/26")

    assert resolved is not None
    assert resolved.value == date(2026, 1, 5)
    assert format_date_token(resolved) == "5-1-2026"


@pytest.mark.parametrize("raw", ["5-1-2026", "5.1.2026", "5 1 2026", " 05/01/2026 "])
def test_numeric_separators(raw: str) -> None:
    resolved = resolve(raw)

    assert resolved is not None
    assert resolved.value == date(2026, 1, 5)


def test_resolve_is_repeatable() -> None:
    assert resolve("12/03/2025") == resolve("12/03/2025")
    assert resolve("garbage") == resolve("garbage") is None


@pytest.mark.parametrize("raw", ["31/04/2025", "29/02/2025", "0/1/2026", "5/13/2026"])
def test_impossible_dates_are_rejected_not_rolled_over(raw: str) -> None:
    assert resolve(raw) is None


def test_leap_day_is_accepted() -> None:
    resolved = resolve("29/02/2024")

    assert resolved is not None
    assert resolved.value == date(2024, 2, 29)


def test_iso_dates() -> None:
    resolved = resolve("2026-01-05")

    assert resolved is not None
    assert resolved.value == date(2026, 1, 5)
    assert resolved.kind == "iso"


@pytest.mark.parametrize(
    "raw",
    ["5th January 2026", "5 Jan 2026", "January 5, 2026", "Jan 5th 2026", "5 jan, 2026"],
)
def test_textual_month_forms(raw: str) -> None:
    resolved = resolve(raw)

    assert resolved is not None
    assert resolved.value == date(2026, 1, 5)
    assert resolved.kind == "text"


@pytest.mark.parametrize("raw", [None, "", "   ", "next tuesday", "5/1", "Smarch 5 2026"])
def test_unparseable_input_resolves_to_none(raw: str | None) -> None:
    assert resolve(raw) is None


def test_deterministic_policy_never_offers_month_first() -> None:
    kinds = {candidate.kind for candidate in collect_candidates("05/01/2026")}

    assert kinds == {"dmy"}


def test_heuristic_policy_offers_month_first_and_freeform() -> None:
    kinds = {candidate.kind for candidate in collect_candidates("05/01/2026", "heuristic")}

    assert kinds == {"dmy", "mdy", "freeform"}


def test_heuristic_defaults_to_day_first_without_cutoff() -> None:
    resolved = resolve("05/01/2026", "heuristic")

    assert resolved is not None
    assert resolved.value == date(2026, 1, 5)


def test_heuristic_cutoff_prefers_the_recent_reading() -> None:
    resolved = resolve("05/01/2026", "heuristic", tie_break_cutoff=date(2026, 3, 1))

    assert resolved is not None
    assert resolved.value == date(2026, 5, 1)
    assert resolved.kind == "mdy"


def test_heuristic_falls_back_to_month_first_when_day_first_is_impossible() -> None:
    resolved = resolve("01/31/2026", "heuristic")

    assert resolved is not None
    assert resolved.value == date(2026, 1, 31)


def test_deterministic_policy_ignores_cutoff() -> None:
    resolved = resolve("05/01/2026", tie_break_cutoff=date(2026, 3, 1))

    assert resolved is not None
    assert resolved.value == date(2026, 1, 5)


def test_unknown_policy_raises() -> None:
    with pytest.raises(ValueError):
        resolve("05/01/2026", "fuzzy")  # type: ignore[arg-type]


def test_format_date_token_of_none() -> None:
    assert format_date_token(None) is None
