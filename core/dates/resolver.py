"""Resolve human-entered date strings to calendar dates.

Two policies are supported:

- ``deterministic`` (default): numeric dates are always day-month-year. ISO
  ``YYYY-MM-DD`` and textual month forms ("5th January 2026", "Jan 5 2026") are
  also recognised. Anything else resolves to ``None``.
- ``heuristic``: legacy behaviour. Adds month-day-year and a free-form parse as
  candidates. When day-month-year and month-day-year are both valid, an explicit
  ``tie_break_cutoff`` may pick whichever interpretation is not older than it.

Every candidate is built with :class:`datetime.date`, so impossible dates such as
31 April are rejected rather than rolled over into the next month.
"""

from __future__ import annotations

import re
from datetime import date, datetime

from core.dates.models import DateCandidate, DateKind, ResolutionPolicy, ResolvedDate

_ISO_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_NUMERIC_RE = re.compile(r"^0*(\d{1,2})[/\-.\s]0*(\d{1,2})[/\-.\s](\d{2,4})$")
_TEXT_DAY_FIRST_RE = re.compile(
    r"^(\d{1,2})(?:st|nd|rd|th)?\s+([A-Za-z]{3,9})\s+(\d{4})$", re.IGNORECASE
)
_TEXT_MONTH_FIRST_RE = re.compile(
    r"^([A-Za-z]{3,9})\s+(\d{1,2})(?:st|nd|rd|th)?\s+(\d{4})$", re.IGNORECASE
)

_MONTHS = {
    "january": 1,
    "february": 2,
    "march": 3,
    "april": 4,
    "may": 5,
    "june": 6,
    "july": 7,
    "august": 8,
    "september": 9,
    "october": 10,
    "november": 11,
    "december": 12,
    "jan": 1,
    "feb": 2,
    "mar": 3,
    "apr": 4,
    "jun": 6,
    "jul": 7,
    "aug": 8,
    "sep": 9,
    "sept": 9,
    "oct": 10,
    "nov": 11,
    "dec": 12,
}

# Month-first where ambiguous, matching what browsers accept for Date.parse.
_FREEFORM_FORMATS = (
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%m/%d/%Y %H:%M",
    "%B %d %Y",
    "%b %d %Y",
    "%d %B %Y",
    "%d %b %Y",
    "%a %b %d %Y",
)

_PRIORITY: dict[DateKind, int] = {"iso": 0, "dmy": 1, "text": 2, "freeform": 3, "mdy": 4}


def resolve(
    raw: str | None,
    policy: ResolutionPolicy = "deterministic",
    *,
    tie_break_cutoff: date | None = None,
) -> ResolvedDate | None:
    """Resolve ``raw`` to a single calendar date, or ``None`` when unparseable.

    The result depends only on ``raw``, ``policy`` and ``tie_break_cutoff``;
    the deterministic policy ignores the cutoff entirely.
    """

    candidates = collect_candidates(raw, policy)
    if not candidates:
        return None

    if policy == "deterministic":
        chosen = min(candidates, key=lambda item: _PRIORITY[item.kind])
        return ResolvedDate(value=chosen.value, kind=chosen.kind)

    return _pick_heuristic(candidates, tie_break_cutoff)


def collect_candidates(
    raw: str | None, policy: ResolutionPolicy = "deterministic"
) -> list[DateCandidate]:
    """Return every valid interpretation of ``raw`` under ``policy``."""

    if policy not in {"deterministic", "heuristic"}:
        raise ValueError(f"Unsupported resolution policy: {policy}")
    if raw is None:
        return []
    text = str(raw).strip()
    if not text:
        return []

    candidates: list[DateCandidate] = []

    iso = _iso_candidate(text)
    if iso is not None:
        candidates.append(iso)

    numeric = _NUMERIC_RE.match(text)
    if numeric is not None:
        first, second, year = _numeric_parts(numeric)
        dmy = _build(year, second, first)
        if dmy is not None:
            candidates.append(DateCandidate(kind="dmy", value=dmy, source=text))
        if policy == "heuristic":
            mdy = _build(year, first, second)
            if mdy is not None:
                candidates.append(DateCandidate(kind="mdy", value=mdy, source=text))
    elif iso is None:
        textual = _textual_candidate(text)
        if textual is not None:
            candidates.append(textual)

    if policy == "heuristic":
        freeform = _freeform_candidate(text)
        if freeform is not None:
            candidates.append(freeform)

    return candidates


def format_date_token(resolved: ResolvedDate | None) -> str | None:
    """Format a resolved date as an unpadded ``D-M-YYYY`` token."""

    if resolved is None:
        return None
    value = resolved.value
    return f"{value.day}-{value.month}-{value.year}"


def _pick_heuristic(
    candidates: list[DateCandidate], tie_break_cutoff: date | None
) -> ResolvedDate:
    by_kind = {item.kind: item for item in candidates}

    if "iso" in by_kind:
        chosen = by_kind["iso"]
    elif "dmy" in by_kind:
        chosen = by_kind["dmy"]
        mdy = by_kind.get("mdy")
        if (
            mdy is not None
            and tie_break_cutoff is not None
            and mdy.value != chosen.value
            and chosen.value < tie_break_cutoff <= mdy.value
        ):
            chosen = mdy
    elif "text" in by_kind:
        chosen = by_kind["text"]
    elif "freeform" in by_kind:
        chosen = by_kind["freeform"]
    else:
        chosen = candidates[0]

    return ResolvedDate(value=chosen.value, kind=chosen.kind)


def _iso_candidate(text: str) -> DateCandidate | None:
    match = _ISO_RE.match(text)
    if match is None:
        return None
    value = _build(int(match.group(1)), int(match.group(2)), int(match.group(3)))
    if value is None:
        return None
    return DateCandidate(kind="iso", value=value, source=text)


def _numeric_parts(match: re.Match[str]) -> tuple[int, int, int]:
    first = int(match.group(1))
    second = int(match.group(2))
    raw_year = int(match.group(3))
    year = 2000 + raw_year if raw_year < 100 else raw_year
    return first, second, year


def _textual_candidate(text: str) -> DateCandidate | None:
    cleaned = " ".join(text.replace(",", " ").split())

    match = _TEXT_DAY_FIRST_RE.match(cleaned)
    if match is not None:
        day, month_name, year = match.group(1), match.group(2), match.group(3)
    else:
        match = _TEXT_MONTH_FIRST_RE.match(cleaned)
        if match is None:
            return None
        month_name, day, year = match.group(1), match.group(2), match.group(3)

    month = _MONTHS.get(month_name.lower())
    if month is None:
        return None
    value = _build(int(year), month, int(day))
    if value is None:
        return None
    return DateCandidate(kind="text", value=value, source=match.group(0))


def _freeform_candidate(text: str) -> DateCandidate | None:
    cleaned = " ".join(text.replace(",", " ").split())
    for fmt in _FREEFORM_FORMATS:
        try:
            parsed = datetime.strptime(cleaned, fmt)
        except ValueError:
            continue
        return DateCandidate(kind="freeform", value=parsed.date(), source=cleaned)
    return None


def _build(year: int, month: int, day: int) -> date | None:
    try:
        value = date(year, month, day)
    except ValueError:
        return None
    if (value.year, value.month, value.day) != (year, month, day):
        return None
    return value
