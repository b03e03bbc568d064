from __future__ import annotations

import re
from datetime import date, datetime, timedelta
from typing import Iterable, Optional

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

_DATE_FORMATS: Iterable[str] = (
    "%m/%d/%Y",
    "%Y-%m-%d",
    "%m-%d-%Y",
    "%m/%d/%y",
)


def normalize_form_date(value: str | None) -> str:
    """Rewrite ``YYYY-MM-DD`` to the search form's ``MM/DD/YYYY``.

    Any other shape is returned trimmed and otherwise untouched; the form's own
    validation decides what it accepts.
    """

    candidate = (value or "").strip()
    if _ISO_DATE.match(candidate):
        year, month, day = candidate.split("-")
        return f"{month}/{day}/{year}"
    return candidate


def parse_date(value: str | None) -> Optional[date]:
    """Parse a calendar date from the formats the recorder site and inputs use.

    A trailing time component (``2/25/2026 9:46:02 AM``) is ignored.
    """

    candidate = (value or "").strip()
    if not candidate:
        return None
    candidate = candidate.split()[0]

    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(candidate, fmt).date()
        except ValueError:
            continue
    return None


def recording_date_path(recording_date: str | None) -> tuple[str, str]:
    """Return ``(YYYY, MM)`` folder segments for a recording date."""

    parsed = parse_date(recording_date)
    if parsed is None:
        return ("0000", "01")
    return (f"{parsed.year:04d}", f"{parsed.month:02d}")


def next_day(value: date) -> date:
    return value + timedelta(days=1)


__all__ = ["normalize_form_date", "parse_date", "recording_date_path", "next_day"]
