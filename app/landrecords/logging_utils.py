from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Any

from .utils import log_line


def _format_value(value: Any) -> str:
    """Render dates as ISO strings and paths as plain strings."""

    if isinstance(value, date):
        return repr(value.isoformat())
    if isinstance(value, Path):
        return repr(str(value))
    return repr(value)


def _scraper_event(label: str = "", *, phase: str | None = None, **fields: Any) -> None:
    """Emit a structured ``[SCRAPER][LABEL] key=value`` line.

    ``phase`` doubles as the label when none is given; otherwise it is kept
    as a payload field.
    """

    try:
        event_label = label or (phase or "")
        if phase and label:
            fields.setdefault("phase", phase)
        payload = ", ".join(f"{k}={_format_value(v)}" for k, v in sorted(fields.items()))
        log_line(f"[SCRAPER][{event_label.upper()}] {payload}")
    except Exception:
        # Logging failures never reach the pipeline.
        return


__all__ = ["_scraper_event"]
