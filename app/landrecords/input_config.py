"""Load the run input (``startDate`` / ``endDate``).

The hosted platform injects the input as JSON in ``APIFY_INPUT_VALUE``; local
runs read the first existing file from :data:`LOCAL_INPUT_PATHS`, relative to
the working directory.
"""
from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Optional

from .models import SearchRange
from .utils import load_json_file, log_line

LOCAL_INPUT_PATHS: tuple[str, ...] = (
    "apify_storage/key_value_stores/default/INPUT.json",
    "apify_storage/input.json",
    "storage/key_value_stores/default/INPUT.json",
    "input.json",
)


@dataclass(frozen=True)
class InputConfig:
    start_date: str = ""
    end_date: str = ""

    def to_range(self) -> SearchRange:
        return SearchRange(start_date=self.start_date, end_date=self.end_date)

    def override(self, start_date: Optional[str] = None, end_date: Optional[str] = None) -> "InputConfig":
        return InputConfig(
            start_date=start_date if start_date else self.start_date,
            end_date=end_date if end_date else self.end_date,
        )


def _unwrap(payload: Any) -> dict:
    if not isinstance(payload, dict):
        return {}
    for key, value in payload.items():
        if key.lower() == "input" and isinstance(value, dict):
            return value
    return payload


def parse_input(payload: Any) -> InputConfig:
    """Build an :class:`InputConfig` from decoded JSON; keys are case-insensitive."""

    fields = {str(key).lower(): value for key, value in _unwrap(payload).items()}
    return InputConfig(
        start_date=str(fields.get("startdate") or "").strip(),
        end_date=str(fields.get("enddate") or "").strip(),
    )


def _read_raw_input(search_dirs: Iterable[Path]) -> Any:
    env_value = os.getenv("APIFY_INPUT_VALUE", "").strip()
    if env_value:
        try:
            return json.loads(env_value)
        except json.JSONDecodeError as exc:
            log_line(f"[INPUT] APIFY_INPUT_VALUE is not valid JSON: {exc}")
            return None

    for base in search_dirs:
        for relative in LOCAL_INPUT_PATHS:
            path = Path(base) / relative
            if path.is_file():
                log_line(f"[INPUT] Reading input from {path}")
                return load_json_file(path)
    return None


def load_input(search_dirs: Optional[Iterable[Path]] = None) -> InputConfig:
    """Return the run input, or empty dates when none is available."""

    raw = _read_raw_input(search_dirs if search_dirs is not None else (Path.cwd(),))
    if raw is None:
        log_line("[INPUT] No input JSON found; using defaults.")
        return InputConfig()
    return parse_input(raw)


__all__ = ["InputConfig", "LOCAL_INPUT_PATHS", "parse_input", "load_input"]
