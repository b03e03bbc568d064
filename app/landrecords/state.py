"""Persist and restore the acquisition checkpoint.

The checkpoint is a single ``STATE`` record in the key/value store holding the
last recording date whose documents were durably emitted. A new run resumes
from the day after it. Reads and writes are best-effort: failures are logged
and the run carries on with the configured range.
"""

from __future__ import annotations

import json
from datetime import date
from typing import Optional

from . import config
from .date_utils import next_day, parse_date
from .error_codes import ErrorCode
from .logging_utils import _scraper_event
from .models import CheckpointState, SearchRange
from .storage import KeyValueStore
from .utils import log_line


class CheckpointManager:
    """Read the resume point at startup and advance it as documents land."""

    def __init__(self, store: KeyValueStore, *, key: str = config.STATE_KEY) -> None:
        self.store = store
        self.key = key
        self._loaded = False
        self._last_date: Optional[date] = None

    def _read_stored_date(self) -> Optional[date]:
        try:
            raw = self.store.get(self.key)
        except Exception as exc:  # noqa: BLE001
            log_line(f"[CHECKPOINT] Failed to read checkpoint: {exc}")
            _scraper_event("error", phase="checkpoint", step="read", error_code=ErrorCode.CHECKPOINT)
            return None
        if not raw:
            return None
        try:
            state = CheckpointState.from_json(json.loads(raw.decode("utf-8")))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            log_line(f"[CHECKPOINT] Ignoring unreadable checkpoint: {exc}")
            return None
        parsed = parse_date(state.last_processed_date)
        if parsed is None and state.last_processed_date:
            log_line(f"[CHECKPOINT] Ignoring unparseable date {state.last_processed_date!r}")
        return parsed

    @property
    def last_processed(self) -> Optional[date]:
        if not self._loaded:
            self._last_date = self._read_stored_date()
            self._loaded = True
        return self._last_date

    def load_resume_start(self) -> Optional[date]:
        """Return the day after the stored checkpoint, or ``None``."""

        self._last_date = self._read_stored_date()
        self._loaded = True
        if self._last_date is None:
            return None
        resume = next_day(self._last_date)
        _scraper_event(
            "state",
            source="checkpoint",
            last_processed_date=self._last_date.isoformat(),
            resume_start=resume.isoformat(),
        )
        return resume

    def resolve_search_range(self, search_range: SearchRange) -> SearchRange:
        """Apply the resume start to ``search_range``; the end date is untouched."""

        resume = self.load_resume_start()
        if resume is None:
            return search_range
        log_line(
            f"[CHECKPOINT] Resuming from {resume.isoformat()} "
            f"(configured start {search_range.start_date!r})."
        )
        return search_range.with_start(resume)

    def record_progress(self, processed: date) -> bool:
        """Store ``processed`` unless it would move the checkpoint backwards."""

        current = self.last_processed
        if current is not None and processed < current:
            _scraper_event(
                "state",
                phase="checkpoint",
                kind="regress_skipped",
                stored=current.isoformat(),
                candidate=processed.isoformat(),
            )
            return False

        payload = json.dumps(CheckpointState(processed.isoformat()).to_json()).encode("utf-8")
        try:
            self.store.put(self.key, payload, "application/json")
        except Exception as exc:  # noqa: BLE001
            log_line(f"[CHECKPOINT] Failed to persist checkpoint {processed.isoformat()}: {exc}")
            _scraper_event("error", phase="checkpoint", step="write", error_code=ErrorCode.CHECKPOINT)
            return False

        self._last_date = processed
        self._loaded = True
        return True

    def record_progress_for(self, recording_date: str) -> bool:
        """Parse a recording date string and record it as progress."""

        processed = parse_date(recording_date)
        if processed is None:
            log_line(f"[CHECKPOINT] No parseable recording date in {recording_date!r}; not advancing.")
            return False
        return self.record_progress(processed)


__all__ = ["CheckpointManager"]
