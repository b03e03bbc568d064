"""Per-run telemetry for acquisition runs.

Each processed document contributes one entry. ``finalize`` writes the
entries together with outcome counts, a tally per :class:`ErrorCode` and the
number of emitted documents per recording date to ``runs/run_<id>.json``.
"""

from __future__ import annotations

import json
import time
import uuid
from collections import Counter
from pathlib import Path
from typing import Any, Dict, List, Optional

from . import config
from .date_utils import parse_date
from .error_codes import ErrorCode

_KNOWN_CODES = frozenset(
    value for name, value in vars(ErrorCode).items() if name.isupper() and isinstance(value, str)
)


def _ts() -> str:
    return time.strftime("%Y%m%d_%H%M%S")


class RunTelemetry:
    def __init__(self, mode: str, *, runs_dir: Optional[Path] = None) -> None:
        self.run_id = f"{_ts()}_{uuid.uuid4().hex[:8]}"
        self.mode = mode
        self.started_at = time.time()
        self.entries: List[Dict[str, Any]] = []
        self.outcomes: Counter = Counter()
        self.error_codes: Counter = Counter()
        self.emitted_by_date: Counter = Counter()
        self.runs_dir = Path(runs_dir) if runs_dir is not None else config.RUNS_DIR
        self.runs_dir.mkdir(parents=True, exist_ok=True)

    def add(self, status: str, reason: str, meta: Dict[str, Any]) -> None:
        """Record one document outcome; ``reason`` is ``"ok"`` or an error code."""

        self.entries.append({"status": status, "reason": reason, **meta})
        self.outcomes[f"count_{status}"] += 1
        if reason in _KNOWN_CODES:
            self.error_codes[reason] += 1
        if status == "emitted":
            recorded = parse_date(meta.get("recorded"))
            self.emitted_by_date[recorded.isoformat() if recorded else "undated"] += 1

    def counts(self) -> Dict[str, int]:
        return dict(self.outcomes)

    def finalize(self, extra: Optional[Dict[str, Any]] = None) -> Path:
        payload = {
            "run_id": self.run_id,
            "mode": self.mode,
            "started_at": self.started_at,
            "ended_at": time.time(),
            "summary": dict(self.outcomes),
            "error_codes": dict(sorted(self.error_codes.items())),
            "emitted_by_date": dict(sorted(self.emitted_by_date.items())),
            "entries": self.entries,
            **(extra or {}),
        }
        path = self.runs_dir / f"run_{self.run_id}.json"
        with path.open("w", encoding="utf-8") as handle:
            json.dump(payload, handle, ensure_ascii=False, indent=2)
        return path


__all__ = ["RunTelemetry"]
