"""Date-grouped CSV/Excel export.

Records are buffered per recording date. When the date changes (or the sink
closes) the buffered group is split into header, name, legal, parcel and
cross-reference rows and appended to one CSV per table. Only after the group
is on disk is its date handed to ``on_group_committed`` so the checkpoint
never runs ahead of the exported data.

A group that fails to write stays pending and is retried on the next push or
close. Each table is staged to a ``.tmp`` copy and only moved into place once
every table of the group is staged, so a failed write never leaves a partial
group behind.
"""

from __future__ import annotations

import shutil
from dataclasses import asdict, fields
from datetime import date
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import pandas as pd

from . import config
from .date_utils import parse_date
from .error_codes import ErrorCode, StorageError
from .logging_utils import _scraper_event
from .models import (
    DocumentGroup,
    DocumentRecord,
    HeaderRow,
    LegalRow,
    NameRow,
    ParcelRow,
    XrefRow,
    group_document,
)
from .storage import RecordSink
from .utils import log_line

TABLES: Dict[str, type] = {
    "header": HeaderRow,
    "names": NameRow,
    "legals": LegalRow,
    "parcels": ParcelRow,
    "xrefs": XrefRow,
}


def groups_to_frames(groups: List[DocumentGroup]) -> Dict[str, pd.DataFrame]:
    """Flatten document groups into one DataFrame per export table."""

    rows: Dict[str, list] = {name: [] for name in TABLES}
    for group in groups:
        rows["header"].append(asdict(group.header))
        rows["names"].extend(asdict(row) for row in group.names)
        rows["legals"].extend(asdict(row) for row in group.legals)
        rows["parcels"].extend(asdict(row) for row in group.parcels)
        rows["xrefs"].extend(asdict(row) for row in group.xrefs)

    return {
        name: pd.DataFrame(rows[name], columns=[f.name for f in fields(row_type)])
        for name, row_type in TABLES.items()
    }


class GroupedCsvSink(RecordSink):
    commits_progress = True

    def __init__(
        self,
        export_dir: Optional[Path] = None,
        *,
        county_id: str = config.COUNTY_ID,
        on_group_committed: Optional[Callable[[date], object]] = None,
        excel: bool = config.EXPORT_EXCEL,
    ) -> None:
        self.export_dir = Path(export_dir) if export_dir is not None else config.EXPORTS_DIR
        self.county_id = county_id
        self.on_group_committed = on_group_committed
        self.excel = excel
        self._group_date: Optional[date] = None
        self._buffer: List[DocumentRecord] = []
        # Closed groups waiting to be written, oldest first.
        self._pending: List[Tuple[Optional[date], List[DocumentRecord]]] = []
        self.groups_written = 0

    def csv_path(self, table: str) -> Path:
        return self.export_dir / f"{table}.csv"

    @property
    def unwritten_entries(self) -> List[str]:
        """Entry numbers buffered or pending, in push order."""

        entries = [r.entry_number for _, records in self._pending for r in records]
        return entries + [r.entry_number for r in self._buffer]

    def push(self, record: DocumentRecord) -> None:
        record_date = parse_date(record.recorded)
        if self._buffer and record_date != self._group_date:
            self._pending.append((self._group_date, self._buffer))
            self._buffer = []
        self._group_date = record_date
        self._buffer.append(record)
        if self._pending:
            self._write_pending()

    def flush(self) -> None:
        if self._buffer:
            self._pending.append((self._group_date, self._buffer))
            self._buffer = []
            self._group_date = None
        self._write_pending()

    def _write_pending(self) -> None:
        while self._pending:
            group_date, records = self._pending[0]
            self._write_group(group_date, records)
            self._pending.pop(0)
            self.groups_written += 1
            if group_date is not None and self.on_group_committed is not None:
                self.on_group_committed(group_date)

    def _stage_table(self, table: str, frame: pd.DataFrame) -> Path:
        """Write the table's current contents plus ``frame`` to a ``.tmp`` file."""

        path = self.csv_path(table)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        if path.exists():
            shutil.copyfile(path, tmp_path)
            frame.to_csv(tmp_path, mode="a", header=False, index=False)
        else:
            frame.to_csv(tmp_path, index=False)
        return tmp_path

    def _write_group(self, group_date: Optional[date], records: List[DocumentRecord]) -> None:
        frames = groups_to_frames([group_document(r, self.county_id) for r in records])
        label = group_date.isoformat() if group_date else "undated"

        staged: Dict[str, Path] = {}
        try:
            self.export_dir.mkdir(parents=True, exist_ok=True)
            for table, frame in frames.items():
                if not frame.empty:
                    staged[table] = self._stage_table(table, frame)

            if self.excel:
                workbook = self.export_dir / f"group_{label}.xlsx"
                with pd.ExcelWriter(workbook, engine="openpyxl") as writer:
                    for table, frame in frames.items():
                        frame.to_excel(writer, index=False, sheet_name=table.capitalize())

            for table, tmp_path in staged.items():
                tmp_path.replace(self.csv_path(table))
        except OSError as exc:
            for tmp_path in staged.values():
                tmp_path.unlink(missing_ok=True)
            _scraper_event(
                "error",
                phase="export",
                group_date=label,
                error_code=ErrorCode.STORAGE,
                error=str(exc),
            )
            raise StorageError(f"Grouped export failed for {label}: {exc}") from exc

        _scraper_event(
            "export",
            step="group_flushed",
            group_date=label,
            documents=len(records),
            names=len(frames["names"]),
            parcels=len(frames["parcels"]),
        )
        log_line(f"[EXPORT] Wrote {len(records)} document(s) for {label} to {self.export_dir}")

    def close(self) -> None:
        self.flush()


__all__ = ["GroupedCsvSink", "groups_to_frames", "TABLES"]
