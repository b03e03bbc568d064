"""Records produced and consumed by the acquisition pipeline."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class SearchRange:
    """Date range submitted to the recordings search form.

    Values are kept as configured (``MM/DD/YYYY`` or ISO); the orchestrator
    normalises them when filling the form.
    """

    start_date: str
    end_date: str

    def with_start(self, start: date) -> "SearchRange":
        return replace(self, start_date=start.isoformat())


@dataclass
class DocumentRecord:
    """One recorded document as read from its detail page."""

    entry_number: str = ""
    recorded: str = ""
    book: str = ""
    page: str = ""
    instrument_date: str = ""
    consideration: str = ""
    kind_of_instrument: str = ""
    mail_address: str = ""
    tax_address: str = ""
    grantors: List[str] = field(default_factory=list)
    grantees: List[str] = field(default_factory=list)
    serial_numbers: List[str] = field(default_factory=list)
    tie_entries: List[str] = field(default_factory=list)
    releases: List[str] = field(default_factory=list)
    legal_description: List[str] = field(default_factory=list)
    pdf_url: str = ""

    @property
    def is_valid(self) -> bool:
        return bool(self.entry_number.strip())

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CheckpointState:
    last_processed_date: str = ""

    def to_json(self) -> Dict[str, str]:
        return {"lastProcessedDate": self.last_processed_date}

    @classmethod
    def from_json(cls, payload: Any) -> "CheckpointState":
        if not isinstance(payload, dict):
            return cls()
        raw = payload.get("lastProcessedDate") or payload.get("last_processed_date") or ""
        return cls(last_processed_date=str(raw).strip())


@dataclass
class PdfArtifact:
    """Captured PDF bytes on their way to the key/value store."""

    document_id: str
    data: bytes
    storage_key: str
    local_path: Optional[Path] = None

    @property
    def size(self) -> int:
        return len(self.data)


# ---------------------------------------------------------------------------
# Grouped (per recording date) export rows
# ---------------------------------------------------------------------------


@dataclass
class HeaderRow:
    county_id: str
    doc_id: str
    recording_date: str
    document_type: str
    document_number: str
    book_number: str
    page_number: str
    amount: str
    document_date: str
    mail_address: str
    tax_address: str
    pdf_url: str


@dataclass
class NameRow:
    county_id: str
    doc_id: str
    party_type: str
    party_name: str
    sequence: int


@dataclass
class LegalRow:
    county_id: str
    doc_id: str
    legal_description: str


@dataclass
class ParcelRow:
    county_id: str
    doc_id: str
    parcel_number: str


@dataclass
class XrefRow:
    county_id: str
    doc_id: str
    xref_document_type: str
    xref_document_number: str


@dataclass
class DocumentGroup:
    header: HeaderRow
    names: List[NameRow]
    legals: List[LegalRow]
    parcels: List[ParcelRow]
    xrefs: List[XrefRow]


def group_document(record: DocumentRecord, county_id: str) -> DocumentGroup:
    """Split a flat record into the header/name/legal/parcel/xref sub-rows."""

    doc_id = record.entry_number
    header = HeaderRow(
        county_id=county_id,
        doc_id=doc_id,
        recording_date=record.recorded,
        document_type=record.kind_of_instrument,
        document_number=record.entry_number,
        book_number=record.book,
        page_number=record.page,
        amount=record.consideration,
        document_date=record.instrument_date,
        mail_address=record.mail_address,
        tax_address=record.tax_address,
        pdf_url=record.pdf_url,
    )

    names: List[NameRow] = []
    for party_type, parties in (("Grantor", record.grantors), ("Grantee", record.grantees)):
        for sequence, party in enumerate(parties, start=1):
            names.append(NameRow(county_id, doc_id, party_type, party, sequence))

    legals: List[LegalRow] = []
    if record.legal_description:
        legals.append(LegalRow(county_id, doc_id, "; ".join(record.legal_description)))

    parcels = [ParcelRow(county_id, doc_id, serial) for serial in record.serial_numbers]

    xrefs = [XrefRow(county_id, doc_id, "Tie Entry", entry) for entry in record.tie_entries]
    xrefs += [XrefRow(county_id, doc_id, "Release", entry) for entry in record.releases]

    return DocumentGroup(header=header, names=names, legals=legals, parcels=parcels, xrefs=xrefs)


__all__ = [
    "SearchRange",
    "DocumentRecord",
    "CheckpointState",
    "PdfArtifact",
    "HeaderRow",
    "NameRow",
    "LegalRow",
    "ParcelRow",
    "XrefRow",
    "DocumentGroup",
    "group_document",
]
