"""Field extraction for recorder document detail pages.

The detail page renders every field as a label cell followed by a value cell
inside one table. Extraction happens in two steps:

- the rendered table is serialised once and parsed with BeautifulSoup into a
  small :class:`TableModel` (rows of cells with their text, rendered lines and
  anchor texts);
- pure lookup functions read field values out of that model by label.

Only the bounded wait for the table touches the browser.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence, Tuple

from bs4 import BeautifulSoup, Comment, NavigableString

from . import config
from .logging_utils import _scraper_event
from .models import DocumentRecord
from .selectors import RECORDER_SELECTORS, RecorderSelectors
from .utils import collapse_whitespace

ENTRY_LABELS: Tuple[str, ...] = ("Entry #:", "Entry #")
RECORDED_LABEL = "Recorded:"
BOOK_LABELS: Tuple[str, ...] = ("Book:", "Book #:")
PAGES_LABEL = "Pages:"
INSTRUMENT_DATE_LABEL = "Instrument Date:"
CONSIDERATION_LABEL = "Consideration:"
KIND_OF_INSTRUMENT_LABEL = "Kind of Inst:"
MAIL_ADDRESS_LABEL = "Mail Address:"
TAX_ADDRESS_LABEL = "Tax Address:"
GRANTORS_LABEL = "Grantor(s):"
GRANTEES_LABEL = "Grantee(s):"
SERIAL_NUMBERS_LABEL = "Serial Number(s):"
TIE_ENTRIES_LABEL = "Tie Entry(s):"
RELEASES_LABEL = "Releases:"
LEGAL_DESCRIPTION_LABEL = "Abbv Taxing Desc"

_LEGAL_DISCLAIMER = re.compile(
    r"\*?\s*Taxing description NOT FOR LEGAL DOCUMENTS", re.IGNORECASE
)
_MULTI_VALUE_SPLIT = re.compile(r"[,\n\r]")
_BLOCK_TAGS = frozenset(
    {"div", "p", "li", "ul", "ol", "tr", "table", "h1", "h2", "h3", "h4", "h5", "h6"}
)


@dataclass(frozen=True)
class Cell:
    """A table cell as seen by the lookup functions.

    ``text`` mirrors the DOM textContent (used for label matching and scalar
    values); ``lines`` approximates the rendered text split at ``<br>`` and
    block boundaries; ``links`` holds non-blank anchor texts in DOM order.
    """

    text: str
    lines: Tuple[str, ...] = ()
    links: Tuple[str, ...] = ()
    nested: bool = False


@dataclass(frozen=True)
class TableModel:
    rows: Tuple[Tuple[Cell, ...], ...] = ()

    def iter_cells(self) -> Iterator[Tuple[Tuple[Cell, ...], int, Cell]]:
        for row in self.rows:
            for index, cell in enumerate(row):
                yield row, index, cell


def _rendered_lines(td) -> Tuple[str, ...]:
    parts: List[str] = []
    for node in td.descendants:
        if isinstance(node, Comment):
            continue
        if isinstance(node, NavigableString):
            parts.append(re.sub(r"\s+", " ", str(node)))
        elif node.name == "br" or node.name in _BLOCK_TAGS:
            parts.append("\n")
    return tuple(line.strip() for line in "".join(parts).split("\n"))


def _build_cell(td) -> Cell:
    links = tuple(
        text
        for text in (anchor.get_text().strip() for anchor in td.find_all("a"))
        if text
    )
    return Cell(
        text=td.get_text(),
        lines=_rendered_lines(td),
        links=links,
        nested=td.find("td") is not None,
    )


def parse_table(html: str) -> TableModel:
    """Parse serialised table markup into a :class:`TableModel`."""

    soup = BeautifulSoup(html or "", "html5lib")
    table = soup.find("table")
    if table is None:
        return TableModel()

    rows = []
    for tr in table.find_all("tr"):
        cells = tuple(_build_cell(td) for td in tr.find_all("td", recursive=False))
        if cells:
            rows.append(cells)
    return TableModel(rows=tuple(rows))


# ---------------------------------------------------------------------------
# Label lookups
# ---------------------------------------------------------------------------


def find_label_cell(model: TableModel, label: str) -> Optional[Cell]:
    """Return the first cell whose text contains ``label`` literally."""

    needle = label.strip()
    for _row, _index, cell in model.iter_cells():
        if not cell.nested and needle in cell.text:
            return cell
    return None


def find_value_cell(model: TableModel, label: str) -> Optional[Cell]:
    """Return the cell immediately after the first label cell that has one."""

    needle = label.strip()
    for row, index, cell in model.iter_cells():
        if cell.nested or needle not in cell.text:
            continue
        if index + 1 < len(row):
            return row[index + 1]
    return None


def find_value_for_label(model: TableModel, label: str) -> Optional[str]:
    """Return the trimmed adjacent-cell text for ``label``, or ``None``."""

    cell = find_value_cell(model, label)
    if cell is None:
        return None
    return cell.text.strip()


def value_from_same_cell(cell_text: Optional[str]) -> Optional[str]:
    """Read a value sharing its cell with the label (``Pages: 9``)."""

    if cell_text is None or not cell_text.strip():
        return None
    _label, sep, value = cell_text.partition(":")
    if not sep:
        return cell_text.strip()
    return value.strip()


def split_multiple_values(raw: Optional[str]) -> List[str]:
    """Split a multi-valued cell on commas and line breaks, dropping blanks."""

    if raw is None or not raw.strip():
        return []
    return [part.strip() for part in _MULTI_VALUE_SPLIT.split(raw) if part.strip()]


def _first_value(
    model: TableModel, labels: Sequence[str], *, same_cell_label: Optional[str] = None
) -> str:
    for label in labels:
        value = find_value_for_label(model, label)
        if value:
            return value
    if same_cell_label:
        cell = find_label_cell(model, same_cell_label)
        value = value_from_same_cell(cell.text if cell is not None else None)
        if value:
            return value
    return ""


def list_values_for_label(model: TableModel, label: str) -> List[str]:
    """Anchor texts of the value cell, else its text split into values."""

    cell = find_value_cell(model, label)
    if cell is None:
        return []
    if cell.links:
        return list(cell.links)
    return split_multiple_values(cell.text)


def legal_description_lines(model: TableModel, label: str = LEGAL_DESCRIPTION_LABEL) -> List[str]:
    """Return the taxing description as whitespace-normalised lines."""

    cell = find_value_cell(model, label)
    if cell is None:
        return []
    text = _LEGAL_DISCLAIMER.sub("", "\n".join(cell.lines))
    return [line for line in (collapse_whitespace(raw) for raw in text.splitlines()) if line]


def extract_from_table(model: TableModel) -> DocumentRecord:
    """Map a parsed detail table onto a :class:`DocumentRecord`.

    Missing optional fields default to empty values; only a missing entry
    number makes the result invalid.
    """

    return DocumentRecord(
        entry_number=_first_value(model, ENTRY_LABELS).strip(),
        recorded=_first_value(model, (RECORDED_LABEL,)),
        book=_first_value(model, BOOK_LABELS, same_cell_label=BOOK_LABELS[0]),
        page=_first_value(model, (PAGES_LABEL,), same_cell_label=PAGES_LABEL),
        instrument_date=_first_value(model, (INSTRUMENT_DATE_LABEL,)),
        consideration=_first_value(
            model, (CONSIDERATION_LABEL,), same_cell_label=CONSIDERATION_LABEL
        ),
        kind_of_instrument=_first_value(model, (KIND_OF_INSTRUMENT_LABEL,)),
        mail_address=(find_value_for_label(model, MAIL_ADDRESS_LABEL) or "").rstrip(),
        tax_address=collapse_whitespace(find_value_for_label(model, TAX_ADDRESS_LABEL)),
        grantors=list_values_for_label(model, GRANTORS_LABEL),
        grantees=list_values_for_label(model, GRANTEES_LABEL),
        serial_numbers=list_values_for_label(model, SERIAL_NUMBERS_LABEL),
        tie_entries=split_multiple_values(find_value_for_label(model, TIE_ENTRIES_LABEL)),
        releases=list_values_for_label(model, RELEASES_LABEL),
        legal_description=legal_description_lines(model),
    )


def extract_record(
    page,
    *,
    selectors: RecorderSelectors = RECORDER_SELECTORS,
    timeout_seconds: Optional[int] = None,
) -> DocumentRecord:
    """Wait for the detail table on ``page`` and extract its record.

    Raises Playwright's ``TimeoutError`` when the table never becomes visible.
    """

    timeout = timeout_seconds or config.PLAYWRIGHT_SELECTOR_TIMEOUT_SECONDS
    table = page.locator(selectors.detail_table).first
    table.wait_for(state="visible", timeout=timeout * 1000)
    html = table.evaluate("(el) => el.outerHTML")

    record = extract_from_table(parse_table(html))
    _scraper_event(
        "extract",
        entry_number=record.entry_number,
        recorded=record.recorded,
        grantors=len(record.grantors),
        grantees=len(record.grantees),
        serial_numbers=len(record.serial_numbers),
    )
    return record


__all__ = [
    "Cell",
    "TableModel",
    "parse_table",
    "find_label_cell",
    "find_value_cell",
    "find_value_for_label",
    "value_from_same_cell",
    "split_multiple_values",
    "list_values_for_label",
    "legal_description_lines",
    "extract_from_table",
    "extract_record",
]
