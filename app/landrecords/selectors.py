from __future__ import annotations

"""Selectors and markup hints for the Utah County recorder pages."""

from dataclasses import dataclass


@dataclass(frozen=True)
class RecorderSelectors:
    """Site-specific selector hints.

    The search flow is Index.asp -> RecordingsForm.asp (``#form2``) -> a
    paginated results listing whose data rows carry ``valign="top"``. Each
    document detail page renders its fields in a single 80%-wide table and
    offers a "Document Image Viewer" button that opens the viewer popup.
    """

    recordings_form_link: str = 'a[href="RecordingsForm.asp"]'
    search_form: str = "#form2"
    start_date_input: str = "#avEntryDate"
    end_date_input: str = "#avEndEntryDate"
    submit_button: str = 'input[name="Submit3"][type="submit"]'

    results_header: str = "h1"
    zero_results_marker: str = "Total Records: 0"
    data_row: str = 'tr[valign="top"]'
    row_cell: str = "td"
    row_link: str = "a[href]"
    next_link: str = "a"
    next_link_text: str = "Next"

    detail_table: str = 'table[width="80%"]'

    viewer_button: str = 'input[value="Document Image Viewer"]'
    viewer_image: str = "img.lt-image"
    viewer_toolbar: str = "#Toolbar"
    viewer_menu_toggle: str = '#Toolbar a.dropdown-toggle[data-toggle="dropdown"]'
    download_pdf: str = 'a[data-bind*="showPdf"]'
    download_pdf_fallback: str = "a:has-text('Download PDF')"


RECORDER_SELECTORS = RecorderSelectors()

__all__ = [
    "RecorderSelectors",
    "RECORDER_SELECTORS",
]
