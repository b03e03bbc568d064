"""HTML builders shaped like the Utah County recorder pages."""

from __future__ import annotations

from typing import Iterable, Optional, Sequence

BASE = "https://www.utahcounty.gov/LandRecords/"
INDEX_URL = BASE + "Index.asp"
FORM_URL = BASE + "RecordingsForm.asp"
RESULTS_URL = BASE + "RecordingsResults.asp"


def index_html() -> str:
    return """
    <html><body>
      <h1>Land Records</h1>
      <a href="RecordingsForm.asp">Recorded Documents by Entry Date</a>
    </body></html>
    """


def recordings_form_html() -> str:
    return """
    <html><body>
      <form id="form2" action="RecordingsResults.asp" method="post">
        <input type="text" id="avEntryDate" name="avEntryDate" value="">
        <input type="text" id="avEndEntryDate" name="avEndEntryDate" value="">
        <input type="submit" name="Submit3" value="Search">
      </form>
    </body></html>
    """


def results_html(
    hrefs: Sequence[str], *, total: Optional[int] = None, next_href: Optional[str] = None
) -> str:
    rows = "\n".join(
        f"""<tr valign="top">
              <td><a href="{href}">{href.split('=')[-1]}</a></td>
              <td>WD</td><td>01/05/2024</td>
            </tr>"""
        for href in hrefs
    )
    next_link = f'<a href="{next_href}">Next</a>' if next_href else ""
    total_text = total if total is not None else len(hrefs)
    return f"""
    <html><body>
      <h1>Recorded Documents - Total Records: {total_text}</h1>
      <table>
        <tr><th>Entry</th><th>Kind</th><th>Recorded</th></tr>
        {rows}
      </table>
      <a href="Index.asp">Previous</a> {next_link}
    </body></html>
    """


def zero_results_html() -> str:
    return """
    <html><body>
      <h1>Recorded Documents - Total Records: 0</h1>
      <table><tr><th>Entry</th></tr></table>
    </body></html>
    """


def _links(values: Iterable[str]) -> str:
    return "<br>".join(f'<a href="#">{value}</a>' for value in values)


def detail_html(
    entry: str = "12345-2024",
    recorded: str = "01/05/2024 9:46:02 AM",
    *,
    grantors: Sequence[str] = ("SMITH JOHN", "SMITH JANE"),
    grantees: Sequence[str] = ("DOE FAMILY TRUST",),
    serials: Sequence[str] = ("45:123:0001", "45:123:0002"),
    with_viewer: bool = False,
) -> str:
    viewer = (
        '<input type="button" value="Document Image Viewer" onclick="openViewer()">'
        if with_viewer
        else ""
    )
    return f"""
    <html><body>
      <table width="80%">
        <tr>
          <td>Entry #:</td><td>{entry}</td>
          <td>Recorded:</td><td>{recorded}</td>
        </tr>
        <tr><td>Instrument Date:</td><td>01/02/2024</td><td>Book: 6543</td></tr>
        <tr><td>Kind of Inst:</td><td>WARRANTY DEED</td><td>Pages: 3</td></tr>
        <tr><td>Mortgage Amt:</td><td></td><td>Consideration:$10.00</td></tr>
        <tr><td>Mail Address:</td><td>123 MAIN ST   </td></tr>
        <tr><td>Tax Address:</td><td>  PO BOX 9
            PROVO UT </td></tr>
        <tr><td>Grantor(s):</td><td>{_links(grantors)}</td></tr>
        <tr><td>Grantee(s):</td><td>{_links(grantees)}</td></tr>
        <tr><td>Serial Number(s):</td><td>{_links(serials)}</td></tr>
        <tr><td>Tie Entry(s):</td><td>1111-2020, 2222-2021</td></tr>
        <tr><td>Releases:</td><td></td></tr>
        <tr>
          <td>Abbv Taxing Desc:</td>
          <td>LOT 5,   PLAT A<br>  RIVER  BOTTOMS SUB<br>
              *Taxing description NOT FOR LEGAL DOCUMENTS</td>
        </tr>
      </table>
      {viewer}
    </body></html>
    """


def viewer_html(*, with_primary_link: bool = True) -> str:
    link = (
        '<a href="#" data-bind="click: showPdf">Download PDF</a>'
        if with_primary_link
        else '<a href="#">Download PDF</a>'
    )
    return f"""
    <html><body>
      <img class="lt-image" src="page1.png">
      <div id="Toolbar">
        <a href="#" class="dropdown-toggle" data-toggle="dropdown">Menu</a>
        <ul class="dropdown-menu"><li>{link}</li></ul>
      </div>
    </body></html>
    """
