from __future__ import annotations

from pathlib import Path

import pytest

from app.landrecords.error_codes import StorageError
from app.landrecords.pdf_capture import CaptureState, CaptureTimeouts, DownloadRace, PdfCapture
from app.landrecords.selectors import RECORDER_SELECTORS as SEL
from app.landrecords.storage import KeyValueStore, LocalKeyValueStore
from tests.fakes import FakeContext, FakeDownload, FakeSite
from tests.site_pages import detail_html, viewer_html

PDF_BYTES = b"%PDF-1.7\n% test document\n"
FAST = CaptureTimeouts(settle=0, menu_settle=0, download=0.3, poll=0.01)


class _RefusingStore(KeyValueStore):
    def put(self, key, data, content_type="application/octet-stream"):
        raise StorageError("quota exceeded")

    def get(self, key):
        return None


def _open_viewer(page, element, *, primary: bool = True) -> None:
    page.open_popup(viewer_html(with_primary_link=primary))


def _deliver_pdf(page, element) -> None:
    page.schedule("download", FakeDownload(PDF_BYTES))


def _detail_page(actions: dict):
    context = FakeContext(FakeSite(actions=actions))
    page = context.new_page()
    page.set_content(detail_html(with_viewer=True))
    return context, page


@pytest.fixture
def capture(tmp_path: Path, data_dir) -> PdfCapture:
    return PdfCapture(LocalKeyValueStore(tmp_path / "kv"), pdf_dir=tmp_path / "pdfs", timeouts=FAST)


def test_capture_saves_and_publishes_pdf(capture: PdfCapture, tmp_path: Path):
    context, page = _detail_page({SEL.viewer_button: _open_viewer, SEL.download_pdf: _deliver_pdf})

    ref = capture.capture(page, "12345-2024", "01/05/2024 9:46:02 AM")

    local = tmp_path / "pdfs" / "2024" / "01" / "12345-2024.pdf"
    assert local.read_bytes() == PDF_BYTES
    assert ref == str(tmp_path / "kv" / "2024__01__12345-2024.pdf")
    assert Path(ref).read_bytes() == PDF_BYTES
    assert capture.history == [
        CaptureState.IDLE,
        CaptureState.AWAITING_POPUP,
        CaptureState.POPUP_LOADED,
        CaptureState.MENU_OPENED,
        CaptureState.AWAITING_DOWNLOAD,
        CaptureState.SAVED,
    ]

    popup = context.pages[-1]
    assert popup is not page
    assert popup.is_closed()
    assert page.listener_count("download") == 0
    assert popup.listener_count("download") == 0
    assert not page.is_closed()


def test_capture_uses_fallback_download_link(capture: PdfCapture):
    _, page = _detail_page(
        {
            SEL.viewer_button: lambda p, el: _open_viewer(p, el, primary=False),
            SEL.download_pdf_fallback: _deliver_pdf,
        }
    )

    assert capture.capture(page, "777", "02/10/2023") is not None
    assert capture.state is CaptureState.SAVED


def test_download_on_detail_page_is_also_accepted(capture: PdfCapture):
    context, page = _detail_page({SEL.viewer_button: _open_viewer})
    context.site.actions[SEL.download_pdf] = lambda popup, el: page.schedule(
        "download", FakeDownload(PDF_BYTES)
    )

    assert capture.capture(page, "888", "03/01/2024") is not None


def test_timeout_returns_none_and_releases_listeners(capture: PdfCapture):
    context, page = _detail_page({SEL.viewer_button: _open_viewer})

    assert capture.capture(page, "999", "01/05/2024") is None

    assert capture.state is CaptureState.TIMED_OUT
    popup = context.pages[-1]
    assert popup.is_closed()
    assert page.listener_count("download") == 0
    assert popup.listener_count("download") == 0


def test_missing_viewer_button_fails_without_raising(capture: PdfCapture):
    context = FakeContext()
    page = context.new_page()
    page.set_content(detail_html(with_viewer=False))

    assert capture.capture(page, "1", "01/05/2024") is None
    assert capture.state is CaptureState.FAILED
    assert page.listener_count("download") == 0


def test_storage_failure_falls_back_to_local_path(tmp_path: Path, data_dir):
    capture = PdfCapture(_RefusingStore(), pdf_dir=tmp_path / "pdfs", timeouts=FAST)
    _, page = _detail_page({SEL.viewer_button: _open_viewer, SEL.download_pdf: _deliver_pdf})

    ref = capture.capture(page, "12/34", "01/05/2024")

    assert ref == str(tmp_path / "pdfs" / "2024" / "01" / "12_34.pdf")


def test_unparseable_recording_date_uses_fallback_folder(capture: PdfCapture, tmp_path: Path):
    assert capture.local_path_for('a<b>"c', "unknown") == tmp_path / "pdfs" / "0000" / "01" / "a_b__c.pdf"
    assert capture.local_path_for("", "01/05/2024").name == "unknown.pdf"


def test_download_race_resolves_once(data_dir):
    context = FakeContext()
    page = context.new_page()
    first, second = FakeDownload(b"1"), FakeDownload(b"2")

    with DownloadRace() as race:
        race.attach(page)
        page.schedule("download", first)
        page.schedule("download", second)
        assert race.wait(page, 0.5, poll=0.01) is first
    assert page.listener_count("download") == 0
