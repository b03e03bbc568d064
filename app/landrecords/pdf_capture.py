"""Capture a document's scanned PDF through the Document Image Viewer popup.

Flow on a detail page::

    idle -> awaiting_popup -> popup_loaded -> menu_opened -> awaiting_download
         -> saved | timed_out | failed

The viewer may deliver the download on either the detail page or the popup,
so one :class:`DownloadRace` listens on both. Its listeners are attached
before anything is clicked, it resolves exactly once (first download or the
deadline), and leaving its ``with`` block always detaches the listeners and
closes the popup.
"""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, List, Optional

from playwright.sync_api import Download, Page

from . import config
from .date_utils import recording_date_path
from .error_codes import ErrorCode, StorageError
from .logging_utils import _scraper_event
from .models import PdfArtifact
from .selectors import RECORDER_SELECTORS, RecorderSelectors
from .storage import KeyValueStore
from .utils import log_line, sanitize_filename


class CaptureState(str, Enum):
    IDLE = "idle"
    AWAITING_POPUP = "awaiting_popup"
    POPUP_LOADED = "popup_loaded"
    MENU_OPENED = "menu_opened"
    AWAITING_DOWNLOAD = "awaiting_download"
    SAVED = "saved"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


@dataclass(frozen=True)
class CaptureTimeouts:
    """Bounded waits for the viewer flow, in seconds."""

    popup: float = 45
    viewer_image: float = 60
    toolbar: float = 30
    click: float = 30
    download: float = 60
    settle: float = 2.0
    menu_settle: float = 1.5
    poll: float = 0.25

    @classmethod
    def from_config(cls) -> "CaptureTimeouts":
        return cls(
            popup=config.POPUP_TIMEOUT_SECONDS,
            viewer_image=config.VIEWER_IMAGE_TIMEOUT_SECONDS,
            toolbar=config.VIEWER_TOOLBAR_TIMEOUT_SECONDS,
            click=config.PLAYWRIGHT_CLICK_TIMEOUT_MS / 1000,
            download=config.DOWNLOAD_TIMEOUT_SECONDS,
            settle=config.VIEWER_SETTLE_SECONDS,
            menu_settle=config.MENU_SETTLE_SECONDS,
            poll=config.DOWNLOAD_POLL_MS / 1000,
        )


class DownloadRace:
    """One outstanding download expectation shared by a page and its popup."""

    def __init__(self) -> None:
        self.download: Optional[Download] = None
        self.popup: Optional[Page] = None
        self._pages: List[Page] = []

    def _on_download(self, download: Download) -> None:
        if self.download is None:
            self.download = download

    def attach(self, page: Page) -> None:
        page.on("download", self._on_download)
        self._pages.append(page)

    def adopt_popup(self, popup: Page) -> None:
        self.popup = popup
        self.attach(popup)

    def wait(
        self,
        pump_page: Page,
        timeout: float,
        *,
        poll: float = 0.25,
        cancel_event: Optional[threading.Event] = None,
    ) -> Optional[Download]:
        """Block until a download arrives or ``timeout`` seconds pass.

        ``pump_page.wait_for_timeout`` lets Playwright dispatch pending events
        while we wait.
        """

        deadline = time.monotonic() + timeout
        while self.download is None:
            if cancel_event is not None and cancel_event.is_set():
                return None
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None
            pump_page.wait_for_timeout(int(min(poll, remaining) * 1000))
        return self.download

    def release(self) -> None:
        for page in self._pages:
            try:
                page.remove_listener("download", self._on_download)
            except Exception as exc:  # noqa: BLE001
                log_line(f"[PDF] Failed to detach download listener: {exc}")
        self._pages.clear()

        if self.popup is not None:
            try:
                self.popup.close()
            except Exception as exc:  # noqa: BLE001
                log_line(f"[PDF] Failed to close viewer popup: {exc}")
            self.popup = None

    def __enter__(self) -> "DownloadRace":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:  # noqa: ANN001
        self.release()
        return False


class PdfCapture:
    """Drive the viewer popup on a detail page and store the downloaded PDF."""

    def __init__(
        self,
        store: KeyValueStore,
        *,
        pdf_dir: Optional[Path] = None,
        selectors: RecorderSelectors = RECORDER_SELECTORS,
        timeouts: Optional[CaptureTimeouts] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self.store = store
        self.pdf_dir = Path(pdf_dir) if pdf_dir is not None else config.PDF_DIR
        self.selectors = selectors
        self.timeouts = timeouts or CaptureTimeouts.from_config()
        self.cancel_event = cancel_event
        self.state = CaptureState.IDLE
        self.history: List[CaptureState] = []

    def _transition(self, state: CaptureState, **fields: Any) -> None:
        self.state = state
        self.history.append(state)
        _scraper_event("pdf", step=state.value, **fields)

    def local_path_for(self, document_id: str, recording_date: str) -> Path:
        year, month = recording_date_path(recording_date)
        return self.pdf_dir / year / month / f"{sanitize_filename(document_id)}.pdf"

    def _open_viewer(self, detail_page: Page, race: DownloadRace, document_id: str) -> Page:
        sel = self.selectors
        t = self.timeouts

        self._transition(CaptureState.AWAITING_POPUP, document_id=document_id)
        with detail_page.expect_popup(timeout=t.popup * 1000) as popup_info:
            detail_page.locator(sel.viewer_button).first.click(timeout=t.click * 1000)
        popup = popup_info.value
        race.adopt_popup(popup)
        popup.set_default_timeout(t.viewer_image * 1000)

        popup.wait_for_load_state("domcontentloaded")
        popup.locator(sel.viewer_image).first.wait_for(
            state="visible", timeout=t.viewer_image * 1000
        )
        # The viewer wires its toolbar bindings asynchronously after the first
        # page image renders; there is no event to wait on.
        popup.wait_for_timeout(t.settle * 1000)
        self._transition(CaptureState.POPUP_LOADED, document_id=document_id)
        return popup

    def _trigger_download(self, popup: Page, document_id: str) -> None:
        sel = self.selectors
        t = self.timeouts

        popup.locator(sel.viewer_toolbar).first.wait_for(state="visible", timeout=t.toolbar * 1000)
        popup.locator(sel.viewer_menu_toggle).first.click(timeout=t.click * 1000)
        popup.wait_for_timeout(t.menu_settle * 1000)
        self._transition(CaptureState.MENU_OPENED, document_id=document_id)

        download_link = popup.locator(sel.download_pdf).first
        if not download_link.is_visible():
            download_link = popup.locator(sel.download_pdf_fallback).first

        log_line(f"[PDF] Triggering download for {document_id}...")
        download_link.click(timeout=t.click * 1000)
        self._transition(CaptureState.AWAITING_DOWNLOAD, document_id=document_id)

    def _publish(self, artifact: PdfArtifact) -> str:
        try:
            return self.store.put(artifact.storage_key, artifact.data, "application/pdf")
        except StorageError as exc:
            log_line(
                f"[PDF] Storage upload failed for {artifact.document_id}: {exc}; "
                "keeping the local copy reference."
            )
            _scraper_event(
                "error",
                phase="pdf",
                step="publish",
                document_id=artifact.document_id,
                error_code=ErrorCode.STORAGE,
            )
            return str(artifact.local_path)

    def capture(self, detail_page: Page, document_id: str, recording_date: str) -> Optional[str]:
        """Download the document's PDF and return its storage reference.

        Returns ``None`` when no download arrives in time or anything in the
        viewer flow fails; errors never propagate.
        """

        self.state = CaptureState.IDLE
        self.history = [CaptureState.IDLE]
        dest = self.local_path_for(document_id, recording_date)
        year, month = dest.parent.parent.name, dest.parent.name

        with DownloadRace() as race:
            try:
                race.attach(detail_page)
                popup = self._open_viewer(detail_page, race, document_id)
                self._trigger_download(popup, document_id)

                download = race.wait(
                    detail_page,
                    self.timeouts.download,
                    poll=self.timeouts.poll,
                    cancel_event=self.cancel_event,
                )
                if download is None:
                    self._transition(
                        CaptureState.TIMED_OUT,
                        document_id=document_id,
                        error_code=ErrorCode.PDF_TIMEOUT,
                    )
                    log_line(f"[PDF] Download timeout; no download event fired for {document_id}.")
                    return None

                dest.parent.mkdir(parents=True, exist_ok=True)
                download.save_as(dest)
                data = dest.read_bytes()
                if not data.startswith(b"%PDF"):
                    log_line(f"[PDF] Downloaded file for {document_id} does not look like a PDF.")

                artifact = PdfArtifact(
                    document_id=document_id,
                    data=data,
                    storage_key=f"{year}/{month}/{dest.name}",
                    local_path=dest,
                )
                self._transition(
                    CaptureState.SAVED, document_id=document_id, bytes=artifact.size, path=str(dest)
                )
                return self._publish(artifact)
            except Exception as exc:  # noqa: BLE001
                self._transition(
                    CaptureState.FAILED,
                    document_id=document_id,
                    error_code=ErrorCode.PDF_CAPTURE,
                    error=str(exc),
                )
                log_line(f"[PDF] PDF download failed for {document_id}: {exc}")
                return None


__all__ = ["CaptureState", "CaptureTimeouts", "DownloadRace", "PdfCapture"]
