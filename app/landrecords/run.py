"""Playwright acquisition run for the Utah County Recorder land records.

Workflow:

- Open https://www.utahcounty.gov/LandRecords/Index.asp and follow the
  "Recordings" link to the search form (``#form2``).
- Fill the entry-date range (``MM/DD/YYYY``) and submit; retried up to three
  times before the run is aborted.
- Walk every results page and collect the document detail links.
- For each link open a fresh page, extract the document fields, capture the
  scanned PDF through the Document Image Viewer popup, push the record to the
  sink and advance the ``STATE`` checkpoint.

This is wired to ``POST /run`` via :func:`run_acquisition` and to the CLI via
``python -m app.landrecords.run``.
"""

from __future__ import annotations

import argparse
import threading
import time
import urllib.parse
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from playwright.sync_api import (
    Browser,
    BrowserContext,
    Error as PWError,
    Page,
    sync_playwright,
)

from . import config
from .config_validation import validate_runtime_config
from .date_utils import normalize_form_date
from .error_codes import ErrorCode
from .export import GroupedCsvSink
from .extractor import extract_record
from .input_config import load_input
from .logging_utils import _scraper_event
from .models import SearchRange
from .paginator import collect_all_detail_links
from .pdf_capture import PdfCapture
from .retry_policy import RetryPolicy, decide_retry
from .selectors import RECORDER_SELECTORS, RecorderSelectors
from .state import CheckpointManager
from .storage import RecordSink, StatusChannel, build_backends
from .telemetry import RunTelemetry
from .utils import ensure_dirs, log_line, save_json_file, setup_run_logger


def _short_error_message(exc: Exception, max_length: int = 200) -> str:
    message = str(exc).strip().splitlines()[0] if str(exc).strip() else type(exc).__name__
    if len(message) > max_length:
        return message[: max_length - 3] + "..."
    return message


def _is_target_closed_error(exc: Exception) -> bool:
    """Return ``True`` if *exc* indicates the Playwright target is gone."""

    message = str(exc)
    return any(
        marker in message
        for marker in (
            "Target closed",
            "Target crashed",
            "has been closed",
        )
    )


def resolve_detail_url(href: str, base_url: str = config.LAND_RECORDS_BASE_URL) -> str:
    """Absolute links pass through; anything else is joined onto ``base_url``."""

    href = (href or "").strip()
    if urllib.parse.urlparse(href).scheme in {"http", "https"}:
        return href
    return f"{base_url.rstrip('/')}/{href.lstrip('/')}"


@contextmanager
def browser_session(headless: bool = True) -> Iterator[BrowserContext]:
    """Launch Chromium (Chrome channel first) and yield one browser context."""

    with sync_playwright() as pw:
        launch_kwargs: Dict[str, Any] = {
            "headless": headless,
            "args": list(config.BROWSER_ARGS),
            "timeout": config.PLAYWRIGHT_LAUNCH_TIMEOUT_SECONDS * 1000,
        }
        browser: Browser
        try:
            browser = pw.chromium.launch(channel="chrome", **launch_kwargs)
            log_line("[BROWSER] Launched Chrome channel.")
        except PWError as exc:
            log_line(f"[BROWSER] Chrome channel unavailable ({_short_error_message(exc)}); using bundled Chromium.")
            browser = pw.chromium.launch(**launch_kwargs)

        context = browser.new_context(ignore_https_errors=True, accept_downloads=True)
        try:
            yield context
        finally:
            for closer, label in ((context.close, "context"), (browser.close, "browser")):
                try:
                    closer()
                except Exception as exc:  # noqa: BLE001
                    log_line(f"[BROWSER] Failed to close {label}: {exc}")


class AcquisitionOrchestrator:
    """Search, walk the results and process each document on its own page."""

    def __init__(
        self,
        context: BrowserContext,
        *,
        sink: RecordSink,
        checkpoint: Optional[CheckpointManager] = None,
        pdf_capture: Optional[PdfCapture] = None,
        status: Optional[StatusChannel] = None,
        selectors: RecorderSelectors = RECORDER_SELECTORS,
        retry_policy: Optional[RetryPolicy] = None,
        telemetry: Optional[RunTelemetry] = None,
        cancel_event: Optional[threading.Event] = None,
        max_documents: Optional[int] = None,
    ) -> None:
        self.context = context
        self.sink = sink
        self.checkpoint = checkpoint
        self.pdf_capture = pdf_capture
        self.status = status or StatusChannel()
        self.selectors = selectors
        self.retry_policy = retry_policy or RetryPolicy.from_config()
        self.telemetry = telemetry
        self.cancel_event = cancel_event
        self.max_documents = max_documents

    def _cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def _record_outcome(self, status: str, reason: str, **meta: Any) -> None:
        if self.telemetry is not None:
            self.telemetry.add(status, reason, meta)

    def _open_search_results(self, page: Page, search_range: SearchRange) -> None:
        sel = self.selectors
        nav_timeout = config.PLAYWRIGHT_NAV_TIMEOUT_SECONDS * 1000

        page.goto(config.START_URL, wait_until="domcontentloaded", timeout=nav_timeout)
        page.locator(sel.recordings_form_link).first.click()
        page.wait_for_load_state("domcontentloaded")
        page.locator(sel.search_form).first.wait_for(state="visible", timeout=nav_timeout)

        start = normalize_form_date(search_range.start_date)
        end = normalize_form_date(search_range.end_date)
        page.locator(sel.start_date_input).first.fill(start)
        page.locator(sel.end_date_input).first.fill(end)
        self.status.set_status(f"Searching dates: {start} to {end}...")

        page.locator(sel.submit_button).first.click()
        page.wait_for_load_state("domcontentloaded")

    def submit_search(self, page: Page, search_range: SearchRange) -> None:
        """Submit the recordings search, retrying per the retry policy.

        The last attempt's error is re-raised once the attempts are spent.
        """

        max_attempts = self.retry_policy.max_attempts
        attempt = 0
        while True:
            attempt += 1
            self.status.set_status(f"Search attempt {attempt} of {max_attempts}...")
            _scraper_event(
                "search",
                step="attempt",
                attempt=attempt,
                start_date=search_range.start_date,
                end_date=search_range.end_date,
            )
            try:
                self._open_search_results(page, search_range)
                return
            except Exception as exc:  # noqa: BLE001
                log_line(f"[SEARCH] Attempt {attempt} failed: {_short_error_message(exc)}")
                _scraper_event(
                    "error",
                    phase="search",
                    attempt=attempt,
                    error_code=ErrorCode.SEARCH_FAILED,
                    error=_short_error_message(exc),
                )
                if not decide_retry(attempt, max_attempts, exc, operation="search"):
                    self.status.set_status(
                        f"Fatal Error during search after {attempt} attempts: "
                        f"{_short_error_message(exc)}",
                        terminal=True,
                    )
                    raise
                time.sleep(self.retry_policy.delay_for(attempt))

    def _process_document(self, href: str, index: int, total: int) -> str:
        """Process one detail link and return its outcome."""

        url = resolve_detail_url(href)
        detail_page: Optional[Page] = None
        try:
            detail_page = self.context.new_page()
            detail_page.set_default_timeout(config.PLAYWRIGHT_DETAIL_TIMEOUT_SECONDS * 1000)
            detail_page.goto(url, wait_until="domcontentloaded")

            record = extract_record(detail_page, selectors=self.selectors)
            if not record.is_valid:
                log_line(f"[RUN] Record {index} of {total} has no entry number; skipping {url}")
                self._record_outcome("skipped", ErrorCode.MISSING_IDENTIFIER, url=url)
                return "skipped"

            pdf_ref: Optional[str] = None
            if self.pdf_capture is not None:
                pdf_ref = self.pdf_capture.capture(detail_page, record.entry_number, record.recorded)
            record.pdf_url = pdf_ref or ""

            self.sink.push(record)
            log_line(f"[RUN] Pushed data for {record.entry_number}.")
            if self.checkpoint is not None and not self.sink.commits_progress:
                self.checkpoint.record_progress_for(record.recorded)

            self._record_outcome(
                "emitted",
                "ok" if pdf_ref else ErrorCode.PDF_CAPTURE,
                url=url,
                entry_number=record.entry_number,
                recorded=record.recorded,
                pdf_url=record.pdf_url,
            )
            return "emitted" if pdf_ref else "emitted_without_pdf"
        except Exception as exc:  # noqa: BLE001
            if _is_target_closed_error(exc):
                log_line(f"[RUN] Browser closed while processing record {index} of {total}: {exc}")
                _scraper_event(
                    "error",
                    phase="document",
                    url=url,
                    error_code=ErrorCode.BROWSER_CLOSED,
                    error=_short_error_message(exc),
                )
                self._record_outcome("failed", ErrorCode.BROWSER_CLOSED, url=url)
                return "browser_closed"

            log_line(f"[RUN] Error processing record {index} of {total} ({url}): {exc}")
            _scraper_event(
                "error",
                phase="document",
                url=url,
                error_code=ErrorCode.EXTRACTION,
                error=_short_error_message(exc),
            )
            self._record_outcome("failed", ErrorCode.EXTRACTION, url=url, error=_short_error_message(exc))
            return "failed"
        finally:
            if detail_page is not None:
                try:
                    detail_page.close()
                except Exception as exc:  # noqa: BLE001
                    log_line(f"[RUN] Failed to close detail page: {exc}")

    def run(self, search_range: SearchRange) -> Dict[str, Any]:
        """Run one acquisition over ``search_range`` and return a summary."""

        summary: Dict[str, Any] = {
            "status": "completed",
            "start_date": search_range.start_date,
            "end_date": search_range.end_date,
            "links": 0,
            "emitted": 0,
            "pdf_missing": 0,
            "skipped": 0,
            "failed": 0,
        }

        page = self.context.new_page()
        page.set_default_timeout(config.PLAYWRIGHT_NAV_TIMEOUT_SECONDS * 1000)
        searched = False
        try:
            self.submit_search(page, search_range)
            searched = True
            links = collect_all_detail_links(page, selectors=self.selectors)
            summary["links"] = len(links)

            if not links:
                summary["status"] = "no_records"
                self.status.set_status(
                    "Finished: No records found for the given date range.", terminal=True
                )
                return summary

            total = len(links)
            self.status.set_status(f"Found {total} records. Preparing to extract...")

            for index, href in enumerate(links, start=1):
                if self._cancelled():
                    summary["status"] = "cancelled"
                    log_line(f"[RUN] Cancelled before record {index} of {total}.")
                    break
                if self.max_documents is not None and summary["emitted"] >= self.max_documents:
                    summary["limited"] = True
                    log_line(f"[RUN] Document limit {self.max_documents} reached.")
                    break

                self.status.set_status(f"Processing record {index} of {total}...")
                outcome = self._process_document(href, index, total)
                if outcome == "browser_closed":
                    summary["status"] = "browser_closed"
                    break
                if outcome == "emitted_without_pdf":
                    summary["emitted"] += 1
                    summary["pdf_missing"] += 1
                elif outcome in summary:
                    summary[outcome] += 1
        except Exception as exc:  # noqa: BLE001
            # A failed search has already reported its own terminal status.
            if searched:
                self.status.set_status(f"Fatal Error: {_short_error_message(exc)}", terminal=True)
            _scraper_event(
                "error",
                phase="run",
                searched=searched,
                error_code=ErrorCode.INTERNAL if searched else ErrorCode.SEARCH_FAILED,
                error=_short_error_message(exc),
            )
            raise
        finally:
            try:
                self.sink.close()
            except Exception as exc:  # noqa: BLE001
                log_line(f"[RUN] Failed to close record sink: {exc}")
                _scraper_event("error", phase="sink", step="close", error_code=ErrorCode.STORAGE)
            try:
                page.close()
            except Exception as exc:  # noqa: BLE001
                log_line(f"[RUN] Failed to close search page: {exc}")

        if summary["status"] == "browser_closed":
            self.status.set_status(
                f"Fatal Error: browser session closed after {summary['emitted']} records.",
                terminal=True,
            )
        elif summary["status"] == "cancelled":
            self.status.set_status(
                f"Cancelled after {summary['emitted']} records.", terminal=True
            )
        else:
            self.status.set_status("Success: All records exported to Dataset.", terminal=True)

        _scraper_event("run", step="finished", **summary)
        return summary


def run_acquisition(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    *,
    export_mode: Optional[str] = None,
    max_documents: Optional[int] = None,
    resume: Optional[bool] = None,
    headless: Optional[bool] = None,
    cancel_event: Optional[threading.Event] = None,
    trigger: str = "cli",
) -> Dict[str, Any]:
    """Public entrypoint: resolve input and backends, then run one acquisition."""

    ensure_dirs()
    log_path = setup_run_logger()

    mode = (export_mode or config.EXPORT_MODE_DEFAULT).strip().lower()
    validate_runtime_config("ui" if trigger == "ui" else "cli", mode=mode)

    run_input = load_input().override(start_date, end_date)
    search_range = run_input.to_range()
    if not search_range.start_date or not search_range.end_date:
        raise ValueError("Both startDate and endDate are required.")

    backends = build_backends()
    backends.status.set_status("Starting Utah County land records acquisition...")

    checkpoint = CheckpointManager(backends.store)
    resume_enabled = config.RESUME_DEFAULT if resume is None else bool(resume)
    if resume_enabled:
        search_range = checkpoint.resolve_search_range(search_range)

    sink: RecordSink = backends.sink
    if config.is_grouped_mode(mode):
        sink = GroupedCsvSink(on_group_committed=checkpoint.record_progress)

    telemetry = RunTelemetry(mode)
    _scraper_event(
        "run",
        step="start",
        run_id=telemetry.run_id,
        trigger=trigger,
        mode=mode,
        start_date=search_range.start_date,
        end_date=search_range.end_date,
        resume=resume_enabled,
        max_documents=max_documents,
    )

    use_headless = True if headless is None else bool(headless)
    if config.is_hosted():
        use_headless = True

    result: Dict[str, Any] = {}
    try:
        with browser_session(headless=use_headless) as context:
            orchestrator = AcquisitionOrchestrator(
                context,
                sink=sink,
                checkpoint=checkpoint,
                pdf_capture=PdfCapture(backends.store, cancel_event=cancel_event),
                status=backends.status,
                retry_policy=RetryPolicy.from_config(),
                telemetry=telemetry,
                cancel_event=cancel_event,
                max_documents=max_documents,
            )
            result = orchestrator.run(search_range)
    except Exception as exc:  # noqa: BLE001
        result = {
            "status": "failed",
            "start_date": search_range.start_date,
            "end_date": search_range.end_date,
            "error": _short_error_message(exc),
        }
        _scraper_event("error", phase="run", run_id=telemetry.run_id, error=_short_error_message(exc))
        raise
    finally:
        result.update(
            {
                "run_id": telemetry.run_id,
                "mode": mode,
                "trigger": trigger,
                "log_file": str(log_path),
            }
        )
        if checkpoint.last_processed is not None:
            result["last_processed_date"] = checkpoint.last_processed.isoformat()
        try:
            result["telemetry_file"] = str(telemetry.finalize({"result": dict(result)}))
            save_json_file(config.SUMMARY_FILE, result)
        except Exception as exc:  # noqa: BLE001
            log_line(f"[RUN][WARN] Unable to write run summary: {exc}")

    return result


def _cli_entrypoint(argv: Optional[List[str]] = None) -> None:  # pragma: no cover
    parser = argparse.ArgumentParser(description="Acquire Utah County land records")
    parser.add_argument("--start-date", default=None, help="MM/DD/YYYY or YYYY-MM-DD")
    parser.add_argument("--end-date", default=None, help="MM/DD/YYYY or YYYY-MM-DD")
    parser.add_argument(
        "--export-mode",
        choices=list(config.EXPORT_MODES),
        default=config.EXPORT_MODE_DEFAULT,
    )
    parser.add_argument("--max-documents", type=int, default=None)
    parser.add_argument("--no-resume", action="store_true", help="Ignore the stored checkpoint")
    parser.add_argument("--headed", action="store_true", help="Show the browser window")

    args = parser.parse_args(argv)

    result = run_acquisition(
        args.start_date,
        args.end_date,
        export_mode=args.export_mode,
        max_documents=args.max_documents,
        resume=False if args.no_resume else None,
        headless=not args.headed,
        trigger="cli",
    )
    raise SystemExit(0 if result.get("status") in {"completed", "no_records"} else 1)


if __name__ == "__main__":  # pragma: no cover
    _cli_entrypoint()

__all__ = [
    "AcquisitionOrchestrator",
    "browser_session",
    "resolve_detail_url",
    "run_acquisition",
    "_cli_entrypoint",
]
