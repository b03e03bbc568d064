"""Walk the paginated search results and collect document detail links."""
from __future__ import annotations

import re
from typing import List, Optional

from playwright.sync_api import Page

from . import config
from .logging_utils import _scraper_event
from .selectors import RECORDER_SELECTORS, RecorderSelectors
from .utils import log_line


def has_zero_results(page: Page, *, selectors: RecorderSelectors = RECORDER_SELECTORS) -> bool:
    """Return ``True`` when the results header reports no records."""

    header = page.locator(selectors.results_header)
    if not header.count():
        return False
    text = header.first.text_content() or ""
    return selectors.zero_results_marker.lower() in text.lower()


def _collect_page_links(page: Page, *, selectors: RecorderSelectors, timeout_ms: int) -> List[str]:
    rows = page.locator(selectors.data_row)
    rows.first.wait_for(state="visible", timeout=timeout_ms)

    links: List[str] = []
    for index in range(rows.count()):
        anchor = rows.nth(index).locator(selectors.row_cell).first.locator(selectors.row_link)
        if not anchor.count():
            continue
        href = anchor.first.get_attribute("href")
        if href and href.strip():
            links.append(href.strip())
    return links


def collect_all_detail_links(
    page: Page,
    *,
    selectors: RecorderSelectors = RECORDER_SELECTORS,
    timeout_seconds: Optional[int] = None,
) -> List[str]:
    """Collect every detail link across all result pages, in row then page order.

    The zero-results header yields an empty list. A page whose data rows never
    become visible raises Playwright's ``TimeoutError``. Duplicate links are
    kept as the site lists them.
    """

    if has_zero_results(page, selectors=selectors):
        log_line("[PAGINATE] No records found for the given date range.")
        _scraper_event("paginate", step="zero_results")
        return []

    timeout_ms = (timeout_seconds or config.PLAYWRIGHT_SELECTOR_TIMEOUT_SECONDS) * 1000
    next_pattern = re.compile(rf"^\s*{re.escape(selectors.next_link_text)}\s*$")
    links: List[str] = []
    page_number = 1
    while True:
        page_links = _collect_page_links(page, selectors=selectors, timeout_ms=timeout_ms)
        links.extend(page_links)
        _scraper_event(
            "paginate",
            step="page_collected",
            page_number=page_number,
            page_links=len(page_links),
            total_links=len(links),
        )

        next_link = page.locator(selectors.next_link, has_text=next_pattern).first
        if not next_link.is_visible():
            break

        next_link.click()
        page.wait_for_load_state("domcontentloaded")
        page_number += 1

    log_line(f"[PAGINATE] Collected {len(links)} detail links across {page_number} page(s).")
    return links


__all__ = ["collect_all_detail_links", "has_zero_results"]
