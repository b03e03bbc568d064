"""Configuration constants for the land-records acquisition pipeline."""
from __future__ import annotations

import os
from pathlib import Path

DATA_DIR: Path = Path(os.getenv("LANDRECORDS_DATA_DIR", "/app/data"))
PDF_DIR: Path = DATA_DIR / "pdfs"
LOG_DIR: Path = DATA_DIR / "logs"
LOG_FILE: Path = LOG_DIR / "latest.log"
STORAGE_DIR: Path = DATA_DIR / "key_value_store"
DATASET_FILE: Path = DATA_DIR / "dataset" / "default.ndjson"
EXPORTS_DIR: Path = DATA_DIR / "exports"
RUNS_DIR: Path = DATA_DIR / "runs"
SUMMARY_FILE: Path = DATA_DIR / "last_summary.json"

START_URL: str = "https://www.utahcounty.gov/LandRecords/Index.asp"
LAND_RECORDS_BASE_URL: str = "https://www.utahcounty.gov/LandRecords/"
COUNTY_ID: str = os.getenv("LANDRECORDS_COUNTY_ID", "UT-Utah")

# Checkpoint record name in the key/value store.
STATE_KEY: str = "STATE"

SEARCH_MAX_ATTEMPTS: int = int(os.getenv("LANDRECORDS_SEARCH_ATTEMPTS", "3"))
SEARCH_RETRY_DELAY_SECONDS: float = float(os.getenv("LANDRECORDS_SEARCH_RETRY_DELAY", "5"))

MIN_FREE_MB: int = int(os.getenv("MIN_FREE_MB", "200"))

# "stream" pushes one record per document; "grouped" writes per-date CSV groups.
EXPORT_MODE_DEFAULT: str = os.getenv("LANDRECORDS_EXPORT_MODE", "stream").strip().lower() or "stream"
EXPORT_MODES: tuple[str, ...] = ("stream", "grouped")
EXPORT_EXCEL: bool = os.getenv("LANDRECORDS_EXPORT_EXCEL", "0").strip().lower() not in {"0", "false"}
RESUME_DEFAULT: bool = os.getenv("LANDRECORDS_RESUME", "true").strip().lower() != "false"


def _parse_timeout_seconds(env_var: str, default: int, *, minimum: int = 1) -> int:
    """Parse a timeout value in seconds from the environment with bounds."""

    try:
        value = int(os.getenv(env_var, str(default)))
    except ValueError:
        return default
    return max(minimum, value)


# Playwright timeouts (seconds)
PLAYWRIGHT_NAV_TIMEOUT_SECONDS: int = _parse_timeout_seconds(
    "LANDRECORDS_NAV_TIMEOUT_SECONDS", 30
)
# Detail pages get a longer default because the viewer flow runs on them.
PLAYWRIGHT_DETAIL_TIMEOUT_SECONDS: int = _parse_timeout_seconds(
    "LANDRECORDS_DETAIL_TIMEOUT_SECONDS", 60
)
# Bounded waits for result rows and the detail table.
PLAYWRIGHT_SELECTOR_TIMEOUT_SECONDS: int = _parse_timeout_seconds(
    "LANDRECORDS_SELECTOR_TIMEOUT_SECONDS", 10
)
PLAYWRIGHT_LAUNCH_TIMEOUT_SECONDS: int = _parse_timeout_seconds(
    "LANDRECORDS_LAUNCH_TIMEOUT_SECONDS", 60
)

# Document image viewer flow
POPUP_TIMEOUT_SECONDS: int = _parse_timeout_seconds("LANDRECORDS_POPUP_TIMEOUT_SECONDS", 45)
VIEWER_IMAGE_TIMEOUT_SECONDS: int = _parse_timeout_seconds(
    "LANDRECORDS_VIEWER_IMAGE_TIMEOUT_SECONDS", 60
)
VIEWER_TOOLBAR_TIMEOUT_SECONDS: int = _parse_timeout_seconds(
    "LANDRECORDS_VIEWER_TOOLBAR_TIMEOUT_SECONDS", 30
)
DOWNLOAD_TIMEOUT_SECONDS: int = _parse_timeout_seconds("LANDRECORDS_DOWNLOAD_TIMEOUT_SECONDS", 60)
# Click-level timeout remains in milliseconds to match Playwright API expectations.
PLAYWRIGHT_CLICK_TIMEOUT_MS: int = int(os.getenv("PLAYWRIGHT_CLICK_TIMEOUT_MS", "30000"))

# Fixed settle delays (seconds) for the viewer's client-side bindings.
VIEWER_SETTLE_SECONDS: float = float(os.getenv("LANDRECORDS_VIEWER_SETTLE_SECONDS", "2.0"))
MENU_SETTLE_SECONDS: float = float(os.getenv("LANDRECORDS_MENU_SETTLE_SECONDS", "1.5"))
DOWNLOAD_POLL_MS: int = int(os.getenv("LANDRECORDS_DOWNLOAD_POLL_MS", "250"))

BROWSER_ARGS: tuple[str, ...] = (
    "--no-default-browser-check",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--no-sandbox",
    "--disable-software-rasterizer",
    "--disable-extensions",
    "--disable-background-networking",
    "--disable-default-apps",
    "--disable-sync",
    "--disable-translate",
    "--mute-audio",
    "--no-first-run",
    "--disable-renderer-backgrounding",
)

# Hosted (Apify) platform settings; all optional.
APIFY_API_BASE: str = os.getenv("APIFY_API_PUBLIC_BASE_URL", "https://api.apify.com")
APIFY_TOKEN: str = os.getenv("APIFY_TOKEN", "")
APIFY_KEY_VALUE_STORE_ID: str = os.getenv("APIFY_DEFAULT_KEY_VALUE_STORE_ID", "") or os.getenv(
    "ACTOR_DEFAULT_KEY_VALUE_STORE_ID", ""
)
APIFY_DATASET_ID: str = os.getenv("APIFY_DEFAULT_DATASET_ID", "")
APIFY_RUN_ID: str = os.getenv("APIFY_ACTOR_RUN_ID", "") or os.getenv("APIFY_RUN_ID", "")
APIFY_HTTP_TIMEOUT_SECONDS: int = _parse_timeout_seconds("APIFY_HTTP_TIMEOUT_SECONDS", 60)


def is_hosted() -> bool:
    """Return ``True`` when running inside the hosted actor container."""

    return bool(os.getenv("APIFY_CONTAINER_PORT"))


def is_grouped_mode(mode: str) -> bool:
    """Return ``True`` when ``mode`` selects the date-grouped export sink."""

    return str(mode).strip().lower() == "grouped"
