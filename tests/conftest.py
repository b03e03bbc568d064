from __future__ import annotations

import os
import tempfile
from pathlib import Path

import pytest

# Module-level paths in app.landrecords.config are read at import time.
os.environ.setdefault("LANDRECORDS_DATA_DIR", tempfile.mkdtemp(prefix="landrecords-tests-"))

from app.landrecords import config, utils  # noqa: E402


@pytest.fixture
def data_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point every data path at ``tmp_path`` and log to a file inside it."""

    data = tmp_path / "data"
    data.mkdir(parents=True, exist_ok=True)

    monkeypatch.setattr(config, "DATA_DIR", data)
    monkeypatch.setattr(config, "PDF_DIR", data / "pdfs")
    monkeypatch.setattr(config, "LOG_DIR", data / "logs")
    monkeypatch.setattr(config, "LOG_FILE", data / "logs" / "latest.log")
    monkeypatch.setattr(config, "STORAGE_DIR", data / "key_value_store")
    monkeypatch.setattr(config, "DATASET_FILE", data / "dataset" / "default.ndjson")
    monkeypatch.setattr(config, "EXPORTS_DIR", data / "exports")
    monkeypatch.setattr(config, "RUNS_DIR", data / "runs")
    monkeypatch.setattr(config, "SUMMARY_FILE", data / "last_summary.json")
    for name in ("APIFY_TOKEN", "APIFY_KEY_VALUE_STORE_ID", "APIFY_DATASET_ID", "APIFY_RUN_ID"):
        monkeypatch.setattr(config, name, "")
    monkeypatch.delenv("APIFY_INPUT_VALUE", raising=False)
    monkeypatch.delenv("APIFY_CONTAINER_PORT", raising=False)

    utils._configure_logger(data / "logs" / "latest.log")
    return data
