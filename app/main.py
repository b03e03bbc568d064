from __future__ import annotations

import os
import threading
import time
from typing import Any, Dict, Optional

from flask import Flask, Response, jsonify, request

from app.landrecords import config
from app.landrecords.config_validation import validate_runtime_config
from app.landrecords.healthcheck import run_health_checks
from app.landrecords.logging_utils import _scraper_event
from app.landrecords.run import run_acquisition
from app.landrecords.state import CheckpointManager
from app.landrecords.storage import build_backends
from app.landrecords.utils import (
    ensure_dirs,
    get_current_log_path,
    load_json_file,
    log_line,
    tail_lines,
)

app = Flask(__name__)
app.secret_key = os.environ.get("SECRET_KEY", "dev-secret-change-me")

# Initialise storage paths on import so WSGI entrypoints also have them.
ensure_dirs()

_RUN_LOCK = threading.Lock()
_CANCEL_EVENT = threading.Event()
_RUN_STATE: Dict[str, Any] = {"running": False, "started_at": None, "params": None, "error": None}


def _parse_optional_int(raw: Any) -> Optional[int]:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return None
    return value if value > 0 else None


def _parse_bool(raw: Any, default: bool) -> bool:
    if raw is None or raw == "":
        return default
    if isinstance(raw, bool):
        return raw
    return str(raw).strip().lower() not in {"0", "false", "no", "off"}


def _request_payload() -> Dict[str, Any]:
    if request.is_json:
        payload = request.get_json(silent=True)
        return payload if isinstance(payload, dict) else {}
    return request.form.to_dict()


def _last_checkpoint() -> Optional[str]:
    try:
        last = CheckpointManager(build_backends().store).last_processed
    except Exception as exc:  # noqa: BLE001
        log_line(f"[UI] Unable to read checkpoint: {exc}")
        return None
    return last.isoformat() if last else None


def _run_in_background(params: Dict[str, Any]) -> None:
    try:
        summary = run_acquisition(
            params.get("start_date"),
            params.get("end_date"),
            export_mode=params.get("export_mode"),
            max_documents=params.get("max_documents"),
            resume=params.get("resume"),
            cancel_event=_CANCEL_EVENT,
            trigger="ui",
        )
        app.config["LAST_SUMMARY"] = summary
        app.config["CURRENT_LOG_FILE"] = summary.get("log_file")
    except Exception as exc:  # noqa: BLE001
        _RUN_STATE["error"] = str(exc)
        log_line(f"Acquisition thread failed: {exc}")
    finally:
        _RUN_STATE["running"] = False
        _RUN_LOCK.release()


@app.get("/")
def index() -> Response:
    """Return the last run summary and the stored checkpoint."""

    ensure_dirs()
    last_summary = app.config.get("LAST_SUMMARY") or load_json_file(config.SUMMARY_FILE)
    return jsonify(
        {
            "service": "landrecords",
            "county_id": config.COUNTY_ID,
            "running": _RUN_STATE["running"],
            "last_processed_date": _last_checkpoint(),
            "last_summary": last_summary,
        }
    )


@app.post("/run")
def start_run() -> Response:
    """Start an acquisition run in a background thread."""

    payload = _request_payload()
    export_mode = (
        str(payload.get("exportMode") or payload.get("export_mode") or config.EXPORT_MODE_DEFAULT)
        .strip()
        .lower()
    )

    try:
        validate_runtime_config("ui", mode=export_mode)
    except ValueError as exc:
        return jsonify({"ok": False, "error": str(exc)}), 400

    if not _RUN_LOCK.acquire(blocking=False):
        return jsonify({"ok": False, "error": "A run is already in progress."}), 409

    params = {
        "start_date": str(payload.get("startDate") or payload.get("start_date") or "").strip() or None,
        "end_date": str(payload.get("endDate") or payload.get("end_date") or "").strip() or None,
        "export_mode": export_mode,
        "max_documents": _parse_optional_int(payload.get("maxDocuments") or payload.get("max_documents")),
        "resume": _parse_bool(payload.get("resume"), config.RESUME_DEFAULT),
    }
    _CANCEL_EVENT.clear()
    _RUN_STATE.update({"running": True, "started_at": time.time(), "params": params, "error": None})
    app.config["LAST_PARAMS"] = params
    _scraper_event("run", step="queued", trigger="ui", **params)

    threading.Thread(target=_run_in_background, args=(params,), daemon=True).start()
    return jsonify({"ok": True, "params": params}), 202


@app.post("/cancel")
def cancel_run() -> Response:
    """Ask the active run to stop after the current document."""

    if not _RUN_STATE["running"]:
        return jsonify({"ok": False, "error": "No run in progress."}), 409
    _CANCEL_EVENT.set()
    log_line("[UI] Cancellation requested.")
    return jsonify({"ok": True}), 202


@app.get("/status")
def run_status() -> Response:
    return jsonify(
        {
            "running": _RUN_STATE["running"],
            "started_at": _RUN_STATE["started_at"],
            "params": _RUN_STATE["params"],
            "error": _RUN_STATE["error"],
            "last_summary": app.config.get("LAST_SUMMARY"),
        }
    )


@app.get("/health")
def health() -> Response:
    """Return a JSON health summary for configuration, filesystem, and storage."""

    result = run_health_checks(entrypoint="ui")
    status = 200 if result.ok else 503
    return jsonify({"ok": result.ok, "checks": result.checks}), status


@app.get("/logs/tail")
def logs_tail() -> Response:
    limit = _parse_optional_int(request.args.get("limit")) or 150
    path = get_current_log_path()
    return jsonify({"log_file": str(path), "lines": tail_lines(path, limit)})
