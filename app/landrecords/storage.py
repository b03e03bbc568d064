"""Key/value storage, record sinks and the status channel.

Two backends are shipped: the hosted actor platform's REST API (selected when
its environment variables are present) and a local directory layout used for
development runs. Both expose the same small interfaces so the pipeline never
knows which one it is talking to.
"""
from __future__ import annotations

import json
import re
import urllib.parse
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Optional

import requests

from . import config
from .error_codes import ErrorCode, StorageError
from .logging_utils import _scraper_event
from .models import DocumentRecord
from .utils import log_line

_KEY_DISALLOWED = re.compile(r"[^a-zA-Z0-9_.\-]")


def sanitize_key(key: str | None) -> str:
    """Restrict a storage key to ``[A-Za-z0-9_.-]``; slashes become ``__``."""

    if not key:
        return "unnamed"
    cleaned = key.replace("/", "__").replace("\\", "__")
    cleaned = _KEY_DISALLOWED.sub("_", cleaned).strip(".-_")
    return cleaned or "unnamed"


def _auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# Key/value stores
# ---------------------------------------------------------------------------


class KeyValueStore:
    """Interface for binary records addressed by key."""

    def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        raise NotImplementedError

    def get(self, key: str) -> Optional[bytes]:
        raise NotImplementedError

    def record_url(self, key: str) -> str:
        raise NotImplementedError


class LocalKeyValueStore(KeyValueStore):
    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        return self.root / sanitize_key(key)

    def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as exc:
            raise StorageError(f"Local write failed for {key}: {exc}") from exc
        _scraper_event("storage", step="put", backend="local", key=path.name, bytes=len(data))
        return str(path)

    def get(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        if not path.is_file():
            return None
        return path.read_bytes()

    def record_url(self, key: str) -> str:
        return str(self._path(key))


class ApifyKeyValueStore(KeyValueStore):
    def __init__(
        self,
        store_id: str,
        token: str,
        *,
        api_base: str = "https://api.apify.com",
        session: Optional[requests.Session] = None,
        timeout: int = 60,
    ) -> None:
        self.store_id = store_id
        self.token = token
        self.api_base = api_base.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def _endpoint(self, key: str) -> str:
        quoted = urllib.parse.quote(sanitize_key(key), safe="")
        return f"{self.api_base}/v2/key-value-stores/{self.store_id}/records/{quoted}"

    def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        media_type = content_type.split(";")[0].strip()
        headers = {**_auth_headers(self.token), "Content-Type": media_type}
        log_line(f"[STORAGE] Uploading key={sanitize_key(key)} size={len(data)} bytes")
        try:
            response = self.session.put(
                self._endpoint(key), data=data, headers=headers, timeout=self.timeout
            )
            response.raise_for_status()
        except requests.HTTPError as exc:
            status = getattr(exc.response, "status_code", None)
            raise StorageError(f"Upload failed for {key}: HTTP {status}", http_status=status) from exc
        except requests.RequestException as exc:
            raise StorageError(f"Upload failed for {key}: {exc}") from exc
        _scraper_event("storage", step="put", backend="apify", key=sanitize_key(key), bytes=len(data))
        return self.record_url(key)

    def get(self, key: str) -> Optional[bytes]:
        try:
            response = self.session.get(
                self._endpoint(key), headers=_auth_headers(self.token), timeout=self.timeout
            )
        except requests.RequestException as exc:
            raise StorageError(f"Read failed for {key}: {exc}") from exc
        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise StorageError(
                f"Read failed for {key}: HTTP {response.status_code}",
                http_status=response.status_code,
            )
        return response.content

    def record_url(self, key: str) -> str:
        return f"{self._endpoint(key)}?disableRedirect=true"


# ---------------------------------------------------------------------------
# Record sinks
# ---------------------------------------------------------------------------


class RecordSink:
    """Append-only destination for emitted document records.

    Sinks that set ``commits_progress`` advance the checkpoint themselves
    (once a group is durable); otherwise the orchestrator records progress
    after every successful ``push``.
    """

    commits_progress = False

    def push(self, record: DocumentRecord) -> None:
        raise NotImplementedError

    def close(self) -> None:
        return None


class LocalDatasetSink(RecordSink):
    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def push(self, record: DocumentRecord) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(record.to_dict(), ensure_ascii=False) + "\n")


class ApifyDatasetSink(RecordSink):
    def __init__(
        self,
        dataset_id: str,
        token: str,
        *,
        api_base: str = "https://api.apify.com",
        session: Optional[requests.Session] = None,
        timeout: int = 60,
    ) -> None:
        self.url = f"{api_base.rstrip('/')}/v2/datasets/{dataset_id}/items"
        self.token = token
        self.session = session or requests.Session()
        self.timeout = timeout

    def push_many(self, records: Iterable[DocumentRecord]) -> None:
        items = [record.to_dict() for record in records]
        if not items:
            return
        try:
            response = self.session.post(
                self.url,
                json=items,
                headers=_auth_headers(self.token),
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise StorageError(f"Dataset push failed: {exc}") from exc

    def push(self, record: DocumentRecord) -> None:
        self.push_many([record])


# ---------------------------------------------------------------------------
# Status channel
# ---------------------------------------------------------------------------


class StatusChannel:
    """Progress messages for the hosted run dashboard; log-only when unconfigured."""

    def __init__(
        self,
        run_id: str = "",
        token: str = "",
        *,
        api_base: str = "https://api.apify.com",
        session: Optional[requests.Session] = None,
        timeout: int = 30,
    ) -> None:
        self.run_id = run_id
        self.token = token
        self.api_base = api_base.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        self.last_message: str = ""
        self.terminal: bool = False

    @property
    def enabled(self) -> bool:
        return bool(self.run_id and self.token)

    def set_status(self, message: str, *, terminal: bool = False) -> None:
        self.last_message = message
        self.terminal = terminal
        log_line(f"[STATUS] {message}")
        if not self.enabled:
            return

        url = f"{self.api_base}/v2/actor-runs/{urllib.parse.quote(self.run_id, safe='')}"
        body: dict[str, Any] = {
            "runId": self.run_id,
            "statusMessage": message or "",
            "isStatusMessageTerminal": terminal,
        }
        try:
            response = self.session.put(
                url, json=body, headers=_auth_headers(self.token), timeout=self.timeout
            )
            if response.status_code >= 400:
                log_line(f"[STATUS] Status update failed: HTTP {response.status_code}")
        except Exception as exc:  # noqa: BLE001
            log_line(f"[STATUS] Status update error: {exc}")
            _scraper_event("error", phase="status", error_code=ErrorCode.STATUS, error=str(exc))


@dataclass
class Backends:
    store: KeyValueStore
    sink: RecordSink
    status: StatusChannel


def build_backends() -> Backends:
    """Pick hosted backends when the platform environment is present."""

    token = config.APIFY_TOKEN
    status = StatusChannel(
        config.APIFY_RUN_ID,
        token,
        api_base=config.APIFY_API_BASE,
        timeout=config.APIFY_HTTP_TIMEOUT_SECONDS,
    )

    if token and config.APIFY_KEY_VALUE_STORE_ID:
        store: KeyValueStore = ApifyKeyValueStore(
            config.APIFY_KEY_VALUE_STORE_ID,
            token,
            api_base=config.APIFY_API_BASE,
            timeout=config.APIFY_HTTP_TIMEOUT_SECONDS,
        )
    else:
        store = LocalKeyValueStore(config.STORAGE_DIR)

    if token and config.APIFY_DATASET_ID:
        sink: RecordSink = ApifyDatasetSink(
            config.APIFY_DATASET_ID,
            token,
            api_base=config.APIFY_API_BASE,
            timeout=config.APIFY_HTTP_TIMEOUT_SECONDS,
        )
    else:
        sink = LocalDatasetSink(config.DATASET_FILE)

    _scraper_event(
        "storage",
        step="backends",
        store=type(store).__name__,
        sink=type(sink).__name__,
        status_enabled=status.enabled,
    )
    return Backends(store=store, sink=sink, status=status)


__all__ = [
    "sanitize_key",
    "KeyValueStore",
    "LocalKeyValueStore",
    "ApifyKeyValueStore",
    "RecordSink",
    "LocalDatasetSink",
    "ApifyDatasetSink",
    "StatusChannel",
    "Backends",
    "build_backends",
]
