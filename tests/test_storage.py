from __future__ import annotations

import json

import pytest
import requests

from app.landrecords import config, storage
from app.landrecords.error_codes import ErrorCode, StorageError
from app.landrecords.models import DocumentRecord
from app.landrecords.storage import (
    ApifyDatasetSink,
    ApifyKeyValueStore,
    LocalDatasetSink,
    LocalKeyValueStore,
    StatusChannel,
    build_backends,
    sanitize_key,
)


class _Response:
    def __init__(self, status_code: int = 200, content: bytes = b"") -> None:
        self.status_code = status_code
        self.content = content

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}", response=self)


class _Session:
    def __init__(self, response: _Response | None = None, error: Exception | None = None) -> None:
        self.response = response or _Response()
        self.error = error
        self.calls: list[tuple[str, str, dict]] = []

    def _call(self, method: str, url: str, **kwargs):
        self.calls.append((method, url, kwargs))
        if self.error is not None:
            raise self.error
        return self.response

    def put(self, url, **kwargs):
        return self._call("PUT", url, **kwargs)

    def get(self, url, **kwargs):
        return self._call("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self._call("POST", url, **kwargs)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("2024/01/12345-2024.pdf", "2024__01__12345-2024.pdf"),
        ("a\\b", "a__b"),
        ("entry #5 (copy).pdf", "entry__5__copy_.pdf"),
        ("..hidden-", "hidden"),
        ("", "unnamed"),
        (None, "unnamed"),
        ("///", "unnamed"),
    ],
)
def test_sanitize_key(raw, expected):
    assert sanitize_key(raw) == expected


def test_local_store_round_trip(tmp_path, data_dir):
    store = LocalKeyValueStore(tmp_path / "kv")
    ref = store.put("2024/01/9-2024.pdf", b"%PDF-1.4", "application/pdf")

    assert ref == str(tmp_path / "kv" / "2024__01__9-2024.pdf")
    assert store.get("2024/01/9-2024.pdf") == b"%PDF-1.4"
    assert store.get("missing") is None


def test_local_store_write_failure_raises_storage_error(tmp_path, data_dir):
    blocker = tmp_path / "kv"
    blocker.write_text("not a directory")
    store = LocalKeyValueStore(blocker)

    with pytest.raises(StorageError) as excinfo:
        store.put("STATE", b"{}")
    assert excinfo.value.error_code == ErrorCode.STORAGE


def test_apify_store_put_returns_record_url(data_dir):
    session = _Session()
    store = ApifyKeyValueStore("store1", "tok", api_base="https://api.example/", session=session)

    ref = store.put("2024/01/1.pdf", b"data", "application/pdf; charset=binary")

    method, url, kwargs = session.calls[0]
    assert method == "PUT"
    assert url == "https://api.example/v2/key-value-stores/store1/records/2024__01__1.pdf"
    assert kwargs["headers"]["Authorization"] == "Bearer tok"
    assert kwargs["headers"]["Content-Type"] == "application/pdf"
    assert ref == url + "?disableRedirect=true"


def test_apify_store_put_http_error(data_dir):
    store = ApifyKeyValueStore("s", "t", session=_Session(_Response(500)))

    with pytest.raises(StorageError) as excinfo:
        store.put("k", b"x")
    assert excinfo.value.http_status == 500


def test_apify_store_get_missing_returns_none(data_dir):
    store = ApifyKeyValueStore("s", "t", session=_Session(_Response(404)))
    assert store.get("STATE") is None

    store = ApifyKeyValueStore("s", "t", session=_Session(_Response(200, b'{"a": 1}')))
    assert store.get("STATE") == b'{"a": 1}'

    store = ApifyKeyValueStore("s", "t", session=_Session(error=requests.ConnectionError("down")))
    with pytest.raises(StorageError):
        store.get("STATE")


def test_local_dataset_sink_appends_ndjson(tmp_path, data_dir):
    sink = LocalDatasetSink(tmp_path / "dataset" / "items.ndjson")
    sink.push(DocumentRecord(entry_number="1", grantors=["A"]))
    sink.push(DocumentRecord(entry_number="2"))

    lines = (tmp_path / "dataset" / "items.ndjson").read_text(encoding="utf-8").splitlines()
    assert [json.loads(line)["entry_number"] for line in lines] == ["1", "2"]
    assert json.loads(lines[0])["grantors"] == ["A"]
    assert not sink.commits_progress


def test_apify_dataset_sink_posts_items(data_dir):
    session = _Session()
    sink = ApifyDatasetSink("ds1", "tok", api_base="https://api.example", session=session)
    sink.push(DocumentRecord(entry_number="7"))

    method, url, kwargs = session.calls[0]
    assert (method, url) == ("POST", "https://api.example/v2/datasets/ds1/items")
    assert kwargs["json"][0]["entry_number"] == "7"

    failing = ApifyDatasetSink("ds1", "tok", session=_Session(_Response(503)))
    with pytest.raises(StorageError):
        failing.push(DocumentRecord(entry_number="8"))


def test_status_channel_is_log_only_when_unconfigured(data_dir, monkeypatch):
    lines: list[str] = []
    monkeypatch.setattr(storage, "log_line", lines.append)
    session = _Session()
    channel = StatusChannel(session=session)

    channel.set_status("Searching...", terminal=False)

    assert not channel.enabled
    assert session.calls == []
    assert lines == ["[STATUS] Searching..."]


def test_status_channel_puts_and_swallows_failures(data_dir):
    session = _Session()
    channel = StatusChannel("run1", "tok", api_base="https://api.example", session=session)
    channel.set_status("Success: All records exported to Dataset.", terminal=True)

    method, url, kwargs = session.calls[0]
    assert (method, url) == ("PUT", "https://api.example/v2/actor-runs/run1")
    assert kwargs["json"] == {
        "runId": "run1",
        "statusMessage": "Success: All records exported to Dataset.",
        "isStatusMessageTerminal": True,
    }

    broken = StatusChannel("run1", "tok", session=_Session(error=requests.ConnectionError("down")))
    broken.set_status("still fine")
    assert broken.last_message == "still fine"


def test_build_backends_local_by_default(data_dir):
    backends = build_backends()
    assert isinstance(backends.store, LocalKeyValueStore)
    assert isinstance(backends.sink, LocalDatasetSink)
    assert not backends.status.enabled


def test_build_backends_hosted(data_dir, monkeypatch):
    monkeypatch.setattr(config, "APIFY_TOKEN", "tok")
    monkeypatch.setattr(config, "APIFY_KEY_VALUE_STORE_ID", "kv")
    monkeypatch.setattr(config, "APIFY_DATASET_ID", "ds")
    monkeypatch.setattr(config, "APIFY_RUN_ID", "run")

    backends = build_backends()
    assert isinstance(backends.store, ApifyKeyValueStore)
    assert isinstance(backends.sink, ApifyDatasetSink)
    assert backends.status.enabled
