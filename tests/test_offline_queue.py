"""Unit tests for the offline retry queue: classification, capacity, FIFO manual retry, persistence."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from core.exceptions import (
    BackendConnectionError,
    BackendHTTPError,
    CapabilityUnavailableError,
    RecognitionError,
)
from core.models import ENGINE_BACKEND, RecognitionOutcome, RuntimeMeta
from pipeline.offline_queue import OfflineRetryQueue, is_likely_offline

BASE_URL = "http://api.test"


class FakeDispatcher:
    """Scripted dispatcher: pops one result (outcome or exception) per call."""

    def __init__(self, results: list[object] | None = None) -> None:
        self.results = list(results or [])
        self.calls: list[dict] = []

    async def recognize(self, payload, *, base_url, preferred_engine="auto", auth_token=""):
        self.calls.append({"payload": payload, "engine": preferred_engine, "base_url": base_url})
        result = self.results.pop(0) if self.results else RecognitionOutcome(
            data={"confidence": 0.9}, runtime=RuntimeMeta(engine=ENGINE_BACKEND)
        )
        if isinstance(result, Exception):
            raise result
        return result


def _offline_error() -> RecognitionError:
    return BackendConnectionError("Network request failed: [Errno 111] Connection refused")


def test_is_likely_offline_classification() -> None:
    assert is_likely_offline(_offline_error())
    assert is_likely_offline(RuntimeError("TypeError: Failed to fetch"))
    assert not is_likely_offline(BackendHTTPError("Network request failed", 503))
    assert not is_likely_offline(CapabilityUnavailableError("not linked"))
    assert not is_likely_offline(RecognitionError("something else"))


def test_one_classified_failure_appends_one_entry() -> None:
    queue = OfflineRetryQueue(FakeDispatcher())
    entry = queue.capture(_offline_error(), {"detectedLabel": "cup"}, "on-device")
    assert entry is not None
    assert len(queue) == 1
    assert entry.payload == {"detectedLabel": "cup"}
    assert entry.preferred_engine == "on-device"
    assert entry.created_at


def test_unclassified_failure_is_not_queued() -> None:
    queue = OfflineRetryQueue(FakeDispatcher())
    assert queue.capture(BackendHTTPError("Bad request", 400), {"detectedLabel": "cup"}) is None
    assert len(queue) == 0


def test_capacity_keeps_newest_and_drops_oldest() -> None:
    queue = OfflineRetryQueue(FakeDispatcher(), capacity=20)
    for i in range(21):
        queue.capture(_offline_error(), {"detectedLabel": f"item-{i}"})
    assert len(queue) == 20
    labels = [e.payload["detectedLabel"] for e in queue.entries()]
    assert labels[0] == "item-1"
    assert labels[-1] == "item-20"
    assert "item-0" not in labels


def test_retry_oldest_is_fifo_and_removes_on_success() -> None:
    dispatcher = FakeDispatcher()
    queue = OfflineRetryQueue(dispatcher)
    queue.capture(_offline_error(), {"detectedLabel": "first"}, "backend")
    queue.capture(_offline_error(), {"detectedLabel": "second"})
    outcome = asyncio.run(queue.retry_oldest(base_url=BASE_URL))
    assert outcome is not None and outcome.runtime.engine == "backend"
    assert dispatcher.calls[0]["payload"] == {"detectedLabel": "first"}
    assert dispatcher.calls[0]["engine"] == "backend"
    assert [e.payload["detectedLabel"] for e in queue.entries()] == ["second"]


def test_failed_retry_leaves_entry_queued() -> None:
    queue = OfflineRetryQueue(FakeDispatcher([_offline_error()]))
    entry = queue.capture(_offline_error(), {"detectedLabel": "cup"})
    with pytest.raises(BackendConnectionError):
        asyncio.run(queue.retry_oldest(base_url=BASE_URL))
    assert queue.entries() == [entry]
    assert entry.attempts == 1


def test_retry_on_empty_queue_and_unknown_id() -> None:
    queue = OfflineRetryQueue(FakeDispatcher())
    assert asyncio.run(queue.retry_oldest(base_url=BASE_URL)) is None
    with pytest.raises(KeyError):
        asyncio.run(queue.retry("missing", base_url=BASE_URL))


def test_submit_captures_offline_failure_and_reraises() -> None:
    queue = OfflineRetryQueue(FakeDispatcher([_offline_error(), BackendHTTPError("nope", 500)]))
    with pytest.raises(BackendConnectionError):
        asyncio.run(queue.submit({"detectedLabel": "cup"}, base_url=BASE_URL))
    with pytest.raises(BackendHTTPError):
        asyncio.run(queue.submit({"detectedLabel": "bag"}, base_url=BASE_URL))
    assert [e.payload["detectedLabel"] for e in queue.entries()] == ["cup"]


def test_save_and_load(tmp_path: Path) -> None:
    path = tmp_path / "queue" / "offline_queue.json"
    dispatcher = FakeDispatcher()
    queue = OfflineRetryQueue(dispatcher)
    queue.capture(_offline_error(), {"detectedLabel": "a"})
    queue.capture(_offline_error(), {"detectedLabel": "b", "imageData": "aGk="}, "on-device")
    queue.save(path)

    loaded = OfflineRetryQueue.load(path, dispatcher, capacity=1)
    assert len(loaded) == 1
    only = loaded.oldest()
    assert only is not None
    assert only.payload == {"detectedLabel": "b", "imageData": "aGk="}
    assert only.preferred_engine == "on-device"


def test_load_missing_or_corrupt_file_gives_empty_queue(tmp_path: Path) -> None:
    assert len(OfflineRetryQueue.load(tmp_path / "absent.json", FakeDispatcher())) == 0
    bad = tmp_path / "bad.json"
    bad.write_text("{not json", encoding="utf-8")
    assert len(OfflineRetryQueue.load(bad, FakeDispatcher())) == 0


def test_load_skips_malformed_entries(tmp_path: Path) -> None:
    path = tmp_path / "offline_queue.json"
    path.write_text(
        json.dumps(
            [
                {"id": "bad-engine", "payload": {"detectedLabel": "a"}, "preferredEngine": "cloud"},
                {"id": "bad-attempts", "payload": {"detectedLabel": "b"}, "attempts": "twice"},
                {"id": "bad-payload", "payload": "not an object"},
                {"id": "ok", "payload": {"detectedLabel": "c"}, "preferredEngine": "backend", "attempts": 2},
            ]
        ),
        encoding="utf-8",
    )
    queue = OfflineRetryQueue.load(path, FakeDispatcher())
    assert [e.id for e in queue.entries()] == ["ok"]
    assert queue.entries()[0].attempts == 2
