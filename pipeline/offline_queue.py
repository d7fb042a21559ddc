"""
Offline retry queue: caller-side capture of likely-offline dispatch failures, with manual resubmission.
Entries are kept oldest-first; the capacity bound drops the oldest, and retry_oldest() retries the true oldest.
"""

from __future__ import annotations

import json
import logging
import uuid
from collections import deque
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from core.models import EnginePreference, QueuedRequest, RecognitionOutcome
from core.schema import RecognitionRequest
from pipeline.dispatcher import RecognitionDispatcher

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_CAPACITY = 20

# Substring match on transport messages. Fragile: BackendConnectionError is the structured signal,
# but classification stays message-based so foreign transport errors are caught too.
OFFLINE_MESSAGE_MARKERS = (
    "Network request failed",
    "Failed to fetch",
    "Failed to establish a new connection",
    "Connection refused",
    "Temporary failure in name resolution",
)


def is_likely_offline(error: BaseException) -> bool:
    """True only when the error carries no code and its message names a transport failure."""
    if getattr(error, "code", None):
        return False
    message = str(getattr(error, "message", None) or error or "")
    return any(marker in message for marker in OFFLINE_MESSAGE_MARKERS)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id(now: datetime) -> str:
    return f"{int(now.timestamp() * 1000)}-{uuid.uuid4().hex[:6]}"


class OfflineRetryQueue:
    """Bounded queue of requests that failed while offline. Re-dispatches through the injected dispatcher."""

    def __init__(
        self,
        dispatcher: RecognitionDispatcher,
        capacity: int = DEFAULT_QUEUE_CAPACITY,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._dispatcher = dispatcher
        self._capacity = max(1, int(capacity))
        self._clock = clock
        self._entries: deque[QueuedRequest] = deque(maxlen=self._capacity)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def capacity(self) -> int:
        return self._capacity

    def entries(self) -> list[QueuedRequest]:
        """Oldest first."""
        return list(self._entries)

    def oldest(self) -> QueuedRequest | None:
        return self._entries[0] if self._entries else None

    def enqueue(
        self,
        payload: RecognitionRequest | dict[str, Any],
        preferred_engine: EnginePreference | str | None = EnginePreference.AUTO,
    ) -> QueuedRequest:
        """Append unconditionally; at capacity the oldest entry is dropped."""
        now = self._clock()
        request = RecognitionRequest.from_payload(payload)
        entry = QueuedRequest(
            id=_new_id(now),
            payload=request.model_dump(by_alias=True, exclude_none=True),
            preferred_engine=EnginePreference.parse(preferred_engine).value,
            created_at=now.isoformat(),
        )
        if len(self._entries) == self._capacity:
            logger.debug("Offline queue full (%s); dropping oldest %s", self._capacity, self._entries[0].id)
        self._entries.append(entry)
        return entry

    def capture(
        self,
        error: BaseException,
        payload: RecognitionRequest | dict[str, Any],
        preferred_engine: EnginePreference | str | None = EnginePreference.AUTO,
    ) -> QueuedRequest | None:
        """Enqueue only if the failure looks like lost connectivity. Returns the entry or None."""
        if not is_likely_offline(error):
            return None
        entry = self.enqueue(payload, preferred_engine)
        entry.last_error = str(error)
        logger.info("Request queued while offline (id=%s, pending=%s)", entry.id, len(self._entries))
        return entry

    async def submit(
        self,
        payload: RecognitionRequest | dict[str, Any],
        *,
        base_url: str,
        preferred_engine: EnginePreference | str | None = EnginePreference.AUTO,
        auth_token: str = "",
    ) -> RecognitionOutcome:
        """Dispatch; a likely-offline failure is captured before it is re-raised."""
        try:
            return await self._dispatcher.recognize(
                payload,
                base_url=base_url,
                preferred_engine=preferred_engine,
                auth_token=auth_token,
            )
        except Exception as e:
            self.capture(e, payload, preferred_engine)
            raise

    async def retry(self, entry_id: str, *, base_url: str, auth_token: str = "") -> RecognitionOutcome:
        """Re-dispatch one entry. Success removes it; failure leaves it queued and re-raises."""
        entry = self._find(entry_id)
        if entry is None:
            raise KeyError(entry_id)
        entry.attempts += 1
        try:
            outcome = await self._dispatcher.recognize(
                entry.payload,
                base_url=base_url,
                preferred_engine=entry.preferred_engine or EnginePreference.AUTO,
                auth_token=auth_token,
            )
        except Exception as e:
            entry.last_error = str(e)
            logger.warning("Retry of queued request %s failed: %s", entry.id, e)
            raise
        self._remove(entry.id)
        logger.info("Queued request %s processed (pending=%s)", entry.id, len(self._entries))
        return outcome

    async def retry_oldest(self, *, base_url: str, auth_token: str = "") -> RecognitionOutcome | None:
        """FIFO manual retry. None when the queue is empty."""
        entry = self.oldest()
        if entry is None:
            return None
        return await self.retry(entry.id, base_url=base_url, auth_token=auth_token)

    def _find(self, entry_id: str) -> QueuedRequest | None:
        for entry in self._entries:
            if entry.id == entry_id:
                return entry
        return None

    def _remove(self, entry_id: str) -> None:
        kept = [e for e in self._entries if e.id != entry_id]
        self._entries = deque(kept, maxlen=self._capacity)

    # -----------------------------------------------------------------------
    # Persistence (CLI keeps the queue between runs)
    # -----------------------------------------------------------------------

    def save(self, path: str | Path) -> None:
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        with open(p, "w", encoding="utf-8") as f:
            json.dump([e.to_dict() for e in self._entries], f, indent=2)

    @classmethod
    def load(
        cls,
        path: str | Path,
        dispatcher: RecognitionDispatcher,
        capacity: int = DEFAULT_QUEUE_CAPACITY,
    ) -> OfflineRetryQueue:
        """Missing or unreadable file -> empty queue. Only the newest `capacity` entries are kept."""
        queue = cls(dispatcher, capacity=capacity)
        p = Path(path)
        if not p.exists():
            return queue
        try:
            with open(p, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Offline queue file %s unreadable, starting empty: %s", p, e)
            return queue
        if not isinstance(data, list):
            return queue
        for item in data:
            if not isinstance(item, dict) or not item.get("id"):
                continue
            try:
                queue._entries.append(QueuedRequest.from_dict(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed queued request %r in %s: %s", item.get("id"), p, e)
        return queue


def queue_age_seconds(entry: QueuedRequest, now: datetime | None = None) -> float:
    """Seconds since the entry was queued; 0.0 when created_at is unparseable."""
    try:
        created = datetime.fromisoformat(entry.created_at)
    except ValueError:
        return 0.0
    current = now or _utc_now()
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    return max(0.0, (current - created).total_seconds())
