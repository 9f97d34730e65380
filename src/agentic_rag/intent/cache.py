"""TTL-bounded memo of classification results."""

from __future__ import annotations

import hashlib
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from agentic_rag.config import IntentCacheConfig
from agentic_rag.intent.models import Intent

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _CacheEntry:
    intent: Intent
    conversation_id: str
    expires_at: float


def cache_key(conversation_id: str, question: str) -> str:
    return hashlib.md5(f"{conversation_id}:{question}".encode("utf-8")).hexdigest()


class SweepHandle:
    """Stops a running background sweep."""

    def __init__(self, thread: threading.Thread, stop_event: threading.Event) -> None:
        self._thread = thread
        self._stop_event = stop_event

    @property
    def running(self) -> bool:
        return self._thread.is_alive()

    def stop(self, timeout: float | None = 1.0) -> None:
        self._stop_event.set()
        self._thread.join(timeout)


class IntentCache:
    """Intent memo keyed by (conversation id, question).

    Entries are replaced or dropped, never updated in place. Once
    `max_size` entries are held, further inserts are refused rather than
    evicting older entries. Expired entries are removed on read and by the
    periodic sweep started with `start()`.

    One `threading.Lock` guards the map, so concurrent readers are serialized
    with writers as well as with each other.
    """

    def __init__(
        self,
        config: IntentCacheConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or IntentCacheConfig()
        self._clock = clock
        self._entries: dict[str, _CacheEntry] = {}
        self._lock = threading.Lock()

    @property
    def ttl_seconds(self) -> float:
        return self.config.ttl_seconds

    def get(self, conversation_id: str, question: str) -> Intent | None:
        key = cache_key(conversation_id, question)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() > entry.expires_at:
                del self._entries[key]
                return None
            return entry.intent

    def set(self, conversation_id: str, question: str, intent: Intent) -> bool:
        """Store `intent`; returns False when the cache is full."""
        key = cache_key(conversation_id, question)
        with self._lock:
            if len(self._entries) >= self.config.max_size:
                logger.debug("intent cache full (%d entries), insert refused", len(self._entries))
                return False
            self._entries[key] = _CacheEntry(
                intent=intent,
                conversation_id=conversation_id,
                expires_at=self._clock() + self.config.ttl_seconds,
            )
            return True

    def invalidate(self, conversation_id: str) -> int:
        with self._lock:
            keys = [
                key
                for key, entry in self._entries.items()
                if entry.conversation_id == conversation_id
            ]
            for key in keys:
                del self._entries[key]
        return len(keys)

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def sweep(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if now > entry.expires_at]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug("intent cache sweep removed %d entries", len(expired))
        return len(expired)

    def start(self) -> SweepHandle:
        """Run `sweep()` every ttl/2 seconds on a daemon thread."""
        stop_event = threading.Event()
        interval = self.config.ttl_seconds / 2

        def _loop() -> None:
            while not stop_event.wait(interval):
                self.sweep()

        thread = threading.Thread(target=_loop, name="intent-cache-sweep", daemon=True)
        thread.start()
        return SweepHandle(thread, stop_event)
