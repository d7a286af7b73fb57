"""In-memory TTL cache for classifier parses, with an optional background sweeper."""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable

from .models import SearchParameters

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 24 * 60 * 60  # 24 hours


def normalize_key(text: str) -> str:
    return text.strip().lower()


@dataclass(frozen=True)
class CacheEntry:
    result: SearchParameters
    confidence: float
    timestamp: float = field(default_factory=time.time)


class QueryCache:
    """Evicts by age only, never by size.

    Lifecycle: construct with the orchestrator, start_sweeper() on startup,
    close() on shutdown (stops the sweeper and clears entries).
    """

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.time):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._sweeper: threading.Thread | None = None

    def __len__(self):
        return len(self._entries)

    def get(self, text: str) -> CacheEntry | None:
        entry = self._entries.get(normalize_key(text))
        if entry is None:
            return None
        if self._clock() - entry.timestamp >= self.ttl_seconds:
            return None
        return entry

    def set(self, text: str, result: SearchParameters, confidence: float) -> CacheEntry:
        entry = CacheEntry(result=result, confidence=confidence, timestamp=self._clock())
        with self._lock:
            self._entries[normalize_key(text)] = entry
        return entry

    def sweep(self) -> int:
        """Remove expired entries. Returns the number evicted."""
        now = self._clock()
        with self._lock:
            expired = [
                key for key, entry in self._entries.items()
                if now - entry.timestamp >= self.ttl_seconds
            ]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug("Cache sweep evicted %d entries (%d left)", len(expired), len(self._entries))
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    # ── Background sweep ───────────────────────────────────────────────────

    @property
    def sweeping(self) -> bool:
        return self._sweeper is not None and self._sweeper.is_alive()

    def start_sweeper(self, interval_seconds: float) -> None:
        if self.sweeping:
            return
        self._stop.clear()
        self._sweeper = threading.Thread(
            target=self._sweep_loop,
            args=(interval_seconds,),
            name="query-cache-sweeper",
            daemon=True,
        )
        self._sweeper.start()

    def stop_sweeper(self) -> None:
        self._stop.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=5)
            self._sweeper = None

    def close(self) -> None:
        self.stop_sweeper()
        self.clear()

    def _sweep_loop(self, interval_seconds: float) -> None:
        while not self._stop.wait(interval_seconds):
            try:
                self.sweep()
            except Exception:
                logger.exception("Cache sweep failed")
