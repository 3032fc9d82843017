from .base import MISSING, AtomicCounterStorage
from typing import Any, Callable, Dict, Optional, Tuple
import threading
import time

import structlog


logger = structlog.get_logger(__name__)


class MemoryStorage(AtomicCounterStorage):
    """
    In-memory storage backend

    Expired entries are dropped when their key is read, and all of them are
    swept on writes at most once every ``purge_interval`` seconds.
    """

    def __init__(self, clock: Callable[[], float] = time.time, purge_interval: float = 1.0) -> None:
        self.clock = clock
        self.purge_interval = purge_interval
        self.entries: Dict[str, Tuple[Any, Optional[float]]] = {}
        self._lock = threading.RLock()
        self._next_purge = clock() + purge_interval

    def _live_entry(self, key: str) -> Optional[Tuple[Any, Optional[float]]]:
        entry = self.entries.get(key)
        if entry is None:
            return None

        _, expires_at = entry
        if expires_at is not None and expires_at <= self.clock():
            del self.entries[key]
            return None
        return entry

    def _purge_expired(self) -> None:
        now = self.clock()
        if now < self._next_purge:
            return

        expired = [
            key for key, (_, expires_at) in self.entries.items()
            if expires_at is not None and expires_at <= now
        ]
        for key in expired:
            del self.entries[key]

        self._next_purge = now + self.purge_interval
        if expired:
            logger.debug("storage.purged", backend="memory", count=len(expired))

    def _expiry(self, ttl: Optional[int]) -> Optional[float]:
        if not ttl:
            return None
        return self.clock() + ttl

    def set(self, key: str, value: Any, ttl: Optional[int] = 0) -> bool:
        with self._lock:
            self._purge_expired()
            self.entries[key] = (value, self._expiry(ttl))
        logger.debug("storage.set", backend="memory", key=key, ttl=ttl)
        return True

    def get(self, key: str) -> Any:
        with self._lock:
            entry = self._live_entry(key)
        value = MISSING if entry is None else entry[0]
        logger.debug("storage.get", backend="memory", key=key, hit=entry is not None)
        return value

    def exists(self, key: str) -> bool:
        with self._lock:
            return self._live_entry(key) is not None

    def delete(self, key: str) -> bool:
        with self._lock:
            self.entries.pop(key, None)
        logger.debug("storage.delete", backend="memory", key=key)
        return True

    def atomic_increment(self, key: str, limit: int, ttl: int) -> Optional[int]:
        with self._lock:
            self._purge_expired()
            entry = self._live_entry(key)

            count, expires_at = 0, self._expiry(ttl)
            if entry is not None:
                try:
                    count, expires_at = int(entry[0]), entry[1]
                except (TypeError, ValueError):
                    # An unreadable counter starts the window over
                    logger.warning("storage.corrupt_counter", backend="memory", key=key)

            if count >= limit:
                return None

            # Expiry is only set when the counter is created
            self.entries[key] = (count + 1, expires_at)
            return count + 1
