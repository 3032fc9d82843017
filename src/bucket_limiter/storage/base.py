from abc import ABC, abstractmethod
from typing import Any, Optional


class _Missing:
    """Sentinel type returned by ``get`` for absent or expired keys"""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING = _Missing()


class RateLimitStorage(ABC):
    """Abstract base class for rate limit storage backends"""

    @abstractmethod
    def set(self, key: str, value: Any, ttl: Optional[int] = 0) -> bool:
        """
        Store a value, overwriting whatever the key held before.

        Args:
            key: The storage key
            value: The value to store
            ttl: Seconds after which the value expires. 0 or None leaves
                expiry to the backend default.

        Returns:
            True if the value was stored
        """
        pass

    @abstractmethod
    def get(self, key: str) -> Any:
        """
        Get the value stored under a key.

        Returns:
            The stored value, or MISSING if the key is absent or expired
        """
        pass

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Whether the key currently holds a live value"""
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        """
        Remove a key.

        Returns:
            True if the key was removed or was already absent
        """
        pass


class AtomicCounterStorage(RateLimitStorage):
    """Storage backend that can check and increment a counter in one step"""

    @abstractmethod
    def atomic_increment(self, key: str, limit: int, ttl: int) -> Optional[int]:
        """
        Atomically increment a counter if it is still below a limit.
        This is the method that closes the gap between a get and a set.

        Args:
            key: The counter key
            limit: The counter is only incremented while it is below this
            ttl: Expiry applied when the counter is created, never refreshed

        Returns:
            The new count, or None if the counter was already at the limit
            (in which case nothing is written)
        """
        pass
