from typing import Any, Optional
from unittest.mock import Mock

import pytest

from bucket_limiter.storage.base import MISSING, RateLimitStorage
from bucket_limiter.storage.storage_memory import MemoryStorage


class PlainStorage(RateLimitStorage):
    """get/set/exists/delete only, like a backend without atomic counters"""

    def __init__(self, clock) -> None:
        self.backend = MemoryStorage(clock=clock)
        self.writes = []

    def set(self, key: str, value: Any, ttl: Optional[int] = 0) -> bool:
        self.writes.append((key, value, ttl))
        return self.backend.set(key, value, ttl)

    def get(self, key: str) -> Any:
        return self.backend.get(key)

    def exists(self, key: str) -> bool:
        return self.backend.exists(key)

    def delete(self, key: str) -> bool:
        return self.backend.delete(key)


class BrokenStorage(RateLimitStorage):
    """Storage whose operations fail on demand"""

    def __init__(self, fail_on=(), refuse=()) -> None:
        self.fail_on = set(fail_on)
        self.refuse = set(refuse)
        self.values = {}

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.fail_on:
            raise ConnectionError(f"{operation} failed")

    def set(self, key: str, value: Any, ttl: Optional[int] = 0) -> bool:
        self._maybe_fail("set")
        if "set" in self.refuse:
            return False
        self.values[key] = value
        return True

    def get(self, key: str) -> Any:
        self._maybe_fail("get")
        return self.values.get(key, MISSING)

    def exists(self, key: str) -> bool:
        self._maybe_fail("exists")
        return key in self.values

    def delete(self, key: str) -> bool:
        self._maybe_fail("delete")
        if "delete" in self.refuse:
            return False
        self.values.pop(key, None)
        return True


@pytest.fixture
def clock() -> Mock:
    return Mock(return_value=1000.0)


@pytest.fixture
def memory_storage(clock) -> MemoryStorage:
    return MemoryStorage(clock=clock)


@pytest.fixture
def plain_storage(clock) -> PlainStorage:
    return PlainStorage(clock)


@pytest.fixture(params=["atomic", "plain"])
def any_storage(request, clock) -> RateLimitStorage:
    """Run a test against both the atomic and the get/set counter paths"""
    if request.param == "atomic":
        return MemoryStorage(clock=clock)
    return PlainStorage(clock)
