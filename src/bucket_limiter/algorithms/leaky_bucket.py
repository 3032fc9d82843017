from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional
import math
import time

import structlog

from ..errors import CorruptRecord, InvalidArgument, StorageFailure
from ..storage.base import RateLimitStorage
from .records import BucketState, decode_bucket, encode_bucket


logger = structlog.get_logger(__name__)

LEAKY_BUCKET_KEY_PREFIX = 'leakybucket:v1:'
LEAKY_BUCKET_KEY_POSTFIX = ':bucket'


@dataclass(frozen=True)
class BucketSettings:
    capacity: float = 10
    leak: float = 0.33

    def __post_init__(self):
        for field in ('capacity', 'leak'):
            value = getattr(self, field)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or not value > 0:
                raise InvalidArgument(f"Bucket setting '{field}' must be a number greater than 0, got {value!r}")

    @classmethod
    def from_mapping(cls, settings: Optional[Mapping[str, Any]] = None) -> "BucketSettings":
        """Merge known settings over the defaults, ignoring unknown keys"""
        if isinstance(settings, cls):
            return settings

        settings = settings or {}
        known = {name: settings[name] for name in ('capacity', 'leak') if name in settings}
        return cls(**known)


def bucket_key(name: str) -> str:
    return f"{LEAKY_BUCKET_KEY_PREFIX}{name}{LEAKY_BUCKET_KEY_POSTFIX}"


class LeakyBucket:
    """
    A bucket that leaks drops at a constant rate and fills on demand.

    The bucket is read from storage when constructed. Nothing is written back
    until ``save()`` is called, so a typical round trip looks like::

        bucket = LeakyBucket("login:10.0.0.1", storage, {"capacity": 5})
        bucket.leak()
        if not bucket.is_full():
            bucket.fill().overflow().save()
    """

    def __init__(
        self,
        key: str,
        storage: RateLimitStorage,
        settings: Optional[Mapping[str, Any]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.key = key
        self.storage = storage
        self.clock = clock

        self.settings = BucketSettings.from_mapping(settings)

        self.bucket = self._load()

    @property
    def storage_key(self) -> str:
        return bucket_key(self.key)

    def _load(self) -> BucketState:
        try:
            raw = self.storage.get(self.storage_key)
        except Exception as exc:
            logger.error("leaky_bucket.load_failed", key=self.storage_key, error=str(exc))
            raise StorageFailure(self.storage_key, "load") from exc

        try:
            state = decode_bucket(raw)
        except CorruptRecord as exc:
            # A damaged record is treated the same as no record at all
            logger.warning("leaky_bucket.corrupt_record", key=self.storage_key, reason=str(exc))
            state = None

        if state is None:
            state = BucketState(drops=0.0, time=self.clock())
        return state

    def fill(self, drops: float = 1) -> "LeakyBucket":
        """Add drops to the bucket. Use ``overflow()`` to clamp to capacity."""
        if isinstance(drops, bool) or not isinstance(drops, (int, float)) or not drops > 0:
            raise InvalidArgument(f'The parameter "drops" has to be a number greater than 0, got {drops!r}.')

        self.bucket.drops += drops
        return self

    def spill(self, drops: float = 1) -> "LeakyBucket":
        """Remove drops from the bucket, never going below empty"""
        if isinstance(drops, bool) or not isinstance(drops, (int, float)) or drops < 0:
            raise InvalidArgument(f'The parameter "drops" has to be a number of at least 0, got {drops!r}.')

        self.bucket.drops = max(0.0, self.bucket.drops - drops)
        return self

    def leak(self) -> "LeakyBucket":
        """
        Drain the drops that leaked out since the bucket was last saved.

        The timestamp is left alone; only ``touch()`` and ``save()`` move it.
        """
        elapsed = max(0.0, self.clock() - self.bucket.time)
        leakage = elapsed * self.settings.leak

        self.bucket.drops = max(0.0, self.bucket.drops - leakage)
        return self

    def overflow(self) -> "LeakyBucket":
        """Removes the overflow if present"""
        if self.bucket.drops > self.settings.capacity:
            self.bucket.drops = float(self.settings.capacity)
        return self

    def is_full(self) -> bool:
        # Anything within one drop of capacity counts as full
        return math.ceil(self.bucket.drops) >= self.settings.capacity

    @property
    def capacity(self) -> float:
        return float(self.settings.capacity)

    @property
    def capacity_used(self) -> float:
        return float(self.bucket.drops)

    @property
    def capacity_left(self) -> float:
        return float(self.settings.capacity - self.bucket.drops)

    @property
    def leak_rate(self) -> float:
        return float(self.settings.leak)

    @property
    def last_timestamp(self) -> float:
        return self.bucket.time

    @property
    def ttl(self) -> int:
        """Seconds a full bucket needs to drain, plus half again"""
        return int(self.settings.capacity / self.settings.leak * 1.5)

    def set_data(self, data: Any) -> "LeakyBucket":
        self.bucket.data = data
        return self

    def get_data(self) -> Any:
        return self.bucket.data

    def touch(self) -> "LeakyBucket":
        self.bucket.time = self.clock()
        return self

    def save(self) -> "LeakyBucket":
        self.touch()

        try:
            stored = self.storage.set(self.storage_key, encode_bucket(self.bucket), self.ttl)
        except Exception as exc:
            logger.error("leaky_bucket.save_failed", key=self.storage_key, error=str(exc))
            raise StorageFailure(self.storage_key, "save") from exc

        if not stored:
            logger.error("leaky_bucket.save_failed", key=self.storage_key, error="backend refused write")
            raise StorageFailure(self.storage_key, "save")
        return self

    def reset(self) -> "LeakyBucket":
        """Delete the stored bucket. The in-memory state is left as it was."""
        try:
            deleted = self.storage.delete(self.storage_key)
        except Exception as exc:
            logger.error("leaky_bucket.reset_failed", key=self.storage_key, error=str(exc))
            raise StorageFailure(self.storage_key, "reset") from exc

        if not deleted:
            logger.error("leaky_bucket.reset_failed", key=self.storage_key, error="backend refused delete")
            raise StorageFailure(self.storage_key, "reset")
        return self
