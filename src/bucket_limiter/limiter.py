from typing import Any, Callable, Mapping, Optional
import time

import structlog

from .algorithms.leaky_bucket import BucketSettings, LeakyBucket
from .algorithms.records import key_part
from .algorithms.token_bucket import TokenBucket
from .storage.base import RateLimitStorage


logger = structlog.get_logger(__name__)


class TokenBucketLimiter:
    """Accept/reject decisions for "limit events per period" per identity"""

    def __init__(
        self,
        name: str,
        limit: int,
        period: float,
        storage: RateLimitStorage,
        clock: Callable[[], float] = time.time,
    ):
        self.name = name
        self.storage = storage
        self.engine = TokenBucket(name, limit, period, storage, clock=clock)

    def check(self, identity: str) -> bool:
        allowed = self.engine.check(identity)
        if not allowed:
            logger.info("rate_limit.rejected", limiter=self.name, identity=identity, algorithm="token_bucket")
        return allowed

    def remaining(self, identity: str) -> int:
        return self.engine.remaining(identity)

    def reset(self, identity: str) -> None:
        self.engine.reset(identity)


class LeakyBucketLimiter:
    """
    Accept/reject decisions backed by one leaky bucket per identity.

    Every accepted check adds ``drops`` to the identity's bucket; a check
    against a full bucket is rejected and leaves storage untouched.
    """

    def __init__(
        self,
        name: str,
        storage: RateLimitStorage,
        settings: Optional[Mapping[str, Any]] = None,
        drops: float = 1,
        clock: Callable[[], float] = time.time,
    ):
        self.name = name
        self.storage = storage
        self.settings = BucketSettings.from_mapping(settings)
        self.drops = drops
        self.clock = clock

    def bucket(self, identity: str) -> LeakyBucket:
        return LeakyBucket(f"{key_part(self.name)}:{key_part(identity)}", self.storage, self.settings, clock=self.clock)

    def check(self, identity: str) -> bool:
        bucket = self.bucket(identity).leak()

        if bucket.is_full():
            logger.info("rate_limit.rejected", limiter=self.name, identity=identity, algorithm="leaky_bucket")
            return False

        bucket.fill(self.drops).overflow().save()
        return True

    def remaining(self, identity: str) -> float:
        return max(0.0, self.bucket(identity).leak().capacity_left)

    def reset(self, identity: str) -> None:
        self.bucket(identity).reset()
