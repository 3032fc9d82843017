from typing import Callable, Tuple
import math
import time

import structlog

from ..errors import CorruptRecord, InvalidArgument, StorageFailure
from ..storage.base import AtomicCounterStorage, RateLimitStorage
from .records import decode_count, key_part


logger = structlog.get_logger(__name__)


class TokenBucket:
    """
    Allows at most ``limit`` events per ``period`` seconds for each identity.

    Events are counted in fixed windows that start at multiples of ``period``.
    A window forgets everything at its boundary, so up to ``2 * limit`` events
    can pass in a short burst that straddles two windows.
    """

    def __init__(
        self,
        name: str,
        limit: int,
        period: float,
        storage: RateLimitStorage,
        clock: Callable[[], float] = time.time,
    ):
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise InvalidArgument(f"limit must be an integer >= 1, got {limit!r}")
        if isinstance(period, bool) or not isinstance(period, (int, float)) or not period > 0:
            raise InvalidArgument(f"period must be a number greater than 0, got {period!r}")

        self.name = name
        self.limit = limit
        self.period = period
        self.storage = storage
        self.clock = clock

    @property
    def ttl(self) -> int:
        return max(1, math.ceil(self.period))

    def window_key(self, identity: str) -> str:
        window = int(self.clock() // self.period)
        return f"{key_part(self.name)}:{key_part(identity)}:{window}"

    def _read_count(self, key: str) -> int:
        try:
            raw = self.storage.get(key)
        except Exception as exc:
            logger.error("token_bucket.read_failed", key=key, error=str(exc))
            raise StorageFailure(key, "load") from exc

        try:
            return decode_count(raw)
        except CorruptRecord as exc:
            logger.warning("token_bucket.corrupt_record", key=key, reason=str(exc))
            return 0

    def check(self, identity: str) -> bool:
        """
        Count one event for the identity if the current window has room.

        Returns True if the event is allowed. Rejected events are not written.
        """
        key = self.window_key(identity)

        if isinstance(self.storage, AtomicCounterStorage):
            try:
                count = self.storage.atomic_increment(key, self.limit, self.ttl)
            except Exception as exc:
                logger.error("token_bucket.increment_failed", key=key, error=str(exc))
                raise StorageFailure(key, "save") from exc
            return count is not None

        count = self._read_count(key)
        if count >= self.limit:
            return False

        # Without an atomic counter a concurrent caller may write between the
        # read above and this set; that can only admit extra events.
        try:
            stored = self.storage.set(key, count + 1, self.ttl)
        except Exception as exc:
            logger.error("token_bucket.write_failed", key=key, error=str(exc))
            raise StorageFailure(key, "save") from exc

        if not stored:
            logger.error("token_bucket.write_failed", key=key, error="backend refused write")
            raise StorageFailure(key, "save")
        return True

    def remaining(self, identity: str) -> int:
        """Events still allowed for the identity in the current window"""
        return max(0, self.limit - self._read_count(self.window_key(identity)))

    def reset(self, identity: str) -> None:
        """Forget the identity's count for the current window"""
        key = self.window_key(identity)
        try:
            deleted = self.storage.delete(key)
        except Exception as exc:
            logger.error("token_bucket.reset_failed", key=key, error=str(exc))
            raise StorageFailure(key, "reset") from exc

        if not deleted:
            raise StorageFailure(key, "reset")

    def get_bucket_info(self, identity: str) -> dict:
        """
        Get information about an identity's current window.
        Useful for debugging and monitoring.
        """
        window_start = int(self.clock() // self.period) * self.period
        count = self._read_count(self.window_key(identity))

        return {
            'count': count,
            'limit': self.limit,
            'period': self.period,
            'remaining': max(0, self.limit - count),
            'reset_at': window_start + self.period,
        }


def parse_rate_limit_string(rate_string: str) -> Tuple[int, int]:
    """Parse strings like "10/minute" into (limit, period seconds)"""
    if '/' not in rate_string:
        raise InvalidArgument("Rate limit string must be in 'N/period' format")

    requests, period = rate_string.split('/', 1)
    try:
        limit = int(requests)
    except ValueError as exc:
        raise InvalidArgument(f"Invalid request count: {requests!r}") from exc

    period_map = {
        'second': 1,
        'minute': 60,
        'hour': 3600,
        'day': 86400
    }

    period = period.strip()
    if period not in period_map:
        raise InvalidArgument(f"Unsupported period: {period}. Use : {list(period_map.keys())}")

    return limit, period_map[period]
