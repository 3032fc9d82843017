from .base import MISSING, AtomicCounterStorage
from typing import Any, Optional
import redis
import structlog


logger = structlog.get_logger(__name__)


class RedisStorage(AtomicCounterStorage):
    """Redis-based storage backend with an atomic counter script"""

    def __init__(self, redis_client: Optional[redis.Redis] = None, key_prefix: str = ""):
        if redis_client is None:
            redis_client = redis.Redis(host='localhost', port=6379, db=0, decode_responses=True)

        self.redis = redis_client
        self.key_prefix = key_prefix

        self.increment_script = self.redis.register_script(self._get_increment_lua_script())

    def _make_key(self, key: str) -> str:
        """Create a Redis key with our prefix"""
        return f"{self.key_prefix}{key}"

    def set(self, key: str, value: Any, ttl: Optional[int] = 0) -> bool:
        redis_key = self._make_key(key)
        result = self.redis.set(redis_key, value, ex=ttl or None)
        logger.debug("storage.set", backend="redis", key=redis_key, ttl=ttl)
        return bool(result)

    def get(self, key: str) -> Any:
        redis_key = self._make_key(key)
        data = self.redis.get(redis_key)
        logger.debug("storage.get", backend="redis", key=redis_key, hit=data is not None)

        if data is None:
            return MISSING
        if isinstance(data, bytes):
            data = data.decode('utf-8')
        return data

    def exists(self, key: str) -> bool:
        return bool(self.redis.exists(self._make_key(key)))

    def delete(self, key: str) -> bool:
        redis_key = self._make_key(key)
        self.redis.delete(redis_key)
        logger.debug("storage.delete", backend="redis", key=redis_key)
        return True

    def atomic_increment(self, key: str, limit: int, ttl: int) -> Optional[int]:
        """
        Use a Lua script to check and increment a window counter atomically.
        """
        redis_key = self._make_key(key)

        result = self.increment_script(keys=[redis_key], args=[limit, ttl])
        result = int(result)

        return None if result < 0 else result

    def _get_increment_lua_script(self) -> str:
        """
        Lua script that runs atomically on Redis server.
        Returns the new count, or -1 without writing when the limit is reached.
        """
        return """
        local key = KEYS[1]
        local limit = tonumber(ARGV[1])
        local ttl = tonumber(ARGV[2])

        local count = tonumber(redis.call('GET', key) or '0')

        if count == nil or count == 0 then
            -- First hit of the window (or an unreadable value): create it
            if ttl > 0 then
                redis.call('SET', key, 1, 'EX', ttl)
            else
                redis.call('SET', key, 1)
            end
            return 1
        end

        if count >= limit then
            return -1
        end

        -- INCR keeps the expiry set on the first hit
        return redis.call('INCR', key)
        """
