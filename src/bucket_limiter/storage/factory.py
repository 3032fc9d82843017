from .base import RateLimitStorage
from .storage_memory import MemoryStorage
from .storage_redis import RedisStorage
import redis


class StorageFactory:
    """Factory to create storage backends based on configuration"""

    @staticmethod
    def create_storage(storage_type: str = "memory", **kwargs) -> RateLimitStorage:
        """
        Create a storage backend.

        Args:
            storage_type: Either "memory" or "redis"
            **kwargs: Additional arguments for the storage backend.
                Memory accepts clock and purge_interval and ignores the rest.
                Redis accepts redis_client, url, host, port, db and key_prefix.

        Returns:
            A storage backend instance
        """
        if storage_type == "memory":
            # Backend options meant for Redis are ignored
            memory_options = {name: kwargs[name] for name in ("clock", "purge_interval") if name in kwargs}
            return MemoryStorage(**memory_options)
        elif storage_type == "redis":
            key_prefix = kwargs.pop("key_prefix", "")
            redis_client = kwargs.pop("redis_client", None)

            if redis_client is None:
                url = kwargs.pop("url", None)
                if url is not None:
                    redis_client = redis.Redis.from_url(url, decode_responses=True)
                else:
                    # Extract Redis-specific connection parameters
                    host = kwargs.pop("host", "localhost")
                    port = kwargs.pop("port", 6379)
                    db = kwargs.pop("db", 0)
                    redis_client = redis.Redis(host=host, port=port, db=db, decode_responses=True)

            return RedisStorage(redis_client=redis_client, key_prefix=key_prefix)
        else:
            raise ValueError(f"Unknown storage type: {storage_type}")
