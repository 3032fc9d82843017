from functools import wraps
from typing import Callable, Optional, Union
from fastapi import Request, HTTPException
from .algorithms.leaky_bucket import BucketSettings
from .algorithms.token_bucket import parse_rate_limit_string
from .limiter import LeakyBucketLimiter, TokenBucketLimiter
from .storage.factory import StorageFactory
import inspect
import math


def _default_key_func(request) -> str:
    if hasattr(request, 'client') and hasattr(request.client, 'host'):
        return request.client.host
    elif hasattr(request, 'remote_addr'):
        return request.remote_addr
    else:
        return "test-client"


def _find_request(args, kwargs):
    for arg in args:
        if hasattr(arg, 'client') and hasattr(arg, 'headers'):
            return arg
    for value in kwargs.values():
        if hasattr(value, 'client') and hasattr(value, 'headers'):
            return value

    available_types = [type(arg).__name__ for arg in args] + [type(v).__name__ for v in kwargs.values()]
    raise ValueError(
        f"No Request object found in function parameters. "
        f"Available parameter types: {available_types}. "
        f"Make sure your function includes 'request: Request' as a parameter."
    )


def _limit_endpoint(limiter, key_func, limit: int, retry_after: int, storage_type: str):
    """Wrap sync and async endpoints so that every call goes through limiter.check"""
    get_key = key_func or _default_key_func

    def enforce(args, kwargs) -> None:
        user_key = get_key(_find_request(args, kwargs))

        # Storage failures propagate; they are neither an allow nor a deny
        if limiter.check(user_key):
            return

        headers = {
            "X-RateLimit-Limit": str(limit),
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": str(retry_after),
            "Retry-After": str(retry_after)
        }

        raise HTTPException(
            status_code=429,
            detail={
                "message": "Rate limit exceeded",
                "limit": limit,
                "remaining": 0,
                "reset_in_seconds": retry_after,
                "storage_type": storage_type
            },
            headers=headers
        )

    def decorator(func):
        if inspect.iscoroutinefunction(func):
            @wraps(func)
            async def async_wrapper(*args, **kwargs):
                enforce(args, kwargs)
                return await func(*args, **kwargs)

            return async_wrapper

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            enforce(args, kwargs)
            return func(*args, **kwargs)

        return sync_wrapper

    return decorator


def rate_limit(
        limit: Union[int, str],
        period: Optional[float] = None,
        key_func: Optional[Callable[[Request], str]] = None,
        storage_type: str = "memory",
        storage_config: Optional[dict] = None,
        name: Optional[str] = None
):
    """
    Fixed window rate limiting decorator that works with Redis or local memory.

    Args:
        limit: Either an integer (events per period) or string like "10/minute"
        period: Window length in seconds (if using numeric format)
        key_func: Function to extract user identifier from request
        storage_type: "memory" or "redis"
        storage_config: Additional configuration for storage backend
        name: Limiter name used in storage keys, defaults to the endpoint name

    Examples:
        @rate_limit("10/minute")

        @rate_limit(
            "10/minute",
            storage_type="redis",
            storage_config={"host": "localhost", "port": 6379}
        )
    """
    if isinstance(limit, str):
        if period is not None:
            raise ValueError("Cannot specify period with string format")
        limit, period = parse_rate_limit_string(limit)
    elif period is None:
        raise ValueError("Must specify period with numeric format")

    storage_config = dict(storage_config or {})
    storage = StorageFactory.create_storage(storage_type, **storage_config)

    def decorator(func):
        limiter = TokenBucketLimiter(name or func.__name__, limit, period, storage)
        return _limit_endpoint(limiter, key_func, limit, math.ceil(period), storage_type)(func)

    return decorator


def leaky_bucket_limit(
        capacity: float = 10,
        leak: float = 0.33,
        key_func: Optional[Callable[[Request], str]] = None,
        storage_type: str = "memory",
        storage_config: Optional[dict] = None,
        name: Optional[str] = None,
        drops: float = 1
):
    """
    Leaky bucket rate limiting decorator.

    Each request adds ``drops`` to the caller's bucket, which drains at
    ``leak`` drops per second. Requests are rejected while the bucket is full.
    """
    settings = BucketSettings.from_mapping({"capacity": capacity, "leak": leak})

    storage_config = dict(storage_config or {})
    storage = StorageFactory.create_storage(storage_type, **storage_config)

    # Time for one drop to leak out
    retry_after = max(1, math.ceil(drops / settings.leak))

    def decorator(func):
        limiter = LeakyBucketLimiter(name or func.__name__, storage, settings, drops=drops)
        return _limit_endpoint(limiter, key_func, int(capacity), retry_after, storage_type)(func)

    return decorator


# Convenience functions for common configurations
def rate_limit_memory(
    limit: Union[int, str],
    period: Optional[float] = None,
    key_func: Optional[Callable[[Request], str]] = None
):
    """Convenience function for memory-based rate limiting"""
    return rate_limit(limit, period, key_func, "memory")


def rate_limit_redis(
    limit: Union[int, str],
    period: Optional[float] = None,
    key_func: Optional[Callable[[Request], str]] = None,
    redis_host: str = "localhost",
    redis_port: int = 6379,
    redis_db: int = 0,
    key_prefix: str = ""
):
    """Convenience function for Redis-based rate limiting"""
    storage_config = {
        "host": redis_host,
        "port": redis_port,
        "db": redis_db,
        "key_prefix": key_prefix
    }

    return rate_limit(limit, period, key_func, "redis", storage_config)
