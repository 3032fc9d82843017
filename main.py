from fastapi import FastAPI, Request
import redis
from bucket_limiter.decorator import leaky_bucket_limit, rate_limit, rate_limit_memory, rate_limit_redis
from bucket_limiter.log_config import setup_logging


setup_logging("INFO")

app = FastAPI()

# Memory-based fixed window limiting
@app.get("/memory")
@rate_limit_memory("10/minute")
def memory_endpoint(request: Request):
    return {"message": "Memory-based rate limiting"}

# Redis-based fixed window limiting (shared between workers)
@app.get("/redis")
@rate_limit_redis("10/minute")
def redis_endpoint(request: Request):
    return {"message": "Redis-based rate limiting"}

# Custom Redis configuration
@app.get("/redis-custom")
@rate_limit(
    "20/hour",
    storage_type="redis",
    storage_config={
        "redis_client": redis.Redis(host="redis-cluster.example.com", port=6379),
        "key_prefix": "myapp:limits:"
    }
)
def redis_custom_endpoint(request: Request):
    return {"message": "Custom Redis rate limiting"}

# Leaky bucket: bursts of 5, then one request every 2 seconds
@app.get("/login")
@leaky_bucket_limit(capacity=5, leak=0.5, storage_type="redis")
async def login_endpoint(request: Request):
    return {"message": "Leaky bucket rate limiting"}

# Custom key function with Redis
def get_api_key(request):
    return request.headers.get("X-API-Key", "anonymous")

@app.get("/api")
@rate_limit_redis("100/hour", key_func=get_api_key)
def api_endpoint(request: Request):
    return {"message": "API key rate limiting with Redis"}
