import redis.asyncio as redis

from .config import REDIS_URL

# None when REDIS_URL is unset; callers fall back to process-local behaviour.
redis_client = redis.from_url(REDIS_URL, decode_responses=True) if REDIS_URL else None
