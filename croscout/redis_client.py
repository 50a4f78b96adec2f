import redis.asyncio as redis

from .config import settings

# Optional: without REDIS_URL the breaker stays closed and the email
# consumer does not deduplicate redelivered events.
redis_client = redis.from_url(settings.redis_url, decode_responses=True) if settings.redis_url else None
