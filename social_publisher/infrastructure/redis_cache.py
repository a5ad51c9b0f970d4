# social_publisher/infrastructure/redis_cache.py
import redis.asyncio as aioredis

from social_publisher import config

# only used for the consumed OAuth state ledger
redis_client = aioredis.from_url(config.REDIS_URL, decode_responses=True)
