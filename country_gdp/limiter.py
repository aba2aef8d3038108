import logging

from fastapi import Depends
from fastapi_limiter import FastAPILimiter
from fastapi_limiter.depends import RateLimiter
from redis.asyncio import Redis

from country_gdp.config import Settings, settings

logger = logging.getLogger("country_gdp")


def rate_limit(times: int, seconds: int):
    """Return a dependency that enforces a rate limit when Redis is configured; otherwise no-op."""
    if settings.REDIS_URL:
        return Depends(RateLimiter(times=times, seconds=seconds))

    async def _noop():
        return None

    return Depends(_noop)


async def init_rate_limiter(config: Settings) -> bool:
    if not config.REDIS_URL:
        logger.info("Rate limiting not enabled; REDIS_URL not set")
        return False
    redis = Redis.from_url(config.REDIS_URL, encoding="utf-8", decode_responses=True)
    await FastAPILimiter.init(redis)
    logger.info("Rate limiting enabled via Redis")
    return True


async def close_rate_limiter() -> None:
    if FastAPILimiter.redis is not None:
        await FastAPILimiter.close()
