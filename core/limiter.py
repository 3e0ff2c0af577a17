import redis.asyncio as redis
from fastapi import Request, Response
from fastapi_limiter import FastAPILimiter
from fastapi_limiter.depends import RateLimiter
from core.config import settings

import logging

logger = logging.getLogger(__name__)


async def init_redis():
    try:
        redis_conn = redis.from_url(settings.REDIS_URL, encoding="utf-8", decode_responses=True)
        # Ping to check connection
        await redis_conn.ping()
        await FastAPILimiter.init(redis_conn)
        logger.info("✅ Redis Limiter initialized")
        return redis_conn
    except Exception as e:
        logger.warning(f"⚠️ Redis not available at {settings.REDIS_URL}: {e}. Rate limiting will be disabled.")
        return None


class OptionalRateLimiter(RateLimiter):
    """
    RateLimiter that lets requests through when Redis never came up.

    The bucket is keyed on the matched route template instead of the route's
    position in `app.routes`, so included routers need no lookup.
    """

    async def __call__(self, request: Request, response: Response):
        if FastAPILimiter.redis is None:
            return
        identifier = self.identifier or FastAPILimiter.identifier
        callback = self.callback or FastAPILimiter.http_callback

        route = request.scope.get("route")
        route_key = getattr(route, "path", request.url.path)
        rate_key = await identifier(request)
        key = f"{FastAPILimiter.prefix}:{rate_key}:{request.method}:{route_key}"

        pexpire = await self._check(key)
        if pexpire != 0:
            return await callback(request, response, pexpire)


# Manual re-polls hit the gateway; keep them to a handful per minute per client
sync_rate_limit = OptionalRateLimiter(times=10, seconds=60)
