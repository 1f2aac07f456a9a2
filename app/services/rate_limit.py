from __future__ import annotations
import logging
import time
from dataclasses import dataclass

import redis.asyncio as redis
from fastapi import HTTPException, Request

from app.core.config import settings


log = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_seconds: int

class TokenRateLimiter:
    def __init__(self, redis_url: str):
        self.r = redis.from_url(redis_url, decode_responses=True, socket_timeout=1.0)

    async def allow(self, *, key: str, limit: int, window_seconds: int) -> RateLimitResult:
        now = int(time.time())
        window = now // window_seconds
        rkey = f"rl:{key}:{window}"

        # INCR with expiry
        val = await self.r.incr(rkey)
        if val == 1:
            await self.r.expire(rkey, window_seconds)

        remaining = max(0, limit - val)
        reset = window_seconds - (now % window_seconds)
        return RateLimitResult(allowed=val <= limit, remaining=remaining, reset_seconds=reset)


_limiter: TokenRateLimiter | None = None


def get_limiter() -> TokenRateLimiter:
    global _limiter
    if _limiter is None:
        _limiter = TokenRateLimiter(settings.redis_url)
    return _limiter


async def limit_location_lookups(request: Request) -> None:
    """
    Per-client limit on the geocoding-backed endpoints. Fails open when redis
    is unreachable.
    """
    client = request.client.host if request.client else "anonymous"
    try:
        res = await get_limiter().allow(
            key=f"location:{client}",
            limit=settings.lookup_rate_limit,
            window_seconds=settings.lookup_rate_window_seconds,
        )
    except Exception as e:
        log.warning("rate limiter unavailable, allowing request: %s", e)
        return
    if not res.allowed:
        raise HTTPException(
            status_code=429,
            detail="Too many requests, please try again later.",
            headers={"Retry-After": str(res.reset_seconds)},
        )
