"""Token bucket rate limiter backed by Redis Lua script.

Uses a token bucket algorithm implemented atomically in Lua to prevent
race conditions on the Redis side. Separate read/write buckets per user;
anonymous readers share a bucket per client address.

Key format: rl:{subject}:{bucket_type}
Bucket types: "read" or "write"
"""
import time
from typing import Annotated

import redis.asyncio as aioredis
from fastapi import Depends, HTTPException, Request

from tagtrust.config import Settings, settings
from tagtrust.dependencies import CurrentUser, OptionalUser

# KEYS[1] = rate limit key
# ARGV[1] = max_tokens (integer capacity of the bucket)
# ARGV[2] = refill_rate (tokens per second, float)
# ARGV[3] = now (current Unix timestamp, float)
#
# Returns: 1 if allowed (token consumed), 0 if rejected (bucket empty)
RATE_LIMIT_LUA = """
local key = KEYS[1]
local max_tokens = tonumber(ARGV[1])
local refill_rate = tonumber(ARGV[2])
local now = tonumber(ARGV[3])

local data = redis.call('HGETALL', key)
local tokens = max_tokens
local last_refill = now

if #data > 0 then
    for i = 1, #data, 2 do
        if data[i] == 'tokens' then
            tokens = tonumber(data[i+1])
        elseif data[i] == 'last_refill' then
            last_refill = tonumber(data[i+1])
        end
    end
end

local elapsed = now - last_refill
local new_tokens = tokens + elapsed * refill_rate
if new_tokens > max_tokens then
    new_tokens = max_tokens
end

local allowed = 0
if new_tokens >= 1 then
    new_tokens = new_tokens - 1
    allowed = 1
end

-- 120s TTL (2x the refill window)
redis.call('HSET', key, 'tokens', new_tokens, 'last_refill', now)
redis.call('EXPIRE', key, 120)

return allowed
"""


async def check_rate_limit(
    subject: str,
    redis_client: aioredis.Redis,
    bucket_type: str,
    app_settings: Settings,
) -> None:
    """Check and consume a token from the subject's rate limit bucket.

    Raises HTTP 429 with Retry-After header if the bucket is empty.

    Args:
        subject: Bucket namespace (user id, or "anon:<address>").
        redis_client: Async Redis client from app.state.
        bucket_type: "read" or "write"; selects the capacity setting.
        app_settings: Application settings for max token values.
    """
    key = f"rl:{subject}:{bucket_type}"

    if bucket_type == "read":
        max_tokens = app_settings.rate_limit_read_per_minute
    else:
        max_tokens = app_settings.rate_limit_write_per_minute

    # Tokens per second; bucket refills fully in 60 seconds
    refill_rate = max_tokens / 60.0

    allowed = await redis_client.eval(
        RATE_LIMIT_LUA,
        1,
        key,
        max_tokens,
        refill_rate,
        time.time(),
    )

    if not allowed:
        raise HTTPException(
            status_code=429,
            detail="Rate limit exceeded",
            headers={"Retry-After": "60"},
        )


async def read_rate_limit(request: Request, user: OptionalUser) -> None:
    """FastAPI dependency for read-path rate limiting."""
    if not settings.rate_limit_enabled:
        return
    if user is not None:
        subject = str(user.id)
    else:
        subject = f"anon:{request.client.host if request.client else 'unknown'}"
    await check_rate_limit(subject, request.app.state.redis, "read", settings)


async def write_rate_limit(request: Request, user: CurrentUser) -> None:
    """FastAPI dependency for write-path rate limiting."""
    if not settings.rate_limit_enabled:
        return
    await check_rate_limit(str(user.id), request.app.state.redis, "write", settings)


ReadRateLimit = Annotated[None, Depends(read_rate_limit)]
WriteRateLimit = Annotated[None, Depends(write_rate_limit)]
