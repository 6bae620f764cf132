"""Per-IP endpoint throttling using throttled-py"""
from datetime import timedelta
from throttled import Throttled, RateLimiterType, store, rate_limiter

from core.config import REDIS_URL, logger

# Initialize storage - Redis for production, MemoryStore for development
_storage_type = "memory"
try:
    if REDIS_URL:
        # RedisStore expects the URL string, not a Redis client object
        storage = store.RedisStore(server=REDIS_URL)
        _storage_type = "redis"
        logger.info("[rate_limit] Using Redis for rate limiting")
    else:
        storage = store.MemoryStore()
        logger.warning("[rate_limit] REDIS_URL not set - using in-memory storage (not suitable for production with multiple workers)")
except Exception as ex:
    storage = store.MemoryStore()
    logger.warning(f"[rate_limit] Redis connection failed, using in-memory storage: {ex}")

# OTP request limiter: 10 per IP per minute (on top of the per-user hourly quota)
otp_request_throttle = Throttled(
    using=RateLimiterType.FIXED_WINDOW.value,
    quota=rate_limiter.per_duration(timedelta(minutes=1), limit=10),
    store=storage,
)

# OTP verify limiter: 10 attempts per IP per minute (code guessing)
otp_verify_throttle = Throttled(
    using=RateLimiterType.FIXED_WINDOW.value,
    quota=rate_limiter.per_duration(timedelta(minutes=1), limit=10),
    store=storage,
)

# Google sign-in limiter: 20 per IP per minute
google_auth_throttle = Throttled(
    using=RateLimiterType.FIXED_WINDOW.value,
    quota=rate_limiter.per_duration(timedelta(minutes=1), limit=20),
    store=storage,
)


def check_throttle(throttle: Throttled, key: str) -> bool:
    """
    Consume one unit of `throttle` for `key`.

    Returns True when the request may proceed. Store errors fail open.
    """
    try:
        result = throttle.limit(key, cost=1)
        if result.limited:
            logger.warning(f"[rate_limit] Throttled {key}")
            return False
        return True
    except Exception as ex:
        logger.warning(f"[rate_limit] Rate limit check failed for {key}: {ex}")
        return True
