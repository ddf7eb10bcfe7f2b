import hashlib

from aiolimiter import AsyncLimiter
from cachetools import TTLCache

from gateway.core.config import settings

ANONYMOUS_CALLER = "public"
MAX_TRACKED_CALLERS = 10000
# A bucket idle this long has fully drained, so dropping it loses nothing
LIMITER_IDLE_SECONDS = 600

# Per-caller leaky buckets held in process memory; over-limit callers wait
_limiters: TTLCache = TTLCache(maxsize=MAX_TRACKED_CALLERS, ttl=LIMITER_IDLE_SECONDS)


def get_limiter(key: str) -> AsyncLimiter:
    limiter = _limiters.get(key)
    if limiter is None:
        limiter = AsyncLimiter(max(1, settings.RATE_LIMIT_PER_MINUTE), time_period=60)
    # Re-inserting refreshes the idle timer
    _limiters[key] = limiter
    return limiter


def caller_key(authorization: str | None) -> str:
    """Limiter key for a caller: a digest of its bearer token, or "public" when anonymous."""
    scheme, _, token = (authorization or "").partition(" ")
    token = token.strip()
    if scheme.lower() == "bearer" and token:
        return hashlib.sha256(token.encode("utf-8")).hexdigest()
    return ANONYMOUS_CALLER
