"""
# Rate Limiter

Fixed-window counters guarding authentication, registration, demo login and invitation
creation.

A bucket key is `"{category}:{actor}"`, where the actor is an identifier, an owner id
or a source address. Every attempt consumes one unit, successful or not; the attempt
that exceeds the category's limit is refused and the caller surfaces `RateLimited`
instead of running the guarded operation. Windows expire on wall-clock time.

| Category | Actor | Default |
|----------|-------|---------|
| `login` | normalised identifier | 5 per 15 min |
| `login_ip` | source address | 20 per 15 min |
| `register` | source address | 5 per 15 min |
| `invite` | owner id | 10 per hour |
| `demo` | source address | 10 per 15 min |

Backends: process-local counters, or Redis `INCR` + `EXPIRE` when several workers
share limits.
"""

from abc import ABC, abstractmethod
import time
from typing import Callable, Dict, NamedTuple, Optional, Tuple

from redis.exceptions import RedisError

from support_spark.config import Settings
from support_spark.exceptions import RateLimited, Unavailable
from support_spark.managers.logging_manager import get_logger
from support_spark.managers.redis_manager import RedisManager
from support_spark.utils.logging_utils import log_security_event

logger = get_logger(prefix="[RateLimiter]")

LOGIN = "login"
LOGIN_IP = "login_ip"
REGISTER = "register"
INVITE = "invite"
DEMO = "demo"


class RateLimitRule(NamedTuple):
    limit: int
    period_seconds: int


def bucket_key(category: str, actor: str) -> str:
    return f"{category}:{actor}"


def rules_from_settings(settings: Settings) -> Dict[str, RateLimitRule]:
    return {
        LOGIN: RateLimitRule(settings.LOGIN_RATE_LIMIT, settings.LOGIN_RATE_PERIOD_SECONDS),
        LOGIN_IP: RateLimitRule(settings.LOGIN_IP_RATE_LIMIT, settings.LOGIN_RATE_PERIOD_SECONDS),
        REGISTER: RateLimitRule(settings.REGISTER_RATE_LIMIT, settings.REGISTER_RATE_PERIOD_SECONDS),
        INVITE: RateLimitRule(settings.INVITE_RATE_LIMIT, settings.INVITE_RATE_PERIOD_SECONDS),
        DEMO: RateLimitRule(settings.DEMO_LOGIN_RATE_LIMIT, settings.DEMO_LOGIN_RATE_PERIOD_SECONDS),
    }


class RateLimitBackend(ABC):
    @abstractmethod
    async def hit(self, key: str, period_seconds: int) -> Tuple[int, int]:
        """Count one attempt; return `(attempts in window, seconds until the window resets)`."""

    @abstractmethod
    async def reset(self, key: str) -> None: ...


class InMemoryRateLimitBackend(RateLimitBackend):
    """
    Process-local fixed windows.

    Expired windows are swept at most once per `sweep_interval` seconds, so keys that are
    never tried again do not accumulate.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic, sweep_interval: float = 60.0):
        self.clock = clock
        self.sweep_interval = sweep_interval
        # key -> (window start, attempts, window length)
        self._windows: Dict[str, Tuple[float, int, int]] = {}
        self._next_sweep = 0.0

    def _sweep(self, now: float) -> None:
        expired = [key for key, (start, _, period) in self._windows.items() if now - start >= period]
        for key in expired:
            del self._windows[key]
        self._next_sweep = now + self.sweep_interval

    async def hit(self, key: str, period_seconds: int) -> Tuple[int, int]:
        now = self.clock()
        if now >= self._next_sweep:
            self._sweep(now)
        window_start, count, _ = self._windows.get(key, (now, 0, period_seconds))
        if now - window_start >= period_seconds:
            window_start, count = now, 0
        count += 1
        self._windows[key] = (window_start, count, period_seconds)
        remaining = max(1, int(period_seconds - (now - window_start)))
        return count, remaining

    async def reset(self, key: str) -> None:
        self._windows.pop(key, None)


class RedisRateLimitBackend(RateLimitBackend):
    def __init__(self, redis_manager: RedisManager, key_prefix: str):
        self.redis_manager = redis_manager
        self.key_prefix = key_prefix

    async def hit(self, key: str, period_seconds: int) -> Tuple[int, int]:
        redis_key = f"{self.key_prefix}{key}"
        try:
            redis = await self.redis_manager.get_redis()
            current = await redis.incr(redis_key)
            if current == 1:
                await redis.expire(redis_key, period_seconds)
            ttl = await redis.ttl(redis_key)
        except RedisError as e:
            logger.error(f"Rate limit counter update failed: {e}")
            raise Unavailable() from e
        return current, ttl if ttl > 0 else period_seconds

    async def reset(self, key: str) -> None:
        try:
            redis = await self.redis_manager.get_redis()
            await redis.delete(f"{self.key_prefix}{key}")
        except RedisError as e:
            logger.error(f"Rate limit counter reset failed: {e}")
            raise Unavailable() from e


class RateLimiter:
    """Applies per-category rules to a counter backend."""

    def __init__(self, backend: RateLimitBackend, rules: Dict[str, RateLimitRule]):
        self.backend = backend
        self.rules = rules

    def _rule_for(self, key: str) -> RateLimitRule:
        category = key.split(":", 1)[0]
        try:
            return self.rules[category]
        except KeyError:
            raise ValueError(f"No rate limit rule for category '{category}'")

    async def consume(self, key: str) -> Tuple[bool, int]:
        """Consume one attempt; return `(allowed, seconds until the window resets)`."""
        rule = self._rule_for(key)
        count, remaining = await self.backend.hit(key, rule.period_seconds)
        return count <= rule.limit, remaining

    async def check_and_consume(self, key: str) -> bool:
        """Consume one attempt from the bucket; `False` once the bucket is exhausted."""
        allowed, _ = await self.consume(key)
        return allowed

    async def reset(self, key: str) -> None:
        await self.backend.reset(key)

    async def enforce(self, category: str, actor: str, ip_address: Optional[str] = None) -> None:
        """
        Consume from `category:actor` and raise when the bucket is exhausted.

        Raises:
            RateLimited: With `retry_after` set to the seconds left in the window.
        """
        allowed, retry_after = await self.consume(bucket_key(category, actor))
        if allowed:
            return
        log_security_event(
            event_type="rate_limit_exceeded",
            ip_address=ip_address,
            success=False,
            details={"category": category},
        )
        raise RateLimited(retry_after=retry_after)
