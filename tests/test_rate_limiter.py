from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from support_spark.exceptions import RateLimited, Unavailable
from support_spark.services.rate_limiter import (
    INVITE,
    LOGIN,
    InMemoryRateLimitBackend,
    RateLimiter,
    RateLimitRule,
    RedisRateLimitBackend,
    bucket_key,
)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def limiter(clock):
    rules = {LOGIN: RateLimitRule(5, 900), INVITE: RateLimitRule(2, 3600)}
    return RateLimiter(InMemoryRateLimitBackend(clock=clock), rules)


@pytest.mark.asyncio
async def test_sixth_attempt_in_window_is_refused(limiter):
    key = bucket_key(LOGIN, "sam@example.com")
    results = [await limiter.check_and_consume(key) for _ in range(5)]
    assert results == [True] * 5
    assert await limiter.consume(key) == (False, 900)


@pytest.mark.asyncio
async def test_window_expires_on_clock(limiter, clock):
    key = bucket_key(LOGIN, "sam@example.com")
    for _ in range(6):
        await limiter.check_and_consume(key)
    clock.now += 600
    assert await limiter.consume(key) == (False, 300)

    clock.now += 300
    assert await limiter.check_and_consume(key) is True


@pytest.mark.asyncio
async def test_buckets_are_independent(limiter):
    for _ in range(5):
        await limiter.check_and_consume(bucket_key(LOGIN, "a@example.com"))
    assert await limiter.check_and_consume(bucket_key(LOGIN, "a@example.com")) is False
    assert await limiter.check_and_consume(bucket_key(LOGIN, "b@example.com")) is True


@pytest.mark.asyncio
async def test_reset_clears_bucket(limiter):
    key = bucket_key(LOGIN, "sam@example.com")
    for _ in range(6):
        await limiter.check_and_consume(key)
    await limiter.reset(key)
    assert await limiter.check_and_consume(key) is True


@pytest.mark.asyncio
async def test_enforce_raises_rate_limited(limiter):
    await limiter.enforce(INVITE, "mem_1")
    await limiter.enforce(INVITE, "mem_1")
    with pytest.raises(RateLimited) as exc_info:
        await limiter.enforce(INVITE, "mem_1")
    assert exc_info.value.retry_after == 3600
    assert exc_info.value.status_code == 429


@pytest.mark.asyncio
async def test_expired_windows_are_swept(clock):
    backend = InMemoryRateLimitBackend(clock=clock)
    limiter = RateLimiter(backend, {LOGIN: RateLimitRule(5, 900)})
    for i in range(1000):
        await limiter.check_and_consume(bucket_key(LOGIN, f"user{i}@example.com"))
    assert len(backend._windows) == 1000

    clock.now += 901
    await limiter.check_and_consume(bucket_key(LOGIN, "late@example.com"))

    assert list(backend._windows) == [bucket_key(LOGIN, "late@example.com")]


@pytest.mark.asyncio
async def test_live_windows_survive_sweep(clock):
    backend = InMemoryRateLimitBackend(clock=clock, sweep_interval=10)
    limiter = RateLimiter(backend, {LOGIN: RateLimitRule(5, 900), INVITE: RateLimitRule(2, 60)})
    await limiter.check_and_consume(bucket_key(LOGIN, "sam@example.com"))
    await limiter.check_and_consume(bucket_key(INVITE, "mem_1"))

    clock.now += 120
    await limiter.check_and_consume(bucket_key(LOGIN, "sam@example.com"))

    assert set(backend._windows) == {bucket_key(LOGIN, "sam@example.com")}
    assert backend._windows[bucket_key(LOGIN, "sam@example.com")][1] == 2

@pytest.mark.asyncio
async def test_unknown_category_is_a_programming_error(limiter):
    with pytest.raises(ValueError):
        await limiter.check_and_consume("unknown:actor")


def redis_backend(redis_client):
    manager = MagicMock()
    manager.get_redis = AsyncMock(return_value=redis_client)
    return RedisRateLimitBackend(manager, "spark:ratelimit:")


@pytest.mark.asyncio
async def test_redis_backend_sets_expiry_on_first_hit():
    redis_client = AsyncMock()
    redis_client.incr.return_value = 1
    redis_client.ttl.return_value = 900
    backend = redis_backend(redis_client)

    count, remaining = await backend.hit("login:sam@example.com", 900)

    assert (count, remaining) == (1, 900)
    redis_client.incr.assert_awaited_once_with("spark:ratelimit:login:sam@example.com")
    redis_client.expire.assert_awaited_once_with("spark:ratelimit:login:sam@example.com", 900)


@pytest.mark.asyncio
async def test_redis_backend_refuses_over_limit():
    redis_client = AsyncMock()
    redis_client.incr.return_value = 6
    redis_client.ttl.return_value = 120
    limiter = RateLimiter(redis_backend(redis_client), {LOGIN: RateLimitRule(5, 900)})

    assert await limiter.consume(bucket_key(LOGIN, "sam@example.com")) == (False, 120)
    redis_client.expire.assert_not_awaited()


@pytest.mark.asyncio
async def test_redis_failure_is_unavailable():
    redis_client = AsyncMock()
    redis_client.incr.side_effect = RedisConnectionError("down")
    backend = redis_backend(redis_client)

    with pytest.raises(Unavailable):
        await backend.hit("login:sam@example.com", 900)
