from datetime import datetime, timedelta, timezone
import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from support_spark.database.session_store import RedisSessionStore
from support_spark.exceptions import InvalidCredentials, RateLimited, Unauthenticated, Unavailable
from support_spark.models import SessionDocument
from support_spark.services.session_service import token_digest

SECRET = "correct-horse-battery"


@pytest.mark.asyncio
async def test_authenticate_then_resolve(services, register_member):
    member = await register_member("sam@example.com")

    token, session, authenticated = await services.sessions.authenticate("sam@example.com", SECRET)

    assert authenticated.member_id == member.member_id
    assert await services.sessions.resolve(token) == member.member_id
    assert session.expires_at - session.created_at == timedelta(seconds=86400)


@pytest.mark.asyncio
async def test_store_never_holds_raw_token(services, register_member):
    await register_member("sam@example.com")
    token, _, _ = await services.sessions.authenticate("sam@example.com", SECRET)

    store = services.sessions.store
    assert token not in store._sessions
    assert token_digest(token) in store._sessions


@pytest.mark.asyncio
async def test_every_authentication_mints_a_new_token(services, register_member):
    await register_member("sam@example.com")
    first, _, _ = await services.sessions.authenticate("sam@example.com", SECRET)
    second, _, _ = await services.sessions.authenticate("sam@example.com", SECRET)
    assert first != second


@pytest.mark.asyncio
async def test_unknown_and_wrong_secret_are_indistinguishable(services, register_member):
    await register_member("sam@example.com")

    with pytest.raises(InvalidCredentials) as wrong:
        await services.sessions.authenticate("sam@example.com", "wrong-secret-123")
    with pytest.raises(InvalidCredentials) as unknown:
        await services.sessions.authenticate("nobody@example.com", "wrong-secret-123")

    assert wrong.value.message == unknown.value.message
    assert wrong.value.code == unknown.value.code


@pytest.mark.asyncio
@pytest.mark.parametrize("token", [None, "", "not-a-session", "x" * 1000])
async def test_resolve_rejects_bad_tokens(services, token):
    with pytest.raises(Unauthenticated):
        await services.sessions.resolve(token)


@pytest.mark.asyncio
async def test_resolve_rejects_expired_session(services, register_member):
    member = await register_member("sam@example.com")
    past = datetime.now(timezone.utc) - timedelta(hours=25)
    await services.sessions.store.put(
        token_digest("expired-token"),
        SessionDocument(member_id=member.member_id, created_at=past, expires_at=past + timedelta(hours=24)),
    )

    with pytest.raises(Unauthenticated):
        await services.sessions.resolve("expired-token")


@pytest.mark.asyncio
async def test_abandoned_sessions_are_pruned_on_write(services, register_member):
    member = await register_member("sam@example.com")
    store = services.sessions.store
    past = datetime.now(timezone.utc) - timedelta(hours=25)
    await store.put(
        token_digest("abandoned-token"),
        SessionDocument(member_id=member.member_id, created_at=past, expires_at=past + timedelta(hours=24)),
    )
    assert token_digest("abandoned-token") in store._sessions

    token, _, _ = await services.sessions.authenticate("sam@example.com", SECRET)

    assert set(store._sessions) == {token_digest(token)}


@pytest.mark.asyncio
async def test_invalidate_is_idempotent(services, register_member):
    await register_member("sam@example.com")
    token, _, _ = await services.sessions.authenticate("sam@example.com", SECRET)

    await services.sessions.invalidate(token)
    await services.sessions.invalidate(token)

    with pytest.raises(Unauthenticated):
        await services.sessions.resolve(token)


@pytest.mark.asyncio
async def test_login_rotates_away_from_current_token(services, register_member):
    await register_member("sam@example.com")
    old_token, _, _ = await services.sessions.authenticate("sam@example.com", SECRET)

    new_token, _, _ = await services.sessions.login("sam@example.com", SECRET, current_token=old_token)

    assert new_token != old_token
    with pytest.raises(Unauthenticated):
        await services.sessions.resolve(old_token)


@pytest.mark.asyncio
async def test_sixth_failed_login_is_rate_limited(services, register_member):
    await register_member("sam@example.com")

    for _ in range(5):
        with pytest.raises(InvalidCredentials):
            await services.sessions.login("sam@example.com", "wrong-secret-123", ip_address="10.0.0.1")
    with pytest.raises(RateLimited):
        await services.sessions.login("sam@example.com", SECRET, ip_address="10.0.0.1")


@pytest.mark.asyncio
async def test_successful_login_resets_identifier_bucket(services, register_member):
    await register_member("sam@example.com")

    for _ in range(4):
        with pytest.raises(InvalidCredentials):
            await services.sessions.login("sam@example.com", "wrong-secret-123")
    await services.sessions.login("sam@example.com", SECRET)
    for _ in range(5):
        with pytest.raises(InvalidCredentials):
            await services.sessions.login("sam@example.com", "wrong-secret-123")


def redis_store(redis_client):
    manager = MagicMock()
    manager.get_redis = AsyncMock(return_value=redis_client)
    return RedisSessionStore(manager, "spark:session:")


def make_session(hours=24):
    now = datetime.now(timezone.utc)
    return SessionDocument(member_id="mem_1", created_at=now, expires_at=now + timedelta(hours=hours))


@pytest.mark.asyncio
async def test_redis_store_sets_ttl_from_expiry():
    redis_client = AsyncMock()
    store = redis_store(redis_client)

    await store.put("digest", make_session())

    key, ttl, payload = redis_client.setex.await_args.args
    assert key == "spark:session:digest"
    assert 86000 < ttl <= 86400
    assert json.loads(payload)["member_id"] == "mem_1"


@pytest.mark.asyncio
async def test_redis_store_round_trip_and_delete():
    session = make_session()
    redis_client = AsyncMock()
    redis_client.get.return_value = session.model_dump_json()
    redis_client.delete.return_value = 1
    store = redis_store(redis_client)

    loaded = await store.get("digest")
    assert loaded.member_id == "mem_1"
    assert await store.delete("digest") is True


@pytest.mark.asyncio
async def test_redis_store_failure_is_unavailable():
    redis_client = AsyncMock()
    redis_client.get.side_effect = RedisConnectionError("down")
    store = redis_store(redis_client)

    with pytest.raises(Unavailable):
        await store.get("digest")
