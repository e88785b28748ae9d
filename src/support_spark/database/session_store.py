"""
Session storage.

Sessions are keyed by the SHA-256 digest of the bearer token, never the token itself,
so a leaked store does not leak usable credentials. Both backends enforce the
absolute expiry recorded on the session: the in-memory store checks `expires_at` on
read and prunes expired entries on write, Redis additionally sets a TTL so expired
keys are evicted.
"""

from abc import ABC, abstractmethod
import asyncio
from datetime import datetime, timezone
import json
from typing import Dict, Optional

from redis.exceptions import RedisError

from support_spark.exceptions import Unavailable
from support_spark.managers.logging_manager import get_logger
from support_spark.managers.redis_manager import RedisManager
from support_spark.models.member_models import SessionDocument

logger = get_logger(prefix="[SessionStore]")


class SessionStore(ABC):
    @abstractmethod
    async def put(self, token_digest: str, session: SessionDocument) -> None: ...

    @abstractmethod
    async def get(self, token_digest: str) -> Optional[SessionDocument]:
        """Return the session, or `None` if unknown or expired."""

    @abstractmethod
    async def delete(self, token_digest: str) -> bool:
        """Remove the session. Returns `False` if nothing was stored."""


class InMemorySessionStore(SessionStore):
    def __init__(self):
        self._sessions: Dict[str, SessionDocument] = {}
        self._lock = asyncio.Lock()

    async def put(self, token_digest: str, session: SessionDocument) -> None:
        now = datetime.now(timezone.utc)
        async with self._lock:
            # Abandoned sessions are never read again; drop them here.
            expired = [digest for digest, stored in self._sessions.items() if now >= stored.expires_at]
            for digest in expired:
                del self._sessions[digest]
            self._sessions[token_digest] = session.model_copy()

    async def get(self, token_digest: str) -> Optional[SessionDocument]:
        session = self._sessions.get(token_digest)
        if session is None:
            return None
        if datetime.now(timezone.utc) >= session.expires_at:
            async with self._lock:
                self._sessions.pop(token_digest, None)
            return None
        return session.model_copy()

    async def delete(self, token_digest: str) -> bool:
        async with self._lock:
            return self._sessions.pop(token_digest, None) is not None


class RedisSessionStore(SessionStore):
    def __init__(self, redis_manager: RedisManager, key_prefix: str):
        self.redis_manager = redis_manager
        self.key_prefix = key_prefix

    def _key(self, token_digest: str) -> str:
        return f"{self.key_prefix}{token_digest}"

    async def put(self, token_digest: str, session: SessionDocument) -> None:
        ttl = int((session.expires_at - datetime.now(timezone.utc)).total_seconds())
        if ttl <= 0:
            return
        try:
            redis = await self.redis_manager.get_redis()
            await redis.setex(self._key(token_digest), ttl, session.model_dump_json())
        except RedisError as e:
            logger.error(f"Failed to store session: {e}")
            raise Unavailable() from e

    async def get(self, token_digest: str) -> Optional[SessionDocument]:
        try:
            redis = await self.redis_manager.get_redis()
            raw = await redis.get(self._key(token_digest))
        except RedisError as e:
            logger.error(f"Failed to read session: {e}")
            raise Unavailable() from e
        if raw is None:
            return None
        session = SessionDocument(**json.loads(raw))
        if datetime.now(timezone.utc) >= session.expires_at:
            return None
        return session

    async def delete(self, token_digest: str) -> bool:
        try:
            redis = await self.redis_manager.get_redis()
            return bool(await redis.delete(self._key(token_digest)))
        except RedisError as e:
            logger.error(f"Failed to delete session: {e}")
            raise Unavailable() from e
