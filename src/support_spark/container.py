"""
# Service Container

Wires repositories, stores and services together according to `Settings`.

The container replaces module-level singletons: the application lifespan builds one,
starts it, hands it to the routes through `app.state.services`, and closes it at
shutdown. Tests build their own container over in-memory backends and pass it to
`create_app()`.

| Setting | `memory` | `mongodb` / `redis` |
|---------|----------|---------------------|
| `STORAGE_BACKEND` | in-memory repositories | Motor repositories via `DatabaseManager` |
| `SESSION_BACKEND` | in-memory session store | Redis with key TTL |
| `RATE_LIMIT_BACKEND` | in-process counters | Redis `INCR` + `EXPIRE` |
"""

import time
from typing import Dict, Optional

from support_spark.config import Settings
from support_spark.database import (
    DatabaseManager,
    InMemoryConversationRepository,
    InMemoryMemberRepository,
    InMemoryRelationshipRepository,
    InMemorySessionStore,
    MongoConversationRepository,
    MongoMemberRepository,
    MongoRelationshipRepository,
    RedisSessionStore,
)
from support_spark.managers.logging_manager import get_logger
from support_spark.managers.redis_manager import RedisManager
from support_spark.services.conversation_service import ConversationService
from support_spark.services.credential_service import CredentialService
from support_spark.services.demo_service import DemoService
from support_spark.services.image_service import ImageService
from support_spark.services.rate_limiter import (
    InMemoryRateLimitBackend,
    RateLimiter,
    RedisRateLimitBackend,
    rules_from_settings,
)
from support_spark.services.relationship_service import RelationshipService
from support_spark.services.session_service import SessionService
from support_spark.utils.logging_utils import log_application_lifecycle

logger = get_logger(prefix="[Container]")


class ServiceContainer:
    """Holds every collaborator the routes need for one application instance."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.db_manager: Optional[DatabaseManager] = None
        self.redis_manager: Optional[RedisManager] = None

        if settings.STORAGE_BACKEND == "mongodb":
            self.db_manager = DatabaseManager(settings)
            members = MongoMemberRepository(self.db_manager)
            relationships = MongoRelationshipRepository(self.db_manager)
            conversations = MongoConversationRepository(self.db_manager)
        else:
            members = InMemoryMemberRepository()
            relationships = InMemoryRelationshipRepository()
            conversations = InMemoryConversationRepository()

        if "redis" in (settings.SESSION_BACKEND, settings.RATE_LIMIT_BACKEND):
            self.redis_manager = RedisManager(settings)

        if settings.SESSION_BACKEND == "redis":
            session_store = RedisSessionStore(self.redis_manager, settings.SESSION_KEY_PREFIX)
        else:
            session_store = InMemorySessionStore()

        if settings.RATE_LIMIT_BACKEND == "redis":
            limiter_backend = RedisRateLimitBackend(self.redis_manager, settings.RATE_LIMIT_KEY_PREFIX)
        else:
            limiter_backend = InMemoryRateLimitBackend()

        self.rate_limiter = RateLimiter(limiter_backend, rules_from_settings(settings))
        self.credentials = CredentialService(members, settings)
        self.sessions = SessionService(self.credentials, session_store, self.rate_limiter, settings)
        self.relationships = RelationshipService(relationships, self.credentials, self.rate_limiter, settings)
        self.conversations = ConversationService(conversations, self.relationships, self.credentials, settings)
        self.images = ImageService(self.conversations, settings)
        self.demo = DemoService(
            self.credentials, relationships, self.conversations, self.sessions, self.rate_limiter
        )

    async def start(self):
        """Connect external backends, create indexes and seed demo data."""
        if self.db_manager is not None:
            connect_start = time.time()
            await self.db_manager.connect()
            log_application_lifecycle(
                "database_connected",
                {
                    "connection_duration": f"{time.time() - connect_start:.3f}s",
                    "database_name": self.settings.MONGODB_DATABASE,
                },
            )
            await self.db_manager.create_indexes()
            log_application_lifecycle("database_indexes_ready")

        if self.settings.DEMO_MODE:
            member, supporter = await self.demo.seed()
            log_application_lifecycle(
                "demo_data_ready", {"member_id": member.member_id, "supporter_id": supporter.member_id}
            )

    async def health(self) -> Dict[str, bool]:
        checks = {}
        if self.db_manager is not None:
            checks["mongodb"] = await self.db_manager.health_check()
        if self.redis_manager is not None:
            checks["redis"] = await self.redis_manager.health_check()
        return checks

    async def close(self):
        if self.redis_manager is not None:
            await self.redis_manager.close()
        if self.db_manager is not None:
            await self.db_manager.disconnect()
        logger.info("Service container closed")
