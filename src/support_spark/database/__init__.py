"""
Storage layer: repository interfaces, their in-memory and MongoDB implementations, and
session storage.
"""

from support_spark.database.manager import DatabaseManager
from support_spark.database.memory_store import (
    InMemoryConversationRepository,
    InMemoryMemberRepository,
    InMemoryRelationshipRepository,
)
from support_spark.database.mongo_store import (
    MongoConversationRepository,
    MongoMemberRepository,
    MongoRelationshipRepository,
)
from support_spark.database.repositories import ConversationRepository, MemberRepository, RelationshipRepository
from support_spark.database.session_store import InMemorySessionStore, RedisSessionStore, SessionStore

__all__ = [
    "DatabaseManager",
    "MemberRepository",
    "RelationshipRepository",
    "ConversationRepository",
    "InMemoryMemberRepository",
    "InMemoryRelationshipRepository",
    "InMemoryConversationRepository",
    "MongoMemberRepository",
    "MongoRelationshipRepository",
    "MongoConversationRepository",
    "SessionStore",
    "InMemorySessionStore",
    "RedisSessionStore",
]
