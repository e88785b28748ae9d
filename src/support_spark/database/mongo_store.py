"""
# MongoDB Repositories

Motor-backed implementations of the storage interface.

## Atomicity

- **One open relationship per pair**: open records carry an `open_key` of
  `"{owner_id}:{supporter_contact}"` covered by a unique sparse index. The key is
  `$unset` when a relationship is revoked, so a later invitation for the same pair can
  be inserted. A `DuplicateKeyError` on insert becomes `DuplicateInvitation`.
- **Compare-and-swap transitions**: `transition()` is a single `find_one_and_update`
  filtered on the expected status.
- **Message sequencing**: `allocate_sequence()` runs one `find_one_and_update` with an
  update pipeline that increments `last_sequence` and moves `last_message_at` to `now`,
  or one millisecond past the previous message if the clock has not advanced. Concurrent
  writers receive distinct sequence numbers and strictly increasing timestamps.

## Error Handling

Every driver call is wrapped by `translate_errors`: `PyMongoError` is logged and
re-raised as `Unavailable`. Nothing is retried.
"""

from datetime import datetime
import functools
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from support_spark.database.manager import (
    CONVERSATIONS_COLLECTION,
    MEMBERS_COLLECTION,
    MESSAGES_COLLECTION,
    RELATIONSHIPS_COLLECTION,
    DatabaseManager,
)
from support_spark.database.repositories import (
    ConversationRepository,
    MemberRepository,
    RelationshipRepository,
)
from support_spark.exceptions import DuplicateInvitation, DuplicateMember, Unavailable
from support_spark.managers.logging_manager import get_logger
from support_spark.models.conversation_models import Conversation, Message
from support_spark.models.member_models import MemberDocument
from support_spark.models.relationship_models import OPEN_STATUSES, RelationshipStatus, SupporterRelationship

logger = get_logger(prefix="[MongoStore]")


def translate_errors(func):
    """Re-raise driver failures from a repository coroutine as `Unavailable`."""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except PyMongoError as e:
            logger.error(f"MongoDB operation {func.__qualname__} failed: {e}")
            raise Unavailable() from e

    return wrapper


def _strip_id(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if doc is None:
        return None
    doc.pop("_id", None)
    doc.pop("open_key", None)
    return doc


def open_key(owner_id: str, supporter_contact: str) -> str:
    return f"{owner_id}:{supporter_contact}"


class MongoMemberRepository(MemberRepository):
    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager
        self.collection_name = MEMBERS_COLLECTION

    @property
    def collection(self):
        return self.db_manager.get_collection(self.collection_name)

    @translate_errors
    async def insert(self, member: MemberDocument) -> None:
        try:
            await self.collection.insert_one(member.model_dump())
        except DuplicateKeyError as e:
            raise DuplicateMember() from e

    @translate_errors
    async def get_by_id(self, member_id: str) -> Optional[MemberDocument]:
        doc = _strip_id(await self.collection.find_one({"member_id": member_id}))
        return MemberDocument(**doc) if doc else None

    @translate_errors
    async def get_by_email(self, email: str) -> Optional[MemberDocument]:
        doc = _strip_id(await self.collection.find_one({"email": email}))
        return MemberDocument(**doc) if doc else None

    @translate_errors
    async def get_many(self, member_ids: Iterable[str]) -> Dict[str, MemberDocument]:
        ids = list(set(member_ids))
        if not ids:
            return {}
        members = {}
        async for doc in self.collection.find({"member_id": {"$in": ids}}):
            member = MemberDocument(**_strip_id(doc))
            members[member.member_id] = member
        return members

    @translate_errors
    async def update_secret(self, member_id: str, hashed_secret: str, updated_at: datetime) -> bool:
        result = await self.collection.update_one(
            {"member_id": member_id},
            {"$set": {"hashed_secret": hashed_secret, "secret_updated_at": updated_at}},
        )
        return result.matched_count > 0


class MongoRelationshipRepository(RelationshipRepository):
    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager
        self.collection_name = RELATIONSHIPS_COLLECTION

    @property
    def collection(self):
        return self.db_manager.get_collection(self.collection_name)

    @translate_errors
    async def insert(self, relationship: SupporterRelationship) -> None:
        doc = relationship.model_dump(mode="python")
        doc["status"] = relationship.status.value
        if relationship.is_open:
            doc["open_key"] = open_key(relationship.owner_id, relationship.supporter_contact)
        try:
            await self.collection.insert_one(doc)
        except DuplicateKeyError as e:
            raise DuplicateInvitation() from e

    @translate_errors
    async def get(self, relationship_id: str) -> Optional[SupporterRelationship]:
        doc = _strip_id(await self.collection.find_one({"relationship_id": relationship_id}))
        return SupporterRelationship(**doc) if doc else None

    @translate_errors
    async def find_open(self, owner_id: str, supporter_contact: str) -> Optional[SupporterRelationship]:
        doc = _strip_id(await self.collection.find_one({"open_key": open_key(owner_id, supporter_contact)}))
        return SupporterRelationship(**doc) if doc else None

    async def _find(self, query: Dict[str, Any]) -> List[SupporterRelationship]:
        cursor = self.collection.find(query).sort("created_at", ASCENDING)
        return [SupporterRelationship(**_strip_id(doc)) async for doc in cursor]

    @translate_errors
    async def list_for_owner(self, owner_id: str) -> List[SupporterRelationship]:
        return await self._find({"owner_id": owner_id})

    @translate_errors
    async def list_for_supporter(self, supporter_id: str, supporter_contact: str) -> List[SupporterRelationship]:
        return await self._find(
            {
                "$or": [
                    {"supporter_id": supporter_id},
                    {"supporter_id": None, "supporter_contact": supporter_contact},
                ]
            }
        )

    @translate_errors
    async def active_supporter_ids(self, owner_id: str) -> Set[str]:
        cursor = self.collection.find(
            {"owner_id": owner_id, "status": RelationshipStatus.ACTIVE.value}, {"supporter_id": 1}
        )
        return {doc["supporter_id"] async for doc in cursor if doc.get("supporter_id")}

    @translate_errors
    async def owners_supported_by(self, supporter_id: str) -> Set[str]:
        cursor = self.collection.find(
            {"supporter_id": supporter_id, "status": RelationshipStatus.ACTIVE.value}, {"owner_id": 1}
        )
        return {doc["owner_id"] async for doc in cursor}

    @translate_errors
    async def transition(
        self, relationship_id: str, expected: RelationshipStatus, updates: Dict[str, Any]
    ) -> Optional[SupporterRelationship]:
        set_fields = {k: (v.value if isinstance(v, RelationshipStatus) else v) for k, v in updates.items()}
        update: Dict[str, Any] = {"$set": set_fields}
        new_status = updates.get("status")
        if new_status is not None and RelationshipStatus(new_status) not in OPEN_STATUSES:
            update["$unset"] = {"open_key": ""}

        doc = await self.collection.find_one_and_update(
            {"relationship_id": relationship_id, "status": expected.value},
            update,
            return_document=ReturnDocument.AFTER,
        )
        doc = _strip_id(doc)
        return SupporterRelationship(**doc) if doc else None


def allocation_pipeline(now: datetime) -> List[Dict[str, Any]]:
    """
    Update pipeline reserving the next `(last_sequence, last_message_at)`.

    `last_message_at` becomes `now`, or one millisecond past the previous message when
    the clock has not moved beyond it, so creation timestamps strictly increase.
    """
    last = "$last_message_at"
    bumped = {"$add": [last, 1]}
    return [
        {
            "$set": {
                "last_sequence": {"$add": [{"$ifNull": ["$last_sequence", 0]}, 1]},
                "last_message_at": {
                    "$cond": [
                        {"$and": [{"$eq": [{"$type": last}, "date"]}, {"$lte": [now, last]}]},
                        bumped,
                        now,
                    ]
                },
            }
        }
    ]


class MongoConversationRepository(ConversationRepository):
    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager
        self.conversations_collection = CONVERSATIONS_COLLECTION
        self.messages_collection = MESSAGES_COLLECTION

    @property
    def conversations(self):
        return self.db_manager.get_collection(self.conversations_collection)

    @property
    def messages(self):
        return self.db_manager.get_collection(self.messages_collection)

    @translate_errors
    async def insert(self, conversation: Conversation) -> None:
        await self.conversations.insert_one(conversation.model_dump())

    @translate_errors
    async def get(self, conversation_id: str) -> Optional[Conversation]:
        doc = _strip_id(await self.conversations.find_one({"conversation_id": conversation_id}))
        return Conversation(**doc) if doc else None

    @translate_errors
    async def list_for_owners(self, owner_ids: Iterable[str]) -> List[Conversation]:
        owners = list(set(owner_ids))
        if not owners:
            return []
        cursor = self.conversations.find({"owner_id": {"$in": owners}}).sort("created_at", DESCENDING)
        return [Conversation(**_strip_id(doc)) async for doc in cursor]

    @translate_errors
    async def allocate_sequence(self, conversation_id: str, now: datetime) -> Optional[Tuple[int, datetime]]:
        doc = await self.conversations.find_one_and_update(
            {"conversation_id": conversation_id},
            allocation_pipeline(now),
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            return None
        return doc["last_sequence"], doc["last_message_at"]

    @translate_errors
    async def insert_message(self, message: Message) -> None:
        doc = message.model_dump()
        doc["role"] = message.role.value
        await self.messages.insert_one(doc)

    @translate_errors
    async def get_message(self, conversation_id: str, message_id: str) -> Optional[Message]:
        doc = _strip_id(await self.messages.find_one({"conversation_id": conversation_id, "message_id": message_id}))
        return Message(**doc) if doc else None

    @translate_errors
    async def list_messages(self, conversation_id: str) -> List[Message]:
        cursor = self.messages.find({"conversation_id": conversation_id}).sort(
            [("created_at", ASCENDING), ("sequence", ASCENDING)]
        )
        return [Message(**_strip_id(doc)) async for doc in cursor]
