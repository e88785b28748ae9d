"""
In-memory repository implementations.

Used when `STORAGE_BACKEND=memory` and as the test double for the core services. Each
repository guards its state with one `asyncio.Lock`, which makes inserts, uniqueness
checks and compare-and-swap transitions atomic within the event loop. Records are
copied on the way in and out so callers can never mutate stored state.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from support_spark.database.repositories import (
    ConversationRepository,
    MemberRepository,
    RelationshipRepository,
)
from support_spark.exceptions import DuplicateInvitation, DuplicateMember
from support_spark.models.conversation_models import Conversation, Message
from support_spark.models.member_models import MemberDocument
from support_spark.models.relationship_models import RelationshipStatus, SupporterRelationship

# Smallest step between two creation timestamps; matches BSON date precision.
MESSAGE_TICK = timedelta(milliseconds=1)


class InMemoryMemberRepository(MemberRepository):
    def __init__(self):
        self._members: Dict[str, MemberDocument] = {}
        self._by_email: Dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def insert(self, member: MemberDocument) -> None:
        async with self._lock:
            if member.email in self._by_email:
                raise DuplicateMember()
            self._members[member.member_id] = member.model_copy()
            self._by_email[member.email] = member.member_id

    async def get_by_id(self, member_id: str) -> Optional[MemberDocument]:
        member = self._members.get(member_id)
        return member.model_copy() if member else None

    async def get_by_email(self, email: str) -> Optional[MemberDocument]:
        member_id = self._by_email.get(email)
        return await self.get_by_id(member_id) if member_id else None

    async def get_many(self, member_ids: Iterable[str]) -> Dict[str, MemberDocument]:
        return {mid: self._members[mid].model_copy() for mid in set(member_ids) if mid in self._members}

    async def update_secret(self, member_id: str, hashed_secret: str, updated_at: datetime) -> bool:
        async with self._lock:
            member = self._members.get(member_id)
            if member is None:
                return False
            self._members[member_id] = member.model_copy(
                update={"hashed_secret": hashed_secret, "secret_updated_at": updated_at}
            )
            return True


class InMemoryRelationshipRepository(RelationshipRepository):
    def __init__(self):
        self._relationships: Dict[str, SupporterRelationship] = {}
        self._lock = asyncio.Lock()

    def _open_for(self, owner_id: str, supporter_contact: str) -> Optional[SupporterRelationship]:
        for rel in self._relationships.values():
            if rel.owner_id == owner_id and rel.supporter_contact == supporter_contact and rel.is_open:
                return rel
        return None

    async def insert(self, relationship: SupporterRelationship) -> None:
        async with self._lock:
            if self._open_for(relationship.owner_id, relationship.supporter_contact):
                raise DuplicateInvitation()
            self._relationships[relationship.relationship_id] = relationship.model_copy()

    async def get(self, relationship_id: str) -> Optional[SupporterRelationship]:
        rel = self._relationships.get(relationship_id)
        return rel.model_copy() if rel else None

    async def find_open(self, owner_id: str, supporter_contact: str) -> Optional[SupporterRelationship]:
        rel = self._open_for(owner_id, supporter_contact)
        return rel.model_copy() if rel else None

    async def list_for_owner(self, owner_id: str) -> List[SupporterRelationship]:
        rels = [r.model_copy() for r in self._relationships.values() if r.owner_id == owner_id]
        return sorted(rels, key=lambda r: r.created_at)

    async def list_for_supporter(self, supporter_id: str, supporter_contact: str) -> List[SupporterRelationship]:
        rels = [
            r.model_copy()
            for r in self._relationships.values()
            if r.supporter_id == supporter_id
            or (r.supporter_id is None and r.supporter_contact == supporter_contact)
        ]
        return sorted(rels, key=lambda r: r.created_at)

    async def active_supporter_ids(self, owner_id: str) -> Set[str]:
        return {
            r.supporter_id
            for r in self._relationships.values()
            if r.owner_id == owner_id and r.status == RelationshipStatus.ACTIVE and r.supporter_id
        }

    async def owners_supported_by(self, supporter_id: str) -> Set[str]:
        return {
            r.owner_id
            for r in self._relationships.values()
            if r.supporter_id == supporter_id and r.status == RelationshipStatus.ACTIVE
        }

    async def transition(
        self, relationship_id: str, expected: RelationshipStatus, updates: Dict[str, Any]
    ) -> Optional[SupporterRelationship]:
        async with self._lock:
            current = self._relationships.get(relationship_id)
            if current is None or current.status != expected:
                return None
            updated = current.model_copy(update=updates)
            self._relationships[relationship_id] = updated
            return updated.model_copy()


class InMemoryConversationRepository(ConversationRepository):
    def __init__(self):
        self._conversations: Dict[str, Conversation] = {}
        self._messages: Dict[str, List[Message]] = {}
        self._lock = asyncio.Lock()

    async def insert(self, conversation: Conversation) -> None:
        async with self._lock:
            self._conversations[conversation.conversation_id] = conversation.model_copy()
            self._messages.setdefault(conversation.conversation_id, [])

    async def get(self, conversation_id: str) -> Optional[Conversation]:
        conversation = self._conversations.get(conversation_id)
        return conversation.model_copy() if conversation else None

    async def list_for_owners(self, owner_ids: Iterable[str]) -> List[Conversation]:
        owners = set(owner_ids)
        found = [c.model_copy() for c in self._conversations.values() if c.owner_id in owners]
        return sorted(found, key=lambda c: c.created_at, reverse=True)

    async def allocate_sequence(self, conversation_id: str, now: datetime) -> Optional[Tuple[int, datetime]]:
        async with self._lock:
            conversation = self._conversations.get(conversation_id)
            if conversation is None:
                return None
            sequence = conversation.last_sequence + 1
            last = conversation.last_message_at
            created_at = now if last is None or now > last else last + MESSAGE_TICK
            self._conversations[conversation_id] = conversation.model_copy(
                update={"last_sequence": sequence, "last_message_at": created_at}
            )
            return sequence, created_at

    async def insert_message(self, message: Message) -> None:
        async with self._lock:
            self._messages.setdefault(message.conversation_id, []).append(message.model_copy())

    async def get_message(self, conversation_id: str, message_id: str) -> Optional[Message]:
        for message in self._messages.get(conversation_id, []):
            if message.message_id == message_id:
                return message.model_copy()
        return None

    async def list_messages(self, conversation_id: str) -> List[Message]:
        messages = [m.model_copy() for m in self._messages.get(conversation_id, [])]
        return sorted(messages, key=lambda m: (m.created_at, m.sequence))
