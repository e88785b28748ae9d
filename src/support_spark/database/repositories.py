"""
# Storage Interface

Abstract repositories the core services depend on. The core never talks to a driver
directly; it receives one implementation of each repository when the service container
is built.

Implementations:
- `memory_store`: process-local, used for development and tests.
- `mongo_store`: MongoDB via Motor.

Contract shared by all implementations:
- Driver failures surface as `Unavailable`; nothing is retried here.
- `RelationshipRepository.insert` enforces at most one open (pending or active)
  relationship per `(owner_id, supporter_contact)` and raises `DuplicateInvitation`.
- `RelationshipRepository.transition` is compare-and-swap: it commits only while the
  stored status still equals `expected`, otherwise returns `None`.
- `ConversationRepository.allocate_sequence` atomically reserves the next message
  sequence number and a creation timestamp strictly later than the previous one.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from support_spark.models.conversation_models import Conversation, Message
from support_spark.models.member_models import MemberDocument
from support_spark.models.relationship_models import RelationshipStatus, SupporterRelationship


class MemberRepository(ABC):
    @abstractmethod
    async def insert(self, member: MemberDocument) -> None:
        """Store a new member. Raises `DuplicateMember` if the email is taken."""

    @abstractmethod
    async def get_by_id(self, member_id: str) -> Optional[MemberDocument]: ...

    @abstractmethod
    async def get_by_email(self, email: str) -> Optional[MemberDocument]: ...

    @abstractmethod
    async def get_many(self, member_ids: Iterable[str]) -> Dict[str, MemberDocument]: ...

    @abstractmethod
    async def update_secret(self, member_id: str, hashed_secret: str, updated_at: datetime) -> bool: ...


class RelationshipRepository(ABC):
    @abstractmethod
    async def insert(self, relationship: SupporterRelationship) -> None:
        """Store a new relationship. Raises `DuplicateInvitation` if an open one exists for the pair."""

    @abstractmethod
    async def get(self, relationship_id: str) -> Optional[SupporterRelationship]: ...

    @abstractmethod
    async def find_open(self, owner_id: str, supporter_contact: str) -> Optional[SupporterRelationship]: ...

    @abstractmethod
    async def list_for_owner(self, owner_id: str) -> List[SupporterRelationship]: ...

    @abstractmethod
    async def list_for_supporter(self, supporter_id: str, supporter_contact: str) -> List[SupporterRelationship]:
        """Relationships bound to `supporter_id`, plus unbound ones addressed to `supporter_contact`."""

    @abstractmethod
    async def active_supporter_ids(self, owner_id: str) -> Set[str]: ...

    @abstractmethod
    async def owners_supported_by(self, supporter_id: str) -> Set[str]: ...

    @abstractmethod
    async def transition(
        self, relationship_id: str, expected: RelationshipStatus, updates: Dict[str, Any]
    ) -> Optional[SupporterRelationship]:
        """Apply `updates` only if the stored status is still `expected`; return the new record or `None`."""


class ConversationRepository(ABC):
    @abstractmethod
    async def insert(self, conversation: Conversation) -> None: ...

    @abstractmethod
    async def get(self, conversation_id: str) -> Optional[Conversation]: ...

    @abstractmethod
    async def list_for_owners(self, owner_ids: Iterable[str]) -> List[Conversation]: ...

    @abstractmethod
    async def allocate_sequence(self, conversation_id: str, now: datetime) -> Optional[Tuple[int, datetime]]:
        """Reserve `(sequence, created_at)` for the next message, or `None` if the conversation is gone."""

    @abstractmethod
    async def insert_message(self, message: Message) -> None: ...

    @abstractmethod
    async def get_message(self, conversation_id: str, message_id: str) -> Optional[Message]: ...

    @abstractmethod
    async def list_messages(self, conversation_id: str) -> List[Message]:
        """Messages ordered by `(created_at, sequence)`."""
