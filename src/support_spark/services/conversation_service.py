"""
# Conversation Engine

Conversations and their append-only message threads.

## Access

Read and post share one rule: the requester must be the conversation owner or one of
the owner's active supporters *right now*. Membership is never stored; it is derived
from the relationship ledger on every call, so a revocation takes effect on the next
request without touching any conversation or message.

Only the owner posts journey `update`s; supporters post `response`s. Messages may carry
images previously uploaded to the same conversation (see `image_service`).

## Ordering

Appends to one conversation are serialised by a per-conversation `asyncio.Lock`, and the
storage layer hands out `(sequence, created_at)` atomically. `created_at` strictly
increases: when the clock has not moved past the previous message it is set one
millisecond after it. Messages are read back ordered by `(created_at, sequence)`.
Different conversations never wait on each other.
"""

import asyncio
from datetime import datetime, timezone
import re
from typing import Dict, Iterable, List, Optional, Tuple
import uuid
import weakref

from support_spark.config import Settings
from support_spark.database.repositories import ConversationRepository
from support_spark.exceptions import InvalidInput, NotAMember, NotAuthorized, NotFound
from support_spark.managers.logging_manager import get_logger
from support_spark.models import (
    Conversation,
    ConversationResponse,
    CreateConversationRequest,
    Message,
    MessageResponse,
    MessageRole,
    PostMessageRequest,
    validate_input,
)
from support_spark.services.credential_service import CredentialService
from support_spark.services.relationship_service import RelationshipService
from support_spark.utils.logging_utils import log_security_event

logger = get_logger(prefix="[ConversationEngine]")

IMAGE_FILENAME_PATTERN = re.compile(r"^img_[0-9a-f]{12}\.(jpg|jpeg|png|gif|webp)$")


def image_url(conversation_id: str, filename: str) -> str:
    return f"/api/conversations/{conversation_id}/images/{filename}"


class ConversationService:
    def __init__(
        self,
        conversations: ConversationRepository,
        relationships: RelationshipService,
        credentials: CredentialService,
        settings: Settings,
    ):
        self.conversations = conversations
        self.relationships = relationships
        self.credentials = credentials
        self.settings = settings
        self._append_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _append_lock(self, conversation_id: str) -> asyncio.Lock:
        lock = self._append_locks.get(conversation_id)
        if lock is None:
            lock = asyncio.Lock()
            self._append_locks[conversation_id] = lock
        return lock

    async def _load(self, conversation_id: str) -> Conversation:
        conversation = await self.conversations.get(conversation_id)
        if conversation is None:
            raise NotFound("Conversation not found")
        return conversation

    async def _require_member(self, conversation: Conversation, requester_id: str) -> bool:
        """Return whether the requester is the owner; raise `NotAMember` if they have no access at all."""
        if requester_id == conversation.owner_id:
            return True
        if requester_id in await self.relationships.list_supporters_for(conversation.owner_id):
            return False
        log_security_event(
            event_type="conversation_access_denied",
            user_id=requester_id,
            success=False,
            details={"conversation_id": conversation.conversation_id},
        )
        raise NotAMember()

    async def require_access(self, conversation_id: str, member_id: str) -> Tuple[Conversation, bool]:
        """
        Load a conversation the member may access; the flag tells whether they own it.

        Raises:
            NotFound: Unknown conversation.
            NotAMember: Neither the owner nor a current active supporter.
        """
        conversation = await self._load(conversation_id)
        return conversation, await self._require_member(conversation, member_id)

    def _check_images(self, conversation_id: str, images: List[str]) -> None:
        if len(images) > self.settings.IMAGE_MAX_FILES:
            raise InvalidInput(
                f"A message can carry at most {self.settings.IMAGE_MAX_FILES} images", field="images"
            )
        prefix = image_url(conversation_id, "")
        for url in images:
            if not url.startswith(prefix) or not IMAGE_FILENAME_PATTERN.match(url[len(prefix):]):
                raise InvalidInput("Images must be uploaded to this conversation first", field="images")

    async def create_conversation(
        self, owner_id: str, title: Optional[str] = None, initial_message: Optional[str] = None
    ) -> Conversation:
        """
        Start a conversation owned by `owner_id`, optionally with a first journey update.

        Raises:
            InvalidInput: Title or initial message too long.
        """
        request = validate_input(CreateConversationRequest, title=title, initial_message=initial_message)
        title = request.title or self.settings.DEFAULT_CONVERSATION_TITLE
        if len(title) > self.settings.TITLE_MAX_LENGTH:
            raise InvalidInput(
                f"Title must be at most {self.settings.TITLE_MAX_LENGTH} characters", field="title"
            )
        if request.initial_message and len(request.initial_message) > self.settings.MESSAGE_MAX_LENGTH:
            raise InvalidInput(
                f"Message must be at most {self.settings.MESSAGE_MAX_LENGTH} characters", field="initial_message"
            )

        conversation = Conversation(
            conversation_id=f"conv_{uuid.uuid4().hex[:12]}",
            owner_id=owner_id,
            title=title,
            created_at=datetime.now(timezone.utc),
        )
        await self.conversations.insert(conversation)
        logger.info(f"Member {owner_id} started conversation {conversation.conversation_id}")

        if request.initial_message:
            await self.post_message(
                conversation.conversation_id, owner_id, request.initial_message, MessageRole.UPDATE
            )
            conversation = await self._load(conversation.conversation_id)
        return conversation

    async def post_message(
        self,
        conversation_id: str,
        author_id: str,
        body: str,
        role: MessageRole = MessageRole.RESPONSE,
        parent_message_id: Optional[str] = None,
        images: Optional[List[str]] = None,
    ) -> Message:
        """
        Append a message.

        Raises:
            InvalidInput: Empty or oversized body, unknown role, or an image URL that does not
                belong to this conversation.
            NotFound: Unknown conversation, or `parent_message_id` not in this conversation.
            NotAMember: Author is neither the owner nor a current active supporter.
            NotAuthorized: A supporter tried to post a journey update.
        """
        request = validate_input(
            PostMessageRequest, body=body, role=role, parent_message_id=parent_message_id, images=images or []
        )
        if len(request.body) > self.settings.MESSAGE_MAX_LENGTH:
            raise InvalidInput(
                f"Message must be at most {self.settings.MESSAGE_MAX_LENGTH} characters", field="body"
            )
        self._check_images(conversation_id, request.images)

        conversation = await self._load(conversation_id)
        is_owner = await self._require_member(conversation, author_id)
        if request.role == MessageRole.UPDATE and not is_owner:
            raise NotAuthorized("Only the conversation owner can post journey updates")
        if request.parent_message_id is not None:
            parent = await self.conversations.get_message(conversation_id, request.parent_message_id)
            if parent is None:
                raise NotFound("Parent message not found in this conversation")

        async with self._append_lock(conversation_id):
            # A revocation may have landed while this post waited for the lock.
            await self._require_member(conversation, author_id)
            allocated = await self.conversations.allocate_sequence(conversation_id, datetime.now(timezone.utc))
            if allocated is None:
                raise NotFound("Conversation not found")
            sequence, created_at = allocated
            message = Message(
                message_id=f"msg_{uuid.uuid4().hex[:12]}",
                conversation_id=conversation_id,
                author_id=author_id,
                body=request.body,
                role=request.role,
                created_at=created_at,
                sequence=sequence,
                parent_message_id=request.parent_message_id,
                images=request.images,
            )
            await self.conversations.insert_message(message)

        logger.debug(f"Message {message.message_id} appended to {conversation_id} at sequence {sequence}")
        return message

    async def list_messages(self, conversation_id: str, requester_id: str) -> List[Message]:
        """
        Messages in `(created_at, sequence)` order.

        Raises:
            NotFound: Unknown conversation.
            NotAMember: Requester is neither the owner nor a current active supporter.
        """
        conversation = await self._load(conversation_id)
        await self._require_member(conversation, requester_id)
        return await self.conversations.list_messages(conversation_id)

    async def get_conversation(self, conversation_id: str, requester_id: str) -> ConversationResponse:
        conversation = await self._load(conversation_id)
        is_owner = await self._require_member(conversation, requester_id)
        names = await self._display_names([conversation.owner_id])
        return ConversationResponse(
            conversation=conversation,
            owner_name=names.get(conversation.owner_id),
            is_owner=is_owner,
        )

    async def list_conversations_for(self, member_id: str) -> List[ConversationResponse]:
        """Conversations the member owns plus those of owners they actively support."""
        owners = {member_id} | await self.relationships.owners_supported_by(member_id)
        conversations = await self.conversations.list_for_owners(owners)
        names = await self._display_names(owners)
        return [
            ConversationResponse(
                conversation=c,
                owner_name=names.get(c.owner_id),
                is_owner=c.owner_id == member_id,
            )
            for c in conversations
        ]

    async def describe_messages(self, messages: List[Message]) -> List[MessageResponse]:
        """Attach author display names to messages."""
        names = await self._display_names(m.author_id for m in messages)
        return [MessageResponse(message=m, author_name=names.get(m.author_id)) for m in messages]

    async def _display_names(self, member_ids: Iterable[str]) -> Dict[str, str]:
        members = await self.credentials.get_members(member_ids)
        return {member_id: member.display_name for member_id, member in members.items()}
