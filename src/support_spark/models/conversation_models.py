"""
# Conversation Models

A conversation belongs to exactly one member and holds an append-only, ordered list of
messages. Membership is never stored here: who may read or post is derived from the
owner's active supporter relationships at access time.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class MessageRole(str, Enum):
    UPDATE = "update"  # Journey update from the owner
    RESPONSE = "response"  # Encouragement or reply


class Conversation(BaseModel):
    """
    Stored conversation.

    `last_sequence` is the sequence number of the newest message and `last_message_at`
    its timestamp; both only ever increase.
    """

    conversation_id: str
    owner_id: str
    title: str
    created_at: datetime
    last_sequence: int = 0
    last_message_at: Optional[datetime] = None


class Message(BaseModel):
    """
    Immutable message entry.

    Ordered by `(created_at, sequence)`; `sequence` is unique and strictly increasing
    within a conversation.
    """

    message_id: str
    conversation_id: str
    author_id: str
    body: str
    role: MessageRole
    created_at: datetime
    sequence: int
    parent_message_id: Optional[str] = None
    images: List[str] = Field(default_factory=list, description="URLs of images uploaded to this conversation")


class CreateConversationRequest(BaseModel):
    title: Optional[str] = Field(None, description="Conversation title")
    initial_message: Optional[str] = Field(None, description="Optional first journey update")

    @field_validator("title", "initial_message")
    @classmethod
    def blank_to_none(cls, v):
        if v is None:
            return v
        v = v.strip()
        return v or None


class PostMessageRequest(BaseModel):
    """
    Request model for appending a message.

    **Validation:**
    *   **body**: Non-empty after trimming.
    *   **role**: `update` or `response`.
    *   **parent_message_id**: Optional message in the same conversation being replied to.
    *   **images**: URLs returned by the image upload endpoint of the same conversation.
    """

    body: str = Field(..., description="Message text")
    role: MessageRole = Field(MessageRole.RESPONSE, description="update | response")
    parent_message_id: Optional[str] = Field(None, description="Message being replied to")
    images: List[str] = Field(default_factory=list, description="Attached image URLs")

    @field_validator("body")
    @classmethod
    def validate_body(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Message body cannot be empty")
        return v


class MessageResponse(BaseModel):
    message: Message
    author_name: Optional[str] = None


class ConversationResponse(BaseModel):
    conversation: Conversation
    owner_name: Optional[str] = None
    is_owner: bool = False


class MessageListResponse(BaseModel):
    conversation_id: str
    messages: List[MessageResponse] = Field(default_factory=list)


class ImageUploadResponse(BaseModel):
    images: List[str] = Field(..., description="URLs to attach to a message")
