"""
# Data Models Package

Pydantic models shared by the core services, the storage layer and the API.

- **`member_models`**: members, credentials and sessions.
- **`relationship_models`**: supporter relationships and their lifecycle states.
- **`conversation_models`**: conversations and messages.

`validate_input()` is the entry-point check every core operation runs before touching
state: it validates raw arguments against a request model and turns the first pydantic
error into an `InvalidInput`.
"""

from typing import Any, Type, TypeVar

from pydantic import BaseModel, ValidationError

from support_spark.exceptions import InvalidInput

from .conversation_models import *  # noqa: F401,F403
from .member_models import *  # noqa: F401,F403
from .relationship_models import *  # noqa: F401,F403

ModelT = TypeVar("ModelT", bound=BaseModel)


def validate_input(model: Type[ModelT], **data: Any) -> ModelT:
    """
    Validate keyword arguments against `model`.

    Raises:
        InvalidInput: With the first validation error's message and field name.
    """
    try:
        return model.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or None
        raise InvalidInput(first.get("msg", "Invalid input"), field=field) from e


__all__ = [
    "validate_input",
    # Member models
    "MemberDocument",
    "MemberOut",
    "SessionDocument",
    "RegisterRequest",
    "LoginRequest",
    "ChangeSecretRequest",
    "SessionResponse",
    "DemoAccountInfo",
    "DemoInfoResponse",
    # Relationship models
    "RelationshipStatus",
    "OPEN_STATUSES",
    "SupporterRelationship",
    "InviteSupporterRequest",
    "RelationshipView",
    "SupportersOverview",
    # Conversation models
    "MessageRole",
    "Conversation",
    "Message",
    "CreateConversationRequest",
    "PostMessageRequest",
    "MessageResponse",
    "ConversationResponse",
    "MessageListResponse",
    "ImageUploadResponse",
]
