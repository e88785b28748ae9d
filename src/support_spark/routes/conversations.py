"""
# Conversation Routes

All endpoints require a session. Access to a conversation is re-derived from the
owner's active supporters on every request.

| Method | Path | Result |
|--------|------|--------|
| POST | `/api/conversations` | 201 + conversation |
| GET | `/api/conversations` | 200 + owned and supported conversations |
| GET | `/api/conversations/{id}` | 200; 403, 404 |
| GET | `/api/conversations/{id}/messages` | 200 + ordered messages; 403, 404 |
| POST | `/api/conversations/{id}/messages` | 201 + message; 400, 403, 404 |
| POST | `/api/conversations/{id}/images` | 201 + image URLs (owner only); 400, 403, 404 |
| GET | `/api/conversations/{id}/images/{filename}` | 200 + image; 403, 404 |
"""

from typing import List

from fastapi import APIRouter, Depends, File, UploadFile, status
from fastapi.responses import FileResponse

from support_spark.container import ServiceContainer
from support_spark.models import (
    ConversationResponse,
    CreateConversationRequest,
    ImageUploadResponse,
    MessageListResponse,
    MessageResponse,
    PostMessageRequest,
)
from support_spark.routes.dependencies import get_current_member_id, get_services
from support_spark.services.image_service import ImageUpload

router = APIRouter(prefix="/api/conversations", tags=["Conversations"])


@router.post("", response_model=ConversationResponse, status_code=status.HTTP_201_CREATED)
async def create_conversation(
    payload: CreateConversationRequest,
    member_id: str = Depends(get_current_member_id),
    services: ServiceContainer = Depends(get_services),
):
    conversation = await services.conversations.create_conversation(
        member_id, payload.title, payload.initial_message
    )
    return await services.conversations.get_conversation(conversation.conversation_id, member_id)


@router.get("", response_model=List[ConversationResponse])
async def list_conversations(
    member_id: str = Depends(get_current_member_id),
    services: ServiceContainer = Depends(get_services),
):
    return await services.conversations.list_conversations_for(member_id)


@router.get("/{conversation_id}", response_model=ConversationResponse)
async def get_conversation(
    conversation_id: str,
    member_id: str = Depends(get_current_member_id),
    services: ServiceContainer = Depends(get_services),
):
    return await services.conversations.get_conversation(conversation_id, member_id)


@router.get("/{conversation_id}/messages", response_model=MessageListResponse)
async def list_messages(
    conversation_id: str,
    member_id: str = Depends(get_current_member_id),
    services: ServiceContainer = Depends(get_services),
):
    messages = await services.conversations.list_messages(conversation_id, member_id)
    return MessageListResponse(
        conversation_id=conversation_id,
        messages=await services.conversations.describe_messages(messages),
    )


@router.post("/{conversation_id}/messages", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def post_message(
    conversation_id: str,
    payload: PostMessageRequest,
    member_id: str = Depends(get_current_member_id),
    services: ServiceContainer = Depends(get_services),
):
    message = await services.conversations.post_message(
        conversation_id, member_id, payload.body, payload.role, payload.parent_message_id, payload.images
    )
    described = await services.conversations.describe_messages([message])
    return described[0]


@router.post("/{conversation_id}/images", response_model=ImageUploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_images(
    conversation_id: str,
    images: List[UploadFile] = File(..., description="JPEG, PNG, GIF or WebP files"),
    member_id: str = Depends(get_current_member_id),
    services: ServiceContainer = Depends(get_services),
):
    """
    Upload images to attach to a journey update.

    **Owner Only**

    Returns URLs to pass as `images` when posting a message. Files larger than
    `IMAGE_MAX_BYTES` are rejected without being read in full.
    """
    limit = services.settings.IMAGE_MAX_BYTES + 1
    uploads = [
        ImageUpload(upload.filename or "", upload.content_type or "", await upload.read(limit))
        for upload in images
    ]
    urls = await services.images.upload_images(conversation_id, member_id, uploads)
    return ImageUploadResponse(images=urls)


@router.get("/{conversation_id}/images/{filename}", response_class=FileResponse)
async def get_image(
    conversation_id: str,
    filename: str,
    member_id: str = Depends(get_current_member_id),
    services: ServiceContainer = Depends(get_services),
):
    path, media_type = await services.images.open_image(conversation_id, filename, member_id)
    return FileResponse(path=str(path), media_type=media_type)
