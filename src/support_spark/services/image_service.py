"""
# Conversation Images

Owners attach photos to their journey updates by uploading them first and then posting
a message that lists the returned URLs.

- **Upload**: only the conversation owner. At most `IMAGE_MAX_FILES` files per request,
  each at most `IMAGE_MAX_BYTES`, and only JPEG, PNG, GIF or WebP where the declared
  content type and the file extension agree. The whole batch is validated before
  anything is written.
- **Storage**: `UPLOAD_DIR/<conversation_id>/img_<hex><ext>`; client filenames are never
  used on disk.
- **Serving**: gated by the same derived membership as reading messages, so a revoked
  supporter loses access to images together with the thread.
"""

import asyncio
from pathlib import Path
from typing import List, NamedTuple, Sequence, Tuple
import uuid

from support_spark.config import Settings
from support_spark.exceptions import InvalidInput, NotAuthorized, NotFound, Unavailable
from support_spark.managers.logging_manager import get_logger
from support_spark.services.conversation_service import IMAGE_FILENAME_PATTERN, ConversationService, image_url
from support_spark.utils.logging_utils import log_security_event

logger = get_logger(prefix="[ImageService]")

# Content type -> accepted extensions
IMAGE_TYPES = {
    "image/jpeg": (".jpg", ".jpeg"),
    "image/png": (".png",),
    "image/gif": (".gif",),
    "image/webp": (".webp",),
}

MEDIA_TYPES = {ext: content_type for content_type, exts in IMAGE_TYPES.items() for ext in exts}


class ImageUpload(NamedTuple):
    filename: str
    content_type: str
    data: bytes


class ImageService:
    def __init__(self, conversations: ConversationService, settings: Settings):
        self.conversations = conversations
        self.settings = settings
        self.upload_dir = Path(settings.UPLOAD_DIR)

    def _validate(self, upload: ImageUpload) -> str:
        ext = Path(upload.filename).suffix.lower()
        if ext not in IMAGE_TYPES.get(upload.content_type, ()):
            raise InvalidInput("Only JPEG, PNG, GIF and WebP images are allowed", field="images")
        if not upload.data:
            raise InvalidInput("Image file is empty", field="images")
        if len(upload.data) > self.settings.IMAGE_MAX_BYTES:
            raise InvalidInput(
                f"Images must be at most {self.settings.IMAGE_MAX_BYTES} bytes", field="images"
            )
        return ext

    async def upload_images(
        self, conversation_id: str, member_id: str, uploads: Sequence[ImageUpload]
    ) -> List[str]:
        """
        Store images for a conversation and return the URLs to attach to a message.

        Raises:
            NotFound: Unknown conversation.
            NotAMember: The member has no access to the conversation.
            NotAuthorized: The member is a supporter, not the owner.
            InvalidInput: No files, too many files, or a file of the wrong type or size.
            Unavailable: The upload directory could not be written.
        """
        _, is_owner = await self.conversations.require_access(conversation_id, member_id)
        if not is_owner:
            log_security_event(
                event_type="image_upload_denied",
                user_id=member_id,
                success=False,
                details={"conversation_id": conversation_id},
            )
            raise NotAuthorized("Only the conversation owner can upload images")

        if not uploads:
            raise InvalidInput("No images provided", field="images")
        if len(uploads) > self.settings.IMAGE_MAX_FILES:
            raise InvalidInput(
                f"At most {self.settings.IMAGE_MAX_FILES} images can be uploaded at once", field="images"
            )
        extensions = [self._validate(upload) for upload in uploads]

        directory = self.upload_dir / conversation_id
        stored: List[Tuple[str, bytes]] = [
            (f"img_{uuid.uuid4().hex[:12]}{ext}", upload.data) for ext, upload in zip(extensions, uploads)
        ]
        try:
            await asyncio.to_thread(directory.mkdir, parents=True, exist_ok=True)
            for filename, data in stored:
                await asyncio.to_thread((directory / filename).write_bytes, data)
        except OSError as e:
            logger.error(f"Failed to store images for {conversation_id}: {e}")
            raise Unavailable() from e

        logger.info(f"Stored {len(stored)} image(s) for conversation {conversation_id}")
        return [image_url(conversation_id, filename) for filename, _ in stored]

    async def open_image(self, conversation_id: str, filename: str, member_id: str) -> Tuple[Path, str]:
        """
        Resolve a stored image for a member allowed to read the conversation.

        Returns:
            The file path and its media type.

        Raises:
            NotFound: Unknown conversation or image.
            NotAMember: The member has no access to the conversation.
        """
        await self.conversations.require_access(conversation_id, member_id)
        if not IMAGE_FILENAME_PATTERN.match(filename):
            raise NotFound("Image not found")
        path = self.upload_dir / conversation_id / filename
        if not await asyncio.to_thread(path.is_file):
            raise NotFound("Image not found")
        return path, MEDIA_TYPES[path.suffix]
