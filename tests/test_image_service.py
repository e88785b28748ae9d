import pytest

from support_spark.exceptions import InvalidInput, NotAMember, NotAuthorized, NotFound
from support_spark.models import MessageRole
from support_spark.services.image_service import ImageUpload

PNG = ImageUpload("photo.png", "image/png", b"\x89PNG\r\n\x1a\nfake-image-bytes")


@pytest.mark.asyncio
async def test_owner_uploads_and_attaches_images(services, network, test_settings):
    owner, supporter, _, _, conversation = await network()
    cid = conversation.conversation_id

    urls = await services.images.upload_images(cid, owner.member_id, [PNG])

    assert len(urls) == 1
    assert urls[0].startswith(f"/api/conversations/{cid}/images/img_")
    assert urls[0].endswith(".png")
    filename = urls[0].rsplit("/", 1)[1]
    stored = services.images.upload_dir / cid / filename
    assert stored.read_bytes() == PNG.data
    assert str(stored).startswith(test_settings.UPLOAD_DIR)

    message = await services.conversations.post_message(
        cid, owner.member_id, "New haircut!", MessageRole.UPDATE, images=urls
    )
    assert message.images == urls

    path, media_type = await services.images.open_image(cid, filename, supporter.member_id)
    assert path == stored
    assert media_type == "image/png"


@pytest.mark.asyncio
async def test_supporter_cannot_upload(services, network):
    _, supporter, outsider, _, conversation = await network()

    with pytest.raises(NotAuthorized):
        await services.images.upload_images(conversation.conversation_id, supporter.member_id, [PNG])
    with pytest.raises(NotAMember):
        await services.images.upload_images(conversation.conversation_id, outsider.member_id, [PNG])
    assert not (services.images.upload_dir / conversation.conversation_id).exists()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "upload",
    [
        ImageUpload("notes.txt", "text/plain", b"hello"),
        ImageUpload("photo.png", "image/jpeg", b"data"),
        ImageUpload("photo.exe", "image/png", b"data"),
        ImageUpload("empty.png", "image/png", b""),
    ],
)
async def test_rejects_wrong_type_or_empty(services, network, upload):
    owner, _, _, _, conversation = await network()
    with pytest.raises(InvalidInput):
        await services.images.upload_images(conversation.conversation_id, owner.member_id, [upload])


@pytest.mark.asyncio
async def test_rejects_oversized_and_too_many(services, network, test_settings):
    owner, _, _, _, conversation = await network()
    cid = conversation.conversation_id
    too_big = ImageUpload("big.jpg", "image/jpeg", b"x" * (test_settings.IMAGE_MAX_BYTES + 1))

    with pytest.raises(InvalidInput):
        await services.images.upload_images(cid, owner.member_id, [PNG, too_big])
    with pytest.raises(InvalidInput):
        await services.images.upload_images(cid, owner.member_id, [PNG] * (test_settings.IMAGE_MAX_FILES + 1))
    with pytest.raises(InvalidInput):
        await services.images.upload_images(cid, owner.member_id, [])
    assert not (services.images.upload_dir / cid).exists()


@pytest.mark.asyncio
async def test_revoked_supporter_loses_image_access(services, network):
    owner, supporter, outsider, relationship, conversation = await network()
    cid = conversation.conversation_id
    (url,) = await services.images.upload_images(cid, owner.member_id, [PNG])
    filename = url.rsplit("/", 1)[1]

    with pytest.raises(NotAMember):
        await services.images.open_image(cid, filename, outsider.member_id)

    await services.relationships.revoke(relationship.relationship_id, owner.member_id)
    with pytest.raises(NotAMember):
        await services.images.open_image(cid, filename, supporter.member_id)


@pytest.mark.asyncio
@pytest.mark.parametrize("filename", ["../secret.png", "img_000000000000.png", "photo.png"])
async def test_unknown_or_malformed_filenames_are_not_found(services, network, filename):
    owner, _, _, _, conversation = await network()
    with pytest.raises(NotFound):
        await services.images.open_image(conversation.conversation_id, filename, owner.member_id)


@pytest.mark.asyncio
async def test_message_images_must_belong_to_conversation(services, network):
    owner, _, _, _, conversation = await network()
    other = await services.conversations.create_conversation(owner.member_id, "Another")
    (foreign,) = await services.images.upload_images(other.conversation_id, owner.member_id, [PNG])

    with pytest.raises(InvalidInput):
        await services.conversations.post_message(
            conversation.conversation_id, owner.member_id, "Look", MessageRole.UPDATE, images=[foreign]
        )
    with pytest.raises(InvalidInput):
        await services.conversations.post_message(
            conversation.conversation_id, owner.member_id, "Look", images=["https://example.com/cat.png"]
        )
