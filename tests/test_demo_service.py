import pytest

from support_spark.models import MessageRole, RelationshipStatus
from support_spark.services.demo_service import (
    DEMO_MEMBER_EMAIL,
    DEMO_MEMBER_NAME,
    DEMO_SUPPORTER_EMAIL,
    DEMO_SUPPORTER_NAME,
)


@pytest.mark.asyncio
async def test_seed_builds_network_once(services):
    member, supporter = await services.demo.seed()
    again_member, again_supporter = await services.demo.seed()

    assert (again_member.member_id, again_supporter.member_id) == (member.member_id, supporter.member_id)
    assert await services.relationships.list_supporters_for(member.member_id) == {supporter.member_id}
    conversations = await services.conversations.list_conversations_for(supporter.member_id)
    assert len(conversations) == 1

    cid = conversations[0].conversation.conversation_id
    messages = await services.conversations.list_messages(cid, supporter.member_id)
    assert [m.role for m in messages] == [
        MessageRole.UPDATE,
        MessageRole.RESPONSE,
        MessageRole.UPDATE,
        MessageRole.RESPONSE,
        MessageRole.UPDATE,
    ]
    assert messages[1].parent_message_id == messages[0].message_id


@pytest.mark.asyncio
async def test_seed_activates_leftover_pending_invitation(services):
    member = await services.credentials.register(
        DEMO_MEMBER_EMAIL, "demo-secret-123", DEMO_MEMBER_NAME, is_demo=True
    )
    pending = await services.relationships.invite(member.member_id, DEMO_SUPPORTER_EMAIL)
    assert pending.status == RelationshipStatus.PENDING

    _, supporter = await services.demo.seed()

    relationship = await services.relationships.relationships.get(pending.relationship_id)
    assert relationship.status == RelationshipStatus.ACTIVE
    assert relationship.supporter_id == supporter.member_id
    assert await services.relationships.list_supporters_for(member.member_id) == {supporter.member_id}
    assert len(await services.conversations.list_conversations_for(supporter.member_id)) == 1


@pytest.mark.asyncio
async def test_info_lists_seeded_accounts(services):
    empty = await services.demo.info()
    assert empty.member is None and empty.supporter is None

    await services.demo.seed()
    info = await services.demo.info()

    assert info.member.display_name == DEMO_MEMBER_NAME
    assert info.member.email == DEMO_MEMBER_EMAIL
    assert info.supporter.display_name == DEMO_SUPPORTER_NAME
