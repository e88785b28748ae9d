import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from support_spark.exceptions import (
    DuplicateInvitation,
    InvalidInput,
    InvalidState,
    NotAuthorized,
    NotFound,
    RateLimited,
)
from support_spark.models import RelationshipStatus, SupporterRelationship


async def expired_invitation(services, owner, contact):
    created = datetime.now(timezone.utc) - timedelta(days=20)
    relationship = SupporterRelationship(
        relationship_id="rel_expired0001",
        owner_id=owner.member_id,
        supporter_contact=contact,
        created_at=created,
        expires_at=created + timedelta(days=14),
    )
    await services.relationships.relationships.insert(relationship)
    return relationship


@pytest.mark.asyncio
async def test_invite_binds_registered_supporter(services, register_member):
    owner = await register_member("maya@example.com", "Maya")
    supporter = await register_member("sam@example.com", "Sam")

    relationship = await services.relationships.invite(owner.member_id, "Sam@Example.com")

    assert relationship.status == RelationshipStatus.PENDING
    assert relationship.supporter_contact == "sam@example.com"
    assert relationship.supporter_id == supporter.member_id
    assert relationship.expires_at - relationship.created_at == timedelta(days=14)


@pytest.mark.asyncio
async def test_duplicate_invitation_rejected_while_pending_or_active(services, register_member):
    owner = await register_member("maya@example.com", "Maya")
    supporter = await register_member("sam@example.com", "Sam")

    relationship = await services.relationships.invite(owner.member_id, "sam@example.com")
    with pytest.raises(DuplicateInvitation):
        await services.relationships.invite(owner.member_id, "sam@example.com")

    await services.relationships.accept(relationship.relationship_id, supporter.member_id)
    with pytest.raises(DuplicateInvitation):
        await services.relationships.invite(owner.member_id, "sam@example.com")


@pytest.mark.asyncio
async def test_self_invitation_rejected(services, register_member):
    owner = await register_member("maya@example.com", "Maya")
    with pytest.raises(InvalidInput):
        await services.relationships.invite(owner.member_id, "MAYA@example.com")


@pytest.mark.asyncio
async def test_invalid_contact_rejected(services, register_member):
    owner = await register_member("maya@example.com", "Maya")
    with pytest.raises(InvalidInput):
        await services.relationships.invite(owner.member_id, "not an email")


@pytest.mark.asyncio
async def test_accept_only_by_invited_supporter(services, register_member):
    owner = await register_member("maya@example.com", "Maya")
    supporter = await register_member("sam@example.com", "Sam")
    stranger = await register_member("lee@example.com", "Lee")
    relationship = await services.relationships.invite(owner.member_id, "sam@example.com")

    with pytest.raises(NotAuthorized):
        await services.relationships.accept(relationship.relationship_id, stranger.member_id)
    with pytest.raises(NotAuthorized):
        await services.relationships.accept(relationship.relationship_id, owner.member_id)

    active = await services.relationships.accept(relationship.relationship_id, supporter.member_id)
    assert active.status == RelationshipStatus.ACTIVE
    assert active.accepted_at is not None
    assert await services.relationships.list_supporters_for(owner.member_id) == {supporter.member_id}


@pytest.mark.asyncio
async def test_accept_requires_pending(services, register_member):
    owner = await register_member("maya@example.com", "Maya")
    supporter = await register_member("sam@example.com", "Sam")
    relationship = await services.relationships.invite(owner.member_id, "sam@example.com")
    await services.relationships.accept(relationship.relationship_id, supporter.member_id)

    with pytest.raises(InvalidState):
        await services.relationships.accept(relationship.relationship_id, supporter.member_id)


@pytest.mark.asyncio
async def test_invitation_to_unregistered_contact_binds_on_accept(services, register_member):
    owner = await register_member("maya@example.com", "Maya")
    relationship = await services.relationships.invite(owner.member_id, "newcomer@example.com")
    assert relationship.supporter_id is None

    newcomer = await register_member("newcomer@example.com", "Newcomer")
    overview = await services.relationships.overview(newcomer.member_id)
    assert [v.relationship.relationship_id for v in overview.supporting] == [relationship.relationship_id]
    assert overview.supporting[0].counterpart_name == "Maya"

    active = await services.relationships.accept(relationship.relationship_id, newcomer.member_id)
    assert active.supporter_id == newcomer.member_id


@pytest.mark.asyncio
async def test_concurrent_accepts_only_one_wins(services, register_member):
    owner = await register_member("maya@example.com", "Maya")
    supporter = await register_member("sam@example.com", "Sam")
    relationship = await services.relationships.invite(owner.member_id, "sam@example.com")

    results = await asyncio.gather(
        services.relationships.accept(relationship.relationship_id, supporter.member_id),
        services.relationships.accept(relationship.relationship_id, supporter.member_id),
        return_exceptions=True,
    )

    assert sum(isinstance(r, SupporterRelationship) for r in results) == 1
    assert sum(isinstance(r, InvalidState) for r in results) == 1


@pytest.mark.asyncio
async def test_revoke_only_by_owner(services, register_member):
    owner = await register_member("maya@example.com", "Maya")
    supporter = await register_member("sam@example.com", "Sam")
    relationship = await services.relationships.invite(owner.member_id, "sam@example.com")
    await services.relationships.accept(relationship.relationship_id, supporter.member_id)

    with pytest.raises(NotAuthorized):
        await services.relationships.revoke(relationship.relationship_id, supporter.member_id)

    revoked = await services.relationships.revoke(relationship.relationship_id, owner.member_id)
    assert revoked.status == RelationshipStatus.REVOKED
    assert revoked.revoked_by == owner.member_id
    assert revoked.revoked_at is not None
    assert await services.relationships.list_supporters_for(owner.member_id) == set()


@pytest.mark.asyncio
async def test_owner_can_cancel_pending_invitation(services, register_member):
    owner = await register_member("maya@example.com", "Maya")
    supporter = await register_member("sam@example.com", "Sam")
    relationship = await services.relationships.invite(owner.member_id, "sam@example.com")

    await services.relationships.revoke(relationship.relationship_id, owner.member_id)

    with pytest.raises(InvalidState):
        await services.relationships.accept(relationship.relationship_id, supporter.member_id)


@pytest.mark.asyncio
async def test_revoke_twice_is_invalid_state(services, register_member):
    owner = await register_member("maya@example.com", "Maya")
    relationship = await services.relationships.invite(owner.member_id, "sam@example.com")
    await services.relationships.revoke(relationship.relationship_id, owner.member_id)

    with pytest.raises(InvalidState):
        await services.relationships.revoke(relationship.relationship_id, owner.member_id)


@pytest.mark.asyncio
async def test_reinvite_after_revoke_creates_new_record(services, register_member):
    owner = await register_member("maya@example.com", "Maya")
    supporter = await register_member("sam@example.com", "Sam")
    first = await services.relationships.invite(owner.member_id, "sam@example.com")
    await services.relationships.accept(first.relationship_id, supporter.member_id)
    await services.relationships.revoke(first.relationship_id, owner.member_id)

    second = await services.relationships.invite(owner.member_id, "sam@example.com")

    assert second.relationship_id != first.relationship_id
    assert second.status == RelationshipStatus.PENDING
    history = await services.relationships.relationships.get(first.relationship_id)
    assert history.status == RelationshipStatus.REVOKED
    assert history.accepted_at is not None


@pytest.mark.asyncio
async def test_decline_by_invited_supporter(services, register_member):
    owner = await register_member("maya@example.com", "Maya")
    supporter = await register_member("sam@example.com", "Sam")
    relationship = await services.relationships.invite(owner.member_id, "sam@example.com")

    with pytest.raises(NotAuthorized):
        await services.relationships.decline(relationship.relationship_id, owner.member_id)

    declined = await services.relationships.decline(relationship.relationship_id, supporter.member_id)
    assert declined.status == RelationshipStatus.REVOKED
    assert declined.revoked_by == supporter.member_id

    with pytest.raises(InvalidState):
        await services.relationships.decline(relationship.relationship_id, supporter.member_id)


@pytest.mark.asyncio
async def test_expired_invitation_cannot_be_accepted(services, register_member):
    owner = await register_member("maya@example.com", "Maya")
    supporter = await register_member("sam@example.com", "Sam")
    relationship = await expired_invitation(services, owner, "sam@example.com")

    with pytest.raises(InvalidState):
        await services.relationships.accept(relationship.relationship_id, supporter.member_id)


@pytest.mark.asyncio
async def test_invite_replaces_expired_invitation(services, register_member):
    owner = await register_member("maya@example.com", "Maya")
    expired = await expired_invitation(services, owner, "sam@example.com")

    fresh = await services.relationships.invite(owner.member_id, "sam@example.com")

    assert fresh.relationship_id != expired.relationship_id
    old = await services.relationships.relationships.get(expired.relationship_id)
    assert old.status == RelationshipStatus.REVOKED


@pytest.mark.asyncio
async def test_unknown_relationship_is_not_found(services, register_member):
    owner = await register_member("maya@example.com", "Maya")
    with pytest.raises(NotFound):
        await services.relationships.accept("rel_missing", owner.member_id)
    with pytest.raises(NotFound):
        await services.relationships.revoke("rel_missing", owner.member_id)


@pytest.mark.asyncio
async def test_relationships_are_directed(services, register_member):
    maya = await register_member("maya@example.com", "Maya")
    sam = await register_member("sam@example.com", "Sam")
    forward = await services.relationships.invite(maya.member_id, "sam@example.com")
    await services.relationships.accept(forward.relationship_id, sam.member_id)

    backward = await services.relationships.invite(sam.member_id, "maya@example.com")

    assert backward.status == RelationshipStatus.PENDING
    assert await services.relationships.list_supporters_for(sam.member_id) == set()
    assert await services.relationships.owners_supported_by(sam.member_id) == {maya.member_id}


@pytest.mark.asyncio
async def test_invitations_are_rate_limited_per_owner(services, register_member):
    owner = await register_member("maya@example.com", "Maya")
    for i in range(10):
        await services.relationships.invite(owner.member_id, f"friend{i}@example.com")
    with pytest.raises(RateLimited):
        await services.relationships.invite(owner.member_id, "friend10@example.com")


@pytest.mark.asyncio
async def test_overview_lists_both_directions(services, register_member):
    maya = await register_member("maya@example.com", "Maya")
    sam = await register_member("sam@example.com", "Sam")
    relationship = await services.relationships.invite(maya.member_id, "sam@example.com")
    await services.relationships.accept(relationship.relationship_id, sam.member_id)

    maya_view = await services.relationships.overview(maya.member_id)
    sam_view = await services.relationships.overview(sam.member_id)

    assert [v.counterpart_name for v in maya_view.my_supporters] == ["Sam"]
    assert maya_view.supporting == []
    assert [v.counterpart_name for v in sam_view.supporting] == ["Maya"]
    assert sam_view.my_supporters == []
