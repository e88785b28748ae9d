"""
# Relationship Ledger

Owns supporter relationships: who a member has invited, who has accepted, and who has
been removed. It is the single source of truth for trust; the conversation engine asks
it for the active supporters of an owner on every access instead of caching them.

## Lifecycle

```
invite ----------> pending --accept--> active --revoke--> revoked
                   pending --revoke (owner) / decline (supporter)--> revoked
```

- Only the invited supporter may accept or decline; only the owner may revoke.
- Every state change is a compare-and-swap on the stored status, so two racing
  transitions cannot both win.
- At most one pending or active relationship exists per `(owner, contact)` pair. A
  re-invitation after revocation creates a new record.
- Pending invitations expire after `INVITATION_EXPIRE_DAYS`. An expired invitation
  cannot be accepted; inviting the same contact again revokes it first.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Set
import uuid

from support_spark.config import Settings
from support_spark.database.repositories import RelationshipRepository
from support_spark.exceptions import DuplicateInvitation, InvalidInput, InvalidState, NotAuthorized, NotFound
from support_spark.managers.logging_manager import get_logger
from support_spark.models import (
    InviteSupporterRequest,
    MemberDocument,
    RelationshipStatus,
    RelationshipView,
    SupporterRelationship,
    SupportersOverview,
    validate_input,
)
from support_spark.services import rate_limiter as limits
from support_spark.services.credential_service import CredentialService
from support_spark.services.rate_limiter import RateLimiter
from support_spark.utils.logging_utils import log_security_event

logger = get_logger(prefix="[RelationshipLedger]")


class RelationshipService:
    def __init__(
        self,
        relationships: RelationshipRepository,
        credentials: CredentialService,
        rate_limiter: RateLimiter,
        settings: Settings,
    ):
        self.relationships = relationships
        self.credentials = credentials
        self.rate_limiter = rate_limiter
        self.settings = settings

    async def _load(self, relationship_id: str) -> SupporterRelationship:
        relationship = await self.relationships.get(relationship_id)
        if relationship is None:
            raise NotFound("Relationship not found")
        return relationship

    @staticmethod
    def _is_invited(relationship: SupporterRelationship, member: MemberDocument) -> bool:
        if relationship.supporter_id is not None:
            return relationship.supporter_id == member.member_id
        return relationship.supporter_contact == member.email

    async def _load_for_supporter(
        self, relationship_id: str, acting_supporter_id: str, action: str
    ) -> SupporterRelationship:
        relationship = await self._load(relationship_id)
        member = await self.credentials.get_member(acting_supporter_id)
        if not self._is_invited(relationship, member):
            log_security_event(
                event_type=f"relationship_{action}_denied",
                user_id=acting_supporter_id,
                success=False,
                details={"relationship_id": relationship_id},
            )
            raise NotAuthorized("Only the invited supporter can do this")
        return relationship

    async def invite(self, owner_id: str, supporter_contact: str) -> SupporterRelationship:
        """
        Create a pending invitation from `owner_id` to `supporter_contact`.

        Raises:
            InvalidInput: Malformed contact, or the owner invited themselves.
            RateLimited: The owner exhausted their invitation budget.
            DuplicateInvitation: A pending or active relationship already exists for the pair.
        """
        request = validate_input(InviteSupporterRequest, contact=supporter_contact)
        contact = request.contact
        await self.rate_limiter.enforce(limits.INVITE, owner_id)

        owner = await self.credentials.get_member(owner_id)
        if contact == owner.email:
            raise InvalidInput("You cannot invite yourself", field="contact")

        now = datetime.now(timezone.utc)
        existing = await self.relationships.find_open(owner_id, contact)
        if existing is not None:
            if not existing.is_expired(now):
                raise DuplicateInvitation()
            expired = await self.relationships.transition(
                existing.relationship_id,
                RelationshipStatus.PENDING,
                {"status": RelationshipStatus.REVOKED, "revoked_at": now},
            )
            if expired is None:
                # Someone accepted or revoked it in the meantime; re-evaluate.
                if await self.relationships.find_open(owner_id, contact) is not None:
                    raise DuplicateInvitation()
            else:
                logger.info(f"Expired invitation {existing.relationship_id} revoked before re-invite")

        supporter = await self.credentials.find_by_email(contact)
        relationship = SupporterRelationship(
            relationship_id=f"rel_{uuid.uuid4().hex[:12]}",
            owner_id=owner_id,
            supporter_contact=contact,
            supporter_id=supporter.member_id if supporter else None,
            status=RelationshipStatus.PENDING,
            created_at=now,
            expires_at=now + timedelta(days=self.settings.INVITATION_EXPIRE_DAYS),
        )
        await self.relationships.insert(relationship)
        logger.info(f"Member {owner_id} invited a supporter ({relationship.relationship_id})")
        return relationship

    async def accept(self, relationship_id: str, acting_supporter_id: str) -> SupporterRelationship:
        """
        Accept a pending invitation.

        Raises:
            NotFound: Unknown relationship.
            NotAuthorized: The acting member is not the invited supporter.
            InvalidState: The relationship is not pending, or the invitation expired.
        """
        relationship = await self._load_for_supporter(relationship_id, acting_supporter_id, "accept")
        if relationship.status != RelationshipStatus.PENDING:
            raise InvalidState(f"Cannot accept a relationship that is {relationship.status.value}")
        now = datetime.now(timezone.utc)
        if relationship.is_expired(now):
            raise InvalidState("This invitation has expired")

        updated = await self.relationships.transition(
            relationship_id,
            RelationshipStatus.PENDING,
            {"status": RelationshipStatus.ACTIVE, "accepted_at": now, "supporter_id": acting_supporter_id},
        )
        if updated is None:
            raise InvalidState("The relationship changed before it could be accepted")
        log_security_event(
            event_type="relationship_accepted",
            user_id=acting_supporter_id,
            details={"relationship_id": relationship_id, "owner_id": relationship.owner_id},
        )
        return updated

    async def decline(self, relationship_id: str, acting_supporter_id: str) -> SupporterRelationship:
        """
        Decline a pending invitation as the invited supporter.

        Raises:
            NotFound / NotAuthorized / InvalidState: As for `accept`.
        """
        relationship = await self._load_for_supporter(relationship_id, acting_supporter_id, "decline")
        if relationship.status != RelationshipStatus.PENDING:
            raise InvalidState(f"Cannot decline a relationship that is {relationship.status.value}")

        updated = await self.relationships.transition(
            relationship_id,
            RelationshipStatus.PENDING,
            {
                "status": RelationshipStatus.REVOKED,
                "revoked_at": datetime.now(timezone.utc),
                "revoked_by": acting_supporter_id,
            },
        )
        if updated is None:
            raise InvalidState("The relationship changed before it could be declined")
        logger.info(f"Invitation {relationship_id} declined")
        return updated

    async def revoke(self, relationship_id: str, acting_owner_id: str) -> SupporterRelationship:
        """
        Revoke a pending or active relationship as its owner.

        Takes effect immediately: the former supporter loses read and post access on
        their next request.

        Raises:
            NotFound: Unknown relationship.
            NotAuthorized: The acting member is not the owner.
            InvalidState: Already revoked.
        """
        relationship = await self._load(relationship_id)
        if relationship.owner_id != acting_owner_id:
            log_security_event(
                event_type="relationship_revoke_denied",
                user_id=acting_owner_id,
                success=False,
                details={"relationship_id": relationship_id},
            )
            raise NotAuthorized("Only the inviting member can revoke this relationship")

        current: Optional[SupporterRelationship] = relationship
        while current is not None and current.is_open:
            updated = await self.relationships.transition(
                relationship_id,
                current.status,
                {
                    "status": RelationshipStatus.REVOKED,
                    "revoked_at": datetime.now(timezone.utc),
                    "revoked_by": acting_owner_id,
                },
            )
            if updated is not None:
                log_security_event(
                    event_type="relationship_revoked",
                    user_id=acting_owner_id,
                    details={"relationship_id": relationship_id, "previous_status": current.status.value},
                )
                return updated
            # pending -> active raced us; states only move forward, so this ends.
            current = await self.relationships.get(relationship_id)

        raise InvalidState("This relationship has already been revoked")

    async def list_supporters_for(self, owner_id: str) -> Set[str]:
        """Ids of the owner's currently active supporters, read from committed state."""
        return await self.relationships.active_supporter_ids(owner_id)

    async def owners_supported_by(self, supporter_id: str) -> Set[str]:
        return await self.relationships.owners_supported_by(supporter_id)

    async def overview(self, member_id: str) -> SupportersOverview:
        """Relationships the member owns and relationships in which they support someone."""
        member = await self.credentials.get_member(member_id)
        owned = await self.relationships.list_for_owner(member_id)
        supporting = await self.relationships.list_for_supporter(member_id, member.email)

        names = await self.credentials.get_members(
            [r.supporter_id for r in owned if r.supporter_id] + [r.owner_id for r in supporting]
        )

        def view(relationship: SupporterRelationship, counterpart_id: Optional[str]) -> RelationshipView:
            counterpart = names.get(counterpart_id) if counterpart_id else None
            return RelationshipView(
                relationship=relationship,
                counterpart_name=counterpart.display_name if counterpart else None,
            )

        return SupportersOverview(
            my_supporters=[view(r, r.supporter_id) for r in owned],
            supporting=[view(r, r.owner_id) for r in supporting],
        )
