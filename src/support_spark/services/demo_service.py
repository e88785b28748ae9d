"""
# Demo Mode

When `DEMO_MODE` is enabled the service seeds a small, fixed support network so the
product can be explored without signing up:

- **Sarah Mitchell**, a member sharing her journey.
- **James Chen**, her active supporter.
- A sample conversation with a few journey updates and responses.

Seeding is idempotent: existing demo records are reused, and a pending demo invitation
left over from an earlier run is activated. Demo accounts are registered with a random
secret that is never disclosed, so the only way into them is the rate-limited demo
login endpoints.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple
import uuid

from support_spark.database.repositories import RelationshipRepository
from support_spark.exceptions import InvalidState, NotFound
from support_spark.managers.logging_manager import get_logger
from support_spark.models import (
    DemoAccountInfo,
    DemoInfoResponse,
    MemberDocument,
    MessageRole,
    RelationshipStatus,
    SessionDocument,
    SupporterRelationship,
)
from support_spark.services import rate_limiter as limits
from support_spark.services.conversation_service import ConversationService
from support_spark.services.credential_service import CredentialService
from support_spark.services.rate_limiter import RateLimiter
from support_spark.services.session_service import SessionService
from support_spark.utils.logging_utils import log_security_event

logger = get_logger(prefix="[Demo]")

DEMO_MEMBER_EMAIL = "sarah@demo.supportspark.com"
DEMO_MEMBER_NAME = "Sarah Mitchell"
DEMO_SUPPORTER_EMAIL = "james@demo.supportspark.com"
DEMO_SUPPORTER_NAME = "James Chen"
DEMO_CONVERSATION_TITLE = "Starting fresh after a big change"

# (author, body); "member" posts updates, "supporter" posts responses to the previous update.
DEMO_THREAD = [
    (
        "member",
        "Hi everyone. I wanted to create this space to keep you all updated during this transition. "
        "I was laid off last week. It's been a shock, but I'm trying to see this as a fresh start.",
    ),
    (
        "supporter",
        "Sarah, I'm so sorry to hear this. Your skills and experience are incredible. "
        "We're here for whatever you need.",
    ),
    (
        "member",
        "Day 2 update: started updating my resume today. It's nice to reflect on what I've accomplished. "
        "Small steps forward!",
    ),
    ("supporter", "That's the spirit! Happy to review your resume if you'd like another set of eyes on it."),
    (
        "member",
        "Had a great call with a former colleague who offered to introduce me to people in her network. "
        "Thank you all for the encouraging messages.",
    ),
]


class DemoService:
    def __init__(
        self,
        credentials: CredentialService,
        relationships: RelationshipRepository,
        conversations: ConversationService,
        sessions: SessionService,
        rate_limiter: RateLimiter,
    ):
        self.credentials = credentials
        self.relationships = relationships
        self.conversations = conversations
        self.sessions = sessions
        self.rate_limiter = rate_limiter

    async def _ensure_member(self, email: str, display_name: str) -> MemberDocument:
        member = await self.credentials.find_by_email(email)
        if member is not None:
            return member
        return await self.credentials.register(
            email, f"DEMO_ONLY_{uuid.uuid4().hex}", display_name, is_demo=True
        )

    async def seed(self) -> Tuple[MemberDocument, MemberDocument]:
        """Create the demo member, supporter, relationship and conversation if missing."""
        member = await self._ensure_member(DEMO_MEMBER_EMAIL, DEMO_MEMBER_NAME)
        supporter = await self._ensure_member(DEMO_SUPPORTER_EMAIL, DEMO_SUPPORTER_NAME)

        now = datetime.now(timezone.utc)
        existing = await self.relationships.find_open(member.member_id, supporter.email)
        if existing is not None and existing.status == RelationshipStatus.PENDING:
            activated = await self.relationships.transition(
                existing.relationship_id,
                RelationshipStatus.PENDING,
                {"status": RelationshipStatus.ACTIVE, "accepted_at": now, "supporter_id": supporter.member_id},
            )
            if activated is None:
                raise InvalidState("Demo supporter relationship changed while seeding")
            logger.info(f"Activated pending demo invitation {existing.relationship_id}")
        elif existing is None:
            await self.relationships.insert(
                SupporterRelationship(
                    relationship_id=f"rel_{uuid.uuid4().hex[:12]}",
                    owner_id=member.member_id,
                    supporter_contact=supporter.email,
                    supporter_id=supporter.member_id,
                    status=RelationshipStatus.ACTIVE,
                    created_at=now,
                    expires_at=now + timedelta(days=self.conversations.settings.INVITATION_EXPIRE_DAYS),
                    accepted_at=now,
                )
            )
            logger.info("Seeded demo supporter relationship")

        existing = await self.conversations.list_conversations_for(member.member_id)
        if not any(c.conversation.owner_id == member.member_id for c in existing):
            conversation = await self.conversations.create_conversation(member.member_id, DEMO_CONVERSATION_TITLE)
            parent_id: Optional[str] = None
            for author, body in DEMO_THREAD:
                if author == "member":
                    message = await self.conversations.post_message(
                        conversation.conversation_id, member.member_id, body, MessageRole.UPDATE
                    )
                    parent_id = message.message_id
                else:
                    await self.conversations.post_message(
                        conversation.conversation_id,
                        supporter.member_id,
                        body,
                        MessageRole.RESPONSE,
                        parent_message_id=parent_id,
                    )
            logger.info(f"Seeded demo conversation {conversation.conversation_id}")

        return member, supporter

    async def info(self) -> DemoInfoResponse:
        """Names of the demo accounts, for the demo landing page."""

        async def account(email: str) -> Optional[DemoAccountInfo]:
            member = await self.credentials.find_by_email(email)
            if member is None or not member.is_demo:
                return None
            return DemoAccountInfo(display_name=member.display_name, email=member.email)

        return DemoInfoResponse(
            member=await account(DEMO_MEMBER_EMAIL),
            supporter=await account(DEMO_SUPPORTER_EMAIL),
        )

    async def login(
        self, email: str, ip_address: Optional[str] = None
    ) -> Tuple[str, SessionDocument, MemberDocument]:
        """
        Open a session for a demo account.

        Raises:
            RateLimited: Too many demo logins from this source.
            NotFound: Demo data has not been seeded.
        """
        await self.rate_limiter.enforce(limits.DEMO, ip_address or "unknown", ip_address)
        member = await self.credentials.find_by_email(email)
        if member is None or not member.is_demo:
            raise NotFound("Demo account not found")
        token, session = await self.sessions.create_session(member)
        log_security_event(event_type="demo_login", user_id=member.member_id, ip_address=ip_address)
        return token, session, member

    async def login_member(self, ip_address: Optional[str] = None):
        return await self.login(DEMO_MEMBER_EMAIL, ip_address)

    async def login_supporter(self, ip_address: Optional[str] = None):
        return await self.login(DEMO_SUPPORTER_EMAIL, ip_address)
