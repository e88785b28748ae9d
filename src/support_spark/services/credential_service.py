"""
# Credential Store

Owns member identity records and their bcrypt credential hashes.

- `register()` creates a member with a normalised email and a hashed secret.
- `verify()` checks an identifier/secret pair. Unknown identifiers are compared against
  a fixed dummy hash so the response time does not reveal whether the account exists.
- `change_secret()` rotates a member's credential after re-checking the current one.

bcrypt runs in a worker thread so hashing does not stall the event loop.
"""

import asyncio
from datetime import datetime, timezone
from typing import Dict, Iterable, Optional
import uuid

import bcrypt

from support_spark.config import Settings
from support_spark.database.repositories import MemberRepository
from support_spark.exceptions import InvalidCredentials, InvalidInput, NotFound
from support_spark.managers.logging_manager import get_logger
from support_spark.models import ChangeSecretRequest, MemberDocument, RegisterRequest, validate_input
from support_spark.utils.logging_utils import log_security_event

logger = get_logger(prefix="[CredentialStore]")

# bcrypt only looks at the first 72 bytes of a secret.
BCRYPT_MAX_BYTES = 72


def _hash_secret(secret: str, rounds: int) -> str:
    return bcrypt.hashpw(secret.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def _check_secret(secret: str, hashed: str) -> bool:
    encoded = secret.encode("utf-8")
    if len(encoded) > BCRYPT_MAX_BYTES:
        # Still pay for one comparison, then reject.
        bcrypt.checkpw(encoded[:BCRYPT_MAX_BYTES], hashed.encode("utf-8"))
        return False
    return bcrypt.checkpw(encoded, hashed.encode("utf-8"))


class CredentialService:
    def __init__(self, members: MemberRepository, settings: Settings):
        self.members = members
        self.settings = settings
        self._dummy_hash = _hash_secret(uuid.uuid4().hex, settings.BCRYPT_ROUNDS)

    def _check_policy(self, secret: str, field: str) -> None:
        if len(secret) < self.settings.PASSWORD_MIN_LENGTH:
            raise InvalidInput(
                f"Password must be at least {self.settings.PASSWORD_MIN_LENGTH} characters long", field=field
            )
        if len(secret.encode("utf-8")) > self.settings.PASSWORD_MAX_LENGTH:
            raise InvalidInput(
                f"Password must be at most {self.settings.PASSWORD_MAX_LENGTH} bytes long", field=field
            )

    async def hash_secret(self, secret: str) -> str:
        return await asyncio.to_thread(_hash_secret, secret, self.settings.BCRYPT_ROUNDS)

    async def register(self, email: str, secret: str, display_name: str, is_demo: bool = False) -> MemberDocument:
        """
        Create a new member.

        Raises:
            InvalidInput: Malformed email, weak secret or empty display name.
            DuplicateMember: The email is already registered.
        """
        request = validate_input(RegisterRequest, email=email, secret=secret, display_name=display_name)
        if not is_demo:
            self._check_policy(request.secret, "secret")

        member = MemberDocument(
            member_id=f"mem_{uuid.uuid4().hex[:12]}",
            email=request.email,
            display_name=request.display_name,
            hashed_secret=await self.hash_secret(request.secret),
            created_at=datetime.now(timezone.utc),
            is_demo=is_demo,
        )
        await self.members.insert(member)
        logger.info(f"Registered member {member.member_id}")
        return member

    async def verify(self, identifier: str, secret: str) -> MemberDocument:
        """
        Return the member whose credentials match.

        Raises:
            InvalidCredentials: Unknown identifier or wrong secret; the two are indistinguishable.
        """
        member = await self.members.get_by_email(identifier.strip().lower())
        hashed = member.hashed_secret if member else self._dummy_hash
        matches = await asyncio.to_thread(_check_secret, secret, hashed)
        if member is None or not matches:
            raise InvalidCredentials()
        return member

    async def change_secret(self, member_id: str, current_secret: str, new_secret: str) -> None:
        """
        Rotate the member's credential.

        Raises:
            InvalidCredentials: `current_secret` does not match.
            InvalidInput: `new_secret` violates the password policy.
        """
        request = validate_input(ChangeSecretRequest, current_secret=current_secret, new_secret=new_secret)
        member = await self.members.get_by_id(member_id)
        if member is None:
            raise NotFound("Member not found")
        if not await asyncio.to_thread(_check_secret, request.current_secret, member.hashed_secret):
            log_security_event(event_type="secret_change_failed", user_id=member_id, success=False)
            raise InvalidCredentials()
        self._check_policy(request.new_secret, "new_secret")

        await self.members.update_secret(
            member_id, await self.hash_secret(request.new_secret), datetime.now(timezone.utc)
        )
        log_security_event(event_type="secret_changed", user_id=member_id, success=True)

    async def get_member(self, member_id: str) -> MemberDocument:
        member = await self.members.get_by_id(member_id)
        if member is None:
            raise NotFound("Member not found")
        return member

    async def get_members(self, member_ids: Iterable[str]) -> Dict[str, MemberDocument]:
        return await self.members.get_many(member_ids)

    async def find_by_email(self, email: str) -> Optional[MemberDocument]:
        return await self.members.get_by_email(email.strip().lower())
