"""
# Session Manager

Issues, resolves and destroys sessions.

## Tokens

A token is `secrets.token_urlsafe(32)`, returned to the client once and never stored:
the session store is keyed by its SHA-256 digest. Every successful authentication mints
a new token, and `login()` invalidates any token the request already carried, so a
token planted before login is never promoted to an authenticated session.

## Expiry

Sessions have an absolute lifetime of `SESSION_TTL_SECONDS`; activity does not extend
it. `resolve()` fails with `Unauthenticated` for missing, unknown, malformed and
expired tokens alike.
"""

from datetime import datetime, timedelta, timezone
import hashlib
import secrets
from typing import Optional, Tuple

from support_spark.config import Settings
from support_spark.database.session_store import SessionStore
from support_spark.exceptions import InvalidCredentials, Unauthenticated
from support_spark.managers.logging_manager import get_logger
from support_spark.models import LoginRequest, MemberDocument, SessionDocument, validate_input
from support_spark.services import rate_limiter as limits
from support_spark.services.credential_service import CredentialService
from support_spark.services.rate_limiter import RateLimiter
from support_spark.utils.logging_utils import log_security_event

logger = get_logger(prefix="[SessionManager]")

# token_urlsafe(32) yields 43 characters; anything far outside that is not ours.
MAX_TOKEN_LENGTH = 256


def token_digest(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class SessionService:
    def __init__(
        self,
        credentials: CredentialService,
        store: SessionStore,
        rate_limiter: RateLimiter,
        settings: Settings,
    ):
        self.credentials = credentials
        self.store = store
        self.rate_limiter = rate_limiter
        self.settings = settings

    async def create_session(self, member: MemberDocument) -> Tuple[str, SessionDocument]:
        """Mint a fresh token for an already-verified member."""
        now = datetime.now(timezone.utc)
        session = SessionDocument(
            member_id=member.member_id,
            created_at=now,
            expires_at=now + timedelta(seconds=self.settings.SESSION_TTL_SECONDS),
        )
        token = secrets.token_urlsafe(32)
        await self.store.put(token_digest(token), session)
        return token, session

    async def authenticate(self, identifier: str, secret: str) -> Tuple[str, SessionDocument, MemberDocument]:
        """
        Verify credentials and open a new session.

        Raises:
            InvalidCredentials: For an unknown identifier or a wrong secret alike.
        """
        member = await self.credentials.verify(identifier, secret)
        token, session = await self.create_session(member)
        return token, session, member

    async def login(
        self,
        identifier: str,
        secret: str,
        ip_address: Optional[str] = None,
        current_token: Optional[str] = None,
    ) -> Tuple[str, SessionDocument, MemberDocument]:
        """
        Rate-limited `authenticate` that rotates away from `current_token`.

        Both the per-identifier and per-source buckets are consumed before the
        credentials are checked. A successful login clears the identifier's bucket.

        Raises:
            InvalidInput: Empty identifier or secret.
            RateLimited: Either bucket is exhausted.
            InvalidCredentials: Unknown identifier or wrong secret.
        """
        request = validate_input(LoginRequest, identifier=identifier, secret=secret)
        await self.rate_limiter.enforce(limits.LOGIN, request.identifier, ip_address)
        if ip_address:
            await self.rate_limiter.enforce(limits.LOGIN_IP, ip_address, ip_address)

        try:
            token, session, member = await self.authenticate(request.identifier, request.secret)
        except InvalidCredentials:
            log_security_event(event_type="login_failed", ip_address=ip_address, success=False)
            raise

        if current_token:
            await self.invalidate(current_token)
        await self.rate_limiter.reset(limits.bucket_key(limits.LOGIN, request.identifier))
        log_security_event(event_type="login", user_id=member.member_id, ip_address=ip_address, success=True)
        return token, session, member

    async def resolve(self, token: Optional[str]) -> str:
        """
        Return the member id the token belongs to.

        Raises:
            Unauthenticated: Missing, malformed, unknown or expired token.
        """
        if not token or len(token) > MAX_TOKEN_LENGTH:
            raise Unauthenticated()
        session = await self.store.get(token_digest(token))
        if session is None:
            raise Unauthenticated()
        return session.member_id

    async def invalidate(self, token: Optional[str]) -> None:
        """Destroy the session; unknown or already-destroyed tokens are ignored."""
        if not token or len(token) > MAX_TOKEN_LENGTH:
            return
        if await self.store.delete(token_digest(token)):
            logger.debug("Session invalidated")
