"""
# Authentication Routes

| Method | Path | Result |
|--------|------|--------|
| POST | `/api/auth/register` | 201 + session; 400, 409, 429 |
| POST | `/api/auth/login` | 200 + session; 400, 401, 429 |
| POST | `/api/auth/logout` | 204, always |
| GET | `/api/auth/me` | 200 + member; 401 |
| POST | `/api/auth/password` | 204; 400, 401 |

Sessions are returned in the body and set as an HTTP-only cookie.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request, Response, status

from support_spark.container import ServiceContainer
from support_spark.managers.logging_manager import get_logger
from support_spark.models import (
    ChangeSecretRequest,
    LoginRequest,
    MemberOut,
    RegisterRequest,
    SessionResponse,
)
from support_spark.routes.dependencies import (
    clear_session_cookie,
    get_client_ip,
    get_current_member_id,
    get_services,
    get_session_token,
    set_session_cookie,
)
from support_spark.services import rate_limiter as limits
from support_spark.utils.logging_utils import log_security_event

logger = get_logger(prefix="[AuthRoutes]")

router = APIRouter(prefix="/api/auth", tags=["Authentication"])


@router.post("/register", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def register(
    payload: RegisterRequest,
    request: Request,
    response: Response,
    services: ServiceContainer = Depends(get_services),
):
    """Create an account and log it in."""
    ip_address = get_client_ip(request)
    await services.rate_limiter.enforce(limits.REGISTER, ip_address or "unknown", ip_address)

    member = await services.credentials.register(payload.email, payload.secret, payload.display_name)
    token, session = await services.sessions.create_session(member)
    set_session_cookie(response, token, session, services)
    log_security_event(event_type="register", user_id=member.member_id, ip_address=ip_address)
    return SessionResponse(token=token, expires_at=session.expires_at, member=MemberOut.from_document(member))


@router.post("/login", response_model=SessionResponse)
async def login(
    payload: LoginRequest,
    request: Request,
    response: Response,
    current_token: Optional[str] = Depends(get_session_token),
    services: ServiceContainer = Depends(get_services),
):
    """Exchange credentials for a new session, invalidating any session the request already carried."""
    token, session, member = await services.sessions.login(
        payload.identifier,
        payload.secret,
        ip_address=get_client_ip(request),
        current_token=current_token,
    )
    set_session_cookie(response, token, session, services)
    return SessionResponse(token=token, expires_at=session.expires_at, member=MemberOut.from_document(member))


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    token: Optional[str] = Depends(get_session_token),
    services: ServiceContainer = Depends(get_services),
):
    await services.sessions.invalidate(token)
    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    clear_session_cookie(response, services)
    return response


@router.get("/me", response_model=MemberOut)
async def me(
    member_id: str = Depends(get_current_member_id),
    services: ServiceContainer = Depends(get_services),
):
    member = await services.credentials.get_member(member_id)
    return MemberOut.from_document(member)


@router.post("/password", status_code=status.HTTP_204_NO_CONTENT)
async def change_password(
    payload: ChangeSecretRequest,
    member_id: str = Depends(get_current_member_id),
    services: ServiceContainer = Depends(get_services),
):
    """Rotate the caller's password. Existing sessions stay valid until they expire or log out."""
    await services.credentials.change_secret(member_id, payload.current_secret, payload.new_secret)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
