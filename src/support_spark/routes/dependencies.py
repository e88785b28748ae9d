"""
# Request Dependencies

FastAPI dependencies shared by every router.

- `get_services`: the `ServiceContainer` built for this application instance.
- `get_session_token`: the raw session token from `Authorization: Bearer <token>` or,
  failing that, the session cookie.
- `get_current_member_id`: resolves the token through the session manager; every
  endpoint except login, logout, registration, demo login and health depends on it.
- `get_client_ip`: source address used for per-source rate limits.

**Usage:**
```python
@router.get("/me")
async def me(member_id: str = Depends(get_current_member_id)):
    ...
```
"""

from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, Request, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from support_spark.container import ServiceContainer
from support_spark.models import SessionDocument

bearer_scheme = HTTPBearer(auto_error=False)


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services


def get_session_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    services: ServiceContainer = Depends(get_services),
) -> Optional[str]:
    if credentials is not None and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(services.settings.SESSION_COOKIE_NAME)


async def get_current_member_id(
    token: Optional[str] = Depends(get_session_token),
    services: ServiceContainer = Depends(get_services),
) -> str:
    """
    Resolve the caller's member id.

    Raises:
        Unauthenticated: Missing, unknown or expired session token.
    """
    return await services.sessions.resolve(token)


def get_client_ip(request: Request) -> Optional[str]:
    # Behind a proxy, run uvicorn with --proxy-headers so this is the real client.
    return request.client.host if request.client else None


def set_session_cookie(response: Response, token: str, session: SessionDocument, services: ServiceContainer):
    max_age = int((session.expires_at - datetime.now(timezone.utc)).total_seconds())
    response.set_cookie(
        key=services.settings.SESSION_COOKIE_NAME,
        value=token,
        max_age=max(max_age, 0),
        httponly=True,
        secure=services.settings.SESSION_COOKIE_SECURE,
        samesite="lax",
    )


def clear_session_cookie(response: Response, services: ServiceContainer):
    response.delete_cookie(
        key=services.settings.SESSION_COOKIE_NAME,
        httponly=True,
        secure=services.settings.SESSION_COOKIE_SECURE,
        samesite="lax",
    )
