"""
Demo login and info endpoints, mounted only when `DEMO_MODE` is enabled.
"""

from fastapi import APIRouter, Depends, Request, Response

from support_spark.container import ServiceContainer
from support_spark.models import DemoInfoResponse, MemberOut, SessionResponse
from support_spark.routes.dependencies import get_client_ip, get_services, set_session_cookie

router = APIRouter(prefix="/api/demo", tags=["Demo"])


@router.post("/login/member", response_model=SessionResponse)
async def demo_login_member(
    request: Request, response: Response, services: ServiceContainer = Depends(get_services)
):
    token, session, member = await services.demo.login_member(get_client_ip(request))
    set_session_cookie(response, token, session, services)
    return SessionResponse(token=token, expires_at=session.expires_at, member=MemberOut.from_document(member))


@router.post("/login/supporter", response_model=SessionResponse)
async def demo_login_supporter(
    request: Request, response: Response, services: ServiceContainer = Depends(get_services)
):
    token, session, member = await services.demo.login_supporter(get_client_ip(request))
    set_session_cookie(response, token, session, services)
    return SessionResponse(token=token, expires_at=session.expires_at, member=MemberOut.from_document(member))


@router.get("/info", response_model=DemoInfoResponse)
async def demo_info(services: ServiceContainer = Depends(get_services)):
    return await services.demo.info()
