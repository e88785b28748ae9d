"""
# Supporter Routes

Invitation lifecycle over the relationship ledger. All endpoints require a session.

| Method | Path | Result |
|--------|------|--------|
| GET | `/api/supporters` | 200 + `{my_supporters, supporting}` |
| POST | `/api/supporters/invite` | 201 + pending relationship; 400, 409, 429 |
| POST | `/api/supporters/{id}/accept` | 200 + active relationship; 403, 404, 409 |
| POST | `/api/supporters/{id}/decline` | 200 + revoked relationship; 403, 404, 409 |
| POST | `/api/supporters/{id}/revoke` | 200 + revoked relationship; 403, 404, 409 |
"""

from fastapi import APIRouter, Depends, status

from support_spark.container import ServiceContainer
from support_spark.models import InviteSupporterRequest, SupporterRelationship, SupportersOverview
from support_spark.routes.dependencies import get_current_member_id, get_services

router = APIRouter(prefix="/api/supporters", tags=["Supporters"])


@router.get("", response_model=SupportersOverview)
async def list_supporters(
    member_id: str = Depends(get_current_member_id),
    services: ServiceContainer = Depends(get_services),
):
    return await services.relationships.overview(member_id)


@router.post("/invite", response_model=SupporterRelationship, status_code=status.HTTP_201_CREATED)
async def invite_supporter(
    payload: InviteSupporterRequest,
    member_id: str = Depends(get_current_member_id),
    services: ServiceContainer = Depends(get_services),
):
    return await services.relationships.invite(member_id, payload.contact)


@router.post("/{relationship_id}/accept", response_model=SupporterRelationship)
async def accept_invitation(
    relationship_id: str,
    member_id: str = Depends(get_current_member_id),
    services: ServiceContainer = Depends(get_services),
):
    return await services.relationships.accept(relationship_id, member_id)


@router.post("/{relationship_id}/decline", response_model=SupporterRelationship)
async def decline_invitation(
    relationship_id: str,
    member_id: str = Depends(get_current_member_id),
    services: ServiceContainer = Depends(get_services),
):
    return await services.relationships.decline(relationship_id, member_id)


@router.post("/{relationship_id}/revoke", response_model=SupporterRelationship)
async def revoke_supporter(
    relationship_id: str,
    member_id: str = Depends(get_current_member_id),
    services: ServiceContainer = Depends(get_services),
):
    return await services.relationships.revoke(relationship_id, member_id)
