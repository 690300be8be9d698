from fastapi import APIRouter, Depends
from app.database.supabase_client import get_supabase
from app.modules.invitations.schemas import (
    InvitationCreate, InvitationResponse, InvitationCreatedResponse,
    InvitationPublicResponse, InvitationAcceptResponse
)
from app.modules.invitations.service import InvitationService
from app.authorization.guards.bundle import Guards
from app.core.dependencies import get_guards
from supabase import AsyncClient
from typing import List, Optional

router = APIRouter(prefix="/invitations", tags=["invitations"])


def get_invitation_service(supabase: AsyncClient = Depends(get_supabase)) -> InvitationService:
    return InvitationService(supabase)


@router.post("", response_model=InvitationCreatedResponse, status_code=201)
async def create_invitation(
    invitation_data: InvitationCreate,
    guards: Guards = Depends(get_guards),
    service: InvitationService = Depends(get_invitation_service)
):
    """Invite an email to a workspace (or one of its projects); 429 past the pending limit"""
    context = await guards.invitation.protect_invitation_with_limits(invitation_data.workspace_id)
    if invitation_data.project_id:
        await guards.invitation.protect_project_invitation(invitation_data.project_id, invitation_data.workspace_id)
    return await service.create_invitation(invitation_data, context.principal)


@router.get("", response_model=List[InvitationResponse])
async def list_invitations(
    workspace_id: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
    guards: Guards = Depends(get_guards),
    service: InvitationService = Depends(get_invitation_service)
):
    """Invitations the caller sent or received (all for super admins)"""
    context = await guards.invitation.protect_list({"workspace_id": workspace_id} if workspace_id else {})
    return await service.list_invitations(filters=context.filters, limit=limit, offset=offset)


@router.get("/pending", response_model=List[InvitationResponse])
async def list_my_pending_invitations(guards: Guards = Depends(get_guards)):
    principal = await guards.primitives.require_auth()
    if not principal.email:
        return []
    invitations = await guards.invitation.get_pending_invitations(principal.email)
    return [InvitationResponse(**i.model_dump()) for i in invitations]


@router.get("/token/{token}", response_model=InvitationPublicResponse)
async def get_invitation_by_token(
    token: str,
    guards: Guards = Depends(get_guards)
):
    """Public lookup by token; no login required"""
    context = await guards.invitation.protect_by_token(token)
    return InvitationPublicResponse(**context.resource.model_dump())


@router.post("/token/{token}/accept", response_model=InvitationAcceptResponse)
async def accept_invitation(
    token: str,
    guards: Guards = Depends(get_guards),
    service: InvitationService = Depends(get_invitation_service)
):
    """Accept as the logged-in user; the user's email must be the invited one"""
    principal = await guards.primitives.require_auth()
    context = await guards.invitation.protect_acceptance(token, principal.id)
    return await service.accept_invitation(context.resource, principal)


@router.get("/{invitation_id}", response_model=InvitationResponse)
async def get_invitation(
    invitation_id: str,
    guards: Guards = Depends(get_guards)
):
    context = await guards.invitation.protect_invitation(invitation_id)
    return InvitationResponse(**context.resource.model_dump())


@router.delete("/{invitation_id}", status_code=204)
async def cancel_invitation(
    invitation_id: str,
    guards: Guards = Depends(get_guards),
    service: InvitationService = Depends(get_invitation_service)
):
    await guards.invitation.protect_cancellation(invitation_id)
    await service.cancel_invitation(invitation_id)
    return None
