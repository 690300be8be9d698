import logging
import secrets
from supabase import AsyncClient
from app.authorization.models import Invitation, Principal
from app.authorization.repository import AuthorizationRepository
from app.config.settings import settings
from app.core.exceptions import InvitationAlreadyAcceptedError
from app.modules.invitations.schemas import (
    InvitationCreate, InvitationResponse, InvitationCreatedResponse, InvitationAcceptResponse
)
from typing import Any, Dict, List, Optional
from datetime import datetime, timedelta, timezone
from fastapi import HTTPException

logger = logging.getLogger(__name__)


class InvitationService:
    def __init__(self, supabase: AsyncClient):
        self.supabase = supabase
        self.repository = AuthorizationRepository(supabase)

    async def create_invitation(self, invitation_data: InvitationCreate, inviter: Principal) -> InvitationCreatedResponse:
        """Create a pending invitation with a fresh token"""
        now = datetime.now(timezone.utc)
        try:
            result = await self.supabase.table("invitations").insert({
                "email": invitation_data.email,
                "token": secrets.token_urlsafe(32),
                "workspace_id": invitation_data.workspace_id,
                "project_id": invitation_data.project_id,
                "role_id": invitation_data.role_id,
                "invited_by": inviter.id,
                "is_accepted": False,
                "expires_at": (now + timedelta(days=settings.invitation_ttl_days)).isoformat(),
                "created_at": now.isoformat()
            }).execute()

            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to create invitation")

            logger.info(f"User {inviter.id} invited {invitation_data.email} to workspace {invitation_data.workspace_id}")
            return InvitationCreatedResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    async def get_invitation(self, invitation_id: str) -> InvitationResponse:
        try:
            row = await self.repository.get_by_id("invitations", invitation_id)
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
        if not row:
            raise HTTPException(status_code=404, detail="Invitation not found")
        return InvitationResponse(**row)

    async def _add_member(self, table: str, scope_column: str, scope_id: str, user_id: str, role_id: Optional[str]):
        """Insert a membership row unless the user already has one in that scope"""
        await self.supabase.table(table)\
            .upsert(
                {"user_id": user_id, scope_column: scope_id, "role_id": role_id},
                on_conflict=f"user_id,{scope_column}",
                ignore_duplicates=True
            )\
            .execute()

    async def _release(self, invitation: Invitation, principal: Principal) -> None:
        """Undo this principal's claim on the invitation so acceptance can be retried."""
        try:
            await self.supabase.table("invitations")\
                .update({"is_accepted": False, "accepted_by": None, "accepted_at": None})\
                .eq("id", invitation.id)\
                .eq("accepted_by", principal.id)\
                .execute()
            logger.info(f"Invitation {invitation.id} reopened after failed acceptance by {principal.id}")
        except Exception as e:
            logger.error(f"Failed to reopen invitation {invitation.id}: {e}")

    async def accept_invitation(self, invitation: Invitation, principal: Principal) -> InvitationAcceptResponse:
        """
        Mark the invitation accepted and create the membership.

        The update only matches while is_accepted is still false, so of two
        concurrent acceptances exactly one wins; the other gets
        InvitationAlreadyAcceptedError.
        """
        try:
            result = await self.supabase.table("invitations")\
                .update({
                    "is_accepted": True,
                    "accepted_by": principal.id,
                    "accepted_at": datetime.now(timezone.utc).isoformat()
                })\
                .eq("id", invitation.id)\
                .eq("is_accepted", False)\
                .execute()
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

        if not result.data:
            logger.warning(f"User {principal.id} tried to accept invitation {invitation.id} a second time")
            raise InvitationAlreadyAcceptedError()

        try:
            if invitation.project_id:
                await self._add_member("workspace_members", "workspace_id", invitation.workspace_id, principal.id, None)
                await self._add_member("project_members", "project_id", invitation.project_id, principal.id, invitation.role_id)
            else:
                await self._add_member("workspace_members", "workspace_id", invitation.workspace_id, principal.id, invitation.role_id)
        except Exception as e:
            logger.error(f"Invitation {invitation.id} accepted but membership insert failed: {e}")
            await self._release(invitation, principal)
            raise HTTPException(status_code=500, detail=str(e))

        logger.info(f"User {principal.id} accepted invitation {invitation.id}")
        return InvitationAcceptResponse(
            invitation_id=invitation.id,
            workspace_id=invitation.workspace_id,
            project_id=invitation.project_id,
            message="Invitation accepted"
        )

    async def cancel_invitation(self, invitation_id: str) -> bool:
        try:
            result = await self.supabase.table("invitations")\
                .delete()\
                .eq("id", invitation_id)\
                .execute()
            return len(result.data) > 0
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    async def list_invitations(
        self,
        filters: Optional[Dict[str, Any]] = None,
        limit: int = 50,
        offset: int = 0
    ) -> List[InvitationResponse]:
        """
        List invitations newest first. filters["visible_to"] (set by the
        invitation guard) is {"invited_by", "email"}: keep rows matching either.
        """
        filters = dict(filters or {})
        visible_to = filters.pop("visible_to", None)
        try:
            query = self.supabase.table("invitations").select("*")
            for column, value in filters.items():
                query = query.eq(column, value)
            if visible_to:
                clauses = [f"invited_by.eq.{visible_to['invited_by']}"]
                if visible_to.get("email"):
                    clauses.append(f'email.eq."{visible_to["email"]}"')
                query = query.or_(",".join(clauses))
            result = await query\
                .order("created_at", desc=True)\
                .range(offset, offset + limit - 1)\
                .execute()

            return [InvitationResponse(**row) for row in result.data]
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
