"""
Invitation guard.

The token path needs no session: anyone holding a token may look at a
pending, unexpired invitation. Accepting it additionally requires the
accepting user's email to be the invited email.
"""

import logging
from app.authorization.guards.base import GuardPrimitives, audit_logger
from app.authorization.models import AuthorizationContext, Invitation, Principal, Project, Workspace
from app.config.permissions_config import Permissions, Scopes
from app.config.settings import settings
from app.core.exceptions import (
    DomainRuleViolation, InvitationAlreadyAcceptedError, InvitationEmailMismatchError,
    InvitationExpiredError, InvitationLimitReachedError,
)
from typing import Any, Dict, List, Optional
from datetime import datetime, timezone

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _is_expired(invitation: Invitation, now: datetime) -> bool:
    if invitation.expires_at is None:
        return False
    expires_at = invitation.expires_at
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return now >= expires_at


class InvitationGuard:
    def __init__(self, primitives: GuardPrimitives):
        self.p = primitives

    async def _load(self, invitation_id: str) -> Invitation:
        return await self.p.validate_resource_exists(
            lambda: self.p.repository.get_invitation(invitation_id), "Invitation"
        )

    async def protect_invitation(self, invitation_id: str) -> AuthorizationContext:
        """Inviter, invitee (by email) or super admin."""
        principal = await self.p.require_auth()
        invitation = await self._load(invitation_id)
        if (
            self.p.is_super_admin(principal)
            or self.p.is_owner(principal.id, invitation.invited_by)
            or (principal.email is not None and principal.email == invitation.email)
        ):
            return AuthorizationContext(principal=principal, resource=invitation)
        self.p.deny(principal, "access", "invitation", invitation_id)

    async def protect_by_token(self, token: str) -> AuthorizationContext:
        invitation = await self.p.validate_resource_exists(
            lambda: self.p.repository.get_invitation_by_token(token), "Invitation"
        )
        if invitation.is_accepted:
            audit_logger.warning(f"Attempted to use already accepted invitation {invitation.id}")
            raise InvitationAlreadyAcceptedError()
        if _is_expired(invitation, _now()):
            audit_logger.warning(f"Attempted to use expired invitation {invitation.id}")
            raise InvitationExpiredError()
        return AuthorizationContext(resource=invitation)

    async def can_invite_to_workspace(self, principal: Principal, workspace: Workspace) -> bool:
        if self.p.is_owner(principal.id, workspace.owner_id):
            return True
        return await self.p.has_permission(principal, Permissions.WORKSPACE.INVITE, Scopes.WORKSPACE, workspace.id)

    async def can_invite_to_project(self, principal: Principal, project: Project) -> bool:
        if self.p.is_owner(principal.id, project.owner_id):
            return True
        try:
            workspace = await self.p.repository.get_workspace(project.workspace_id)
        except Exception as e:
            logger.error(f"Failed to load workspace {project.workspace_id}: {e}")
            workspace = None
        if workspace and self.p.is_owner(principal.id, workspace.owner_id):
            return True
        return await self.p.has_permission(principal, Permissions.WORKSPACE.INVITE, Scopes.PROJECT, project.id)

    async def protect_workspace_invitation(self, workspace_id: str) -> AuthorizationContext:
        principal = await self.p.require_auth()
        workspace = await self.p.validate_resource_exists(
            lambda: self.p.repository.get_workspace(workspace_id), "Workspace"
        )
        if not await self.can_invite_to_workspace(principal, workspace):
            self.p.deny(principal, "invite to", "workspace", workspace_id)
        return AuthorizationContext(principal=principal, resource=workspace)

    async def protect_project_invitation(self, project_id: str, workspace_id: Optional[str] = None) -> AuthorizationContext:
        """workspace_id, when given, must be the workspace the project lives in."""
        principal = await self.p.require_auth()
        project = await self.p.validate_resource_exists(
            lambda: self.p.repository.get_project(project_id), "Project"
        )
        if workspace_id is not None and project.workspace_id != workspace_id:
            audit_logger.warning(
                f"User {principal.id} tried to invite to project {project_id} through workspace {workspace_id}"
            )
            raise DomainRuleViolation("Project does not belong to the workspace")
        if not await self.can_invite_to_project(principal, project):
            self.p.deny(principal, "invite to", "project", project_id)
        return AuthorizationContext(principal=principal, resource=project)

    async def protect_acceptance(self, token: str, accepting_user_id: str) -> AuthorizationContext:
        context = await self.protect_by_token(token)
        invitation: Invitation = context.resource
        try:
            user = await self.p.repository.get_user(accepting_user_id)
        except Exception as e:
            logger.error(f"Failed to load user {accepting_user_id}: {e}")
            user = None
        if user is None or user.email != invitation.email:
            audit_logger.warning(f"User {accepting_user_id} attempted to accept invitation {invitation.id} sent to another email")
            raise InvitationEmailMismatchError()
        context.principal = user
        return context

    async def protect_cancellation(self, invitation_id: str) -> AuthorizationContext:
        """Inviter, workspace owner or super admin."""
        principal = await self.p.require_auth()
        invitation = await self._load(invitation_id)
        if self.p.is_super_admin(principal) or self.p.is_owner(principal.id, invitation.invited_by):
            return AuthorizationContext(principal=principal, resource=invitation)
        try:
            workspace = await self.p.repository.get_workspace(invitation.workspace_id)
        except Exception as e:
            logger.error(f"Failed to load workspace {invitation.workspace_id}: {e}")
            workspace = None
        if workspace and self.p.is_owner(principal.id, workspace.owner_id):
            return AuthorizationContext(principal=principal, resource=invitation)
        self.p.deny(principal, "cancel", "invitation", invitation_id)

    async def protect_list(self, filters: Optional[Dict[str, Any]] = None) -> AuthorizationContext:
        """Non super admins see invitations they sent or that were sent to them (filters["visible_to"])."""
        principal = await self.p.require_auth()
        filters = dict(filters or {})
        if not self.p.is_super_admin(principal):
            filters["visible_to"] = {"invited_by": principal.id, "email": principal.email}
        return AuthorizationContext(principal=principal, filters=filters)

    async def is_invitation_limit_reached(self, workspace_id: str) -> bool:
        """Pending means not accepted and not expired. A failed count reads as reached."""
        try:
            pending = await self.p.repository.count_pending_invitations(workspace_id, _now())
            return pending >= settings.invitation_limit
        except Exception as e:
            logger.error(f"Failed to check invitation limit of workspace {workspace_id}: {e}")
            return True

    async def protect_invitation_with_limits(self, workspace_id: str) -> AuthorizationContext:
        context = await self.protect_workspace_invitation(workspace_id)
        if await self.is_invitation_limit_reached(workspace_id):
            audit_logger.warning(f"Invitation limit reached for workspace {workspace_id}")
            raise InvitationLimitReachedError()
        return context

    async def get_pending_invitations(self, email: str) -> List[Invitation]:
        try:
            return await self.p.repository.list_pending_invitations(email, _now())
        except Exception as e:
            logger.error(f"Failed to get pending invitations for {email}: {e}")
            return []

    async def get_sent_invitations(
        self,
        user_id: str,
        workspace_id: Optional[str] = None,
        project_id: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> List[Invitation]:
        try:
            principal = await self.p.get_session()
            if principal is None or (not self.p.is_super_admin(principal) and principal.id != user_id):
                return []
            filters: Dict[str, Any] = {"invited_by": user_id}
            if workspace_id:
                filters["workspace_id"] = workspace_id
            if project_id:
                filters["project_id"] = project_id
            rows = await self.p.repository.find_many(
                "invitations", filters, order_by="created_at", desc=True, limit=limit, offset=offset
            )
            return [Invitation(**row) for row in rows]
        except Exception as e:
            logger.error(f"Failed to get invitations sent by {user_id}: {e}")
            return []
