import logging
from app.authorization.guards.base import GuardPrimitives, audit_logger
from app.authorization.guards.workspace import WorkspaceGuard
from app.authorization.models import AuthorizationContext, Principal
from app.config.permissions_config import Permissions, Scopes
from app.core.exceptions import SelfDeletionError
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class UserGuard:
    def __init__(self, primitives: GuardPrimitives, workspaces: Optional[WorkspaceGuard] = None):
        self.p = primitives
        self.workspaces = workspaces or WorkspaceGuard(primitives)

    async def protect_user(self) -> AuthorizationContext:
        """Own profile: any authenticated user."""
        principal = await self.p.require_auth()
        return AuthorizationContext(principal=principal, resource=principal)

    async def _shares_managed_workspace(self, principal: Principal, target_user_id: str) -> bool:
        try:
            mine = await self.p.repository.list_workspace_ids_for_user(principal.id)
            theirs = set(await self.p.repository.list_workspace_ids_for_user(target_user_id))
        except Exception as e:
            logger.error(f"Failed to load shared workspaces of {principal.id} and {target_user_id}: {e}")
            return False
        for workspace_id in mine:
            if workspace_id in theirs and await self.p.has_permission(
                principal, Permissions.USER.MANAGE, Scopes.WORKSPACE, workspace_id
            ):
                return True
        return False

    async def protect_user_management(self, target_user_id: str) -> AuthorizationContext:
        principal = await self.p.require_auth()
        target = await self.p.validate_resource_exists(
            lambda: self.p.repository.get_user(target_user_id), "User"
        )
        if principal.id == target_user_id or self.p.is_super_admin(principal):
            return AuthorizationContext(principal=principal, resource=target)
        if not await self._shares_managed_workspace(principal, target_user_id):
            self.p.deny(principal, "manage", "user", target_user_id)
        return AuthorizationContext(principal=principal, resource=target)

    async def protect_user_list(self, filters: Optional[Dict[str, Any]] = None) -> AuthorizationContext:
        """Super admins list everyone; others only members of their own workspaces."""
        principal = await self.p.require_auth()
        filters = dict(filters or {})
        if not self.p.is_super_admin(principal):
            filters["workspace_id"] = await self.p.repository.list_workspace_ids_for_user(principal.id)
        return AuthorizationContext(principal=principal, filters=filters)

    async def protect_user_update(self, target_user_id: str) -> AuthorizationContext:
        principal = await self.p.require_auth()
        target = await self.p.validate_resource_exists(
            lambda: self.p.repository.get_user(target_user_id), "User"
        )
        if principal.id != target_user_id and not self.p.is_super_admin(principal):
            self.p.deny(principal, "update", "user", target_user_id)
        return AuthorizationContext(principal=principal, resource=target)

    async def protect_user_deletion(self, target_user_id: str) -> AuthorizationContext:
        principal = await self.p.require_auth()
        target = await self.p.validate_resource_exists(
            lambda: self.p.repository.get_user(target_user_id), "User"
        )
        if not self.p.is_super_admin(principal):
            self.p.deny(principal, "delete", "user", target_user_id)
        if principal.id == target_user_id:
            audit_logger.warning(f"Super admin {principal.id} attempted to delete their own account")
            raise SelfDeletionError()
        return AuthorizationContext(principal=principal, resource=target)

    async def protect_user_invitation(self, workspace_id: str) -> AuthorizationContext:
        return await self.workspaces.protect_invitation(workspace_id)
