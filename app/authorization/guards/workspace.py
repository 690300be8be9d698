"""
Workspace guard.

Access order is super admin -> workspace owner -> membership. Fine-grained
actions go through the permission checker, where the owner is already covered
by the ownership allow-list.
"""

from app.authorization.guards.base import GuardPrimitives
from app.authorization.models import AuthorizationContext, Principal, Workspace
from app.config.permissions_config import Permissions, Scopes


class WorkspaceGuard:
    def __init__(self, primitives: GuardPrimitives):
        self.p = primitives

    async def _load(self, workspace_id: str) -> Workspace:
        return await self.p.validate_resource_exists(
            lambda: self.p.repository.get_workspace(workspace_id), "Workspace"
        )

    async def _context(self, principal: Principal, workspace: Workspace) -> AuthorizationContext:
        membership = await self.p.get_workspace_membership(principal.id, workspace.id)
        return AuthorizationContext(
            principal=principal,
            resource=workspace,
            membership=membership,
            role=membership.role if membership else None,
        )

    async def protect_workspace(self, workspace_id: str) -> AuthorizationContext:
        principal = await self.p.require_auth()
        workspace = await self._load(workspace_id)
        context = await self._context(principal, workspace)

        if self.p.is_super_admin(principal) or self.p.is_owner(principal.id, workspace.owner_id):
            return context
        if context.membership is None:
            self.p.deny(principal, "access", "workspace", workspace_id)
        return context

    async def protect_ownership(self, workspace_id: str) -> AuthorizationContext:
        principal = await self.p.require_auth()
        workspace = await self._load(workspace_id)
        if not self.p.is_super_admin(principal):
            self.p.require_ownership(principal, workspace.owner_id, "workspace", workspace_id)
        return await self._context(principal, workspace)

    async def _require(self, workspace_id: str, permission_name: str, action: str) -> AuthorizationContext:
        principal = await self.p.require_auth()
        workspace = await self._load(workspace_id)
        if not await self.p.has_permission(principal, permission_name, Scopes.WORKSPACE, workspace_id):
            self.p.deny(principal, action, "workspace", workspace_id)
        return await self._context(principal, workspace)

    async def protect_management(self, workspace_id: str) -> AuthorizationContext:
        return await self._require(workspace_id, Permissions.WORKSPACE.MANAGE, "manage")

    async def protect_creation(self) -> AuthorizationContext:
        principal = await self.p.require_auth()
        return AuthorizationContext(principal=principal)

    async def protect_deletion(self, workspace_id: str) -> AuthorizationContext:
        """Only the owner or a super admin; no grant can delete a workspace."""
        principal = await self.p.require_auth()
        workspace = await self._load(workspace_id)
        if not (self.p.is_super_admin(principal) or self.p.is_owner(principal.id, workspace.owner_id)):
            self.p.deny(principal, "delete", "workspace", workspace_id)
        return await self._context(principal, workspace)

    async def protect_member_management(self, workspace_id: str) -> AuthorizationContext:
        return await self._require(workspace_id, Permissions.WORKSPACE.MANAGE_MEMBERS, "manage members of")

    async def protect_settings(self, workspace_id: str) -> AuthorizationContext:
        return await self._require(workspace_id, Permissions.WORKSPACE.MANAGE, "change settings of")

    async def protect_invitation(self, workspace_id: str) -> AuthorizationContext:
        return await self._require(workspace_id, Permissions.WORKSPACE.INVITE, "invite to")
