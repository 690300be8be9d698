from app.authorization.guards.base import GuardPrimitives, audit_logger
from app.authorization.models import AuthorizationContext, Principal
from app.core.exceptions import SelfDeletionError


class AdminGuard:
    """Super admin only. No grant or ownership opens any of these."""

    def __init__(self, primitives: GuardPrimitives):
        self.p = primitives

    async def _require_super_admin(self, action: str, resource_type: str = "system", resource_id: str = None) -> Principal:
        principal = await self.p.require_auth()
        if not self.p.is_super_admin(principal):
            self.p.deny(principal, action, resource_type, resource_id)
        return principal

    async def protect_admin(self) -> AuthorizationContext:
        principal = await self._require_super_admin("access admin area of")
        return AuthorizationContext(principal=principal)

    async def protect_user_administration(self, target_user_id: str, action: str = "manage") -> AuthorizationContext:
        principal = await self._require_super_admin(f"{action} (admin)", "user", target_user_id)
        target = await self.p.validate_resource_exists(
            lambda: self.p.repository.get_user(target_user_id), "User"
        )
        if action == "delete" and principal.id == target_user_id:
            audit_logger.warning(f"Super admin {principal.id} attempted to delete their own account")
            raise SelfDeletionError()
        return AuthorizationContext(principal=principal, resource=target, extras={"action": action})

    async def protect_workspace_administration(self, workspace_id: str) -> AuthorizationContext:
        principal = await self._require_super_admin("administer", "workspace", workspace_id)
        workspace = await self.p.validate_resource_exists(
            lambda: self.p.repository.get_workspace(workspace_id), "Workspace"
        )
        return AuthorizationContext(principal=principal, resource=workspace)

    async def protect_analytics(self) -> AuthorizationContext:
        return AuthorizationContext(principal=await self._require_super_admin("view analytics of"))

    async def protect_maintenance(self) -> AuthorizationContext:
        return AuthorizationContext(principal=await self._require_super_admin("run maintenance on"))

    async def protect_audit_logs(self) -> AuthorizationContext:
        return AuthorizationContext(principal=await self._require_super_admin("read audit logs of"))

    async def protect_system_broadcast(self) -> AuthorizationContext:
        return AuthorizationContext(principal=await self._require_super_admin("broadcast to"))
