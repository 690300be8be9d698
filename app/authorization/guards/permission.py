import logging
from app.authorization.guards.base import GuardPrimitives, audit_logger
from app.authorization.models import AuthorizationContext, Permission, Principal
from app.config.permissions_config import ACCESSIBLE_PERMISSION_SCOPES, Permissions, Scopes
from app.core.exceptions import ResourceInUseError
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class PermissionGuard:
    """Permissions without an owner_id are system permissions."""

    def __init__(self, primitives: GuardPrimitives):
        self.p = primitives

    async def _load(self, permission_id: str) -> Permission:
        return await self.p.validate_resource_exists(
            lambda: self.p.repository.get_permission(permission_id), "Permission"
        )

    async def protect_permission(self, permission_id: str) -> AuthorizationContext:
        principal = await self.p.require_auth()
        permission = await self._load(permission_id)
        if not self.p.is_super_admin(principal) and not permission.is_system:
            self.p.require_ownership(principal, permission.owner_id, "permission", permission_id)
        return AuthorizationContext(principal=principal, resource=permission)

    async def protect_creation(self) -> AuthorizationContext:
        principal = await self.p.require_auth()
        return AuthorizationContext(principal=principal)

    async def protect_update(self, permission_id: str) -> AuthorizationContext:
        principal = await self.p.require_auth()
        permission = await self._load(permission_id)
        if not self.p.is_super_admin(principal):
            if permission.is_system:
                self.p.deny(principal, "update system", "permission", permission_id)
            self.p.require_ownership(principal, permission.owner_id, "permission", permission_id)
        return AuthorizationContext(principal=principal, resource=permission)

    async def protect_deletion(self, permission_id: str) -> AuthorizationContext:
        principal = await self.p.require_auth()
        permission = await self._load(permission_id)
        if not self.p.is_super_admin(principal):
            if permission.is_system:
                self.p.deny(principal, "delete system", "permission", permission_id)
            self.p.require_ownership(principal, permission.owner_id, "permission", permission_id)

        if await self.is_permission_in_use(permission_id):
            audit_logger.warning(f"User {principal.id} attempted to delete permission {permission_id} that is in use")
            raise ResourceInUseError("Cannot delete permission that is currently assigned to roles or users")
        return AuthorizationContext(principal=principal, resource=permission)

    async def can_assign_permission_to_role(self, principal: Principal, role_id: str) -> bool:
        try:
            role = await self.p.repository.get_role(role_id)
            if not role:
                return False
            if role.is_system:
                return self.p.is_super_admin(principal)
            return self.p.is_super_admin(principal) or self.p.is_owner(principal.id, role.owner_id)
        except Exception as e:
            logger.error(f"Failed to check permission assignment to role {role_id}: {e}")
            return False

    async def can_assign_permission_to_user(self, principal: Principal, project_id: str) -> bool:
        try:
            project = await self.p.repository.get_project(project_id)
            if not project:
                return False
            if self.p.is_owner(principal.id, project.owner_id):
                return True
            workspace = await self.p.repository.get_workspace(project.workspace_id)
            if workspace and self.p.is_owner(principal.id, workspace.owner_id):
                return True
            return await self.p.has_permission(principal, Permissions.PERMISSION.ASSIGN, Scopes.PROJECT, project_id)
        except Exception as e:
            logger.error(f"Failed to check direct permission assignment in project {project_id}: {e}")
            return False

    async def protect_role_assignment(self, permission_id: str, role_id: str) -> AuthorizationContext:
        context = await self.protect_permission(permission_id)
        role = await self.p.validate_resource_exists(
            lambda: self.p.repository.get_role(role_id), "Role"
        )
        if not await self.can_assign_permission_to_role(context.principal, role_id):
            self.p.deny(context.principal, f"assign permission {permission_id} to", "role", role_id)
        context.role = role
        return context

    async def protect_user_assignment(self, permission_id: str, target_user_id: str, project_id: str) -> AuthorizationContext:
        context = await self.protect_permission(permission_id)
        if not await self.can_assign_permission_to_user(context.principal, project_id):
            self.p.deny(context.principal, f"assign permission {permission_id} to {target_user_id} in", "project", project_id)
        context.extras = {"target_user_id": target_user_id, "project_id": project_id}
        return context

    async def protect_list(self, filters: Optional[Dict[str, Any]] = None) -> AuthorizationContext:
        """Non super admins only list permissions they own."""
        principal = await self.p.require_auth()
        filters = dict(filters or {})
        if not self.p.is_super_admin(principal):
            filters["owner_id"] = principal.id
        return AuthorizationContext(principal=principal, filters=filters)

    async def protect_scope_access(self, scope: str) -> AuthorizationContext:
        principal = await self.p.require_auth()
        if scope not in ACCESSIBLE_PERMISSION_SCOPES and not self.p.is_super_admin(principal):
            self.p.deny(principal, "access permissions of scope", scope)
        return AuthorizationContext(principal=principal, filters={"scope": scope})

    async def is_permission_in_use(self, permission_id: str) -> bool:
        return await self.p.repository.is_permission_in_use(permission_id)

    async def get_available_permissions(self, scope: Optional[str] = None) -> List[Permission]:
        try:
            principal = await self.p.get_session()
            if principal is None:
                return []
            filters: Dict[str, Any] = {"scope": scope} if scope else {}
            if not self.p.is_super_admin(principal):
                filters["owner_id"] = principal.id
            rows = await self.p.repository.find_many("permissions", filters, order_by="name")
            return [Permission(**row) for row in rows]
        except Exception as e:
            logger.error(f"Failed to get available permissions: {e}")
            return []
