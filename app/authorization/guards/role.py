"""
Role guard.

System roles are readable by everyone and changeable by super admins only.
Custom roles belong to their owner_id. A role that is still referenced by a
membership or carries permission assignments cannot be deleted.
"""

import logging
from app.authorization.guards.base import GuardPrimitives, audit_logger
from app.authorization.models import AuthorizationContext, Role
from app.config.permissions_config import Permissions, Scopes
from app.core.exceptions import ResourceInUseError
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class RoleGuard:
    def __init__(self, primitives: GuardPrimitives):
        self.p = primitives

    async def _load(self, role_id: str) -> Role:
        return await self.p.validate_resource_exists(
            lambda: self.p.repository.get_role(role_id), "Role"
        )

    async def protect_role(self, role_id: str) -> AuthorizationContext:
        principal = await self.p.require_auth()
        role = await self._load(role_id)
        if self.p.is_super_admin(principal):
            return AuthorizationContext(principal=principal, resource=role)
        if not role.is_system and not self.p.is_owner(principal.id, role.owner_id):
            self.p.deny(principal, "access", "role", role_id)
        return AuthorizationContext(principal=principal, resource=role)

    async def protect_creation(self) -> AuthorizationContext:
        """Any authenticated user may create custom roles they own."""
        principal = await self.p.require_auth()
        return AuthorizationContext(principal=principal)

    async def protect_update(self, role_id: str) -> AuthorizationContext:
        principal = await self.p.require_auth()
        role = await self._load(role_id)
        if not self.p.is_super_admin(principal):
            if role.is_system:
                self.p.deny(principal, "update system", "role", role_id)
            self.p.require_ownership(principal, role.owner_id, "role", role_id)
        return AuthorizationContext(principal=principal, resource=role)

    async def protect_deletion(self, role_id: str) -> AuthorizationContext:
        principal = await self.p.require_auth()
        role = await self._load(role_id)
        if not self.p.is_super_admin(principal):
            if role.is_system:
                self.p.deny(principal, "delete system", "role", role_id)
            self.p.require_ownership(principal, role.owner_id, "role", role_id)

        if await self.is_role_in_use(role_id):
            audit_logger.warning(f"User {principal.id} attempted to delete role {role_id} that is in use")
            raise ResourceInUseError("Cannot delete role that is currently assigned to users or permissions")
        return AuthorizationContext(principal=principal, resource=role)

    async def can_assign_role(self, principal, scope: str, scope_id: str) -> bool:
        try:
            if scope == Scopes.WORKSPACE:
                workspace = await self.p.repository.get_workspace(scope_id)
                if workspace and self.p.is_owner(principal.id, workspace.owner_id):
                    return True
                return await self.p.has_permission(principal, Permissions.ROLE.ASSIGN, Scopes.WORKSPACE, scope_id)
            if scope == Scopes.PROJECT:
                project = await self.p.repository.get_project(scope_id)
                if project and self.p.is_owner(principal.id, project.owner_id):
                    return True
                if project:
                    workspace = await self.p.repository.get_workspace(project.workspace_id)
                    if workspace and self.p.is_owner(principal.id, workspace.owner_id):
                        return True
                return await self.p.has_permission(principal, Permissions.ROLE.ASSIGN, Scopes.PROJECT, scope_id)
            return False
        except Exception as e:
            logger.error(f"Failed to check role assignment permission in {scope} {scope_id}: {e}")
            return False

    async def protect_assignment(self, role_id: str, target_user_id: str, scope: str, scope_id: str) -> AuthorizationContext:
        context = await self.protect_role(role_id)
        principal = context.principal
        if not await self.can_assign_role(principal, scope, scope_id):
            self.p.deny(principal, f"assign role {role_id} to {target_user_id} in", scope, scope_id)
        context.extras = {"target_user_id": target_user_id, "scope": scope, "scope_id": scope_id}
        return context

    async def protect_list(self, filters: Optional[Dict[str, Any]] = None) -> AuthorizationContext:
        """Non super admins see system roles plus their own (filters["visible_to"])."""
        principal = await self.p.require_auth()
        filters = dict(filters or {})
        if not self.p.is_super_admin(principal):
            filters["visible_to"] = principal.id
        return AuthorizationContext(principal=principal, filters=filters)

    async def is_role_in_use(self, role_id: str) -> bool:
        return await self.p.repository.is_role_in_use(role_id)

    async def get_available_roles(self, scope: Optional[str] = None) -> List[Role]:
        try:
            principal = await self.p.get_session()
            filters = {"scope": scope} if scope else {}
            rows = await self.p.repository.find_many("roles", filters, order_by="name")
            roles = [Role(**row) for row in rows]
            if self.p.is_super_admin(principal):
                return roles
            user_id = principal.id if principal else None
            return [r for r in roles if r.is_system or (user_id and r.owner_id == user_id)]
        except Exception as e:
            logger.error(f"Failed to get available roles: {e}")
            return []
