"""
The three grant resolvers the permission checker combines.

Each answers one question against the repository and never raises: a query
error is logged and read as "no grant".
"""

import logging
from app.authorization.decision import Decision
from app.authorization.repository import AuthorizationRepository
from app.config.permissions_config import OWNED_RESOURCES, Scopes
from typing import List, Optional

logger = logging.getLogger(__name__)


class OwnershipResolver:
    def __init__(self, repository: AuthorizationRepository):
        self.repository = repository

    async def check_resource_ownership(self, user_id: str, resource_type: str, resource_id: Optional[str]) -> bool:
        """True if user_id is the owner_id of the resource. Unknown type or missing row is False."""
        if resource_type not in OWNED_RESOURCES or not resource_id:
            return False
        table, owner_column = OWNED_RESOURCES[resource_type]
        try:
            row = await self.repository.get_by_id(table, resource_id)
            return bool(row) and row.get(owner_column) == user_id
        except Exception as e:
            logger.error(f"Failed to check resource ownership of {resource_type} {resource_id} for user {user_id}: {e}")
            return False

    async def resolve(self, user_id: str, resource_type: str, resource_id: Optional[str]) -> Decision:
        if await self.check_resource_ownership(user_id, resource_type, resource_id):
            return Decision.allow("ownership")
        return Decision.deny(f"user does not own {resource_type} {resource_id}")


class RoleGrantResolver:
    def __init__(self, repository: AuthorizationRepository):
        self.repository = repository

    async def _membership(self, user_id: str, scope: str, resource_id: str):
        if scope == Scopes.WORKSPACE:
            return await self.repository.find_workspace_membership(user_id, resource_id)
        return await self.repository.find_project_membership(user_id, resource_id)

    async def check_role_based_permission(
        self,
        user_id: str,
        permission_name: str,
        scope: str,
        resource_id: Optional[str]
    ) -> bool:
        """Membership in the scope -> role -> permissions with matching name and scope."""
        if scope not in (Scopes.WORKSPACE, Scopes.PROJECT) or not resource_id:
            return False
        try:
            membership = await self._membership(user_id, scope, resource_id)
            if not membership:
                return False
            return any(
                p.name == permission_name and p.scope == scope
                for p in membership.permissions
            )
        except Exception as e:
            logger.error(f"Failed to check {scope} role permission {permission_name} for user {user_id}: {e}")
            return False

    async def get_role_based_permissions(self, user_id: str, scope: str, resource_id: Optional[str]) -> List[str]:
        if scope not in (Scopes.WORKSPACE, Scopes.PROJECT) or not resource_id:
            return []
        try:
            membership = await self._membership(user_id, scope, resource_id)
            if not membership:
                return []
            return [p.name for p in membership.permissions if p.scope == scope]
        except Exception as e:
            logger.error(f"Failed to get role-based permissions for user {user_id} in {scope} {resource_id}: {e}")
            return []

    async def resolve(self, user_id: str, permission_name: str, scope: str, resource_id: Optional[str]) -> Decision:
        if await self.check_role_based_permission(user_id, permission_name, scope, resource_id):
            return Decision.allow("role")
        return Decision.deny(f"no role grants {permission_name} in {scope}")


class DirectGrantResolver:
    """Direct grants exist for projects only (project_user_permissions)."""

    def __init__(self, repository: AuthorizationRepository):
        self.repository = repository

    async def check_direct_user_permission(
        self,
        user_id: str,
        permission_name: str,
        scope: str,
        resource_id: Optional[str]
    ) -> bool:
        if scope != Scopes.PROJECT or not resource_id:
            return False
        try:
            permissions = await self.repository.find_direct_permissions(user_id, resource_id, scope)
            return any(p.name == permission_name for p in permissions)
        except Exception as e:
            logger.error(f"Failed to check direct permission {permission_name} for user {user_id}: {e}")
            return False

    async def get_direct_user_permissions(self, user_id: str, scope: str, resource_id: Optional[str]) -> List[str]:
        if scope != Scopes.PROJECT or not resource_id:
            return []
        try:
            permissions = await self.repository.find_direct_permissions(user_id, resource_id, scope)
            return [p.name for p in permissions]
        except Exception as e:
            logger.error(f"Failed to get direct permissions for user {user_id} in project {resource_id}: {e}")
            return []

    async def resolve(self, user_id: str, permission_name: str, scope: str, resource_id: Optional[str]) -> Decision:
        if await self.check_direct_user_permission(user_id, permission_name, scope, resource_id):
            return Decision.allow("direct")
        return Decision.deny(f"no direct grant of {permission_name}")
