"""
PermissionChecker - combines direct, role and ownership grants.

Evaluation order is direct grant -> role grant -> ownership, first allow wins.
Ownership only counts for the permission names listed for the scope in
OWNERSHIP_PERMISSIONS. Nothing here raises for a denied or failed check; the
guards turn a False into a ForbiddenError.
"""

import logging
from app.authorization.concurrency import gather_bounded
from app.authorization.decision import Decision
from app.authorization.repository import AuthorizationRepository
from app.authorization.resolvers import DirectGrantResolver, OwnershipResolver, RoleGrantResolver
from app.config.permissions_config import OWNERSHIP_PERMISSIONS
from typing import Any, Dict, List, Optional, Set

logger = logging.getLogger(__name__)


class PermissionChecker:
    def __init__(self, repository: AuthorizationRepository):
        self.repository = repository
        self.direct = DirectGrantResolver(repository)
        self.roles = RoleGrantResolver(repository)
        self.ownership = OwnershipResolver(repository)

    async def evaluate(
        self,
        user_id: str,
        permission_name: str,
        scope: str,
        resource_id: Optional[str] = None
    ) -> Decision:
        try:
            decision = await self.direct.resolve(user_id, permission_name, scope, resource_id)
            if decision:
                return decision

            decision = await self.roles.resolve(user_id, permission_name, scope, resource_id)
            if decision:
                return decision

            if permission_name not in OWNERSHIP_PERMISSIONS.get(scope, []):
                return Decision.deny(f"{permission_name} is not granted by ownership of a {scope}")
            return await self.ownership.resolve(user_id, scope, resource_id)
        except Exception as e:
            logger.error(
                f"Failed to check permission {permission_name} for user {user_id} "
                f"in {scope} {resource_id}: {e}"
            )
            return Decision.deny("permission check failed")

    async def has_permission(
        self,
        user_id: str,
        permission_name: str,
        scope: str,
        resource_id: Optional[str] = None
    ) -> bool:
        decision = await self.evaluate(user_id, permission_name, scope, resource_id)
        return decision.allowed

    async def check_resource_ownership(self, user_id: str, resource_type: str, resource_id: Optional[str]) -> bool:
        return await self.ownership.check_resource_ownership(user_id, resource_type, resource_id)

    async def get_ownership_permissions(self, user_id: str, scope: str, resource_id: Optional[str]) -> List[str]:
        if scope not in OWNERSHIP_PERMISSIONS:
            return []
        if await self.ownership.check_resource_ownership(user_id, scope, resource_id):
            return list(OWNERSHIP_PERMISSIONS[scope])
        return []

    async def get_effective_permissions(
        self,
        user_id: str,
        scope: str,
        resource_id: Optional[str] = None
    ) -> Dict[str, List[str]]:
        """Permission names by source, plus their union under "all"."""
        direct = await self.direct.get_direct_user_permissions(user_id, scope, resource_id)
        role = await self.roles.get_role_based_permissions(user_id, scope, resource_id)
        ownership = await self.get_ownership_permissions(user_id, scope, resource_id)
        return {
            "direct": direct,
            "role": role,
            "ownership": ownership,
            "all": sorted(set(direct) | set(role) | set(ownership)),
        }

    async def get_user_permissions(self, user_id: str, scope: str, resource_id: Optional[str] = None) -> Set[str]:
        effective = await self.get_effective_permissions(user_id, scope, resource_id)
        return set(effective["all"])

    async def check_multiple_permissions(
        self,
        user_id: str,
        permissions: List[Dict[str, Any]],
        logic: str = "AND"
    ) -> bool:
        """permissions: [{"name", "scope", "resource_id"}]. logic is "AND" or "OR"."""
        results = await gather_bounded(
            permissions,
            lambda p: self.has_permission(user_id, p["name"], p["scope"], p.get("resource_id")),
        )
        if logic.upper() == "OR":
            return any(results)
        return all(results)

    async def can_perform_action(self, user_id: str, action: str, resource_type: str, resource_id: str) -> bool:
        return await self.has_permission(user_id, f"{action}:{resource_type}", resource_type, resource_id)
