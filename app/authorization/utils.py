"""
Composable authorization wrappers and helpers.

The require_* factories wrap any async callable with a pre-check: the wrapped
function only runs when the check passes, otherwise the guard primitives raise
the usual 401/403. Extractors receive the same arguments as the wrapped
function and return the id the check needs.
"""

import functools
import logging
from pydantic import BaseModel, Field
from app.authorization.checker import PermissionChecker
from app.authorization.concurrency import gather_bounded
from app.authorization.guards.base import GuardPrimitives
from app.authorization.models import Principal
from typing import Any, Awaitable, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

Extractor = Callable[..., Optional[str]]
Condition = Callable[..., Awaitable[bool]]

EMPTY_PERMISSIONS = {"direct": [], "role": [], "ownership": [], "all": []}


def batch_key(resource: Dict[str, Any]) -> str:
    """Result key of one check: scope:resource_id:permission."""
    return f"{resource['scope']}:{resource.get('resource_id')}:{resource['permission']}"


class ResourceAuthContext(BaseModel):
    user_id: str
    scope: str
    resource_id: Optional[str] = None
    permissions: Dict[str, List[str]] = Field(default_factory=lambda: dict(EMPTY_PERMISSIONS))
    is_owner: bool = False
    is_super_admin: bool = False
    can_read: bool = False
    can_write: bool = False
    can_delete: bool = False
    can_manage: bool = False


class ResourceAuth:
    """Checks and wrappers for one resource type, e.g. ResourceAuth(utils, "project")."""

    def __init__(self, utils: "AuthorizationUtils", resource_type: str):
        self.utils = utils
        self.resource_type = resource_type
        first_arg = lambda resource_id, *args, **kwargs: resource_id
        self.require_read = utils.require_permission(f"read:{resource_type}", resource_type, first_arg)
        self.require_write = utils.require_permission(f"write:{resource_type}", resource_type, first_arg)
        self.require_delete = utils.require_permission(f"delete:{resource_type}", resource_type, first_arg)
        self.require_manage = utils.require_permission(f"manage:{resource_type}", resource_type, first_arg)

    async def _can(self, action: str, user_id: str, resource_id: str) -> bool:
        return await self.utils.can_access_with_ownership(
            user_id, f"{action}:{self.resource_type}", self.resource_type, resource_id
        )

    async def can_read(self, user_id: str, resource_id: str) -> bool:
        return await self._can("read", user_id, resource_id)

    async def can_write(self, user_id: str, resource_id: str) -> bool:
        return await self._can("write", user_id, resource_id)

    async def can_delete(self, user_id: str, resource_id: str) -> bool:
        return await self._can("delete", user_id, resource_id)

    async def can_manage(self, user_id: str, resource_id: str) -> bool:
        return await self._can("manage", user_id, resource_id)

    async def get_context(self, user_id: str, resource_id: str) -> Optional[ResourceAuthContext]:
        return await self.utils.create_auth_context(user_id, self.resource_type, resource_id)


class AuthorizationUtils:
    def __init__(self, primitives: GuardPrimitives, checker: Optional[PermissionChecker] = None):
        self.p = primitives
        self.checker = checker or primitives.checker

    # Decorator factories

    def require_permission(self, permission_name: str, scope: str, resource_id_extractor: Optional[Extractor] = None):
        def decorator(func):
            @functools.wraps(func)
            async def wrapper(*args, **kwargs):
                principal = await self.p.require_auth()
                resource_id = resource_id_extractor(*args, **kwargs) if resource_id_extractor else None
                if not await self.p.has_permission(principal, permission_name, scope, resource_id):
                    self.p.deny(principal, permission_name, scope, resource_id or "global")
                return await func(*args, **kwargs)
            return wrapper
        return decorator

    def require_ownership(self, resource_type: str, resource_id_extractor: Extractor):
        def decorator(func):
            @functools.wraps(func)
            async def wrapper(*args, **kwargs):
                principal = await self.p.require_auth()
                resource_id = resource_id_extractor(*args, **kwargs)
                if not self.p.is_super_admin(principal):
                    is_owner = await self.checker.check_resource_ownership(principal.id, resource_type, resource_id)
                    if not is_owner:
                        self.p.deny(principal, "own", resource_type, resource_id)
                return await func(*args, **kwargs)
            return wrapper
        return decorator

    def require_workspace_membership(self, workspace_id_extractor: Extractor):
        def decorator(func):
            @functools.wraps(func)
            async def wrapper(*args, **kwargs):
                principal = await self.p.require_auth()
                await self.p.require_workspace_membership(principal, workspace_id_extractor(*args, **kwargs))
                return await func(*args, **kwargs)
            return wrapper
        return decorator

    def require_project_membership(self, project_id_extractor: Extractor):
        def decorator(func):
            @functools.wraps(func)
            async def wrapper(*args, **kwargs):
                principal = await self.p.require_auth()
                await self.p.require_project_membership(principal, project_id_extractor(*args, **kwargs))
                return await func(*args, **kwargs)
            return wrapper
        return decorator

    def require_conditions(self, conditions: List[Condition], logic: str = "AND"):
        """Each condition is awaited as condition(principal, *args, **kwargs)."""
        def decorator(func):
            @functools.wraps(func)
            async def wrapper(*args, **kwargs):
                principal = await self.p.require_auth()
                results = await gather_bounded(
                    conditions, lambda condition: condition(principal, *args, **kwargs)
                )
                passed = any(results) if logic.upper() == "OR" else all(results)
                if not passed:
                    logger.warning(f"User {principal.id} failed {logic} condition check for {func.__name__}")
                    self.p.deny(principal, func.__name__, "operation")
                return await func(*args, **kwargs)
            return wrapper
        return decorator

    def with_auth(self, check: Callable[..., Awaitable[Any]]):
        """Run `check(*args, **kwargs)` first; whatever it raises propagates."""
        def decorator(func):
            @functools.wraps(func)
            async def wrapper(*args, **kwargs):
                try:
                    await check(*args, **kwargs)
                except Exception as e:
                    logger.error(f"Authorization failed for {func.__name__}: {e}")
                    raise
                return await func(*args, **kwargs)
            return wrapper
        return decorator

    # Helpers

    async def can_access_with_ownership(self, user_id: str, permission_name: str, scope: str, resource_id: Optional[str]) -> bool:
        """Permission, or plain ownership of the resource whatever the permission name."""
        try:
            if await self.checker.has_permission(user_id, permission_name, scope, resource_id):
                return True
            return await self.checker.check_resource_ownership(user_id, scope, resource_id)
        except Exception as e:
            logger.error(f"Failed to check access with ownership for user {user_id}: {e}")
            return False

    async def get_user_effective_permissions(self, user_id: str, scope: str, resource_id: Optional[str]) -> Dict[str, List[str]]:
        try:
            return await self.checker.get_effective_permissions(user_id, scope, resource_id)
        except Exception as e:
            logger.error(f"Failed to get effective permissions for user {user_id}: {e}")
            return dict(EMPTY_PERMISSIONS)

    async def create_auth_context(self, user_id: str, scope: str, resource_id: Optional[str]) -> Optional[ResourceAuthContext]:
        try:
            principal: Optional[Principal] = await self.p.get_session()
            permissions = await self.get_user_effective_permissions(user_id, scope, resource_id)
            is_owner = await self.checker.check_resource_ownership(user_id, scope, resource_id)
            abilities = await gather_bounded(
                ["read", "write", "delete", "manage"],
                lambda action: self.can_access_with_ownership(user_id, f"{action}:{scope}", scope, resource_id),
            )
            return ResourceAuthContext(
                user_id=user_id,
                scope=scope,
                resource_id=resource_id,
                permissions=permissions,
                is_owner=is_owner,
                is_super_admin=self.p.is_super_admin(principal),
                can_read=abilities[0],
                can_write=abilities[1],
                can_delete=abilities[2],
                can_manage=abilities[3],
            )
        except Exception as e:
            logger.error(f"Failed to create auth context for user {user_id}: {e}")
            return None

    @staticmethod
    def validate_operation(context: Optional[ResourceAuthContext], operation: str) -> bool:
        if context is None:
            return False
        if context.is_owner or context.is_super_admin:
            return True
        if operation == "read":
            return context.can_read
        if operation in ("write", "update"):
            return context.can_write
        if operation == "delete":
            return context.can_delete
        if operation == "manage":
            return context.can_manage
        return f"{operation}:{context.scope}" in context.permissions.get("all", [])

    def create_resource_auth(self, resource_type: str) -> ResourceAuth:
        return ResourceAuth(self, resource_type)

    async def batch_check_permissions(self, user_id: str, resources: List[Dict[str, Any]]) -> Dict[str, bool]:
        """resources: [{"permission", "scope", "resource_id"}] -> {batch_key(resource): allowed}"""
        try:
            results = await gather_bounded(
                resources,
                lambda r: self.checker.has_permission(user_id, r["permission"], r["scope"], r.get("resource_id")),
            )
            return {
                batch_key(r): allowed
                for r, allowed in zip(resources, results)
            }
        except Exception as e:
            logger.error(f"Failed to batch check permissions for user {user_id}: {e}")
            return {}

    async def filter_resources_by_permission(
        self,
        user_id: str,
        resources: List[Dict[str, Any]],
        permission_name: str
    ) -> List[Dict[str, Any]]:
        """Keep the resources ({"type", "id", ...}) the user holds permission_name on, in input order."""
        try:
            results = await gather_bounded(
                resources,
                lambda r: self.checker.has_permission(user_id, permission_name, r["type"], r["id"]),
            )
            return [r for r, allowed in zip(resources, results) if allowed]
        except Exception as e:
            logger.error(f"Failed to filter resources by {permission_name} for user {user_id}: {e}")
            return []
