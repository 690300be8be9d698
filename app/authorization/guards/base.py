"""
Shared guard primitives.

Every resource guard holds one GuardPrimitives instance instead of inheriting
from a base guard. The primitives own the session, the repository and the
permission checker for the current request.
"""

import logging
from app.authorization.checker import PermissionChecker
from app.authorization.models import Membership, Principal
from app.authorization.repository import AuthorizationRepository
from app.core.exceptions import ForbiddenError, ResourceNotFoundError, UnauthenticatedError
from typing import Awaitable, Callable, NoReturn, Optional, Protocol, TypeVar

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("app.audit")

T = TypeVar("T")


class SessionProvider(Protocol):
    async def get_current_user(self) -> Optional[Principal]:
        ...


class GuardPrimitives:
    def __init__(
        self,
        session: SessionProvider,
        repository: AuthorizationRepository,
        checker: PermissionChecker
    ):
        self.session = session
        self.repository = repository
        self.checker = checker

    async def get_session(self) -> Optional[Principal]:
        return await self.session.get_current_user()

    async def require_auth(self) -> Principal:
        principal = await self.get_session()
        if principal is None:
            raise UnauthenticatedError()
        return principal

    async def validate_resource_exists(self, lookup: Callable[[], Awaitable[Optional[T]]], resource_name: str) -> T:
        """Run lookup; a missing row or a failed query is a 404."""
        try:
            resource = await lookup()
        except Exception as e:
            logger.error(f"Failed to load {resource_name}: {e}")
            raise ResourceNotFoundError(resource_name)
        if resource is None:
            raise ResourceNotFoundError(resource_name)
        return resource

    @staticmethod
    def is_super_admin(principal: Optional[Principal]) -> bool:
        return bool(principal and principal.is_super_admin)

    @staticmethod
    def is_owner(user_id: str, owner_id: Optional[str]) -> bool:
        return owner_id is not None and user_id == owner_id

    def deny(self, principal: Optional[Principal], action: str, resource_type: str, resource_id: Optional[str] = None) -> NoReturn:
        user = principal.id if principal else "anonymous"
        audit_logger.warning(
            f"User {user} denied {action} on {resource_type} {resource_id or '-'}"
        )
        raise ForbiddenError()

    def require_ownership(
        self,
        principal: Principal,
        owner_id: Optional[str],
        resource_type: str,
        resource_id: Optional[str] = None
    ) -> None:
        if not self.is_owner(principal.id, owner_id):
            self.deny(principal, "own", resource_type, resource_id)

    async def has_permission(
        self,
        principal: Principal,
        permission_name: str,
        scope: str,
        resource_id: Optional[str] = None
    ) -> bool:
        if self.is_super_admin(principal):
            logger.debug(f"Super admin {principal.id} bypassed {permission_name} on {scope} {resource_id or '-'}")
            return True
        return await self.checker.has_permission(principal.id, permission_name, scope, resource_id)

    async def get_workspace_membership(self, user_id: str, workspace_id: str) -> Optional[Membership]:
        try:
            return await self.repository.find_workspace_membership(user_id, workspace_id)
        except Exception as e:
            logger.error(f"Failed to load workspace membership of user {user_id} in {workspace_id}: {e}")
            return None

    async def get_project_membership(self, user_id: str, project_id: str) -> Optional[Membership]:
        try:
            return await self.repository.find_project_membership(user_id, project_id)
        except Exception as e:
            logger.error(f"Failed to load project membership of user {user_id} in {project_id}: {e}")
            return None

    async def require_workspace_membership(self, principal: Principal, workspace_id: str) -> Optional[Membership]:
        """Membership row of the principal; super admins pass with None."""
        membership = await self.get_workspace_membership(principal.id, workspace_id)
        if membership is None and not self.is_super_admin(principal):
            self.deny(principal, "access", "workspace", workspace_id)
        return membership

    async def require_project_membership(self, principal: Principal, project_id: str) -> Optional[Membership]:
        membership = await self.get_project_membership(principal.id, project_id)
        if membership is None and not self.is_super_admin(principal):
            self.deny(principal, "access", "project", project_id)
        return membership
