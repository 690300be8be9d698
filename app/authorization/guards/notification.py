import logging
from app.authorization.concurrency import gather_bounded
from app.authorization.guards.base import GuardPrimitives
from app.authorization.models import AuthorizationContext, Notification, Principal
from app.config.permissions_config import RESTRICTED_NOTIFICATION_TYPES, Permissions, Scopes
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class NotificationGuard:
    """A notification belongs to its recipient (notification.user_id)."""

    def __init__(self, primitives: GuardPrimitives):
        self.p = primitives

    async def protect_notification(self, notification_id: str) -> AuthorizationContext:
        principal = await self.p.require_auth()
        notification: Notification = await self.p.validate_resource_exists(
            lambda: self.p.repository.get_notification(notification_id), "Notification"
        )
        if not self.p.is_super_admin(principal) and not self.p.is_owner(principal.id, notification.user_id):
            self.p.deny(principal, "access", "notification", notification_id)
        return AuthorizationContext(principal=principal, resource=notification)

    async def protect_update(self, notification_id: str) -> AuthorizationContext:
        return await self.protect_notification(notification_id)

    async def protect_deletion(self, notification_id: str) -> AuthorizationContext:
        return await self.protect_notification(notification_id)

    async def get_shared_workspaces(self, user_id: str, other_user_id: str) -> List[str]:
        try:
            mine = await self.p.repository.list_workspace_ids_for_user(user_id)
            theirs = set(await self.p.repository.list_workspace_ids_for_user(other_user_id))
            return [workspace_id for workspace_id in mine if workspace_id in theirs]
        except Exception as e:
            logger.error(f"Failed to get shared workspaces of {user_id} and {other_user_id}: {e}")
            return []

    async def can_create_notification(self, principal: Principal, target_user_id: str) -> bool:
        """Self, super admin, or create:notification in a workspace shared with the target."""
        if self.p.is_super_admin(principal) or principal.id == target_user_id:
            return True
        for workspace_id in await self.get_shared_workspaces(principal.id, target_user_id):
            if await self.p.has_permission(principal, Permissions.NOTIFICATION.CREATE, Scopes.WORKSPACE, workspace_id):
                return True
        return False

    async def protect_creation(self, target_user_id: str) -> AuthorizationContext:
        principal = await self.p.require_auth()
        if not await self.can_create_notification(principal, target_user_id):
            self.p.deny(principal, "notify", "user", target_user_id)
        return AuthorizationContext(principal=principal, extras={"target_user_id": target_user_id})

    async def protect_list(self, user_id: str, filters: Optional[Dict[str, Any]] = None) -> AuthorizationContext:
        principal = await self.p.require_auth()
        if not self.p.is_super_admin(principal) and not self.p.is_owner(principal.id, user_id):
            self.p.deny(principal, "list notifications of", "user", user_id)
        return AuthorizationContext(principal=principal, filters={**(filters or {}), "user_id": user_id})

    async def protect_bulk_operations(self, user_id: str) -> AuthorizationContext:
        principal = await self.p.require_auth()
        if not self.p.is_super_admin(principal) and not self.p.is_owner(principal.id, user_id):
            self.p.deny(principal, "bulk update notifications of", "user", user_id)
        return AuthorizationContext(principal=principal, filters={"user_id": user_id})

    async def can_broadcast(self, principal: Principal, notification_type: str) -> bool:
        if self.p.is_super_admin(principal):
            return True
        if notification_type in RESTRICTED_NOTIFICATION_TYPES:
            return False
        return await self.p.has_permission(principal, Permissions.NOTIFICATION.BROADCAST, Scopes.SYSTEM)

    async def protect_broadcast(self, target_user_ids: List[str], notification_type: str) -> AuthorizationContext:
        """Returns the subset of target_user_ids the principal may notify in extras["authorized_targets"]."""
        principal = await self.p.require_auth()
        if not await self.can_broadcast(principal, notification_type):
            self.p.deny(principal, f"broadcast {notification_type}", "notification")

        allowed = await gather_bounded(
            target_user_ids,
            lambda target: self.can_create_notification(principal, target),
        )
        authorized = [target for target, ok in zip(target_user_ids, allowed) if ok]
        return AuthorizationContext(principal=principal, extras={"authorized_targets": authorized})
