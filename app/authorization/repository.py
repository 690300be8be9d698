"""
Data access for the authorization layer.

A single AuthorizationRepository wraps the Supabase client that the request
was given; resolvers and guards receive it instead of reaching for a global.
Query errors are not caught here: resolvers decide what an error means. The
one exception is the reference check used before deletions, which reads a
failed count as a reference.
"""

import logging
from supabase import AsyncClient
from app.authorization.models import (
    Annotation, Invitation, Membership, Notification, Page, Permission,
    Principal, Project, Role, Section, Workspace,
)
from typing import Any, Dict, List, Optional
from datetime import datetime

logger = logging.getLogger(__name__)

ROLE_REFERENCES = ["workspace_members", "project_members", "role_permission_assignments"]
PERMISSION_REFERENCES = ["role_permission_assignments", "project_user_permissions"]


class AuthorizationRepository:
    def __init__(self, supabase: AsyncClient):
        self.supabase = supabase

    # Generic lookups

    async def get_by_id(self, table: str, resource_id: str) -> Optional[Dict[str, Any]]:
        if not resource_id:
            return None
        result = await self.supabase.table(table)\
            .select("*")\
            .eq("id", resource_id)\
            .limit(1)\
            .execute()
        return result.data[0] if result.data else None

    async def find_first(self, table: str, **filters) -> Optional[Dict[str, Any]]:
        query = self.supabase.table(table).select("*")
        for column, value in filters.items():
            query = query.eq(column, value)
        result = await query.limit(1).execute()
        return result.data[0] if result.data else None

    async def find_many(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        desc: bool = False,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> List[Dict[str, Any]]:
        query = self.supabase.table(table).select("*")
        for column, value in (filters or {}).items():
            if isinstance(value, (list, tuple, set)):
                if not value:
                    return []
                query = query.in_(column, list(value))
            else:
                query = query.eq(column, value)
        if order_by:
            query = query.order(order_by, desc=desc)
        if limit is not None:
            query = query.range(offset, offset + limit - 1)
        result = await query.execute()
        return result.data or []

    async def count(self, table: str, **filters) -> int:
        query = self.supabase.table(table).select("id", count="exact")
        for column, value in filters.items():
            query = query.eq(column, value)
        result = await query.execute()
        return result.count or 0

    async def is_referenced(self, tables: List[str], column: str, value: str) -> bool:
        """Any reference counts. A failed count reads as referenced."""
        try:
            for table in tables:
                if await self.count(table, **{column: value}) > 0:
                    return True
            return False
        except Exception as e:
            logger.error(f"Failed to check references to {column} {value}: {e}")
            return True

    async def is_role_in_use(self, role_id: str) -> bool:
        return await self.is_referenced(ROLE_REFERENCES, "role_id", role_id)

    async def is_permission_in_use(self, permission_id: str) -> bool:
        return await self.is_referenced(PERMISSION_REFERENCES, "permission_id", permission_id)

    # Typed lookups

    async def get_user(self, user_id: str) -> Optional[Principal]:
        row = await self.get_by_id("users", user_id)
        return Principal(**row) if row else None

    async def get_workspace(self, workspace_id: str) -> Optional[Workspace]:
        row = await self.get_by_id("workspaces", workspace_id)
        return Workspace(**row) if row else None

    async def get_project(self, project_id: str) -> Optional[Project]:
        row = await self.get_by_id("projects", project_id)
        return Project(**row) if row else None

    async def get_project_by_slug(self, slug: str) -> Optional[Project]:
        row = await self.find_first("projects", slug=slug)
        return Project(**row) if row else None

    async def get_section(self, section_id: str) -> Optional[Section]:
        row = await self.get_by_id("sections", section_id)
        return Section(**row) if row else None

    async def get_page(self, page_id: str) -> Optional[Page]:
        row = await self.get_by_id("pages", page_id)
        return Page(**row) if row else None

    async def get_annotation(self, annotation_id: str) -> Optional[Annotation]:
        row = await self.get_by_id("annotations", annotation_id)
        return Annotation(**row) if row else None

    async def get_notification(self, notification_id: str) -> Optional[Notification]:
        row = await self.get_by_id("notifications", notification_id)
        return Notification(**row) if row else None

    async def get_invitation(self, invitation_id: str) -> Optional[Invitation]:
        row = await self.get_by_id("invitations", invitation_id)
        return Invitation(**row) if row else None

    async def get_invitation_by_token(self, token: str) -> Optional[Invitation]:
        if not token:
            return None
        row = await self.find_first("invitations", token=token)
        return Invitation(**row) if row else None

    async def get_role(self, role_id: str) -> Optional[Role]:
        row = await self.get_by_id("roles", role_id)
        return Role(**row) if row else None

    async def get_permission(self, permission_id: str) -> Optional[Permission]:
        row = await self.get_by_id("permissions", permission_id)
        return Permission(**row) if row else None

    # Grants

    async def get_role_permissions(self, role_id: str) -> List[Permission]:
        """Follow role_permission_assignments to the permission rows of a role."""
        assignments = await self.find_many("role_permission_assignments", {"role_id": role_id})
        permission_ids = [a["permission_id"] for a in assignments]
        rows = await self.find_many("permissions", {"id": permission_ids})
        return [Permission(**row) for row in rows]

    async def _find_membership(self, table: str, scope_column: str, user_id: str, scope_id: str) -> Optional[Membership]:
        if not scope_id:
            return None
        row = await self.find_first(table, user_id=user_id, **{scope_column: scope_id})
        if not row:
            return None
        membership = Membership(**row)
        if membership.role_id:
            membership.role = await self.get_role(membership.role_id)
            membership.permissions = await self.get_role_permissions(membership.role_id)
        return membership

    async def find_workspace_membership(self, user_id: str, workspace_id: str) -> Optional[Membership]:
        return await self._find_membership("workspace_members", "workspace_id", user_id, workspace_id)

    async def find_project_membership(self, user_id: str, project_id: str) -> Optional[Membership]:
        return await self._find_membership("project_members", "project_id", user_id, project_id)

    async def find_direct_permissions(
        self,
        user_id: str,
        project_id: str,
        scope: Optional[str] = None
    ) -> List[Permission]:
        """Permissions granted straight to a (user, project) pair."""
        grants = await self.find_many("project_user_permissions", {"user_id": user_id, "project_id": project_id})
        permission_ids = [g["permission_id"] for g in grants]
        filters: Dict[str, Any] = {"id": permission_ids}
        if scope:
            filters["scope"] = scope
        rows = await self.find_many("permissions", filters)
        return [Permission(**row) for row in rows]

    async def list_workspace_ids_for_user(self, user_id: str) -> List[str]:
        rows = await self.find_many("workspace_members", {"user_id": user_id})
        return list(dict.fromkeys(r["workspace_id"] for r in rows))

    async def count_pending_invitations(self, workspace_id: str, now: datetime) -> int:
        result = await self.supabase.table("invitations")\
            .select("id", count="exact")\
            .eq("workspace_id", workspace_id)\
            .eq("is_accepted", False)\
            .gt("expires_at", now.isoformat())\
            .execute()
        return result.count or 0

    async def list_pending_invitations(self, email: str, now: datetime) -> List[Invitation]:
        result = await self.supabase.table("invitations")\
            .select("*")\
            .eq("email", email)\
            .eq("is_accepted", False)\
            .gt("expires_at", now.isoformat())\
            .order("created_at", desc=True)\
            .execute()
        return [Invitation(**row) for row in result.data or []]
