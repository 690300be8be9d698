import logging
from supabase import AsyncClient
from app.authorization.repository import AuthorizationRepository
from app.config.permissions_config import ACCESSIBLE_PERMISSION_SCOPES, ROLE_SCOPES
from app.core.exceptions import ResourceInUseError
from app.modules.roles.schemas import (
    PermissionCreate, PermissionUpdate, PermissionResponse,
    RoleCreate, RoleUpdate, RoleResponse, RoleWithPermissionsResponse,
    RolePermissionResponse, RolePermissionSyncResponse, ProjectUserPermissionResponse
)
from typing import Any, Dict, List, Optional
from fastapi import HTTPException

logger = logging.getLogger(__name__)


def _unique(ids: List[str]) -> List[str]:
    return list(dict.fromkeys(ids))


class PermissionService:
    def __init__(self, supabase: AsyncClient):
        self.supabase = supabase
        self.repository = AuthorizationRepository(supabase)

    async def create_permission(self, permission_data: PermissionCreate, owner_id: Optional[str]) -> PermissionResponse:
        """Create a permission owned by owner_id (None creates a system permission)"""
        if permission_data.scope not in ACCESSIBLE_PERMISSION_SCOPES:
            raise HTTPException(status_code=400, detail=f"Invalid scope: {permission_data.scope}")
        try:
            result = await self.supabase.table("permissions").insert({
                "name": permission_data.name,
                "scope": permission_data.scope,
                "description": permission_data.description,
                "owner_id": owner_id
            }).execute()

            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to create permission")

            logger.info(f"Permission {permission_data.name} ({permission_data.scope}) created by {owner_id}")
            return PermissionResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    async def get_permission_by_id(self, permission_id: str) -> PermissionResponse:
        try:
            row = await self.repository.get_by_id("permissions", permission_id)
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
        if not row:
            raise HTTPException(status_code=404, detail="Permission not found")
        return PermissionResponse(**row)

    async def update_permission(self, permission_id: str, permission_data: PermissionUpdate) -> PermissionResponse:
        try:
            update_data = {}
            if permission_data.name:
                update_data["name"] = permission_data.name
            if permission_data.description is not None:
                update_data["description"] = permission_data.description
            if not update_data:
                return await self.get_permission_by_id(permission_id)

            result = await self.supabase.table("permissions")\
                .update(update_data)\
                .eq("id", permission_id)\
                .execute()

            if not result.data:
                raise HTTPException(status_code=404, detail="Permission not found")

            return PermissionResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    async def list_permissions(
        self,
        filters: Optional[Dict[str, Any]] = None,
        limit: int = 100,
        offset: int = 0
    ) -> List[PermissionResponse]:
        """List permissions; filters come from the permission guard (scope, owner_id)"""
        try:
            rows = await self.repository.find_many(
                "permissions", filters, order_by="name", limit=limit, offset=offset
            )
            return [PermissionResponse(**row) for row in rows]
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    async def delete_permission(self, permission_id: str) -> bool:
        """Delete a permission that no role or user holds anymore"""
        if await self.repository.is_permission_in_use(permission_id):
            raise ResourceInUseError("Cannot delete permission that is currently assigned to roles or users")
        try:
            result = await self.supabase.table("permissions")\
                .delete()\
                .eq("id", permission_id)\
                .execute()

            return len(result.data) > 0
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))


class RoleService:
    def __init__(self, supabase: AsyncClient):
        self.supabase = supabase
        self.repository = AuthorizationRepository(supabase)

    async def create_role(self, role_data: RoleCreate, owner_id: Optional[str]) -> RoleResponse:
        """Create a custom role owned by owner_id"""
        if role_data.scope not in ROLE_SCOPES:
            raise HTTPException(status_code=400, detail=f"Invalid scope: {role_data.scope}")
        try:
            result = await self.supabase.table("roles").insert({
                "name": role_data.name,
                "scope": role_data.scope,
                "description": role_data.description,
                "is_system": False,
                "owner_id": owner_id
            }).execute()

            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to create role")

            logger.info(f"Role {role_data.name} ({role_data.scope}) created by {owner_id}")
            return RoleResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    async def get_role_by_id(self, role_id: str) -> RoleResponse:
        try:
            row = await self.repository.get_by_id("roles", role_id)
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
        if not row:
            raise HTTPException(status_code=404, detail="Role not found")
        return RoleResponse(**row)

    async def get_role_with_permissions(self, role_id: str) -> RoleWithPermissionsResponse:
        role = await self.get_role_by_id(role_id)
        try:
            permissions = await self.repository.get_role_permissions(role_id)
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
        return RoleWithPermissionsResponse(
            **role.model_dump(),
            permissions=[PermissionResponse(**p.model_dump()) for p in permissions]
        )

    async def update_role(self, role_id: str, role_data: RoleUpdate) -> RoleResponse:
        try:
            update_data = {}
            if role_data.name:
                update_data["name"] = role_data.name
            if role_data.description is not None:
                update_data["description"] = role_data.description
            if not update_data:
                return await self.get_role_by_id(role_id)

            result = await self.supabase.table("roles")\
                .update(update_data)\
                .eq("id", role_id)\
                .execute()

            if not result.data:
                raise HTTPException(status_code=404, detail="Role not found")

            return RoleResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    async def list_roles(
        self,
        filters: Optional[Dict[str, Any]] = None,
        limit: int = 100,
        offset: int = 0
    ) -> List[RoleResponse]:
        """
        List roles. filters["visible_to"] (set by the role guard) keeps system
        roles plus the roles owned by that user.
        """
        filters = dict(filters or {})
        visible_to = filters.pop("visible_to", None)
        try:
            query = self.supabase.table("roles").select("*")
            for column, value in filters.items():
                query = query.eq(column, value)
            if visible_to:
                query = query.or_(f"is_system.eq.true,owner_id.eq.{visible_to}")
            result = await query\
                .order("name")\
                .range(offset, offset + limit - 1)\
                .execute()

            return [RoleResponse(**row) for row in result.data]
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    async def delete_role(self, role_id: str) -> bool:
        """Delete a role no membership references and no permission is assigned to"""
        if await self.repository.is_role_in_use(role_id):
            raise ResourceInUseError("Cannot delete role that is currently assigned to users or permissions")
        try:
            result = await self.supabase.table("roles")\
                .delete()\
                .eq("id", role_id)\
                .execute()

            return len(result.data) > 0
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))


class RolePermissionAssignService:
    """role_permission_assignments, unique on (role_id, permission_id)"""

    def __init__(self, supabase: AsyncClient):
        self.supabase = supabase

    async def find_by_role_id(self, role_id: str) -> List[RolePermissionResponse]:
        try:
            result = await self.supabase.table("role_permission_assignments")\
                .select("*")\
                .eq("role_id", role_id)\
                .execute()
            return [RolePermissionResponse(**row) for row in result.data or []]
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    async def assign(self, role_id: str, permission_id: str) -> RolePermissionResponse:
        """Assign a permission to a role; assigning twice keeps one row"""
        try:
            result = await self.supabase.table("role_permission_assignments")\
                .upsert({"role_id": role_id, "permission_id": permission_id}, on_conflict="role_id,permission_id")\
                .execute()

            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to assign permission")

            return RolePermissionResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    async def remove(self, role_id: str, permission_id: str) -> bool:
        try:
            result = await self.supabase.table("role_permission_assignments")\
                .delete()\
                .eq("role_id", role_id)\
                .eq("permission_id", permission_id)\
                .execute()

            return len(result.data) > 0
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    async def assign_permissions_to_role(self, role_id: str, permission_ids: List[str]) -> RolePermissionSyncResponse:
        """Make the role carry exactly permission_ids: add missing, remove extras, keep the rest"""
        wanted = _unique(permission_ids)
        current = [a.permission_id for a in await self.find_by_role_id(role_id)]
        to_add = [pid for pid in wanted if pid not in current]
        to_remove = [pid for pid in current if pid not in wanted]

        try:
            if to_remove:
                await self.supabase.table("role_permission_assignments")\
                    .delete()\
                    .eq("role_id", role_id)\
                    .in_("permission_id", to_remove)\
                    .execute()
            if to_add:
                await self.supabase.table("role_permission_assignments")\
                    .upsert(
                        [{"role_id": role_id, "permission_id": pid} for pid in to_add],
                        on_conflict="role_id,permission_id"
                    )\
                    .execute()
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

        logger.info(f"Role {role_id} permissions synced: +{len(to_add)} -{len(to_remove)}")
        return RolePermissionSyncResponse(
            role_id=role_id,
            added=to_add,
            removed=to_remove,
            permission_ids=wanted,
            message=f"Added {len(to_add)} permissions, removed {len(to_remove)}"
        )


class ProjectUserPermissionService:
    """Direct grants: project_user_permissions, unique on (user_id, project_id, permission_id)"""

    def __init__(self, supabase: AsyncClient):
        self.supabase = supabase

    async def _permission_ids(self, user_id: str, project_id: str) -> List[str]:
        result = await self.supabase.table("project_user_permissions")\
            .select("*")\
            .eq("user_id", user_id)\
            .eq("project_id", project_id)\
            .execute()
        return [row["permission_id"] for row in result.data or []]

    async def assign_users(self, project_id: str, user_ids: List[str], permission_ids: List[str]) -> List[ProjectUserPermissionResponse]:
        """Grant every permission to every user; existing grants are skipped"""
        rows = [
            {"user_id": user_id, "project_id": project_id, "permission_id": permission_id}
            for user_id in _unique(user_ids)
            for permission_id in _unique(permission_ids)
        ]
        if not rows:
            return []
        try:
            result = await self.supabase.table("project_user_permissions")\
                .upsert(rows, on_conflict="user_id,project_id,permission_id", ignore_duplicates=True)\
                .execute()
            return [ProjectUserPermissionResponse(**row) for row in result.data or []]
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    async def modify_user_permissions(self, user_id: str, project_id: str, permission_ids: List[str]) -> Dict[str, List[str]]:
        """Sync one user's direct grants in a project; returns {"added", "removed"}"""
        wanted = _unique(permission_ids)
        try:
            current = await self._permission_ids(user_id, project_id)
            to_add = [pid for pid in wanted if pid not in current]
            to_remove = [pid for pid in current if pid not in wanted]

            if to_remove:
                await self.supabase.table("project_user_permissions")\
                    .delete()\
                    .eq("user_id", user_id)\
                    .eq("project_id", project_id)\
                    .in_("permission_id", to_remove)\
                    .execute()
            if to_add:
                await self.supabase.table("project_user_permissions")\
                    .upsert(
                        [{"user_id": user_id, "project_id": project_id, "permission_id": pid} for pid in to_add],
                        on_conflict="user_id,project_id,permission_id",
                        ignore_duplicates=True
                    )\
                    .execute()
            return {"added": to_add, "removed": to_remove}
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    async def remove_user_from_project(self, user_id: str, project_id: str) -> int:
        """Drop every direct grant of the user in the project; returns how many"""
        try:
            result = await self.supabase.table("project_user_permissions")\
                .delete()\
                .eq("user_id", user_id)\
                .eq("project_id", project_id)\
                .execute()
            return len(result.data or [])
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    async def get_members_and_permissions(self, project_id: str) -> Dict[str, List[str]]:
        """user_id -> permission ids granted directly in the project"""
        try:
            result = await self.supabase.table("project_user_permissions")\
                .select("*")\
                .eq("project_id", project_id)\
                .execute()
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
        members: Dict[str, List[str]] = {}
        for row in result.data or []:
            members.setdefault(row["user_id"], []).append(row["permission_id"])
        return members
