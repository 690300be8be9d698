from fastapi import APIRouter, Depends
from app.database.supabase_client import get_supabase
from app.modules.roles.schemas import (
    PermissionCreate, PermissionUpdate, PermissionResponse,
    RoleCreate, RoleUpdate, RoleResponse, RoleWithPermissionsResponse,
    RolePermissionAssign, RolePermissionResponse,
    RolePermissionSync, RolePermissionSyncResponse,
    ProjectUserPermissionAssign, ProjectUserPermissionUpdate, ProjectUserPermissionResponse
)
from app.modules.roles.service import (
    RoleService, PermissionService, RolePermissionAssignService, ProjectUserPermissionService
)
from app.authorization.guards.bundle import Guards
from app.core.dependencies import get_guards
from supabase import AsyncClient
from typing import List, Optional, Dict

router = APIRouter(prefix="/roles", tags=["roles"])
project_permissions_router = APIRouter(prefix="/projects", tags=["project-permissions"])


def get_role_service(supabase: AsyncClient = Depends(get_supabase)) -> RoleService:
    return RoleService(supabase)


def get_permission_service(supabase: AsyncClient = Depends(get_supabase)) -> PermissionService:
    return PermissionService(supabase)


def get_assign_service(supabase: AsyncClient = Depends(get_supabase)) -> RolePermissionAssignService:
    return RolePermissionAssignService(supabase)


def get_project_user_permission_service(supabase: AsyncClient = Depends(get_supabase)) -> ProjectUserPermissionService:
    return ProjectUserPermissionService(supabase)


# Permission endpoints
@router.post("/permissions", response_model=PermissionResponse, status_code=201)
async def create_permission(
    permission_data: PermissionCreate,
    guards: Guards = Depends(get_guards),
    service: PermissionService = Depends(get_permission_service)
):
    """Create a custom permission owned by the caller"""
    context = await guards.permission.protect_creation()
    await guards.permission.protect_scope_access(permission_data.scope)
    return await service.create_permission(permission_data, owner_id=context.principal.id)


@router.get("/permissions", response_model=List[PermissionResponse])
async def list_permissions(
    scope: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
    guards: Guards = Depends(get_guards),
    service: PermissionService = Depends(get_permission_service)
):
    """List permissions: everything for super admins, own permissions otherwise"""
    if scope:
        await guards.permission.protect_scope_access(scope)
    context = await guards.permission.protect_list({"scope": scope} if scope else {})
    return await service.list_permissions(filters=context.filters, limit=limit, offset=offset)


@router.get("/permissions/{permission_id}", response_model=PermissionResponse)
async def get_permission(
    permission_id: str,
    guards: Guards = Depends(get_guards),
    service: PermissionService = Depends(get_permission_service)
):
    await guards.permission.protect_permission(permission_id)
    return await service.get_permission_by_id(permission_id)


@router.put("/permissions/{permission_id}", response_model=PermissionResponse)
async def update_permission(
    permission_id: str,
    permission_data: PermissionUpdate,
    guards: Guards = Depends(get_guards),
    service: PermissionService = Depends(get_permission_service)
):
    """Update permission (system permissions: super admins only)"""
    await guards.permission.protect_update(permission_id)
    return await service.update_permission(permission_id, permission_data)


@router.delete("/permissions/{permission_id}", status_code=204)
async def delete_permission(
    permission_id: str,
    guards: Guards = Depends(get_guards),
    service: PermissionService = Depends(get_permission_service)
):
    """Delete permission; 409 while a role or user still holds it"""
    await guards.permission.protect_deletion(permission_id)
    await service.delete_permission(permission_id)
    return None


# Role endpoints
@router.post("", response_model=RoleResponse, status_code=201)
async def create_role(
    role_data: RoleCreate,
    guards: Guards = Depends(get_guards),
    service: RoleService = Depends(get_role_service)
):
    """Create a custom role owned by the caller"""
    context = await guards.role.protect_creation()
    return await service.create_role(role_data, owner_id=context.principal.id)


@router.get("", response_model=List[RoleResponse])
async def list_roles(
    scope: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
    guards: Guards = Depends(get_guards),
    service: RoleService = Depends(get_role_service)
):
    """List system roles and the caller's own roles (all roles for super admins)"""
    context = await guards.role.protect_list({"scope": scope} if scope else {})
    return await service.list_roles(filters=context.filters, limit=limit, offset=offset)


@router.get("/{role_id}", response_model=RoleResponse)
async def get_role(
    role_id: str,
    guards: Guards = Depends(get_guards),
    service: RoleService = Depends(get_role_service)
):
    await guards.role.protect_role(role_id)
    return await service.get_role_by_id(role_id)


@router.get("/{role_id}/with-permissions", response_model=RoleWithPermissionsResponse)
async def get_role_with_permissions(
    role_id: str,
    guards: Guards = Depends(get_guards),
    service: RoleService = Depends(get_role_service)
):
    await guards.role.protect_role(role_id)
    return await service.get_role_with_permissions(role_id)


@router.put("/{role_id}", response_model=RoleResponse)
async def update_role(
    role_id: str,
    role_data: RoleUpdate,
    guards: Guards = Depends(get_guards),
    service: RoleService = Depends(get_role_service)
):
    """Update role (system roles: super admins only)"""
    await guards.role.protect_update(role_id)
    return await service.update_role(role_id, role_data)


@router.delete("/{role_id}", status_code=204)
async def delete_role(
    role_id: str,
    guards: Guards = Depends(get_guards),
    service: RoleService = Depends(get_role_service)
):
    """Delete role; 409 while a member or permission still references it"""
    await guards.role.protect_deletion(role_id)
    await service.delete_role(role_id)
    return None


# Role-Permission association endpoints
@router.post("/{role_id}/permissions", response_model=RolePermissionResponse, status_code=201)
async def assign_permission_to_role(
    role_id: str,
    permission_assign: RolePermissionAssign,
    guards: Guards = Depends(get_guards),
    service: RolePermissionAssignService = Depends(get_assign_service)
):
    """Assign a permission to a role; assigning twice is a no-op"""
    await guards.permission.protect_role_assignment(permission_assign.permission_id, role_id)
    return await service.assign(role_id, permission_assign.permission_id)


@router.get("/{role_id}/permissions", response_model=List[RolePermissionResponse])
async def get_role_permissions(
    role_id: str,
    guards: Guards = Depends(get_guards),
    service: RolePermissionAssignService = Depends(get_assign_service)
):
    await guards.role.protect_role(role_id)
    return await service.find_by_role_id(role_id)


@router.delete("/{role_id}/permissions/{permission_id}", status_code=204)
async def remove_permission_from_role(
    role_id: str,
    permission_id: str,
    guards: Guards = Depends(get_guards),
    service: RolePermissionAssignService = Depends(get_assign_service)
):
    await guards.permission.protect_role_assignment(permission_id, role_id)
    await service.remove(role_id, permission_id)
    return None


@router.put("/{role_id}/permissions", response_model=RolePermissionSyncResponse)
async def sync_role_permissions(
    role_id: str,
    sync_data: RolePermissionSync,
    guards: Guards = Depends(get_guards),
    service: RolePermissionAssignService = Depends(get_assign_service)
):
    """Replace the role's permissions with exactly the given list"""
    context = await guards.role.protect_role(role_id)
    if not await guards.permission.can_assign_permission_to_role(context.principal, role_id):
        guards.primitives.deny(context.principal, "sync permissions of", "role", role_id)
    for permission_id in sync_data.permission_ids:
        await guards.permission.protect_permission(permission_id)
    return await service.assign_permissions_to_role(role_id, sync_data.permission_ids)


# Direct project grants
async def _authorize_direct_grants(guards: Guards, project_id: str, user_ids: List[str], permission_ids: List[str]):
    principal = await guards.primitives.require_auth()
    await guards.primitives.validate_resource_exists(
        lambda: guards.primitives.repository.get_project(project_id), "Project"
    )
    if not await guards.permission.can_assign_permission_to_user(principal, project_id):
        guards.primitives.deny(principal, f"grant permissions to {','.join(user_ids)} in", "project", project_id)
    for permission_id in permission_ids:
        await guards.permission.protect_permission(permission_id)


@project_permissions_router.get("/{project_id}/permissions", response_model=Dict[str, List[str]])
async def list_project_user_permissions(
    project_id: str,
    guards: Guards = Depends(get_guards),
    service: ProjectUserPermissionService = Depends(get_project_user_permission_service)
):
    """user_id -> directly granted permission ids"""
    await guards.project.protect_by_id(project_id)
    return await service.get_members_and_permissions(project_id)


@project_permissions_router.post("/{project_id}/permissions", response_model=List[ProjectUserPermissionResponse], status_code=201)
async def assign_project_user_permissions(
    project_id: str,
    assign_data: ProjectUserPermissionAssign,
    guards: Guards = Depends(get_guards),
    service: ProjectUserPermissionService = Depends(get_project_user_permission_service)
):
    await _authorize_direct_grants(guards, project_id, assign_data.user_ids, assign_data.permission_ids)
    return await service.assign_users(project_id, assign_data.user_ids, assign_data.permission_ids)


@project_permissions_router.put("/{project_id}/users/{user_id}/permissions", response_model=Dict[str, List[str]])
async def modify_project_user_permissions(
    project_id: str,
    user_id: str,
    update_data: ProjectUserPermissionUpdate,
    guards: Guards = Depends(get_guards),
    service: ProjectUserPermissionService = Depends(get_project_user_permission_service)
):
    """Sync one user's direct grants; returns {"added", "removed"}"""
    await _authorize_direct_grants(guards, project_id, [user_id], update_data.permission_ids)
    return await service.modify_user_permissions(user_id, project_id, update_data.permission_ids)


@project_permissions_router.delete("/{project_id}/users/{user_id}/permissions", status_code=204)
async def remove_project_user(
    project_id: str,
    user_id: str,
    guards: Guards = Depends(get_guards),
    service: ProjectUserPermissionService = Depends(get_project_user_permission_service)
):
    await _authorize_direct_grants(guards, project_id, [user_id], [])
    await service.remove_user_from_project(user_id, project_id)
    return None
