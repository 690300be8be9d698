"""
Permission introspection for the frontend: what the caller may do, so the UI
can hide actions the API would refuse anyway.
"""

from fastapi import APIRouter, Depends
from app.authorization.checker import PermissionChecker
from app.authorization.models import Principal
from app.authorization.utils import AuthorizationUtils, batch_key
from app.core.dependencies import get_authorization_utils, get_current_principal, get_permission_checker
from app.modules.authorization.schemas import (
    PermissionCheckRequest, PermissionCheckResponse,
    BatchPermissionCheckRequest, EffectivePermissionsResponse
)
from typing import Dict, Optional

router = APIRouter(prefix="/authorization", tags=["authorization"])


@router.get("/me/permissions", response_model=EffectivePermissionsResponse)
async def get_my_permissions(
    scope: str,
    resource_id: Optional[str] = None,
    principal: Principal = Depends(get_current_principal),
    utils: AuthorizationUtils = Depends(get_authorization_utils)
):
    """Effective permissions of the caller in one scope, split by source"""
    permissions = await utils.get_user_effective_permissions(principal.id, scope, resource_id)
    return EffectivePermissionsResponse(
        user_id=principal.id,
        scope=scope,
        resource_id=resource_id,
        is_super_admin=principal.is_super_admin,
        permissions=permissions
    )


@router.post("/check", response_model=PermissionCheckResponse)
async def check_permission(
    check: PermissionCheckRequest,
    principal: Principal = Depends(get_current_principal),
    checker: PermissionChecker = Depends(get_permission_checker)
):
    if principal.is_super_admin:
        return PermissionCheckResponse(allowed=True, source="super_admin")
    decision = await checker.evaluate(principal.id, check.permission, check.scope, check.resource_id)
    return PermissionCheckResponse(**decision.model_dump())


@router.post("/check-batch", response_model=Dict[str, bool])
async def check_permissions_batch(
    batch: BatchPermissionCheckRequest,
    principal: Principal = Depends(get_current_principal),
    utils: AuthorizationUtils = Depends(get_authorization_utils)
):
    """{"scope:resource_id:permission": allowed} for every requested check"""
    resources = [
        {"permission": r.permission, "scope": r.scope, "resource_id": r.resource_id}
        for r in batch.resources
    ]
    if principal.is_super_admin:
        return {batch_key(r): True for r in resources}
    return await utils.batch_check_permissions(principal.id, resources)
