from pydantic import BaseModel
from typing import Dict, List, Optional


class PermissionCheckRequest(BaseModel):
    permission: str
    scope: str
    resource_id: Optional[str] = None


class PermissionCheckResponse(BaseModel):
    allowed: bool
    source: Optional[str] = None
    reason: Optional[str] = None


class BatchPermissionCheckRequest(BaseModel):
    resources: List[PermissionCheckRequest]


class EffectivePermissionsResponse(BaseModel):
    user_id: str
    scope: str
    resource_id: Optional[str] = None
    is_super_admin: bool
    permissions: Dict[str, List[str]]
