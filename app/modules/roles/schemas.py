from pydantic import BaseModel, Field
from app.config.permissions_config import ROLE_SCOPES
from typing import Optional, List
from datetime import datetime


class PermissionCreate(BaseModel):
    name: str = Field(..., pattern=r"^[a-z_]+:[a-z_]+$")
    scope: str
    description: Optional[str] = None


class PermissionUpdate(BaseModel):
    name: Optional[str] = Field(None, pattern=r"^[a-z_]+:[a-z_]+$")
    description: Optional[str] = None


class PermissionResponse(BaseModel):
    id: str
    name: str
    scope: str
    description: Optional[str] = None
    owner_id: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RoleCreate(BaseModel):
    name: str
    scope: str = Field(..., description=f"One of {ROLE_SCOPES}")
    description: Optional[str] = None


class RoleUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None


class RoleResponse(BaseModel):
    id: str
    name: str
    scope: str
    description: Optional[str] = None
    is_system: bool = False
    owner_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RoleWithPermissionsResponse(RoleResponse):
    permissions: List[PermissionResponse]


class RolePermissionAssign(BaseModel):
    permission_id: str


class RolePermissionResponse(BaseModel):
    id: Optional[str] = None
    role_id: str
    permission_id: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RolePermissionSync(BaseModel):
    permission_ids: List[str]


class RolePermissionSyncResponse(BaseModel):
    role_id: str
    added: List[str]
    removed: List[str]
    permission_ids: List[str]
    message: str


class ProjectUserPermissionAssign(BaseModel):
    user_ids: List[str]
    permission_ids: List[str]


class ProjectUserPermissionUpdate(BaseModel):
    permission_ids: List[str]


class ProjectUserPermissionResponse(BaseModel):
    id: Optional[str] = None
    user_id: str
    project_id: str
    permission_id: str
