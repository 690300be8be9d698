# Row models for the tables the authorization layer reads.
# Rows come back from Supabase as dicts; unknown columns are ignored.

from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from datetime import datetime


class Principal(BaseModel):
    id: str
    email: Optional[str] = None
    is_super_admin: bool = False


class Workspace(BaseModel):
    id: str
    name: Optional[str] = None
    slug: Optional[str] = None
    owner_id: Optional[str] = None


class Project(BaseModel):
    id: str
    name: Optional[str] = None
    slug: Optional[str] = None
    owner_id: Optional[str] = None
    workspace_id: str


class Section(BaseModel):
    id: str
    title: Optional[str] = None
    owner_id: Optional[str] = None
    project_id: str


class Page(BaseModel):
    id: str
    title: Optional[str] = None
    owner_id: Optional[str] = None
    section_id: str
    is_public: bool = False
    password: Optional[str] = None


class Annotation(BaseModel):
    id: str
    user_id: str
    page_id: str
    is_resolved: bool = False


class Notification(BaseModel):
    id: str
    user_id: str
    type: Optional[str] = None
    is_read: bool = False


class Invitation(BaseModel):
    id: str
    email: str
    token: str
    workspace_id: str
    project_id: Optional[str] = None
    role_id: Optional[str] = None
    invited_by: Optional[str] = None
    is_accepted: bool = False
    accepted_by: Optional[str] = None
    accepted_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class Permission(BaseModel):
    id: str
    name: str
    scope: str
    description: Optional[str] = None
    owner_id: Optional[str] = None

    @property
    def is_system(self) -> bool:
        return self.owner_id is None


class Role(BaseModel):
    id: str
    name: str
    scope: str
    description: Optional[str] = None
    is_system: bool = False
    owner_id: Optional[str] = None


class Membership(BaseModel):
    """A workspace_members or project_members row with its role and the role's permissions."""

    id: Optional[str] = None
    user_id: str
    workspace_id: Optional[str] = None
    project_id: Optional[str] = None
    role_id: Optional[str] = None
    role: Optional[Role] = None
    permissions: List[Permission] = Field(default_factory=list)

    @property
    def role_name(self) -> Optional[str]:
        return self.role.name if self.role else None


class AuthorizationContext(BaseModel):
    """What a guard hands back on success so callers skip repeat lookups."""

    principal: Optional[Principal] = None
    resource: Optional[Any] = None
    membership: Optional[Membership] = None
    role: Optional[Role] = None
    filters: Dict[str, Any] = Field(default_factory=dict)
    extras: Dict[str, Any] = Field(default_factory=dict)
