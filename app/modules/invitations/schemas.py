from pydantic import BaseModel, EmailStr
from typing import Optional
from datetime import datetime


class InvitationCreate(BaseModel):
    email: EmailStr
    workspace_id: str
    project_id: Optional[str] = None
    role_id: Optional[str] = None


class InvitationResponse(BaseModel):
    id: str
    email: str
    workspace_id: str
    project_id: Optional[str] = None
    role_id: Optional[str] = None
    invited_by: Optional[str] = None
    is_accepted: bool = False
    accepted_by: Optional[str] = None
    accepted_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class InvitationCreatedResponse(InvitationResponse):
    token: str


class InvitationPublicResponse(BaseModel):
    """What an anonymous token holder may see"""
    email: str
    workspace_id: str
    project_id: Optional[str] = None
    expires_at: Optional[datetime] = None


class InvitationAcceptResponse(BaseModel):
    invitation_id: str
    workspace_id: str
    project_id: Optional[str] = None
    message: str
