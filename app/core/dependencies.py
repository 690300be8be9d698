"""
Core dependencies for route protection and permission checking
"""

from fastapi import Depends, Request, Security
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from app.authorization.checker import PermissionChecker
from app.authorization.guards.bundle import Guards
from app.authorization.models import Principal
from app.authorization.repository import AuthorizationRepository
from app.authorization.utils import AuthorizationUtils
from app.database.supabase_client import get_supabase
from app.modules.auth.service import AuthService, RequestSession
from supabase import AsyncClient
from typing import Optional
import logging

logger = logging.getLogger(__name__)

# auto_error=False: public routes (invitation token, public pages) work without a header
security = HTTPBearer(auto_error=False)


def get_repository(supabase: AsyncClient = Depends(get_supabase)) -> AuthorizationRepository:
    return AuthorizationRepository(supabase)


def get_permission_checker(repository: AuthorizationRepository = Depends(get_repository)) -> PermissionChecker:
    return PermissionChecker(repository)


def get_auth_service(supabase: AsyncClient = Depends(get_supabase)) -> AuthService:
    return AuthService(supabase)


def get_session(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security),
    auth_service: AuthService = Depends(get_auth_service)
) -> RequestSession:
    """Request session; the token is only resolved when a guard asks for the user"""
    token = credentials.credentials if credentials else None
    return RequestSession(auth_service, token)


def get_guards(
    session: RequestSession = Depends(get_session),
    repository: AuthorizationRepository = Depends(get_repository),
    checker: PermissionChecker = Depends(get_permission_checker)
) -> Guards:
    return Guards(session, repository, checker)


def get_authorization_utils(guards: Guards = Depends(get_guards)) -> AuthorizationUtils:
    return AuthorizationUtils(guards.primitives)


async def get_current_principal(guards: Guards = Depends(get_guards)) -> Principal:
    """Authenticated principal or 401"""
    return await guards.primitives.require_auth()


def require_permission(permission_name: str, scope: str, resource_id_param: Optional[str] = None):
    """Factory function to create permission check dependency.

    resource_id_param names the path parameter holding the resource id.
    """
    async def check_permission(request: Request, guards: Guards = Depends(get_guards)) -> Principal:
        principal = await guards.primitives.require_auth()
        resource_id = request.path_params.get(resource_id_param) if resource_id_param else None
        if not await guards.primitives.has_permission(principal, permission_name, scope, resource_id):
            guards.primitives.deny(principal, permission_name, scope, resource_id)
        return principal
    return check_permission
