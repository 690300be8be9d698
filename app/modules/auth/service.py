import hashlib
import logging
import time
from supabase import AsyncClient
from app.authorization.models import Principal
from app.config.settings import settings
from fastapi import HTTPException
from typing import Dict, Optional

logger = logging.getLogger(__name__)

# In-memory cache for get_current_user to reduce Supabase auth calls (e.g. many parallel requests with same token)
_AUTH_USER_CACHE: Dict[str, tuple] = {}


def clear_auth_cache():
    _AUTH_USER_CACHE.clear()


class AuthService:
    def __init__(self, supabase: AsyncClient):
        self.supabase = supabase

    async def _is_super_admin(self, user_id: str, app_metadata: dict) -> bool:
        """app_metadata.type == "super_user" (set server-side) or users.is_super_admin"""
        if (app_metadata or {}).get("type") == "super_user":
            return True
        try:
            result = await self.supabase.table("users")\
                .select("*")\
                .eq("id", user_id)\
                .limit(1)\
                .execute()
            return bool(result.data) and bool(result.data[0].get("is_super_admin"))
        except Exception as e:
            logger.error(f"Failed to read super admin flag of user {user_id}: {e}")
            return False

    async def get_current_user(self, token: str) -> Principal:
        """Resolve a bearer token to a Principal. Uses short TTL cache to reduce auth API calls."""
        try:
            cache_key = hashlib.sha256(token.encode()).hexdigest()
            now = time.monotonic()
            if cache_key in _AUTH_USER_CACHE:
                principal, expiry = _AUTH_USER_CACHE[cache_key]
                if now < expiry:
                    return principal
                del _AUTH_USER_CACHE[cache_key]
            user_response = await self.supabase.auth.get_user(jwt=token)
            if not user_response or not user_response.user:
                raise HTTPException(status_code=401, detail="Invalid or expired token")
            user = user_response.user
            principal = Principal(
                id=user.id,
                email=user.email,
                is_super_admin=await self._is_super_admin(user.id, user.app_metadata),
            )
            if len(_AUTH_USER_CACHE) < settings.auth_cache_max_size:
                _AUTH_USER_CACHE[cache_key] = (principal, now + settings.auth_cache_ttl_sec)
            return principal
        except HTTPException:
            raise
        except Exception as e:
            error_msg = str(e)
            if "JWT" in error_msg or "expired" in error_msg.lower() or "invalid" in error_msg.lower():
                raise HTTPException(status_code=401, detail="Invalid or expired token")
            raise HTTPException(status_code=401, detail="Authentication failed")


class RequestSession:
    """Session of one request: the bearer token, resolved at most once."""

    def __init__(self, auth_service: AuthService, token: Optional[str]):
        self.auth_service = auth_service
        self.token = token
        self._principal: Optional[Principal] = None
        self._resolved = False

    async def get_current_user(self) -> Optional[Principal]:
        if not self._resolved:
            self._principal = await self.auth_service.get_current_user(self.token) if self.token else None
            self._resolved = True
        return self._principal


class StaticSession:
    """Session with a fixed principal, for scripts and background jobs."""

    def __init__(self, principal: Optional[Principal]):
        self.principal = principal

    async def get_current_user(self) -> Optional[Principal]:
        return self.principal
