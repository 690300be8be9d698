import pytest
from types import SimpleNamespace
from fastapi import HTTPException

from app.modules.auth.service import AuthService, RequestSession


def auth_user(user_id, app_metadata=None):
    return SimpleNamespace(id=user_id, email=f"{user_id}@example.com", app_metadata=app_metadata or {})


class TestAuthService:
    @pytest.mark.asyncio
    async def test_resolves_principal(self, supabase):
        supabase.auth.tokens["t-dev"] = auth_user("dev")
        principal = await AuthService(supabase).get_current_user("t-dev")
        assert principal.id == "dev"
        assert principal.email == "dev@example.com"
        assert not principal.is_super_admin

    @pytest.mark.asyncio
    async def test_super_admin_sources(self, supabase):
        supabase.auth.tokens["t-super"] = auth_user("super")
        supabase.auth.tokens["t-staff"] = auth_user("outsider", {"type": "super_user"})
        service = AuthService(supabase)
        assert (await service.get_current_user("t-super")).is_super_admin
        assert (await service.get_current_user("t-staff")).is_super_admin

    @pytest.mark.asyncio
    async def test_unreadable_flag_is_not_super_admin(self, supabase):
        supabase.auth.tokens["t-super"] = auth_user("super")
        supabase.fail("users")
        assert not (await AuthService(supabase).get_current_user("t-super")).is_super_admin

    @pytest.mark.asyncio
    async def test_cached_per_token(self, supabase):
        supabase.auth.tokens["t-dev"] = auth_user("dev")
        service = AuthService(supabase)
        await service.get_current_user("t-dev")
        await service.get_current_user("t-dev")
        assert supabase.auth.calls == 1

    @pytest.mark.asyncio
    async def test_invalid_token(self, supabase):
        with pytest.raises(HTTPException) as exc:
            await AuthService(supabase).get_current_user("garbage")
        assert exc.value.status_code == 401


class TestRequestSession:
    @pytest.mark.asyncio
    async def test_anonymous(self, supabase):
        session = RequestSession(AuthService(supabase), None)
        assert await session.get_current_user() is None
        assert supabase.auth.calls == 0

    @pytest.mark.asyncio
    async def test_resolves_once(self, supabase):
        supabase.auth.tokens["t-dev"] = auth_user("dev")
        session = RequestSession(AuthService(supabase), "t-dev")
        first = await session.get_current_user()
        assert await session.get_current_user() is first
        assert supabase.auth.calls == 1
