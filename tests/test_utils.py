import asyncio
import pytest

from app.authorization.concurrency import gather_bounded
from app.authorization.utils import AuthorizationUtils, ResourceAuthContext
from app.config.permissions_config import Permissions, Scopes
from app.core.exceptions import ForbiddenError, UnauthenticatedError


@pytest.fixture
def make_utils(make_guards):
    def _make(user_id=None):
        return AuthorizationUtils(make_guards(user_id).primitives)
    return _make


class TestGatherBounded:
    @pytest.mark.asyncio
    async def test_keeps_order_and_bound(self):
        in_flight = 0
        peak = 0

        async def work(n):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01 * (5 - n))
            in_flight -= 1
            return n * 10

        results = await gather_bounded(range(5), work, limit=2)
        assert results == [0, 10, 20, 30, 40]
        assert peak <= 2

    @pytest.mark.asyncio
    async def test_empty(self):
        async def work(item):
            return item
        assert await gather_bounded([], work) == []


class TestDecorators:
    @pytest.mark.asyncio
    async def test_require_permission(self, make_utils):
        def wrap(utils):
            @utils.require_permission(Permissions.PROJECT.READ, Scopes.PROJECT, lambda project_id: project_id)
            async def read_project(project_id):
                return f"read {project_id}"
            return read_project

        assert await wrap(make_utils("dev"))("p1") == "read p1"
        assert wrap(make_utils("dev")).__name__ == "read_project"
        with pytest.raises(ForbiddenError):
            await wrap(make_utils("member"))("p1")
        with pytest.raises(UnauthenticatedError):
            await wrap(make_utils(None))("p1")

    @pytest.mark.asyncio
    async def test_require_ownership(self, make_utils):
        def wrap(utils):
            @utils.require_ownership(Scopes.PAGE, lambda page_id, **kwargs: page_id)
            async def rename(page_id, title=None):
                return title
            return rename

        assert await wrap(make_utils("owner"))("pg1", title="New") == "New"
        assert await wrap(make_utils("super"))("pg1", title="Any") == "Any"
        with pytest.raises(ForbiddenError):
            await wrap(make_utils("dev"))("pg1", title="Nope")

    @pytest.mark.asyncio
    async def test_require_memberships(self, make_utils):
        def wrap(utils):
            @utils.require_workspace_membership(lambda workspace_id, project_id: workspace_id)
            @utils.require_project_membership(lambda workspace_id, project_id: project_id)
            async def open_board(workspace_id, project_id):
                return True
            return open_board

        assert await wrap(make_utils("dev"))("w1", "p1")
        assert await wrap(make_utils("super"))("w2", "p9")
        with pytest.raises(ForbiddenError):
            # workspace member, but not a member of p1
            await wrap(make_utils("member"))("w1", "p1")
        with pytest.raises(ForbiddenError):
            await wrap(make_utils("guest"))("w1", "p1")

    @pytest.mark.asyncio
    async def test_require_conditions(self, make_utils):
        async def is_dev(principal, project_id):
            return principal.id == "dev"

        async def owns_project(principal, project_id):
            return principal.id == "owner"

        def wrap(utils, logic):
            @utils.require_conditions([is_dev, owns_project], logic=logic)
            async def publish(project_id):
                return project_id
            return publish

        assert await wrap(make_utils("dev"), "OR")("p1") == "p1"
        with pytest.raises(ForbiddenError):
            await wrap(make_utils("dev"), "AND")("p1")
        with pytest.raises(ForbiddenError):
            await wrap(make_utils("outsider"), "OR")("p1")

    @pytest.mark.asyncio
    async def test_with_auth_propagates_and_skips_call(self, make_guards):
        guards = make_guards("dev")
        utils = AuthorizationUtils(guards.primitives)
        calls = []

        @utils.with_auth(lambda page_id: guards.page.protect_sharing(page_id))
        async def share(page_id):
            calls.append(page_id)

        with pytest.raises(ForbiddenError):
            await share("pg1")
        await share("pg2")
        assert calls == ["pg2"]


class TestHelpers:
    @pytest.mark.asyncio
    async def test_can_access_with_ownership(self, make_utils):
        utils = make_utils("super")
        # read:project is not granted by ownership, plain ownership still counts here
        assert await utils.can_access_with_ownership("owner", Permissions.PROJECT.READ, Scopes.PROJECT, "p1")
        assert await utils.can_access_with_ownership("dev", Permissions.PROJECT.READ, Scopes.PROJECT, "p1")
        assert not await utils.can_access_with_ownership("dev", Permissions.PAGE.READ, Scopes.PAGE, "pg1")

    @pytest.mark.asyncio
    async def test_effective_permissions(self, make_utils):
        permissions = await make_utils("dev").get_user_effective_permissions("dev", Scopes.PROJECT, "p1")
        assert set(permissions) == {"direct", "role", "ownership", "all"}
        assert Permissions.PAGE.EDIT in permissions["role"]
        assert permissions["direct"] == []

    @pytest.mark.asyncio
    async def test_auth_context_for_owner(self, make_utils):
        context = await make_utils("owner").create_auth_context("owner", Scopes.PAGE, "pg1")
        assert context.is_owner
        assert not context.is_super_admin
        assert context.can_read and context.can_write and context.can_delete and context.can_manage
        assert Permissions.PAGE.SHARE in context.permissions["ownership"]
        assert AuthorizationUtils.validate_operation(context, "anything")

    @pytest.mark.asyncio
    async def test_auth_context_for_role_holder(self, make_utils):
        context = await make_utils("dev").create_auth_context("dev", Scopes.PROJECT, "p1")
        assert not context.is_owner
        assert context.can_read
        assert not (context.can_write or context.can_delete or context.can_manage)
        assert AuthorizationUtils.validate_operation(context, "read")
        assert not AuthorizationUtils.validate_operation(context, "update")
        assert not AuthorizationUtils.validate_operation(context, "delete")

    def test_validate_operation(self):
        assert not AuthorizationUtils.validate_operation(None, "read")
        context = ResourceAuthContext(
            user_id="dev",
            scope=Scopes.PROJECT,
            resource_id="p1",
            permissions={"direct": [], "role": ["archive:project"], "ownership": [], "all": ["archive:project"]},
        )
        assert AuthorizationUtils.validate_operation(context, "archive")
        assert not AuthorizationUtils.validate_operation(context, "manage")
        assert AuthorizationUtils.validate_operation(context.model_copy(update={"is_super_admin": True}), "manage")

    @pytest.mark.asyncio
    async def test_batch_check(self, make_utils):
        results = await make_utils("dev").batch_check_permissions("dev", [
            {"permission": Permissions.PAGE.EDIT, "scope": Scopes.PROJECT, "resource_id": "p1"},
            {"permission": Permissions.PAGE.EDIT, "scope": Scopes.PROJECT, "resource_id": "p2"},
            {"permission": Permissions.PAGE.EDIT, "scope": Scopes.PAGE, "resource_id": "pg2"},
        ])
        assert results == {
            "project:p1:edit:page": True,
            "project:p2:edit:page": False,
            "page:pg2:edit:page": True,
        }

    @pytest.mark.asyncio
    async def test_batch_check_keeps_each_permission_on_one_resource(self, make_utils):
        results = await make_utils("dev").batch_check_permissions("dev", [
            {"permission": Permissions.PAGE.EDIT, "scope": Scopes.PROJECT, "resource_id": "p1"},
            {"permission": Permissions.PROJECT.DELETE, "scope": Scopes.PROJECT, "resource_id": "p1"},
        ])
        assert results == {"project:p1:edit:page": True, "project:p1:delete:project": False}

    @pytest.mark.asyncio
    async def test_filter_keeps_input_order(self, make_utils):
        resources = [
            {"type": Scopes.PAGE, "id": "pg3", "title": "Secret"},
            {"type": Scopes.PAGE, "id": "pg2", "title": "Public"},
            {"type": Scopes.PAGE, "id": "pg1", "title": "Intro"},
        ]
        kept = await make_utils("owner").filter_resources_by_permission("owner", resources, Permissions.PAGE.EDIT)
        assert [r["id"] for r in kept] == ["pg3", "pg1"]


class TestResourceAuth:
    @pytest.mark.asyncio
    async def test_checks(self, make_utils):
        pages = make_utils("owner").create_resource_auth(Scopes.PAGE)
        assert await pages.can_read("owner", "pg1")
        assert await pages.can_manage("owner", "pg1")
        assert not await pages.can_delete("dev", "pg1")
        assert await pages.can_write("dev", "pg2")

        context = await pages.get_context("owner", "pg1")
        assert context.resource_id == "pg1" and context.is_owner

    @pytest.mark.asyncio
    async def test_wrappers(self, make_utils):
        def wrap(utils):
            pages = utils.create_resource_auth(Scopes.PAGE)

            @pages.require_delete
            async def remove(page_id):
                return page_id
            return remove

        assert await wrap(make_utils("super"))("pg1") == "pg1"
        with pytest.raises(ForbiddenError):
            await wrap(make_utils("dev"))("pg1")
