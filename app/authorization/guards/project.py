import logging
from app.authorization.guards.base import GuardPrimitives
from app.authorization.models import AuthorizationContext, Principal, Project, Workspace
from app.config.permissions_config import EDITOR_ROLE_NAMES, Permissions, Scopes
from typing import Optional

logger = logging.getLogger(__name__)


class ProjectGuard:
    def __init__(self, primitives: GuardPrimitives):
        self.p = primitives

    async def _load_by_id(self, project_id: str) -> Project:
        return await self.p.validate_resource_exists(
            lambda: self.p.repository.get_project(project_id), "Project"
        )

    async def _load_by_slug(self, slug: str) -> Project:
        return await self.p.validate_resource_exists(
            lambda: self.p.repository.get_project_by_slug(slug), "Project"
        )

    async def _workspace(self, project: Project) -> Optional[Workspace]:
        try:
            return await self.p.repository.get_workspace(project.workspace_id)
        except Exception as e:
            logger.error(f"Failed to load workspace {project.workspace_id} of project {project.id}: {e}")
            return None

    async def _authorize_access(self, principal: Principal, project: Project) -> AuthorizationContext:
        """super admin -> project or workspace owner -> workspace member -> project member"""
        workspace = await self._workspace(project)
        membership = await self.p.get_workspace_membership(principal.id, project.workspace_id)
        context = AuthorizationContext(
            principal=principal,
            resource=project,
            membership=membership,
            role=membership.role if membership else None,
            extras={"workspace": workspace},
        )

        if self.p.is_super_admin(principal):
            return context
        if self.p.is_owner(principal.id, project.owner_id):
            return context
        if workspace and self.p.is_owner(principal.id, workspace.owner_id):
            return context
        if membership is not None:
            return context

        project_membership = await self.p.get_project_membership(principal.id, project.id)
        if project_membership is None:
            self.p.deny(principal, "access", "project", project.id)
        context.membership = project_membership
        context.role = project_membership.role
        return context

    async def protect_by_slug(self, slug: str) -> AuthorizationContext:
        principal = await self.p.require_auth()
        project = await self._load_by_slug(slug)
        return await self._authorize_access(principal, project)

    async def protect_by_id(self, project_id: str) -> AuthorizationContext:
        principal = await self.p.require_auth()
        project = await self._load_by_id(project_id)
        return await self._authorize_access(principal, project)

    async def protect_editor(self, slug: str) -> AuthorizationContext:
        """Access plus edit:project, or an owner/editor role in the workspace."""
        context = await self.protect_by_slug(slug)
        principal, project = context.principal, context.resource

        if await self.p.has_permission(principal, Permissions.PROJECT.EDIT, Scopes.PROJECT, project.id):
            return context
        workspace_role = await self.p.get_workspace_membership(principal.id, project.workspace_id)
        if workspace_role and workspace_role.role_name in EDITOR_ROLE_NAMES:
            return context
        self.p.deny(principal, "edit", "project", project.id)

    async def protect_ownership(self, project_id: str) -> AuthorizationContext:
        principal = await self.p.require_auth()
        project = await self._load_by_id(project_id)
        if not self.p.is_super_admin(principal):
            self.p.require_ownership(principal, project.owner_id, "project", project_id)
        return AuthorizationContext(principal=principal, resource=project)

    async def protect_management(self, project_id: str) -> AuthorizationContext:
        context = await self.protect_by_id(project_id)
        if not await self.p.has_permission(context.principal, Permissions.PROJECT.MANAGE, Scopes.PROJECT, project_id):
            self.p.deny(context.principal, "manage", "project", project_id)
        return context

    async def protect_creation(self, workspace_id: str) -> AuthorizationContext:
        principal = await self.p.require_auth()
        workspace = await self.p.validate_resource_exists(
            lambda: self.p.repository.get_workspace(workspace_id), "Workspace"
        )
        context = AuthorizationContext(principal=principal, resource=workspace)
        if self.p.is_super_admin(principal) or self.p.is_owner(principal.id, workspace.owner_id):
            return context

        context.membership = await self.p.require_workspace_membership(principal, workspace_id)
        context.role = context.membership.role
        if not await self.p.has_permission(principal, Permissions.PROJECT.CREATE, Scopes.WORKSPACE, workspace_id):
            self.p.deny(principal, "create project in", "workspace", workspace_id)
        return context

    async def protect_deletion(self, project_id: str) -> AuthorizationContext:
        principal = await self.p.require_auth()
        project = await self._load_by_id(project_id)
        workspace = await self._workspace(project)
        context = AuthorizationContext(principal=principal, resource=project, extras={"workspace": workspace})

        if self.p.is_super_admin(principal) or self.p.is_owner(principal.id, project.owner_id):
            return context
        if workspace and self.p.is_owner(principal.id, workspace.owner_id):
            return context
        if not await self.p.has_permission(principal, Permissions.PROJECT.DELETE, Scopes.PROJECT, project_id):
            self.p.deny(principal, "delete", "project", project_id)
        return context

    async def protect_member_management(self, project_id: str) -> AuthorizationContext:
        """Project or workspace owner, or manage:members on the project."""
        context = await self.protect_by_id(project_id)
        project, workspace = context.resource, context.extras.get("workspace")
        if self.p.is_owner(context.principal.id, project.owner_id):
            return context
        if workspace and self.p.is_owner(context.principal.id, workspace.owner_id):
            return context
        if not await self.p.has_permission(
            context.principal, Permissions.WORKSPACE.MANAGE_MEMBERS, Scopes.PROJECT, project_id
        ):
            self.p.deny(context.principal, "manage members of", "project", project_id)
        return context
