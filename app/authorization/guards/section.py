"""
Section guard.

Sections inherit access from the workspace of their project. Project and
workspace owners can act on every section below them.
"""

import logging
from app.authorization.guards.base import GuardPrimitives
from app.authorization.models import AuthorizationContext, Principal, Project, Section
from app.config.permissions_config import Permissions, Scopes
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class SectionGuard:
    def __init__(self, primitives: GuardPrimitives):
        self.p = primitives

    async def _load_project(self, project_id: str) -> Project:
        return await self.p.validate_resource_exists(
            lambda: self.p.repository.get_project(project_id), "Project"
        )

    async def _in_workspace(self, principal: Principal, project: Project, action: str, resource_type: str, resource_id: str) -> AuthorizationContext:
        membership = await self.p.get_workspace_membership(principal.id, project.workspace_id)
        if membership is None and not self.p.is_super_admin(principal):
            self.p.deny(principal, action, resource_type, resource_id)
        return AuthorizationContext(
            principal=principal,
            membership=membership,
            role=membership.role if membership else None,
            extras={"project": project},
        )

    async def _is_chain_owner(self, user_id: str, project: Project, section: Optional[Section] = None) -> bool:
        """Owner of the section, its project or the project's workspace."""
        if section and self.p.is_owner(user_id, section.owner_id):
            return True
        if self.p.is_owner(user_id, project.owner_id):
            return True
        try:
            workspace = await self.p.repository.get_workspace(project.workspace_id)
        except Exception as e:
            logger.error(f"Failed to load workspace {project.workspace_id}: {e}")
            return False
        return bool(workspace) and self.p.is_owner(user_id, workspace.owner_id)

    async def protect_by_id(self, section_id: str) -> AuthorizationContext:
        principal = await self.p.require_auth()
        section = await self.p.validate_resource_exists(
            lambda: self.p.repository.get_section(section_id), "Section"
        )
        project = await self._load_project(section.project_id)
        context = await self._in_workspace(principal, project, "access", "section", section_id)
        context.resource = section
        return context

    async def can_create_section(self, principal: Principal, project: Project) -> bool:
        if await self._is_chain_owner(principal.id, project):
            return True
        return await self.p.has_permission(principal, Permissions.SECTION.CREATE, Scopes.PROJECT, project.id)

    async def can_edit_section(self, principal: Principal, section: Section, project: Project) -> bool:
        if await self._is_chain_owner(principal.id, project, section):
            return True
        return await self.p.has_permission(principal, Permissions.SECTION.EDIT, Scopes.PROJECT, project.id)

    async def protect_creation(self, project_id: str) -> AuthorizationContext:
        principal = await self.p.require_auth()
        project = await self._load_project(project_id)
        context = await self._in_workspace(principal, project, "create section in", "project", project_id)
        context.resource = project
        if not await self.can_create_section(principal, project):
            self.p.deny(principal, "create section in", "project", project_id)
        return context

    async def protect_update(self, section_id: str) -> AuthorizationContext:
        context = await self.protect_by_id(section_id)
        if not await self.can_edit_section(context.principal, context.resource, context.extras["project"]):
            self.p.deny(context.principal, "update", "section", section_id)
        return context

    async def protect_deletion(self, section_id: str) -> AuthorizationContext:
        context = await self.protect_by_id(section_id)
        principal, section, project = context.principal, context.resource, context.extras["project"]
        if self.p.is_super_admin(principal) or await self._is_chain_owner(principal.id, project, section):
            return context
        if not await self.p.has_permission(principal, Permissions.SECTION.DELETE, Scopes.PROJECT, project.id):
            self.p.deny(principal, "delete", "section", section_id)
        return context

    async def protect_ownership(self, section_id: str) -> AuthorizationContext:
        context = await self.protect_by_id(section_id)
        if not self.p.is_super_admin(context.principal):
            self.p.require_ownership(context.principal, context.resource.owner_id, "section", section_id)
        return context

    async def protect_list(self, project_id: str, filters: Optional[Dict[str, Any]] = None) -> AuthorizationContext:
        context = await self.protect_creation(project_id)
        context.filters = {**(filters or {}), "project_id": project_id}
        return context

    async def get_user_role(self, user_id: str, section_id: str) -> Optional[str]:
        """section_owner, project_owner, workspace_owner, or the workspace role name."""
        try:
            section = await self.p.repository.get_section(section_id)
            if not section:
                return None
            project = await self.p.repository.get_project(section.project_id)
            if not project:
                return None
            if self.p.is_owner(user_id, section.owner_id):
                return "section_owner"
            if self.p.is_owner(user_id, project.owner_id):
                return "project_owner"
            workspace = await self.p.repository.get_workspace(project.workspace_id)
            if workspace and self.p.is_owner(user_id, workspace.owner_id):
                return "workspace_owner"
            membership = await self.p.repository.find_workspace_membership(user_id, project.workspace_id)
            return membership.role_name if membership else None
        except Exception as e:
            logger.error(f"Failed to get role of user {user_id} in section {section_id}: {e}")
            return None
