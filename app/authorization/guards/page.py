"""
Page guard.

Pages sit under section -> project -> workspace. Member access follows the
workspace membership; the public path needs no session at all and is gated
on the page's is_public flag and optional password.
"""

import logging
import secrets
from app.authorization.guards.base import GuardPrimitives, audit_logger
from app.authorization.models import AuthorizationContext, Page, Principal, Project, Section
from app.config.permissions_config import Permissions, Scopes
from app.core.exceptions import PagePasswordError
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class PageGuard:
    def __init__(self, primitives: GuardPrimitives):
        self.p = primitives

    async def _load_page(self, page_id: str) -> Page:
        return await self.p.validate_resource_exists(
            lambda: self.p.repository.get_page(page_id), "Page"
        )

    async def _load_section(self, section_id: str) -> Section:
        return await self.p.validate_resource_exists(
            lambda: self.p.repository.get_section(section_id), "Section"
        )

    async def _load_project(self, project_id: str) -> Project:
        return await self.p.validate_resource_exists(
            lambda: self.p.repository.get_project(project_id), "Project"
        )

    async def _member_context(self, principal: Principal, section: Section, action: str, resource_type: str, resource_id: str) -> AuthorizationContext:
        project = await self._load_project(section.project_id)
        membership = await self.p.get_workspace_membership(principal.id, project.workspace_id)
        if membership is None and not self.p.is_super_admin(principal):
            self.p.deny(principal, action, resource_type, resource_id)
        return AuthorizationContext(
            principal=principal,
            membership=membership,
            role=membership.role if membership else None,
            extras={"section": section, "project": project},
        )

    async def _owns_chain(self, user_id: str, section: Section, project: Project) -> bool:
        if self.p.is_owner(user_id, section.owner_id) or self.p.is_owner(user_id, project.owner_id):
            return True
        try:
            workspace = await self.p.repository.get_workspace(project.workspace_id)
        except Exception as e:
            logger.error(f"Failed to load workspace {project.workspace_id}: {e}")
            return False
        return bool(workspace) and self.p.is_owner(user_id, workspace.owner_id)

    async def _can(self, context: AuthorizationContext, permission_name: str) -> bool:
        """Owner of the page or anything above it, or the permission in project or page scope."""
        principal, page = context.principal, context.resource
        section, project = context.extras["section"], context.extras["project"]
        if self.p.is_super_admin(principal) or self.p.is_owner(principal.id, page.owner_id):
            return True
        if await self._owns_chain(principal.id, section, project):
            return True
        if await self.p.has_permission(principal, permission_name, Scopes.PROJECT, project.id):
            return True
        return await self.p.has_permission(principal, permission_name, Scopes.PAGE, page.id)

    async def protect_by_id(self, page_id: str) -> AuthorizationContext:
        principal = await self.p.require_auth()
        page = await self._load_page(page_id)
        section = await self._load_section(page.section_id)
        context = await self._member_context(principal, section, "access", "page", page_id)
        context.resource = page
        return context

    async def protect_creation(self, section_id: str) -> AuthorizationContext:
        principal = await self.p.require_auth()
        section = await self._load_section(section_id)
        context = await self._member_context(principal, section, "create page in", "section", section_id)
        context.resource = section
        project = context.extras["project"]

        if self.p.is_super_admin(principal) or await self._owns_chain(principal.id, section, project):
            return context
        if await self.p.has_permission(principal, Permissions.PAGE.CREATE, Scopes.PROJECT, project.id):
            return context
        self.p.deny(principal, "create page in", "section", section_id)

    async def protect_update(self, page_id: str) -> AuthorizationContext:
        context = await self.protect_by_id(page_id)
        if not await self._can(context, Permissions.PAGE.EDIT):
            self.p.deny(context.principal, "update", "page", page_id)
        return context

    async def protect_deletion(self, page_id: str) -> AuthorizationContext:
        context = await self.protect_by_id(page_id)
        if not await self._can(context, Permissions.PAGE.DELETE):
            self.p.deny(context.principal, "delete", "page", page_id)
        return context

    async def protect_sharing(self, page_id: str) -> AuthorizationContext:
        context = await self.protect_by_id(page_id)
        if not await self._can(context, Permissions.PAGE.SHARE):
            self.p.deny(context.principal, "share", "page", page_id)
        return context

    async def protect_ownership(self, page_id: str) -> AuthorizationContext:
        context = await self.protect_by_id(page_id)
        if not self.p.is_super_admin(context.principal):
            self.p.require_ownership(context.principal, context.resource.owner_id, "page", page_id)
        return context

    async def protect_list(self, section_id: str, filters: Optional[Dict[str, Any]] = None) -> AuthorizationContext:
        principal = await self.p.require_auth()
        section = await self._load_section(section_id)
        context = await self._member_context(principal, section, "list pages of", "section", section_id)
        context.resource = section
        context.filters = {**(filters or {}), "section_id": section_id}
        return context

    async def protect_public_access(self, page_id: str, password: Optional[str] = None) -> AuthorizationContext:
        """Anonymous read of a public page. Passwords are stored and compared as plain text."""
        page = await self._load_page(page_id)
        if not page.is_public:
            self.p.deny(None, "read public", "page", page_id)
        if page.password:
            if password is None or not secrets.compare_digest(password.encode(), page.password.encode()):
                audit_logger.warning(f"Wrong password for public page {page_id}")
                raise PagePasswordError()
        return AuthorizationContext(resource=page)
