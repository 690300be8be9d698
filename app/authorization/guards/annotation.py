"""
Annotation guard.

The author (annotation.user_id) is the primary gate. Anyone else needs the
matching annotation permission, looked up in the scope of the page's project
and then of the page itself.
"""

import logging
from app.authorization.guards.base import GuardPrimitives
from app.authorization.models import Annotation, AuthorizationContext, Page, Principal, Project
from app.config.permissions_config import Permissions, Scopes
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class AnnotationGuard:
    def __init__(self, primitives: GuardPrimitives):
        self.p = primitives

    async def _page_context(self, principal: Principal, page_id: str, action: str) -> AuthorizationContext:
        page = await self.p.validate_resource_exists(
            lambda: self.p.repository.get_page(page_id), "Page"
        )
        section = await self.p.validate_resource_exists(
            lambda: self.p.repository.get_section(page.section_id), "Section"
        )
        project = await self.p.validate_resource_exists(
            lambda: self.p.repository.get_project(section.project_id), "Project"
        )
        membership = await self.p.get_workspace_membership(principal.id, project.workspace_id)
        if membership is None and not self.p.is_super_admin(principal):
            self.p.deny(principal, action, "page", page_id)
        return AuthorizationContext(
            principal=principal,
            resource=page,
            membership=membership,
            role=membership.role if membership else None,
            extras={"page": page, "project": project},
        )

    async def _has_page_permission(self, principal: Principal, permission_name: str, page: Page, project: Project) -> bool:
        if await self.p.has_permission(principal, permission_name, Scopes.PROJECT, project.id):
            return True
        return await self.p.has_permission(principal, permission_name, Scopes.PAGE, page.id)

    async def protect_annotation(self, annotation_id: str) -> AuthorizationContext:
        principal = await self.p.require_auth()
        annotation = await self.p.validate_resource_exists(
            lambda: self.p.repository.get_annotation(annotation_id), "Annotation"
        )
        context = await self._page_context(principal, annotation.page_id, "access annotations of")
        context.resource = annotation
        return context

    async def protect_creation(self, page_id: str) -> AuthorizationContext:
        principal = await self.p.require_auth()
        context = await self._page_context(principal, page_id, "annotate")
        if not await self._has_page_permission(
            principal, Permissions.ANNOTATION.CREATE, context.extras["page"], context.extras["project"]
        ):
            self.p.deny(principal, "annotate", "page", page_id)
        return context

    async def _author_or_permitted(self, annotation_id: str, permission_name: str, action: str) -> AuthorizationContext:
        context = await self.protect_annotation(annotation_id)
        principal = context.principal
        annotation: Annotation = context.resource
        if self.p.is_super_admin(principal) or self.p.is_owner(principal.id, annotation.user_id):
            return context
        if not await self._has_page_permission(
            principal, permission_name, context.extras["page"], context.extras["project"]
        ):
            self.p.deny(principal, action, "annotation", annotation_id)
        return context

    async def protect_update(self, annotation_id: str) -> AuthorizationContext:
        return await self._author_or_permitted(annotation_id, Permissions.ANNOTATION.UPDATE, "update")

    async def protect_deletion(self, annotation_id: str) -> AuthorizationContext:
        return await self._author_or_permitted(annotation_id, Permissions.ANNOTATION.DELETE, "delete")

    async def protect_resolution(self, annotation_id: str) -> AuthorizationContext:
        return await self._author_or_permitted(annotation_id, Permissions.ANNOTATION.RESOLVE, "resolve")

    async def protect_list(self, page_id: str, filters: Optional[Dict[str, Any]] = None) -> AuthorizationContext:
        """
        Without view:all_annotations a user only sees their own annotations
        and unresolved ones; filters["visible_to"] carries that restriction.
        """
        context = await self.protect_creation(page_id)
        principal = context.principal
        authorized = {**(filters or {}), "page_id": page_id}
        if not self.p.is_super_admin(principal):
            can_view_all = await self._has_page_permission(
                principal, Permissions.ANNOTATION.VIEW_ALL, context.extras["page"], context.extras["project"]
            )
            if not can_view_all:
                authorized["visible_to"] = principal.id
        context.filters = authorized
        return context

    async def can_moderate_annotations(self, principal: Principal, page_id: str) -> bool:
        if self.p.is_super_admin(principal):
            return True
        try:
            page = await self.p.repository.get_page(page_id)
            if not page:
                return False
            section = await self.p.repository.get_section(page.section_id)
            project = await self.p.repository.get_project(section.project_id) if section else None
            if not project:
                return False
            return await self._has_page_permission(principal, Permissions.ANNOTATION.MODERATE, page, project)
        except Exception as e:
            logger.error(f"Failed to check annotation moderation on page {page_id}: {e}")
            return False

    async def protect_moderation(self, page_id: str) -> AuthorizationContext:
        principal = await self.p.require_auth()
        if not await self.can_moderate_annotations(principal, page_id):
            self.p.deny(principal, "moderate annotations of", "page", page_id)
        return AuthorizationContext(principal=principal, extras={"page_id": page_id})
