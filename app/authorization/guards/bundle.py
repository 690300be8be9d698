from app.authorization.checker import PermissionChecker
from app.authorization.guards.admin import AdminGuard
from app.authorization.guards.annotation import AnnotationGuard
from app.authorization.guards.base import GuardPrimitives, SessionProvider
from app.authorization.guards.invitation import InvitationGuard
from app.authorization.guards.notification import NotificationGuard
from app.authorization.guards.page import PageGuard
from app.authorization.guards.permission import PermissionGuard
from app.authorization.guards.project import ProjectGuard
from app.authorization.guards.role import RoleGuard
from app.authorization.guards.section import SectionGuard
from app.authorization.guards.user import UserGuard
from app.authorization.guards.workspace import WorkspaceGuard
from app.authorization.repository import AuthorizationRepository


class Guards:
    """One guard per resource type, all sharing the request's primitives."""

    def __init__(self, session: SessionProvider, repository: AuthorizationRepository, checker: PermissionChecker):
        self.primitives = GuardPrimitives(session, repository, checker)
        self.workspace = WorkspaceGuard(self.primitives)
        self.user = UserGuard(self.primitives, self.workspace)
        self.project = ProjectGuard(self.primitives)
        self.section = SectionGuard(self.primitives)
        self.page = PageGuard(self.primitives)
        self.role = RoleGuard(self.primitives)
        self.permission = PermissionGuard(self.primitives)
        self.annotation = AnnotationGuard(self.primitives)
        self.notification = NotificationGuard(self.primitives)
        self.invitation = InvitationGuard(self.primitives)
        self.admin = AdminGuard(self.primitives)
