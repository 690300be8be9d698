"""
Authorization and business-rule errors.

Two separate channels, both rendered by FastAPI as HTTP errors:
- AuthorizationError: 401 / 403 / 404 raised at the guard boundary.
- DomainRuleViolation: business rules (expired invitation, wrong page password, ...)
  that callers show to the user instead of a blanket "not authorized".
"""

from fastapi import HTTPException, status


class AuthorizationError(HTTPException):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Not authorized"

    def __init__(self, detail: str = None):
        super().__init__(status_code=self.status_code, detail=detail or self.default_detail)


class UnauthenticatedError(AuthorizationError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Authentication required"

    def __init__(self, detail: str = None):
        super().__init__(detail)
        self.headers = {"WWW-Authenticate": "Bearer"}


class ForbiddenError(AuthorizationError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "You do not have permission to perform this action"


class ResourceNotFoundError(AuthorizationError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str = "Resource"):
        self.resource = resource
        super().__init__(f"{resource} not found")


class DomainRuleViolation(HTTPException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Request violates a business rule"

    def __init__(self, detail: str = None):
        super().__init__(status_code=self.status_code, detail=detail or self.default_detail)


class InvitationExpiredError(DomainRuleViolation):
    status_code = status.HTTP_410_GONE
    default_detail = "This invitation has expired"


class InvitationAlreadyAcceptedError(DomainRuleViolation):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "This invitation has already been accepted"


class InvitationEmailMismatchError(DomainRuleViolation):
    default_detail = "You can only accept invitations sent to your email address"


class InvitationLimitReachedError(DomainRuleViolation):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_detail = "Invitation limit reached for this workspace"


class PagePasswordError(DomainRuleViolation):
    default_detail = "Incorrect page password"


class ResourceInUseError(DomainRuleViolation):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Resource is in use and cannot be deleted"


class SelfDeletionError(DomainRuleViolation):
    default_detail = "Administrators cannot delete their own account"
