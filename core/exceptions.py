"""
Typed failures raised by the service layer.

Every service operation either returns its payload or raises one of these.
The HTTP layer maps them to status codes in one place (see app.py), so the
messages here must be safe to show to end users.
"""


class PortalError(Exception):
    """Base class for business-rule failures."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class UnauthorizedError(PortalError):
    status_code = 401
    default_message = "Authentication required"


class ForbiddenError(PortalError):
    status_code = 403
    default_message = "Access denied"


class NotFoundError(PortalError):
    status_code = 404
    default_message = "Not found"


class InvalidInputError(PortalError):
    status_code = 400
    default_message = "Invalid input"


class ConflictError(PortalError):
    status_code = 409
    default_message = "Resource already exists"


class CapacityExceededError(PortalError):
    status_code = 400
    default_message = "Course is full"


class InvalidStateError(PortalError):
    status_code = 400
    default_message = "Operation not allowed in the current state"


class InternalError(PortalError):
    status_code = 500
