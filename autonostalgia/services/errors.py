"""
Domain errors raised by the service layer.

Routes let these propagate; ``create_app`` installs a handler that turns
them into ``{"detail": ...}`` JSON responses with the matching status code.
"""


class DomainError(Exception):
    status_code = 400
    default_detail = "Request failed"

    def __init__(self, detail=None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class NotFoundError(DomainError):
    status_code = 404
    default_detail = "Not found"


class ValidationFailed(DomainError):
    status_code = 400
    default_detail = "Invalid request"


class PermissionDenied(DomainError):
    status_code = 403
    default_detail = "Access Denied"


class TransitionConflict(DomainError):
    """Illegal transition, or the row changed underneath a compare-and-swap."""
    status_code = 409
    default_detail = "Assessment status has changed"


class JoinError(DomainError):
    status_code = 502
    default_detail = "Failed to fetch related records"


class StorageError(DomainError):
    status_code = 502
    default_detail = "Storage operation failed"


class PersistenceError(DomainError):
    status_code = 500
    default_detail = "Failed to save changes"
