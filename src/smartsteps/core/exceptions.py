class DomainError(Exception):
    """Base exception for business rule violations."""

    status_code = 400
    code = "DOMAIN_ERROR"

    def __init__(self, message: str = "", *, details=None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(DomainError):
    """Raised when input data is invalid or violates domain rules."""

    status_code = 400
    code = "VALIDATION_ERROR"


class AuthenticationError(DomainError):
    """Raised when login credentials are invalid or the session is missing."""

    status_code = 401
    code = "UNAUTHORIZED"


class AuthorizationError(DomainError):
    """Raised when a user lacks permission for an action."""

    status_code = 403
    code = "PERMISSION_DENIED"


class NotFoundError(DomainError):
    status_code = 404
    code = "NOT_FOUND"


class ConflictError(DomainError):
    """Raised when a uniqueness rule is hit (e.g. entity already queued)."""

    status_code = 409
    code = "CONFLICT"
