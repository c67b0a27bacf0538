"""Application errors.

Each error maps to an HTTP status; handlers in ``main`` render them as
``{"error": message}``.
"""


class LearnProError(Exception):
    """Base exception for all platform errors."""

    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class AuthenticationError(LearnProError):
    status_code = 401


class PermissionDeniedError(LearnProError):
    status_code = 403


class NotFoundError(LearnProError):
    """Raised when a requested row does not exist."""

    status_code = 404

    def __init__(self, entity: str, entity_id=None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found")


class ValidationError(LearnProError):
    status_code = 400


class ConflictError(LearnProError):
    status_code = 409


class UpstreamError(LearnProError):
    """Raised when a third-party call (email, payments) fails."""

    status_code = 502
