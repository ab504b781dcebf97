"""Domain errors raised by the order ledger and its collaborators.

Routers never catch these; `main.py` registers one handler that turns any
`DomainError` into a JSON body with the class' status code.
"""
from fastapi import status


class DomainError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "domain_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"detail": self.message, "error": self.code}


class ValidationError(DomainError):
    """Malformed or missing input"""
    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation_error"


class NotFoundError(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class PermissionDeniedError(DomainError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "permission_denied"


class ConflictError(DomainError):
    """A concurrent claim or update was lost; refresh and retry"""
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"


class InvalidTransitionError(DomainError):
    status_code = status.HTTP_409_CONFLICT
    code = "invalid_transition"

    def __init__(self, current, requested, message: str = None):
        self.current = getattr(current, "value", current)
        self.requested = getattr(requested, "value", requested)
        super().__init__(
            message or f"Cannot move order from '{self.current}' to '{self.requested}'"
        )

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["current_status"] = self.current
        data["requested_status"] = self.requested
        return data


class AlreadySettledError(DomainError):
    """Earnings already exist for the order"""
    status_code = status.HTTP_409_CONFLICT
    code = "already_settled"
