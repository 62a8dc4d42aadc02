from fastapi import HTTPException, status

from .security import AuthorizationError


class ValidationFailedError(HTTPException):
    def __init__(self, detail: str = "Invalid request data"):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
        )


class NotFoundError(HTTPException):
    def __init__(self, detail: str = "Resource not found"):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
        )


class PermissionDeniedError(AuthorizationError):
    """Ownership mismatch or an action against a protected account."""


class PolicyViolationError(HTTPException):
    def __init__(self, detail="Operation not allowed in the current state"):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
        )


class DuplicateAccountError(PolicyViolationError):
    pass


class ArchivedAccountError(PolicyViolationError):
    """An account with this email or phone exists but is soft-deleted."""

    def __init__(self, user_id: str, field: str):
        self.user_id = user_id
        self.field = field
        super().__init__(detail={
            "code": "archived",
            "message": (
                f"User with this {field} exists (Archived). "
                "Please restore from Archive."
            ),
            "user_id": user_id,
        })


class ImmutableRecordError(PolicyViolationError):
    pass
