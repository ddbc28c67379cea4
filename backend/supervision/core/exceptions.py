from enum import Enum


class ErrorKind(str, Enum):
    not_found = "NOT_FOUND"
    invalid_transition = "INVALID_TRANSITION"
    exclusivity_violation = "EXCLUSIVITY_VIOLATION"
    capacity_exhausted = "CAPACITY_EXHAUSTED"
    unauthorized_action = "UNAUTHORIZED_ACTION"
    validation_error = "VALIDATION_ERROR"
    conflict = "CONFLICT"


class AppError(Exception):
    """Base class for all application exceptions."""

    kind: ErrorKind = ErrorKind.conflict

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: dict = None,
        *,
        code: str | None = None,
        retryable: bool = False,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.code = code or self.kind.value
        self.retryable = retryable
        super().__init__(self.message)

    def to_payload(self) -> dict:
        return {
            "kind": self.kind.value,
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "retryable": self.retryable,
        }


class ResourceNotFoundError(AppError):
    """Raised when a requested resource is not found."""

    kind = ErrorKind.not_found

    def __init__(self, resource_type: str, resource_id):
        super().__init__(
            f"{resource_type} with id {resource_id} not found",
            status_code=404,
            details={"resource_type": resource_type, "resource_id": resource_id},
            code=f"{_snake_upper(resource_type)}_NOT_FOUND",
        )


class InvalidTransitionError(AppError):
    """Raised when a status change is not reachable from the current state."""

    kind = ErrorKind.invalid_transition

    def __init__(self, message: str, *, code: str | None = None, details: dict = None):
        super().__init__(message, status_code=409, details=details, code=code)


class ExclusivityViolationError(AppError):
    """Raised when a student would hold a second commitment in the same scope."""

    kind = ErrorKind.exclusivity_violation

    def __init__(self, message: str, *, code: str | None = None, details: dict = None):
        super().__init__(message, status_code=409, details=details, code=code)


class CapacityExhaustedError(AppError):
    """Raised when a capacity ledger reservation fails."""

    kind = ErrorKind.capacity_exhausted

    def __init__(self, message: str, *, code: str | None = None, details: dict = None):
        super().__init__(message, status_code=409, details=details, code=code)


class UnauthorizedActionError(AppError):
    """Raised when the actor lacks the structural relationship the action needs."""

    kind = ErrorKind.unauthorized_action

    def __init__(self, message: str, *, code: str | None = None, details: dict = None):
        super().__init__(message, status_code=403, details=details, code=code)


class WorkflowValidationError(AppError):
    """Raised on malformed input such as bad dates or out-of-range scores."""

    kind = ErrorKind.validation_error

    def __init__(self, message: str, *, code: str | None = None, details: dict = None):
        super().__init__(message, status_code=422, details=details, code=code)


class ConflictError(AppError):
    """Raised when the store detects a concurrent mutation or is unavailable."""

    kind = ErrorKind.conflict

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: dict = None,
        retryable: bool = True,
    ):
        super().__init__(message, status_code=409, details=details, code=code, retryable=retryable)


def _snake_upper(value: str) -> str:
    chars: list[str] = []
    for index, char in enumerate(value):
        if char.isupper() and index and not value[index - 1].isupper():
            chars.append("_")
        chars.append("_" if char in " -" else char.upper())
    return "".join(chars)
