"""
Error taxonomy and response envelope

Services raise CarePathError subclasses; the HTTP layer renders every
failure as {"success": false, "error": {"message", "details"}}.
"""
from typing import Any, Dict, List, Optional

FieldErrors = Dict[str, List[str]]


class CarePathError(Exception):
    """Base class for errors that cross the service boundary"""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, details: Optional[FieldErrors] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_envelope(self) -> Dict[str, Any]:
        error: Dict[str, Any] = {"message": self.message}
        if self.details:
            error["details"] = self.details
        return {"success": False, "error": error}


class ValidationError(CarePathError):
    """Input fails a business rule; details carry per-field messages"""

    status_code = 400
    code = "VALIDATION_ERROR"

    def __init__(self, message: Optional[str] = None, details: Optional[FieldErrors] = None):
        if message is None:
            message = format_field_errors(details or {})
        super().__init__(message, details)

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(message, {field: [message]})


class UnauthorizedError(CarePathError):
    status_code = 401
    code = "UNAUTHORIZED"

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class ForbiddenError(CarePathError):
    status_code = 403
    code = "FORBIDDEN"

    def __init__(self, message: str = "Forbidden"):
        super().__init__(message)


class NotFoundError(CarePathError):
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, resource: str):
        super().__init__(f"{resource} not found")
        self.resource = resource


class PreconditionFailed(CarePathError):
    """Operation would break an invariant; nothing was changed"""

    status_code = 409
    code = "PRECONDITION_FAILED"


class TransactionError(CarePathError):
    """The store could not apply a multi-step sequence atomically"""

    status_code = 500
    code = "TRANSACTION_ERROR"


def format_field_errors(errors: FieldErrors) -> str:
    """Collapse field errors into one readable sentence."""
    if not errors:
        return "Validation failed"
    messages = []
    for field, field_messages in errors.items():
        if field_messages and field_messages[0] == "Required":
            messages.append(f"{field.capitalize()} is required")
        else:
            messages.append(" and ".join(field_messages))
    return ", ".join(messages)


def success(data: Any = None) -> Dict[str, Any]:
    return {"success": True, "data": data}
