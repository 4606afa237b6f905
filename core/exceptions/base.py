from typing import Any, Dict, Optional


class CustomException(Exception):
    """Base exception class for all custom exceptions."""

    code: int = 500
    error_code: str = "INTERNAL_SERVER_ERROR"
    message: str = "An unexpected error occurred"
    data: Optional[Dict[str, Any]] = None

    def __init__(
        self,
        message: str = None,
        code: int = None,
        error_code: str = None,
        data: Dict[str, Any] = None
    ):
        self.message = message or self.message
        self.code = code or self.code
        self.error_code = error_code or self.error_code
        self.data = data or {}
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code}, error_code={self.error_code}, message={self.message})"


class BadRequestException(CustomException):
    """Exception for bad request errors (400)."""

    code = 400
    error_code = "BAD_REQUEST"
    message = "Bad request"


class UnauthorizedException(CustomException):
    """Exception for unauthorized access (401)."""

    code = 401
    error_code = "UNAUTHORIZED"
    message = "Unauthorized"


class ForbiddenException(CustomException):
    """Exception for forbidden access (403)."""

    code = 403
    error_code = "FORBIDDEN"
    message = "Access forbidden"


class NotFoundException(CustomException):
    """Exception for resource not found (404)."""

    code = 404
    error_code = "NOT_FOUND"
    message = "Resource not found"


class ConflictException(CustomException):
    """Exception for a request whose current state does not allow the operation (409)."""

    code = 409
    error_code = "INVALID_TRANSITION"
    message = "Resource conflict"


class ValidationException(CustomException):
    """Exception for field-level validation errors (400).

    Field messages travel in ``data["errors"]`` keyed by field name.
    """

    code = 400
    error_code = "VALIDATION_ERROR"
    message = "Validation failed"

    def __init__(self, message: str = None, errors: Dict[str, Any] = None):
        super().__init__(message=message, data={"errors": errors or {}})


class StorageFailureException(CustomException):
    """Opaque persistence failure (500). Never carries internal detail."""

    code = 500
    error_code = "STORAGE_FAILURE"
    message = "The request could not be completed, please try again later"
