"""Turn WorkflowResults into response data or project exceptions."""

from typing import Any

from app.services.workflow import ErrorKind, WorkflowResult
from core.exceptions.base import (
    ConflictException,
    CustomException,
    ForbiddenException,
    NotFoundException,
    StorageFailureException,
    ValidationException,
)


def to_exception(result: WorkflowResult) -> CustomException:
    error = result.error
    if error.kind == ErrorKind.NOT_FOUND:
        return NotFoundException(message=error.message)
    if error.kind == ErrorKind.INVALID_TRANSITION:
        return ConflictException(message=error.message, data={"errors": error.fields})
    if error.kind == ErrorKind.VALIDATION:
        return ValidationException(message=error.message, errors=error.fields)
    if error.kind == ErrorKind.AUTHORIZATION_DENIED:
        return ForbiddenException(message=error.message)
    # Storage details stay in the logs
    return StorageFailureException()


def unwrap(result: WorkflowResult) -> Any:
    """Return the result's data or raise the matching HTTP exception."""
    if result.is_err:
        raise to_exception(result)
    return result.data
