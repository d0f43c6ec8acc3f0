"""Translate engine errors into HTTP errors."""

from fastapi import HTTPException

from ..core.exceptions import (
    ForbiddenError,
    NotFoundError,
    UnauthorizedError,
    WorkflowEngineError,
)

STATUS_BY_ERROR: list[tuple[type[WorkflowEngineError], int]] = [
    (NotFoundError, 404),
    (ForbiddenError, 403),
    (UnauthorizedError, 401),
]


def to_http_exception(error: WorkflowEngineError) -> HTTPException:
    """HTTP status by error type; other engine errors are client errors."""
    status_code = next(
        (status for error_type, status in STATUS_BY_ERROR if isinstance(error, error_type)),
        400,
    )
    return HTTPException(status_code=status_code, detail=error.to_dict())
