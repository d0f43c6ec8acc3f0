"""Core module for workflow engine - config and exceptions."""

from .config import Settings, settings
from .exceptions import (
    ExecutionNotFoundError,
    ForbiddenError,
    NodeExecutionError,
    NotFoundError,
    ScheduleConfigError,
    UnauthorizedError,
    ValidationError,
    WorkflowEngineError,
    WorkflowNotFoundError,
)

__all__ = [
    # Config
    "settings",
    "Settings",
    # Exceptions
    "WorkflowEngineError",
    "NotFoundError",
    "WorkflowNotFoundError",
    "ExecutionNotFoundError",
    "ForbiddenError",
    "UnauthorizedError",
    "ValidationError",
    "NodeExecutionError",
    "ScheduleConfigError",
]
