"""Database module."""

from .models import ExecutionModel, WorkflowModel
from .session import async_session_factory, create_engine, create_session_factory, get_session, init_db

__all__ = [
    "ExecutionModel",
    "WorkflowModel",
    "async_session_factory",
    "create_engine",
    "create_session_factory",
    "get_session",
    "init_db",
]
