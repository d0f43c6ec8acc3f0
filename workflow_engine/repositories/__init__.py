"""Repositories for data persistence."""

from .execution_repository import ExecutionRepository
from .workflow_repository import WorkflowRepository

__all__ = ["ExecutionRepository", "WorkflowRepository"]
