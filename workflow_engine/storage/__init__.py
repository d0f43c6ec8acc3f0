"""Storage contracts and in-memory implementations."""

from .base import ExecutionStore, WorkflowStore
from .memory import MemoryExecutionStore, MemoryWorkflowStore

__all__ = [
    "ExecutionStore",
    "WorkflowStore",
    "MemoryExecutionStore",
    "MemoryWorkflowStore",
]
