"""Store contracts consumed by the engine, the queue worker and the scheduler."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..engine.types import ExecutionRecord, ExecutionStatus, Workflow


class WorkflowStore(ABC):
    """Read side of the workflow collection, plus save for seeding and tests."""

    @abstractmethod
    async def get(self, workflow_id: str) -> Workflow | None:
        ...

    @abstractmethod
    async def list(self, active_only: bool = False) -> list[Workflow]:
        ...

    @abstractmethod
    async def save(self, workflow: Workflow) -> Workflow:
        """Insert or replace a workflow by id."""
        ...

    @abstractmethod
    async def delete(self, workflow_id: str) -> bool:
        ...


class ExecutionStore(ABC):
    """
    Persists execution records.

    `finish` is the only way to leave the running state and applies at most
    once per record: it returns None when the record was already terminal.
    """

    @abstractmethod
    async def create(
        self,
        workflow_id: str,
        user_id: str,
        mode: str,
        execution_id: str | None = None,
    ) -> ExecutionRecord:
        """Create a record in `running` state."""
        ...

    @abstractmethod
    async def get(self, execution_id: str) -> ExecutionRecord | None:
        ...

    @abstractmethod
    async def update(
        self,
        execution_id: str,
        *,
        started_at: datetime | None = None,
        data: dict[str, Any] | None = None,
    ) -> ExecutionRecord:
        """Patch non-status fields. Raises ExecutionNotFoundError."""
        ...

    @abstractmethod
    async def finish(
        self,
        execution_id: str,
        status: ExecutionStatus,
        *,
        data: dict[str, Any] | None = None,
        error: dict[str, Any] | None = None,
    ) -> ExecutionRecord | None:
        """Apply a terminal transition if the record is still running."""
        ...

    @abstractmethod
    async def list(
        self,
        user_id: str | None = None,
        workflow_id: str | None = None,
        limit: int | None = None,
    ) -> list[ExecutionRecord]:
        """Records newest first."""
        ...

    @abstractmethod
    async def count_by_status(
        self,
        user_id: str | None = None,
        workflow_id: str | None = None,
    ) -> dict[str, int]:
        ...
