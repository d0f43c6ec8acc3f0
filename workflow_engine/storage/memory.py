"""In-memory workflow and execution stores for tests and embedded use."""

from __future__ import annotations

import asyncio
import copy
import uuid
from collections import Counter
from datetime import datetime
from typing import Any

from ..core.exceptions import ExecutionNotFoundError
from ..engine.types import ExecutionRecord, ExecutionStatus, Workflow, utc_now
from .base import ExecutionStore, WorkflowStore


class MemoryWorkflowStore(WorkflowStore):
    """In-memory workflow storage."""

    def __init__(self, workflows: list[Workflow] | None = None) -> None:
        self._workflows: dict[str, Workflow] = {w.id: w for w in workflows or []}
        self._lock = asyncio.Lock()

    async def get(self, workflow_id: str) -> Workflow | None:
        return self._workflows.get(workflow_id)

    async def list(self, active_only: bool = False) -> list[Workflow]:
        workflows = list(self._workflows.values())
        if active_only:
            workflows = [w for w in workflows if w.is_active]
        return workflows

    async def save(self, workflow: Workflow) -> Workflow:
        async with self._lock:
            if not workflow.id:
                workflow.id = str(uuid.uuid4())
            self._workflows[workflow.id] = workflow
        return workflow

    async def delete(self, workflow_id: str) -> bool:
        async with self._lock:
            return self._workflows.pop(workflow_id, None) is not None


class MemoryExecutionStore(ExecutionStore):
    """In-memory execution history. Callers get copies, never the stored record."""

    def __init__(self) -> None:
        self._executions: dict[str, ExecutionRecord] = {}
        self._lock = asyncio.Lock()

    async def create(
        self,
        workflow_id: str,
        user_id: str,
        mode: str,
        execution_id: str | None = None,
    ) -> ExecutionRecord:
        record = ExecutionRecord(
            id=execution_id or str(uuid.uuid4()),
            workflow_id=workflow_id,
            user_id=user_id,
            status=ExecutionStatus.RUNNING,
            mode=mode,
            started_at=utc_now(),
        )
        async with self._lock:
            self._executions[record.id] = record
        return copy.deepcopy(record)

    async def get(self, execution_id: str) -> ExecutionRecord | None:
        record = self._executions.get(execution_id)
        return copy.deepcopy(record) if record else None

    async def update(
        self,
        execution_id: str,
        *,
        started_at: datetime | None = None,
        data: dict[str, Any] | None = None,
    ) -> ExecutionRecord:
        async with self._lock:
            record = self._require(execution_id)
            if started_at is not None:
                record.started_at = started_at
            if data is not None:
                record.data = copy.deepcopy(data)
            return copy.deepcopy(record)

    async def finish(
        self,
        execution_id: str,
        status: ExecutionStatus,
        *,
        data: dict[str, Any] | None = None,
        error: dict[str, Any] | None = None,
    ) -> ExecutionRecord | None:
        async with self._lock:
            record = self._require(execution_id)
            if record.status.is_terminal:
                return None
            record.status = status
            record.finished_at = utc_now()
            if data is not None:
                record.data = copy.deepcopy(data)
            if error is not None:
                record.error = error
            return copy.deepcopy(record)

    async def list(
        self,
        user_id: str | None = None,
        workflow_id: str | None = None,
        limit: int | None = None,
    ) -> list[ExecutionRecord]:
        records = [
            r
            for r in self._executions.values()
            if (user_id is None or r.user_id == user_id)
            and (workflow_id is None or r.workflow_id == workflow_id)
        ]
        records.sort(key=lambda r: r.started_at, reverse=True)
        if limit is not None:
            records = records[:limit]
        return [copy.deepcopy(r) for r in records]

    async def count_by_status(
        self,
        user_id: str | None = None,
        workflow_id: str | None = None,
    ) -> dict[str, int]:
        counts = Counter(
            r.status.value
            for r in self._executions.values()
            if (user_id is None or r.user_id == user_id)
            and (workflow_id is None or r.workflow_id == workflow_id)
        )
        return dict(counts)

    def _require(self, execution_id: str) -> ExecutionRecord:
        record = self._executions.get(execution_id)
        if record is None:
            raise ExecutionNotFoundError(execution_id)
        return record
