"""Execution service - accepts execution requests, runs queued jobs, serves the read model."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from ..core.exceptions import (
    ExecutionNotFoundError,
    ForbiddenError,
    WorkflowNotFoundError,
)
from ..engine.types import ExecutionRecord, ExecutionStatus, QueueJob, Workflow
from ..schemas.execution import (
    ExecutionDetailResponse,
    ExecutionListItem,
    ExecutionQueuedResponse,
    ExecutionStatsResponse,
)

if TYPE_CHECKING:
    from ..engine.workflow_runner import WorkflowRunner
    from ..storage.base import ExecutionStore, WorkflowStore
    from .queue import ExecutionQueue

logger = logging.getLogger(__name__)

EXECUTE_WORKFLOW_TOPIC = "execute-workflow"
DEFAULT_LIST_LIMIT = 100


def execution_input(execution_data: dict[str, Any] | None) -> Any:
    """`inputData` when present, otherwise the execution data minus `mode`."""
    execution_data = execution_data or {}
    if "inputData" in execution_data:
        return execution_data["inputData"]
    return {k: v for k, v in execution_data.items() if k != "mode"}


class ExecutionService:
    """Service for execution operations."""

    def __init__(
        self,
        workflow_store: WorkflowStore,
        execution_store: ExecutionStore,
        queue: ExecutionQueue,
        runner: WorkflowRunner,
    ) -> None:
        self._workflow_store = workflow_store
        self._execution_store = execution_store
        self._queue = queue
        self._runner = runner

    def register_consumer(self) -> None:
        """Make this service the consumer of queued executions."""
        self._queue.register(EXECUTE_WORKFLOW_TOPIC, self.process_job)

    async def execute_workflow(
        self,
        workflow_id: str,
        user_id: str,
        execution_data: dict[str, Any] | None = None,
    ) -> ExecutionQueuedResponse:
        """Create a running execution for a user's workflow and queue it."""
        workflow = await self._workflow_store.get(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(workflow_id)
        if workflow.owner_id and workflow.owner_id != user_id:
            raise ForbiddenError(
                f"Workflow {workflow_id} belongs to another user",
                details={"workflow_id": workflow_id},
            )

        execution_data = execution_data or {}
        return await self.start_execution(
            workflow,
            user_id,
            execution_input(execution_data),
            mode=execution_data.get("mode", "manual"),
        )

    async def start_execution(
        self,
        workflow: Workflow,
        user_id: str,
        input_data: Any,
        mode: str = "manual",
    ) -> ExecutionQueuedResponse:
        """
        Create the execution record and enqueue it.

        Used by the API, webhook ingress and scheduler alike; returns as soon
        as the job is queued.
        """
        record = await self._execution_store.create(workflow.id, user_id, mode)
        await self._queue.enqueue(
            EXECUTE_WORKFLOW_TOPIC,
            {
                "executionId": record.id,
                "workflowId": workflow.id,
                "userId": user_id,
                "inputData": input_data,
                "mode": mode,
            },
        )
        logger.info("Queued execution %s of workflow %s (%s)", record.id, workflow.id, mode)
        return ExecutionQueuedResponse(execution_id=record.id, status="queued")

    async def process_job(self, job: QueueJob) -> None:
        """Queue consumer: run one execution. Terminal records are not re-run."""
        payload = job.payload
        execution_id = payload["executionId"]

        record = await self._execution_store.get(execution_id)
        if record is None:
            logger.warning("Execution %s no longer exists, dropping job %s", execution_id, job.id)
            return
        if record.status.is_terminal:
            logger.info(
                "Execution %s already %s, not running it again", execution_id, record.status.value
            )
            return

        workflow = await self._workflow_store.get(payload["workflowId"])
        if workflow is None:
            error = WorkflowNotFoundError(payload["workflowId"])
            logger.error("Execution %s failed: %s", execution_id, error.message)
            await self._execution_store.finish(
                execution_id,
                ExecutionStatus.ERROR,
                data={"error": error.message},
                error={"message": error.message},
            )
            return

        try:
            await self._runner.execute(
                workflow,
                execution_id,
                payload.get("inputData"),
                user_id=payload.get("userId"),
                mode=payload.get("mode", "manual"),
                should_cancel=lambda: self._queue.cancellation_requested(execution_id),
            )
        except Exception as e:
            # The runner has already stored the error on the record
            logger.error("Execution %s of workflow %s failed: %s", execution_id, workflow.id, e)

    async def stop_execution(self, execution_id: str, user_id: str) -> ExecutionDetailResponse:
        """
        Cancel an execution.

        A queued job is dropped; a running traversal stops before its next
        node. Already finished executions are returned unchanged.
        """
        record = await self._get_owned(execution_id, user_id)
        if record.status.is_terminal:
            return self._to_detail(record)

        self._queue.cancel(execution_id)
        finished = await self._execution_store.finish(execution_id, ExecutionStatus.CANCELED)
        if finished is None:
            finished = await self._execution_store.get(execution_id)
            if finished is None:
                raise ExecutionNotFoundError(execution_id)

        logger.info("Execution %s stopped by %s", execution_id, user_id)
        return self._to_detail(finished)

    async def get_execution_details(self, execution_id: str, user_id: str) -> ExecutionDetailResponse:
        return self._to_detail(await self._get_owned(execution_id, user_id))

    async def get_execution_status(self, execution_id: str, user_id: str) -> ExecutionListItem:
        return self._to_list_item(await self._get_owned(execution_id, user_id))

    async def list_executions(
        self,
        user_id: str,
        workflow_id: str | None = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> list[ExecutionListItem]:
        """A user's executions, newest first."""
        records = await self._execution_store.list(
            user_id=user_id, workflow_id=workflow_id, limit=limit
        )
        return [self._to_list_item(r) for r in records]

    async def get_execution_stats(
        self, user_id: str, workflow_id: str | None = None
    ) -> ExecutionStatsResponse:
        counts = await self._execution_store.count_by_status(
            user_id=user_id, workflow_id=workflow_id
        )
        return ExecutionStatsResponse(
            total=sum(counts.values()),
            **{status.value: counts.get(status.value, 0) for status in ExecutionStatus},
        )

    async def _get_owned(self, execution_id: str, user_id: str) -> ExecutionRecord:
        record = await self._execution_store.get(execution_id)
        if record is None:
            raise ExecutionNotFoundError(execution_id)
        if record.user_id != user_id:
            raise ForbiddenError(
                f"Execution {execution_id} belongs to another user",
                details={"execution_id": execution_id},
            )
        return record

    def _to_list_item(self, record: ExecutionRecord) -> ExecutionListItem:
        return ExecutionListItem(
            id=record.id,
            workflow_id=record.workflow_id,
            status=record.status.value,
            mode=record.mode,
            started_at=record.started_at,
            finished_at=record.finished_at,
            duration=record.duration_ms,
        )

    def _to_detail(self, record: ExecutionRecord) -> ExecutionDetailResponse:
        return ExecutionDetailResponse(
            id=record.id,
            workflow_id=record.workflow_id,
            status=record.status.value,
            mode=record.mode,
            started_at=record.started_at,
            finished_at=record.finished_at,
            duration=record.duration_ms,
            data=record.data,
            error=record.error,
        )
