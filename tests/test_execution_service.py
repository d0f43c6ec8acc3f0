"""Execution lifecycle through the queue: accept, run, skip, stop and read back."""

from __future__ import annotations

import asyncio

import pytest

from workflow_engine.core.exceptions import (
    ExecutionNotFoundError,
    ForbiddenError,
    WorkflowNotFoundError,
)
from workflow_engine.engine.types import ExecutionStatus
from workflow_engine.services.execution_service import (
    EXECUTE_WORKFLOW_TOPIC,
    ExecutionService,
    execution_input,
)
from workflow_engine.services.queue import ExecutionQueue

from .helpers import build_workflow, edge, node


@pytest.fixture
def queue() -> ExecutionQueue:
    return ExecutionQueue(workers=1)


@pytest.fixture
def service(workflow_store, execution_store, queue, runner_factory) -> ExecutionService:
    service = ExecutionService(workflow_store, execution_store, queue, runner_factory())
    service.register_consumer()
    return service


@pytest.fixture
def workflow():
    return build_workflow(
        [node("start", "trigger"), node("tag", "set", values={"tagged": True})],
        [edge("start", "tag")],
        owner_id="user-1",
    )


def test_execution_input_selection():
    assert execution_input({"mode": "manual", "inputData": {"a": 1}}) == {"a": 1}
    assert execution_input({"mode": "manual", "a": 1}) == {"a": 1}
    assert execution_input(None) == {}


@pytest.mark.asyncio
async def test_execute_workflow_queues_then_runs(service, queue, workflow_store, execution_store, workflow):
    await workflow_store.save(workflow)

    queued = await service.execute_workflow("wf-1", "user-1", {"inputData": {"x": 1}})

    assert queued.status == "queued"
    record = await execution_store.get(queued.execution_id)
    assert record.status is ExecutionStatus.RUNNING
    assert record.mode == "manual"
    assert queue.pending_count() == 1

    await queue.process_next()

    record = await execution_store.get(queued.execution_id)
    assert record.status is ExecutionStatus.SUCCESS
    assert record.data["resultData"]["nodeOutputs"]["tag"]["data"] == {"x": 1, "tagged": True}


@pytest.mark.asyncio
async def test_workers_drain_the_queue(service, queue, workflow_store, execution_store, workflow):
    await workflow_store.save(workflow)
    queue.start()
    try:
        queued = [await service.execute_workflow("wf-1", "user-1", {"n": i}) for i in range(3)]
        await asyncio.wait_for(queue.join(), timeout=5)
    finally:
        await queue.stop()

    statuses = {(await execution_store.get(q.execution_id)).status for q in queued}
    assert statuses == {ExecutionStatus.SUCCESS}


@pytest.mark.asyncio
async def test_execute_rejects_unknown_or_foreign_workflow(service, workflow_store, workflow):
    await workflow_store.save(workflow)

    with pytest.raises(WorkflowNotFoundError):
        await service.execute_workflow("missing", "user-1")
    with pytest.raises(ForbiddenError):
        await service.execute_workflow("wf-1", "someone-else")


@pytest.mark.asyncio
async def test_redelivered_terminal_job_is_a_no_op(service, queue, workflow_store, execution_store, workflow):
    await workflow_store.save(workflow)
    queued = await service.execute_workflow("wf-1", "user-1")
    job = queue._pending[queued.execution_id]
    await queue.process_next()
    finished = await execution_store.get(queued.execution_id)

    await service.process_job(job)

    again = await execution_store.get(queued.execution_id)
    assert again.status is ExecutionStatus.SUCCESS
    assert again.finished_at == finished.finished_at


@pytest.mark.asyncio
async def test_job_for_deleted_workflow_errors_the_execution(
    service, queue, workflow_store, execution_store, workflow
):
    await workflow_store.save(workflow)
    queued = await service.execute_workflow("wf-1", "user-1")
    await workflow_store.delete("wf-1")

    await queue.process_next()

    record = await execution_store.get(queued.execution_id)
    assert record.status is ExecutionStatus.ERROR
    assert "wf-1" in record.error["message"]


@pytest.mark.asyncio
async def test_stop_queued_execution(service, queue, workflow_store, execution_store, workflow):
    await workflow_store.save(workflow)
    queued = await service.execute_workflow("wf-1", "user-1")

    stopped = await service.stop_execution(queued.execution_id, "user-1")
    assert stopped.status == "canceled"
    assert stopped.finished_at is not None

    await queue.process_next()

    record = await execution_store.get(queued.execution_id)
    assert record.status is ExecutionStatus.CANCELED
    assert record.data["resultData"]["runData"] == {}


@pytest.mark.asyncio
async def test_stop_finished_execution_returns_it_unchanged(service, queue, workflow_store, workflow):
    await workflow_store.save(workflow)
    queued = await service.execute_workflow("wf-1", "user-1")
    await queue.process_next()

    stopped = await service.stop_execution(queued.execution_id, "user-1")

    assert stopped.status == "success"


@pytest.mark.asyncio
async def test_stop_checks_ownership(service, workflow_store, workflow):
    await workflow_store.save(workflow)
    queued = await service.execute_workflow("wf-1", "user-1")

    with pytest.raises(ForbiddenError):
        await service.stop_execution(queued.execution_id, "intruder")
    with pytest.raises(ExecutionNotFoundError):
        await service.stop_execution("nope", "user-1")


@pytest.mark.asyncio
async def test_read_model(service, queue, workflow_store, workflow):
    await workflow_store.save(workflow)
    first = await service.execute_workflow("wf-1", "user-1")
    await queue.process_next()
    second = await service.execute_workflow("wf-1", "user-1")
    await service.stop_execution(second.execution_id, "user-1")

    details = await service.get_execution_details(first.execution_id, "user-1")
    listed = await service.list_executions("user-1", workflow_id="wf-1")
    stats = await service.get_execution_stats("user-1")

    assert details.workflow_id == "wf-1"
    assert details.duration is not None and details.duration >= 0
    assert "runData" in details.data["resultData"]
    dumped = details.model_dump(by_alias=True)
    assert {"workflowId", "startedAt", "finishedAt", "duration", "data", "error"} <= set(dumped)

    assert {item.id for item in listed} == {first.execution_id, second.execution_id}
    assert (stats.total, stats.success, stats.canceled, stats.error) == (2, 1, 1, 0)
    assert await service.list_executions("other-user") == []


@pytest.mark.asyncio
async def test_queue_drops_jobs_without_consumer():
    queue = ExecutionQueue(workers=1)
    job = await queue.enqueue("unknown-topic", {"value": 1})

    processed = await queue.process_next()

    assert processed is job


@pytest.mark.asyncio
async def test_queue_consumer_failure_does_not_propagate(queue):
    async def failing(job):
        raise RuntimeError("consumer broke")

    queue.register(EXECUTE_WORKFLOW_TOPIC, failing)
    await queue.enqueue(EXECUTE_WORKFLOW_TOPIC, {"executionId": "e-1"})

    await queue.process_next()

    assert queue.pending_count() == 0
    assert not queue.cancellation_requested("e-1")


@pytest.mark.asyncio
async def test_stop_without_live_job_leaves_no_cancel_mark(service, queue, workflow_store, execution_store, workflow):
    await workflow_store.save(workflow)
    await execution_store.create("wf-1", "user-1", "manual", execution_id="stale")

    stopped = await service.stop_execution("stale", "user-1")

    assert stopped.status == "canceled"
    assert not queue.cancellation_requested("stale")


@pytest.mark.asyncio
async def test_cancel_is_seen_by_running_job_then_cleared(queue):
    seen = []

    async def consumer(job):
        queue.cancel("e-1")
        seen.append(queue.cancellation_requested("e-1"))

    queue.register(EXECUTE_WORKFLOW_TOPIC, consumer)
    await queue.enqueue(EXECUTE_WORKFLOW_TOPIC, {"executionId": "e-1"})

    await queue.process_next()

    assert seen == [True]
    assert not queue.cancellation_requested("e-1")
