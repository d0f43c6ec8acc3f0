"""SQLModel repositories against a throwaway SQLite file."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool

from workflow_engine.core.exceptions import ExecutionNotFoundError
from workflow_engine.db.session import create_session_factory, init_db
from workflow_engine.engine.types import ExecutionStatus
from workflow_engine.repositories import ExecutionRepository, WorkflowRepository

from .helpers import build_workflow, edge, node


@pytest.fixture
def session_factory(tmp_path):
    # NullPool: every session opens its connection on the running loop
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/engine.db", poolclass=NullPool)
    asyncio.run(init_db(engine))
    return create_session_factory(engine)


@pytest.fixture
def workflows(session_factory) -> WorkflowRepository:
    return WorkflowRepository(session_factory)


@pytest.fixture
def executions(session_factory) -> ExecutionRepository:
    return ExecutionRepository(session_factory)


@pytest.mark.asyncio
async def test_workflow_save_get_and_replace(workflows):
    workflow = build_workflow(
        [node("start", "trigger"), node("tag", "set", values={"a": 1})],
        [edge("start", "tag")],
    )

    await workflows.save(workflow)
    loaded = await workflows.get("wf-1")

    assert loaded.name == "Workflow wf-1"
    assert loaded.owner_id == "user-1"
    assert [n.id for n in loaded.nodes] == ["start", "tag"]
    assert loaded.get_node("tag").config == {"values": {"a": 1}}
    assert [(c.source, c.target) for c in loaded.connections] == [("start", "tag")]

    loaded.name = "Renamed"
    loaded.is_active = False
    await workflows.save(loaded)

    again = await workflows.get("wf-1")
    assert again.name == "Renamed"
    assert again.is_active is False
    assert len(await workflows.list()) == 1


@pytest.mark.asyncio
async def test_workflow_list_and_delete(workflows):
    await workflows.save(build_workflow([node("a", "trigger")], workflow_id="on"))
    await workflows.save(build_workflow([node("a", "trigger")], workflow_id="off", is_active=False))

    assert {w.id for w in await workflows.list()} == {"on", "off"}
    assert [w.id for w in await workflows.list(active_only=True)] == ["on"]

    assert await workflows.delete("off") is True
    assert await workflows.delete("off") is False
    assert await workflows.get("off") is None


@pytest.mark.asyncio
async def test_execution_create_update_and_finish_once(executions):
    record = await executions.create("wf-1", "user-1", "manual", execution_id="exec-1")

    assert record.id == "exec-1"
    assert record.status is ExecutionStatus.RUNNING
    assert record.data == {"resultData": {"runData": {}, "nodeOutputs": {}}}

    data = {"resultData": {"runData": {"a": []}, "nodeOutputs": {}}}
    updated = await executions.update("exec-1", data=data)
    assert updated.data == data

    finished = await executions.finish("exec-1", ExecutionStatus.CANCELED)
    assert finished.status is ExecutionStatus.CANCELED
    assert finished.finished_at is not None
    assert finished.started_at.tzinfo is not None
    assert finished.finished_at.tzinfo is not None
    assert finished.duration_ms >= 0

    assert await executions.finish("exec-1", ExecutionStatus.SUCCESS, data={}) is None
    stored = await executions.get("exec-1")
    assert stored.status is ExecutionStatus.CANCELED
    assert stored.data == data


@pytest.mark.asyncio
async def test_execution_error_is_stored(executions):
    await executions.create("wf-1", "user-1", "webhook", execution_id="exec-1")

    error = {"message": "boom", "stack": "Traceback ..."}
    finished = await executions.finish("exec-1", ExecutionStatus.ERROR, error=error)

    assert finished.error == error
    assert finished.mode == "webhook"


@pytest.mark.asyncio
async def test_unknown_execution(executions):
    assert await executions.get("missing") is None
    with pytest.raises(ExecutionNotFoundError):
        await executions.update("missing", data={})
    with pytest.raises(ExecutionNotFoundError):
        await executions.finish("missing", ExecutionStatus.SUCCESS)


@pytest.mark.asyncio
async def test_execution_listing_and_counts(executions):
    base = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
    for index, (workflow_id, user_id) in enumerate(
        [("wf-1", "user-1"), ("wf-2", "user-1"), ("wf-1", "user-2")]
    ):
        execution_id = f"exec-{index}"
        await executions.create(workflow_id, user_id, "manual", execution_id=execution_id)
        await executions.update(execution_id, started_at=base + timedelta(minutes=index))
    await executions.finish("exec-0", ExecutionStatus.SUCCESS)

    assert [r.id for r in await executions.list()] == ["exec-2", "exec-1", "exec-0"]
    assert [r.id for r in await executions.list(user_id="user-1")] == ["exec-1", "exec-0"]
    assert [r.id for r in await executions.list(workflow_id="wf-1", limit=1)] == ["exec-2"]

    assert await executions.count_by_status(user_id="user-1") == {"running": 1, "success": 1}
    assert await executions.count_by_status(workflow_id="wf-2") == {"running": 1}
