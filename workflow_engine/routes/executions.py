"""Execution routes."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Query

from ..core.dependencies import ExecutionServiceDep, UserIdDep
from ..core.exceptions import WorkflowEngineError
from ..schemas.execution import (
    ExecutionDetailResponse,
    ExecutionListItem,
    ExecutionQueuedResponse,
    ExecutionStatsResponse,
)
from .errors import to_http_exception

router = APIRouter(prefix="/executions", tags=["Executions"])


@router.post("/{workflow_id}/execute", response_model=ExecutionQueuedResponse, status_code=202)
async def execute_workflow(
    workflow_id: str,
    service: ExecutionServiceDep,
    user_id: UserIdDep,
    execution_data: dict[str, Any] = Body(default_factory=dict),
) -> ExecutionQueuedResponse:
    """Queue a workflow execution. Poll the execution for its outcome."""
    try:
        return await service.execute_workflow(workflow_id, user_id, execution_data)
    except WorkflowEngineError as e:
        raise to_http_exception(e) from e


@router.get("", response_model=list[ExecutionListItem])
async def list_executions(
    service: ExecutionServiceDep,
    user_id: UserIdDep,
    workflow_id: str | None = Query(None, alias="workflowId", description="Filter by workflow ID"),
    limit: int = Query(100, ge=1, le=1000),
) -> list[ExecutionListItem]:
    """List the caller's executions, newest first."""
    return await service.list_executions(user_id, workflow_id, limit)


@router.get("/stats", response_model=ExecutionStatsResponse)
async def get_execution_stats(
    service: ExecutionServiceDep,
    user_id: UserIdDep,
    workflow_id: str | None = Query(None, alias="workflowId"),
) -> ExecutionStatsResponse:
    """Execution counts per status."""
    return await service.get_execution_stats(user_id, workflow_id)


@router.get("/{execution_id}", response_model=ExecutionListItem)
async def get_execution(
    execution_id: str,
    service: ExecutionServiceDep,
    user_id: UserIdDep,
) -> ExecutionListItem:
    """Execution status without the trace."""
    try:
        return await service.get_execution_status(execution_id, user_id)
    except WorkflowEngineError as e:
        raise to_http_exception(e) from e


@router.get("/{execution_id}/details", response_model=ExecutionDetailResponse)
async def get_execution_details(
    execution_id: str,
    service: ExecutionServiceDep,
    user_id: UserIdDep,
) -> ExecutionDetailResponse:
    """Execution record including per-node run data."""
    try:
        return await service.get_execution_details(execution_id, user_id)
    except WorkflowEngineError as e:
        raise to_http_exception(e) from e


@router.post("/{execution_id}/stop", response_model=ExecutionDetailResponse)
async def stop_execution(
    execution_id: str,
    service: ExecutionServiceDep,
    user_id: UserIdDep,
) -> ExecutionDetailResponse:
    """Cancel a queued or running execution."""
    try:
        return await service.stop_execution(execution_id, user_id)
    except WorkflowEngineError as e:
        raise to_http_exception(e) from e
