"""FastAPI dependency injection for the workflow engine."""

from typing import Annotated

from fastapi import Depends, Header, Request

from ..services.execution_service import ExecutionService
from ..services.scheduler_service import WorkflowScheduler
from ..services.webhook_service import WebhookService


# --- Caller identity ---


def get_user_id(x_user_id: Annotated[str, Header(description="Id of the calling user")]) -> str:
    """User id of the caller. Authentication happens upstream."""
    return x_user_id


# --- Service Dependencies ---


def get_execution_service(request: Request) -> ExecutionService:
    """Execution service built by the application lifespan."""
    return request.app.state.execution_service


def get_webhook_service(request: Request) -> WebhookService:
    """Webhook service built by the application lifespan."""
    return request.app.state.webhook_service


def get_scheduler(request: Request) -> WorkflowScheduler:
    """Workflow scheduler built by the application lifespan."""
    return request.app.state.scheduler


UserIdDep = Annotated[str, Depends(get_user_id)]
ExecutionServiceDep = Annotated[ExecutionService, Depends(get_execution_service)]
WebhookServiceDep = Annotated[WebhookService, Depends(get_webhook_service)]
SchedulerDep = Annotated[WorkflowScheduler, Depends(get_scheduler)]
