"""Main entry point for the workflow engine server."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .core.config import settings
from .db import async_session_factory, init_db
from .engine.node_registry import register_all_nodes
from .engine.workflow_runner import WorkflowRunner
from .repositories import ExecutionRepository, WorkflowRepository
from .routes import executions_router, webhook_router
from .schemas.common import HealthResponse, RootResponse
from .services import (
    ExecutionQueue,
    ExecutionService,
    LocalFileService,
    WebhookService,
    WorkflowScheduler,
)

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler: wires stores, queue, runner and scheduler."""
    configure_logging()
    await init_db()
    registry = register_all_nodes()

    workflow_store = WorkflowRepository(async_session_factory)
    execution_store = ExecutionRepository(async_session_factory)
    runner = WorkflowRunner(
        execution_store,
        registry=registry,
        file_service=LocalFileService(settings.upload_dir),
    )
    queue = ExecutionQueue(settings.queue_workers)
    execution_service = ExecutionService(workflow_store, execution_store, queue, runner)
    execution_service.register_consumer()
    scheduler = WorkflowScheduler(workflow_store, execution_service)

    app.state.execution_service = execution_service
    app.state.webhook_service = WebhookService(workflow_store, execution_service)
    app.state.scheduler = scheduler
    app.state.queue = queue

    queue.start()
    scheduler.start()
    await scheduler.load_scheduled_workflows()
    logger.info("%s v%s started on http://%s:%s", settings.app_name, settings.app_version, settings.host, settings.port)

    yield

    scheduler.shutdown()
    await queue.stop()
    logger.info("%s stopped", settings.app_name)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        description="Workflow execution engine - graph traversal, node handlers, queueing and scheduling",
        version=settings.app_version,
        lifespan=lifespan,
        debug=settings.debug,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(executions_router)
    app.include_router(webhook_router)

    @app.get("/", response_model=RootResponse)
    async def root() -> RootResponse:
        """Root endpoint."""
        return RootResponse(
            name=settings.app_name,
            version=settings.app_version,
            status="running",
        )

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        """Health check endpoint."""
        queue = getattr(app.state, "queue", None)
        scheduler = getattr(app.state, "scheduler", None)
        return HealthResponse(
            status="healthy",
            version=settings.app_version,
            queue_running=bool(queue and queue.running),
            scheduled_workflows=len(scheduler.get_scheduled_workflows()) if scheduler else 0,
        )

    return app


# Create app instance
app = create_app()


def main() -> None:
    """Run the server."""
    uvicorn.run(
        "workflow_engine.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        log_level=settings.log_level,
    )


if __name__ == "__main__":
    main()
