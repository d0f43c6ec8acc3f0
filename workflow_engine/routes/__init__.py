"""FastAPI routes for the workflow engine."""

from .executions import router as executions_router
from .webhooks import router as webhook_router

__all__ = [
    "executions_router",
    "webhook_router",
]
