"""Services: file access, execution queue, execution lifecycle, scheduling and webhooks."""

from .execution_service import EXECUTE_WORKFLOW_TOPIC, ExecutionService
from .file_service import FileService, LocalFileService, StoredFile
from .queue import ExecutionQueue
from .scheduler_service import WorkflowScheduler, interval_to_cron
from .webhook_service import WebhookService

__all__ = [
    "EXECUTE_WORKFLOW_TOPIC",
    "ExecutionQueue",
    "ExecutionService",
    "FileService",
    "LocalFileService",
    "StoredFile",
    "WebhookService",
    "WorkflowScheduler",
    "interval_to_cron",
]
