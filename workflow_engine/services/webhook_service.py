"""Webhook service for handling webhook triggers."""

from __future__ import annotations

import hmac
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from ..core.exceptions import (
    NotFoundError,
    UnauthorizedError,
    ValidationError,
    WorkflowNotFoundError,
)

if TYPE_CHECKING:
    from ..engine.types import NodeDefinition, Workflow
    from ..storage.base import WorkflowStore
    from .execution_service import ExecutionService

logger = logging.getLogger(__name__)

WEBHOOK_NODE_TYPE = "webhook"


class WebhookService:
    """Service for webhook operations."""

    def __init__(
        self,
        workflow_store: WorkflowStore,
        execution_service: ExecutionService,
    ) -> None:
        self._workflow_store = workflow_store
        self._execution_service = execution_service

    async def handle_webhook(
        self,
        workflow_id: str,
        path: str,
        method: str,
        body: Any,
        headers: dict[str, str],
        query: dict[str, str],
    ) -> dict[str, Any]:
        """
        Queue an execution for the webhook node listening on `/{path}`.

        The execution runs as the workflow owner in `webhook` mode; the
        response does not wait for it.
        """
        workflow = await self._workflow_store.get(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(workflow_id)
        if not workflow.is_active:
            raise ValidationError(f"Workflow {workflow_id} is not active")

        webhook_path = "/" + path.lstrip("/")
        node = self._find_webhook_node(workflow, webhook_path)
        if node is None:
            raise NotFoundError(
                f"Webhook path {webhook_path} not found in workflow",
                details={"workflow_id": workflow_id, "path": webhook_path},
            )

        self._authenticate(node, headers, query)

        allowed_method = node.config.get("method")
        if allowed_method and str(allowed_method).upper() != method.upper():
            raise ValidationError(
                f"Webhook {webhook_path} only accepts {str(allowed_method).upper()}",
                field="method",
            )

        payload = {
            "path": webhook_path,
            "method": method.upper(),
            "body": body,
            "headers": headers,
            "query": query,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        queued = await self._execution_service.start_execution(
            workflow, workflow.owner_id, payload, mode="webhook"
        )
        logger.info("Webhook %s on workflow %s queued execution %s", webhook_path, workflow_id, queued.execution_id)

        return {
            "success": True,
            "executionId": queued.execution_id,
            "message": "Webhook received and workflow execution started",
        }

    def _find_webhook_node(self, workflow: Workflow, webhook_path: str) -> NodeDefinition | None:
        return next(
            (
                n
                for n in workflow.nodes
                if n.type == WEBHOOK_NODE_TYPE and n.config.get("path") == webhook_path
            ),
            None,
        )

    def _authenticate(
        self,
        node: NodeDefinition,
        headers: dict[str, str],
        query: dict[str, str],
    ) -> None:
        authentication = node.config.get("authentication", "none")

        if authentication == "headerAuth":
            supplied = _header(headers, "authorization")
            expected = node.config.get("authHeaderValue")
        elif authentication == "queryAuth":
            supplied = query.get("auth")
            expected = node.config.get("authQueryValue")
        else:
            return

        if not supplied or not expected or not hmac.compare_digest(
            str(supplied).encode(), str(expected).encode()
        ):
            raise UnauthorizedError("Unauthorized")


def _header(headers: dict[str, str], name: str) -> str | None:
    """Case-insensitive header lookup."""
    return next((v for k, v in headers.items() if k.lower() == name), None)
