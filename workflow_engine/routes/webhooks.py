"""Webhook routes for triggering workflows."""

from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import APIRouter, Request

from ..core.dependencies import WebhookServiceDep
from ..core.exceptions import WorkflowEngineError
from .errors import to_http_exception

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


async def _read_body(request: Request) -> Any:
    raw = await request.body()
    if not raw:
        return {}
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return raw.decode("utf-8", errors="replace")


@router.api_route("/{workflow_id}/{path:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
async def handle_webhook(
    workflow_id: str,
    path: str,
    request: Request,
    service: WebhookServiceDep,
) -> dict[str, Any]:
    """Start a workflow from its webhook node. Returns before the workflow runs."""
    body = await _read_body(request)
    try:
        return await service.handle_webhook(
            workflow_id,
            path,
            request.method,
            body,
            dict(request.headers),
            dict(request.query_params),
        )
    except WorkflowEngineError as e:
        logger.info("Webhook %s/%s rejected: %s", workflow_id, path, e.message)
        raise to_http_exception(e) from e
