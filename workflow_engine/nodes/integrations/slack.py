"""Slack node - posts messages via an incoming webhook or a bot token."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from ...core.exceptions import ValidationError
from ...engine.expression_engine import ExpressionEngine, expression_engine
from ..base import BaseNode

if TYPE_CHECKING:
    from ...engine.types import ExecutionContext, NodeDefinition, NodeOutput

logger = logging.getLogger(__name__)

SLACK_POST_MESSAGE_URL = "https://slack.com/api/chat.postMessage"


class SlackError(Exception):
    """Slack answered `ok: false`."""


class SlackNode(BaseNode):
    """
    Slack node.

    authentication "webhook" (default) posts `{text, channel?}` to webhookUrl;
    "token" calls chat.postMessage with botToken. Array input sends one
    message per item and collects a per-item report.
    """

    @property
    def type(self) -> str:
        return "slack"

    async def execute(
        self,
        context: ExecutionContext,
        node_definition: NodeDefinition,
        input_data: Any,
    ) -> NodeOutput:
        authentication = self.get_parameter(node_definition, "authentication", "webhook")
        if authentication == "webhook" and not node_definition.config.get("webhookUrl"):
            raise ValidationError("webhookUrl is required", field="webhookUrl")
        if authentication == "token" and not node_definition.config.get("botToken"):
            raise ValidationError("botToken is required", field="botToken")
        if authentication not in ("webhook", "token"):
            raise ValidationError(f"Unsupported Slack authentication: {authentication}", field="authentication")

        expr_context = ExpressionEngine.create_context(context)
        template = node_definition.authored_config

        async def send_all(client: httpx.AsyncClient) -> NodeOutput:
            if not isinstance(input_data, list):
                fields = expression_engine.resolve_for_item(template, expr_context, input_data)
                return self.output(await self._send(client, authentication, fields))

            results: list[dict[str, Any]] = []
            for index, item in enumerate(input_data):
                fields = expression_engine.resolve_for_item(template, expr_context, item)
                try:
                    results.append(await self._send(client, authentication, fields))
                except Exception as e:
                    logger.warning("Slack message %d of node %s failed: %s", index, node_definition.id, e)
                    results.append({"success": False, "error": str(e)})

            sent = sum(1 for r in results if r.get("success"))
            return self.output(
                {"sent": sent, "failed": len(results) - sent, "results": results},
                sent=sent,
                failed=len(results) - sent,
            )

        if context.http_client is not None:
            return await send_all(context.http_client)
        async with httpx.AsyncClient() as client:
            return await send_all(client)

    async def _send(
        self,
        client: httpx.AsyncClient,
        authentication: str,
        fields: dict[str, Any],
    ) -> dict[str, Any]:
        text = fields.get("text")
        if not text:
            raise ValidationError("text is required", field="text")
        channel = fields.get("channel")

        payload: dict[str, Any] = {"text": str(text)}
        if channel:
            payload["channel"] = channel

        if authentication == "webhook":
            response = await client.post(fields["webhookUrl"], json=payload)
            response.raise_for_status()
            return {"success": True, "channel": channel, "statusCode": response.status_code}

        if not channel:
            raise ValidationError("channel is required with token authentication", field="channel")
        response = await client.post(
            SLACK_POST_MESSAGE_URL,
            json=payload,
            headers={"Authorization": f"Bearer {fields['botToken']}"},
        )
        response.raise_for_status()
        body = response.json()
        if not body.get("ok"):
            raise SlackError(f"Slack API error: {body.get('error', 'unknown_error')}")
        return {"success": True, "channel": body.get("channel", channel), "ts": body.get("ts")}
