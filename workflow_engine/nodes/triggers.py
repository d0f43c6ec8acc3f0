"""Trigger nodes - entry points of a workflow."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from .base import BaseNode

if TYPE_CHECKING:
    from ..engine.types import ExecutionContext, NodeDefinition, NodeOutput


def _is_empty(input_data: Any) -> bool:
    return input_data is None or input_data == {} or input_data == []


class TriggerNode(BaseNode):
    """Manual trigger. Passes the invocation payload through."""

    @property
    def type(self) -> str:
        return "trigger"

    @property
    def aliases(self) -> tuple[str, ...]:
        return ("manualTrigger",)

    async def execute(
        self,
        context: ExecutionContext,
        node_definition: NodeDefinition,
        input_data: Any,
    ) -> NodeOutput:
        if _is_empty(input_data):
            return self.output(
                {"triggered": True, "timestamp": datetime.now(timezone.utc).isoformat()}
            )
        return self.output(input_data)


class WebhookTriggerNode(BaseNode):
    """Webhook trigger. Input is the inbound request payload built by the webhook ingress."""

    @property
    def type(self) -> str:
        return "webhook"

    async def execute(
        self,
        context: ExecutionContext,
        node_definition: NodeDefinition,
        input_data: Any,
    ) -> NodeOutput:
        if _is_empty(input_data):
            return self.output(
                {"triggered": True, "timestamp": datetime.now(timezone.utc).isoformat()}
            )
        return self.output(input_data)


class ScheduleTriggerNode(BaseNode):
    """Schedule trigger. Input is `{scheduledAt, scheduleConfig}` from the scheduler."""

    @property
    def type(self) -> str:
        return "schedule"

    async def execute(
        self,
        context: ExecutionContext,
        node_definition: NodeDefinition,
        input_data: Any,
    ) -> NodeOutput:
        if _is_empty(input_data):
            return self.output(
                {
                    "triggered": True,
                    "scheduledAt": datetime.now(timezone.utc).isoformat(),
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                }
            )
        return self.output(input_data)
