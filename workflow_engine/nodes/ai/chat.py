"""AI Chat and AI Text Generation nodes."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from ...core.exceptions import ValidationError
from .base import AiNode, response_data

if TYPE_CHECKING:
    from ...engine.types import ExecutionContext, NodeDefinition, NodeOutput

CONTENT_TYPE_PROMPTS = {
    "article": "Write a well-structured article.",
    "email": "Write a clear, concise email.",
    "summary": "Write a concise summary of the provided content.",
    "custom": "",
}


def _input_as_text(input_data: Any) -> str:
    if input_data is None:
        return ""
    if isinstance(input_data, str):
        return input_data
    return json.dumps(input_data, default=str)


class AiChatNode(AiNode):
    """
    AI Chat node - one completion from `systemPrompt` + `prompt`.

    Without a prompt the node input (as JSON text) is sent as the user message.
    """

    @property
    def type(self) -> str:
        return "aiChat"

    async def execute(
        self,
        context: ExecutionContext,
        node_definition: NodeDefinition,
        input_data: Any,
    ) -> NodeOutput:
        item_configs = self.item_configs(context, node_definition, input_data)
        if item_configs is not None:
            results = []
            for config in item_configs:
                response = await self.complete(context, config, self._messages(config, None))
                results.append(response_data(response))
            return self.output(results, itemCount=len(results))

        config = node_definition.config
        response = await self.complete(context, config, self._messages(config, input_data))
        return self.output(response_data(response))

    def _messages(self, config: dict[str, Any], input_data: Any) -> list[dict[str, Any]]:
        prompt = config.get("prompt") or _input_as_text(input_data)
        if not prompt:
            raise ValidationError("prompt is required", field="prompt")
        messages = []
        system_prompt = config.get("systemPrompt", "You are a helpful assistant.")
        if system_prompt:
            messages.append({"role": "system", "content": str(system_prompt)})
        messages.append({"role": "user", "content": str(prompt)})
        return messages


class AiTextGenerationNode(AiNode):
    """
    AI Text Generation node - `contentType` and `tone` shape the system prompt.

    Like aiChat, array input with `$item` in the config makes one call per item.
    """

    @property
    def type(self) -> str:
        return "aiTextGeneration"

    async def execute(
        self,
        context: ExecutionContext,
        node_definition: NodeDefinition,
        input_data: Any,
    ) -> NodeOutput:
        item_configs = self.item_configs(context, node_definition, input_data)
        if item_configs is not None:
            results = []
            for config in item_configs:
                results.append(await self._generate(context, config))
            return self.output(results, itemCount=len(results))

        return self.output(await self._generate(context, node_definition.config))

    async def _generate(self, context: ExecutionContext, config: dict[str, Any]) -> dict[str, Any]:
        prompt = config.get("prompt")
        if not prompt:
            raise ValidationError("prompt is required", field="prompt")
        content_type = config.get("contentType") or "custom"
        tone = config.get("tone") or "professional"

        if content_type not in CONTENT_TYPE_PROMPTS:
            raise ValidationError(f"Unsupported content type: {content_type}", field="contentType")

        system_prompt = " ".join(
            part
            for part in (
                "You are a skilled writer.",
                CONTENT_TYPE_PROMPTS[content_type],
                f"Use a {tone} tone.",
            )
            if part
        )
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": str(prompt)},
        ]

        response = await self.complete(context, config, messages)
        return {**response_data(response), "contentType": content_type, "tone": tone}
