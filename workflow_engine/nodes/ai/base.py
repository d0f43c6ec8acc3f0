"""Shared helpers for AI nodes."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ...engine.expression_engine import ExpressionEngine, expression_engine
from ...engine.llm_provider import LLMResponse, call_llm
from ..base import BaseNode

if TYPE_CHECKING:
    from ...engine.types import ExecutionContext, NodeDefinition


class AiNode(BaseNode):
    """Base for nodes that call a chat model through call_llm."""

    default_temperature = 0.7

    async def complete(
        self,
        context: ExecutionContext,
        config: dict[str, Any],
        messages: list[dict[str, Any]],
    ) -> LLMResponse:
        provider = config.get("provider")
        return await call_llm(
            provider=provider,
            model=config.get("model"),
            messages=messages,
            temperature=float(config.get("temperature", self.default_temperature)),
            max_tokens=int(config["maxTokens"]) if config.get("maxTokens") else None,
            api_key=config.get("apiKey"),
            base_url=config.get("ollamaUrl") if provider == "ollama" else config.get("baseUrl"),
            http_client=context.http_client,
        )

    def item_configs(
        self,
        context: ExecutionContext,
        node_definition: NodeDefinition,
        input_data: Any,
    ) -> list[dict[str, Any]] | None:
        """
        Per-item configs when the input is an array and the config references `$item`.

        Returns None when the node should make a single call.
        """
        template = node_definition.authored_config
        if not isinstance(input_data, list) or "$item" not in repr(template):
            return None
        expr_context = ExpressionEngine.create_context(context)
        return [
            expression_engine.resolve_for_item(template, expr_context, item)
            for item in input_data
        ]


def response_data(response: LLMResponse) -> dict[str, Any]:
    return {
        "response": response.text,
        "model": response.model,
        "provider": response.provider,
        "usage": response.usage,
    }
