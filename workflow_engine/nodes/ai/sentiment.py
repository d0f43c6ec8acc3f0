"""Sentiment analysis node with a built-in keyword heuristic."""

from __future__ import annotations

import json
import re
from typing import TYPE_CHECKING, Any

from ...core.exceptions import ValidationError
from .base import AiNode

if TYPE_CHECKING:
    from ...engine.types import ExecutionContext, NodeDefinition, NodeOutput

POSITIVE_WORDS = frozenset(
    {
        "good", "great", "excellent", "amazing", "awesome", "fantastic", "wonderful",
        "love", "loved", "like", "happy", "glad", "best", "nice", "perfect", "pleased",
        "positive", "satisfied", "recommend", "thanks", "thank", "helpful", "easy",
    }
)

NEGATIVE_WORDS = frozenset(
    {
        "bad", "terrible", "awful", "horrible", "worst", "hate", "hated", "dislike",
        "poor", "sad", "angry", "annoyed", "disappointed", "disappointing", "broken",
        "negative", "useless", "slow", "problem", "issue", "fail", "failed", "refund",
    }
)

_WORD = re.compile(r"[a-z']+")


def analyze_sentiment(text: str, detailed: bool = False) -> dict[str, Any]:
    """Count positive/negative keywords. score is in [-1, 1]."""
    words = _WORD.findall(text.lower())
    positive = [w for w in words if w in POSITIVE_WORDS]
    negative = [w for w in words if w in NEGATIVE_WORDS]

    total = len(positive) + len(negative)
    score = (len(positive) - len(negative)) / total if total else 0.0
    if score > 0:
        sentiment = "positive"
    elif score < 0:
        sentiment = "negative"
    else:
        sentiment = "neutral"

    result: dict[str, Any] = {
        "sentiment": sentiment,
        "score": round(score, 3),
        "positiveCount": len(positive),
        "negativeCount": len(negative),
    }
    if detailed:
        result["positiveWords"] = positive
        result["negativeWords"] = negative
        result["wordCount"] = len(words)
    return result


class AiSentimentNode(AiNode):
    """
    Sentiment node.

    provider "builtin" (default) uses the keyword heuristic; any other
    provider asks the model for a JSON verdict.
    """

    default_temperature = 0.0

    @property
    def type(self) -> str:
        return "aiSentiment"

    async def execute(
        self,
        context: ExecutionContext,
        node_definition: NodeDefinition,
        input_data: Any,
    ) -> NodeOutput:
        provider = self.get_parameter(node_definition, "provider", "builtin")
        detailed = bool(self.get_parameter(node_definition, "detailedAnalysis", False))
        text = self._text(node_definition, input_data)
        if not text:
            raise ValidationError("text is required", field="text")

        if provider == "builtin":
            return self.output(analyze_sentiment(text, detailed), provider="builtin")

        messages = [
            {
                "role": "system",
                "content": (
                    "Classify the sentiment of the user's text. Reply with JSON only: "
                    '{"sentiment": "positive|negative|neutral", "score": <number from -1 to 1>}'
                ),
            },
            {"role": "user", "content": text},
        ]
        response = await self.complete(context, node_definition.config, messages)
        try:
            verdict = json.loads(response.text or "")
        except json.JSONDecodeError:
            verdict = {"sentiment": (response.text or "").strip().lower(), "score": None}
        if not isinstance(verdict, dict):
            verdict = {"sentiment": verdict, "score": None}
        if detailed:
            verdict["raw"] = response.text
        return self.output(verdict, provider=response.provider, model=response.model)

    def _text(self, node_definition: NodeDefinition, input_data: Any) -> str:
        text = self.get_parameter(node_definition, "text")
        if text:
            return str(text)
        if isinstance(input_data, str):
            return input_data
        if isinstance(input_data, dict) and isinstance(input_data.get("text"), str):
            return input_data["text"]
        return ""
