"""AI Image Analysis node."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ...core.exceptions import ValidationError
from .base import AiNode, response_data

if TYPE_CHECKING:
    from ...engine.types import ExecutionContext, NodeDefinition, NodeOutput

ANALYSIS_PROMPTS = {
    "describe": "Describe this image in detail.",
    "objects": "List the objects visible in this image.",
    "text": "Extract all text visible in this image.",
    "ocr": "Extract all text visible in this image.",
}


class AiImageAnalysisNode(AiNode):
    """Sends `imageUrl` with an analysisType prompt (describe, objects, text, custom) to a vision model."""

    required_parameters = ("imageUrl",)
    default_temperature = 0.2

    @property
    def type(self) -> str:
        return "aiImageAnalysis"

    async def execute(
        self,
        context: ExecutionContext,
        node_definition: NodeDefinition,
        input_data: Any,
    ) -> NodeOutput:
        image_url = self.get_parameter(node_definition, "imageUrl")
        analysis_type = self.get_parameter(node_definition, "analysisType", "describe")

        if analysis_type == "custom":
            prompt = self.get_parameter(node_definition, "customPrompt")
            if not prompt:
                raise ValidationError("customPrompt is required for custom analysis", field="customPrompt")
        elif analysis_type in ANALYSIS_PROMPTS:
            prompt = ANALYSIS_PROMPTS[analysis_type]
        else:
            raise ValidationError(f"Unsupported analysis type: {analysis_type}", field="analysisType")

        messages = [
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": prompt},
                    {"type": "image_url", "image_url": {"url": str(image_url)}},
                ],
            }
        ]
        response = await self.complete(context, node_definition.config, messages)
        return self.output(
            {**response_data(response), "analysisType": analysis_type, "imageUrl": image_url}
        )
