"""Loop node - splits the input into batches."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from ..base import BaseNode, as_items

if TYPE_CHECKING:
    from ...engine.types import ExecutionContext, NodeDefinition, NodeOutput


class LoopNode(BaseNode):
    """Loop over items in batches of `batchSize`, pausing `pauseBetweenBatches` ms between them."""

    @property
    def type(self) -> str:
        return "loop"

    async def execute(
        self,
        context: ExecutionContext,
        node_definition: NodeDefinition,
        input_data: Any,
    ) -> NodeOutput:
        batch_size = max(int(self.get_parameter(node_definition, "batchSize", 1)), 1)
        pause_ms = max(float(self.get_parameter(node_definition, "pauseBetweenBatches", 0)), 0)

        items = as_items(input_data)
        batches: list[list[Any]] = []
        for start in range(0, len(items), batch_size):
            if batches and pause_ms:
                await asyncio.sleep(pause_ms / 1000)
            batches.append(items[start:start + batch_size])

        return self.output(
            batches,
            batchCount=len(batches),
            batchSize=batch_size,
            itemCount=len(items),
        )
