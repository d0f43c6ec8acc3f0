"""Merge node - combines the outputs of several nodes into one."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ...core.exceptions import ValidationError
from ..base import BaseNode

if TYPE_CHECKING:
    from ...engine.types import ExecutionContext, NodeDefinition, NodeOutput

MODES = ("append", "merge", "keepKeyMatches")


class MergeNode(BaseNode):
    """
    Merge node.

    Modes:
        append: flatten every input into one list
        merge: shallow object union, later inputs win
        keepKeyMatches: object union restricted to keys present in every input

    scope "inputs" (default) combines the recorded outputs of this node's
    predecessors; "all" combines every recorded node output in traversal order.
    """

    @property
    def type(self) -> str:
        return "merge"

    async def execute(
        self,
        context: ExecutionContext,
        node_definition: NodeDefinition,
        input_data: Any,
    ) -> NodeOutput:
        mode = self.get_parameter(node_definition, "mode", "append")
        scope = self.get_parameter(node_definition, "scope", "inputs")

        if mode not in MODES:
            raise ValidationError(f"Unsupported merge mode: {mode}", field="mode")

        inputs = self._collect_inputs(context, node_definition, scope)
        if not inputs:
            inputs = [input_data]

        if mode == "append":
            result: Any = []
            for data in inputs:
                if isinstance(data, list):
                    result.extend(data)
                elif data is not None:
                    result.append(data)
            return self.output(result, inputCount=len(inputs))

        objects = [self._as_object(data) for data in inputs]
        merged: dict[str, Any] = {}
        for obj in objects:
            merged.update(obj)

        if mode == "keepKeyMatches":
            common = set(objects[0]) if objects else set()
            for obj in objects[1:]:
                common &= set(obj)
            merged = {key: value for key, value in merged.items() if key in common}

        return self.output(merged, inputCount=len(inputs))

    def _collect_inputs(
        self,
        context: ExecutionContext,
        node_definition: NodeDefinition,
        scope: str,
    ) -> list[Any]:
        if scope == "all":
            return [
                output.data
                for node_id, output in context.node_outputs.items()
                if node_id != node_definition.id
            ]

        return context.predecessor_outputs(node_definition.id)

    def _as_object(self, data: Any) -> dict[str, Any]:
        """Objects as-is; lists of objects are folded into one."""
        if isinstance(data, dict):
            return data
        if isinstance(data, list):
            folded: dict[str, Any] = {}
            for item in data:
                if isinstance(item, dict):
                    folded.update(item)
            return folded
        return {}
