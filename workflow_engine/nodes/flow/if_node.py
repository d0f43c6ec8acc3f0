"""If node - routes to the "true" or "false" output."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ..base import BaseNode
from ..conditions import evaluate_conditions

if TYPE_CHECKING:
    from ...engine.types import ExecutionContext, NodeDefinition, NodeOutput


class IfNode(BaseNode):
    """
    Evaluates AND/OR-combined `{field, operator, value}` conditions against
    the input and passes the input through on the matching branch.
    """

    @property
    def type(self) -> str:
        return "if"

    async def execute(
        self,
        context: ExecutionContext,
        node_definition: NodeDefinition,
        input_data: Any,
    ) -> NodeOutput:
        conditions = self.get_parameter(node_definition, "conditions", []) or []
        combine = self.get_parameter(node_definition, "combineOperation", "AND")

        if isinstance(conditions, dict):
            conditions = [conditions]

        result = evaluate_conditions(conditions, input_data, combine)
        return self.branch(input_data, "true" if result else "false", result=result)
