"""Switch node - routes to the output of the first matching rule."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from ...core.exceptions import ValidationError
from ...engine.expression_engine import expression_engine
from ..base import BaseNode
from ..conditions import evaluate_condition

if TYPE_CHECKING:
    from ...engine.types import ExecutionContext, NodeDefinition, NodeOutput

logger = logging.getLogger(__name__)


class SwitchNode(BaseNode):
    """
    Switch node.

    rules mode: each rule is `{field, operator, value, output?}`; the first
    match emits `metadata.branch` = its `output` (or its index as a string)
    and `metadata.output` = its index.

    expression mode: `expression` is evaluated with simpleeval over
    `input`/`data`; the result (stringified) is the branch.

    No match routes to `fallbackOutput` with `metadata.output` = -1.
    """

    @property
    def type(self) -> str:
        return "switch"

    async def execute(
        self,
        context: ExecutionContext,
        node_definition: NodeDefinition,
        input_data: Any,
    ) -> NodeOutput:
        mode = self.get_parameter(node_definition, "mode", "rules")
        fallback = str(self.get_parameter(node_definition, "fallbackOutput", "fallback"))

        if mode == "expression":
            expression = self.get_parameter(node_definition, "expression")
            if not expression:
                raise ValidationError(
                    f'Switch node "{node_definition.id}" needs an expression', field="expression"
                )
            if not isinstance(expression, str):
                # Already resolved from a {{ }} placeholder
                value = expression
            else:
                value = expression_engine.evaluate_condition(
                    expression, {"input": input_data, "data": input_data}
                )
            if value is None or value == "":
                return self.branch(input_data, fallback, output=-1)
            if isinstance(value, bool):
                value = "true" if value else "false"
            return self.branch(input_data, str(value), output=str(value))

        rules = self.get_parameter(node_definition, "rules", []) or []
        for index, rule in enumerate(rules):
            if not isinstance(rule, dict):
                logger.warning("Ignoring malformed switch rule %d on node %s", index, node_definition.id)
                continue
            if evaluate_condition(rule, input_data):
                output = rule.get("output")
                branch = str(output) if output not in (None, "") else str(index)
                return self.branch(input_data, branch, output=index)

        return self.branch(input_data, fallback, output=-1)
