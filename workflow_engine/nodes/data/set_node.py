"""Set node - sets or deletes keys on the input object."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ...core.exceptions import ValidationError
from ..base import BaseNode

if TYPE_CHECKING:
    from ...engine.types import ExecutionContext, NodeDefinition, NodeOutput


class SetNode(BaseNode):
    """
    Set node.

    mode "set" (default) shallow-merges `values` (or a `fields` list of
    {name, value}) onto the input; `keepOnlySet` drops the input keys.
    mode "delete" removes `keys` (list or comma separated string).
    A list input is processed item by item.
    """

    @property
    def type(self) -> str:
        return "set"

    async def execute(
        self,
        context: ExecutionContext,
        node_definition: NodeDefinition,
        input_data: Any,
    ) -> NodeOutput:
        mode = self.get_parameter(node_definition, "mode", "set")

        if mode == "set":
            values = self._collect_values(node_definition)
            keep_only_set = bool(self.get_parameter(node_definition, "keepOnlySet", False))

            def transform(item: Any) -> Any:
                base = {} if keep_only_set or not isinstance(item, dict) else item
                return {**base, **values}

        elif mode == "delete":
            keys = self._collect_keys(node_definition)

            def transform(item: Any) -> Any:
                if not isinstance(item, dict):
                    return item
                return {k: v for k, v in item.items() if k not in keys}

        else:
            raise ValidationError(f"Unsupported set mode: {mode}", field="mode")

        if isinstance(input_data, list):
            return self.output([transform(item) for item in input_data])
        return self.output(transform(input_data))

    def _collect_values(self, node_definition: NodeDefinition) -> dict[str, Any]:
        values = dict(self.get_parameter(node_definition, "values", {}) or {})
        for field in self.get_parameter(node_definition, "fields", []) or []:
            if isinstance(field, dict) and field.get("name"):
                values[field["name"]] = field.get("value")
        return values

    def _collect_keys(self, node_definition: NodeDefinition) -> set[str]:
        keys = self.get_parameter(node_definition, "keys", []) or []
        if isinstance(keys, str):
            keys = keys.split(",")
        return {str(k).strip() for k in keys if str(k).strip()}
