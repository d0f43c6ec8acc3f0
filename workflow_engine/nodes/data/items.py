"""Item list nodes - filter, sort and limit over the input treated as an array."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ..base import BaseNode, as_items, get_field
from ..conditions import evaluate_conditions

if TYPE_CHECKING:
    from ...engine.types import ExecutionContext, NodeDefinition, NodeOutput


class FilterNode(BaseNode):
    """
    Keep items matching AND/OR-combined `conditions`.

    The short form `filterBy` + `filterValue` (+ optional `operator`) is
    accepted for a single condition.
    """

    @property
    def type(self) -> str:
        return "filter"

    async def execute(
        self,
        context: ExecutionContext,
        node_definition: NodeDefinition,
        input_data: Any,
    ) -> NodeOutput:
        conditions = self.get_parameter(node_definition, "conditions", []) or []
        combine = self.get_parameter(node_definition, "combineOperation", "AND")

        filter_by = self.get_parameter(node_definition, "filterBy")
        if filter_by:
            conditions = [
                *conditions,
                {
                    "field": filter_by,
                    "operator": self.get_parameter(node_definition, "operator", "equals"),
                    "value": node_definition.config.get("filterValue"),
                },
            ]

        items = as_items(input_data)
        kept = [item for item in items if evaluate_conditions(conditions, item, combine)]
        return self.output(kept, inputCount=len(items), outputCount=len(kept))


class SortNode(BaseNode):
    """Sort items by `sortBy` (a field path; empty sorts the items themselves)."""

    @property
    def type(self) -> str:
        return "sort"

    async def execute(
        self,
        context: ExecutionContext,
        node_definition: NodeDefinition,
        input_data: Any,
    ) -> NodeOutput:
        sort_by = self.get_parameter(node_definition, "sortBy", "")
        order = self.get_parameter(node_definition, "order", "ascending")

        def value_of(item: Any) -> Any:
            return get_field(item, sort_by) if sort_by else item

        def sort_key(item: Any) -> tuple[int, Any]:
            value = value_of(item)
            # Numbers before strings
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                return (0, value)
            return (1, str(value).lower())

        items = as_items(input_data)
        present = [item for item in items if value_of(item) is not None]
        missing = [item for item in items if value_of(item) is None]

        ordered = sorted(present, key=sort_key, reverse=order in ("descending", "desc"))
        return self.output(ordered + missing)


class LimitNode(BaseNode):
    """Keep `maxItems` items starting at `offset`."""

    @property
    def type(self) -> str:
        return "limit"

    async def execute(
        self,
        context: ExecutionContext,
        node_definition: NodeDefinition,
        input_data: Any,
    ) -> NodeOutput:
        max_items = int(self.get_parameter(node_definition, "maxItems", 10))
        offset = int(self.get_parameter(node_definition, "offset", 0))

        items = as_items(input_data)
        return self.output(items[offset:offset + max(max_items, 0)])
