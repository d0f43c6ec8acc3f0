"""Transform nodes - JSON parse, data mapper and aggregate."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from ...core.exceptions import ValidationError
from ..base import BaseNode, as_items, get_field

if TYPE_CHECKING:
    from ...engine.types import ExecutionContext, NodeDefinition, NodeOutput


class JsonParseNode(BaseNode):
    """
    JSON Parse node.

    parse: JSON text (input, or `field` of the input) to a value
    stringify: value to JSON text
    extract: value at `jsonPath` (`$.a.b[0]` or `a.b[0]`)
    """

    @property
    def type(self) -> str:
        return "jsonParse"

    async def execute(
        self,
        context: ExecutionContext,
        node_definition: NodeDefinition,
        input_data: Any,
    ) -> NodeOutput:
        operation = self.get_parameter(node_definition, "operation", "parse")
        field = self.get_parameter(node_definition, "field")
        source = get_field(input_data, field) if field else input_data

        if operation == "parse":
            if not isinstance(source, (str, bytes)):
                return self.output(source)
            try:
                return self.output(json.loads(source))
            except json.JSONDecodeError as e:
                raise ValidationError(f"Invalid JSON: {e}", field=field or "input") from e

        if operation == "stringify":
            indent = self.get_parameter(node_definition, "indent")
            return self.output(json.dumps(source, default=str, indent=indent))

        if operation == "extract":
            path = str(self.get_parameter(node_definition, "jsonPath", "") or "")
            if path.startswith("$"):
                path = path[1:].lstrip(".")
            if isinstance(source, str):
                try:
                    source = json.loads(source)
                except json.JSONDecodeError as e:
                    raise ValidationError(f"Invalid JSON: {e}", field=field or "input") from e
            return self.output(get_field(source, path), jsonPath=path)

        raise ValidationError(f"Unsupported jsonParse operation: {operation}", field="operation")


class DataMapperNode(BaseNode):
    """Map input fields to new names: `mappings` is {outputField: inputPath}."""

    @property
    def type(self) -> str:
        return "dataMapper"

    async def execute(
        self,
        context: ExecutionContext,
        node_definition: NodeDefinition,
        input_data: Any,
    ) -> NodeOutput:
        mappings = self.get_parameter(node_definition, "mappings", {}) or {}
        keep_unmapped = bool(self.get_parameter(node_definition, "keepUnmapped", False))

        if isinstance(mappings, list):
            mappings = {
                m["key"]: m.get("value")
                for m in mappings
                if isinstance(m, dict) and m.get("key")
            }

        def map_item(item: Any) -> Any:
            mapped: dict[str, Any] = dict(item) if keep_unmapped and isinstance(item, dict) else {}
            for output_field, input_path in mappings.items():
                mapped[output_field] = get_field(item, str(input_path)) if input_path else None
            return mapped

        if isinstance(input_data, list):
            return self.output([map_item(item) for item in input_data])
        return self.output(map_item(input_data))


class AggregateNode(BaseNode):
    """Aggregate `field` over the input items: sum, average, count, min, max or groupBy."""

    @property
    def type(self) -> str:
        return "aggregate"

    async def execute(
        self,
        context: ExecutionContext,
        node_definition: NodeDefinition,
        input_data: Any,
    ) -> NodeOutput:
        operation = self.get_parameter(node_definition, "operation", "sum")
        field = self.get_parameter(node_definition, "field", "")
        items = as_items(input_data)

        if operation == "groupBy":
            group_field = self.get_parameter(node_definition, "groupByField") or field
            if not group_field:
                raise ValidationError("groupBy requires groupByField", field="groupByField")
            groups: dict[str, list[Any]] = {}
            for item in items:
                key = get_field(item, group_field)
                groups.setdefault("null" if key is None else str(key), []).append(item)
            return self.output(groups, operation=operation, groupCount=len(groups))

        if operation == "count":
            count = len(items) if not field else sum(1 for i in items if get_field(i, field) is not None)
            return self.output({"count": count}, operation=operation)

        values = [self._number(get_field(item, field) if field else item) for item in items]
        numbers = [v for v in values if v is not None]

        if operation == "sum":
            result: float | None = sum(numbers)
        elif operation == "average":
            result = sum(numbers) / len(numbers) if numbers else None
        elif operation == "min":
            result = min(numbers) if numbers else None
        elif operation == "max":
            result = max(numbers) if numbers else None
        else:
            raise ValidationError(f"Unsupported aggregate operation: {operation}", field="operation")

        return self.output({operation: result}, operation=operation, count=len(numbers))

    def _number(self, value: Any) -> float | None:
        if isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            return value
        if isinstance(value, str):
            try:
                return float(value)
            except ValueError:
                return None
        return None
