"""Base node class for all workflow node handlers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from ..core.exceptions import ValidationError

if TYPE_CHECKING:
    from ..engine.types import ExecutionContext, NodeDefinition, NodeOutput


class BaseNode(ABC):
    """
    Abstract base class for all node handlers.

    A handler receives the node with its config already resolved against the
    live context, plus the computed node input, and returns a NodeOutput.
    Handlers never mutate the ExecutionContext; the runner records what they
    return.
    """

    # Config keys that must be present and non-empty
    required_parameters: tuple[str, ...] = ()

    @property
    @abstractmethod
    def type(self) -> str:
        """Node type tag."""
        ...

    @property
    def aliases(self) -> tuple[str, ...]:
        """Extra type tags served by the same handler."""
        return ()

    @abstractmethod
    async def execute(
        self,
        context: ExecutionContext,
        node_definition: NodeDefinition,
        input_data: Any,
    ) -> NodeOutput:
        """Execute the node logic."""
        ...

    def get_parameter(
        self,
        node_definition: NodeDefinition,
        key: str,
        default: Any = None,
    ) -> Any:
        """Get a config value, raising ValidationError for a missing required key."""
        value = node_definition.config.get(key)
        if value is None or value == "":
            if key in self.required_parameters:
                raise ValidationError(
                    f'Missing required parameter "{key}" in node "{node_definition.id}"',
                    field=key,
                )
            return default
        return value

    def validate(self, node_definition: NodeDefinition) -> None:
        """Check every required parameter is set."""
        for key in self.required_parameters:
            self.get_parameter(node_definition, key)

    def output(self, data: Any, **metadata: Any) -> NodeOutput:
        """Helper to create a result envelope."""
        from ..engine.types import NodeOutput

        return NodeOutput(data=data, metadata=metadata or None)

    def branch(self, data: Any, branch: str, **metadata: Any) -> NodeOutput:
        """Helper to create a result routed to one named output handle."""
        from ..engine.types import NodeOutput

        return NodeOutput(data=data, metadata={"branch": branch, **metadata})


def as_items(input_data: Any) -> list[Any]:
    """Treat input as an array, wrapping a single item."""
    if input_data is None:
        return []
    if isinstance(input_data, list):
        return input_data
    return [input_data]


def get_field(obj: Any, path: str) -> Any:
    """Get a value at a dot/index path, or None when it does not exist."""
    from ..engine.expression_engine import UNRESOLVED, get_path

    if not path:
        return obj
    value = get_path(obj, path)
    return None if value is UNRESOLVED else value
