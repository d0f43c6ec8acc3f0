"""Node registry mapping a type tag to its handler."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..nodes.base import BaseNode


class NodeRegistryClass:
    """Registry for workflow node handlers. Read-mostly; registration is locked."""

    def __init__(self) -> None:
        self._instances: dict[str, BaseNode] = {}
        self._lock = threading.Lock()

    def get(self, node_type: str) -> BaseNode | None:
        """
        Get the cached handler for a type tag.

        Handlers are stateless, so one instance serves every execution.
        Returns None for an unknown type.
        """
        return self._instances.get(node_type)

    def has(self, node_type: str) -> bool:
        """Check if node type is registered."""
        return node_type in self._instances

    def list(self) -> list[str]:
        """List all registered type tags."""
        return list(self._instances.keys())

    def register(self, node_class: type[BaseNode]) -> None:
        """Register a handler under its type and aliases if not already registered."""
        instance = node_class()
        with self._lock:
            for tag in (instance.type, *instance.aliases):
                self._instances.setdefault(tag, instance)


# Singleton instance
node_registry = NodeRegistryClass()


def register_all_nodes(registry: NodeRegistryClass | None = None) -> NodeRegistryClass:
    """Register all built-in nodes."""
    from ..nodes import ALL_NODE_CLASSES

    target = registry or node_registry
    for node_class in ALL_NODE_CLASSES:
        target.register(node_class)
    return target
