"""Core workflow engine components."""

from .expression_engine import ExpressionContext, ExpressionEngine, expression_engine
from .node_registry import NodeRegistryClass, node_registry, register_all_nodes
from .types import (
    Connection,
    ExecutionContext,
    ExecutionRecord,
    ExecutionResult,
    ExecutionStatus,
    NodeDefinition,
    NodeOutput,
    NodeTrace,
    QueueJob,
    Workflow,
)
from .workflow_runner import WorkflowRunner

__all__ = [
    "Connection",
    "ExecutionContext",
    "ExecutionRecord",
    "ExecutionResult",
    "ExecutionStatus",
    "NodeDefinition",
    "NodeOutput",
    "NodeTrace",
    "QueueJob",
    "Workflow",
    "ExpressionEngine",
    "ExpressionContext",
    "expression_engine",
    "NodeRegistryClass",
    "node_registry",
    "register_all_nodes",
    "WorkflowRunner",
]
