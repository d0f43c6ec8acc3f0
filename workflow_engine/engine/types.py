"""Core type definitions for the workflow engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Literal

if TYPE_CHECKING:
    import httpx

    from ..services.file_service import FileService


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


ExecutionMode = Literal["manual", "webhook", "schedule", "scheduled"]


class ExecutionStatus(str, Enum):
    """Lifecycle states of an execution record."""

    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self is not ExecutionStatus.RUNNING


# --- Workflow Schema Types ---


@dataclass
class NodeDefinition:
    """A node of a workflow graph. `config` may hold {{ }} expressions."""

    id: str
    type: str
    config: dict[str, Any] = field(default_factory=dict)
    label: str | None = None
    position: dict[str, float] | None = None
    # Config as authored; set on the resolved copy handed to handlers
    template_config: dict[str, Any] | None = field(default=None, repr=False)

    @property
    def authored_config(self) -> dict[str, Any]:
        return self.config if self.template_config is None else self.template_config

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> NodeDefinition:
        data = raw.get("data") or {}
        config = data.get("config")
        if config is None:
            # Legacy nodes keep their fields directly on `data`
            config = {k: v for k, v in data.items() if k != "label"}
        return cls(
            id=str(raw["id"]),
            type=raw["type"],
            config=dict(config),
            label=data.get("label"),
            position=raw.get("position"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "position": self.position,
            "data": {"label": self.label, "config": self.config},
        }


@dataclass
class Connection:
    """Directed edge between two nodes, optionally from a named output handle."""

    source: str
    target: str
    source_handle: str | None = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Connection:
        return cls(
            source=str(raw["source"]),
            target=str(raw["target"]),
            source_handle=raw.get("sourceHandle"),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"source": self.source, "target": self.target}
        if self.source_handle is not None:
            result["sourceHandle"] = self.source_handle
        return result


@dataclass
class Workflow:
    """Workflow definition. Read-only from the engine's perspective."""

    id: str
    name: str
    nodes: list[NodeDefinition]
    connections: list[Connection] = field(default_factory=list)
    is_active: bool = True
    owner_id: str = ""
    settings: dict[str, Any] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Workflow:
        return cls(
            id=str(raw.get("id") or raw.get("_id") or ""),
            name=raw.get("name", ""),
            nodes=[NodeDefinition.from_dict(n) for n in raw.get("nodes", [])],
            connections=[Connection.from_dict(c) for c in raw.get("connections", [])],
            is_active=raw.get("isActive", True),
            owner_id=str(raw.get("ownerId") or raw.get("userId") or ""),
            settings=raw.get("settings") or {},
            metadata=raw.get("metadata") or {},
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "isActive": self.is_active,
            "ownerId": self.owner_id,
            "nodes": [n.to_dict() for n in self.nodes],
            "connections": [c.to_dict() for c in self.connections],
            "settings": self.settings,
            "metadata": self.metadata,
        }

    def get_node(self, node_id: str) -> NodeDefinition | None:
        return next((n for n in self.nodes if n.id == node_id), None)

    def incoming(self, node_id: str) -> list[Connection]:
        """Edges into a node, in declaration order."""
        return [c for c in self.connections if c.target == node_id]

    def outgoing(self, node_id: str) -> list[Connection]:
        """Edges out of a node, in declaration order."""
        return [c for c in self.connections if c.source == node_id]


# --- Execution Types ---


@dataclass
class NodeOutput:
    """
    Result envelope returned by every node handler.

    `metadata["branch"]` names the output handle to follow next.
    """

    data: Any = None
    metadata: dict[str, Any] | None = None

    @property
    def branch(self) -> str | None:
        if not self.metadata:
            return None
        branch = self.metadata.get("branch")
        return None if branch is None else str(branch)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"data": self.data}
        if self.metadata is not None:
            result["metadata"] = self.metadata
        return result


@dataclass
class NodeTrace:
    """Per-node record of timing, output and error for one execution."""

    node_type: str
    start_time: int  # epoch millis
    execution_time: int = 0  # millis
    data: NodeOutput | None = None
    error: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "startTime": self.start_time,
            "executionTime": self.execution_time,
            "nodeType": self.node_type,
            "data": self.data.to_dict() if self.data is not None else None,
        }
        if self.error is not None:
            result["error"] = self.error
        return result


@dataclass
class ExecutionContext:
    """Mutable state threaded through one traversal. Never shared across executions."""

    workflow: Workflow
    execution_id: str
    user_id: str
    input_data: Any
    mode: str = "manual"
    started_at: datetime = field(default_factory=utc_now)

    run_data: dict[str, NodeTrace] = field(default_factory=dict)
    node_outputs: dict[str, NodeOutput] = field(default_factory=dict)
    visited: set[str] = field(default_factory=set)
    current_node_id: str | None = None

    # Collaborators available to handlers
    http_client: httpx.AsyncClient | None = None
    file_service: FileService | None = None
    should_cancel: Callable[[], bool] | None = None

    def is_canceled(self) -> bool:
        return bool(self.should_cancel and self.should_cancel())

    def predecessor_outputs(self, node_id: str) -> list[Any]:
        """
        Output data of predecessors whose edge into `node_id` fired, in edge order.

        An edge fires when its source has a recorded output and either the
        output names no branch or the edge's handle matches that branch.
        """
        inputs: list[Any] = []
        seen: set[str] = set()
        for conn in self.workflow.incoming(node_id):
            output = self.node_outputs.get(conn.source)
            if output is None or conn.source in seen:
                continue
            if output.branch is not None and conn.source_handle != output.branch:
                continue
            seen.add(conn.source)
            inputs.append(output.data)
        return inputs

    def result_data(self) -> dict[str, Any]:
        """Serializable `resultData` for the execution record."""
        return {
            "runData": {node_id: trace.to_dict() for node_id, trace in self.run_data.items()},
            "nodeOutputs": {
                node_id: output.to_dict() for node_id, output in self.node_outputs.items()
            },
        }


@dataclass
class ExecutionResult:
    """Return value of a completed traversal."""

    success: bool
    execution_id: str
    status: ExecutionStatus
    data: dict[str, Any]


@dataclass
class ExecutionRecord:
    """Persisted execution status and trace."""

    id: str
    workflow_id: str
    user_id: str
    status: ExecutionStatus
    mode: str
    started_at: datetime
    finished_at: datetime | None = None
    data: dict[str, Any] = field(
        default_factory=lambda: {"resultData": {"runData": {}, "nodeOutputs": {}}}
    )
    error: dict[str, Any] | None = None

    @property
    def duration_ms(self) -> int | None:
        if self.finished_at is None:
            return None
        return int((self.finished_at - self.started_at).total_seconds() * 1000)


@dataclass
class QueueJob:
    """Job in the execution queue."""

    id: str
    topic: str
    payload: dict[str, Any]
    enqueued_at: datetime = field(default_factory=utc_now)
