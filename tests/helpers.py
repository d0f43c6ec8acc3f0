"""Workflow builders for tests."""

from __future__ import annotations

from typing import Any

from workflow_engine.engine.types import Workflow


def node(node_id: str, node_type: str, **config: Any) -> dict[str, Any]:
    """Raw node dict as stored in a workflow definition."""
    return {"id": node_id, "type": node_type, "data": {"label": node_id, "config": config}}


def edge(source: str, target: str, handle: str | None = None) -> dict[str, Any]:
    raw = {"source": source, "target": target}
    if handle is not None:
        raw["sourceHandle"] = handle
    return raw


def build_workflow(
    nodes: list[dict[str, Any]],
    connections: list[dict[str, Any]] | None = None,
    workflow_id: str = "wf-1",
    owner_id: str = "user-1",
    is_active: bool = True,
) -> Workflow:
    return Workflow.from_dict(
        {
            "id": workflow_id,
            "name": f"Workflow {workflow_id}",
            "ownerId": owner_id,
            "isActive": is_active,
            "nodes": nodes,
            "connections": connections or [],
        }
    )
