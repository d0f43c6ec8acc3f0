"""Shared fixtures: node registry, in-memory stores, mocked HTTP and runners."""

from __future__ import annotations

from typing import Any, Callable

import httpx
import pytest

from workflow_engine.core.config import settings
from workflow_engine.engine.node_registry import NodeRegistryClass, register_all_nodes
from workflow_engine.engine.workflow_runner import WorkflowRunner
from workflow_engine.storage import MemoryExecutionStore, MemoryWorkflowStore

Handler = Callable[[httpx.Request], httpx.Response]


def _not_found(request: httpx.Request) -> httpx.Response:
    return httpx.Response(404, json={"error": "no route"})


@pytest.fixture(autouse=True)
def no_retry_backoff(monkeypatch):
    monkeypatch.setattr(settings, "http_retry_backoff_ms", 0)


@pytest.fixture
def registry() -> NodeRegistryClass:
    return register_all_nodes(NodeRegistryClass())


@pytest.fixture
def execution_store() -> MemoryExecutionStore:
    return MemoryExecutionStore()


@pytest.fixture
def workflow_store() -> MemoryWorkflowStore:
    return MemoryWorkflowStore()


@pytest.fixture
def mock_http() -> Callable[[Handler], httpx.AsyncClient]:
    """AsyncClient factory whose requests are answered by a handler function."""

    def factory(handler: Handler) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return factory


@pytest.fixture
def runner_factory(registry, execution_store, mock_http):
    def factory(handler: Handler = _not_found, **kwargs: Any) -> WorkflowRunner:
        return WorkflowRunner(
            execution_store,
            registry=registry,
            http_client=mock_http(handler),
            **kwargs,
        )

    return factory
