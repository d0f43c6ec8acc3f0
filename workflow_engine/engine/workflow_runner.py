"""
Workflow runner - executes a workflow graph for one execution record.

Depth-first traversal from the start node. Each node runs at most once
(visited set). A node with several incoming edges waits until all of its
predecessors have been visited; nodes still waiting when the traversal
unwinds (untaken branches, cycles) are flushed in arrival order.
"""

from __future__ import annotations

import logging
import time
import traceback
from typing import TYPE_CHECKING, Any, Callable, Iterator

import httpx

from ..core.config import settings
from ..core.exceptions import (
    ExecutionCanceledError,
    ExecutionNotFoundError,
    NoStartNodeError,
    NodeExecutionError,
)
from .expression_engine import ExpressionEngine, expression_engine
from .types import (
    ExecutionContext,
    ExecutionResult,
    ExecutionStatus,
    NodeDefinition,
    NodeOutput,
    NodeTrace,
    Workflow,
)

if TYPE_CHECKING:
    from ..services.file_service import FileService
    from ..storage.base import ExecutionStore
    from .node_registry import NodeRegistryClass

logger = logging.getLogger(__name__)


def merge_inputs(inputs: list[Any]) -> Any:
    """Join several predecessor outputs into one node input."""
    if all(isinstance(i, list) for i in inputs):
        return [item for i in inputs for item in i]
    if all(isinstance(i, dict) for i in inputs):
        merged: dict[str, Any] = {}
        for i in inputs:
            merged.update(i)
        return merged
    return list(inputs)


class WorkflowRunner:
    """Executes workflow graphs and records their lifecycle in the execution store."""

    def __init__(
        self,
        execution_store: ExecutionStore,
        registry: NodeRegistryClass | None = None,
        http_client: httpx.AsyncClient | None = None,
        file_service: FileService | None = None,
    ) -> None:
        from .node_registry import node_registry

        self._execution_store = execution_store
        self._registry: NodeRegistryClass = registry or node_registry
        self._http_client = http_client
        self._file_service = file_service

    async def execute(
        self,
        workflow: Workflow,
        execution_id: str,
        input_data: Any = None,
        *,
        user_id: str | None = None,
        mode: str = "manual",
        should_cancel: Callable[[], bool] | None = None,
    ) -> ExecutionResult:
        """
        Run a workflow for an existing execution record.

        Args:
            workflow: The workflow definition to execute
            execution_id: Id of the execution record (created in `running` state)
            input_data: Invocation payload handed to the start node
            user_id: Owner of the execution, threaded to every handler
            mode: Execution mode (manual, webhook, schedule)
            should_cancel: Polled before each node; True stops the traversal

        Returns:
            ExecutionResult with the per-node run data

        Raises:
            Whatever aborted the traversal, after the record was set to `error`.
        """
        record = await self._execution_store.get(execution_id)
        if record is None:
            raise ExecutionNotFoundError(execution_id)

        context = ExecutionContext(
            workflow=workflow,
            execution_id=execution_id,
            user_id=user_id or record.user_id or workflow.owner_id,
            input_data={} if input_data is None else input_data,
            mode=mode,
            file_service=self._file_service,
            should_cancel=should_cancel,
        )

        try:
            start_node = self.find_start_node(workflow)
            if start_node is None:
                raise NoStartNodeError(workflow.id)

            await self._execution_store.update(execution_id, started_at=context.started_at)

            if self._http_client is not None:
                context.http_client = self._http_client
                await self._traverse(context, start_node)
            else:
                timeout = settings.http_timeout_ms / 1000
                async with httpx.AsyncClient(timeout=timeout) as http_client:
                    context.http_client = http_client
                    await self._traverse(context, start_node)

        except ExecutionCanceledError:
            logger.info("Execution %s canceled after %d nodes", execution_id, len(context.visited))
            result_data = context.result_data()
            await self._execution_store.update(execution_id, data={"resultData": result_data})
            await self._execution_store.finish(execution_id, ExecutionStatus.CANCELED)
            return ExecutionResult(
                success=False,
                execution_id=execution_id,
                status=ExecutionStatus.CANCELED,
                data=result_data["runData"],
            )

        except Exception as e:
            logger.error("Execution %s failed: %s", execution_id, e)
            message = str(e)
            await self._execution_store.finish(
                execution_id,
                ExecutionStatus.ERROR,
                data={"resultData": context.result_data(), "error": message},
                error={"message": message, "stack": traceback.format_exc()},
            )
            raise

        result_data = context.result_data()
        finished = await self._execution_store.finish(
            execution_id, ExecutionStatus.SUCCESS, data={"resultData": result_data}
        )
        if finished is None:
            # Canceled while the last node was running; cancel wins.
            logger.info("Execution %s finished after being canceled", execution_id)
            return ExecutionResult(
                success=False,
                execution_id=execution_id,
                status=ExecutionStatus.CANCELED,
                data=result_data["runData"],
            )

        logger.info(
            "Execution %s succeeded (%d nodes)", execution_id, len(context.run_data)
        )
        return ExecutionResult(
            success=True,
            execution_id=execution_id,
            status=ExecutionStatus.SUCCESS,
            data=result_data["runData"],
        )

    def find_start_node(self, workflow: Workflow) -> NodeDefinition | None:
        """First node, in input order, that no edge targets."""
        targets = {c.target for c in workflow.connections}
        return next((n for n in workflow.nodes if n.id not in targets), None)

    async def _traverse(self, context: ExecutionContext, start_node: NodeDefinition) -> None:
        waiting: dict[str, None] = {}  # insertion-ordered set

        await self._visit(context, start_node, waiting)

        while waiting:
            node_id = next(iter(waiting))
            del waiting[node_id]
            node = context.workflow.get_node(node_id)
            if node is None or node_id in context.visited:
                continue
            await self._visit(context, node, waiting, force=True)

    async def _visit(
        self,
        context: ExecutionContext,
        node: NodeDefinition,
        waiting: dict[str, None],
        force: bool = False,
    ) -> NodeOutput | None:
        if node.id in context.visited:
            return context.node_outputs.get(node.id)

        if not force and not self._is_ready(context, node):
            waiting.setdefault(node.id, None)
            return None
        waiting.pop(node.id, None)

        if context.is_canceled():
            raise ExecutionCanceledError(context.execution_id)

        output = await self._execute_node(context, node)

        for next_node in self._next_nodes(context, node, output):
            await self._visit(context, next_node, waiting)

        return output

    def _is_ready(self, context: ExecutionContext, node: NodeDefinition) -> bool:
        """All predecessors have been visited."""
        return all(c.source in context.visited for c in context.workflow.incoming(node.id))

    async def _execute_node(self, context: ExecutionContext, node: NodeDefinition) -> NodeOutput:
        context.current_node_id = node.id
        context.visited.add(node.id)

        node_input = self._get_node_input(context, node)
        resolved_node = self._resolve_node_config(context, node)

        started = time.time()
        start_ms = int(started * 1000)
        handler = self._registry.get(node.type)
        logger.debug("Executing node %s (%s)", node.id, node.type)

        if handler is None:
            logger.warning('Unknown node type "%s" on node %s, passing input through', node.type, node.id)
            output = NodeOutput(data=node_input)
        else:
            try:
                output = await handler.execute(context, resolved_node, node_input)
            except ExecutionCanceledError:
                raise
            except Exception as e:
                context.run_data[node.id] = NodeTrace(
                    node_type=node.type,
                    start_time=start_ms,
                    execution_time=int((time.time() - started) * 1000),
                    error={"message": str(e), "stack": traceback.format_exc()},
                )
                raise NodeExecutionError(node.id, node.type, e) from e

            if not isinstance(output, NodeOutput):
                output = NodeOutput(data=output)

        context.node_outputs[node.id] = output
        context.run_data[node.id] = NodeTrace(
            node_type=node.type,
            start_time=start_ms,
            execution_time=int((time.time() - started) * 1000),
            data=output,
        )
        return output

    def _get_node_input(self, context: ExecutionContext, node: NodeDefinition) -> Any:
        """Collect outputs of predecessors whose edge into this node fired."""
        if not context.workflow.incoming(node.id):
            return context.input_data

        inputs = context.predecessor_outputs(node.id)
        if not inputs:
            return context.input_data
        if len(inputs) == 1:
            return inputs[0]
        return merge_inputs(inputs)

    def _resolve_node_config(
        self, context: ExecutionContext, node: NodeDefinition
    ) -> NodeDefinition:
        """Resolve expressions in the node config against the live context."""
        expr_context = ExpressionEngine.create_context(context)
        return NodeDefinition(
            id=node.id,
            type=node.type,
            config=expression_engine.resolve(node.config, expr_context),
            label=node.label,
            position=node.position,
            template_config=node.config,
        )

    def _next_nodes(
        self, context: ExecutionContext, node: NodeDefinition, output: NodeOutput
    ) -> Iterator[NodeDefinition]:
        """Targets of the edges to follow, in declaration order."""
        branch = output.branch
        for conn in context.workflow.outgoing(node.id):
            if branch is not None and conn.source_handle != branch:
                continue
            target = context.workflow.get_node(conn.target)
            if target is not None:
                yield target
