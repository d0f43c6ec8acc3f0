"""Code and Function nodes - run a user script in the sandbox."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ..core.config import settings
from ..engine.sandbox import run_script
from .base import BaseNode, as_items

if TYPE_CHECKING:
    from ..engine.types import ExecutionContext, NodeDefinition, NodeOutput


class CodeNode(BaseNode):
    """
    Code node - execute a short Python script in a time-boxed sandbox process.

    Available names:
        items: the input wrapped as a list
        input: the input as received
        item, index: the current element (runOnceForEachItem only)
        execution: {"id", "mode"}
        log(*args) / print(*args): captured into metadata.logs

    `mode` is runOnceForAllItems (default) or runOnceForEachItem.
    """

    code_parameter = "code"
    default_code = "return items"

    @property
    def type(self) -> str:
        return "code"

    async def execute(
        self,
        context: ExecutionContext,
        node_definition: NodeDefinition,
        input_data: Any,
    ) -> NodeOutput:
        code = self.get_parameter(node_definition, self.code_parameter, self.default_code)
        mode = self.get_parameter(node_definition, "mode", "runOnceForAllItems")
        timeout = float(self.get_parameter(node_definition, "timeout", settings.code_timeout_seconds))

        items = as_items(input_data)
        base_variables = {
            "items": items,
            "input": input_data,
            "execution": {"id": context.execution_id, "mode": context.mode},
        }

        if mode == "runOnceForEachItem":
            results: list[Any] = []
            logs: list[str] = []
            for index, item in enumerate(items):
                run = await run_script(
                    code,
                    {**base_variables, "item": item, "index": index},
                    timeout=timeout,
                    memory_limit_mb=settings.code_memory_limit_mb,
                )
                results.append(run.result)
                logs.extend(run.logs)
            return self.output(results, logs=logs)

        run = await run_script(
            code,
            base_variables,
            timeout=timeout,
            memory_limit_mb=settings.code_memory_limit_mb,
        )
        return self.output(run.result, logs=run.logs)


class FunctionNode(CodeNode):
    """Function node - same sandbox, script read from `functionCode`."""

    code_parameter = "functionCode"

    @property
    def type(self) -> str:
        return "function"
