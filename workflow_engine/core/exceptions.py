"""Custom exceptions for the workflow engine."""

from typing import Any


class WorkflowEngineError(Exception):
    """Base exception for all workflow engine errors."""

    kind = "engine_error"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": self.message, "details": self.details}


class NotFoundError(WorkflowEngineError):
    """Raised when a workflow, execution or file does not exist."""

    kind = "not_found"


class WorkflowNotFoundError(NotFoundError):
    """Raised when a workflow is not found."""

    def __init__(self, workflow_id: str) -> None:
        super().__init__(
            message=f"Workflow not found: {workflow_id}",
            details={"workflow_id": workflow_id},
        )
        self.workflow_id = workflow_id


class ExecutionNotFoundError(NotFoundError):
    """Raised when an execution record is not found."""

    def __init__(self, execution_id: str) -> None:
        super().__init__(
            message=f"Execution not found: {execution_id}",
            details={"execution_id": execution_id},
        )
        self.execution_id = execution_id


class StoredFileNotFoundError(NotFoundError):
    """Raised when a file reference cannot be resolved."""

    def __init__(self, file_id: str) -> None:
        super().__init__(
            message=f"File not found: {file_id}",
            details={"file_id": file_id},
        )
        self.file_id = file_id


class ForbiddenError(WorkflowEngineError):
    """Raised when a user accesses a resource owned by someone else."""

    kind = "forbidden"


class ValidationError(WorkflowEngineError):
    """Raised when node configuration or a request is malformed."""

    kind = "validation_error"

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(
            message=message,
            details={"field": field} if field else {},
        )
        self.field = field


class NoStartNodeError(WorkflowEngineError):
    """Raised when every node of a workflow has an incoming edge."""

    kind = "no_start_node"

    def __init__(self, workflow_id: str | None = None) -> None:
        super().__init__(
            message="No start node found in workflow",
            details={"workflow_id": workflow_id} if workflow_id else {},
        )
        self.workflow_id = workflow_id


class NodeExecutionError(WorkflowEngineError):
    """Raised when a node handler fails. Aborts the whole traversal."""

    kind = "node_execution_error"

    def __init__(self, node_id: str, node_type: str, cause: BaseException) -> None:
        super().__init__(
            message=f'Node "{node_id}" ({node_type}) failed: {cause}',
            details={"node_id": node_id, "node_type": node_type},
        )
        self.node_id = node_id
        self.node_type = node_type
        self.cause = cause


class CodeExecutionError(WorkflowEngineError):
    """Raised when a sandboxed script errors or times out."""

    kind = "code_execution_error"


class UnsupportedProviderError(WorkflowEngineError):
    """Raised for an unknown AI provider."""

    kind = "unsupported_provider"

    def __init__(self, provider: str) -> None:
        super().__init__(
            message=f"Unsupported AI provider: {provider}",
            details={"provider": provider},
        )
        self.provider = provider


class ScheduleConfigError(WorkflowEngineError):
    """Raised when an interval or cron configuration is invalid."""

    kind = "schedule_config_error"


class ExecutionCanceledError(WorkflowEngineError):
    """Raised inside a traversal when its execution was canceled."""

    kind = "execution_canceled"

    def __init__(self, execution_id: str) -> None:
        super().__init__(
            message=f"Execution canceled: {execution_id}",
            details={"execution_id": execution_id},
        )
        self.execution_id = execution_id


class UnauthorizedError(WorkflowEngineError):
    """Raised when webhook credentials are missing or wrong."""

    kind = "unauthorized"
