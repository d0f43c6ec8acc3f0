"""Execution read model. Serialized with camelCase keys."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ExecutionQueuedResponse(CamelModel):
    """Response of an accepted execution request."""

    execution_id: str
    status: str = "queued"


class ExecutionListItem(CamelModel):
    """Schema for execution in list response."""

    id: str
    workflow_id: str
    status: str
    mode: str
    started_at: datetime
    finished_at: datetime | None = None
    duration: int | None = Field(None, description="Milliseconds, once finished")


class ExecutionDetailResponse(ExecutionListItem):
    """Full execution record including the per-node trace."""

    data: dict[str, Any] = Field(default_factory=dict)
    error: dict[str, Any] | None = None


class ExecutionStatsResponse(CamelModel):
    """Per-status execution counts."""

    total: int
    running: int = 0
    success: int = 0
    error: int = 0
    canceled: int = 0
