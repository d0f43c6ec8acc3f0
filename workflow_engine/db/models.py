"""SQLModel database models."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime
from sqlmodel import Column, Field, SQLModel

from ..engine.types import utc_now


class WorkflowModel(SQLModel, table=True):
    """Workflow database model."""

    __tablename__ = "workflows"

    id: str = Field(primary_key=True)
    name: str = Field(index=True)
    owner_id: str = Field(default="", index=True)
    is_active: bool = Field(default=True, index=True)

    # nodes, connections, settings, metadata
    definition: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))

    created_at: datetime = Field(default_factory=utc_now, sa_column=Column(DateTime(timezone=True)))
    updated_at: datetime = Field(default_factory=utc_now, sa_column=Column(DateTime(timezone=True)))


class ExecutionModel(SQLModel, table=True):
    """Execution record database model."""

    __tablename__ = "executions"

    id: str = Field(primary_key=True)
    workflow_id: str = Field(index=True)
    user_id: str = Field(default="", index=True)

    status: str = Field(index=True)  # running, success, error, canceled
    mode: str  # manual, webhook, schedule

    # {"resultData": {"runData": ..., "nodeOutputs": ...}, "error"?: str}
    data: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))

    # {"message": ..., "stack": ...}
    error: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON, nullable=True))

    # SQLite drops the offset on read; repositories reattach UTC
    started_at: datetime = Field(
        default_factory=utc_now, sa_column=Column(DateTime(timezone=True), index=True)
    )
    finished_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
