"""Execution repository for database persistence."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from ..core.exceptions import ExecutionNotFoundError
from ..db.models import ExecutionModel
from ..engine.types import ExecutionRecord, ExecutionStatus, utc_now
from ..storage.base import ExecutionStore


def _as_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ExecutionRepository(ExecutionStore):
    """
    Repository for execution records.

    Terminal transitions are a single conditional UPDATE guarded on
    `status = 'running'`, so a cancel racing a finish applies exactly once.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create(
        self,
        workflow_id: str,
        user_id: str,
        mode: str,
        execution_id: str | None = None,
    ) -> ExecutionRecord:
        """Create a new execution record in running state."""
        db_execution = ExecutionModel(
            id=execution_id or str(uuid.uuid4()),
            workflow_id=workflow_id,
            user_id=user_id,
            status=ExecutionStatus.RUNNING.value,
            mode=mode,
            data={"resultData": {"runData": {}, "nodeOutputs": {}}},
            started_at=utc_now(),
        )

        async with self._session_factory() as session:
            session.add(db_execution)
            await session.commit()
            await session.refresh(db_execution)
            return self._to_execution_record(db_execution)

    async def get(self, execution_id: str) -> ExecutionRecord | None:
        """Get an execution record by ID."""
        async with self._session_factory() as session:
            db_execution = await session.get(ExecutionModel, execution_id)
            if not db_execution:
                return None
            return self._to_execution_record(db_execution)

    async def update(
        self,
        execution_id: str,
        *,
        started_at: datetime | None = None,
        data: dict[str, Any] | None = None,
    ) -> ExecutionRecord:
        values: dict[str, Any] = {}
        if started_at is not None:
            values["started_at"] = started_at
        if data is not None:
            values["data"] = data

        async with self._session_factory() as session:
            if values:
                result = await session.execute(
                    update(ExecutionModel)
                    .where(ExecutionModel.id == execution_id)
                    .values(**values)
                )
                await session.commit()
                if result.rowcount == 0:
                    raise ExecutionNotFoundError(execution_id)

            db_execution = await session.get(ExecutionModel, execution_id)
            if not db_execution:
                raise ExecutionNotFoundError(execution_id)
            return self._to_execution_record(db_execution)

    async def finish(
        self,
        execution_id: str,
        status: ExecutionStatus,
        *,
        data: dict[str, Any] | None = None,
        error: dict[str, Any] | None = None,
    ) -> ExecutionRecord | None:
        values: dict[str, Any] = {"status": status.value, "finished_at": utc_now()}
        if data is not None:
            values["data"] = data
        if error is not None:
            values["error"] = error

        async with self._session_factory() as session:
            result = await session.execute(
                update(ExecutionModel)
                .where(
                    ExecutionModel.id == execution_id,
                    ExecutionModel.status == ExecutionStatus.RUNNING.value,
                )
                .values(**values)
            )
            await session.commit()

            db_execution = await session.get(ExecutionModel, execution_id)
            if not db_execution:
                raise ExecutionNotFoundError(execution_id)
            if result.rowcount == 0:
                return None
            await session.refresh(db_execution)
            return self._to_execution_record(db_execution)

    async def list(
        self,
        user_id: str | None = None,
        workflow_id: str | None = None,
        limit: int | None = None,
    ) -> list[ExecutionRecord]:
        """List execution records newest first."""
        statement = select(ExecutionModel).order_by(ExecutionModel.started_at.desc())
        if user_id is not None:
            statement = statement.where(ExecutionModel.user_id == user_id)
        if workflow_id is not None:
            statement = statement.where(ExecutionModel.workflow_id == workflow_id)
        if limit is not None:
            statement = statement.limit(limit)

        async with self._session_factory() as session:
            result = await session.execute(statement)
            return [self._to_execution_record(e) for e in result.scalars().all()]

    async def count_by_status(
        self,
        user_id: str | None = None,
        workflow_id: str | None = None,
    ) -> dict[str, int]:
        statement = select(ExecutionModel.status, func.count()).group_by(ExecutionModel.status)
        if user_id is not None:
            statement = statement.where(ExecutionModel.user_id == user_id)
        if workflow_id is not None:
            statement = statement.where(ExecutionModel.workflow_id == workflow_id)

        async with self._session_factory() as session:
            result = await session.execute(statement)
            return {status: count for status, count in result.all()}

    def _to_execution_record(self, db_execution: ExecutionModel) -> ExecutionRecord:
        """Convert database model to ExecutionRecord."""
        return ExecutionRecord(
            id=db_execution.id,
            workflow_id=db_execution.workflow_id,
            user_id=db_execution.user_id,
            status=ExecutionStatus(db_execution.status),
            mode=db_execution.mode,
            started_at=_as_utc(db_execution.started_at),
            finished_at=_as_utc(db_execution.finished_at),
            data=db_execution.data or {},
            error=db_execution.error,
        )
