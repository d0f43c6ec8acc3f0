"""Workflow repository for database persistence."""

from __future__ import annotations

import uuid

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from ..db.models import WorkflowModel
from ..engine.types import Workflow, utc_now
from ..storage.base import WorkflowStore


class WorkflowRepository(WorkflowStore):
    """Repository for workflow persistence. One session per operation."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, workflow_id: str) -> Workflow | None:
        """Get a workflow by ID."""
        async with self._session_factory() as session:
            db_workflow = await session.get(WorkflowModel, workflow_id)
            if not db_workflow:
                return None
            return self._to_workflow(db_workflow)

    async def list(self, active_only: bool = False) -> list[Workflow]:
        """List workflows, oldest first."""
        statement = select(WorkflowModel).order_by(WorkflowModel.created_at)
        if active_only:
            statement = statement.where(WorkflowModel.is_active == True)  # noqa: E712

        async with self._session_factory() as session:
            result = await session.execute(statement)
            return [self._to_workflow(w) for w in result.scalars().all()]

    async def save(self, workflow: Workflow) -> Workflow:
        """Insert or replace a workflow by id."""
        if not workflow.id:
            workflow.id = str(uuid.uuid4())

        definition = workflow.to_dict()
        for key in ("id", "name", "isActive", "ownerId"):
            definition.pop(key, None)

        async with self._session_factory() as session:
            db_workflow = await session.get(WorkflowModel, workflow.id)
            if db_workflow is None:
                db_workflow = WorkflowModel(id=workflow.id, name=workflow.name)
                session.add(db_workflow)

            db_workflow.name = workflow.name
            db_workflow.owner_id = workflow.owner_id
            db_workflow.is_active = workflow.is_active
            db_workflow.definition = definition
            db_workflow.updated_at = utc_now()

            await session.commit()
            await session.refresh(db_workflow)
            return self._to_workflow(db_workflow)

    async def delete(self, workflow_id: str) -> bool:
        """Delete a workflow."""
        async with self._session_factory() as session:
            db_workflow = await session.get(WorkflowModel, workflow_id)
            if not db_workflow:
                return False
            await session.delete(db_workflow)
            await session.commit()
            return True

    def _to_workflow(self, db_workflow: WorkflowModel) -> Workflow:
        """Convert database model to Workflow."""
        return Workflow.from_dict(
            {
                **(db_workflow.definition or {}),
                "id": db_workflow.id,
                "name": db_workflow.name,
                "isActive": db_workflow.is_active,
                "ownerId": db_workflow.owner_id,
            }
        )
