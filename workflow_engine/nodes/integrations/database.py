"""Database node - placeholder that validates its config and returns no rows."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from ...core.exceptions import ValidationError
from ..base import BaseNode

if TYPE_CHECKING:
    from ...engine.types import ExecutionContext, NodeDefinition, NodeOutput

logger = logging.getLogger(__name__)

DB_TYPES = ("mysql", "postgresql", "mongodb", "sqlite")
OPERATIONS = ("select", "insert", "update", "delete", "raw")


class DatabaseNode(BaseNode):
    """Database queries are not implemented; the node returns an empty result set."""

    required_parameters = ("query", "host", "database", "username")

    @property
    def type(self) -> str:
        return "database"

    async def execute(
        self,
        context: ExecutionContext,
        node_definition: NodeDefinition,
        input_data: Any,
    ) -> NodeOutput:
        db_type = self.get_parameter(node_definition, "dbType", "postgresql")
        operation = self.get_parameter(node_definition, "operation", "select")
        if db_type not in DB_TYPES:
            raise ValidationError(f"Unsupported database type: {db_type}", field="dbType")
        if operation not in OPERATIONS:
            raise ValidationError(f"Unsupported database operation: {operation}", field="operation")
        self.validate(node_definition)

        logger.warning("Database node %s is a placeholder; no query was run", node_definition.id)
        return self.output([], implemented=False, dbType=db_type, operation=operation)
