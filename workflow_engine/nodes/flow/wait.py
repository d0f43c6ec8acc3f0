"""Delay node - waits before passing the input through."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from ...core.config import settings
from ...core.exceptions import ValidationError
from ..base import BaseNode

if TYPE_CHECKING:
    from ...engine.types import ExecutionContext, NodeDefinition, NodeOutput

logger = logging.getLogger(__name__)

UNIT_MILLIS = {
    "milliseconds": 1,
    "seconds": 1000,
    "minutes": 60_000,
    "hours": 3_600_000,
}


class DelayNode(BaseNode):
    """Suspends for `amount * unit` (capped by settings.max_delay_seconds)."""

    @property
    def type(self) -> str:
        return "delay"

    @property
    def aliases(self) -> tuple[str, ...]:
        return ("wait",)

    async def execute(
        self,
        context: ExecutionContext,
        node_definition: NodeDefinition,
        input_data: Any,
    ) -> NodeOutput:
        unit = self.get_parameter(node_definition, "unit", "seconds")
        amount = self.get_parameter(node_definition, "amount", 1)

        if unit not in UNIT_MILLIS:
            raise ValidationError(f"Unsupported delay unit: {unit}", field="unit")
        try:
            amount = float(amount)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Invalid delay amount: {amount}", field="amount") from e

        seconds = max(amount, 0) * UNIT_MILLIS[unit] / 1000
        if seconds > settings.max_delay_seconds:
            logger.warning(
                "Delay of %ss on node %s capped at %ss", seconds, node_definition.id, settings.max_delay_seconds
            )
            seconds = settings.max_delay_seconds

        await asyncio.sleep(seconds)

        return self.output(input_data, waitedMs=int(seconds * 1000))
