"""
Workflow scheduler using APScheduler.

Registers one recurring cron job per workflow that carries an enabled
`schedule` node. Each firing queues an execution in `schedule` mode.
"""

from __future__ import annotations

import logging
import re
import threading
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from ..core.config import settings
from ..core.exceptions import ScheduleConfigError

if TYPE_CHECKING:
    from ..engine.types import NodeDefinition, Workflow
    from ..storage.base import WorkflowStore
    from .execution_service import ExecutionService

logger = logging.getLogger(__name__)

SCHEDULE_NODE_TYPE = "schedule"

# unit -> (cron template, exclusive upper bound for the interval)
INTERVAL_PATTERNS: dict[str, tuple[str, int]] = {
    "seconds": ("*/{n} * * * * *", 60),
    "minutes": ("0 */{n} * * * *", 60),
    "hours": ("0 0 */{n} * * *", 24),
    "days": ("0 0 0 */{n} * *", 31),
}

DAY_NAMES = ("sun", "mon", "tue", "wed", "thu", "fri", "sat", "sun")
CRON_FIELDS = ("second", "minute", "hour", "day", "month", "day_of_week")


def interval_to_cron(interval: Any, unit: str | None = "minutes") -> str:
    """
    Convert `{interval, unit}` into a 6-field cron pattern.

    Each unit is validated against its natural modulus, e.g. an interval in
    minutes must be below 60. Unknown units are treated as minutes.
    """
    if isinstance(interval, bool) or not isinstance(interval, int):
        try:
            interval = int(str(interval))
        except ValueError as e:
            raise ScheduleConfigError(
                f"Interval must be a whole number, got {interval!r}",
                details={"interval": interval},
            ) from e

    template, limit = INTERVAL_PATTERNS.get(unit or "minutes", INTERVAL_PATTERNS["minutes"])
    if interval < 1 or interval >= limit:
        raise ScheduleConfigError(
            f"Interval for {unit} must be between 1 and {limit - 1}, got {interval}",
            details={"interval": interval, "unit": unit},
        )
    return template.format(n=interval)


def to_cron_pattern(config: dict[str, Any]) -> str:
    """Cron pattern for a schedule node config (interval or raw cron expression)."""
    schedule_type = config.get("scheduleType")
    if schedule_type is None:
        has_interval = config.get("interval") is not None
        schedule_type = "interval" if has_interval and not config.get("cronExpression") else "cron"

    if schedule_type == "interval":
        return interval_to_cron(config.get("interval", 1), config.get("unit", "minutes"))

    expression = str(config.get("cronExpression") or "").strip()
    if not expression:
        raise ScheduleConfigError("Cron schedule needs a cronExpression")
    return expression


def _day_of_week(field: str) -> str:
    """Map numeric cron days (0/7 = Sunday) to names; step values stay numeric."""
    return re.sub(
        r"(?<![/\d])([0-7])(?!\d)",
        lambda m: DAY_NAMES[int(m.group(1))],
        field,
    )


def build_trigger(pattern: str, tz: str | None = None) -> CronTrigger:
    """Validate a 5- or 6-field cron pattern and build its trigger."""
    parts = pattern.split()
    if len(parts) == 5:
        parts.insert(0, "0")
    if len(parts) != 6:
        raise ScheduleConfigError(
            f"Invalid cron pattern: {pattern!r} (expected 5 or 6 fields)",
            details={"pattern": pattern},
        )

    fields = dict(zip(CRON_FIELDS, parts))
    fields["day_of_week"] = _day_of_week(fields["day_of_week"])
    try:
        return CronTrigger(timezone=tz or settings.scheduler_timezone, **fields)
    except (ValueError, TypeError, LookupError) as e:
        raise ScheduleConfigError(
            f"Invalid cron pattern {pattern!r}: {e}", details={"pattern": pattern}
        ) from e


def find_schedule_node(workflow: Workflow) -> NodeDefinition | None:
    return next((n for n in workflow.nodes if n.type == SCHEDULE_NODE_TYPE), None)


class WorkflowScheduler:
    """Owns the cron timer table: at most one job per workflow id."""

    def __init__(
        self,
        workflow_store: WorkflowStore,
        execution_service: ExecutionService,
        scheduler: AsyncIOScheduler | None = None,
        timezone_name: str | None = None,
    ) -> None:
        self._workflow_store = workflow_store
        self._execution_service = execution_service
        self._timezone = timezone_name or settings.scheduler_timezone
        self._scheduler = scheduler or AsyncIOScheduler(timezone=self._timezone)
        self._jobs: dict[str, str] = {}  # workflow id -> cron pattern
        self._lock = threading.Lock()

    @staticmethod
    def job_id(workflow_id: str) -> str:
        return f"workflow:{workflow_id}"

    def start(self) -> None:
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("Scheduler started")

    def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Scheduler shut down")

    def schedule_workflow(self, workflow_id: str, config: dict[str, Any], user_id: str) -> str:
        """
        (Re)schedule a workflow. Replaces any existing schedule for it.

        Returns:
            The cron pattern in effect

        Raises:
            ScheduleConfigError: the interval or cron expression is invalid;
                the workflow is left unscheduled
        """
        self.unschedule_workflow(workflow_id)

        pattern = to_cron_pattern(config)
        trigger = build_trigger(pattern, config.get("timezone") or self._timezone)

        with self._lock:
            self._scheduler.add_job(
                self._fire,
                trigger=trigger,
                id=self.job_id(workflow_id),
                replace_existing=True,
                kwargs={"workflow_id": workflow_id, "config": dict(config), "user_id": user_id},
            )
            self._jobs[workflow_id] = pattern

        logger.info("Scheduled workflow %s with cron pattern %s", workflow_id, pattern)
        return pattern

    def unschedule_workflow(self, workflow_id: str) -> bool:
        with self._lock:
            pattern = self._jobs.pop(workflow_id, None)
            try:
                self._scheduler.remove_job(self.job_id(workflow_id))
            except JobLookupError:
                pass

        if pattern is not None:
            logger.info("Unscheduled workflow %s", workflow_id)
        return pattern is not None

    def is_scheduled(self, workflow_id: str) -> bool:
        return workflow_id in self._jobs

    def get_scheduled_workflows(self) -> dict[str, str]:
        """Workflow id -> cron pattern of every registered schedule."""
        with self._lock:
            return dict(self._jobs)

    async def load_scheduled_workflows(self) -> int:
        """Register every active workflow with an enabled schedule node."""
        count = 0
        for workflow in await self._workflow_store.list(active_only=True):
            try:
                if self.sync_workflow(workflow):
                    count += 1
            except ScheduleConfigError as e:
                logger.error("Could not schedule workflow %s: %s", workflow.id, e.message)
        logger.info("Loaded %d scheduled workflows", count)
        return count

    def sync_workflow(self, workflow: Workflow) -> bool:
        """
        Bring one workflow's schedule in line with its definition.

        Returns True if the workflow is scheduled afterwards.
        """
        node = find_schedule_node(workflow)
        if not workflow.is_active or node is None or node.config.get("enabled") is not True:
            self.unschedule_workflow(workflow.id)
            return False

        self.schedule_workflow(workflow.id, node.config, workflow.owner_id)
        return True

    async def _fire(self, workflow_id: str, config: dict[str, Any], user_id: str) -> None:
        """Timer callback. Never raises into the scheduler loop."""
        try:
            workflow = await self._workflow_store.get(workflow_id)
            if workflow is None or not workflow.is_active:
                logger.info("Workflow %s is gone or inactive, removing its schedule", workflow_id)
                self.unschedule_workflow(workflow_id)
                return

            queued = await self._execution_service.start_execution(
                workflow,
                user_id,
                {
                    "scheduledAt": datetime.now(timezone.utc).isoformat(),
                    "scheduleConfig": config,
                },
                mode="schedule",
            )
            logger.info(
                "Scheduled run of workflow %s queued as execution %s",
                workflow_id,
                queued.execution_id,
            )
        except Exception as e:
            logger.error("Scheduled run of workflow %s failed: %s", workflow_id, e)
