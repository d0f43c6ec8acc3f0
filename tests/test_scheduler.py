"""Interval/cron conversion and the per-workflow timer table."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from apscheduler.triggers.cron import CronTrigger

from workflow_engine.core.exceptions import ScheduleConfigError
from workflow_engine.schemas.execution import ExecutionQueuedResponse
from workflow_engine.services.scheduler_service import (
    WorkflowScheduler,
    build_trigger,
    interval_to_cron,
    to_cron_pattern,
)

from .helpers import build_workflow, node


@pytest.mark.parametrize(
    "interval, unit, pattern",
    [
        (5, "minutes", "0 */5 * * * *"),
        (30, "seconds", "*/30 * * * * *"),
        (2, "hours", "0 0 */2 * * *"),
        (3, "days", "0 0 0 */3 * *"),
        ("15", "minutes", "0 */15 * * * *"),
        (10, "fortnights", "0 */10 * * * *"),
    ],
)
def test_interval_to_cron(interval, unit, pattern):
    assert interval_to_cron(interval, unit) == pattern


@pytest.mark.parametrize(
    "interval, unit",
    [(60, "minutes"), (60, "seconds"), (24, "hours"), (31, "days"), (0, "minutes"), ("soon", "minutes")],
)
def test_interval_out_of_range_is_rejected(interval, unit):
    with pytest.raises(ScheduleConfigError):
        interval_to_cron(interval, unit)


def test_every_five_minutes_fires_on_five_minute_marks():
    trigger = build_trigger(interval_to_cron(5, "minutes"), "UTC")
    start = datetime(2024, 1, 1, 10, 2, 30, tzinfo=timezone.utc)

    first = trigger.get_next_fire_time(None, start)
    second = trigger.get_next_fire_time(first, first.replace(second=1))

    assert (first.minute, first.second) == (5, 0)
    assert (second - first).total_seconds() == 300


def test_to_cron_pattern_picks_schedule_type():
    assert to_cron_pattern({"interval": 10, "unit": "seconds"}) == "*/10 * * * * *"
    assert to_cron_pattern({"cronExpression": "0 9 * * 1-5"}) == "0 9 * * 1-5"
    assert to_cron_pattern({"scheduleType": "cron", "interval": 5, "cronExpression": "* * * * *"}) == "* * * * *"
    with pytest.raises(ScheduleConfigError):
        to_cron_pattern({"scheduleType": "cron"})


def test_build_trigger_accepts_five_fields_and_cron_weekdays():
    trigger = build_trigger("0 9 * * 1-5", "UTC")

    assert isinstance(trigger, CronTrigger)
    saturday = datetime(2024, 1, 6, 12, 0, tzinfo=timezone.utc)
    next_fire = trigger.get_next_fire_time(None, saturday)
    assert next_fire.weekday() == 0  # Monday
    assert (next_fire.hour, next_fire.minute) == (9, 0)


@pytest.mark.parametrize("pattern", ["* * *", "0 0 0 0 0 0 0", "0 99 * * * *"])
def test_build_trigger_rejects_invalid_patterns(pattern):
    with pytest.raises(ScheduleConfigError):
        build_trigger(pattern, "UTC")


@pytest.fixture
def execution_service():
    service = AsyncMock()
    service.start_execution.return_value = ExecutionQueuedResponse(execution_id="exec-1")
    return service


@pytest.fixture
def scheduler(workflow_store, execution_service):
    return WorkflowScheduler(workflow_store, execution_service, timezone_name="UTC")


def scheduled_workflow(workflow_id: str, **config):
    return build_workflow(
        [node("tick", "schedule", **config), node("next", "set")],
        workflow_id=workflow_id,
    )


def test_rescheduling_replaces_the_previous_timer(scheduler):
    scheduler.schedule_workflow("wf-1", {"interval": 5, "unit": "minutes"}, "user-1")
    pattern = scheduler.schedule_workflow("wf-1", {"interval": 10, "unit": "minutes"}, "user-1")

    assert pattern == "0 */10 * * * *"
    assert scheduler.get_scheduled_workflows() == {"wf-1": "0 */10 * * * *"}
    assert len(scheduler._scheduler.get_jobs()) == 1


def test_invalid_config_leaves_workflow_unscheduled(scheduler):
    scheduler.schedule_workflow("wf-1", {"interval": 5, "unit": "minutes"}, "user-1")

    with pytest.raises(ScheduleConfigError):
        scheduler.schedule_workflow("wf-1", {"interval": 60, "unit": "minutes"}, "user-1")

    assert not scheduler.is_scheduled("wf-1")


def test_unschedule_unknown_workflow(scheduler):
    assert scheduler.unschedule_workflow("never-scheduled") is False


@pytest.mark.asyncio
async def test_load_scheduled_workflows(scheduler, workflow_store):
    await workflow_store.save(scheduled_workflow("enabled", enabled=True, interval=5, unit="minutes"))
    await workflow_store.save(scheduled_workflow("disabled", enabled=False, interval=5))
    await workflow_store.save(scheduled_workflow("broken", enabled=True, interval=99, unit="minutes"))
    inactive = scheduled_workflow("inactive", enabled=True, interval=5)
    inactive.is_active = False
    await workflow_store.save(inactive)

    count = await scheduler.load_scheduled_workflows()

    assert count == 1
    assert set(scheduler.get_scheduled_workflows()) == {"enabled"}


def test_sync_workflow_follows_definition(scheduler):
    workflow = scheduled_workflow("wf-1", enabled=True, cronExpression="*/15 * * * *")
    assert scheduler.sync_workflow(workflow) is True
    assert scheduler.is_scheduled("wf-1")

    workflow.nodes[0].config["enabled"] = False
    assert scheduler.sync_workflow(workflow) is False
    assert not scheduler.is_scheduled("wf-1")


@pytest.mark.asyncio
async def test_firing_queues_a_schedule_execution(scheduler, workflow_store, execution_service):
    workflow = scheduled_workflow("wf-1", enabled=True, interval=5)
    await workflow_store.save(workflow)
    config = {"enabled": True, "interval": 5}

    await scheduler._fire("wf-1", config, "user-1")

    execution_service.start_execution.assert_awaited_once()
    args, kwargs = execution_service.start_execution.call_args
    assert args[0].id == "wf-1"
    assert args[1] == "user-1"
    assert args[2]["scheduleConfig"] == config
    assert "scheduledAt" in args[2]
    assert kwargs["mode"] == "schedule"


@pytest.mark.asyncio
async def test_firing_for_missing_workflow_unschedules(scheduler, execution_service):
    scheduler.schedule_workflow("gone", {"interval": 5}, "user-1")

    await scheduler._fire("gone", {"interval": 5}, "user-1")

    assert not scheduler.is_scheduled("gone")
    execution_service.start_execution.assert_not_awaited()


@pytest.mark.asyncio
async def test_firing_failure_is_contained(scheduler, workflow_store, execution_service):
    await workflow_store.save(scheduled_workflow("wf-1", enabled=True, interval=5))
    scheduler.schedule_workflow("wf-1", {"interval": 5}, "user-1")
    execution_service.start_execution.side_effect = RuntimeError("store down")

    await scheduler._fire("wf-1", {"interval": 5}, "user-1")

    assert scheduler.is_scheduled("wf-1")
