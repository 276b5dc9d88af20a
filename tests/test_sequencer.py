from datetime import date, datetime, timedelta

import pytest

from crewflow.domain.scheduling.sequencer import (
    BROADCAST_PHASES,
    LEAD_FOLLOW_UP_STAGES,
    BroadcastPhase,
    FollowUpAction,
    ReminderType,
    broadcast_key,
    day_before_key,
    lead_stage_key,
)
from crewflow.models_scheduler import ScheduledTask, TaskType


def _tasks(db, task_type):
    db.expire_all()
    return (
        db.query(ScheduledTask)
        .filter(ScheduledTask.task_type == task_type.value)
        .order_by(ScheduledTask.scheduled_for)
        .all()
    )


def test_lead_stages_follow_text_call_double_call_pattern():
    assert [action for _, action in LEAD_FOLLOW_UP_STAGES] == [
        FollowUpAction.TEXT,
        FollowUpAction.CALL,
        FollowUpAction.DOUBLE_CALL,
        FollowUpAction.TEXT,
        FollowUpAction.CALL,
    ]


def test_schedule_lead_follow_up_creates_one_task_per_stage(db, sequencer, clock, lead):
    ids = sequencer.schedule_lead_follow_up(lead.id, lead.phone_number, lead.name, delays=[0, 10, 15, 20, 30])

    assert len(ids) == 5
    tasks = _tasks(db, TaskType.LEAD_FOLLOWUP)
    assert [t.scheduled_for for t in tasks] == [clock() + timedelta(minutes=m) for m in (0, 10, 15, 20, 30)]
    assert [t.task_key for t in tasks] == [lead_stage_key(lead.id, s) for s in range(1, 6)]
    assert tasks[2].payload == {
        "lead_id": lead.id,
        "lead_phone": "+15555550122",
        "lead_name": "Pat Lee",
        "stage": 3,
        "action": "double_call",
    }


def test_fewer_delays_than_stages_schedules_prefix(db, sequencer, lead):
    assert len(sequencer.schedule_lead_follow_up(lead.id, lead.phone_number, lead.name, delays=[0, 5])) == 2
    assert len(_tasks(db, TaskType.LEAD_FOLLOWUP)) == 2


def test_retriggering_lead_follow_up_is_idempotent(db, sequencer, lead):
    first = sequencer.schedule_lead_follow_up(lead.id, lead.phone_number, lead.name)
    second = sequencer.schedule_lead_follow_up(lead.id, lead.phone_number, lead.name)

    assert first == second
    assert len(_tasks(db, TaskType.LEAD_FOLLOWUP)) == 5


def test_cancel_lead_follow_up_cancels_remaining_stages(db, sequencer, scheduler, lead):
    ids = sequencer.schedule_lead_follow_up(lead.id, lead.phone_number, lead.name)
    scheduler.claim(ids[0])

    assert sequencer.cancel_lead_follow_up(lead.id) == 4
    statuses = [t.status for t in _tasks(db, TaskType.LEAD_FOLLOWUP)]
    assert statuses == ["processing", "cancelled", "cancelled", "cancelled", "cancelled"]


def test_job_broadcast_phases(db, sequencer, clock):
    sequencer.schedule_job_broadcast(42, candidate_ids=[3, 1])

    tasks = _tasks(db, TaskType.JOB_BROADCAST)
    assert [t.payload["phase"] for t in tasks] == ["initial", "urgent", "escalate"]
    assert [t.scheduled_for - clock() for t in tasks] == [delay for _, delay in BROADCAST_PHASES]
    assert tasks[0].task_key == broadcast_key(42, BroadcastPhase.INITIAL)
    assert tasks[1].payload["candidate_ids"] == [3, 1]


def test_cancel_job_broadcast(db, sequencer):
    sequencer.schedule_job_broadcast(42)
    assert sequencer.cancel_job_broadcast(42) == 3
    assert {t.status for t in _tasks(db, TaskType.JOB_BROADCAST)} == {"cancelled"}


def test_day_before_reminder_uses_tenant_local_afternoon(db, sequencer, tenant):
    # DST starts 2025-03-09 in Los Angeles, so 16:00 local is 23:00 UTC
    sequencer.schedule_day_before_reminder(
        7, "+15555550111", "Dana Smith", date(2025, 3, 10), tenant_id=tenant.id
    )

    (task,) = _tasks(db, TaskType.DAY_BEFORE_REMINDER)
    assert task.scheduled_for == datetime(2025, 3, 9, 23, 0)
    assert task.task_key == day_before_key(7)
    assert task.payload["appointment_date"] == "2025-03-10"


def test_day_before_reminder_accepts_iso_string_and_explicit_timezone(db, sequencer):
    sequencer.schedule_day_before_reminder(8, "+15555550111", None, "2025-01-15", tz_name="America/New_York")

    (task,) = _tasks(db, TaskType.DAY_BEFORE_REMINDER)
    assert task.scheduled_for == datetime(2025, 1, 14, 21, 0)


def test_past_due_reminder_is_still_enqueued(db, sequencer, scheduler, clock):
    sequencer.schedule_day_before_reminder(9, "+15555550111", None, date(2025, 3, 8), tz_name="UTC")

    (task,) = _tasks(db, TaskType.DAY_BEFORE_REMINDER)
    assert task.scheduled_for < clock()
    assert [t.id for t in scheduler.due_tasks()] == [task.id]


@pytest.mark.parametrize(
    "reminder_type, offset",
    [(ReminderType.ONE_HOUR, timedelta(hours=1)), (ReminderType.JOB_START, timedelta(0))],
)
def test_job_reminder_due_time(db, sequencer, reminder_type, offset):
    starts_at = datetime(2025, 3, 10, 17, 0)
    sequencer.schedule_job_reminder(5, 11, starts_at, reminder_type=reminder_type)

    (task,) = _tasks(db, TaskType.JOB_REMINDER)
    assert task.scheduled_for == starts_at - offset
    assert task.payload == {"job_id": 5, "cleaner_id": 11, "reminder_type": reminder_type.value}


def test_post_service_follow_up_delay(db, sequencer, clock):
    sequencer.schedule_post_service_follow_up(5, "+15555550111", "Dana Smith")

    (task,) = _tasks(db, TaskType.POST_SERVICE_FOLLOWUP)
    assert task.scheduled_for == clock() + timedelta(hours=2)
