from datetime import datetime, timedelta

import pytest

from crewflow.domain.scheduling.scheduler import TaskScheduler
from crewflow.models_scheduler import ScheduledTask, TaskType


def _get(db, task_id) -> ScheduledTask:
    db.expire_all()
    return db.query(ScheduledTask).filter(ScheduledTask.id == task_id).one()


def test_schedule_same_key_returns_existing_id(db, scheduler, clock):
    first = scheduler.schedule(TaskType.LEAD_FOLLOWUP, clock(), {"n": 1}, task_key="lead-1-stage-1")
    second = scheduler.schedule(TaskType.LEAD_FOLLOWUP, clock() + timedelta(hours=1), {"n": 2}, task_key="lead-1-stage-1")

    assert first == second
    assert db.query(ScheduledTask).count() == 1
    assert _get(db, first).payload == {"n": 1}


def test_schedule_without_key_never_dedups(db, scheduler, clock):
    scheduler.schedule(TaskType.JOB_REMINDER, clock(), {})
    scheduler.schedule(TaskType.JOB_REMINDER, clock(), {})
    assert db.query(ScheduledTask).count() == 2


def test_key_reusable_once_previous_task_is_terminal(db, scheduler, clock):
    first = scheduler.schedule(TaskType.LEAD_FOLLOWUP, clock(), {}, task_key="lead-1-stage-1")
    scheduler.claim(first)
    scheduler.complete(first)

    second = scheduler.schedule(TaskType.LEAD_FOLLOWUP, clock(), {}, task_key="lead-1-stage-1")
    assert second != first
    assert _get(db, second).status == "pending"


def test_schedule_race_resolved_by_unique_index(db, scheduler, clock, monkeypatch):
    existing = scheduler.schedule(TaskType.LEAD_FOLLOWUP, clock(), {}, task_key="lead-9-stage-1")

    real_lookup = scheduler.repo.get_active_by_key
    calls = []

    def lookup_misses_first_time(session, key):
        calls.append(key)
        if len(calls) == 1:
            return None
        return real_lookup(session, key)

    monkeypatch.setattr(scheduler.repo, "get_active_by_key", lookup_misses_first_time)

    assert scheduler.schedule(TaskType.LEAD_FOLLOWUP, clock(), {}, task_key="lead-9-stage-1") == existing
    assert db.query(ScheduledTask).count() == 1


def test_due_tasks_oldest_first_and_excludes_future(scheduler, clock):
    later = scheduler.schedule(TaskType.JOB_REMINDER, clock() - timedelta(minutes=1), {})
    earlier = scheduler.schedule(TaskType.JOB_REMINDER, clock() - timedelta(minutes=5), {})
    scheduler.schedule(TaskType.JOB_REMINDER, clock() + timedelta(minutes=5), {})

    assert [t.id for t in scheduler.due_tasks()] == [earlier, later]
    assert len(scheduler.due_tasks(limit=1)) == 1


def test_claim_is_exclusive_and_counts_attempt(db, scheduler, clock):
    task_id = scheduler.schedule(TaskType.JOB_REMINDER, clock(), {})

    claimed = scheduler.claim(task_id)
    assert claimed is not None
    assert scheduler.claim(task_id) is None

    task = _get(db, task_id)
    assert task.status == "processing"
    assert task.attempts == 1
    assert task.claimed_at == clock()


def test_competing_scheduler_cannot_claim_same_task(db, engine, scheduler, clock):
    from sqlalchemy.orm import sessionmaker

    other_session = sessionmaker(bind=engine)()
    try:
        other = TaskScheduler(other_session, now_fn=clock)
        task_id = scheduler.schedule(TaskType.JOB_REMINDER, clock(), {})

        results = [scheduler.claim(task_id), other.claim(task_id)]
        assert sum(r is not None for r in results) == 1
    finally:
        other_session.close()


def test_complete_records_execution_time(db, scheduler, clock):
    task_id = scheduler.schedule(TaskType.JOB_REMINDER, clock(), {})
    scheduler.claim(task_id)
    clock.advance(seconds=5)

    assert scheduler.complete(task_id) is True
    task = _get(db, task_id)
    assert task.status == "completed"
    assert task.executed_at == clock()
    assert scheduler.complete(task_id) is False


def test_failures_retry_until_max_attempts(db, scheduler, clock):
    task_id = scheduler.schedule(TaskType.JOB_REMINDER, clock(), {}, max_attempts=3)

    statuses = []
    for _ in range(3):
        assert scheduler.claim(task_id) is not None
        statuses.append(scheduler.fail(task_id, "boom"))

    assert statuses == ["pending", "pending", "failed"]
    task = _get(db, task_id)
    assert task.attempts == 3
    assert task.last_error == "boom"
    assert scheduler.claim(task_id) is None


def test_permanent_failure_skips_retries(db, scheduler, clock):
    task_id = scheduler.schedule(TaskType.JOB_REMINDER, clock(), {}, max_attempts=3)
    scheduler.claim(task_id)

    assert scheduler.fail(task_id, "bad payload", permanent=True) == "failed"
    assert _get(db, task_id).attempts == 1


def test_fail_on_task_not_processing_is_ignored(scheduler, clock):
    task_id = scheduler.schedule(TaskType.JOB_REMINDER, clock(), {})
    assert scheduler.fail(task_id, "nope") is None
    assert scheduler.fail("missing-id", "nope") is None


def test_retry_backoff_moves_due_time(db, clock):
    scheduler = TaskScheduler(db, now_fn=clock, retry_backoff_seconds=120)
    task_id = scheduler.schedule(TaskType.JOB_REMINDER, clock(), {})
    scheduler.claim(task_id)
    scheduler.fail(task_id, "try later")

    assert _get(db, task_id).scheduled_for == clock() + timedelta(seconds=120)
    assert scheduler.due_tasks() == []


def test_cancel_only_touches_pending(db, scheduler, clock):
    processing = scheduler.schedule(TaskType.LEAD_FOLLOWUP, clock(), {}, task_key="lead-1-stage-1")
    scheduler.claim(processing)
    pending = scheduler.schedule(TaskType.LEAD_FOLLOWUP, clock(), {}, task_key="lead-1-stage-2")

    assert scheduler.cancel("lead-1-stage-1") == 0
    assert scheduler.cancel("lead-1-stage-2") == 1
    assert scheduler.cancel("lead-1-stage-2") == 0
    assert scheduler.cancel("never-scheduled") == 0

    assert _get(db, processing).status == "processing"
    assert _get(db, pending).status == "cancelled"


def test_reclaim_stale_returns_task_to_pending(db, scheduler, clock):
    task_id = scheduler.schedule(TaskType.JOB_REMINDER, clock(), {})
    scheduler.claim(task_id)

    clock.advance(minutes=5)
    assert scheduler.reclaim_stale(timedelta(minutes=15)) == []

    clock.advance(minutes=20)
    assert scheduler.reclaim_stale(timedelta(minutes=15)) == [(task_id, "pending")]
    task = _get(db, task_id)
    assert task.status == "pending"
    assert task.claimed_at is None
    assert scheduler.claim(task_id) is not None


def test_reclaim_stale_fails_task_without_attempts_left(db, scheduler, clock):
    task_id = scheduler.schedule(TaskType.JOB_REMINDER, clock(), {}, max_attempts=1)
    scheduler.claim(task_id)
    clock.advance(hours=1)

    assert scheduler.reclaim_stale(timedelta(minutes=15)) == [(task_id, "failed")]
    assert _get(db, task_id).status == "failed"


@pytest.mark.parametrize("task_type", list(TaskType))
def test_task_type_stored_as_plain_value(db, scheduler, clock, task_type):
    task_id = scheduler.schedule(task_type, datetime(2025, 1, 1), {})
    assert _get(db, task_id).task_type == task_type.value
