"""
Durable task scheduler

At-least-once execution of delayed work stored in scheduled_tasks. Every state
change that could race with another worker is a conditional UPDATE; callers
check the returned value instead of catching exceptions.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...config import STALE_TASK_MINUTES, TASK_MAX_ATTEMPTS, TASK_POLL_LIMIT, TASK_RETRY_BACKOFF_SECONDS
from ...models_scheduler import ScheduledTask, TaskStatus, TaskType
from ...shared.timeutils import utcnow
from .repository import ScheduledTaskRepository

logger = logging.getLogger(__name__)


def _type_value(task_type) -> str:
    return task_type.value if isinstance(task_type, TaskType) else str(task_type)


class TaskScheduler:
    """Enqueue, claim and settle scheduled tasks"""

    def __init__(
        self,
        db: Session,
        now_fn: Callable[[], datetime] = utcnow,
        retry_backoff_seconds: int = TASK_RETRY_BACKOFF_SECONDS,
    ):
        self.db = db
        self.repo = ScheduledTaskRepository()
        self.now = now_fn
        self.retry_backoff_seconds = retry_backoff_seconds

    def schedule(
        self,
        task_type: TaskType,
        scheduled_for: datetime,
        payload: Optional[dict] = None,
        task_key: Optional[str] = None,
        tenant_id: Optional[str] = None,
        max_attempts: int = TASK_MAX_ATTEMPTS,
    ) -> str:
        """
        Insert a pending task and return its id.

        When task_key is already held by a pending or processing task nothing
        is inserted and the existing task's id is returned.
        """
        if task_key:
            existing = self.repo.get_active_by_key(self.db, task_key)
            if existing:
                logger.info(f"⏭️ Task {task_key} already scheduled ({existing.id}), skipping")
                return existing.id

        try:
            task = self.repo.create(
                self.db,
                tenant_id=tenant_id,
                task_type=_type_value(task_type),
                task_key=task_key,
                scheduled_for=scheduled_for,
                payload=payload or {},
                status=TaskStatus.PENDING.value,
                attempts=0,
                max_attempts=max_attempts,
            )
        except IntegrityError:
            # Lost the race to another writer holding the same key
            self.db.rollback()
            existing = self.repo.get_active_by_key(self.db, task_key) if task_key else None
            if existing is None:
                raise
            logger.info(f"⏭️ Task {task_key} scheduled concurrently ({existing.id}), skipping")
            return existing.id

        logger.info(
            f"📅 Scheduled {task.task_type} task {task.id} "
            f"for {scheduled_for.isoformat()} (key={task_key})"
        )
        return task.id

    def cancel(self, task_key: str) -> int:
        """Cancel pending tasks holding task_key; processing tasks are left alone"""
        count = self.repo.cancel_pending_by_key(self.db, task_key, self.now())
        if count:
            logger.info(f"🛑 Cancelled {count} task(s) with key {task_key}")
        return count

    def due_tasks(self, limit: int = TASK_POLL_LIMIT) -> list[ScheduledTask]:
        return self.repo.get_due(self.db, self.now(), limit)

    def claim(self, task_id: str) -> Optional[ScheduledTask]:
        """Take exclusive ownership of a pending task; None if someone else has it"""
        if self.repo.mark_processing(self.db, task_id, self.now()) == 0:
            logger.debug(f"Task {task_id} already claimed or no longer pending")
            return None
        return self.repo.get_by_id(self.db, task_id)

    def complete(self, task_id: str) -> bool:
        now = self.now()
        updated = self.repo.transition_from_processing(
            self.db,
            task_id,
            {
                ScheduledTask.status: TaskStatus.COMPLETED.value,
                ScheduledTask.executed_at: now,
                ScheduledTask.updated_at: now,
            },
        )
        if not updated:
            logger.warning(f"⚠️ Task {task_id} was not processing, completion ignored")
        return bool(updated)

    def fail(self, task_id: str, error: str, permanent: bool = False) -> Optional[str]:
        """
        Record a failed attempt.

        Returns the resulting status: pending when the task will be retried,
        failed when attempts are exhausted (or the failure is permanent), or
        None when the task was not processing.
        """
        task = self.repo.get_by_id(self.db, task_id)
        if task is None or task.status != TaskStatus.PROCESSING.value:
            logger.warning(f"⚠️ Task {task_id} was not processing, failure ignored")
            return None

        now = self.now()
        values = {
            ScheduledTask.last_error: (error or "")[:2000],
            ScheduledTask.updated_at: now,
            ScheduledTask.claimed_at: None,
        }
        if not permanent and task.attempts < task.max_attempts:
            next_status = TaskStatus.PENDING.value
            if self.retry_backoff_seconds:
                values[ScheduledTask.scheduled_for] = now + timedelta(seconds=self.retry_backoff_seconds)
        else:
            next_status = TaskStatus.FAILED.value
        values[ScheduledTask.status] = next_status

        if not self.repo.transition_from_processing(self.db, task_id, values):
            return None

        if next_status == TaskStatus.FAILED.value:
            logger.error(
                f"❌ Task {task_id} ({task.task_type}) failed permanently after "
                f"{task.attempts} attempt(s): {error}"
            )
        else:
            logger.warning(
                f"🔁 Task {task_id} ({task.task_type}) attempt {task.attempts}/"
                f"{task.max_attempts} failed, will retry: {error}"
            )
        return next_status

    def reclaim_stale(self, older_than: Optional[timedelta] = None) -> list[tuple[str, str]]:
        """
        Return processing tasks whose claim expired to pending, or fail them when out of attempts.

        Returns:
            (task_id, new_status) for every task moved
        """
        threshold = older_than if older_than is not None else timedelta(minutes=STALE_TASK_MINUTES)
        now = self.now()
        reclaimed = []
        for task in self.repo.get_stale_processing(self.db, now - threshold):
            next_status = (
                TaskStatus.PENDING.value
                if task.attempts < task.max_attempts
                else TaskStatus.FAILED.value
            )
            updated = self.repo.transition_from_processing(
                self.db,
                task.id,
                {
                    ScheduledTask.status: next_status,
                    ScheduledTask.claimed_at: None,
                    ScheduledTask.last_error: f"Claim expired after {threshold}",
                    ScheduledTask.updated_at: now,
                },
            )
            if updated:
                reclaimed.append((task.id, next_status))
                logger.warning(f"♻️ Reclaimed stale task {task.id} ({task.task_type}) -> {next_status}")
        return reclaimed
