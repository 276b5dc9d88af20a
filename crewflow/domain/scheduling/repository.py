"""Scheduled task repository - Database operations for the task queue"""

from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models_scheduler import ScheduledTask, TaskStatus


class ScheduledTaskRepository:
    """Repository for scheduled task database operations"""

    @staticmethod
    def get_by_id(db: Session, task_id: str) -> Optional[ScheduledTask]:
        return db.query(ScheduledTask).filter(ScheduledTask.id == task_id).first()

    @staticmethod
    def get_active_by_key(db: Session, task_key: str) -> Optional[ScheduledTask]:
        """The pending/processing task currently holding a dedup key"""
        return (
            db.query(ScheduledTask)
            .filter(
                ScheduledTask.task_key == task_key,
                ScheduledTask.status.in_([TaskStatus.PENDING.value, TaskStatus.PROCESSING.value]),
            )
            .first()
        )

    @staticmethod
    def create(db: Session, **task_data) -> ScheduledTask:
        task = ScheduledTask(**task_data)
        db.add(task)
        db.commit()
        db.refresh(task)
        return task

    @staticmethod
    def get_due(db: Session, now: datetime, limit: int) -> list[ScheduledTask]:
        """Pending tasks whose due time has passed, oldest-due first"""
        return (
            db.query(ScheduledTask)
            .filter(
                ScheduledTask.status == TaskStatus.PENDING.value,
                ScheduledTask.scheduled_for <= now,
            )
            .order_by(ScheduledTask.scheduled_for, ScheduledTask.created_at)
            .limit(limit)
            .all()
        )

    @staticmethod
    def cancel_pending_by_key(db: Session, task_key: str, now: datetime) -> int:
        count = (
            db.query(ScheduledTask)
            .filter(
                ScheduledTask.task_key == task_key,
                ScheduledTask.status == TaskStatus.PENDING.value,
            )
            .update(
                {ScheduledTask.status: TaskStatus.CANCELLED.value, ScheduledTask.updated_at: now},
                synchronize_session=False,
            )
        )
        db.commit()
        return count

    @staticmethod
    def mark_processing(db: Session, task_id: str, now: datetime) -> int:
        """Conditional pending -> processing; attempts are counted in the same statement"""
        count = (
            db.query(ScheduledTask)
            .filter(
                ScheduledTask.id == task_id,
                ScheduledTask.status == TaskStatus.PENDING.value,
            )
            .update(
                {
                    ScheduledTask.status: TaskStatus.PROCESSING.value,
                    ScheduledTask.attempts: ScheduledTask.attempts + 1,
                    ScheduledTask.claimed_at: now,
                    ScheduledTask.updated_at: now,
                },
                synchronize_session=False,
            )
        )
        db.commit()
        return count

    @staticmethod
    def transition_from_processing(db: Session, task_id: str, values: dict) -> int:
        """Conditional update gated on the task still being processing"""
        count = (
            db.query(ScheduledTask)
            .filter(
                ScheduledTask.id == task_id,
                ScheduledTask.status == TaskStatus.PROCESSING.value,
            )
            .update(values, synchronize_session=False)
        )
        db.commit()
        return count

    @staticmethod
    def get_stale_processing(db: Session, claimed_before: datetime) -> list[ScheduledTask]:
        return (
            db.query(ScheduledTask)
            .filter(
                ScheduledTask.status == TaskStatus.PROCESSING.value,
                ScheduledTask.claimed_at < claimed_before,
            )
            .all()
        )

    @staticmethod
    def count_by_status(db: Session) -> dict[str, int]:
        rows = (
            db.query(ScheduledTask.status, func.count(ScheduledTask.id))
            .group_by(ScheduledTask.status)
            .all()
        )
        return {status: count for status, count in rows}
