"""Assignment repository - Database operations for cleaner offers"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Cleaner, CleanerAssignment, Job, LIVE_ASSIGNMENT_STATUSES


class AssignmentRepository:
    """Repository for cleaner assignment database operations"""

    @staticmethod
    def get_job(db: Session, job_id: int) -> Optional[Job]:
        return db.query(Job).filter(Job.id == job_id).first()

    @staticmethod
    def get_assignment(db: Session, assignment_id: int) -> Optional[CleanerAssignment]:
        return db.query(CleanerAssignment).filter(CleanerAssignment.id == assignment_id).first()

    @staticmethod
    def get_cleaner(db: Session, cleaner_id: int) -> Optional[Cleaner]:
        return db.query(Cleaner).filter(Cleaner.id == cleaner_id).first()

    @staticmethod
    def get_for_job(db: Session, job_id: int) -> list[CleanerAssignment]:
        return (
            db.query(CleanerAssignment)
            .filter(CleanerAssignment.job_id == job_id)
            .order_by(CleanerAssignment.id)
            .all()
        )

    @staticmethod
    def get_live_for_job(db: Session, job_id: int) -> Optional[CleanerAssignment]:
        return (
            db.query(CleanerAssignment)
            .filter(
                CleanerAssignment.job_id == job_id,
                CleanerAssignment.status.in_(LIVE_ASSIGNMENT_STATUSES),
            )
            .first()
        )

    @staticmethod
    def get_declined_cleaner_ids(db: Session, job_id: int) -> set[int]:
        rows = (
            db.query(CleanerAssignment.cleaner_id)
            .filter(CleanerAssignment.job_id == job_id, CleanerAssignment.status == "declined")
            .all()
        )
        return {row[0] for row in rows}

    @staticmethod
    def create(db: Session, **assignment_data) -> CleanerAssignment:
        assignment = CleanerAssignment(**assignment_data)
        db.add(assignment)
        db.commit()
        db.refresh(assignment)
        return assignment

    @staticmethod
    def respond(db: Session, assignment_id: int, new_status: str, now: datetime, commit: bool = True) -> int:
        """Conditional pending -> new_status; 0 means the offer was already settled"""
        count = (
            db.query(CleanerAssignment)
            .filter(CleanerAssignment.id == assignment_id, CleanerAssignment.status == "pending")
            .update(
                {CleanerAssignment.status: new_status, CleanerAssignment.responded_at: now},
                synchronize_session=False,
            )
        )
        if commit:
            db.commit()
        return count

    @staticmethod
    def cancel_live_for_job(db: Session, job_id: int, now: datetime) -> int:
        count = (
            db.query(CleanerAssignment)
            .filter(
                CleanerAssignment.job_id == job_id,
                CleanerAssignment.status.in_(LIVE_ASSIGNMENT_STATUSES),
            )
            .update(
                {CleanerAssignment.status: "cancelled", CleanerAssignment.responded_at: now},
                synchronize_session=False,
            )
        )
        db.commit()
        return count
