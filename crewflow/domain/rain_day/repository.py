"""Rain day repository - Job lookups for bulk rescheduling"""

from datetime import date
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models import Job, Tenant

CLOSED_JOB_STATUSES = ("cancelled", "completed")


class RainDayRepository:
    """Repository for rain day database operations"""

    @staticmethod
    def get_tenant(db: Session, tenant_id: Optional[str]) -> Optional[Tenant]:
        if tenant_id:
            return db.query(Tenant).filter(Tenant.id == tenant_id).first()
        return db.query(Tenant).filter(Tenant.active.is_(True)).order_by(Tenant.created_at, Tenant.id).first()

    @staticmethod
    def get_affected_jobs(db: Session, day: date, tenant_id: Optional[str]) -> list[Job]:
        """Open jobs on a date, in appointment order"""
        query = db.query(Job).filter(Job.date == day, Job.status.notin_(CLOSED_JOB_STATUSES))
        if tenant_id:
            query = query.filter(Job.tenant_id == tenant_id)
        return query.order_by(Job.scheduled_at, Job.id).all()

    @staticmethod
    def get_job_counts_by_date(db: Session, dates: list[date], tenant_id: Optional[str]) -> dict[date, int]:
        """Existing non-cancelled jobs per date; every requested date is present"""
        counts = {day: 0 for day in dates}
        if not dates:
            return counts
        query = db.query(Job.date, func.count(Job.id)).filter(
            Job.date.in_(dates), Job.status != "cancelled"
        )
        if tenant_id:
            query = query.filter(Job.tenant_id == tenant_id)
        for day, count in query.group_by(Job.date).all():
            if day in counts:
                counts[day] = count
        return counts
