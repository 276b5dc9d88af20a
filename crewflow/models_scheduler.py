"""
Scheduled Task Models
Durable queue state for delayed, deduplicated, retryable work
"""

from enum import Enum

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.sql import func

from .database import Base
from .models import generate_uuid


class TaskType(str, Enum):
    """Every kind of deferred work the worker knows how to run"""

    LEAD_FOLLOWUP = "lead_followup"
    JOB_BROADCAST = "job_broadcast"
    DAY_BEFORE_REMINDER = "day_before_reminder"
    JOB_REMINDER = "job_reminder"
    POST_SERVICE_FOLLOWUP = "post_service_followup"


class TaskStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


# Statuses during which a task_key is reserved
ACTIVE_STATUSES = (TaskStatus.PENDING.value, TaskStatus.PROCESSING.value)


class ScheduledTask(Base):
    """A unit of deferred work drained by the poll cycle"""

    __tablename__ = "scheduled_tasks"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=True, index=True)

    # Task identification
    task_type = Column(String(50), nullable=False)
    task_key = Column(String(255), nullable=True)  # Deduplication key, e.g. lead-123-stage-1

    # Execution timing (naive UTC)
    scheduled_for = Column(DateTime, nullable=False)

    payload = Column(JSON, nullable=False, default=dict)

    # Execution tracking
    status = Column(String(20), nullable=False, default=TaskStatus.PENDING.value)
    attempts = Column(Integer, nullable=False, default=0)
    max_attempts = Column(Integer, nullable=False, default=3)
    last_error = Column(Text, nullable=True)
    claimed_at = Column(DateTime, nullable=True)  # Liveness: stale claims get reclaimed

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
    executed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        # A key may be reused once its previous task reached a terminal state
        Index(
            "uq_scheduled_tasks_active_key",
            "task_key",
            unique=True,
            postgresql_where=status.in_(ACTIVE_STATUSES),
            sqlite_where=status.in_(ACTIVE_STATUSES),
        ),
        Index("idx_scheduled_tasks_due", "status", "scheduled_for"),
        Index("idx_scheduled_tasks_type", "task_type", "status"),
    )

    def __repr__(self):
        return f"<ScheduledTask {self.task_type} key={self.task_key} status={self.status}>"
