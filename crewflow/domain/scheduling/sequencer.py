"""
Follow-up sequencing

Turns business events into timed task plans. Task keys are derived from the
entity ids so re-triggering an event never enqueues the same work twice.
"""

import logging
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from ...config import DAY_BEFORE_REMINDER_HOUR, POST_SERVICE_FOLLOWUP_DELAY_HOURS
from ...models import Tenant
from ...models_scheduler import TaskType
from ...shared.timeutils import local_to_utc, parse_date
from .scheduler import TaskScheduler

logger = logging.getLogger(__name__)

DEFAULT_LEAD_DELAYS = [0, 10, 15, 20, 30]  # minutes


class FollowUpAction(str, Enum):
    TEXT = "text"
    CALL = "call"
    DOUBLE_CALL = "double_call"


class BroadcastPhase(str, Enum):
    INITIAL = "initial"
    URGENT = "urgent"
    ESCALATE = "escalate"


class ReminderType(str, Enum):
    ONE_HOUR = "one_hour"
    JOB_START = "job_start"


LEAD_FOLLOW_UP_STAGES = [
    (1, FollowUpAction.TEXT),
    (2, FollowUpAction.CALL),
    (3, FollowUpAction.DOUBLE_CALL),
    (4, FollowUpAction.TEXT),
    (5, FollowUpAction.CALL),
]

BROADCAST_PHASES = [
    (BroadcastPhase.INITIAL, timedelta(0)),
    (BroadcastPhase.URGENT, timedelta(minutes=10)),
    (BroadcastPhase.ESCALATE, timedelta(minutes=20)),
]


def lead_stage_key(lead_id, stage: int) -> str:
    return f"lead-{lead_id}-stage-{stage}"


def broadcast_key(job_id, phase: BroadcastPhase) -> str:
    return f"job-{job_id}-broadcast-{phase.value}"


def day_before_key(job_id) -> str:
    return f"reminder-{job_id}-day-before"


def job_reminder_key(job_id, cleaner_id, reminder_type: ReminderType) -> str:
    return f"job-{job_id}-cleaner-{cleaner_id}-{reminder_type.value}"


def post_service_key(job_id) -> str:
    return f"job-{job_id}-post-service"


class FollowUpSequencer:
    """Builds stage plans and enqueues them through the scheduler"""

    def __init__(self, db: Session, scheduler: Optional[TaskScheduler] = None):
        self.db = db
        self.scheduler = scheduler or TaskScheduler(db)

    def _tenant_timezone(self, tenant_id: Optional[str]) -> Optional[str]:
        if not tenant_id:
            return None
        tenant = self.db.query(Tenant).filter(Tenant.id == tenant_id).first()
        return tenant.timezone if tenant else None

    def schedule_lead_follow_up(
        self,
        lead_id,
        phone: str,
        name: Optional[str],
        delays: Optional[list[int]] = None,
        tenant_id: Optional[str] = None,
    ) -> list[str]:
        """One task per stage; delays are minutes from now, extra delays are ignored"""
        delays = DEFAULT_LEAD_DELAYS if delays is None else delays
        now = self.scheduler.now()
        task_ids = []
        for (stage, action), delay in zip(LEAD_FOLLOW_UP_STAGES, delays):
            task_ids.append(
                self.scheduler.schedule(
                    TaskType.LEAD_FOLLOWUP,
                    now + timedelta(minutes=delay),
                    payload={
                        "lead_id": lead_id,
                        "lead_phone": phone,
                        "lead_name": name,
                        "stage": stage,
                        "action": action.value,
                    },
                    task_key=lead_stage_key(lead_id, stage),
                    tenant_id=tenant_id,
                )
            )
        logger.info(f"📋 Lead {lead_id} follow-up sequence scheduled ({len(task_ids)} stages)")
        return task_ids

    def cancel_lead_follow_up(self, lead_id) -> int:
        return sum(self.scheduler.cancel(lead_stage_key(lead_id, stage)) for stage, _ in LEAD_FOLLOW_UP_STAGES)

    def schedule_job_broadcast(
        self, job_id, candidate_ids: Iterable[int] = (), tenant_id: Optional[str] = None
    ) -> list[str]:
        now = self.scheduler.now()
        candidates = list(candidate_ids or [])
        task_ids = [
            self.scheduler.schedule(
                TaskType.JOB_BROADCAST,
                now + delay,
                payload={"job_id": job_id, "candidate_ids": candidates, "phase": phase.value},
                task_key=broadcast_key(job_id, phase),
                tenant_id=tenant_id,
            )
            for phase, delay in BROADCAST_PHASES
        ]
        logger.info(f"📣 Job {job_id} broadcast scheduled ({len(task_ids)} phases)")
        return task_ids

    def cancel_job_broadcast(self, job_id) -> int:
        return sum(self.scheduler.cancel(broadcast_key(job_id, phase)) for phase, _ in BROADCAST_PHASES)

    def schedule_day_before_reminder(
        self,
        job_id,
        phone: str,
        name: Optional[str],
        appointment_date,
        tenant_id: Optional[str] = None,
        tz_name: Optional[str] = None,
    ) -> str:
        """Customer reminder at DAY_BEFORE_REMINDER_HOUR local time on the previous day"""
        appointment: date = parse_date(appointment_date)
        due = local_to_utc(
            appointment - timedelta(days=1),
            time(hour=DAY_BEFORE_REMINDER_HOUR),
            tz_name or self._tenant_timezone(tenant_id),
        )
        return self.scheduler.schedule(
            TaskType.DAY_BEFORE_REMINDER,
            due,
            payload={
                "job_id": job_id,
                "customer_phone": phone,
                "customer_name": name,
                "appointment_date": appointment.isoformat(),
            },
            task_key=day_before_key(job_id),
            tenant_id=tenant_id,
        )

    def schedule_job_reminder(
        self,
        job_id,
        cleaner_id,
        starts_at: datetime,
        reminder_type: ReminderType = ReminderType.ONE_HOUR,
        tenant_id: Optional[str] = None,
        job_date=None,
    ) -> str:
        """Crew reminder; starts_at is naive UTC"""
        reminder_type = ReminderType(reminder_type)
        due = starts_at - timedelta(hours=1) if reminder_type == ReminderType.ONE_HOUR else starts_at
        payload = {"job_id": job_id, "cleaner_id": cleaner_id, "reminder_type": reminder_type.value}
        if job_date:
            payload["job_date"] = parse_date(job_date).isoformat()
        return self.scheduler.schedule(
            TaskType.JOB_REMINDER,
            due,
            payload=payload,
            task_key=job_reminder_key(job_id, cleaner_id, reminder_type),
            tenant_id=tenant_id,
        )

    def cancel_job_reminders(self, job_id, cleaner_id) -> int:
        return sum(
            self.scheduler.cancel(job_reminder_key(job_id, cleaner_id, reminder_type))
            for reminder_type in ReminderType
        )

    def schedule_post_service_follow_up(
        self,
        job_id,
        phone: str,
        name: Optional[str],
        completed_at: Optional[datetime] = None,
        tenant_id: Optional[str] = None,
    ) -> str:
        completed_at = completed_at or self.scheduler.now()
        return self.scheduler.schedule(
            TaskType.POST_SERVICE_FOLLOWUP,
            completed_at + timedelta(hours=POST_SERVICE_FOLLOWUP_DELAY_HOURS),
            payload={"job_id": job_id, "customer_phone": phone, "customer_name": name},
            task_key=post_service_key(job_id),
            tenant_id=tenant_id,
        )
