"""
Job rescheduling
The one routine that moves a job to another date and tells the people involved
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Job, Tenant
from ...services import message_templates as templates
from ...services.system_events import log_system_event
from ...shared.timeutils import format_date_human, parse_date, utcnow

logger = logging.getLogger(__name__)


@dataclass
class RescheduleOutcome:
    success: bool
    notifications: int = 0
    error: Optional[str] = None


class JobRescheduler:
    """
    Persist the date change first, then notify.

    A store failure rolls back and reports failure without sending anything.
    Notification failures are logged and never undo the date change.
    """

    def __init__(self, db: Session, notifier, sequencer=None, now_fn=utcnow):
        self.db = db
        self.notifier = notifier
        self.sequencer = sequencer
        self.now = now_fn

    async def reschedule(
        self,
        job: Job,
        target_date,
        original_date=None,
        notify: bool = True,
        reason: str = "weather",
    ) -> RescheduleOutcome:
        target: date = parse_date(target_date)
        original: Optional[date] = parse_date(original_date) if original_date else job.date
        job_id = job.id

        try:
            job.date = target
            job.updated_at = self.now()
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Failed to reschedule job {job_id} to {target}: {e}")
            return RescheduleOutcome(success=False, error=str(e))

        logger.info(f"📅 Job {job_id} moved {original} -> {target} ({reason})")
        self._move_day_before_reminder(job)
        self._cancel_crew_reminders(job)

        notifications = 0
        if notify:
            notifications = await self._notify(job, original, target, reason)

        log_system_event(
            self.db,
            source="rescheduler",
            event_type="JOB_RESCHEDULED",
            message=f"Job {job_id} moved from {original} to {target}",
            tenant_id=job.tenant_id,
            job_id=job_id,
            phone_number=job.phone_number,
            metadata={
                "original_date": original.isoformat() if original else None,
                "new_date": target.isoformat(),
                "reason": reason,
                "notifications_sent": notifications,
            },
        )
        return RescheduleOutcome(success=True, notifications=notifications)

    def _move_day_before_reminder(self, job: Job):
        """Re-plan the customer's day-before reminder for the new date if one was pending"""
        if self.sequencer is None:
            return
        from ..scheduling.sequencer import day_before_key

        try:
            if self.sequencer.scheduler.cancel(day_before_key(job.id)):
                customer = job.customer
                self.sequencer.schedule_day_before_reminder(
                    job.id,
                    job.phone_number or (customer.phone_number if customer else None),
                    customer.full_name if customer else None,
                    job.date,
                    tenant_id=job.tenant_id,
                    tz_name=job.tenant.timezone if job.tenant else None,
                )
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Failed to move day-before reminder for job {job.id}: {e}")

    def _cancel_crew_reminders(self, job: Job):
        """Crew reminders are timed for the old start and get re-requested for the new one"""
        if self.sequencer is None or not job.cleaner_id:
            return
        try:
            cancelled = self.sequencer.cancel_job_reminders(job.id, job.cleaner_id)
            if cancelled:
                logger.info(f"🔕 Cancelled {cancelled} crew reminder(s) for moved job {job.id}")
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Failed to cancel crew reminders for job {job.id}: {e}")

    async def _notify(self, job: Job, original: Optional[date], target: date, reason: str) -> int:
        tenant: Optional[Tenant] = job.tenant
        business = templates.business_name(tenant)
        old_str = format_date_human(original) if original else "your original date"
        new_str = format_date_human(target)
        sent = 0

        customer = job.customer
        phone = job.phone_number or (customer.phone_number if customer else None)
        if phone:
            build = templates.weather_reschedule if reason == "weather" else templates.general_reschedule
            body = build(
                customer.first_name if customer else None, business, old_str, new_str, job.scheduled_at
            )
            success, error = await self.notifier.send_sms(
                phone, body, message_type="job_rescheduled", tenant=tenant,
                entity_type="Job", entity_id=job.id,
            )
            if success:
                sent += 1
            else:
                logger.warning(f"⚠️ Reschedule SMS for job {job.id} failed: {error}")

        cleaner = job.cleaner if job.cleaner_confirmed else None
        if cleaner and cleaner.telegram_id:
            body = templates.crew_schedule_change(job, old_str, new_str, reason)
            success, error = await self.notifier.send_chat(
                cleaner.telegram_id, body, message_type="schedule_change", tenant=tenant,
                entity_type="Job", entity_id=job.id,
            )
            if success:
                sent += 1
            else:
                logger.warning(f"⚠️ Crew schedule change for job {job.id} failed: {error}")

        return sent
