"""
Assignment service - Sequential crew offers for a job

A job is offered to one cleaner at a time. Accepting confirms the job,
declining moves the offer to the next eligible cleaner, and running out of
cleaners escalates to the business owner. State transitions are conditional
updates so a stale accept/decline tap is a harmless no-op.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Iterable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models import Cleaner, Job
from ...services import message_templates as templates
from ...services.eligibility import EligibilityResolver, NearestAvailableCleanerResolver
from ...services.notification_service import notify_owner
from ...services.system_events import log_system_event
from ...shared.timeutils import format_date_human, utcnow
from ..alerts.service import AlertService, AlertType
from .repository import AssignmentRepository

logger = logging.getLogger(__name__)

CLOSED_JOB_STATUSES = ("completed", "cancelled")


class JobNotFoundError(Exception):
    pass


class AssignmentNotFoundError(Exception):
    pass


class OfferOutcome(str, Enum):
    OFFERED = "offered"
    EXHAUSTED = "exhausted"
    ALREADY_PENDING = "already_pending"
    ALREADY_CONFIRMED = "already_confirmed"
    JOB_CLOSED = "job_closed"


class ResponseOutcome(str, Enum):
    CONFIRMED = "confirmed"
    DECLINED = "declined"
    ALREADY_SETTLED = "already_settled"


@dataclass
class OfferResult:
    outcome: OfferOutcome
    job_id: int
    assignment_id: Optional[int] = None
    cleaner_id: Optional[int] = None
    distance_miles: Optional[float] = None
    offer_sent: bool = False


@dataclass
class ResponseResult:
    outcome: ResponseOutcome
    assignment_id: int
    job_id: int
    status: str
    customer_notified: bool = False
    next_offer: Optional[OfferResult] = None
    escalated: bool = False


@dataclass
class EscalationResult:
    alert_id: Optional[int] = None
    customer_notified: bool = False
    owner_notified: bool = False


@dataclass
class AssignmentStats:
    job_id: int
    attempts: int = 0
    pending: int = 0
    confirmed: int = 0
    declined: int = 0
    cancelled: int = 0
    cleaners_contacted: int = 0
    current_cleaner_id: Optional[int] = None
    cleaner_ids: list[int] = field(default_factory=list)


class AssignmentCascade:
    """Service layer for the offer / accept / decline / escalate cycle"""

    def __init__(
        self,
        db: Session,
        notifier,
        resolver: Optional[EligibilityResolver] = None,
        rescheduler=None,
        sequencer=None,
        now_fn: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.notifier = notifier
        self.resolver = resolver or NearestAvailableCleanerResolver()
        self.rescheduler = rescheduler
        self.sequencer = sequencer
        self.now = now_fn
        self.repo = AssignmentRepository()
        self.alerts = AlertService(db, now_fn=now_fn)

    def _get_job(self, job_id: int) -> Job:
        job = self.repo.get_job(self.db, job_id)
        if not job:
            raise JobNotFoundError(f"Job {job_id} not found")
        return job

    async def _message_cleaner(self, cleaner: Cleaner, job: Job, body: str, message_type: str) -> bool:
        """Telegram when the cleaner has a chat id, SMS otherwise"""
        if cleaner.telegram_id:
            success, error = await self.notifier.send_chat(
                cleaner.telegram_id, body, message_type=message_type, tenant=job.tenant,
                entity_type="Job", entity_id=job.id,
            )
        elif cleaner.phone:
            success, error = await self.notifier.send_sms(
                cleaner.phone, body, message_type=message_type, tenant=job.tenant,
                entity_type="Job", entity_id=job.id,
            )
        else:
            success, error = False, "Cleaner has no contact channel"

        if not success:
            logger.warning(f"⚠️ {message_type} message to cleaner {cleaner.id} failed: {error}")
            log_system_event(
                self.db, source="cascade", event_type="NOTIFICATION_FAILED",
                message=f"{message_type} to cleaner {cleaner.id} failed: {error}",
                tenant_id=job.tenant_id, job_id=job.id, cleaner_id=cleaner.id,
            )
        return success

    async def _message_customer(self, job: Job, body: str, message_type: str) -> bool:
        customer = job.customer
        phone = job.phone_number or (customer.phone_number if customer else None)
        if not phone:
            logger.warning(f"⚠️ Job {job.id} has no customer phone for {message_type}")
            return False
        success, error = await self.notifier.send_sms(
            phone, body, message_type=message_type, tenant=job.tenant, entity_type="Job", entity_id=job.id,
        )
        if not success:
            logger.warning(f"⚠️ {message_type} SMS for job {job.id} failed: {error}")
            log_system_event(
                self.db, source="cascade", event_type="NOTIFICATION_FAILED",
                message=f"{message_type} to customer failed: {error}",
                tenant_id=job.tenant_id, job_id=job.id, phone_number=phone,
            )
        return success

    async def offer_to_next_candidate(
        self,
        job_id: int,
        excluded_cleaner_ids: Iterable[int] = (),
        candidate_ids: Optional[Iterable[int]] = None,
    ) -> OfferResult:
        """Create a pending offer for the next eligible cleaner and send it"""
        job = self._get_job(job_id)

        if job.status in CLOSED_JOB_STATUSES:
            logger.info(f"⏭️ Job {job_id} is {job.status}, no offer made")
            return OfferResult(OfferOutcome.JOB_CLOSED, job_id)

        live = self.repo.get_live_for_job(self.db, job_id)
        if live:
            outcome = OfferOutcome.ALREADY_CONFIRMED if live.status == "confirmed" else OfferOutcome.ALREADY_PENDING
            logger.info(f"⏭️ Job {job_id} already has a {live.status} assignment ({live.id})")
            return OfferResult(outcome, job_id, assignment_id=live.id, cleaner_id=live.cleaner_id)

        candidate = self.resolver.next_candidate(self.db, job, set(excluded_cleaner_ids), candidate_ids)
        if candidate is None:
            logger.warning(f"⚠️ No more eligible cleaners for job {job_id}")
            return OfferResult(OfferOutcome.EXHAUSTED, job_id)

        cleaner = candidate.cleaner
        try:
            assignment = self.repo.create(
                self.db,
                tenant_id=job.tenant_id,
                job_id=job_id,
                cleaner_id=cleaner.id,
                status="pending",
                distance_miles=candidate.distance_miles,
                assigned_at=self.now(),
            )
        except IntegrityError:
            # Another offer for this job was created concurrently
            self.db.rollback()
            live = self.repo.get_live_for_job(self.db, job_id)
            logger.info(f"⏭️ Job {job_id} received a concurrent offer, skipping")
            return OfferResult(
                OfferOutcome.ALREADY_PENDING, job_id,
                assignment_id=live.id if live else None,
                cleaner_id=live.cleaner_id if live else None,
            )

        logger.info(f"📨 Offering job {job_id} to cleaner {cleaner.name} ({cleaner.id})")
        sent = await self._message_cleaner(
            cleaner, job, templates.job_offer(job, format_date_human(job.date) if job.date else "TBD"), "job_offer"
        )
        log_system_event(
            self.db, source="cascade", event_type="CLEANER_OFFERED",
            message=f"Job {job_id} offered to {cleaner.name}",
            tenant_id=job.tenant_id, job_id=job_id, cleaner_id=cleaner.id,
            metadata={"assignment_id": assignment.id, "distance_miles": candidate.distance_miles, "sent": sent},
        )
        return OfferResult(
            OfferOutcome.OFFERED,
            job_id,
            assignment_id=assignment.id,
            cleaner_id=cleaner.id,
            distance_miles=candidate.distance_miles,
            offer_sent=sent,
        )

    async def on_accept(self, assignment_id: int) -> ResponseResult:
        assignment = self.repo.get_assignment(self.db, assignment_id)
        if not assignment:
            raise AssignmentNotFoundError(f"Assignment {assignment_id} not found")
        job_id, cleaner_id = assignment.job_id, assignment.cleaner_id

        job = self._get_job(job_id)
        now = self.now()
        # Assignment and job flags commit together
        if self.repo.respond(self.db, assignment_id, "confirmed", now, commit=False) == 0:
            self.db.rollback()
            current = self.repo.get_assignment(self.db, assignment_id)
            logger.info(f"⏭️ Assignment {assignment_id} already {current.status}")
            return ResponseResult(ResponseOutcome.ALREADY_SETTLED, assignment_id, job_id, current.status)

        job.cleaner_id = cleaner_id
        job.cleaner_confirmed = True
        job.confirmed_at = now
        self.db.commit()
        logger.info(f"✅ Cleaner {cleaner_id} confirmed for job {job_id}")

        if self.sequencer is not None:
            self.sequencer.cancel_job_broadcast(job_id)

        cleaner = self.repo.get_cleaner(self.db, cleaner_id)
        date_str = format_date_human(job.date) if job.date else "your scheduled date"
        customer_name = job.customer.first_name if job.customer else None

        customer_notified = await self._message_customer(
            job,
            templates.cleaner_assigned(customer_name, cleaner.name, date_str, job.scheduled_at, cleaner.phone),
            "cleaner_assigned",
        )
        if customer_notified:
            job.customer_notified = True
            self.db.commit()

        await self._message_cleaner(cleaner, job, templates.cleaner_confirmed(job, date_str), "assignment_confirmed")

        log_system_event(
            self.db, source="cascade", event_type="CLEANER_ACCEPTED",
            message=f"{cleaner.name} accepted job {job_id}",
            tenant_id=job.tenant_id, job_id=job_id, cleaner_id=cleaner_id,
            metadata={"assignment_id": assignment_id, "customer_notified": customer_notified},
        )
        return ResponseResult(
            ResponseOutcome.CONFIRMED, assignment_id, job_id, "confirmed", customer_notified=customer_notified
        )

    async def on_decline(self, assignment_id: int) -> ResponseResult:
        assignment = self.repo.get_assignment(self.db, assignment_id)
        if not assignment:
            raise AssignmentNotFoundError(f"Assignment {assignment_id} not found")
        job_id, cleaner_id = assignment.job_id, assignment.cleaner_id

        if self.repo.respond(self.db, assignment_id, "declined", self.now()) == 0:
            current = self.repo.get_assignment(self.db, assignment_id)
            logger.info(f"⏭️ Assignment {assignment_id} already {current.status}")
            return ResponseResult(ResponseOutcome.ALREADY_SETTLED, assignment_id, job_id, current.status)

        job = self._get_job(job_id)
        cleaner = self.repo.get_cleaner(self.db, cleaner_id)
        logger.info(f"🙅 Cleaner {cleaner_id} declined job {job_id}")
        await self._message_cleaner(cleaner, job, templates.cleaner_decline_ack(), "assignment_declined")
        log_system_event(
            self.db, source="cascade", event_type="CLEANER_DECLINED",
            message=f"{cleaner.name} declined job {job_id}",
            tenant_id=job.tenant_id, job_id=job_id, cleaner_id=cleaner_id,
            metadata={"assignment_id": assignment_id},
        )

        excluded = self.repo.get_declined_cleaner_ids(self.db, job_id)
        next_offer = await self.offer_to_next_candidate(job_id, excluded)

        escalated = False
        if next_offer.outcome == OfferOutcome.EXHAUSTED:
            await self.escalate(job, reason=f"all {len(excluded)} contacted cleaner(s) declined")
            escalated = True

        return ResponseResult(
            ResponseOutcome.DECLINED, assignment_id, job_id, "declined",
            next_offer=next_offer, escalated=escalated,
        )

    async def nudge_pending(self, job_id: int) -> bool:
        """Remind the cleaner holding the pending offer; False if nobody holds one"""
        job = self._get_job(job_id)
        live = self.repo.get_live_for_job(self.db, job_id)
        if not live or live.status != "pending":
            return False
        cleaner = self.repo.get_cleaner(self.db, live.cleaner_id)
        date_str = format_date_human(job.date) if job.date else "TBD"
        return await self._message_cleaner(cleaner, job, templates.urgent_offer_nudge(job, date_str), "offer_nudge")

    async def escalate(self, job: Job, reason: str, notify_customer: bool = True) -> EscalationResult:
        """Record an assignment_exhausted alert, apologise to the customer and tell the owner"""
        date_str = format_date_human(job.date) if job.date else "the requested date"
        customer = job.customer
        declined = len(self.repo.get_declined_cleaner_ids(self.db, job.id))

        alert = self.alerts.create_alert(
            AlertType.ASSIGNMENT_EXHAUSTED,
            f"No cleaner available for job {job.id} on {date_str}: {reason}",
            tenant_id=job.tenant_id,
            job_id=job.id,
            threshold_value=0,
            actual_value=declined,
        )
        result = EscalationResult(alert_id=alert.id if alert else None)

        if self.sequencer is not None:
            # Escalation ends the cascade; later broadcast phases must not fire
            self.sequencer.cancel_job_broadcast(job.id)

        if notify_customer:
            result.customer_notified = await self._message_customer(
                job,
                templates.no_cleaners_available(customer.first_name if customer else None, date_str),
                "no_cleaners_available",
            )

        owner_ok, owner_error = await notify_owner(
            self.notifier,
            job.tenant,
            templates.owner_escalation(job, date_str, reason, customer.full_name if customer else None),
            message_type="owner_escalation",
            job_id=job.id,
        )
        result.owner_notified = owner_ok
        if not owner_ok:
            logger.error(f"❌ Owner escalation for job {job.id} not delivered: {owner_error}")

        log_system_event(
            self.db, source="cascade", event_type="OWNER_ACTION_REQUIRED",
            message=f"No more available cleaners for job {job.id}",
            tenant_id=job.tenant_id, job_id=job.id, phone_number=job.phone_number,
            metadata={
                "job_date": job.date.isoformat() if job.date else None,
                "job_time": job.scheduled_at,
                "reason": reason,
                "owner_notified": owner_ok,
            },
        )
        return result

    async def reschedule_and_reoffer(self, job_id: int, target_date, reason: str = "customer_request") -> dict:
        """Move the job through the shared rescheduler and reopen the cascade when nobody is confirmed"""
        if self.rescheduler is None:
            raise RuntimeError("AssignmentCascade was built without a JobRescheduler")

        job = self._get_job(job_id)
        outcome = await self.rescheduler.reschedule(job, target_date, reason=reason)
        result = {
            "job_id": job_id,
            "rescheduled": outcome.success,
            "notifications_sent": outcome.notifications,
            "error": outcome.error,
            "offer": None,
            "escalated": False,
        }
        if not outcome.success:
            return result

        if not job.cleaner_confirmed:
            # Offers made for the old date are void; declines for it no longer apply
            self.repo.cancel_live_for_job(self.db, job_id, self.now())
            offer = await self.offer_to_next_candidate(job_id, excluded_cleaner_ids=())
            result["offer"] = offer
            if offer.outcome == OfferOutcome.EXHAUSTED:
                await self.escalate(job, reason="no cleaner available on the new date")
                result["escalated"] = True
        return result

    def assignment_stats(self, job_id: int) -> AssignmentStats:
        self._get_job(job_id)
        assignments = self.repo.get_for_job(self.db, job_id)
        stats = AssignmentStats(job_id=job_id, attempts=len(assignments))
        for assignment in assignments:
            if assignment.status in ("pending", "confirmed", "declined", "cancelled"):
                setattr(stats, assignment.status, getattr(stats, assignment.status) + 1)
            if assignment.status in ("pending", "confirmed"):
                stats.current_cleaner_id = assignment.cleaner_id
            if assignment.cleaner_id not in stats.cleaner_ids:
                stats.cleaner_ids.append(assignment.cleaner_id)
        stats.cleaners_contacted = len(stats.cleaner_ids)
        return stats
