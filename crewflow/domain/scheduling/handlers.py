"""
Task handlers

One handler per TaskType. A handler returns a small result dict on success,
raises DeliveryError when a send the task exists for did not go out (the
scheduler retries it), and raises InvalidTaskError for payloads that can never
succeed (the task fails permanently).
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Mapping, Optional

from sqlalchemy.orm import Session

from ...config import DOUBLE_CALL_GAP_SECONDS
from ...models import Cleaner, Job, Lead, Tenant
from ...models_scheduler import ScheduledTask, TaskType
from ...services import message_templates as templates
from ...shared.timeutils import format_date_human, parse_date
from ..assignments.service import AssignmentCascade, OfferOutcome
from .scheduler import TaskScheduler
from .sequencer import BroadcastPhase, FollowUpAction, FollowUpSequencer, ReminderType

logger = logging.getLogger(__name__)

CLOSED_LEAD_STATUSES = ("booked", "lost")
CLOSED_JOB_STATUSES = ("completed", "cancelled")


class DeliveryError(Exception):
    """A required message or call could not be delivered"""


class InvalidTaskError(Exception):
    """The task can never succeed; retrying is pointless"""


class UnknownTaskTypeError(InvalidTaskError):
    pass


@dataclass
class TaskContext:
    db: Session
    notifier: object
    scheduler: TaskScheduler
    sequencer: FollowUpSequencer
    cascade: AssignmentCascade
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    double_call_gap: float = DOUBLE_CALL_GAP_SECONDS


Handler = Callable[[TaskContext, ScheduledTask], Awaitable[dict]]


def _skipped(reason: str) -> dict:
    logger.info(f"⏭️ Skipping task: {reason}")
    return {"skipped": True, "reason": reason}


def _tenant(ctx: TaskContext, task: ScheduledTask) -> Optional[Tenant]:
    if not task.tenant_id:
        return None
    return ctx.db.query(Tenant).filter(Tenant.id == task.tenant_id).first()


def _require(payload: dict, key: str):
    if payload.get(key) in (None, ""):
        raise InvalidTaskError(f"Payload missing '{key}'")
    return payload[key]


# ============================================================================
# LEAD FOLLOW-UP
# ============================================================================


async def _lead_text(ctx: TaskContext, task: ScheduledTask, tenant: Optional[Tenant], lead: Optional[Lead]) -> dict:
    payload = task.payload
    business = templates.business_name(tenant)
    name = payload.get("lead_name")
    body = (
        templates.lead_first_text(name, business)
        if payload.get("stage") == 1
        else templates.lead_nudge_text(name, business)
    )
    success, error = await ctx.notifier.send_sms(
        payload["lead_phone"], body, message_type="lead_followup", tenant=tenant,
        entity_type="Lead", entity_id=payload.get("lead_id"),
    )
    if not success:
        raise DeliveryError(f"Lead text failed: {error}")
    if lead is not None and lead.status == "new":
        lead.status = "contacted"
        ctx.db.commit()
    return {"sent": "sms"}


async def _lead_call(ctx: TaskContext, task: ScheduledTask, tenant: Optional[Tenant], lead: Optional[Lead]) -> dict:
    payload = task.payload
    success, error = await ctx.notifier.place_call(
        payload["lead_phone"], payload.get("lead_name"),
        {"lead_id": payload.get("lead_id"), "stage": payload.get("stage"), "business": templates.business_name(tenant)},
    )
    if not success:
        raise DeliveryError(f"Lead call failed: {error}")
    return {"sent": "call"}


async def _lead_double_call(
    ctx: TaskContext, task: ScheduledTask, tenant: Optional[Tenant], lead: Optional[Lead]
) -> dict:
    """Two calls a short gap apart; one connected call is enough"""
    payload = task.payload
    context = {"lead_id": payload.get("lead_id"), "stage": payload.get("stage"), "business": templates.business_name(tenant)}
    first_ok, first_error = await ctx.notifier.place_call(payload["lead_phone"], payload.get("lead_name"), context)
    await ctx.sleep(ctx.double_call_gap)
    second_ok, second_error = await ctx.notifier.place_call(payload["lead_phone"], payload.get("lead_name"), context)
    if not (first_ok or second_ok):
        raise DeliveryError(f"Both calls failed: {first_error}; {second_error}")
    return {"sent": "double_call", "calls_connected": int(first_ok) + int(second_ok)}


LEAD_ACTION_HANDLERS = {
    FollowUpAction.TEXT: _lead_text,
    FollowUpAction.CALL: _lead_call,
    FollowUpAction.DOUBLE_CALL: _lead_double_call,
}


async def handle_lead_followup(ctx: TaskContext, task: ScheduledTask) -> dict:
    payload = task.payload or {}
    lead_id = _require(payload, "lead_id")
    _require(payload, "lead_phone")
    try:
        action = FollowUpAction(payload.get("action"))
    except ValueError as e:
        raise InvalidTaskError(f"Unknown follow-up action: {payload.get('action')}") from e

    lead = ctx.db.query(Lead).filter(Lead.id == lead_id).first()
    if lead is not None and lead.status in CLOSED_LEAD_STATUSES:
        return _skipped(f"lead {lead_id} is {lead.status}")

    logger.info(f"📋 Lead {lead_id} stage {payload.get('stage')}: {action.value}")
    return await LEAD_ACTION_HANDLERS[action](ctx, task, _tenant(ctx, task), lead)


# ============================================================================
# JOB BROADCAST
# ============================================================================


async def handle_job_broadcast(ctx: TaskContext, task: ScheduledTask) -> dict:
    payload = task.payload or {}
    job_id = _require(payload, "job_id")
    try:
        phase = BroadcastPhase(payload.get("phase"))
    except ValueError as e:
        raise InvalidTaskError(f"Unknown broadcast phase: {payload.get('phase')}") from e

    job = ctx.db.query(Job).filter(Job.id == job_id).first()
    if job is None:
        return _skipped(f"job {job_id} no longer exists")
    if job.status in CLOSED_JOB_STATUSES:
        return _skipped(f"job {job_id} is {job.status}")
    if job.cleaner_confirmed:
        return _skipped(f"job {job_id} already has a confirmed cleaner")

    candidate_ids = payload.get("candidate_ids") or None
    declined = ctx.cascade.repo.get_declined_cleaner_ids(ctx.db, job_id)

    if phase == BroadcastPhase.URGENT and await ctx.cascade.nudge_pending(job_id):
        return {"phase": phase.value, "nudged": True}

    if phase in (BroadcastPhase.INITIAL, BroadcastPhase.URGENT):
        offer = await ctx.cascade.offer_to_next_candidate(job_id, declined, candidate_ids)
        if offer.outcome == OfferOutcome.EXHAUSTED:
            await ctx.cascade.escalate(job, reason="no eligible cleaners for broadcast")
        return {"phase": phase.value, "offer": offer.outcome.value, "cleaner_id": offer.cleaner_id}

    escalation = await ctx.cascade.escalate(
        job, reason="no cleaner confirmed within 20 minutes", notify_customer=False
    )
    return {"phase": phase.value, "escalated": True, "alert_id": escalation.alert_id}


# ============================================================================
# CUSTOMER AND CREW REMINDERS
# ============================================================================


async def handle_day_before_reminder(ctx: TaskContext, task: ScheduledTask) -> dict:
    payload = task.payload or {}
    job_id = _require(payload, "job_id")
    job = ctx.db.query(Job).filter(Job.id == job_id).first()
    if job is None:
        return _skipped(f"job {job_id} no longer exists")
    if job.status in CLOSED_JOB_STATUSES:
        return _skipped(f"job {job_id} is {job.status}")

    appointment = payload.get("appointment_date")
    if appointment and job.date and parse_date(appointment) != job.date:
        return _skipped(f"job {job_id} moved to {job.date}")

    customer = job.customer
    phone = payload.get("customer_phone") or job.phone_number or (customer.phone_number if customer else None)
    if not phone:
        raise InvalidTaskError(f"No customer phone for job {job_id}")

    tenant = job.tenant or _tenant(ctx, task)
    body = templates.day_before_reminder(
        payload.get("customer_name") or (customer.first_name if customer else None),
        templates.business_name(tenant),
        format_date_human(job.date or appointment),
        job.scheduled_at,
    )
    success, error = await ctx.notifier.send_sms(
        phone, body, message_type="day_before_reminder", tenant=tenant, entity_type="Job", entity_id=job.id,
    )
    if not success:
        raise DeliveryError(f"Reminder SMS failed: {error}")
    return {"sent": "sms"}


async def handle_job_reminder(ctx: TaskContext, task: ScheduledTask) -> dict:
    payload = task.payload or {}
    job_id = _require(payload, "job_id")
    cleaner_id = _require(payload, "cleaner_id")
    try:
        reminder_type = ReminderType(payload.get("reminder_type", ReminderType.ONE_HOUR.value))
    except ValueError as e:
        raise InvalidTaskError(f"Unknown reminder type: {payload.get('reminder_type')}") from e

    job = ctx.db.query(Job).filter(Job.id == job_id).first()
    if job is None or job.status in CLOSED_JOB_STATUSES:
        return _skipped(f"job {job_id} is closed or gone")
    if job.cleaner_id != cleaner_id:
        return _skipped(f"cleaner {cleaner_id} no longer assigned to job {job_id}")
    job_date = payload.get("job_date")
    if job_date and job.date and parse_date(job_date) != job.date:
        return _skipped(f"job {job_id} moved to {job.date}")

    cleaner = ctx.db.query(Cleaner).filter(Cleaner.id == cleaner_id).first()
    if cleaner is None:
        return _skipped(f"cleaner {cleaner_id} no longer exists")

    body = templates.crew_job_reminder(job, reminder_type.value, format_date_human(job.date) if job.date else "today")
    if cleaner.telegram_id:
        success, error = await ctx.notifier.send_chat(
            cleaner.telegram_id, body, message_type="job_reminder", tenant=job.tenant,
            entity_type="Job", entity_id=job.id,
        )
    else:
        success, error = await ctx.notifier.send_sms(
            cleaner.phone, body, message_type="job_reminder", tenant=job.tenant,
            entity_type="Job", entity_id=job.id,
        )
    if not success:
        raise DeliveryError(f"Crew reminder failed: {error}")
    return {"sent": reminder_type.value}


async def handle_post_service_followup(ctx: TaskContext, task: ScheduledTask) -> dict:
    payload = task.payload or {}
    job_id = _require(payload, "job_id")
    job = ctx.db.query(Job).filter(Job.id == job_id).first()
    if job is None or job.status == "cancelled":
        return _skipped(f"job {job_id} is cancelled or gone")

    customer = job.customer
    phone = payload.get("customer_phone") or job.phone_number or (customer.phone_number if customer else None)
    if not phone:
        raise InvalidTaskError(f"No customer phone for job {job_id}")

    tenant = job.tenant or _tenant(ctx, task)
    body = templates.review_request(
        payload.get("customer_name") or (customer.first_name if customer else None),
        templates.business_name(tenant),
    )
    success, error = await ctx.notifier.send_sms(
        phone, body, message_type="post_service_followup", tenant=tenant, entity_type="Job", entity_id=job.id,
    )
    if not success:
        raise DeliveryError(f"Review request failed: {error}")
    return {"sent": "sms"}


# ============================================================================
# DISPATCH
# ============================================================================


DEFAULT_HANDLERS: dict[TaskType, Handler] = {
    TaskType.LEAD_FOLLOWUP: handle_lead_followup,
    TaskType.JOB_BROADCAST: handle_job_broadcast,
    TaskType.DAY_BEFORE_REMINDER: handle_day_before_reminder,
    TaskType.JOB_REMINDER: handle_job_reminder,
    TaskType.POST_SERVICE_FOLLOWUP: handle_post_service_followup,
}


class TaskDispatcher:
    """Routes a claimed task to the handler for its type"""

    def __init__(self, handlers: Optional[Mapping[TaskType, Handler]] = None):
        handlers = dict(DEFAULT_HANDLERS if handlers is None else handlers)
        missing = [task_type.value for task_type in TaskType if task_type not in handlers]
        if missing:
            raise ValueError(f"No handler registered for task type(s): {', '.join(missing)}")
        self.handlers = handlers

    async def dispatch(self, ctx: TaskContext, task: ScheduledTask) -> dict:
        try:
            task_type = TaskType(task.task_type)
        except ValueError as e:
            raise UnknownTaskTypeError(f"Unknown task type: {task.task_type}") from e
        return await self.handlers[task_type](ctx, task)


# Every follow-up action needs a handler too
_missing_actions = [action for action in FollowUpAction if action not in LEAD_ACTION_HANDLERS]
if _missing_actions:
    raise RuntimeError(f"No lead follow-up handler for: {_missing_actions}")
