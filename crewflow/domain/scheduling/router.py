"""Scheduling router - Automation triggers and cron endpoints"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ...database import get_db
from ...models import Job
from ...shared.cron_security import verify_cron_secret
from ..rain_day.router import get_rain_day_service
from ..rain_day.schemas import RainDayCheckRequest, RainDayCheckResponse
from ..rain_day.service import RainDayRedistributor
from .handlers import TaskContext
from .repository import ScheduledTaskRepository
from .runner import build_task_context, process_due_tasks
from .schemas import (
    CancelResponse,
    JobBroadcastRequest,
    LeadFollowUpRequest,
    PollSummaryResponse,
    ScheduledTasksResponse,
    SendReminderRequest,
    TaskStatusSummaryResponse,
)
from .sequencer import FollowUpSequencer, ReminderType

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Automation"])


def get_sequencer(db: Session = Depends(get_db)) -> FollowUpSequencer:
    """Dependency injection for FollowUpSequencer"""
    return FollowUpSequencer(db)


def get_task_context(db: Session = Depends(get_db)) -> TaskContext:
    return build_task_context(db)


# ============================================================================
# AUTOMATION TRIGGERS
# ============================================================================


@router.post("/automation/lead-followup", response_model=ScheduledTasksResponse)
async def schedule_lead_followup(
    data: LeadFollowUpRequest, sequencer: FollowUpSequencer = Depends(get_sequencer)
):
    """Start the text/call follow-up sequence for a new lead"""
    task_ids = sequencer.schedule_lead_follow_up(
        data.lead_id, data.phone, data.name, delays=data.delays, tenant_id=data.tenant_id
    )
    return ScheduledTasksResponse(task_ids=task_ids)


@router.post("/automation/lead-followup/{lead_id}/cancel", response_model=CancelResponse)
async def cancel_lead_followup(lead_id: int, sequencer: FollowUpSequencer = Depends(get_sequencer)):
    """Stop outstanding follow-up stages, e.g. once the lead has booked"""
    return CancelResponse(cancelled=sequencer.cancel_lead_follow_up(lead_id))


@router.post("/automation/job-broadcast", response_model=ScheduledTasksResponse)
async def schedule_job_broadcast(
    data: JobBroadcastRequest,
    db: Session = Depends(get_db),
    sequencer: FollowUpSequencer = Depends(get_sequencer),
):
    job = db.query(Job).filter(Job.id == data.job_id).first()
    if not job:
        raise HTTPException(status_code=404, detail=f"Job {data.job_id} not found")
    task_ids = sequencer.schedule_job_broadcast(
        data.job_id, data.candidate_ids, tenant_id=data.tenant_id or job.tenant_id
    )
    return ScheduledTasksResponse(task_ids=task_ids)


@router.post("/automation/send-reminder", response_model=ScheduledTasksResponse)
async def schedule_reminder(
    data: SendReminderRequest,
    db: Session = Depends(get_db),
    sequencer: FollowUpSequencer = Depends(get_sequencer),
):
    job = db.query(Job).filter(Job.id == data.job_id).first()
    if not job:
        raise HTTPException(status_code=404, detail=f"Job {data.job_id} not found")

    customer = job.customer
    phone = job.phone_number or (customer.phone_number if customer else None)
    name = customer.full_name if customer else None

    if data.reminder_type == "day_before":
        if not job.date:
            raise HTTPException(status_code=400, detail="Job has no date")
        task_id = sequencer.schedule_day_before_reminder(
            job.id, phone, name, job.date, tenant_id=job.tenant_id
        )
    elif data.reminder_type == "post_service":
        task_id = sequencer.schedule_post_service_follow_up(
            job.id, phone, name, completed_at=job.completed_at, tenant_id=job.tenant_id
        )
    else:
        if not job.cleaner_id or not data.starts_at:
            raise HTTPException(status_code=400, detail="Crew reminders need an assigned cleaner and starts_at")
        task_id = sequencer.schedule_job_reminder(
            job.id,
            job.cleaner_id,
            data.starts_at,
            ReminderType(data.reminder_type),
            tenant_id=job.tenant_id,
            job_date=job.date,
        )
    return ScheduledTasksResponse(task_ids=[task_id])


@router.get("/automation/tasks/summary", response_model=TaskStatusSummaryResponse)
async def task_status_summary(db: Session = Depends(get_db)):
    return TaskStatusSummaryResponse(counts=ScheduledTaskRepository.count_by_status(db))


# ============================================================================
# CRON TRIGGERS
# ============================================================================


@router.api_route(
    "/cron/process-scheduled-tasks",
    methods=["GET", "POST"],
    response_model=PollSummaryResponse,
    dependencies=[Depends(verify_cron_secret)],
)
async def cron_process_scheduled_tasks(ctx: TaskContext = Depends(get_task_context)):
    """Run one poll cycle over due tasks"""
    return PollSummaryResponse(**await process_due_tasks(ctx))


@router.post(
    "/cron/rain-day-check",
    response_model=RainDayCheckResponse,
    dependencies=[Depends(verify_cron_secret)],
)
async def cron_rain_day_check(
    data: Optional[RainDayCheckRequest] = None,
    service: RainDayRedistributor = Depends(get_rain_day_service),
):
    data = data or RainDayCheckRequest()
    result = await service.check_and_handle_rain_day(
        tenant_id=data.tenant_id,
        days_ahead=data.days_ahead,
        auto_spread=data.auto_spread,
        spread_days=data.spread_days,
        send_notifications=data.send_notifications,
        service_area_zip=data.service_area_zip,
    )
    return RainDayCheckResponse(**result.to_dict())
