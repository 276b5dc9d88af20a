"""Assignment router - FastAPI endpoints for crew offers and responses"""

import logging
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ...database import get_db
from ...services.notification_service import Notifier
from ..rain_day.reschedule import JobRescheduler
from ..scheduling.sequencer import FollowUpSequencer
from .schemas import (
    AssignmentResponse,
    AssignmentStatsResponse,
    OfferRequest,
    OfferResponse,
    RescheduleRequest,
    RescheduleResponse,
)
from .service import AssignmentCascade, AssignmentNotFoundError, JobNotFoundError, OfferResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/assignments", tags=["Assignments"])


def get_notifier(db: Session = Depends(get_db)) -> Notifier:
    return Notifier(db)


def get_assignment_cascade(
    db: Session = Depends(get_db), notifier: Notifier = Depends(get_notifier)
) -> AssignmentCascade:
    """Dependency injection for AssignmentCascade"""
    sequencer = FollowUpSequencer(db)
    return AssignmentCascade(
        db,
        notifier,
        rescheduler=JobRescheduler(db, notifier, sequencer=sequencer),
        sequencer=sequencer,
    )


def _offer_response(offer: Optional[OfferResult]) -> Optional[OfferResponse]:
    if offer is None:
        return None
    data = asdict(offer)
    data["outcome"] = offer.outcome.value
    return OfferResponse(**data)


@router.post("/jobs/{job_id}/offer", response_model=OfferResponse)
async def offer_job(
    job_id: int,
    data: Optional[OfferRequest] = None,
    cascade: AssignmentCascade = Depends(get_assignment_cascade),
):
    """Offer the job to the next eligible cleaner"""
    data = data or OfferRequest()
    try:
        offer = await cascade.offer_to_next_candidate(job_id, data.excluded_cleaner_ids, data.candidate_ids)
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return _offer_response(offer)


@router.post("/{assignment_id}/accept", response_model=AssignmentResponse)
async def accept_assignment(assignment_id: int, cascade: AssignmentCascade = Depends(get_assignment_cascade)):
    try:
        result = await cascade.on_accept(assignment_id)
    except (AssignmentNotFoundError, JobNotFoundError) as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return AssignmentResponse(
        outcome=result.outcome.value,
        assignment_id=result.assignment_id,
        job_id=result.job_id,
        status=result.status,
        customer_notified=result.customer_notified,
    )


@router.post("/{assignment_id}/decline", response_model=AssignmentResponse)
async def decline_assignment(assignment_id: int, cascade: AssignmentCascade = Depends(get_assignment_cascade)):
    try:
        result = await cascade.on_decline(assignment_id)
    except (AssignmentNotFoundError, JobNotFoundError) as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return AssignmentResponse(
        outcome=result.outcome.value,
        assignment_id=result.assignment_id,
        job_id=result.job_id,
        status=result.status,
        escalated=result.escalated,
        next_offer=_offer_response(result.next_offer),
    )


@router.post("/jobs/{job_id}/reschedule", response_model=RescheduleResponse)
async def reschedule_job(
    job_id: int,
    data: RescheduleRequest,
    cascade: AssignmentCascade = Depends(get_assignment_cascade),
):
    """Move a job to another date and reopen the cascade if nobody is confirmed"""
    try:
        result = await cascade.reschedule_and_reoffer(job_id, data.target_date)
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    result["offer"] = _offer_response(result["offer"])
    return RescheduleResponse(**result)


@router.get("/jobs/{job_id}/stats", response_model=AssignmentStatsResponse)
async def get_assignment_stats(job_id: int, cascade: AssignmentCascade = Depends(get_assignment_cascade)):
    try:
        stats = cascade.assignment_stats(job_id)
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return AssignmentStatsResponse(**{k: v for k, v in asdict(stats).items() if k != "cleaner_ids"})
