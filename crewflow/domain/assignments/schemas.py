"""Assignment domain schemas - Pydantic models for validation"""

from datetime import date
from typing import Optional

from pydantic import BaseModel


class OfferRequest(BaseModel):
    excluded_cleaner_ids: list[int] = []
    candidate_ids: Optional[list[int]] = None


class OfferResponse(BaseModel):
    outcome: str
    job_id: int
    assignment_id: Optional[int] = None
    cleaner_id: Optional[int] = None
    distance_miles: Optional[float] = None
    offer_sent: bool = False


class AssignmentResponse(BaseModel):
    outcome: str
    assignment_id: int
    job_id: int
    status: str
    customer_notified: bool = False
    escalated: bool = False
    next_offer: Optional[OfferResponse] = None


class RescheduleRequest(BaseModel):
    target_date: date


class RescheduleResponse(BaseModel):
    job_id: int
    rescheduled: bool
    notifications_sent: int = 0
    error: Optional[str] = None
    offer: Optional[OfferResponse] = None
    escalated: bool = False


class AssignmentStatsResponse(BaseModel):
    job_id: int
    attempts: int
    pending: int
    confirmed: int
    declined: int
    cancelled: int
    cleaners_contacted: int
    current_cleaner_id: Optional[int] = None
