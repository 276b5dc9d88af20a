"""Scheduling domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from ...shared.validators import validate_us_phone


class LeadFollowUpRequest(BaseModel):
    lead_id: int
    phone: str
    name: Optional[str] = None
    delays: Optional[list[int]] = Field(default=None, max_length=5)
    tenant_id: Optional[str] = None

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        return validate_us_phone(v)

    @field_validator("delays")
    @classmethod
    def validate_delays(cls, v):
        if v is not None and any(delay < 0 for delay in v):
            raise ValueError("Delays must be zero or positive minutes")
        return v


class JobBroadcastRequest(BaseModel):
    job_id: int
    candidate_ids: list[int] = []
    tenant_id: Optional[str] = None


class SendReminderRequest(BaseModel):
    job_id: int
    reminder_type: Literal["day_before", "one_hour", "job_start", "post_service"] = "day_before"
    starts_at: Optional[datetime] = None  # Naive UTC, crew reminders only


class ScheduledTasksResponse(BaseModel):
    task_ids: list[str]


class CancelResponse(BaseModel):
    cancelled: int


class PollSummaryResponse(BaseModel):
    processed: int
    succeeded: int
    failed: int
    skipped: int
    reclaimed: int
    details: list[dict]


class TaskStatusSummaryResponse(BaseModel):
    counts: dict[str, int]
