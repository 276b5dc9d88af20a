"""Rain day domain schemas - Pydantic models for validation"""

from datetime import date
from typing import Optional

from pydantic import BaseModel, Field


class RainDayRescheduleRequest(BaseModel):
    affected_date: date
    tenant_id: Optional[str] = None
    target_date: Optional[date] = None
    auto_spread: bool = True
    spread_days: Optional[int] = Field(default=14, ge=0)
    send_notifications: bool = True


class RescheduleResultResponse(BaseModel):
    affected_date: str
    target_date: str
    jobs_affected: int
    jobs_rescheduled: int
    rescheduled_job_ids: list[int]
    jobs_failed: list[str]
    notifications_sent: int
    spread_summary: dict[str, int]


class RainDayCheckRequest(BaseModel):
    tenant_id: Optional[str] = None
    days_ahead: int = Field(default=1, ge=0, le=7)
    auto_spread: bool = True
    spread_days: Optional[int] = 14
    send_notifications: bool = True
    service_area_zip: Optional[str] = None


class RainDayCheckResponse(BaseModel):
    checked: bool
    is_rain_day: bool
    date: Optional[str] = None
    forecast: Optional[dict] = None
    rescheduled: Optional[RescheduleResultResponse] = None
    owner_notified: bool = False
    error: Optional[str] = None
