"""Alert domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class AlertResponse(BaseModel):
    id: int
    tenant_id: Optional[str] = None
    job_id: Optional[int] = None
    alert_type: str
    threshold_value: Optional[str] = None
    actual_value: Optional[str] = None
    message: str
    acknowledged: bool
    acknowledged_by: Optional[str] = None
    acknowledged_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AcknowledgeRequest(BaseModel):
    acknowledged_by: Optional[str] = None
