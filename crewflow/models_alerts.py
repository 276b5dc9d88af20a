"""
Alert and Event Models
Owner-facing alerts and the append-only system event log
"""

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.sql import func

from .database import Base


class JobAlert(Base):
    """Immutable notice for the business owner; only acknowledgement changes"""

    __tablename__ = "job_alerts"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=True, index=True)
    job_id = Column(Integer, ForeignKey("jobs.id"), nullable=True)

    alert_type = Column(String(50), nullable=False)  # assignment_exhausted, rain_day, task_failed
    threshold_value = Column(String(100), nullable=True)
    actual_value = Column(String(100), nullable=True)
    message = Column(Text, nullable=False)

    acknowledged = Column(Boolean, default=False, nullable=False)
    acknowledged_by = Column(String(255), nullable=True)
    acknowledged_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())


class SystemEvent(Base):
    """Audit trail of automation side effects"""

    __tablename__ = "system_events"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=True, index=True)

    source = Column(String(50), nullable=False)  # scheduler, cascade, rain_day, system
    event_type = Column(String(100), nullable=False, index=True)
    message = Column(Text, nullable=True)

    # Optional links
    phone_number = Column(String(20), nullable=True)
    job_id = Column(String(50), nullable=True)
    lead_id = Column(String(50), nullable=True)
    cleaner_id = Column(String(50), nullable=True)

    event_metadata = Column("metadata", JSON, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
