import uuid

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


def generate_uuid():
    """Generate a string UUID primary key"""
    return str(uuid.uuid4())


class Tenant(Base):
    __tablename__ = "tenants"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    slug = Column(String(100), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=False)
    business_name_short = Column(String(100), nullable=True)  # Used in SMS sign-offs
    owner_phone = Column(String(20), nullable=True)  # E.164, escalation fallback
    owner_telegram_chat_id = Column(String(64), nullable=True)  # Preferred escalation channel
    timezone = Column(String(64), nullable=True)  # IANA name, e.g. America/Chicago
    service_area_zip = Column(String(10), nullable=True)  # Weather lookups

    # Provider credentials (encrypted with Fernet, see services/credentials.py)
    twilio_account_sid = Column(Text, nullable=True)
    twilio_auth_token = Column(Text, nullable=True)
    twilio_phone_number = Column(String(20), nullable=True)
    telegram_bot_token = Column(Text, nullable=True)

    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    cleaners = relationship("Cleaner", back_populates="tenant")
    jobs = relationship("Job", back_populates="tenant")


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=True, index=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    phone_number = Column(String(20), nullable=True, index=True)
    email = Column(String(255), nullable=True)
    address = Column(String(500), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    jobs = relationship("Job", back_populates="customer")

    @property
    def full_name(self):
        return " ".join(part for part in [self.first_name, self.last_name] if part).strip()


class Cleaner(Base):
    __tablename__ = "cleaners"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=True, index=True)
    name = Column(String(255), nullable=False)
    phone = Column(String(20), nullable=True)
    telegram_id = Column(String(64), nullable=True)  # Chat id for offers and schedule changes
    is_team_lead = Column(Boolean, default=False, nullable=False)

    # Home location for distance-based offer ordering
    home_lat = Column(Float, nullable=True)
    home_lng = Column(Float, nullable=True)

    max_jobs_per_day = Column(Integer, default=3, nullable=False)
    active = Column(Boolean, default=True, nullable=False)
    deleted_at = Column(DateTime, nullable=True)  # Soft delete
    created_at = Column(DateTime, server_default=func.now())

    tenant = relationship("Tenant", back_populates="cleaners")
    assignments = relationship("CleanerAssignment", back_populates="cleaner")


class Lead(Base):
    __tablename__ = "leads"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=True, index=True)
    name = Column(String(255), nullable=True)
    phone_number = Column(String(20), nullable=True, index=True)
    source = Column(String(50), nullable=True)  # meta_ads, website, phone, sms
    status = Column(String(50), default="new", nullable=False)  # new, contacted, booked, lost
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class Job(Base):
    __tablename__ = "jobs"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=True)
    phone_number = Column(String(20), nullable=True)

    address = Column(String(500), nullable=True)
    service_type = Column(String(100), default="Standard Cleaning")
    date = Column(Date, nullable=True, index=True)
    scheduled_at = Column(String(20), nullable=True)  # Time string like "10:00 AM"
    lat = Column(Float, nullable=True)
    lng = Column(Float, nullable=True)

    price = Column(Float, nullable=True)
    hours = Column(Float, nullable=True)

    status = Column(
        String(50), default="scheduled", nullable=False
    )  # pending, scheduled, in_progress, completed, cancelled

    # Assignment tracking (denormalized, updated by the cascade and the rescheduler)
    cleaner_id = Column(Integer, ForeignKey("cleaners.id"), nullable=True)
    cleaner_confirmed = Column(Boolean, default=False, nullable=False)
    customer_notified = Column(Boolean, default=False, nullable=False)
    confirmed_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    tenant = relationship("Tenant", back_populates="jobs")
    customer = relationship("Customer", back_populates="jobs")
    cleaner = relationship("Cleaner", foreign_keys=[cleaner_id])
    assignments = relationship(
        "CleanerAssignment", back_populates="job", order_by="CleanerAssignment.id"
    )


LIVE_ASSIGNMENT_STATUSES = ("pending", "confirmed")


class CleanerAssignment(Base):
    __tablename__ = "cleaner_assignments"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=True, index=True)
    job_id = Column(Integer, ForeignKey("jobs.id"), nullable=False, index=True)
    cleaner_id = Column(Integer, ForeignKey("cleaners.id"), nullable=False, index=True)

    status = Column(
        String(20), default="pending", nullable=False, index=True
    )  # pending, confirmed, declined, cancelled

    distance_miles = Column(Float, nullable=True)
    assigned_at = Column(DateTime, server_default=func.now())
    responded_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    job = relationship("Job", back_populates="assignments")
    cleaner = relationship("Cleaner", back_populates="assignments")

    __table_args__ = (
        # At most one live (pending or confirmed) assignment per job
        Index(
            "uq_cleaner_assignments_live_job",
            "job_id",
            unique=True,
            postgresql_where=status.in_(LIVE_ASSIGNMENT_STATUSES),
            sqlite_where=status.in_(LIVE_ASSIGNMENT_STATUSES),
        ),
    )
