import os
from datetime import date, datetime, timedelta

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DB_LOG_SLOW_QUERIES", "false")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from crewflow import models, models_alerts, models_messaging, models_scheduler  # noqa: F401
from crewflow.database import Base
from crewflow.domain.assignments.service import AssignmentCascade
from crewflow.domain.rain_day.reschedule import JobRescheduler
from crewflow.domain.scheduling.handlers import TaskContext
from crewflow.domain.scheduling.scheduler import TaskScheduler
from crewflow.domain.scheduling.sequencer import FollowUpSequencer
from crewflow.models import Cleaner, Customer, Job, Lead, Tenant

from .fakes import FakeNotifier


class Clock:
    """Controllable naive-UTC clock"""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return Clock(datetime(2025, 3, 8, 18, 0, 0))


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def scheduler(db, clock):
    return TaskScheduler(db, now_fn=clock)


@pytest.fixture
def sequencer(db, scheduler):
    return FollowUpSequencer(db, scheduler)


@pytest.fixture
def rescheduler(db, notifier, sequencer, clock):
    return JobRescheduler(db, notifier, sequencer=sequencer, now_fn=clock)


@pytest.fixture
def cascade(db, notifier, rescheduler, sequencer, clock):
    return AssignmentCascade(db, notifier, rescheduler=rescheduler, sequencer=sequencer, now_fn=clock)


@pytest.fixture
def task_context(db, notifier, scheduler, sequencer, cascade):
    async def no_sleep(_seconds):
        return None

    return TaskContext(
        db=db,
        notifier=notifier,
        scheduler=scheduler,
        sequencer=sequencer,
        cascade=cascade,
        sleep=no_sleep,
    )


@pytest.fixture
def tenant(db):
    tenant = Tenant(
        slug="sparkle",
        name="Sparkle Cleaning Co",
        business_name_short="Sparkle",
        owner_phone="+15555550100",
        owner_telegram_chat_id="owner-chat",
        timezone="America/Los_Angeles",
        service_area_zip="90001",
    )
    db.add(tenant)
    db.commit()
    db.refresh(tenant)
    return tenant


@pytest.fixture
def customer(db, tenant):
    customer = Customer(
        tenant_id=tenant.id,
        first_name="Dana",
        last_name="Smith",
        phone_number="+15555550111",
        address="12 Elm St",
    )
    db.add(customer)
    db.commit()
    db.refresh(customer)
    return customer


@pytest.fixture
def make_cleaner(db, tenant):
    def _make(name, lat=None, lng=None, telegram_id=None, phone=None, max_jobs_per_day=3, active=True):
        cleaner = Cleaner(
            tenant_id=tenant.id,
            name=name,
            phone=phone or "+15555550199",
            telegram_id=telegram_id if telegram_id is not None else f"tg-{name.lower()}",
            home_lat=lat,
            home_lng=lng,
            max_jobs_per_day=max_jobs_per_day,
            active=active,
        )
        db.add(cleaner)
        db.commit()
        db.refresh(cleaner)
        return cleaner

    return _make


@pytest.fixture
def make_job(db, tenant, customer):
    def _make(day=date(2025, 3, 10), scheduled_at="10:00 AM", status="scheduled", lat=34.05, lng=-118.25):
        job = Job(
            tenant_id=tenant.id,
            customer_id=customer.id,
            phone_number=customer.phone_number,
            address="12 Elm St",
            date=day,
            scheduled_at=scheduled_at,
            status=status,
            lat=lat,
            lng=lng,
            price=180.0,
            hours=3.0,
        )
        db.add(job)
        db.commit()
        db.refresh(job)
        return job

    return _make


@pytest.fixture
def lead(db, tenant):
    lead = Lead(tenant_id=tenant.id, name="Pat Lee", phone_number="+15555550122", source="website")
    db.add(lead)
    db.commit()
    db.refresh(lead)
    return lead
