from datetime import date

import pytest
from fastapi.testclient import TestClient

from crewflow import config
from crewflow.database import get_db
from crewflow.domain.assignments.router import get_assignment_cascade
from crewflow.domain.rain_day.router import get_rain_day_service
from crewflow.domain.rain_day.service import RainDayRedistributor
from crewflow.domain.scheduling.router import get_sequencer, get_task_context
from crewflow.main import app
from crewflow.models import CleanerAssignment
from crewflow.models_alerts import JobAlert
from crewflow.models_scheduler import ScheduledTask

from .fakes import FakeWeather


@pytest.fixture
def client(db, notifier, rescheduler, cascade, sequencer, task_context, clock, monkeypatch):
    monkeypatch.setattr(config, "CRON_SECRET", "cron-token")
    monkeypatch.setattr(config, "ENVIRONMENT", "development")

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_sequencer] = lambda: sequencer
    app.dependency_overrides[get_task_context] = lambda: task_context
    app.dependency_overrides[get_assignment_cascade] = lambda: cascade
    app.dependency_overrides[get_rain_day_service] = lambda: RainDayRedistributor(
        db, notifier, rescheduler=rescheduler, weather=FakeWeather(rain=True), now_fn=clock
    )
    yield TestClient(app)
    app.dependency_overrides.clear()


AUTH = {"Authorization": "Bearer cron-token"}


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_lead_followup_schedules_five_stages(client, db, lead):
    response = client.post(
        "/automation/lead-followup",
        json={"lead_id": lead.id, "phone": "(555) 555-0122", "name": "Pat Lee"},
    )

    assert response.status_code == 200
    assert len(response.json()["task_ids"]) == 5
    (first,) = [t for t in db.query(ScheduledTask).all() if t.payload["stage"] == 1]
    assert first.payload["lead_phone"] == "+15555550122"


def test_lead_followup_rejects_bad_phone(client, lead):
    response = client.post("/automation/lead-followup", json={"lead_id": lead.id, "phone": "12345"})
    assert response.status_code == 422


def test_lead_followup_cancel(client, lead):
    client.post("/automation/lead-followup", json={"lead_id": lead.id, "phone": "5555550122"})

    response = client.post(f"/automation/lead-followup/{lead.id}/cancel")

    assert response.json() == {"cancelled": 5}


def test_job_broadcast_unknown_job_404(client):
    response = client.post("/automation/job-broadcast", json={"job_id": 999})
    assert response.status_code == 404


def test_send_reminder_day_before(client, db, make_job):
    job = make_job()

    response = client.post("/automation/send-reminder", json={"job_id": job.id, "reminder_type": "day_before"})

    assert response.status_code == 200
    task = db.query(ScheduledTask).one()
    assert task.task_type == "day_before_reminder"


def test_crew_reminder_requires_assigned_cleaner(client, make_job):
    job = make_job()
    response = client.post(
        "/automation/send-reminder",
        json={"job_id": job.id, "reminder_type": "one_hour", "starts_at": "2025-03-10T17:00:00"},
    )
    assert response.status_code == 400


@pytest.mark.parametrize("headers", [{}, {"Authorization": "Bearer wrong"}, {"Authorization": "cron-token"}])
def test_cron_rejects_missing_or_wrong_token(client, headers):
    response = client.post("/cron/process-scheduled-tasks", headers=headers)
    assert response.status_code == 401


def test_cron_without_secret_refused_in_production(client, monkeypatch):
    monkeypatch.setattr(config, "CRON_SECRET", None)
    monkeypatch.setattr(config, "ENVIRONMENT", "production")

    response = client.post("/cron/process-scheduled-tasks")

    assert response.status_code == 503


def test_cron_without_secret_open_in_development(client, monkeypatch):
    monkeypatch.setattr(config, "CRON_SECRET", None)
    response = client.get("/cron/process-scheduled-tasks")
    assert response.status_code == 200


def test_cron_runs_poll_cycle(client, sequencer, notifier, lead):
    sequencer.schedule_lead_follow_up(lead.id, lead.phone_number, lead.name)

    response = client.post("/cron/process-scheduled-tasks", headers=AUTH)

    assert response.status_code == 200
    body = response.json()
    assert body["processed"] == 1
    assert body["succeeded"] == 1
    assert len(notifier.sms_of_type("lead_followup")) == 1


def test_cron_rain_day_check(client, make_job, tenant):
    make_job()

    response = client.post("/cron/rain-day-check", headers=AUTH, json={"tenant_id": tenant.id, "days_ahead": 2})

    assert response.status_code == 200
    body = response.json()
    assert body["is_rain_day"] is True
    assert body["rescheduled"]["jobs_rescheduled"] == 1


def test_cron_rain_day_check_without_body(client):
    response = client.post("/cron/rain-day-check", headers=AUTH)
    assert response.status_code == 200
    assert response.json()["checked"] is True


def test_offer_accept_flow(client, db, make_job, make_cleaner):
    cleaner = make_cleaner("Alex", lat=34.06, lng=-118.25)
    job = make_job()

    offer = client.post(f"/assignments/jobs/{job.id}/offer").json()
    assert offer["outcome"] == "offered"
    assert offer["cleaner_id"] == cleaner.id

    accepted = client.post(f"/assignments/{offer['assignment_id']}/accept").json()
    assert accepted["outcome"] == "confirmed"
    assert accepted["customer_notified"] is True

    again = client.post(f"/assignments/{offer['assignment_id']}/accept").json()
    assert again["outcome"] == "already_settled"

    stats = client.get(f"/assignments/jobs/{job.id}/stats").json()
    assert stats["confirmed"] == 1
    assert stats["current_cleaner_id"] == cleaner.id


def test_decline_with_nobody_left_escalates(client, db, make_job, make_cleaner):
    make_cleaner("Alex", lat=34.06, lng=-118.25)
    job = make_job()
    offer = client.post(f"/assignments/jobs/{job.id}/offer").json()

    declined = client.post(f"/assignments/{offer['assignment_id']}/decline").json()

    assert declined["escalated"] is True
    assert declined["next_offer"]["outcome"] == "exhausted"
    assert db.query(JobAlert).filter(JobAlert.alert_type == "assignment_exhausted").count() == 1


@pytest.mark.parametrize("action", ["accept", "decline"])
def test_unknown_assignment_404(client, action):
    assert client.post(f"/assignments/12345/{action}").status_code == 404


def test_offer_unknown_job_404(client):
    assert client.post("/assignments/jobs/12345/offer").status_code == 404


def test_reschedule_job_endpoint(client, db, make_job, make_cleaner):
    make_cleaner("Alex", lat=34.06, lng=-118.25)
    job = make_job()

    response = client.post(f"/assignments/jobs/{job.id}/reschedule", json={"target_date": "2025-03-12"})

    assert response.status_code == 200
    body = response.json()
    assert body["rescheduled"] is True
    assert body["offer"]["outcome"] == "offered"
    db.refresh(job)
    assert job.date == date(2025, 3, 12)
    assert db.query(CleanerAssignment).count() == 1


def test_manual_rain_day_reschedule(client, make_job):
    make_job()
    make_job()

    response = client.post("/rain-day/reschedule", json={"affected_date": "2025-03-10"})

    assert response.status_code == 200
    body = response.json()
    assert body["jobs_rescheduled"] == 2
    assert body["spread_summary"] == {"2025-03-11": 1, "2025-03-12": 1}


def test_alerts_list_and_acknowledge(client, db, make_job):
    make_job()
    client.post("/rain-day/reschedule", json={"affected_date": "2025-03-10"})

    alerts = client.get("/alerts").json()
    assert [a["alert_type"] for a in alerts] == ["rain_day"]

    acked = client.post(f"/alerts/{alerts[0]['id']}/acknowledge", json={"acknowledged_by": "owner"}).json()
    assert acked["acknowledged"] is True
    assert acked["acknowledged_by"] == "owner"
    assert client.get("/alerts").json() == []
    assert client.post("/alerts/999/acknowledge").status_code == 404


def test_task_summary_counts_by_status(client, lead):
    client.post("/automation/lead-followup", json={"lead_id": lead.id, "phone": "5555550122"})
    client.post("/cron/process-scheduled-tasks", headers=AUTH)

    response = client.get("/automation/tasks/summary")

    assert response.status_code == 200
    assert response.json()["counts"] == {"completed": 1, "pending": 4}
