"""
Rain day service - Bulk rescheduling of a day's jobs

Jobs are moved one at a time through the shared JobRescheduler, either to a
single target date or spread over the least-loaded upcoming workdays. A job
that fails to move is reported and skipped; the rest of the batch continues.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.orm import Session

from ...config import RAIN_DAY_SPREAD_DAYS, RAIN_DAY_TENANT_ID, SERVICE_AREA_ZIP
from ...services import message_templates as templates
from ...services.notification_service import notify_owner
from ...services.system_events import log_system_event
from ...services.weather_service import OpenWeatherClient, WeatherLookupError
from ...shared.timeutils import format_date_human, local_today, parse_date, utcnow
from ..alerts.service import AlertService, AlertType
from .planner import SpreadState, candidate_dates, clamp_spread_days, next_workday
from .repository import RainDayRepository
from .reschedule import JobRescheduler

logger = logging.getLogger(__name__)

AUTO_SPREAD = "auto-spread"


@dataclass
class RescheduleResult:
    affected_date: str
    target_date: str
    jobs_affected: int = 0
    jobs_rescheduled: int = 0
    rescheduled_job_ids: list[int] = field(default_factory=list)
    jobs_failed: list[str] = field(default_factory=list)
    notifications_sent: int = 0
    spread_summary: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class RainDayCheckResult:
    checked: bool
    is_rain_day: bool
    date: Optional[str] = None
    forecast: Optional[dict] = None
    rescheduled: Optional[RescheduleResult] = None
    owner_notified: bool = False
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


class RainDayRedistributor:
    """Service layer for weather-triggered bulk rescheduling"""

    def __init__(
        self,
        db: Session,
        notifier,
        rescheduler: Optional[JobRescheduler] = None,
        weather=None,
        now_fn: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.notifier = notifier
        self.rescheduler = rescheduler or JobRescheduler(db, notifier, now_fn=now_fn)
        self.weather = weather or OpenWeatherClient()
        self.now = now_fn
        self.repo = RainDayRepository()
        self.alerts = AlertService(db, now_fn=now_fn)

    async def reschedule_all(
        self,
        affected_date,
        tenant_id: Optional[str] = None,
        target_date=None,
        auto_spread: bool = True,
        spread_days: Optional[int] = RAIN_DAY_SPREAD_DAYS,
        send_notifications: bool = True,
    ) -> RescheduleResult:
        affected: date = parse_date(affected_date)
        target: Optional[date] = parse_date(target_date) if target_date else None
        spreading = auto_spread and target is None

        jobs = self.repo.get_affected_jobs(self.db, affected, tenant_id)
        result = RescheduleResult(
            affected_date=affected.isoformat(),
            target_date=target.isoformat() if target else AUTO_SPREAD,
            jobs_affected=len(jobs),
        )
        if not jobs:
            logger.info(f"🌤️ No jobs on {affected} to reschedule")
            return result

        candidates: list[date] = []
        state: Optional[SpreadState] = None
        single_target: Optional[date] = None
        if spreading:
            candidates = candidate_dates(affected, clamp_spread_days(spread_days))
            state = SpreadState(counts=self.repo.get_job_counts_by_date(self.db, candidates, tenant_id))
        else:
            single_target = target or next_workday(affected)
            if not target_date:
                # Default single-date mode reports the date it actually used
                result.target_date = single_target.isoformat()

        logger.info(
            f"🌧️ Rescheduling {len(jobs)} job(s) from {affected} "
            f"({'auto-spread' if spreading else 'to ' + result.target_date})"
        )

        for job in jobs:
            job_id = job.id
            day = state.choose(candidates) if spreading else single_target
            try:
                outcome = await self.rescheduler.reschedule(
                    job, day, original_date=affected, notify=send_notifications, reason="weather"
                )
            except Exception as e:
                self.db.rollback()
                logger.error(f"❌ Unexpected error rescheduling job {job_id}: {e}")
                result.jobs_failed.append(str(job_id))
                continue

            if not outcome.success:
                result.jobs_failed.append(str(job_id))
                continue

            if spreading:
                state = state.record(job_id, day)
            result.rescheduled_job_ids.append(job_id)
            result.notifications_sent += outcome.notifications
            key = day.isoformat()
            result.spread_summary[key] = result.spread_summary.get(key, 0) + 1

        result.jobs_rescheduled = len(result.rescheduled_job_ids)

        self.alerts.create_alert(
            AlertType.RAIN_DAY,
            f"Rain day {affected.isoformat()}: {result.jobs_rescheduled} of {result.jobs_affected} "
            f"job(s) rescheduled, {len(result.jobs_failed)} failed",
            tenant_id=tenant_id,
            threshold_value=result.jobs_affected,
            actual_value=result.jobs_rescheduled,
        )
        log_system_event(
            self.db,
            source="rain_day",
            event_type="RAIN_DAY_RESCHEDULE",
            message=f"{result.jobs_rescheduled}/{result.jobs_affected} jobs moved from {affected}",
            tenant_id=tenant_id,
            metadata=result.to_dict(),
        )
        logger.info(
            f"✅ Rain day {affected}: {result.jobs_rescheduled} moved, "
            f"{len(result.jobs_failed)} failed, {result.notifications_sent} notification(s)"
        )
        return result

    async def check_and_handle_rain_day(
        self,
        tenant_id: Optional[str] = None,
        days_ahead: int = 1,
        auto_spread: bool = True,
        spread_days: Optional[int] = RAIN_DAY_SPREAD_DAYS,
        send_notifications: bool = True,
        service_area_zip: Optional[str] = None,
    ) -> RainDayCheckResult:
        """Check the forecast days_ahead out and reschedule that day's jobs if it will rain"""
        tenant = self.repo.get_tenant(self.db, tenant_id or RAIN_DAY_TENANT_ID)
        if tenant_id and tenant is None:
            return RainDayCheckResult(checked=False, is_rain_day=False, error=f"Tenant {tenant_id} not found")

        zip_code = service_area_zip or (tenant.service_area_zip if tenant else None) or SERVICE_AREA_ZIP
        day = local_today(self.now(), tenant.timezone if tenant else None) + timedelta(days=days_ahead)
        logger.info(f"🌦️ Checking weather for {day} (ZIP: {zip_code})")

        try:
            is_rain, forecast = await self.weather.is_rain_day(zip_code, day)
        except WeatherLookupError as e:
            logger.error(f"❌ Weather lookup failed for {day}: {e}")
            return RainDayCheckResult(checked=False, is_rain_day=False, date=day.isoformat(), error=str(e))

        forecast_data = forecast.to_dict() if forecast is not None else None
        if not is_rain:
            logger.info(f"☀️ {day} is not a rain day, no action needed")
            return RainDayCheckResult(checked=True, is_rain_day=False, date=day.isoformat(), forecast=forecast_data)

        logger.info(f"🌧️ {day} is a rain day, starting auto-reschedule")
        rescheduled = await self.reschedule_all(
            day,
            tenant.id if tenant else None,
            auto_spread=auto_spread,
            spread_days=spread_days,
            send_notifications=send_notifications,
        )

        summary = templates.owner_rain_day_summary(format_date_human(day), rescheduled)
        if forecast is not None:
            summary = f"{summary}\n{forecast.summary}"
        owner_notified, _ = await notify_owner(self.notifier, tenant, summary, message_type="rain_day_summary")

        return RainDayCheckResult(
            checked=True,
            is_rain_day=True,
            date=day.isoformat(),
            forecast=forecast_data,
            rescheduled=rescheduled,
            owner_notified=owner_notified,
        )
