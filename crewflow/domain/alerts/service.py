"""Alert service - Owner-facing notices raised by the automation"""

import logging
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from sqlalchemy.orm import Session

from ...models_alerts import JobAlert
from ...shared.timeutils import utcnow
from .repository import AlertRepository

logger = logging.getLogger(__name__)


class AlertType(str, Enum):
    ASSIGNMENT_EXHAUSTED = "assignment_exhausted"
    RAIN_DAY = "rain_day"
    TASK_FAILED = "task_failed"


class AlertNotFoundError(Exception):
    pass


class AlertService:
    """Alerts are written once; only the acknowledgement fields change afterwards"""

    def __init__(self, db: Session, now_fn: Callable[[], datetime] = utcnow):
        self.db = db
        self.repo = AlertRepository()
        self.now = now_fn

    def create_alert(
        self,
        alert_type: AlertType,
        message: str,
        tenant_id: Optional[str] = None,
        job_id: Optional[int] = None,
        threshold_value=None,
        actual_value=None,
    ) -> Optional[JobAlert]:
        """Record an alert; a storage failure is logged and returns None"""
        try:
            alert = self.repo.create(
                self.db,
                tenant_id=tenant_id,
                job_id=job_id,
                alert_type=AlertType(alert_type).value,
                message=message,
                threshold_value=str(threshold_value) if threshold_value is not None else None,
                actual_value=str(actual_value) if actual_value is not None else None,
            )
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Failed to record {alert_type} alert: {e}")
            return None
        logger.info(f"🚨 Alert {alert.id} ({alert.alert_type}) recorded: {message}")
        return alert

    def get_alerts(
        self,
        tenant_id: Optional[str] = None,
        include_acknowledged: bool = False,
        alert_type: Optional[str] = None,
        limit: int = 100,
    ) -> list[JobAlert]:
        return self.repo.get_alerts(self.db, tenant_id, include_acknowledged, alert_type, limit)

    def acknowledge_alert(self, alert_id: int, acknowledged_by: Optional[str] = None) -> JobAlert:
        alert = self.repo.get_by_id(self.db, alert_id)
        if not alert:
            raise AlertNotFoundError(f"Alert {alert_id} not found")
        if alert.acknowledged:
            return alert
        return self.repo.acknowledge(self.db, alert, acknowledged_by, self.now())
