"""Alert repository - Database operations for owner alerts"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models_alerts import JobAlert


class AlertRepository:
    """Repository for job alert database operations"""

    @staticmethod
    def create(db: Session, **alert_data) -> JobAlert:
        alert = JobAlert(**alert_data)
        db.add(alert)
        db.commit()
        db.refresh(alert)
        return alert

    @staticmethod
    def get_by_id(db: Session, alert_id: int) -> Optional[JobAlert]:
        return db.query(JobAlert).filter(JobAlert.id == alert_id).first()

    @staticmethod
    def get_alerts(
        db: Session,
        tenant_id: Optional[str] = None,
        include_acknowledged: bool = False,
        alert_type: Optional[str] = None,
        limit: int = 100,
    ) -> list[JobAlert]:
        query = db.query(JobAlert)
        if tenant_id:
            query = query.filter(JobAlert.tenant_id == tenant_id)
        if not include_acknowledged:
            query = query.filter(JobAlert.acknowledged.is_(False))
        if alert_type:
            query = query.filter(JobAlert.alert_type == alert_type)
        return query.order_by(JobAlert.created_at.desc(), JobAlert.id.desc()).limit(limit).all()

    @staticmethod
    def acknowledge(db: Session, alert: JobAlert, acknowledged_by: Optional[str], now: datetime) -> JobAlert:
        alert.acknowledged = True
        alert.acknowledged_by = acknowledged_by
        alert.acknowledged_at = now
        db.commit()
        db.refresh(alert)
        return alert
