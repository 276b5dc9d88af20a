"""Alert router - FastAPI endpoints for owner alerts"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ...database import get_db
from .schemas import AcknowledgeRequest, AlertResponse
from .service import AlertNotFoundError, AlertService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/alerts", tags=["Alerts"])


def get_alert_service(db: Session = Depends(get_db)) -> AlertService:
    """Dependency injection for AlertService"""
    return AlertService(db)


@router.get("", response_model=list[AlertResponse])
async def list_alerts(
    tenant_id: Optional[str] = Query(None),
    include_acknowledged: bool = Query(False),
    alert_type: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    service: AlertService = Depends(get_alert_service),
):
    """Unacknowledged alerts, newest first"""
    return service.get_alerts(tenant_id, include_acknowledged, alert_type, limit)


@router.post("/{alert_id}/acknowledge", response_model=AlertResponse)
async def acknowledge_alert(
    alert_id: int,
    data: Optional[AcknowledgeRequest] = None,
    service: AlertService = Depends(get_alert_service),
):
    try:
        return service.acknowledge_alert(alert_id, data.acknowledged_by if data else None)
    except AlertNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
