"""Rain day router - Manual bulk reschedule trigger"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...database import get_db
from ...services.notification_service import Notifier
from ..scheduling.sequencer import FollowUpSequencer
from .reschedule import JobRescheduler
from .schemas import RainDayRescheduleRequest, RescheduleResultResponse
from .service import RainDayRedistributor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rain-day", tags=["Rain Day"])


def get_rain_day_service(db: Session = Depends(get_db)) -> RainDayRedistributor:
    """Dependency injection for RainDayRedistributor"""
    notifier = Notifier(db)
    return RainDayRedistributor(
        db, notifier, rescheduler=JobRescheduler(db, notifier, sequencer=FollowUpSequencer(db))
    )


@router.post("/reschedule", response_model=RescheduleResultResponse)
async def reschedule_rain_day(
    data: RainDayRescheduleRequest,
    service: RainDayRedistributor = Depends(get_rain_day_service),
):
    """Move every open job on affected_date to target_date, or spread them over upcoming days"""
    logger.info(f"🌧️ Manual rain day reschedule requested for {data.affected_date}")
    result = await service.reschedule_all(
        data.affected_date,
        data.tenant_id,
        target_date=data.target_date,
        auto_spread=data.auto_spread,
        spread_days=data.spread_days,
        send_notifications=data.send_notifications,
    )
    return RescheduleResultResponse(**result.to_dict())
