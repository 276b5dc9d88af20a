"""
System event log
Append-only audit trail; writing an event must never break the caller
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..models_alerts import SystemEvent

logger = logging.getLogger(__name__)


def log_system_event(
    db: Session,
    source: str,
    event_type: str,
    message: Optional[str] = None,
    tenant_id: Optional[str] = None,
    job_id=None,
    lead_id=None,
    cleaner_id=None,
    phone_number: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> Optional[SystemEvent]:
    try:
        event = SystemEvent(
            tenant_id=tenant_id,
            source=source,
            event_type=event_type,
            message=message,
            job_id=str(job_id) if job_id is not None else None,
            lead_id=str(lead_id) if lead_id is not None else None,
            cleaner_id=str(cleaner_id) if cleaner_id is not None else None,
            phone_number=phone_number,
            event_metadata=metadata or {},
        )
        db.add(event)
        db.commit()
        return event
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Failed to log system event {event_type}: {e}")
        return None
