"""
Unified Notification Service
Single seam for every outbound SMS, chat message and voice call the automation sends
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..models import Tenant
from ..shared.validators import to_e164
from . import telegram_service, twilio_service, voice_service

logger = logging.getLogger(__name__)


class Notifier:
    """
    Production notifier backed by Twilio, Telegram and VAPI.

    Every method returns (success, error) and never raises, so callers can
    treat delivery as best-effort or escalate a failure themselves.
    """

    def __init__(self, db: Session):
        self.db = db

    async def send_sms(
        self,
        to: Optional[str],
        body: str,
        message_type: str = "general",
        tenant: Optional[Tenant] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[int] = None,
    ) -> tuple[bool, Optional[str]]:
        formatted_phone = to_e164(to)
        if not formatted_phone:
            logger.warning(f"⚠️ Invalid phone number for {message_type} SMS: {to}")
            return False, "Invalid phone number format"
        try:
            return await twilio_service.send_sms(
                self.db,
                to_phone=formatted_phone,
                message_body=body,
                message_type=message_type,
                tenant=tenant,
                entity_type=entity_type,
                entity_id=entity_id,
            )
        except Exception as e:
            logger.error(f"❌ Failed to send {message_type} SMS to {formatted_phone}: {e}")
            return False, str(e)

    async def send_chat(
        self,
        chat_id: Optional[str],
        body: str,
        message_type: str = "general",
        tenant: Optional[Tenant] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[int] = None,
    ) -> tuple[bool, Optional[str]]:
        if not chat_id:
            return False, "No chat id"
        try:
            return await telegram_service.send_message(
                self.db,
                chat_id=chat_id,
                text=body,
                message_type=message_type,
                tenant=tenant,
                entity_type=entity_type,
                entity_id=entity_id,
            )
        except Exception as e:
            logger.error(f"❌ Failed to send {message_type} chat message to {chat_id}: {e}")
            return False, str(e)

    async def place_call(
        self, phone: Optional[str], name: Optional[str] = None, context: Optional[dict] = None
    ) -> tuple[bool, Optional[str]]:
        formatted_phone = to_e164(phone)
        if not formatted_phone:
            return False, "Invalid phone number format"
        try:
            return await voice_service.initiate_outbound_call(formatted_phone, name, context)
        except Exception as e:
            logger.error(f"❌ Failed to place call to {formatted_phone}: {e}")
            return False, str(e)


async def notify_owner(
    notifier,
    tenant: Optional[Tenant],
    message: str,
    message_type: str = "owner_alert",
    job_id: Optional[int] = None,
) -> tuple[bool, Optional[str]]:
    """Owner chat first, SMS to the owner phone as fallback"""
    from ..config import OWNER_PHONE, OWNER_TELEGRAM_CHAT_ID

    chat_id = (tenant.owner_telegram_chat_id if tenant else None) or OWNER_TELEGRAM_CHAT_ID
    owner_phone = (tenant.owner_phone if tenant else None) or OWNER_PHONE

    if chat_id:
        success, error = await notifier.send_chat(
            chat_id, message, message_type=message_type, tenant=tenant,
            entity_type="Job" if job_id else None, entity_id=job_id,
        )
        if success:
            return True, None
        logger.warning(f"⚠️ Owner chat message failed ({error}), falling back to SMS")

    if owner_phone:
        return await notifier.send_sms(
            owner_phone, message, message_type=message_type, tenant=tenant,
            entity_type="Job" if job_id else None, entity_id=job_id,
        )

    logger.warning(f"⚠️ No owner contact configured for tenant {tenant.id if tenant else 'default'}")
    return False, "No owner contact configured"
