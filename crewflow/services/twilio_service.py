"""
Twilio SMS Service
Sends customer, crew and owner text messages and records every attempt
"""

import logging
from typing import Optional

import httpx
from sqlalchemy.orm import Session

from ..config import (
    TWILIO_ACCOUNT_SID,
    TWILIO_AUTH_TOKEN,
    TWILIO_FROM_NUMBER,
    TWILIO_MESSAGING_SERVICE_SID,
)
from ..models import Tenant
from ..models_messaging import MessageLog
from .credentials import try_decrypt

logger = logging.getLogger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"


def resolve_twilio_credentials(tenant: Optional[Tenant]) -> Optional[dict]:
    """Tenant credentials first, global env configuration as fallback"""
    if tenant and tenant.twilio_account_sid and tenant.twilio_auth_token:
        account_sid = try_decrypt(tenant.twilio_account_sid)
        auth_token = try_decrypt(tenant.twilio_auth_token)
        if account_sid and auth_token and tenant.twilio_phone_number:
            return {
                "account_sid": account_sid,
                "auth_token": auth_token,
                "from_number": tenant.twilio_phone_number,
                "messaging_service_sid": None,
            }
        logger.warning(f"⚠️ Tenant {tenant.id} has unusable Twilio credentials, using global account")

    if TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN and (TWILIO_FROM_NUMBER or TWILIO_MESSAGING_SERVICE_SID):
        return {
            "account_sid": TWILIO_ACCOUNT_SID,
            "auth_token": TWILIO_AUTH_TOKEN,
            "from_number": TWILIO_FROM_NUMBER,
            "messaging_service_sid": TWILIO_MESSAGING_SERVICE_SID,
        }
    return None


def _log_message(
    db: Session,
    tenant: Optional[Tenant],
    to_phone: str,
    message_body: str,
    message_type: str,
    entity_type: Optional[str],
    entity_id: Optional[int],
    status: str,
    provider_message_id: Optional[str] = None,
    error_message: Optional[str] = None,
):
    try:
        db.add(
            MessageLog(
                tenant_id=tenant.id if tenant else None,
                channel="sms",
                recipient=to_phone,
                message_body=message_body,
                message_type=message_type,
                entity_type=entity_type,
                entity_id=entity_id,
                provider_message_id=provider_message_id,
                status=status,
                error_message=error_message,
            )
        )
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to record SMS log: {str(e)}")


async def send_sms(
    db: Session,
    to_phone: str,
    message_body: str,
    message_type: str,
    tenant: Optional[Tenant] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
) -> tuple[bool, Optional[str]]:
    """
    Send SMS via Twilio

    Args:
        db: Database session
        to_phone: Recipient phone number (should be in E.164 format)
        message_body: SMS message content
        message_type: Type of message (lead_followup, rain_day_reschedule, etc.)
        tenant: Tenant whose credentials and sender number are used
        entity_type: Optional entity type (Job, Lead, ...)
        entity_id: Optional entity ID

    Returns:
        Tuple of (success: bool, error_message: Optional[str])
    """
    if not to_phone:
        logger.debug(f"No phone number provided for {message_type}")
        return False, "No phone number provided"

    if not to_phone.startswith("+"):
        logger.warning(f"Phone number not in E.164 format: {to_phone}")
        return False, "Phone number must be in E.164 format (e.g., +1234567890)"

    credentials = resolve_twilio_credentials(tenant)
    if not credentials:
        logger.debug("No Twilio credentials configured")
        return False, "No Twilio integration"

    account_sid = credentials["account_sid"]
    data = {"To": to_phone, "Body": message_body}
    if credentials["messaging_service_sid"]:
        data["MessagingServiceSid"] = credentials["messaging_service_sid"]
    else:
        data["From"] = credentials["from_number"]

    try:
        logger.info(f"📱 Sending SMS: type={message_type}, to={to_phone}")
        async with httpx.AsyncClient() as client:
            response = await client.post(
                f"{TWILIO_API_BASE}/Accounts/{account_sid}/Messages.json",
                auth=(account_sid, credentials["auth_token"]),
                data=data,
                timeout=10.0,
            )

        if response.status_code in [200, 201]:
            message_sid = response.json().get("sid")
            _log_message(
                db, tenant, to_phone, message_body, message_type, entity_type, entity_id,
                status="sent", provider_message_id=message_sid,
            )
            logger.info(f"✅ SMS sent successfully: {message_type} to {to_phone} (SID: {message_sid})")
            return True, None

        error_data = response.json()
        error_message = error_data.get("message", "Unknown error")
        error_code = error_data.get("code")
        _log_message(
            db, tenant, to_phone, message_body, message_type, entity_type, entity_id,
            status="failed",
            error_message=f"[{error_code}] {error_message}" if error_code else error_message,
        )
        logger.error(f"❌ Twilio API error [{error_code}]: {error_message}")
        return False, error_message

    except httpx.HTTPError as e:
        logger.error(f"Twilio API error: {str(e)}")
        _log_message(
            db, tenant, to_phone, message_body, message_type, entity_type, entity_id,
            status="failed", error_message=str(e),
        )
        return False, str(e)
    except Exception as e:
        logger.error(f"Error sending SMS: {str(e)}")
        return False, str(e)
