"""
Telegram Bot Service
Job offers, schedule changes and owner escalations go to crew/owner chats
"""

import logging
from typing import Optional

import httpx
from sqlalchemy.orm import Session

from ..config import TELEGRAM_BOT_TOKEN
from ..models import Tenant
from ..models_messaging import MessageLog
from .credentials import try_decrypt

logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"


def resolve_bot_token(tenant: Optional[Tenant]) -> Optional[str]:
    if tenant and tenant.telegram_bot_token:
        token = try_decrypt(tenant.telegram_bot_token)
        if token:
            return token
    return TELEGRAM_BOT_TOKEN


async def send_message(
    db: Session,
    chat_id: str,
    text: str,
    message_type: str,
    tenant: Optional[Tenant] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
) -> tuple[bool, Optional[str]]:
    """
    Send a Telegram chat message

    Returns:
        Tuple of (success: bool, error_message: Optional[str])
    """
    if not chat_id:
        return False, "No chat id provided"

    token = resolve_bot_token(tenant)
    if not token:
        logger.debug("No Telegram bot token configured")
        return False, "No Telegram bot configured"

    status = "failed"
    provider_id = None
    error = None
    try:
        async with httpx.AsyncClient() as client:
            response = await client.post(
                f"{TELEGRAM_API_BASE}/bot{token}/sendMessage",
                json={"chat_id": chat_id, "text": text, "parse_mode": "HTML"},
                timeout=10.0,
            )
        result = response.json()
        if response.status_code == 200 and result.get("ok"):
            status = "sent"
            provider_id = str(result.get("result", {}).get("message_id", "")) or None
            logger.info(f"✅ Telegram message sent: {message_type} to chat {chat_id}")
        else:
            error = result.get("description", f"HTTP {response.status_code}")
            logger.error(f"❌ Telegram API error: {error}")
    except (httpx.HTTPError, ValueError) as e:
        error = str(e)
        logger.error(f"Telegram API error: {error}")

    try:
        db.add(
            MessageLog(
                tenant_id=tenant.id if tenant else None,
                channel="telegram",
                recipient=str(chat_id),
                message_body=text,
                message_type=message_type,
                entity_type=entity_type,
                entity_id=entity_id,
                provider_message_id=provider_id,
                status=status,
                error_message=error,
            )
        )
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to record Telegram log: {str(e)}")

    return status == "sent", error
