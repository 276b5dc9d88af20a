"""
VAPI Voice Service
Outbound AI phone calls for the call stages of lead follow-up
"""

import logging
from typing import Optional

import httpx

from ..config import VAPI_API_KEY, VAPI_ASSISTANT_ID, VAPI_PHONE_ID

logger = logging.getLogger(__name__)

VAPI_CALL_URL = "https://api.vapi.ai/call"


async def initiate_outbound_call(
    phone: str, customer_name: Optional[str] = None, context: Optional[dict] = None
) -> tuple[bool, Optional[str]]:
    """
    Start an outbound call through VAPI

    Returns:
        Tuple of (success: bool, error_message: Optional[str])
    """
    if not (VAPI_API_KEY and VAPI_ASSISTANT_ID and VAPI_PHONE_ID):
        logger.debug("VAPI not configured, skipping outbound call")
        return False, "VAPI not configured"

    if not phone:
        return False, "No phone number provided"

    body = {
        "assistantId": VAPI_ASSISTANT_ID,
        "phoneNumberId": VAPI_PHONE_ID,
        "customer": {"number": phone, "name": customer_name or "Customer"},
        "assistantOverrides": {"variableValues": context or {}},
    }

    try:
        logger.info(f"📞 Placing outbound call to {phone}")
        async with httpx.AsyncClient() as client:
            response = await client.post(
                VAPI_CALL_URL,
                headers={"Authorization": f"Bearer {VAPI_API_KEY}"},
                json=body,
                timeout=15.0,
            )
        if response.status_code in [200, 201]:
            call_id = response.json().get("id")
            logger.info(f"✅ Outbound call started: {call_id}")
            return True, None

        logger.error(f"❌ VAPI error {response.status_code}: {response.text[:200]}")
        return False, f"VAPI error {response.status_code}"
    except httpx.HTTPError as e:
        logger.error(f"VAPI request failed: {str(e)}")
        return False, str(e)
