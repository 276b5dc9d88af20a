"""
Cron trigger authentication

External schedulers call the /cron endpoints with `Authorization: Bearer <CRON_SECRET>`.
"""

import hmac
import logging
from typing import Optional

from fastapi import Header, HTTPException

from .. import config

logger = logging.getLogger(__name__)


def constant_time_compare(a: str, b: str) -> bool:
    if not a or not b:
        return False
    return hmac.compare_digest(a, b)


def verify_cron_secret(authorization: Optional[str] = Header(None)) -> None:
    """FastAPI dependency; open in development when CRON_SECRET is unset"""
    secret = config.CRON_SECRET
    if not secret:
        if config.ENVIRONMENT == "production":
            logger.error("❌ CRON_SECRET not configured in production, rejecting cron call")
            raise HTTPException(status_code=503, detail="Cron secret not configured")
        return

    token = ""
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization[7:].strip()

    if not constant_time_compare(token, secret):
        logger.warning("⚠️ Rejected cron call with invalid bearer token")
        raise HTTPException(status_code=401, detail="Unauthorized")
