"""
Provider credential encryption
Tenant Twilio and Telegram secrets are stored Fernet-encrypted
"""

import base64
import hashlib
import logging
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from ..config import SECRET_KEY

logger = logging.getLogger(__name__)

_cipher_suite: Optional[Fernet] = None


def _get_cipher() -> Fernet:
    global _cipher_suite
    if _cipher_suite is None:
        # Fernet needs 32 url-safe base64 bytes; derive them from any SECRET_KEY
        key = base64.urlsafe_b64encode(hashlib.sha256(SECRET_KEY.encode()).digest())
        _cipher_suite = Fernet(key)
    return _cipher_suite


def encrypt_credential(credential: str) -> str:
    """Encrypt a credential for storage"""
    return _get_cipher().encrypt(credential.encode()).decode()


def decrypt_credential(encrypted_credential: str) -> str:
    """Decrypt a stored credential"""
    return _get_cipher().decrypt(encrypted_credential.encode()).decode()


def try_decrypt(encrypted_credential: Optional[str]) -> Optional[str]:
    """Decrypt or return None when the value is missing or was encrypted with another key"""
    if not encrypted_credential:
        return None
    try:
        return decrypt_credential(encrypted_credential)
    except (InvalidToken, ValueError) as e:
        logger.error(f"❌ Failed to decrypt stored credential: {type(e).__name__}")
        return None
