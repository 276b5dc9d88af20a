"""Shared validation utilities"""

import re
from typing import Optional


def validate_us_phone(phone: Optional[str]) -> Optional[str]:
    """
    Validate and normalize US phone number to E.164 format.

    Args:
        phone: Phone number string in various formats

    Returns:
        Normalized phone number in E.164 format (+1XXXXXXXXXX)

    Raises:
        ValueError: If phone number is invalid
    """
    if not phone:
        return phone

    # Remove all non-digit characters
    digits = re.sub(r"\D", "", phone)

    # Handle +1 prefix
    if digits.startswith("1") and len(digits) == 11:
        digits = digits[1:]

    # US phone numbers should have 10 digits
    if len(digits) != 10:
        raise ValueError("Phone number must be 10 digits for US numbers")

    return f"+1{digits}"


def to_e164(phone: Optional[str]) -> Optional[str]:
    """Best-effort E.164 normalization; returns None for unusable numbers"""
    if not phone:
        return None
    if phone.startswith("+") and not phone.startswith("+1"):
        # Non-US numbers are passed through untouched
        return phone
    try:
        return validate_us_phone(phone)
    except ValueError:
        return None
