"""
utils/validation_utils.py

Purpose: Input validation

- GSTIN format validation
- Email, phone and pincode formats
- OTP format
- Input normalization
"""

import re
from typing import Optional

GSTIN_PATTERN = r"^[0-9]{2}[A-Z]{5}[0-9]{4}[A-Z]{1}[1-9A-Z]{1}Z[0-9A-Z]{1}$"
EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"
PHONE_PATTERN = r"^[0-9]{10}$"
PINCODE_PATTERN = r"^[0-9]{6}$"


def validate_gstin(gstin: str) -> bool:
    """
    Validates GSTIN format.

    Format: 2 digits (state) + 10 chars (PAN) + 1 digit/letter + Z + 1 char
    Example: 27AABCU9603R1ZM

    Args:
        gstin: GSTIN string to validate

    Returns:
        True if valid, False otherwise
    """
    if not gstin:
        return False

    gstin = gstin.strip().upper()
    if not re.match(GSTIN_PATTERN, gstin):
        return False

    # Validate state code (01-38)
    state_code = int(gstin[:2])
    return 1 <= state_code <= 38


def validate_email(email: Optional[str]) -> bool:
    """Checks basic email shape (something@something.tld)."""
    if not email:
        return False
    return bool(re.match(EMAIL_PATTERN, email.strip()))


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def validate_phone_number(phone: Optional[str]) -> bool:
    """
    Validates a 10-digit phone number as stored on user records.
    """
    if not phone:
        return False
    return bool(re.match(PHONE_PATTERN, phone.strip()))


def validate_pincode(pincode: Optional[str]) -> bool:
    """
    Validates a 6-digit Indian postal code.
    """
    if not pincode:
        return False
    return bool(re.match(PINCODE_PATTERN, pincode.strip()))


def validate_otp_format(otp: str) -> bool:
    """
    Validates OTP format (must be 6 digits).
    """
    if not otp:
        return False
    return bool(re.match(r"^\d{6}$", otp.strip()))


def sanitize_input(text: str, max_length: int = 1000) -> str:
    """
    Sanitizes free-text input (search queries, names).

    Args:
        text: Input text
        max_length: Maximum allowed length

    Returns:
        Sanitized text
    """
    if not text:
        return ""

    text = text[:max_length]
    text = re.sub(r"[<>{}\[\]]", "", text)
    text = " ".join(text.split())

    return text.strip()
