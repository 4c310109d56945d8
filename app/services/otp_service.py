"""
app/services/otp_service.py

Purpose: Email one-time codes

- 6-digit code plus an opaque 64-hex token per issuance
- One live code per (email, purpose); issuing replaces the previous one
- Codes expire after OTP_EXPIRY_MINUTES and are single use
- verify marks the code verified; consume deletes it on use
"""

import hmac
import secrets
from typing import Any, Dict, Optional

from app.core.config import settings
from app.core.exceptions import ValidationError
from app.core.logging import get_logger
from app.db.mongo import get_otp_collection
from utils.constants import (
    MSG_OTP_EXPIRED,
    MSG_OTP_INVALID,
    MSG_OTP_WRONG_CODE,
    OtpPurpose,
)
from utils.time_utils import calculate_otp_expiry, is_expired, utc_now
from utils.validation_utils import normalize_email, validate_otp_format

logger = get_logger(__name__)


def generate_otp() -> str:
    return f"{secrets.randbelow(900000) + 100000}"


def generate_token() -> str:
    return secrets.token_hex(32)


async def issue_otp(email: str, purpose: OtpPurpose) -> Dict[str, str]:
    """
    Creates a fresh code for an email and purpose.

    Args:
        email: Recipient (normalized to lower case)
        purpose: What the code authorizes

    Returns:
        Dict with token, otp and email
    """
    email = normalize_email(email)
    purpose = OtpPurpose(purpose)
    otps = get_otp_collection()
    now = utc_now()

    # Replace the live code for this purpose and prune anything expired
    await otps.delete_many({"email": email, "purpose": purpose.value})
    await otps.delete_many({"email": email, "expires_at": {"$lt": now}})

    record = {
        "token": generate_token(),
        "otp": generate_otp(),
        "email": email,
        "purpose": purpose.value,
        "verified": False,
        "created_at": now,
        "expires_at": calculate_otp_expiry(now, settings.OTP_EXPIRY_MINUTES),
    }
    await otps.insert_one(record)

    logger.info(f"Issued {purpose.value} OTP for {email}")
    return {"token": record["token"], "otp": record["otp"], "email": email}


async def get_otp_record(token: str) -> Optional[Dict[str, Any]]:
    if not token:
        return None
    return await get_otp_collection().find_one({"token": token})


async def _load_live_record(token: str) -> Dict[str, Any]:
    otps = get_otp_collection()
    record = await otps.find_one({"token": token}) if token else None
    if not record:
        raise ValidationError(MSG_OTP_INVALID)

    if is_expired(record.get("expires_at")):
        await otps.delete_one({"token": token})
        raise ValidationError(MSG_OTP_EXPIRED)

    return record


def _code_matches(record: Dict[str, Any], otp: Optional[str]) -> bool:
    return bool(otp) and hmac.compare_digest(str(record.get("otp", "")), otp.strip())


async def verify_otp(token: str, otp: str) -> Dict[str, Any]:
    """
    Checks a code against its token and marks it verified.

    Raises:
        ValidationError: Unknown token, expired code or wrong code
    """
    if not validate_otp_format(otp):
        raise ValidationError(MSG_OTP_WRONG_CODE)

    record = await _load_live_record(token)

    if not _code_matches(record, otp):
        logger.warning(f"Wrong OTP entered for {record.get('email')}")
        raise ValidationError(MSG_OTP_WRONG_CODE)

    await get_otp_collection().update_one({"token": token}, {"$set": {"verified": True}})
    record["verified"] = True
    return record


async def consume_otp(
    token: str,
    email: str,
    purpose: OtpPurpose,
    otp: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Validates and deletes a code in one step.

    Without `otp` the code must already have been verified through
    verify_otp; with `otp` the code is checked here.

    Raises:
        ValidationError: Token does not match the email/purpose, is expired,
            unverified or the code is wrong
    """
    record = await _load_live_record(token)

    if record.get("email") != normalize_email(email) or record.get("purpose") != OtpPurpose(purpose).value:
        raise ValidationError(MSG_OTP_INVALID)

    if otp is not None:
        if not _code_matches(record, otp):
            raise ValidationError(MSG_OTP_WRONG_CODE)
    elif not record.get("verified"):
        raise ValidationError(MSG_OTP_INVALID)

    result = await get_otp_collection().delete_one({"token": token})
    if result.deleted_count == 0:
        # Consumed concurrently by another request
        raise ValidationError(MSG_OTP_INVALID)

    logger.info(f"Consumed {record.get('purpose')} OTP for {record.get('email')}")
    return record
