"""
app/services/user_service.py

Purpose: User account management

- Registration (personal and business accounts, billing address)
- User id generation: BS/US + year + sequence
- Sign-in by OTP or password, password reset
- Profile updates with change alerts, two-step email change
"""

import re
import secrets
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from pymongo.errors import DuplicateKeyError

from app.core.config import settings
from app.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    ExternalServiceError,
    ResourceNotFoundError,
    ValidationError,
)
from app.core.logging import get_logger, LogContext
from app.core.security import hash_password, verify_password
from app.db.mongo import get_billing_addresses_collection, get_users_collection
from app.services.notification_service import get_email_service
from app.services.otp_service import consume_otp, get_otp_record, issue_otp
from app.services.sequence_service import next_sequence
from utils.constants import (
    BUSINESS_USER_PREFIX,
    MSG_ACCOUNT_SUSPENDED,
    MSG_INVALID_EMAIL,
    MSG_INVALID_GSTIN,
    MSG_INVALID_PHONE,
    MSG_INVALID_PINCODE,
    MSG_OTP_SEND_FAILED,
    MSG_USER_NOT_FOUND,
    PERSONAL_USER_PREFIX,
    OtpPurpose,
)
from utils.time_utils import to_local, utc_now
from utils.validation_utils import (
    normalize_email,
    validate_email,
    validate_gstin,
    validate_phone_number,
    validate_pincode,
)

logger = get_logger(__name__)

MIN_PASSWORD_LENGTH = 8

PUBLIC_USER_FIELDS = (
    "name",
    "email",
    "phone",
    "is_business_account",
    "business_name",
    "gst_number",
    "created_at",
    "updated_at",
)


def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    """
    Strips credentials and internal flags from a user document.
    """
    data = {"id": user["_id"]}
    data.update({field: user.get(field) for field in PUBLIC_USER_FIELDS})
    return data


# ============================================================
# LOOKUPS
# ============================================================

async def get_user_by_id(user_id: str, session=None) -> Optional[Dict[str, Any]]:
    return await get_users_collection().find_one({"_id": user_id}, session=session)


async def get_user_by_email(email: str) -> Optional[Dict[str, Any]]:
    return await get_users_collection().find_one({"email": normalize_email(email)})


async def find_user_by_identifier(identifier: str) -> Optional[Dict[str, Any]]:
    """
    Finds a user by email (case-insensitive) or phone number.
    """
    identifier = (identifier or "").strip()
    if not identifier:
        return None
    return await get_users_collection().find_one(
        {"$or": [{"email": identifier.lower()}, {"phone": identifier}]}
    )


async def get_billing_address(user_id: str) -> Optional[Dict[str, Any]]:
    return await get_billing_addresses_collection().find_one({"user_id": user_id})


# ============================================================
# USER IDS
# ============================================================

def get_id_prefix(is_business_account: bool) -> str:
    return BUSINESS_USER_PREFIX if is_business_account else PERSONAL_USER_PREFIX


async def _max_existing_user_sequence(id_prefix: str) -> int:
    users = get_users_collection()
    cursor = users.find({"_id": {"$regex": f"^{re.escape(id_prefix)}"}}, {"_id": 1})

    highest = 0
    async for doc in cursor:
        suffix = doc["_id"][len(id_prefix):]
        if suffix.isdigit():
            highest = max(highest, int(suffix))
    return highest


async def generate_user_id(is_business_account: bool, at: Optional[datetime] = None) -> str:
    """
    Issues the next user id for an account class and calendar year
    (US20261, US20262, ..., BS20261, ...).
    """
    year = to_local(at or utc_now(), settings.TIMEZONE).year
    id_prefix = f"{get_id_prefix(is_business_account)}{year}"

    seed = await _max_existing_user_sequence(id_prefix)
    sequence = await next_sequence(f"user:{id_prefix}", seed=seed)
    return f"{id_prefix}{sequence}"


# ============================================================
# REGISTRATION & SIGN-IN
# ============================================================

def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _validate_business_fields(data: Dict[str, Any]):
    if not _clean(data.get("business_name")):
        raise ValidationError("Business name is required for business accounts")
    if not _clean(data.get("gst_number")):
        raise ValidationError("GST number is required for business accounts")
    if not validate_gstin(data["gst_number"]):
        raise ValidationError(MSG_INVALID_GSTIN)
    if data.get("has_additional_trade_name") and not _clean(data.get("additional_trade_name")):
        raise ValidationError("Additional trade name is required when selected")

    billing = data.get("billing_address")
    if not billing:
        raise ValidationError("Billing address is required for business accounts")
    for field, label in (
        ("house_no", "Billing address house number"),
        ("line1", "Billing address line 1"),
        ("city", "Billing city"),
        ("district", "Billing district"),
        ("state", "Billing state"),
        ("pincode", "Billing pincode"),
    ):
        if not _clean(billing.get(field)):
            raise ValidationError(f"{label} is required")
    if not validate_pincode(billing["pincode"]):
        raise ValidationError(MSG_INVALID_PINCODE)


async def register_user(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Creates an account after a verified registration OTP.

    Args:
        data: name, email, phone, token and, for business accounts,
            business_name, gst_number, has_additional_trade_name,
            additional_trade_name, billing_address

    Returns:
        The new user document

    Raises:
        ValidationError: Missing or malformed fields, bad OTP token
        ConflictError: Email or phone already registered
    """
    name = _clean(data.get("name"))
    email = normalize_email(data.get("email"))
    phone = _clean(data.get("phone"))
    token = data.get("token")
    is_business = bool(data.get("is_business_account"))

    if not name or not email or not phone or not token:
        raise ValidationError("All fields are required")
    if not validate_email(email):
        raise ValidationError(MSG_INVALID_EMAIL)
    if not validate_phone_number(phone):
        raise ValidationError(MSG_INVALID_PHONE)
    if is_business:
        _validate_business_fields(data)

    users = get_users_collection()
    if await users.find_one({"$or": [{"email": email}, {"phone": phone}]}):
        raise ConflictError("User already exists with this email or phone")

    await consume_otp(token, email, OtpPurpose.REGISTRATION)

    user_id = await generate_user_id(is_business)
    now = utc_now()
    has_trade_name = bool(data.get("has_additional_trade_name")) if is_business else None

    user = {
        "_id": user_id,
        "name": name,
        "email": email,
        "phone": phone,
        # OTP accounts get an unguessable password until they reset it
        "password": hash_password(secrets.token_hex(16)),
        "is_business_account": is_business,
        "business_name": _clean(data.get("business_name")) if is_business else None,
        "gst_number": data["gst_number"].strip().upper() if is_business else None,
        "has_additional_trade_name": has_trade_name,
        "additional_trade_name": _clean(data.get("additional_trade_name")) if has_trade_name else None,
        "suspended": False,
        "terminated": False,
        "created_at": now,
        "updated_at": now,
    }

    with LogContext(user_id=user_id):
        try:
            await users.insert_one(user)
        except DuplicateKeyError as e:
            field = "phone" if "phone" in str(e) else "email"
            raise ConflictError(f"User already exists with this {field}")

        if is_business:
            billing = data["billing_address"]
            await get_billing_addresses_collection().insert_one({
                "_id": f"BA-{user_id}",
                "user_id": user_id,
                "house_no": billing["house_no"].strip(),
                "line1": billing["line1"].strip(),
                "line2": _clean(billing.get("line2")),
                "city": billing["city"].strip(),
                "district": billing["district"].strip(),
                "state": billing["state"].strip(),
                "state_code": billing.get("state_code") or None,
                "pincode": billing["pincode"].strip(),
                "country": "India",
                "created_at": now,
                "updated_at": now,
            })

        logger.info(f"Registered {'business' if is_business else 'personal'} account {user_id}")

    return user


def _ensure_active(user: Dict[str, Any]):
    if user.get("suspended") or user.get("terminated"):
        raise AuthorizationError(MSG_ACCOUNT_SUSPENDED)


async def authenticate_user(
    identifier: str,
    token: Optional[str] = None,
    password: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Signs a user in with a verified login OTP token or a password.

    Raises:
        ValidationError: Neither credential supplied, or bad OTP token
        ResourceNotFoundError: Unknown user (OTP flow)
        AuthenticationError: Wrong password
        AuthorizationError: Suspended or terminated account
    """
    if not identifier or not (token or password):
        raise ValidationError("Email/Phone and token or password are required")

    user = await find_user_by_identifier(identifier)

    if token:
        if not user:
            raise ResourceNotFoundError(MSG_USER_NOT_FOUND)
        _ensure_active(user)
        await consume_otp(token, user["email"], OtpPurpose.LOGIN)
    else:
        if not user or not verify_password(password, user.get("password")):
            logger.warning(f"Failed password sign-in for {identifier}")
            raise AuthenticationError("Invalid credentials")
        _ensure_active(user)

    logger.info(f"User {user['_id']} signed in", extra={"user_id": user["_id"]})
    return user


async def send_otp(purpose: OtpPurpose, email: Optional[str] = None, identifier: Optional[str] = None) -> Dict[str, Any]:
    """
    Issues and emails a one-time code.

    Login looks the user up by email or phone (404 if unknown) and mails
    the account's email. Registration requires the email to be free.
    Password reset never reveals whether the account exists.

    Returns:
        Dict with message and, when a code was issued, token
    """
    purpose = OtpPurpose(purpose)
    email_service = get_email_service()

    if purpose == OtpPurpose.LOGIN:
        identifier = (identifier or email or "").strip()
        if not identifier:
            raise ValidationError("Email or phone number is required")
        user = await find_user_by_identifier(identifier)
        if not user:
            raise ResourceNotFoundError("User not found. Please register first.")
        target = user["email"]

    elif purpose == OtpPurpose.REGISTRATION:
        target = normalize_email(email or identifier)
        if not target:
            raise ValidationError("Email is required")
        if not validate_email(target):
            raise ValidationError(MSG_INVALID_EMAIL)
        if await get_user_by_email(target):
            raise ConflictError("User already exists with this email")

    elif purpose == OtpPurpose.PASSWORD_RESET:
        target = normalize_email(email or identifier)
        if not target:
            raise ValidationError("Email is required")
        if not validate_email(target):
            raise ValidationError(MSG_INVALID_EMAIL)
        if not await get_user_by_email(target):
            logger.info("Password reset requested for unknown email")
            return {"message": "If an account exists with this email, an OTP has been sent."}

    else:
        raise ValidationError("Invalid purpose")

    issued = await issue_otp(target, purpose)
    sent = await email_service.send_otp_email(target, issued["otp"], purpose)

    if purpose == OtpPurpose.PASSWORD_RESET:
        return {
            "message": "If an account exists with this email, an OTP has been sent.",
            "token": issued["token"],
        }
    if not sent:
        raise ExternalServiceError(MSG_OTP_SEND_FAILED, status_code=500)
    return {"message": "OTP sent to your email", "token": issued["token"]}


async def reset_password(token: str, otp: str, new_password: str) -> Dict[str, Any]:
    """
    Sets a new password using a password-reset code.

    Raises:
        ValidationError: Weak password, bad token or code
        ResourceNotFoundError: Account vanished
    """
    if not token or not otp or not new_password:
        raise ValidationError("Token, OTP, and new password are required")
    if len(new_password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")

    record = await get_otp_record(token)
    email = record.get("email") if record else None
    if not email:
        raise ValidationError("Invalid or expired OTP")

    await consume_otp(token, email, OtpPurpose.PASSWORD_RESET, otp=otp)

    user = await get_user_by_email(email)
    if not user:
        raise ResourceNotFoundError(MSG_USER_NOT_FOUND)

    await get_users_collection().update_one(
        {"_id": user["_id"]},
        {"$set": {"password": hash_password(new_password), "updated_at": utc_now()}},
    )
    logger.info("Password reset", extra={"user_id": user["_id"]})
    return user


# ============================================================
# PROFILE
# ============================================================

async def update_profile(user_id: str, updates: Dict[str, Any]) -> Tuple[Dict[str, Any], List[str]]:
    """
    Applies profile changes and emails the user a summary of them.

    Args:
        user_id: Signed-in user
        updates: Any of name, phone, is_business_account, business_name, gst_number
            (absent keys are left unchanged)

    Returns:
        (updated user, list of human-readable changes)
    """
    users = get_users_collection()
    current = await get_user_by_id(user_id)
    if not current:
        raise ResourceNotFoundError(MSG_USER_NOT_FOUND)

    changes: List[str] = []
    fields: Dict[str, Any] = {}

    name = updates.get("name")
    if name is not None and name.strip() and name.strip() != current.get("name"):
        fields["name"] = name.strip()
        changes.append(f"Name: {current.get('name')} → {fields['name']}")

    phone = updates.get("phone")
    if phone is not None and phone != current.get("phone"):
        if not validate_phone_number(phone):
            raise ValidationError(MSG_INVALID_PHONE)
        taken = await users.find_one({"phone": phone})
        if taken and taken["_id"] != user_id:
            raise ConflictError("Phone number already exists")
        fields["phone"] = phone
        changes.append(f"Phone: {current.get('phone')} → {phone}")

    business_name = _clean(updates.get("business_name"))
    gst_number = _clean(updates.get("gst_number"))
    if gst_number:
        gst_number = gst_number.upper()

    toggle = updates.get("is_business_account")
    business_enabled = current.get("is_business_account") if toggle is None else toggle

    if toggle is not None and toggle != current.get("is_business_account"):
        fields["is_business_account"] = toggle
        if not toggle and (current.get("business_name") or current.get("gst_number")):
            fields["business_name"] = None
            fields["gst_number"] = None
            changes.append("Business Account: Disabled (Business Name and GST Number removed)")

    if business_enabled:
        if business_name and business_name != current.get("business_name"):
            fields["business_name"] = business_name
            changes.append(f"Business Name: {current.get('business_name') or 'N/A'} → {business_name}")
        if gst_number and gst_number != current.get("gst_number"):
            if not validate_gstin(gst_number):
                raise ValidationError(MSG_INVALID_GSTIN)
            fields["gst_number"] = gst_number
            changes.append(f"GST Number: {current.get('gst_number') or 'N/A'} → {gst_number}")

    if not fields:
        return current, []

    fields["updated_at"] = utc_now()
    try:
        await users.update_one({"_id": user_id}, {"$set": fields})
    except DuplicateKeyError:
        raise ConflictError("This phone is already in use")

    updated = {**current, **fields}
    logger.info(f"Profile updated ({len(changes)} changes)", extra={"user_id": user_id})

    if changes:
        await get_email_service().send_profile_change_alert(current["email"], updated.get("name"), changes)

    return updated, changes


async def request_email_change(user_id: str, new_email: str) -> str:
    """
    Step 1 of an email change: mails a code to the new address.

    Returns:
        OTP token for step 2
    """
    new_email = normalize_email(new_email)
    if not validate_email(new_email):
        raise ValidationError(MSG_INVALID_EMAIL)

    current = await get_user_by_id(user_id)
    if not current:
        raise ResourceNotFoundError(MSG_USER_NOT_FOUND)
    if new_email == normalize_email(current.get("email")):
        raise ValidationError("New email is the same as current email")
    if await get_user_by_email(new_email):
        raise ConflictError("Email already exists")

    issued = await issue_otp(new_email, OtpPurpose.EMAIL_CHANGE)
    if not await get_email_service().send_otp_email(new_email, issued["otp"], OtpPurpose.EMAIL_CHANGE):
        raise ExternalServiceError(MSG_OTP_SEND_FAILED, status_code=500)
    return issued["token"]


async def confirm_email_change(user_id: str, new_email: str, token: str, otp: str) -> Dict[str, Any]:
    """
    Step 2 of an email change: checks the code and switches the address,
    alerting both the old and the new mailbox.
    """
    new_email = normalize_email(new_email)
    current = await get_user_by_id(user_id)
    if not current:
        raise ResourceNotFoundError(MSG_USER_NOT_FOUND)

    await consume_otp(token, new_email, OtpPurpose.EMAIL_CHANGE, otp=otp)

    try:
        await get_users_collection().update_one(
            {"_id": user_id},
            {"$set": {"email": new_email, "updated_at": utc_now()}},
        )
    except DuplicateKeyError:
        raise ConflictError("Email already exists")

    updated = {**current, "email": new_email}
    email_service = get_email_service()
    await email_service.send_profile_change_alert(
        current["email"], updated.get("name"), [f"Email: {current['email']} → {new_email}"]
    )
    await email_service.send_profile_change_alert(
        new_email, updated.get("name"), [f"Email: Successfully changed to {new_email}"]
    )

    logger.info("Email changed", extra={"user_id": user_id})
    return updated
