"""
app/api/profile.py

Purpose: Signed-in user's profile

- Read profile (with billing address for business accounts)
- Update name/phone/business fields
- Two-step email change
"""

from fastapi import APIRouter, Depends

from app.core.exceptions import ResourceNotFoundError
from app.core.logging import get_logger
from app.core.security import get_current_user_id
from app.db.mongo import serialize_document
from app.schemas.auth import EmailChangeRequest, ProfileUpdateRequest
from app.services import user_service
from utils.constants import MSG_USER_NOT_FOUND

logger = get_logger(__name__)
router = APIRouter()


@router.get("/")
async def get_profile(user_id: str = Depends(get_current_user_id)):
    user = await user_service.get_user_by_id(user_id)
    if not user:
        raise ResourceNotFoundError(MSG_USER_NOT_FOUND)

    billing = None
    if user.get("is_business_account"):
        billing = serialize_document(await user_service.get_billing_address(user_id))

    return {
        "success": True,
        "user": user_service.public_user(user),
        "billing_address": billing,
    }


@router.put("/update")
async def update_profile(body: ProfileUpdateRequest, user_id: str = Depends(get_current_user_id)):
    user, changes = await user_service.update_profile(user_id, body.model_dump(exclude_unset=True))
    return {
        "success": True,
        "message": "Profile updated successfully" if changes else "No changes made",
        "changes": changes,
        "user": user_service.public_user(user),
    }


@router.post("/verify-email-change")
async def verify_email_change(body: EmailChangeRequest, user_id: str = Depends(get_current_user_id)):
    """
    Without token/otp a code is mailed to the new address; with them the
    address is switched.
    """
    if not body.token or not body.otp:
        token = await user_service.request_email_change(user_id, body.new_email)
        return {"success": True, "message": "OTP sent to new email", "token": token}

    user = await user_service.confirm_email_change(user_id, body.new_email, body.token, body.otp)
    return {
        "success": True,
        "message": "Email updated successfully",
        "user": user_service.public_user(user),
    }
