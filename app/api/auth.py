"""
app/api/auth.py

Purpose: Authentication endpoints

- OTP issue and verification
- Registration, login (OTP or password), logout, session probe
- Forgot/reset password
"""

from fastapi import APIRouter, Depends, Request
from typing import Optional

from app.core.logging import get_logger
from app.core.security import get_session_user, login_session, logout_session
from app.schemas.auth import (
    ForgotPasswordRequest,
    LoginRequest,
    RegisterRequest,
    ResetPasswordRequest,
    SendOtpRequest,
    VerifyOtpRequest,
)
from app.services import otp_service, user_service
from utils.constants import OtpPurpose

logger = get_logger(__name__)
router = APIRouter()


@router.post("/send-otp")
async def send_otp(body: SendOtpRequest):
    """
    Issues a one-time code for login, registration or password reset.
    """
    result = await user_service.send_otp(body.purpose, email=body.email, identifier=body.email_or_phone)
    return {"success": True, **result}


@router.post("/verify-otp")
async def verify_otp(body: VerifyOtpRequest):
    record = await otp_service.verify_otp(body.token, body.otp)
    return {
        "success": True,
        "message": "OTP verified successfully",
        "email": record.get("email"),
        "token": body.token,
    }


@router.post("/register")
async def register(body: RegisterRequest):
    user = await user_service.register_user(body.model_dump())
    return {
        "success": True,
        "message": "Registration successful",
        "user": user_service.public_user(user),
    }


@router.post("/login")
async def login(body: LoginRequest, request: Request):
    user = await user_service.authenticate_user(
        body.email_or_phone, token=body.token, password=body.password
    )
    login_session(request, user)
    return {
        "success": True,
        "message": "Login successful",
        "user": user_service.public_user(user),
    }


@router.post("/logout")
async def logout(request: Request):
    logout_session(request)
    return {"success": True, "message": "Logged out"}


@router.get("/session")
async def session(user: Optional[dict] = Depends(get_session_user)):
    return {"success": True, "is_logged_in": user is not None, "user": user}


@router.post("/forgot-password")
async def forgot_password(body: ForgotPasswordRequest):
    result = await user_service.send_otp(OtpPurpose.PASSWORD_RESET, email=body.email)
    return {"success": True, **result}


@router.post("/reset-password")
async def reset_password(body: ResetPasswordRequest):
    await user_service.reset_password(body.token, body.otp, body.new_password)
    return {"success": True, "message": "Password reset successful"}
