"""
app/schemas/auth.py

Purpose: Auth and profile request bodies

- OTP issue/verify
- Registration (with business billing address)
- OTP or password login, password reset
- Profile updates and email change
"""

from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional

from utils.constants import OtpPurpose


class SendOtpRequest(BaseModel):
    email: Optional[str] = None
    email_or_phone: Optional[str] = None
    purpose: OtpPurpose

    class Config:
        json_schema_extra = {
            "example": {
                "email_or_phone": "asha@example.com",
                "purpose": "login"
            }
        }


class VerifyOtpRequest(BaseModel):
    token: str = Field(..., min_length=1)
    otp: str = Field(..., min_length=1)


class BillingAddressIn(BaseModel):
    house_no: Optional[str] = None
    line1: Optional[str] = None
    line2: Optional[str] = None
    city: Optional[str] = None
    district: Optional[str] = None
    state: Optional[str] = None
    state_code: Optional[str] = None
    pincode: Optional[str] = None


class RegisterRequest(BaseModel):
    name: str
    email: str
    phone: str
    token: str
    is_business_account: bool = False
    business_name: Optional[str] = None
    gst_number: Optional[str] = None
    has_additional_trade_name: bool = False
    additional_trade_name: Optional[str] = None
    billing_address: Optional[BillingAddressIn] = None


class LoginRequest(BaseModel):
    email_or_phone: str = Field(..., min_length=1)
    token: Optional[str] = None
    password: Optional[str] = None

    @model_validator(mode="after")
    def require_credential(self):
        if not self.token and not self.password:
            raise ValueError("Email/Phone and token or password are required")
        return self


class ForgotPasswordRequest(BaseModel):
    email: str = Field(..., min_length=1)


class ResetPasswordRequest(BaseModel):
    token: str
    otp: str
    new_password: str

    @field_validator("new_password")
    @classmethod
    def password_length(cls, v: str) -> str:
        if len(v) < 8:
            raise ValueError("Password must be at least 8 characters long")
        return v


class ProfileUpdateRequest(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    is_business_account: Optional[bool] = None
    business_name: Optional[str] = None
    gst_number: Optional[str] = None


class EmailChangeRequest(BaseModel):
    """
    Step 1: new_email only. Step 2: new_email, token and otp.
    """
    new_email: str
    token: Optional[str] = None
    otp: Optional[str] = None
