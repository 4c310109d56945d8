"""
utils/constants.py

Purpose: Centralized static values

- Order/invoice enums
- Weight and shipping thresholds
- User-facing messages reused across routes

(Prevents hardcoding across the codebase)
"""

from enum import Enum


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"


class InvoiceType(str, Enum):
    PROFORMA = "PI"
    TAX_INVOICE = "TAX_INVOICE"


class OtpPurpose(str, Enum):
    LOGIN = "login"
    REGISTRATION = "registration"
    PASSWORD_RESET = "password-reset"
    EMAIL_CHANGE = "email-change"


# ============================================================
# PAYMENT
# ============================================================

ACCEPTED_PAYMENT_STATUSES = ("captured", "authorized")
DEFAULT_CURRENCY = "INR"

# ============================================================
# WEIGHT & SHIPPING (grams)
# ============================================================

BULK_ITEM_WEIGHT_THRESHOLD = 10000
PACKAGING_STEP_WEIGHT = 10000
PACKAGING_ALLOWANCE_PER_STEP = 1000
HEAVY_SHIPPING_THRESHOLD = 10000

ZONE_DELIVERY_DAYS = {
    "A": 1,
    "B": 2,
    "C": 3,
    "D": 4,
    "E": 4,
}
DEFAULT_ZONE_DELIVERY_DAYS = 5
HEAVY_TRANSIT_DAYS = 3
CARRIER_NAME = "Delhivery"
CARRIER_ID = "delhivery"

# ============================================================
# ID PREFIXES
# ============================================================

BUSINESS_USER_PREFIX = "BS"
PERSONAL_USER_PREFIX = "US"
ORDER_ID_PREFIX = "ODR"

# ============================================================
# CATALOG
# ============================================================

RELATED_PRODUCTS_LIMIT = 8
SEARCH_MIN_QUERY_LENGTH = 3

# ============================================================
# MESSAGES
# ============================================================

MSG_UNAUTHORIZED = "Unauthorized"
MSG_ORDER_NOT_FOUND = "Order not found"
MSG_ORDER_NOT_OWNED = "Unauthorized: Order does not belong to user"
MSG_ADDRESS_NOT_FOUND = "Address not found or does not belong to user"
MSG_USER_NOT_FOUND = "User not found"
MSG_OTP_INVALID = "Invalid or expired OTP. Please request a new one."
MSG_OTP_EXPIRED = "OTP has expired. Please request a new one."
MSG_OTP_WRONG_CODE = "Invalid OTP"
MSG_OTP_SEND_FAILED = "Failed to send OTP. Please try again."
MSG_PASSWORD_RESET_SENT = "If an account exists with this email, an OTP has been sent."
MSG_INVALID_GSTIN = "Invalid GST number format. Please enter a valid 15-character GST number."
MSG_INVALID_PHONE = "Invalid phone number format. Please enter 10 digits."
MSG_INVALID_PINCODE = "Invalid pincode format. Please enter a valid 6-digit pincode."
MSG_INVALID_EMAIL = "Invalid email format"
MSG_ACCOUNT_SUSPENDED = "Your account has been suspended or terminated. Please contact support."
