"""
app/core/config.py

Purpose: Application configuration

- Loads environment variables
- Centralizes config values (DB URIs, gateway keys, carrier credentials)
- Validates configuration on startup
- Environment-specific settings
"""

from pydantic import Field, field_validator, ValidationInfo
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, Literal


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Validates all required configs on startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Environment
    ENVIRONMENT: Literal["development", "staging", "production"] = "development"

    # Identity store (users, OTPs, addresses, carts, orders)
    IDENTITY_MONGODB_URL: str = Field(
        default="mongodb://localhost:27017",
        description="Identity store MongoDB connection URI"
    )
    IDENTITY_DB_NAME: str = Field(
        default="storefront_users",
        description="Identity store database name"
    )

    # Catalog store (products, categories, discount tiers)
    CATALOG_MONGODB_URL: str = Field(
        default="mongodb://localhost:27017",
        description="Catalog store MongoDB connection URI"
    )
    CATALOG_DB_NAME: str = Field(
        default="storefront_products",
        description="Catalog store database name"
    )

    MONGODB_USE_TRANSACTIONS: bool = Field(
        default=True,
        description="Wrap order finalization in a transaction (requires a replica set)"
    )

    # Razorpay
    RAZORPAY_KEY_ID: Optional[str] = Field(
        default=None,
        description="Razorpay key id (public)"
    )
    RAZORPAY_KEY_SECRET: Optional[str] = Field(
        default=None,
        description="Razorpay key secret, also used to verify callback signatures"
    )
    RAZORPAY_API_URL: str = Field(
        default="https://api.razorpay.com/v1",
        description="Razorpay REST API base URL"
    )
    PAYMENT_GATEWAY_TIMEOUT: float = Field(
        default=15.0,
        description="Payment gateway request timeout in seconds"
    )

    # Invoicing
    INVOICE_OFFICE_STATE_CODE: Optional[str] = Field(
        default=None,
        description="State code inserted after the invoice prefix (e.g. 09); empty for none"
    )
    INVOICE_MAX_RETRIES: int = Field(
        default=5,
        description="Attempts to finalize an order when invoice numbering conflicts"
    )
    TIMEZONE: str = Field(
        default="Asia/Kolkata",
        description="Business timezone used for fiscal years and order ids"
    )

    # Delhivery
    DELHIVERY_API_KEY: str = Field(
        default="",
        description="Delhivery token for the standard rate API"
    )
    DELHIVERY_USERNAME: Optional[str] = Field(
        default=None,
        description="Delhivery freight API username"
    )
    DELHIVERY_PASSWORD: Optional[str] = Field(
        default=None,
        description="Delhivery freight API password"
    )
    DELHIVERY_STANDARD_API_URL: str = Field(
        default="https://track.delhivery.com/api/kinko/v1/invoice/charges",
    )
    DELHIVERY_HEAVY_API_URL: str = Field(
        default="https://ltl-clients-api.delhivery.com/freight/estimate",
    )
    DELHIVERY_AUTH_URL: str = Field(
        default="https://ltl-clients-api.delhivery.com/ums/login",
    )
    PICKUP_PINCODE: str = Field(
        default="211007",
        description="Origin pincode for shipping quotes"
    )
    SHIPPING_TIMEOUT: float = Field(
        default=20.0,
        description="Carrier request timeout in seconds"
    )

    # Email (Resend)
    RESEND_API_KEY: Optional[str] = Field(
        default=None,
        description="Resend API key for transactional email"
    )
    RESEND_API_URL: str = Field(
        default="https://api.resend.com",
        description="Resend API base URL"
    )
    EMAIL_FROM: str = Field(
        default="AOAC <no-reply@example.com>",
        description="Sender address for transactional email"
    )
    EMAIL_TIMEOUT: float = Field(
        default=10.0,
        description="Email provider request timeout in seconds"
    )
    COMPANY_NAME: str = Field(
        default="Allahabad Organic Agricultural Company",
        description="Name used in email headers"
    )

    # Auth
    OTP_EXPIRY_MINUTES: int = Field(
        default=10,
        description="One-time code validity in minutes"
    )
    BCRYPT_ROUNDS: int = Field(
        default=12,
        description="bcrypt cost factor for password hashes"
    )
    SESSION_COOKIE: str = Field(
        default="storefront_session",
        description="Session cookie name"
    )
    SESSION_MAX_AGE: int = Field(
        default=60 * 60 * 24 * 30,
        description="Session cookie lifetime in seconds"
    )

    # Application
    DEBUG: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    API_PREFIX: str = Field(
        default="/api",
        description="API route prefix"
    )
    CORS_ORIGINS: list = Field(
        default=["*"],
        description="Allowed CORS origins"
    )

    # Security
    SECRET_KEY: str = Field(
        default="change-me-in-production",
        description="Secret used to sign session cookies"
    )

    @field_validator("SECRET_KEY")
    @classmethod
    def validate_secret_key(cls, v: str, info: ValidationInfo) -> str:
        """Ensure secret key is changed in production."""
        if info.data.get("ENVIRONMENT") == "production" and v == "change-me-in-production":
            raise ValueError("SECRET_KEY must be changed in production environment")
        return v

    @field_validator("INVOICE_OFFICE_STATE_CODE")
    @classmethod
    def normalize_state_code(cls, v: Optional[str]) -> Optional[str]:
        """Blank state codes mean no segment."""
        if v is None:
            return None
        v = v.strip()
        return v or None

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENVIRONMENT == "production"


# Global settings instance
settings = Settings()


def validate_settings():
    """
    Validates critical settings on application startup.
    Raises ValueError if any required setting is missing or invalid.
    """
    errors = []

    if not settings.IDENTITY_MONGODB_URL:
        errors.append("IDENTITY_MONGODB_URL is required")
    if not settings.CATALOG_MONGODB_URL:
        errors.append("CATALOG_MONGODB_URL is required")

    # Production-specific validations
    if settings.is_production:
        if not settings.RAZORPAY_KEY_ID or not settings.RAZORPAY_KEY_SECRET:
            errors.append("RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET are required in production")
        if not settings.RESEND_API_KEY:
            errors.append("RESEND_API_KEY is required in production")
        if not settings.DELHIVERY_API_KEY:
            errors.append("DELHIVERY_API_KEY is required in production")

    if errors:
        raise ValueError(f"Configuration validation failed: {', '.join(errors)}")

    return True
