from typing import Optional, Any


class StorefrontError(Exception):
    """
    Base exception for the storefront application.
    """
    def __init__(self, message: str, code: str = "INTERNAL_ERROR", status_code: int = 500, details: Optional[Any] = None):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details
        super().__init__(self.message)


class ValidationError(StorefrontError):
    """
    Raised when input validation fails.
    """
    def __init__(self, message: str = "Validation error", details: Optional[Any] = None):
        super().__init__(message, code="VALIDATION_ERROR", status_code=400, details=details)


class AuthenticationError(StorefrontError):
    """
    Raised when no authenticated session is present or credentials are wrong.
    """
    def __init__(self, message: str = "Unauthorized", details: Optional[Any] = None):
        super().__init__(message, code="AUTHENTICATION_FAILED", status_code=401, details=details)


class AuthorizationError(StorefrontError):
    """
    Raised when an authenticated user acts on something they do not own.
    """
    def __init__(self, message: str = "Forbidden", details: Optional[Any] = None):
        super().__init__(message, code="FORBIDDEN", status_code=403, details=details)


class ResourceNotFoundError(StorefrontError):
    """
    Raised when a requested resource is not found.
    """
    def __init__(self, message: str = "Resource not found", details: Optional[Any] = None):
        super().__init__(message, code="NOT_FOUND", status_code=404, details=details)


class ConflictError(StorefrontError):
    """
    Raised on uniqueness conflicts (duplicate email/phone, order already paid).
    """
    def __init__(self, message: str = "Conflict", details: Optional[Any] = None):
        super().__init__(message, code="CONFLICT", status_code=409, details=details)


class PaymentVerificationError(StorefrontError):
    """
    Raised when a payment callback cannot be verified.
    """
    def __init__(self, message: str = "Payment verification failed", details: Optional[Any] = None, status_code: int = 400):
        super().__init__(message, code="PAYMENT_VERIFICATION_FAILED", status_code=status_code, details=details)


class ConfigurationError(StorefrontError):
    """
    Raised when a required integration is not configured.
    """
    def __init__(self, message: str = "Service not configured", details: Optional[Any] = None):
        super().__init__(message, code="CONFIGURATION_ERROR", status_code=500, details=details)


class ExternalServiceError(StorefrontError):
    """
    Raised when an external service (payment gateway, carrier, email) fails.
    """
    def __init__(self, message: str = "External service error", details: Optional[Any] = None, status_code: int = 502):
        super().__init__(message, code="EXTERNAL_SERVICE_ERROR", status_code=status_code, details=details)
