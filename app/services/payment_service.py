"""
app/services/payment_service.py

Purpose: Razorpay integration

- Creates provider-side orders (amount in paise)
- Verifies callback signatures: HMAC-SHA256(secret, "order_id|payment_id")
- Confirms payment status with the gateway (captured / authorized only)
- Verification is read-only; order state changes live in order_service
"""

import hashlib
import hmac
import time
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional

import httpx

from app.core.config import settings
from app.core.exceptions import (
    ConfigurationError,
    ExternalServiceError,
    PaymentVerificationError,
    ValidationError,
)
from app.core.logging import get_logger
from utils.constants import ACCEPTED_PAYMENT_STATUSES, DEFAULT_CURRENCY

logger = get_logger(__name__)


def generate_signature(secret: str, order_id: str, payment_id: str) -> str:
    """
    Signature Razorpay attaches to checkout callbacks.
    """
    message = f"{order_id}|{payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def to_minor_units(amount: Optional[float]) -> int:
    """
    Rupees to paise, rounded half-up.

    >>> to_minor_units(1499.4)
    149940
    """
    paise = Decimal(str(amount or 0)) * 100
    return int(paise.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def verify_signature(secret: str, order_id: str, payment_id: str, signature: str) -> bool:
    """
    Constant-time comparison of the expected and supplied signatures.
    """
    if not secret or not signature:
        return False
    expected = generate_signature(secret, order_id, payment_id)
    return hmac.compare_digest(expected, signature)


class PaymentGatewayService:
    """
    Service class for the Razorpay REST API.
    """

    def __init__(
        self,
        key_id: Optional[str] = None,
        key_secret: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.key_id = key_id if key_id is not None else settings.RAZORPAY_KEY_ID
        self.key_secret = key_secret if key_secret is not None else settings.RAZORPAY_KEY_SECRET
        self.base_url = (base_url or settings.RAZORPAY_API_URL).rstrip("/")
        self._timeout = timeout or settings.PAYMENT_GATEWAY_TIMEOUT
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            auth=(self.key_id or "", self.key_secret or ""),
            timeout=self._timeout,
            transport=self._transport,
        )

    def _require_credentials(self):
        if not self.key_id or not self.key_secret:
            raise ConfigurationError("Razorpay credentials not configured")

    @staticmethod
    def _error_body(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return {"raw": response.text[:500]}

    async def create_order(
        self,
        amount: float,
        currency: str = DEFAULT_CURRENCY,
        receipt: Optional[str] = None,
        notes: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """
        Creates a Razorpay order.

        Args:
            amount: Amount in minor units (paise); rounded to an integer
            currency: ISO currency code
            receipt: Merchant receipt (storefront order id)
            notes: Opaque key/value notes stored by the gateway

        Returns:
            Gateway order payload (id, amount, currency, receipt, ...)

        Raises:
            ValidationError: Non-positive amount
            ExternalServiceError: Gateway rejected the request or was unreachable
        """
        self._require_credentials()
        if not amount or amount <= 0:
            raise ValidationError("Invalid amount")

        payload = {
            "amount": int(round(amount)),
            "currency": currency or DEFAULT_CURRENCY,
            "receipt": receipt or f"receipt_{int(time.time() * 1000)}",
            "notes": notes or {},
        }

        try:
            async with self._client() as client:
                response = await client.post("/orders", json=payload)
        except httpx.TimeoutException:
            logger.error("Razorpay timeout while creating order")
            raise ExternalServiceError("Payment gateway timed out. Please try again.")
        except httpx.RequestError as e:
            logger.error(f"Network error creating Razorpay order: {e}")
            raise ExternalServiceError("Unable to reach payment gateway.")

        if response.is_error:
            details = self._error_body(response)
            logger.error(f"Razorpay order creation failed: {response.status_code} {details}")
            raise ExternalServiceError(
                "Failed to create Razorpay order",
                details=details,
                status_code=response.status_code,
            )

        data = response.json()
        logger.info(f"Razorpay order created: {data.get('id')} for receipt {payload['receipt']}")
        return data

    async def fetch_payment(self, payment_id: str) -> Dict[str, Any]:
        """
        Fetches a payment from the gateway.

        Raises:
            PaymentVerificationError: Gateway answered with an error status
            ExternalServiceError: Gateway unreachable or timed out
        """
        try:
            async with self._client() as client:
                response = await client.get(f"/payments/{payment_id}")
        except httpx.TimeoutException:
            logger.error(f"Razorpay timeout fetching payment {payment_id}")
            raise ExternalServiceError("Payment gateway timed out. Please try again.")
        except httpx.RequestError as e:
            logger.error(f"Network error fetching payment {payment_id}: {e}")
            raise ExternalServiceError("Unable to reach payment gateway.")

        if response.is_error:
            details = self._error_body(response)
            logger.error(f"Razorpay payment lookup failed: {response.status_code} {details}")
            raise PaymentVerificationError(
                "Payment verification failed",
                details=details,
                status_code=response.status_code,
            )

        return response.json()

    async def verify_payment(self, order_id: str, payment_id: str, signature: str) -> Dict[str, Any]:
        """
        Confirms a client-reported payment is genuine and successful.

        Checks the callback signature first (fail closed), then asks the
        gateway for the payment status. Has no side effects.

        Returns:
            Dict with payment_id, order_id, amount, currency, status, method, payment_data

        Raises:
            ValidationError: Missing parameters
            PaymentVerificationError: Bad signature, unsuccessful status, or
                payment made against another gateway order
            ExternalServiceError: Gateway unreachable
        """
        if not order_id or not payment_id or not signature:
            raise ValidationError("Missing payment verification parameters")
        if not self.key_secret:
            raise ConfigurationError("Razorpay credentials not configured")

        if not verify_signature(self.key_secret, order_id, payment_id, signature):
            logger.error(
                "Payment signature verification failed",
                extra={"payment_id": payment_id}
            )
            raise PaymentVerificationError("Payment verification failed: Invalid signature")

        payment = await self.fetch_payment(payment_id)
        status = payment.get("status")

        if status not in ACCEPTED_PAYMENT_STATUSES:
            logger.warning(
                f"Payment {payment_id} has status {status}",
                extra={"payment_id": payment_id}
            )
            raise PaymentVerificationError(f"Payment status: {status}")

        reported_order = payment.get("order_id")
        if reported_order and reported_order != order_id:
            logger.warning(
                f"Payment {payment_id} belongs to gateway order {reported_order}, not {order_id}",
                extra={"payment_id": payment_id}
            )
            raise PaymentVerificationError("Payment does not belong to this order")

        logger.info(f"Payment {payment_id} verified ({status})", extra={"payment_id": payment_id})
        return {
            "payment_id": payment_id,
            "order_id": order_id,
            "amount": payment.get("amount"),
            "currency": payment.get("currency"),
            "status": status,
            "method": payment.get("method"),
            "payment_data": payment,
        }


# Global payment gateway instance
_payment_service: Optional[PaymentGatewayService] = None


def get_payment_service() -> PaymentGatewayService:
    """Get or create the global payment gateway service."""
    global _payment_service
    if _payment_service is None:
        _payment_service = PaymentGatewayService()
    return _payment_service
