"""
app/services/notification_service.py

Purpose: Transactional email

- Sends mail through the Resend REST API
- OTP, profile-change alert and order confirmation messages
- Detached dispatcher: fire-and-forget tasks whose failures are logged
  on their own channel and never reach the request that started them
"""

import asyncio
from datetime import datetime
from html import escape
from typing import Any, Awaitable, Dict, List, Mapping, Optional, Set

import httpx

from app.core.config import settings
from app.core.exceptions import ExternalServiceError
from app.core.logging import get_logger
from utils.constants import OtpPurpose
from utils.time_utils import to_local

logger = get_logger(__name__)
dispatch_logger = get_logger("notifications.dispatch")


OTP_SUBJECTS = {
    OtpPurpose.REGISTRATION: ("Verify Your Email", "registration"),
    OtpPurpose.LOGIN: ("Your Login OTP", "login"),
    OtpPurpose.PASSWORD_RESET: ("Reset Your Password", "password reset"),
    OtpPurpose.EMAIL_CHANGE: ("Confirm Your New Email", "email change"),
}


def _layout(title: str, body: str) -> str:
    year = datetime.now().year
    return (
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\"></head>"
        "<body style=\"font-family: Arial, sans-serif; color: #333; max-width: 600px; margin: 0 auto;\">"
        f"<div style=\"background-color: #168e2d; color: white; padding: 20px; text-align: center;\">"
        f"<h1 style=\"margin: 0;\">{escape(settings.COMPANY_NAME)}</h1></div>"
        f"<div style=\"background-color: #f8f9fa; padding: 30px;\"><h2 style=\"color: #168e2d;\">{escape(title)}</h2>"
        f"{body}</div>"
        f"<p style=\"text-align: center; color: #666; font-size: 12px;\">&copy; {year} {escape(settings.COMPANY_NAME)}</p>"
        "</body></html>"
    )


def _money(value: Optional[float]) -> str:
    return f"₹{(value or 0):.2f}"


class EmailService:
    """
    Service class for sending email via Resend.
    """

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = settings.RESEND_API_KEY
        self.base_url = settings.RESEND_API_URL.rstrip("/")
        self.sender = settings.EMAIL_FROM
        self._timeout = settings.EMAIL_TIMEOUT
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def send_email(self, to: List[str], subject: str, html: str, text: str) -> str:
        """
        Sends one message.

        Returns:
            Provider message id ("" when delivery is disabled outside production)

        Raises:
            ExternalServiceError: Provider rejected the message or was unreachable
        """
        if not self.is_configured:
            if settings.is_production:
                raise ExternalServiceError("Email provider not configured")
            logger.warning(f"Email delivery disabled; dropping '{subject}' to {', '.join(to)}")
            return ""

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = await client.post(
                    "/emails",
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json={
                        "from": self.sender,
                        "to": to,
                        "subject": subject,
                        "html": html,
                        "text": text,
                    },
                )
        except httpx.TimeoutException:
            logger.error(f"Email provider timeout sending '{subject}'")
            raise ExternalServiceError("Email provider timed out")
        except httpx.RequestError as e:
            logger.error(f"Network error sending email: {e}")
            raise ExternalServiceError("Unable to reach email provider")

        if response.is_error:
            logger.error(f"Email provider error: {response.status_code} {response.text[:200]}")
            raise ExternalServiceError(
                "Failed to send email",
                details={"status": response.status_code},
                status_code=502,
            )

        message_id = response.json().get("id", "")
        logger.info(f"Email '{subject}' sent (id={message_id})")
        return message_id

    async def send_otp_email(self, email: str, otp: str, purpose: OtpPurpose) -> bool:
        """
        Sends a one-time code. Returns False if delivery failed.
        """
        title, label = OTP_SUBJECTS[OtpPurpose(purpose)]
        minutes = settings.OTP_EXPIRY_MINUTES
        body = (
            f"<p>Please use the code below to complete your {label}:</p>"
            f"<p style=\"font-size: 32px; font-weight: bold; letter-spacing: 8px; color: #168e2d;\">{escape(otp)}</p>"
            f"<p>This OTP will expire in <strong>{minutes} minutes</strong>.</p>"
            "<p>If you didn't request this code, please ignore this email.</p>"
        )
        text = f"Your OTP for {label} is: {otp}. This OTP will expire in {minutes} minutes."

        try:
            await self.send_email([email], title, _layout(title, body), text)
            return True
        except ExternalServiceError as e:
            logger.error(f"OTP email to {email} failed: {e.message}")
            return False

    async def send_profile_change_alert(self, email: str, user_name: str, changes: List[str]) -> bool:
        title = "Profile Update Alert"
        items = "".join(f"<li>{escape(change)}</li>" for change in changes)
        body = (
            f"<p>Hello {escape(user_name or '')},</p>"
            "<p>Your profile information has been updated. Here are the changes made:</p>"
            f"<ul>{items}</ul>"
            "<p><strong>If you did not make these changes, please contact our support team immediately.</strong></p>"
        )
        text = (
            f"Hello {user_name},\n\nYour profile information has been updated. Changes:\n"
            + "\n".join(changes)
            + "\n\nIf you did not make these changes, please contact support immediately."
        )

        try:
            await self.send_email([email], title, _layout(title, body), text)
            return True
        except ExternalServiceError as e:
            logger.error(f"Profile change alert to {email} failed: {e.message}")
            return False

    async def send_order_confirmation(
        self,
        email: str,
        user_name: str,
        order: Mapping[str, Any],
        items: List[Dict[str, Any]],
        address: Optional[Mapping[str, Any]] = None,
    ):
        """
        Sends the order confirmation. Raises on failure so the dispatcher
        logs it.

        Args:
            email: Customer email
            user_name: Customer name
            order: Finalized order document
            items: Lines with name, quantity and price
            address: Shipping address document, if any
        """
        order_id = order["_id"]
        title = f"Order Confirmation - {order_id}"
        total = order.get("invoice_amount") or order.get("total_amount") or 0
        discount = order.get("discount_amount") or 0
        delivery = order.get("delivery_charge") or 0
        subtotal = (order.get("total_amount") or 0) - delivery + discount
        order_date = order.get("order_date")
        placed = to_local(order_date, settings.TIMEZONE).strftime("%d %B %Y, %I:%M %p") if order_date else ""

        rows = "".join(
            f"<tr><td>{escape(str(item.get('name', '')))}</td>"
            f"<td>{item.get('quantity', 0)}</td><td>{_money(item.get('price'))}</td></tr>"
            for item in items
        )
        body = [
            f"<p>Hello {escape(user_name or '')},</p>",
            "<p>Thank you for your order! We have received your order and it is being processed.</p>",
            f"<p><strong>Order ID:</strong> {escape(order_id)}</p>",
            f"<p><strong>Order Date:</strong> {placed}</p>",
        ]
        if order.get("razorpay_payment_id"):
            body.append(f"<p><strong>Payment ID:</strong> {escape(order['razorpay_payment_id'])}</p>")
        if order.get("invoice_number"):
            body.append(f"<p><strong>Invoice:</strong> {escape(order['invoice_number'])}</p>")

        body.append(f"<table><thead><tr><th>Item</th><th>Qty</th><th>Price</th></tr></thead><tbody>{rows}</tbody></table>")
        body.append(f"<p>Subtotal: {_money(subtotal)}</p>")
        if discount > 0:
            body.append(f"<p>Discount: -{_money(discount)}</p>")
        if delivery > 0:
            body.append(f"<p>Shipping: {_money(delivery)}</p>")
        body.append(f"<p><strong>Total: {_money(total)}</strong></p>")

        if address:
            line2 = f", {address['line2']}" if address.get("line2") else ""
            body.append(
                f"<p>{escape(address.get('name', ''))}<br>{escape(address.get('phone', ''))}<br>"
                f"{escape(address.get('house_no', ''))}, {escape(address.get('line1', ''))}{escape(line2)}<br>"
                f"{escape(address.get('city', ''))}, {escape(address.get('district', ''))}, "
                f"{escape(address.get('state', ''))} - {escape(address.get('pincode', ''))}</p>"
            )

        if order.get("shipping_courier_name"):
            body.append(f"<p><strong>Courier:</strong> {escape(order['shipping_courier_name'])}</p>")

        text = (
            f"Hello {user_name},\n\nThank you for your order {order_id}.\n"
            f"Total: {_money(total)}\n"
            "We will send you another email when your order ships."
        )

        await self.send_email([email], title, _layout(title, "".join(body)), text)


class NotificationDispatcher:
    """
    Runs notification coroutines as detached tasks.

    Holds a reference to each in-flight task until it finishes; failures
    are logged by the done callback.
    """

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    def dispatch(self, coro: Awaitable, description: str) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        task.set_name(description)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if task.cancelled():
            dispatch_logger.warning(f"Notification cancelled: {task.get_name()}")
            return

        exc = task.exception()
        if exc is not None:
            dispatch_logger.error(
                f"Notification failed: {task.get_name()}: {exc}",
                exc_info=(type(exc), exc, exc.__traceback__),
            )
        else:
            dispatch_logger.debug(f"Notification sent: {task.get_name()}")

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self):
        """Waits for in-flight notifications (shutdown, tests)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


# Global instances
_email_service: Optional[EmailService] = None
dispatcher = NotificationDispatcher()


def get_email_service() -> EmailService:
    """Get or create the global email service."""
    global _email_service
    if _email_service is None:
        _email_service = EmailService()
    return _email_service
