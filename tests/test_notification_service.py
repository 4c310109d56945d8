import asyncio
import json
import logging

import httpx
import pytest

from app.core.config import settings
from app.core.exceptions import ExternalServiceError
from app.services.notification_service import EmailService, NotificationDispatcher
from utils.constants import OtpPurpose


def configured(monkeypatch, handler):
    monkeypatch.setattr(settings, "RESEND_API_KEY", "re_test")
    return EmailService(transport=httpx.MockTransport(handler))


async def test_send_email_posts_to_provider(monkeypatch):
    seen = {}

    def handler(request):
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "email_1"})

    message_id = await configured(monkeypatch, handler).send_email(["asha@example.com"], "Hi", "<p>Hi</p>", "Hi")

    assert message_id == "email_1"
    assert seen["auth"] == "Bearer re_test"
    assert seen["body"]["to"] == ["asha@example.com"]


async def test_otp_email_failure_returns_false(monkeypatch):
    service = configured(monkeypatch, lambda request: httpx.Response(500, text="boom"))
    assert await service.send_otp_email("asha@example.com", "123456", OtpPurpose.LOGIN) is False


async def test_order_confirmation_raises_on_failure(monkeypatch):
    service = configured(monkeypatch, lambda request: httpx.Response(422, text="bad"))
    with pytest.raises(ExternalServiceError):
        await service.send_order_confirmation(
            "asha@example.com", "Asha", {"_id": "ODR-1", "total_amount": 10}, [], None
        )


async def test_unconfigured_email_is_dropped_outside_production(monkeypatch):
    monkeypatch.setattr(settings, "RESEND_API_KEY", None)
    assert await EmailService().send_email(["a@example.com"], "Hi", "", "") == ""


async def test_dispatcher_logs_failures(caplog):
    dispatcher = NotificationDispatcher()

    async def failing():
        raise RuntimeError("provider down")

    async def ok():
        await asyncio.sleep(0)

    with caplog.at_level(logging.ERROR, logger="storefront.notifications.dispatch"):
        dispatcher.dispatch(failing(), "order-confirmation:ODR-1")
        dispatcher.dispatch(ok(), "order-confirmation:ODR-2")
        assert dispatcher.pending == 2
        await dispatcher.drain()
        await asyncio.sleep(0)

    assert dispatcher.pending == 0
    assert any("order-confirmation:ODR-1" in record.getMessage() for record in caplog.records)
