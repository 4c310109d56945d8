import json

import httpx
import pytest

from app.core.exceptions import (
    ConfigurationError,
    ExternalServiceError,
    PaymentVerificationError,
    ValidationError,
)
from app.services.payment_service import (
    PaymentGatewayService,
    generate_signature,
    to_minor_units,
    verify_signature,
)

SECRET = "rzp_test_secret"


def gateway(handler, key_secret=SECRET):
    return PaymentGatewayService(
        key_id="rzp_test_key",
        key_secret=key_secret,
        base_url="https://api.razorpay.test/v1",
        transport=httpx.MockTransport(handler),
    )


def payment_handler(status="captured", code=200):
    def handler(request):
        assert request.url.path == "/v1/payments/pay_1"
        return httpx.Response(code, json={"id": "pay_1", "status": status, "amount": 149900, "currency": "INR", "method": "upi"})
    return handler


def test_signature_round_trip():
    signature = generate_signature(SECRET, "order_1", "pay_1")
    assert verify_signature(SECRET, "order_1", "pay_1", signature)
    assert not verify_signature(SECRET, "order_1", "pay_2", signature)
    assert not verify_signature("other", "order_1", "pay_1", signature)


async def test_verify_accepts_captured_payment():
    service = gateway(payment_handler("captured"))
    result = await service.verify_payment("order_1", "pay_1", generate_signature(SECRET, "order_1", "pay_1"))

    assert result["status"] == "captured"
    assert result["amount"] == 149900
    assert result["method"] == "upi"


async def test_bad_signature_never_reaches_gateway():
    def handler(request):
        raise AssertionError("gateway must not be called")

    with pytest.raises(PaymentVerificationError) as exc:
        await gateway(handler).verify_payment("order_1", "pay_1", "deadbeef")
    assert exc.value.status_code == 400


async def test_unsuccessful_status_rejected():
    service = gateway(payment_handler("failed"))
    with pytest.raises(PaymentVerificationError) as exc:
        await service.verify_payment("order_1", "pay_1", generate_signature(SECRET, "order_1", "pay_1"))
    assert exc.value.message == "Payment status: failed"


async def test_gateway_error_status_propagates():
    service = gateway(payment_handler(code=404))
    with pytest.raises(PaymentVerificationError) as exc:
        await service.verify_payment("order_1", "pay_1", generate_signature(SECRET, "order_1", "pay_1"))
    assert exc.value.status_code == 404
    assert exc.value.details["id"] == "pay_1"


async def test_gateway_timeout_is_external_error():
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    with pytest.raises(ExternalServiceError) as exc:
        await gateway(handler).verify_payment("order_1", "pay_1", generate_signature(SECRET, "order_1", "pay_1"))
    assert exc.value.status_code == 502


async def test_missing_secret_fails_closed():
    with pytest.raises(ConfigurationError):
        await gateway(payment_handler(), key_secret="").verify_payment("order_1", "pay_1", "sig")


async def test_missing_parameters():
    with pytest.raises(ValidationError):
        await gateway(payment_handler()).verify_payment("order_1", "", "sig")


async def test_create_order_rounds_amount():
    seen = {}

    def handler(request):
        seen.update(json.loads(request.content))
        assert request.url.path == "/v1/orders"
        return httpx.Response(200, json={"id": "order_abc", "amount": seen["amount"], "currency": "INR", "receipt": seen["receipt"]})

    order = await gateway(handler).create_order(49999.6, receipt="ODR-01062025-100000-0001", notes={"user_id": "US20261"})

    assert order["id"] == "order_abc"
    assert seen["amount"] == 50000
    assert seen["currency"] == "INR"
    assert seen["notes"] == {"user_id": "US20261"}


async def test_create_order_rejects_non_positive_amount():
    with pytest.raises(ValidationError):
        await gateway(payment_handler()).create_order(0)


async def test_payment_for_another_gateway_order_is_rejected():
    def handler(request):
        return httpx.Response(200, json={"id": "pay_1", "order_id": "order_other", "status": "captured", "amount": 149900})

    with pytest.raises(PaymentVerificationError):
        await gateway(handler).verify_payment("order_1", "pay_1", generate_signature(SECRET, "order_1", "pay_1"))


def test_minor_units_round_half_up():
    assert to_minor_units(1499.4) == 149940
    assert to_minor_units(0.125) == 13
    assert to_minor_units(None) == 0
