import asyncio
import re
from datetime import datetime

import pytest

from app.core.exceptions import (
    AuthorizationError,
    ConflictError,
    PaymentVerificationError,
    ResourceNotFoundError,
)
from app.db.mongo import get_carts_collection, get_orders_collection
from app.services import order_service
from app.services.notification_service import dispatcher
from app.services.order_service import (
    _apply_finalization,
    create_order,
    finalize_order,
    format_order_serial,
    generate_order_id,
    get_order_detail,
    record_provider_order,
)
from utils.time_utils import get_financial_year, to_local, utc_now


@pytest.fixture
async def sent(monkeypatch):
    """Records confirmation emails instead of sending them."""
    calls = []

    async def fake_confirmation(order):
        calls.append(order["_id"])

    monkeypatch.setattr(order_service, "send_order_confirmation", fake_confirmation)
    yield calls
    await dispatcher.drain()


@pytest.fixture
async def order(seed_user, seed_product, seed_address):
    await seed_user()
    await seed_user(user_id="US20262", email="ravi@example.com", phone="9876500000")
    await seed_product("rice", packing_weight=1000)
    await seed_address()
    return await create_order(
        "US20261",
        [{"product_id": "rice", "quantity": 2, "price": 700.0, "original_price": 750.0}],
        "addr-1",
        total_amount=1400.0,
        discount_amount=0.6,
        delivery_charge=100.0,
    )


def expected_invoice(prefix, sequence):
    fy = get_financial_year(to_local(utc_now(), "Asia/Kolkata").date())
    return f"{prefix}{fy}{sequence}"


def test_order_serial_width():
    assert format_order_serial(1) == "0001"
    assert format_order_serial(9999) == "9999"
    assert format_order_serial(10000) == "10000"
    assert format_order_serial(100000) == "100000"


async def test_order_ids_use_daily_serial(stores):
    at = datetime(2025, 6, 1, 4, 30)
    first = await generate_order_id(at)
    second = await generate_order_id(at)
    assert first == "ODR-01062025-100000-0001"
    assert second == "ODR-01062025-100000-0002"


async def test_create_order_snapshot(order):
    assert re.match(r"^ODR-\d{8}-\d{6}-\d{4}$", order["_id"])
    assert order["status"] == "PENDING"
    assert order["total_amount"] == pytest.approx(1499.4)
    assert order["items"][0]["tax"] == 5
    assert order["items"][0]["discount"] == 50.0
    assert order["invoice_number"] is None


async def test_create_order_requires_owned_address(order):
    with pytest.raises(ResourceNotFoundError):
        await create_order("US20262", [{"product_id": "rice", "quantity": 1, "price": 700.0}], "addr-1")


async def test_finalize_marks_paid_and_numbers_invoice(order, sent):
    paid = await finalize_order("US20261", order["_id"], "order_rzp", "pay_1")
    await dispatcher.drain()

    assert paid["status"] == "PAID"
    assert paid["razorpay_payment_id"] == "pay_1"
    assert paid["paid_amount"] == pytest.approx(1499.4)
    assert paid["invoice_type"] == "TAX_INVOICE"
    assert paid["invoice_number"] == expected_invoice("R", 1)
    assert paid["invoice_amount"] == 1499
    assert paid["rounded_off_amount"] == pytest.approx(-0.4)
    assert sent == [order["_id"]]


async def test_business_customer_gets_b_series(seed_user, seed_product, seed_address, sent):
    await seed_user(user_id="BS20261", business=True)
    await seed_product("dal")
    await seed_address(user_id="BS20261", address_id="addr-b")
    created = await create_order("BS20261", [{"product_id": "dal", "quantity": 1, "price": 250.0}], "addr-b", total_amount=250.0)

    paid = await finalize_order("BS20261", created["_id"], "order_b", "pay_b")

    assert paid["invoice_number"] == expected_invoice("B", 1)


async def test_replay_with_same_payment_is_idempotent(order, sent):
    first = await finalize_order("US20261", order["_id"], "order_rzp", "pay_1")
    again = await finalize_order("US20261", order["_id"], "order_rzp", "pay_1")
    await dispatcher.drain()

    assert again["invoice_number"] == first["invoice_number"]
    assert again["invoice_sequence_number"] == 1
    assert sent == [order["_id"]]


async def test_second_payment_is_rejected(order, sent):
    await finalize_order("US20261", order["_id"], "order_rzp", "pay_1")

    with pytest.raises(ConflictError):
        await finalize_order("US20261", order["_id"], "order_rzp", "pay_2")

    stored = await get_orders_collection().find_one({"_id": order["_id"]})
    assert stored["razorpay_payment_id"] == "pay_1"


async def test_other_users_order_is_forbidden(order, sent):
    with pytest.raises(AuthorizationError):
        await finalize_order("US20262", order["_id"], "order_rzp", "pay_1")

    stored = await get_orders_collection().find_one({"_id": order["_id"]})
    assert stored["status"] == "PENDING"


async def test_unknown_order(order, sent):
    with pytest.raises(ResourceNotFoundError):
        await finalize_order("US20261", "ODR-missing", "order_rzp", "pay_1")


async def test_mismatched_provider_order_rejected(order, sent):
    await record_provider_order("US20261", order["_id"], "order_recorded")

    with pytest.raises(PaymentVerificationError):
        await finalize_order("US20261", order["_id"], "order_other", "pay_1")


async def test_overrides_win_when_given(order, sent, seed_address):
    await seed_address(address_id="addr-2", pincode="560001")

    paid = await finalize_order(
        "US20261",
        order["_id"],
        "order_rzp",
        "pay_1",
        overrides={
            "discount_amount": 20.0,
            "delivery_charge": None,
            "shipping_address_id": "addr-2",
            "courier_name": "Delhivery",
        },
    )

    assert paid["discount_amount"] == 20.0
    assert paid["delivery_charge"] == 100.0
    assert paid["shipping_address_id"] == "addr-2"
    assert paid["shipping_courier_name"] == "Delhivery"


async def test_finalize_clears_only_callers_cart(order, sent):
    carts = get_carts_collection()
    await carts.insert_many([
        {"_id": "c1", "user_id": "US20261", "product_id": "rice", "quantity": 2},
        {"_id": "c2", "user_id": "US20262", "product_id": "rice", "quantity": 1},
    ])

    await finalize_order("US20261", order["_id"], "order_rzp", "pay_1")

    remaining = [doc["_id"] async for doc in carts.find({})]
    assert remaining == ["c2"]


async def test_confirmation_failure_does_not_fail_finalization(order, monkeypatch):
    async def broken(order):
        raise RuntimeError("smtp down")

    monkeypatch.setattr(order_service, "send_order_confirmation", broken)

    paid = await finalize_order("US20261", order["_id"], "order_rzp", "pay_1")
    await dispatcher.drain()

    assert paid["status"] == "PAID"


async def test_order_detail_hides_other_users_orders(order):
    detail = await get_order_detail("US20261", order["_id"])
    assert detail["id"] == order["_id"]
    assert detail["items"][0]["product"]["name"] == "Product rice"
    assert detail["user"]["email"] == "asha@example.com"

    with pytest.raises(ResourceNotFoundError):
        await get_order_detail("US20262", order["_id"])


async def test_captured_amount_must_match_order_total(order, sent):
    with pytest.raises(PaymentVerificationError):
        await finalize_order("US20261", order["_id"], "order_rzp", "pay_1", captured_amount=100)

    stored = await get_orders_collection().find_one({"_id": order["_id"]})
    assert stored["status"] == "PENDING"
    assert stored["invoice_number"] is None


async def test_captured_amount_is_stored_as_paid_amount(order, sent):
    paid = await finalize_order("US20261", order["_id"], "order_rzp", "pay_1", captured_amount=149940)
    assert paid["paid_amount"] == pytest.approx(1499.4)


async def test_order_removed_mid_finalization(stores):
    with pytest.raises(ResourceNotFoundError):
        await _apply_finalization("ODR-gone", "order_rzp", "pay_1", {})


async def test_concurrent_finalizations_get_distinct_invoices(order, sent, seed_address):
    await seed_address(user_id="US20262", address_id="addr-r")
    other = await create_order(
        "US20262",
        [{"product_id": "rice", "quantity": 1, "price": 700.0}],
        "addr-r",
        total_amount=700.0,
    )

    first, second = await asyncio.gather(
        finalize_order("US20261", order["_id"], "order_a", "pay_a"),
        finalize_order("US20262", other["_id"], "order_b", "pay_b"),
    )

    assert {first["invoice_number"], second["invoice_number"]} == {
        expected_invoice("R", 1),
        expected_invoice("R", 2),
    }
    assert first["status"] == second["status"] == "PAID"
