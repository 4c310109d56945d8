"""
app/services/order_service.py

Purpose: Orders and order finalization

- Order id generation: ODR-DDMMYYYY-HHMMSS-NNNN (daily serial)
- Order creation (PENDING) with product tax snapshot
- Order listing/detail with product data joined from the catalog store
- Finalization after a verified payment:
  status, paid amount, invoice number, rounding, overrides
  in one identity-store transaction, then confirmation email and cart clear
"""

import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from app.core.config import settings
from app.core.exceptions import (
    AuthorizationError,
    ConflictError,
    PaymentVerificationError,
    ResourceNotFoundError,
    ValidationError,
)
from app.core.logging import get_logger, LogContext
from app.db.mongo import (
    get_addresses_collection,
    get_categories_collection,
    get_orders_collection,
    get_users_collection,
    identity_transaction,
    serialize_document,
)
from app.services.address_service import get_user_address
from app.services.cart_service import clear_cart
from app.services.catalog_service import get_products_by_ids
from app.services.invoice_service import compute_invoice_totals, generate_invoice_number
from app.services.notification_service import dispatcher, get_email_service
from app.services.payment_service import to_minor_units
from app.services.sequence_service import next_sequence
from utils.constants import (
    MSG_ORDER_NOT_FOUND,
    MSG_ORDER_NOT_OWNED,
    ORDER_ID_PREFIX,
    InvoiceType,
    OrderStatus,
)
from utils.time_utils import local_to_utc, to_local, utc_now

logger = get_logger(__name__)


class _NumberingConflict(Exception):
    """The order was numbered by a concurrent finalization."""


# ============================================================
# ORDER IDS
# ============================================================

def format_order_serial(serial: int) -> str:
    """
    >>> format_order_serial(7)
    '0007'
    >>> format_order_serial(10000)
    '10000'
    """
    if serial > 99999:
        width = 6
    elif serial > 9999:
        width = 5
    else:
        width = 4
    return str(serial).zfill(width)


def parse_order_serial(order_id: Optional[str]) -> Optional[int]:
    parts = (order_id or "").split("-")
    if len(parts) != 4 or parts[0] != ORDER_ID_PREFIX or not parts[3].isdigit():
        return None
    return int(parts[3])


async def generate_order_id(at: Optional[datetime] = None) -> str:
    """
    Issues ODR-<DDMMYYYY>-<HHMMSS>-<serial>, the serial restarting each
    local calendar day.
    """
    local = to_local(at or utc_now(), settings.TIMEZONE)
    date_str = local.strftime("%d%m%Y")
    time_str = local.strftime("%H%M%S")
    day_prefix = f"{ORDER_ID_PREFIX}-{date_str}-"

    day_start = local_to_utc(datetime(local.year, local.month, local.day), settings.TIMEZONE)
    last = await get_orders_collection().find_one(
        {"_id": {"$regex": f"^{re.escape(day_prefix)}"}, "order_date": {"$gte": day_start}},
        sort=[("order_date", -1)],
    )
    seed = parse_order_serial(last["_id"]) if last else None

    serial = await next_sequence(f"order:{date_str}", seed=seed or 0)
    return f"{day_prefix}{time_str}-{format_order_serial(serial)}"


# ============================================================
# READS
# ============================================================

async def _join_products(orders: List[Dict[str, Any]], fields: tuple) -> List[Dict[str, Any]]:
    """
    Attaches catalog product data to every order line.
    """
    product_ids = [item.get("product_id") for order in orders for item in order.get("items", [])]
    products = await get_products_by_ids(product_ids)
    category_ids = list({p.get("category_id") for p in products.values() if p.get("category_id")})
    categories = {
        c["_id"]: c.get("name") async for c in get_categories_collection().find({"_id": {"$in": category_ids}})
    }

    address_ids = list({o.get("shipping_address_id") for o in orders if o.get("shipping_address_id")})
    addresses = {
        a["_id"]: a async for a in get_addresses_collection().find({"_id": {"$in": address_ids}})
    }

    result = []
    for order in orders:
        data = serialize_document(order)
        items = []
        for item in order.get("items", []):
            product = products.get(item.get("product_id"))
            summary = None
            if product:
                summary = {"id": product["_id"]}
                summary.update({field: product.get(field) for field in fields})
                summary["category"] = {"name": categories.get(product.get("category_id"))}
            items.append({**item, "product": summary})
        data["items"] = items

        address = addresses.get(order.get("shipping_address_id"))
        data["shipping_address"] = serialize_document(address) if address else None
        result.append(data)
    return result


async def list_orders(user_id: str) -> List[Dict[str, Any]]:
    """
    The user's orders, newest first, with product details.
    """
    cursor = get_orders_collection().find({"order_by": user_id}).sort("order_date", -1)
    orders = [doc async for doc in cursor]
    return await _join_products(orders, ("code", "name", "main_image", "price"))


async def get_owned_order(user_id: str, order_id: str, session=None) -> Dict[str, Any]:
    """
    Loads an order and checks it belongs to the user.

    Raises:
        ResourceNotFoundError: No such order
        AuthorizationError: Order belongs to someone else
    """
    order = await get_orders_collection().find_one({"_id": order_id}, session=session)
    if not order:
        raise ResourceNotFoundError(MSG_ORDER_NOT_FOUND)
    if order.get("order_by") != user_id:
        logger.warning(
            f"User {user_id} attempted to access order {order_id}",
            extra={"user_id": user_id, "order_id": order_id}
        )
        raise AuthorizationError(MSG_ORDER_NOT_OWNED)
    return order


async def get_order_detail(user_id: str, order_id: str) -> Dict[str, Any]:
    """
    One of the user's orders with product details and a customer summary.
    Orders of other users are reported as not found.
    """
    order = await get_orders_collection().find_one({"_id": order_id, "order_by": user_id})
    if not order:
        raise ResourceNotFoundError(MSG_ORDER_NOT_FOUND)

    data = (await _join_products(
        [order],
        ("code", "name", "description", "main_image", "price", "regular_price", "weight"),
    ))[0]

    user = await get_users_collection().find_one({"_id": user_id})
    data["user"] = {
        field: user.get(field)
        for field in ("name", "email", "phone", "is_business_account", "business_name", "gst_number")
    } if user else None
    return data


# ============================================================
# CREATION
# ============================================================

async def create_order(
    user_id: str,
    items: List[Dict[str, Any]],
    address_id: str,
    total_amount: Optional[float] = None,
    discount_amount: Optional[float] = None,
    delivery_charge: Optional[float] = None,
) -> Dict[str, Any]:
    """
    Creates a PENDING order.

    Args:
        user_id: Ordering user
        items: Lines with product_id, quantity, price, original_price
        address_id: Shipping address (must belong to the user)
        total_amount: Subtotal of the lines
        discount_amount: Order-level discount
        delivery_charge: Shipping charge

    Returns:
        The new order document (grand total = subtotal - discount + delivery)
    """
    if not items:
        raise ValidationError("Order items are required")
    if not address_id:
        raise ValidationError("Address ID is required")

    await get_user_address(user_id, address_id)

    products = await get_products_by_ids(item["product_id"] for item in items)

    subtotal = total_amount or 0
    discount = discount_amount or 0
    shipping = delivery_charge or 0
    grand_total = subtotal - discount + shipping

    order_id = await generate_order_id()
    order = {
        "_id": order_id,
        "order_by": user_id,
        "order_date": utc_now(),
        "items": [
            {
                "product_id": item["product_id"],
                "quantity": item["quantity"],
                "price": item.get("price") or 0,
                "discount": (item.get("original_price") or item.get("price") or 0) - (item.get("price") or 0),
                "tax": (products.get(item["product_id"]) or {}).get("tax") or 0,
            }
            for item in items
        ],
        "total_amount": grand_total,
        "discount_amount": discount,
        "delivery_charge": shipping if shipping > 0 else None,
        "shipping_address_id": address_id,
        "shipping_courier_name": None,
        "estimated_delivery_date": None,
        "status": OrderStatus.PENDING.value,
        "razorpay_order_id": None,
        "razorpay_payment_id": None,
        "paid_amount": None,
        "invoice_type": None,
        "invoice_sequence_number": None,
        "invoice_number": None,
        "rounded_off_amount": None,
        "invoice_amount": None,
    }

    await get_orders_collection().insert_one(order)
    logger.info(
        f"Order {order_id} created ({grand_total})",
        extra={"user_id": user_id, "order_id": order_id}
    )
    return order


async def record_provider_order(user_id: str, order_id: str, provider_order_id: str):
    """
    Stores the gateway order id on an unpaid order so callbacks can be
    matched against it.
    """
    await get_owned_order(user_id, order_id)
    await get_orders_collection().update_one(
        {"_id": order_id, "status": {"$ne": OrderStatus.PAID.value}},
        {"$set": {"razorpay_order_id": provider_order_id}},
    )


# ============================================================
# FINALIZATION
# ============================================================

def _is_transient(error: PyMongoError) -> bool:
    return error.has_error_label("TransientTransactionError")


async def _apply_finalization(
    order_id: str,
    provider_order_id: str,
    payment_id: str,
    overrides: Dict[str, Any],
    paid_amount: Optional[float] = None,
    session=None,
) -> Dict[str, Any]:
    """
    One attempt at the finalization writes. Returns the updated order and
    whether this call moved it to PAID.
    """
    orders = get_orders_collection()
    order = await orders.find_one({"_id": order_id}, session=session)
    if not order:
        raise ResourceNotFoundError(MSG_ORDER_NOT_FOUND)

    customer = await get_users_collection().find_one(
        {"_id": order["order_by"]}, {"is_business_account": 1}, session=session
    )
    if not customer:
        raise ResourceNotFoundError("Customer not found")

    was_paid = order.get("status") == OrderStatus.PAID.value
    rounded_total, rounding_off = compute_invoice_totals(order.get("total_amount"))

    fields = {
        "razorpay_order_id": provider_order_id,
        "razorpay_payment_id": payment_id,
        "status": OrderStatus.PAID.value,
        "paid_amount": paid_amount if paid_amount is not None else order.get("total_amount"),
        "discount_amount": overrides.get("discount_amount") or order.get("discount_amount"),
        "delivery_charge": overrides.get("delivery_charge") or order.get("delivery_charge"),
        "shipping_address_id": overrides.get("shipping_address_id") or order.get("shipping_address_id"),
        "shipping_courier_name": overrides.get("courier_name") or order.get("shipping_courier_name"),
        "estimated_delivery_date": overrides.get("estimated_delivery_date") or order.get("estimated_delivery_date"),
        "rounded_off_amount": rounding_off,
        "invoice_amount": rounded_total,
        "updated_at": utc_now(),
    }

    # Never pay an order twice under different payments
    query: Dict[str, Any] = {
        "_id": order_id,
        "$or": [
            {"status": {"$ne": OrderStatus.PAID.value}},
            {"razorpay_payment_id": payment_id},
        ],
    }

    if order.get("invoice_number"):
        updated = await orders.find_one_and_update(
            query, {"$set": fields}, return_document=ReturnDocument.AFTER, session=session
        )
    else:
        invoice = await generate_invoice_number(
            InvoiceType.TAX_INVOICE,
            customer.get("is_business_account") is True,
            session=session,
        )
        fields.update({
            "invoice_type": invoice.invoice_type.value,
            "invoice_sequence_number": invoice.sequence_number,
            "invoice_number": invoice.number,
        })
        updated = await orders.find_one_and_update(
            {**query, "invoice_number": None},
            {"$set": fields},
            return_document=ReturnDocument.AFTER,
            session=session,
        )
        if updated is None and await orders.find_one(
            {"_id": order_id, "invoice_number": {"$ne": None}}, {"_id": 1}, session=session
        ):
            raise _NumberingConflict()

    if updated is None:
        raise ConflictError("Order has already been paid")

    return {"order": updated, "newly_paid": not was_paid}


async def finalize_order(
    user_id: str,
    order_id: str,
    provider_order_id: str,
    payment_id: str,
    overrides: Optional[Dict[str, Any]] = None,
    captured_amount: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Marks a verified payment's order as paid and issues its tax invoice.

    Callers must verify the payment first. Safe to repeat for the same
    payment: the invoice number is issued once and the confirmation email
    is only sent when the order first becomes PAID.

    Args:
        user_id: Signed-in user (must own the order)
        order_id: Storefront order id
        provider_order_id: Gateway order id from the callback
        payment_id: Gateway payment id from the callback
        overrides: discount_amount, delivery_charge, shipping_address_id,
            courier_name, estimated_delivery_date (applied when truthy)
        captured_amount: Amount the gateway captured, in paise. Must equal
            the order total; stored as the paid amount

    Returns:
        The updated order document

    Raises:
        ResourceNotFoundError: Unknown order, address or customer
        AuthorizationError: Order belongs to another user
        PaymentVerificationError: Callback order id differs from the recorded one,
            or the captured amount differs from the order total
        ConflictError: Order already paid by another payment, or numbering
            kept conflicting
    """
    overrides = overrides or {}

    with LogContext(user_id=user_id, order_id=order_id, payment_id=payment_id):
        order = await get_owned_order(user_id, order_id)

        if order.get("status") == OrderStatus.PAID.value and order.get("razorpay_payment_id") != payment_id:
            logger.warning(f"Order {order_id} already paid by {order.get('razorpay_payment_id')}")
            raise ConflictError("Order has already been paid")

        recorded = order.get("razorpay_order_id")
        if recorded and recorded != provider_order_id:
            raise PaymentVerificationError("Payment does not belong to this order")

        paid_amount = None
        if captured_amount is not None:
            expected = to_minor_units(order.get("total_amount"))
            if captured_amount != expected:
                logger.warning(f"Captured {captured_amount} paise, order total is {expected} paise")
                raise PaymentVerificationError("Payment amount does not match order total")
            paid_amount = captured_amount / 100

        if overrides.get("shipping_address_id"):
            await get_user_address(user_id, overrides["shipping_address_id"])

        result = None
        for attempt in range(1, settings.INVOICE_MAX_RETRIES + 1):
            try:
                async with identity_transaction() as session:
                    result = await _apply_finalization(
                        order_id, provider_order_id, payment_id, overrides,
                        paid_amount=paid_amount, session=session,
                    )
                break
            except (DuplicateKeyError, _NumberingConflict):
                logger.warning(f"Invoice numbering conflict (attempt {attempt}), retrying")
            except PyMongoError as e:
                if not _is_transient(e):
                    raise
                logger.warning(f"Transient transaction error (attempt {attempt}): {e}")

        if result is None:
            logger.error(f"Could not finalize order {order_id} after {settings.INVOICE_MAX_RETRIES} attempts")
            raise ConflictError("Could not finalize order, please retry")

        updated = result["order"]
        logger.info(
            f"Order {order_id} paid, invoice {updated.get('invoice_number')}",
            extra={"invoice_number": updated.get("invoice_number")}
        )

        if result["newly_paid"]:
            dispatcher.dispatch(
                send_order_confirmation(updated),
                f"order-confirmation:{order_id}",
            )

        await clear_cart(user_id)
        return updated


async def send_order_confirmation(order: Dict[str, Any]):
    """
    Gathers customer, product names and address, then sends the
    confirmation email. Raises on failure.
    """
    customer = await get_users_collection().find_one({"_id": order["order_by"]})
    if not customer or not customer.get("email"):
        raise ResourceNotFoundError(f"No email on file for order {order['_id']}")

    products = await get_products_by_ids(item.get("product_id") for item in order.get("items", []))
    items = [
        {
            "name": (products.get(item.get("product_id")) or {}).get("name") or "Product",
            "quantity": item.get("quantity"),
            "price": item.get("price"),
        }
        for item in order.get("items", [])
    ]

    address = None
    if order.get("shipping_address_id"):
        address = await get_addresses_collection().find_one({"_id": order["shipping_address_id"]})

    await get_email_service().send_order_confirmation(
        customer["email"],
        customer.get("name") or "Customer",
        order,
        items,
        address,
    )
