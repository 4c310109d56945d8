"""
app/api/payment.py

Purpose: Payment endpoints

- POST /order: create a gateway order for a storefront order's total
- POST /verify: verify a client-reported payment (no writes)
- POST /update-order: verify (signature, status, amount), then finalize the order
"""

from fastapi import APIRouter, Depends

from app.core.exceptions import ConflictError, PaymentVerificationError, ValidationError
from app.core.logging import get_logger
from app.core.security import get_current_user_id
from app.db.mongo import serialize_document
from app.schemas.orders import PaymentOrderRequest, PaymentVerifyRequest, UpdateOrderRequest
from app.services import order_service
from app.services.payment_service import PaymentGatewayService, get_payment_service, to_minor_units
from utils.constants import OrderStatus

logger = get_logger(__name__)
router = APIRouter()


@router.post("/order")
async def create_payment_order(
    body: PaymentOrderRequest,
    user_id: str = Depends(get_current_user_id),
    gateway: PaymentGatewayService = Depends(get_payment_service),
):
    """
    The gateway order is always for the storefront order's total; a
    client-supplied amount must match it.
    """
    order = await order_service.get_owned_order(user_id, body.order_id)
    if order.get("status") == OrderStatus.PAID.value:
        raise ConflictError("Order has already been paid")

    amount = to_minor_units(order.get("total_amount"))
    if body.amount is not None and int(round(body.amount)) != amount:
        raise ValidationError(
            "Amount does not match order total",
            details={"expected": amount, "received": body.amount},
        )

    provider_order = await gateway.create_order(
        amount,
        currency=body.currency,
        receipt=body.order_id,
        notes={"order_id": body.order_id, "user_id": user_id},
    )

    await order_service.record_provider_order(user_id, body.order_id, provider_order["id"])

    return {
        "success": True,
        "order": {
            "id": provider_order.get("id"),
            "amount": provider_order.get("amount"),
            "currency": provider_order.get("currency"),
            "receipt": provider_order.get("receipt"),
        },
    }


@router.post("/verify")
async def verify_payment(
    body: PaymentVerifyRequest,
    user_id: str = Depends(get_current_user_id),
    gateway: PaymentGatewayService = Depends(get_payment_service),
):
    payment = await gateway.verify_payment(
        body.razorpay_order_id, body.razorpay_payment_id, body.razorpay_signature
    )
    payment.pop("payment_data", None)
    return {"success": True, "message": "Payment verified successfully", "payment": payment}


@router.post("/update-order")
async def update_order(
    body: UpdateOrderRequest,
    user_id: str = Depends(get_current_user_id),
    gateway: PaymentGatewayService = Depends(get_payment_service),
):
    """
    Ownership is checked before anything else, then the payment is
    verified with the gateway, then the order is finalized.
    """
    await order_service.get_owned_order(user_id, body.order_id)

    payment = await gateway.verify_payment(
        body.razorpay_order_id, body.razorpay_payment_id, body.razorpay_signature
    )
    if payment.get("amount") is None:
        raise PaymentVerificationError("Gateway did not report the captured amount")

    order = await order_service.finalize_order(
        user_id,
        body.order_id,
        body.razorpay_order_id,
        body.razorpay_payment_id,
        overrides={
            "discount_amount": body.total_discount_amount,
            "delivery_charge": body.delivery_charge,
            "shipping_address_id": body.selected_address_id,
            "courier_name": body.courier_name,
            "estimated_delivery_date": body.estimated_delivery_date,
        },
        captured_amount=payment["amount"],
    )

    return {
        "success": True,
        "message": "Order updated successfully",
        "order": serialize_document(order),
    }
