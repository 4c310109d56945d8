"""
app/api/orders.py

Purpose: Order endpoints for the signed-in user
"""

from fastapi import APIRouter, Depends

from app.core.logging import get_logger
from app.core.security import get_current_user_id
from app.db.mongo import serialize_document
from app.schemas.orders import CreateOrderRequest
from app.services import order_service

logger = get_logger(__name__)
router = APIRouter()


@router.get("")
async def list_orders(user_id: str = Depends(get_current_user_id)):
    orders = await order_service.list_orders(user_id)
    return {"success": True, "orders": orders}


@router.post("", status_code=201)
async def create_order(body: CreateOrderRequest, user_id: str = Depends(get_current_user_id)):
    order = await order_service.create_order(
        user_id,
        [item.model_dump() for item in body.items],
        body.address_id,
        total_amount=body.total_amount,
        discount_amount=body.discount_amount,
        delivery_charge=body.delivery_charge,
    )
    return {
        "success": True,
        "message": "Order created successfully",
        "order": serialize_document(order),
    }


@router.get("/{order_id}")
async def get_order(order_id: str, user_id: str = Depends(get_current_user_id)):
    order = await order_service.get_order_detail(user_id, order_id)
    return {"success": True, "order": order}
