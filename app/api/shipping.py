"""
app/api/shipping.py

Purpose: Checkout weight and shipping estimates

- POST /weight/calculate: shippable weight (request items, or the cart)
- POST /shipping/calculate: carrier quote for one of the user's addresses
"""

from fastapi import APIRouter, Depends
from typing import Optional

from app.core.logging import get_logger
from app.core.security import get_current_user_id
from app.schemas.orders import ShippingRequest, WeightRequest
from app.services import address_service, cart_service
from app.services.shipping_service import ShippingService, get_shipping_service
from app.services.weight_service import calculate_shipping_weight

logger = get_logger(__name__)
router = APIRouter()


@router.post("/weight/calculate")
async def calculate_weight(
    body: Optional[WeightRequest] = None,
    user_id: str = Depends(get_current_user_id),
):
    if body is not None and body.items:
        lines = [item.model_dump() for item in body.items]
    else:
        lines = await cart_service.get_cart(user_id)

    breakdown = await calculate_shipping_weight(lines)
    return {
        "success": True,
        "total_weight": breakdown.total_weight,
        "eligible_weight": breakdown.eligible_weight,
        "extra_packaging_weight": breakdown.extra_packaging_weight,
        "total_weight_with_packaging": breakdown.total_weight_with_packaging,
    }


@router.post("/shipping/calculate")
async def calculate_shipping(
    body: ShippingRequest,
    user_id: str = Depends(get_current_user_id),
    shipping: ShippingService = Depends(get_shipping_service),
):
    """
    Carrier failures come back as status "error" with is_serviceable False,
    never as an HTTP error.
    """
    address = await address_service.get_user_address(user_id, body.address_id)
    quote = await shipping.calculate(address["pincode"], body.total_weight_with_packaging)
    return {"success": quote.get("status") == "success", **quote}
