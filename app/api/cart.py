"""
app/api/cart.py

Purpose: Cart endpoints

- GET: cart lines with product data from the catalog store
- POST: signed quantity delta
- DELETE: drop one product
"""

from fastapi import APIRouter, Depends

from app.core.logging import get_logger
from app.core.security import get_current_user_id
from app.db.mongo import serialize_document
from app.schemas.orders import CartAdjustRequest, CartRemoveRequest
from app.services import cart_service
from app.services.catalog_service import get_products_by_ids

logger = get_logger(__name__)
router = APIRouter()

CART_PRODUCT_FIELDS = ("name", "code", "price", "regular_price", "main_image", "stock_count", "packing_weight")


@router.get("")
async def get_cart(user_id: str = Depends(get_current_user_id)):
    lines = await cart_service.get_cart(user_id)
    products = await get_products_by_ids(line["product_id"] for line in lines)

    items = []
    for line in lines:
        item = serialize_document(line)
        product = products.get(line["product_id"])
        item["product"] = (
            {"id": product["_id"], **{field: product.get(field) for field in CART_PRODUCT_FIELDS}}
            if product else None
        )
        items.append(item)

    return {"success": True, "items": items}


@router.post("")
async def adjust_cart(body: CartAdjustRequest, user_id: str = Depends(get_current_user_id)):
    result = await cart_service.adjust_cart_item(user_id, body.product_id, body.quantity)
    messages = {
        "added": "Item added to cart",
        "updated": "Cart updated",
        "removed": "Item removed from cart",
    }
    return {
        "success": True,
        "action": result["action"],
        "message": messages[result["action"]],
        "item": serialize_document(result["item"]),
    }


@router.delete("")
async def remove_from_cart(body: CartRemoveRequest, user_id: str = Depends(get_current_user_id)):
    removed = await cart_service.remove_cart_item(user_id, body.product_id)
    return {"success": True, "removed": removed}
