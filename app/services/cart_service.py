"""
app/services/cart_service.py

Purpose: Shopping cart

- One row per (user, product) with a quantity
- Signed quantity deltas with stock checks against the catalog
- Lines are removed when their quantity drops to zero or below
- Clearing is always scoped to a single user
"""

import uuid
from typing import Any, Dict, List

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from app.core.exceptions import ResourceNotFoundError, ValidationError
from app.core.logging import get_logger, LogContext
from app.db.mongo import get_carts_collection, get_products_collection
from utils.time_utils import utc_now

logger = get_logger(__name__)


async def get_cart(user_id: str) -> List[Dict[str, Any]]:
    """
    Returns the user's cart lines, oldest first.
    """
    carts = get_carts_collection()
    cursor = carts.find({"user_id": user_id}).sort("created_at", 1)
    return [doc async for doc in cursor]


def _insufficient_stock(product: Dict[str, Any], current: int = 0) -> ValidationError:
    stock = product.get("stock_count")
    message = f"Sorry, we only have {stock} units of {product.get('name')} in our inventory."
    if current:
        message += f" You already have {current} in your cart."
    return ValidationError(
        message,
        details={
            "insufficient_stock": True,
            "available_stock": stock,
            "product_name": product.get("name"),
            "current_quantity": current,
        },
    )


async def adjust_cart_item(user_id: str, product_id: str, delta: int) -> Dict[str, Any]:
    """
    Adds a signed quantity delta to a cart line.

    The quantity changes with a single `$inc` so concurrent deltas are not
    lost; a line that overshoots the stock is reverted.

    Args:
        user_id: Cart owner
        product_id: Catalog product id
        delta: Quantity change (negative to decrease)

    Returns:
        Dict with action ("added", "updated" or "removed") and the line

    Raises:
        ResourceNotFoundError: Unknown product
        ValidationError: Insufficient stock, or a new line with a non-positive quantity
    """
    with LogContext(user_id=user_id):
        product = await get_products_collection().find_one({"_id": product_id})
        if not product:
            raise ResourceNotFoundError("Product not found")

        stock = product.get("stock_count")
        if stock is not None and delta > stock:
            raise _insufficient_stock(product)

        carts = get_carts_collection()
        key = {"user_id": user_id, "product_id": product_id}
        now = utc_now()

        if delta <= 0:
            line = await carts.find_one_and_update(
                key,
                {"$inc": {"quantity": delta}, "$set": {"updated_at": now}},
                return_document=ReturnDocument.AFTER,
            )
            if line is None:
                raise ValidationError("Quantity must be at least 1")
        else:
            line = await _increment_line(key, delta, now)

            if stock is not None and line["quantity"] > stock:
                await carts.update_one({"_id": line["_id"]}, {"$inc": {"quantity": -delta}})
                await carts.delete_one({"_id": line["_id"], "quantity": {"$lte": 0}})
                raise _insufficient_stock(product, current=line["quantity"] - delta)

        if line["quantity"] <= 0:
            await carts.delete_one({"_id": line["_id"], "quantity": {"$lte": 0}})
            logger.info(f"Removed {product_id} from cart (quantity {line['quantity']})")
            return {"action": "removed", "item": {**line, "quantity": 0}}

        if line["quantity"] == delta:
            logger.info(f"Added {product_id} x{delta} to cart")
            return {"action": "added", "item": line}

        logger.info(f"Cart line {product_id} -> {line['quantity']}")
        return {"action": "updated", "item": line}


async def _increment_line(key: Dict[str, str], delta: int, now) -> Dict[str, Any]:
    update = {
        "$inc": {"quantity": delta},
        "$set": {"updated_at": now},
        "$setOnInsert": {"_id": uuid.uuid4().hex, "created_at": now},
    }
    try:
        return await get_carts_collection().find_one_and_update(
            key, update, upsert=True, return_document=ReturnDocument.AFTER
        )
    except DuplicateKeyError:
        # Lost an upsert race on (user_id, product_id); the line exists now
        update.pop("$setOnInsert")
        return await get_carts_collection().find_one_and_update(
            key, update, return_document=ReturnDocument.AFTER
        )


async def remove_cart_item(user_id: str, product_id: str) -> int:
    """
    Removes one product from the user's cart. Returns rows deleted.
    """
    result = await get_carts_collection().delete_many(
        {"user_id": user_id, "product_id": product_id}
    )
    return result.deleted_count


async def clear_cart(user_id: str) -> int:
    """
    Removes every cart row belonging to the user and nobody else.
    """
    if not user_id:
        raise ValueError("user_id is required to clear a cart")

    result = await get_carts_collection().delete_many({"user_id": user_id})
    logger.info(f"Cleared {result.deleted_count} cart rows", extra={"user_id": user_id})
    return result.deleted_count
