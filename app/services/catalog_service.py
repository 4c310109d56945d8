"""
app/services/catalog_service.py

Purpose: Product catalog reads

- Product listing with category/search filters and pagination
- Product detail with related products
- Weight discount tiers and category discounts
- Name search (word-wise) and autocomplete
- Batched product lookup used to join order lines across stores
"""

import re
from typing import Any, Dict, Iterable, List, Optional

from app.core.exceptions import ResourceNotFoundError
from app.core.logging import get_logger
from app.db.mongo import (
    get_categories_collection,
    get_category_discounts_collection,
    get_discount_prices_collection,
    get_products_collection,
    get_weight_discounts_collection,
    serialize_document,
)
from utils.constants import RELATED_PRODUCTS_LIMIT, SEARCH_MIN_QUERY_LENGTH
from utils.validation_utils import sanitize_input

logger = get_logger(__name__)

VISIBLE = {"approved": True, "in_stock": True}


def _contains(text: str) -> Dict[str, Any]:
    return {"$regex": re.escape(text), "$options": "i"}


async def _attach_related_data(products: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Adds category, weight_discounts and discount_prices to each product.
    """
    if not products:
        return []

    product_ids = [p["_id"] for p in products]
    category_ids = list({p.get("category_id") for p in products if p.get("category_id")})

    categories = {
        c["_id"]: {"id": c["_id"], "name": c.get("name")}
        async for c in get_categories_collection().find({"_id": {"$in": category_ids}})
    }

    tiers: Dict[str, List[Dict[str, Any]]] = {}
    cursor = get_weight_discounts_collection().find({"product_id": {"$in": product_ids}}).sort("min_weight", 1)
    async for tier in cursor:
        tiers.setdefault(tier["product_id"], []).append({
            "id": tier["_id"],
            "min_weight": tier.get("min_weight"),
            "price": tier.get("price"),
        })

    discount_rows = [
        row async for row in get_discount_prices_collection().find({"product_id": {"$in": product_ids}})
    ]
    discount_ids = list({row.get("discount_id") for row in discount_rows})
    discounts = {
        d["_id"]: {"id": d["_id"], "min_weight": d.get("min_weight")}
        async for d in get_category_discounts_collection().find({"_id": {"$in": discount_ids}})
    }
    prices: Dict[str, List[Dict[str, Any]]] = {}
    for row in discount_rows:
        prices.setdefault(row["product_id"], []).append({
            "id": row["_id"],
            "discount_price": row.get("discount_price"),
            "discount": discounts.get(row.get("discount_id")),
        })

    result = []
    for product in products:
        data = serialize_document(product)
        data["category"] = categories.get(product.get("category_id"))
        data["weight_discounts"] = tiers.get(product["_id"], [])
        data["discount_prices"] = prices.get(product["_id"], [])
        result.append(data)
    return result


async def list_products(
    category_id: Optional[str] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 12,
    offset: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Lists approved, in-stock products, newest first.

    Returns:
        Dict with data and pagination (page, limit, total, total_pages)
    """
    page = max(page, 1)
    limit = max(limit, 1)
    skip = offset if offset is not None else (page - 1) * limit

    query: Dict[str, Any] = dict(VISIBLE)
    if category_id:
        query["category_id"] = category_id
    if search:
        query["$or"] = [
            {"name": _contains(search)},
            {"description": _contains(search)},
            {"code": _contains(search)},
        ]

    products = get_products_collection()
    cursor = products.find(query).sort("created_at", -1).skip(skip).limit(limit)
    docs = [doc async for doc in cursor]
    total = await products.count_documents(query)

    return {
        "data": await _attach_related_data(docs),
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": -(-total // limit),
        },
    }


async def list_featured_products(limit: int = 12, offset: int = 0) -> Dict[str, Any]:
    products = get_products_collection()
    cursor = products.find(dict(VISIBLE)).sort("created_at", -1).skip(offset).limit(limit)
    docs = [doc async for doc in cursor]
    total = await products.count_documents(dict(VISIBLE))

    return {
        "data": await _attach_related_data(docs),
        "pagination": {
            "total": total,
            "limit": limit,
            "offset": offset,
            "has_more": offset + limit < total,
        },
    }


async def get_product(product_id: str) -> Dict[str, Any]:
    """
    Returns one product with its related data.

    Raises:
        ResourceNotFoundError: Unknown product
    """
    product = await get_products_collection().find_one({"_id": product_id})
    if not product:
        raise ResourceNotFoundError("Product not found")
    return (await _attach_related_data([product]))[0]


async def get_raw_product(product_id: str) -> Dict[str, Any]:
    product = await get_products_collection().find_one({"_id": product_id})
    if not product:
        raise ResourceNotFoundError("Product not found")
    return serialize_document(product)


async def get_product_detail(product_id: str) -> Dict[str, Any]:
    """
    Product plus up to eight visible products from the same category.
    """
    product = await get_product(product_id)

    query = {**VISIBLE, "_id": {"$ne": product_id}, "category_id": product.get("category_id")}
    cursor = get_products_collection().find(query).limit(RELATED_PRODUCTS_LIMIT)
    related = [doc async for doc in cursor]

    return {"product": product, "related_products": await _attach_related_data(related)}


async def get_weight_discounts(product_id: str) -> List[Dict[str, Any]]:
    cursor = get_weight_discounts_collection().find({"product_id": product_id}).sort("min_weight", 1)
    return [{"min_weight": tier.get("min_weight"), "price": tier.get("price")} async for tier in cursor]


async def get_category_discounts(category_id: str) -> List[Dict[str, Any]]:
    """
    Category weight tiers, each with the per-product prices that apply.
    """
    cursor = get_category_discounts_collection().find({"category_id": category_id}).sort("min_weight", 1)
    discounts = [doc async for doc in cursor]
    if not discounts:
        return []

    rows = [
        row async for row in get_discount_prices_collection().find(
            {"discount_id": {"$in": [d["_id"] for d in discounts]}}
        )
    ]
    products = await get_products_by_ids(row["product_id"] for row in rows)

    result = []
    for discount in discounts:
        product_discounts = [
            {
                "id": row["_id"],
                "discount_price": row.get("discount_price"),
                "product": serialize_document(products[row["product_id"]]) if row["product_id"] in products else None,
            }
            for row in rows
            if row.get("discount_id") == discount["_id"]
        ]
        result.append({
            "id": discount["_id"],
            "category_id": discount.get("category_id"),
            "min_weight": discount.get("min_weight"),
            "product_discounts": product_discounts,
        })
    return result


async def list_categories() -> List[Dict[str, Any]]:
    cursor = get_categories_collection().find({}).sort("name", 1)
    return [
        {
            "id": c["_id"],
            "name": c.get("name"),
            "created_at": c.get("created_at"),
            "updated_at": c.get("updated_at"),
        }
        async for c in cursor
    ]


async def search_products(query: str, limit: int = 10, autocomplete: bool = False) -> List[Dict[str, Any]]:
    """
    Matches products where any word of the query appears in the name, or
    the whole query appears in the description or code.

    Queries shorter than three characters return nothing.
    """
    query = sanitize_input(query or "", max_length=100)
    if len(query) < SEARCH_MIN_QUERY_LENGTH:
        return []

    terms = query.split()
    conditions = [{"name": _contains(term)} for term in terms]
    conditions += [{"description": _contains(query)}, {"code": _contains(query)}]

    cursor = get_products_collection().find({**VISIBLE, "$or": conditions}).sort("name", 1).limit(limit)
    docs = [doc async for doc in cursor]

    logger.debug(f"Search '{query}' matched {len(docs)} products")

    if autocomplete:
        return [
            {
                "id": doc["_id"],
                "name": doc.get("name"),
                "code": doc.get("code"),
                "price": doc.get("price"),
                "main_image": doc.get("main_image"),
            }
            for doc in docs
        ]
    return await _attach_related_data(docs)


async def get_products_by_ids(product_ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
    """
    Batched lookup keyed by product id; unknown ids are simply absent.
    """
    ids = list({pid for pid in product_ids if pid})
    if not ids:
        return {}
    cursor = get_products_collection().find({"_id": {"$in": ids}})
    return {doc["_id"]: doc async for doc in cursor}
