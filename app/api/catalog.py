"""
app/api/catalog.py

Purpose: Public catalog endpoints

- /products (list, featured, detail, raw, weight discounts, category discounts)
- /categories
- /search (full results or autocomplete)

Fixed paths are declared before /products/{product_id}.
"""

from fastapi import APIRouter, Query
from typing import Optional

from app.core.logging import get_logger
from app.services import catalog_service
from utils.constants import SEARCH_MIN_QUERY_LENGTH

logger = get_logger(__name__)
router = APIRouter()


@router.get("/products")
async def list_products(
    category_id: Optional[str] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
    offset: Optional[int] = Query(None, ge=0),
):
    result = await catalog_service.list_products(category_id, search, page, limit, offset)
    return {"success": True, **result}


@router.get("/products/featured")
async def featured_products(
    limit: int = Query(12, ge=1, le=100),
    offset: int = Query(0, ge=0),
):
    result = await catalog_service.list_featured_products(limit, offset)
    return {"success": True, **result}


@router.get("/products/weight-discounts")
async def weight_discounts(product_id: str = Query(..., min_length=1)):
    tiers = await catalog_service.get_weight_discounts(product_id)
    return {"success": True, "data": tiers}


@router.get("/products/category-discounts")
async def category_discounts(category_id: str = Query(..., min_length=1)):
    discounts = await catalog_service.get_category_discounts(category_id)
    return {"success": True, "data": discounts}


@router.get("/products/get-products/{product_id}")
async def raw_product(product_id: str):
    product = await catalog_service.get_raw_product(product_id)
    return {"success": True, "data": product}


@router.get("/products/{product_id}")
async def product_detail(product_id: str):
    detail = await catalog_service.get_product_detail(product_id)
    return {"success": True, **detail}


@router.get("/categories")
async def list_categories():
    categories = await catalog_service.list_categories()
    return {"success": True, "data": categories}


@router.get("/search")
async def search(
    q: str = "",
    limit: int = Query(10, ge=1, le=50),
    autocomplete: bool = False,
):
    """
    Word-wise product name search. Queries shorter than three characters
    return an empty result.
    """
    results = await catalog_service.search_products(q, limit=limit, autocomplete=autocomplete)
    return {
        "success": True,
        "query": q,
        "min_length": SEARCH_MIN_QUERY_LENGTH,
        "data": results,
    }
