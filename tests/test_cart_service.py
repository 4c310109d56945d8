import asyncio

import pytest

from app.core.exceptions import ResourceNotFoundError, ValidationError
from app.services.cart_service import (
    adjust_cart_item,
    clear_cart,
    get_cart,
    remove_cart_item,
)


async def test_add_then_increment(seed_product):
    await seed_product("rice", stock_count=5)

    added = await adjust_cart_item("US20261", "rice", 2)
    updated = await adjust_cart_item("US20261", "rice", 1)

    assert added["action"] == "added"
    assert updated["action"] == "updated"
    assert updated["item"]["quantity"] == 3
    assert len(await get_cart("US20261")) == 1


async def test_line_removed_when_quantity_drops_to_zero(seed_product):
    await seed_product("rice")
    await adjust_cart_item("US20261", "rice", 2)

    result = await adjust_cart_item("US20261", "rice", -2)

    assert result["action"] == "removed"
    assert await get_cart("US20261") == []


async def test_stock_limit_includes_current_quantity(seed_product):
    await seed_product("rice", stock_count=3)
    await adjust_cart_item("US20261", "rice", 2)

    with pytest.raises(ValidationError) as exc:
        await adjust_cart_item("US20261", "rice", 2)

    assert exc.value.details["insufficient_stock"] is True
    assert exc.value.details["available_stock"] == 3
    assert exc.value.details["current_quantity"] == 2


async def test_new_line_needs_positive_quantity(seed_product):
    await seed_product("rice")
    with pytest.raises(ValidationError):
        await adjust_cart_item("US20261", "rice", -1)


async def test_unknown_product(stores):
    with pytest.raises(ResourceNotFoundError):
        await adjust_cart_item("US20261", "nope", 1)


async def test_clear_is_scoped_to_user(seed_product):
    await seed_product("rice")
    await adjust_cart_item("US20261", "rice", 1)
    await adjust_cart_item("US20262", "rice", 1)

    assert await clear_cart("US20261") == 1
    assert await get_cart("US20261") == []
    assert len(await get_cart("US20262")) == 1


async def test_clear_without_user_refuses(stores):
    with pytest.raises(ValueError):
        await clear_cart("")


async def test_remove_one_product(seed_product):
    await seed_product("rice")
    await seed_product("dal")
    await adjust_cart_item("US20261", "rice", 1)
    await adjust_cart_item("US20261", "dal", 1)

    assert await remove_cart_item("US20261", "rice") == 1
    assert [line["product_id"] for line in await get_cart("US20261")] == ["dal"]


async def test_cart_endpoint_joins_products(user_api, seed_product):
    await seed_product("rice")
    response = await user_api.post("/api/cart", json={"product_id": "rice", "quantity": 2})
    assert response.json()["action"] == "added"

    cart = (await user_api.get("/api/cart")).json()

    assert cart["items"][0]["quantity"] == 2
    assert cart["items"][0]["product"]["name"] == "Product rice"


async def test_concurrent_adds_accumulate(seed_product):
    await seed_product("rice", stock_count=20)

    await asyncio.gather(*(adjust_cart_item("US20261", "rice", 2) for _ in range(3)))

    lines = await get_cart("US20261")
    assert len(lines) == 1
    assert lines[0]["quantity"] == 6


async def test_rejected_add_leaves_quantity_unchanged(seed_product):
    await seed_product("rice", stock_count=3)
    await adjust_cart_item("US20261", "rice", 2)

    with pytest.raises(ValidationError):
        await adjust_cart_item("US20261", "rice", 2)

    assert (await get_cart("US20261"))[0]["quantity"] == 2
