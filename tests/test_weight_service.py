from app.services.weight_service import (
    calculate_shipping_weight,
    compute_weight,
    packaging_surcharge,
)


def test_surcharge_steps():
    assert packaging_surcharge(0) == 0
    assert packaging_surcharge(9999) == 0
    assert packaging_surcharge(10000) == 1000
    assert packaging_surcharge(25000) == 2000


def test_two_medium_lines_get_one_allowance():
    lines = [{"product_id": "a", "quantity": 1}, {"product_id": "b", "quantity": 1}]
    breakdown = compute_weight(lines, {"a": 6000, "b": 6000})

    assert breakdown.total_weight == 12000
    assert breakdown.eligible_weight == 12000
    assert breakdown.extra_packaging_weight == 1000
    assert breakdown.total_weight_with_packaging == 13000


def test_bulk_items_are_not_eligible():
    lines = [{"product_id": "sack", "quantity": 2}, {"product_id": "jar", "quantity": 3}]
    breakdown = compute_weight(lines, {"sack": 25000, "jar": 500})

    assert breakdown.total_weight == 51500
    assert breakdown.eligible_weight == 1500
    assert breakdown.total_weight_with_packaging == 51500


def test_unknown_weight_counts_as_zero():
    breakdown = compute_weight([{"product_id": "ghost", "quantity": 4}], {})
    assert breakdown.total_weight_with_packaging == 0


async def test_weights_come_from_catalog(seed_product):
    await seed_product("a", packing_weight=6000)
    await seed_product("b", packing_weight=6000)

    breakdown = await calculate_shipping_weight([
        {"product_id": "a", "quantity": 1},
        {"product_id": "b", "quantity": 1},
    ])

    assert breakdown.total_weight_with_packaging == 13000


async def test_weight_endpoint_falls_back_to_cart(user_api, seed_product):
    from app.db.mongo import get_carts_collection

    await seed_product("a", packing_weight=6000)
    await get_carts_collection().insert_one({"_id": "c1", "user_id": "US20261", "product_id": "a", "quantity": 2})

    from_cart = await user_api.post("/api/weight/calculate", json={})
    from_body = await user_api.post("/api/weight/calculate", json={"items": [{"product_id": "a", "quantity": 1}]})

    assert from_cart.json()["total_weight_with_packaging"] == 13000
    assert from_body.json()["total_weight_with_packaging"] == 6000
