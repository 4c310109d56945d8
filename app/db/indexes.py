"""
app/db/indexes.py

Purpose: Database index management

- Unique indexes backing the storefront's integrity rules
  (one account per email/phone, one cart row per product, one invoice per number)
- Performance indexes for per-user listings
- TTL index for automatic OTP cleanup
"""

from pymongo import ASCENDING, DESCENDING

from app.db.mongo import (
    get_addresses_collection,
    get_billing_addresses_collection,
    get_carts_collection,
    get_category_discounts_collection,
    get_discount_prices_collection,
    get_orders_collection,
    get_otp_collection,
    get_products_collection,
    get_users_collection,
    get_weight_discounts_collection,
)
from app.core.logging import get_logger

logger = get_logger(__name__)


async def create_indexes():
    """
    Creates all necessary database indexes for optimal performance.
    This function is idempotent - safe to run multiple times.
    """
    try:
        logger.info("Creating database indexes...")

        # ==============================================
        # IDENTITY STORE
        # ==============================================

        users = get_users_collection()
        await users.create_index("email", unique=True, name="email_unique")
        await users.create_index("phone", unique=True, name="phone_unique")
        logger.debug("Created unique indexes on users.email and users.phone")

        otps = get_otp_collection()
        await otps.create_index("token", unique=True, name="token_unique")
        await otps.create_index([("email", ASCENDING), ("purpose", ASCENDING)], name="email_purpose_idx")
        # Mongo removes records once expires_at has passed
        await otps.create_index("expires_at", expireAfterSeconds=0, name="expires_at_ttl")
        logger.debug("Created OTP indexes (token, email+purpose, TTL)")

        await get_addresses_collection().create_index("user_id", name="user_id_idx")
        await get_billing_addresses_collection().create_index("user_id", unique=True, name="user_id_unique")
        logger.debug("Created address indexes")

        await get_carts_collection().create_index(
            [("user_id", ASCENDING), ("product_id", ASCENDING)],
            unique=True,
            name="user_product_unique"
        )
        logger.debug("Created unique index on carts.user_id + product_id")

        orders = get_orders_collection()
        await orders.create_index(
            [("order_by", ASCENDING), ("order_date", DESCENDING)],
            name="order_by_date_idx"
        )
        # Unpaid orders have no invoice number; only issued numbers must be unique
        await orders.create_index(
            "invoice_number",
            unique=True,
            partialFilterExpression={"invoice_number": {"$type": "string"}},
            name="invoice_number_unique"
        )
        await orders.create_index(
            [("invoice_type", ASCENDING), ("order_date", DESCENDING)],
            name="invoice_type_date_idx"
        )
        logger.debug("Created order indexes")

        # ==============================================
        # CATALOG STORE
        # ==============================================

        products = get_products_collection()
        await products.create_index(
            [("approved", ASCENDING), ("in_stock", ASCENDING), ("created_at", DESCENDING)],
            name="visible_created_idx"
        )
        await products.create_index("category_id", name="category_id_idx")
        await get_weight_discounts_collection().create_index("product_id", name="product_id_idx")
        await get_category_discounts_collection().create_index("category_id", name="category_id_idx")
        await get_discount_prices_collection().create_index("product_id", name="product_id_idx")
        logger.debug("Created catalog indexes")

        logger.info("✅ All database indexes created successfully")

    except Exception as e:
        logger.error(f"Failed to create indexes: {str(e)}", exc_info=True)
        raise


if __name__ == "__main__":
    """
    Run this script directly to create indexes manually.
    """
    import asyncio
    from app.db.mongo import connect_to_mongo, close_mongo_connection

    async def main():
        await connect_to_mongo()
        await create_indexes()
        await close_mongo_connection()

    asyncio.run(main())
