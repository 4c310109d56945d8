"""
app/db/mongo.py

Purpose: MongoDB connection setup (two independent stores)

- Identity store: users, otp_verifications, addresses, billing_addresses,
  carts, orders, counters
- Catalog store: products, categories, weight/discount tiers
- The stores are separate databases (possibly separate clusters); nothing
  joins across them except application code
- Health checks, retry logic and transaction helper
"""

from contextlib import asynccontextmanager
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import ConnectionFailure, ServerSelectionTimeoutError
from typing import Optional
import asyncio
from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)

# Global MongoDB clients
_identity_client: Optional[AsyncIOMotorClient] = None
_identity_db: Optional[AsyncIOMotorDatabase] = None
_catalog_client: Optional[AsyncIOMotorClient] = None
_catalog_db: Optional[AsyncIOMotorDatabase] = None


async def _connect(url: str, db_name: str, label: str):
    """
    Opens a client for one store with retry and exponential backoff.
    """
    max_retries = 3
    retry_delay = 2

    for attempt in range(1, max_retries + 1):
        try:
            logger.info(
                f"Attempting to connect to {label} store (attempt {attempt}/{max_retries})"
            )

            client = AsyncIOMotorClient(
                url.replace("%%", "%25"),
                maxPoolSize=50,
                minPoolSize=5,
                serverSelectionTimeoutMS=5000,
                connectTimeoutMS=10000,
                retryWrites=True,
                retryReads=True,
            )

            await client.admin.command("ping")

            logger.info(f"✅ Connected to {label} store: {db_name}")
            return client, client[db_name]

        except (ConnectionFailure, ServerSelectionTimeoutError) as e:
            logger.error(
                f"Failed to connect to {label} store (attempt {attempt}/{max_retries}): {e}"
            )

            if attempt < max_retries:
                logger.info(f"Retrying in {retry_delay} seconds...")
                await asyncio.sleep(retry_delay)
                retry_delay *= 2
            else:
                logger.critical(f"Failed to connect to {label} store after all retries")
                raise ConnectionError(f"Could not establish {label} store connection") from e


async def connect_to_mongo():
    """
    Establishes connections to both stores.
    Called during application startup.
    """
    global _identity_client, _identity_db, _catalog_client, _catalog_db

    if _identity_client is not None:
        logger.warning("MongoDB clients already initialized")
        return

    _identity_client, _identity_db = await _connect(
        settings.IDENTITY_MONGODB_URL, settings.IDENTITY_DB_NAME, "identity"
    )
    _catalog_client, _catalog_db = await _connect(
        settings.CATALOG_MONGODB_URL, settings.CATALOG_DB_NAME, "catalog"
    )


async def close_mongo_connection():
    """
    Closes both MongoDB connections.
    Called during application shutdown.
    """
    global _identity_client, _identity_db, _catalog_client, _catalog_db

    for client in (_identity_client, _catalog_client):
        if client:
            client.close()

    _identity_client = None
    _identity_db = None
    _catalog_client = None
    _catalog_db = None
    logger.info("MongoDB connections closed")


async def check_database_health() -> bool:
    """
    Checks if both store connections are healthy.

    Returns:
        True if both respond to ping, False otherwise
    """
    try:
        if _identity_client is None or _catalog_client is None:
            logger.error("MongoDB clients not initialized")
            return False

        await _identity_client.admin.command("ping")
        await _catalog_client.admin.command("ping")
        return True

    except Exception as e:
        logger.error(f"Database health check failed: {str(e)}")
        return False


def get_identity_database() -> AsyncIOMotorDatabase:
    """
    Returns the identity store database.

    Raises:
        RuntimeError: If database is not initialized
    """
    if _identity_db is None:
        raise RuntimeError(
            "Database not initialized. Call connect_to_mongo() during startup."
        )
    return _identity_db


def get_catalog_database() -> AsyncIOMotorDatabase:
    """
    Returns the catalog store database.

    Raises:
        RuntimeError: If database is not initialized
    """
    if _catalog_db is None:
        raise RuntimeError(
            "Database not initialized. Call connect_to_mongo() during startup."
        )
    return _catalog_db


# Identity store collections

def get_users_collection():
    return get_identity_database()["users"]


def get_otp_collection():
    return get_identity_database()["otp_verifications"]


def get_addresses_collection():
    return get_identity_database()["addresses"]


def get_billing_addresses_collection():
    return get_identity_database()["billing_addresses"]


def get_carts_collection():
    return get_identity_database()["carts"]


def get_orders_collection():
    """
    Returns the orders collection.

    Order lines are embedded under `items`; each line references a catalog
    product by id only.
    """
    return get_identity_database()["orders"]


def get_counters_collection():
    return get_identity_database()["counters"]


# Catalog store collections

def get_products_collection():
    return get_catalog_database()["products"]


def get_categories_collection():
    return get_catalog_database()["categories"]


def get_weight_discounts_collection():
    return get_catalog_database()["product_weight_discounts"]


def get_category_discounts_collection():
    return get_catalog_database()["category_weight_discounts"]


def get_discount_prices_collection():
    return get_catalog_database()["discount_prices"]


@asynccontextmanager
async def identity_transaction():
    """
    Yields a Motor session with an open transaction on the identity store,
    or None when transactions are disabled (standalone servers, tests).

    Usage:
        async with identity_transaction() as session:
            await orders.update_one(..., session=session)
    """
    if not settings.MONGODB_USE_TRANSACTIONS or _identity_client is None:
        yield None
        return

    async with await _identity_client.start_session() as session:
        async with session.start_transaction():
            yield session


def serialize_document(doc: Optional[dict]) -> Optional[dict]:
    """
    Copies a document for API responses, exposing `_id` as `id`.
    """
    if doc is None:
        return None
    data = {key: value for key, value in doc.items() if key != "_id"}
    data["id"] = doc["_id"]
    return data
