import os

# Test configuration must be in place before app.core.config is imported
os.environ["ENVIRONMENT"] = "development"
os.environ["MONGODB_USE_TRANSACTIONS"] = "false"
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["RAZORPAY_KEY_SECRET"] = "rzp_test_secret"
os.environ["RESEND_API_KEY"] = ""
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["INVOICE_OFFICE_STATE_CODE"] = ""

from datetime import datetime

import httpx
import pytest
from mongomock_motor import AsyncMongoMockClient

from app.core.security import get_current_user_id
from app.db import mongo
from app.main import app
from app.services.notification_service import dispatcher
from app.services.payment_service import generate_signature
from utils.time_utils import utc_now

TEST_SECRET = "rzp_test_secret"


@pytest.fixture
def stores(monkeypatch):
    """
    Fresh in-memory identity and catalog databases.
    Clients stay unset so no transaction is started.
    """
    client = AsyncMongoMockClient()
    monkeypatch.setattr(mongo, "_identity_db", client["identity_test"])
    monkeypatch.setattr(mongo, "_catalog_db", client["catalog_test"])
    monkeypatch.setattr(mongo, "_identity_client", None)
    monkeypatch.setattr(mongo, "_catalog_client", None)
    yield client


@pytest.fixture
async def seed_user(stores):
    async def _seed(user_id="US20261", email="asha@example.com", phone="9876543210", business=False, **extra):
        now = utc_now()
        user = {
            "_id": user_id,
            "name": "Asha",
            "email": email,
            "phone": phone,
            "password": None,
            "is_business_account": business,
            "business_name": "Asha Traders" if business else None,
            "gst_number": "09AAACH7409R1ZZ" if business else None,
            "suspended": False,
            "terminated": False,
            "created_at": now,
            "updated_at": now,
        }
        user.update(extra)
        await mongo.get_users_collection().insert_one(user)
        return user
    return _seed


@pytest.fixture
async def seed_product(stores):
    async def _seed(product_id, packing_weight=500, stock_count=10, **extra):
        product = {
            "_id": product_id,
            "name": f"Product {product_id}",
            "code": product_id.upper(),
            "description": "Organic produce",
            "price": 100.0,
            "regular_price": 120.0,
            "tax": 5,
            "packing_weight": packing_weight,
            "stock_count": stock_count,
            "approved": True,
            "in_stock": True,
            "category_id": "cat-1",
            "created_at": datetime(2025, 6, 1),
        }
        product.update(extra)
        await mongo.get_products_collection().insert_one(product)
        return product
    return _seed


@pytest.fixture
async def seed_address(stores):
    async def _seed(user_id="US20261", address_id="addr-1", pincode="110001"):
        address = {
            "_id": address_id,
            "user_id": user_id,
            "type": "home",
            "name": "Asha",
            "phone": "9876543210",
            "house_no": "12",
            "line1": "MG Road",
            "line2": None,
            "city": "New Delhi",
            "district": "New Delhi",
            "state": "Delhi",
            "state_code": "07",
            "pincode": pincode,
            "is_default": True,
            "created_at": utc_now(),
        }
        await mongo.get_addresses_collection().insert_one(address)
        return address
    return _seed


@pytest.fixture
async def drain_notifications():
    yield
    await dispatcher.drain()


@pytest.fixture
def signed():
    """Builds gateway callback fields with a valid signature."""
    def _signed(provider_order_id, payment_id):
        return {
            "razorpay_order_id": provider_order_id,
            "razorpay_payment_id": payment_id,
            "razorpay_signature": generate_signature(TEST_SECRET, provider_order_id, payment_id),
        }
    return _signed


@pytest.fixture
async def api(stores, drain_notifications):
    """Client with no signed-in user."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
async def user_api(api):
    """Client signed in as US20261."""
    app.dependency_overrides[get_current_user_id] = lambda: "US20261"
    yield api
