"""
app/services/address_service.py

Purpose: Shipping addresses

- CRUD scoped to the owning user
- At most one default address per user (unset others, then set)
"""

import uuid
from typing import Any, Dict, List, Optional

from app.core.exceptions import ResourceNotFoundError, ValidationError
from app.core.logging import get_logger
from app.db.mongo import get_addresses_collection
from utils.constants import MSG_ADDRESS_NOT_FOUND, MSG_INVALID_PINCODE
from utils.time_utils import utc_now
from utils.validation_utils import validate_pincode

logger = get_logger(__name__)

REQUIRED_FIELDS = ("type", "name", "phone", "house_no", "line1", "city", "district", "state", "pincode")


def _clean_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    missing = [field for field in REQUIRED_FIELDS if not (data.get(field) or "").strip()]
    if missing:
        raise ValidationError("All required fields must be provided", details={"missing": missing})

    if not validate_pincode(data["pincode"]):
        raise ValidationError(MSG_INVALID_PINCODE)

    fields = {field: data[field].strip() for field in REQUIRED_FIELDS}
    line2 = (data.get("line2") or "").strip()
    fields["line2"] = line2 or None
    fields["state_code"] = data.get("state_code") or None
    fields["is_default"] = bool(data.get("is_default"))
    return fields


async def list_addresses(user_id: str) -> List[Dict[str, Any]]:
    """
    The user's addresses, default first, then newest first.
    """
    cursor = get_addresses_collection().find({"user_id": user_id}).sort(
        [("is_default", -1), ("created_at", -1)]
    )
    return [doc async for doc in cursor]


async def get_user_address(user_id: str, address_id: Optional[str]) -> Dict[str, Any]:
    """
    Loads an address only if it belongs to the user.

    Raises:
        ResourceNotFoundError: Missing or owned by someone else
    """
    address = None
    if address_id:
        address = await get_addresses_collection().find_one({"_id": address_id})
    if not address or address.get("user_id") != user_id:
        raise ResourceNotFoundError(MSG_ADDRESS_NOT_FOUND)
    return address


async def _unset_other_defaults(user_id: str, keep_id: Optional[str] = None):
    query: Dict[str, Any] = {"user_id": user_id, "is_default": True}
    if keep_id:
        query["_id"] = {"$ne": keep_id}
    await get_addresses_collection().update_many(query, {"$set": {"is_default": False}})


async def create_address(user_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    fields = _clean_fields(data)

    if fields["is_default"]:
        await _unset_other_defaults(user_id)

    now = utc_now()
    address = {
        "_id": uuid.uuid4().hex,
        "user_id": user_id,
        **fields,
        "created_at": now,
        "updated_at": now,
    }
    await get_addresses_collection().insert_one(address)
    logger.info(f"Address {address['_id']} created", extra={"user_id": user_id})
    return address


async def update_address(user_id: str, address_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    if not address_id:
        raise ValidationError("Address ID is required")

    fields = _clean_fields(data)
    existing = await get_user_address(user_id, address_id)

    if fields["is_default"]:
        await _unset_other_defaults(user_id, keep_id=address_id)

    fields["updated_at"] = utc_now()
    await get_addresses_collection().update_one({"_id": address_id}, {"$set": fields})
    return {**existing, **fields}


async def delete_address(user_id: str, address_id: str):
    await get_user_address(user_id, address_id)
    await get_addresses_collection().delete_one({"_id": address_id})
    logger.info(f"Address {address_id} deleted", extra={"user_id": user_id})
