"""
app/api/address.py

Purpose: Shipping address endpoints (scoped to the signed-in user)
"""

from fastapi import APIRouter, Depends

from app.core.logging import get_logger
from app.core.security import get_current_user_id
from app.db.mongo import serialize_document
from app.schemas.orders import AddressIn, AddressUpdate
from app.services import address_service

logger = get_logger(__name__)
router = APIRouter()


@router.get("")
async def list_addresses(user_id: str = Depends(get_current_user_id)):
    addresses = await address_service.list_addresses(user_id)
    return {"success": True, "addresses": [serialize_document(a) for a in addresses]}


@router.post("", status_code=201)
async def create_address(body: AddressIn, user_id: str = Depends(get_current_user_id)):
    address = await address_service.create_address(user_id, body.model_dump())
    return {
        "success": True,
        "message": "Address created successfully",
        "address": serialize_document(address),
    }


@router.put("")
async def update_address(body: AddressUpdate, user_id: str = Depends(get_current_user_id)):
    data = body.model_dump()
    address = await address_service.update_address(user_id, data.pop("id"), data)
    return {
        "success": True,
        "message": "Address updated successfully",
        "address": serialize_document(address),
    }


@router.delete("/{address_id}")
async def delete_address(address_id: str, user_id: str = Depends(get_current_user_id)):
    await address_service.delete_address(user_id, address_id)
    return {"success": True, "message": "Address deleted successfully"}
