"""
app/schemas/orders.py

Purpose: Cart, order, payment and shipping request bodies
"""

from pydantic import BaseModel, Field, field_validator
from typing import List, Optional, Union

from utils.constants import DEFAULT_CURRENCY


class AddressIn(BaseModel):
    type: Optional[str] = None
    name: Optional[str] = None
    phone: Optional[str] = None
    house_no: Optional[str] = None
    line1: Optional[str] = None
    line2: Optional[str] = None
    city: Optional[str] = None
    district: Optional[str] = None
    state: Optional[str] = None
    state_code: Optional[str] = None
    pincode: Optional[str] = None
    is_default: bool = False


class AddressUpdate(AddressIn):
    id: str


class CartAdjustRequest(BaseModel):
    product_id: str
    quantity: int = Field(..., description="Signed quantity delta")


class CartRemoveRequest(BaseModel):
    product_id: str


class OrderItemIn(BaseModel):
    product_id: str
    quantity: int = Field(..., gt=0)
    price: Optional[float] = None
    original_price: Optional[float] = None


class CreateOrderRequest(BaseModel):
    items: List[OrderItemIn] = Field(..., min_length=1)
    address_id: str
    total_amount: Optional[float] = None
    discount_amount: Optional[float] = None
    delivery_charge: Optional[Union[float, str]] = None

    @field_validator("delivery_charge")
    @classmethod
    def parse_delivery_charge(cls, v):
        """Accepts numeric strings from the checkout form."""
        if v is None or v == "":
            return None
        try:
            return float(v)
        except (TypeError, ValueError):
            raise ValueError("Invalid delivery charge")


class PaymentOrderRequest(BaseModel):
    order_id: str = Field(..., min_length=1)
    amount: Optional[float] = Field(None, gt=0, description="Amount in paise")
    currency: str = DEFAULT_CURRENCY


class PaymentVerifyRequest(BaseModel):
    razorpay_payment_id: str = Field(..., min_length=1)
    razorpay_order_id: str = Field(..., min_length=1)
    razorpay_signature: str = Field(..., min_length=1)


class UpdateOrderRequest(PaymentVerifyRequest):
    order_id: str = Field(..., min_length=1)
    total_discount_amount: Optional[float] = None
    delivery_charge: Optional[float] = None
    selected_address_id: Optional[str] = None
    courier_name: Optional[str] = None
    estimated_delivery_date: Optional[str] = None


class WeightItemIn(BaseModel):
    product_id: str
    quantity: int = 0


class WeightRequest(BaseModel):
    items: Optional[List[WeightItemIn]] = None


class ShippingRequest(BaseModel):
    address_id: str = Field(..., min_length=1)
    total_weight_with_packaging: float = Field(..., gt=0)
