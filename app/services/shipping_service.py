"""
app/services/shipping_service.py

Purpose: Delhivery shipping quotes

- Standard rate API below 10 kg (token auth, JSON or XML responses)
- Freight API at or above 10 kg (JWT from the login endpoint, fetched per quote)
- Every failure is reported as an unserviceable quote, never raised
- No retries and no fallback carrier
"""

import xml.etree.ElementTree as ET
from typing import Any, Dict, List, Optional

import httpx

from app.core.config import settings
from app.core.logging import get_logger
from utils.constants import (
    CARRIER_ID,
    CARRIER_NAME,
    DEFAULT_ZONE_DELIVERY_DAYS,
    HEAVY_SHIPPING_THRESHOLD,
    HEAVY_TRANSIT_DAYS,
    ZONE_DELIVERY_DAYS,
)

logger = get_logger(__name__)

# Box dimensions sent with freight estimates
DEFAULT_BOX = {"length_cm": 30, "width_cm": 20, "height_cm": 10, "box_count": 1}


class ShippingError(Exception):
    """Carrier call failed; message is surfaced to the caller."""


def estimated_days_for_zone(zone: Optional[str]) -> int:
    return ZONE_DELIVERY_DAYS.get(zone or "", DEFAULT_ZONE_DELIVERY_DAYS)


def error_quote(message: str) -> Dict[str, Any]:
    return {
        "status": "error",
        "provider": CARRIER_ID,
        "delivery_charges": {
            "courier_name": CARRIER_NAME,
            "freight_charge": 0,
            "is_serviceable": False,
            "message": message,
        },
    }


def parse_standard_xml(text: str) -> List[Dict[str, Any]]:
    """
    Parses the XML flavour of the standard rate response.

    Expected shape: <root><list-item><charge_MPS/><charge_pickup/><zone/></list-item>...</root>
    """
    try:
        root = ET.fromstring(text)
    except ET.ParseError as e:
        raise ShippingError("Failed to parse XML response") from e

    if root.tag != "root":
        raise ShippingError("Invalid XML structure from Delhivery API")

    charges = []
    for item in root.findall("list-item"):
        charges.append({
            "total_amount": _to_float(item.findtext("charge_MPS")) + _to_float(item.findtext("charge_pickup")),
            "zone": item.findtext("zone") or "D",
        })
    return charges


def _to_float(value: Optional[str]) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


class ShippingService:
    """
    Service class for Delhivery rate lookups.
    """

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = settings.DELHIVERY_API_KEY
        self.pickup_pincode = settings.PICKUP_PINCODE
        self._timeout = settings.SHIPPING_TIMEOUT
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    async def calculate(self, delivery_pincode: str, total_weight: float) -> Dict[str, Any]:
        """
        Quotes shipping for a destination and weight in grams, choosing the
        freight API for heavy parcels.
        """
        if not delivery_pincode or not total_weight:
            return error_quote("Missing required fields")

        try:
            if total_weight >= HEAVY_SHIPPING_THRESHOLD:
                return await self._quote_heavy(delivery_pincode, total_weight)
            return await self._quote_standard(delivery_pincode, total_weight)

        except ShippingError as e:
            logger.error(f"Shipping quote failed for {delivery_pincode}: {e}")
            return error_quote(str(e))
        except httpx.TimeoutException:
            logger.error(f"Delhivery timeout for {delivery_pincode}")
            return error_quote("Shipping provider timed out")
        except httpx.RequestError as e:
            logger.error(f"Network error calling Delhivery: {e}")
            return error_quote("Unable to reach shipping provider")

    async def _quote_standard(self, delivery_pincode: str, total_weight: float) -> Dict[str, Any]:
        params = {
            "md": "S",
            "ss": "Delivered",
            "d_pin": delivery_pincode,
            "o_pin": self.pickup_pincode,
            "cgm": str(int(round(total_weight))),
        }
        headers = {
            "Authorization": f"Token {self.api_key}",
            "Accept": "application/json",
        }

        async with self._client() as client:
            response = await client.get(
                settings.DELHIVERY_STANDARD_API_URL, params=params, headers=headers
            )

        content_type = response.headers.get("content-type", "")

        if response.is_error:
            message = f"Delhivery API error: {response.status_code}"
            if "application/json" in content_type:
                try:
                    message = response.json().get("message") or message
                except ValueError:
                    pass
            else:
                message = f"Delhivery API returned: {response.text[:100]}..."
            raise ShippingError(message)

        if "application/json" in content_type:
            data = response.json()
        elif "xml" in content_type:
            data = parse_standard_xml(response.text)
        else:
            logger.warning(f"Unexpected content type from Delhivery: {content_type}")
            raise ShippingError("Delhivery API returned unexpected response format")

        if not isinstance(data, list) or not data:
            return error_quote("Destination not serviceable")

        info = data[0]
        zone = info.get("zone")
        days = estimated_days_for_zone(zone)

        logger.info(f"Standard quote to {delivery_pincode}: {info.get('total_amount')} (zone {zone})")
        return {
            "status": "success",
            "provider": CARRIER_ID,
            "delivery_charges": {
                "courier_name": CARRIER_NAME,
                "freight_charge": round(info.get("total_amount") or 0),
                "estimated_delivery_days": days,
                "courier_id": CARRIER_ID,
                "zone": zone,
                "is_serviceable": True,
                "message": f"Estimated delivery in {days} days",
            },
        }

    async def _get_freight_token(self, client: httpx.AsyncClient) -> str:
        if not settings.DELHIVERY_USERNAME or not settings.DELHIVERY_PASSWORD:
            raise ShippingError("Delhivery credentials not configured")

        response = await client.post(
            settings.DELHIVERY_AUTH_URL,
            json={
                "username": settings.DELHIVERY_USERNAME,
                "password": settings.DELHIVERY_PASSWORD,
            },
        )
        if response.is_error:
            logger.error(f"Delhivery authentication error: {response.status_code} {response.text[:200]}")
            raise ShippingError(f"Failed to authenticate with Delhivery: {response.status_code}")

        try:
            jwt = (response.json().get("data") or {}).get("jwt")
        except ValueError as e:
            raise ShippingError("Invalid JSON response from Delhivery") from e

        if not jwt:
            raise ShippingError("Invalid response from Delhivery authentication API")
        return jwt

    async def _quote_heavy(self, delivery_pincode: str, total_weight: float) -> Dict[str, Any]:
        payload = {
            "dimensions": [DEFAULT_BOX],
            "weight_g": int(round(total_weight)),
            "cheque_payment": False,
            "source_pin": self.pickup_pincode,
            "consignee_pin": delivery_pincode,
            "payment_mode": "prepaid",
            "inv_amount": 10,
            "freight_mode": "fod",
            "rov_insurance": False,
        }

        async with self._client() as client:
            token = await self._get_freight_token(client)
            response = await client.post(
                settings.DELHIVERY_HEAVY_API_URL,
                json=payload,
                headers={"Authorization": f"Bearer {token}"},
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ShippingError("Invalid JSON response from Delhivery") from e

        if response.is_error:
            raise ShippingError(data.get("message") or f"Delhivery API error: {response.status_code}")

        estimate = data.get("data") or {}
        total = estimate.get("total")
        if not data.get("success") or not isinstance(total, (int, float)):
            return error_quote("Destination not serviceable or invalid response")

        logger.info(f"Freight quote to {delivery_pincode}: {total}")
        return {
            "status": "success",
            "provider": CARRIER_ID,
            "delivery_charges": {
                "courier_name": CARRIER_NAME,
                "freight_charge": round(total),
                "estimated_delivery_days": HEAVY_TRANSIT_DAYS,
                "courier_id": CARRIER_ID,
                "is_serviceable": True,
                "message": f"Estimated delivery in {HEAVY_TRANSIT_DAYS} days",
                "price_breakup": estimate.get("price_breakup") or {},
                "charged_weight": estimate.get("charged_wt"),
                "min_charged_weight": estimate.get("min_charged_wt"),
            },
        }


# Global shipping service instance
_shipping_service: Optional[ShippingService] = None


def get_shipping_service() -> ShippingService:
    """Get or create the global shipping service."""
    global _shipping_service
    if _shipping_service is None:
        _shipping_service = ShippingService()
    return _shipping_service
