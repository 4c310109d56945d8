import json

import httpx

from app.core.config import settings
from app.main import app
from app.services.shipping_service import (
    ShippingService,
    estimated_days_for_zone,
    get_shipping_service,
    parse_standard_xml,
)


def service(handler):
    return ShippingService(transport=httpx.MockTransport(handler))


def test_zone_days():
    assert estimated_days_for_zone("A") == 1
    assert estimated_days_for_zone("E") == 4
    assert estimated_days_for_zone(None) == 5


def test_parse_xml_sums_charges():
    xml = "<root><list-item><charge_MPS>80.5</charge_MPS><charge_pickup>10</charge_pickup><zone>B</zone></list-item></root>"
    assert parse_standard_xml(xml) == [{"total_amount": 90.5, "zone": "B"}]


async def test_standard_json_quote():
    def handler(request):
        assert request.headers["Authorization"].startswith("Token ")
        assert request.url.params["cgm"] == "1500"
        assert request.url.params["d_pin"] == "110001"
        assert request.url.params["md"] == "S"
        return httpx.Response(200, json=[{"total_amount": 123.6, "zone": "C"}])

    quote = await service(handler).calculate("110001", 1500)

    assert quote["status"] == "success"
    assert quote["delivery_charges"]["freight_charge"] == 124
    assert quote["delivery_charges"]["estimated_delivery_days"] == 3
    assert quote["delivery_charges"]["is_serviceable"] is True


async def test_standard_xml_quote():
    def handler(request):
        return httpx.Response(
            200,
            content=b"<root><list-item><charge_MPS>50</charge_MPS><charge_pickup>5</charge_pickup></list-item></root>",
            headers={"content-type": "application/xml"},
        )

    quote = await service(handler).calculate("110001", 900)

    assert quote["delivery_charges"]["freight_charge"] == 55
    assert quote["delivery_charges"]["zone"] == "D"


async def test_empty_result_is_unserviceable():
    quote = await service(lambda request: httpx.Response(200, json=[])).calculate("999999", 500)
    assert quote["status"] == "error"
    assert quote["delivery_charges"]["is_serviceable"] is False


async def test_timeout_is_reported_not_raised():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    quote = await service(handler).calculate("110001", 500)

    assert quote["status"] == "error"
    assert quote["delivery_charges"]["message"] == "Shipping provider timed out"


async def test_heavy_quote_fetches_token_each_time(monkeypatch):
    monkeypatch.setattr(settings, "DELHIVERY_USERNAME", "freight-user")
    monkeypatch.setattr(settings, "DELHIVERY_PASSWORD", "freight-pass")
    logins = []

    def handler(request):
        if request.url.path.endswith("/login"):
            logins.append(json.loads(request.content)["username"])
            return httpx.Response(200, json={"data": {"jwt": "jwt-token"}})
        assert request.headers["Authorization"] == "Bearer jwt-token"
        assert json.loads(request.content)["weight_g"] == 12000
        return httpx.Response(200, json={
            "success": True,
            "data": {"total": 845.2, "price_breakup": {"base": 800}, "charged_wt": 12000, "min_charged_wt": 10000},
        })

    shipping = service(handler)
    first = await shipping.calculate("560001", 12000)
    await shipping.calculate("560001", 12000)

    assert first["delivery_charges"]["freight_charge"] == 845
    assert first["delivery_charges"]["estimated_delivery_days"] == 3
    assert first["delivery_charges"]["charged_weight"] == 12000
    assert logins == ["freight-user", "freight-user"]


async def test_heavy_quote_without_credentials(monkeypatch):
    monkeypatch.setattr(settings, "DELHIVERY_USERNAME", None)
    quote = await service(lambda request: httpx.Response(500)).calculate("560001", 15000)
    assert quote["delivery_charges"]["message"] == "Delhivery credentials not configured"


async def test_shipping_endpoint_requires_owned_address(user_api, seed_address):
    await seed_address(user_id="US20262", address_id="addr-other")
    app.dependency_overrides[get_shipping_service] = lambda: service(
        lambda request: httpx.Response(200, json=[{"total_amount": 60, "zone": "A"}])
    )

    response = await user_api.post(
        "/api/shipping/calculate",
        json={"address_id": "addr-other", "total_weight_with_packaging": 1000},
    )

    assert response.status_code == 404


async def test_shipping_endpoint_uses_address_pincode(user_api, seed_address):
    await seed_address(pincode="221001")
    pins = []

    def handler(request):
        pins.append(request.url.params["d_pin"])
        return httpx.Response(200, json=[{"total_amount": 60, "zone": "A"}])

    app.dependency_overrides[get_shipping_service] = lambda: service(handler)

    response = await user_api.post(
        "/api/shipping/calculate",
        json={"address_id": "addr-1", "total_weight_with_packaging": 1000},
    )

    assert response.status_code == 200
    assert response.json()["delivery_charges"]["estimated_delivery_days"] == 1
    assert pins == ["221001"]
