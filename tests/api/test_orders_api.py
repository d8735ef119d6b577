# tests/api/test_orders_api.py
from __future__ import annotations

import pytest

from tests.factories import INTEGRATION_ID, make_link, make_location, make_product, put_stock

pytestmark = pytest.mark.asyncio


def _webhook_order(qty: int = 2) -> dict:
    return {
        "externalId": "5001",
        "externalOrderNumber": "#5001",
        "platform": "shopify",
        "nativeStatus": "paid",
        "customer": {"email": "b@example.com", "name": "Bo"},
        "lineItems": [
            {"externalId": "li-1", "externalProductId": "gid-x", "name": "Hay Bale", "quantity": qty},
            {"externalId": "li-2", "externalProductId": "gid-unknown", "name": "Mystery Toy", "quantity": 1},
        ],
        "currency": "USD",
        "total": "12.00",
    }


async def _seed(async_session_maker):
    async with async_session_maker() as s:
        p = await make_product(s, "Hay Bale")
        loc = await make_location(s, "Barn")
        await put_stock(s, product_id=p.id, location_id=loc.id, qty=5)
        await make_link(s, product_id=p.id, external_product_id="gid-x")
        await s.commit()
        return p.id, loc.id


async def test_ingest_validate_fulfill_flow(client, async_session_maker, caller_headers):
    pid, loc = await _seed(async_session_maker)

    r = await client.post(f"/orders/external/{INTEGRATION_ID}", json=_webhook_order())
    assert r.status_code == 200, r.text
    ingest = r.json()
    assert ingest["created"] is True
    assert (ingest["mapped_items"], ingest["unmapped_items"]) == (1, 1)
    order_id = ingest["order_id"]

    r = await client.post(f"/orders/external/{INTEGRATION_ID}", json=_webhook_order())
    assert r.json()["created"] is False
    assert r.json()["order_id"] == order_id

    r = await client.get(f"/orders/{order_id}/fulfill/validate", headers=caller_headers)
    assert r.status_code == 200
    v = r.json()
    assert v["can_fulfill"] is False
    assert v["requires_attention"] is True
    assert v["suggested_location_id"] == loc
    mapped_item, unmapped_item = v["items"]

    r = await client.post(
        f"/orders/{order_id}/fulfill",
        json={
            "location_id": loc,
            "items": [
                {"item_id": mapped_item["item_id"], "quantity": 2},
                {"item_id": unmapped_item["item_id"], "quantity": 1},
            ],
            "notes": "web order",
        },
        headers=caller_headers,
    )
    assert r.status_code == 200, r.text
    res = r.json()
    assert [f["quantity"] for f in res["fulfilled"]] == [2]
    assert [s["reason"] for s in res["skipped"]] == ["unmapped"]
    assert res["order_status"] == "processing"

    r = await client.get(f"/inventory/product/{pid}/locations", headers=caller_headers)
    assert r.json()["locations"][0]["quantity"] == 3


async def test_fulfill_requires_approved_caller(client, async_session_maker):
    await _seed(async_session_maker)
    r = await client.post(
        "/orders/abc/fulfill",
        json={"location_id": 1, "items": [{"item_id": "x", "quantity": 1}]},
        headers={"X-User-Id": "3", "X-User-Approved": "false"},
    )
    assert r.status_code == 403


async def test_fulfill_unknown_order_is_404(client, caller_headers):
    r = await client.post(
        "/orders/missing/fulfill",
        json={"location_id": 1, "items": [{"item_id": "x", "quantity": 1}]},
        headers=caller_headers,
    )
    assert r.status_code == 404
    assert r.json()["error_code"] == "NOT_FOUND"


async def test_ingest_rejects_bad_payload(client):
    bad = _webhook_order()
    bad["lineItems"][0]["quantity"] = 0
    r = await client.post(f"/orders/external/{INTEGRATION_ID}", json=bad)
    assert r.status_code == 422
