"""Tests for quotes and quote-to-order conversion."""

from __future__ import annotations

import re

from tms_api.quotes import _base36, new_quote_number, quote_total


def quote_body(customer_id=None, **kw) -> dict:
    body = {
        "customer_id": customer_id,
        "customer_name": "Acme Manufacturing",
        "equipment_type": "REEFER",
        "linehaul_rate": "$1,200",
        "fuel_surcharge": 150,
        "accessorials_total": 50,
        "pickup_date": "2030-03-01T08:00:00Z",
        "delivery_date": "2030-03-02T17:00:00Z",
        "stops": [
            {"stop_type": "PICKUP", "stop_sequence": 1, "city": "Reno", "state": "NV"},
            {"stop_type": "DELIVERY", "stop_sequence": 2, "city": "Los Angeles", "state": "CA"},
        ],
    }
    body.update(kw)
    return body


class TestHelpers:
    def test_base36(self) -> None:
        assert _base36(0) == "0"
        assert _base36(35) == "Z"
        assert _base36(36) == "10"

    def test_quote_number_format(self) -> None:
        assert re.fullmatch(r"QT-[0-9A-Z]+-[0-9A-Z]{4}", new_quote_number())

    def test_total_prefers_given_amount(self) -> None:
        assert quote_total(1000, 100, 50) == 1150
        assert quote_total(1000, None, None) == 1000
        assert quote_total(1000, 100, 50, given=999) == 999


class TestQuoteCrud:
    def test_create_computes_total(self, client, headers) -> None:
        r = client.post("/v1/quotes", json=quote_body(), headers=headers)
        assert r.status_code == 201
        body = r.json()
        assert body["status"] == "DRAFT"
        assert body["total_amount"] == 1400
        assert body["sales_rep_id"] == "u1"
        assert [st["city"] for st in body["stops"]] == ["Reno", "Los Angeles"]
        assert body["stops"][0]["country"] == "USA"

    def test_update_recomputes_total(self, client, headers) -> None:
        qid = client.post("/v1/quotes", json=quote_body(), headers=headers).json()["id"]
        r = client.patch(f"/v1/quotes/{qid}", json={"linehaul_rate": 2000, "fuel_surcharge": 100,
                                                    "accessorials_total": 0}, headers=headers)
        assert r.json()["total_amount"] == 2100

    def test_partial_pricing_update_keeps_stored_fields(self, client, headers) -> None:
        body = quote_body(linehaul_rate=1000, fuel_surcharge=200, accessorials_total=50)
        qid = client.post("/v1/quotes", json=body, headers=headers).json()["id"]
        r = client.patch(f"/v1/quotes/{qid}", json={"linehaul_rate": "$1,100"}, headers=headers)
        quote = r.json()
        assert (quote["linehaul_rate"], quote["fuel_surcharge"], quote["accessorials_total"]) == (1100, 200, 50)
        assert quote["total_amount"] == 1350

    def test_non_pricing_update_keeps_total(self, client, headers) -> None:
        qid = client.post("/v1/quotes", json=quote_body(), headers=headers).json()["id"]
        r = client.patch(f"/v1/quotes/{qid}", json={"commodity": "Frozen berries"}, headers=headers)
        assert r.json()["total_amount"] == 1400

    def test_list_search(self, client, headers) -> None:
        client.post("/v1/quotes", json=quote_body(), headers=headers)
        client.post("/v1/quotes", json=quote_body(customer_name="Fresh Fields"), headers=headers)
        body = client.get("/v1/quotes", params={"search": "fresh"}, headers=headers).json()
        assert body["total"] == 1

    def test_delete_is_soft(self, client, headers) -> None:
        qid = client.post("/v1/quotes", json=quote_body(), headers=headers).json()["id"]
        assert client.delete(f"/v1/quotes/{qid}", headers=headers).json() == {"success": True}
        r = client.get(f"/v1/quotes/{qid}", headers=headers)
        assert r.status_code == 404
        assert r.json()["detail"] == f"Quote with ID {qid} not found"


class TestConversion:
    def test_convert_creates_order_once(self, client, headers, make_customer) -> None:
        quote = client.post("/v1/quotes", json=quote_body(make_customer()), headers=headers).json()
        r = client.post(f"/v1/quotes/{quote['id']}/convert", headers=headers)
        assert r.status_code == 201
        order = r.json()
        assert order["order_number"] == f"ORD-{quote['quote_number']}"
        assert order["quote_id"] == quote["id"]
        assert order["total_charges"] == 1400
        assert [st["stop_type"] for st in order["stops"]] == ["PICKUP", "DELIVERY"]
        assert order["stops"][0]["appointment_date"] == "2030-03-01T08:00:00Z"

        converted = client.get(f"/v1/quotes/{quote['id']}", headers=headers).json()
        assert converted["status"] == "CONVERTED"
        assert converted["converted_order_id"] == order["id"]

        again = client.post(f"/v1/orders/from-quote/{quote['id']}", headers=headers)
        assert again.status_code == 400
        assert again.json()["detail"] == "Quote has already been converted to an order"

    def test_convert_needs_customer(self, client, headers) -> None:
        qid = client.post("/v1/quotes", json=quote_body(), headers=headers).json()["id"]
        r = client.post(f"/v1/orders/from-quote/{qid}", headers=headers)
        assert r.status_code == 400
        assert r.json()["detail"] == "Quote is missing a customer for conversion"

    def test_converted_quote_is_locked(self, client, headers, make_customer) -> None:
        qid = client.post("/v1/quotes", json=quote_body(make_customer()), headers=headers).json()["id"]
        client.post(f"/v1/quotes/{qid}/convert", headers=headers)

        r = client.patch(f"/v1/quotes/{qid}", json={"linehaul_rate": 900}, headers=headers)
        assert r.status_code == 400
        assert r.json()["detail"] == "Converted quotes cannot be modified"
        r = client.delete(f"/v1/quotes/{qid}", headers=headers)
        assert r.status_code == 400

        quote = client.get(f"/v1/quotes/{qid}", headers=headers).json()
        assert quote["total_amount"] == 1400
