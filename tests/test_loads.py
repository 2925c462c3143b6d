"""Tests for load dispatch, status transitions, tracking updates and rate confirmations."""

from __future__ import annotations

import re

import pytest

from tms_api import events
from tms_api.loads import LOAD_TRANSITIONS, can_transition, endpoints
from tms_api.models import Stop


class TestTransitions:
    @pytest.mark.parametrize(
        "current, new, allowed",
        [
            ("PENDING", "ACCEPTED", True),
            ("PENDING", "DISPATCHED", False),
            ("ACCEPTED", "DISPATCHED", True),
            ("DISPATCHED", "IN_TRANSIT", True),
            ("IN_TRANSIT", "DELIVERED", True),
            ("DELIVERED", "IN_TRANSIT", False),
            ("COMPLETED", "CANCELLED", False),
        ],
    )
    def test_can_transition(self, current, new, allowed) -> None:
        assert can_transition(current, new) is allowed

    def test_unknown_status_has_no_exits(self) -> None:
        assert can_transition("ARCHIVED", "PENDING") is False
        assert LOAD_TRANSITIONS["CANCELLED"] == []


class TestEndpoints:
    def test_prefers_typed_stops(self) -> None:
        stops = [Stop(stop_type="DELIVERY", city="A"), Stop(stop_type="PICKUP", city="B"),
                 Stop(stop_type="DELIVERY", city="C")]
        pickup, delivery = endpoints(stops)
        assert pickup.city == "B"
        assert delivery.city == "A"

    def test_falls_back_to_first_and_last(self) -> None:
        stops = [Stop(stop_type="STOP", city="A"), Stop(stop_type="STOP", city="B")]
        pickup, delivery = endpoints(stops)
        assert (pickup.city, delivery.city) == ("A", "B")
        assert endpoints([]) == (None, None)


class TestCreateLoad:
    def test_number_and_stop_linking(self, client, headers, make_order) -> None:
        oid = make_order()
        r = client.post("/v1/loads", json={"order_id": oid, "carrier_rate": "1,250"}, headers=headers)
        assert r.status_code == 201
        body = r.json()
        assert re.fullmatch(r"LD\d{6}0001", body["load_number"])
        assert body["status"] == "PENDING"
        assert body["carrier_rate"] == 1250
        assert len(body["stops"]) == 2
        assert body["origin_city"] == "Chicago"
        assert body["destination_city"] == "Dallas"

        second = client.post("/v1/loads", json={"order_id": oid}, headers=headers).json()
        assert second["load_number"].endswith("0002")
        assert second["stops"] == []

    def test_unknown_order(self, client, headers) -> None:
        r = client.post("/v1/loads", json={"order_id": 404}, headers=headers)
        assert r.status_code == 404
        assert r.json()["detail"] == "Order not found"


class TestDispatchFlow:
    def test_assign_then_dispatch(self, client, headers, make_load, make_carrier) -> None:
        lid = make_load()
        cid = make_carrier()
        seen = []
        events.on("load.dispatched")(seen.append)

        r = client.post(f"/v1/loads/{lid}/dispatch", headers=headers)
        assert r.status_code == 400
        assert r.json()["detail"] == "Cannot dispatch from status PENDING"

        r = client.post(f"/v1/loads/{lid}/assign", json={"carrier_id": cid, "driver_name": "Sam"}, headers=headers)
        assert r.json()["status"] == "ACCEPTED"
        assert r.json()["carrier"]["id"] == cid

        r = client.post(f"/v1/loads/{lid}/dispatch", headers=headers)
        assert r.json()["status"] == "DISPATCHED"
        assert r.json()["dispatched_at"] is not None
        assert seen[0]["loadId"] == lid

        history = client.get(f"/v1/loads/{lid}/history", headers=headers).json()
        assert [h["new_status"] for h in history] == ["DISPATCHED", "ACCEPTED"]

    def test_status_change_validates_and_stamps_delivery(self, client, headers, make_load) -> None:
        lid = make_load(assign=True)
        client.post(f"/v1/loads/{lid}/dispatch", headers=headers)
        r = client.patch(f"/v1/loads/{lid}/status", json={"status": "COMPLETED"}, headers=headers)
        assert r.status_code == 400
        assert r.json()["detail"] == "Cannot transition from DISPATCHED to COMPLETED"

        delivered = []
        events.on("load.delivered")(delivered.append)
        client.patch(f"/v1/loads/{lid}/status", json={"status": "IN_TRANSIT"}, headers=headers)
        r = client.patch(f"/v1/loads/{lid}/status", json={"status": "DELIVERED"}, headers=headers)
        assert r.json()["delivered_at"] is not None
        assert delivered[0]["loadId"] == lid

    def test_delete_only_pending_or_cancelled(self, client, headers, make_load) -> None:
        busy = make_load(assign=True)
        r = client.delete(f"/v1/loads/{busy}", headers=headers)
        assert r.status_code == 400

        idle = make_load()
        assert client.delete(f"/v1/loads/{idle}", headers=headers).json()["success"] is True
        assert client.get(f"/v1/loads/{idle}", headers=headers).status_code == 404


class TestTrackingUpdates:
    def test_location_update(self, client, headers, make_load) -> None:
        lid = make_load()
        r = client.patch(f"/v1/loads/{lid}/location",
                         json={"latitude": 41.8, "longitude": -87.6, "city": "Chicago", "state": "IL"},
                         headers=headers)
        body = r.json()
        assert (body["current_lat"], body["current_lng"]) == (41.8, -87.6)
        assert body["last_tracking_update"] is not None

    def test_check_call_moves_the_load(self, client, headers, make_load) -> None:
        lid = make_load()
        seen = []
        events.on("check-call.received")(seen.append)
        r = client.post(f"/v1/loads/{lid}/check-calls",
                        json={"lat": 39.1, "lng": -94.6, "city": "Kansas City", "state": "MO",
                              "notes": "Rolling", "eta": "2030-05-01T15:00:00Z"},
                        headers=headers)
        assert r.status_code == 201
        assert seen[0]["location"]["city"] == "Kansas City"

        detail = client.get(f"/v1/loads/{lid}", headers=headers).json()
        assert detail["current_city"] == "Kansas City"
        assert detail["eta"] == "2030-05-01T15:00:00Z"
        assert detail["check_calls"][0]["notes"] == "Rolling"

        calls = client.get(f"/v1/loads/{lid}/check-calls", headers=headers).json()
        assert calls["total"] == 1


class TestQueries:
    def test_list_filters_by_status_list(self, client, headers, make_load) -> None:
        make_load()
        make_load(assign=True)
        body = client.get("/v1/loads", params={"status": "PENDING,ACCEPTED"}, headers=headers).json()
        assert body["total"] == 2
        body = client.get("/v1/loads", params={"status": "ACCEPTED"}, headers=headers).json()
        assert body["total"] == 1

    def test_stats(self, client, headers, make_load, make_order) -> None:
        make_load(order_id=make_order(rate=1000))
        make_load(order_id=make_order(rate=500), assign=True)
        body = client.get("/v1/loads/stats", headers=headers).json()
        assert body["total"] == 2
        assert body["byStatus"] == {"PENDING": 1, "ACCEPTED": 1}
        assert body["totalRevenueCents"] == 150000

    def test_board_groups_by_status(self, client, headers, make_load) -> None:
        make_load()
        make_load(assign=True)
        body = client.get("/v1/loads/board", params={"status": "PENDING,ACCEPTED"}, headers=headers).json()
        assert body["total"] == 2
        assert set(body["byStatus"]) == {"PENDING", "ACCEPTED"}


class TestRateConfirmation:
    def test_requires_carrier(self, client, headers, make_load) -> None:
        lid = make_load()
        r = client.post(f"/v1/loads/{lid}/rate-confirmation", json={}, headers=headers)
        assert r.status_code == 400
        assert r.json()["detail"] == "Load must be assigned to a carrier"

    def test_renders_pdf(self, client, headers, make_load) -> None:
        lid = make_load(assign=True)
        r = client.post(f"/v1/loads/{lid}/rate-confirmation",
                        json={"include_terms": True, "custom_message": "Call on arrival"}, headers=headers)
        assert r.status_code == 200
        assert r.headers["content-type"] == "application/pdf"
        assert r.content.startswith(b"%PDF")
