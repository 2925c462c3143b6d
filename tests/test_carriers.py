"""Tests for carrier onboarding, compliance gates and tiering."""

from __future__ import annotations

from datetime import timedelta

import pytest

from tms_api import events
from tms_api.carriers import fmcsa_lookup, recommend_tier
from tms_api.db import utcnow


def carrier_body(**kw) -> dict:
    now = utcnow()
    body = {
        "legal_name": "Blue Line Transport LLC",
        "mc_number": "MC123456",
        "dot_number": "1234567",
        "insurance": [
            {"insurance_type": "AUTO_LIABILITY", "coverage_amount": "$1,000,000",
             "effective_date": (now - timedelta(days=10)).isoformat(),
             "expiration_date": (now + timedelta(days=200)).isoformat()},
            {"insurance_type": "CARGO", "coverage_amount": 100000,
             "effective_date": (now - timedelta(days=10)).isoformat(),
             "expiration_date": (now + timedelta(days=200)).isoformat()},
        ],
    }
    body.update(kw)
    return body


class TestRecommendTier:
    @pytest.mark.parametrize(
        "loads, on_time, claims, months, expected",
        [
            (150, 0.97, 0.0, 24, "PLATINUM"),
            (150, 0.92, 0.0, 24, "GOLD"),
            (30, 0.86, 0.0, 4, "SILVER"),
            (12, 0.10, 0.0, 0, "BRONZE"),
            (5, 1.0, 0.0, 36, "UNQUALIFIED"),
        ],
    )
    def test_thresholds(self, loads, on_time, claims, months, expected) -> None:
        assert recommend_tier(loads, on_time, claims, months) == expected

    def test_claims_ratio_blocks_upper_tiers(self) -> None:
        assert recommend_tier(200, 0.99, 0.05, 24) == "BRONZE"


class TestFmcsaLookup:
    def test_mc_number_digits_become_dot(self) -> None:
        out = fmcsa_lookup(mc_number="MC-998877")
        assert out["dotNumber"] == "998877"
        assert out["mcNumber"] == "MC-998877"
        assert out["isAuthorized"] is True


class TestCarrierLifecycle:
    def test_create_defaults_to_pending_with_insurance(self, client, headers) -> None:
        r = client.post("/v1/carriers", json=carrier_body(), headers=headers)
        assert r.status_code == 201
        body = r.json()
        assert body["status"] == "PENDING"
        assert body["country"] == "USA"
        assert {i["insurance_type"] for i in body["insurance"]} == {"AUTO_LIABILITY", "CARGO"}
        assert body["insurance"][0]["coverage_amount"] in (1_000_000, 100_000)

    def test_duplicate_mc_or_dot_is_rejected(self, client, headers) -> None:
        client.post("/v1/carriers", json=carrier_body(), headers=headers)
        r = client.post("/v1/carriers", json=carrier_body(dot_number="999"), headers=headers)
        assert r.status_code == 400
        assert r.json()["detail"] == "Carrier with this MC/DOT already exists"

    def test_approve_requires_insurance(self, client, headers) -> None:
        cid = client.post("/v1/carriers", json=carrier_body(insurance=[]), headers=headers).json()["id"]
        r = client.post(f"/v1/carriers/{cid}/approve", headers=headers)
        assert r.status_code == 400
        assert "auto liability" in r.json()["detail"]

    def test_approve_requires_enough_cargo_cover(self, client, headers) -> None:
        body = carrier_body()
        body["insurance"][1]["coverage_amount"] = 50_000
        cid = client.post("/v1/carriers", json=body, headers=headers).json()["id"]
        r = client.post(f"/v1/carriers/{cid}/approve", headers=headers)
        assert r.status_code == 400
        assert "cargo" in r.json()["detail"]

    def test_approve_accepts_renewed_policy(self, client, headers) -> None:
        now = utcnow()
        body = carrier_body()
        lapsed = {"insurance_type": "AUTO_LIABILITY", "coverage_amount": 1_000_000,
                  "effective_date": (now - timedelta(days=400)).isoformat(),
                  "expiration_date": (now - timedelta(days=35)).isoformat()}
        body["insurance"].insert(0, lapsed)
        cid = client.post("/v1/carriers", json=body, headers=headers).json()["id"]
        r = client.post(f"/v1/carriers/{cid}/approve", headers=headers)
        assert r.status_code == 200
        assert r.json()["status"] == "ACTIVE"

    def test_approve_ignores_expired_only_cover(self, client, headers) -> None:
        now = utcnow()
        body = carrier_body()
        body["insurance"][0]["expiration_date"] = (now - timedelta(days=1)).isoformat()
        body["insurance"].append({"insurance_type": "AUTO_LIABILITY", "coverage_amount": 500_000,
                                  "effective_date": (now - timedelta(days=10)).isoformat(),
                                  "expiration_date": (now + timedelta(days=200)).isoformat()})
        cid = client.post("/v1/carriers", json=body, headers=headers).json()["id"]
        r = client.post(f"/v1/carriers/{cid}/approve", headers=headers)
        assert r.status_code == 400
        assert "auto liability" in r.json()["detail"]

    def test_approve_activates_and_emits(self, client, headers) -> None:
        seen = []
        events.on("carrier.approved")(seen.append)
        cid = client.post("/v1/carriers", json=carrier_body(), headers=headers).json()["id"]
        r = client.post(f"/v1/carriers/{cid}/approve", headers=headers)
        assert r.status_code == 200
        assert r.json()["status"] == "ACTIVE"
        assert r.json()["approved_by_id"] == "u1"
        assert seen and seen[0]["carrierId"] == cid

        r = client.post(f"/v1/carriers/{cid}/approve", headers=headers)
        assert r.status_code == 400
        assert r.json()["detail"] == "Only pending carriers can be approved"

    def test_suspension_needs_reason(self, client, headers, make_carrier) -> None:
        cid = make_carrier()
        r = client.patch(f"/v1/carriers/{cid}/status", json={"status": "SUSPENDED"}, headers=headers)
        assert r.status_code == 400
        assert r.json()["detail"] == "Reason is required for suspension/blacklist"

        r = client.patch(f"/v1/carriers/{cid}/status", json={"status": "SUSPENDED", "reason": "Late docs"},
                         headers=headers)
        assert r.status_code == 200
        assert r.json()["status_reason"] == "Late docs"

    def test_blacklisted_carrier_is_read_only(self, client, headers, make_carrier) -> None:
        cid = make_carrier()
        client.patch(f"/v1/carriers/{cid}/status", json={"status": "BLACKLISTED", "reason": "Fraud"}, headers=headers)
        r = client.patch(f"/v1/carriers/{cid}", json={"city": "Reno"}, headers=headers)
        assert r.status_code == 400

    def test_deactivate_blocked_by_open_loads(self, client, headers, make_carrier, make_load) -> None:
        cid = make_carrier()
        make_load(carrier_id=cid, assign=True)
        r = client.post(f"/v1/carriers/{cid}/deactivate", headers=headers)
        assert r.status_code == 400
        assert r.json()["detail"] == "Cannot deactivate carrier with 1 active loads"

    def test_delete_blocked_by_load_history(self, client, headers, make_carrier, make_load) -> None:
        cid = make_carrier()
        make_load(carrier_id=cid, assign=True)
        r = client.delete(f"/v1/carriers/{cid}", headers=headers)
        assert r.status_code == 400

        spare = make_carrier()
        assert client.delete(f"/v1/carriers/{spare}", headers=headers).json()["success"] is True
        assert client.get(f"/v1/carriers/{spare}", headers=headers).status_code == 404


class TestCarrierQueries:
    def test_list_filters_by_equipment(self, client, headers, make_carrier) -> None:
        make_carrier(equipment_types=["FLATBED"])
        make_carrier(equipment_types=["DRY_VAN", "REEFER"])
        r = client.get("/v1/carriers", params={"equipment_type": "REEFER"}, headers=headers)
        body = r.json()
        assert body["total"] == 1
        assert body["data"][0]["equipment_types"] == ["DRY_VAN", "REEFER"]

    def test_stats(self, client, headers, make_carrier) -> None:
        make_carrier()
        make_carrier(approved=False)
        body = client.get("/v1/carriers/stats", headers=headers).json()
        assert body["total"] == 2
        assert body["byStatus"] == {"ACTIVE": 1, "PENDING": 1}
        assert body["byTier"] == {"UNQUALIFIED": 2}

    def test_expiring_insurance(self, client, headers, make_carrier) -> None:
        cid = make_carrier()
        now = utcnow()
        client.post(f"/v1/carriers/{cid}/insurance", json={
            "insurance_type": "GENERAL_LIABILITY", "coverage_amount": 500000,
            "effective_date": (now - timedelta(days=300)).isoformat(),
            "expiration_date": (now + timedelta(days=5)).isoformat(),
        }, headers=headers)
        body = client.get("/v1/carriers/insurance/expiring", params={"days": 30}, headers=headers).json()
        assert [i["insurance_type"] for i in body] == ["GENERAL_LIABILITY"]
        assert body[0]["carrier"]["id"] == cid

    def test_scorecard_for_new_carrier(self, client, headers, make_carrier) -> None:
        cid = make_carrier()
        body = client.get(f"/v1/carriers/{cid}/scorecard", headers=headers).json()
        assert body["metrics"]["totalLoads"] == 0
        assert body["carrier"]["recommendedTier"] == "UNQUALIFIED"
        assert body["compliance"]["hasExpiredInsurance"] is False


class TestOnboarding:
    def test_onboard_creates_pending_carrier(self, client, headers) -> None:
        r = client.post("/v1/carriers/onboard", json={"dot_number": "5550001", "state": "TX"}, headers=headers)
        assert r.status_code == 201
        body = r.json()
        assert body["existing"] is False
        assert body["carrier"]["status"] == "PENDING"
        assert body["carrier"]["state"] == "TX"

        again = client.post("/v1/carriers/onboard", json={"dot_number": "5550001"}, headers=headers).json()
        assert again["existing"] is True
        assert again["carrier"]["id"] == body["carrier"]["id"]

    def test_onboard_needs_an_identifier(self, client, headers) -> None:
        r = client.post("/v1/carriers/onboard", json={}, headers=headers)
        assert r.status_code == 400

    def test_fmcsa_check_records_log(self, client, headers, make_carrier) -> None:
        cid = make_carrier()
        r = client.post(f"/v1/carriers/{cid}/fmcsa-check", headers=headers)
        assert r.status_code == 200
        summary = client.get(f"/v1/carriers/{cid}/compliance", headers=headers).json()
        assert len(summary["fmcsaHistory"]) == 1
        assert summary["issues"]["isOutOfService"] is False


class TestFleet:
    def test_truck_driver_assignment(self, client, headers, make_carrier) -> None:
        cid = make_carrier()
        driver = client.post(f"/v1/carriers/{cid}/drivers", json={"first_name": "Pat", "last_name": "Lee"},
                             headers=headers).json()
        truck = client.post(f"/v1/carriers/{cid}/trucks", json={"unit_number": "T-100"}, headers=headers).json()
        r = client.patch(f"/v1/carriers/{cid}/trucks/{truck['id']}/assign-driver/{driver['id']}", headers=headers)
        assert r.status_code == 200
        assert r.json()["assigned_driver_id"] == driver["id"]

        r = client.get(f"/v1/carriers/{cid}/drivers/999", headers=headers)
        assert r.status_code == 404
