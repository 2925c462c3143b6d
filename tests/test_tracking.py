"""Tests for the live tracking map feed."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from tms_api.db import SessionLocal, utcnow
from tms_api.models import Load
from tms_api.tracking import eta_status, is_stale


def dispatched(client, headers, make_load, eta: datetime = None, **kw) -> int:
    lid = make_load(assign=True, **kw)
    client.post(f"/v1/loads/{lid}/dispatch", headers=headers)
    body = {"latitude": 39.7, "longitude": -104.9, "city": "Denver", "state": "CO"}
    if eta is not None:
        body["eta"] = eta.isoformat()
    client.patch(f"/v1/loads/{lid}/location", json=body, headers=headers)
    return lid


class TestEtaStatus:
    @pytest.mark.parametrize(
        "offset_hours, expected",
        [(-1, "at-risk"), (0.5, "tight"), (5, "on-time")],
    )
    def test_buckets(self, offset_hours, expected) -> None:
        now = datetime(2030, 1, 1, 12, 0)
        assert eta_status(now + timedelta(hours=offset_hours), now) == expected

    def test_missing_eta_counts_as_on_time(self) -> None:
        assert eta_status(None, datetime(2030, 1, 1)) == "on-time"

    def test_stale_fix(self) -> None:
        now = datetime(2030, 1, 1, 12, 0)
        assert is_stale(None, now)
        assert is_stale(now - timedelta(hours=2), now)
        assert not is_stale(now - timedelta(minutes=5), now)


class TestPositions:
    def test_only_active_loads_with_a_fix(self, client, headers, make_load) -> None:
        lid = dispatched(client, headers, make_load)
        make_load()
        body = client.get("/v1/tracking/positions", headers=headers).json()
        assert body["total"] == 1
        p = body["data"][0]
        assert p["loadId"] == lid
        assert (p["lat"], p["lng"]) == (39.7, -104.9)
        assert p["origin"] == "Chicago, IL"
        assert p["destination"] == "Dallas, TX"
        assert p["driver"]["name"] == "Pat Driver"

    def test_most_urgent_first_with_counts(self, client, headers, make_load) -> None:
        now = utcnow()
        calm = dispatched(client, headers, make_load, eta=now + timedelta(hours=8))
        late = dispatched(client, headers, make_load, eta=now - timedelta(hours=1))
        body = client.get("/v1/tracking/positions", headers=headers).json()
        assert [p["loadId"] for p in body["data"]] == [late, calm]
        assert body["counts"] == {"at-risk": 1, "tight": 0, "on-time": 1, "stale": 0}

    def test_stale_load_still_counts_in_its_eta_bucket(self, client, headers, make_load) -> None:
        now = utcnow()
        dispatched(client, headers, make_load, eta=now + timedelta(hours=8))
        late = dispatched(client, headers, make_load, eta=now - timedelta(hours=1))
        with SessionLocal() as s:
            s.get(Load, late).last_tracking_update = now - timedelta(hours=3)
            s.commit()
        body = client.get("/v1/tracking/positions", headers=headers).json()
        assert body["counts"] == {"at-risk": 1, "tight": 0, "on-time": 1, "stale": 1}
        assert body["data"][-1]["loadId"] == late
        assert body["data"][-1]["etaStatus"] == "stale"

    def test_filter_by_eta_status_keeps_full_counts(self, client, headers, make_load) -> None:
        now = utcnow()
        dispatched(client, headers, make_load, eta=now + timedelta(hours=8))
        late = dispatched(client, headers, make_load, eta=now - timedelta(hours=1))
        body = client.get("/v1/tracking/positions", params={"eta_status": "at-risk"}, headers=headers).json()
        assert [p["loadId"] for p in body["data"]] == [late]
        assert body["counts"]["on-time"] == 1

    def test_search_matches_load_number_and_lane(self, client, headers, make_load) -> None:
        lid = dispatched(client, headers, make_load)
        number = client.get(f"/v1/loads/{lid}", headers=headers).json()["load_number"]
        assert client.get("/v1/tracking/positions", params={"search": number.lower()},
                          headers=headers).json()["total"] == 1
        assert client.get("/v1/tracking/positions", params={"search": "dallas"}, headers=headers).json()["total"] == 1
        assert client.get("/v1/tracking/positions", params={"search": "boston"}, headers=headers).json()["total"] == 0


class TestDetail:
    def test_side_panel(self, client, headers, make_load) -> None:
        lid = dispatched(client, headers, make_load)
        client.post(f"/v1/loads/{lid}/check-calls",
                    json={"lat": 39.7, "lng": -104.9, "city": "Denver", "state": "CO", "notes": "Fueling"},
                    headers=headers)
        body = client.get(f"/v1/tracking/loads/{lid}", headers=headers).json()
        assert body["status"] == "DISPATCHED"
        assert body["currentLocation"]["city"] == "Denver"
        assert body["lastCheckCall"]["location"] == "Denver, CO"
        assert body["lastCheckCall"]["notes"] == "Fueling"
        assert len(body["stops"]) == 2

    def test_unknown_load(self, client, headers) -> None:
        assert client.get("/v1/tracking/loads/999", headers=headers).status_code == 404
