"""Tests for the operations dashboard."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from tms_api.dashboard import comparison_range, pct_change, period_range, round1, time_since
from tms_api.db import utcnow


class TestHelpers:
    @pytest.mark.parametrize(
        "current, previous, expected",
        [(5, 0, 100), (0, 0, 0), (3, 2, 50.0), (1, 3, -66.7), (2, 3, -33.3)],
    )
    def test_pct_change(self, current, previous, expected) -> None:
        assert pct_change(current, previous) == expected

    def test_round1_halves_up(self) -> None:
        assert round1(0.25) == 0.3
        assert round1(12.34) == 12.3

    def test_week_starts_on_sunday(self) -> None:
        wednesday = datetime(2030, 1, 9, 15, 30)
        start, end = period_range("thisWeek", wednesday)
        assert start == datetime(2030, 1, 6)
        assert end == datetime(2030, 1, 9, 23, 59, 59, 999000)

        sunday = datetime(2030, 1, 6, 9, 0)
        assert period_range("thisWeek", sunday)[0] == datetime(2030, 1, 6)

    def test_month_and_today(self) -> None:
        now = datetime(2030, 3, 17, 10, 0)
        assert period_range("thisMonth", now)[0] == datetime(2030, 3, 1)
        assert period_range("today", now)[0] == datetime(2030, 3, 17)

    def test_comparison_ranges(self) -> None:
        start = datetime(2030, 3, 1)
        assert comparison_range("yesterday", start) == (datetime(2030, 2, 28),
                                                        datetime(2030, 2, 28, 23, 59, 59, 999000))
        assert comparison_range("lastMonth", datetime(2030, 3, 31))[0] == datetime(2030, 2, 28)
        assert comparison_range("lastWeek", datetime(2030, 1, 13))[0] == datetime(2030, 1, 6)

    @pytest.mark.parametrize(
        "elapsed, expected",
        [
            (timedelta(minutes=7), "7m"),
            (timedelta(hours=3, minutes=15), "3h 15m"),
            (timedelta(hours=24, minutes=30), "24h 30m"),
            (timedelta(days=2, hours=5), "2d 5h"),
        ],
    )
    def test_time_since(self, elapsed, expected) -> None:
        now = datetime(2030, 1, 10, 12, 0)
        assert time_since(now - elapsed, now) == expected


class TestEndpoints:
    def test_kpis(self, client, headers, make_load) -> None:
        make_load()
        lid = make_load(assign=True)
        client.post(f"/v1/loads/{lid}/dispatch", headers=headers)

        data = client.get("/v1/dashboard/kpis", headers=headers).json()["data"]
        assert data["activeLoads"] == 2
        assert data["activeLoadsChange"] == 100
        assert data["dispatchedToday"] == 1
        assert data["deliveredToday"] == 0
        assert data["onTimePercentage"] == 100

    def test_kpis_rejects_unknown_period(self, client, headers) -> None:
        r = client.get("/v1/dashboard/kpis", params={"period": "forever"}, headers=headers)
        assert r.status_code == 422

    def test_charts(self, client, headers, make_load) -> None:
        make_load()
        data = client.get("/v1/dashboard/charts", headers=headers).json()["data"]
        assert data["loadsByStatus"] == [{"status": "PENDING", "count": 1, "color": "#94a3b8"}]
        assert data["revenueTrend"][0]["revenue"] == 1500

    def test_activity(self, client, headers, make_load) -> None:
        lid = make_load(assign=True)
        client.post(f"/v1/loads/{lid}/dispatch", headers=headers)
        data = client.get("/v1/dashboard/activity", headers=headers).json()["data"]
        assert data[0]["action"] == "ACCEPTED -> DISPATCHED"
        assert data[0]["entityType"] == "load"
        assert data[0]["userId"] == "u1"

    def test_late_load_needs_attention(self, client, headers, make_load) -> None:
        lid = make_load(assign=True)
        client.post(f"/v1/loads/{lid}/dispatch", headers=headers)
        client.patch(f"/v1/loads/{lid}/status", json={"status": "IN_TRANSIT"}, headers=headers)
        late = (utcnow() - timedelta(hours=2)).isoformat()
        client.patch(f"/v1/loads/{lid}/location", json={"latitude": 35.0, "longitude": -97.0, "eta": late},
                     headers=headers)

        items = client.get("/v1/dashboard/needs-attention", headers=headers).json()["data"]
        assert [(i["id"], i["issueType"]) for i in items] == [(lid, "eta_past_due")]
        assert items[0]["origin"] == "Chicago, IL"
        assert items[0]["timeSinceIssue"].startswith("2h")

        alerts = client.get("/v1/dashboard/alerts", headers=headers).json()["data"]
        assert [a["id"] for a in alerts] == [f"alert-eta-{lid}"]

    def test_page(self, client) -> None:
        assert "Chart" in client.get("/dashboard").text
