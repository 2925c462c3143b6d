"""Tests for app wiring: health, token auth and the HTML dashboard page."""

from __future__ import annotations

from tms_api import config


class TestHealth:
    def test_health_is_open(self, client) -> None:
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["ok"] is True


class TestTokenAuth:
    def test_no_token_configured_means_open_access(self, client, headers) -> None:
        assert client.get("/v1/customers", headers=headers).status_code == 200

    def test_wrong_token_is_rejected(self, client, headers, monkeypatch) -> None:
        monkeypatch.setattr(config, "API_TOKEN", "secret")
        r = client.get("/v1/customers", headers=headers)
        assert r.status_code == 401
        assert r.json()["detail"] == "invalid token"

    def test_bearer_and_api_key_are_accepted(self, client, headers, monkeypatch) -> None:
        monkeypatch.setattr(config, "API_TOKEN", "secret")
        r = client.get("/v1/customers", headers={**headers, "Authorization": "Bearer secret"})
        assert r.status_code == 200
        r = client.get("/v1/customers", headers={**headers, "X-API-Key": "secret"})
        assert r.status_code == 200


class TestDashboardPage:
    def test_page_is_served_as_html(self, client) -> None:
        r = client.get("/dashboard")
        assert r.status_code == 200
        assert r.headers["content-type"].startswith("text/html")
        assert "/v1/dashboard/kpis" in r.text
