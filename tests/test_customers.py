"""Tests for the customer endpoints and tenant isolation."""

from __future__ import annotations


class TestCustomerCrud:
    def test_create_and_show(self, client, headers) -> None:
        r = client.post("/v1/customers", json={"name": "Acme", "code": "ACME"}, headers=headers)
        assert r.status_code == 201
        body = r.json()
        assert body["name"] == "Acme"
        assert body["status"] == "ACTIVE"
        assert body["tenant_id"] == "t1"
        assert body["created_at"].endswith("Z")

        r = client.get(f"/v1/customers/{body['id']}", headers=headers)
        assert r.status_code == 200
        assert r.json()["code"] == "ACME"

    def test_list_is_paginated_and_searchable(self, client, headers) -> None:
        for name in ("Acme", "Beta Foods", "Gamma Steel"):
            client.post("/v1/customers", json={"name": name}, headers=headers)

        r = client.get("/v1/customers", params={"limit": 2}, headers=headers)
        body = r.json()
        assert body["total"] == 3
        assert body["totalPages"] == 2
        assert [c["name"] for c in body["data"]] == ["Acme", "Beta Foods"]

        r = client.get("/v1/customers", params={"search": "steel"}, headers=headers)
        assert [c["name"] for c in r.json()["data"]] == ["Gamma Steel"]

    def test_update_applies_only_given_fields(self, client, headers) -> None:
        cid = client.post("/v1/customers", json={"name": "Acme", "city": "Chicago"}, headers=headers).json()["id"]
        r = client.patch(f"/v1/customers/{cid}", json={"state": "IL"}, headers=headers)
        assert r.status_code == 200
        assert r.json()["city"] == "Chicago"
        assert r.json()["state"] == "IL"

    def test_delete_is_soft(self, client, headers) -> None:
        cid = client.post("/v1/customers", json={"name": "Acme"}, headers=headers).json()["id"]
        assert client.delete(f"/v1/customers/{cid}", headers=headers).status_code == 204
        assert client.get(f"/v1/customers/{cid}", headers=headers).status_code == 404
        assert client.get("/v1/customers", headers=headers).json()["total"] == 0


class TestTenantIsolation:
    def test_other_tenant_cannot_see_rows(self, client, headers) -> None:
        cid = client.post("/v1/customers", json={"name": "Acme"}, headers=headers).json()["id"]
        other = {"X-Tenant-Id": "t2"}
        r = client.get(f"/v1/customers/{cid}", headers=other)
        assert r.status_code == 404
        assert r.json()["detail"] == "Customer not found"
        assert client.get("/v1/customers", headers=other).json()["total"] == 0

    def test_missing_tenant_header_is_rejected(self, client) -> None:
        r = client.get("/v1/customers")
        assert r.status_code == 400
        assert r.json()["detail"] == "X-Tenant-Id header is required"
