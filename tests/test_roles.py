"""Tests for roles and the permission catalog."""

from __future__ import annotations

import pytest

from tms_api.db import SessionLocal
from tms_api.models import Permission, Role
from tms_api.roles import (
    PERMISSION_CATALOG,
    coverage,
    group_permissions,
    module_permissions,
    toggle_module,
    toggle_permission,
)


@pytest.fixture
def perms() -> list:
    return [
        Permission(id=1, group="users", name="users.view"),
        Permission(id=2, group="users", name="users.edit"),
        Permission(id=3, group="carriers", name="carriers.view"),
        Permission(id=4, group=None, name="misc.thing"),
    ]


@pytest.fixture
def system_role() -> int:
    with SessionLocal() as s:
        role = Role(tenant_id="t1", name="Admin", is_system=True, permissions=["users.view"])
        s.add(role)
        s.commit()
        return role.id


class TestToggles:
    def test_toggle_permission(self) -> None:
        assert toggle_permission(["a"], "b", True) == ["a", "b"]
        assert toggle_permission(["a", "b"], "b", True) == ["a", "b"]
        assert toggle_permission(["a", "b"], "a", False) == ["b"]

    def test_toggle_module(self) -> None:
        assert toggle_module(["x", "a"], ["a", "b"], True) == ["x", "a", "b"]
        assert toggle_module(["x", "a", "b"], ["a", "b"], False) == ["x"]


class TestGrouping:
    def test_ungrouped_land_in_other(self, perms) -> None:
        groups = group_permissions(perms)
        assert list(groups) == ["users", "carriers", "other"]
        assert groups["users"]["displayName"] == "User Management"
        assert [p["name"] for p in groups["other"]["permissions"]] == ["misc.thing"]
        assert module_permissions(perms, "other") == ["misc.thing"]

    def test_coverage(self, perms) -> None:
        cov = coverage(perms, ["users.view", "users.edit", "carriers.view"])
        assert cov["total"] == 4
        assert cov["selected"] == 3
        assert cov["percent"] == 75
        assert cov["modules"]["users"]["allSelected"] is True
        assert cov["modules"]["other"]["allSelected"] is False
        assert cov["modules"]["other"]["someSelected"] is False

    def test_coverage_ignores_names_outside_catalog(self, perms) -> None:
        cov = coverage(perms, ["users.view", "users.view", "reports.export", "legacy.admin"])
        assert cov["selected"] == 1
        assert cov["percent"] == 25
        assert coverage(perms, [p.name for p in perms] + ["legacy.admin"])["percent"] == 100

    def test_coverage_rounds_half_up(self) -> None:
        perms = [Permission(group="g", name=f"g.{i}") for i in range(8)]
        assert coverage(perms, ["g.0"])["percent"] == 13
        assert coverage(perms[:3], ["g.0"])["modules"]["g"]["someSelected"] is True
        assert coverage([], [])["percent"] == 0


class TestPermissionCatalog:
    def test_catalog_synced_once(self, client) -> None:
        first = client.get("/v1/permissions").json()["data"]
        again = client.get("/v1/permissions").json()["data"]
        assert len(first) == len(again) == len(PERMISSION_CATALOG)

    def test_grouped(self, client) -> None:
        groups = client.get("/v1/permissions/grouped").json()
        assert groups[0]["module"] == "users"
        assert "carriers.approve" in [p["name"] for g in groups for p in g["permissions"]]


class TestRoles:
    def test_create_dedupes_permissions(self, client, headers) -> None:
        r = client.post("/v1/roles", json={"name": "Dispatcher",
                                           "permissions": ["tms.loads.view", "tms.loads.view"]}, headers=headers)
        assert r.status_code == 201
        assert r.json()["permissions"] == ["tms.loads.view"]
        assert r.json()["is_system"] is False

    def test_toggle_and_coverage(self, client, headers) -> None:
        rid = client.post("/v1/roles", json={"name": "Ops"}, headers=headers).json()["id"]
        r = client.post(f"/v1/roles/{rid}/modules/toggle", json={"module": "carriers", "checked": True},
                        headers=headers)
        assert len(r.json()["permissions"]) == 5

        r = client.post(f"/v1/roles/{rid}/permissions/toggle", json={"permission": "carriers.delete",
                                                                     "checked": False}, headers=headers)
        assert "carriers.delete" not in r.json()["permissions"]

        cov = client.get(f"/v1/roles/{rid}/coverage", headers=headers).json()
        assert cov["selected"] == 4
        assert cov["modules"]["carriers"]["someSelected"] is True

    def test_unknown_permission(self, client, headers) -> None:
        rid = client.post("/v1/roles", json={"name": "Ops"}, headers=headers).json()["id"]
        r = client.post(f"/v1/roles/{rid}/permissions/toggle", json={"permission": "nope", "checked": True},
                        headers=headers)
        assert r.status_code == 400
        assert r.json()["detail"] == "Unknown permission nope"

    def test_system_roles_are_read_only(self, client, headers, system_role) -> None:
        r = client.patch(f"/v1/roles/{system_role}", json={"name": "Root"}, headers=headers)
        assert r.json()["detail"] == "Cannot modify system roles"
        r = client.delete(f"/v1/roles/{system_role}", headers=headers)
        assert r.json()["detail"] == "Cannot delete system roles"
        assert [x["name"] for x in client.get("/v1/roles", headers=headers).json()] == ["Admin"]

    def test_update_and_delete(self, client, headers) -> None:
        rid = client.post("/v1/roles", json={"name": "Ops"}, headers=headers).json()["id"]
        r = client.patch(f"/v1/roles/{rid}", json={"name": "Operations", "permissions": ["a", "a", "b"]},
                         headers=headers)
        assert r.json()["name"] == "Operations"
        assert r.json()["permissions"] == ["a", "b"]
        assert client.delete(f"/v1/roles/{rid}", headers=headers).json() == {"success": True}
        r = client.get(f"/v1/roles/{rid}", headers=headers)
        assert r.status_code == 404
        assert r.json()["detail"] == f"Role with ID {rid} not found"
