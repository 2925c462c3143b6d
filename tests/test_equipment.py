"""Tests for the equipment catalog lookup."""

from __future__ import annotations

import pytest
from sqlalchemy import event

from tms_api.db import SessionLocal, engine
from tms_api.equipment import get_models_with_availability, is_missing_table
from tms_api.models import EquipmentDimension, EquipmentMake, EquipmentModel, EquipmentRate


@pytest.fixture
def catalog() -> dict:
    with SessionLocal() as s:
        cat = EquipmentMake(name="Caterpillar", popularity_rank=1)
        deere = EquipmentMake(name="John Deere", popularity_rank=2)
        misc = EquipmentMake(name="Acme Works")
        s.add_all([misc, deere, cat])
        s.flush()
        dozer = EquipmentModel(make_id=cat.id, name="D6 Dozer")
        loader = EquipmentModel(make_id=cat.id, name="950 Loader")
        s.add_all([dozer, loader])
        s.flush()
        s.add(EquipmentDimension(model_id=dozer.id, length_inches=200, width_inches=120,
                                 height_inches=125.5, weight_lbs=45000))
        s.add(EquipmentRate(model_id=dozer.id, location="Houston", loading_cost=350))
        s.add(EquipmentRate(model_id=loader.id, location="Denver", loading_cost=275))
        s.commit()
        return {"cat": cat.id, "deere": deere.id, "dozer": dozer.id, "loader": loader.id}


class TestMissingTable:
    @pytest.mark.parametrize(
        "message, missing",
        [
            ("(sqlite3.OperationalError) no such table: makes", True),
            ('relation "makes" does not exist', True),
            ("syntax error at or near SELECT", False),
        ],
    )
    def test_detects_missing_table(self, message, missing) -> None:
        assert is_missing_table(Exception(message)) is missing

    def test_none(self) -> None:
        assert is_missing_table(None) is False


class TestCatalog:
    def test_empty_catalog(self, client) -> None:
        assert client.get("/v1/equipment/makes").json() == []
        assert client.get("/v1/equipment/search", params={"q": "cat"}).json() == {"makes": [], "models": []}

    def test_makes_ranked_by_popularity(self, client, catalog) -> None:
        names = [m["name"] for m in client.get("/v1/equipment/makes").json()]
        assert names == ["Caterpillar", "John Deere", "Acme Works"]

    def test_models_of_make(self, client, catalog) -> None:
        models = client.get(f"/v1/equipment/makes/{catalog['cat']}/models").json()
        assert [m["name"] for m in models] == ["950 Loader", "D6 Dozer"]
        assert client.get(f"/v1/equipment/makes/{catalog['deere']}/models").json() == []

    def test_availability_flags(self, client, catalog) -> None:
        models = client.get(f"/v1/equipment/makes/{catalog['cat']}/models/availability",
                            params={"location": "Houston"}).json()
        flags = {m["name"]: (m["has_dimensions"], m["has_rates"]) for m in models}
        assert flags == {"950 Loader": (False, False), "D6 Dozer": (True, True)}

    def test_availability_reads_only_this_makes_models(self, catalog) -> None:
        statements = []

        def capture(conn, cursor, statement, params, context, executemany) -> None:
            statements.append((statement, params))

        with SessionLocal() as s:
            other = EquipmentModel(make_id=catalog["deere"], name="310 Backhoe")
            s.add(other)
            s.flush()
            other_id = other.id
            s.add(EquipmentRate(model_id=other_id, location="Houston", loading_cost=200))
            s.commit()
            event.listen(engine, "before_cursor_execute", capture)
            try:
                models = get_models_with_availability(s, catalog["cat"], "Houston")
            finally:
                event.remove(engine, "before_cursor_execute", capture)

        assert {m["name"] for m in models} == {"950 Loader", "D6 Dozer"}
        lookups = [(sql, params) for sql, params in statements if "model_id FROM" in sql]
        assert len(lookups) == 2
        assert all("IN" in sql and other_id not in params for sql, params in lookups)

    def test_dimensions(self, client, catalog) -> None:
        dims = client.get(f"/v1/equipment/models/{catalog['dozer']}/dimensions").json()
        assert (dims["length"], dims["width"], dims["height"], dims["weight"]) == (200.0, 120.0, 125.5, 45000.0)
        assert client.get(f"/v1/equipment/models/{catalog['loader']}/dimensions").json() is None

    def test_rates_by_location(self, client, catalog) -> None:
        rate = client.get(f"/v1/equipment/models/{catalog['dozer']}/rates", params={"location": "Houston"}).json()
        assert rate["loading_cost"] == 350
        assert client.get(f"/v1/equipment/models/{catalog['dozer']}/rates",
                          params={"location": "Denver"}).json() is None
        assert len(client.get(f"/v1/equipment/models/{catalog['loader']}/rates").json()) == 1

    def test_search(self, client, catalog) -> None:
        body = client.get("/v1/equipment/search", params={"q": "DOZ"}).json()
        assert body["makes"] == []
        assert body["models"][0]["make_name"] == "Caterpillar"

    def test_update_images(self, client, catalog) -> None:
        r = client.patch(f"/v1/equipment/models/{catalog['dozer']}/images",
                         json={"front_image_url": "https://img.example.com/d6.png"})
        assert r.json() == {"success": True}
        dims = client.get(f"/v1/equipment/models/{catalog['dozer']}/dimensions").json()
        assert dims["front_image_url"] == "https://img.example.com/d6.png"
        assert dims["side_image_url"] is None
