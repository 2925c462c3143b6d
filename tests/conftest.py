"""Shared pytest fixtures for the test suite.

Every test runs against a fresh in-memory SQLite database; the schema is
dropped and recreated around each test.

Fixture overview
----------------
ctx             - TenantContext for tenant "t1", user "u1"
client          - FastAPI TestClient over a freshly built app
headers         - tenant/user headers matching ``ctx``
make_customer   - factory: creates a customer, returns its id
make_carrier    - factory: creates a carrier with valid insurance, returns its id
make_order      - factory: creates a two-stop order, returns its id
make_load       - factory: creates a load (optionally with a carrier assigned), returns its id
"""

from __future__ import annotations

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ.pop("TMS_API_TOKEN", None)

from datetime import timedelta  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from tms_api import events, models  # noqa: E402,F401
from tms_api.app import create_app  # noqa: E402
from tms_api.carriers import approve_carrier, create_carrier  # noqa: E402
from tms_api.customers import create_customer  # noqa: E402
from tms_api.db import Base, SessionLocal, engine, utcnow  # noqa: E402
from tms_api.deps import TenantContext  # noqa: E402
from tms_api.loads import assign_carrier, create_load  # noqa: E402
from tms_api.orders import create_order  # noqa: E402
from tms_api.schemas import (  # noqa: E402
    AssignCarrierIn,
    CarrierIn,
    CustomerIn,
    InsuranceIn,
    LoadIn,
    OrderIn,
    StopIn,
)

# ── Database ─────────────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def fresh_db():
    """Empty schema and no event listeners for every test."""
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    events.clear()
    yield
    events.clear()


@pytest.fixture
def ctx() -> TenantContext:
    return TenantContext(tenant_id="t1", user_id="u1")


# ── HTTP ─────────────────────────────────────────────────────────────────────


@pytest.fixture
def client() -> TestClient:
    return TestClient(create_app())


@pytest.fixture
def headers() -> dict:
    return {"X-Tenant-Id": "t1", "X-User-Id": "u1"}


# ── Factories ────────────────────────────────────────────────────────────────


def insurance(auto: float = 1_000_000, cargo: float = 100_000) -> list:
    now = utcnow()
    return [
        InsuranceIn(insurance_type="AUTO_LIABILITY", coverage_amount=auto,
                    effective_date=now - timedelta(days=30), expiration_date=now + timedelta(days=300)),
        InsuranceIn(insurance_type="CARGO", coverage_amount=cargo,
                    effective_date=now - timedelta(days=30), expiration_date=now + timedelta(days=300)),
    ]


@pytest.fixture
def make_customer(ctx):
    def make(name: str = "Acme Manufacturing", **kw) -> int:
        with SessionLocal() as s:
            return create_customer(s, ctx, CustomerIn(name=name, **kw)).id
    return make


@pytest.fixture
def make_carrier(ctx):
    counter = {"n": 0}

    def make(approved: bool = True, **kw) -> int:
        counter["n"] += 1
        n = counter["n"]
        data = {"legal_name": f"Carrier {n} LLC", "mc_number": f"MC{100000 + n}",
                "dot_number": f"{2000000 + n}", "insurance": insurance()}
        data.update(kw)
        with SessionLocal() as s:
            carrier = create_carrier(s, ctx, CarrierIn(**data))
            if approved:
                approve_carrier(s, ctx, carrier.id)
            return carrier.id
    return make


@pytest.fixture
def make_order(ctx, make_customer):
    def make(customer_id: int = None, rate: float = 1500, **kw) -> int:
        customer_id = customer_id or make_customer()
        pickup = utcnow() + timedelta(days=1)
        stops = [
            StopIn(stop_type="PICKUP", city="Chicago", state="IL", appointment_date=pickup),
            StopIn(stop_type="DELIVERY", city="Dallas", state="TX", appointment_date=pickup + timedelta(days=1)),
        ]
        with SessionLocal() as s:
            return create_order(s, ctx, OrderIn(customer_id=customer_id, customer_rate=rate,
                                                equipment_type="DRY_VAN", stops=stops, **kw)).id
    return make


@pytest.fixture
def make_load(ctx, make_order, make_carrier):
    def make(order_id: int = None, carrier_id: int = None, assign: bool = False, **kw) -> int:
        order_id = order_id or make_order()
        if assign:
            carrier_id = carrier_id or make_carrier()
        with SessionLocal() as s:
            load = create_load(s, ctx, LoadIn(order_id=order_id, carrier_rate=kw.pop("carrier_rate", 1200),
                                              equipment_type="DRY_VAN", **kw))
            if assign:
                assign_carrier(s, ctx, load.id, AssignCarrierIn(carrier_id=carrier_id, driver_name="Pat Driver",
                                                                driver_phone="555-0100"))
            return load.id
    return make
