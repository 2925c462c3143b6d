"""
Seed a demo tenant.

    python -m tms_api.seed [tenant_id]
"""

import logging
import sys
from datetime import timedelta

from sqlalchemy import select

from tms_api import config
from tms_api.carriers import approve_carrier, create_carrier
from tms_api.customers import create_customer
from tms_api.db import SessionLocal, init_db, utcnow
from tms_api.deps import TenantContext
from tms_api.loads import assign_carrier, create_load, dispatch_load
from tms_api.logging_setup import setup_logging
from tms_api.models import Customer, EquipmentDimension, EquipmentMake, EquipmentModel, EquipmentRate
from tms_api.orders import create_order
from tms_api.roles import sync_catalog
from tms_api.schemas import (
    AssignCarrierIn,
    CarrierIn,
    CustomerIn,
    InsuranceIn,
    LoadIn,
    OrderIn,
    StopIn,
    WorkflowIn,
    WorkflowStepIn,
)
from tms_api.workflows import create_workflow

logger = logging.getLogger(__name__)

LANES = [
    {"origin": "Chicago, IL", "destination": "Dallas, TX", "equipment_type": "DRY_VAN", "rate": 1800,
     "notes": "No pallet exchange", "weight": 42000, "commodity": "Consumer electronics", "pieces": 22},
    {"origin": "Reno, NV", "destination": "Los Angeles, CA", "equipment_type": "REEFER", "rate": 1400,
     "notes": "Temp at 36F", "weight": 38000, "commodity": "Fresh produce", "pieces": 18},
    {"origin": "Atlanta, GA", "destination": "Miami, FL", "equipment_type": "FLATBED", "rate": 2000,
     "notes": "Tarp required", "weight": 46000, "commodity": "Steel coils", "pieces": 10},
    {"origin": "Denver, CO", "destination": "Kansas City, MO", "equipment_type": "DRY_VAN", "rate": 1300,
     "notes": "Drop & hook", "weight": 35000, "commodity": "Packaged food", "pieces": 25},
    {"origin": "Seattle, WA", "destination": "Portland, OR", "equipment_type": "REEFER", "rate": 900,
     "notes": "Expedited delivery", "weight": 20000, "commodity": "Frozen seafood", "pieces": 12},
]

CUSTOMERS = [
    {"name": "Acme Manufacturing", "code": "ACME", "city": "Chicago", "state": "IL"},
    {"name": "Fresh Fields Produce", "code": "FFP", "city": "Salinas", "state": "CA"},
]

CARRIERS = [
    {"legal_name": "Blue Line Transport LLC", "mc_number": "MC123456", "dot_number": "1234567",
     "equipment_types": ["DRY_VAN", "REEFER"], "w9_on_file": True},
    {"legal_name": "Ridge Flatbed Inc", "mc_number": "MC654321", "dot_number": "7654321",
     "equipment_types": ["FLATBED"], "w9_on_file": False},
]

# make -> [(model, length, width, height, weight)]
EQUIPMENT = {
    "Caterpillar": [("320 Excavator", 384, 125, 122, 50700), ("D6 Dozer", 208, 126, 122, 46600)],
    "John Deere": [("310SL Backhoe", 281, 93, 144, 17600)],
    "Komatsu": [("PC210 Excavator", 375, 110, 120, 48300)],
}


def _split(place: str):
    city, state = [p.strip() for p in place.split(",")]
    return city, state


def seed_equipment(s) -> None:
    if s.scalar(select(EquipmentMake.id).limit(1)) is not None:
        return
    for rank, (make, models) in enumerate(EQUIPMENT.items(), start=1):
        m = EquipmentMake(name=make, popularity_rank=rank)
        s.add(m)
        s.flush()
        for name, length, width, height, weight in models:
            model = EquipmentModel(make_id=m.id, name=name)
            s.add(model)
            s.flush()
            s.add(EquipmentDimension(model_id=model.id, length_inches=length, width_inches=width,
                                     height_inches=height, weight_lbs=weight))
            s.add(EquipmentRate(model_id=model.id, location="New Jersey", loading_cost=450,
                                dismantling_loading_cost=900, blocking_bracing_cost=150))
    s.commit()


def seed(tenant_id: str = "demo") -> None:
    ctx = TenantContext(tenant_id=tenant_id, user_id="seed")
    now = utcnow()
    with SessionLocal() as s:
        if s.scalars(select(Customer).where(Customer.tenant_id == tenant_id)).first() is not None:
            logger.info("tenant %s already seeded", tenant_id)
            return

        sync_catalog(s)
        seed_equipment(s)

        customers = [create_customer(s, ctx, CustomerIn(**c)) for c in CUSTOMERS]
        carriers = []
        for c in CARRIERS:
            insurance = [InsuranceIn(insurance_type=kind, insurance_company="Progressive", coverage_amount=amount,
                                     effective_date=now - timedelta(days=30),
                                     expiration_date=now + timedelta(days=335))
                         for kind, amount in (("AUTO_LIABILITY", 1000000), ("CARGO", 100000))]
            carrier = create_carrier(s, ctx, CarrierIn(insurance=insurance, **c))
            carriers.append(approve_carrier(s, ctx, carrier.id))

        for i, lane in enumerate(LANES):
            o_city, o_state = _split(lane["origin"])
            d_city, d_state = _split(lane["destination"])
            pickup = now + timedelta(days=i)
            order = create_order(s, ctx, OrderIn(
                customer_id=customers[i % len(customers)].id,
                commodity=lane["commodity"],
                weight_lbs=lane["weight"],
                piece_count=lane["pieces"],
                equipment_type=lane["equipment_type"],
                customer_rate=lane["rate"],
                special_instructions=lane["notes"],
                required_delivery_date=pickup + timedelta(days=1, hours=12),
                stops=[
                    StopIn(stop_type="PICKUP", city=o_city, state=o_state, appointment_date=pickup),
                    StopIn(stop_type="DELIVERY", city=d_city, state=d_state,
                           appointment_date=pickup + timedelta(days=1)),
                ],
            ))
            carrier = next((c for c in carriers if lane["equipment_type"] in c.equipment_types), None)
            load = create_load(s, ctx, LoadIn(
                order_id=order.id,
                carrier_rate=round(lane["rate"] * 0.85),
                equipment_type=lane["equipment_type"],
            ))
            if carrier and i % 2 == 0:
                assign_carrier(s, ctx, load.id, AssignCarrierIn(carrier_id=carrier.id, driver_name="Pat Driver"))
                dispatch_load(s, ctx, load.id)

        create_workflow(s, ctx, WorkflowIn(
            name="High value load review",
            description="Manager sign-off for loads above the rate threshold",
            trigger_type="EVENT",
            trigger_event="load.created",
            steps=[
                WorkflowStepIn(step_number=1, step_name="Check rate", step_type="CONDITION",
                               condition_logic="carrierRate > 5000"),
                WorkflowStepIn(step_number=2, step_name="Manager approval", step_type="APPROVAL"),
                WorkflowStepIn(step_number=3, step_name="Notify dispatch", step_type="NOTIFICATION"),
            ],
        ))
    logger.info("seeded tenant %s", tenant_id)


if __name__ == "__main__":
    setup_logging(config.LOG_LEVEL, config.LOG_FILE)
    init_db()
    seed(sys.argv[1] if len(sys.argv) > 1 else "demo")
