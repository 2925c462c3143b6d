"""
Carrier management: carrier records, drivers, trucks, insurance, FMCSA checks
and the performance scorecard used for tiering.
"""

import logging
import re
from datetime import timedelta
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from tms_api import events
from tms_api.crud import apply, get_owned, paginate, scoped, to_dict
from tms_api.db import SessionLocal, utcnow
from tms_api.deps import TenantContext, get_context
from tms_api.errors import BadRequest, NotFound
from tms_api.models import (
    Carrier,
    CarrierDriver,
    CarrierTruck,
    FmcsaComplianceLog,
    InsuranceCertificate,
    Load,
)
from tms_api.schemas import (
    CarrierIn,
    CarrierStatusIn,
    CarrierTierIn,
    CarrierUpdate,
    DriverIn,
    DriverUpdate,
    InsuranceIn,
    OnboardIn,
    TruckIn,
    TruckUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/carriers", tags=["carriers"])

INSURANCE_MINIMUMS = {
    "AUTO_LIABILITY": 1_000_000,
    "CARGO": 100_000,
    "GENERAL_LIABILITY": 500_000,
    "WORKERS_COMP": 0,
}

# ordered best first
TIER_CRITERIA = [
    ("PLATINUM", {"min_loads": 100, "min_on_time": 0.95, "max_claims": 0.01, "min_months": 12}),
    ("GOLD", {"min_loads": 50, "min_on_time": 0.90, "max_claims": 0.02, "min_months": 6}),
    ("SILVER", {"min_loads": 25, "min_on_time": 0.85, "max_claims": 0.03, "min_months": 3}),
    ("BRONZE", {"min_loads": 10, "min_on_time": 0.0, "max_claims": 1.0, "min_months": 0}),
]

CLOSED_LOAD_STATUSES = ("COMPLETED", "CANCELLED")


def recommend_tier(total_loads: int, on_time_rate: float, claims_ratio: float, months_active: int) -> str:
    for tier, c in TIER_CRITERIA:
        if (total_loads >= c["min_loads"] and on_time_rate >= c["min_on_time"]
                and claims_ratio <= c["max_claims"] and months_active >= c["min_months"]):
            return tier
    return "UNQUALIFIED"


def fmcsa_lookup(dot_number: Optional[str] = None, mc_number: Optional[str] = None) -> dict:
    """Deterministic stand-in for the FMCSA SAFER lookup."""
    dot = dot_number or (re.sub(r"[^0-9]", "", mc_number or "") or "0000000")
    return {
        "dotNumber": dot,
        "mcNumber": mc_number or f"MC{dot}",
        "legalName": f"Carrier {dot}",
        "dbaName": f"DBA {dot}",
        "address": {"street": "123 FMCSA Ave", "city": "Arlington", "state": "VA",
                    "zip": "22202", "country": "USA"},
        "phone": "555-555-5555",
        "operatingStatus": "AUTHORIZED",
        "entityType": "Carrier",
        "carrierOperation": ["Interstate"],
        "safetyRating": "SATISFACTORY",
        "safetyRatingDate": utcnow().isoformat() + "Z",
        "insurance": {"bipdRequired": 1_000_000, "bipdOnFile": 1_000_000,
                      "cargoRequired": 100_000, "cargoOnFile": 100_000,
                      "bondRequired": 0, "bondOnFile": 0},
        "isAuthorized": True,
        "complianceIssues": [],
    }


def carrier_dict(c: Carrier, with_insurance: bool = False) -> dict:
    out = to_dict(c)
    if with_insurance:
        out["insurance"] = [to_dict(i) for i in c.insurance_certificates]
    return out


def _ensure_unique(s: Session, ctx: TenantContext, dot: Optional[str], mc: Optional[str],
                   ignore_id: Optional[int] = None) -> None:
    ors = []
    if dot:
        ors.append(Carrier.dot_number == dot)
    if mc:
        ors.append(Carrier.mc_number == mc)
    if not ors:
        return
    stmt = scoped(Carrier, ctx).where(or_(*ors))
    if ignore_id is not None:
        stmt = stmt.where(Carrier.id != ignore_id)
    if s.scalars(stmt).first() is not None:
        raise BadRequest("Carrier with this MC/DOT already exists")


def _covered(certs: List[InsuranceCertificate], insurance_type: str, now) -> bool:
    """Any one live certificate of ``insurance_type`` meeting the minimum is enough."""
    return any(
        c.status == "ACTIVE"
        and c.insurance_type == insurance_type
        and c.expiration_date >= now
        and (c.coverage_amount or 0) >= INSURANCE_MINIMUMS[insurance_type]
        for c in certs
    )


def _ensure_insurance(certs: List[InsuranceCertificate]) -> None:
    now = utcnow()
    if not _covered(certs, "AUTO_LIABILITY", now):
        raise BadRequest("Active auto liability insurance of at least $1,000,000 is required")
    if not _covered(certs, "CARGO", now):
        raise BadRequest("Active cargo insurance of at least $100,000 is required")


# ---------- Carriers ----------

def create_carrier(s: Session, ctx: TenantContext, payload: CarrierIn) -> Carrier:
    _ensure_unique(s, ctx, payload.dot_number, payload.mc_number)
    data = payload.model_dump(exclude={"insurance"})
    data["status"] = data["status"] or "PENDING"
    data["country"] = data["country"] or "USA"
    row = Carrier(tenant_id=ctx.tenant_id, created_by_id=ctx.user_id, updated_by_id=ctx.user_id, **data)
    s.add(row)
    s.flush()
    for ins in payload.insurance:
        s.add(InsuranceCertificate(tenant_id=ctx.tenant_id, carrier_id=row.id, status="ACTIVE", **ins.model_dump()))
    s.commit()
    s.refresh(row)
    events.emit("carrier.created", {"carrierId": row.id, "dotNumber": row.dot_number,
                                    "name": row.legal_name, "tenantId": ctx.tenant_id})
    return row


def list_carriers(s: Session, ctx: TenantContext, search: Optional[str] = None, status: Optional[str] = None,
                  tier: Optional[str] = None, state: Optional[str] = None,
                  equipment_type: Optional[str] = None, page: int = 1, limit: int = 20) -> dict:
    stmt = scoped(Carrier, ctx)
    if status:
        stmt = stmt.where(Carrier.status == status)
    if tier:
        stmt = stmt.where(Carrier.qualification_tier == tier)
    if state:
        stmt = stmt.where(Carrier.state == state)
    if search:
        like = f"%{search}%"
        stmt = stmt.where(or_(
            Carrier.legal_name.ilike(like),
            Carrier.dba_name.ilike(like),
            Carrier.mc_number.ilike(like),
            Carrier.dot_number.ilike(like),
            Carrier.primary_contact_email.ilike(like),
        ))
    stmt = stmt.order_by(Carrier.created_at.desc(), Carrier.id.desc())
    if equipment_type:
        # JSON array membership is not portable across backends
        rows = [c for c in s.scalars(stmt).all() if equipment_type in (c.equipment_types or [])]
        total = len(rows)
        start = (page - 1) * limit
        rows = rows[start:start + limit]
        pages = -(-total // limit) if total else 0
    else:
        rows, total, pages = paginate(s, stmt, page, limit)
    return {"data": [carrier_dict(c) for c in rows], "total": total, "page": page,
            "limit": limit, "totalPages": pages}


def get_carrier(s: Session, ctx: TenantContext, carrier_id: int) -> dict:
    c = get_owned(s, Carrier, ctx, carrier_id, "Carrier")
    out = carrier_dict(c, with_insurance=True)
    out["drivers"] = [to_dict(d) for d in _drivers(s, ctx, carrier_id)]
    recent = s.scalars(scoped(Load, ctx).where(Load.carrier_id == carrier_id)
                       .order_by(Load.created_at.desc()).limit(10)).all()
    out["loads"] = [{"id": l.id, "load_number": l.load_number, "status": l.status,
                     "carrier_rate": l.carrier_rate, "created_at": to_dict(l)["created_at"]} for l in recent]
    return out


def update_carrier(s: Session, ctx: TenantContext, carrier_id: int, payload: CarrierUpdate) -> Carrier:
    c = get_owned(s, Carrier, ctx, carrier_id, "Carrier")
    if c.status == "BLACKLISTED":
        raise BadRequest("Blacklisted carriers cannot be updated")
    data = payload.model_dump(exclude_unset=True)
    dot = data.get("dot_number")
    mc = data.get("mc_number")
    if (dot and dot != c.dot_number) or (mc and mc != c.mc_number):
        _ensure_unique(s, ctx, dot if dot != c.dot_number else None, mc if mc != c.mc_number else None, ignore_id=c.id)
    changes = apply(c, data)
    c.updated_by_id = ctx.user_id
    s.commit()
    events.emit("carrier.updated", {"carrierId": c.id, "changes": sorted(changes), "tenantId": ctx.tenant_id})
    return c


def update_status(s: Session, ctx: TenantContext, carrier_id: int, status: str, reason: Optional[str] = None) -> Carrier:
    c = get_owned(s, Carrier, ctx, carrier_id, "Carrier")
    if status in ("SUSPENDED", "BLACKLISTED") and not reason:
        raise BadRequest("Reason is required for suspension/blacklist")
    c.status = status
    if reason:
        c.status_reason = reason
    s.commit()
    if status == "SUSPENDED":
        events.emit("carrier.suspended", {"carrierId": c.id, "reason": reason, "tenantId": ctx.tenant_id})
    elif status == "BLACKLISTED":
        events.emit("carrier.blacklisted", {"carrierId": c.id, "reason": reason, "tenantId": ctx.tenant_id})
    return c


def update_tier(s: Session, ctx: TenantContext, carrier_id: int, tier: str) -> Carrier:
    c = get_owned(s, Carrier, ctx, carrier_id, "Carrier")
    old = c.qualification_tier
    c.qualification_tier = tier
    s.commit()
    events.emit("carrier.tier.changed", {"carrierId": c.id, "oldTier": old, "newTier": tier, "tenantId": ctx.tenant_id})
    return c


def approve_carrier(s: Session, ctx: TenantContext, carrier_id: int) -> Carrier:
    c = get_owned(s, Carrier, ctx, carrier_id, "Carrier")
    if c.status != "PENDING":
        raise BadRequest("Only pending carriers can be approved")
    _ensure_insurance(c.insurance_certificates)
    c.status = "ACTIVE"
    c.approved_at = utcnow()
    c.approved_by_id = ctx.user_id
    c.updated_by_id = ctx.user_id
    s.commit()
    events.emit("carrier.approved", {"carrierId": c.id, "approvedBy": ctx.user_id, "tenantId": ctx.tenant_id})
    return c


def _open_load_count(s: Session, ctx: TenantContext, carrier_id: int) -> int:
    return s.scalar(select(func.count(Load.id)).where(
        Load.tenant_id == ctx.tenant_id,
        Load.carrier_id == carrier_id,
        Load.deleted_at.is_(None),
        Load.status.not_in(CLOSED_LOAD_STATUSES),
    )) or 0


def deactivate_carrier(s: Session, ctx: TenantContext, carrier_id: int, reason: Optional[str] = None) -> Carrier:
    c = get_owned(s, Carrier, ctx, carrier_id, "Carrier")
    active = _open_load_count(s, ctx, carrier_id)
    if active:
        raise BadRequest(f"Cannot deactivate carrier with {active} active loads")
    c.status = "INACTIVE"
    if reason:
        c.status_reason = reason
    s.commit()
    return c


def delete_carrier(s: Session, ctx: TenantContext, carrier_id: int) -> dict:
    c = get_owned(s, Carrier, ctx, carrier_id, "Carrier")
    history = s.scalar(select(func.count(Load.id)).where(Load.tenant_id == ctx.tenant_id,
                                                         Load.carrier_id == carrier_id))
    if history:
        raise BadRequest("Cannot delete carrier with load history")
    c.deleted_at = utcnow()
    s.commit()
    return {"success": True, "message": "Carrier deleted successfully"}


def carrier_stats(s: Session, ctx: TenantContext) -> dict:
    base = [Carrier.tenant_id == ctx.tenant_id, Carrier.deleted_at.is_(None)]
    total = s.scalar(select(func.count(Carrier.id)).where(*base)) or 0
    by_status = dict(s.execute(select(Carrier.status, func.count(Carrier.id)).where(*base)
                               .group_by(Carrier.status)).all())
    by_tier = dict(s.execute(select(func.coalesce(Carrier.qualification_tier, "UNQUALIFIED"), func.count(Carrier.id))
                             .where(*base).group_by(Carrier.qualification_tier)).all())
    return {"total": total, "byStatus": by_status, "byTier": by_tier}


# ---------- Drivers ----------

def _drivers(s: Session, ctx: TenantContext, carrier_id: int) -> List[CarrierDriver]:
    return s.scalars(select(CarrierDriver).where(
        CarrierDriver.tenant_id == ctx.tenant_id,
        CarrierDriver.carrier_id == carrier_id,
        CarrierDriver.is_active.is_(True),
    ).order_by(CarrierDriver.last_name, CarrierDriver.first_name)).all()


def _driver(s: Session, ctx: TenantContext, carrier_id: int, driver_id: int) -> CarrierDriver:
    get_owned(s, Carrier, ctx, carrier_id, "Carrier")
    d = s.scalars(select(CarrierDriver).where(
        CarrierDriver.id == driver_id,
        CarrierDriver.tenant_id == ctx.tenant_id,
        CarrierDriver.carrier_id == carrier_id,
        CarrierDriver.is_active.is_(True),
    )).first()
    if d is None:
        raise NotFound("Driver not found")
    return d


def create_driver(s: Session, ctx: TenantContext, carrier_id: int, payload: DriverIn) -> CarrierDriver:
    get_owned(s, Carrier, ctx, carrier_id, "Carrier")
    d = CarrierDriver(tenant_id=ctx.tenant_id, carrier_id=carrier_id, is_active=True, **payload.model_dump())
    s.add(d)
    s.commit()
    return d


def update_driver(s: Session, ctx: TenantContext, carrier_id: int, driver_id: int, payload: DriverUpdate) -> CarrierDriver:
    d = _driver(s, ctx, carrier_id, driver_id)
    apply(d, payload.model_dump(exclude_unset=True))
    s.commit()
    return d


def delete_driver(s: Session, ctx: TenantContext, carrier_id: int, driver_id: int) -> dict:
    d = _driver(s, ctx, carrier_id, driver_id)
    d.is_active = False
    d.status = "INACTIVE"
    s.commit()
    return {"success": True, "message": "Driver deleted successfully"}


# ---------- Trucks ----------

def _truck(s: Session, ctx: TenantContext, carrier_id: int, truck_id: int) -> CarrierTruck:
    get_owned(s, Carrier, ctx, carrier_id, "Carrier")
    t = s.scalars(select(CarrierTruck).where(
        CarrierTruck.id == truck_id,
        CarrierTruck.tenant_id == ctx.tenant_id,
        CarrierTruck.carrier_id == carrier_id,
        CarrierTruck.is_active.is_(True),
    )).first()
    if t is None:
        raise NotFound("Truck not found")
    return t


def create_truck(s: Session, ctx: TenantContext, carrier_id: int, payload: TruckIn) -> CarrierTruck:
    get_owned(s, Carrier, ctx, carrier_id, "Carrier")
    if payload.assigned_driver_id is not None:
        _driver(s, ctx, carrier_id, payload.assigned_driver_id)
    t = CarrierTruck(tenant_id=ctx.tenant_id, carrier_id=carrier_id, is_active=True, **payload.model_dump())
    s.add(t)
    s.commit()
    return t


def list_trucks(s: Session, ctx: TenantContext, carrier_id: int) -> List[CarrierTruck]:
    get_owned(s, Carrier, ctx, carrier_id, "Carrier")
    return s.scalars(select(CarrierTruck).where(
        CarrierTruck.tenant_id == ctx.tenant_id,
        CarrierTruck.carrier_id == carrier_id,
        CarrierTruck.is_active.is_(True),
    ).order_by(CarrierTruck.unit_number)).all()


def update_truck(s: Session, ctx: TenantContext, carrier_id: int, truck_id: int, payload: TruckUpdate) -> CarrierTruck:
    t = _truck(s, ctx, carrier_id, truck_id)
    data = payload.model_dump(exclude_unset=True)
    if data.get("assigned_driver_id") is not None:
        _driver(s, ctx, carrier_id, data["assigned_driver_id"])
    apply(t, data)
    s.commit()
    return t


def assign_driver(s: Session, ctx: TenantContext, carrier_id: int, truck_id: int, driver_id: int) -> CarrierTruck:
    t = _truck(s, ctx, carrier_id, truck_id)
    _driver(s, ctx, carrier_id, driver_id)
    t.assigned_driver_id = driver_id
    s.commit()
    return t


def delete_truck(s: Session, ctx: TenantContext, carrier_id: int, truck_id: int) -> dict:
    t = _truck(s, ctx, carrier_id, truck_id)
    t.is_active = False
    t.status = "INACTIVE"
    s.commit()
    return {"success": True, "message": "Truck deleted successfully"}


# ---------- Insurance ----------

def add_insurance(s: Session, ctx: TenantContext, carrier_id: int, payload: InsuranceIn) -> InsuranceCertificate:
    get_owned(s, Carrier, ctx, carrier_id, "Carrier")
    cert = InsuranceCertificate(tenant_id=ctx.tenant_id, carrier_id=carrier_id, status="ACTIVE", **payload.model_dump())
    s.add(cert)
    s.commit()
    return cert


def expiring_insurance(s: Session, ctx: TenantContext, days: int = 30) -> List[dict]:
    cutoff = utcnow() + timedelta(days=days)
    certs = s.scalars(select(InsuranceCertificate).where(
        InsuranceCertificate.tenant_id == ctx.tenant_id,
        InsuranceCertificate.status == "ACTIVE",
        InsuranceCertificate.expiration_date <= cutoff,
    ).order_by(InsuranceCertificate.expiration_date)).all()
    out = []
    for cert in certs:
        item = to_dict(cert)
        item["carrier"] = {"id": cert.carrier.id, "legal_name": cert.carrier.legal_name,
                           "mc_number": cert.carrier.mc_number,
                           "primary_contact_email": cert.carrier.primary_contact_email}
        out.append(item)
    return out


# ---------- FMCSA & compliance ----------

def run_fmcsa_check(s: Session, ctx: TenantContext, carrier_id: int) -> dict:
    c = get_owned(s, Carrier, ctx, carrier_id, "Carrier")
    response = {
        "dotNumber": c.dot_number or "UNKNOWN",
        "mcNumber": c.mc_number or "UNKNOWN",
        "legalName": c.legal_name,
        "operatingStatus": "AUTHORIZED",
        "safetyRating": "SATISFACTORY",
        "outOfService": False,
        "insuranceOnFile": 1_000_000,
    }
    log = FmcsaComplianceLog(
        tenant_id=ctx.tenant_id,
        carrier_id=c.id,
        dot_number=response["dotNumber"],
        mc_number=response["mcNumber"],
        authority_status=response["operatingStatus"],
        safety_rating=response["safetyRating"],
        out_of_service=response["outOfService"],
        insurance_on_file=True,
        insurance_amount=response["insuranceOnFile"],
        raw_response=response,
        created_by_id=ctx.user_id,
    )
    s.add(log)
    c.fmcsa_authority_status = response["operatingStatus"]
    c.fmcsa_safety_rating = response["safetyRating"]
    c.fmcsa_out_of_service = response["outOfService"]
    c.fmcsa_insurance_on_file = True
    c.fmcsa_last_checked = utcnow()
    c.updated_by_id = ctx.user_id
    s.commit()
    issues = ["OUT_OF_SERVICE"] if response["outOfService"] else []
    events.emit("carrier.fmcsa.checked", {"carrierId": c.id, "isCompliant": not issues,
                                          "issues": issues, "tenantId": ctx.tenant_id})
    return {"carrierId": c.id, "log": to_dict(log)}


def onboard_from_fmcsa(s: Session, ctx: TenantContext, payload: OnboardIn) -> dict:
    if not payload.dot_number and not payload.mc_number:
        raise BadRequest("DOT or MC number is required")
    if payload.dot_number:
        fmcsa = fmcsa_lookup(dot_number=payload.dot_number)
    else:
        fmcsa = fmcsa_lookup(mc_number=payload.mc_number)

    existing = s.scalars(scoped(Carrier, ctx).where(or_(
        Carrier.dot_number == fmcsa["dotNumber"],
        Carrier.mc_number == fmcsa["mcNumber"],
    ))).first()
    if existing is not None:
        return {"carrier": carrier_dict(existing), "fmcsa": fmcsa, "existing": True}

    addr = fmcsa["address"]
    key = (fmcsa["dotNumber"] or fmcsa["mcNumber"] or "carrier").lower()
    carrier = create_carrier(s, ctx, CarrierIn(
        dot_number=fmcsa["dotNumber"],
        mc_number=fmcsa["mcNumber"],
        legal_name=fmcsa["legalName"],
        dba_name=fmcsa["dbaName"],
        address_line1=addr["street"],
        city=addr["city"],
        state=payload.state or addr["state"],
        postal_code=addr["zip"],
        country=addr["country"],
        primary_contact_phone=payload.phone or fmcsa["phone"],
        primary_contact_email=payload.email or f"onboard+{key}@example.com",
        status="PENDING",
        qualification_tier="UNQUALIFIED",
    ))
    s.add(FmcsaComplianceLog(
        tenant_id=ctx.tenant_id,
        carrier_id=carrier.id,
        dot_number=fmcsa["dotNumber"],
        mc_number=fmcsa["mcNumber"],
        authority_status=fmcsa["operatingStatus"],
        safety_rating=fmcsa["safetyRating"],
        out_of_service=False,
        insurance_on_file=True,
        insurance_amount=fmcsa["insurance"]["bipdOnFile"],
        raw_response=fmcsa,
        created_by_id=ctx.user_id,
    ))
    s.commit()
    return {"carrier": carrier_dict(carrier), "fmcsa": fmcsa, "existing": False}


def compliance_summary(s: Session, ctx: TenantContext, carrier_id: int) -> dict:
    c = get_owned(s, Carrier, ctx, carrier_id, "Carrier")
    insurance = [i for i in c.insurance_certificates if i.status != "CANCELLED"]
    history = s.scalars(select(FmcsaComplianceLog).where(
        FmcsaComplianceLog.tenant_id == ctx.tenant_id,
        FmcsaComplianceLog.carrier_id == carrier_id,
    ).order_by(FmcsaComplianceLog.checked_at.desc(), FmcsaComplianceLog.id.desc()).limit(5)).all()
    now = utcnow()
    return {
        "carrier": {"id": c.id, "legal_name": c.legal_name, "status": c.status,
                    "qualification_tier": c.qualification_tier},
        "insurance": [to_dict(i) for i in insurance],
        "fmcsaHistory": [to_dict(h) for h in history],
        "issues": {
            "hasExpiredInsurance": any(i.expiration_date < now for i in insurance),
            "missingW9": not c.w9_on_file,
            "isOutOfService": bool(c.fmcsa_out_of_service),
        },
    }


def scorecard(s: Session, ctx: TenantContext, carrier_id: int) -> dict:
    c = get_owned(s, Carrier, ctx, carrier_id, "Carrier")
    loads = s.scalars(select(Load).where(Load.tenant_id == ctx.tenant_id, Load.carrier_id == carrier_id)).all()

    total = len(loads)
    completed = sum(1 for l in loads if l.status == "COMPLETED")
    cancelled = sum(1 for l in loads if l.status == "CANCELLED")
    revenue = sum(l.carrier_rate or 0 for l in loads)

    with_data = on_time = 0
    for l in loads:
        if l.status != "COMPLETED" or l.order is None:
            continue
        delivery = next((st for st in l.order.stops if st.stop_type == "DELIVERY"), None)
        deadline = delivery.appointment_deadline if delivery else None
        if deadline and delivery.arrived_at:
            with_data += 1
            if delivery.arrived_at <= deadline:
                on_time += 1

    on_time_rate = on_time / with_data if with_data else 0
    claims_ratio = 0.0  # claims are not tracked yet
    months_active = max(0, (utcnow() - c.created_at).days // 30)
    now = utcnow()

    return {
        "carrier": {
            "id": c.id,
            "legal_name": c.legal_name,
            "status": c.status,
            "currentTier": c.qualification_tier,
            "recommendedTier": recommend_tier(total, on_time_rate, claims_ratio, months_active),
            "created_at": to_dict(c)["created_at"],
        },
        "metrics": {
            "totalLoads": total,
            "completedLoads": completed,
            "cancelledLoads": cancelled,
            "completionRate": round(completed / total * 100, 1) if total else 0,
            "cancellationRate": round(cancelled / total * 100, 1) if total else 0,
            "onTimeRate": round(on_time_rate * 100, 1),
            "totalRevenue": revenue,
            "averageLoadValue": round(revenue / total, 2) if total else 0,
            "monthsActive": months_active,
        },
        "compliance": {
            "hasExpiredInsurance": any(i.expiration_date < now and i.status != "CANCELLED"
                                       for i in c.insurance_certificates),
            "outOfService": bool(c.fmcsa_out_of_service),
            "lastFmcsaCheck": to_dict(c)["fmcsa_last_checked"],
        },
    }


# ---------- Routes ----------

@router.post("", status_code=201)
def create(payload: CarrierIn, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return carrier_dict(create_carrier(s, ctx, payload), with_insurance=True)


@router.get("")
def index(
    search: Optional[str] = None,
    status: Optional[str] = None,
    tier: Optional[str] = None,
    state: Optional[str] = None,
    equipment_type: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    ctx: TenantContext = Depends(get_context),
):
    with SessionLocal() as s:
        return list_carriers(s, ctx, search, status, tier, state, equipment_type, page, limit)


@router.get("/stats")
def stats(ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return carrier_stats(s, ctx)


@router.get("/insurance/expiring")
def insurance_expiring(days: int = Query(30, ge=0), ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return expiring_insurance(s, ctx, days)


@router.get("/fmcsa/mc/{mc_number}")
def lookup_mc(mc_number: str, ctx: TenantContext = Depends(get_context)):
    return fmcsa_lookup(mc_number=mc_number)


@router.get("/fmcsa/dot/{dot_number}")
def lookup_dot(dot_number: str, ctx: TenantContext = Depends(get_context)):
    return fmcsa_lookup(dot_number=dot_number)


@router.post("/onboard", status_code=201)
def onboard(payload: OnboardIn, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return onboard_from_fmcsa(s, ctx, payload)


@router.get("/{carrier_id}")
def show(carrier_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return get_carrier(s, ctx, carrier_id)


@router.patch("/{carrier_id}")
def update(carrier_id: int, payload: CarrierUpdate, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return carrier_dict(update_carrier(s, ctx, carrier_id, payload))


@router.delete("/{carrier_id}")
def remove(carrier_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return delete_carrier(s, ctx, carrier_id)


@router.patch("/{carrier_id}/status")
def set_status(carrier_id: int, payload: CarrierStatusIn, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return carrier_dict(update_status(s, ctx, carrier_id, payload.status, payload.reason))


@router.patch("/{carrier_id}/tier")
def set_tier(carrier_id: int, payload: CarrierTierIn, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return carrier_dict(update_tier(s, ctx, carrier_id, payload.tier))


@router.post("/{carrier_id}/approve")
def approve(carrier_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return carrier_dict(approve_carrier(s, ctx, carrier_id))


@router.post("/{carrier_id}/deactivate")
def deactivate(carrier_id: int, reason: Optional[str] = None, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return carrier_dict(deactivate_carrier(s, ctx, carrier_id, reason))


@router.get("/{carrier_id}/compliance")
def compliance(carrier_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return compliance_summary(s, ctx, carrier_id)


@router.post("/{carrier_id}/fmcsa-check")
def fmcsa_check(carrier_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return run_fmcsa_check(s, ctx, carrier_id)


@router.get("/{carrier_id}/scorecard")
def show_scorecard(carrier_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return scorecard(s, ctx, carrier_id)


@router.get("/{carrier_id}/insurance")
def insurance_index(carrier_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        c = get_owned(s, Carrier, ctx, carrier_id, "Carrier")
        return [to_dict(i) for i in c.insurance_certificates]


@router.post("/{carrier_id}/insurance", status_code=201)
def insurance_create(carrier_id: int, payload: InsuranceIn, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return to_dict(add_insurance(s, ctx, carrier_id, payload))


@router.get("/{carrier_id}/drivers")
def drivers_index(carrier_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        get_owned(s, Carrier, ctx, carrier_id, "Carrier")
        return [to_dict(d) for d in _drivers(s, ctx, carrier_id)]


@router.post("/{carrier_id}/drivers", status_code=201)
def drivers_create(carrier_id: int, payload: DriverIn, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return to_dict(create_driver(s, ctx, carrier_id, payload))


@router.get("/{carrier_id}/drivers/{driver_id}")
def drivers_show(carrier_id: int, driver_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return to_dict(_driver(s, ctx, carrier_id, driver_id))


@router.patch("/{carrier_id}/drivers/{driver_id}")
def drivers_update(carrier_id: int, driver_id: int, payload: DriverUpdate, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return to_dict(update_driver(s, ctx, carrier_id, driver_id, payload))


@router.delete("/{carrier_id}/drivers/{driver_id}")
def drivers_remove(carrier_id: int, driver_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return delete_driver(s, ctx, carrier_id, driver_id)


@router.get("/{carrier_id}/trucks")
def trucks_index(carrier_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return [to_dict(t) for t in list_trucks(s, ctx, carrier_id)]


@router.post("/{carrier_id}/trucks", status_code=201)
def trucks_create(carrier_id: int, payload: TruckIn, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return to_dict(create_truck(s, ctx, carrier_id, payload))


@router.patch("/{carrier_id}/trucks/{truck_id}")
def trucks_update(carrier_id: int, truck_id: int, payload: TruckUpdate, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return to_dict(update_truck(s, ctx, carrier_id, truck_id, payload))


@router.patch("/{carrier_id}/trucks/{truck_id}/assign-driver/{driver_id}")
def trucks_assign(carrier_id: int, truck_id: int, driver_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return to_dict(assign_driver(s, ctx, carrier_id, truck_id, driver_id))


@router.delete("/{carrier_id}/trucks/{truck_id}")
def trucks_remove(carrier_id: int, truck_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return delete_truck(s, ctx, carrier_id, truck_id)
