"""
Live tracking map data: positions of moving loads and a per-load side panel.
"""

from datetime import datetime, timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from tms_api import config
from tms_api.crud import get_owned, iso, scoped, to_dict
from tms_api.db import SessionLocal, utcnow
from tms_api.deps import TenantContext, get_context
from tms_api.loads import endpoints
from tms_api.models import CheckCall, Load, Order

router = APIRouter(prefix="/tracking", tags=["tracking"])

ACTIVE_STATUSES = ["DISPATCHED", "AT_PICKUP", "IN_TRANSIT", "AT_DELIVERY"]

# most urgent first
ETA_ORDER = ["at-risk", "tight", "on-time", "stale"]


def eta_status(eta: Optional[datetime], now: datetime) -> str:
    if eta is None:
        return "on-time"
    hours = (eta - now).total_seconds() / 3600
    if hours < 0:
        return "at-risk"
    if hours < 1:
        return "tight"
    return "on-time"


def is_stale(fix: Optional[datetime], now: datetime) -> bool:
    return fix is None or now - fix > timedelta(minutes=config.GPS_STALE_MINUTES)


def _place(stop) -> str:
    if stop is None:
        return ""
    return ", ".join(x for x in (stop.city, stop.state) if x)


def position(l: Load, now: datetime) -> dict:
    stops = l.order.stops if l.order is not None else []
    pickup, delivery = endpoints(stops)
    status = eta_status(l.eta, now)
    return {
        "loadId": l.id,
        "loadNumber": l.load_number,
        "lat": l.current_lat,
        "lng": l.current_lng,
        "timestamp": iso(l.last_tracking_update),
        "status": l.status,
        "eta": iso(l.eta),
        "etaStatus": "stale" if is_stale(l.last_tracking_update, now) else status,
        "carrier": ({"id": l.carrier.id, "name": l.carrier.legal_name, "mcNumber": l.carrier.mc_number}
                    if l.carrier else None),
        "driver": {"name": l.driver_name, "phone": l.driver_phone or ""} if l.driver_name else None,
        "origin": _place(pickup),
        "destination": _place(delivery),
        "equipmentType": l.equipment_type,
        "customerId": l.order.customer_id if l.order is not None else None,
    }


def _matches(p: dict, q: str) -> bool:
    haystack = [p["loadNumber"], p["origin"], p["destination"]]
    if p["carrier"]:
        haystack.append(p["carrier"]["name"] or "")
    if p["driver"]:
        haystack.append(p["driver"]["name"] or "")
    return any(q in (h or "").lower() for h in haystack)


def tracking_positions(
    s: Session,
    ctx: TenantContext,
    eta_statuses: Optional[List[str]] = None,
    equipment_types: Optional[List[str]] = None,
    carrier_id: Optional[int] = None,
    customer_id: Optional[int] = None,
    search: Optional[str] = None,
) -> dict:
    """Active loads that have a GPS fix, most urgent first, plus counts per ETA status and of stale fixes."""
    stmt = scoped(Load, ctx).where(
        Load.status.in_(ACTIVE_STATUSES),
        Load.current_lat.is_not(None),
        Load.current_lng.is_not(None),
    )
    if equipment_types:
        stmt = stmt.where(Load.equipment_type.in_(equipment_types))
    if carrier_id:
        stmt = stmt.where(Load.carrier_id == carrier_id)
    if customer_id:
        stmt = stmt.join(Order, Load.order_id == Order.id).where(Order.customer_id == customer_id)

    now = utcnow()
    loads = s.scalars(stmt.order_by(Load.id)).all()
    positions = [position(l, now) for l in loads]

    # ETA buckets count every load; stale fixes are counted again on their own
    counts = {k: 0 for k in ETA_ORDER}
    for l in loads:
        counts[eta_status(l.eta, now)] += 1
        if is_stale(l.last_tracking_update, now):
            counts["stale"] += 1

    if eta_statuses:
        positions = [p for p in positions if p["etaStatus"] in eta_statuses]
    if search:
        q = search.strip().lower()
        positions = [p for p in positions if _matches(p, q)]

    positions.sort(key=lambda p: ETA_ORDER.index(p["etaStatus"]))
    return {"data": positions, "total": len(positions), "counts": counts}


def tracking_detail(s: Session, ctx: TenantContext, load_id: int) -> dict:
    l = get_owned(s, Load, ctx, load_id, "Load")
    stops = l.stops or (l.order.stops if l.order is not None else [])
    last_call = s.scalars(
        select(CheckCall).where(CheckCall.tenant_id == ctx.tenant_id, CheckCall.load_id == l.id)
        .order_by(CheckCall.created_at.desc(), CheckCall.id.desc())
    ).first()
    now = utcnow()
    return {
        "id": l.id,
        "loadNumber": l.load_number,
        "status": l.status,
        "eta": iso(l.eta),
        "etaStatus": "stale" if is_stale(l.last_tracking_update, now) else eta_status(l.eta, now),
        "carrier": ({"id": l.carrier.id, "name": l.carrier.legal_name, "mcNumber": l.carrier.mc_number}
                    if l.carrier else None),
        "driver": {"name": l.driver_name, "phone": l.driver_phone or ""} if l.driver_name else None,
        "truckNumber": l.truck_number,
        "trailerNumber": l.trailer_number,
        "currentLocation": {"lat": l.current_lat, "lng": l.current_lng,
                            "city": l.current_city, "state": l.current_state},
        "lastTrackingUpdate": iso(l.last_tracking_update),
        "stops": [to_dict(st) for st in stops],
        "lastCheckCall": None if last_call is None else {
            "timestamp": iso(last_call.created_at),
            "location": ", ".join(x for x in (last_call.city, last_call.state) if x),
            "notes": last_call.notes or "",
        },
    }


def _split(v: Optional[str]) -> Optional[List[str]]:
    if not v:
        return None
    return [x.strip() for x in v.split(",") if x.strip()]


@router.get("/positions")
def positions(
    eta_status: Optional[str] = None,
    equipment_type: Optional[str] = None,
    carrier_id: Optional[int] = None,
    customer_id: Optional[int] = None,
    search: Optional[str] = None,
    ctx: TenantContext = Depends(get_context),
):
    with SessionLocal() as s:
        return tracking_positions(s, ctx, _split(eta_status), _split(equipment_type),
                                  carrier_id, customer_id, search)


@router.get("/loads/{load_id}")
def detail(load_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return tracking_detail(s, ctx, load_id)
