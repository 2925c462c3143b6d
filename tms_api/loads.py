"""
Loads: the carrier-facing execution of an order.

Status changes follow LOAD_TRANSITIONS and are written to status history.
"""

import logging
from datetime import datetime
from io import BytesIO
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import PageBreak, Paragraph, SimpleDocTemplate, Spacer
from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from tms_api import events
from tms_api.crud import apply, get_owned, naive, paginate, scoped, to_dict
from tms_api.db import SessionLocal, utcnow
from tms_api.deps import TenantContext, get_context
from tms_api.errors import BadRequest, NotFound
from tms_api.models import Carrier, CheckCall, Load, Order, Stop
from tms_api.orders import record_status, status_history
from tms_api.schemas import (
    AssignCarrierIn,
    CheckCallIn,
    LoadIn,
    LoadStatusIn,
    LoadUpdate,
    LocationIn,
    RateConfirmationIn,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/loads", tags=["loads"])

LOAD_TRANSITIONS = {
    "PENDING": ["TENDERED", "ACCEPTED", "CANCELLED"],
    "TENDERED": ["ACCEPTED", "CANCELLED"],
    "ACCEPTED": ["DISPATCHED", "CANCELLED"],
    "DISPATCHED": ["AT_PICKUP", "IN_TRANSIT", "CANCELLED"],
    "AT_PICKUP": ["PICKED_UP", "IN_TRANSIT"],
    "PICKED_UP": ["IN_TRANSIT"],
    "IN_TRANSIT": ["AT_DELIVERY", "DELIVERED", "CANCELLED"],
    "AT_DELIVERY": ["DELIVERED", "IN_TRANSIT"],
    "DELIVERED": ["COMPLETED"],
    "COMPLETED": [],
    "CANCELLED": [],
}

BOARD_STATUSES = ["PENDING", "ASSIGNED", "IN_TRANSIT"]


def can_transition(current: str, new: str) -> bool:
    return new in LOAD_TRANSITIONS.get(current, [])


def next_load_number(s: Session, ctx: TenantContext) -> str:
    """LD<YYYY><MM><seq4>, continuing from the tenant's highest number this month."""
    prefix = f"LD{utcnow():%Y%m}"
    last = s.scalar(select(func.max(Load.load_number)).where(
        Load.tenant_id == ctx.tenant_id, Load.load_number.like(f"{prefix}%")))
    seq = int(last[-4:]) + 1 if last else 1
    return f"{prefix}{seq:04d}"


def endpoints(stops: List[Stop]):
    """(pickup, delivery) stop for display; falls back to first and last stop."""
    if not stops:
        return None, None
    pickup = next((st for st in stops if st.stop_type == "PICKUP"), stops[0])
    delivery = next((st for st in stops if st.stop_type == "DELIVERY"), stops[-1])
    return pickup, delivery


def load_dict(l: Load, detail: bool = False) -> dict:
    out = to_dict(l)
    out["carrier"] = ({"id": l.carrier.id, "legal_name": l.carrier.legal_name, "mc_number": l.carrier.mc_number}
                      if l.carrier else None)
    order = l.order
    out["order"] = None
    stops = []
    if order is not None:
        stops = order.stops
        out["order"] = {
            "id": order.id,
            "order_number": order.order_number,
            "status": order.status,
            "customer": {"id": order.customer.id, "name": order.customer.name} if order.customer else None,
        }
    pickup, delivery = endpoints(stops)
    out["origin_city"] = pickup.city if pickup else None
    out["origin_state"] = pickup.state if pickup else None
    out["destination_city"] = delivery.city if delivery else None
    out["destination_state"] = delivery.state if delivery else None
    out["pickup_date"] = to_dict(pickup)["appointment_date"] if pickup else None
    out["delivery_date"] = to_dict(delivery)["appointment_date"] if delivery else None
    if detail:
        out["stops"] = [to_dict(st) for st in l.stops]
    return out


def _get_load(s: Session, ctx: TenantContext, load_id: int) -> Load:
    return get_owned(s, Load, ctx, load_id, "Load")


def _move(s: Session, ctx: TenantContext, l: Load, status: str, notes: Optional[str]) -> str:
    old = l.status
    l.status = status
    if status == "DELIVERED":
        l.delivered_at = utcnow()
    record_status(s, ctx, "LOAD", l.id, old, status, notes, load_id=l.id)
    return old


def _announce(ctx: TenantContext, l: Load, old: str) -> None:
    events.emit("load.status.changed", {"loadId": l.id, "oldStatus": old, "newStatus": l.status,
                                        "tenantId": ctx.tenant_id})
    if l.status == "DELIVERED":
        events.emit("load.delivered", {"loadId": l.id, "orderId": l.order_id,
                                       "actualDelivery": to_dict(l)["delivered_at"], "tenantId": ctx.tenant_id})


# ---------- Loads ----------

def create_load(s: Session, ctx: TenantContext, payload: LoadIn) -> Load:
    if payload.order_id is not None:
        get_owned(s, Order, ctx, payload.order_id, "Order")
    if payload.carrier_id is not None:
        get_owned(s, Carrier, ctx, payload.carrier_id, "Carrier")
    l = Load(tenant_id=ctx.tenant_id, load_number=next_load_number(s, ctx), status="PENDING",
             created_by_id=ctx.user_id, updated_by_id=ctx.user_id, **payload.model_dump())
    s.add(l)
    s.flush()
    if payload.order_id is not None:
        s.execute(update(Stop).where(
            Stop.tenant_id == ctx.tenant_id,
            Stop.order_id == payload.order_id,
            Stop.load_id.is_(None),
            Stop.deleted_at.is_(None),
        ).values(load_id=l.id))
    s.commit()
    s.refresh(l)
    events.emit("load.created", {"loadId": l.id, "loadNumber": l.load_number, "orderId": l.order_id,
                                 "tenantId": ctx.tenant_id})
    return l


def list_loads(s: Session, ctx: TenantContext, status: Optional[str] = None, carrier_id: Optional[int] = None,
               order_id: Optional[int] = None, equipment_type: Optional[str] = None,
               search: Optional[str] = None, from_date: Optional[datetime] = None,
               to_date: Optional[datetime] = None, page: int = 1, limit: int = 20) -> dict:
    stmt = scoped(Load, ctx)
    if status:
        statuses = [x.strip() for x in status.split(",") if x.strip()]
        stmt = stmt.where(Load.status.in_(statuses))
    if carrier_id:
        stmt = stmt.where(Load.carrier_id == carrier_id)
    if order_id:
        stmt = stmt.where(Load.order_id == order_id)
    if equipment_type:
        stmt = stmt.where(Load.equipment_type == equipment_type)
    if from_date:
        stmt = stmt.where(Load.created_at >= from_date)
    if to_date:
        stmt = stmt.where(Load.created_at <= to_date)
    if search:
        like = f"%{search}%"
        stmt = stmt.outerjoin(Order, Load.order_id == Order.id).where(
            or_(Load.load_number.ilike(like), Order.order_number.ilike(like)))
    rows, total, _ = paginate(s, stmt.order_by(Load.created_at.desc(), Load.id.desc()), page, limit)
    return {"data": [load_dict(l) for l in rows], "total": total, "page": page, "limit": limit}


def load_stats(s: Session, ctx: TenantContext) -> dict:
    by_status = dict(s.execute(
        select(Load.status, func.count(Load.id))
        .where(Load.tenant_id == ctx.tenant_id, Load.deleted_at.is_(None))
        .group_by(Load.status)
    ).all())
    revenue = s.scalar(
        select(func.coalesce(func.sum(Order.total_charges), 0)).where(
            Order.tenant_id == ctx.tenant_id,
            Order.deleted_at.is_(None),
            Order.id.in_(select(Load.order_id).where(Load.tenant_id == ctx.tenant_id, Load.deleted_at.is_(None))),
        )
    )
    return {"total": sum(by_status.values()), "byStatus": by_status,
            "totalRevenueCents": round(float(revenue or 0) * 100)}


def get_load_detail(s: Session, ctx: TenantContext, load_id: int) -> dict:
    l = _get_load(s, ctx, load_id)
    out = load_dict(l, detail=True)
    calls = s.scalars(select(CheckCall).where(CheckCall.tenant_id == ctx.tenant_id, CheckCall.load_id == l.id)
                      .order_by(CheckCall.created_at.desc(), CheckCall.id.desc())).all()
    out["check_calls"] = [to_dict(c) for c in calls]
    return out


def update_load(s: Session, ctx: TenantContext, load_id: int, payload: LoadUpdate) -> Load:
    l = _get_load(s, ctx, load_id)
    data = payload.model_dump(exclude_unset=True)
    status = data.pop("status", None)
    if status and status != l.status and not can_transition(l.status, status):
        raise BadRequest(f"Cannot transition from {l.status} to {status}")
    if data.get("carrier_id") is not None:
        get_owned(s, Carrier, ctx, data["carrier_id"], "Carrier")
    apply(l, data)
    l.updated_by_id = ctx.user_id
    old = None
    if status and status != l.status:
        old = _move(s, ctx, l, status, "Status updated")
    s.commit()
    if old is not None:
        _announce(ctx, l, old)
    return l


def assign_carrier(s: Session, ctx: TenantContext, load_id: int, payload: AssignCarrierIn) -> Load:
    l = _get_load(s, ctx, load_id)
    get_owned(s, Carrier, ctx, payload.carrier_id, "Carrier")
    apply(l, payload.model_dump(exclude_unset=True))
    l.updated_by_id = ctx.user_id
    old = _move(s, ctx, l, "ACCEPTED", "Carrier assigned")
    s.commit()
    s.refresh(l)
    events.emit("load.assigned", {"loadId": l.id, "carrierId": l.carrier_id, "carrierRate": l.carrier_rate,
                                  "tenantId": ctx.tenant_id})
    _announce(ctx, l, old)
    return l


def dispatch_load(s: Session, ctx: TenantContext, load_id: int) -> Load:
    l = _get_load(s, ctx, load_id)
    if not can_transition(l.status, "DISPATCHED"):
        raise BadRequest(f"Cannot dispatch from status {l.status}")
    old = _move(s, ctx, l, "DISPATCHED", "Load dispatched")
    l.dispatched_at = utcnow()
    l.updated_by_id = ctx.user_id
    s.commit()
    events.emit("load.dispatched", {"loadId": l.id, "carrierId": l.carrier_id, "driverId": None,
                                    "tenantId": ctx.tenant_id})
    _announce(ctx, l, old)
    return l


def update_status(s: Session, ctx: TenantContext, load_id: int, status: str, notes: Optional[str] = None) -> Load:
    l = _get_load(s, ctx, load_id)
    if not can_transition(l.status, status):
        raise BadRequest(f"Cannot transition from {l.status} to {status}")
    old = _move(s, ctx, l, status, notes)
    l.updated_by_id = ctx.user_id
    s.commit()
    _announce(ctx, l, old)
    return l


def update_location(s: Session, ctx: TenantContext, load_id: int, payload: LocationIn) -> Load:
    l = _get_load(s, ctx, load_id)
    l.current_lat = payload.latitude
    l.current_lng = payload.longitude
    l.current_city = payload.city
    l.current_state = payload.state
    if payload.eta is not None:
        l.eta = payload.eta
    l.last_tracking_update = utcnow()
    s.commit()
    return l


def add_check_call(s: Session, ctx: TenantContext, load_id: int, payload: CheckCallIn) -> CheckCall:
    l = _get_load(s, ctx, load_id)
    call = CheckCall(
        tenant_id=ctx.tenant_id,
        load_id=l.id,
        latitude=payload.lat,
        longitude=payload.lng,
        city=payload.city,
        state=payload.state,
        status=payload.status,
        notes=payload.notes,
        eta=payload.eta,
        created_by_id=ctx.user_id,
    )
    if payload.timestamp is not None:
        call.created_at = payload.timestamp
    s.add(call)
    l.current_lat = payload.lat
    l.current_lng = payload.lng
    l.current_city = payload.city
    l.current_state = payload.state
    if payload.eta is not None:
        l.eta = payload.eta
    l.last_tracking_update = utcnow()
    s.commit()
    events.emit("check-call.received", {
        "loadId": l.id,
        "location": {"lat": payload.lat, "lng": payload.lng, "city": payload.city, "state": payload.state},
        "eta": to_dict(call)["eta"],
        "tenantId": ctx.tenant_id,
    })
    return call


def list_check_calls(s: Session, ctx: TenantContext, load_id: int, page: int = 1, limit: int = 20) -> dict:
    _get_load(s, ctx, load_id)
    stmt = (select(CheckCall).where(CheckCall.tenant_id == ctx.tenant_id, CheckCall.load_id == load_id)
            .order_by(CheckCall.created_at.desc(), CheckCall.id.desc()))
    rows, total, _ = paginate(s, stmt, page, limit)
    return {"data": [to_dict(c) for c in rows], "total": total, "page": page, "limit": limit}


def load_board(s: Session, ctx: TenantContext, statuses: Optional[List[str]] = None) -> dict:
    statuses = statuses or BOARD_STATUSES
    rows = s.scalars(scoped(Load, ctx).where(Load.status.in_(statuses))
                     .order_by(Load.status, Load.created_at.desc(), Load.id.desc())).all()
    loads = [load_dict(l) for l in rows]
    grouped = {}
    for item in loads:
        grouped.setdefault(item["status"], []).append(item)
    return {"total": len(loads), "byStatus": grouped, "loads": loads}


def delete_load(s: Session, ctx: TenantContext, load_id: int) -> dict:
    l = _get_load(s, ctx, load_id)
    if l.status not in ("PENDING", "CANCELLED"):
        raise BadRequest("Only pending or cancelled loads can be deleted")
    record_status(s, ctx, "LOAD", l.id, l.status, "CANCELLED", "Load cancelled", load_id=l.id)
    l.status = "CANCELLED"
    l.deleted_at = utcnow()
    l.updated_by_id = ctx.user_id
    s.commit()
    return {"success": True, "message": "Load deleted successfully"}


def _money(v: Optional[float]) -> str:
    return f"${(v or 0):,.2f}"


def rate_confirmation_pdf(s: Session, ctx: TenantContext, load_id: int, opts: RateConfirmationIn) -> bytes:
    l = _get_load(s, ctx, load_id)
    if l.carrier_id is None:
        raise BadRequest("Load must be assigned to a carrier")

    styles = getSampleStyleSheet()
    body = styles["Normal"]
    heading = styles["Heading3"]
    buf = BytesIO()
    doc = SimpleDocTemplate(buf, pagesize=letter, leftMargin=0.7 * inch, rightMargin=0.7 * inch,
                            title=f"Rate Confirmation {l.load_number}")

    story = [
        Paragraph("RATE CONFIRMATION", styles["Title"]),
        Paragraph(f"Load #: {l.load_number}", body),
        Paragraph(f"Date: {utcnow():%m/%d/%Y}", body),
        Spacer(1, 12),
        Paragraph("CARRIER INFORMATION", heading),
        Paragraph(f"Company: {l.carrier.legal_name or ''}", body),
        Paragraph(f"MC#: {l.carrier.mc_number or ''}", body),
        Spacer(1, 12),
        Paragraph("RATE DETAILS", heading),
        Paragraph(f"Line Haul: {_money(l.carrier_rate)}", body),
    ]
    if opts.include_accessorials:
        story.append(Paragraph(f"Accessorials: {_money(l.accessorial_costs)}", body))
        story.append(Paragraph(f"Fuel Advance: {_money(l.fuel_advance)}", body))
    story += [Spacer(1, 12), Paragraph("STOPS", heading)]
    for st in l.stops:
        when = f"{st.appointment_date:%a %b %d %Y}" if st.appointment_date else ""
        story.append(Paragraph(f"{st.stop_type}: {st.facility_name or ''}", body))
        story.append(Paragraph(
            f"&nbsp;&nbsp;{st.address_line1 or ''}, {st.city or ''}, {st.state or ''} {st.postal_code or ''}", body))
        story.append(Paragraph(f"&nbsp;&nbsp;Appointment: {when} {st.appointment_time_start or ''}", body))
        story.append(Spacer(1, 6))
    if opts.custom_message:
        story += [Spacer(1, 12), Paragraph(opts.custom_message, body)]
    story += [
        Spacer(1, 36),
        Paragraph("_________________________________", body),
        Paragraph("Carrier Signature&nbsp;&nbsp;&nbsp;&nbsp;&nbsp;&nbsp;&nbsp;&nbsp;Date", body),
    ]
    if opts.include_terms:
        story += [PageBreak(), Paragraph("TERMS AND CONDITIONS", heading),
                  Paragraph("Standard carrier terms and conditions apply.", styles["BodyText"])]

    doc.build(story)
    logger.info("rate confirmation generated for load %s", l.load_number)
    return buf.getvalue()


# ---------- Routes ----------

@router.post("", status_code=201)
def create(payload: LoadIn, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return load_dict(create_load(s, ctx, payload), detail=True)


@router.get("")
def index(
    status: Optional[str] = None,
    carrier_id: Optional[int] = None,
    order_id: Optional[int] = None,
    equipment_type: Optional[str] = None,
    search: Optional[str] = None,
    from_date: Optional[datetime] = None,
    to_date: Optional[datetime] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    ctx: TenantContext = Depends(get_context),
):
    with SessionLocal() as s:
        return list_loads(s, ctx, status, carrier_id, order_id, equipment_type, search,
                          naive(from_date), naive(to_date), page, limit)


@router.get("/stats")
def stats(ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return load_stats(s, ctx)


@router.get("/board")
def board(status: Optional[str] = None, ctx: TenantContext = Depends(get_context)):
    statuses = [x.strip() for x in status.split(",") if x.strip()] if status else None
    with SessionLocal() as s:
        return load_board(s, ctx, statuses)


@router.get("/{load_id}")
def show(load_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return get_load_detail(s, ctx, load_id)


@router.patch("/{load_id}")
def update_(load_id: int, payload: LoadUpdate, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return load_dict(update_load(s, ctx, load_id, payload))


@router.delete("/{load_id}")
def remove(load_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return delete_load(s, ctx, load_id)


@router.post("/{load_id}/assign")
def assign(load_id: int, payload: AssignCarrierIn, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return load_dict(assign_carrier(s, ctx, load_id, payload))


@router.post("/{load_id}/dispatch")
def dispatch(load_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return load_dict(dispatch_load(s, ctx, load_id))


@router.patch("/{load_id}/status")
def set_status(load_id: int, payload: LoadStatusIn, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return load_dict(update_status(s, ctx, load_id, payload.status, payload.notes))


@router.patch("/{load_id}/location")
def set_location(load_id: int, payload: LocationIn, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return load_dict(update_location(s, ctx, load_id, payload))


@router.post("/{load_id}/check-calls", status_code=201)
def check_call_create(load_id: int, payload: CheckCallIn, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return to_dict(add_check_call(s, ctx, load_id, payload))


@router.get("/{load_id}/check-calls")
def check_call_index(
    load_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    ctx: TenantContext = Depends(get_context),
):
    with SessionLocal() as s:
        return list_check_calls(s, ctx, load_id, page, limit)


@router.get("/{load_id}/history")
def history(load_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        _get_load(s, ctx, load_id)
        return status_history(s, ctx, "LOAD", load_id)


@router.post("/{load_id}/rate-confirmation")
def rate_confirmation(load_id: int, payload: RateConfirmationIn, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        pdf = rate_confirmation_pdf(s, ctx, load_id, payload)
    return Response(content=pdf, media_type="application/pdf",
                    headers={"Content-Disposition": f'attachment; filename="rate-confirmation-{load_id}.pdf"'})
