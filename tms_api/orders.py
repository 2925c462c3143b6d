"""
Customer orders and their stops.

An order is what the customer booked; stops are the pickup and delivery
appointments. Arriving at and departing from stops drives the order status.
"""

import logging
import random
import string
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from tms_api import events
from tms_api.crud import apply, get_owned, naive, paginate, scoped, to_dict
from tms_api.db import SessionLocal, utcnow
from tms_api.deps import TenantContext, get_context
from tms_api.errors import BadRequest, Conflict, NotFound
from tms_api.models import Customer, Load, Order, Quote, StatusHistory, Stop
from tms_api.schemas import (
    CancelOrderIn,
    CloneOrderIn,
    OrderIn,
    OrderStatusIn,
    OrderUpdate,
    ReorderIn,
    StopIn,
    StopUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["orders"])

LOCKED_STATUSES = ("DELIVERED", "COMPLETED", "CANCELLED")

ORDER_TRANSITIONS = {
    "PENDING": ["QUOTED", "BOOKED", "CANCELLED"],
    "QUOTED": ["BOOKED", "CANCELLED"],
    "BOOKED": ["DISPATCHED", "CANCELLED"],
    "DISPATCHED": ["IN_TRANSIT", "CANCELLED"],
    "AT_PICKUP": ["IN_TRANSIT", "CANCELLED"],
    "IN_TRANSIT": ["AT_DELIVERY", "DELIVERED", "CANCELLED"],
    "AT_DELIVERY": ["DELIVERED", "IN_TRANSIT"],
    "DELIVERED": ["COMPLETED", "INVOICED"],
    "COMPLETED": [],
    "CANCELLED": [],
    "INVOICED": [],
}

# custom_fields keys carried on the order row
EXTRA_FIELDS = ("priority", "payment_terms", "estimated_carrier_rate")


def record_status(s: Session, ctx: TenantContext, entity_type: str, entity_id: int,
                  old: Optional[str], new: str, notes: Optional[str] = None, **links) -> StatusHistory:
    row = StatusHistory(tenant_id=ctx.tenant_id, entity_type=entity_type, entity_id=entity_id,
                        old_status=old, new_status=new, notes=notes, created_by_id=ctx.user_id, **links)
    s.add(row)
    return row


def new_order_number() -> str:
    suffix = "".join(random.choices(string.ascii_uppercase + string.digits, k=4))
    return f"ORD-{utcnow():%Y%m%d}-{suffix}"


def order_dict(o: Order) -> dict:
    out = to_dict(o)
    out["customer"] = {"id": o.customer.id, "name": o.customer.name} if o.customer else None
    out["stops"] = [to_dict(st) for st in o.stops]
    out["loads"] = [to_dict(l) for l in o.loads]
    return out


def _stop_row(ctx: TenantContext, order_id: int, stop: StopIn, idx: int) -> Stop:
    data = stop.model_dump()
    data["stop_sequence"] = data["stop_sequence"] or idx + 1
    data["country"] = data["country"] or "USA"
    data["appointment_required"] = bool(data["appointment_required"])
    return Stop(tenant_id=ctx.tenant_id, order_id=order_id, status="PENDING",
                created_by_id=ctx.user_id, updated_by_id=ctx.user_id, **data)


def _get_order(s: Session, ctx: TenantContext, order_id: int) -> Order:
    o = s.scalars(scoped(Order, ctx).where(Order.id == order_id)).first()
    if o is None:
        raise NotFound(f"Order {order_id} not found")
    return o


# ---------- Orders ----------

def create_order(s: Session, ctx: TenantContext, payload: OrderIn, order_number: Optional[str] = None,
                 quote_id: Optional[int] = None) -> Order:
    if len(payload.stops) < 2:
        raise BadRequest("Orders must have at least 2 stops (pickup and delivery)")
    customer = s.scalars(scoped(Customer, ctx).where(Customer.id == payload.customer_id)).first()
    if customer is None:
        raise BadRequest(f"Customer {payload.customer_id} not found")

    accessorial_total = sum(a.amount or 0 for a in payload.accessorials)
    total = (payload.customer_rate or 0) + (payload.fuel_surcharge or 0) + accessorial_total

    custom = {k: getattr(payload, k) for k in EXTRA_FIELDS if getattr(payload, k)}
    if payload.accessorials:
        custom["accessorials"] = [a.model_dump() for a in payload.accessorials]

    data = payload.model_dump(exclude={"stops", "accessorials", *EXTRA_FIELDS})
    data["status"] = data["status"] or "PENDING"
    data["fuel_surcharge"] = data["fuel_surcharge"] or 0
    if not data["is_hazmat"]:
        data["hazmat_class"] = None
    o = Order(
        tenant_id=ctx.tenant_id,
        order_number=order_number or new_order_number(),
        quote_id=quote_id,
        accessorial_charges=accessorial_total,
        total_charges=total if total > 0 else None,
        custom_fields=custom,
        created_by_id=ctx.user_id,
        updated_by_id=ctx.user_id,
        **data,
    )
    s.add(o)
    s.flush()
    for idx, stop in enumerate(payload.stops):
        s.add(_stop_row(ctx, o.id, stop, idx))
    s.commit()
    s.refresh(o)
    events.emit("order.created", {"orderId": o.id, "orderNumber": o.order_number,
                                  "customerId": o.customer_id, "tenantId": ctx.tenant_id})
    return o


def list_orders(s: Session, ctx: TenantContext, status: Optional[str] = None, customer_id: Optional[int] = None,
                equipment_type: Optional[str] = None, from_date=None, to_date=None,
                search: Optional[str] = None, page: int = 1, limit: int = 20) -> dict:
    stmt = scoped(Order, ctx)
    if status:
        stmt = stmt.where(Order.status == status)
    if customer_id:
        stmt = stmt.where(Order.customer_id == customer_id)
    if equipment_type:
        stmt = stmt.where(Order.equipment_type == equipment_type)
    if from_date:
        stmt = stmt.where(Order.order_date >= from_date)
    if to_date:
        stmt = stmt.where(Order.order_date <= to_date)
    if search:
        like = f"%{search}%"
        stmt = stmt.where(or_(Order.order_number.ilike(like), Order.customer_reference.ilike(like)))
    rows, total, pages = paginate(s, stmt.order_by(Order.created_at.desc(), Order.id.desc()), page, limit)
    return {"data": [order_dict(o) for o in rows],
            "pagination": {"page": page, "limit": limit, "total": total, "pages": pages}}


def update_order(s: Session, ctx: TenantContext, order_id: int, payload: OrderUpdate) -> Order:
    o = _get_order(s, ctx, order_id)
    if o.status in LOCKED_STATUSES:
        raise Conflict(f"Cannot modify order in {o.status} status")

    data = payload.model_dump(exclude_unset=True)
    stops = data.pop("stops", None)
    accessorials = data.pop("accessorials", None)
    custom = dict(o.custom_fields or {})
    for k in EXTRA_FIELDS:
        if k in data:
            v = data.pop(k)
            if v is not None:
                custom[k] = v

    if data.get("customer_id") is not None:
        if s.scalars(scoped(Customer, ctx).where(Customer.id == data["customer_id"])).first() is None:
            raise BadRequest(f"Customer {data['customer_id']} not found")

    changes = apply(o, data)
    if accessorials is not None:
        custom["accessorials"] = accessorials
        o.accessorial_charges = sum(a.get("amount") or 0 for a in accessorials)
    o.custom_fields = custom
    total = (o.customer_rate or 0) + (o.fuel_surcharge or 0) + (o.accessorial_charges or 0)
    o.total_charges = total if total > 0 else o.total_charges
    o.updated_by_id = ctx.user_id

    if stops:
        # replaced stops are gone for good, so sequences can be reused
        for old in s.scalars(select(Stop).where(Stop.order_id == o.id, Stop.tenant_id == ctx.tenant_id)).all():
            s.delete(old)
        s.flush()
        for idx, stop in enumerate(payload.stops):
            s.add(_stop_row(ctx, o.id, stop, idx))
        changes["stops"] = len(stops)

    s.commit()
    s.expire(o, ["stops", "loads"])
    events.emit("order.updated", {"orderId": o.id, "changes": sorted(changes), "tenantId": ctx.tenant_id})
    return o


def clone_order(s: Session, ctx: TenantContext, order_id: int, payload: CloneOrderIn) -> Order:
    src = _get_order(s, ctx, order_id)
    o = Order(
        tenant_id=ctx.tenant_id,
        order_number=new_order_number(),
        customer_id=src.customer_id,
        status="PENDING",
        customer_reference=src.customer_reference,
        special_instructions=src.special_instructions,
        commodity=src.commodity,
        weight_lbs=src.weight_lbs,
        equipment_type=src.equipment_type,
        is_hazmat=src.is_hazmat,
        hazmat_class=src.hazmat_class,
        customer_rate=src.customer_rate,
        fuel_surcharge=src.fuel_surcharge,
        accessorial_charges=src.accessorial_charges,
        total_charges=src.total_charges,
        custom_fields=dict(src.custom_fields or {}),
        created_by_id=ctx.user_id,
        updated_by_id=ctx.user_id,
    )
    s.add(o)
    s.flush()
    for st in src.stops:
        appointment = st.appointment_date
        if payload.pickup_date and st.stop_type == "PICKUP":
            appointment = payload.pickup_date
        s.add(Stop(
            tenant_id=ctx.tenant_id, order_id=o.id, stop_type=st.stop_type, stop_sequence=st.stop_sequence,
            status="PENDING", facility_name=st.facility_name, address_line1=st.address_line1,
            address_line2=st.address_line2, city=st.city, state=st.state, postal_code=st.postal_code,
            country=st.country, latitude=st.latitude, longitude=st.longitude, contact_name=st.contact_name,
            contact_phone=st.contact_phone, contact_email=st.contact_email,
            appointment_required=st.appointment_required, appointment_date=appointment,
            appointment_time_start=st.appointment_time_start, appointment_time_end=st.appointment_time_end,
            special_instructions=st.special_instructions, created_by_id=ctx.user_id, updated_by_id=ctx.user_id,
        ))
    s.commit()
    s.refresh(o)
    events.emit("order.created", {"orderId": o.id, "orderNumber": o.order_number,
                                  "customerId": o.customer_id, "clonedFrom": src.id, "tenantId": ctx.tenant_id})
    return o


def change_status(s: Session, ctx: TenantContext, order_id: int, status: str, notes: Optional[str] = None) -> Order:
    o = _get_order(s, ctx, order_id)
    if status not in ORDER_TRANSITIONS.get(o.status, []):
        raise Conflict(f"Cannot transition from {o.status} to {status}")
    old = o.status
    o.status = status
    o.updated_by_id = ctx.user_id
    record_status(s, ctx, "ORDER", o.id, old, status, notes, order_id=o.id)
    s.commit()
    events.emit("order.status.changed", {"orderId": o.id, "oldStatus": old, "newStatus": status,
                                         "tenantId": ctx.tenant_id})
    return o


def cancel_order(s: Session, ctx: TenantContext, order_id: int, reason: Optional[str] = None) -> Order:
    o = _get_order(s, ctx, order_id)
    if o.status in ("COMPLETED", "INVOICED"):
        raise Conflict(f"Cannot cancel order in {o.status} status")
    old = o.status
    o.status = "CANCELLED"
    o.updated_by_id = ctx.user_id
    record_status(s, ctx, "ORDER", o.id, old, "CANCELLED", reason, order_id=o.id)
    for load in o.loads:
        if load.status not in ("DELIVERED", "COMPLETED", "CANCELLED"):
            record_status(s, ctx, "LOAD", load.id, load.status, "CANCELLED", "Order cancelled", load_id=load.id)
            load.status = "CANCELLED"
    s.commit()
    events.emit("order.cancelled", {"orderId": o.id, "reason": reason, "tenantId": ctx.tenant_id})
    events.emit("order.status.changed", {"orderId": o.id, "oldStatus": old, "newStatus": "CANCELLED",
                                         "tenantId": ctx.tenant_id})
    return o


def delete_order(s: Session, ctx: TenantContext, order_id: int) -> dict:
    o = _get_order(s, ctx, order_id)
    if o.loads:
        raise Conflict("Cannot delete order with existing loads")
    o.deleted_at = utcnow()
    o.updated_by_id = ctx.user_id
    s.commit()
    return {"success": True, "message": "Order deleted successfully"}


def create_from_quote(s: Session, ctx: TenantContext, quote_id: int, order_number: Optional[str] = None) -> Order:
    quote = s.scalars(scoped(Quote, ctx).where(Quote.id == quote_id)).first()
    if quote is None:
        raise NotFound(f"Quote {quote_id} not found")
    if quote.converted_order_id is not None:
        raise BadRequest("Quote has already been converted to an order")
    if quote.customer_id is None:
        raise BadRequest("Quote is missing a customer for conversion")

    stops = [
        StopIn(
            stop_type=qs.stop_type or "PICKUP",
            stop_sequence=qs.stop_sequence or idx + 1,
            facility_name=qs.facility_name,
            address_line1=qs.address_line1,
            address_line2=qs.address_line2,
            city=qs.city,
            state=qs.state,
            postal_code=qs.postal_code,
            country=qs.country,
            contact_name=qs.contact_name,
            contact_phone=qs.contact_phone,
            appointment_date=quote.pickup_date if qs.stop_type == "PICKUP" else quote.delivery_date,
        )
        for idx, qs in enumerate(quote.stops)
    ]
    payload = OrderIn(
        customer_id=quote.customer_id,
        customer_reference=quote.quote_number,
        special_instructions=quote.special_instructions,
        commodity=quote.commodity,
        weight_lbs=quote.weight_lbs,
        piece_count=quote.pieces,
        pallet_count=quote.pallets,
        equipment_type=quote.equipment_type,
        customer_rate=quote.linehaul_rate,
        fuel_surcharge=quote.fuel_surcharge,
        stops=stops,
    )
    order = create_order(s, ctx, payload, order_number=order_number, quote_id=quote.id)
    if quote.accessorials_total:
        order.accessorial_charges = quote.accessorials_total
        order.total_charges = quote.total_amount or order.total_charges
    quote.status = "CONVERTED"
    quote.converted_order_id = order.id
    quote.converted_at = utcnow()
    quote.updated_by_id = ctx.user_id
    s.commit()
    return order


def status_history(s: Session, ctx: TenantContext, entity_type: str, entity_id: int) -> List[dict]:
    rows = s.scalars(select(StatusHistory).where(
        StatusHistory.tenant_id == ctx.tenant_id,
        StatusHistory.entity_type == entity_type,
        StatusHistory.entity_id == entity_id,
    ).order_by(StatusHistory.created_at.desc(), StatusHistory.id.desc())).all()
    return [to_dict(r) for r in rows]


def timeline(s: Session, ctx: TenantContext, order_id: int) -> dict:
    o = _get_order(s, ctx, order_id)
    history = reversed(status_history(s, ctx, "ORDER", order_id))
    created = {"id": f"{o.id}-created", "timestamp": to_dict(o)["created_at"], "eventType": "CREATED",
               "description": f"Order {o.order_number} created"}
    items = [{
        "id": h["id"],
        "timestamp": h["created_at"],
        "eventType": "STATUS_CHANGE",
        "description": (f"Status changed from {h['old_status']} to {h['new_status']}"
                        if h["old_status"] else f"Status set to {h['new_status']}"),
        "userId": h["created_by_id"],
        "metadata": {"notes": h["notes"]} if h["notes"] else None,
    } for h in history]
    return {"data": [created] + items}


# ---------- Stops ----------

def _get_stop(s: Session, ctx: TenantContext, stop_id: int) -> Stop:
    return get_owned(s, Stop, ctx, stop_id, "Stop")


def _order_stops(s: Session, ctx: TenantContext, order_id: int) -> List[Stop]:
    return s.scalars(scoped(Stop, ctx).where(Stop.order_id == order_id).order_by(Stop.stop_sequence, Stop.id)).all()


def add_stop(s: Session, ctx: TenantContext, order_id: int, payload: StopIn) -> Stop:
    o = get_owned(s, Order, ctx, order_id, "Order")
    st = _stop_row(ctx, o.id, payload, len(_order_stops(s, ctx, o.id)))
    s.add(st)
    s.commit()
    return st


def list_stops(s: Session, ctx: TenantContext, order_id: int) -> List[Stop]:
    get_owned(s, Order, ctx, order_id, "Order")
    return _order_stops(s, ctx, order_id)


def update_stop(s: Session, ctx: TenantContext, stop_id: int, payload: StopUpdate) -> Stop:
    st = _get_stop(s, ctx, stop_id)
    apply(st, {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None})
    st.updated_by_id = ctx.user_id
    s.commit()
    return st


def _set_order_status(s: Session, ctx: TenantContext, order_id: int, status: str, notes: str) -> None:
    o = s.get(Order, order_id)
    if o is None:
        return
    record_status(s, ctx, "ORDER", o.id, o.status, status, notes, order_id=o.id)
    o.status = status
    o.updated_by_id = ctx.user_id


def mark_arrived(s: Session, ctx: TenantContext, stop_id: int) -> Stop:
    st = _get_stop(s, ctx, stop_id)
    if st.arrived_at:
        raise BadRequest("Stop already marked as arrived")
    new = "AT_PICKUP" if st.stop_type == "PICKUP" else "AT_DELIVERY"
    record_status(s, ctx, "STOP", st.id, st.status, new, "Arrived", stop_id=st.id)
    st.status = new
    st.arrived_at = utcnow()
    st.updated_by_id = ctx.user_id
    _set_order_status(s, ctx, st.order_id, new, "Stop arrived")
    s.commit()
    events.emit("stop.arrived", {"stopId": st.id, "loadId": st.load_id, "arrivalTime": to_dict(st)["arrived_at"],
                                 "tenantId": ctx.tenant_id})
    return st


def mark_departed(s: Session, ctx: TenantContext, stop_id: int) -> Stop:
    st = _get_stop(s, ctx, stop_id)
    if not st.arrived_at:
        raise BadRequest("Stop must be marked as arrived first")
    if st.departed_at:
        raise BadRequest("Stop already marked as departed")
    record_status(s, ctx, "STOP", st.id, st.status, "COMPLETED", "Departed", stop_id=st.id)
    st.status = "COMPLETED"
    st.departed_at = utcnow()
    st.updated_by_id = ctx.user_id
    s.flush()
    remaining = [x for x in _order_stops(s, ctx, st.order_id) if x.departed_at is None]
    _set_order_status(s, ctx, st.order_id, "IN_TRANSIT" if remaining else "DELIVERED", "Stop departed")
    s.commit()
    payload = {"stopId": st.id, "loadId": st.load_id, "tenantId": ctx.tenant_id}
    events.emit("stop.departed", dict(payload, departureTime=to_dict(st)["departed_at"]))
    events.emit("stop.completed", payload)
    return st


def reorder_stops(s: Session, ctx: TenantContext, order_id: int, stop_ids: List[int]) -> List[Stop]:
    get_owned(s, Order, ctx, order_id, "Order")
    by_id = {st.id: st for st in _order_stops(s, ctx, order_id)}
    unknown = [i for i in stop_ids if i not in by_id]
    if unknown:
        raise BadRequest(f"Stops {unknown} do not belong to order {order_id}")
    for idx, stop_id in enumerate(stop_ids):
        by_id[stop_id].stop_sequence = idx + 1
        by_id[stop_id].updated_by_id = ctx.user_id
    s.commit()
    return _order_stops(s, ctx, order_id)


def delete_stop(s: Session, ctx: TenantContext, stop_id: int) -> dict:
    st = _get_stop(s, ctx, stop_id)
    if st.arrived_at:
        raise BadRequest("Cannot delete a stop that has been arrived at")
    st.deleted_at = utcnow()
    st.updated_by_id = ctx.user_id
    s.flush()
    for idx, rest in enumerate(_order_stops(s, ctx, st.order_id)):
        rest.stop_sequence = idx + 1
    s.commit()
    return {"success": True, "message": "Stop deleted successfully"}


# ---------- Routes ----------

@router.post("/orders", status_code=201)
def create(payload: OrderIn, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return order_dict(create_order(s, ctx, payload))


@router.get("/orders")
def index(
    status: Optional[str] = None,
    customer_id: Optional[int] = None,
    equipment_type: Optional[str] = None,
    from_date: Optional[datetime] = None,
    to_date: Optional[datetime] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    ctx: TenantContext = Depends(get_context),
):
    with SessionLocal() as s:
        return list_orders(s, ctx, status, customer_id, equipment_type,
                           naive(from_date), naive(to_date), search, page, limit)


@router.post("/orders/from-quote/{quote_id}", status_code=201)
def from_quote(quote_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return order_dict(create_from_quote(s, ctx, quote_id))


@router.get("/orders/{order_id}")
def show(order_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return order_dict(_get_order(s, ctx, order_id))


@router.patch("/orders/{order_id}")
def update(order_id: int, payload: OrderUpdate, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return order_dict(update_order(s, ctx, order_id, payload))


@router.delete("/orders/{order_id}")
def remove(order_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return delete_order(s, ctx, order_id)


@router.post("/orders/{order_id}/clone", status_code=201)
def clone(order_id: int, payload: CloneOrderIn, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return order_dict(clone_order(s, ctx, order_id, payload))


@router.patch("/orders/{order_id}/status")
def set_status(order_id: int, payload: OrderStatusIn, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return order_dict(change_status(s, ctx, order_id, payload.status, payload.notes))


@router.post("/orders/{order_id}/cancel")
def cancel(order_id: int, payload: CancelOrderIn, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return order_dict(cancel_order(s, ctx, order_id, payload.reason))


@router.get("/orders/{order_id}/history")
def history(order_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        _get_order(s, ctx, order_id)
        return status_history(s, ctx, "ORDER", order_id)


@router.get("/orders/{order_id}/timeline")
def show_timeline(order_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return timeline(s, ctx, order_id)


@router.get("/orders/{order_id}/loads")
def order_loads(order_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        _get_order(s, ctx, order_id)
        rows = s.scalars(scoped(Load, ctx).where(Load.order_id == order_id).order_by(Load.created_at.desc())).all()
        return [to_dict(l) for l in rows]


@router.get("/orders/{order_id}/stops")
def stops_index(order_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return [to_dict(st) for st in list_stops(s, ctx, order_id)]


@router.post("/orders/{order_id}/stops", status_code=201)
def stops_create(order_id: int, payload: StopIn, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return to_dict(add_stop(s, ctx, order_id, payload))


@router.put("/orders/{order_id}/stops/reorder")
def stops_reorder(order_id: int, payload: ReorderIn, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return [to_dict(st) for st in reorder_stops(s, ctx, order_id, payload.stop_ids)]


@router.get("/stops/{stop_id}")
def stops_show(stop_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        st = _get_stop(s, ctx, stop_id)
        out = to_dict(st)
        o = s.get(Order, st.order_id)
        out["order"] = {"id": o.id, "order_number": o.order_number, "status": o.status}
        return out


@router.patch("/stops/{stop_id}")
def stops_update(stop_id: int, payload: StopUpdate, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return to_dict(update_stop(s, ctx, stop_id, payload))


@router.post("/stops/{stop_id}/arrive")
def stops_arrive(stop_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return to_dict(mark_arrived(s, ctx, stop_id))


@router.post("/stops/{stop_id}/depart")
def stops_depart(stop_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return to_dict(mark_departed(s, ctx, stop_id))


@router.delete("/stops/{stop_id}")
def stops_remove(stop_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return delete_stop(s, ctx, stop_id)
