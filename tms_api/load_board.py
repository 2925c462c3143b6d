"""
Load board: postings offered to carriers and the bids carriers place on them.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import case, func, or_, select, update
from sqlalchemy.orm import Session

from tms_api import config, events
from tms_api.crud import apply, get_owned, naive, paginate, scoped, to_dict
from tms_api.db import SessionLocal, utcnow
from tms_api.deps import TenantContext, get_context
from tms_api.errors import BadRequest, NotFound
from tms_api.models import Carrier, CarrierLoadView, Load, LoadBid, LoadPosting
from tms_api.orders import record_status
from tms_api.schemas import BidIn, BidUpdate, CounterBidIn, PostingIn, PostingUpdate, RejectBidIn, TrackViewIn

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/load-board", tags=["load-board"])

OPEN_BIDS = ("PENDING", "COUNTERED")
BID_STATUS_ORDER = ["PENDING", "COUNTERED", "ACCEPTED", "REJECTED", "WITHDRAWN", "EXPIRED"]


def _posting_ttl(now: datetime) -> datetime:
    return now + timedelta(days=config.POSTING_TTL_DAYS)


def _get_posting(s: Session, ctx: TenantContext, posting_id: int) -> LoadPosting:
    return get_owned(s, LoadPosting, ctx, posting_id, "Load posting")


def _get_bid(s: Session, ctx: TenantContext, bid_id: int) -> LoadBid:
    return get_owned(s, LoadBid, ctx, bid_id, "Load bid")


def posting_dict(s: Session, p: LoadPosting, detail: bool = False) -> dict:
    out = to_dict(p)
    out["bid_count"] = s.scalar(select(func.count(LoadBid.id)).where(LoadBid.posting_id == p.id)) or 0
    out["unique_viewers"] = s.scalar(
        select(func.count(CarrierLoadView.id)).where(CarrierLoadView.posting_id == p.id)) or 0
    load = s.get(Load, p.load_id)
    out["load"] = {"id": load.id, "load_number": load.load_number, "status": load.status} if load else None
    if detail:
        out["bids"] = [bid_dict(b) for b in s.scalars(
            select(LoadBid).where(LoadBid.posting_id == p.id).order_by(LoadBid.submitted_at.desc())).all()]
        out["views"] = [to_dict(v) for v in s.scalars(
            select(CarrierLoadView).where(CarrierLoadView.posting_id == p.id)
            .order_by(CarrierLoadView.viewed_at.desc())).all()]
    return out


def bid_dict(b: LoadBid) -> dict:
    out = to_dict(b)
    out["carrier"] = {"id": b.carrier.id, "legal_name": b.carrier.legal_name, "mc_number": b.carrier.mc_number}
    return out


# ---------- Postings ----------

def create_posting(s: Session, ctx: TenantContext, payload: PostingIn) -> LoadPosting:
    """Post a load, copying lane, weight and dates from its order's stops."""
    load = get_owned(s, Load, ctx, payload.load_id, "Load")
    stops = load.order.stops if load.order is not None else []
    pickup = next((st for st in stops if st.stop_type == "PICKUP"), None)
    delivery = stops[-1] if stops else None
    now = utcnow()

    p = LoadPosting(
        tenant_id=ctx.tenant_id,
        load_id=load.id,
        posting_type=payload.posting_type,
        visibility=payload.visibility or "ALL_CARRIERS",
        show_rate=payload.show_rate,
        rate_type=payload.rate_type,
        posted_rate=payload.posted_rate,
        rate_min=payload.rate_min,
        rate_max=payload.rate_max,
        origin_city=pickup.city if pickup else None,
        origin_state=pickup.state if pickup else None,
        origin_zip=pickup.postal_code if pickup else None,
        origin_lat=pickup.latitude if pickup else None,
        origin_lng=pickup.longitude if pickup else None,
        dest_city=delivery.city if delivery else None,
        dest_state=delivery.state if delivery else None,
        dest_zip=delivery.postal_code if delivery else None,
        dest_lat=delivery.latitude if delivery else None,
        dest_lng=delivery.longitude if delivery else None,
        equipment_type=load.equipment_type,
        weight_lbs=load.order.weight_lbs if load.order is not None else None,
        pickup_date=pickup.appointment_date if pickup else None,
        delivery_date=delivery.appointment_date if delivery else None,
        posted_at=now,
        expires_at=payload.expires_at or _posting_ttl(now),
        auto_refresh=True if payload.auto_refresh is None else payload.auto_refresh,
        refresh_interval=payload.refresh_interval or config.POSTING_REFRESH_HOURS,
        carrier_ids=payload.carrier_ids,
        created_by_id=ctx.user_id,
    )
    s.add(p)
    s.commit()
    logger.info("load %s posted to board as %s", load.load_number, p.id)
    return p


def search_postings(
    s: Session,
    ctx: TenantContext,
    origin_state: Optional[str] = None,
    origin_city: Optional[str] = None,
    dest_state: Optional[str] = None,
    dest_city: Optional[str] = None,
    equipment_type: Optional[str] = None,
    pickup_from: Optional[datetime] = None,
    pickup_to: Optional[datetime] = None,
    status: Optional[str] = None,
    page: int = 1,
    limit: int = 50,
) -> dict:
    stmt = scoped(LoadPosting, ctx).where(LoadPosting.status == (status or "ACTIVE"))
    if origin_state:
        stmt = stmt.where(LoadPosting.origin_state == origin_state)
    if origin_city:
        stmt = stmt.where(LoadPosting.origin_city.ilike(f"%{origin_city}%"))
    if dest_state:
        stmt = stmt.where(LoadPosting.dest_state == dest_state)
    if dest_city:
        stmt = stmt.where(LoadPosting.dest_city.ilike(f"%{dest_city}%"))
    if equipment_type:
        stmt = stmt.where(LoadPosting.equipment_type == equipment_type)
    if pickup_from:
        stmt = stmt.where(LoadPosting.pickup_date >= pickup_from)
    if pickup_to:
        stmt = stmt.where(LoadPosting.pickup_date <= pickup_to)
    rows, total, pages = paginate(s, stmt.order_by(LoadPosting.posted_at.desc(), LoadPosting.id.desc()), page, limit)
    return {
        "data": [posting_dict(s, p) for p in rows],
        "meta": {"total": total, "page": page, "limit": limit, "totalPages": pages},
    }


def update_posting(s: Session, ctx: TenantContext, posting_id: int, payload: PostingUpdate) -> LoadPosting:
    p = _get_posting(s, ctx, posting_id)
    apply(p, payload.model_dump(exclude_unset=True))
    s.commit()
    return p


def remove_posting(s: Session, ctx: TenantContext, posting_id: int) -> LoadPosting:
    p = _get_posting(s, ctx, posting_id)
    p.deleted_at = utcnow()
    s.commit()
    return p


def expire_posting(s: Session, ctx: TenantContext, posting_id: int) -> LoadPosting:
    p = _get_posting(s, ctx, posting_id)
    p.status = "EXPIRED"
    s.commit()
    return p


def refresh_posting(s: Session, ctx: TenantContext, posting_id: int) -> LoadPosting:
    p = _get_posting(s, ctx, posting_id)
    if p.status != "ACTIVE":
        raise BadRequest("Can only refresh active postings")
    now = utcnow()
    p.last_refreshed_at = now
    p.expires_at = _posting_ttl(now)
    s.commit()
    return p


def track_view(s: Session, ctx: TenantContext, posting_id: int, carrier_id: int,
               source: Optional[str] = None) -> dict:
    """One view row per carrier and posting; the raw counter counts every view."""
    p = _get_posting(s, ctx, posting_id)
    view = s.scalars(select(CarrierLoadView).where(
        CarrierLoadView.posting_id == p.id, CarrierLoadView.carrier_id == carrier_id)).first()
    if view is None:
        s.add(CarrierLoadView(tenant_id=ctx.tenant_id, posting_id=p.id, carrier_id=carrier_id,
                              viewed_at=utcnow(), source=source))
    else:
        view.viewed_at = utcnow()
        view.source = source
    p.view_count = (p.view_count or 0) + 1
    s.commit()
    return {"success": True}


def posting_metrics(s: Session, ctx: TenantContext, posting_id: int) -> dict:
    p = _get_posting(s, ctx, posting_id)
    out = posting_dict(s, p)
    return {
        "postingId": p.id,
        "viewCount": p.view_count,
        "uniqueViewers": out["unique_viewers"],
        "inquiryCount": p.inquiry_count,
        "bidCount": out["bid_count"],
        "status": p.status,
        "postedAt": out["posted_at"],
        "expiresAt": out["expires_at"],
    }


def expire_old_postings(s: Session, ctx: TenantContext) -> dict:
    result = s.execute(update(LoadPosting).where(
        LoadPosting.tenant_id == ctx.tenant_id,
        LoadPosting.status == "ACTIVE",
        LoadPosting.expires_at <= utcnow(),
    ).values(status="EXPIRED"))
    s.commit()
    return {"expiredCount": result.rowcount}


def auto_refresh_postings(s: Session, ctx: TenantContext) -> dict:
    now = utcnow()
    cutoff = now - timedelta(hours=config.POSTING_REFRESH_HOURS)
    rows = s.scalars(scoped(LoadPosting, ctx).where(
        LoadPosting.status == "ACTIVE",
        LoadPosting.auto_refresh.is_(True),
        or_(LoadPosting.last_refreshed_at.is_(None), LoadPosting.last_refreshed_at <= cutoff),
    )).all()
    for p in rows:
        p.last_refreshed_at = now
        p.expires_at = _posting_ttl(now)
    s.commit()
    return {"refreshedCount": len(rows)}


# ---------- Bids ----------

def create_bid(s: Session, ctx: TenantContext, payload: BidIn) -> LoadBid:
    p = _get_posting(s, ctx, payload.posting_id)
    if p.status != "ACTIVE":
        raise BadRequest("Cannot bid on inactive posting")
    get_owned(s, Carrier, ctx, payload.carrier_id, "Carrier")
    existing = s.scalars(select(LoadBid).where(
        LoadBid.posting_id == p.id,
        LoadBid.carrier_id == payload.carrier_id,
        LoadBid.status.in_(OPEN_BIDS),
    )).first()
    if existing is not None:
        raise BadRequest("Carrier already has an active bid on this posting")

    data = payload.model_dump()
    data["expires_at"] = data["expires_at"] or utcnow() + timedelta(hours=config.BID_TTL_HOURS)
    b = LoadBid(tenant_id=ctx.tenant_id, load_id=p.load_id, source="INTERNAL", submitted_at=utcnow(), **data)
    s.add(b)
    s.commit()
    return b


def list_bids(s: Session, ctx: TenantContext, posting_id: Optional[int] = None,
              carrier_id: Optional[int] = None) -> list:
    stmt = scoped(LoadBid, ctx)
    if posting_id:
        stmt = stmt.where(LoadBid.posting_id == posting_id)
    if carrier_id:
        stmt = stmt.where(LoadBid.carrier_id == carrier_id)
    return s.scalars(stmt.order_by(LoadBid.submitted_at.desc(), LoadBid.id.desc())).all()


def update_bid(s: Session, ctx: TenantContext, bid_id: int, payload: BidUpdate) -> LoadBid:
    b = _get_bid(s, ctx, bid_id)
    if b.status not in OPEN_BIDS:
        raise BadRequest("Cannot update bid in current status")
    apply(b, payload.model_dump(exclude_unset=True))
    s.commit()
    return b


def accept_bid(s: Session, ctx: TenantContext, bid_id: int) -> LoadBid:
    """Accept one bid; the rest close, the posting books and the load is tendered to the carrier."""
    b = _get_bid(s, ctx, bid_id)
    if b.status not in OPEN_BIDS:
        raise BadRequest("Can only accept pending or countered bids")
    now = utcnow()

    b.status = "ACCEPTED"
    b.accepted_at = now
    s.execute(update(LoadBid).where(
        LoadBid.posting_id == b.posting_id,
        LoadBid.id != b.id,
        LoadBid.status.in_(OPEN_BIDS),
    ).values(status="REJECTED", rejected_at=now, rejection_reason="Another bid was accepted"))

    posting = s.get(LoadPosting, b.posting_id)
    posting.status = "BOOKED"

    load = s.get(Load, b.load_id)
    if load is None:
        raise NotFound("Load not found")
    old = load.status
    load.carrier_id = b.carrier_id
    load.carrier_rate = b.bid_amount
    load.status = "TENDERED"
    load.truck_number = b.truck_number
    load.driver_name = b.driver_name
    load.driver_phone = b.driver_phone
    load.updated_by_id = ctx.user_id
    record_status(s, ctx, "LOAD", load.id, old, "TENDERED", f"Bid {b.id} accepted", load_id=load.id)
    s.commit()

    events.emit("bid.accepted", {"bidId": b.id, "postingId": b.posting_id, "loadId": b.load_id,
                                 "carrierId": b.carrier_id, "amount": b.bid_amount, "tenantId": ctx.tenant_id})
    return b


def reject_bid(s: Session, ctx: TenantContext, bid_id: int, payload: RejectBidIn) -> LoadBid:
    b = _get_bid(s, ctx, bid_id)
    if b.status not in OPEN_BIDS:
        raise BadRequest("Can only reject pending or countered bids")
    b.status = "REJECTED"
    b.rejected_at = utcnow()
    b.rejection_reason = payload.rejection_reason
    s.commit()
    return b


def counter_bid(s: Session, ctx: TenantContext, bid_id: int, payload: CounterBidIn) -> LoadBid:
    b = _get_bid(s, ctx, bid_id)
    if b.status != "PENDING":
        raise BadRequest("Can only counter pending bids")
    b.status = "COUNTERED"
    b.counter_amount = payload.counter_amount
    b.counter_notes = payload.counter_notes
    b.counter_at = utcnow()
    s.commit()
    return b


def withdraw_bid(s: Session, ctx: TenantContext, bid_id: int) -> LoadBid:
    b = _get_bid(s, ctx, bid_id)
    if b.status == "ACCEPTED":
        raise BadRequest("Cannot withdraw accepted bid")
    b.status = "WITHDRAWN"
    s.commit()
    return b


def bids_for_posting(s: Session, ctx: TenantContext, posting_id: int) -> list:
    _get_posting(s, ctx, posting_id)
    status_rank = case({st: i for i, st in enumerate(BID_STATUS_ORDER)}, value=LoadBid.status,
                       else_=len(BID_STATUS_ORDER))
    return s.scalars(scoped(LoadBid, ctx).where(LoadBid.posting_id == posting_id)
                     .order_by(status_rank, LoadBid.bid_amount)).all()


def expire_old_bids(s: Session, ctx: TenantContext) -> dict:
    result = s.execute(update(LoadBid).where(
        LoadBid.tenant_id == ctx.tenant_id,
        LoadBid.status.in_(OPEN_BIDS),
        LoadBid.expires_at <= utcnow(),
    ).values(status="EXPIRED"))
    s.commit()
    return {"expiredCount": result.rowcount}


# ---------- Routes ----------

@router.post("/postings", status_code=201)
def posting_create(payload: PostingIn, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return posting_dict(s, create_posting(s, ctx, payload))


@router.get("/postings")
def posting_index(
    origin_state: Optional[str] = None,
    origin_city: Optional[str] = None,
    dest_state: Optional[str] = None,
    dest_city: Optional[str] = None,
    equipment_type: Optional[str] = None,
    pickup_date_from: Optional[datetime] = None,
    pickup_date_to: Optional[datetime] = None,
    status: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    ctx: TenantContext = Depends(get_context),
):
    with SessionLocal() as s:
        return search_postings(s, ctx, origin_state, origin_city, dest_state, dest_city, equipment_type,
                               naive(pickup_date_from), naive(pickup_date_to), status, page, limit)


@router.post("/postings/expire-old")
def posting_expire_old(ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return expire_old_postings(s, ctx)


@router.post("/postings/auto-refresh")
def posting_auto_refresh(ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return auto_refresh_postings(s, ctx)


@router.get("/postings/{posting_id}")
def posting_show(posting_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return posting_dict(s, _get_posting(s, ctx, posting_id), detail=True)


@router.patch("/postings/{posting_id}")
def posting_update(posting_id: int, payload: PostingUpdate, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return posting_dict(s, update_posting(s, ctx, posting_id, payload))


@router.delete("/postings/{posting_id}")
def posting_remove(posting_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return to_dict(remove_posting(s, ctx, posting_id))


@router.post("/postings/{posting_id}/expire")
def posting_expire(posting_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return to_dict(expire_posting(s, ctx, posting_id))


@router.post("/postings/{posting_id}/refresh")
def posting_refresh(posting_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return to_dict(refresh_posting(s, ctx, posting_id))


@router.post("/postings/{posting_id}/view")
def posting_view(posting_id: int, payload: TrackViewIn, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return track_view(s, ctx, posting_id, payload.carrier_id, payload.source)


@router.get("/postings/{posting_id}/metrics")
def posting_metrics_(posting_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return posting_metrics(s, ctx, posting_id)


@router.get("/postings/{posting_id}/bids")
def posting_bids(posting_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return [bid_dict(b) for b in bids_for_posting(s, ctx, posting_id)]


@router.post("/bids", status_code=201)
def bid_create(payload: BidIn, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return bid_dict(create_bid(s, ctx, payload))


@router.get("/bids")
def bid_index(posting_id: Optional[int] = None, carrier_id: Optional[int] = None,
              ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return [bid_dict(b) for b in list_bids(s, ctx, posting_id, carrier_id)]


@router.post("/bids/expire-old")
def bid_expire_old(ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return expire_old_bids(s, ctx)


@router.get("/bids/carrier/{carrier_id}")
def bid_for_carrier(carrier_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return [bid_dict(b) for b in list_bids(s, ctx, carrier_id=carrier_id)]


@router.get("/bids/{bid_id}")
def bid_show(bid_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        b = _get_bid(s, ctx, bid_id)
        out = bid_dict(b)
        out["posting"] = posting_dict(s, s.get(LoadPosting, b.posting_id))
        return out


@router.patch("/bids/{bid_id}")
def bid_update(bid_id: int, payload: BidUpdate, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return bid_dict(update_bid(s, ctx, bid_id, payload))


@router.post("/bids/{bid_id}/accept")
def bid_accept(bid_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return bid_dict(accept_bid(s, ctx, bid_id))


@router.post("/bids/{bid_id}/reject")
def bid_reject(bid_id: int, payload: RejectBidIn, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return bid_dict(reject_bid(s, ctx, bid_id, payload))


@router.post("/bids/{bid_id}/counter")
def bid_counter(bid_id: int, payload: CounterBidIn, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return bid_dict(counter_bid(s, ctx, bid_id, payload))


@router.post("/bids/{bid_id}/withdraw")
def bid_withdraw(bid_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return bid_dict(withdraw_bid(s, ctx, bid_id))
