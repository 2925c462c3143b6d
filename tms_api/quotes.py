"""
Sales quotes and their conversion into orders.
"""

import random
import string
import time
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import or_
from sqlalchemy.orm import Session

from tms_api.crud import apply, paginate, scoped, to_dict
from tms_api.db import SessionLocal, utcnow
from tms_api.deps import TenantContext, get_context
from tms_api.errors import BadRequest, NotFound
from tms_api.models import Customer, Quote, QuoteStop
from tms_api.orders import create_from_quote, order_dict
from tms_api.schemas import QuoteIn, QuoteUpdate

router = APIRouter(prefix="/quotes", tags=["quotes"])

PRICING_FIELDS = ("linehaul_rate", "fuel_surcharge", "accessorials_total")

_B36 = string.digits + string.ascii_uppercase


def _base36(n: int) -> str:
    out = ""
    while n:
        n, r = divmod(n, 36)
        out = _B36[r] + out
    return out or "0"


def new_quote_number() -> str:
    """QT-<epoch millis in base 36>-<4 random base-36 chars>."""
    stamp = _base36(int(time.time() * 1000))
    return f"QT-{stamp}-{''.join(random.choices(_B36, k=4))}"


def quote_total(linehaul: Optional[float], fuel: Optional[float], accessorials: Optional[float],
                given: Optional[float] = None) -> float:
    return given or (linehaul or 0) + (fuel or 0) + (accessorials or 0)


def quote_dict(s: Session, q: Quote) -> dict:
    out = to_dict(q)
    customer = s.get(Customer, q.customer_id) if q.customer_id else None
    out["customer"] = {"id": customer.id, "name": customer.name} if customer else None
    out["stops"] = [to_dict(st) for st in q.stops]
    return out


def _get_quote(s: Session, ctx: TenantContext, quote_id: int) -> Quote:
    q = s.scalars(scoped(Quote, ctx).where(Quote.id == quote_id)).first()
    if q is None:
        raise NotFound(f"Quote with ID {quote_id} not found")
    return q


def create_quote(s: Session, ctx: TenantContext, payload: QuoteIn) -> Quote:
    data = payload.model_dump(exclude={"stops"})
    for k in PRICING_FIELDS:
        data[k] = data[k] or 0
    data["total_amount"] = quote_total(data["linehaul_rate"], data["fuel_surcharge"],
                                       data["accessorials_total"], data["total_amount"])
    q = Quote(
        tenant_id=ctx.tenant_id,
        quote_number=new_quote_number(),
        status="DRAFT",
        sales_rep_id=ctx.user_id,
        created_by_id=ctx.user_id,
        **data,
    )
    for st in payload.stops:
        stop = st.model_dump()
        stop["country"] = stop["country"] or "USA"
        q.stops.append(QuoteStop(**stop))
    s.add(q)
    s.commit()
    return q


def list_quotes(s: Session, ctx: TenantContext, status: Optional[str] = None, customer_id: Optional[int] = None,
                sales_rep_id: Optional[str] = None, search: Optional[str] = None,
                page: int = 1, limit: int = 20) -> dict:
    stmt = scoped(Quote, ctx)
    if status:
        stmt = stmt.where(Quote.status == status)
    if customer_id:
        stmt = stmt.where(Quote.customer_id == customer_id)
    if sales_rep_id:
        stmt = stmt.where(Quote.sales_rep_id == sales_rep_id)
    if search:
        like = f"%{search}%"
        stmt = stmt.where(or_(Quote.quote_number.ilike(like), Quote.customer_name.ilike(like)))
    rows, total, pages = paginate(s, stmt.order_by(Quote.created_at.desc(), Quote.id.desc()), page, limit)
    return {"data": [quote_dict(s, q) for q in rows], "total": total, "page": page, "limit": limit,
            "totalPages": pages}


def _ensure_editable(q: Quote) -> None:
    if q.status == "CONVERTED":
        raise BadRequest("Converted quotes cannot be modified")


def update_quote(s: Session, ctx: TenantContext, quote_id: int, payload: QuoteUpdate) -> Quote:
    q = _get_quote(s, ctx, quote_id)
    _ensure_editable(q)
    data = payload.model_dump(exclude_unset=True)
    for k in PRICING_FIELDS:
        if k in data and data[k] is None:
            data[k] = 0
    if data.get("total_amount") is None:
        data.pop("total_amount", None)
    if any(k in data for k in PRICING_FIELDS):
        # unsent pricing fields keep their stored values
        merged = {k: data.get(k, getattr(q, k)) for k in PRICING_FIELDS}
        data["total_amount"] = quote_total(merged["linehaul_rate"], merged["fuel_surcharge"],
                                           merged["accessorials_total"], data.get("total_amount"))
    apply(q, data)
    q.updated_by_id = ctx.user_id
    s.commit()
    return q


def delete_quote(s: Session, ctx: TenantContext, quote_id: int) -> dict:
    q = _get_quote(s, ctx, quote_id)
    _ensure_editable(q)
    q.deleted_at = utcnow()
    q.updated_by_id = ctx.user_id
    s.commit()
    return {"success": True}


def convert_to_order(s: Session, ctx: TenantContext, quote_id: int):
    q = _get_quote(s, ctx, quote_id)
    return create_from_quote(s, ctx, q.id, order_number=f"ORD-{q.quote_number}")


@router.post("", status_code=201)
def create(payload: QuoteIn, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return quote_dict(s, create_quote(s, ctx, payload))


@router.get("")
def index(
    status: Optional[str] = None,
    customer_id: Optional[int] = None,
    sales_rep_id: Optional[str] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    ctx: TenantContext = Depends(get_context),
):
    with SessionLocal() as s:
        return list_quotes(s, ctx, status, customer_id, sales_rep_id, search, page, limit)


@router.get("/{quote_id}")
def show(quote_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return quote_dict(s, _get_quote(s, ctx, quote_id))


@router.patch("/{quote_id}")
def update(quote_id: int, payload: QuoteUpdate, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return quote_dict(s, update_quote(s, ctx, quote_id, payload))


@router.delete("/{quote_id}")
def remove(quote_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return delete_quote(s, ctx, quote_id)


@router.post("/{quote_id}/convert", status_code=201)
def convert(quote_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return order_dict(convert_to_order(s, ctx, quote_id))
