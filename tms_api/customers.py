import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import or_
from sqlalchemy.orm import Session

from tms_api.crud import apply, get_owned, paginate, scoped, to_dict
from tms_api.db import SessionLocal, utcnow
from tms_api.deps import TenantContext, get_context
from tms_api.models import Customer
from tms_api.schemas import CustomerIn, CustomerUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/customers", tags=["customers"])


def create_customer(s: Session, ctx: TenantContext, payload: CustomerIn) -> Customer:
    row = Customer(tenant_id=ctx.tenant_id, **payload.model_dump())
    s.add(row)
    s.commit()
    logger.info("customer %s created for tenant %s", row.id, ctx.tenant_id)
    return row


def list_customers(s: Session, ctx: TenantContext, search: Optional[str] = None,
                   status: Optional[str] = None, page: int = 1, limit: int = 20) -> dict:
    stmt = scoped(Customer, ctx)
    if status:
        stmt = stmt.where(Customer.status == status)
    if search:
        like = f"%{search.lower()}%"
        stmt = stmt.where(or_(Customer.name.ilike(like), Customer.code.ilike(like), Customer.email.ilike(like)))
    rows, total, pages = paginate(s, stmt.order_by(Customer.name), page, limit)
    return {"data": [to_dict(r) for r in rows], "total": total, "page": page, "limit": limit, "totalPages": pages}


def update_customer(s: Session, ctx: TenantContext, customer_id: int, payload: CustomerUpdate) -> Customer:
    row = get_owned(s, Customer, ctx, customer_id, "Customer")
    apply(row, payload.model_dump(exclude_unset=True))
    s.commit()
    return row


def delete_customer(s: Session, ctx: TenantContext, customer_id: int) -> None:
    row = get_owned(s, Customer, ctx, customer_id, "Customer")
    row.deleted_at = utcnow()
    s.commit()


@router.post("", status_code=201)
def create(payload: CustomerIn, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return to_dict(create_customer(s, ctx, payload))


@router.get("")
def index(
    search: Optional[str] = None,
    status: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    ctx: TenantContext = Depends(get_context),
):
    with SessionLocal() as s:
        return list_customers(s, ctx, search, status, page, limit)


@router.get("/{customer_id}")
def show(customer_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return to_dict(get_owned(s, Customer, ctx, customer_id, "Customer"))


@router.patch("/{customer_id}")
def update(customer_id: int, payload: CustomerUpdate, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return to_dict(update_customer(s, ctx, customer_id, payload))


@router.delete("/{customer_id}", status_code=204)
def remove(customer_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        delete_customer(s, ctx, customer_id)
