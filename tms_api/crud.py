"""Shared helpers for tenant-scoped queries and row serialization."""

import math
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, Optional, Tuple, Type

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from tms_api.deps import TenantContext
from tms_api.errors import NotFound


def iso(v: Optional[datetime]) -> Optional[str]:
    if v is None:
        return None
    return v.isoformat() + "Z"


def to_dict(row, exclude: Iterable[str] = ()) -> Dict[str, Any]:
    """Column values of an ORM row, datetimes rendered as ISO-8601 UTC."""
    out = {}
    for col in row.__table__.columns:
        if col.key in exclude:
            continue
        v = getattr(row, col.key)
        if isinstance(v, datetime):
            v = iso(v)
        elif isinstance(v, date):
            v = v.isoformat()
        out[col.key] = v
    return out


def scoped(model: Type, ctx: TenantContext) -> Select:
    """SELECT over the tenant's live rows of ``model``."""
    stmt = select(model).where(model.tenant_id == ctx.tenant_id)
    if hasattr(model, "deleted_at"):
        stmt = stmt.where(model.deleted_at.is_(None))
    return stmt


def get_owned(s: Session, model: Type, ctx: TenantContext, row_id: int, label: str):
    row = s.scalars(scoped(model, ctx).where(model.id == row_id)).first()
    if row is None:
        raise NotFound(f"{label} not found")
    return row


def count(s: Session, stmt: Select) -> int:
    return s.scalar(select(func.count()).select_from(stmt.order_by(None).subquery())) or 0


def page_window(page: int, limit: int) -> Tuple[int, int]:
    page = max(page, 1)
    limit = max(limit, 1)
    return page, limit


def paginate(s: Session, stmt: Select, page: int, limit: int):
    """Run ``stmt`` for one page. Returns (rows, total, total_pages)."""
    page, limit = page_window(page, limit)
    total = count(s, stmt)
    rows = s.scalars(stmt.offset((page - 1) * limit).limit(limit)).all()
    return rows, total, math.ceil(total / limit) if total else 0


def apply(row, data: Dict[str, Any]) -> Dict[str, Any]:
    """Set attributes from ``data``; returns the fields that changed."""
    changed = {}
    for k, v in data.items():
        if getattr(row, k) != v:
            changed[k] = v
            setattr(row, k, v)
    return changed


def naive(v: Optional[datetime]) -> Optional[datetime]:
    """Drop tzinfo after converting to UTC; stored timestamps are naive UTC."""
    if v is None or v.tzinfo is None:
        return v
    return v.astimezone(timezone.utc).replace(tzinfo=None)
