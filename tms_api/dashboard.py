"""
Operations dashboard: KPI cards, charts, alerts and the needs-attention list.

Also serves a small server-rendered page (Chart.js) that reads these
endpoints for one tenant.
"""

import calendar
import math
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from fastapi import APIRouter, Depends, Query
from fastapi.responses import HTMLResponse
from sqlalchemy import and_, func, or_, select
from sqlalchemy.orm import Session

from tms_api.config import TRACKING_SILENCE_HOURS
from tms_api.crud import iso, scoped
from tms_api.db import SessionLocal, utcnow
from tms_api.deps import TenantContext, get_context
from tms_api.loads import endpoints
from tms_api.models import Load, Order, StatusHistory

router = APIRouter(prefix="/dashboard", tags=["dashboard"])

# not terminal
ACTIVE_STATUSES = [
    "PLANNING", "PENDING", "TENDERED", "ACCEPTED", "DISPATCHED",
    "AT_PICKUP", "PICKED_UP", "IN_TRANSIT", "AT_DELIVERY",
]
MOVING = ["IN_TRANSIT", "PICKED_UP"]
UNASSIGNED = ["PENDING", "PLANNING"]

STATUS_COLORS = {
    "PENDING": "#94a3b8",
    "PLANNING": "#a78bfa",
    "TENDERED": "#fbbf24",
    "ACCEPTED": "#60a5fa",
    "DISPATCHED": "#38bdf8",
    "AT_PICKUP": "#818cf8",
    "PICKED_UP": "#34d399",
    "IN_TRANSIT": "#22d3ee",
    "AT_DELIVERY": "#f97316",
    "DELIVERED": "#10b981",
    "COMPLETED": "#6ee7b7",
    "CANCELLED": "#ef4444",
}
DEFAULT_COLOR = "#94a3b8"


# ---------- Helpers ----------

def round1(x: float) -> float:
    """One decimal, halves rounded up."""
    return math.floor(x * 10 + 0.5) / 10


def pct_change(current: float, previous: float) -> float:
    if previous == 0:
        return 100 if current > 0 else 0
    return round1((current - previous) / previous * 100)


def _day_start(d: datetime) -> datetime:
    return d.replace(hour=0, minute=0, second=0, microsecond=0)


def _day_end(d: datetime) -> datetime:
    return d.replace(hour=23, minute=59, second=59, microsecond=999000)


def _month_back(d: datetime) -> datetime:
    year, month = (d.year - 1, 12) if d.month == 1 else (d.year, d.month - 1)
    return d.replace(year=year, month=month, day=min(d.day, calendar.monthrange(year, month)[1]))


def period_range(period: str, now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """[start, end] of today, this week (from Sunday) or this month."""
    now = now or utcnow()
    start = now
    if period == "thisWeek":
        start = now - timedelta(days=(now.weekday() + 1) % 7)
    elif period == "thisMonth":
        start = now.replace(day=1)
    return _day_start(start), _day_end(now)


def comparison_range(comparison: str, current_start: datetime) -> Tuple[datetime, datetime]:
    if comparison == "lastWeek":
        start, end = current_start - timedelta(days=7), current_start - timedelta(days=1)
    elif comparison == "lastMonth":
        start, end = _month_back(current_start), current_start - timedelta(days=1)
    else:
        start = end = current_start - timedelta(days=1)
    return _day_start(start), _day_end(end)


def time_since(when: datetime, now: Optional[datetime] = None) -> str:
    diff = ((now or utcnow()) - when).total_seconds()
    hours = math.floor(diff / 3600)
    minutes = math.floor((diff % 3600) / 60)
    if hours > 24:
        return f"{hours // 24}d {hours % 24}h"
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def _place(stop) -> str:
    return f"{stop.city}, {stop.state}" if stop else "Unknown"


# ---------- KPIs ----------

def _loads(ctx: TenantContext, scope: str):
    stmt = scoped(Load, ctx)
    if scope == "personal":
        stmt = stmt.where(Load.created_by_id == ctx.user_id)
    return stmt


def _count(s: Session, stmt) -> int:
    return s.scalar(select(func.count()).select_from(stmt.subquery())) or 0


def _money(s: Session, ctx: TenantContext, scope: str, start: datetime, end: datetime) -> Tuple[float, float]:
    rows = s.scalars(_loads(ctx, scope).where(Load.created_at.between(start, end))).all()
    revenue = sum(float(l.order.total_charges or 0) if l.order else 0 for l in rows)
    cost = sum(float(l.total_cost or 0) for l in rows)
    return revenue, cost


def _margin(revenue: float, cost: float) -> float:
    return (revenue - cost) / revenue * 100 if revenue > 0 else 0


def kpis(s: Session, ctx: TenantContext, period: str = "today", scope: str = "all",
         comparison: str = "yesterday") -> dict:
    start, end = period_range(period)
    cstart, cend = comparison_range(comparison, start)
    base = _loads(ctx, scope)

    active = _count(s, base.where(Load.status.in_(ACTIVE_STATUSES)))
    dispatched = _count(s, base.where(Load.dispatched_at.between(start, end)))
    delivered = _count(s, base.where(Load.delivered_at.between(start, end)))
    c_active = _count(s, base.where(Load.status.in_(ACTIVE_STATUSES), Load.created_at.between(cstart, cend)))
    c_dispatched = _count(s, base.where(Load.dispatched_at.between(cstart, cend)))
    c_delivered = _count(s, base.where(Load.delivered_at.between(cstart, cend)))

    revenue, cost = _money(s, ctx, scope, start, end)
    c_revenue, c_cost = _money(s, ctx, scope, cstart, cend)
    margin, c_margin = _margin(revenue, cost), _margin(c_revenue, c_cost)

    done = s.scalars(base.where(Load.delivered_at.between(start, end))).all()
    on_time = sum(1 for l in done if l.order and l.order.required_delivery_date
                  and l.delivered_at <= l.order.required_delivery_date)
    on_time_pct = on_time / len(done) * 100 if done else 100

    return {
        "activeLoads": active,
        "activeLoadsChange": pct_change(active, c_active),
        "dispatchedToday": dispatched,
        "dispatchedTodayChange": pct_change(dispatched, c_dispatched),
        "deliveredToday": delivered,
        "deliveredTodayChange": pct_change(delivered, c_delivered),
        "onTimePercentage": round1(on_time_pct),
        "onTimePercentageChange": 0,
        "averageMargin": round1(margin),
        "averageMarginChange": round1(margin - c_margin),
        "revenueMTD": math.floor(revenue * 100 + 0.5) / 100,
        "revenueMTDChange": pct_change(revenue, c_revenue),
    }


# ---------- Charts ----------

def charts(s: Session, ctx: TenantContext, period: str = "today") -> dict:
    by_status = s.execute(
        select(Load.status, func.count(Load.id))
        .where(Load.tenant_id == ctx.tenant_id, Load.deleted_at.is_(None))
        .group_by(Load.status)
    ).all()
    loads_by_status = [{"status": st, "count": n, "color": STATUS_COLORS.get(st, DEFAULT_COLOR)}
                       for st, n in by_status]

    days = 30 if period == "thisMonth" else 7
    since = _day_start(utcnow() - timedelta(days=days))
    orders = s.execute(
        select(Order.order_date, Order.total_charges)
        .where(Order.tenant_id == ctx.tenant_id, Order.deleted_at.is_(None), Order.order_date >= since)
        .order_by(Order.order_date)
    ).all()
    trend = {}
    for when, charges in orders:
        key = when.date().isoformat()
        trend[key] = trend.get(key, 0) + float(charges or 0)
    return {"loadsByStatus": loads_by_status,
            "revenueTrend": [{"date": d, "revenue": r} for d, r in trend.items()]}


# ---------- Alerts and attention ----------

def alerts(s: Session, ctx: TenantContext) -> List[dict]:
    now = utcnow()
    silent_since = now - timedelta(hours=TRACKING_SILENCE_HOURS)
    out = []

    late = s.scalars(scoped(Load, ctx).where(
        Load.status.in_(["IN_TRANSIT", "AT_PICKUP", "PICKED_UP"]), Load.eta < now).limit(20)).all()
    for l in late:
        out.append({"id": f"alert-eta-{l.id}", "severity": "warning", "entityType": "load", "entityId": l.id,
                    "entityNumber": l.load_number, "message": f"ETA past due (was {l.eta:%Y-%m-%d})",
                    "createdAt": iso(l.created_at), "actionType": "update"})

    silent = s.scalars(scoped(Load, ctx).where(
        Load.status.in_(MOVING), Load.last_tracking_update < silent_since).limit(20)).all()
    for l in silent:
        out.append({"id": f"alert-checkcall-{l.id}", "severity": "critical", "entityType": "load",
                    "entityId": l.id, "entityNumber": l.load_number,
                    "message": f"No check call in {TRACKING_SILENCE_HOURS}+ hours",
                    "createdAt": iso(l.created_at), "actionType": "call"})

    bare = s.scalars(scoped(Load, ctx).where(
        Load.status.in_(["PENDING", "PLANNING", "TENDERED"]), Load.carrier_id.is_(None),
        Load.created_at < silent_since).limit(10)).all()
    for l in bare:
        out.append({"id": f"alert-nocarrier-{l.id}", "severity": "warning", "entityType": "load",
                    "entityId": l.id, "entityNumber": l.load_number, "message": "No carrier assigned",
                    "createdAt": iso(l.created_at), "actionType": "update"})
    return out


def needs_attention(s: Session, ctx: TenantContext) -> List[dict]:
    """Loads with a late ETA, silent tracking or no carrier; one issue per load, worst first."""
    now = utcnow()
    silent_since = now - timedelta(hours=TRACKING_SILENCE_HOURS)
    rows = s.scalars(scoped(Load, ctx).where(
        Load.status.in_(ACTIVE_STATUSES),
        or_(
            and_(Load.eta < now, Load.status.in_(MOVING)),
            and_(Load.last_tracking_update < silent_since, Load.status.in_(MOVING)),
            and_(Load.carrier_id.is_(None), Load.status.in_(UNASSIGNED), Load.created_at < silent_since),
        ),
    ).order_by(Load.id).limit(20)).all()

    items = []
    for l in rows:
        pickup, delivery = endpoints(l.stops)
        item = {"id": l.id, "loadNumber": l.load_number, "origin": _place(pickup), "destination": _place(delivery)}
        if l.eta and l.eta < now and l.status in MOVING:
            item.update(issue="ETA past due", severity="critical", issueType="eta_past_due",
                        timeSinceIssue=time_since(l.eta, now))
        elif l.last_tracking_update and l.last_tracking_update < silent_since and l.status in MOVING:
            item.update(issue=f"No check call in {TRACKING_SILENCE_HOURS}+ hours", severity="critical",
                        issueType="no_check_call", timeSinceIssue=time_since(l.last_tracking_update, now))
        elif l.carrier_id is None:
            item.update(issue="No carrier assigned", severity="warning", issueType="no_carrier",
                        timeSinceIssue=time_since(l.created_at, now))
        else:
            continue
        items.append(item)
    return items


def activity(s: Session, ctx: TenantContext, period: str = "today") -> List[dict]:
    start, end = period_range(period)
    rows = s.scalars(scoped(StatusHistory, ctx).where(
        StatusHistory.created_at.between(start, end),
        func.lower(StatusHistory.entity_type).in_(["load", "order"]),
    ).order_by(StatusHistory.created_at.desc(), StatusHistory.id.desc()).limit(50)).all()

    load_ids = {h.entity_id for h in rows if h.entity_type.lower() == "load"}
    order_ids = {h.entity_id for h in rows if h.entity_type.lower() == "order"}
    load_numbers = dict(s.execute(select(Load.id, Load.load_number).where(Load.id.in_(load_ids))).all()) \
        if load_ids else {}
    order_numbers = dict(s.execute(select(Order.id, Order.order_number).where(Order.id.in_(order_ids))).all()) \
        if order_ids else {}

    out = []
    for h in rows:
        kind = h.entity_type.lower()
        numbers = load_numbers if kind == "load" else order_numbers
        out.append({
            "id": h.id,
            "timestamp": iso(h.created_at),
            "userName": h.created_by_id or "System",
            "userId": h.created_by_id or "",
            "entityType": kind,
            "entityId": h.entity_id,
            "entityNumber": numbers.get(h.entity_id, str(h.entity_id)),
            "action": f"{h.old_status or 'NEW'} -> {h.new_status}",
            "description": h.notes or f"Status changed to {h.new_status}",
        })
    return out


# ---------- Routes ----------

PERIOD = "^(today|thisWeek|thisMonth)$"
COMPARISON = "^(yesterday|lastWeek|lastMonth)$"


@router.get("/kpis")
def kpis_(
    period: str = Query("today", pattern=PERIOD),
    scope: str = Query("all", pattern="^(all|personal)$"),
    comparison_period: str = Query("yesterday", pattern=COMPARISON),
    ctx: TenantContext = Depends(get_context),
):
    with SessionLocal() as s:
        return {"data": kpis(s, ctx, period, scope, comparison_period)}


@router.get("/charts")
def charts_(period: str = Query("today", pattern=PERIOD), ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return {"data": charts(s, ctx, period)}


@router.get("/alerts")
def alerts_(ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return {"data": alerts(s, ctx)}


@router.get("/activity")
def activity_(period: str = Query("today", pattern=PERIOD), ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return {"data": activity(s, ctx, period)}


@router.get("/needs-attention")
def needs_attention_(ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return {"data": needs_attention(s, ctx)}


DASHBOARD_HTML = """
<!doctype html>
<html>
<head>
  <meta charset="utf-8"/>
  <title>Operations Dashboard</title>
  <meta name="viewport" content="width=device-width, initial-scale=1"/>
  <script src="https://cdn.jsdelivr.net/npm/chart.js"></script>
  <style>
    body{font-family:system-ui,-apple-system,Segoe UI,Roboto,sans-serif;margin:24px}
    .cards{display:grid;grid-template-columns:repeat(3,minmax(240px,1fr));gap:16px;margin:16px 0 32px}
    .card{padding:16px;border:1px solid #e5e7eb;border-radius:12px;box-shadow:0 1px 2px rgba(0,0,0,.04)}
    .label{color:#6b7280;margin-bottom:6px}
    .num{font-size:28px;font-weight:700}
    .chg{font-size:13px;color:#6b7280}
    table{border-collapse:collapse;width:100%}
    td,th{padding:6px 8px;border-bottom:1px solid #e5e7eb;text-align:left}
    .critical{color:#ef4444;font-weight:600}
    .warning{color:#f59e0b;font-weight:600}
    @media (max-width:1100px){ .cards{grid-template-columns:repeat(auto-fit,minmax(240px,1fr));} }
    canvas{max-height:360px}
  </style>
</head>
<body>
  <h1 style="margin-bottom:8px;">Operations Dashboard</h1>
  <div class="cards" id="kpis"></div>

  <div class="cards" style="grid-template-columns:1fr 1fr;">
    <div class="card"><canvas id="byStatus"></canvas></div>
    <div class="card"><canvas id="revenue"></canvas></div>
  </div>

  <div class="card">
    <h3 style="margin-top:0">Needs attention</h3>
    <table><thead><tr><th>Load</th><th>Lane</th><th>Issue</th><th>Since</th></tr></thead>
    <tbody id="attention"></tbody></table>
  </div>

  <script>
  const params = new URLSearchParams(location.search);
  const headers = {'X-Tenant-Id': params.get('tenant') || 'demo'};
  if (params.get('token')) headers['Authorization'] = 'Bearer ' + params.get('token');
  const period = params.get('period') || 'today';

  async function get(path) {
    const res = await fetch('/v1/dashboard/' + path, {headers});
    return (await res.json()).data;
  }

  async function loadDashboard() {
    const [k, c, a] = await Promise.all([
      get('kpis?period=' + period), get('charts?period=' + period), get('needs-attention')
    ]);

    const cards = [
      ['Active loads', k.activeLoads, k.activeLoadsChange],
      ['Dispatched', k.dispatchedToday, k.dispatchedTodayChange],
      ['Delivered', k.deliveredToday, k.deliveredTodayChange],
      ['On-time', k.onTimePercentage + '%', k.onTimePercentageChange],
      ['Avg margin', k.averageMargin + '%', k.averageMarginChange],
      ['Revenue', '$' + Math.round(k.revenueMTD), k.revenueMTDChange],
    ];
    document.getElementById('kpis').innerHTML = cards.map(([label, v, chg]) =>
      `<div class="card"><div class="label">${label}</div><div class="num">${v}</div>` +
      `<div class="chg">${chg >= 0 ? '+' : ''}${chg}%</div></div>`).join('');

    new Chart(document.getElementById('byStatus'), {
      type: 'bar',
      data: {
        labels: c.loadsByStatus.map(x => x.status),
        datasets: [{
          label: 'Loads',
          data: c.loadsByStatus.map(x => x.count),
          backgroundColor: c.loadsByStatus.map(x => x.color)
        }]
      },
      options: {
        plugins: { legend: { display: false } },
        scales: { y: { beginAtZero: true, ticks: { precision: 0 } } }
      }
    });

    new Chart(document.getElementById('revenue'), {
      type: 'line',
      data: {
        labels: c.revenueTrend.map(x => x.date),
        datasets: [{ label: 'Revenue', data: c.revenueTrend.map(x => x.revenue), borderColor: '#22d3ee' }]
      }
    });

    document.getElementById('attention').innerHTML = a.map(i =>
      `<tr><td>${i.loadNumber}</td><td>${i.origin} &rarr; ${i.destination}</td>` +
      `<td class="${i.severity}">${i.issue}</td><td>${i.timeSinceIssue || ''}</td></tr>`).join('');
  }
  loadDashboard();
  </script>
</body>
</html>
"""


page_router = APIRouter(tags=["dashboard"])


@page_router.get("/dashboard", response_class=HTMLResponse)
def dashboard_page():
    return HTMLResponse(content=DASHBOARD_HTML)
