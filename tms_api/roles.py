"""
Roles and the permission catalog they draw from.
"""

from typing import Dict, List

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from tms_api.crud import scoped, to_dict
from tms_api.db import SessionLocal
from tms_api.deps import TenantContext, get_context
from tms_api.errors import BadRequest, NotFound
from tms_api.models import Permission, Role
from tms_api.schemas import RoleIn, RoleUpdate, ToggleModuleIn, TogglePermissionIn

router = APIRouter(tags=["roles"])

MODULE_NAMES = {
    "users": "User Management",
    "roles": "Role Management",
    "tenant": "Tenant Settings",
    "crm": "CRM & Contacts",
    "sales": "Sales & Quotes",
    "tms": "Transportation (TMS)",
    "carriers": "Carrier Management",
    "accounting": "Accounting & Finance",
    "documents": "Document Management",
    "reports": "Reports & Analytics",
    "commission": "Commission Management",
    "other": "Other",
}

# (group, name, description)
PERMISSION_CATALOG = [
    ("users", "users.view", "View and search user accounts in the system"),
    ("users", "users.create", "Add new users to your organization"),
    ("users", "users.edit", "Update user information and settings"),
    ("users", "users.delete", "Remove users from the system"),
    ("users", "users.invite", "Send invitations to new users via email"),
    ("roles", "roles.view", "View all roles and their permissions"),
    ("roles", "roles.create", "Create new custom roles for your team"),
    ("roles", "roles.edit", "Modify existing roles and their permissions"),
    ("roles", "roles.delete", "Remove roles that are no longer needed"),
    ("tenant", "tenant.settings", "Configure company-wide settings and preferences"),
    ("crm", "crm.companies.view", "View customer and partner company information"),
    ("crm", "crm.companies.create", "Add new companies to your CRM"),
    ("crm", "crm.companies.edit", "Update company details and information"),
    ("crm", "crm.companies.delete", "Remove companies from your CRM"),
    ("crm", "crm.contacts.view", "View contact persons at customer companies"),
    ("crm", "crm.contacts.create", "Add new contacts to companies"),
    ("crm", "crm.contacts.edit", "Update contact information and details"),
    ("crm", "crm.contacts.delete", "Remove contacts from the system"),
    ("sales", "sales.quotes.view", "View price quotes sent to customers"),
    ("sales", "sales.quotes.create", "Create new quotes for potential sales"),
    ("sales", "sales.quotes.edit", "Modify existing quotes before approval"),
    ("sales", "sales.quotes.delete", "Remove quotes that are no longer needed"),
    ("sales", "sales.quotes.approve", "Approve quotes to send to customers"),
    ("tms", "tms.orders.view", "View transportation orders and shipments"),
    ("tms", "tms.orders.create", "Create new transportation orders"),
    ("tms", "tms.orders.edit", "Update order details and information"),
    ("tms", "tms.orders.delete", "Cancel or remove transportation orders"),
    ("tms", "tms.orders.assign", "Assign orders to carriers and drivers"),
    ("tms", "tms.loads.view", "View load details and tracking information"),
    ("tms", "tms.loads.create", "Create new loads for transportation"),
    ("tms", "tms.loads.edit", "Update load information and details"),
    ("tms", "tms.loads.dispatch", "Dispatch loads to carriers and drivers"),
    ("carriers", "carriers.view", "View carrier profiles and information"),
    ("carriers", "carriers.create", "Add new carriers to your network"),
    ("carriers", "carriers.edit", "Update carrier information and contracts"),
    ("carriers", "carriers.delete", "Remove carriers from your network"),
    ("carriers", "carriers.approve", "Approve new carriers to work with"),
    ("accounting", "accounting.invoices.view", "View customer and carrier invoices"),
    ("accounting", "accounting.invoices.create", "Create new invoices for services"),
    ("accounting", "accounting.invoices.edit", "Update invoice details before sending"),
    ("accounting", "accounting.invoices.approve", "Approve invoices for payment processing"),
    ("accounting", "accounting.payments.view", "View payment records and transaction history"),
    ("accounting", "accounting.payments.create", "Process and record new payments"),
    ("accounting", "accounting.payments.approve", "Approve payments for processing"),
    ("documents", "documents.view", "View and download uploaded documents"),
    ("documents", "documents.upload", "Upload new documents and files"),
    ("documents", "documents.delete", "Remove documents from the system"),
    ("reports", "reports.financial", "Access financial reports and revenue analytics"),
    ("reports", "reports.operations", "View operational performance and efficiency reports"),
    ("reports", "reports.sales", "Access sales metrics and performance reports"),
    ("commission", "commission.view", "View commission calculations and earnings"),
    ("commission", "commission.calculate", "Calculate commissions for sales and services"),
    ("commission", "commission.approve", "Approve commission payments to team members"),
]


def sync_catalog(s: Session) -> None:
    """Insert catalog permissions that are not stored yet."""
    known = set(s.scalars(select(Permission.name)).all())
    missing = [Permission(group=g, name=n, description=d) for g, n, d in PERMISSION_CATALOG if n not in known]
    if missing:
        s.add_all(missing)
        s.commit()


def list_permissions(s: Session) -> List[Permission]:
    sync_catalog(s)
    return s.scalars(select(Permission).order_by(Permission.id)).all()


def group_permissions(perms: List[Permission]) -> Dict[str, dict]:
    """Permissions keyed by module, in first-seen order; ungrouped ones land in "other"."""
    groups: Dict[str, dict] = {}
    for p in perms:
        key = p.group or "other"
        if key not in groups:
            groups[key] = {"module": key, "displayName": MODULE_NAMES.get(key, key.title()), "permissions": []}
        groups[key]["permissions"].append(to_dict(p))
    return groups


def module_permissions(perms: List[Permission], module: str) -> List[str]:
    return [p.name for p in perms if (p.group or "other") == module]


def toggle_permission(selected: List[str], name: str, checked: bool) -> List[str]:
    if checked:
        return selected if name in selected else selected + [name]
    return [x for x in selected if x != name]


def toggle_module(selected: List[str], names: List[str], checked: bool) -> List[str]:
    if checked:
        return selected + [n for n in names if n not in selected]
    return [x for x in selected if x not in names]


def coverage(perms: List[Permission], selected: List[str]) -> dict:
    total = len(perms)
    known = {p.name for p in perms}
    chosen = {n for n in selected if n in known}
    by_module = {}
    for key, group in group_permissions(perms).items():
        names = [p["name"] for p in group["permissions"]]
        picked = sum(1 for n in names if n in selected)
        by_module[key] = {
            "displayName": group["displayName"],
            "total": len(names),
            "selected": picked,
            "allSelected": picked == len(names),
            "someSelected": 0 < picked < len(names),
        }
    return {
        "total": total,
        "selected": len(chosen),
        "percent": int(len(chosen) * 100 / total + 0.5) if total else 0,
        "modules": by_module,
    }


# ---------- Roles ----------

def _get_role(s: Session, ctx: TenantContext, role_id: int) -> Role:
    role = s.scalars(scoped(Role, ctx).where(Role.id == role_id)).first()
    if role is None:
        raise NotFound(f"Role with ID {role_id} not found")
    return role


def _editable(s: Session, ctx: TenantContext, role_id: int) -> Role:
    role = _get_role(s, ctx, role_id)
    if role.is_system:
        raise BadRequest("Cannot modify system roles")
    return role


def create_role(s: Session, ctx: TenantContext, payload: RoleIn) -> Role:
    role = Role(tenant_id=ctx.tenant_id, name=payload.name, description=payload.description,
                permissions=list(dict.fromkeys(payload.permissions)), is_system=False)
    s.add(role)
    s.commit()
    return role


def list_roles(s: Session, ctx: TenantContext) -> List[Role]:
    return s.scalars(scoped(Role, ctx).order_by(Role.is_system.desc(), Role.name)).all()


def update_role(s: Session, ctx: TenantContext, role_id: int, payload: RoleUpdate) -> Role:
    role = _editable(s, ctx, role_id)
    data = payload.model_dump(exclude_unset=True)
    if data.get("name"):
        role.name = data["name"]
    if "description" in data:
        role.description = data["description"]
    if data.get("permissions") is not None:
        role.permissions = list(dict.fromkeys(data["permissions"]))
    s.commit()
    return role


def delete_role(s: Session, ctx: TenantContext, role_id: int) -> dict:
    role = _get_role(s, ctx, role_id)
    if role.is_system:
        raise BadRequest("Cannot delete system roles")
    s.delete(role)
    s.commit()
    return {"success": True}


def set_permission(s: Session, ctx: TenantContext, role_id: int, payload: TogglePermissionIn) -> Role:
    role = _editable(s, ctx, role_id)
    known = {p.name for p in list_permissions(s)}
    if payload.permission not in known:
        raise BadRequest(f"Unknown permission {payload.permission}")
    role.permissions = toggle_permission(list(role.permissions or []), payload.permission, payload.checked)
    s.commit()
    return role


def set_module(s: Session, ctx: TenantContext, role_id: int, payload: ToggleModuleIn) -> Role:
    role = _editable(s, ctx, role_id)
    names = module_permissions(list_permissions(s), payload.module)
    if not names:
        raise BadRequest(f"Unknown module {payload.module}")
    role.permissions = toggle_module(list(role.permissions or []), names, payload.checked)
    s.commit()
    return role


def role_coverage(s: Session, ctx: TenantContext, role_id: int) -> dict:
    role = _get_role(s, ctx, role_id)
    return coverage(list_permissions(s), list(role.permissions or []))


# ---------- Routes ----------

@router.get("/permissions")
def permissions():
    with SessionLocal() as s:
        return {"data": [to_dict(p) for p in list_permissions(s)]}


@router.get("/permissions/grouped")
def permissions_grouped():
    with SessionLocal() as s:
        return list(group_permissions(list_permissions(s)).values())


@router.post("/roles", status_code=201)
def role_create(payload: RoleIn, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return to_dict(create_role(s, ctx, payload))


@router.get("/roles")
def role_index(ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return [to_dict(r) for r in list_roles(s, ctx)]


@router.get("/roles/{role_id}")
def role_show(role_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return to_dict(_get_role(s, ctx, role_id))


@router.patch("/roles/{role_id}")
def role_update(role_id: int, payload: RoleUpdate, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return to_dict(update_role(s, ctx, role_id, payload))


@router.delete("/roles/{role_id}")
def role_remove(role_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return delete_role(s, ctx, role_id)


@router.post("/roles/{role_id}/permissions/toggle")
def role_toggle_permission(role_id: int, payload: TogglePermissionIn, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return to_dict(set_permission(s, ctx, role_id, payload))


@router.post("/roles/{role_id}/modules/toggle")
def role_toggle_module(role_id: int, payload: ToggleModuleIn, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return to_dict(set_module(s, ctx, role_id, payload))


@router.get("/roles/{role_id}/coverage")
def role_coverage_(role_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return role_coverage(s, ctx, role_id)
