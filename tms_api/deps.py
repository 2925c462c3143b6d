from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException

from tms_api import config


@dataclass
class TenantContext:
    tenant_id: str
    user_id: str


def require_token(
    authorization: Optional[str] = Header(default=None),
    x_api_key: Optional[str] = Header(default=None),
) -> None:
    # accept either "Authorization: Bearer <token>" or "X-API-Key: <token>"
    if not config.API_TOKEN:
        return
    token = (authorization or "").replace("Bearer ", "") or (x_api_key or "")
    if token != config.API_TOKEN:
        raise HTTPException(status_code=401, detail="invalid token")


def get_context(
    x_tenant_id: Optional[str] = Header(default=None),
    x_user_id: Optional[str] = Header(default=None),
) -> TenantContext:
    if not x_tenant_id:
        raise HTTPException(status_code=400, detail="X-Tenant-Id header is required")
    return TenantContext(tenant_id=x_tenant_id, user_id=x_user_id or "system")
