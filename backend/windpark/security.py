"""Request context resolution for tenant-scoped settlement operations.

Authentication and permission checks happen upstream; the gateway forwards
the resolved tenant and user as headers.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException, status

TENANT_HEADER = "X-Tenant-ID"
USER_HEADER = "X-User-ID"


@dataclass(frozen=True)
class TenantContext:
    tenant_id: str
    user_id: Optional[str] = None


def _normalize_tenant_id(raw: Optional[str]) -> str:
    if not raw or not raw.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Missing {TENANT_HEADER} header",
        )
    try:
        return str(uuid.UUID(raw.strip()))
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid {TENANT_HEADER} header",
        ) from exc


def require_tenant(
    x_tenant_id: Optional[str] = Header(default=None, alias=TENANT_HEADER),
    x_user_id: Optional[str] = Header(default=None, alias=USER_HEADER),
) -> TenantContext:
    """Resolve the tenant every settlement request is scoped to."""

    tenant_id = _normalize_tenant_id(x_tenant_id)
    user_id = x_user_id.strip() if x_user_id and x_user_id.strip() else None
    return TenantContext(tenant_id=tenant_id, user_id=user_id)
