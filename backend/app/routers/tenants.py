"""Super-admin tenant management endpoints."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import RoleGate, get_caller
from ..context import CallerContext
from ..database import get_db
from ..schemas import TenantPage, TenantRejectRequest, TenantResponse, TenantStatus, page_fields
from ..use_cases.tenant_lifecycle import (
    approve_tenant_use_case,
    freeze_tenant_use_case,
    list_tenants_use_case,
    reject_tenant_use_case,
)

router = APIRouter(prefix="/tenants", tags=["tenants"])


@router.get("", response_model=TenantPage)
def get_tenants(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[TenantStatus] = None,
    caller: CallerContext = Depends(RoleGate("tenants:list")),
    db: Session = Depends(get_db),
):
    tenants, total = list_tenants_use_case(db=db, caller=caller, status=status, page=page, limit=limit)
    return TenantPage(
        items=[TenantResponse.model_validate(t) for t in tenants],
        **page_fields(total, page, limit),
    )


@router.post("/{tenant_id}/approve", response_model=TenantResponse)
def approve_tenant(
    tenant_id: UUID,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    tenant = approve_tenant_use_case(db=db, caller=caller, tenant_id=tenant_id)
    return TenantResponse.model_validate(tenant)


@router.post("/{tenant_id}/reject", response_model=TenantResponse)
def reject_tenant(
    tenant_id: UUID,
    data: TenantRejectRequest,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    tenant = reject_tenant_use_case(db=db, caller=caller, tenant_id=tenant_id, reason=data.reason)
    return TenantResponse.model_validate(tenant)


@router.post("/{tenant_id}/freeze", response_model=TenantResponse)
def freeze_tenant(
    tenant_id: UUID,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    """Toggle a tenant between active and frozen."""
    tenant = freeze_tenant_use_case(db=db, caller=caller, tenant_id=tenant_id)
    return TenantResponse.model_validate(tenant)
