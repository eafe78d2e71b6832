"""Audit event endpoints."""
from typing import Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import RoleGate
from ..context import CallerContext
from ..database import get_db
from ..models import AuditEvent
from ..schemas import AuditEventResponse
from ..security import resolve_tenant_scope

router = APIRouter(prefix="/audit-events", tags=["audit"])


@router.get("", response_model=list[AuditEventResponse])
def get_audit_events(
    entity_type: Optional[Literal["task", "tenant", "user"]] = None,
    entity_id: Optional[UUID] = None,
    tenant_id: Optional[UUID] = None,
    limit: int = Query(200, ge=1, le=1000),
    caller: CallerContext = Depends(RoleGate("audit:list")),
    db: Session = Depends(get_db),
):
    """Get recent audit events for the caller's factory (optionally scoped to one entity)."""
    scope = resolve_tenant_scope(caller, tenant_id)
    query = db.query(AuditEvent)
    if scope is not None:
        query = query.filter(AuditEvent.tenant_id == scope)

    if entity_type:
        query = query.filter(AuditEvent.entity_type == entity_type)
    if entity_id:
        query = query.filter(AuditEvent.entity_id == entity_id)

    events = (
        query.order_by(AuditEvent.created_at.desc())
        .limit(limit)
        .all()
    )
    return [AuditEventResponse.model_validate(event) for event in events]
