"""Tenant scope guard: query scoping, payload stamping and resource-level tenant checks."""

from __future__ import annotations

from typing import TypeVar
from uuid import UUID

from sqlalchemy.orm import Session

from .context import CallerContext
from .domain_errors import AuthorizationFailure, NotFound

T = TypeVar("T")


def resolve_tenant_scope(caller: CallerContext, requested_tenant_id: UUID | None = None) -> UUID | None:
    """Return the tenant a read must be filtered to; None means all tenants.

    Only super_admin may choose a tenant (or none). Other callers are always
    scoped to their own tenant and may not ask for a different one.
    """
    if caller.is_super_admin:
        return requested_tenant_id
    if caller.tenant_id is None:
        raise AuthorizationFailure(code="TENANT_REQUIRED", message="Tenant access required")
    if requested_tenant_id is not None and requested_tenant_id != caller.tenant_id:
        raise AuthorizationFailure(
            code="CROSS_TENANT_ACCESS_DENIED",
            message="Access denied: resource belongs to a different tenant",
        )
    return caller.tenant_id


def stamp_tenant(caller: CallerContext) -> UUID:
    """Tenant id written onto new records; client-supplied values are never used."""
    if caller.tenant_id is None:
        raise AuthorizationFailure(code="TENANT_REQUIRED", message="Tenant access required")
    return caller.tenant_id


def assert_tenant_access(caller: CallerContext, resource_tenant_id: UUID | None) -> None:
    """Second, independent check applied to every resource loaded by id."""
    if caller.is_super_admin:
        return
    if caller.tenant_id is None or resource_tenant_id != caller.tenant_id:
        raise AuthorizationFailure(
            code="CROSS_TENANT_ACCESS_DENIED",
            message="Access denied: resource belongs to a different tenant",
        )


def require_tenant_entity(
    db: Session,
    model: type[T],
    *,
    entity_id: UUID,
    caller: CallerContext,
    code: str,
    not_found: str,
) -> T:
    """Load an entity by id (404 if absent), then assert the caller's tenant (403)."""
    entity = db.query(model).filter(getattr(model, "id") == entity_id).first()  # noqa: B009
    if not entity:
        raise NotFound(code=code, message=not_found)
    assert_tenant_access(caller, getattr(entity, "tenant_id"))  # noqa: B009
    return entity
