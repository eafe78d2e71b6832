"""Factory account (tenant) signup and super-admin status management."""
from __future__ import annotations

import logging
from uuid import UUID, uuid4

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..auth import hash_password, require_role
from ..context import CallerContext
from ..domain_errors import Conflict, InternalFailure, InvalidState, NotFound, ValidationFailure
from ..models import AuditEvent, Tenant, User
from ..schemas import SignupRequest
from ..services.identifiers import generate_auto_id
from ..services.task_state import utc_now

logger = logging.getLogger(__name__)


def _get_tenant(db: Session, tenant_id: UUID) -> Tenant:
    tenant = db.query(Tenant).filter(Tenant.id == tenant_id).first()
    if not tenant:
        raise NotFound(code="TENANT_NOT_FOUND", message="Tenant not found")
    return tenant


def _audit(db: Session, *, tenant: Tenant, action: str, user_id: UUID | None, details: dict) -> None:
    db.add(
        AuditEvent(
            tenant_id=tenant.id,
            action=action,
            entity_type="tenant",
            entity_id=tenant.id,
            user_id=user_id,
            details=details,
        )
    )


def _commit(db: Session, message: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception(message)
        raise InternalFailure(code="TENANT_UPDATE_FAILED", message=message)


def signup_use_case(*, db: Session, data: SignupRequest) -> tuple[Tenant, User]:
    """Register a factory as a pending tenant together with its factory admin.

    The admin account is created active; login stays blocked until the
    tenant itself is approved.
    """
    login_email = data.login_email.strip().lower()
    if db.query(User).filter(User.email == login_email).first():
        raise Conflict(code="EMAIL_ALREADY_REGISTERED", message="Email already registered")
    if db.query(Tenant).filter(Tenant.factory_name == data.factory_name).first():
        raise Conflict(code="FACTORY_NAME_TAKEN", message="Factory name already exists")

    tenant = Tenant(
        id=uuid4(),
        factory_name=data.factory_name,
        address=data.address,
        workers_count=data.workers_count,
        owner_email=data.owner_email.strip().lower(),
        phone=data.phone,
        status="pending",
    )
    db.add(tenant)
    admin = User(
        id=uuid4(),
        tenant_id=tenant.id,
        auto_id=generate_auto_id(db, role="factory_admin", tenant_id=tenant.id),
        name=f"{data.factory_name} Admin",
        email=login_email,
        mobile=data.phone,
        password_hash=hash_password(data.password),
        role="factory_admin",
        is_active=True,
    )
    db.add(admin)
    _audit(db, tenant=tenant, action="tenant_signed_up", user_id=admin.id, details={"factoryName": data.factory_name})
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict(code="SIGNUP_CONFLICT", message="Factory name or email already registered")
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to register factory")
        raise InternalFailure(code="SIGNUP_FAILED", message="Failed to register factory")

    logger.info("Factory %s signed up as tenant %s", data.factory_name, tenant.id)
    return tenant, admin


def list_tenants_use_case(
    *,
    db: Session,
    caller: CallerContext,
    status: str | None = None,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[Tenant], int]:
    require_role(caller, "tenants:list")
    query = db.query(Tenant)
    if status:
        query = query.filter(Tenant.status == status)
    total = query.count()
    tenants = (
        query.order_by(Tenant.created_at.desc(), Tenant.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return tenants, total


def approve_tenant_use_case(*, db: Session, caller: CallerContext, tenant_id: UUID) -> Tenant:
    require_role(caller, "tenants:approve")
    tenant = _get_tenant(db, tenant_id)
    if tenant.status != "pending":
        raise InvalidState(code="TENANT_NOT_PENDING", message="Tenant is not pending approval")

    tenant.status = "active"
    tenant.approved_at = utc_now()
    _audit(db, tenant=tenant, action="tenant_approved", user_id=caller.user_id, details={})
    _commit(db, "Failed to approve tenant")
    logger.info("Tenant %s approved by %s", tenant_id, caller.user_id)
    return tenant


def reject_tenant_use_case(
    *,
    db: Session,
    caller: CallerContext,
    tenant_id: UUID,
    reason: str | None,
) -> Tenant:
    require_role(caller, "tenants:reject")
    reason = (reason or "").strip()
    if not reason:
        raise ValidationFailure(code="REJECTION_REASON_REQUIRED", message="Rejection reason is required")

    tenant = _get_tenant(db, tenant_id)
    if tenant.status != "pending":
        raise InvalidState(code="TENANT_NOT_PENDING", message="Tenant is not pending approval")

    tenant.status = "rejected"
    tenant.rejection_reason = reason
    tenant.rejected_at = utc_now()
    _audit(db, tenant=tenant, action="tenant_rejected", user_id=caller.user_id, details={"reason": reason})
    _commit(db, "Failed to reject tenant")
    logger.info("Tenant %s rejected by %s", tenant_id, caller.user_id)
    return tenant


def freeze_tenant_use_case(*, db: Session, caller: CallerContext, tenant_id: UUID) -> Tenant:
    """Toggle active <-> frozen. Members of a frozen tenant cannot log in or refresh."""
    require_role(caller, "tenants:freeze")
    tenant = _get_tenant(db, tenant_id)
    if tenant.status == "active":
        tenant.status = "frozen"
        action = "tenant_frozen"
    elif tenant.status == "frozen":
        tenant.status = "active"
        action = "tenant_unfrozen"
    else:
        raise InvalidState(
            code="TENANT_NOT_FREEZABLE",
            message="Only active or frozen tenants can be frozen or unfrozen",
        )

    _audit(db, tenant=tenant, action=action, user_id=caller.user_id, details={})
    _commit(db, "Failed to update tenant status")
    logger.info("Tenant %s %s by %s", tenant_id, tenant.status, caller.user_id)
    return tenant
