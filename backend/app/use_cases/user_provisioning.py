"""Tenant user provisioning: create, list, update and deactivate."""
from __future__ import annotations

import logging
from uuid import UUID, uuid4

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..auth import PROVISIONABLE_ROLES, hash_password, require_role
from ..config import settings
from ..context import CallerContext
from ..domain_errors import AuthorizationFailure, Conflict, InternalFailure, ValidationFailure
from ..models import AuditEvent, RefreshToken, User
from ..schemas import UserCreate, UserUpdate
from ..security import require_tenant_entity, resolve_tenant_scope, stamp_tenant
from ..services.identifiers import generate_auto_id

logger = logging.getLogger(__name__)


def _email_taken(db: Session, email: str, *, exclude_id: UUID | None = None) -> bool:
    query = db.query(User).filter(User.email == email)
    if exclude_id is not None:
        query = query.filter(User.id != exclude_id)
    return query.first() is not None


def _email_conflict() -> Conflict:
    return Conflict(code="EMAIL_ALREADY_REGISTERED", message="Email already registered")


def create_user_use_case(*, db: Session, caller: CallerContext, data: UserCreate) -> User:
    """Create a user in the caller's tenant with a generated autoId.

    A unique collision on insert (two creations racing for the same autoId)
    is retried with a fresh identifier up to AUTO_ID_MAX_ATTEMPTS times.
    """
    require_role(caller, "users:create")
    if data.role not in PROVISIONABLE_ROLES.get(caller.role, frozenset()):
        raise AuthorizationFailure(
            code="FORBIDDEN",
            message=f"{caller.role} cannot create {data.role} accounts",
            details={"role": data.role},
        )
    tenant_id = stamp_tenant(caller)

    email = data.email.strip().lower() if data.email else None
    if email and _email_taken(db, email):
        raise _email_conflict()

    password_hash = hash_password(data.password)
    attempts = max(1, int(settings.AUTO_ID_MAX_ATTEMPTS))
    for attempt in range(1, attempts + 1):
        auto_id = generate_auto_id(db, role=data.role, tenant_id=tenant_id)
        user = User(
            id=uuid4(),
            tenant_id=tenant_id,
            auto_id=auto_id,
            name=data.name,
            email=email or f"{auto_id.lower()}@{tenant_id}.local",
            mobile=data.mobile,
            password_hash=password_hash,
            role=data.role,
            is_active=True,
        )
        db.add(user)
        db.add(
            AuditEvent(
                tenant_id=tenant_id,
                action="user_created",
                entity_type="user",
                entity_id=user.id,
                user_id=caller.user_id,
                details={"autoId": auto_id, "role": data.role},
            )
        )
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            # Only an autoId collision is worth another attempt.
            if email and _email_taken(db, email):
                raise _email_conflict()
            logger.warning("autoId collision on %s (attempt %s/%s)", auto_id, attempt, attempts)
            continue
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Failed to create user")
            raise InternalFailure(code="USER_CREATE_FAILED", message="Failed to create user")

        logger.info("User %s (%s) created by %s", auto_id, data.role, caller.user_id)
        return user

    raise Conflict(
        code="AUTO_ID_COLLISION",
        message="Could not allocate a unique user id, please retry",
    )


def list_users_use_case(
    *,
    db: Session,
    caller: CallerContext,
    role: str | None = None,
    tenant_id: UUID | None = None,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[User], int]:
    require_role(caller, "users:list")
    scope = resolve_tenant_scope(caller, tenant_id)

    query = db.query(User)
    if scope is not None:
        query = query.filter(User.tenant_id == scope)
    if role:
        query = query.filter(User.role == role)

    total = query.count()
    users = (
        query.order_by(User.created_at.desc(), User.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return users, total


def update_user_use_case(*, db: Session, caller: CallerContext, user_id: UUID, data: UserUpdate) -> User:
    """Edit a user's profile; tenant membership and role stay as created.

    Supervisors may edit only the employees they are allowed to provision.
    """
    require_role(caller, "users:update")
    user = require_tenant_entity(
        db,
        User,
        entity_id=user_id,
        caller=caller,
        code="USER_NOT_FOUND",
        not_found="User not found",
    )
    if user.id != caller.user_id and user.role not in PROVISIONABLE_ROLES.get(caller.role, frozenset()):
        raise AuthorizationFailure(
            code="FORBIDDEN",
            message=f"{caller.role} cannot edit {user.role} accounts",
            details={"role": user.role},
        )

    changes = data.model_dump(exclude_none=True)
    if "email" in changes:
        changes["email"] = changes["email"].strip().lower()
        if _email_taken(db, changes["email"], exclude_id=user.id):
            raise _email_conflict()

    for field, value in changes.items():
        setattr(user, field, value)
    db.add(
        AuditEvent(
            tenant_id=user.tenant_id,
            action="user_updated",
            entity_type="user",
            entity_id=user.id,
            user_id=caller.user_id,
            details={"fields": sorted(changes)},
        )
    )
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise _email_conflict()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to update user")
        raise InternalFailure(code="USER_UPDATE_FAILED", message="Failed to update user")
    return user


def deactivate_user_use_case(*, db: Session, caller: CallerContext, user_id: UUID) -> User:
    """Soft-delete a user of the caller's tenant and drop their refresh tokens."""
    require_role(caller, "users:deactivate")
    user = require_tenant_entity(
        db,
        User,
        entity_id=user_id,
        caller=caller,
        code="USER_NOT_FOUND",
        not_found="User not found",
    )
    if user.id == caller.user_id:
        raise ValidationFailure(code="CANNOT_DEACTIVATE_SELF", message="You cannot deactivate your own account")

    user.is_active = False
    db.query(RefreshToken).filter(RefreshToken.user_id == user.id).delete(synchronize_session=False)
    db.add(
        AuditEvent(
            tenant_id=user.tenant_id,
            action="user_deactivated",
            entity_type="user",
            entity_id=user.id,
            user_id=caller.user_id,
            details={"autoId": user.auto_id},
        )
    )
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to deactivate user")
        raise InternalFailure(code="USER_UPDATE_FAILED", message="Failed to deactivate user")
    logger.info("User %s deactivated by %s", user_id, caller.user_id)
    return user
