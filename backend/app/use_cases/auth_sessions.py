"""Login, token refresh and logout use-cases."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..auth import (
    create_access_token,
    create_refresh_token,
    decode_token,
    is_tenant_active,
    parse_token_subject,
    verify_password,
)
from ..config import settings
from ..context import CallerContext
from ..domain_errors import AuthenticationFailure, InternalFailure
from ..models import AuditEvent, RefreshToken, Tenant, User
from ..services.task_state import as_utc, utc_now

logger = logging.getLogger(__name__)

# Which login identifier each role signs in with.
EMAIL_LOGIN_ROLES = ("super_admin", "factory_admin")
AUTO_ID_LOGIN_ROLES = ("supervisor", "employee")

_TENANT_STATUS_MESSAGES = {
    "pending": "Factory account is pending approval",
    "rejected": "Factory account has been rejected",
    "frozen": "Factory account is frozen",
}


@dataclass
class IssuedSession:
    user: User
    tenant: Tenant | None
    access_token: str
    refresh_token: str


def _invalid_credential() -> AuthenticationFailure:
    return AuthenticationFailure(code="INVALID_CREDENTIAL", message="Invalid credentials")


def _find_login_user(db: Session, *, email: str | None, auto_id: str | None) -> User | None:
    if email:
        return db.query(User).filter(
            User.email == email.strip().lower(),
            User.role.in_(EMAIL_LOGIN_ROLES),
        ).first()
    if auto_id:
        return db.query(User).filter(
            User.auto_id == auto_id.strip(),
            User.role.in_(AUTO_ID_LOGIN_ROLES),
        ).first()
    return None


def login_use_case(
    *,
    db: Session,
    password: str,
    email: str | None = None,
    auto_id: str | None = None,
    ip: str | None = None,
) -> IssuedSession:
    """Verify credentials and issue an access/refresh token pair."""
    user = _find_login_user(db, email=email, auto_id=auto_id)
    if not user or not user.is_active or not verify_password(password, user.password_hash):
        raise _invalid_credential()

    tenant = None
    if user.role != "super_admin":
        tenant = db.query(Tenant).filter(Tenant.id == user.tenant_id).first()
        if not tenant or tenant.status != "active":
            status = tenant.status if tenant else None
            raise AuthenticationFailure(
                code="TENANT_INACTIVE",
                message=_TENANT_STATUS_MESSAGES.get(status, "Factory account is not active"),
                details={"tenant_status": status},
            )

    access_token = create_access_token(user_id=user.id, role=user.role, tenant_id=user.tenant_id)
    refresh_token = create_refresh_token(user_id=user.id)
    db.add(
        RefreshToken(
            user_id=user.id,
            token=refresh_token,
            expires_at=utc_now() + timedelta(days=int(settings.JWT_REFRESH_TOKEN_EXPIRE_DAYS)),
        )
    )
    db.add(
        AuditEvent(
            tenant_id=user.tenant_id,
            action="user_login",
            entity_type="user",
            entity_id=user.id,
            user_id=user.id,
            details={"ip": ip},
        )
    )
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to persist refresh token during login")
        raise InternalFailure(code="LOGIN_FAILED", message="Failed to login")

    logger.info("User %s (%s) logged in", user.id, user.role)
    return IssuedSession(user=user, tenant=tenant, access_token=access_token, refresh_token=refresh_token)


def refresh_use_case(*, db: Session, refresh_token: str) -> tuple[str, str]:
    """Exchange a stored, unexpired refresh token for a new access token.

    The refresh token itself is returned unchanged (no rotation).
    """
    invalid = AuthenticationFailure(code="INVALID_TOKEN", message="Invalid refresh token")
    stored = db.query(RefreshToken).filter(RefreshToken.token == refresh_token).first()
    if not stored:
        raise invalid

    if as_utc(stored.expires_at) < utc_now():
        # Expired rows are collected when they are presented.
        try:
            db.delete(stored)
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Failed to delete expired refresh token")
        raise AuthenticationFailure(code="INVALID_TOKEN", message="Refresh token expired")

    payload = decode_token(refresh_token, expected_type="refresh")
    if parse_token_subject(payload) != stored.user_id:
        raise invalid

    user = db.query(User).filter(User.id == stored.user_id).first()
    if not user or not user.is_active:
        raise AuthenticationFailure(code="USER_INACTIVE", message="User not found or inactive")
    if user.role != "super_admin" and not is_tenant_active(db, user.tenant_id):
        raise AuthenticationFailure(code="TENANT_INACTIVE", message="Factory account is not active")

    access_token = create_access_token(user_id=user.id, role=user.role, tenant_id=user.tenant_id)
    return access_token, refresh_token


def logout_use_case(*, db: Session, caller: CallerContext, refresh_token: str | None) -> None:
    """Delete the caller's stored refresh token. Unknown tokens are not an error."""
    if not refresh_token:
        return
    stored = db.query(RefreshToken).filter(
        RefreshToken.token == refresh_token,
        RefreshToken.user_id == caller.user_id,
    ).first()
    if not stored:
        return

    db.delete(stored)
    db.add(
        AuditEvent(
            tenant_id=caller.tenant_id,
            action="user_logout",
            entity_type="user",
            entity_id=caller.user_id,
            user_id=caller.user_id,
            details={},
        )
    )
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to logout user")
        raise InternalFailure(code="LOGOUT_FAILED", message="Failed to logout")
    logger.info("User %s logged out", caller.user_id)


def get_me_use_case(*, db: Session, caller: CallerContext) -> tuple[User, Tenant | None]:
    user = db.query(User).filter(User.id == caller.user_id).first()
    if not user:
        raise AuthenticationFailure(code="USER_INACTIVE", message="User not found or inactive")
    tenant = None
    if user.tenant_id is not None:
        tenant = db.query(Tenant).filter(Tenant.id == user.tenant_id).first()
    return user, tenant
