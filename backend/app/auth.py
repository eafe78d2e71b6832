"""Authentication and authorization."""
from datetime import timedelta
from typing import Optional
import logging
import time
from uuid import UUID, uuid4
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from .config import settings
from .context import CallerContext
from .database import get_db
from .domain_errors import AuthenticationFailure, AuthorizationFailure
from .models import Tenant, User

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.BCRYPT_ROUNDS)
logger = logging.getLogger(__name__)

# Bearer token scheme; a missing header is reported as 401 by get_caller.
security = HTTPBearer(auto_error=False)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify password against hash."""
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError):
        # Invalid/corrupted hash should not crash login flow.
        logger.exception("Password verification failed due to invalid hash format")
        return False


def get_password_hash(password: str) -> str:
    """Hash password."""
    return pwd_context.hash(password)


# Alias for convenience
hash_password = get_password_hash


def _invalid_token(message: str = "Could not validate credentials") -> AuthenticationFailure:
    return AuthenticationFailure(code="INVALID_TOKEN", message=message)


def create_access_token(
    *,
    user_id: UUID,
    role: str,
    tenant_id: UUID | None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Create short-lived JWT access token carrying identity, role and tenant."""
    now = int(time.time())
    if expires_delta:
        exp = now + int(expires_delta.total_seconds())
    else:
        exp = now + int(settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES) * 60
    to_encode = {
        "sub": str(user_id),
        "role": role,
        "tenant_id": str(tenant_id) if tenant_id else None,
        "exp": exp,
        "iat": now,
        "type": "access",
    }
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def create_refresh_token(*, user_id: UUID, expires_delta: Optional[timedelta] = None) -> str:
    """Create long-lived JWT refresh token (unique per issuance via jti)."""
    now = int(time.time())
    if expires_delta:
        exp = now + int(expires_delta.total_seconds())
    else:
        exp = now + int(settings.JWT_REFRESH_TOKEN_EXPIRE_DAYS) * 86400
    to_encode = {
        "sub": str(user_id),
        "jti": uuid4().hex,
        "exp": exp,
        "iat": now,
        "type": "refresh",
    }
    return jwt.encode(to_encode, settings.JWT_REFRESH_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str, *, expected_type: str = "access") -> dict:
    """Decode JWT token of the expected type, applying clock-skew leeway."""
    secret = settings.JWT_SECRET_KEY if expected_type == "access" else settings.JWT_REFRESH_SECRET_KEY
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[settings.JWT_ALGORITHM],
            options={"verify_exp": False},
        )
    except JWTError:
        raise _invalid_token()

    now = int(time.time())
    try:
        exp_int = int(payload["exp"])
    except (KeyError, TypeError, ValueError):
        raise _invalid_token()
    if now > exp_int + int(settings.JWT_LEEWAY_SECONDS):
        raise _invalid_token("Token expired")

    iat = payload.get("iat")
    if iat is not None:
        try:
            iat_int = int(iat)
        except (TypeError, ValueError):
            raise _invalid_token()
        # Reject tokens issued far in the future (clock skew / malicious tokens).
        if iat_int > now + int(settings.JWT_LEEWAY_SECONDS):
            raise _invalid_token()

    if payload.get("type") != expected_type:
        raise _invalid_token("Invalid token type")
    return payload


def parse_token_subject(payload: dict) -> UUID:
    """Parse and validate JWT subject as UUID."""
    sub = payload.get("sub")
    if not sub:
        raise _invalid_token()
    try:
        return UUID(str(sub))
    except ValueError:
        raise _invalid_token()


def is_tenant_active(db: Session, tenant_id: UUID | None) -> bool:
    if tenant_id is None:
        return False
    tenant = db.query(Tenant).filter(Tenant.id == tenant_id).first()
    return bool(tenant and tenant.status == "active")


def get_caller(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: Session = Depends(get_db),
) -> CallerContext:
    """Resolve the bearer access token into an immutable caller context."""
    if credentials is None or not credentials.credentials:
        raise AuthenticationFailure(code="NOT_AUTHENTICATED", message="Access token required")

    payload = decode_token(credentials.credentials, expected_type="access")
    user_id = parse_token_subject(payload)

    user = db.query(User).filter(User.id == user_id, User.is_active == True).first()  # noqa: E712
    if user is None:
        raise AuthenticationFailure(code="USER_INACTIVE", message="User not found or inactive")

    if user.role != "super_admin" and not is_tenant_active(db, user.tenant_id):
        raise AuthenticationFailure(code="TENANT_INACTIVE", message="Factory account is not active")

    return CallerContext.from_user(user)


# Role gate: every operation lists its permitted roles explicitly.
# super_admin is only allowed where named.
ALL_ROLES = frozenset({"super_admin", "factory_admin", "supervisor", "employee"})
TENANT_MANAGERS = frozenset({"factory_admin", "supervisor"})

OPERATION_ROLES: dict[str, frozenset[str]] = {
    "tasks:list": ALL_ROLES,
    "tasks:read": ALL_ROLES,
    "tasks:create": TENANT_MANAGERS,
    "tasks:progress": frozenset({"employee", "super_admin"}),
    "tasks:confirm": TENANT_MANAGERS,
    "tasks:reject": TENANT_MANAGERS,
    "tasks:delete": TENANT_MANAGERS,
    "tenants:list": frozenset({"super_admin"}),
    "tenants:approve": frozenset({"super_admin"}),
    "tenants:reject": frozenset({"super_admin"}),
    "tenants:freeze": frozenset({"super_admin"}),
    "users:list": frozenset({"super_admin", "factory_admin", "supervisor"}),
    "users:create": TENANT_MANAGERS,
    "users:update": TENANT_MANAGERS,
    "users:deactivate": frozenset({"factory_admin"}),
    "products:list": ALL_ROLES,
    "products:create": frozenset({"factory_admin"}),
    "products:update": frozenset({"factory_admin"}),
    "products:delete": frozenset({"factory_admin"}),
    "stages:create": frozenset({"factory_admin"}),
    "stages:update": frozenset({"factory_admin"}),
    "stages:reorder": frozenset({"factory_admin"}),
    "audit:list": frozenset({"super_admin", "factory_admin"}),
}

# Which roles each creator may provision through users:create.
PROVISIONABLE_ROLES: dict[str, frozenset[str]] = {
    "factory_admin": frozenset({"factory_admin", "supervisor", "employee"}),
    "supervisor": frozenset({"employee"}),
}


def is_role_allowed(role: str, operation: str) -> bool:
    """Unknown operations deny."""
    return role in OPERATION_ROLES.get(operation, frozenset())


def require_role(caller: CallerContext, operation: str) -> None:
    """Enforce the role gate for an operation server-side."""
    if not is_role_allowed(caller.role, operation):
        raise AuthorizationFailure(
            code="FORBIDDEN",
            message="Insufficient permissions",
            details={"operation": operation, "role": caller.role},
        )


class RoleGate:
    """Dependency form of require_role."""

    def __init__(self, operation: str):
        if operation not in OPERATION_ROLES:
            raise ValueError(f"Unknown operation: {operation}")
        self.operation = operation

    def __call__(self, caller: CallerContext = Depends(get_caller)) -> CallerContext:
        require_role(caller, self.operation)
        return caller
