"""Auth endpoints."""
import ipaddress
import logging

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.orm import Session

from ..auth import get_caller
from ..config import settings
from ..context import CallerContext
from ..database import get_db
from ..domain_errors import AuthenticationFailure
from ..schemas import (
    LoginRequest,
    LogoutRequest,
    MeResponse,
    RefreshResponse,
    RefreshTokenRequest,
    SignupRequest,
    SignupResponse,
    TenantResponse,
    TokenResponse,
    UserResponse,
)
from ..services.login_throttle import LoginThrottle, get_login_throttle
from ..use_cases.auth_sessions import get_me_use_case, login_use_case, logout_use_case, refresh_use_case
from ..use_cases.tenant_lifecycle import signup_use_case

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)


def _get_client_ip(request: Request) -> str:
    if settings.TRUST_PROXY_HEADERS:
        real_ip = request.headers.get("x-real-ip")
        if real_ip:
            try:
                ipaddress.ip_address(real_ip)
                return real_ip
            except ValueError:
                pass

        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            # X-Forwarded-For may contain a list: client, proxy1, proxy2
            candidate = forwarded.split(",")[0].strip()
            try:
                ipaddress.ip_address(candidate)
                return candidate
            except ValueError:
                pass

    if request.client:
        return request.client.host
    return "unknown"


def _set_no_store(response: Response) -> None:
    # Token responses must not be cached by browsers or proxies.
    response.headers["Cache-Control"] = "no-store"
    response.headers["Pragma"] = "no-cache"


@router.post("/login", response_model=TokenResponse)
def login(
    payload: LoginRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    throttle: LoginThrottle = Depends(get_login_throttle),
):
    """Login by email (admins) or autoId (supervisors, employees)."""
    _set_no_store(response)
    ip = _get_client_ip(request)
    identifier = (payload.email or payload.auto_id or "").strip()

    throttle.enforce(ip=ip, identifier=identifier)
    try:
        session = login_use_case(
            db=db,
            password=payload.password,
            email=payload.email,
            auto_id=payload.auto_id,
            ip=ip,
        )
    except AuthenticationFailure as exc:
        if exc.code == "INVALID_CREDENTIAL":
            throttle.register_failure(identifier=identifier)
        raise
    throttle.clear(identifier=identifier)

    return TokenResponse(
        access_token=session.access_token,
        refresh_token=session.refresh_token,
        expires_in=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        user=UserResponse.model_validate(session.user),
        tenant=TenantResponse.model_validate(session.tenant) if session.tenant else None,
    )


@router.post("/signup", response_model=SignupResponse, status_code=status.HTTP_201_CREATED)
def signup(payload: SignupRequest, db: Session = Depends(get_db)):
    """Register a factory; it stays pending until a super admin approves it."""
    tenant, admin = signup_use_case(db=db, data=payload)
    return SignupResponse(tenant_id=tenant.id, user_id=admin.id, auto_id=admin.auto_id)


@router.post("/refresh", response_model=RefreshResponse)
def refresh_token(payload: RefreshTokenRequest, response: Response, db: Session = Depends(get_db)):
    """Refresh access token."""
    _set_no_store(response)
    access_token, refresh = refresh_use_case(db=db, refresh_token=payload.refresh_token)
    return RefreshResponse(
        access_token=access_token,
        refresh_token=refresh,
        expires_in=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )


@router.post("/logout")
def logout(
    payload: LogoutRequest,
    response: Response,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    """Logout by deleting the presented refresh token."""
    _set_no_store(response)
    logout_use_case(db=db, caller=caller, refresh_token=payload.refresh_token)
    return {"success": True, "message": "Logged out successfully"}


@router.get("/me", response_model=MeResponse)
def get_me(
    response: Response,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    """Get current user info."""
    _set_no_store(response)
    user, tenant = get_me_use_case(db=db, caller=caller)
    return MeResponse(
        user=UserResponse.model_validate(user),
        tenant=TenantResponse.model_validate(tenant) if tenant else None,
    )
