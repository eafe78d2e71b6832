"""FastAPI application."""
import logging

from fastapi import Depends, FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import DEV_JWT_REFRESH_SECRET_KEY, DEV_JWT_SECRET_KEY, settings
from .database import get_db
from .domain_errors import DomainError
from .problem_details import (
    domain_error_handler,
    http_exception_handler,
    request_validation_handler,
    unhandled_exception_handler,
)
from .routers import audit, auth, products, tasks, tenants, users

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Create app
app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description="Multi-tenant factory task management API",
)

# Production safety checks (fail closed on insecure configuration).
if settings.is_production and settings.JWT_SECRET_KEY == DEV_JWT_SECRET_KEY:
    raise RuntimeError("JWT_SECRET_KEY must be set in production.")
if settings.is_production and settings.JWT_REFRESH_SECRET_KEY == DEV_JWT_REFRESH_SECRET_KEY:
    raise RuntimeError("JWT_REFRESH_SECRET_KEY must be set in production.")
if settings.is_production and not settings.cors_origins:
    raise RuntimeError("ALLOWED_ORIGINS must be set in production (explicit frontend origin required).")
if settings.is_production and any(origin.strip() == "*" for origin in settings.cors_origins):
    raise RuntimeError("ALLOWED_ORIGINS must be explicit in production (no wildcard when using credentials).")

# CORS
cors_headers = ["Authorization", "Content-Type"]
if not settings.is_production:
    cors_headers = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=cors_headers,
)

# Every failure is rendered as problem+json carrying {success: false, message}.
app.add_exception_handler(DomainError, domain_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

# Include routers
app.include_router(auth.router, prefix="/api/v1")
app.include_router(tenants.router, prefix="/api/v1")
app.include_router(users.router, prefix="/api/v1")
app.include_router(products.router, prefix="/api/v1")
app.include_router(tasks.router, prefix="/api/v1")
app.include_router(audit.router, prefix="/api/v1")


@app.get("/api/v1/system/health")
def health_check(db: Session = Depends(get_db)):
    """Health check endpoint."""
    database = "ok"
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("Health check database query failed")
        database = "unavailable"
    return {
        "success": True,
        "status": "ok" if database == "ok" else "degraded",
        "version": "1.0.0",
        "database": database,
    }


@app.get("/")
def root():
    """Root endpoint."""
    return {
        "message": f"{settings.APP_NAME} API",
        "version": "1.0.0",
        "docs": "/docs",
    }
