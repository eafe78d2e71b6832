"""Pydantic schemas for API."""
from pydantic import BaseModel, Field, ConfigDict, model_validator
from typing import Literal, Optional
from datetime import datetime
from uuid import UUID

from .config import settings


EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
WEEK_PATTERN = r"^\d{4}-W\d{2}$"

TaskStatus = Literal["active", "completed", "confirmed", "rejected", "overdue"]
TenantStatus = Literal["pending", "active", "rejected", "frozen"]


# Tenant / user schemas
class TenantResponse(BaseModel):
    id: UUID
    factory_name: str
    address: str
    workers_count: int
    owner_email: str
    phone: str
    status: str
    rejection_reason: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class UserResponse(BaseModel):
    id: UUID
    auto_id: str
    name: str
    email: str
    mobile: str
    role: str
    tenant_id: Optional[UUID] = None
    is_active: bool
    model_config = ConfigDict(from_attributes=True)


class UserCreate(BaseModel):
    name: str = Field(min_length=2, max_length=255)
    mobile: str = Field(min_length=5, max_length=50)
    role: Literal["factory_admin", "supervisor", "employee"]
    password: str = Field(min_length=settings.PASSWORD_MIN_LENGTH, max_length=settings.PASSWORD_MAX_LENGTH)
    email: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN, max_length=255)


class UserUpdate(BaseModel):
    """Editable profile fields; role, tenant and password are not accepted here."""
    name: Optional[str] = Field(default=None, min_length=2, max_length=255)
    mobile: Optional[str] = Field(default=None, min_length=5, max_length=50)
    email: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN, max_length=255)


class UserCreateResponse(BaseModel):
    user: UserResponse
    auto_id: str


class Page(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int


def page_fields(total: int, page: int, limit: int) -> dict:
    return {
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": (total + limit - 1) // limit if limit else 0,
    }


class UserPage(Page):
    items: list[UserResponse]


class TenantPage(Page):
    items: list[TenantResponse]


# Auth schemas
class LoginRequest(BaseModel):
    """Factory admins and super admin log in by email; supervisors and employees by autoId."""
    email: Optional[str] = None
    auto_id: Optional[str] = None
    password: str = Field(min_length=1)

    @model_validator(mode="after")
    def _one_identifier(self):
        if bool(self.email) == bool(self.auto_id):
            raise ValueError("Provide exactly one of email or auto_id")
        return self


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse
    tenant: Optional[TenantResponse] = None


class RefreshTokenRequest(BaseModel):
    refresh_token: str = Field(min_length=1)


class RefreshResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class LogoutRequest(BaseModel):
    refresh_token: Optional[str] = None


class MeResponse(BaseModel):
    user: UserResponse
    tenant: Optional[TenantResponse] = None


class SignupRequest(BaseModel):
    factory_name: str = Field(min_length=2, max_length=255)
    address: str = Field(min_length=10, max_length=500)
    workers_count: int = Field(ge=1)
    owner_email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    phone: str = Field(min_length=5, max_length=50)
    login_email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    password: str = Field(min_length=settings.PASSWORD_MIN_LENGTH, max_length=settings.PASSWORD_MAX_LENGTH)
    confirm_password: str

    @model_validator(mode="after")
    def _passwords_match(self):
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class SignupResponse(BaseModel):
    tenant_id: UUID
    user_id: UUID
    auto_id: str


class TenantRejectRequest(BaseModel):
    reason: Optional[str] = None


# Catalog schemas
class ProductCreate(BaseModel):
    name: str = Field(min_length=2, max_length=255)
    description: str = Field(default="", max_length=2000)


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=255)
    description: Optional[str] = Field(default=None, max_length=2000)
    is_active: Optional[bool] = None


class ProductResponse(BaseModel):
    id: UUID
    tenant_id: UUID
    name: str
    description: str
    is_active: bool
    model_config = ConfigDict(from_attributes=True)


class ProcessStageCreate(BaseModel):
    name: str = Field(min_length=2, max_length=255)
    description: str = Field(default="", max_length=2000)
    order: int = Field(ge=1)


class ProcessStageUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=255)
    description: Optional[str] = Field(default=None, max_length=2000)
    order: Optional[int] = Field(default=None, ge=1)
    is_active: Optional[bool] = None


class StageOrder(BaseModel):
    id: UUID
    order: int = Field(ge=1)


class StageReorderRequest(BaseModel):
    stage_orders: list[StageOrder] = Field(min_length=1)


class ProcessStageResponse(BaseModel):
    id: UUID
    tenant_id: UUID
    product_id: UUID
    name: str
    description: str
    order: int
    is_active: bool
    model_config = ConfigDict(from_attributes=True)


# Task schemas
class TaskCreate(BaseModel):
    """Task assignment payload. Any client-supplied tenant id is ignored."""
    employee_id: UUID
    product_id: UUID
    process_stage_id: UUID
    target_qty: int = Field(ge=1)
    deadline: datetime
    deadline_week: Optional[str] = Field(default=None, pattern=WEEK_PATTERN)
    notes: Optional[str] = Field(default=None, max_length=2000)


class TaskProgressUpdate(BaseModel):
    completed_qty: int = Field(ge=0)
    # Hand in a partial count for supervisor review.
    submit: bool = False


class TaskConfirmRequest(BaseModel):
    confirmed_qty: Optional[int] = Field(default=None, ge=0)


class TaskRejectRequest(BaseModel):
    reason: Optional[str] = None


class TaskFilter(BaseModel):
    """Validated task list filter."""
    employee_id: Optional[UUID] = None
    status: Optional[TaskStatus] = None
    week: Optional[str] = Field(default=None, pattern=WEEK_PATTERN)
    tenant_id: Optional[UUID] = None
    model_config = ConfigDict(frozen=True)


class TaskResponse(BaseModel):
    id: UUID
    tenant_id: UUID
    employee_id: UUID
    employee_name: Optional[str] = None
    employee_auto_id: Optional[str] = None
    product_id: UUID
    product_name: Optional[str] = None
    process_stage_id: UUID
    process_stage_name: Optional[str] = None
    parent_task_id: Optional[UUID] = None
    target_qty: int
    completed_qty: int
    progress: float
    status: str
    is_overdue: bool
    deadline: datetime
    deadline_week: str
    notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    assigned_by: UUID
    assigned_by_name: Optional[str] = None
    assigned_at: datetime
    completed_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None


class TaskPage(Page):
    items: list[TaskResponse]


class TaskConfirmResponse(BaseModel):
    task: TaskResponse
    residual_task: Optional[TaskResponse] = None


class AuditEventResponse(BaseModel):
    id: UUID
    tenant_id: Optional[UUID] = None
    action: str
    entity_type: str
    entity_id: UUID
    user_id: Optional[UUID] = None
    details: dict = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)
