"""User endpoints."""
from typing import Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..auth import get_caller
from ..context import CallerContext
from ..database import get_db
from ..schemas import UserCreate, UserCreateResponse, UserPage, UserResponse, UserUpdate, page_fields
from ..use_cases.user_provisioning import (
    create_user_use_case,
    deactivate_user_use_case,
    list_users_use_case,
    update_user_use_case,
)

router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=UserPage)
def get_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    role: Optional[Literal["super_admin", "factory_admin", "supervisor", "employee"]] = None,
    tenant_id: Optional[UUID] = None,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    """Get users of the caller's factory."""
    users, total = list_users_use_case(
        db=db,
        caller=caller,
        role=role,
        tenant_id=tenant_id,
        page=page,
        limit=limit,
    )
    return UserPage(items=[UserResponse.model_validate(u) for u in users], **page_fields(total, page, limit))


@router.post("", response_model=UserCreateResponse, status_code=status.HTTP_201_CREATED)
def create_user(
    data: UserCreate,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    """Create a user; the autoId is generated server-side."""
    user = create_user_use_case(db=db, caller=caller, data=data)
    return UserCreateResponse(user=UserResponse.model_validate(user), auto_id=user.auto_id)


@router.patch("/{user_id}", response_model=UserResponse)
def update_user(
    user_id: UUID,
    data: UserUpdate,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    """Update name, mobile or email; role and tenant fields in the body are ignored."""
    user = update_user_use_case(db=db, caller=caller, user_id=user_id, data=data)
    return UserResponse.model_validate(user)


@router.delete("/{user_id}", response_model=UserResponse)
def deactivate_user(
    user_id: UUID,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    """Deactivate (soft delete) a user."""
    user = deactivate_user_use_case(db=db, caller=caller, user_id=user_id)
    return UserResponse.model_validate(user)
