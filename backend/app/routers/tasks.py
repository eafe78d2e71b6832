"""Task endpoints."""
from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..auth import get_caller
from ..context import CallerContext
from ..database import get_db
from ..schemas import (
    TaskConfirmRequest,
    TaskConfirmResponse,
    TaskCreate,
    TaskFilter,
    TaskPage,
    TaskProgressUpdate,
    TaskRejectRequest,
    TaskResponse,
    TaskStatus,
    page_fields,
)
from ..services.task_response_builder import task_to_response, tasks_to_response
from ..use_cases.task_transitions import (
    MAX_PAGE_LIMIT,
    confirm_task_use_case,
    create_task_use_case,
    delete_task_use_case,
    get_task_use_case,
    list_tasks_use_case,
    reject_task_use_case,
    update_task_progress_use_case,
)

router = APIRouter(prefix="/tasks", tags=["tasks"])


@router.get("", response_model=TaskPage)
def get_tasks(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=MAX_PAGE_LIMIT),
    employee_id: Optional[UUID] = None,
    status_filter: Optional[TaskStatus] = Query(None, alias="status"),
    week: Optional[str] = Query(None, pattern=r"^\d{4}-W\d{2}$"),
    tenant_id: Optional[UUID] = None,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    """List tasks visible to the caller, newest first."""
    filters = TaskFilter(employee_id=employee_id, status=status_filter, week=week, tenant_id=tenant_id)
    tasks, total = list_tasks_use_case(db=db, caller=caller, filters=filters, page=page, limit=limit)
    return TaskPage(items=tasks_to_response(db, tasks), **page_fields(total, page, limit))


@router.get("/{task_id}", response_model=TaskResponse)
def get_task(
    task_id: UUID,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    task = get_task_use_case(db=db, caller=caller, task_id=task_id)
    return task_to_response(db, task)


@router.post("", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
def create_task(
    data: TaskCreate,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    """Assign a task to an employee of the caller's factory."""
    task = create_task_use_case(db=db, caller=caller, data=data)
    return task_to_response(db, task)


@router.patch("/{task_id}/complete", response_model=TaskResponse)
def update_task_progress(
    task_id: UUID,
    data: TaskProgressUpdate,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    """Report completed units (optionally handing the task in for review)."""
    task = update_task_progress_use_case(
        db=db,
        caller=caller,
        task_id=task_id,
        completed_qty=data.completed_qty,
        submit=data.submit,
    )
    return task_to_response(db, task)


@router.post("/{task_id}/confirm", response_model=TaskConfirmResponse)
def confirm_task(
    task_id: UUID,
    data: Optional[TaskConfirmRequest] = None,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    """Confirm a completed task; a short count spawns a residual task."""
    confirmed_qty = data.confirmed_qty if data else None
    task, residual = confirm_task_use_case(db=db, caller=caller, task_id=task_id, confirmed_qty=confirmed_qty)
    items = tasks_to_response(db, [task, residual] if residual else [task])
    return TaskConfirmResponse(task=items[0], residual_task=items[1] if residual else None)


@router.post("/{task_id}/reject", response_model=TaskResponse)
def reject_task(
    task_id: UUID,
    data: TaskRejectRequest,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    task = reject_task_use_case(db=db, caller=caller, task_id=task_id, reason=data.reason)
    return task_to_response(db, task)


@router.delete("/{task_id}")
def delete_task(
    task_id: UUID,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    delete_task_use_case(db=db, caller=caller, task_id=task_id)
    return {"success": True, "message": "Task deleted"}
