"""Task lifecycle use-cases used by task router endpoints.

Every status change is a compare-and-set UPDATE guarded on the current status,
so two concurrent judgements of the same task cannot both succeed.
"""
from __future__ import annotations

import logging
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..auth import require_role
from ..context import CallerContext
from ..domain_errors import AuthorizationFailure, InternalFailure, InvalidState, ValidationFailure
from ..models import AuditEvent, ProcessStage, Product, Task, User
from ..schemas import TaskCreate, TaskFilter
from ..security import require_tenant_entity, resolve_tenant_scope, stamp_tenant
from ..services.task_state import (
    DELETE_FROM,
    JUDGE_FROM,
    PROGRESS_FROM,
    as_utc,
    iso_week_label,
    progress_status,
    utc_now,
)

logger = logging.getLogger(__name__)

MAX_PAGE_LIMIT = 100


def _get_task(*, db: Session, task_id: UUID, caller: CallerContext) -> Task:
    return require_tenant_entity(
        db,
        Task,
        entity_id=task_id,
        caller=caller,
        code="TASK_NOT_FOUND",
        not_found="Task not found",
    )


def _assert_own_task(task: Task, caller: CallerContext) -> None:
    if caller.role == "employee" and task.employee_id != caller.user_id:
        raise AuthorizationFailure(code="TASK_NOT_ASSIGNED", message="Task not assigned to you")


def _invalid_status(action: str, expected: tuple[str, ...]) -> InvalidState:
    return InvalidState(
        code=f"TASK_INVALID_STATUS_FOR_{action.upper()}",
        message=f"Task must be in {' or '.join(expected)} status",
    )


def _compare_and_set(
    db: Session,
    *,
    task_id: UUID,
    expected: tuple[str, ...],
    values: dict,
    expected_qty: int | None = None,
) -> bool:
    """Atomically apply `values` only if the stored status is still one of `expected`.

    `expected_qty` additionally pins the reported `completed_qty` the caller
    based its decision on.
    """
    query = db.query(Task).filter(Task.id == task_id, Task.status.in_(expected))
    if expected_qty is not None:
        query = query.filter(Task.completed_qty == expected_qty)
    rows = query.update(values, synchronize_session=False)
    return rows == 1


def _audit(db: Session, *, caller: CallerContext, task: Task, action: str, details: dict) -> None:
    db.add(
        AuditEvent(
            tenant_id=task.tenant_id,
            action=action,
            entity_type="task",
            entity_id=task.id,
            user_id=caller.user_id,
            details=details,
        )
    )


def _commit(db: Session, *, code: str, message: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception(message)
        raise InternalFailure(code=code, message=message)


def create_task_use_case(*, db: Session, caller: CallerContext, data: TaskCreate) -> Task:
    """Assign a new task; every reference must resolve inside the caller's tenant."""
    require_role(caller, "tasks:create")
    tenant_id = stamp_tenant(caller)

    employee = db.query(User).filter(
        User.id == data.employee_id,
        User.tenant_id == tenant_id,
    ).first()
    if not employee or employee.role != "employee" or not employee.is_active:
        raise ValidationFailure(
            code="INVALID_REFERENCE",
            message="Invalid employee - Employee not found in your factory",
        )

    product = db.query(Product).filter(
        Product.id == data.product_id,
        Product.tenant_id == tenant_id,
        Product.is_active == True,  # noqa: E712
    ).first()
    if not product:
        raise ValidationFailure(
            code="INVALID_REFERENCE",
            message="Invalid product - Product not found in your factory",
        )

    stage = db.query(ProcessStage).filter(
        ProcessStage.id == data.process_stage_id,
        ProcessStage.product_id == product.id,
        ProcessStage.tenant_id == tenant_id,
        ProcessStage.is_active == True,  # noqa: E712
    ).first()
    if not stage:
        raise ValidationFailure(code="INVALID_REFERENCE", message="Invalid process stage")

    now = utc_now()
    deadline = as_utc(data.deadline)
    task = Task(
        id=uuid4(),
        tenant_id=tenant_id,
        employee_id=employee.id,
        product_id=product.id,
        process_stage_id=stage.id,
        target_qty=data.target_qty,
        completed_qty=0,
        status="active",
        deadline=deadline,
        deadline_week=data.deadline_week or iso_week_label(deadline),
        notes=data.notes,
        assigned_by=caller.user_id,
        assigned_at=now,
    )
    db.add(task)
    _audit(
        db,
        caller=caller,
        task=task,
        action="task_created",
        details={"employeeId": str(employee.id), "targetQty": data.target_qty},
    )
    _commit(db, code="TASK_CREATE_FAILED", message="Failed to create task")
    return task


def get_task_use_case(*, db: Session, caller: CallerContext, task_id: UUID) -> Task:
    require_role(caller, "tasks:read")
    task = _get_task(db=db, task_id=task_id, caller=caller)
    _assert_own_task(task, caller)
    return task


def list_tasks_use_case(
    *,
    db: Session,
    caller: CallerContext,
    filters: TaskFilter,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[Task], int]:
    """Tenant-scoped, paginated task listing. Returns (page items, total)."""
    require_role(caller, "tasks:list")
    if page < 1 or not 1 <= limit <= MAX_PAGE_LIMIT:
        raise ValidationFailure(
            code="VALIDATION_FAILED",
            message=f"page must be >= 1 and limit within 1..{MAX_PAGE_LIMIT}",
        )
    tenant_id = resolve_tenant_scope(caller, filters.tenant_id)

    query = db.query(Task)
    if tenant_id is not None:
        query = query.filter(Task.tenant_id == tenant_id)

    # Employees only ever see their own assignments.
    if caller.role == "employee":
        query = query.filter(Task.employee_id == caller.user_id)
    elif filters.employee_id:
        query = query.filter(Task.employee_id == filters.employee_id)

    if filters.status == "overdue":
        query = query.filter(Task.status == "active", Task.deadline < utc_now())
    elif filters.status == "active":
        query = query.filter(Task.status == "active", Task.deadline >= utc_now())
    elif filters.status:
        query = query.filter(Task.status == filters.status)

    if filters.week:
        query = query.filter(Task.deadline_week == filters.week)

    total = query.count()
    tasks = (
        query.order_by(Task.created_at.desc(), Task.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return tasks, total


def update_task_progress_use_case(
    *,
    db: Session,
    caller: CallerContext,
    task_id: UUID,
    completed_qty: int,
    submit: bool = False,
) -> Task:
    """Employee progress report; reaching the target (or submitting) completes the task."""
    require_role(caller, "tasks:progress")
    task = _get_task(db=db, task_id=task_id, caller=caller)
    _assert_own_task(task, caller)

    if completed_qty < 0:
        raise ValidationFailure(code="INVALID_QUANTITY", message="Completed quantity cannot be negative")
    if completed_qty > task.target_qty:
        raise ValidationFailure(
            code="QUANTITY_EXCEEDS_TARGET",
            message="Completed quantity cannot exceed target quantity",
            details={"targetQty": task.target_qty, "completedQty": completed_qty},
        )
    if submit and completed_qty == 0:
        raise ValidationFailure(code="NOTHING_TO_SUBMIT", message="Cannot submit a task with no completed units")
    if task.status not in PROGRESS_FROM:
        raise _invalid_status("progress", PROGRESS_FROM)

    old_status = task.status
    new_status = progress_status(completed_qty=completed_qty, target_qty=task.target_qty, submit=submit)
    now = utc_now()
    values = {
        "completed_qty": completed_qty,
        "status": new_status,
        "completed_at": now if new_status == "completed" else None,
        "rejection_reason": None,
    }
    if not _compare_and_set(db, task_id=task.id, expected=PROGRESS_FROM, values=values):
        db.rollback()
        raise _invalid_status("progress", PROGRESS_FROM)

    _audit(
        db,
        caller=caller,
        task=task,
        action="task_progress_updated",
        details={"oldStatus": old_status, "newStatus": new_status, "completedQty": completed_qty},
    )
    _commit(db, code="TASK_UPDATE_FAILED", message="Failed to update task progress")
    return task


def confirm_task_use_case(
    *,
    db: Session,
    caller: CallerContext,
    task_id: UUID,
    confirmed_qty: int | None = None,
) -> tuple[Task, Task | None]:
    """Confirm a completed task; a partial confirmation spawns a residual task.

    The confirmation and the residual insert are committed together, so
    confirmed quantity + residual target always equals the original target.
    """
    require_role(caller, "tasks:confirm")
    task = _get_task(db=db, task_id=task_id, caller=caller)

    final_qty = task.completed_qty if confirmed_qty is None else confirmed_qty
    if final_qty < 0:
        raise ValidationFailure(code="INVALID_QUANTITY", message="Confirmed quantity cannot be negative")
    if final_qty > task.target_qty:
        raise ValidationFailure(
            code="QUANTITY_EXCEEDS_TARGET",
            message="Confirmed quantity cannot exceed target quantity",
            details={"targetQty": task.target_qty, "confirmedQty": final_qty},
        )
    if task.status not in JUDGE_FROM:
        raise _invalid_status("confirm", JUDGE_FROM)

    now = utc_now()
    target_qty = task.target_qty
    reported_qty = task.completed_qty
    residual: Task | None = None
    try:
        # A reject and resubmit in between leaves the status "completed" with a
        # new count; pinning the judged count makes that a lost race too.
        confirmed = _compare_and_set(
            db,
            task_id=task.id,
            expected=JUDGE_FROM,
            values={"status": "confirmed", "completed_qty": final_qty, "confirmed_at": now},
            expected_qty=reported_qty,
        )
        if not confirmed:
            db.rollback()
            raise InvalidState(
                code="TASK_INVALID_STATUS_FOR_CONFIRM",
                message="Task changed since it was loaded; it must still be completed with the reported quantity",
                details={"reportedQty": reported_qty},
            )

        if final_qty < target_qty:
            residual = Task(
                id=uuid4(),
                tenant_id=task.tenant_id,
                employee_id=task.employee_id,
                product_id=task.product_id,
                process_stage_id=task.process_stage_id,
                parent_task_id=task.id,
                target_qty=target_qty - final_qty,
                completed_qty=0,
                status="active",
                deadline=task.deadline,
                deadline_week=task.deadline_week,
                notes=f"Residual task from partial completion. Original task: {task.id}",
                assigned_by=caller.user_id,
                assigned_at=now,
            )
            db.add(residual)
            _audit(
                db,
                caller=caller,
                task=residual,
                action="task_residual_created",
                details={"parentTaskId": str(task.id), "targetQty": residual.target_qty},
            )

        _audit(
            db,
            caller=caller,
            task=task,
            action="task_confirmed",
            details={
                "confirmedQty": final_qty,
                "targetQty": target_qty,
                "residualTaskId": str(residual.id) if residual else None,
            },
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to confirm task %s", task_id)
        raise InternalFailure(code="TASK_CONFIRM_FAILED", message="Failed to confirm task")

    logger.info(
        "Task %s confirmed by %s: %s/%s units, residual=%s",
        task_id,
        caller.user_id,
        final_qty,
        target_qty,
        residual.id if residual else None,
    )
    return task, residual


def reject_task_use_case(
    *,
    db: Session,
    caller: CallerContext,
    task_id: UUID,
    reason: str | None,
) -> Task:
    """Send a completed task back to the employee with a reason."""
    require_role(caller, "tasks:reject")
    reason = (reason or "").strip()
    if not reason:
        raise ValidationFailure(code="REJECTION_REASON_REQUIRED", message="Rejection reason is required")

    task = _get_task(db=db, task_id=task_id, caller=caller)
    if task.status not in JUDGE_FROM:
        raise _invalid_status("reject", JUDGE_FROM)

    if not _compare_and_set(
        db,
        task_id=task.id,
        expected=JUDGE_FROM,
        values={"status": "rejected", "rejection_reason": reason},
    ):
        db.rollback()
        raise _invalid_status("reject", JUDGE_FROM)

    _audit(db, caller=caller, task=task, action="task_rejected", details={"reason": reason})
    _commit(db, code="TASK_UPDATE_FAILED", message="Failed to reject task")
    logger.info("Task %s rejected by %s", task_id, caller.user_id)
    return task


def delete_task_use_case(*, db: Session, caller: CallerContext, task_id: UUID) -> None:
    """Delete a task that has not been judged yet."""
    require_role(caller, "tasks:delete")
    task = _get_task(db=db, task_id=task_id, caller=caller)
    if task.status not in DELETE_FROM:
        raise InvalidState(
            code="TASK_INVALID_STATUS_FOR_DELETE",
            message="Cannot delete a task that has been confirmed or rejected",
        )

    rows = (
        db.query(Task)
        .filter(Task.id == task.id, Task.status.in_(DELETE_FROM))
        .delete(synchronize_session=False)
    )
    if rows != 1:
        db.rollback()
        raise InvalidState(
            code="TASK_INVALID_STATUS_FOR_DELETE",
            message="Cannot delete a task that has been confirmed or rejected",
        )

    _audit(db, caller=caller, task=task, action="task_deleted", details={"status": task.status})
    _commit(db, code="TASK_DELETE_FAILED", message="Failed to delete task")
