"""Task response serialization helpers with batched relation loading."""
from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from ..models import ProcessStage, Product, Task, User
from ..schemas import TaskResponse
from .task_state import effective_status, is_overdue, progress_percent, utc_now


def build_task_response_context(db: Session, tasks: list[Task]) -> dict:
    """Preload names for a task page in a fixed number of queries."""
    if not tasks:
        return {"users_by_id": {}, "products_by_id": {}, "stages_by_id": {}}

    user_ids: set[UUID] = set()
    product_ids: set[UUID] = set()
    stage_ids: set[UUID] = set()

    for task in tasks:
        user_ids.add(task.employee_id)
        if task.assigned_by:
            user_ids.add(task.assigned_by)
        product_ids.add(task.product_id)
        stage_ids.add(task.process_stage_id)

    users = db.query(User).filter(User.id.in_(user_ids)).all()
    products = db.query(Product).filter(Product.id.in_(product_ids)).all()
    stages = db.query(ProcessStage).filter(ProcessStage.id.in_(stage_ids)).all()

    return {
        "users_by_id": {user.id: user for user in users},
        "products_by_id": {product.id: product for product in products},
        "stages_by_id": {stage.id: stage for stage in stages},
    }


def task_to_response_from_context(task: Task, context: dict, now: datetime | None = None) -> TaskResponse:
    users_by_id: dict[UUID, User] = context["users_by_id"]
    products_by_id: dict[UUID, Product] = context["products_by_id"]
    stages_by_id: dict[UUID, ProcessStage] = context["stages_by_id"]

    now = now or utc_now()
    employee = users_by_id.get(task.employee_id)
    assigner = users_by_id.get(task.assigned_by) if task.assigned_by else None
    product = products_by_id.get(task.product_id)
    stage = stages_by_id.get(task.process_stage_id)

    return TaskResponse(
        id=task.id,
        tenant_id=task.tenant_id,
        employee_id=task.employee_id,
        employee_name=employee.name if employee else None,
        employee_auto_id=employee.auto_id if employee else None,
        product_id=task.product_id,
        product_name=product.name if product else None,
        process_stage_id=task.process_stage_id,
        process_stage_name=stage.name if stage else None,
        parent_task_id=task.parent_task_id,
        target_qty=task.target_qty,
        completed_qty=task.completed_qty,
        progress=progress_percent(task),
        status=effective_status(task, now),
        is_overdue=is_overdue(task, now),
        deadline=task.deadline,
        deadline_week=task.deadline_week,
        notes=task.notes,
        rejection_reason=task.rejection_reason,
        assigned_by=task.assigned_by,
        assigned_by_name=assigner.name if assigner else None,
        assigned_at=task.assigned_at,
        completed_at=task.completed_at,
        confirmed_at=task.confirmed_at,
    )


def tasks_to_response(db: Session, tasks: list[Task]) -> list[TaskResponse]:
    context = build_task_response_context(db, tasks)
    now = utc_now()
    return [task_to_response_from_context(task, context, now) for task in tasks]


def task_to_response(db: Session, task: Task) -> TaskResponse:
    return tasks_to_response(db, [task])[0]
