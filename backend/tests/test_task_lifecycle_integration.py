from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone

import pytest

from app.domain_errors import AuthorizationFailure, DomainError, InternalFailure, InvalidState, NotFound
from app.models import AuditEvent, Task
from app.schemas import TaskCreate, TaskFilter
from app.use_cases import task_transitions
from app.use_cases.task_transitions import (
    confirm_task_use_case,
    create_task_use_case,
    delete_task_use_case,
    get_task_use_case,
    list_tasks_use_case,
    reject_task_use_case,
    update_task_progress_use_case,
)


@pytest.fixture()
def factory_floor(db, make):
    tenant = make.tenant()
    supervisor = make.user(tenant, "supervisor")
    employee = make.user(tenant, "employee")
    product, stage = make.catalog(tenant)
    return {
        "tenant": tenant,
        "supervisor": make.caller(supervisor),
        "employee": make.caller(employee),
        "product": product,
        "stage": stage,
    }


def _create(db, floor, *, target_qty=50, deadline=None) -> Task:
    return create_task_use_case(
        db=db,
        caller=floor["supervisor"],
        data=TaskCreate(
            employee_id=floor["employee"].user_id,
            product_id=floor["product"].id,
            process_stage_id=floor["stage"].id,
            target_qty=target_qty,
            deadline=deadline or datetime.now(timezone.utc) + timedelta(days=3),
        ),
    )


def test_report_35_of_50_then_confirm_30_leaves_a_residual_of_20(db, factory_floor) -> None:
    floor = factory_floor
    task = _create(db, floor, target_qty=50)
    task_id = task.id

    update_task_progress_use_case(
        db=db, caller=floor["employee"], task_id=task_id, completed_qty=35, submit=True
    )
    _, residual = confirm_task_use_case(db=db, caller=floor["supervisor"], task_id=task_id, confirmed_qty=30)

    db.expire_all()
    original = db.query(Task).filter(Task.id == task_id).one()
    assert original.status == "confirmed"
    assert original.completed_qty == 30
    assert original.confirmed_at is not None

    residual = db.query(Task).filter(Task.id == residual.id).one()
    assert residual.target_qty == 20
    assert residual.completed_qty == 0
    assert residual.status == "active"
    assert residual.parent_task_id == task_id
    assert residual.employee_id == original.employee_id
    assert residual.process_stage_id == original.process_stage_id
    assert str(task_id) in residual.notes
    assert original.completed_qty + residual.target_qty == original.target_qty

    actions = {row.action for row in db.query(AuditEvent).all()}
    assert {"task_created", "task_progress_updated", "task_confirmed", "task_residual_created"} <= actions


def test_stale_reader_loses_the_confirm_race(session_factory, db, factory_floor) -> None:
    floor = factory_floor
    task = _create(db, floor, target_qty=10)
    task_id = task.id
    update_task_progress_use_case(db=db, caller=floor["employee"], task_id=task_id, completed_qty=10)

    stale = session_factory()
    try:
        # Loaded while still "completed"; the identity map keeps this snapshot.
        assert stale.query(Task).filter(Task.id == task_id).one().status == "completed"

        confirm_task_use_case(db=db, caller=floor["supervisor"], task_id=task_id, confirmed_qty=6)

        with pytest.raises(InvalidState):
            confirm_task_use_case(db=stale, caller=floor["supervisor"], task_id=task_id, confirmed_qty=10)
    finally:
        stale.close()

    db.expire_all()
    assert db.query(Task).filter(Task.id == task_id).one().completed_qty == 6
    assert db.query(Task).filter(Task.parent_task_id == task_id).count() == 1


@pytest.mark.parametrize("confirmed_qty", [None, 35])
def test_confirm_based_on_an_outdated_report_is_refused(
    session_factory, db, factory_floor, confirmed_qty
) -> None:
    floor = factory_floor
    task = _create(db, floor, target_qty=50)
    task_id = task.id
    update_task_progress_use_case(
        db=db, caller=floor["employee"], task_id=task_id, completed_qty=35, submit=True
    )

    stale = session_factory()
    try:
        assert stale.query(Task).filter(Task.id == task_id).one().completed_qty == 35

        # Sent back and finished in full while the supervisor looked at 35/50.
        reject_task_use_case(db=db, caller=floor["supervisor"], task_id=task_id, reason="Recount the batch")
        update_task_progress_use_case(db=db, caller=floor["employee"], task_id=task_id, completed_qty=50)

        with pytest.raises(InvalidState) as exc:
            confirm_task_use_case(
                db=stale, caller=floor["supervisor"], task_id=task_id, confirmed_qty=confirmed_qty
            )
        assert exc.value.code == "TASK_INVALID_STATUS_FOR_CONFIRM"
    finally:
        stale.close()

    db.expire_all()
    current = db.query(Task).filter(Task.id == task_id).one()
    assert current.status == "completed"
    assert current.completed_qty == 50
    assert db.query(Task).filter(Task.parent_task_id == task_id).count() == 0

    _, residual = confirm_task_use_case(db=db, caller=floor["supervisor"], task_id=task_id)
    assert residual is None


def test_concurrent_confirms_produce_exactly_one_residual(session_factory, db, factory_floor) -> None:
    floor = factory_floor
    task = _create(db, floor, target_qty=50)
    task_id = task.id
    update_task_progress_use_case(
        db=db, caller=floor["employee"], task_id=task_id, completed_qty=40, submit=True
    )

    barrier = threading.Barrier(2)
    outcomes: list[object] = []
    lock = threading.Lock()

    def _confirm() -> None:
        session = session_factory()
        try:
            barrier.wait(timeout=10)
            confirm_task_use_case(db=session, caller=floor["supervisor"], task_id=task_id)
            result: object = "confirmed"
        except DomainError as exc:
            result = exc
        finally:
            session.close()
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=_confirm) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)

    assert outcomes.count("confirmed") == 1
    failures = [item for item in outcomes if item != "confirmed"]
    assert len(failures) == 1
    assert isinstance(failures[0], (InvalidState, InternalFailure))

    db.expire_all()
    residuals = db.query(Task).filter(Task.parent_task_id == task_id).all()
    assert len(residuals) == 1
    assert residuals[0].target_qty == 10


def test_failed_residual_insert_rolls_back_the_confirmation(db, factory_floor, monkeypatch) -> None:
    floor = factory_floor
    task = _create(db, floor, target_qty=50)
    task_id = task.id
    update_task_progress_use_case(
        db=db, caller=floor["employee"], task_id=task_id, completed_qty=35, submit=True
    )

    # The residual gets the original's primary key, so its insert must fail.
    monkeypatch.setattr(task_transitions, "uuid4", lambda: task_id)
    with pytest.raises(InternalFailure):
        confirm_task_use_case(db=db, caller=floor["supervisor"], task_id=task_id, confirmed_qty=30)

    db.expire_all()
    original = db.query(Task).filter(Task.id == task_id).one()
    assert original.status == "completed"
    assert original.completed_qty == 35
    assert db.query(Task).count() == 1


def test_other_tenants_tasks_are_invisible_and_untouchable(db, make, factory_floor) -> None:
    floor = factory_floor
    task = _create(db, floor)

    other = make.tenant()
    outsider = make.caller(make.user(other, "supervisor"))

    tasks, total = list_tasks_use_case(db=db, caller=outsider, filters=TaskFilter())
    assert tasks == []
    assert total == 0

    with pytest.raises(AuthorizationFailure):
        get_task_use_case(db=db, caller=outsider, task_id=task.id)
    with pytest.raises(AuthorizationFailure):
        delete_task_use_case(db=db, caller=outsider, task_id=task.id)
    with pytest.raises(AuthorizationFailure) as exc:
        list_tasks_use_case(db=db, caller=outsider, filters=TaskFilter(tenant_id=floor["tenant"].id))
    assert exc.value.code == "CROSS_TENANT_ACCESS_DENIED"


def test_super_admin_lists_across_tenants(db, make, factory_floor) -> None:
    _create(db, factory_floor)
    other = make.tenant()
    other_floor = {
        "tenant": other,
        "supervisor": make.caller(make.user(other, "supervisor")),
        "employee": make.caller(make.user(other, "employee")),
    }
    other_floor["product"], other_floor["stage"] = make.catalog(other)
    _create(db, other_floor)

    admin = make.caller(make.user(None, "super_admin"))
    _, total = list_tasks_use_case(db=db, caller=admin, filters=TaskFilter())
    assert total == 2
    _, scoped = list_tasks_use_case(db=db, caller=admin, filters=TaskFilter(tenant_id=other.id))
    assert scoped == 1


def test_employee_only_sees_own_tasks(db, make, factory_floor) -> None:
    floor = factory_floor
    _create(db, floor)
    colleague = make.caller(make.user(floor["tenant"], "employee"))

    tasks, total = list_tasks_use_case(db=db, caller=colleague, filters=TaskFilter())
    assert total == 0

    tasks, total = list_tasks_use_case(db=db, caller=floor["employee"], filters=TaskFilter())
    assert total == 1
    assert tasks[0].employee_id == floor["employee"].user_id


def test_overdue_filter_selects_active_tasks_past_deadline(db, factory_floor) -> None:
    floor = factory_floor
    late = _create(db, floor, deadline=datetime.now(timezone.utc) - timedelta(hours=2))
    _create(db, floor)

    tasks, total = list_tasks_use_case(db=db, caller=floor["supervisor"], filters=TaskFilter(status="overdue"))
    assert total == 1
    assert tasks[0].id == late.id

    _, active_total = list_tasks_use_case(db=db, caller=floor["supervisor"], filters=TaskFilter(status="active"))
    assert active_total == 1


def test_pagination_is_newest_first_and_bounded(db, factory_floor) -> None:
    floor = factory_floor
    base = datetime.now(timezone.utc).replace(microsecond=0)
    # Insertion order differs from creation time so only created_at can explain the result.
    ids_by_age = {}
    for qty, hours_ago in ((1, 1), (2, 3), (3, 2)):
        task_id = _create(db, floor, target_qty=qty).id
        db.query(Task).filter(Task.id == task_id).update(
            {"created_at": base - timedelta(hours=hours_ago)}, synchronize_session=False
        )
        ids_by_age[hours_ago] = task_id
    db.commit()

    page_one, total = list_tasks_use_case(db=db, caller=floor["supervisor"], filters=TaskFilter(), page=1, limit=2)
    page_two, _ = list_tasks_use_case(db=db, caller=floor["supervisor"], filters=TaskFilter(), page=2, limit=2)

    assert total == 3
    assert [t.id for t in page_one] == [ids_by_age[1], ids_by_age[2]]
    assert [t.id for t in page_two] == [ids_by_age[3]]

    with pytest.raises(DomainError) as exc:
        list_tasks_use_case(db=db, caller=floor["supervisor"], filters=TaskFilter(), page=1, limit=500)
    assert exc.value.http_status == 400


def test_delete_only_before_judgement(db, factory_floor) -> None:
    floor = factory_floor
    task = _create(db, floor, target_qty=5)
    task_id = task.id

    delete_task_use_case(db=db, caller=floor["supervisor"], task_id=task_id)
    with pytest.raises(NotFound):
        get_task_use_case(db=db, caller=floor["supervisor"], task_id=task_id)
