from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from app.domain_errors import AuthorizationFailure, Conflict, NotFound, ValidationFailure
from app.models import ProcessStage
from app.schemas import (
    ProcessStageCreate,
    ProcessStageUpdate,
    ProductCreate,
    ProductUpdate,
    StageReorderRequest,
    TaskCreate,
)
from app.use_cases.catalog import (
    create_product_use_case,
    create_stage_use_case,
    delete_product_use_case,
    get_product_use_case,
    list_products_use_case,
    list_stages_use_case,
    reorder_stages_use_case,
    update_product_use_case,
    update_stage_use_case,
)
from app.use_cases.task_transitions import create_task_use_case


def test_factory_admin_builds_a_product_with_ordered_stages(db, make) -> None:
    tenant = make.tenant()
    admin = make.caller(make.user(tenant, "factory_admin"))

    product = create_product_use_case(db=db, caller=admin, data=ProductCreate(name="Cotton Shirt"))
    create_stage_use_case(
        db=db, caller=admin, product_id=product.id, data=ProcessStageCreate(name="Ironing", order=3)
    )
    create_stage_use_case(
        db=db, caller=admin, product_id=product.id, data=ProcessStageCreate(name="Cutting", order=1)
    )

    assert product.tenant_id == tenant.id
    stages = list_stages_use_case(db=db, caller=admin, product_id=product.id)
    assert [stage.name for stage in stages] == ["Cutting", "Ironing"]
    assert all(stage.tenant_id == tenant.id for stage in stages)


def test_duplicate_product_name_in_a_factory_conflicts(db, make) -> None:
    tenant = make.tenant()
    admin = make.caller(make.user(tenant, "factory_admin"))
    create_product_use_case(db=db, caller=admin, data=ProductCreate(name="Cotton Shirt"))

    with pytest.raises(Conflict) as exc:
        create_product_use_case(db=db, caller=admin, data=ProductCreate(name="Cotton Shirt"))
    assert exc.value.code == "PRODUCT_ALREADY_EXISTS"

    # Another factory may reuse the name.
    other_admin = make.caller(make.user(make.tenant(), "factory_admin"))
    create_product_use_case(db=db, caller=other_admin, data=ProductCreate(name="Cotton Shirt"))


def test_products_are_listed_per_factory(db, make) -> None:
    tenant = make.tenant()
    product, _ = make.catalog(tenant)
    make.catalog(make.tenant())
    employee = make.caller(make.user(tenant, "employee"))

    products = list_products_use_case(db=db, caller=employee)

    assert [p.id for p in products] == [product.id]


def test_supervisors_cannot_edit_the_catalog(db, make) -> None:
    tenant = make.tenant()
    product, _ = make.catalog(tenant)
    supervisor = make.caller(make.user(tenant, "supervisor"))

    with pytest.raises(AuthorizationFailure):
        create_product_use_case(db=db, caller=supervisor, data=ProductCreate(name="Denim"))
    with pytest.raises(AuthorizationFailure):
        create_stage_use_case(
            db=db, caller=supervisor, product_id=product.id, data=ProcessStageCreate(name="Dyeing", order=2)
        )


def test_stages_of_another_factorys_product_are_hidden(db, make) -> None:
    tenant = make.tenant()
    foreign_product, _ = make.catalog(make.tenant())
    admin = make.caller(make.user(tenant, "factory_admin"))

    with pytest.raises(AuthorizationFailure):
        list_stages_use_case(db=db, caller=admin, product_id=foreign_product.id)
    with pytest.raises(NotFound):
        list_stages_use_case(db=db, caller=admin, product_id=tenant.id)


def test_update_product_renames_within_the_factory(db, make) -> None:
    tenant = make.tenant()
    admin = make.caller(make.user(tenant, "factory_admin"))
    shirt = create_product_use_case(db=db, caller=admin, data=ProductCreate(name="Cotton Shirt"))
    create_product_use_case(db=db, caller=admin, data=ProductCreate(name="Denim Jacket"))

    updated = update_product_use_case(
        db=db, caller=admin, product_id=shirt.id, data=ProductUpdate(name="Linen Shirt", description="Summer line")
    )
    assert (updated.name, updated.description) == ("Linen Shirt", "Summer line")
    assert get_product_use_case(db=db, caller=admin, product_id=shirt.id).name == "Linen Shirt"

    with pytest.raises(Conflict) as exc:
        update_product_use_case(db=db, caller=admin, product_id=shirt.id, data=ProductUpdate(name="Denim Jacket"))
    assert exc.value.code == "PRODUCT_ALREADY_EXISTS"

    # Keeping its own name is not a duplicate.
    update_product_use_case(db=db, caller=admin, product_id=shirt.id, data=ProductUpdate(name="Linen Shirt"))


def test_deleted_product_is_hidden_and_cannot_receive_tasks(db, make) -> None:
    tenant = make.tenant()
    product, stage = make.catalog(tenant)
    admin = make.caller(make.user(tenant, "factory_admin"))
    supervisor = make.caller(make.user(tenant, "supervisor"))
    employee = make.user(tenant, "employee")

    delete_product_use_case(db=db, caller=admin, product_id=product.id)

    assert list_products_use_case(db=db, caller=admin) == []
    assert get_product_use_case(db=db, caller=admin, product_id=product.id).is_active is False
    with pytest.raises(ValidationFailure) as exc:
        create_task_use_case(
            db=db,
            caller=supervisor,
            data=TaskCreate(
                employee_id=employee.id,
                product_id=product.id,
                process_stage_id=stage.id,
                target_qty=10,
                deadline=datetime.now(timezone.utc) + timedelta(days=2),
            ),
        )
    assert exc.value.code == "INVALID_REFERENCE"


def test_only_factory_admins_change_or_delete_products(db, make) -> None:
    tenant = make.tenant()
    product, _ = make.catalog(tenant)
    supervisor = make.caller(make.user(tenant, "supervisor"))
    outsider = make.caller(make.user(make.tenant(), "factory_admin"))

    with pytest.raises(AuthorizationFailure):
        delete_product_use_case(db=db, caller=supervisor, product_id=product.id)
    with pytest.raises(AuthorizationFailure) as exc:
        update_product_use_case(db=db, caller=outsider, product_id=product.id, data=ProductUpdate(name="Taken"))
    assert exc.value.code == "CROSS_TENANT_ACCESS_DENIED"
    with pytest.raises(NotFound):
        delete_product_use_case(db=db, caller=outsider, product_id=uuid4())


def test_update_stage_must_address_the_right_product(db, make) -> None:
    tenant = make.tenant()
    product, stage = make.catalog(tenant)
    other_product, _ = make.catalog(tenant)
    admin = make.caller(make.user(tenant, "factory_admin"))

    updated = update_stage_use_case(
        db=db, caller=admin, product_id=product.id, stage_id=stage.id, data=ProcessStageUpdate(name="Overlocking")
    )
    assert updated.name == "Overlocking"
    assert updated.order == 1

    with pytest.raises(NotFound):
        update_stage_use_case(
            db=db, caller=admin, product_id=other_product.id, stage_id=stage.id, data=ProcessStageUpdate(order=4)
        )


def test_reorder_stages_applies_all_positions(db, make) -> None:
    tenant = make.tenant()
    admin = make.caller(make.user(tenant, "factory_admin"))
    product = create_product_use_case(db=db, caller=admin, data=ProductCreate(name="Cotton Shirt"))
    cutting = create_stage_use_case(
        db=db, caller=admin, product_id=product.id, data=ProcessStageCreate(name="Cutting", order=1)
    )
    ironing = create_stage_use_case(
        db=db, caller=admin, product_id=product.id, data=ProcessStageCreate(name="Ironing", order=2)
    )

    stages = reorder_stages_use_case(
        db=db,
        caller=admin,
        product_id=product.id,
        data=StageReorderRequest(stage_orders=[{"id": cutting.id, "order": 2}, {"id": ironing.id, "order": 1}]),
    )

    assert [stage.name for stage in stages] == ["Ironing", "Cutting"]
    listed = list_stages_use_case(db=db, caller=admin, product_id=product.id)
    assert [stage.name for stage in listed] == ["Ironing", "Cutting"]


def test_reorder_rejects_stages_of_other_products(db, make) -> None:
    tenant = make.tenant()
    product, stage = make.catalog(tenant)
    _, foreign_stage = make.catalog(tenant)
    admin = make.caller(make.user(tenant, "factory_admin"))

    with pytest.raises(ValidationFailure) as exc:
        reorder_stages_use_case(
            db=db,
            caller=admin,
            product_id=product.id,
            data=StageReorderRequest(
                stage_orders=[{"id": stage.id, "order": 2}, {"id": foreign_stage.id, "order": 1}]
            ),
        )
    assert exc.value.code == "INVALID_REFERENCE"
    assert exc.value.details == {"stageIds": [str(foreign_stage.id)]}
    db.expire_all()
    assert db.query(ProcessStage).filter(ProcessStage.id == stage.id).one().order == 1

    with pytest.raises(ValidationFailure) as exc:
        reorder_stages_use_case(
            db=db,
            caller=admin,
            product_id=product.id,
            data=StageReorderRequest(stage_orders=[{"id": stage.id, "order": 1}, {"id": stage.id, "order": 2}]),
        )
    assert exc.value.code == "DUPLICATE_STAGE"
