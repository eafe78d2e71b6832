"""Products and their ordered process stages (task references).

Deleting a product only deactivates it; tasks keep their references.
"""
from __future__ import annotations

import logging
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..auth import require_role
from ..context import CallerContext
from ..domain_errors import Conflict, InternalFailure, NotFound, ValidationFailure
from ..models import ProcessStage, Product
from ..schemas import (
    ProcessStageCreate,
    ProcessStageUpdate,
    ProductCreate,
    ProductUpdate,
    StageReorderRequest,
)
from ..security import require_tenant_entity, resolve_tenant_scope, stamp_tenant

logger = logging.getLogger(__name__)


def _get_product(db: Session, *, caller: CallerContext, product_id: UUID) -> Product:
    return require_tenant_entity(
        db,
        Product,
        entity_id=product_id,
        caller=caller,
        code="PRODUCT_NOT_FOUND",
        not_found="Product not found",
    )


def _commit(db: Session, message: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception(message)
        raise InternalFailure(code="CATALOG_UPDATE_FAILED", message=message)


def list_products_use_case(
    *,
    db: Session,
    caller: CallerContext,
    tenant_id: UUID | None = None,
) -> list[Product]:
    require_role(caller, "products:list")
    scope = resolve_tenant_scope(caller, tenant_id)
    query = db.query(Product).filter(Product.is_active == True)  # noqa: E712
    if scope is not None:
        query = query.filter(Product.tenant_id == scope)
    return query.order_by(Product.name.asc()).all()


def create_product_use_case(*, db: Session, caller: CallerContext, data: ProductCreate) -> Product:
    require_role(caller, "products:create")
    tenant_id = stamp_tenant(caller)
    duplicate = db.query(Product).filter(
        Product.tenant_id == tenant_id,
        Product.name == data.name,
    ).first()
    if duplicate:
        raise Conflict(code="PRODUCT_ALREADY_EXISTS", message="Product with this name already exists")

    product = Product(id=uuid4(), tenant_id=tenant_id, name=data.name, description=data.description)
    db.add(product)
    _commit(db, "Failed to create product")
    return product


def get_product_use_case(*, db: Session, caller: CallerContext, product_id: UUID) -> Product:
    require_role(caller, "products:list")
    return _get_product(db, caller=caller, product_id=product_id)


def update_product_use_case(
    *,
    db: Session,
    caller: CallerContext,
    product_id: UUID,
    data: ProductUpdate,
) -> Product:
    require_role(caller, "products:update")
    product = _get_product(db, caller=caller, product_id=product_id)

    changes = data.model_dump(exclude_none=True)
    if "name" in changes and changes["name"] != product.name:
        duplicate = db.query(Product).filter(
            Product.tenant_id == product.tenant_id,
            Product.name == changes["name"],
            Product.id != product.id,
        ).first()
        if duplicate:
            raise Conflict(code="PRODUCT_ALREADY_EXISTS", message="Product with this name already exists")

    for field, value in changes.items():
        setattr(product, field, value)
    _commit(db, "Failed to update product")
    return product


def delete_product_use_case(*, db: Session, caller: CallerContext, product_id: UUID) -> Product:
    """Soft delete: the product disappears from listings and new task assignment."""
    require_role(caller, "products:delete")
    product = _get_product(db, caller=caller, product_id=product_id)
    product.is_active = False
    _commit(db, "Failed to delete product")
    logger.info("Product %s deactivated by %s", product_id, caller.user_id)
    return product


def list_stages_use_case(*, db: Session, caller: CallerContext, product_id: UUID) -> list[ProcessStage]:
    require_role(caller, "products:list")
    product = _get_product(db, caller=caller, product_id=product_id)
    return (
        db.query(ProcessStage)
        .filter(ProcessStage.product_id == product.id, ProcessStage.is_active == True)  # noqa: E712
        .order_by(ProcessStage.order.asc())
        .all()
    )


def create_stage_use_case(
    *,
    db: Session,
    caller: CallerContext,
    product_id: UUID,
    data: ProcessStageCreate,
) -> ProcessStage:
    require_role(caller, "stages:create")
    product = _get_product(db, caller=caller, product_id=product_id)
    stage = ProcessStage(
        id=uuid4(),
        tenant_id=product.tenant_id,
        product_id=product.id,
        name=data.name,
        description=data.description,
        order=data.order,
    )
    db.add(stage)
    _commit(db, "Failed to create process stage")
    return stage


def update_stage_use_case(
    *,
    db: Session,
    caller: CallerContext,
    product_id: UUID,
    stage_id: UUID,
    data: ProcessStageUpdate,
) -> ProcessStage:
    require_role(caller, "stages:update")
    stage = require_tenant_entity(
        db,
        ProcessStage,
        entity_id=stage_id,
        caller=caller,
        code="STAGE_NOT_FOUND",
        not_found="Process stage not found",
    )
    if stage.product_id != product_id:
        raise NotFound(code="STAGE_NOT_FOUND", message="Process stage not found")

    for field, value in data.model_dump(exclude_none=True).items():
        setattr(stage, field, value)
    _commit(db, "Failed to update process stage")
    return stage


def reorder_stages_use_case(
    *,
    db: Session,
    caller: CallerContext,
    product_id: UUID,
    data: StageReorderRequest,
) -> list[ProcessStage]:
    """Apply new stage positions in one commit; every id must be a stage of the product."""
    require_role(caller, "stages:reorder")
    product = _get_product(db, caller=caller, product_id=product_id)

    orders = {item.id: item.order for item in data.stage_orders}
    if len(orders) != len(data.stage_orders):
        raise ValidationFailure(code="DUPLICATE_STAGE", message="Each stage may appear only once")

    stages = (
        db.query(ProcessStage)
        .filter(ProcessStage.product_id == product.id, ProcessStage.id.in_(list(orders)))
        .all()
    )
    if len(stages) != len(orders):
        found = {stage.id for stage in stages}
        raise ValidationFailure(
            code="INVALID_REFERENCE",
            message="Stage does not belong to this product",
            details={"stageIds": [str(stage_id) for stage_id in orders if stage_id not in found]},
        )

    for stage in stages:
        stage.order = orders[stage.id]
    _commit(db, "Failed to reorder process stages")
    return sorted(stages, key=lambda stage: stage.order)
