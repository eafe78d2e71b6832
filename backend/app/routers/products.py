"""Product and process stage endpoints."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..auth import get_caller
from ..context import CallerContext
from ..database import get_db
from ..schemas import (
    ProcessStageCreate,
    ProcessStageResponse,
    ProcessStageUpdate,
    ProductCreate,
    ProductResponse,
    ProductUpdate,
    StageReorderRequest,
)
from ..use_cases.catalog import (
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

router = APIRouter(prefix="/products", tags=["products"])


@router.get("", response_model=list[ProductResponse])
def get_products(
    tenant_id: Optional[UUID] = None,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    products = list_products_use_case(db=db, caller=caller, tenant_id=tenant_id)
    return [ProductResponse.model_validate(p) for p in products]


@router.post("", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
def create_product(
    data: ProductCreate,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    product = create_product_use_case(db=db, caller=caller, data=data)
    return ProductResponse.model_validate(product)


@router.get("/{product_id}", response_model=ProductResponse)
def get_product(
    product_id: UUID,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    product = get_product_use_case(db=db, caller=caller, product_id=product_id)
    return ProductResponse.model_validate(product)


@router.patch("/{product_id}", response_model=ProductResponse)
def update_product(
    product_id: UUID,
    data: ProductUpdate,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    product = update_product_use_case(db=db, caller=caller, product_id=product_id, data=data)
    return ProductResponse.model_validate(product)


@router.delete("/{product_id}")
def delete_product(
    product_id: UUID,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    """Soft delete a product."""
    delete_product_use_case(db=db, caller=caller, product_id=product_id)
    return {"success": True, "message": "Product deleted successfully"}


@router.get("/{product_id}/stages", response_model=list[ProcessStageResponse])
def get_product_stages(
    product_id: UUID,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    """Stages of a product in production order."""
    stages = list_stages_use_case(db=db, caller=caller, product_id=product_id)
    return [ProcessStageResponse.model_validate(s) for s in stages]


@router.post(
    "/{product_id}/stages",
    response_model=ProcessStageResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_process_stage(
    product_id: UUID,
    data: ProcessStageCreate,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    stage = create_stage_use_case(db=db, caller=caller, product_id=product_id, data=data)
    return ProcessStageResponse.model_validate(stage)


@router.patch("/{product_id}/stages/{stage_id}", response_model=ProcessStageResponse)
def update_process_stage(
    product_id: UUID,
    stage_id: UUID,
    data: ProcessStageUpdate,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    stage = update_stage_use_case(db=db, caller=caller, product_id=product_id, stage_id=stage_id, data=data)
    return ProcessStageResponse.model_validate(stage)


@router.post("/{product_id}/stages/reorder", response_model=list[ProcessStageResponse])
def reorder_process_stages(
    product_id: UUID,
    data: StageReorderRequest,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    """Move stages to new positions in one request."""
    stages = reorder_stages_use_case(db=db, caller=caller, product_id=product_id, data=data)
    return [ProcessStageResponse.model_validate(s) for s in stages]
