from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from stockpos.core.api_docs import error_responses
from stockpos.core.deps import get_db
from stockpos.core.permissions import require_permission
from stockpos.models.supplier import Supplier
from stockpos.models.user import User
from stockpos.schemas.common import Envelope, Page, page_meta
from stockpos.schemas.supplier import SupplierIn, SupplierOut, SupplierStatsOut
from stockpos.services import supplier_service

router = APIRouter(prefix="/suppliers", tags=["suppliers"])


def supplier_out(supplier: Supplier) -> SupplierOut:
    return SupplierOut(
        id=supplier.id,
        name=supplier.name,
        contact=supplier.contact,
        phone=supplier.phone,
        email=supplier.email,
        address=supplier.address,
        rfc=supplier.rfc,
        products_supplied=supplier.products_supplied,
        notes=supplier.notes,
        active=bool(supplier.active),
        created_at=supplier.created_at,
        updated_at=supplier.updated_at,
    )


@router.get(
    "",
    response_model=Envelope[Page[SupplierOut]],
    summary="List suppliers",
    responses=error_responses(401, 403, 500),
)
def list_suppliers(
    active: bool | None = Query(default=None),
    search: str | None = Query(default=None, max_length=100),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    _: User = Depends(require_permission("suppliers.read")),
):
    suppliers, total = supplier_service.list_suppliers(
        db, active=active, search=search, limit=limit, offset=offset
    )
    items = [supplier_out(supplier) for supplier in suppliers]
    return Envelope(
        data=Page[SupplierOut](
            items=items,
            pagination=page_meta(total=total, limit=limit, offset=offset, count=len(items)),
        )
    )


@router.get(
    "/stats",
    response_model=Envelope[SupplierStatsOut],
    summary="Supplier counters",
    responses=error_responses(401, 403, 500),
)
def supplier_stats(
    db: Session = Depends(get_db),
    _: User = Depends(require_permission("suppliers.read")),
):
    return Envelope(data=SupplierStatsOut(**supplier_service.supplier_stats(db)))


@router.get(
    "/{supplier_id}",
    response_model=Envelope[SupplierOut],
    summary="Get supplier",
    responses=error_responses(401, 403, 404, 500),
)
def get_supplier(
    supplier_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(require_permission("suppliers.read")),
):
    return Envelope(data=supplier_out(supplier_service.get_supplier(db, supplier_id)))


@router.post(
    "",
    response_model=Envelope[SupplierOut],
    status_code=status.HTTP_201_CREATED,
    summary="Create supplier",
    description="Name and RFC must be unique; duplicates answer 409.",
    responses=error_responses(400, 401, 403, 409, 500),
)
def create_supplier(
    payload: SupplierIn,
    db: Session = Depends(get_db),
    _: User = Depends(require_permission("suppliers.write")),
):
    supplier = supplier_service.create_supplier(db, payload.model_dump())
    return Envelope(data=supplier_out(supplier), message="Supplier created")


@router.put(
    "/{supplier_id}",
    response_model=Envelope[SupplierOut],
    summary="Update supplier",
    responses=error_responses(400, 401, 403, 404, 409, 500),
)
def update_supplier(
    supplier_id: int,
    payload: SupplierIn,
    db: Session = Depends(get_db),
    _: User = Depends(require_permission("suppliers.write")),
):
    supplier = supplier_service.update_supplier(db, supplier_id, payload.model_dump(exclude_unset=True))
    return Envelope(data=supplier_out(supplier), message="Supplier updated")


@router.delete(
    "/{supplier_id}",
    response_model=Envelope[SupplierOut],
    summary="Deactivate supplier",
    responses=error_responses(401, 403, 404, 500),
)
def delete_supplier(
    supplier_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(require_permission("suppliers.write")),
):
    supplier = supplier_service.deactivate_supplier(db, supplier_id)
    return Envelope(data=supplier_out(supplier), message="Supplier deactivated")
