from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from stockpos.core.api_docs import error_responses
from stockpos.core.deps import get_db
from stockpos.core.money import to_money, to_qty
from stockpos.core.permissions import require_permission
from stockpos.models.entry import StockEntry
from stockpos.models.product import Product
from stockpos.models.user import User
from stockpos.schemas.common import Envelope, Page, page_meta
from stockpos.schemas.inventory import EntryCreate, EntryOut, EntrySupplierOut, EntryUpdate
from stockpos.services.entry_service import EntryChanges, EntryService

router = APIRouter(prefix="/entries", tags=["entries"])


def entry_out(db: Session, entry: StockEntry) -> EntryOut:
    product = db.get(Product, entry.product_id)
    quantity = to_qty(entry.quantity)
    price = to_money(entry.purchase_price)
    return EntryOut(
        id=entry.id,
        product_id=entry.product_id,
        product_name=product.name if product else None,
        category=product.category if product else None,
        unit=product.unit if product else None,
        quantity=float(quantity),
        purchase_price=float(price),
        total_value=float(to_money(quantity * price)),
        supplier_name=entry.supplier_name,
        supplier_id=entry.supplier_id,
        note=entry.note,
        created_at=entry.created_at,
    )


@router.post(
    "",
    response_model=Envelope[EntryOut],
    status_code=status.HTTP_201_CREATED,
    summary="Record stock entry",
    description="Adds the quantity to stock and updates the product purchase price to the received price.",
    responses=error_responses(400, 401, 403, 404, 500),
)
def create_entry(
    payload: EntryCreate,
    db: Session = Depends(get_db),
    actor: User = Depends(require_permission("entries.write")),
):
    entry = EntryService(db).record_entry(**payload.model_dump(), actor_user_id=actor.id)
    return Envelope(data=entry_out(db, entry), message="Entry registered")


@router.get(
    "",
    response_model=Envelope[Page[EntryOut]],
    summary="List stock entries",
    responses=error_responses(400, 401, 403, 500),
)
def list_entries(
    product_id: int | None = Query(default=None, gt=0),
    supplier: str | None = Query(default=None, max_length=100),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    _: User = Depends(require_permission("entries.read")),
):
    entries, total = EntryService(db).list_entries(
        product_id=product_id,
        supplier=supplier,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
        offset=offset,
    )
    items = [entry_out(db, entry) for entry in entries]
    return Envelope(
        data=Page[EntryOut](
            items=items,
            pagination=page_meta(total=total, limit=limit, offset=offset, count=len(items)),
        )
    )


@router.get(
    "/suppliers",
    response_model=Envelope[list[EntrySupplierOut]],
    summary="Suppliers seen in entries",
    description="Distinct free-text supplier names with entry count, total invested and last entry date.",
    responses=error_responses(401, 403, 500),
)
def entry_suppliers(
    db: Session = Depends(get_db),
    _: User = Depends(require_permission("entries.read")),
):
    rows = EntryService(db).list_suppliers_from_entries()
    return Envelope(data=[EntrySupplierOut(**row) for row in rows])


@router.get(
    "/{entry_id}",
    response_model=Envelope[EntryOut],
    summary="Get stock entry",
    responses=error_responses(401, 403, 404, 500),
)
def get_entry(
    entry_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(require_permission("entries.read")),
):
    return Envelope(data=entry_out(db, EntryService(db).get_entry(entry_id)))


@router.put(
    "/{entry_id}",
    response_model=Envelope[EntryOut],
    summary="Update stock entry",
    description="Changing product or quantity reverses the original movement and applies a new one.",
    responses=error_responses(400, 401, 403, 404, 500),
)
def update_entry(
    entry_id: int,
    payload: EntryUpdate,
    db: Session = Depends(get_db),
    actor: User = Depends(require_permission("entries.write")),
):
    changes = EntryChanges(**payload.model_dump(exclude_unset=True))
    entry = EntryService(db).update_entry(entry_id, changes, actor_user_id=actor.id)
    return Envelope(data=entry_out(db, entry), message="Entry updated")


@router.delete(
    "/{entry_id}",
    response_model=Envelope[None],
    summary="Delete stock entry",
    description="Removes the received quantity from stock. Rejected when that would leave stock negative.",
    responses=error_responses(400, 401, 403, 404, 500),
)
def delete_entry(
    entry_id: int,
    db: Session = Depends(get_db),
    actor: User = Depends(require_permission("entries.delete")),
):
    EntryService(db).delete_entry(entry_id, actor_user_id=actor.id)
    return Envelope(message="Entry deleted")
