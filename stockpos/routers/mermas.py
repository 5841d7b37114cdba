from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from stockpos.core.api_docs import error_responses
from stockpos.core.deps import get_db
from stockpos.core.money import to_money, to_qty
from stockpos.core.permissions import require_permission
from stockpos.models.merma import Merma
from stockpos.models.product import Product
from stockpos.models.user import User
from stockpos.schemas.common import Envelope, Page, page_meta
from stockpos.schemas.inventory import MermaCreate, MermaOut, MermaReason, MermaReportOut, MermaUpdate
from stockpos.services.merma_service import MermaChanges, MermaService

router = APIRouter(prefix="/mermas", tags=["mermas"])


def merma_out(db: Session, merma: Merma) -> MermaOut:
    product = db.get(Product, merma.product_id)
    quantity = to_qty(merma.quantity)
    return MermaOut(
        id=merma.id,
        product_id=merma.product_id,
        product_name=product.name if product else None,
        category=product.category if product else None,
        unit=product.unit if product else None,
        quantity=float(quantity),
        reason=merma.reason,
        description=merma.description,
        value_lost=float(to_money(quantity * to_money(product.sale_price))) if product else 0.0,
        created_at=merma.created_at,
    )


@router.post(
    "",
    response_model=Envelope[MermaOut],
    status_code=status.HTTP_201_CREATED,
    summary="Record merma",
    description="Removes the lost quantity from stock. Rejected with `insufficient_stock` when stock is short.",
    responses=error_responses(400, 401, 403, 404, 500),
)
def create_merma(
    payload: MermaCreate,
    db: Session = Depends(get_db),
    actor: User = Depends(require_permission("mermas.write")),
):
    merma = MermaService(db).record_merma(**payload.model_dump(), actor_user_id=actor.id)
    return Envelope(data=merma_out(db, merma), message="Merma registered")


@router.get(
    "",
    response_model=Envelope[Page[MermaOut]],
    summary="List mermas",
    responses=error_responses(400, 401, 403, 500),
)
def list_mermas(
    product_id: int | None = Query(default=None, gt=0),
    reason: MermaReason | None = Query(default=None),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    _: User = Depends(require_permission("mermas.read")),
):
    mermas, total = MermaService(db).list_mermas(
        product_id=product_id,
        reason=reason,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
        offset=offset,
    )
    items = [merma_out(db, merma) for merma in mermas]
    return Envelope(
        data=Page[MermaOut](
            items=items,
            pagination=page_meta(total=total, limit=limit, offset=offset, count=len(items)),
        )
    )


@router.get(
    "/report",
    response_model=Envelope[MermaReportOut],
    summary="Losses by reason",
    description="Value lost is quantity times the product's current sale price.",
    responses=error_responses(400, 401, 403, 500),
)
def merma_report(
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    reason: MermaReason | None = Query(default=None),
    db: Session = Depends(get_db),
    _: User = Depends(require_permission("mermas.read")),
):
    report = MermaService(db).report(start_date=start_date, end_date=end_date, reason=reason)
    return Envelope(data=MermaReportOut(**report))


@router.get(
    "/{merma_id}",
    response_model=Envelope[MermaOut],
    summary="Get merma",
    responses=error_responses(401, 403, 404, 500),
)
def get_merma(
    merma_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(require_permission("mermas.read")),
):
    return Envelope(data=merma_out(db, MermaService(db).get_merma(merma_id)))


@router.put(
    "/{merma_id}",
    response_model=Envelope[MermaOut],
    summary="Update merma",
    description="Changing product or quantity restores the original loss and records the new one.",
    responses=error_responses(400, 401, 403, 404, 500),
)
def update_merma(
    merma_id: int,
    payload: MermaUpdate,
    db: Session = Depends(get_db),
    actor: User = Depends(require_permission("mermas.write")),
):
    changes = MermaChanges(**payload.model_dump(exclude_unset=True))
    merma = MermaService(db).update_merma(merma_id, changes, actor_user_id=actor.id)
    return Envelope(data=merma_out(db, merma), message="Merma updated")


@router.delete(
    "/{merma_id}",
    response_model=Envelope[None],
    summary="Delete merma",
    description="Returns the lost quantity to stock.",
    responses=error_responses(401, 403, 404, 500),
)
def delete_merma(
    merma_id: int,
    db: Session = Depends(get_db),
    actor: User = Depends(require_permission("mermas.delete")),
):
    MermaService(db).delete_merma(merma_id, actor_user_id=actor.id)
    return Envelope(message="Merma deleted")
