from datetime import date, datetime, timezone

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from stockpos.core.api_docs import error_responses
from stockpos.core.deps import get_db
from stockpos.core.money import to_money, to_qty
from stockpos.core.permissions import require_permission
from stockpos.models.sales import Sale
from stockpos.models.user import User
from stockpos.schemas.common import Envelope, page_meta
from stockpos.schemas.sales import (
    DailySalesSummaryOut,
    PaymentMethod,
    SaleCreate,
    SaleLineOut,
    SaleListOut,
    SaleOut,
    SaleStatus,
    SaleVoidIn,
)
from stockpos.services.sales_service import (
    SaleFilters,
    SaleHeader,
    SaleLineInput,
    SaleService,
    product_names,
)

router = APIRouter(prefix="/sales", tags=["sales"])

MAX_SALES_PAGE_SIZE = 200


def sale_out(sale: Sale, names: dict[int, str] | None = None) -> SaleOut:
    names = names or {}
    lines = [
        SaleLineOut(
            id=line.id,
            position=line.position,
            product_id=line.product_id,
            product_name=names.get(line.product_id),
            quantity=float(to_qty(line.quantity)),
            unit_price=float(to_money(line.unit_price)),
            subtotal=float(to_money(line.subtotal)),
        )
        for line in sale.lines
    ]
    return SaleOut(
        id=sale.id,
        customer_name=sale.customer_name,
        customer_phone=sale.customer_phone,
        customer_email=sale.customer_email,
        total=float(to_money(sale.total)),
        payment_method=sale.payment_method,
        payment_reference=sale.payment_reference,
        status=sale.status,
        void_reason=sale.void_reason,
        voided_at=sale.voided_at,
        created_at=sale.created_at,
        items_count=len(lines),
        units_count=float(sum((to_qty(line.quantity) for line in sale.lines), to_qty(0))),
        lines=lines,
    )


def _sale_out_with_names(db: Session, sale: Sale) -> SaleOut:
    return sale_out(sale, product_names(db, {line.product_id for line in sale.lines}))


@router.post(
    "",
    response_model=Envelope[SaleOut],
    status_code=status.HTTP_201_CREATED,
    summary="Create sale",
    description=(
        "Validates every line, decrements stock for each line in order and stores the sale "
        "with its lines in one transaction. The first line without enough stock rejects the "
        "whole sale with `insufficient_stock`."
    ),
    responses=error_responses(400, 401, 403, 404, 500),
)
def create_sale(
    payload: SaleCreate,
    db: Session = Depends(get_db),
    actor: User = Depends(require_permission("sales.create")),
):
    header = SaleHeader(**payload.model_dump(exclude={"lines"}))
    lines = [SaleLineInput(**line.model_dump()) for line in payload.lines]
    sale = SaleService(db).create_sale(header, lines, actor_user_id=actor.id)
    return Envelope(data=_sale_out_with_names(db, sale), message="Sale registered")


@router.get(
    "",
    response_model=Envelope[SaleListOut],
    summary="List sales",
    description="Filters: date range (inclusive days), payment method, customer name/phone substring and status.",
    responses=error_responses(400, 401, 500),
)
def list_sales(
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    payment_method: PaymentMethod | None = Query(default=None),
    customer: str | None = Query(default=None, max_length=100),
    sale_status: SaleStatus | None = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=MAX_SALES_PAGE_SIZE),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    _: User = Depends(require_permission("sales.read")),
):
    filters = SaleFilters(
        start_date=start_date,
        end_date=end_date,
        payment_method=payment_method,
        customer=customer,
        status=sale_status,
    )
    sales, total = SaleService(db).list_sales(filters, limit=limit, offset=offset)
    names = product_names(db, {line.product_id for sale in sales for line in sale.lines})
    items = [sale_out(sale, names) for sale in sales]
    return Envelope(
        data=SaleListOut(
            pagination=page_meta(total=total, limit=limit, offset=offset, count=len(items)),
            start_date=start_date,
            end_date=end_date,
            items=items,
        )
    )


@router.get(
    "/summary/daily",
    response_model=Envelope[DailySalesSummaryOut],
    summary="Daily sales summary",
    description="Voided sales are excluded. Defaults to today (UTC).",
    responses=error_responses(400, 401, 500),
)
def daily_summary(
    day: date | None = Query(default=None),
    db: Session = Depends(get_db),
    _: User = Depends(require_permission("sales.read")),
):
    target = day or datetime.now(timezone.utc).date()
    return Envelope(data=DailySalesSummaryOut(**SaleService(db).daily_summary(target)))


@router.get(
    "/{sale_id}",
    response_model=Envelope[SaleOut],
    summary="Get sale with lines",
    responses=error_responses(401, 404, 500),
)
def get_sale(
    sale_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(require_permission("sales.read")),
):
    sale = SaleService(db).get_sale(sale_id)
    return Envelope(data=_sale_out_with_names(db, sale))


@router.post(
    "/{sale_id}/void",
    response_model=Envelope[SaleOut],
    summary="Void sale",
    description="Returns every line's quantity to stock and marks the sale voided. A sale can be voided once.",
    responses=error_responses(400, 401, 403, 404, 500),
)
def void_sale(
    sale_id: int,
    payload: SaleVoidIn,
    db: Session = Depends(get_db),
    actor: User = Depends(require_permission("sales.void")),
):
    sale = SaleService(db).void_sale(sale_id, payload.reason, actor_user_id=actor.id)
    return Envelope(data=_sale_out_with_names(db, sale), message="Sale voided")
