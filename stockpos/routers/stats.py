from datetime import date, datetime, timedelta, timezone

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from stockpos.core.api_docs import error_responses
from stockpos.core.deps import get_db
from stockpos.core.permissions import require_permission
from stockpos.models.user import User
from stockpos.schemas.common import Envelope
from stockpos.schemas.stats import (
    DashboardOut,
    PaymentMethodStatsOut,
    ProductStatsOut,
    SalesByDayOut,
    TopProductOut,
)
from stockpos.services import stats_service

router = APIRouter(prefix="/stats", tags=["stats"])


def _validate_range(start_date: date | None, end_date: date | None) -> None:
    if start_date and end_date and start_date > end_date:
        raise HTTPException(status_code=400, detail="start_date must be on or before end_date")


@router.get(
    "/dashboard",
    response_model=Envelope[DashboardOut],
    summary="Dashboard summary",
    description="Sales for today, the last 7 days and the current month, inventory value and monthly losses.",
    responses=error_responses(401, 403, 500),
)
def dashboard(
    db: Session = Depends(get_db),
    _: User = Depends(require_permission("stats.read")),
):
    return Envelope(data=DashboardOut(**stats_service.get_dashboard(db)))


@router.get(
    "/sales",
    response_model=Envelope[SalesByDayOut],
    summary="Sales per day",
    description="Defaults to the last 30 days.",
    responses=error_responses(400, 401, 403, 500),
)
def sales_by_day(
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
    _: User = Depends(require_permission("stats.read")),
):
    end = end_date or datetime.now(timezone.utc).date()
    start = start_date or end - timedelta(days=29)
    _validate_range(start, end)
    return Envelope(data=SalesByDayOut(**stats_service.sales_by_day(db, start_date=start, end_date=end)))


@router.get(
    "/products",
    response_model=Envelope[ProductStatsOut],
    summary="Product performance",
    responses=error_responses(400, 401, 403, 500),
)
def product_performance(
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
    _: User = Depends(require_permission("stats.read")),
):
    _validate_range(start_date, end_date)
    data = stats_service.product_performance(db, start_date=start_date, end_date=end_date)
    return Envelope(data=ProductStatsOut(**data))


@router.get(
    "/top-products",
    response_model=Envelope[list[TopProductOut]],
    summary="Best sellers by quantity",
    responses=error_responses(400, 401, 403, 500),
)
def top_products(
    limit: int = Query(default=10, ge=1, le=100),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
    _: User = Depends(require_permission("stats.read")),
):
    _validate_range(start_date, end_date)
    rows = stats_service.top_products(db, limit=limit, start_date=start_date, end_date=end_date)
    return Envelope(data=[TopProductOut(**row) for row in rows])


@router.get(
    "/payment-methods",
    response_model=Envelope[PaymentMethodStatsOut],
    summary="Sales by payment method",
    responses=error_responses(400, 401, 403, 500),
)
def payment_methods(
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
    _: User = Depends(require_permission("stats.read")),
):
    _validate_range(start_date, end_date)
    data = stats_service.payment_methods(db, start_date=start_date, end_date=end_date)
    return Envelope(data=PaymentMethodStatsOut(**data))
