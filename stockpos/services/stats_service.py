"""
Read-side projections for the dashboard and statistics endpoints.

Nothing here writes. Voided sales are excluded from every aggregate.
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from stockpos.core.money import ZERO_MONEY, to_money, to_qty
from stockpos.models.entry import StockEntry
from stockpos.models.merma import Merma
from stockpos.models.product import Product
from stockpos.models.sales import Sale, SaleLine
from stockpos.services.product_service import low_stock_products
from stockpos.services.sales_service import day_bounds

ACTIVE = Sale.status == "active"


def _utc_day(value: datetime) -> date:
    # SQLite hands back naive datetimes; stored values are UTC.
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.date()


def _date_filters(column, start_date: date | None, end_date: date | None) -> list:
    conditions = []
    if start_date:
        conditions.append(column >= day_bounds(start_date)[0])
    if end_date:
        conditions.append(column < day_bounds(end_date)[1])
    return conditions


def _sales_window(db: Session, start_date: date, end_date: date | None = None) -> dict:
    conditions = [ACTIVE, *_date_filters(Sale.created_at, start_date, end_date)]
    count, revenue = db.execute(
        select(func.count(Sale.id), func.coalesce(func.sum(Sale.total), 0)).where(*conditions)
    ).one()
    revenue = to_money(revenue)
    return {
        "sales_count": int(count),
        "revenue": float(revenue),
        "average_sale": float(to_money(revenue / int(count))) if count else 0.0,
    }


def get_dashboard(db: Session, *, today: date | None = None) -> dict:
    today = today or datetime.now(timezone.utc).date()
    week_start = today - timedelta(days=6)
    month_start = today.replace(day=1)

    stock_value, products_count, out_of_stock = db.execute(
        select(
            func.coalesce(func.sum(Product.current_stock * Product.purchase_price), 0),
            func.count(Product.id),
            func.coalesce(func.sum(case((Product.current_stock <= 0, 1), else_=0)), 0),
        ).where(Product.active.is_(True))
    ).one()

    mermas_month = db.execute(
        select(
            func.count(Merma.id),
            func.coalesce(func.sum(Merma.quantity * Product.sale_price), 0),
        )
        .join(Product, Product.id == Merma.product_id)
        .where(*_date_filters(Merma.created_at, month_start, today))
    ).one()

    entries_month = db.execute(
        select(
            func.count(StockEntry.id),
            func.coalesce(func.sum(StockEntry.quantity * StockEntry.purchase_price), 0),
        ).where(*_date_filters(StockEntry.created_at, month_start, today))
    ).one()

    return {
        "today": _sales_window(db, today, today),
        "week": _sales_window(db, week_start, today),
        "month": _sales_window(db, month_start, today),
        "inventory": {
            "products": int(products_count),
            "stock_value": float(to_money(stock_value)),
            "low_stock": len(low_stock_products(db)),
            "out_of_stock": int(out_of_stock),
        },
        "mermas_month": {"cases": int(mermas_month[0]), "value_lost": float(to_money(mermas_month[1]))},
        "entries_month": {"count": int(entries_month[0]), "invested": float(to_money(entries_month[1]))},
        "top_products": top_products(db, limit=5, start_date=month_start, end_date=today),
    }


def sales_by_day(db: Session, *, start_date: date, end_date: date) -> dict:
    rows = db.execute(
        select(Sale.created_at, Sale.total)
        .where(ACTIVE, *_date_filters(Sale.created_at, start_date, end_date))
        .order_by(Sale.created_at)
    ).all()

    buckets: dict[date, list[Decimal]] = {}
    for created_at, total in rows:
        buckets.setdefault(_utc_day(created_at), []).append(to_money(total))

    days = []
    total_revenue = ZERO_MONEY
    total_count = 0
    for day_value in sorted(buckets):
        totals = buckets[day_value]
        revenue = to_money(sum(totals, ZERO_MONEY))
        days.append(
            {
                "day": day_value,
                "sales_count": len(totals),
                "revenue": float(revenue),
                "average_sale": float(to_money(revenue / len(totals))),
            }
        )
        total_revenue += revenue
        total_count += len(totals)

    best = max(days, key=lambda item: item["revenue"]) if days else None
    worst = min(days, key=lambda item: item["revenue"]) if days else None
    return {
        "start_date": start_date,
        "end_date": end_date,
        "days": days,
        "total_revenue": float(total_revenue),
        "total_sales": total_count,
        "average_per_day": float(to_money(total_revenue / len(days))) if days else 0.0,
        "best_day": best,
        "worst_day": worst,
    }


def _stock_level(current: Decimal, minimum: Decimal) -> str:
    if current <= 0:
        return "out"
    if current <= minimum:
        return "low"
    if current <= minimum * 2:
        return "medium"
    return "ok"


def product_performance(db: Session, *, start_date: date | None = None, end_date: date | None = None) -> dict:
    sold = (
        select(
            SaleLine.product_id.label("product_id"),
            func.sum(SaleLine.quantity).label("quantity"),
            func.sum(SaleLine.subtotal).label("revenue"),
        )
        .join(Sale, Sale.id == SaleLine.sale_id)
        .where(ACTIVE, *_date_filters(Sale.created_at, start_date, end_date))
        .group_by(SaleLine.product_id)
        .subquery()
    )
    rows = db.execute(
        select(
            Product,
            func.coalesce(sold.c.quantity, 0),
            func.coalesce(sold.c.revenue, 0),
        )
        .outerjoin(sold, sold.c.product_id == Product.id)
        .where(Product.active.is_(True))
        .order_by(func.coalesce(sold.c.revenue, 0).desc(), Product.name.asc())
    ).all()

    products = []
    by_category: dict[str, dict] = {}
    for product, quantity, revenue in rows:
        quantity = to_qty(quantity)
        revenue = to_money(revenue)
        profit = to_money(revenue - quantity * to_money(product.purchase_price))
        products.append(
            {
                "product_id": product.id,
                "name": product.name,
                "category": product.category,
                "quantity_sold": float(quantity),
                "revenue": float(revenue),
                "profit": float(profit),
                "current_stock": float(to_qty(product.current_stock)),
                "stock_level": _stock_level(to_qty(product.current_stock), to_qty(product.min_stock)),
            }
        )
        bucket = by_category.setdefault(
            product.category, {"category": product.category, "products": 0, "quantity_sold": 0.0, "revenue": 0.0}
        )
        bucket["products"] += 1
        bucket["quantity_sold"] = float(to_qty(Decimal(str(bucket["quantity_sold"])) + quantity))
        bucket["revenue"] = float(to_money(Decimal(str(bucket["revenue"])) + revenue))

    return {
        "start_date": start_date,
        "end_date": end_date,
        "products": products,
        "by_category": sorted(by_category.values(), key=lambda item: item["revenue"], reverse=True),
    }


def top_products(
    db: Session,
    *,
    limit: int = 10,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[dict]:
    quantity = func.sum(SaleLine.quantity)
    rows = db.execute(
        select(
            Product.id,
            Product.name,
            Product.category,
            quantity,
            func.sum(SaleLine.subtotal),
            func.count(func.distinct(Sale.id)),
        )
        .join(SaleLine, SaleLine.product_id == Product.id)
        .join(Sale, Sale.id == SaleLine.sale_id)
        .where(ACTIVE, *_date_filters(Sale.created_at, start_date, end_date))
        .group_by(Product.id, Product.name, Product.category)
        .order_by(quantity.desc(), Product.id.asc())
        .limit(limit)
    ).all()
    return [
        {
            "product_id": product_id,
            "name": name,
            "category": category,
            "quantity_sold": float(to_qty(qty)),
            "revenue": float(to_money(revenue)),
            "sales_count": int(sales_count),
        }
        for product_id, name, category, qty, revenue, sales_count in rows
    ]


def payment_methods(db: Session, *, start_date: date | None = None, end_date: date | None = None) -> dict:
    rows = db.execute(
        select(Sale.payment_method, func.count(Sale.id), func.coalesce(func.sum(Sale.total), 0))
        .where(ACTIVE, *_date_filters(Sale.created_at, start_date, end_date))
        .group_by(Sale.payment_method)
        .order_by(func.sum(Sale.total).desc())
    ).all()
    grand_total = sum((to_money(amount) for _, _, amount in rows), ZERO_MONEY)
    methods = [
        {
            "payment_method": method,
            "count": int(count),
            "amount": float(to_money(amount)),
            "percentage": float(to_money(to_money(amount) * 100 / grand_total)) if grand_total else 0.0,
        }
        for method, count, amount in rows
    ]
    return {"start_date": start_date, "end_date": end_date, "methods": methods, "total": float(grand_total)}
