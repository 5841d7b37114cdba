"""
Sale aggregate builder.

``SaleService.create_sale`` turns a validated header plus ordered lines into
one ``Sale`` with its ``SaleLine`` rows. Stock is decremented through the
movement engine inside the same unit of work, so a sale either exists with
all of its stock effects or not at all. ``void_sale`` is the exact inverse of
the stock side and keeps the sale row for history.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from stockpos.core.config import settings
from stockpos.core.errors import (
    AlreadyVoidedError,
    SaleNotFoundError,
    ValidationError,
)
from stockpos.core.money import ZERO_MONEY, ZERO_QTY, to_money, to_qty
from stockpos.core.observability import log_event
from stockpos.db.unit_of_work import unit_of_work
from stockpos.models.product import Product
from stockpos.models.sales import Sale, SaleLine
from stockpos.services.stock_engine import MovementKind, MovementUnit, StockMovementEngine

PAYMENT_METHODS = ("efectivo", "tarjeta_credito", "tarjeta_debito", "transferencia")


@dataclass(frozen=True)
class SaleHeader:
    total: Decimal
    payment_method: str
    customer_name: str | None = None
    customer_phone: str | None = None
    customer_email: str | None = None
    payment_reference: str | None = None


@dataclass(frozen=True)
class SaleLineInput:
    product_id: int
    quantity: Decimal
    unit_price: Decimal
    subtotal: Decimal


@dataclass(frozen=True)
class SaleFilters:
    start_date: date | None = None
    end_date: date | None = None
    payment_method: str | None = None
    customer: str | None = None
    status: str | None = None


def day_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


def validate_sale(header: SaleHeader, lines: list[SaleLineInput]) -> None:
    """Business rules that do not need the database."""
    if not lines:
        raise ValidationError("A sale needs at least one line")
    if header.payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"Unsupported payment method: {header.payment_method}")
    if to_money(header.total) <= ZERO_MONEY:
        raise ValidationError("Sale total must be greater than zero")

    subtotal_sum = ZERO_MONEY
    for position, line in enumerate(lines, start=1):
        quantity = to_qty(line.quantity)
        unit_price = to_money(line.unit_price)
        subtotal = to_money(line.subtotal)
        if quantity <= ZERO_QTY:
            raise ValidationError(f"Line {position}: quantity must be greater than zero")
        if unit_price <= ZERO_MONEY:
            raise ValidationError(f"Line {position}: unit price must be greater than zero")
        if subtotal <= ZERO_MONEY:
            raise ValidationError(f"Line {position}: subtotal must be greater than zero")
        # Discounts are allowed, markups are not.
        if subtotal > to_money(quantity * unit_price):
            raise ValidationError(
                f"Line {position}: subtotal {subtotal} exceeds quantity x unit price"
            )
        subtotal_sum += subtotal

    if to_money(header.total) != subtotal_sum:
        raise ValidationError(
            f"Sale total {to_money(header.total)} does not match line subtotals {subtotal_sum}"
        )


class SaleService:
    def __init__(self, db: Session):
        self.db = db
        self.engine = StockMovementEngine(db)

    def create_sale(
        self,
        header: SaleHeader,
        lines: list[SaleLineInput],
        *,
        actor_user_id: int | None = None,
    ) -> Sale:
        validate_sale(header, lines)

        with unit_of_work(self.db):
            units = [
                MovementUnit(
                    product_id=line.product_id,
                    delta=-to_qty(line.quantity),
                    kind=MovementKind.SALE,
                    reference_type="sale",
                    unit_cost=to_money(line.unit_price),
                    require_active=True,
                )
                for line in lines
            ]
            movements = self.engine.apply_movements(units, actor_user_id=actor_user_id)

            sale = Sale(
                customer_name=(header.customer_name or "").strip() or settings.default_customer_name,
                customer_phone=header.customer_phone,
                customer_email=header.customer_email,
                total=to_money(header.total),
                payment_method=header.payment_method,
                payment_reference=header.payment_reference,
                status="active",
                created_by_user_id=actor_user_id,
                lines=[
                    SaleLine(
                        product_id=line.product_id,
                        movement_id=movement.id,
                        position=position,
                        quantity=to_qty(line.quantity),
                        unit_price=to_money(line.unit_price),
                        subtotal=to_money(line.subtotal),
                    )
                    for position, (line, movement) in enumerate(zip(lines, movements), start=1)
                ],
            )
            self.db.add(sale)
            self.db.flush()
            self.engine.link_reference(movements, reference_type="sale", reference_id=sale.id)
            self.db.flush()

        log_event(
            "sale_created",
            sale_id=sale.id,
            lines=len(lines),
            total=sale.total,
            payment_method=sale.payment_method,
        )
        return self.get_sale(sale.id)

    def void_sale(self, sale_id: int, reason: str, *, actor_user_id: int | None = None) -> Sale:
        cleaned_reason = (reason or "").strip()
        if not cleaned_reason:
            raise ValidationError("A reason is required to void a sale")

        with unit_of_work(self.db):
            sale = self.db.execute(
                select(Sale)
                .where(Sale.id == sale_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
            if sale is None:
                raise SaleNotFoundError(sale_id)
            if sale.status == "voided":
                raise AlreadyVoidedError(sale_id)

            units = [
                MovementUnit(
                    product_id=line.product_id,
                    delta=to_qty(line.quantity),
                    kind=MovementKind.VOID,
                    reference_type="sale",
                    reference_id=sale.id,
                    unit_cost=line.unit_price,
                    note=cleaned_reason[:255],
                )
                for line in sale.lines
            ]
            self.engine.apply_movements(units, actor_user_id=actor_user_id)

            sale.status = "voided"
            sale.void_reason = cleaned_reason
            sale.voided_at = datetime.now(timezone.utc)
            sale.voided_by_user_id = actor_user_id
            self.db.flush()

        log_event("sale_voided", sale_id=sale.id, lines=len(sale.lines))
        return self.get_sale(sale.id)

    def get_sale(self, sale_id: int) -> Sale:
        sale = self.db.get(Sale, sale_id)
        if sale is None:
            raise SaleNotFoundError(sale_id)
        return sale

    def list_sales(self, filters: SaleFilters, *, limit: int = 50, offset: int = 0) -> tuple[list[Sale], int]:
        conditions = []
        if filters.start_date:
            conditions.append(Sale.created_at >= day_bounds(filters.start_date)[0])
        if filters.end_date:
            conditions.append(Sale.created_at < day_bounds(filters.end_date)[1])
        if filters.payment_method:
            conditions.append(Sale.payment_method == filters.payment_method)
        if filters.status:
            conditions.append(Sale.status == filters.status)
        if filters.customer:
            pattern = f"%{filters.customer.strip()}%"
            conditions.append(
                or_(Sale.customer_name.ilike(pattern), Sale.customer_phone.ilike(pattern))
            )

        total = self.db.execute(select(func.count(Sale.id)).where(*conditions)).scalar_one()
        rows = self.db.execute(
            select(Sale)
            .where(*conditions)
            .order_by(Sale.created_at.desc(), Sale.id.desc())
            .offset(offset)
            .limit(limit)
        ).scalars().all()
        return list(rows), int(total)

    def daily_summary(self, day: date) -> dict:
        start, end = day_bounds(day)
        conditions = [Sale.status == "active", Sale.created_at >= start, Sale.created_at < end]

        count, revenue, average, minimum, maximum = self.db.execute(
            select(
                func.count(Sale.id),
                func.coalesce(func.sum(Sale.total), 0),
                func.coalesce(func.avg(Sale.total), 0),
                func.coalesce(func.min(Sale.total), 0),
                func.coalesce(func.max(Sale.total), 0),
            ).where(*conditions)
        ).one()

        units_sold = self.db.execute(
            select(func.coalesce(func.sum(SaleLine.quantity), 0))
            .join(Sale, Sale.id == SaleLine.sale_id)
            .where(*conditions)
        ).scalar_one()

        by_method = {
            method: {"count": int(method_count), "amount": float(to_money(amount))}
            for method, method_count, amount in self.db.execute(
                select(Sale.payment_method, func.count(Sale.id), func.coalesce(func.sum(Sale.total), 0))
                .where(*conditions)
                .group_by(Sale.payment_method)
            ).all()
        }

        return {
            "day": day,
            "sales_count": int(count),
            "revenue": float(to_money(revenue)),
            "units_sold": float(to_qty(units_sold)),
            "average_sale": float(to_money(average)),
            "min_sale": float(to_money(minimum)),
            "max_sale": float(to_money(maximum)),
            "by_payment_method": by_method,
        }


def product_names(db: Session, product_ids: set[int]) -> dict[int, str]:
    if not product_ids:
        return {}
    rows = db.execute(select(Product.id, Product.name).where(Product.id.in_(product_ids))).all()
    return {product_id: name for product_id, name in rows}
