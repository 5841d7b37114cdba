from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from stockpos.core.errors import MermaNotFoundError, ValidationError
from stockpos.core.money import ZERO_MONEY, ZERO_QTY, to_money, to_qty
from stockpos.core.observability import log_event
from stockpos.db.unit_of_work import unit_of_work
from stockpos.models.merma import Merma
from stockpos.models.product import Product
from stockpos.services.sales_service import day_bounds
from stockpos.services.stock_engine import MovementKind, MovementUnit, StockMovementEngine

MERMA_REASONS = ("vencimiento", "daño", "robo", "otro")

_UNSET = object()


@dataclass(frozen=True)
class MermaChanges:
    product_id: int | None = None
    quantity: Decimal | None = None
    reason: str | None = None
    description: object = _UNSET


def _check_reason(reason: str) -> str:
    if reason not in MERMA_REASONS:
        raise ValidationError(f"Unsupported merma reason: {reason}")
    return reason


class MermaService:
    def __init__(self, db: Session):
        self.db = db
        self.engine = StockMovementEngine(db)

    def record_merma(
        self,
        *,
        product_id: int,
        quantity: Decimal,
        reason: str,
        description: str | None = None,
        actor_user_id: int | None = None,
    ) -> Merma:
        _check_reason(reason)
        with unit_of_work(self.db):
            movement = self._apply_loss(product_id, quantity, reason, actor_user_id)
            merma = Merma(
                product_id=product_id,
                movement_id=movement.id,
                quantity=to_qty(quantity),
                reason=reason,
                description=description,
                created_by_user_id=actor_user_id,
            )
            self.db.add(merma)
            self.db.flush()
            self.engine.link_reference([movement], reference_type="merma", reference_id=merma.id)

        log_event(
            "merma_recorded",
            merma_id=merma.id,
            product_id=product_id,
            quantity=merma.quantity,
            reason=reason,
        )
        return merma

    def update_merma(self, merma_id: int, changes: MermaChanges, *, actor_user_id: int | None = None) -> Merma:
        with unit_of_work(self.db):
            merma = self._get_for_update(merma_id)
            new_product_id = changes.product_id or merma.product_id
            new_quantity = to_qty(changes.quantity) if changes.quantity is not None else to_qty(merma.quantity)
            new_reason = _check_reason(changes.reason) if changes.reason is not None else merma.reason

            old_quantity = to_qty(merma.quantity)
            if new_product_id != merma.product_id:
                # One batch so both product rows are locked in id order.
                units = [
                    self._restore_unit(merma, old_quantity, note="merma edited"),
                    self._loss_unit(new_product_id, new_quantity, new_reason, merma.id),
                ]
            elif new_quantity > old_quantity:
                units = [self._loss_unit(merma.product_id, new_quantity - old_quantity, new_reason, merma.id)]
            elif new_quantity < old_quantity:
                units = [self._restore_unit(merma, old_quantity - new_quantity, note="merma edited")]
            else:
                units = []

            if units:
                movements = self.engine.apply_movements(units, actor_user_id=actor_user_id)
                if units[-1].kind is MovementKind.MERMA:
                    merma.movement_id = movements[-1].id

            merma.product_id = new_product_id
            merma.quantity = new_quantity
            merma.reason = new_reason
            if changes.description is not _UNSET:
                merma.description = changes.description
            self.db.flush()

        log_event("merma_updated", merma_id=merma.id, product_id=merma.product_id, quantity=merma.quantity)
        return merma

    def delete_merma(self, merma_id: int, *, actor_user_id: int | None = None) -> None:
        with unit_of_work(self.db):
            merma = self._get_for_update(merma_id)
            self.engine.apply_movements(
                [self._restore_unit(merma, merma.quantity, note="merma deleted")],
                actor_user_id=actor_user_id,
            )
            self.db.delete(merma)
            self.db.flush()

        log_event("merma_deleted", merma_id=merma_id)

    def get_merma(self, merma_id: int) -> Merma:
        merma = self.db.get(Merma, merma_id)
        if merma is None:
            raise MermaNotFoundError(merma_id)
        return merma

    def list_mermas(
        self,
        *,
        product_id: int | None = None,
        reason: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Merma], int]:
        conditions = self._conditions(product_id=product_id, reason=reason, start_date=start_date, end_date=end_date)
        total = self.db.execute(select(func.count(Merma.id)).where(*conditions)).scalar_one()
        rows = self.db.execute(
            select(Merma)
            .where(*conditions)
            .order_by(Merma.created_at.desc(), Merma.id.desc())
            .offset(offset)
            .limit(limit)
        ).scalars().all()
        return list(rows), int(total)

    def report(
        self,
        *,
        start_date: date | None = None,
        end_date: date | None = None,
        reason: str | None = None,
    ) -> dict:
        """Losses per reason; value lost is quantity times the product's sale price."""
        conditions = self._conditions(reason=reason, start_date=start_date, end_date=end_date)
        value = Merma.quantity * Product.sale_price
        rows = self.db.execute(
            select(
                Merma.reason,
                func.count(Merma.id),
                func.coalesce(func.sum(Merma.quantity), 0),
                func.coalesce(func.sum(value), 0),
            )
            .join(Product, Product.id == Merma.product_id)
            .where(*conditions)
            .group_by(Merma.reason)
            .order_by(func.sum(value).desc())
        ).all()

        report_rows = []
        total_cases = 0
        total_quantity = ZERO_QTY
        total_value = ZERO_MONEY
        for row_reason, cases, quantity, value_lost in rows:
            value_lost = to_money(value_lost)
            report_rows.append(
                {
                    "reason": row_reason,
                    "cases": int(cases),
                    "quantity": float(to_qty(quantity)),
                    "value_lost": float(value_lost),
                    "average_loss": float(to_money(value_lost / cases)) if cases else 0.0,
                }
            )
            total_cases += int(cases)
            total_quantity += to_qty(quantity)
            total_value += value_lost

        return {
            "start_date": start_date,
            "end_date": end_date,
            "rows": report_rows,
            "total_cases": total_cases,
            "total_quantity": float(total_quantity),
            "total_value_lost": float(total_value),
        }

    def _conditions(
        self,
        *,
        product_id: int | None = None,
        reason: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list:
        conditions = []
        if product_id:
            conditions.append(Merma.product_id == product_id)
        if reason:
            conditions.append(Merma.reason == _check_reason(reason))
        if start_date:
            conditions.append(Merma.created_at >= day_bounds(start_date)[0])
        if end_date:
            conditions.append(Merma.created_at < day_bounds(end_date)[1])
        return conditions

    def _apply_loss(self, product_id: int, quantity: Decimal, reason: str, actor_user_id: int | None):
        (movement,) = self.engine.apply_movements(
            [self._loss_unit(product_id, quantity, reason)],
            actor_user_id=actor_user_id,
        )
        return movement

    def _loss_unit(self, product_id: int, quantity: Decimal, reason: str, merma_id: int | None = None) -> MovementUnit:
        return MovementUnit(
            product_id=product_id,
            delta=-to_qty(quantity),
            kind=MovementKind.MERMA,
            reference_type="merma",
            reference_id=merma_id,
            note=reason,
            require_active=True,
        )

    def _restore_unit(self, merma: Merma, quantity: Decimal, *, note: str) -> MovementUnit:
        return MovementUnit(
            product_id=merma.product_id,
            delta=to_qty(quantity),
            kind=MovementKind.MERMA_REVERSAL,
            reference_type="merma",
            reference_id=merma.id,
            note=note,
        )

    def _get_for_update(self, merma_id: int) -> Merma:
        merma = self.db.execute(
            select(Merma)
            .where(Merma.id == merma_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if merma is None:
            raise MermaNotFoundError(merma_id)
        return merma
