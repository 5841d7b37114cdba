"""
Stock movement engine.

Every change to ``Product.current_stock`` goes through
``StockMovementEngine.apply_movements``. A batch is applied inside the
caller's unit of work: the referenced product rows are locked, each unit is
checked and applied in the order given, and one ledger row is written per
unit. The first unit that would leave a product below zero aborts the batch;
the unit of work then rolls back everything already applied.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from stockpos.core.errors import InsufficientStockError, ProductNotFoundError, ValidationError
from stockpos.core.money import ZERO_QTY, to_money, to_qty
from stockpos.core.observability import log_event
from stockpos.db.unit_of_work import in_unit_of_work
from stockpos.models.inventory import StockMovement
from stockpos.models.product import Product


class MovementKind(str, Enum):
    OPENING = "opening"
    ENTRY = "entry"
    SALE = "sale"
    MERMA = "merma"
    VOID = "void"
    ENTRY_REVERSAL = "entry_reversal"
    MERMA_REVERSAL = "merma_reversal"
    ADJUSTMENT = "adjustment"


@dataclass(frozen=True)
class MovementUnit:
    product_id: int
    delta: Decimal
    kind: MovementKind
    reference_type: str | None = None
    reference_id: int | None = None
    unit_cost: Decimal | None = None
    note: str | None = None
    require_active: bool = False


class StockMovementEngine:
    def __init__(self, db: Session):
        self.db = db

    def apply_movements(
        self,
        units: list[MovementUnit],
        *,
        actor_user_id: int | None = None,
    ) -> list[StockMovement]:
        if not units:
            raise ValidationError("At least one stock movement is required")
        if not in_unit_of_work(self.db):
            raise RuntimeError("apply_movements must run inside a unit of work")

        deltas = [to_qty(unit.delta) for unit in units]
        for delta in deltas:
            if delta == ZERO_QTY:
                raise ValidationError("Stock movement quantity cannot be zero")

        products = self._lock_products({unit.product_id for unit in units})

        movements: list[StockMovement] = []
        for unit, delta in zip(units, deltas):
            product = products.get(unit.product_id)
            if product is None or (unit.require_active and not product.active):
                raise ProductNotFoundError(unit.product_id)

            available = to_qty(product.current_stock)
            new_stock = available + delta
            if new_stock < ZERO_QTY:
                raise InsufficientStockError(
                    product_id=product.id,
                    available=available,
                    requested=-delta,
                    product_name=product.name,
                )

            product.current_stock = new_stock
            movement = StockMovement(
                product_id=product.id,
                qty_delta=delta,
                kind=unit.kind.value,
                reference_type=unit.reference_type,
                reference_id=unit.reference_id,
                unit_cost=to_money(unit.unit_cost) if unit.unit_cost is not None else None,
                note=unit.note,
                stock_after=new_stock,
                actor_user_id=actor_user_id,
            )
            self.db.add(movement)
            movements.append(movement)

        self.db.flush()
        log_event(
            "stock_movements_applied",
            count=len(movements),
            kinds=sorted({unit.kind.value for unit in units}),
            products=sorted(products),
        )
        return movements

    def link_reference(self, movements: list[StockMovement], *, reference_type: str, reference_id: int) -> None:
        """Attach the owning record once its id exists (sale headers are inserted after the batch)."""
        for movement in movements:
            movement.reference_type = reference_type
            movement.reference_id = reference_id

    def get_stock(self, product_id: int) -> Decimal:
        stock = self.db.execute(
            select(Product.current_stock).where(Product.id == product_id)
        ).scalar_one_or_none()
        if stock is None:
            raise ProductNotFoundError(product_id)
        return to_qty(stock)

    def ledger_balance(self, product_id: int) -> Decimal:
        total = self.db.execute(
            select(func.coalesce(func.sum(StockMovement.qty_delta), 0)).where(
                StockMovement.product_id == product_id
            )
        ).scalar_one()
        return to_qty(total)

    def _lock_products(self, product_ids: set[int]) -> dict[int, Product]:
        # Ascending id order so concurrent batches acquire row locks in the same order.
        rows = self.db.execute(
            select(Product)
            .where(Product.id.in_(sorted(product_ids)))
            .order_by(Product.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalars().all()
        return {product.id: product for product in rows}
