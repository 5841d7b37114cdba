from decimal import Decimal

import pytest
from sqlalchemy import func, select

from stockpos.core.errors import InsufficientStockError, ProductNotFoundError, ValidationError
from stockpos.db.unit_of_work import unit_of_work
from stockpos.models.inventory import StockMovement
from stockpos.services import product_service
from stockpos.services.stock_engine import MovementKind, MovementUnit, StockMovementEngine


def _product(db, name: str, stock: str) -> int:
    product = product_service.create_product(
        db,
        name=name,
        category="abarrotes",
        purchase_price=Decimal("10.00"),
        sale_price=Decimal("15.00"),
        opening_stock=Decimal(stock),
    )
    return product.id


def _movement_count(db) -> int:
    return db.execute(select(func.count(StockMovement.id))).scalar_one()


def test_apply_movements_requires_unit_of_work(db):
    product_id = _product(db, "Arroz", "10")
    engine = StockMovementEngine(db)

    with pytest.raises(RuntimeError):
        engine.apply_movements([MovementUnit(product_id, Decimal("1"), MovementKind.ENTRY)])


def test_zero_delta_is_rejected(db):
    product_id = _product(db, "Arroz", "10")
    engine = StockMovementEngine(db)

    with pytest.raises(ValidationError):
        with unit_of_work(db):
            engine.apply_movements([MovementUnit(product_id, Decimal("0"), MovementKind.ADJUSTMENT)])

    assert engine.get_stock(product_id) == Decimal("10.000")


def test_opening_stock_is_recorded_in_ledger(db):
    product_id = _product(db, "Frijol", "7.5")
    engine = StockMovementEngine(db)

    assert engine.get_stock(product_id) == Decimal("7.500")
    assert engine.ledger_balance(product_id) == Decimal("7.500")
    movement = db.execute(select(StockMovement).where(StockMovement.product_id == product_id)).scalar_one()
    assert movement.kind == "opening"


def test_failed_batch_leaves_no_partial_effect(db):
    first = _product(db, "Azucar", "10")
    second = _product(db, "Sal", "2")
    engine = StockMovementEngine(db)
    movements_before = _movement_count(db)

    with pytest.raises(InsufficientStockError) as exc_info:
        with unit_of_work(db):
            engine.apply_movements(
                [
                    MovementUnit(first, Decimal("-4"), MovementKind.SALE),
                    MovementUnit(second, Decimal("-3"), MovementKind.SALE),
                ]
            )

    assert exc_info.value.product_id == second
    assert exc_info.value.available == Decimal("2.000")
    assert exc_info.value.requested == Decimal("3.000")
    assert engine.get_stock(first) == Decimal("10.000")
    assert engine.get_stock(second) == Decimal("2.000")
    assert _movement_count(db) == movements_before


def test_first_failing_unit_in_submitted_order_is_reported(db):
    low_id = _product(db, "Aceite", "1")
    high_id = _product(db, "Harina", "1")
    engine = StockMovementEngine(db)

    with pytest.raises(InsufficientStockError) as exc_info:
        with unit_of_work(db):
            engine.apply_movements(
                [
                    MovementUnit(high_id, Decimal("-5"), MovementKind.SALE),
                    MovementUnit(low_id, Decimal("-5"), MovementKind.SALE),
                ]
            )

    # Locks are taken in id order but units are checked in submitted order.
    assert exc_info.value.product_id == high_id


def test_repeated_product_in_batch_is_cumulative(db):
    product_id = _product(db, "Cafe", "10")
    engine = StockMovementEngine(db)

    with pytest.raises(InsufficientStockError) as exc_info:
        with unit_of_work(db):
            engine.apply_movements(
                [
                    MovementUnit(product_id, Decimal("-6"), MovementKind.SALE),
                    MovementUnit(product_id, Decimal("-6"), MovementKind.SALE),
                ]
            )

    assert exc_info.value.available == Decimal("4.000")
    assert engine.get_stock(product_id) == Decimal("10.000")


def test_missing_or_inactive_product_raises_not_found(db):
    product_id = _product(db, "Te", "3")
    product_service.deactivate_product(db, product_id)
    engine = StockMovementEngine(db)

    with pytest.raises(ProductNotFoundError):
        with unit_of_work(db):
            engine.apply_movements([MovementUnit(9999, Decimal("1"), MovementKind.ENTRY)])

    with pytest.raises(ProductNotFoundError):
        with unit_of_work(db):
            engine.apply_movements(
                [MovementUnit(product_id, Decimal("-1"), MovementKind.SALE, require_active=True)]
            )


def test_movements_record_stock_after_and_balance_matches(db):
    product_id = _product(db, "Leche", "5")
    engine = StockMovementEngine(db)

    with unit_of_work(db):
        movements = engine.apply_movements(
            [
                MovementUnit(product_id, Decimal("3"), MovementKind.ENTRY, unit_cost=Decimal("9.5")),
                MovementUnit(product_id, Decimal("-2.25"), MovementKind.SALE),
            ],
            actor_user_id=None,
        )

    assert [m.stock_after for m in movements] == [Decimal("8.000"), Decimal("5.750")]
    assert engine.get_stock(product_id) == Decimal("5.750")
    assert engine.ledger_balance(product_id) == engine.get_stock(product_id)
