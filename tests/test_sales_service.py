from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from stockpos.core.errors import (
    AlreadyVoidedError,
    InsufficientStockError,
    ProductNotFoundError,
    SaleNotFoundError,
    ValidationError,
)
from stockpos.models.inventory import StockMovement
from stockpos.models.sales import Sale
from stockpos.services import product_service
from stockpos.services.entry_service import EntryService
from stockpos.services.sales_service import SaleFilters, SaleHeader, SaleLineInput, SaleService
from stockpos.services.stock_engine import StockMovementEngine


def _product(db, name: str, stock: str, *, sale_price: str = "3.00") -> int:
    return product_service.create_product(
        db,
        name=name,
        category="verduras",
        purchase_price=Decimal("2.00"),
        sale_price=Decimal(sale_price),
        opening_stock=Decimal(stock),
        min_stock=Decimal("5"),
    ).id


def _line(product_id: int, qty: str, price: str, subtotal: str | None = None) -> SaleLineInput:
    quantity = Decimal(qty)
    unit_price = Decimal(price)
    return SaleLineInput(
        product_id=product_id,
        quantity=quantity,
        unit_price=unit_price,
        subtotal=Decimal(subtotal) if subtotal else quantity * unit_price,
    )


def _header(total: str, method: str = "efectivo", **kwargs) -> SaleHeader:
    return SaleHeader(total=Decimal(total), payment_method=method, **kwargs)


def _stock(db, product_id: int) -> Decimal:
    return StockMovementEngine(db).get_stock(product_id)


def test_entry_then_sale_scenario(db):
    product_id = _product(db, "Tomate", "10")

    EntryService(db).record_entry(product_id=product_id, quantity=Decimal("5"), purchase_price=Decimal("2.00"))
    assert _stock(db, product_id) == Decimal("15.000")

    sale = SaleService(db).create_sale(_header("36.00"), [_line(product_id, "12", "3.00", "36.00")])

    assert _stock(db, product_id) == Decimal("3.000")
    assert sale.status == "active"
    assert sale.customer_name == "Cliente General"
    assert [line.position for line in sale.lines] == [1]
    assert sale.lines[0].movement_id is not None


def test_sale_rejected_when_stock_is_short(db):
    product_id = _product(db, "Cebolla", "3")

    with pytest.raises(InsufficientStockError) as exc_info:
        SaleService(db).create_sale(_header("15.00"), [_line(product_id, "5", "3.00")])

    assert exc_info.value.product_id == product_id
    assert exc_info.value.available == Decimal("3.000")
    assert exc_info.value.requested == Decimal("5.000")
    assert _stock(db, product_id) == Decimal("3.000")
    assert db.execute(select(func.count(Sale.id))).scalar_one() == 0


def test_sale_is_all_or_nothing_across_lines(db):
    first = _product(db, "Papa", "10")
    second = _product(db, "Zanahoria", "10")

    with pytest.raises(InsufficientStockError) as exc_info:
        SaleService(db).create_sale(
            _header("306.00"),
            [_line(first, "2", "3.00"), _line(second, "100", "3.00")],
        )

    assert exc_info.value.product_id == second
    assert _stock(db, first) == Decimal("10.000")
    assert _stock(db, second) == Decimal("10.000")


def test_void_restores_stock_and_is_not_repeatable(db):
    first = _product(db, "Limon", "20")
    second = _product(db, "Naranja", "8")
    service = SaleService(db)
    sale = service.create_sale(
        _header("36.00", "tarjeta_debito"),
        [_line(first, "12", "2.00"), _line(second, "4", "3.00")],
    )
    assert _stock(db, first) == Decimal("8.000")
    assert _stock(db, second) == Decimal("4.000")

    voided = service.void_sale(sale.id, "cliente canceló")

    assert voided.status == "voided"
    assert voided.void_reason == "cliente canceló"
    assert voided.voided_at is not None
    assert len(voided.lines) == 2
    assert _stock(db, first) == Decimal("20.000")
    assert _stock(db, second) == Decimal("8.000")

    movements_before = db.execute(select(func.count(StockMovement.id))).scalar_one()
    with pytest.raises(AlreadyVoidedError):
        service.void_sale(sale.id, "otra vez")
    assert db.execute(select(func.count(StockMovement.id))).scalar_one() == movements_before
    assert _stock(db, first) == Decimal("20.000")


def test_void_requires_reason_and_existing_sale(db):
    product_id = _product(db, "Pepino", "5")
    service = SaleService(db)
    sale = service.create_sale(_header("3.00"), [_line(product_id, "1", "3.00")])

    with pytest.raises(ValidationError):
        service.void_sale(sale.id, "   ")
    with pytest.raises(SaleNotFoundError):
        service.void_sale(9999, "no existe")


def test_subtotal_may_discount_but_not_mark_up(db):
    product_id = _product(db, "Mango", "10")
    service = SaleService(db)

    discounted = service.create_sale(
        _header("25.00"),
        [_line(product_id, "2", "3.00", "5.00"), _line(product_id, "7", "3.00", "20.00")],
    )
    assert discounted.total == Decimal("25.00")

    with pytest.raises(ValidationError):
        service.create_sale(_header("4.00"), [_line(product_id, "1", "3.00", "4.00")])
    assert _stock(db, product_id) == Decimal("1.000")


def test_total_must_match_line_subtotals(db):
    product_id = _product(db, "Pera", "10")

    with pytest.raises(ValidationError):
        SaleService(db).create_sale(_header("10.00"), [_line(product_id, "2", "3.00")])
    assert _stock(db, product_id) == Decimal("10.000")


def test_one_cent_off_total_or_subtotal_is_rejected(db):
    product_id = _product(db, "Mango", "20")
    service = SaleService(db)

    with pytest.raises(ValidationError):
        service.create_sale(_header("36.01"), [_line(product_id, "12", "3.00", "36.00")])
    with pytest.raises(ValidationError):
        service.create_sale(_header("3.01"), [_line(product_id, "1", "3.00", "3.01")])

    assert _stock(db, product_id) == Decimal("20.000")
    assert db.execute(select(func.count(Sale.id))).scalar_one() == 0


def test_fractional_quantity_subtotal_rounds_to_cents(db):
    product_id = _product(db, "Tomate", "5")

    sale = SaleService(db).create_sale(_header("34.55"), [_line(product_id, "1.234", "28.00", "34.55")])

    assert sale.total == Decimal("34.55")
    assert _stock(db, product_id) == Decimal("3.766")


def test_sale_rejects_inactive_or_unknown_product(db):
    product_id = _product(db, "Uva", "10")
    product_service.deactivate_product(db, product_id)

    with pytest.raises(ProductNotFoundError):
        SaleService(db).create_sale(_header("3.00"), [_line(product_id, "1", "3.00")])
    with pytest.raises(ProductNotFoundError):
        SaleService(db).create_sale(_header("3.00"), [_line(4242, "1", "3.00")])


def test_payment_method_and_empty_lines_are_validated(db):
    product_id = _product(db, "Kiwi", "10")

    with pytest.raises(ValidationError):
        SaleService(db).create_sale(_header("3.00", "bitcoin"), [_line(product_id, "1", "3.00")])
    with pytest.raises(ValidationError):
        SaleService(db).create_sale(_header("3.00"), [])


def test_daily_summary_excludes_voided_sales(db):
    product_id = _product(db, "Sandia", "50", sale_price="10.00")
    service = SaleService(db)
    service.create_sale(_header("20.00", "efectivo"), [_line(product_id, "2", "10.00")])
    service.create_sale(_header("50.00", "transferencia"), [_line(product_id, "5", "10.00")])
    voided = service.create_sale(_header("100.00", "efectivo"), [_line(product_id, "10", "10.00")])
    service.void_sale(voided.id, "error de captura")

    summary = service.daily_summary(datetime.now(timezone.utc).date())

    assert summary["sales_count"] == 2
    assert summary["revenue"] == 70.0
    assert summary["units_sold"] == 7.0
    assert summary["min_sale"] == 20.0
    assert summary["max_sale"] == 50.0
    assert summary["by_payment_method"]["efectivo"] == {"count": 1, "amount": 20.0}

    sales, total = service.list_sales(SaleFilters(status="voided"))
    assert total == 1
    assert sales[0].id == voided.id
