import os
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import sessionmaker

from stockpos.core.errors import InsufficientStockError
from stockpos.db.base import Base
from stockpos.services import product_service
from stockpos.services.sales_service import SaleHeader, SaleLineInput, SaleService
from stockpos.services.stock_engine import StockMovementEngine


def _test_pg_url() -> str | None:
    return os.getenv("TEST_POSTGRES_DATABASE_URL")


@pytest.mark.integration
def test_postgres_connection_and_core_tables():
    url = _test_pg_url()
    if not url:
        pytest.skip("Set TEST_POSTGRES_DATABASE_URL to run Postgres integration tests.")

    engine = create_engine(url, pool_pre_ping=True)
    Base.metadata.create_all(bind=engine)
    with engine.connect() as conn:
        assert conn.execute(text("SELECT 1")).scalar_one() == 1

    table_names = set(inspect(engine).get_table_names())
    assert {"products", "stock_movements", "sales", "sale_lines", "stock_entries", "mermas"} <= table_names
    engine.dispose()


@pytest.mark.integration
def test_concurrent_sales_cannot_oversell():
    url = _test_pg_url()
    if not url:
        pytest.skip("Set TEST_POSTGRES_DATABASE_URL to run Postgres integration tests.")

    engine = create_engine(url, pool_pre_ping=True, pool_size=5)
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)

    with factory() as db:
        product_id = product_service.create_product(
            db,
            name="Producto concurrente",
            category="pruebas",
            purchase_price=Decimal("1.00"),
            sale_price=Decimal("2.00"),
            opening_stock=Decimal("10"),
        ).id

    def sell() -> str:
        with factory() as db:
            try:
                SaleService(db).create_sale(
                    SaleHeader(total=Decimal("12.00"), payment_method="efectivo"),
                    [
                        SaleLineInput(
                            product_id=product_id,
                            quantity=Decimal("6"),
                            unit_price=Decimal("2.00"),
                            subtotal=Decimal("12.00"),
                        )
                    ],
                )
            except InsufficientStockError:
                return "rejected"
            return "sold"

    with ThreadPoolExecutor(max_workers=4) as pool:
        outcomes = list(pool.map(lambda _: sell(), range(4)))

    assert outcomes.count("sold") == 1
    with factory() as db:
        engine_ = StockMovementEngine(db)
        assert engine_.get_stock(product_id) == Decimal("4.000")
        assert engine_.ledger_balance(product_id) == Decimal("4.000")
    engine.dispose()


@pytest.mark.integration
def test_alembic_upgrade_downgrade_smoke():
    url = _test_pg_url()
    if not url:
        pytest.skip("Set TEST_POSTGRES_DATABASE_URL to run migration smoke tests.")
    if os.getenv("ALLOW_DESTRUCTIVE_MIGRATION_TESTS") != "1":
        pytest.skip("Set ALLOW_DESTRUCTIVE_MIGRATION_TESTS=1 for downgrade smoke test.")

    project_root = Path(__file__).resolve().parents[1]
    alembic_cfg = Config(str(project_root / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(project_root / "alembic"))

    previous_database_url = os.environ.get("DATABASE_URL")
    os.environ["DATABASE_URL"] = url
    try:
        command.upgrade(alembic_cfg, "head")
        command.downgrade(alembic_cfg, "base")
        command.upgrade(alembic_cfg, "head")
    finally:
        if previous_database_url is None:
            os.environ.pop("DATABASE_URL", None)
        else:
            os.environ["DATABASE_URL"] = previous_database_url
