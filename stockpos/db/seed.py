"""Create tables, the bootstrap admin and a small sample catalog.

Run with ``python -m stockpos.db.seed``. Safe to run more than once.
"""

import argparse
from decimal import Decimal

from sqlalchemy import select

import stockpos.models  # noqa: F401
from stockpos.core.config import settings
from stockpos.db.base import Base
from stockpos.db.session import Database
from stockpos.models.product import Product
from stockpos.services import product_service, user_service

SAMPLE_PRODUCTS = [
    ("Tomate saladet", "verduras", "kg", Decimal("18.50"), Decimal("28.00"), Decimal("25")),
    ("Cebolla blanca", "verduras", "kg", Decimal("14.00"), Decimal("22.00"), Decimal("20")),
    ("Aguacate hass", "frutas", "kg", Decimal("45.00"), Decimal("70.00"), Decimal("12")),
    ("Leche entera 1L", "lacteos", "lt", Decimal("19.00"), Decimal("26.00"), Decimal("30")),
    ("Huevo blanco 30 pzas", "abarrotes", "caja", Decimal("65.00"), Decimal("89.00"), Decimal("8")),
    ("Pan de caja", "abarrotes", "pza", Decimal("32.00"), Decimal("45.00"), Decimal("10")),
]


def seed(database: Database, *, with_samples: bool) -> None:
    Base.metadata.create_all(bind=database.engine)
    db = database.session()
    try:
        if user_service.find_by_username(db, settings.bootstrap_admin_username) is None:
            if not settings.bootstrap_admin_password:
                print("BOOTSTRAP_ADMIN_PASSWORD is not set; skipping admin user")
            else:
                user_service.create_user(
                    db,
                    username=settings.bootstrap_admin_username,
                    password=settings.bootstrap_admin_password,
                    full_name=settings.bootstrap_admin_full_name,
                    role="admin",
                )
                print(f"Created admin user {settings.bootstrap_admin_username}")

        if not with_samples:
            return
        if db.execute(select(Product.id).limit(1)).scalar_one_or_none() is not None:
            print("Catalog already has products; skipping samples")
            return
        for name, category, unit, purchase_price, sale_price, stock in SAMPLE_PRODUCTS:
            product_service.create_product(
                db,
                name=name,
                category=category,
                unit=unit,
                purchase_price=purchase_price,
                sale_price=sale_price,
                opening_stock=stock,
            )
        print(f"Created {len(SAMPLE_PRODUCTS)} sample products")
    finally:
        db.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed the StockPOS database")
    parser.add_argument("--with-samples", action="store_true", help="also create a sample catalog")
    args = parser.parse_args()

    database = Database(settings)
    database.connect()
    try:
        seed(database, with_samples=args.with_samples)
    finally:
        database.dispose()


if __name__ == "__main__":
    main()
