from decimal import Decimal

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from stockpos.core.errors import ProductNotFoundError, ValidationError
from stockpos.core.money import ZERO_QTY, to_money, to_qty
from stockpos.core.observability import log_event
from stockpos.db.unit_of_work import unit_of_work
from stockpos.models.entry import StockEntry
from stockpos.models.inventory import StockMovement
from stockpos.models.merma import Merma
from stockpos.models.product import Product
from stockpos.models.sales import Sale, SaleLine
from stockpos.services.stock_engine import MovementKind, MovementUnit, StockMovementEngine

CATALOG_FIELDS = (
    "name",
    "category",
    "unit",
    "purchase_price",
    "sale_price",
    "min_stock",
    "description",
    "image_url",
)


def create_product(
    db: Session,
    *,
    name: str,
    category: str,
    purchase_price: Decimal,
    sale_price: Decimal,
    unit: str = "pza",
    opening_stock: Decimal = ZERO_QTY,
    min_stock: Decimal = Decimal("5"),
    description: str | None = None,
    image_url: str | None = None,
    actor_user_id: int | None = None,
) -> Product:
    if to_qty(opening_stock) < ZERO_QTY:
        raise ValidationError("Opening stock cannot be negative")

    with unit_of_work(db):
        product = Product(
            name=name.strip(),
            category=category.strip().lower(),
            unit=unit,
            purchase_price=to_money(purchase_price),
            sale_price=to_money(sale_price),
            current_stock=ZERO_QTY,
            min_stock=to_qty(min_stock),
            description=description,
            image_url=image_url,
            active=True,
        )
        db.add(product)
        db.flush()
        if to_qty(opening_stock) > ZERO_QTY:
            StockMovementEngine(db).apply_movements(
                [
                    MovementUnit(
                        product_id=product.id,
                        delta=to_qty(opening_stock),
                        kind=MovementKind.OPENING,
                        reference_type="product",
                        reference_id=product.id,
                        unit_cost=to_money(purchase_price),
                    )
                ],
                actor_user_id=actor_user_id,
            )

    log_event("product_created", product_id=product.id, opening_stock=product.current_stock)
    return product


def get_product(db: Session, product_id: int, *, include_inactive: bool = False) -> Product:
    product = db.get(Product, product_id)
    if product is None or (not product.active and not include_inactive):
        raise ProductNotFoundError(product_id)
    return product


def product_stats(db: Session, product_id: int) -> dict:
    sold, revenue = db.execute(
        select(
            func.coalesce(func.sum(SaleLine.quantity), 0),
            func.coalesce(func.sum(SaleLine.subtotal), 0),
        )
        .join(Sale, Sale.id == SaleLine.sale_id)
        .where(SaleLine.product_id == product_id, Sale.status == "active")
    ).one()
    entries_count = db.execute(
        select(func.count(StockEntry.id)).where(StockEntry.product_id == product_id)
    ).scalar_one()
    mermas_count = db.execute(
        select(func.count(Merma.id)).where(Merma.product_id == product_id)
    ).scalar_one()
    return {
        "total_sold": float(to_qty(sold)),
        "revenue": float(to_money(revenue)),
        "entries_count": int(entries_count),
        "mermas_count": int(mermas_count),
    }


def list_products(
    db: Session,
    *,
    search: str | None = None,
    category: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Product], int]:
    conditions = [Product.active.is_(True)]
    if category:
        conditions.append(func.lower(Product.category) == category.strip().lower())
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        conditions.append(
            or_(
                Product.name.ilike(pattern),
                Product.category.ilike(pattern),
                Product.description.ilike(pattern),
            )
        )

    total = db.execute(select(func.count(Product.id)).where(*conditions)).scalar_one()
    rows = db.execute(
        select(Product).where(*conditions).order_by(Product.name.asc(), Product.id.asc()).offset(offset).limit(limit)
    ).scalars().all()
    return list(rows), int(total)


def list_categories(db: Session) -> list[dict]:
    rows = db.execute(
        select(Product.category, func.count(Product.id))
        .where(Product.active.is_(True))
        .group_by(Product.category)
        .order_by(Product.category)
    ).all()
    return [{"category": category, "products": int(count)} for category, count in rows]


def update_product(db: Session, product_id: int, changes: dict) -> Product:
    unknown = set(changes) - set(CATALOG_FIELDS)
    if unknown:
        raise ValidationError(f"Fields cannot be updated here: {', '.join(sorted(unknown))}")

    with unit_of_work(db):
        product = get_product(db, product_id)
        for field_name, value in changes.items():
            if value is None and field_name in {"name", "category", "unit", "purchase_price", "sale_price", "min_stock"}:
                continue
            if field_name in {"purchase_price", "sale_price"}:
                value = to_money(value)
            elif field_name == "min_stock":
                value = to_qty(value)
            elif field_name == "category":
                value = value.strip().lower()
            elif field_name == "name":
                value = value.strip()
            setattr(product, field_name, value)
        db.flush()
    return product


def deactivate_product(db: Session, product_id: int) -> Product:
    with unit_of_work(db):
        product = get_product(db, product_id)
        product.active = False
        db.flush()
    log_event("product_deactivated", product_id=product_id)
    return product


def set_stock(
    db: Session,
    product_id: int,
    counted_stock: Decimal,
    *,
    note: str | None = None,
    actor_user_id: int | None = None,
) -> Product:
    """Bring stock to a physically counted value with one adjustment movement."""
    target = to_qty(counted_stock)
    if target < ZERO_QTY:
        raise ValidationError("Stock cannot be negative")

    with unit_of_work(db):
        product = db.execute(
            select(Product)
            .where(Product.id == product_id, Product.active.is_(True))
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if product is None:
            raise ProductNotFoundError(product_id)
        delta = target - to_qty(product.current_stock)
        if delta != ZERO_QTY:
            StockMovementEngine(db).apply_movements(
                [
                    MovementUnit(
                        product_id=product_id,
                        delta=delta,
                        kind=MovementKind.ADJUSTMENT,
                        reference_type="product",
                        reference_id=product_id,
                        note=note or "stock count",
                    )
                ],
                actor_user_id=actor_user_id,
            )
    return product


def movement_history(db: Session, product_id: int, *, limit: int = 50, offset: int = 0) -> tuple[list[StockMovement], int]:
    get_product(db, product_id, include_inactive=True)
    total = db.execute(
        select(func.count(StockMovement.id)).where(StockMovement.product_id == product_id)
    ).scalar_one()
    rows = db.execute(
        select(StockMovement)
        .where(StockMovement.product_id == product_id)
        .order_by(StockMovement.id.desc())
        .offset(offset)
        .limit(limit)
    ).scalars().all()
    return list(rows), int(total)


def low_stock_products(db: Session) -> list[Product]:
    rows = db.execute(
        select(Product)
        .where(Product.active.is_(True), Product.current_stock <= Product.min_stock)
        .order_by(Product.current_stock.asc(), Product.name.asc())
    ).scalars().all()
    return list(rows)
