from sqlalchemy import case, func, or_, select
from sqlalchemy.orm import Session

from stockpos.core.errors import ConflictError, SupplierNotFoundError
from stockpos.db.unit_of_work import unit_of_work
from stockpos.models.entry import StockEntry
from stockpos.models.supplier import Supplier

SUPPLIER_FIELDS = (
    "name",
    "contact",
    "phone",
    "email",
    "address",
    "rfc",
    "products_supplied",
    "notes",
    "active",
)


def _ensure_unique(db: Session, *, name: str, rfc: str | None, exclude_id: int | None = None) -> None:
    conditions = [func.lower(Supplier.name) == name.strip().lower()]
    if rfc:
        conditions.append(Supplier.rfc == rfc)
    query = select(Supplier).where(or_(*conditions))
    if exclude_id is not None:
        query = query.where(Supplier.id != exclude_id)
    existing = db.execute(query.limit(1)).scalar_one_or_none()
    if existing is None:
        return
    if rfc and existing.rfc == rfc:
        raise ConflictError(f"A supplier with RFC {rfc} already exists")
    raise ConflictError(f"A supplier named {existing.name} already exists")


def create_supplier(db: Session, data: dict) -> Supplier:
    with unit_of_work(db):
        _ensure_unique(db, name=data["name"], rfc=data.get("rfc"))
        supplier = Supplier(**{key: data.get(key) for key in SUPPLIER_FIELDS if key in data})
        db.add(supplier)
        db.flush()
    return supplier


def get_supplier(db: Session, supplier_id: int) -> Supplier:
    supplier = db.get(Supplier, supplier_id)
    if supplier is None:
        raise SupplierNotFoundError(supplier_id)
    return supplier


def list_suppliers(
    db: Session,
    *,
    active: bool | None = None,
    search: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Supplier], int]:
    conditions = []
    if active is not None:
        conditions.append(Supplier.active.is_(active))
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        conditions.append(
            or_(
                Supplier.name.ilike(pattern),
                Supplier.contact.ilike(pattern),
                Supplier.products_supplied.ilike(pattern),
            )
        )
    total = db.execute(select(func.count(Supplier.id)).where(*conditions)).scalar_one()
    rows = db.execute(
        select(Supplier).where(*conditions).order_by(Supplier.name.asc()).offset(offset).limit(limit)
    ).scalars().all()
    return list(rows), int(total)


def update_supplier(db: Session, supplier_id: int, data: dict) -> Supplier:
    with unit_of_work(db):
        supplier = get_supplier(db, supplier_id)
        _ensure_unique(
            db,
            name=data.get("name", supplier.name),
            rfc=data.get("rfc", supplier.rfc),
            exclude_id=supplier.id,
        )
        for key in SUPPLIER_FIELDS:
            if key in data:
                setattr(supplier, key, data[key])
        db.flush()
    return supplier


def deactivate_supplier(db: Session, supplier_id: int) -> Supplier:
    with unit_of_work(db):
        supplier = get_supplier(db, supplier_id)
        supplier.active = False
        db.flush()
    return supplier


def supplier_stats(db: Session) -> dict:
    total, active = db.execute(
        select(
            func.count(Supplier.id),
            func.coalesce(func.sum(case((Supplier.active.is_(True), 1), else_=0)), 0),
        )
    ).one()
    with_entries = db.execute(
        select(func.count(func.distinct(StockEntry.supplier_id))).where(StockEntry.supplier_id.is_not(None))
    ).scalar_one()
    return {
        "total": int(total),
        "active": int(active),
        "inactive": int(total) - int(active),
        "with_entries": int(with_entries),
    }
