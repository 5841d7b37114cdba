from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from stockpos.core.errors import EntryNotFoundError, SupplierNotFoundError
from stockpos.core.money import to_money, to_qty
from stockpos.core.observability import log_event
from stockpos.db.unit_of_work import unit_of_work
from stockpos.models.entry import StockEntry
from stockpos.models.product import Product
from stockpos.models.supplier import Supplier
from stockpos.services.sales_service import day_bounds
from stockpos.services.stock_engine import MovementKind, MovementUnit, StockMovementEngine

_UNSET = object()


@dataclass(frozen=True)
class EntryChanges:
    product_id: int | None = None
    quantity: Decimal | None = None
    purchase_price: Decimal | None = None
    supplier_name: object = _UNSET
    supplier_id: object = _UNSET
    note: object = _UNSET


class EntryService:
    def __init__(self, db: Session):
        self.db = db
        self.engine = StockMovementEngine(db)

    def record_entry(
        self,
        *,
        product_id: int,
        quantity: Decimal,
        purchase_price: Decimal,
        supplier_name: str | None = None,
        note: str | None = None,
        supplier_id: int | None = None,
        actor_user_id: int | None = None,
    ) -> StockEntry:
        with unit_of_work(self.db):
            supplier_name = self._resolve_supplier_name(supplier_id, supplier_name)
            movement = self._apply_entry(
                product_id=product_id,
                quantity=quantity,
                purchase_price=purchase_price,
                note=note,
                actor_user_id=actor_user_id,
            )
            entry = StockEntry(
                product_id=product_id,
                movement_id=movement.id,
                quantity=to_qty(quantity),
                purchase_price=to_money(purchase_price),
                supplier_name=supplier_name,
                supplier_id=supplier_id,
                note=note,
                created_by_user_id=actor_user_id,
            )
            self.db.add(entry)
            self.db.flush()
            self.engine.link_reference([movement], reference_type="entry", reference_id=entry.id)

        log_event("entry_recorded", entry_id=entry.id, product_id=product_id, quantity=entry.quantity)
        return entry

    def update_entry(self, entry_id: int, changes: EntryChanges, *, actor_user_id: int | None = None) -> StockEntry:
        with unit_of_work(self.db):
            entry = self._get_for_update(entry_id)
            new_product_id = changes.product_id or entry.product_id
            new_quantity = to_qty(changes.quantity) if changes.quantity is not None else to_qty(entry.quantity)
            new_price = (
                to_money(changes.purchase_price)
                if changes.purchase_price is not None
                else to_money(entry.purchase_price)
            )

            old_quantity = to_qty(entry.quantity)
            note = entry.note if changes.note is _UNSET else changes.note
            if new_product_id != entry.product_id:
                # One batch so both product rows are locked in id order.
                units = [
                    self._reversal_unit(entry, old_quantity),
                    self._entry_unit(new_product_id, new_quantity, new_price, note, entry.id),
                ]
            elif new_quantity > old_quantity:
                units = [self._entry_unit(entry.product_id, new_quantity - old_quantity, new_price, note, entry.id)]
            elif new_quantity < old_quantity:
                units = [self._reversal_unit(entry, old_quantity - new_quantity)]
            else:
                units = []

            if units:
                movements = self.engine.apply_movements(units, actor_user_id=actor_user_id)
                if units[-1].kind is MovementKind.ENTRY:
                    entry.movement_id = movements[-1].id
            if new_product_id != entry.product_id or new_price != to_money(entry.purchase_price):
                self._sync_purchase_price(new_product_id, new_price)

            entry.product_id = new_product_id
            entry.quantity = new_quantity
            entry.purchase_price = new_price
            if changes.supplier_id is not _UNSET:
                entry.supplier_id = changes.supplier_id
            if changes.supplier_name is not _UNSET or changes.supplier_id is not _UNSET:
                supplier_name = entry.supplier_name if changes.supplier_name is _UNSET else changes.supplier_name
                entry.supplier_name = self._resolve_supplier_name(entry.supplier_id, supplier_name)
            if changes.note is not _UNSET:
                entry.note = changes.note
            self.db.flush()

        log_event("entry_updated", entry_id=entry.id, product_id=entry.product_id, quantity=entry.quantity)
        return entry

    def delete_entry(self, entry_id: int, *, actor_user_id: int | None = None) -> None:
        with unit_of_work(self.db):
            entry = self._get_for_update(entry_id)
            # Rejected as a whole when the received stock was already consumed.
            self.engine.apply_movements(
                [self._reversal_unit(entry, entry.quantity, note="entry deleted")],
                actor_user_id=actor_user_id,
            )
            self.db.delete(entry)
            self.db.flush()

        log_event("entry_deleted", entry_id=entry_id)

    def get_entry(self, entry_id: int) -> StockEntry:
        entry = self.db.get(StockEntry, entry_id)
        if entry is None:
            raise EntryNotFoundError(entry_id)
        return entry

    def list_entries(
        self,
        *,
        product_id: int | None = None,
        supplier: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[StockEntry], int]:
        conditions = []
        if product_id:
            conditions.append(StockEntry.product_id == product_id)
        if supplier:
            conditions.append(StockEntry.supplier_name.ilike(f"%{supplier.strip()}%"))
        if start_date:
            conditions.append(StockEntry.created_at >= day_bounds(start_date)[0])
        if end_date:
            conditions.append(StockEntry.created_at < day_bounds(end_date)[1])

        total = self.db.execute(select(func.count(StockEntry.id)).where(*conditions)).scalar_one()
        rows = self.db.execute(
            select(StockEntry)
            .where(*conditions)
            .order_by(StockEntry.created_at.desc(), StockEntry.id.desc())
            .offset(offset)
            .limit(limit)
        ).scalars().all()
        return list(rows), int(total)

    def list_suppliers_from_entries(self) -> list[dict]:
        rows = self.db.execute(
            select(
                StockEntry.supplier_name,
                func.count(StockEntry.id),
                func.coalesce(func.sum(StockEntry.quantity * StockEntry.purchase_price), 0),
                func.max(StockEntry.created_at),
            )
            .where(StockEntry.supplier_name.is_not(None), StockEntry.supplier_name != "")
            .group_by(StockEntry.supplier_name)
            .order_by(StockEntry.supplier_name)
        ).all()
        return [
            {
                "supplier_name": name,
                "entries_count": int(count),
                "total_invested": float(to_money(invested)),
                "last_entry_at": last_entry_at,
            }
            for name, count, invested, last_entry_at in rows
        ]

    def _apply_entry(
        self,
        *,
        product_id: int,
        quantity: Decimal,
        purchase_price: Decimal,
        note: str | None,
        actor_user_id: int | None,
    ):
        (movement,) = self.engine.apply_movements(
            [self._entry_unit(product_id, quantity, purchase_price, note)],
            actor_user_id=actor_user_id,
        )
        self._sync_purchase_price(product_id, to_money(purchase_price))
        return movement

    def _entry_unit(
        self,
        product_id: int,
        quantity: Decimal,
        purchase_price: Decimal,
        note: str | None,
        entry_id: int | None = None,
    ) -> MovementUnit:
        return MovementUnit(
            product_id=product_id,
            delta=to_qty(quantity),
            kind=MovementKind.ENTRY,
            reference_type="entry",
            reference_id=entry_id,
            unit_cost=to_money(purchase_price),
            note=note[:255] if note else None,
            require_active=True,
        )

    def _reversal_unit(self, entry: StockEntry, quantity: Decimal, *, note: str = "entry edited") -> MovementUnit:
        return MovementUnit(
            product_id=entry.product_id,
            delta=-to_qty(quantity),
            kind=MovementKind.ENTRY_REVERSAL,
            reference_type="entry",
            reference_id=entry.id,
            unit_cost=entry.purchase_price,
            note=note,
        )

    def _sync_purchase_price(self, product_id: int, purchase_price: Decimal) -> None:
        # Last received price becomes the catalog purchase price.
        product = self.db.get(Product, product_id)
        if product is not None and to_money(product.purchase_price) != purchase_price:
            product.purchase_price = purchase_price

    def _resolve_supplier_name(self, supplier_id: int | None, supplier_name: str | None) -> str | None:
        if supplier_id is None:
            cleaned = (supplier_name or "").strip()
            return cleaned or None
        supplier = self.db.get(Supplier, supplier_id)
        if supplier is None:
            raise SupplierNotFoundError(supplier_id)
        return (supplier_name or "").strip() or supplier.name

    def _get_for_update(self, entry_id: int) -> StockEntry:
        entry = self.db.execute(
            select(StockEntry)
            .where(StockEntry.id == entry_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if entry is None:
            raise EntryNotFoundError(entry_id)
        return entry
