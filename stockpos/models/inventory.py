from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from stockpos.db.base import Base


class StockMovement(Base):
    """
    One row per stock movement. Positive = stock in. Negative = stock out.
    Rows are append-only; the sum of qty_delta per product equals products.current_stock.
    """
    __tablename__ = "stock_movements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(Integer, ForeignKey("products.id"), index=True, nullable=False)

    qty_delta: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    kind: Mapped[str] = mapped_column(String(30), nullable=False)  # "entry", "sale", "merma", "void", ...
    reference_type: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)  # "sale", "entry", "merma"
    reference_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    note: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    unit_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    stock_after: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    actor_user_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("users.id"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("ix_stock_movements_product_created_at", "product_id", "created_at"),
        Index("ix_stock_movements_reference", "reference_type", "reference_id"),
        Index("ix_stock_movements_kind_created_at", "kind", "created_at"),
    )
