from datetime import date, datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from stockpos.schemas.common import PaginationMeta

MermaReason = Literal["vencimiento", "daño", "robo", "otro"]


class EntryCreate(BaseModel):
    product_id: int = Field(gt=0)
    quantity: Decimal = Field(gt=0, max_digits=12, decimal_places=3)
    purchase_price: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    supplier_name: str | None = Field(default=None, max_length=100)
    supplier_id: int | None = Field(default=None, gt=0)
    note: str | None = Field(default=None, max_length=500)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "product_id": 1,
                "quantity": 5,
                "purchase_price": 2.0,
                "supplier_name": "Abarrotes del Centro",
            }
        }
    )


class EntryUpdate(BaseModel):
    product_id: int | None = Field(default=None, gt=0)
    quantity: Decimal | None = Field(default=None, gt=0, max_digits=12, decimal_places=3)
    purchase_price: Decimal | None = Field(default=None, ge=0, max_digits=12, decimal_places=2)
    supplier_name: str | None = Field(default=None, max_length=100)
    supplier_id: int | None = Field(default=None, gt=0)
    note: str | None = Field(default=None, max_length=500)


class EntryOut(BaseModel):
    id: int
    product_id: int
    product_name: str | None = None
    category: str | None = None
    unit: str | None = None
    quantity: float
    purchase_price: float
    total_value: float
    supplier_name: str | None = None
    supplier_id: int | None = None
    note: str | None = None
    created_at: datetime


class EntrySupplierOut(BaseModel):
    supplier_name: str
    entries_count: int
    total_invested: float
    last_entry_at: datetime | None = None


class MermaCreate(BaseModel):
    product_id: int = Field(gt=0)
    quantity: Decimal = Field(gt=0, max_digits=12, decimal_places=3)
    reason: MermaReason
    description: str | None = Field(default=None, max_length=500)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "product_id": 1,
                "quantity": 2,
                "reason": "vencimiento",
                "description": "Caducado en anaquel",
            }
        }
    )


class MermaUpdate(BaseModel):
    product_id: int | None = Field(default=None, gt=0)
    quantity: Decimal | None = Field(default=None, gt=0, max_digits=12, decimal_places=3)
    reason: MermaReason | None = None
    description: str | None = Field(default=None, max_length=500)


class MermaOut(BaseModel):
    id: int
    product_id: int
    product_name: str | None = None
    category: str | None = None
    unit: str | None = None
    quantity: float
    reason: MermaReason
    description: str | None = None
    value_lost: float
    created_at: datetime


class MermaReportRow(BaseModel):
    reason: MermaReason
    cases: int
    quantity: float
    value_lost: float
    average_loss: float


class MermaReportOut(BaseModel):
    start_date: date | None = None
    end_date: date | None = None
    rows: list[MermaReportRow]
    total_cases: int
    total_quantity: float
    total_value_lost: float


class StockMovementOut(BaseModel):
    id: int
    product_id: int
    qty_delta: float
    kind: str
    reference_type: str | None = None
    reference_id: int | None = None
    note: str | None = None
    unit_cost: float | None = None
    stock_after: float
    created_at: datetime


class StockMovementListOut(BaseModel):
    items: list[StockMovementOut]
    pagination: PaginationMeta
