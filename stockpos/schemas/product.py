from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from stockpos.schemas.common import PaginationMeta

UnitOfMeasure = Literal["kg", "pza", "lt", "caja"]


class ProductCreate(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    category: str = Field(min_length=2, max_length=50)
    unit: UnitOfMeasure = "pza"
    purchase_price: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    sale_price: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    opening_stock: Decimal = Field(default=Decimal("0"), ge=0, max_digits=12, decimal_places=3)
    min_stock: Decimal = Field(default=Decimal("5"), ge=0, max_digits=12, decimal_places=3)
    description: str | None = Field(default=None, max_length=500)
    image_url: str | None = Field(default=None, max_length=500)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "Tomate saladet",
                "category": "verduras",
                "unit": "kg",
                "purchase_price": 18.5,
                "sale_price": 28.0,
                "opening_stock": 10,
                "min_stock": 5,
            }
        }
    )


class ProductUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=2, max_length=100)
    category: str | None = Field(default=None, min_length=2, max_length=50)
    unit: UnitOfMeasure | None = None
    purchase_price: Decimal | None = Field(default=None, ge=0, max_digits=12, decimal_places=2)
    sale_price: Decimal | None = Field(default=None, ge=0, max_digits=12, decimal_places=2)
    min_stock: Decimal | None = Field(default=None, ge=0, max_digits=12, decimal_places=3)
    description: str | None = Field(default=None, max_length=500)
    image_url: str | None = Field(default=None, max_length=500)


class StockSetIn(BaseModel):
    stock: Decimal = Field(ge=0, max_digits=12, decimal_places=3)
    note: str | None = Field(default=None, max_length=255)


class ProductOut(BaseModel):
    id: int
    name: str
    category: str
    unit: UnitOfMeasure
    purchase_price: float
    sale_price: float
    current_stock: float
    min_stock: float
    description: str | None = None
    image_url: str | None = None
    active: bool
    created_at: datetime
    updated_at: datetime | None = None


class ProductDetailOut(ProductOut):
    total_sold: float
    revenue: float
    entries_count: int
    mermas_count: int


class ProductListOut(BaseModel):
    items: list[ProductOut]
    pagination: PaginationMeta


class LowStockProductOut(ProductOut):
    stock_percentage: float | None = None
    stock_value: float


class CategoryOut(BaseModel):
    category: str
    products: int
