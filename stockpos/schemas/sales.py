from datetime import date, datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from stockpos.schemas.common import PaginationMeta


PaymentMethod = Literal["efectivo", "tarjeta_credito", "tarjeta_debito", "transferencia"]
SaleStatus = Literal["active", "voided"]


class SaleLineIn(BaseModel):
    product_id: int = Field(gt=0)
    quantity: Decimal = Field(gt=0, max_digits=12, decimal_places=3)
    unit_price: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    subtotal: Decimal = Field(gt=0, max_digits=12, decimal_places=2)


class SaleHeaderIn(BaseModel):
    customer_name: Optional[str] = Field(default=None, max_length=100)
    customer_phone: Optional[str] = Field(default=None, max_length=30)
    customer_email: Optional[EmailStr] = None
    total: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    payment_method: PaymentMethod
    payment_reference: Optional[str] = Field(default=None, max_length=100)


class SaleCreate(SaleHeaderIn):
    lines: List[SaleLineIn] = Field(min_length=1)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "customer_name": "Maria Lopez",
                "total": 36.0,
                "payment_method": "efectivo",
                "lines": [
                    {
                        "product_id": 1,
                        "quantity": 12,
                        "unit_price": 3.0,
                        "subtotal": 36.0,
                    }
                ],
            }
        }
    )


class SaleVoidIn(BaseModel):
    reason: str = Field(min_length=1, max_length=255)

    @field_validator("reason")
    @classmethod
    def reason_not_blank(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("reason cannot be blank")
        return cleaned


class SaleLineOut(BaseModel):
    id: int
    position: int
    product_id: int
    product_name: str | None = None
    quantity: float
    unit_price: float
    subtotal: float


class SaleOut(BaseModel):
    id: int
    customer_name: str
    customer_phone: str | None = None
    customer_email: str | None = None
    total: float
    payment_method: PaymentMethod
    payment_reference: str | None = None
    status: SaleStatus
    void_reason: str | None = None
    voided_at: datetime | None = None
    created_at: datetime
    items_count: int
    units_count: float
    lines: list[SaleLineOut] = Field(default_factory=list)


class SaleListOut(BaseModel):
    pagination: PaginationMeta
    start_date: date | None = None
    end_date: date | None = None
    items: list[SaleOut]


class PaymentMethodSummary(BaseModel):
    count: int
    amount: float


class DailySalesSummaryOut(BaseModel):
    day: date
    sales_count: int
    revenue: float
    units_sold: float
    average_sale: float
    min_sale: float
    max_sale: float
    by_payment_method: dict[str, PaymentMethodSummary]
