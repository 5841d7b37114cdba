from datetime import date

from pydantic import BaseModel


class SalesWindowOut(BaseModel):
    sales_count: int
    revenue: float
    average_sale: float


class InventorySummaryOut(BaseModel):
    products: int
    stock_value: float
    low_stock: int
    out_of_stock: int


class MermaSummaryOut(BaseModel):
    cases: int
    value_lost: float


class EntrySummaryOut(BaseModel):
    count: int
    invested: float


class TopProductOut(BaseModel):
    product_id: int
    name: str
    category: str
    quantity_sold: float
    revenue: float
    sales_count: int


class DashboardOut(BaseModel):
    today: SalesWindowOut
    week: SalesWindowOut
    month: SalesWindowOut
    inventory: InventorySummaryOut
    mermas_month: MermaSummaryOut
    entries_month: EntrySummaryOut
    top_products: list[TopProductOut]


class SalesDayOut(BaseModel):
    day: date
    sales_count: int
    revenue: float
    average_sale: float


class SalesByDayOut(BaseModel):
    start_date: date
    end_date: date
    days: list[SalesDayOut]
    total_revenue: float
    total_sales: int
    average_per_day: float
    best_day: SalesDayOut | None = None
    worst_day: SalesDayOut | None = None


class ProductPerformanceOut(BaseModel):
    product_id: int
    name: str
    category: str
    quantity_sold: float
    revenue: float
    profit: float
    current_stock: float
    stock_level: str


class CategoryPerformanceOut(BaseModel):
    category: str
    products: int
    quantity_sold: float
    revenue: float


class ProductStatsOut(BaseModel):
    start_date: date | None = None
    end_date: date | None = None
    products: list[ProductPerformanceOut]
    by_category: list[CategoryPerformanceOut]


class PaymentMethodShareOut(BaseModel):
    payment_method: str
    count: int
    amount: float
    percentage: float


class PaymentMethodStatsOut(BaseModel):
    start_date: date | None = None
    end_date: date | None = None
    methods: list[PaymentMethodShareOut]
    total: float
