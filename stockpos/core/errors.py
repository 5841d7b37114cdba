"""
Typed errors raised by the stock and sales services.

Every error carries a machine-readable ``code`` and the HTTP status the API
layer answers with. Routers never inspect messages; they let the
``StockPosError`` handler in ``stockpos.core.observability`` render them.
"""

from decimal import Decimal
from typing import Any


class StockPosError(Exception):
    code = "error"
    status_code = 500

    def __init__(self, message: str, *, details: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(StockPosError):
    code = "validation_error"
    status_code = 400


class NotFoundError(StockPosError):
    code = "not_found"
    status_code = 404


class ProductNotFoundError(NotFoundError):
    def __init__(self, product_id: int):
        super().__init__(f"Product not found: {product_id}")
        self.product_id = product_id


class SaleNotFoundError(NotFoundError):
    def __init__(self, sale_id: int):
        super().__init__(f"Sale not found: {sale_id}")
        self.sale_id = sale_id


class EntryNotFoundError(NotFoundError):
    def __init__(self, entry_id: int):
        super().__init__(f"Stock entry not found: {entry_id}")
        self.entry_id = entry_id


class MermaNotFoundError(NotFoundError):
    def __init__(self, merma_id: int):
        super().__init__(f"Merma not found: {merma_id}")
        self.merma_id = merma_id


class SupplierNotFoundError(NotFoundError):
    def __init__(self, supplier_id: int):
        super().__init__(f"Supplier not found: {supplier_id}")
        self.supplier_id = supplier_id


class UserNotFoundError(NotFoundError):
    def __init__(self, user_id: int):
        super().__init__(f"User not found: {user_id}")
        self.user_id = user_id


class InsufficientStockError(StockPosError):
    code = "insufficient_stock"
    status_code = 400

    def __init__(self, *, product_id: int, available: Decimal, requested: Decimal, product_name: str | None = None):
        label = product_name or f"product {product_id}"
        super().__init__(
            f"Insufficient stock for {label}. Available: {available}, requested: {requested}",
            details=[
                {
                    "product_id": product_id,
                    "available": float(available),
                    "requested": float(requested),
                }
            ],
        )
        self.product_id = product_id
        self.available = available
        self.requested = requested


class AlreadyVoidedError(StockPosError):
    code = "already_voided"
    status_code = 400

    def __init__(self, sale_id: int):
        super().__init__(f"Sale {sale_id} is already voided")
        self.sale_id = sale_id


class ConflictError(StockPosError):
    code = "conflict"
    status_code = 409


class StorageError(StockPosError):
    code = "storage_error"
    status_code = 500
