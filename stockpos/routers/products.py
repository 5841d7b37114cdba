from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from stockpos.core.api_docs import error_responses
from stockpos.core.deps import get_db
from stockpos.core.money import to_money, to_qty
from stockpos.core.permissions import require_permission
from stockpos.models.inventory import StockMovement
from stockpos.models.product import Product
from stockpos.models.user import User
from stockpos.schemas.common import Envelope, page_meta
from stockpos.schemas.inventory import StockMovementListOut, StockMovementOut
from stockpos.schemas.product import (
    CategoryOut,
    LowStockProductOut,
    ProductCreate,
    ProductDetailOut,
    ProductListOut,
    ProductOut,
    ProductUpdate,
    StockSetIn,
)
from stockpos.services import product_service

router = APIRouter(prefix="/products", tags=["products"])

MAX_PRODUCT_PAGE_SIZE = 200


def product_out(product: Product) -> ProductOut:
    return ProductOut(
        id=product.id,
        name=product.name,
        category=product.category,
        unit=product.unit,
        purchase_price=float(to_money(product.purchase_price)),
        sale_price=float(to_money(product.sale_price)),
        current_stock=float(to_qty(product.current_stock)),
        min_stock=float(to_qty(product.min_stock)),
        description=product.description,
        image_url=product.image_url,
        active=bool(product.active),
        created_at=product.created_at,
        updated_at=product.updated_at,
    )


def movement_out(movement: StockMovement) -> StockMovementOut:
    return StockMovementOut(
        id=movement.id,
        product_id=movement.product_id,
        qty_delta=float(to_qty(movement.qty_delta)),
        kind=movement.kind,
        reference_type=movement.reference_type,
        reference_id=movement.reference_id,
        note=movement.note,
        unit_cost=float(to_money(movement.unit_cost)) if movement.unit_cost is not None else None,
        stock_after=float(to_qty(movement.stock_after)),
        created_at=movement.created_at,
    )


@router.get(
    "",
    response_model=Envelope[ProductListOut],
    summary="List active products",
    description="Optional `search` matches name, category and description; `category` filters exactly.",
    responses=error_responses(400, 401, 500),
)
def list_products(
    search: str | None = Query(default=None, max_length=100),
    category: str | None = Query(default=None, max_length=50),
    limit: int = Query(default=50, ge=1, le=MAX_PRODUCT_PAGE_SIZE, description="Page size"),
    offset: int = Query(default=0, ge=0, description="Pagination offset"),
    db: Session = Depends(get_db),
    _: User = Depends(require_permission("products.read")),
):
    products, total = product_service.list_products(
        db, search=search, category=category, limit=limit, offset=offset
    )
    items = [product_out(product) for product in products]
    return Envelope(
        data=ProductListOut(
            items=items,
            pagination=page_meta(total=total, limit=limit, offset=offset, count=len(items)),
        )
    )


@router.get(
    "/categories",
    response_model=Envelope[list[CategoryOut]],
    summary="List categories with product counts",
    responses=error_responses(401, 500),
)
def list_categories(
    db: Session = Depends(get_db),
    _: User = Depends(require_permission("products.read")),
):
    return Envelope(data=[CategoryOut(**row) for row in product_service.list_categories(db)])


@router.get(
    "/low-stock",
    response_model=Envelope[list[LowStockProductOut]],
    summary="Products at or below their minimum stock",
    responses=error_responses(401, 500),
)
def low_stock(
    db: Session = Depends(get_db),
    _: User = Depends(require_permission("products.read")),
):
    items = []
    for product in product_service.low_stock_products(db):
        base = product_out(product)
        minimum = to_qty(product.min_stock)
        current = to_qty(product.current_stock)
        items.append(
            LowStockProductOut(
                **base.model_dump(),
                stock_percentage=float(round(current / minimum * 100, 2)) if minimum > 0 else None,
                stock_value=float(to_money(current * to_money(product.purchase_price))),
            )
        )
    return Envelope(data=items, message=f"{len(items)} products need restocking")


@router.post(
    "",
    response_model=Envelope[ProductOut],
    status_code=status.HTTP_201_CREATED,
    summary="Create product",
    description="Opening stock is recorded as an `opening` movement in the stock ledger.",
    responses=error_responses(400, 401, 403, 500),
)
def create_product(
    payload: ProductCreate,
    db: Session = Depends(get_db),
    actor: User = Depends(require_permission("products.write")),
):
    product = product_service.create_product(db, **payload.model_dump(), actor_user_id=actor.id)
    return Envelope(data=product_out(product), message="Product created")


@router.get(
    "/{product_id}",
    response_model=Envelope[ProductDetailOut],
    summary="Get product with sales and inventory counters",
    responses=error_responses(401, 404, 500),
)
def get_product(
    product_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(require_permission("products.read")),
):
    product = product_service.get_product(db, product_id)
    stats = product_service.product_stats(db, product_id)
    return Envelope(data=ProductDetailOut(**product_out(product).model_dump(), **stats))


@router.put(
    "/{product_id}",
    response_model=Envelope[ProductOut],
    summary="Update catalog fields",
    description="Stock is not editable here; use `PUT /products/{id}/stock` or entries.",
    responses=error_responses(400, 401, 403, 404, 500),
)
def update_product(
    product_id: int,
    payload: ProductUpdate,
    db: Session = Depends(get_db),
    _: User = Depends(require_permission("products.write")),
):
    product = product_service.update_product(db, product_id, payload.model_dump(exclude_unset=True))
    return Envelope(data=product_out(product), message="Product updated")


@router.delete(
    "/{product_id}",
    response_model=Envelope[ProductOut],
    summary="Deactivate product",
    responses=error_responses(401, 403, 404, 500),
)
def delete_product(
    product_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(require_permission("products.delete")),
):
    product = product_service.deactivate_product(db, product_id)
    return Envelope(data=product_out(product), message="Product deactivated")


@router.put(
    "/{product_id}/stock",
    response_model=Envelope[ProductOut],
    summary="Set stock to a counted value",
    description="Records one `adjustment` movement for the difference.",
    responses=error_responses(400, 401, 403, 404, 500),
)
def set_stock(
    product_id: int,
    payload: StockSetIn,
    db: Session = Depends(get_db),
    actor: User = Depends(require_permission("products.write")),
):
    product = product_service.set_stock(
        db, product_id, payload.stock, note=payload.note, actor_user_id=actor.id
    )
    return Envelope(data=product_out(product), message="Stock updated")


@router.get(
    "/{product_id}/movements",
    response_model=Envelope[StockMovementListOut],
    summary="Stock movement history",
    responses=error_responses(401, 404, 500),
)
def movement_history(
    product_id: int,
    limit: int = Query(default=50, ge=1, le=MAX_PRODUCT_PAGE_SIZE),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    _: User = Depends(require_permission("products.read")),
):
    movements, total = product_service.movement_history(db, product_id, limit=limit, offset=offset)
    items = [movement_out(movement) for movement in movements]
    return Envelope(
        data=StockMovementListOut(
            items=items,
            pagination=page_meta(total=total, limit=limit, offset=offset, count=len(items)),
        )
    )
