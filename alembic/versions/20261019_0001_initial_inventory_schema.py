"""initial inventory schema

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261019_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _table_exists(inspector: sa.Inspector, table_name: str) -> bool:
    return table_name in inspector.get_table_names()


def _index_exists(inspector: sa.Inspector, table_name: str, index_name: str) -> bool:
    return index_name in {index["name"] for index in inspector.get_indexes(table_name)}


def _timestamps(with_updated_at: bool = True) -> list[sa.Column]:
    columns = [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True, server_default=sa.func.now()),
    ]
    if with_updated_at:
        columns.append(
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True, server_default=sa.func.now())
        )
    return columns


def _create_indexes(inspector: sa.Inspector, table_name: str, indexes: list[tuple[str, list, bool]]) -> None:
    for index_name, columns, unique in indexes:
        if not _index_exists(inspector, table_name, index_name):
            op.create_index(index_name, table_name, columns, unique=unique)


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not _table_exists(inspector, "users"):
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("username", sa.String(length=50), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=True),
            sa.Column("hashed_password", sa.String(length=255), nullable=False),
            sa.Column("full_name", sa.String(length=100), nullable=False),
            sa.Column("role", sa.String(length=20), nullable=False, server_default="cashier"),
            sa.Column("is_active", sa.Boolean(), nullable=True, server_default=sa.true()),
            sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
        )

    if not _table_exists(inspector, "products"):
        op.create_table(
            "products",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("name", sa.String(length=100), nullable=False),
            sa.Column("category", sa.String(length=50), nullable=False),
            sa.Column("unit", sa.String(length=10), nullable=False, server_default="pza"),
            sa.Column("description", sa.String(length=500), nullable=True),
            sa.Column("image_url", sa.String(length=500), nullable=True),
            sa.Column("purchase_price", sa.Numeric(12, 2), nullable=False),
            sa.Column("sale_price", sa.Numeric(12, 2), nullable=False),
            sa.Column("current_stock", sa.Numeric(12, 3), nullable=False, server_default="0"),
            sa.Column("min_stock", sa.Numeric(12, 3), nullable=False, server_default="5"),
            sa.Column("active", sa.Boolean(), nullable=True, server_default=sa.true()),
            *_timestamps(),
            sa.CheckConstraint("current_stock >= 0", name="ck_products_current_stock_non_negative"),
            sa.CheckConstraint("purchase_price >= 0", name="ck_products_purchase_price_non_negative"),
            sa.CheckConstraint("sale_price >= 0", name="ck_products_sale_price_non_negative"),
            sa.PrimaryKeyConstraint("id"),
        )

    if not _table_exists(inspector, "suppliers"):
        op.create_table(
            "suppliers",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("name", sa.String(length=100), nullable=False),
            sa.Column("contact", sa.String(length=100), nullable=True),
            sa.Column("phone", sa.String(length=30), nullable=True),
            sa.Column("email", sa.String(length=255), nullable=True),
            sa.Column("address", sa.String(length=255), nullable=True),
            sa.Column("rfc", sa.String(length=13), nullable=True),
            sa.Column("products_supplied", sa.Text(), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("active", sa.Boolean(), nullable=True, server_default=sa.true()),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("name"),
            sa.UniqueConstraint("rfc"),
        )

    if not _table_exists(inspector, "stock_movements"):
        op.create_table(
            "stock_movements",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("product_id", sa.Integer(), nullable=False),
            sa.Column("qty_delta", sa.Numeric(12, 3), nullable=False),
            sa.Column("kind", sa.String(length=30), nullable=False),
            sa.Column("reference_type", sa.String(length=30), nullable=True),
            sa.Column("reference_id", sa.Integer(), nullable=True),
            sa.Column("note", sa.String(length=255), nullable=True),
            sa.Column("unit_cost", sa.Numeric(12, 2), nullable=True),
            sa.Column("stock_after", sa.Numeric(12, 3), nullable=False),
            sa.Column("actor_user_id", sa.Integer(), nullable=True),
            *_timestamps(with_updated_at=False),
            sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
            sa.ForeignKeyConstraint(["actor_user_id"], ["users.id"]),
            sa.PrimaryKeyConstraint("id"),
        )

    if not _table_exists(inspector, "stock_entries"):
        op.create_table(
            "stock_entries",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("product_id", sa.Integer(), nullable=False),
            sa.Column("movement_id", sa.Integer(), nullable=False),
            sa.Column("quantity", sa.Numeric(12, 3), nullable=False),
            sa.Column("purchase_price", sa.Numeric(12, 2), nullable=False),
            sa.Column("supplier_name", sa.String(length=100), nullable=True),
            sa.Column("supplier_id", sa.Integer(), nullable=True),
            sa.Column("note", sa.String(length=500), nullable=True),
            sa.Column("created_by_user_id", sa.Integer(), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
            sa.ForeignKeyConstraint(["movement_id"], ["stock_movements.id"]),
            sa.ForeignKeyConstraint(["supplier_id"], ["suppliers.id"]),
            sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"]),
            sa.PrimaryKeyConstraint("id"),
        )

    if not _table_exists(inspector, "mermas"):
        op.create_table(
            "mermas",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("product_id", sa.Integer(), nullable=False),
            sa.Column("movement_id", sa.Integer(), nullable=False),
            sa.Column("quantity", sa.Numeric(12, 3), nullable=False),
            sa.Column("reason", sa.String(length=20), nullable=False),
            sa.Column("description", sa.String(length=500), nullable=True),
            sa.Column("created_by_user_id", sa.Integer(), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
            sa.ForeignKeyConstraint(["movement_id"], ["stock_movements.id"]),
            sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"]),
            sa.PrimaryKeyConstraint("id"),
        )

    if not _table_exists(inspector, "sales"):
        op.create_table(
            "sales",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("customer_name", sa.String(length=100), nullable=False),
            sa.Column("customer_phone", sa.String(length=30), nullable=True),
            sa.Column("customer_email", sa.String(length=255), nullable=True),
            sa.Column("total", sa.Numeric(12, 2), nullable=False),
            sa.Column("payment_method", sa.String(length=30), nullable=False),
            sa.Column("payment_reference", sa.String(length=100), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="active"),
            sa.Column("void_reason", sa.String(length=255), nullable=True),
            sa.Column("voided_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("voided_by_user_id", sa.Integer(), nullable=True),
            sa.Column("created_by_user_id", sa.Integer(), nullable=True),
            *_timestamps(with_updated_at=False),
            sa.ForeignKeyConstraint(["voided_by_user_id"], ["users.id"]),
            sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"]),
            sa.PrimaryKeyConstraint("id"),
        )

    if not _table_exists(inspector, "sale_lines"):
        op.create_table(
            "sale_lines",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("sale_id", sa.Integer(), nullable=False),
            sa.Column("product_id", sa.Integer(), nullable=False),
            sa.Column("movement_id", sa.Integer(), nullable=False),
            sa.Column("position", sa.Integer(), nullable=False),
            sa.Column("quantity", sa.Numeric(12, 3), nullable=False),
            sa.Column("unit_price", sa.Numeric(12, 2), nullable=False),
            sa.Column("subtotal", sa.Numeric(12, 2), nullable=False),
            sa.ForeignKeyConstraint(["sale_id"], ["sales.id"]),
            sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
            sa.ForeignKeyConstraint(["movement_id"], ["stock_movements.id"]),
            sa.PrimaryKeyConstraint("id"),
        )

    inspector = sa.inspect(bind)
    _create_indexes(inspector, "users", [("ix_users_username", ["username"], True)])
    if not _index_exists(inspector, "users", "ux_users_username_lower"):
        op.create_index("ux_users_username_lower", "users", [sa.text("lower(username)")], unique=True)
    _create_indexes(
        inspector,
        "products",
        [
            ("ix_products_active_name", ["active", "name"], False),
            ("ix_products_category", ["category"], False),
        ],
    )
    _create_indexes(inspector, "suppliers", [("ix_suppliers_active_name", ["active", "name"], False)])
    _create_indexes(
        inspector,
        "stock_movements",
        [
            ("ix_stock_movements_product_id", ["product_id"], False),
            ("ix_stock_movements_product_created_at", ["product_id", "created_at"], False),
            ("ix_stock_movements_reference", ["reference_type", "reference_id"], False),
            ("ix_stock_movements_kind_created_at", ["kind", "created_at"], False),
        ],
    )
    _create_indexes(
        inspector,
        "stock_entries",
        [
            ("ix_stock_entries_product_id", ["product_id"], False),
            ("ix_stock_entries_supplier_id", ["supplier_id"], False),
            ("ix_stock_entries_created_at", ["created_at"], False),
            ("ix_stock_entries_supplier_name", ["supplier_name"], False),
        ],
    )
    _create_indexes(
        inspector,
        "mermas",
        [
            ("ix_mermas_product_id", ["product_id"], False),
            ("ix_mermas_reason_created_at", ["reason", "created_at"], False),
        ],
    )
    _create_indexes(
        inspector,
        "sales",
        [
            ("ix_sales_created_at", ["created_at"], False),
            ("ix_sales_status_created_at", ["status", "created_at"], False),
            ("ix_sales_payment_method_created_at", ["payment_method", "created_at"], False),
        ],
    )
    _create_indexes(
        inspector,
        "sale_lines",
        [
            ("ix_sale_lines_sale_id", ["sale_id"], False),
            ("ix_sale_lines_product_id", ["product_id"], False),
        ],
    )


def downgrade() -> None:
    for table_name in (
        "sale_lines",
        "sales",
        "mermas",
        "stock_entries",
        "stock_movements",
        "suppliers",
        "products",
        "users",
    ):
        op.drop_table(table_name)
