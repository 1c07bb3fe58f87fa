"""Initial inventory ledger schema

Revision ID: 20261018_initial
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_initial"
down_revision = None
branch_labels = None
depends_on = None

PRICE = sa.Numeric(14, 4)
QUANTITY = sa.Numeric(16, 3)
MONEY = sa.Numeric(14, 2)


def upgrade():
    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(32), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("specification", sa.String(255), nullable=True),
        sa.Column("base_unit", sa.String(32), nullable=False),
        sa.Column("purchase_price", PRICE, nullable=False),
        sa.Column("retail_price", PRICE, nullable=False),
        sa.Column("supplier", sa.String(255), nullable=True),
        sa.Column("min_stock_threshold", QUANTITY, nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.create_index("ix_products_name", ["name"], unique=False)

    op.create_table(
        "package_units",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(32), nullable=False),
        sa.Column("conversion_rate", PRICE, nullable=False),
        sa.Column("purchase_price", PRICE, nullable=True),
        sa.Column("retail_price", PRICE, nullable=True),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("product_id", "name", name="uq_package_units_product_name"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("package_units", schema=None) as batch_op:
        batch_op.create_index("ix_package_units_product_id", ["product_id"], unique=False)

    op.create_table(
        "storage_locations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "product_storage_locations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=False),
        sa.Column("note", sa.String(255), nullable=True),
        sa.Column("is_primary", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["location_id"], ["storage_locations.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("product_id", "location_id", name="uq_product_storage_locations_pair"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("product_storage_locations", schema=None) as batch_op:
        batch_op.create_index("ix_product_storage_locations_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_product_storage_locations_location_id", ["location_id"], unique=False)

    op.create_table(
        "inventory_records",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("quantity", QUANTITY, nullable=False, server_default=sa.text("0")),
        sa.Column("last_updated", sa.DateTime(), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("product_id"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "inventory_transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("transaction_type", sa.String(16), nullable=False),
        sa.Column("quantity_change", QUANTITY, nullable=False),
        sa.Column("unit", sa.String(32), nullable=False),
        sa.Column("reference_id", sa.Integer(), nullable=True),
        sa.Column("reference_type", sa.String(32), nullable=True),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
        sa.Column("note", sa.String(255), nullable=True),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("inventory_transactions", schema=None) as batch_op:
        batch_op.create_index("ix_inventory_transactions_transaction_type", ["transaction_type"], unique=False)
        batch_op.create_index(
            "ix_inventory_transactions_product_time", ["product_id", "timestamp"], unique=False
        )

    op.create_table(
        "purchase_orders",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_number", sa.String(32), nullable=False),
        sa.Column("supplier", sa.String(255), nullable=False),
        sa.Column("order_date", sa.DateTime(), nullable=False),
        sa.Column("total_amount", MONEY, nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(16), nullable=False, server_default="PENDING"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("confirmed_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("order_number"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("purchase_orders", schema=None) as batch_op:
        batch_op.create_index("ix_purchase_orders_status_date", ["status", "order_date"], unique=False)

    op.create_table(
        "purchase_order_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("purchase_order_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("quantity", QUANTITY, nullable=False),
        sa.Column("unit", sa.String(32), nullable=False),
        sa.Column("unit_price", PRICE, nullable=False),
        sa.Column("subtotal", MONEY, nullable=False),
        sa.ForeignKeyConstraint(["purchase_order_id"], ["purchase_orders.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("purchase_order_items", schema=None) as batch_op:
        batch_op.create_index("ix_purchase_order_items_purchase_order_id", ["purchase_order_id"], unique=False)
        batch_op.create_index("ix_purchase_order_items_product_id", ["product_id"], unique=False)

    op.create_table(
        "sales_orders",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_number", sa.String(32), nullable=False),
        sa.Column("customer_name", sa.String(255), nullable=True),
        sa.Column("order_date", sa.DateTime(), nullable=False),
        sa.Column("subtotal", MONEY, nullable=False, server_default=sa.text("0")),
        sa.Column("discount_amount", MONEY, nullable=False, server_default=sa.text("0")),
        sa.Column("rounding_amount", MONEY, nullable=False, server_default=sa.text("0")),
        sa.Column("total_amount", MONEY, nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(16), nullable=False, server_default="PENDING"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("confirmed_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("order_number"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("sales_orders", schema=None) as batch_op:
        batch_op.create_index("ix_sales_orders_status_date", ["status", "order_date"], unique=False)

    op.create_table(
        "sales_order_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("sales_order_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("quantity", QUANTITY, nullable=False),
        sa.Column("unit", sa.String(32), nullable=False),
        sa.Column("unit_price", PRICE, nullable=False),
        sa.Column("original_price", PRICE, nullable=False),
        sa.Column("subtotal", MONEY, nullable=False),
        sa.ForeignKeyConstraint(["sales_order_id"], ["sales_orders.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("sales_order_items", schema=None) as batch_op:
        batch_op.create_index("ix_sales_order_items_sales_order_id", ["sales_order_id"], unique=False)
        batch_op.create_index("ix_sales_order_items_product_id", ["product_id"], unique=False)

    op.create_table(
        "return_orders",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_number", sa.String(32), nullable=False),
        sa.Column("original_order_id", sa.Integer(), nullable=False),
        sa.Column("order_type", sa.String(16), nullable=False),
        sa.Column("return_date", sa.DateTime(), nullable=False),
        sa.Column("total_amount", MONEY, nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(16), nullable=False, server_default="PENDING"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("confirmed_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("order_number"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("return_orders", schema=None) as batch_op:
        batch_op.create_index("ix_return_orders_original", ["order_type", "original_order_id"], unique=False)

    op.create_table(
        "return_order_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("return_order_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("quantity", QUANTITY, nullable=False),
        sa.Column("unit", sa.String(32), nullable=False),
        sa.Column("unit_price", PRICE, nullable=False),
        sa.Column("subtotal", MONEY, nullable=False),
        sa.ForeignKeyConstraint(["return_order_id"], ["return_orders.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("return_order_items", schema=None) as batch_op:
        batch_op.create_index("ix_return_order_items_return_order_id", ["return_order_id"], unique=False)
        batch_op.create_index("ix_return_order_items_product_id", ["product_id"], unique=False)

    op.create_table(
        "stock_takings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("taking_date", sa.DateTime(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="IN_PROGRESS"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("stock_takings", schema=None) as batch_op:
        batch_op.create_index("ix_stock_takings_status", ["status"], unique=False)

    op.create_table(
        "stock_taking_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("stock_taking_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("system_quantity", QUANTITY, nullable=False),
        sa.Column("actual_quantity", QUANTITY, nullable=False),
        sa.Column("difference", QUANTITY, nullable=False, server_default=sa.text("0")),
        sa.Column("unit", sa.String(32), nullable=False),
        sa.ForeignKeyConstraint(["stock_taking_id"], ["stock_takings.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("stock_taking_id", "product_id", name="uq_stock_taking_items_product"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("stock_taking_items", schema=None) as batch_op:
        batch_op.create_index("ix_stock_taking_items_stock_taking_id", ["stock_taking_id"], unique=False)
        batch_op.create_index("ix_stock_taking_items_product_id", ["product_id"], unique=False)


def downgrade():
    for table in (
        "stock_taking_items",
        "stock_takings",
        "return_order_items",
        "return_orders",
        "sales_order_items",
        "sales_orders",
        "purchase_order_items",
        "purchase_orders",
        "inventory_transactions",
        "inventory_records",
        "product_storage_locations",
        "storage_locations",
        "package_units",
        "products",
    ):
        op.drop_table(table)
