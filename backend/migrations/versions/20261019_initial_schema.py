"""Initial schema: tenants, users, catalog, arrivages, sales, stock movements

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
    ]


def upgrade():
    op.create_table(
        "organizations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("code", sa.String(32), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("organizations", schema=None) as batch_op:
        batch_op.create_index("ix_organizations_code", ["code"], unique=True)
        batch_op.create_index("ix_organizations_is_active", ["is_active"], unique=False)

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=True),
        sa.Column("external_id", sa.String(128), nullable=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=True),
        sa.Column("role", sa.String(16), nullable=False, server_default="STAFF"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("last_seen_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("external_id"),
        sa.UniqueConstraint("org_id", "email", name="uq_users_org_email"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("users", schema=None) as batch_op:
        batch_op.create_index("ix_users_org_id", ["org_id"], unique=False)

    op.create_table(
        "session_tokens",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("token_hash", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_revoked", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("session_tokens", schema=None) as batch_op:
        batch_op.create_index("ix_session_tokens_token_hash", ["token_hash"], unique=True)
        batch_op.create_index("ix_session_tokens_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_session_tokens_org_id", ["org_id"], unique=False)
        batch_op.create_index("ix_session_tokens_expires_at", ["expires_at"], unique=False)
        batch_op.create_index("ix_session_tokens_user_active", ["user_id", "is_revoked"], unique=False)

    for table, name_len, extra in (
        ("brands", 120, sa.Column("description", sa.String(500), nullable=True)),
        ("categories", 100, sa.Column("description", sa.String(500), nullable=True)),
        ("suppliers", 200, sa.Column("contact_info", sa.String(500), nullable=True)),
    ):
        op.create_table(
            table,
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("org_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(name_len), nullable=False),
            extra,
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
            sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("org_id", "name", name=f"uq_{table}_org_name"),
            sqlite_autoincrement=True,
        )
        with op.batch_alter_table(table, schema=None) as batch_op:
            batch_op.create_index(f"ix_{table}_org_id", ["org_id"], unique=False)

    op.create_table(
        "arrivages",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("supplier_id", sa.Integer(), nullable=True),
        sa.Column("reference", sa.String(100), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="PENDING"),
        sa.Column("arrival_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("exchange_rate", sa.Numeric(10, 4), nullable=False),
        sa.Column("shipping_cost_eur", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("customs_cost_eur", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("packaging_cost_eur", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("total_cost_eur", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("total_cost_dh", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("product_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_units", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("notes", sa.String(500), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("exchange_rate > 0", name="ck_arrivages_rate_positive"),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["supplier_id"], ["suppliers.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("org_id", "reference", name="uq_arrivages_org_reference"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("arrivages", schema=None) as batch_op:
        batch_op.create_index("ix_arrivages_org_id", ["org_id"], unique=False)
        batch_op.create_index("ix_arrivages_supplier_id", ["supplier_id"], unique=False)
        batch_op.create_index("ix_arrivages_status", ["status"], unique=False)

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("sku", sa.String(100), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.String(1000), nullable=True),
        sa.Column("arrivage_id", sa.Integer(), nullable=True),
        sa.Column("brand_id", sa.Integer(), nullable=True),
        sa.Column("category_id", sa.Integer(), nullable=True),
        sa.Column("purchase_price_eur", sa.Numeric(12, 2), nullable=True),
        sa.Column("purchase_price_mad", sa.Numeric(12, 2), nullable=True),
        sa.Column("selling_price_dh", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("quantity_received", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("quantity_sold", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("reorder_level", sa.Integer(), nullable=False, server_default=sa.text("5")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.CheckConstraint("quantity_received >= 0", name="ck_products_received_nonneg"),
        sa.CheckConstraint("quantity_sold >= 0", name="ck_products_sold_nonneg"),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["arrivage_id"], ["arrivages.id"]),
        sa.ForeignKeyConstraint(["brand_id"], ["brands.id"]),
        sa.ForeignKeyConstraint(["category_id"], ["categories.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("org_id", "sku", name="uq_products_org_sku"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.create_index("ix_products_org_id", ["org_id"], unique=False)
        batch_op.create_index("ix_products_arrivage_id", ["arrivage_id"], unique=False)
        batch_op.create_index("ix_products_brand_id", ["brand_id"], unique=False)
        batch_op.create_index("ix_products_category_id", ["category_id"], unique=False)
        batch_op.create_index("ix_products_org_active", ["org_id", "is_active"], unique=False)
        batch_op.create_index("ix_products_org_name", ["org_id", "name"], unique=False)

    op.create_table(
        "shipment_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("arrivage_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("quantity_sold", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("quantity_remaining", sa.Integer(), nullable=False),
        sa.Column("cost_per_unit_eur", sa.Numeric(12, 2), nullable=True),
        sa.Column("cost_per_unit_dh", sa.Numeric(12, 2), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.CheckConstraint("quantity_sold >= 0", name="ck_shipment_items_sold_nonneg"),
        sa.CheckConstraint("quantity_remaining >= 0", name="ck_shipment_items_remaining_nonneg"),
        sa.CheckConstraint("quantity_remaining = quantity - quantity_sold", name="ck_shipment_items_remaining_balance"),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["arrivage_id"], ["arrivages.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("shipment_items", schema=None) as batch_op:
        batch_op.create_index("ix_shipment_items_org_id", ["org_id"], unique=False)
        batch_op.create_index("ix_shipment_items_arrivage_id", ["arrivage_id"], unique=False)
        batch_op.create_index("ix_shipment_items_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_shipment_items_product_created", ["product_id", "created_at"], unique=False)

    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("arrivage_id", sa.Integer(), nullable=True),
        sa.Column("date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("amount_eur", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("amount_dh", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("description", sa.String(500), nullable=False),
        sa.Column("type", sa.String(16), nullable=False, server_default="OTHER"),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.CheckConstraint("amount_eur >= 0", name="ck_expenses_eur_nonneg"),
        sa.CheckConstraint("amount_dh >= 0", name="ck_expenses_dh_nonneg"),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["arrivage_id"], ["arrivages.id"]),
        sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("expenses", schema=None) as batch_op:
        batch_op.create_index("ix_expenses_org_id", ["org_id"], unique=False)
        batch_op.create_index("ix_expenses_arrivage_id", ["arrivage_id"], unique=False)
        batch_op.create_index("ix_expenses_org_date", ["org_id", "date"], unique=False)

    op.create_table(
        "sales",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=True),
        sa.Column("price_per_unit", sa.Numeric(12, 2), nullable=True),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("pricing_mode", sa.String(16), nullable=False, server_default="REGULAR"),
        sa.Column("bundle_price_total", sa.Numeric(12, 2), nullable=True),
        sa.Column("is_promo", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("sale_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("notes", sa.String(500), nullable=True),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("total_amount >= 0", name="ck_sales_total_nonneg"),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("sales", schema=None) as batch_op:
        batch_op.create_index("ix_sales_org_id", ["org_id"], unique=False)
        batch_op.create_index("ix_sales_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_sales_sale_date", ["sale_date"], unique=False)
        batch_op.create_index("ix_sales_org_date", ["org_id", "sale_date"], unique=False)

    op.create_table(
        "sale_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("sale_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("price_per_unit", sa.Numeric(12, 2), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_sale_items_qty_positive"),
        sa.ForeignKeyConstraint(["sale_id"], ["sales.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("sale_items", schema=None) as batch_op:
        batch_op.create_index("ix_sale_items_sale_id", ["sale_id"], unique=False)
        batch_op.create_index("ix_sale_items_product_id", ["product_id"], unique=False)

    op.create_table(
        "sale_allocations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("sale_id", sa.Integer(), nullable=False),
        sa.Column("shipment_item_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_cost_eur", sa.Numeric(12, 2), nullable=True),
        sa.CheckConstraint("quantity > 0", name="ck_sale_allocations_qty_positive"),
        sa.ForeignKeyConstraint(["sale_id"], ["sales.id"]),
        sa.ForeignKeyConstraint(["shipment_item_id"], ["shipment_items.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("sale_allocations", schema=None) as batch_op:
        batch_op.create_index("ix_sale_allocations_sale_id", ["sale_id"], unique=False)
        batch_op.create_index("ix_sale_allocations_shipment_item_id", ["shipment_item_id"], unique=False)
        batch_op.create_index("ix_sale_allocations_product_id", ["product_id"], unique=False)

    op.create_table(
        "stock_movements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("previous_qty", sa.Integer(), nullable=False),
        sa.Column("new_qty", sa.Integer(), nullable=False),
        sa.Column("reference", sa.String(255), nullable=True),
        sa.Column("notes", sa.String(500), nullable=True),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("new_qty = previous_qty + quantity", name="ck_stock_movements_balance"),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("stock_movements", schema=None) as batch_op:
        batch_op.create_index("ix_stock_movements_org_id", ["org_id"], unique=False)
        batch_op.create_index("ix_stock_movements_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_stock_movements_type", ["type"], unique=False)
        batch_op.create_index("ix_stock_movements_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_stock_movements_product_created", ["product_id", "created_at"], unique=False)
        batch_op.create_index("ix_stock_movements_org_type", ["org_id", "type"], unique=False)

    op.create_table(
        "organization_settings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("key", sa.String(128), nullable=False),
        sa.Column("value", sa.Text(), nullable=True),
        sa.Column("updated_by_user_id", sa.Integer(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["updated_by_user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("org_id", "key", name="uq_org_settings_key"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("organization_settings", schema=None) as batch_op:
        batch_op.create_index("ix_organization_settings_org_id", ["org_id"], unique=False)


def downgrade():
    for table in (
        "organization_settings",
        "stock_movements",
        "sale_allocations",
        "sale_items",
        "sales",
        "expenses",
        "shipment_items",
        "products",
        "arrivages",
        "suppliers",
        "categories",
        "brands",
        "session_tokens",
        "users",
        "organizations",
    ):
        op.drop_table(table)
