"""onec exchange schema

Revision ID: 001_onec_exchange_schema
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "001_onec_exchange_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "catalog_sections",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("external_id", sa.String(255), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "parent_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("catalog_sections.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("parent_external_id", sa.String(255), nullable=True),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("exchange_timestamp", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_catalog_sections_external_id", "catalog_sections", ["external_id"])
    op.create_index("ix_catalog_sections_parent_id", "catalog_sections", ["parent_id"])
    op.create_index("ix_catalog_sections_exchange_timestamp", "catalog_sections", ["exchange_timestamp"])

    op.create_table(
        "product_attributes",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("external_id", sa.String(255), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("attribute_type", sa.String(20), nullable=False, server_default="select"),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("exchange_timestamp", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_product_attributes_external_id", "product_attributes", ["external_id"])
    op.create_index("ix_product_attributes_exchange_timestamp", "product_attributes", ["exchange_timestamp"])

    op.create_table(
        "product_attribute_options",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "attribute_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("product_attributes.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("external_id", sa.String(255), nullable=False),
        sa.Column("value", sa.String(500), nullable=False),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("exchange_timestamp", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "ix_product_attribute_options_attribute_external",
        "product_attribute_options",
        ["attribute_id", "external_id"],
        unique=True,
    )
    op.create_index("ix_product_attribute_options_external_id", "product_attribute_options", ["external_id"])

    op.create_table(
        "products",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("external_id", sa.String(255), nullable=False, unique=True),
        sa.Column(
            "parent_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("products.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("product_type", sa.String(20), nullable=False, server_default="simple"),
        sa.Column("name", sa.String(500), nullable=False),
        sa.Column("sku", sa.String(100), nullable=True),
        sa.Column("barcode", sa.String(100), nullable=True),
        sa.Column("manufacturer", sa.String(255), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("short_description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="publish"),
        sa.Column("menu_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("weight", sa.Float(), nullable=True),
        sa.Column("length", sa.Float(), nullable=True),
        sa.Column("width", sa.Float(), nullable=True),
        sa.Column("height", sa.Float(), nullable=True),
        sa.Column("regular_price", sa.Float(), nullable=True),
        sa.Column("sale_price", sa.Float(), nullable=True),
        sa.Column("date_on_sale_from", sa.DateTime(timezone=True), nullable=True),
        sa.Column("date_on_sale_to", sa.DateTime(timezone=True), nullable=True),
        sa.Column("price", sa.Float(), nullable=True),
        sa.Column("prices", sa.JSON(), nullable=True),
        sa.Column("manage_stock", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("stock_quantity", sa.Float(), nullable=True),
        sa.Column("stock_status", sa.String(30), nullable=True),
        sa.Column("images", sa.JSON(), nullable=True),
        sa.Column("attributes", sa.JSON(), nullable=True),
        sa.Column("variation_attributes", sa.JSON(), nullable=True),
        sa.Column("requisites", sa.JSON(), nullable=True),
        sa.Column("exchange_timestamp", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_products_external_id", "products", ["external_id"])
    op.create_index("ix_products_parent_id", "products", ["parent_id"])
    op.create_index("ix_products_sku", "products", ["sku"])
    op.create_index("ix_products_exchange_timestamp", "products", ["exchange_timestamp"])

    op.create_table(
        "product_catalog_sections",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "product_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("products.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "catalog_section_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("catalog_sections.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_product_catalog_sections_product_section",
        "product_catalog_sections",
        ["product_id", "catalog_section_id"],
        unique=True,
    )
    op.create_index("ix_product_catalog_sections_section", "product_catalog_sections", ["catalog_section_id"])

    op.create_table(
        "orders",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("number", sa.String(100), nullable=False, unique=True),
        sa.Column("external_id", sa.String(255), nullable=True),
        sa.Column("status", sa.String(30), nullable=False, server_default="on-hold"),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("currency", sa.String(10), nullable=True),
        sa.Column("total", sa.Float(), nullable=True),
        sa.Column("shipping_total", sa.Float(), nullable=True),
        sa.Column("order_date", sa.DateTime(timezone=False), nullable=True),
        sa.Column("customer_note", sa.Text(), nullable=True),
        sa.Column("contragent", sa.String(255), nullable=True),
        sa.Column("payment_method", sa.String(255), nullable=True),
        sa.Column("counterparties", sa.JSON(), nullable=True),
        sa.Column("requisites", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_orders_number", "orders", ["number"])
    op.create_index("ix_orders_external_id", "orders", ["external_id"])

    op.create_table(
        "order_lines",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "order_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("orders.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("line_type", sa.String(20), nullable=False, server_default="line_item"),
        sa.Column(
            "product_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("products.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("product_external_id", sa.String(255), nullable=True),
        sa.Column("name", sa.String(500), nullable=False),
        sa.Column("quantity", sa.Float(), nullable=False, server_default="1"),
        sa.Column("price", sa.Float(), nullable=True),
        sa.Column("subtotal", sa.Float(), nullable=True),
        sa.Column("total", sa.Float(), nullable=True),
        sa.Column("variation", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_order_lines_order_id", "order_lines", ["order_id"])

    op.create_table(
        "exchange_options",
        sa.Column("key", sa.String(100), primary_key=True),
        sa.Column("value", sa.String(500), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade():
    op.drop_table("exchange_options")
    op.drop_index("ix_order_lines_order_id", table_name="order_lines")
    op.drop_table("order_lines")
    op.drop_index("ix_orders_external_id", table_name="orders")
    op.drop_index("ix_orders_number", table_name="orders")
    op.drop_table("orders")
    op.drop_index("ix_product_catalog_sections_section", table_name="product_catalog_sections")
    op.drop_index("ix_product_catalog_sections_product_section", table_name="product_catalog_sections")
    op.drop_table("product_catalog_sections")
    op.drop_index("ix_products_exchange_timestamp", table_name="products")
    op.drop_index("ix_products_sku", table_name="products")
    op.drop_index("ix_products_parent_id", table_name="products")
    op.drop_index("ix_products_external_id", table_name="products")
    op.drop_table("products")
    op.drop_index("ix_product_attribute_options_external_id", table_name="product_attribute_options")
    op.drop_index("ix_product_attribute_options_attribute_external", table_name="product_attribute_options")
    op.drop_table("product_attribute_options")
    op.drop_index("ix_product_attributes_exchange_timestamp", table_name="product_attributes")
    op.drop_index("ix_product_attributes_external_id", table_name="product_attributes")
    op.drop_table("product_attributes")
    op.drop_index("ix_catalog_sections_exchange_timestamp", table_name="catalog_sections")
    op.drop_index("ix_catalog_sections_parent_id", table_name="catalog_sections")
    op.drop_index("ix_catalog_sections_external_id", table_name="catalog_sections")
    op.drop_table("catalog_sections")
