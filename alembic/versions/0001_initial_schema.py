"""initial_schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-16 12:00:00.000000

"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001_initial_schema"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

order_status = sa.Enum(
    "created",
    "registered",
    "verified",
    "completed",
    "failed",
    "cancelled",
    name="orderstatus",
)

audit_action = sa.Enum(
    "server_changed",
    "server_selected",
    "usage_reset",
    "order_created",
    "order_registered",
    "payment_verified",
    "payment_completed",
    "callback_received",
    "mapping_changed",
    name="auditaction",
)


def upgrade() -> None:
    op.create_table(
        "proxy_servers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("url", sa.String(255), nullable=False),
        sa.Column("api_key", sa.String(255), nullable=False),
        sa.Column("api_secret", sa.String(255), nullable=False),
        sa.Column("capacity_limit", sa.Integer(), nullable=False, server_default="1000"),
        sa.Column("current_usage", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_selected", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_used", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        "uq_proxy_servers_selected",
        "proxy_servers",
        ["is_selected"],
        unique=True,
        postgresql_where=sa.text("is_selected"),
        sqlite_where=sa.text("is_selected = 1"),
    )
    op.create_index(
        "ix_proxy_servers_routing", "proxy_servers", ["is_active", "priority", "id"]
    )

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_key", sa.String(64), nullable=False),
        sa.Column("total", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="USD"),
        sa.Column("customer_email", sa.String(255), nullable=False, server_default=""),
        sa.Column("customer_first_name", sa.String(100), nullable=False, server_default=""),
        sa.Column("customer_last_name", sa.String(100), nullable=False, server_default=""),
        sa.Column("status", order_status, nullable=False, server_default="created"),
        sa.Column("proxy_server_id", sa.Integer(), nullable=True),
        sa.Column("paypal_order_id", sa.String(64), nullable=True),
        sa.Column("transaction_id", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("notes", sa.Text(), nullable=False, server_default="[]"),
    )
    op.create_index("ix_orders_id", "orders", ["id"])
    op.create_index("ix_orders_proxy_server_id", "orders", ["proxy_server_id"])

    op.create_table(
        "order_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("line_total", sa.Numeric(10, 2), nullable=False),
        sa.Column("sku", sa.String(100), nullable=False, server_default=""),
    )
    op.create_index("ix_order_items_order_id", "order_items", ["order_id"])

    op.create_table(
        "product_mappings",
        sa.Column("product_id", sa.Integer(), primary_key=True),
        sa.Column("mapped_product_id", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(), nullable=True),
        sa.Column("server_id", sa.Integer(), nullable=True),
        sa.Column("action", audit_action, nullable=True),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_audit_logs_order_id", "audit_logs", ["order_id"])
    op.create_index("ix_audit_logs_server_id", "audit_logs", ["server_id"])
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])


def downgrade() -> None:
    op.drop_index("ix_audit_logs_action", table_name="audit_logs")
    op.drop_index("ix_audit_logs_server_id", table_name="audit_logs")
    op.drop_index("ix_audit_logs_order_id", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_table("product_mappings")
    op.drop_index("ix_order_items_order_id", table_name="order_items")
    op.drop_table("order_items")
    op.drop_index("ix_orders_proxy_server_id", table_name="orders")
    op.drop_index("ix_orders_id", table_name="orders")
    op.drop_table("orders")
    op.drop_index("ix_proxy_servers_routing", table_name="proxy_servers")
    op.drop_index("uq_proxy_servers_selected", table_name="proxy_servers")
    op.drop_table("proxy_servers")

    bind = op.get_bind()
    audit_action.drop(bind, checkfirst=True)
    order_status.drop(bind, checkfirst=True)
