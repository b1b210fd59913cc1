"""create workflow tables

Revision ID: 3f2a9c1d7b64
Revises:
Create Date: 2026-10-19 09:00:00

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "3f2a9c1d7b64"
down_revision = None
branch_labels = None
depends_on = None

user_role = sa.Enum("BUYER", "SELLER", "ADMIN", name="userrole")
quote_status = sa.Enum(
    "PENDING", "SENT", "ACCEPTED", "REJECTED", "EXPIRED", name="quotestatus"
)
design_status = sa.Enum(
    "PENDING",
    "APPROVED",
    "REJECTED",
    "CHANGES_REQUESTED",
    name="designapprovalstatus",
)
design_context = sa.Enum("PRODUCT", "QUOTE", name="designapprovalcontext")
message_type = sa.Enum("TEXT", "SYSTEM", name="messagetype")
order_type = sa.Enum("PRODUCT", "SERVICE", name="ordertype")
order_status = sa.Enum(
    "PENDING_PAYMENT", "PAID", "CANCELLED", "COMPLETED", name="orderstatus"
)


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=120), nullable=False),
        sa.Column("display_name", sa.String(length=100), nullable=True),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", user_role, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("last_login_at", sa.DateTime(), nullable=True),
    )
    with op.batch_alter_table("users", schema=None) as batch_op:
        batch_op.create_index("ix_users_email", ["email"], unique=True)

    for table, fk_name in (("products", "seller_id"), ("services", "seller_id")):
        op.create_table(
            table,
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column(
                fk_name,
                sa.Integer(),
                sa.ForeignKey("users.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("requires_quote", sa.Boolean(), nullable=False),
            sa.Column("requires_design_approval", sa.Boolean(), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
        )
        with op.batch_alter_table(table, schema=None) as batch_op:
            batch_op.create_index(f"ix_{table}_seller_id", ["seller_id"])

    op.create_table(
        "product_variants",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "product_id",
            sa.Integer(),
            sa.ForeignKey("products.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("sku", sa.String(length=100), nullable=True),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("inventory", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_table(
        "service_packages",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "service_id",
            sa.Integer(),
            sa.ForeignKey("services.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    with op.batch_alter_table("product_variants", schema=None) as batch_op:
        batch_op.create_index(
            "ix_product_variants_product_id", ["product_id"])
    with op.batch_alter_table("service_packages", schema=None) as batch_op:
        batch_op.create_index(
            "ix_service_packages_service_id", ["service_id"])

    op.create_table(
        "conversations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("subject", sa.String(length=255), nullable=False),
        sa.Column(
            "buyer_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "seller_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "product_id",
            sa.Integer(),
            sa.ForeignKey("products.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "service_id",
            sa.Integer(),
            sa.ForeignKey("services.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("workflow_contexts_json", sa.Text(), nullable=False),
        *_timestamps(),
        sa.Column("last_message_at", sa.DateTime(), nullable=True),
    )
    with op.batch_alter_table("conversations", schema=None) as batch_op:
        batch_op.create_index("ix_conversations_buyer_id", ["buyer_id"])
        batch_op.create_index("ix_conversations_seller_id", ["seller_id"])

    op.create_table(
        "messages",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "conversation_id",
            sa.Integer(),
            sa.ForeignKey("conversations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "sender_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("sender_role", sa.String(length=20), nullable=False),
        sa.Column("msg_type", message_type, nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    with op.batch_alter_table("messages", schema=None) as batch_op:
        batch_op.create_index(
            "ix_messages_conversation_id", ["conversation_id"])
        batch_op.create_index("ix_messages_sender_id", ["sender_id"])
        batch_op.create_index("ix_messages_created_at", ["created_at"])

    # quotes.design_approval_id gets its foreign key once
    # design_approvals exists.
    op.create_table(
        "quotes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "conversation_id",
            sa.Integer(),
            sa.ForeignKey("conversations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "product_id",
            sa.Integer(),
            sa.ForeignKey("products.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column(
            "service_id",
            sa.Integer(),
            sa.ForeignKey("services.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column(
            "product_variant_id",
            sa.Integer(),
            sa.ForeignKey("product_variants.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column(
            "service_package_id",
            sa.Integer(),
            sa.ForeignKey("service_packages.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("design_approval_id", sa.Integer(), nullable=True),
        sa.Column(
            "buyer_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "seller_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("quoted_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("status", quote_status, nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=True),
        sa.Column("accepted_at", sa.DateTime(), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "quantity > 0", name="check_quote_quantity_positive"),
        sa.CheckConstraint(
            "quoted_price > 0", name="check_quote_price_positive"),
    )
    with op.batch_alter_table("quotes", schema=None) as batch_op:
        batch_op.create_index(
            "ix_quotes_conversation_id", ["conversation_id"])
        batch_op.create_index("ix_quotes_buyer_id", ["buyer_id"])
        batch_op.create_index("ix_quotes_seller_id", ["seller_id"])
        batch_op.create_index("ix_quotes_status", ["status"])
        batch_op.create_index("ix_quotes_created_at", ["created_at"])

    op.create_table(
        "design_approvals",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "conversation_id",
            sa.Integer(),
            sa.ForeignKey("conversations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("context", design_context, nullable=False),
        sa.Column(
            "quote_id",
            sa.Integer(),
            sa.ForeignKey("quotes.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "product_id",
            sa.Integer(),
            sa.ForeignKey("products.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column(
            "service_id",
            sa.Integer(),
            sa.ForeignKey("services.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column(
            "variant_id",
            sa.Integer(),
            sa.ForeignKey("product_variants.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "package_id",
            sa.Integer(),
            sa.ForeignKey("service_packages.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "buyer_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "seller_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("design_files_json", sa.Text(), nullable=False),
        sa.Column("status", design_status, nullable=False),
        sa.Column("seller_notes", sa.Text(), nullable=True),
        sa.Column("variant_auto_bound", sa.Boolean(), nullable=False),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    with op.batch_alter_table("design_approvals", schema=None) as batch_op:
        batch_op.create_index(
            "ix_design_approvals_conversation_id", ["conversation_id"])
        batch_op.create_index("ix_design_approvals_buyer_id", ["buyer_id"])
        batch_op.create_index("ix_design_approvals_seller_id", ["seller_id"])
        batch_op.create_index("ix_design_approvals_status", ["status"])
        batch_op.create_index(
            "ix_design_approvals_created_at", ["created_at"])

    with op.batch_alter_table("quotes", schema=None) as batch_op:
        batch_op.create_foreign_key(
            "fk_quotes_design_approval_id",
            "design_approvals",
            ["design_approval_id"],
            ["id"],
            ondelete="SET NULL",
        )

    op.create_table(
        "cart_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "buyer_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "product_variant_id",
            sa.Integer(),
            sa.ForeignKey("product_variants.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "quote_id",
            sa.Integer(),
            sa.ForeignKey("quotes.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "design_approval_id",
            sa.Integer(),
            sa.ForeignKey("design_approvals.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price_override", sa.Numeric(10, 2), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("quantity > 0", name="check_quantity_positive"),
    )
    with op.batch_alter_table("cart_items", schema=None) as batch_op:
        batch_op.create_index("ix_cart_items_buyer_id", ["buyer_id"])

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_type", order_type, nullable=False),
        sa.Column(
            "buyer_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "seller_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "product_id",
            sa.Integer(),
            sa.ForeignKey("products.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "product_variant_id",
            sa.Integer(),
            sa.ForeignKey("product_variants.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "service_id",
            sa.Integer(),
            sa.ForeignKey("services.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "service_package_id",
            sa.Integer(),
            sa.ForeignKey("service_packages.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "quote_id",
            sa.Integer(),
            sa.ForeignKey("quotes.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "design_approval_id",
            sa.Integer(),
            sa.ForeignKey("design_approvals.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("unit_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("total_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("shipping_address", sa.Text(), nullable=True),
        sa.Column("payment_method", sa.String(length=20), nullable=False),
        sa.Column("status", order_status, nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "quantity > 0", name="check_order_quantity_positive"),
    )
    with op.batch_alter_table("orders", schema=None) as batch_op:
        batch_op.create_index("ix_orders_buyer_id", ["buyer_id"])
        batch_op.create_index("ix_orders_seller_id", ["seller_id"])
        batch_op.create_index("ix_orders_quote_id", ["quote_id"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "actor_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("actor_role", sa.String(length=20), nullable=False),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("target_type", sa.String(length=50), nullable=True),
        sa.Column("target_id", sa.Integer(), nullable=True),
        sa.Column("ip", sa.String(length=45), nullable=True),
        sa.Column("user_agent", sa.String(length=500), nullable=True),
        sa.Column("payload_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    with op.batch_alter_table("audit_logs", schema=None) as batch_op:
        batch_op.create_index("ix_audit_logs_created_at", ["created_at"])


def downgrade():
    op.drop_table("audit_logs")
    op.drop_table("orders")
    op.drop_table("cart_items")
    with op.batch_alter_table("quotes", schema=None) as batch_op:
        batch_op.drop_constraint(
            "fk_quotes_design_approval_id", type_="foreignkey")
    op.drop_table("design_approvals")
    op.drop_table("quotes")
    op.drop_table("messages")
    op.drop_table("conversations")
    op.drop_table("service_packages")
    op.drop_table("product_variants")
    op.drop_table("services")
    op.drop_table("products")
    op.drop_table("users")
