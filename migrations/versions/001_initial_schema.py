"""Initial schema: users, vehicles, orders and their child tables, wallet, sequences.

Revision ID: 001
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None

# Enum columns are stored as their string values (non-native enums).
ENUM = sa.String(32)


def upgrade() -> None:
    # ── users ─────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("user_type", ENUM, nullable=False, server_default="client"),
        sa.Column("language", sa.String(2), server_default="fr"),
        sa.Column("location_lat", sa.Float, nullable=True),
        sa.Column("location_lon", sa.Float, nullable=True),
        sa.Column("location_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("driver_is_verified", sa.Boolean, server_default=sa.false()),
        sa.Column("driver_rating", sa.Float, server_default="5.0"),
        sa.Column("total_trips", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_km", sa.Float, nullable=False, server_default="0"),
        sa.Column("wallet_balance", sa.Float, nullable=False, server_default="0"),
        sa.Column("wallet_currency", sa.String(3), server_default="XOF"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index("idx_users_phone", "users", ["phone"])
    op.create_index("idx_users_type", "users", ["user_type"])

    # ── vehicles ──────────────────────────────────────────────────────
    op.create_table(
        "vehicles",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("driver_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("category", ENUM, nullable=False),
        sa.Column("vehicle_type", sa.String(40), nullable=False),
        sa.Column("brand", sa.String(80), nullable=False),
        sa.Column("plate_number", sa.String(20), nullable=False),
        sa.Column("price_per_km", sa.Float, nullable=True),
        sa.Column("price_per_hour", sa.Float, nullable=True),
        sa.Column("price_per_day", sa.Float, nullable=True),
        sa.Column("minimum_price", sa.Float, nullable=True),
        sa.Column("is_available", sa.Boolean, server_default=sa.true()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index("idx_vehicles_driver", "vehicles", ["driver_id"])
    op.create_index("idx_vehicles_available", "vehicles", ["is_available"])

    # ── orders ────────────────────────────────────────────────────────
    op.create_table(
        "orders",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("order_number", sa.String(20), unique=True, nullable=False),
        sa.Column("client_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("driver_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("vehicle_id", sa.Integer, sa.ForeignKey("vehicles.id"), nullable=False),
        sa.Column("status", ENUM, nullable=False, server_default="pending"),
        sa.Column("service_type", ENUM, nullable=False),
        sa.Column("pickup", sa.JSON, nullable=False),
        sa.Column("dropoff", sa.JSON, nullable=True),
        sa.Column("cargo", sa.JSON, nullable=True),
        sa.Column("loading_confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("unloading_confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("client_validated", sa.Boolean, server_default=sa.false()),
        sa.Column("estimated_km", sa.Float, nullable=True),
        sa.Column("actual_km", sa.Float, nullable=True),
        sa.Column("estimated_minutes", sa.Float, nullable=True),
        sa.Column("actual_minutes", sa.Float, nullable=True),
        sa.Column("rental_hours", sa.Float, nullable=True),
        sa.Column("rental_days", sa.Float, nullable=True),
        sa.Column("payment_method", ENUM, nullable=False),
        sa.Column("payment_provider", sa.String(20), nullable=True),
        sa.Column("payment_amount", sa.Float, nullable=False),
        sa.Column("payment_currency", sa.String(3), server_default="XOF"),
        sa.Column("payment_platform_fee", sa.Float, nullable=False),
        sa.Column("payment_driver_share", sa.Float, nullable=False),
        sa.Column("payment_status", ENUM, nullable=False, server_default="pending"),
        sa.Column("payment_proof_url", sa.String(500), nullable=True),
        sa.Column("payment_proof_transaction_id", sa.String(100), nullable=True),
        sa.Column("payment_proof_submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payment_confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "payment_confirmed_by", sa.Integer, sa.ForeignKey("users.id"), nullable=True
        ),
        sa.Column("payment_paid_out_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payment_refunded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rating_client_to_driver", sa.Float, nullable=True),
        sa.Column("rating_driver_to_client", sa.Float, nullable=True),
        sa.Column("rating_client_comment", sa.Text, nullable=True),
        sa.Column("rating_driver_comment", sa.Text, nullable=True),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancel_reason", sa.String(255), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index("idx_orders_client_status", "orders", ["client_id", "status"])
    op.create_index("idx_orders_driver_status", "orders", ["driver_id", "status"])
    op.create_index("idx_orders_payment_status", "orders", ["payment_status"])
    op.create_index("idx_orders_created", "orders", ["created_at"])

    # ── order child tables ────────────────────────────────────────────
    op.create_table(
        "order_messages",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("order_id", sa.Integer, sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("sender_id", sa.Integer, nullable=True),
        sa.Column("sender_type", ENUM, nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("message_type", ENUM, nullable=False, server_default="text"),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_order_messages_order", "order_messages", ["order_id"])

    op.create_table(
        "order_tracking_points",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("order_id", sa.Integer, sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("lat", sa.Float, nullable=False),
        sa.Column("lon", sa.Float, nullable=False),
        sa.Column("speed", sa.Float, nullable=True),
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_tracking_order", "order_tracking_points", ["order_id"])

    op.create_table(
        "order_photos",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("order_id", sa.Integer, sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("kind", ENUM, nullable=False),
        sa.Column("url", sa.String(500), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index("idx_order_photos_order", "order_photos", ["order_id"])

    # ── wallet_transactions ───────────────────────────────────────────
    op.create_table(
        "wallet_transactions",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("tx_type", ENUM, nullable=False),
        sa.Column("amount", sa.Float, nullable=False),
        sa.Column("currency", sa.String(3), server_default="XOF"),
        sa.Column("provider", sa.String(20), nullable=True),
        sa.Column("proof_url", sa.String(500), nullable=True),
        sa.Column("provider_transaction_id", sa.String(100), nullable=True),
        sa.Column("status", ENUM, nullable=False, server_default="pending"),
        sa.Column("order_id", sa.Integer, sa.ForeignKey("orders.id"), nullable=True),
        sa.Column("confirmed_by", sa.Integer, sa.ForeignKey("users.id"), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("note", sa.String(255), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "idx_wallet_tx_user_created", "wallet_transactions", ["user_id", "created_at"]
    )
    op.create_index("idx_wallet_tx_status", "wallet_transactions", ["status"])

    # ── sequences ─────────────────────────────────────────────────────
    sequences = op.create_table(
        "sequences",
        sa.Column("name", sa.String(40), primary_key=True),
        sa.Column("value", sa.Integer, nullable=False, server_default="0"),
    )
    op.bulk_insert(sequences, [{"name": "order_number", "value": 0}])


def downgrade() -> None:
    op.drop_table("sequences")
    op.drop_table("wallet_transactions")
    op.drop_table("order_photos")
    op.drop_table("order_tracking_points")
    op.drop_table("order_messages")
    op.drop_table("orders")
    op.drop_table("vehicles")
    op.drop_table("users")
