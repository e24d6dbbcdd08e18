"""Create bookings and availability_holds

Revision ID: 3f1c2a9d7b10
Revises:
Create Date: 2026-10-16 10:12:31.402117

"""

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op  # type: ignore[attr-defined]
from venue_booking.config import SCHEMA

# revision identifiers, used by Alembic.
revision = "3f1c2a9d7b10"
down_revision = None
branch_labels = None
depends_on = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "bookings",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("venue_id", sa.String(), nullable=False),
        sa.Column("customer_id", sa.String(), nullable=False),
        sa.Column("owner_id", sa.String(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("dates_timings", JSONType, nullable=False),
        sa.Column("pricing_snapshot", JSONType, nullable=False),
        sa.Column("event_type", sa.String(), nullable=True),
        sa.Column("guest_count", sa.Integer(), nullable=True),
        sa.Column("special_requirements", sa.Text(), nullable=True),
        sa.Column("customer_name", sa.String(), nullable=True),
        sa.Column("customer_email", sa.String(), nullable=True),
        sa.Column("payment_deadline", sa.DateTime(timezone=True), nullable=True),
        sa.Column("gateway_order_id", sa.String(), nullable=True),
        sa.Column("order_amount_minor", sa.BigInteger(), nullable=True),
        sa.Column("gateway_payment_id", sa.String(), nullable=True),
        sa.Column("payment_error_description", sa.Text(), nullable=True),
        sa.Column("payment_reminder_count", sa.Integer(), nullable=False),
        sa.Column("last_payment_reminder_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("cancelled_by", sa.String(), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("gateway_order_id"),
        schema=SCHEMA,
    )
    op.create_index("ix_bookings_venue_id", "bookings", ["venue_id"], schema=SCHEMA)
    op.create_index("ix_bookings_customer_id", "bookings", ["customer_id"], schema=SCHEMA)
    op.create_index("ix_bookings_owner_id", "bookings", ["owner_id"], schema=SCHEMA)
    op.create_index("ix_bookings_status", "bookings", ["status"], schema=SCHEMA)
    op.create_index(
        "ix_bookings_status_payment_deadline",
        "bookings",
        ["status", "payment_deadline"],
        schema=SCHEMA,
    )

    op.create_table(
        "availability_holds",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("venue_id", sa.String(), nullable=False),
        sa.Column("event_date", sa.Date(), nullable=False),
        sa.Column("booking_id", sa.String(length=36), nullable=False),
        sa.Column("kind", sa.String(length=16), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("venue_id", "event_date", name="uq_availability_holds_venue_date"),
        schema=SCHEMA,
    )
    op.create_index(
        "ix_availability_holds_booking_id", "availability_holds", ["booking_id"], schema=SCHEMA
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("ix_availability_holds_booking_id", "availability_holds", schema=SCHEMA)
    op.drop_table("availability_holds", schema=SCHEMA)
    op.drop_index("ix_bookings_status_payment_deadline", "bookings", schema=SCHEMA)
    op.drop_index("ix_bookings_status", "bookings", schema=SCHEMA)
    op.drop_index("ix_bookings_owner_id", "bookings", schema=SCHEMA)
    op.drop_index("ix_bookings_customer_id", "bookings", schema=SCHEMA)
    op.drop_index("ix_bookings_venue_id", "bookings", schema=SCHEMA)
    op.drop_table("bookings", schema=SCHEMA)
