"""Initial schema: events and reservations with capacity constraints and indexes.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

EVENT_STATUS = ("draft", "published", "canceled")
RESERVATION_STATUS = ("pending", "confirmed", "canceled", "checked_in", "no_show", "refunded")


def upgrade() -> None:
    event_status = postgresql.ENUM(*EVENT_STATUS, name="event_status", create_type=False)
    reservation_status = postgresql.ENUM(*RESERVATION_STATUS, name="reservation_status", create_type=False)
    event_status.create(op.get_bind(), checkfirst=True)
    reservation_status.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.String(2000), nullable=True),
        sa.Column("location", sa.String(255), nullable=False, server_default=""),
        sa.Column("category", sa.String(100), nullable=True),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("registered_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("price", sa.Numeric(10, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("status", event_status, nullable=False, server_default="draft"),
        sa.Column("organizer_id", sa.String(64), nullable=False),
        sa.Column("organizer_name", sa.String(255), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        # The capacity invariant lives in the database as well as in the
        # conditional UPDATE: registered_count can never leave [0, capacity].
        sa.CheckConstraint("registered_count >= 0", name="check_registered_non_negative"),
        sa.CheckConstraint("capacity > 0", name="check_capacity_positive"),
        sa.CheckConstraint("registered_count <= capacity", name="check_registered_lte_capacity"),
        sa.CheckConstraint("price >= 0", name="check_price_non_negative"),
        sa.CheckConstraint("end_date > start_date", name="check_end_after_start"),
    )
    op.create_index("ix_events_id", "events", ["id"])
    op.create_index("ix_events_organizer_id", "events", ["organizer_id"])
    # Public catalogue: WHERE status = 'published' AND start_date >= now() ORDER BY start_date
    op.create_index("ix_events_status_start", "events", ["status", "start_date"])

    op.create_table(
        "reservations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("reservation_number", sa.String(64), nullable=False),
        sa.Column("qr_code", sa.String(96), nullable=False),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("event_title", sa.String(255), nullable=False),
        sa.Column("event_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("event_location", sa.String(255), nullable=False, server_default=""),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("user_email", sa.String(255), nullable=False),
        sa.Column("user_name", sa.String(255), nullable=False),
        sa.Column("number_of_tickets", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("total_price", sa.Numeric(10, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("status", reservation_status, nullable=False, server_default="pending"),
        sa.Column("cancel_reason", sa.String(500), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("canceled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("checked_in_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("number_of_tickets > 0", name="check_reservation_tickets_positive"),
        sa.CheckConstraint("total_price >= 0", name="check_reservation_price_non_negative"),
    )
    op.create_index("ix_reservations_id", "reservations", ["id"])
    op.create_index("ix_reservations_reservation_number", "reservations", ["reservation_number"], unique=True)
    op.create_index("ix_reservations_qr_code", "reservations", ["qr_code"], unique=True)
    op.create_index("ix_reservations_event_id", "reservations", ["event_id"])
    op.create_index("ix_reservations_user_id", "reservations", ["user_id"])
    op.create_index("ix_reservations_event_status", "reservations", ["event_id", "status"])
    # One active (pending/confirmed) reservation per user and event. Partial,
    # so canceled or finished reservations never block a new one.
    op.create_index(
        "uq_reservations_active_user_event",
        "reservations",
        ["user_id", "event_id"],
        unique=True,
        postgresql_where=sa.text("status IN ('pending', 'confirmed')"),
    )


def downgrade() -> None:
    op.drop_table("reservations")
    op.drop_table("events")
    postgresql.ENUM(name="reservation_status").drop(op.get_bind(), checkfirst=True)
    postgresql.ENUM(name="event_status").drop(op.get_bind(), checkfirst=True)
