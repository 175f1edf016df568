"""Initial schema - shops, barbers, services, appointments, walk-in queue.

Revision ID: 001
Revises:
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


def upgrade() -> None:
    # Shops
    op.create_table(
        "shops",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("opening_time", sa.String(5), nullable=False, server_default="09:00"),
        sa.Column("closing_time", sa.String(5), nullable=False, server_default="17:00"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # Barbers
    op.create_table(
        "barbers",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("shop_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("shops.id"), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("is_working_today", sa.Boolean, server_default=sa.true()),
        sa.Column("is_on_break", sa.Boolean, server_default=sa.false()),
        sa.Column("break_end_time", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_barbers_shop_id", "barbers", ["shop_id"])

    # Services
    op.create_table(
        "services",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("shop_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("shops.id"), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("duration_minutes", sa.Integer, nullable=False),
        sa.Column("price", sa.Float, server_default="0"),
        sa.CheckConstraint("duration_minutes > 0", name="ck_services_duration_positive"),
    )
    op.create_index("ix_services_shop_id", "services", ["shop_id"])

    # Appointments
    op.create_table(
        "appointments",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("shop_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("shops.id"), nullable=False),
        sa.Column("barber_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("barbers.id"), nullable=False),
        sa.Column("client_name", sa.String(100), nullable=False),
        sa.Column("client_phone", sa.String(20)),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(20), server_default="booked"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("end_time > start_time", name="ck_appointments_end_after_start"),
    )
    op.create_index("ix_appointments_barber_start", "appointments", ["barber_id", "start_time"])
    op.create_index("ix_appointments_shop_status", "appointments", ["shop_id", "status"])

    op.create_table(
        "appointment_services",
        sa.Column(
            "appointment_id", postgresql.UUID(as_uuid=True),
            sa.ForeignKey("appointments.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("service_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("services.id"), primary_key=True),
    )

    # Walk-in queue
    op.create_table(
        "queue_entries",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("shop_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("shops.id"), nullable=False),
        sa.Column("barber_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("barbers.id")),
        sa.Column("appointment_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("appointments.id")),
        sa.Column("client_name", sa.String(100), nullable=False),
        sa.Column("client_phone", sa.String(20)),
        sa.Column("status", sa.String(20), server_default="waiting"),
        sa.Column("queue_position", sa.Integer, nullable=False),
        sa.Column("notification_sent_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_queue_entries_shop_status", "queue_entries", ["shop_id", "status"])
    op.create_index(
        "uq_queue_entries_waiting_position", "queue_entries", ["barber_id", "queue_position"],
        unique=True, postgresql_where=sa.text("status = 'waiting'"),
    )
    op.create_index(
        "uq_queue_entries_one_in_progress", "queue_entries", ["barber_id"],
        unique=True, postgresql_where=sa.text("status = 'in_progress'"),
    )

    op.create_table(
        "queue_entry_services",
        sa.Column(
            "queue_entry_id", postgresql.UUID(as_uuid=True),
            sa.ForeignKey("queue_entries.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("service_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("services.id"), primary_key=True),
    )

    # Billing
    op.create_table(
        "billable_events",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("shop_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("shops.id"), nullable=False),
        sa.Column(
            "queue_entry_id", postgresql.UUID(as_uuid=True),
            sa.ForeignKey("queue_entries.id", ondelete="SET NULL"),
        ),
        sa.Column("is_billable", sa.Boolean, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_billable_events_shop_created", "billable_events", ["shop_id", "created_at"])


def downgrade() -> None:
    op.drop_table("billable_events")
    op.drop_table("queue_entry_services")
    op.drop_table("queue_entries")
    op.drop_table("appointment_services")
    op.drop_table("appointments")
    op.drop_table("services")
    op.drop_table("barbers")
    op.drop_table("shops")
