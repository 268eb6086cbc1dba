"""Initial schema: users, events, registrations, check-in records.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Users table (person reference; credentials live with the identity provider)
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("display_name", sa.String(255), nullable=False, server_default=sa.text("''")),
        sa.Column("role", sa.String(50), nullable=False, server_default=sa.text("'member'")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    # Events table
    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("tiers", sa.JSON(), nullable=False),
        sa.Column("custom_fields", sa.JSON(), nullable=False),
        sa.Column("invited_emails", sa.JSON(), nullable=False),
        sa.Column("visibility", sa.String(20), nullable=False, server_default=sa.text("'PUBLIC'")),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'UPCOMING'")),
        sa.Column("organizer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("capacity > 0", name="check_event_capacity_positive"),
        sa.CheckConstraint("end_time >= start_time", name="check_event_time_order"),
        sa.CheckConstraint("visibility IN ('PUBLIC', 'PRIVATE')", name="check_event_visibility"),
        sa.CheckConstraint(
            "status IN ('UPCOMING', 'IN_PROGRESS', 'COMPLETED', 'CANCELLED')",
            name="check_event_status",
        ),
    )
    op.create_index("ix_events_id", "events", ["id"])
    # Kiosk self check-in looks up "events starting today"; listings sort by start
    op.create_index("ix_events_start_time", "events", ["start_time"])

    # Registrations table
    op.create_table(
        "registrations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("tier", sa.String(100), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("waitlist_position", sa.Integer(), nullable=True),
        sa.Column("answers", sa.JSON(), nullable=False),
        sa.Column("seat_token", sa.String(64), nullable=True),
        sa.Column("ticket_code", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "status IN ('REGISTERED', 'WAITLISTED', 'CANCELLED', 'ATTENDED')",
            name="check_registration_status",
        ),
        sa.CheckConstraint(
            "(status = 'WAITLISTED') = (waitlist_position IS NOT NULL)",
            name="check_waitlist_position_only_when_waitlisted",
        ),
    )
    op.create_index("ix_registrations_id", "registrations", ["id"])
    op.create_index("ix_registrations_event_id", "registrations", ["event_id"])
    op.create_index("ix_registrations_user_id", "registrations", ["user_id"])
    # One active registration per person per event; cancelled rows stay as history
    op.create_index(
        "uq_active_registration",
        "registrations",
        ["event_id", "user_id"],
        unique=True,
        postgresql_where=sa.text("status <> 'CANCELLED'"),
    )
    # Covers the promoter's "lowest waitlist position for this event" query
    op.create_index("ix_registrations_waitlist", "registrations", ["event_id", "status", "waitlist_position"])

    # Check-in records: one per registration
    op.create_table(
        "checkin_records",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("registration_id", sa.Integer(), sa.ForeignKey("registrations.id"), nullable=False),
        sa.Column("checked_in_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("method", sa.String(20), nullable=False),
        sa.Column("idempotency_key", sa.String(64), nullable=False),
        sa.UniqueConstraint("registration_id", name="uq_checkin_registration"),
        sa.UniqueConstraint("idempotency_key", name="uq_checkin_idempotency_key"),
        sa.CheckConstraint("method IN ('SCANNED', 'SELF_SERVICE')", name="check_checkin_method"),
    )
    op.create_index("ix_checkin_records_id", "checkin_records", ["id"])


def downgrade() -> None:
    op.drop_table("checkin_records")
    op.drop_index("uq_active_registration", table_name="registrations")
    op.drop_table("registrations")
    op.drop_table("events")
    op.drop_table("users")
