"""Initial schema: users, events, event_participants, payments.

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


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # Users are provisioned by the Telegram login flow; read-only here
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("telegram_id", sa.BigInteger(), nullable=False),
        sa.Column("display_name", sa.String(255), nullable=False),
        sa.Column("username", sa.String(100), nullable=True),
        sa.Column("level", sa.String(20), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="player"),
        *_timestamps(),
        sa.CheckConstraint("role IN ('player', 'assistant', 'owner')", name="user_role"),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_telegram_id", "users", ["telegram_id"], unique=True)

    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("event_type", sa.String(20), nullable=False, server_default="training"),
        sa.Column("event_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False, server_default=sa.text("90")),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("level", sa.String(20), nullable=True),
        sa.Column("description", sa.String(1000), nullable=True),
        sa.Column("max_seats", sa.Integer(), nullable=False),
        sa.Column("current_seats", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("price", sa.Numeric(10, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(20), nullable=False, server_default="scheduled"),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        # Overbooking is impossible at the DB level even if application code is wrong
        sa.CheckConstraint("max_seats > 0", name="check_max_seats_positive"),
        sa.CheckConstraint("current_seats >= 0", name="check_current_seats_non_negative"),
        sa.CheckConstraint("current_seats <= max_seats", name="check_current_lte_max"),
        sa.CheckConstraint(
            "event_type IN ('training', 'tournament', 'stretching', 'other')", name="event_type"
        ),
        sa.CheckConstraint("status IN ('scheduled', 'canceled', 'completed')", name="event_status"),
    )
    op.create_index("ix_events_id", "events", ["id"])
    op.create_index("ix_events_event_date", "events", ["event_date"])
    # Listing query: scheduled events ordered by date
    op.create_index("ix_events_status_date", "events", ["status", "event_date"])

    op.create_table(
        "event_participants",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("queue_position", sa.Integer(), nullable=True),
        sa.Column("registered_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("canceled_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        # One row per (event, user); re-registration restores it
        sa.UniqueConstraint("event_id", "user_id", name="uq_event_participant"),
        sa.CheckConstraint(
            "(status = 'waiting') = (queue_position IS NOT NULL)",
            name="check_queue_position_iff_waiting",
        ),
        sa.CheckConstraint("status IN ('confirmed', 'waiting', 'canceled')", name="participant_status"),
    )
    op.create_index("ix_event_participants_id", "event_participants", ["id"])
    op.create_index("ix_event_participants_event_id", "event_participants", ["event_id"])
    op.create_index("ix_event_participants_user_id", "event_participants", ["user_id"])
    # Two waiting players can never share a queue position
    op.create_index(
        "uq_event_queue_position",
        "event_participants",
        ["event_id", "queue_position"],
        unique=True,
        postgresql_where=sa.text("status = 'waiting'"),
        sqlite_where=sa.text("status = 'waiting'"),
    )

    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "participant_id",
            sa.Integer(),
            sa.ForeignKey("event_participants.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="RUB"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("payment_deadline", sa.DateTime(timezone=True), nullable=False),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("external_payment_id", sa.String(64), nullable=True),
        sa.Column("payment_url", sa.String(1024), nullable=True),
        sa.Column("payment_provider", sa.String(20), nullable=True),
        sa.Column("refund_required", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        *_timestamps(),
        sa.UniqueConstraint("participant_id", name="uq_payments_participant_id"),
        sa.UniqueConstraint("external_payment_id", name="uq_payments_external_payment_id"),
        sa.CheckConstraint("amount > 0", name="check_payment_amount_positive"),
        sa.CheckConstraint("status IN ('pending', 'paid', 'canceled', 'expired')", name="payment_status"),
    )
    op.create_index("ix_payments_id", "payments", ["id"])
    op.create_index("ix_payments_event_id", "payments", ["event_id"])
    op.create_index("ix_payments_user_id", "payments", ["user_id"])
    # Sweeper scan: WHERE status = 'pending' AND payment_deadline < now
    op.create_index("ix_payments_status_deadline", "payments", ["status", "payment_deadline"])


def downgrade() -> None:
    op.drop_table("payments")
    op.drop_table("event_participants")
    op.drop_table("events")
    op.drop_table("users")
