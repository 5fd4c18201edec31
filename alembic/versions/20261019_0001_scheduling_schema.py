"""Scheduling schema

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 10:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "20261019_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


session_type_enum = sa.Enum("ONE_ON_ONE", "GROUP", name="session_type_enum", native_enum=False)
session_status_enum = sa.Enum(
    "SCHEDULED",
    "COMPLETED",
    "CANCELED",
    name="session_status_enum",
    native_enum=False,
)


def _id_col() -> sa.Column:
    return sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False)


def _created_col() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), nullable=False)


def _updated_col() -> sa.Column:
    return sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False)


def upgrade() -> None:
    op.create_table(
        "availability_slots",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("provider_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_booked", sa.Boolean(), nullable=False),
        sa.Column("is_paid", sa.Boolean(), nullable=False),
        sa.Column("price_per_session", sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column("description", sa.String(length=500), nullable=True),
        sa.CheckConstraint("start_at < end_at", name="ck_availability_slots_window_order"),
        sa.CheckConstraint(
            "price_per_session IS NULL OR price_per_session >= 0",
            name="ck_availability_slots_price_non_negative",
        ),
    )
    op.create_index("ix_availability_slots_provider_id", "availability_slots", ["provider_id"], unique=False)
    op.create_index("ix_availability_slots_start_at", "availability_slots", ["start_at"], unique=False)
    op.create_index("ix_availability_slots_is_booked", "availability_slots", ["is_booked"], unique=False)

    op.create_table(
        "scheduled_sessions",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("provider_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("session_type", session_type_enum, nullable=False),
        sa.Column("title", sa.String(length=255), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", session_status_enum, nullable=False),
        sa.Column("is_paid", sa.Boolean(), nullable=False),
        sa.Column("price", sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column("max_attendees", sa.Integer(), nullable=True),
        sa.Column("external_meeting_id", sa.String(length=255), nullable=True),
        sa.Column("join_url", sa.Text(), nullable=True),
        sa.Column("host_url", sa.Text(), nullable=True),
        sa.Column("access_code", sa.String(length=50), nullable=True),
        sa.CheckConstraint("start_at < end_at", name="ck_scheduled_sessions_window_order"),
        sa.CheckConstraint(
            "max_attendees IS NULL OR max_attendees >= 1",
            name="ck_scheduled_sessions_capacity_positive",
        ),
    )
    op.create_index("ix_scheduled_sessions_provider_id", "scheduled_sessions", ["provider_id"], unique=False)
    op.create_index("ix_scheduled_sessions_session_type", "scheduled_sessions", ["session_type"], unique=False)
    op.create_index("ix_scheduled_sessions_start_at", "scheduled_sessions", ["start_at"], unique=False)
    op.create_index("ix_scheduled_sessions_status", "scheduled_sessions", ["status"], unique=False)

    op.create_table(
        "session_attendees",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("session_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("student_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("booking_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("transaction_id", sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(
            ["session_id"],
            ["scheduled_sessions.id"],
            name="fk_session_attendees_session_id_scheduled_sessions",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint(
            "session_id",
            "student_id",
            name="uq_session_attendees_session_id_student_id",
        ),
    )
    op.create_index("ix_session_attendees_session_id", "session_attendees", ["session_id"], unique=False)
    op.create_index("ix_session_attendees_student_id", "session_attendees", ["student_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_session_attendees_student_id", table_name="session_attendees")
    op.drop_index("ix_session_attendees_session_id", table_name="session_attendees")
    op.drop_table("session_attendees")

    op.drop_index("ix_scheduled_sessions_status", table_name="scheduled_sessions")
    op.drop_index("ix_scheduled_sessions_start_at", table_name="scheduled_sessions")
    op.drop_index("ix_scheduled_sessions_session_type", table_name="scheduled_sessions")
    op.drop_index("ix_scheduled_sessions_provider_id", table_name="scheduled_sessions")
    op.drop_table("scheduled_sessions")

    op.drop_index("ix_availability_slots_is_booked", table_name="availability_slots")
    op.drop_index("ix_availability_slots_start_at", table_name="availability_slots")
    op.drop_index("ix_availability_slots_provider_id", table_name="availability_slots")
    op.drop_table("availability_slots")
