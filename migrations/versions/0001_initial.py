"""initial schema: professionals, services, calendar blocks, bookings

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

ACTIVE_SESSION = sa.text("started_at IS NOT NULL AND finished_at IS NULL")


def upgrade():
    op.create_table(
        "professionals",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, unique=True),
        sa.Column("display_name", sa.Text()),
        sa.Column("time_zone", sa.Text(), nullable=False, server_default=sa.text("'UTC'")),
        sa.Column("working_hours", sa.Text(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column("is_active", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "services",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "professional_id",
            sa.Integer(),
            sa.ForeignKey("professionals.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("duration_min", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Integer(), nullable=False, server_default=sa.text("1")),
    )

    op.create_table(
        "calendar_blocks",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "professional_id",
            sa.Integer(),
            sa.ForeignKey("professionals.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("note", sa.Text()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("ends_at > starts_at", name="ck_calendar_blocks_range"),
    )
    op.create_index(
        "ix_calendar_blocks_pro_range",
        "calendar_blocks",
        ["professional_id", "starts_at", "ends_at"],
    )

    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "professional_id",
            sa.Integer(),
            sa.ForeignKey("professionals.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("client_id", sa.Integer(), nullable=False),
        sa.Column("service_id", sa.Integer(), sa.ForeignKey("services.id"), nullable=False),
        sa.Column("scheduled_for", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_minutes_snapshot", sa.Integer(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False, server_default=sa.text("'PENDING'")),
        sa.Column("started_at", sa.DateTime(timezone=True)),
        sa.Column("finished_at", sa.DateTime(timezone=True)),
        sa.Column("cancel_reason", sa.Text()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("duration_minutes_snapshot > 0", name="ck_bookings_duration"),
    )
    op.create_index("ix_bookings_pro_scheduled", "bookings", ["professional_id", "scheduled_for"])
    op.create_index(
        "uq_bookings_one_active_per_pro",
        "bookings",
        ["professional_id"],
        unique=True,
        sqlite_where=ACTIVE_SESSION,
        postgresql_where=ACTIVE_SESSION,
    )


def downgrade():
    op.drop_index("uq_bookings_one_active_per_pro", table_name="bookings")
    op.drop_index("ix_bookings_pro_scheduled", table_name="bookings")
    op.drop_table("bookings")
    op.drop_index("ix_calendar_blocks_pro_range", table_name="calendar_blocks")
    op.drop_table("calendar_blocks")
    op.drop_table("services")
    op.drop_table("professionals")
