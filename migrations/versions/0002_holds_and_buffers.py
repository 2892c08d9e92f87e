"""slot holds, booking buffer time

Revision ID: 0002_holds_and_buffers
Revises: 0001_initial
Create Date: 2026-10-20
"""
from alembic import op
import sqlalchemy as sa

revision = "0002_holds_and_buffers"
down_revision = "0001_initial"
branch_labels = None
depends_on = None


def upgrade():
    op.add_column(
        "professionals",
        sa.Column("buffer_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
    )
    op.add_column(
        "bookings",
        sa.Column("buffer_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
    )

    op.create_table(
        "booking_holds",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "professional_id",
            sa.Integer(),
            sa.ForeignKey("professionals.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "service_id",
            sa.Integer(),
            sa.ForeignKey("services.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("client_id", sa.Integer(), nullable=False),
        sa.Column("scheduled_for", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("buffer_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_booking_holds_pro_expires",
        "booking_holds",
        ["professional_id", "expires_at"],
    )


def downgrade():
    op.drop_index("ix_booking_holds_pro_expires", table_name="booking_holds")
    op.drop_table("booking_holds")
    with op.batch_alter_table("bookings") as batch:
        batch.drop_column("buffer_minutes")
    with op.batch_alter_table("professionals") as batch:
        batch.drop_column("buffer_minutes")
