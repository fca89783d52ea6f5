"""ride_dispatch_schema

Revision ID: 4b7e2c91d0a3
Revises: 
Create Date: 2026-10-19 09:12:31.518204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '4b7e2c91d0a3'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create tables: user, driver, ride."""
    op.create_table(
        "user",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "driver",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("vehicle_model", sa.String(), nullable=True),
        sa.Column("license_plate", sa.String(), nullable=True),
        sa.Column("availability", sa.String(), nullable=False, server_default="Offline"),
        sa.Column("current_ride_id", sa.String(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_driver_availability", "driver", ["availability"])
    op.create_table(
        "ride",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("driver_id", sa.String(), nullable=True),
        sa.Column("pickup_address", sa.String(), nullable=False),
        sa.Column("pickup_lat", sa.Float(), nullable=True),
        sa.Column("pickup_lng", sa.Float(), nullable=True),
        sa.Column("dropoff_address", sa.String(), nullable=False),
        sa.Column("dropoff_lat", sa.Float(), nullable=True),
        sa.Column("dropoff_lng", sa.Float(), nullable=True),
        sa.Column("ride_type", sa.String(), nullable=False, server_default="standard"),
        sa.Column("distance_km", sa.Float(), nullable=False),
        sa.Column("estimated_fare", sa.Float(), nullable=False),
        sa.Column("passengers", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("originating_service", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="PENDING_ASSIGNMENT"),
        sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("arrived_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["user.id"]),
        sa.ForeignKeyConstraint(["driver_id"], ["driver.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ride_user_id", "ride", ["user_id"])
    op.create_index("ix_ride_driver_id", "ride", ["driver_id"])
    op.create_index("ix_ride_status", "ride", ["status"])
    op.create_index("ix_ride_requested_at", "ride", ["requested_at"])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_index("ix_ride_requested_at", table_name="ride")
    op.drop_index("ix_ride_status", table_name="ride")
    op.drop_index("ix_ride_driver_id", table_name="ride")
    op.drop_index("ix_ride_user_id", table_name="ride")
    op.drop_table("ride")
    op.drop_index("ix_driver_availability", table_name="driver")
    op.drop_table("driver")
    op.drop_table("user")
