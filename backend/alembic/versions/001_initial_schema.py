# backend/alembic/versions/001_initial_schema.py
"""Users, charging stations, blocked slots and bookings

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the marketplace tables."""
    bind = op.get_bind()
    is_postgres = bind is not None and bind.dialect.name == "postgresql"

    print("Creating users table...")
    op.create_table(
        "users",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("full_name", sa.String(100), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="ev_owner"),
        sa.Column("phone", sa.String(20), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("role IN ('ev_owner', 'station_owner')", name="ck_users_role"),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    print("Creating charging_stations table...")
    op.create_table(
        "charging_stations",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("owner_id", sa.String(26), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("address", sa.String(500), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("total_slots", sa.Integer(), nullable=False),
        sa.Column("available_slots", sa.Integer(), nullable=False),
        sa.Column("charging_rate", sa.Numeric(10, 2), nullable=False),
        sa.Column("open_time", sa.String(5), nullable=False, server_default="06:00"),
        sa.Column("close_time", sa.String(5), nullable=False, server_default="22:00"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("amenities", sa.JSON(), nullable=False),
        sa.Column("images", sa.JSON(), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["owner_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("total_slots >= 1", name="ck_stations_total_slots_positive"),
        sa.CheckConstraint(
            "available_slots >= 0 AND available_slots <= total_slots",
            name="ck_stations_available_slots_bounds",
        ),
        sa.CheckConstraint("charging_rate >= 0", name="ck_stations_rate_non_negative"),
        sa.CheckConstraint("latitude >= -90 AND latitude <= 90", name="ck_stations_latitude"),
        sa.CheckConstraint(
            "longitude >= -180 AND longitude <= 180", name="ck_stations_longitude"
        ),
    )
    op.create_index("ix_charging_stations_id", "charging_stations", ["id"])
    op.create_index("ix_charging_stations_owner_id", "charging_stations", ["owner_id"])
    op.create_index("ix_charging_stations_is_active", "charging_stations", ["is_active"])

    print("Creating station_blocked_slots table...")
    op.create_table(
        "station_blocked_slots",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("station_id", sa.String(26), nullable=False),
        sa.Column("slot_number", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("reason", sa.String(255), nullable=False, server_default="Maintenance"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["station_id"], ["charging_stations.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("slot_number >= 1", name="ck_blocked_slots_slot_positive"),
        sa.CheckConstraint("start_time < end_time", name="ck_blocked_slots_time_order"),
        comment="Owner-declared maintenance windows per slot",
    )
    op.create_index("ix_station_blocked_slots_id", "station_blocked_slots", ["id"])
    op.create_index(
        "ix_blocked_slots_station_slot", "station_blocked_slots", ["station_id", "slot_number"]
    )

    print("Creating bookings table...")
    op.create_table(
        "bookings",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("user_id", sa.String(26), nullable=False),
        sa.Column("station_id", sa.String(26), nullable=False),
        sa.Column("slot_number", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration", sa.Float(), nullable=False),
        sa.Column("total_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="booked"),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column(
            "payment_intent_id",
            sa.String(255),
            nullable=False,
            server_default="",
            comment="Current Stripe payment intent",
        ),
        sa.Column("vehicle_make", sa.String(100), nullable=True),
        sa.Column("vehicle_model", sa.String(100), nullable=True),
        sa.Column("vehicle_license_plate", sa.String(32), nullable=True),
        sa.Column("special_requests", sa.Text(), nullable=True),
        sa.Column("rating", sa.Integer(), nullable=True),
        sa.Column("review", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["station_id"], ["charging_stations.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "status IN ('booked', 'in_progress', 'completed', 'cancelled')",
            name="ck_bookings_status",
        ),
        sa.CheckConstraint(
            "payment_status IN ('pending', 'completed', 'failed', 'refunded')",
            name="ck_bookings_payment_status",
        ),
        sa.CheckConstraint("slot_number >= 1", name="check_slot_number_positive"),
        sa.CheckConstraint("duration >= 0.5", name="check_duration_minimum"),
        sa.CheckConstraint("total_amount >= 0", name="check_amount_non_negative"),
        sa.CheckConstraint("start_time < end_time", name="check_time_order"),
        sa.CheckConstraint(
            "rating IS NULL OR (rating >= 1 AND rating <= 5)", name="check_rating_range"
        ),
    )
    op.create_index("ix_bookings_id", "bookings", ["id"])
    op.create_index("ix_bookings_user_id", "bookings", ["user_id"])
    op.create_index("ix_bookings_status", "bookings", ["status"])
    op.create_index("ix_bookings_payment_status", "bookings", ["payment_status"])
    op.create_index(
        "ix_bookings_station_slot_window", "bookings", ["station_id", "slot_number", "start_time"]
    )
    op.create_index("ix_bookings_user_created", "bookings", ["user_id", "created_at"])

    if is_postgres:
        print("Adding per-slot overlap exclusion constraint...")
        op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")
        op.execute(
            """
            ALTER TABLE bookings
              ADD CONSTRAINT bookings_no_overlap_per_slot
              EXCLUDE USING gist (
                station_id WITH =,
                slot_number WITH =,
                tstzrange(start_time, end_time, '[)') WITH &&
              )
              WHERE (status IN ('booked', 'in_progress'))
            """
        )

    print("Initial schema created.")


def downgrade() -> None:
    """Drop the marketplace tables."""
    bind = op.get_bind()
    if bind is not None and bind.dialect.name == "postgresql":
        op.execute("ALTER TABLE bookings DROP CONSTRAINT IF EXISTS bookings_no_overlap_per_slot")

    op.drop_index("ix_bookings_user_created", table_name="bookings")
    op.drop_index("ix_bookings_station_slot_window", table_name="bookings")
    op.drop_index("ix_bookings_payment_status", table_name="bookings")
    op.drop_index("ix_bookings_status", table_name="bookings")
    op.drop_index("ix_bookings_user_id", table_name="bookings")
    op.drop_index("ix_bookings_id", table_name="bookings")
    op.drop_table("bookings")

    op.drop_index("ix_blocked_slots_station_slot", table_name="station_blocked_slots")
    op.drop_index("ix_station_blocked_slots_id", table_name="station_blocked_slots")
    op.drop_table("station_blocked_slots")

    op.drop_index("ix_charging_stations_is_active", table_name="charging_stations")
    op.drop_index("ix_charging_stations_owner_id", table_name="charging_stations")
    op.drop_index("ix_charging_stations_id", table_name="charging_stations")
    op.drop_table("charging_stations")

    op.drop_index("ix_users_email", table_name="users")
    op.drop_index("ix_users_id", table_name="users")
    op.drop_table("users")
