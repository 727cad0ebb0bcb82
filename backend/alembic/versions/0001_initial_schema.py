"""Initial rental schema.

Revision ID: 0001
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

JSON_TYPE = postgresql.JSONB(astext_type=sa.Text()).with_variant(sa.JSON(), "sqlite")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    ]


def _fk(target: str, ondelete: str, **kwargs) -> sa.Column:
    name = kwargs.pop("name")
    return sa.Column(
        name,
        sa.Uuid(as_uuid=True),
        sa.ForeignKey(target, ondelete=ondelete),
        **kwargs,
    )


def upgrade() -> None:
    op.create_table(
        "branches",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("code", sa.String(length=32), nullable=False, unique=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("city", sa.String(length=120)),
        sa.Column("phone", sa.String(length=32)),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String(length=320), nullable=False, unique=True),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("phone_number", sa.String(length=32)),
        sa.Column("roles", JSON_TYPE, nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "staff_profiles",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        _fk("users.id", "CASCADE", name="user_id", nullable=False, unique=True),
        sa.Column("branch_ids", JSON_TYPE, nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "vehicle_models",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("make", sa.String(length=120), nullable=False),
        sa.Column("model", sa.String(length=120), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("vehicle_class", sa.String(length=32), nullable=False),
        sa.Column("seats", sa.Integer()),
        *_timestamps(),
    )

    op.create_table(
        "vehicles",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("plate_number", sa.String(length=32), nullable=False, unique=True),
        _fk("vehicle_models.id", "RESTRICT", name="vehicle_model_id", nullable=False),
        _fk("branches.id", "RESTRICT", name="branch_id", nullable=False),
        sa.Column("odometer_km", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("color", sa.String(length=40)),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("availability_state", sa.String(length=32), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_vehicles_vehicle_model_id", "vehicles", ["vehicle_model_id"])
    op.create_index("ix_vehicles_branch_id", "vehicles", ["branch_id"])
    op.create_index("ix_vehicles_branch_status", "vehicles", ["branch_id", "status"])

    op.create_table(
        "rate_plans",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(length=255)),
        _fk("branches.id", "CASCADE", name="branch_id"),
        sa.Column("vehicle_class", sa.String(length=32), nullable=False),
        _fk("vehicle_models.id", "CASCADE", name="vehicle_model_id"),
        _fk("vehicles.id", "CASCADE", name="vehicle_id"),
        sa.Column("currency", sa.String(length=32), nullable=False),
        sa.Column("daily_rate", sa.Numeric(12, 2), nullable=False),
        sa.Column("weekly_rate", sa.Numeric(12, 2)),
        sa.Column("monthly_rate", sa.Numeric(12, 2)),
        sa.Column("taxes", JSON_TYPE, nullable=False),
        sa.Column("fees", JSON_TYPE, nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("valid_from", sa.DateTime(timezone=True), nullable=False),
        sa.Column("valid_to", sa.DateTime(timezone=True)),
        sa.Column("notes", sa.String(length=1024)),
        *_timestamps(),
        sa.CheckConstraint(
            "NOT (vehicle_id IS NOT NULL AND vehicle_model_id IS NOT NULL)",
            name="ck_rate_plans_single_target",
        ),
    )
    op.create_index(
        "ix_rate_plans_lookup",
        "rate_plans",
        ["active", "currency", "branch_id", "vehicle_class", "valid_from"],
    )

    op.create_table(
        "promo_codes",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("code", sa.String(length=64), nullable=False, unique=True),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("value", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(length=32)),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("valid_from", sa.DateTime(timezone=True), nullable=False),
        sa.Column("valid_to", sa.DateTime(timezone=True)),
        sa.Column("usage_limit", sa.Integer()),
        sa.Column("used_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("constraints", JSON_TYPE, nullable=False),
        sa.Column("notes", sa.String(length=1024)),
        *_timestamps(),
    )

    op.create_table(
        "reservations",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("code", sa.String(length=64), nullable=False, unique=True),
        _fk("users.id", "RESTRICT", name="user_id", nullable=False),
        _fk("users.id", "RESTRICT", name="created_by", nullable=False),
        sa.Column("created_channel", sa.String(length=32), nullable=False),
        _fk("vehicle_models.id", "RESTRICT", name="vehicle_model_id", nullable=False),
        _fk("vehicles.id", "SET NULL", name="vehicle_id"),
        _fk("branches.id", "RESTRICT", name="pickup_branch_id", nullable=False),
        sa.Column("pickup_at", sa.DateTime(timezone=True), nullable=False),
        _fk("branches.id", "RESTRICT", name="dropoff_branch_id", nullable=False),
        sa.Column("dropoff_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("pricing", JSON_TYPE, nullable=False),
        sa.Column("payment_status", sa.String(length=32), nullable=False),
        sa.Column("paid_total", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("outstanding", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("last_payment_at", sa.DateTime(timezone=True)),
        sa.Column("driver_snapshot", JSON_TYPE),
        sa.Column("notes", sa.Text(), nullable=False, server_default=""),
        *_timestamps(),
    )
    op.create_index("ix_reservations_user_id", "reservations", ["user_id"])
    op.create_index("ix_reservations_created_by", "reservations", ["created_by"])
    op.create_index(
        "ix_reservations_pickup_branch_id", "reservations", ["pickup_branch_id"]
    )
    op.create_index("ix_reservations_status", "reservations", ["status"])
    op.create_index(
        "ix_reservations_vehicle_window",
        "reservations",
        ["vehicle_id", "status", "pickup_at", "dropoff_at"],
        postgresql_where=sa.text("vehicle_id IS NOT NULL"),
        sqlite_where=sa.text("vehicle_id IS NOT NULL"),
    )
    op.create_index(
        "ix_reservations_model_window",
        "reservations",
        ["vehicle_model_id", "status", "pickup_at", "dropoff_at"],
    )

    op.create_table(
        "reservation_code_sequences",
        sa.Column("prefix", sa.String(length=32), primary_key=True),
        sa.Column("year", sa.Integer(), primary_key=True),
        sa.Column("last_value", sa.Integer(), nullable=False, server_default="0"),
    )

    op.create_table(
        "reservation_payments",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        _fk("reservations.id", "CASCADE", name="reservation_id", nullable=False),
        sa.Column("payment_id", sa.String(length=128), nullable=False),
        sa.Column("kind", sa.String(length=32), nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("currency", sa.String(length=32), nullable=False),
        sa.Column("provider", sa.String(length=32)),
        sa.Column("method", sa.String(length=32)),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint(
            "reservation_id", "payment_id", name="uq_reservation_payments_payment"
        ),
    )
    op.create_index(
        "ix_reservation_payments_reservation_id",
        "reservation_payments",
        ["reservation_id"],
    )

    op.create_table(
        "service_orders",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        _fk("vehicles.id", "CASCADE", name="vehicle_id", nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("odometer_km", sa.Integer()),
        sa.Column("cost", sa.Numeric(12, 2)),
        sa.Column("notes", sa.String(length=1024)),
        _fk("users.id", "SET NULL", name="created_by"),
        *_timestamps(),
    )
    op.create_index(
        "ix_service_orders_vehicle_status", "service_orders", ["vehicle_id", "status"]
    )

    op.create_table(
        "vehicle_incidents",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        _fk("vehicles.id", "CASCADE", name="vehicle_id", nullable=False),
        _fk("reservations.id", "SET NULL", name="reservation_id"),
        _fk("branches.id", "SET NULL", name="branch_id"),
        _fk("users.id", "CASCADE", name="reported_by", nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("severity", sa.String(length=32), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("description", sa.String(length=2048)),
        sa.Column("estimated_cost", sa.Numeric(12, 2)),
        sa.Column("final_cost", sa.Numeric(12, 2)),
        *_timestamps(),
    )
    op.create_index("ix_vehicle_incidents_vehicle_id", "vehicle_incidents", ["vehicle_id"])
    op.create_index(
        "ix_vehicle_incidents_reservation_id", "vehicle_incidents", ["reservation_id"]
    )
    op.create_index("ix_vehicle_incidents_branch_id", "vehicle_incidents", ["branch_id"])

    op.create_table(
        "vehicle_locks",
        sa.Column(
            "vehicle_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("vehicles.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("token", sa.String(length=64), nullable=False),
        sa.Column("acquired_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("vehicle_locks")

    op.drop_index("ix_vehicle_incidents_branch_id", table_name="vehicle_incidents")
    op.drop_index("ix_vehicle_incidents_reservation_id", table_name="vehicle_incidents")
    op.drop_index("ix_vehicle_incidents_vehicle_id", table_name="vehicle_incidents")
    op.drop_table("vehicle_incidents")

    op.drop_index("ix_service_orders_vehicle_status", table_name="service_orders")
    op.drop_table("service_orders")

    op.drop_index(
        "ix_reservation_payments_reservation_id", table_name="reservation_payments"
    )
    op.drop_table("reservation_payments")
    op.drop_table("reservation_code_sequences")

    op.drop_index("ix_reservations_model_window", table_name="reservations")
    op.drop_index("ix_reservations_vehicle_window", table_name="reservations")
    op.drop_index("ix_reservations_status", table_name="reservations")
    op.drop_index("ix_reservations_pickup_branch_id", table_name="reservations")
    op.drop_index("ix_reservations_created_by", table_name="reservations")
    op.drop_index("ix_reservations_user_id", table_name="reservations")
    op.drop_table("reservations")

    op.drop_table("promo_codes")
    op.drop_index("ix_rate_plans_lookup", table_name="rate_plans")
    op.drop_table("rate_plans")

    op.drop_index("ix_vehicles_branch_status", table_name="vehicles")
    op.drop_index("ix_vehicles_branch_id", table_name="vehicles")
    op.drop_index("ix_vehicles_vehicle_model_id", table_name="vehicles")
    op.drop_table("vehicles")
    op.drop_table("vehicle_models")
    op.drop_table("staff_profiles")
    op.drop_table("users")
    op.drop_table("branches")
