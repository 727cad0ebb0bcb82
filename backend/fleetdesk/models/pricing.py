"""Rate plans and promo codes feeding the pricing computation."""

from __future__ import annotations

import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from fleetdesk.db.base import Base
from fleetdesk.models.mixins import JSONB_TYPE, TimestampMixin, enum_column_type
from fleetdesk.models.vehicle import VehicleClass


class Currency(str, enum.Enum):
    """Enumerated settlement currencies; extending this is a schema change."""

    USD = "USD"
    ZWL = "ZWL"


# Minor-unit exponent per currency (cents for both).
CURRENCY_EXPONENT: dict[Currency, int] = {Currency.USD: 2, Currency.ZWL: 2}


class PromoType(str, enum.Enum):
    PERCENT = "percent"
    FIXED = "fixed"


class RatePlan(TimestampMixin, Base):
    """Daily/weekly/monthly rates scoped to a unit, model or class."""

    __tablename__ = "rate_plans"
    __table_args__ = (
        CheckConstraint(
            "NOT (vehicle_id IS NOT NULL AND vehicle_model_id IS NOT NULL)",
            name="ck_rate_plans_single_target",
        ),
        Index(
            "ix_rate_plans_lookup",
            "active",
            "currency",
            "branch_id",
            "vehicle_class",
            "valid_from",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    name: Mapped[str | None] = mapped_column(String(255))
    branch_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("branches.id", ondelete="CASCADE")
    )
    vehicle_class: Mapped[VehicleClass] = mapped_column(
        enum_column_type(VehicleClass), nullable=False
    )
    vehicle_model_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("vehicle_models.id", ondelete="CASCADE")
    )
    vehicle_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("vehicles.id", ondelete="CASCADE")
    )
    currency: Mapped[Currency] = mapped_column(
        enum_column_type(Currency), default=Currency.USD, nullable=False
    )
    daily_rate: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    weekly_rate: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    monthly_rate: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    taxes: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONB_TYPE, default=list, nullable=False
    )
    fees: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONB_TYPE, default=list, nullable=False
    )
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    valid_from: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    valid_to: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    notes: Mapped[str | None] = mapped_column(String(1024))


class PromoCode(TimestampMixin, Base):
    """Discount code with a validity window, usage limit and constraints."""

    __tablename__ = "promo_codes"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    type: Mapped[PromoType] = mapped_column(enum_column_type(PromoType), nullable=False)
    value: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[Currency | None] = mapped_column(enum_column_type(Currency))
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    valid_from: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    valid_to: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    usage_limit: Mapped[int | None] = mapped_column(Integer)
    used_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # {"allowed_classes": [...], "min_days": int, "branch_ids": [...]}
    constraints: Mapped[dict[str, Any]] = mapped_column(
        JSONB_TYPE, default=dict, nullable=False
    )
    notes: Mapped[str | None] = mapped_column(String(1024))
