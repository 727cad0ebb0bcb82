"""Reservation models."""
from __future__ import annotations

import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    inspect,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from fleetdesk.db.base import Base
from fleetdesk.models.mixins import JSONB_TYPE, TimestampMixin, enum_column_type
from fleetdesk.models.pricing_snapshot import PricingSnapshot

if TYPE_CHECKING:  # pragma: no cover - typing only imports
    from fleetdesk.models.branch import Branch
    from fleetdesk.models.user import User
    from fleetdesk.models.vehicle import Vehicle, VehicleModel


class ReservationStatus(str, enum.Enum):
    """Lifecycle states for reservations."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    CHECKED_OUT = "checked_out"
    RETURNED = "returned"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


BLOCKING_STATUSES = frozenset(
    {
        ReservationStatus.PENDING,
        ReservationStatus.CONFIRMED,
        ReservationStatus.CHECKED_OUT,
    }
)

TERMINAL_STATUSES = frozenset(
    {
        ReservationStatus.RETURNED,
        ReservationStatus.CANCELLED,
        ReservationStatus.NO_SHOW,
    }
)

ALLOWED_TRANSITIONS: dict[ReservationStatus, frozenset[ReservationStatus]] = {
    ReservationStatus.PENDING: frozenset(
        {
            ReservationStatus.CONFIRMED,
            ReservationStatus.CHECKED_OUT,
            ReservationStatus.CANCELLED,
            ReservationStatus.NO_SHOW,
        }
    ),
    ReservationStatus.CONFIRMED: frozenset(
        {
            ReservationStatus.CHECKED_OUT,
            ReservationStatus.CANCELLED,
            ReservationStatus.NO_SHOW,
        }
    ),
    ReservationStatus.CHECKED_OUT: frozenset({ReservationStatus.RETURNED}),
    ReservationStatus.RETURNED: frozenset(),
    ReservationStatus.CANCELLED: frozenset(),
    ReservationStatus.NO_SHOW: frozenset(),
}


class ReservationChannel(str, enum.Enum):
    WEB = "web"
    MOBILE = "mobile"
    KIOSK = "kiosk"
    AGENT = "agent"


class PaymentSummaryStatus(str, enum.Enum):
    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"
    REFUNDED = "refunded"
    VOID = "void"


class Reservation(TimestampMixin, Base):
    """A booking of a vehicle model (and optionally a unit) between two branches."""

    __tablename__ = "reservations"
    __table_args__ = (
        Index(
            "ix_reservations_vehicle_window",
            "vehicle_id",
            "status",
            "pickup_at",
            "dropoff_at",
            sqlite_where=text("vehicle_id IS NOT NULL"),
            postgresql_where=text("vehicle_id IS NOT NULL"),
        ),
        Index(
            "ix_reservations_model_window",
            "vehicle_model_id",
            "status",
            "pickup_at",
            "dropoff_at",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    created_by: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    created_channel: Mapped[ReservationChannel] = mapped_column(
        enum_column_type(ReservationChannel),
        default=ReservationChannel.WEB,
        nullable=False,
    )
    vehicle_model_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("vehicle_models.id", ondelete="RESTRICT"), nullable=False
    )
    vehicle_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("vehicles.id", ondelete="SET NULL")
    )
    pickup_branch_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("branches.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    pickup_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    dropoff_branch_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("branches.id", ondelete="RESTRICT"), nullable=False
    )
    dropoff_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[ReservationStatus] = mapped_column(
        enum_column_type(ReservationStatus),
        default=ReservationStatus.PENDING,
        nullable=False,
        index=True,
    )
    pricing: Mapped[dict[str, Any]] = mapped_column(JSONB_TYPE, nullable=False)
    payment_status: Mapped[PaymentSummaryStatus] = mapped_column(
        enum_column_type(PaymentSummaryStatus),
        default=PaymentSummaryStatus.UNPAID,
        nullable=False,
    )
    paid_total: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), default=Decimal("0.00"), nullable=False
    )
    outstanding: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), default=Decimal("0.00"), nullable=False
    )
    last_payment_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    driver_snapshot: Mapped[dict[str, Any] | None] = mapped_column(JSONB_TYPE)
    notes: Mapped[str] = mapped_column(Text(), default="", nullable=False)

    renter: Mapped["User"] = relationship("User", foreign_keys=[user_id], lazy="selectin")
    creator: Mapped["User"] = relationship(
        "User", foreign_keys=[created_by], lazy="selectin"
    )
    vehicle: Mapped["Vehicle | None"] = relationship("Vehicle")
    vehicle_model: Mapped["VehicleModel"] = relationship("VehicleModel")
    pickup_branch: Mapped["Branch"] = relationship(
        "Branch", foreign_keys=[pickup_branch_id], lazy="selectin"
    )
    dropoff_branch: Mapped["Branch"] = relationship(
        "Branch", foreign_keys=[dropoff_branch_id], lazy="selectin"
    )

    @validates("pricing")
    def _freeze_pricing(self, _key: str, value: dict[str, Any]) -> dict[str, Any]:
        state = inspect(self)
        if (state.persistent or state.detached) and self.pricing is not None:
            raise ValueError("Reservation pricing is immutable once persisted")
        return value

    @property
    def pricing_snapshot(self) -> PricingSnapshot:
        return PricingSnapshot.from_document(self.pricing)

    @property
    def grand_total(self) -> Decimal:
        return Decimal(self.pricing["grand_total"])

    @property
    def currency(self) -> str:
        return str(self.pricing["currency"])

    @property
    def is_blocking(self) -> bool:
        return self.status in BLOCKING_STATUSES


class ReservationCodeSequence(Base):
    """Monotonic counter backing ``<PREFIX>-<YEAR>-<SEQ>`` codes."""

    __tablename__ = "reservation_code_sequences"

    prefix: Mapped[str] = mapped_column(String(32), primary_key=True)
    year: Mapped[int] = mapped_column(Integer, primary_key=True)
    last_value: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
