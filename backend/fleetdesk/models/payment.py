"""Payment ledger entries applied to reservations."""

from __future__ import annotations

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fleetdesk.db.base import Base
from fleetdesk.models.mixins import TimestampMixin, enum_column_type
from fleetdesk.models.pricing import Currency
from fleetdesk.models.reservation import Reservation


class PaymentKind(str, enum.Enum):
    """Payment events that move the reservation rollup."""

    CHARGE = "charge"
    REFUND = "refund"
    VOID = "void"


class ReservationPayment(TimestampMixin, Base):
    """One payment event per (reservation, payment id); replays are no-ops."""

    __tablename__ = "reservation_payments"
    __table_args__ = (
        UniqueConstraint(
            "reservation_id", "payment_id", name="uq_reservation_payments_payment"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    reservation_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("reservations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    payment_id: Mapped[str] = mapped_column(String(128), nullable=False)
    kind: Mapped[PaymentKind] = mapped_column(
        enum_column_type(PaymentKind), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    currency: Mapped[Currency] = mapped_column(enum_column_type(Currency), nullable=False)
    provider: Mapped[str | None] = mapped_column(String(32))
    method: Mapped[str | None] = mapped_column(String(32))
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    reservation: Mapped[Reservation] = relationship("Reservation")
