"""Maintenance work orders that can take a vehicle out of rotation."""

from __future__ import annotations

import enum
import uuid
from decimal import Decimal

from sqlalchemy import ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fleetdesk.db.base import Base
from fleetdesk.models.mixins import TimestampMixin, enum_column_type
from fleetdesk.models.vehicle import Vehicle


class ServiceOrderType(str, enum.Enum):
    SCHEDULED_SERVICE = "scheduled_service"
    REPAIR = "repair"
    TYRE_CHANGE = "tyre_change"
    INSPECTION = "inspection"


class ServiceOrderStatus(str, enum.Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


BLOCKING_SERVICE_STATUSES = frozenset(
    {ServiceOrderStatus.OPEN, ServiceOrderStatus.IN_PROGRESS}
)


class ServiceOrder(TimestampMixin, Base):
    """Service or repair job referencing a vehicle."""

    __tablename__ = "service_orders"
    __table_args__ = (
        Index("ix_service_orders_vehicle_status", "vehicle_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    vehicle_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("vehicles.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[ServiceOrderType] = mapped_column(
        enum_column_type(ServiceOrderType), nullable=False
    )
    status: Mapped[ServiceOrderStatus] = mapped_column(
        enum_column_type(ServiceOrderStatus),
        default=ServiceOrderStatus.OPEN,
        nullable=False,
    )
    odometer_km: Mapped[int | None] = mapped_column(Integer)
    cost: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    notes: Mapped[str | None] = mapped_column(String(1024))
    created_by: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL")
    )

    vehicle: Mapped[Vehicle] = relationship("Vehicle")
