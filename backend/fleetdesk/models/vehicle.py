"""Vehicle catalog: models (make/model/class) and physical units."""

from __future__ import annotations

import enum
import uuid
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fleetdesk.db.base import Base
from fleetdesk.models.mixins import TimestampMixin, enum_column_type

if TYPE_CHECKING:  # pragma: no cover - typing only imports
    from fleetdesk.models.branch import Branch


class VehicleClass(str, enum.Enum):
    ECONOMY = "economy"
    COMPACT = "compact"
    MIDSIZE = "midsize"
    SUV = "suv"
    LUXURY = "luxury"
    VAN = "van"
    TRUCK = "truck"


class VehicleStatus(str, enum.Enum):
    """Lifecycle of a physical unit."""

    ACTIVE = "active"
    MAINTENANCE = "maintenance"
    RETIRED = "retired"


class AvailabilityState(str, enum.Enum):
    """Denormalized UI hint; never authoritative for overlap decisions."""

    AVAILABLE = "available"
    RESERVED = "reserved"
    OUT = "out"
    BLOCKED = "blocked"


class VehicleModel(TimestampMixin, Base):
    """Bookable make/model/year combination."""

    __tablename__ = "vehicle_models"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    make: Mapped[str] = mapped_column(String(120), nullable=False)
    model: Mapped[str] = mapped_column(String(120), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    vehicle_class: Mapped[VehicleClass] = mapped_column(
        enum_column_type(VehicleClass), nullable=False
    )
    seats: Mapped[int | None] = mapped_column(Integer)

    @property
    def display_name(self) -> str:
        return f"{self.make} {self.model} {self.year}"


class Vehicle(TimestampMixin, Base):
    """Physical rental unit stationed at a branch."""

    __tablename__ = "vehicles"
    __table_args__ = (Index("ix_vehicles_branch_status", "branch_id", "status"),)

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    plate_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    vehicle_model_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("vehicle_models.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    branch_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("branches.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    odometer_km: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    color: Mapped[str | None] = mapped_column(String(40))
    status: Mapped[VehicleStatus] = mapped_column(
        enum_column_type(VehicleStatus), default=VehicleStatus.ACTIVE, nullable=False
    )
    availability_state: Mapped[AvailabilityState] = mapped_column(
        enum_column_type(AvailabilityState),
        default=AvailabilityState.AVAILABLE,
        nullable=False,
    )

    vehicle_model: Mapped[VehicleModel] = relationship("VehicleModel", lazy="selectin")
    branch: Mapped["Branch"] = relationship("Branch")

    def set_availability(self, state: AvailabilityState | str) -> "Vehicle":
        """Set the availability hint, rejecting unknown states."""
        try:
            self.availability_state = AvailabilityState(state)
        except ValueError as exc:
            raise ValueError(f"Invalid availability_state: {state}") from exc
        return self
