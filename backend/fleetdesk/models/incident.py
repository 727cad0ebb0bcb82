"""Vehicle incident (damage, accident) records."""

from __future__ import annotations

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from fleetdesk.db.base import Base
from fleetdesk.models.mixins import TimestampMixin, enum_column_type


class IncidentType(str, enum.Enum):
    ACCIDENT = "accident"
    SCRATCH = "scratch"
    TYRE = "tyre"
    WINDSHIELD = "windshield"
    MECHANICAL_ISSUE = "mechanical_issue"
    OTHER = "other"


class IncidentSeverity(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class IncidentStatus(str, enum.Enum):
    OPEN = "open"
    UNDER_REVIEW = "under_review"
    RESOLVED = "resolved"
    CLOSED = "closed"


OPEN_INCIDENT_STATUSES = frozenset({IncidentStatus.OPEN, IncidentStatus.UNDER_REVIEW})


class VehicleIncident(TimestampMixin, Base):
    """Reported incident on a vehicle, optionally during a rental."""

    __tablename__ = "vehicle_incidents"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    vehicle_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("vehicles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    reservation_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("reservations.id", ondelete="SET NULL"), index=True
    )
    branch_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("branches.id", ondelete="SET NULL"), index=True
    )
    reported_by: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[IncidentType] = mapped_column(
        enum_column_type(IncidentType), nullable=False
    )
    severity: Mapped[IncidentSeverity] = mapped_column(
        enum_column_type(IncidentSeverity),
        default=IncidentSeverity.LOW,
        nullable=False,
    )
    status: Mapped[IncidentStatus] = mapped_column(
        enum_column_type(IncidentStatus), default=IncidentStatus.OPEN, nullable=False
    )
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    description: Mapped[str | None] = mapped_column(String(2048))
    estimated_cost: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    final_cost: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
