"""Vehicle incident schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from fleetdesk.models.incident import IncidentSeverity, IncidentStatus, IncidentType


class IncidentCreate(BaseModel):
    vehicle_id: uuid.UUID
    reservation_id: uuid.UUID | None = None
    type: IncidentType
    severity: IncidentSeverity = IncidentSeverity.LOW
    occurred_at: datetime
    description: str | None = Field(default=None, max_length=2048)
    estimated_cost: Decimal | None = Field(default=None, ge=Decimal("0"))


class IncidentStatusUpdate(BaseModel):
    status: IncidentStatus
    final_cost: Decimal | None = Field(default=None, ge=Decimal("0"))


class IncidentRead(BaseModel):
    id: uuid.UUID
    vehicle_id: uuid.UUID
    reservation_id: uuid.UUID | None = None
    branch_id: uuid.UUID | None = None
    reported_by: uuid.UUID
    type: IncidentType
    severity: IncidentSeverity
    status: IncidentStatus
    occurred_at: datetime
    description: str | None = None
    estimated_cost: Decimal | None = None
    final_cost: Decimal | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
