"""Service order schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from fleetdesk.models.service_order import ServiceOrderStatus, ServiceOrderType


class ServiceOrderCreate(BaseModel):
    vehicle_id: uuid.UUID
    type: ServiceOrderType
    odometer_km: int | None = Field(default=None, ge=0)
    cost: Decimal | None = Field(default=None, ge=Decimal("0"))
    notes: str | None = Field(default=None, max_length=1024)


class ServiceOrderStatusUpdate(BaseModel):
    status: ServiceOrderStatus
    cost: Decimal | None = Field(default=None, ge=Decimal("0"))
    notes: str | None = Field(default=None, max_length=1024)


class ServiceOrderRead(BaseModel):
    id: uuid.UUID
    vehicle_id: uuid.UUID
    type: ServiceOrderType
    status: ServiceOrderStatus
    odometer_km: int | None = None
    cost: Decimal | None = None
    notes: str | None = None
    created_by: uuid.UUID | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
