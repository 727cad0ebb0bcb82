"""Pydantic schemas for reservations."""
from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from fleetdesk.models.mixins import coerce_utc
from fleetdesk.models.reservation import (
    PaymentSummaryStatus,
    ReservationChannel,
    ReservationStatus,
)
from fleetdesk.schemas.pricing import PricingInput, PricingSnapshotRead


class Endpoint(BaseModel):
    """Pickup or dropoff: a branch and an instant."""

    branch_id: uuid.UUID
    at: datetime


class DriverSnapshot(BaseModel):
    """Licence details copied onto the reservation at booking time."""

    full_name: str | None = None
    licence_number: str | None = None
    licence_country: str | None = None
    licence_expiry: str | None = None
    date_of_birth: str | None = None

    model_config = ConfigDict(extra="allow")


class ReservationCreate(BaseModel):
    """Payload for creating reservations."""

    user_id: uuid.UUID | None = None
    vehicle_model_id: uuid.UUID
    vehicle_id: uuid.UUID | None = None
    pickup: Endpoint
    dropoff: Endpoint
    created_channel: ReservationChannel = ReservationChannel.WEB
    driver_snapshot: DriverSnapshot | None = None
    notes: str = ""
    promo_code: str | None = None
    currency: str | None = None
    pricing: PricingInput | None = None

    @field_validator("promo_code")
    @classmethod
    def _normalize_promo(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip().upper()
        return value or None


class ReservationUpdate(BaseModel):
    """Staff-mutable reservation fields; pricing and code are not patchable."""

    pickup: Endpoint | None = None
    dropoff: Endpoint | None = None
    vehicle_id: uuid.UUID | None = None
    driver_snapshot: DriverSnapshot | None = None
    notes: str | None = None

    model_config = ConfigDict(extra="forbid")


class ReservationStatusUpdate(BaseModel):
    status: ReservationStatus


class AvailabilityQuery(BaseModel):
    vehicle_id: uuid.UUID
    start: datetime
    end: datetime


class AvailabilityResult(BaseModel):
    available: bool


class PaymentSummaryRead(BaseModel):
    status: PaymentSummaryStatus
    paid_total: Decimal
    outstanding: Decimal
    last_payment_at: datetime | None = None


class ReservationRead(BaseModel):
    """Serialized reservation representation."""

    id: uuid.UUID
    code: str
    user_id: uuid.UUID
    created_by: uuid.UUID
    created_channel: ReservationChannel
    vehicle_model_id: uuid.UUID
    vehicle_id: uuid.UUID | None = None
    pickup: Endpoint
    dropoff: Endpoint
    status: ReservationStatus
    pricing: PricingSnapshotRead
    payment_summary: PaymentSummaryRead
    driver_snapshot: dict[str, Any] | None = None
    notes: str = ""
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @model_validator(mode="before")
    @classmethod
    def _from_orm(cls, value: Any) -> Any:
        if isinstance(value, dict) or not hasattr(value, "pricing_snapshot"):
            return value
        return {
            "id": value.id,
            "code": value.code,
            "user_id": value.user_id,
            "created_by": value.created_by,
            "created_channel": value.created_channel,
            "vehicle_model_id": value.vehicle_model_id,
            "vehicle_id": value.vehicle_id,
            "pickup": {
                "branch_id": value.pickup_branch_id,
                "at": coerce_utc(value.pickup_at),
            },
            "dropoff": {
                "branch_id": value.dropoff_branch_id,
                "at": coerce_utc(value.dropoff_at),
            },
            "status": value.status,
            "pricing": value.pricing_snapshot,
            "payment_summary": {
                "status": value.payment_status,
                "paid_total": value.paid_total,
                "outstanding": value.outstanding,
                "last_payment_at": (
                    coerce_utc(value.last_payment_at) if value.last_payment_at else None
                ),
            },
            "driver_snapshot": value.driver_snapshot,
            "notes": value.notes or "",
            "created_at": coerce_utc(value.created_at),
            "updated_at": coerce_utc(value.updated_at),
        }


class ReservationListQuery(BaseModel):
    """Filters accepted by the reservation listing."""

    code: str | None = None
    user_id: uuid.UUID | None = None
    status: ReservationStatus | None = None
    vehicle_id: uuid.UUID | None = None
    vehicle_model_id: uuid.UUID | None = None
    created_by: uuid.UUID | None = None
    pickup_from: datetime | None = None
    pickup_to: datetime | None = None
    dropoff_from: datetime | None = None
    dropoff_to: datetime | None = None
    skip: int = Field(0, ge=0)
    limit: int = Field(50, ge=1, le=500)
