"""Pricing schema definitions: rate plans, promo codes, snapshots and quotes."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from fleetdesk.models.pricing import Currency, PromoType
from fleetdesk.models.pricing_snapshot import DiscountKind
from fleetdesk.models.vehicle import VehicleClass


class TaxRule(BaseModel):
    code: str = Field(min_length=1, max_length=32)
    rate: Decimal = Field(ge=Decimal("0"), le=Decimal("1"))


class FeeRule(BaseModel):
    code: str = Field(min_length=1, max_length=32)
    amount: Decimal = Field(ge=Decimal("0"))


class RatePlanBase(BaseModel):
    name: str | None = None
    branch_id: uuid.UUID | None = None
    vehicle_class: VehicleClass
    vehicle_model_id: uuid.UUID | None = None
    vehicle_id: uuid.UUID | None = None
    currency: Currency = Currency.USD
    daily_rate: Decimal = Field(ge=Decimal("0"))
    weekly_rate: Decimal | None = Field(default=None, ge=Decimal("0"))
    monthly_rate: Decimal | None = Field(default=None, ge=Decimal("0"))
    taxes: list[TaxRule] = Field(default_factory=list)
    fees: list[FeeRule] = Field(default_factory=list)
    active: bool = True
    valid_from: datetime
    valid_to: datetime | None = None
    notes: str | None = None


class RatePlanCreate(RatePlanBase):
    """Payload for creating rate plans."""

    @model_validator(mode="after")
    def _check_target(self) -> "RatePlanCreate":
        if self.vehicle_id is not None and self.vehicle_model_id is not None:
            raise ValueError("vehicle_id and vehicle_model_id are mutually exclusive")
        if self.valid_to is not None and self.valid_to <= self.valid_from:
            raise ValueError("valid_to must be after valid_from")
        return self


class RatePlanUpdate(BaseModel):
    """Mutable rate plan fields."""

    name: str | None = None
    daily_rate: Decimal | None = Field(default=None, ge=Decimal("0"))
    weekly_rate: Decimal | None = Field(default=None, ge=Decimal("0"))
    monthly_rate: Decimal | None = Field(default=None, ge=Decimal("0"))
    taxes: list[TaxRule] | None = None
    fees: list[FeeRule] | None = None
    active: bool | None = None
    valid_from: datetime | None = None
    valid_to: datetime | None = None
    notes: str | None = None

    @model_validator(mode="after")
    def _reject_required_nulls(self) -> "RatePlanUpdate":
        for field in ("daily_rate", "active", "valid_from"):
            if field in self.model_fields_set and getattr(self, field) is None:
                raise ValueError(f"{field} cannot be null")
        return self


class RatePlanRead(RatePlanBase):
    id: uuid.UUID
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PromoConstraints(BaseModel):
    allowed_classes: list[VehicleClass] = Field(default_factory=list)
    min_days: int | None = Field(default=None, ge=1)
    branch_ids: list[uuid.UUID] = Field(default_factory=list)


class PromoCodeCreate(BaseModel):
    """Payload for creating promo codes."""

    code: str = Field(min_length=2, max_length=64)
    type: PromoType
    value: Decimal = Field(gt=Decimal("0"))
    currency: Currency | None = None
    active: bool = True
    valid_from: datetime
    valid_to: datetime | None = None
    usage_limit: int | None = Field(default=None, ge=1)
    constraints: PromoConstraints = Field(default_factory=PromoConstraints)
    notes: str | None = None

    @field_validator("code")
    @classmethod
    def _upper(cls, value: str) -> str:
        return value.strip().upper()

    @model_validator(mode="after")
    def _check_value(self) -> "PromoCodeCreate":
        if self.type is PromoType.PERCENT and self.value > Decimal("100"):
            raise ValueError("Percent promo value cannot exceed 100")
        if self.type is PromoType.FIXED and self.currency is None:
            raise ValueError("Fixed promo codes require a currency")
        return self


class PromoCodeUpdate(BaseModel):
    """Mutable promo code fields; the code itself and usage counter are fixed."""

    value: Decimal | None = Field(default=None, gt=Decimal("0"))
    currency: Currency | None = None
    active: bool | None = None
    valid_from: datetime | None = None
    valid_to: datetime | None = None
    usage_limit: int | None = Field(default=None, ge=1)
    constraints: PromoConstraints | None = None
    notes: str | None = None

    @model_validator(mode="after")
    def _reject_required_nulls(self) -> "PromoCodeUpdate":
        for field in ("value", "active", "valid_from", "constraints"):
            if field in self.model_fields_set and getattr(self, field) is None:
                raise ValueError(f"{field} cannot be null")
        return self


class PromoCodeRead(BaseModel):
    id: uuid.UUID
    code: str
    type: PromoType
    value: Decimal
    currency: Currency | None = None
    active: bool
    valid_from: datetime
    valid_to: datetime | None = None
    usage_limit: int | None = None
    used_count: int
    constraints: PromoConstraints
    notes: str | None = None

    model_config = ConfigDict(from_attributes=True)


class BreakdownLineInput(BaseModel):
    label: str = Field(min_length=1, max_length=120)
    quantity: int = Field(ge=1)
    unit_amount: Decimal = Field(ge=Decimal("0"))
    total: Decimal | None = None


class FeeLineInput(BaseModel):
    code: str = Field(min_length=1, max_length=32)
    amount: Decimal = Field(ge=Decimal("0"))


class TaxLineInput(BaseModel):
    code: str = Field(min_length=1, max_length=32)
    rate: Decimal = Field(ge=Decimal("0"), le=Decimal("1"))
    amount: Decimal | None = Field(default=None, ge=Decimal("0"))


class DiscountLineInput(BaseModel):
    amount: Decimal = Field(ge=Decimal("0"))
    promo_code_id: uuid.UUID | None = None


class PricingInput(BaseModel):
    """Staff-supplied pricing lines, verified and frozen at creation."""

    currency: Currency
    breakdown: list[BreakdownLineInput] = Field(min_length=1)
    fees: list[FeeLineInput] = Field(default_factory=list)
    taxes: list[TaxLineInput] = Field(default_factory=list)
    discounts: list[DiscountLineInput] = Field(default_factory=list)
    grand_total: Decimal | None = None


class BreakdownLineRead(BaseModel):
    label: str
    quantity: int
    unit_amount: Decimal
    total: Decimal

    model_config = ConfigDict(from_attributes=True)


class FeeLineRead(BaseModel):
    code: str
    amount: Decimal

    model_config = ConfigDict(from_attributes=True)


class TaxLineRead(BaseModel):
    code: str
    rate: Decimal
    amount: Decimal

    model_config = ConfigDict(from_attributes=True)


class DiscountLineRead(BaseModel):
    amount: Decimal
    kind: DiscountKind
    promo_code_id: uuid.UUID | None = None

    model_config = ConfigDict(from_attributes=True)


class PricingSnapshotRead(BaseModel):
    """Serialized frozen pricing snapshot."""

    currency: Currency
    breakdown: list[BreakdownLineRead]
    fees: list[FeeLineRead]
    taxes: list[TaxLineRead]
    discounts: list[DiscountLineRead]
    subtotal: Decimal
    discount_total: Decimal
    grand_total: Decimal
    computed_at: datetime

    model_config = ConfigDict(from_attributes=True)


class QuoteRequest(BaseModel):
    """Input payload for pricing a prospective reservation."""

    vehicle_model_id: uuid.UUID
    vehicle_id: uuid.UUID | None = None
    pickup_branch_id: uuid.UUID
    pickup_at: datetime
    dropoff_at: datetime
    currency: Currency | None = None
    promo_code: str | None = None
