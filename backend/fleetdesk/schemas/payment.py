"""Payment events applied to a reservation's rollup."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from fleetdesk.models.payment import PaymentKind
from fleetdesk.models.pricing import Currency


class PaymentEvent(BaseModel):
    """A settled payment-provider event; ``payment_id`` is the idempotency key."""

    payment_id: str = Field(min_length=1, max_length=128)
    kind: PaymentKind = PaymentKind.CHARGE
    amount: Decimal = Field(ge=Decimal("0"))
    currency: Currency
    occurred_at: datetime
    provider: str | None = Field(default=None, max_length=32)
    method: str | None = Field(default=None, max_length=32)
