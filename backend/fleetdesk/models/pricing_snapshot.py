"""Immutable pricing snapshot embedded in every reservation."""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import ROUND_HALF_EVEN, Decimal
from typing import Any, Iterable

from fleetdesk.models.pricing import CURRENCY_EXPONENT, Currency

ZERO = Decimal("0")


def quantize_money(value: Decimal | int | str, currency: Currency) -> Decimal:
    """Round to the currency's minor unit using banker's rounding."""
    exponent = Decimal(1).scaleb(-CURRENCY_EXPONENT[currency])
    return Decimal(str(value)).quantize(exponent, rounding=ROUND_HALF_EVEN)


class DiscountKind(str, enum.Enum):
    """Origin of a discount line."""

    PROMO_PERCENT = "promo_percent"
    PROMO_FIXED = "promo_fixed"
    MANUAL = "manual"


@dataclass(frozen=True, slots=True)
class BreakdownLine:
    label: str
    quantity: int
    unit_amount: Decimal
    total: Decimal


@dataclass(frozen=True, slots=True)
class FeeLine:
    code: str
    amount: Decimal


@dataclass(frozen=True, slots=True)
class TaxLine:
    code: str
    rate: Decimal
    amount: Decimal


@dataclass(frozen=True, slots=True)
class DiscountLine:
    amount: Decimal
    kind: DiscountKind = DiscountKind.MANUAL
    promo_code_id: uuid.UUID | None = None


def lines_total(
    breakdown: Iterable[BreakdownLine],
    fees: Iterable[FeeLine],
    taxes: Iterable[TaxLine],
    discounts: Iterable[DiscountLine],
) -> Decimal:
    """Σ breakdown + Σ fees + Σ taxes − Σ discounts, exact decimal."""
    total = sum((line.total for line in breakdown), ZERO)
    total += sum((line.amount for line in fees), ZERO)
    total += sum((line.amount for line in taxes), ZERO)
    total -= sum((line.amount for line in discounts), ZERO)
    return total


@dataclass(frozen=True, slots=True)
class PricingSnapshot:
    """Self-contained price of a reservation, frozen at booking time."""

    currency: Currency
    breakdown: tuple[BreakdownLine, ...]
    fees: tuple[FeeLine, ...] = ()
    taxes: tuple[TaxLine, ...] = ()
    discounts: tuple[DiscountLine, ...] = ()
    grand_total: Decimal = ZERO
    computed_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def subtotal(self) -> Decimal:
        return sum((line.total for line in self.breakdown), ZERO)

    @property
    def discount_total(self) -> Decimal:
        return sum((line.amount for line in self.discounts), ZERO)

    def is_consistent(self) -> bool:
        return self.grand_total == lines_total(
            self.breakdown, self.fees, self.taxes, self.discounts
        )

    def to_document(self) -> dict[str, Any]:
        """Serialize with decimals as strings so the stored form is exact."""
        return {
            "currency": self.currency.value,
            "breakdown": [
                {
                    "label": line.label,
                    "quantity": line.quantity,
                    "unit_amount": str(line.unit_amount),
                    "total": str(line.total),
                }
                for line in self.breakdown
            ],
            "fees": [{"code": line.code, "amount": str(line.amount)} for line in self.fees],
            "taxes": [
                {"code": line.code, "rate": str(line.rate), "amount": str(line.amount)}
                for line in self.taxes
            ],
            "discounts": [
                {
                    "kind": line.kind.value,
                    "promo_code_id": str(line.promo_code_id) if line.promo_code_id else None,
                    "amount": str(line.amount),
                }
                for line in self.discounts
            ],
            "grand_total": str(self.grand_total),
            "computed_at": self.computed_at.isoformat(),
        }

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> "PricingSnapshot":
        computed_at = datetime.fromisoformat(document["computed_at"])
        if computed_at.tzinfo is None:
            computed_at = computed_at.replace(tzinfo=UTC)
        return cls(
            currency=Currency(document["currency"]),
            breakdown=tuple(
                BreakdownLine(
                    label=item["label"],
                    quantity=int(item["quantity"]),
                    unit_amount=Decimal(item["unit_amount"]),
                    total=Decimal(item["total"]),
                )
                for item in document.get("breakdown", [])
            ),
            fees=tuple(
                FeeLine(code=item["code"], amount=Decimal(item["amount"]))
                for item in document.get("fees", [])
            ),
            taxes=tuple(
                TaxLine(
                    code=item["code"],
                    rate=Decimal(item["rate"]),
                    amount=Decimal(item["amount"]),
                )
                for item in document.get("taxes", [])
            ),
            discounts=tuple(
                DiscountLine(
                    amount=Decimal(item["amount"]),
                    kind=DiscountKind(item.get("kind", DiscountKind.MANUAL.value)),
                    promo_code_id=(
                        uuid.UUID(item["promo_code_id"])
                        if item.get("promo_code_id")
                        else None
                    ),
                )
                for item in document.get("discounts", [])
            ),
            grand_total=Decimal(document["grand_total"]),
            computed_at=computed_at,
        )
