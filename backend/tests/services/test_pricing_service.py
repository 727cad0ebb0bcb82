"""Tests for the pricing engine."""

from __future__ import annotations

import random
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from fleetdesk.core.errors import ValidationFailed
from fleetdesk.db.session import get_sessionmaker
from fleetdesk.models import (
    Currency,
    PromoCode,
    PromoType,
    RatePlan,
    VehicleClass,
)
from fleetdesk.models.pricing_snapshot import PricingSnapshot, lines_total
from fleetdesk.schemas.pricing import PricingInput
from fleetdesk.services import pricing_service

PICKUP = datetime(2025, 6, 1, 9, 0, tzinfo=UTC)


def _economy_plan() -> RatePlan:
    return RatePlan(
        vehicle_class=VehicleClass.ECONOMY,
        currency=Currency.USD,
        daily_rate=Decimal("50.00"),
        weekly_rate=Decimal("300.00"),
        taxes=[{"code": "VAT", "rate": "0.15"}],
        fees=[],
        valid_from=PICKUP - timedelta(days=30),
    )


def test_rental_days_rounds_partial_days_up() -> None:
    assert pricing_service.rental_days(PICKUP, PICKUP + timedelta(hours=3)) == 1
    assert pricing_service.rental_days(PICKUP, PICKUP + timedelta(days=3)) == 3
    assert pricing_service.rental_days(PICKUP, PICKUP + timedelta(days=3, minutes=1)) == 4


def test_compute_snapshot_uses_weekly_then_daily_rate() -> None:
    snapshot = pricing_service.compute_snapshot(_economy_plan(), days=8)

    assert [(line.label, line.quantity) for line in snapshot.breakdown] == [
        ("Weekly rate", 1),
        ("Daily rate", 1),
    ]
    assert snapshot.subtotal == Decimal("350.00")
    assert snapshot.taxes[0].amount == Decimal("52.50")
    assert snapshot.grand_total == Decimal("402.50")
    assert snapshot.is_consistent()


def test_percent_promo_is_taxed_after_discount() -> None:
    promo = PromoCode(
        code="SPRING10",
        type=PromoType.PERCENT,
        value=Decimal("10"),
        valid_from=PICKUP - timedelta(days=1),
    )
    snapshot = pricing_service.compute_snapshot(_economy_plan(), days=8, promo=promo)

    assert snapshot.discount_total == Decimal("35.00")
    assert snapshot.taxes[0].amount == Decimal("47.25")
    assert snapshot.grand_total == Decimal("362.25")


def test_snapshot_document_survives_storage() -> None:
    snapshot = pricing_service.compute_snapshot(_economy_plan(), days=3)
    restored = PricingSnapshot.from_document(snapshot.to_document())
    assert restored == snapshot


def test_freeze_supplied_rejects_mismatched_total() -> None:
    pricing = PricingInput(
        currency=Currency.USD,
        breakdown=[{"label": "Daily rate", "quantity": 2, "unit_amount": "40.00"}],
        fees=[{"code": "CLEANING", "amount": "15.00"}],
        grand_total="100.00",
    )
    with pytest.raises(ValidationFailed) as excinfo:
        pricing_service.freeze_supplied(pricing)
    assert excinfo.value.code == "PRICING_MISMATCH"
    assert excinfo.value.details == {"expected": "95.00", "supplied": "100.00"}


def test_freeze_supplied_rejects_negative_total() -> None:
    pricing = PricingInput(
        currency=Currency.USD,
        breakdown=[{"label": "Daily rate", "quantity": 1, "unit_amount": "10.00"}],
        discounts=[{"amount": "25.00"}],
    )
    with pytest.raises(ValidationFailed) as excinfo:
        pricing_service.freeze_supplied(pricing)
    assert excinfo.value.code == "PRICING_NEGATIVE"


def test_freeze_supplied_quantizes_and_applies_percentage_tax() -> None:
    pricing = PricingInput(
        currency=Currency.ZWL,
        breakdown=[{"label": "Daily rate", "quantity": 3, "unit_amount": "33.333"}],
        taxes=[{"code": "VAT", "rate": "0.15"}],
    )
    snapshot = pricing_service.freeze_supplied(pricing)
    assert snapshot.breakdown[0].unit_amount == Decimal("33.33")
    assert snapshot.breakdown[0].total == Decimal("99.99")
    assert snapshot.taxes[0].amount == Decimal("15.00")
    assert snapshot.grand_total == Decimal("114.99")


@pytest.mark.asyncio
async def test_resolve_rate_plan_prefers_most_specific(seeded: dict) -> None:
    async with get_sessionmaker()() as session:
        model_plan = RatePlan(
            name="Corolla special",
            vehicle_class=VehicleClass.ECONOMY,
            vehicle_model_id=seeded["corolla_id"],
            currency=Currency.USD,
            daily_rate=Decimal("45.00"),
            taxes=[],
            fees=[],
            valid_from=PICKUP - timedelta(days=10),
        )
        unit_plan = RatePlan(
            name="AAA-1001 premium",
            vehicle_class=VehicleClass.ECONOMY,
            vehicle_id=seeded["v1_id"],
            branch_id=seeded["harare_id"],
            currency=Currency.USD,
            daily_rate=Decimal("70.00"),
            taxes=[],
            fees=[],
            valid_from=PICKUP - timedelta(days=10),
        )
        session.add_all([model_plan, unit_plan])
        await session.commit()

        kwargs = {
            "vehicle_class": VehicleClass.ECONOMY,
            "vehicle_model_id": seeded["corolla_id"],
            "branch_id": seeded["harare_id"],
            "at": PICKUP,
            "currency": Currency.USD,
        }
        by_model = await pricing_service.resolve_rate_plan(session, **kwargs)
        assert by_model.id == model_plan.id

        by_unit = await pricing_service.resolve_rate_plan(
            session, vehicle_id=seeded["v1_id"], **kwargs
        )
        assert by_unit.id == unit_plan.id

        # The unit plan is pinned to Harare and does not leak into Bulawayo.
        elsewhere = await pricing_service.resolve_rate_plan(
            session,
            vehicle_id=seeded["v1_id"],
            **{**kwargs, "branch_id": seeded["bulawayo_id"]},
        )
        assert elsewhere.id == model_plan.id


@pytest.mark.asyncio
async def test_resolve_rate_plan_missing(seeded: dict) -> None:
    async with get_sessionmaker()() as session:
        with pytest.raises(ValidationFailed) as excinfo:
            await pricing_service.resolve_rate_plan(
                session,
                vehicle_class=VehicleClass.SUV,
                vehicle_model_id=seeded["rav4_id"],
                branch_id=seeded["harare_id"],
                at=PICKUP,
                currency=Currency.USD,
            )
    assert excinfo.value.code == "RATE_PLAN_MISSING"


@pytest.mark.asyncio
async def test_promo_constraints_and_usage_limit(seeded: dict) -> None:
    async with get_sessionmaker()() as session:
        promo = PromoCode(
            code="LONGSTAY",
            type=PromoType.FIXED,
            value=Decimal("20.00"),
            currency=Currency.USD,
            valid_from=PICKUP - timedelta(days=1),
            usage_limit=1,
            constraints={"allowed_classes": ["economy"], "min_days": 3},
        )
        session.add(promo)
        await session.commit()

        lookup = {
            "code": "longstay",
            "vehicle_class": VehicleClass.ECONOMY,
            "branch_id": seeded["harare_id"],
            "at": PICKUP,
            "currency": Currency.USD,
        }
        with pytest.raises(ValidationFailed) as short_stay:
            await pricing_service.get_valid_promo(session, days=2, **lookup)
        assert short_stay.value.code == "PROMO_INVALID"

        with pytest.raises(ValidationFailed):
            await pricing_service.get_valid_promo(
                session, days=5, **{**lookup, "vehicle_class": VehicleClass.SUV}
            )

        valid = await pricing_service.get_valid_promo(session, days=5, **lookup)
        assert valid.id == promo.id

        await pricing_service.consume_promo(session, promo.id)
        await session.commit()
        with pytest.raises(ValidationFailed):
            await pricing_service.consume_promo(session, promo.id)


def test_freeze_supplied_rejects_line_total_that_is_not_quantity_times_unit() -> None:
    pricing = PricingInput(
        currency=Currency.USD,
        breakdown=[
            {"label": "Daily rate", "quantity": 2, "unit_amount": "40.00", "total": "90.00"}
        ],
    )
    with pytest.raises(ValidationFailed) as excinfo:
        pricing_service.freeze_supplied(pricing)
    assert excinfo.value.code == "PRICING_MISMATCH"
    assert excinfo.value.details == {"expected": "80.00", "supplied": "90.00"}


def test_freeze_supplied_rejects_tax_amount_off_the_rate() -> None:
    pricing = PricingInput(
        currency=Currency.USD,
        breakdown=[{"label": "Daily rate", "quantity": 2, "unit_amount": "40.00"}],
        taxes=[{"code": "VAT", "rate": "0.15", "amount": "15.00"}],
    )
    with pytest.raises(ValidationFailed) as excinfo:
        pricing_service.freeze_supplied(pricing)
    assert excinfo.value.code == "PRICING_MISMATCH"
    assert excinfo.value.details == {"expected": "12.00", "supplied": "15.00"}


def test_freeze_supplied_accepts_consistent_lines() -> None:
    pricing = PricingInput(
        currency=Currency.USD,
        breakdown=[
            {"label": "Daily rate", "quantity": 2, "unit_amount": "40.00", "total": "80.00"}
        ],
        fees=[{"code": "CLEANING", "amount": "20.00"}],
        taxes=[{"code": "VAT", "rate": "0.15", "amount": "15.000"}],
        grand_total="115.00",
    )
    snapshot = pricing_service.freeze_supplied(pricing)
    assert snapshot.taxes[0].amount == Decimal("15.00")
    assert snapshot.grand_total == Decimal("115.00")


def _money(rng: random.Random, high: int) -> Decimal:
    return Decimal(rng.randint(0, high * 100)) / 100


def test_grand_total_always_equals_line_sum() -> None:
    rng = random.Random(15)
    for _ in range(200):
        currency = rng.choice(list(Currency))
        plan = RatePlan(
            vehicle_class=VehicleClass.ECONOMY,
            currency=currency,
            daily_rate=_money(rng, 200) + Decimal("0.005") * rng.randint(0, 1),
            weekly_rate=rng.choice((None, _money(rng, 1000))),
            monthly_rate=rng.choice((None, _money(rng, 3000))),
            taxes=[
                {"code": f"T{index}", "rate": str(Decimal(rng.randint(0, 2500)) / 10000)}
                for index in range(rng.randint(0, 2))
            ],
            fees=[
                {"code": f"F{index}", "amount": str(_money(rng, 50))}
                for index in range(rng.randint(0, 2))
            ],
            valid_from=PICKUP - timedelta(days=30),
        )
        promo = rng.choice(
            (
                None,
                PromoCode(
                    code="RANDPCT",
                    type=PromoType.PERCENT,
                    value=Decimal(rng.randint(1, 100)),
                    valid_from=PICKUP,
                ),
                PromoCode(
                    code="RANDFIX",
                    type=PromoType.FIXED,
                    value=_money(rng, 500) + Decimal("0.01"),
                    currency=currency,
                    valid_from=PICKUP,
                ),
            )
        )
        snapshot = pricing_service.compute_snapshot(
            plan, days=rng.randint(1, 75), promo=promo
        )
        assert snapshot.grand_total == lines_total(
            snapshot.breakdown, snapshot.fees, snapshot.taxes, snapshot.discounts
        )
        assert snapshot.grand_total >= 0

        unit = _money(rng, 150) + Decimal("0.01")
        supplied = PricingInput(
            currency=currency,
            breakdown=[
                {"label": "Daily rate", "quantity": rng.randint(1, 10), "unit_amount": unit}
            ],
            fees=[{"code": "DELIVERY", "amount": _money(rng, 40)}],
            taxes=[{"code": "VAT", "rate": "0.15"}] if rng.random() < 0.5 else [],
            discounts=[{"amount": min(unit, _money(rng, 150))}],
        )
        frozen = pricing_service.freeze_supplied(supplied)
        assert frozen.grand_total == lines_total(
            frozen.breakdown, frozen.fees, frozen.taxes, frozen.discounts
        )
