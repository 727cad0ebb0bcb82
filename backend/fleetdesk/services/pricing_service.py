"""Pricing engine: rate-plan resolution, promo validation and snapshot freezing."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal

from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fleetdesk.core.config import get_settings
from fleetdesk.core.errors import NotFound, ValidationFailed
from fleetdesk.models.pricing import Currency, PromoCode, PromoType, RatePlan
from fleetdesk.models.pricing_snapshot import (
    ZERO,
    BreakdownLine,
    DiscountKind,
    DiscountLine,
    FeeLine,
    PricingSnapshot,
    TaxLine,
    lines_total,
    quantize_money,
)
from fleetdesk.models.vehicle import Vehicle, VehicleClass, VehicleModel
from fleetdesk.schemas.pricing import (
    PricingInput,
    PromoCodeCreate,
    PromoCodeUpdate,
    RatePlanCreate,
    RatePlanUpdate,
)
from fleetdesk.models.mixins import coerce_utc
from fleetdesk.services.availability_service import validate_range
from fleetdesk.services.scope_service import Scope

logger = logging.getLogger(__name__)

DAYS_PER_WEEK = 7
DAYS_PER_MONTH = 30
HUNDRED = Decimal("100")


def rental_days(pickup_at: datetime, dropoff_at: datetime) -> int:
    """Billable days: every started 24h period counts, minimum one."""
    start, end = validate_range(pickup_at, dropoff_at)
    delta = end - start
    days = delta.days + (1 if delta.seconds or delta.microseconds else 0)
    return max(1, days)


def _promo_error(message: str) -> ValidationFailed:
    return ValidationFailed(message, code="PROMO_INVALID")


def resolve_currency(currency: Currency | str | None) -> Currency:
    try:
        return Currency(currency or get_settings().default_currency)
    except ValueError as exc:
        raise ValidationFailed(f"Unsupported currency: {currency}") from exc


async def resolve_rate_plan(
    session: AsyncSession,
    *,
    vehicle_class: VehicleClass,
    vehicle_model_id: uuid.UUID,
    branch_id: uuid.UUID,
    at: datetime,
    currency: Currency,
    vehicle_id: uuid.UUID | None = None,
) -> RatePlan:
    """Pick the most specific active plan valid at ``at``.

    Priority is unit > model > class; ties prefer a plan pinned to the branch,
    then the latest ``valid_from``.
    """
    at = coerce_utc(at)
    targets = [
        RatePlan.vehicle_model_id == vehicle_model_id,
        and_(
            RatePlan.vehicle_id.is_(None),
            RatePlan.vehicle_model_id.is_(None),
            RatePlan.vehicle_class == vehicle_class,
        ),
    ]
    if vehicle_id is not None:
        targets.append(RatePlan.vehicle_id == vehicle_id)

    stmt = select(RatePlan).where(
        RatePlan.active.is_(True),
        RatePlan.currency == currency,
        RatePlan.valid_from <= at,
        or_(RatePlan.valid_to.is_(None), RatePlan.valid_to > at),
        or_(RatePlan.branch_id.is_(None), RatePlan.branch_id == branch_id),
        or_(*targets),
    )
    plans = (await session.execute(stmt)).scalars().all()
    if not plans:
        raise ValidationFailed("No rate plan available", code="RATE_PLAN_MISSING")

    def _rank(plan: RatePlan) -> tuple[int, int, datetime]:
        if plan.vehicle_id is not None:
            specificity = 2
        elif plan.vehicle_model_id is not None:
            specificity = 1
        else:
            specificity = 0
        return (specificity, int(plan.branch_id is not None), coerce_utc(plan.valid_from))

    return max(plans, key=_rank)


async def get_valid_promo(
    session: AsyncSession,
    *,
    code: str,
    vehicle_class: VehicleClass,
    branch_id: uuid.UUID,
    at: datetime,
    days: int,
    currency: Currency,
) -> PromoCode:
    """Return the promo if it may be applied to this booking, else raise."""
    normalized = code.strip().upper()
    result = await session.execute(select(PromoCode).where(PromoCode.code == normalized))
    promo = result.scalar_one_or_none()
    if promo is None or not promo.active:
        raise _promo_error("Promo code is not valid")

    at = coerce_utc(at)
    if at < coerce_utc(promo.valid_from) or (
        promo.valid_to is not None and at >= coerce_utc(promo.valid_to)
    ):
        raise _promo_error("Promo code is outside its validity window")
    if promo.usage_limit is not None and promo.used_count >= promo.usage_limit:
        raise _promo_error("Promo code usage limit reached")
    if promo.type is PromoType.FIXED and promo.currency != currency:
        raise _promo_error("Promo code currency does not match")

    constraints = promo.constraints or {}
    allowed_classes = constraints.get("allowed_classes") or []
    if allowed_classes and vehicle_class.value not in allowed_classes:
        raise _promo_error("Promo code does not apply to this vehicle class")
    min_days = constraints.get("min_days")
    if min_days and days < int(min_days):
        raise _promo_error(f"Promo code requires at least {min_days} days")
    branch_ids = constraints.get("branch_ids") or []
    if branch_ids and str(branch_id) not in {str(value) for value in branch_ids}:
        raise _promo_error("Promo code does not apply at this branch")
    return promo


async def consume_promo(session: AsyncSession, promo_id: uuid.UUID) -> None:
    """Increment ``used_count`` in the caller's transaction, honouring the limit."""
    stmt = (
        update(PromoCode)
        .where(
            PromoCode.id == promo_id,
            or_(
                PromoCode.usage_limit.is_(None),
                PromoCode.used_count < PromoCode.usage_limit,
            ),
        )
        .values(used_count=PromoCode.used_count + 1)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    if result.rowcount == 0:
        raise _promo_error("Promo code usage limit reached")


def _rental_lines(plan: RatePlan, days: int, currency: Currency) -> list[BreakdownLine]:
    lines: list[BreakdownLine] = []
    remaining = days
    buckets = (
        ("Monthly rate", DAYS_PER_MONTH, plan.monthly_rate),
        ("Weekly rate", DAYS_PER_WEEK, plan.weekly_rate),
    )
    for label, span, rate in buckets:
        if rate is None or remaining < span:
            continue
        quantity, remaining = divmod(remaining, span)
        unit = quantize_money(rate, currency)
        lines.append(
            BreakdownLine(
                label=label,
                quantity=quantity,
                unit_amount=unit,
                total=quantize_money(unit * quantity, currency),
            )
        )
    if remaining:
        unit = quantize_money(plan.daily_rate, currency)
        lines.append(
            BreakdownLine(
                label="Daily rate",
                quantity=remaining,
                unit_amount=unit,
                total=quantize_money(unit * remaining, currency),
            )
        )
    return lines


def _promo_discount(
    promo: PromoCode, subtotal: Decimal, currency: Currency
) -> DiscountLine:
    if promo.type is PromoType.PERCENT:
        amount = quantize_money(subtotal * Decimal(promo.value) / HUNDRED, currency)
        kind = DiscountKind.PROMO_PERCENT
    else:
        amount = quantize_money(min(Decimal(promo.value), subtotal), currency)
        kind = DiscountKind.PROMO_FIXED
    return DiscountLine(amount=amount, kind=kind, promo_code_id=promo.id)


def compute_snapshot(
    plan: RatePlan, *, days: int, promo: PromoCode | None = None
) -> PricingSnapshot:
    """Price ``days`` of rental under ``plan``; taxes apply after discounts."""
    currency = Currency(plan.currency)
    breakdown = _rental_lines(plan, days, currency)
    subtotal = sum((line.total for line in breakdown), ZERO)

    discounts: list[DiscountLine] = []
    if promo is not None:
        discounts.append(_promo_discount(promo, subtotal, currency))

    fees = [
        FeeLine(code=str(item["code"]), amount=quantize_money(item["amount"], currency))
        for item in plan.fees or []
    ]
    taxable = (
        subtotal
        + sum((fee.amount for fee in fees), ZERO)
        - sum((discount.amount for discount in discounts), ZERO)
    )
    taxable = max(taxable, ZERO)
    taxes = [
        TaxLine(
            code=str(item["code"]),
            rate=Decimal(str(item["rate"])),
            amount=quantize_money(taxable * Decimal(str(item["rate"])), currency),
        )
        for item in plan.taxes or []
    ]
    grand_total = lines_total(breakdown, fees, taxes, discounts)
    return PricingSnapshot(
        currency=currency,
        breakdown=tuple(breakdown),
        fees=tuple(fees),
        taxes=tuple(taxes),
        discounts=tuple(discounts),
        grand_total=grand_total,
    )


def _pricing_mismatch(what: str, expected: Decimal, supplied: Decimal) -> ValidationFailed:
    return ValidationFailed(
        f"Supplied {what} does not match pricing lines",
        code="PRICING_MISMATCH",
        details={"expected": str(expected), "supplied": str(supplied)},
    )


def _verified(what: str, expected: Decimal, supplied: Decimal | None, currency: Currency) -> Decimal:
    """Return ``expected``; a supplied value must agree with it after quantizing."""
    if supplied is not None:
        supplied = quantize_money(supplied, currency)
        if supplied != expected:
            raise _pricing_mismatch(what, expected, supplied)
    return expected


def freeze_supplied(pricing: PricingInput) -> PricingSnapshot:
    """Quantize supplied lines and verify every derived amount against them."""
    currency = pricing.currency
    breakdown = []
    for line in pricing.breakdown:
        unit = quantize_money(line.unit_amount, currency)
        expected = quantize_money(unit * line.quantity, currency)
        breakdown.append(
            BreakdownLine(
                label=line.label,
                quantity=line.quantity,
                unit_amount=unit,
                total=_verified(f"total for {line.label!r}", expected, line.total, currency),
            )
        )
    fees = [
        FeeLine(code=line.code, amount=quantize_money(line.amount, currency))
        for line in pricing.fees
    ]
    discounts = [
        DiscountLine(
            amount=quantize_money(line.amount, currency),
            kind=DiscountKind.PROMO_FIXED if line.promo_code_id else DiscountKind.MANUAL,
            promo_code_id=line.promo_code_id,
        )
        for line in pricing.discounts
    ]
    taxable = max(
        lines_total(breakdown, fees, (), discounts),
        ZERO,
    )
    taxes = [
        TaxLine(
            code=line.code,
            rate=line.rate,
            amount=_verified(
                f"{line.code} tax amount",
                quantize_money(taxable * line.rate, currency),
                line.amount,
                currency,
            ),
        )
        for line in pricing.taxes
    ]
    grand_total = lines_total(breakdown, fees, taxes, discounts)
    if grand_total < ZERO:
        raise ValidationFailed("Pricing grand total cannot be negative", code="PRICING_NEGATIVE")
    _verified("grand total", grand_total, pricing.grand_total, currency)
    return PricingSnapshot(
        currency=currency,
        breakdown=tuple(breakdown),
        fees=tuple(fees),
        taxes=tuple(taxes),
        discounts=tuple(discounts),
        grand_total=grand_total,
    )


async def quote(
    session: AsyncSession,
    *,
    vehicle_model_id: uuid.UUID,
    pickup_branch_id: uuid.UUID,
    pickup_at: datetime,
    dropoff_at: datetime,
    vehicle_id: uuid.UUID | None = None,
    currency: Currency | str | None = None,
    promo_code: str | None = None,
) -> tuple[PricingSnapshot, PromoCode | None]:
    """Compute a snapshot from the catalog without persisting anything."""
    days = rental_days(pickup_at, dropoff_at)
    resolved_currency = resolve_currency(currency)
    vehicle_model = await session.get(VehicleModel, vehicle_model_id)
    if vehicle_model is None:
        raise ValidationFailed("Vehicle model not found")
    if vehicle_id is not None and await session.get(Vehicle, vehicle_id) is None:
        raise ValidationFailed("Vehicle not found")

    plan = await resolve_rate_plan(
        session,
        vehicle_class=vehicle_model.vehicle_class,
        vehicle_model_id=vehicle_model_id,
        vehicle_id=vehicle_id,
        branch_id=pickup_branch_id,
        at=pickup_at,
        currency=resolved_currency,
    )
    promo = None
    if promo_code:
        promo = await get_valid_promo(
            session,
            code=promo_code,
            vehicle_class=vehicle_model.vehicle_class,
            branch_id=pickup_branch_id,
            at=pickup_at,
            days=days,
            currency=resolved_currency,
        )
    return compute_snapshot(plan, days=days, promo=promo), promo


async def list_rate_plans(
    session: AsyncSession,
    *,
    scope: Scope,
    branch_id: uuid.UUID | None = None,
    vehicle_class: VehicleClass | None = None,
    active: bool | None = None,
) -> Sequence[RatePlan]:
    scope.require_staff()
    stmt = select(RatePlan).order_by(RatePlan.valid_from.desc())
    branch_ids = scope.effective_branch_ids(branch_id)
    if branch_ids is not None:
        # Plans without a branch apply everywhere and stay visible.
        stmt = stmt.where(
            or_(RatePlan.branch_id.is_(None), RatePlan.branch_id.in_(branch_ids))
        )
    if vehicle_class is not None:
        stmt = stmt.where(RatePlan.vehicle_class == vehicle_class)
    if active is not None:
        stmt = stmt.where(RatePlan.active.is_(active))
    result = await session.execute(stmt)
    return result.scalars().all()


def _require_plan_authority(scope: Scope, branch_id: uuid.UUID | None) -> None:
    if branch_id is None:
        scope.require_admin()
    else:
        scope.require_branch(branch_id)


async def create_rate_plan(
    session: AsyncSession, *, scope: Scope, payload: RatePlanCreate
) -> RatePlan:
    _require_plan_authority(scope, payload.branch_id)
    data = payload.model_dump(mode="json")
    plan = RatePlan(
        **payload.model_dump(exclude={"taxes", "fees", "valid_from", "valid_to"}),
        taxes=data["taxes"],
        fees=data["fees"],
        valid_from=coerce_utc(payload.valid_from),
        valid_to=coerce_utc(payload.valid_to) if payload.valid_to else None,
    )
    session.add(plan)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise ValidationFailed("Rate plan references unknown catalog entries") from exc
    await session.refresh(plan)
    logger.info("Rate plan %s created", plan.id)
    return plan


async def update_rate_plan(
    session: AsyncSession,
    *,
    scope: Scope,
    plan_id: uuid.UUID,
    payload: RatePlanUpdate,
) -> RatePlan:
    """Edit a plan. Existing reservation snapshots are never touched."""
    plan = await session.get(RatePlan, plan_id)
    if plan is None:
        raise NotFound("Rate plan not found")
    _require_plan_authority(scope, plan.branch_id)

    updates = payload.model_dump(exclude_unset=True)
    json_updates = payload.model_dump(exclude_unset=True, mode="json")
    for field, value in updates.items():
        if field in {"taxes", "fees"}:
            value = json_updates[field] or []
        elif field in {"valid_from", "valid_to"} and value is not None:
            value = coerce_utc(value)
        setattr(plan, field, value)
    if plan.valid_to is not None and coerce_utc(plan.valid_to) <= coerce_utc(plan.valid_from):
        await session.rollback()
        raise ValidationFailed("valid_to must be after valid_from")

    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise ValidationFailed("Rate plan update violates a store constraint") from exc
    await session.refresh(plan)
    logger.info("Rate plan %s updated", plan.id)
    return plan


async def list_promo_codes(
    session: AsyncSession, *, scope: Scope, active: bool | None = None
) -> Sequence[PromoCode]:
    scope.require_staff()
    stmt = select(PromoCode).order_by(PromoCode.code)
    if active is not None:
        stmt = stmt.where(PromoCode.active.is_(active))
    result = await session.execute(stmt)
    return result.scalars().all()


async def create_promo_code(
    session: AsyncSession, *, scope: Scope, payload: PromoCodeCreate
) -> PromoCode:
    scope.require_staff()
    for branch_id in payload.constraints.branch_ids:
        scope.require_branch(branch_id)
    promo = PromoCode(
        code=payload.code,
        type=payload.type,
        value=payload.value,
        currency=payload.currency,
        active=payload.active,
        valid_from=coerce_utc(payload.valid_from),
        valid_to=coerce_utc(payload.valid_to) if payload.valid_to else None,
        usage_limit=payload.usage_limit,
        constraints=payload.constraints.model_dump(mode="json"),
        notes=payload.notes,
    )
    session.add(promo)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise ValidationFailed(
            "Promo code already exists", code="PROMO_CODE_EXISTS"
        ) from exc
    await session.refresh(promo)
    logger.info("Promo code %s created", promo.code)
    return promo


async def get_rate_plan(
    session: AsyncSession, *, scope: Scope, plan_id: uuid.UUID
) -> RatePlan:
    scope.require_staff()
    plan = await session.get(RatePlan, plan_id)
    if plan is None:
        raise NotFound("Rate plan not found")
    if plan.branch_id is not None:
        scope.require_branch(plan.branch_id)
    return plan


def _require_promo_authority(scope: Scope, constraints: dict | None) -> None:
    scope.require_staff()
    for branch_id in (constraints or {}).get("branch_ids") or []:
        scope.require_branch(uuid.UUID(str(branch_id)))


async def get_promo_code(
    session: AsyncSession, *, scope: Scope, promo_id: uuid.UUID
) -> PromoCode:
    scope.require_staff()
    promo = await session.get(PromoCode, promo_id)
    if promo is None:
        raise NotFound("Promo code not found", code="PROMO_NOT_FOUND")
    return promo


async def update_promo_code(
    session: AsyncSession,
    *,
    scope: Scope,
    promo_id: uuid.UUID,
    payload: PromoCodeUpdate,
) -> PromoCode:
    """Partial update; ``{"active": false}`` switches a promo off immediately.

    ``used_count`` and ``code`` are not editable. Reservations already priced
    with the promo keep their frozen discount.
    """
    promo = await get_promo_code(session, scope=scope, promo_id=promo_id)
    _require_promo_authority(scope, promo.constraints)

    updates = payload.model_dump(exclude_unset=True)
    if "constraints" in updates:
        constraints = payload.constraints.model_dump(mode="json")
        _require_promo_authority(scope, constraints)
        updates["constraints"] = constraints
    for field in ("valid_from", "valid_to"):
        if updates.get(field) is not None:
            updates[field] = coerce_utc(updates[field])

    value = updates.get("value", promo.value)
    currency = updates.get("currency", promo.currency)
    if promo.type is PromoType.PERCENT and Decimal(value) > HUNDRED:
        raise ValidationFailed("Percent promo value cannot exceed 100")
    if promo.type is PromoType.FIXED and currency is None:
        raise ValidationFailed("Fixed promo codes require a currency")
    valid_from = updates.get("valid_from", promo.valid_from)
    valid_to = updates.get("valid_to", promo.valid_to)
    if valid_to is not None and coerce_utc(valid_to) <= coerce_utc(valid_from):
        raise ValidationFailed("valid_to must be after valid_from")

    for field, value in updates.items():
        setattr(promo, field, value)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise ValidationFailed("Promo code update violates a store constraint") from exc
    await session.refresh(promo)
    logger.info("Promo code %s updated (active=%s)", promo.code, promo.active)
    return promo
