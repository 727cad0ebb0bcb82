"""Payment ledger and the reservation payment-summary rollup."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fleetdesk.core.errors import NotFound, ValidationFailed
from fleetdesk.models.mixins import coerce_utc
from fleetdesk.models.payment import PaymentKind, ReservationPayment
from fleetdesk.models.pricing import Currency
from fleetdesk.models.pricing_snapshot import ZERO, quantize_money
from fleetdesk.models.reservation import PaymentSummaryStatus, Reservation
from fleetdesk.schemas.payment import PaymentEvent
from fleetdesk.services.scope_service import Scope

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PaymentSummary:
    status: PaymentSummaryStatus
    paid_total: Decimal
    outstanding: Decimal
    last_payment_at: datetime | None


def summarize(
    entries: Iterable[ReservationPayment], *, grand_total: Decimal, currency: Currency
) -> PaymentSummary:
    """Fold the full ledger into a summary; independent of entry order."""
    charges = ZERO
    refunds = ZERO
    voided = False
    last_payment_at: datetime | None = None
    for entry in entries:
        if entry.kind is PaymentKind.CHARGE:
            charges += Decimal(entry.amount)
            occurred_at = coerce_utc(entry.occurred_at)
            if last_payment_at is None or occurred_at > last_payment_at:
                last_payment_at = occurred_at
        elif entry.kind is PaymentKind.REFUND:
            refunds += Decimal(entry.amount)
        else:
            voided = True

    paid_total = quantize_money(max(charges - refunds, ZERO), currency)
    outstanding = quantize_money(max(grand_total - paid_total, ZERO), currency)
    if voided:
        status = PaymentSummaryStatus.VOID
    elif refunds > ZERO and paid_total == ZERO:
        status = PaymentSummaryStatus.REFUNDED
    elif paid_total == ZERO:
        status = PaymentSummaryStatus.UNPAID
    elif paid_total < grand_total:
        status = PaymentSummaryStatus.PARTIAL
    else:
        status = PaymentSummaryStatus.PAID
    return PaymentSummary(status, paid_total, outstanding, last_payment_at)


async def _ledger(
    session: AsyncSession, reservation_id: uuid.UUID
) -> list[ReservationPayment]:
    result = await session.execute(
        select(ReservationPayment).where(
            ReservationPayment.reservation_id == reservation_id
        )
    )
    return list(result.scalars().all())


async def apply_payment(
    session: AsyncSession,
    *,
    reservation_id: uuid.UUID,
    payment: PaymentEvent,
    scope: Scope | None = None,
) -> Reservation:
    """Record a payment event and recompute the summary.

    Replaying a ``payment_id`` already on the ledger leaves the summary as is.
    ``scope`` is omitted when the payment subsystem calls in directly.
    """
    reservation = await session.get(Reservation, reservation_id)
    if reservation is None:
        raise NotFound("Reservation not found", code="RESERVATION_NOT_FOUND")
    if scope is not None:
        scope.require_staff()
        scope.require_branch(reservation.pickup_branch_id)

    currency = Currency(reservation.currency)
    if payment.currency != currency:
        raise ValidationFailed(
            "Payment currency does not match reservation pricing",
            code="CURRENCY_MISMATCH",
        )

    existing = await session.execute(
        select(ReservationPayment.id).where(
            ReservationPayment.reservation_id == reservation_id,
            ReservationPayment.payment_id == payment.payment_id,
        )
    )
    if existing.scalar_one_or_none() is not None:
        logger.info(
            "Payment %s already applied to reservation %s", payment.payment_id, reservation_id
        )
        return reservation

    session.add(
        ReservationPayment(
            reservation_id=reservation_id,
            payment_id=payment.payment_id,
            kind=payment.kind,
            amount=quantize_money(payment.amount, currency),
            currency=currency,
            provider=payment.provider,
            method=payment.method,
            occurred_at=coerce_utc(payment.occurred_at),
        )
    )
    try:
        await session.flush()
    except IntegrityError:
        # A concurrent request recorded the same event first.
        await session.rollback()
        return await session.get(Reservation, reservation_id, populate_existing=True)

    summary = summarize(
        await _ledger(session, reservation_id),
        grand_total=reservation.grand_total,
        currency=currency,
    )
    reservation.payment_status = summary.status
    reservation.paid_total = summary.paid_total
    reservation.outstanding = summary.outstanding
    reservation.last_payment_at = summary.last_payment_at
    await session.commit()
    await session.refresh(reservation)
    logger.info(
        "Payment %s applied to reservation %s: %s",
        payment.payment_id,
        reservation.code,
        summary.status.value,
    )
    return reservation
