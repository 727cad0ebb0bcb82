"""Dashboard KPIs and chart series, scoped like every other read."""

from __future__ import annotations

import uuid
from collections import Counter, defaultdict
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fleetdesk.models.branch import Branch
from fleetdesk.models.incident import OPEN_INCIDENT_STATUSES, VehicleIncident
from fleetdesk.models.mixins import coerce_utc
from fleetdesk.models.payment import PaymentKind, ReservationPayment
from fleetdesk.models.pricing import Currency
from fleetdesk.models.reservation import BLOCKING_STATUSES, Reservation, ReservationStatus
from fleetdesk.models.service_order import BLOCKING_SERVICE_STATUSES, ServiceOrder
from fleetdesk.models.vehicle import Vehicle, VehicleModel, VehicleStatus
from fleetdesk.services.pricing_service import resolve_currency
from fleetdesk.services.reporting_service import ReportWindow, resolve_window
from fleetdesk.services.scope_service import Scope

PIE_KEYS = (
    ReservationStatus.PENDING.value,
    ReservationStatus.CONFIRMED.value,
    ReservationStatus.CHECKED_OUT.value,
    "other",
)
TOP_BRANCHES = 10
CENTS = Decimal("0.01")


def _money(value: Any) -> str:
    return str(Decimal(str(value or 0)).quantize(CENTS))


def coarsen_statuses(counts: dict[str, int]) -> list[dict[str, Any]]:
    """Fold statuses into the four pie slices; missing slices are zero."""
    slices = dict.fromkeys(PIE_KEYS, 0)
    for status, value in counts.items():
        key = status if status in slices else "other"
        slices[key] += value
    return [{"label": label, "value": value} for label, value in slices.items()]


async def _scalar(session: AsyncSession, stmt: Select) -> Any:
    return (await session.execute(stmt)).scalar_one()


def _paid_charges(
    window: ReportWindow,
    branch_ids: frozenset[uuid.UUID] | None,
    currency: Currency,
) -> Select:
    """Charge entries in one currency; amounts in different currencies never mix."""
    stmt = (
        select(
            ReservationPayment.occurred_at,
            ReservationPayment.amount,
            Reservation.pickup_branch_id,
        )
        .join(Reservation, Reservation.id == ReservationPayment.reservation_id)
        .where(
            ReservationPayment.kind == PaymentKind.CHARGE,
            ReservationPayment.currency == currency,
            ReservationPayment.occurred_at >= window.start,
            ReservationPayment.occurred_at <= window.end,
        )
    )
    if branch_ids is not None:
        stmt = stmt.where(Reservation.pickup_branch_id.in_(branch_ids))
    return stmt


async def _kpis(
    session: AsyncSession,
    window: ReportWindow,
    branch_ids: frozenset[uuid.UUID] | None,
    currency: Currency,
) -> dict[str, Any]:
    branches = select(func.count()).select_from(Branch).where(Branch.active.is_(True))
    vehicles = select(func.count()).select_from(Vehicle)
    reservations = select(func.count()).select_from(Reservation)
    incidents = select(func.count()).select_from(VehicleIncident).where(
        VehicleIncident.status.in_(OPEN_INCIDENT_STATUSES)
    )
    services = (
        select(func.count())
        .select_from(ServiceOrder)
        .join(Vehicle, Vehicle.id == ServiceOrder.vehicle_id)
        .where(ServiceOrder.status.in_(BLOCKING_SERVICE_STATUSES))
    )
    if branch_ids is not None:
        branches = branches.where(Branch.id.in_(branch_ids))
        vehicles = vehicles.where(Vehicle.branch_id.in_(branch_ids))
        reservations = reservations.where(Reservation.pickup_branch_id.in_(branch_ids))
        incidents = incidents.where(VehicleIncident.branch_id.in_(branch_ids))
        services = services.where(Vehicle.branch_id.in_(branch_ids))

    revenue = _paid_charges(window, branch_ids, currency).subquery()
    return {
        "active_branches": await _scalar(session, branches),
        "total_vehicles": await _scalar(session, vehicles),
        "active_fleet": await _scalar(
            session, vehicles.where(Vehicle.status == VehicleStatus.ACTIVE)
        ),
        "reservations_in_range": await _scalar(
            session,
            reservations.where(
                Reservation.created_at >= window.start,
                Reservation.created_at <= window.end,
            ),
        ),
        "active_reservations": await _scalar(
            session, reservations.where(Reservation.status.in_(BLOCKING_STATUSES))
        ),
        "open_incidents": await _scalar(session, incidents),
        "open_service_orders": await _scalar(session, services),
        "revenue_currency": currency.value,
        "total_revenue_paid_in_range": _money(
            await _scalar(session, select(func.coalesce(func.sum(revenue.c.amount), 0)))
        ),
    }


async def _reservation_series(
    session: AsyncSession,
    window: ReportWindow,
    branch_ids: frozenset[uuid.UUID] | None,
) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
    stmt = select(Reservation.created_at, Reservation.status).where(
        Reservation.created_at >= window.start, Reservation.created_at <= window.end
    )
    if branch_ids is not None:
        stmt = stmt.where(Reservation.pickup_branch_id.in_(branch_ids))

    per_day: Counter[date] = Counter()
    by_status: Counter[str] = Counter()
    for created_at, status in (await session.execute(stmt)).all():
        per_day[coerce_utc(created_at).date()] += 1
        by_status[status.value] += 1

    line = [{"date": day.isoformat(), "value": per_day[day]} for day in sorted(per_day)]
    return line, coarsen_statuses(dict(by_status))


async def _revenue_per_day(
    session: AsyncSession,
    window: ReportWindow,
    branch_ids: frozenset[uuid.UUID] | None,
    currency: Currency,
) -> list[dict[str, Any]]:
    totals: dict[date, Decimal] = defaultdict(Decimal)
    counts: Counter[date] = Counter()
    for occurred_at, amount, _branch in (
        await session.execute(_paid_charges(window, branch_ids, currency))
    ).all():
        day = coerce_utc(occurred_at).date()
        totals[day] += Decimal(amount)
        counts[day] += 1
    return [
        {"date": day.isoformat(), "value": _money(totals[day]), "count": counts[day]}
        for day in sorted(totals)
    ]


async def _revenue_by_branch(
    session: AsyncSession,
    window: ReportWindow,
    branch_ids: frozenset[uuid.UUID] | None,
    currency: Currency,
) -> list[dict[str, Any]]:
    charges = _paid_charges(window, branch_ids, currency).subquery()
    total = func.sum(charges.c.amount)
    stmt = (
        select(
            charges.c.pickup_branch_id,
            Branch.name,
            total.label("total"),
            func.count().label("count"),
        )
        .outerjoin(Branch, Branch.id == charges.c.pickup_branch_id)
        .group_by(charges.c.pickup_branch_id, Branch.name)
        .order_by(total.desc())
        .limit(TOP_BRANCHES)
    )
    return [
        {
            "branch_id": str(branch_id),
            "label": name or "Unknown Branch",
            "value": _money(amount),
            "count": count,
        }
        for branch_id, name, amount, count in (await session.execute(stmt)).all()
    ]


async def _vehicles_by_class(
    session: AsyncSession, branch_ids: frozenset[uuid.UUID] | None
) -> list[dict[str, Any]]:
    count = func.count(Vehicle.id)
    stmt = (
        select(VehicleModel.vehicle_class, count.label("value"))
        .join(Vehicle, Vehicle.vehicle_model_id == VehicleModel.id)
        .group_by(VehicleModel.vehicle_class)
        .order_by(count.desc())
    )
    if branch_ids is not None:
        stmt = stmt.where(Vehicle.branch_id.in_(branch_ids))
    return [
        {"label": vehicle_class.value, "value": value}
        for vehicle_class, value in (await session.execute(stmt)).all()
    ]


async def build_dashboard(
    session: AsyncSession,
    *,
    scope: Scope,
    start: datetime | None = None,
    end: datetime | None = None,
    branch_id: uuid.UUID | None = None,
    currency: Currency | str | None = None,
) -> dict[str, Any]:
    """Revenue figures cover a single currency, the configured default unless given."""
    scope.require_staff()
    window = resolve_window(start, end)
    currency = resolve_currency(currency)
    branch_ids = scope.effective_branch_ids(branch_id)

    reservations_per_day, pie = await _reservation_series(session, window, branch_ids)
    revenue_per_day = await _revenue_per_day(session, window, branch_ids, currency)
    revenue_by_branch = await _revenue_by_branch(session, window, branch_ids, currency)
    return {
        "range": {"start": window.start, "end": window.end},
        "kpis": await _kpis(session, window, branch_ids, currency),
        "charts": {
            "pie": {"reservations_by_status": pie},
            "lines": {
                "reservations_per_day": reservations_per_day,
                "revenue_per_day": revenue_per_day,
            },
            "bars": {
                "revenue_by_branch": revenue_by_branch,
                "vehicles_by_class": await _vehicles_by_class(session, branch_ids),
            },
        },
    }
