"""Scoped tabular reports over reservations, payments, incidents, fleet and services."""

from __future__ import annotations

import math
import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fleetdesk.core.config import get_settings
from fleetdesk.core.errors import ValidationFailed
from fleetdesk.models.incident import VehicleIncident
from fleetdesk.models.mixins import coerce_utc, utcnow
from fleetdesk.models.payment import ReservationPayment
from fleetdesk.models.reservation import Reservation
from fleetdesk.models.service_order import ServiceOrder
from fleetdesk.models.vehicle import Vehicle
from fleetdesk.schemas.reporting import ReportType
from fleetdesk.services.scope_service import Scope


@dataclass(frozen=True, slots=True)
class ReportWindow:
    start: datetime
    end: datetime


@dataclass(frozen=True, slots=True)
class Page:
    page: int
    limit: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def resolve_window(start: datetime | None, end: datetime | None) -> ReportWindow:
    """Default to the trailing reporting window ending now; both bounds inclusive."""
    end = coerce_utc(end) if end is not None else utcnow()
    if start is None:
        start = end - timedelta(days=get_settings().report_default_window_days)
    start = coerce_utc(start)
    if start > end:
        raise ValidationFailed("Invalid date range: from must be <= to", code="INVALID_RANGE")
    return ReportWindow(start, end)


def resolve_page(page: int | None, limit: int | None) -> Page:
    ceiling = get_settings().report_page_limit_max
    page = max(page or 1, 1)
    limit = min(max(limit or 25, 1), ceiling)
    return Page(page, limit)


def _paging(page: Page, total: int) -> dict[str, int]:
    return {
        "page": page.page,
        "limit": page.limit,
        "total": total,
        "total_pages": math.ceil(total / page.limit) if total else 0,
    }


def _value(value: Any) -> Any:
    if hasattr(value, "value"):
        return value.value
    if isinstance(value, datetime):
        return coerce_utc(value).isoformat()
    if isinstance(value, (uuid.UUID, Decimal)):
        return str(value)
    return value


def _rows(columns: list[str], records: Iterable[Any]) -> list[dict[str, Any]]:
    return [
        {column: _value(value) for column, value in zip(columns, record)}
        for record in records
    ]


async def _count(session: AsyncSession, stmt: Select) -> int:
    return (
        await session.execute(select(func.count()).select_from(stmt.subquery()))
    ).scalar_one()


async def _grouped(
    session: AsyncSession, stmt: Select, column: Any, label: str
) -> list[dict[str, Any]]:
    subquery = stmt.with_only_columns(column.label("group_key")).subquery()
    grouped = (
        select(subquery.c.group_key, func.count().label("count"))
        .group_by(subquery.c.group_key)
        .order_by(func.count().desc())
    )
    return [
        {label: _value(key), "count": count}
        for key, count in (await session.execute(grouped)).all()
    ]


async def _tabular(
    session: AsyncSession,
    *,
    report_type: ReportType,
    base: Select,
    columns: list[str],
    order_by: Any,
    page: Page,
    summary: dict[str, Any],
) -> dict[str, Any]:
    total = await _count(session, base)
    result = await session.execute(
        base.order_by(order_by).offset(page.offset).limit(page.limit)
    )
    summary["total_rows"] = total
    return {
        "type": report_type.value,
        "columns": columns,
        "rows": _rows(columns, result.all()),
        "summary": summary,
        "paging": _paging(page, total),
    }


async def reservations_report(
    session: AsyncSession,
    *,
    window: ReportWindow,
    branch_ids: frozenset[uuid.UUID] | None,
    page: Page,
) -> dict[str, Any]:
    columns = [
        "code",
        "status",
        "created_at",
        "pickup_branch_id",
        "pickup_at",
        "dropoff_branch_id",
        "dropoff_at",
        "payment_status",
        "paid_total",
    ]
    base = select(*(getattr(Reservation, column) for column in columns)).where(
        Reservation.created_at >= window.start, Reservation.created_at <= window.end
    )
    if branch_ids is not None:
        base = base.where(Reservation.pickup_branch_id.in_(branch_ids))
    return await _tabular(
        session,
        report_type=ReportType.RESERVATIONS,
        base=base,
        columns=columns,
        order_by=Reservation.created_at.desc(),
        page=page,
        summary={"by_status": await _grouped(session, base, Reservation.status, "status")},
    )


async def payments_report(
    session: AsyncSession,
    *,
    window: ReportWindow,
    branch_ids: frozenset[uuid.UUID] | None,
    page: Page,
) -> dict[str, Any]:
    columns = [
        "id",
        "reservation_code",
        "branch_id",
        "payment_id",
        "kind",
        "provider",
        "method",
        "currency",
        "amount",
        "occurred_at",
    ]
    base = (
        select(
            ReservationPayment.id,
            Reservation.code,
            Reservation.pickup_branch_id,
            ReservationPayment.payment_id,
            ReservationPayment.kind,
            ReservationPayment.provider,
            ReservationPayment.method,
            ReservationPayment.currency,
            ReservationPayment.amount,
            ReservationPayment.occurred_at,
        )
        .join(Reservation, Reservation.id == ReservationPayment.reservation_id)
        .where(
            ReservationPayment.occurred_at >= window.start,
            ReservationPayment.occurred_at <= window.end,
        )
    )
    if branch_ids is not None:
        base = base.where(Reservation.pickup_branch_id.in_(branch_ids))

    subquery = base.subquery()
    grouped = (
        select(
            subquery.c.kind,
            subquery.c.currency,
            func.count().label("count"),
            func.coalesce(func.sum(subquery.c.amount), 0).label("total_amount"),
        )
        .group_by(subquery.c.kind, subquery.c.currency)
        .order_by(func.count().desc(), subquery.c.currency)
    )
    # Sums are per currency; USD and ZWL amounts are never added together.
    by_payment_status = [
        {
            "status": _value(kind),
            "currency": _value(currency),
            "count": count,
            "total_amount": str(Decimal(str(total)).quantize(Decimal("0.01"))),
        }
        for kind, currency, count, total in (await session.execute(grouped)).all()
    ]
    return await _tabular(
        session,
        report_type=ReportType.PAYMENTS,
        base=base,
        columns=columns,
        order_by=ReservationPayment.occurred_at.desc(),
        page=page,
        summary={"by_payment_status": by_payment_status},
    )


async def incidents_report(
    session: AsyncSession,
    *,
    window: ReportWindow,
    branch_ids: frozenset[uuid.UUID] | None,
    page: Page,
) -> dict[str, Any]:
    columns = [
        "vehicle_id",
        "reservation_id",
        "branch_id",
        "type",
        "severity",
        "status",
        "occurred_at",
        "estimated_cost",
        "final_cost",
    ]
    base = select(*(getattr(VehicleIncident, column) for column in columns)).where(
        VehicleIncident.occurred_at >= window.start,
        VehicleIncident.occurred_at <= window.end,
    )
    if branch_ids is not None:
        base = base.where(VehicleIncident.branch_id.in_(branch_ids))
    return await _tabular(
        session,
        report_type=ReportType.INCIDENTS,
        base=base,
        columns=columns,
        order_by=VehicleIncident.occurred_at.desc(),
        page=page,
        summary={
            "by_status": await _grouped(session, base, VehicleIncident.status, "status")
        },
    )


async def fleet_report(
    session: AsyncSession,
    *,
    branch_ids: frozenset[uuid.UUID] | None,
    page: Page,
) -> dict[str, Any]:
    """Current fleet snapshot; the date window does not apply."""
    columns = [
        "plate_number",
        "branch_id",
        "status",
        "availability_state",
        "odometer_km",
        "created_at",
    ]
    base = select(*(getattr(Vehicle, column) for column in columns))
    if branch_ids is not None:
        base = base.where(Vehicle.branch_id.in_(branch_ids))
    return await _tabular(
        session,
        report_type=ReportType.FLEET,
        base=base,
        columns=columns,
        order_by=Vehicle.created_at.desc(),
        page=page,
        summary={
            "by_status": await _grouped(session, base, Vehicle.status, "status"),
            "by_availability": await _grouped(
                session, base, Vehicle.availability_state, "state"
            ),
        },
    )


async def services_report(
    session: AsyncSession,
    *,
    window: ReportWindow,
    branch_ids: frozenset[uuid.UUID] | None,
    page: Page,
) -> dict[str, Any]:
    columns = [
        "id",
        "vehicle_id",
        "branch_id",
        "type",
        "status",
        "odometer_km",
        "cost",
        "created_at",
    ]
    base = (
        select(
            ServiceOrder.id,
            ServiceOrder.vehicle_id,
            Vehicle.branch_id,
            ServiceOrder.type,
            ServiceOrder.status,
            ServiceOrder.odometer_km,
            ServiceOrder.cost,
            ServiceOrder.created_at,
        )
        .join(Vehicle, Vehicle.id == ServiceOrder.vehicle_id)
        .where(
            ServiceOrder.created_at >= window.start,
            ServiceOrder.created_at <= window.end,
        )
    )
    if branch_ids is not None:
        base = base.where(Vehicle.branch_id.in_(branch_ids))
    return await _tabular(
        session,
        report_type=ReportType.SERVICES,
        base=base,
        columns=columns,
        order_by=ServiceOrder.created_at.desc(),
        page=page,
        summary={
            "by_status": await _grouped(session, base, ServiceOrder.status, "status")
        },
    )


async def build_report(
    session: AsyncSession,
    *,
    scope: Scope,
    report_type: ReportType,
    start: datetime | None = None,
    end: datetime | None = None,
    branch_id: uuid.UUID | None = None,
    page: int | None = None,
    limit: int | None = None,
) -> dict[str, Any]:
    """Dispatch to the requested report after intersecting with the actor's scope."""
    scope.require_staff()
    window = resolve_window(start, end)
    paging = resolve_page(page, limit)
    branch_ids = scope.effective_branch_ids(branch_id)

    if report_type is ReportType.RESERVATIONS:
        return await reservations_report(
            session, window=window, branch_ids=branch_ids, page=paging
        )
    if report_type is ReportType.PAYMENTS:
        return await payments_report(
            session, window=window, branch_ids=branch_ids, page=paging
        )
    if report_type is ReportType.INCIDENTS:
        return await incidents_report(
            session, window=window, branch_ids=branch_ids, page=paging
        )
    if report_type is ReportType.FLEET:
        return await fleet_report(session, branch_ids=branch_ids, page=paging)
    return await services_report(
        session, window=window, branch_ids=branch_ids, page=paging
    )
