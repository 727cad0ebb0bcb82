"""Vehicle availability answers over half-open time ranges."""
from __future__ import annotations

import uuid
from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fleetdesk.core.errors import invalid_range
from fleetdesk.models.mixins import coerce_utc
from fleetdesk.models.reservation import BLOCKING_STATUSES, Reservation, ReservationStatus
from fleetdesk.models.service_order import BLOCKING_SERVICE_STATUSES, ServiceOrder
from fleetdesk.models.vehicle import AvailabilityState, Vehicle


def validate_range(start: datetime, end: datetime) -> tuple[datetime, datetime]:
    start_utc, end_utc = coerce_utc(start), coerce_utc(end)
    if start_utc >= end_utc:
        raise invalid_range()
    return start_utc, end_utc


def ranges_overlap(
    a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime
) -> bool:
    """[a, b) and [c, d) overlap iff a < d and c < b."""
    return coerce_utc(a_start) < coerce_utc(b_end) and coerce_utc(b_start) < coerce_utc(
        a_end
    )


def _overlap_query(
    vehicle_id: uuid.UUID,
    start: datetime,
    end: datetime,
    exclude_reservation_id: uuid.UUID | None,
):
    stmt = select(Reservation).where(
        Reservation.vehicle_id == vehicle_id,
        Reservation.status.in_(BLOCKING_STATUSES),
        Reservation.pickup_at < end,
        Reservation.dropoff_at > start,
    )
    if exclude_reservation_id is not None:
        stmt = stmt.where(Reservation.id != exclude_reservation_id)
    return stmt


async def overlapping_reservations(
    session: AsyncSession,
    *,
    vehicle_id: uuid.UUID,
    start: datetime,
    end: datetime,
    exclude_reservation_id: uuid.UUID | None = None,
) -> Sequence[Reservation]:
    """Blocking reservations on the vehicle that intersect [start, end)."""
    start, end = validate_range(start, end)
    stmt = _overlap_query(vehicle_id, start, end, exclude_reservation_id).order_by(
        Reservation.pickup_at
    )
    result = await session.execute(stmt)
    return result.scalars().all()


async def active_service_orders(
    session: AsyncSession, *, vehicle_id: uuid.UUID
) -> Sequence[ServiceOrder]:
    result = await session.execute(
        select(ServiceOrder).where(
            ServiceOrder.vehicle_id == vehicle_id,
            ServiceOrder.status.in_(BLOCKING_SERVICE_STATUSES),
        )
    )
    return result.scalars().all()


async def is_vehicle_free(
    session: AsyncSession,
    *,
    vehicle_id: uuid.UUID,
    start: datetime,
    end: datetime,
    service_aware: bool = False,
    exclude_reservation_id: uuid.UUID | None = None,
) -> bool:
    """True when no blocking reservation (and optionally no open service) exists.

    Unknown vehicles are reported free; existence is validated by the engine.
    """
    start, end = validate_range(start, end)
    count_stmt = select(func.count()).select_from(
        _overlap_query(vehicle_id, start, end, exclude_reservation_id).subquery()
    )
    conflicts = (await session.execute(count_stmt)).scalar_one()
    if conflicts:
        return False
    if service_aware and await active_service_orders(session, vehicle_id=vehicle_id):
        return False
    return True


async def has_blocking_reservation(
    session: AsyncSession,
    *,
    vehicle_id: uuid.UUID,
    exclude_reservation_id: uuid.UUID | None = None,
) -> bool:
    """Whether any blocking reservation, at any time, still references the vehicle."""
    stmt = select(func.count()).select_from(Reservation).where(
        Reservation.vehicle_id == vehicle_id,
        Reservation.status.in_(BLOCKING_STATUSES),
    )
    if exclude_reservation_id is not None:
        stmt = stmt.where(Reservation.id != exclude_reservation_id)
    return bool((await session.execute(stmt)).scalar_one())


async def sync_availability_state(
    session: AsyncSession, vehicle_id: uuid.UUID
) -> AvailabilityState | None:
    """Recompute the vehicle's availability hint from flushed store state.

    Open service work wins over an active rental, which wins over a pending
    booking. The caller commits.
    """
    vehicle = await session.get(Vehicle, vehicle_id)
    if vehicle is None:
        return None
    await session.flush()

    if await active_service_orders(session, vehicle_id=vehicle_id):
        state = AvailabilityState.BLOCKED
    else:
        out_stmt = select(func.count()).select_from(Reservation).where(
            Reservation.vehicle_id == vehicle_id,
            Reservation.status == ReservationStatus.CHECKED_OUT,
        )
        if (await session.execute(out_stmt)).scalar_one():
            state = AvailabilityState.OUT
        elif await has_blocking_reservation(session, vehicle_id=vehicle_id):
            state = AvailabilityState.RESERVED
        else:
            state = AvailabilityState.AVAILABLE
    vehicle.set_availability(state)
    return state
