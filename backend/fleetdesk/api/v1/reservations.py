"""Reservation management API."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Query, status

from fleetdesk.api import deps
from fleetdesk.api.rate_limit import parse_rate, rate_dependency
from fleetdesk.core.config import get_settings
from fleetdesk.models.reservation import ReservationStatus
from fleetdesk.schemas.common import Envelope
from fleetdesk.schemas.payment import PaymentEvent
from fleetdesk.schemas.reservation import (
    AvailabilityQuery,
    AvailabilityResult,
    ReservationCreate,
    ReservationListQuery,
    ReservationRead,
    ReservationStatusUpdate,
    ReservationUpdate,
)
from fleetdesk.services import payment_service, reservation_service

router = APIRouter()

settings = get_settings()

_WRITE_RATE_DEP = rate_dependency(
    parse_rate(settings.rate_limit_reservations, fallback=(30, 60))
)


def _read(reservation) -> ReservationRead:
    return ReservationRead.model_validate(reservation)


@router.get(
    "", response_model=Envelope[list[ReservationRead]], summary="List reservations"
)
async def list_reservations(
    session: deps.DbSession,
    scope: deps.ActorScope,
    code: str | None = None,
    user_id: uuid.UUID | None = None,
    status_filter: Annotated[ReservationStatus | None, Query(alias="status")] = None,
    vehicle_id: uuid.UUID | None = None,
    vehicle_model_id: uuid.UUID | None = None,
    created_by: uuid.UUID | None = None,
    pickup_from: datetime | None = None,
    pickup_to: datetime | None = None,
    dropoff_from: datetime | None = None,
    dropoff_to: datetime | None = None,
    skip: Annotated[int, Query(ge=0)] = 0,
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
) -> Envelope[list[ReservationRead]]:
    filters = ReservationListQuery(
        code=code,
        user_id=user_id,
        status=status_filter,
        vehicle_id=vehicle_id,
        vehicle_model_id=vehicle_model_id,
        created_by=created_by,
        pickup_from=pickup_from,
        pickup_to=pickup_to,
        dropoff_from=dropoff_from,
        dropoff_to=dropoff_to,
        skip=skip,
        limit=limit,
    )
    reservations = await reservation_service.list_reservations(
        session, scope=scope, filters=filters
    )
    return Envelope(data=[_read(obj) for obj in reservations])


@router.post(
    "",
    response_model=Envelope[ReservationRead],
    status_code=status.HTTP_201_CREATED,
    summary="Create reservation",
    dependencies=[_WRITE_RATE_DEP],
)
async def create_reservation(
    payload: ReservationCreate,
    session: deps.DbSession,
    scope: deps.ActorScope,
    background_tasks: BackgroundTasks,
) -> Envelope[ReservationRead]:
    reservation = await reservation_service.create_reservation(
        session, scope=scope, payload=payload, background_tasks=background_tasks
    )
    return Envelope(message="Reservation created", data=_read(reservation))


@router.post(
    "/availability",
    response_model=Envelope[AvailabilityResult],
    summary="Check vehicle availability",
)
async def check_availability(
    payload: AvailabilityQuery,
    session: deps.DbSession,
    scope: deps.ActorScope,
    service_aware: bool = False,
) -> Envelope[AvailabilityResult]:
    available = await reservation_service.check_vehicle_availability(
        session,
        vehicle_id=payload.vehicle_id,
        start=payload.start,
        end=payload.end,
        service_aware=service_aware,
    )
    return Envelope(data=AvailabilityResult(available=available))


@router.get(
    "/{reservation_id}",
    response_model=Envelope[ReservationRead],
    summary="Get reservation",
)
async def get_reservation(
    reservation_id: uuid.UUID,
    session: deps.DbSession,
    scope: deps.ActorScope,
) -> Envelope[ReservationRead]:
    reservation = await reservation_service.get_reservation(
        session, scope=scope, reservation_id=reservation_id
    )
    return Envelope(data=_read(reservation))


@router.patch(
    "/{reservation_id}",
    response_model=Envelope[ReservationRead],
    summary="Update reservation",
    dependencies=[_WRITE_RATE_DEP],
)
async def update_reservation(
    reservation_id: uuid.UUID,
    payload: ReservationUpdate,
    session: deps.DbSession,
    scope: deps.StaffScope,
) -> Envelope[ReservationRead]:
    reservation = await reservation_service.update_reservation(
        session, scope=scope, reservation_id=reservation_id, payload=payload
    )
    return Envelope(message="Reservation updated", data=_read(reservation))


@router.patch(
    "/{reservation_id}/status",
    response_model=Envelope[ReservationRead],
    summary="Transition reservation status",
)
async def update_reservation_status(
    reservation_id: uuid.UUID,
    payload: ReservationStatusUpdate,
    session: deps.DbSession,
    scope: deps.StaffScope,
    background_tasks: BackgroundTasks,
) -> Envelope[ReservationRead]:
    reservation = await reservation_service.transition_reservation(
        session,
        scope=scope,
        reservation_id=reservation_id,
        new_status=payload.status,
        background_tasks=background_tasks,
    )
    return Envelope(message="Reservation status updated", data=_read(reservation))


@router.delete(
    "/{reservation_id}",
    response_model=Envelope[None],
    summary="Delete reservation",
)
async def delete_reservation(
    reservation_id: uuid.UUID,
    session: deps.DbSession,
    scope: deps.ActorScope,
) -> Envelope[None]:
    await reservation_service.delete_reservation(
        session, scope=scope, reservation_id=reservation_id
    )
    return Envelope(message="Reservation deleted")


@router.post(
    "/{reservation_id}/payments",
    response_model=Envelope[ReservationRead],
    summary="Apply a payment event to the reservation",
)
async def apply_payment(
    reservation_id: uuid.UUID,
    payload: PaymentEvent,
    session: deps.DbSession,
    scope: deps.StaffScope,
) -> Envelope[ReservationRead]:
    reservation = await payment_service.apply_payment(
        session, reservation_id=reservation_id, payment=payload, scope=scope
    )
    return Envelope(data=_read(reservation))
