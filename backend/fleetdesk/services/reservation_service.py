"""Reservation engine: booking, rescheduling, status transitions and cleanup."""
from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from contextlib import nullcontext
from datetime import datetime

from fastapi import BackgroundTasks
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fleetdesk.core.config import get_settings
from fleetdesk.core.errors import (
    Forbidden,
    InternalError,
    NotFound,
    ReservationCodeDuplicate,
    ReservationStatusInvalid,
    ServiceError,
    ValidationFailed,
    VehicleUnavailable,
)
from fleetdesk.models.branch import Branch
from fleetdesk.models.mixins import utcnow
from fleetdesk.models.pricing_snapshot import PricingSnapshot
from fleetdesk.models.reservation import (
    ALLOWED_TRANSITIONS,
    BLOCKING_STATUSES,
    TERMINAL_STATUSES,
    Reservation,
    ReservationCodeSequence,
    ReservationStatus,
)
from fleetdesk.models.user import User, UserStatus
from fleetdesk.models.vehicle import Vehicle, VehicleModel, VehicleStatus
from fleetdesk.schemas.reservation import ReservationCreate, ReservationListQuery, ReservationUpdate
from fleetdesk.services import notification_service, pricing_service
from fleetdesk.services.availability_service import (
    is_vehicle_free,
    overlapping_reservations,
    sync_availability_state,
    validate_range,
)
from fleetdesk.services.lock_service import vehicle_lock
from fleetdesk.services.scope_service import Scope

logger = logging.getLogger(__name__)

CODE_SEQUENCE_WIDTH = 6
# Substrings naming the code unique constraint or the sequence key in driver errors.
_CODE_COLLISION_MARKERS = ("reservations.code", "reservations_code", "reservation_code_sequences")


def _is_code_collision(exc: IntegrityError) -> bool:
    message = str(exc.orig).lower()
    return any(marker in message for marker in _CODE_COLLISION_MARKERS)


def _assert_transition(current: ReservationStatus, target: ReservationStatus) -> None:
    if target not in ALLOWED_TRANSITIONS.get(current, frozenset()):
        raise ReservationStatusInvalid(
            f"Cannot move reservation from {current.value} to {target.value}",
            details={"from": current.value, "to": target.value},
        )


async def _load(session: AsyncSession, reservation_id: uuid.UUID) -> Reservation:
    stmt = (
        select(Reservation)
        .where(Reservation.id == reservation_id)
        .execution_options(populate_existing=True)
    )
    reservation = (await session.execute(stmt)).scalar_one_or_none()
    if reservation is None:
        raise NotFound("Reservation not found", code="RESERVATION_NOT_FOUND")
    return reservation


async def _commit(session: AsyncSession, failure: str) -> None:
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        logger.warning("%s: %s", failure, exc.orig)
        raise ValidationFailed(f"{failure}: conflicting or missing related data") from exc
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.exception("%s", failure)
        raise InternalError(failure) from exc


async def _require_branch(session: AsyncSession, branch_id: uuid.UUID, role: str) -> Branch:
    branch = await session.get(Branch, branch_id)
    if branch is None:
        raise ValidationFailed(f"{role.capitalize()} branch not found")
    if not branch.active:
        raise ValidationFailed(f"{role.capitalize()} branch is not active")
    return branch


async def _require_renter(session: AsyncSession, user_id: uuid.UUID) -> User:
    renter = await session.get(User, user_id)
    if renter is None:
        raise ValidationFailed("Renter not found")
    if renter.status != UserStatus.ACTIVE:
        raise ValidationFailed("Renter account is not active")
    return renter


async def _require_vehicle_model(
    session: AsyncSession, vehicle_model_id: uuid.UUID
) -> VehicleModel:
    vehicle_model = await session.get(VehicleModel, vehicle_model_id)
    if vehicle_model is None:
        raise ValidationFailed("Vehicle model not found")
    return vehicle_model


async def _require_assignable_vehicle(
    session: AsyncSession, vehicle_id: uuid.UUID, vehicle_model_id: uuid.UUID
) -> Vehicle:
    vehicle = await session.get(Vehicle, vehicle_id)
    if vehicle is None:
        raise ValidationFailed("Vehicle not found")
    if vehicle.vehicle_model_id != vehicle_model_id:
        raise ValidationFailed("Vehicle does not match the requested vehicle model")
    if vehicle.status != VehicleStatus.ACTIVE:
        raise ValidationFailed("Vehicle is not in active service")
    return vehicle


async def _ensure_vehicle_free(
    session: AsyncSession,
    *,
    vehicle_id: uuid.UUID,
    start: datetime,
    end: datetime,
    exclude_reservation_id: uuid.UUID | None = None,
) -> None:
    conflicts = await overlapping_reservations(
        session,
        vehicle_id=vehicle_id,
        start=start,
        end=end,
        exclude_reservation_id=exclude_reservation_id,
    )
    if conflicts:
        raise VehicleUnavailable(
            details={"conflicting_codes": [conflict.code for conflict in conflicts]}
        )


async def _next_code(session: AsyncSession, prefix: str, year: int) -> str:
    """Advance the (prefix, year) counter inside the caller's transaction."""
    bump = (
        update(ReservationCodeSequence)
        .where(
            ReservationCodeSequence.prefix == prefix,
            ReservationCodeSequence.year == year,
        )
        .values(last_value=ReservationCodeSequence.last_value + 1)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(bump)
    if result.rowcount == 0:
        session.add(ReservationCodeSequence(prefix=prefix, year=year, last_value=1))
        await session.flush()
        value = 1
    else:
        value = (
            await session.execute(
                select(ReservationCodeSequence.last_value).where(
                    ReservationCodeSequence.prefix == prefix,
                    ReservationCodeSequence.year == year,
                )
            )
        ).scalar_one()
    return f"{prefix}-{year}-{value:0{CODE_SEQUENCE_WIDTH}d}"


def _require_staff_scope(scope: Scope, reservation: Reservation) -> None:
    scope.require_staff()
    scope.require_branch(reservation.pickup_branch_id)


async def create_reservation(
    session: AsyncSession,
    *,
    scope: Scope,
    payload: ReservationCreate,
    background_tasks: BackgroundTasks | None = None,
) -> Reservation:
    """Validate, price, lock, check, code and persist a new pending reservation."""
    renter_id = payload.user_id or scope.actor_id
    if not scope.is_staff:
        if renter_id != scope.actor_id:
            raise Forbidden("Customers can only create reservations for themselves")
        if payload.pricing is not None:
            raise Forbidden("Only staff can supply pricing")

    pickup_at, dropoff_at = validate_range(payload.pickup.at, payload.dropoff.at)
    pickup_branch = await _require_branch(session, payload.pickup.branch_id, "pickup")
    await _require_branch(session, payload.dropoff.branch_id, "dropoff")
    scope.require_branch(pickup_branch.id)
    await _require_renter(session, renter_id)
    vehicle_model = await _require_vehicle_model(session, payload.vehicle_model_id)
    vehicle_id = None
    if payload.vehicle_id is not None:
        vehicle = await _require_assignable_vehicle(
            session, payload.vehicle_id, vehicle_model.id
        )
        vehicle_id = vehicle.id

    promo_id = None
    if payload.pricing is not None:
        snapshot = pricing_service.freeze_supplied(payload.pricing)
    else:
        snapshot, promo = await pricing_service.quote(
            session,
            vehicle_model_id=vehicle_model.id,
            vehicle_id=vehicle_id,
            pickup_branch_id=pickup_branch.id,
            pickup_at=pickup_at,
            dropoff_at=dropoff_at,
            currency=payload.currency,
            promo_code=payload.promo_code,
        )
        promo_id = promo.id if promo is not None else None

    prefix = pickup_branch.code_prefix
    guard = vehicle_lock(session, vehicle_id) if vehicle_id else nullcontext()
    async with guard:
        reservation_id = await _insert_reservation(
            session,
            scope=scope,
            payload=payload,
            renter_id=renter_id,
            vehicle_id=vehicle_id,
            pickup_at=pickup_at,
            dropoff_at=dropoff_at,
            snapshot=snapshot,
            promo_id=promo_id,
            prefix=prefix,
        )

    reservation = await _load(session, reservation_id)
    logger.info("Reservation %s created (%s)", reservation.code, reservation.id)
    if background_tasks is not None:
        notification_service.notify_reservation_created(reservation, background_tasks)
    return reservation


async def _insert_reservation(
    session: AsyncSession,
    *,
    scope: Scope,
    payload: ReservationCreate,
    renter_id: uuid.UUID,
    vehicle_id: uuid.UUID | None,
    pickup_at: datetime,
    dropoff_at: datetime,
    snapshot: PricingSnapshot,
    promo_id: uuid.UUID | None,
    prefix: str,
) -> uuid.UUID:
    retries = max(1, get_settings().reservation_code_retries)
    driver_snapshot = (
        payload.driver_snapshot.model_dump(mode="json", exclude_none=True)
        if payload.driver_snapshot
        else None
    )
    for attempt in range(1, retries + 1):
        try:
            if vehicle_id is not None:
                await _ensure_vehicle_free(
                    session, vehicle_id=vehicle_id, start=pickup_at, end=dropoff_at
                )
            code = await _next_code(session, prefix, pickup_at.year)
            reservation = Reservation(
                code=code,
                user_id=renter_id,
                created_by=scope.actor_id,
                created_channel=payload.created_channel,
                vehicle_model_id=payload.vehicle_model_id,
                vehicle_id=vehicle_id,
                pickup_branch_id=payload.pickup.branch_id,
                pickup_at=pickup_at,
                dropoff_branch_id=payload.dropoff.branch_id,
                dropoff_at=dropoff_at,
                status=ReservationStatus.PENDING,
                pricing=snapshot.to_document(),
                paid_total=0,
                outstanding=snapshot.grand_total,
                driver_snapshot=driver_snapshot,
                notes=payload.notes or "",
            )
            session.add(reservation)
            if promo_id is not None:
                await pricing_service.consume_promo(session, promo_id)
            if vehicle_id is not None:
                await sync_availability_state(session, vehicle_id)
            await session.commit()
        except IntegrityError as exc:
            await session.rollback()
            if not _is_code_collision(exc):
                logger.warning("Reservation insert rejected: %s", exc.orig)
                raise ValidationFailed(
                    "Reservation references missing or conflicting data"
                ) from exc
            logger.warning("Reservation code collided (attempt %d/%d)", attempt, retries)
            continue
        except ServiceError:
            await session.rollback()
            raise
        except SQLAlchemyError as exc:
            await session.rollback()
            logger.exception("Failed to create reservation")
            raise InternalError("Failed to create reservation") from exc
        return reservation.id

    raise ReservationCodeDuplicate(code="RESERVATION_CODE_DUPLICATE")


async def list_reservations(
    session: AsyncSession, *, scope: Scope, filters: ReservationListQuery
) -> Sequence[Reservation]:
    """Filtered listing intersected with the actor's scope."""
    stmt = scope.apply_to_reservations(
        select(Reservation).order_by(Reservation.created_at.desc())
    )
    if filters.code:
        stmt = stmt.where(func.upper(Reservation.code) == filters.code.strip().upper())
    if filters.user_id is not None and scope.user_id is None:
        stmt = stmt.where(Reservation.user_id == filters.user_id)
    if filters.status is not None:
        stmt = stmt.where(Reservation.status == filters.status)
    if filters.vehicle_id is not None:
        stmt = stmt.where(Reservation.vehicle_id == filters.vehicle_id)
    if filters.vehicle_model_id is not None:
        stmt = stmt.where(Reservation.vehicle_model_id == filters.vehicle_model_id)
    if filters.created_by is not None:
        stmt = stmt.where(Reservation.created_by == filters.created_by)
    if filters.pickup_from is not None:
        stmt = stmt.where(Reservation.pickup_at >= filters.pickup_from)
    if filters.pickup_to is not None:
        stmt = stmt.where(Reservation.pickup_at <= filters.pickup_to)
    if filters.dropoff_from is not None:
        stmt = stmt.where(Reservation.dropoff_at >= filters.dropoff_from)
    if filters.dropoff_to is not None:
        stmt = stmt.where(Reservation.dropoff_at <= filters.dropoff_to)

    stmt = stmt.offset(filters.skip).limit(filters.limit)
    result = await session.execute(stmt)
    return result.scalars().all()


async def get_reservation(
    session: AsyncSession, *, scope: Scope, reservation_id: uuid.UUID
) -> Reservation:
    reservation = await _load(session, reservation_id)
    if not scope.can_read_reservation(reservation):
        raise Forbidden("You cannot access this reservation")
    return reservation


async def update_reservation(
    session: AsyncSession,
    *,
    scope: Scope,
    reservation_id: uuid.UUID,
    payload: ReservationUpdate,
) -> Reservation:
    """Staff edit of endpoints, vehicle, notes and driver snapshot.

    Pricing and code are never touched. A new window or vehicle on a blocking
    reservation is re-checked for overlap under the vehicle lock.
    """
    reservation = await _load(session, reservation_id)
    _require_staff_scope(scope, reservation)

    fields = payload.model_fields_set
    reschedules = bool(fields & {"pickup", "dropoff", "vehicle_id"})
    if reschedules and reservation.status in TERMINAL_STATUSES:
        raise ValidationFailed("Closed reservations cannot be rescheduled or reassigned")

    pickup_branch_id = reservation.pickup_branch_id
    pickup_at = reservation.pickup_at
    dropoff_branch_id = reservation.dropoff_branch_id
    dropoff_at = reservation.dropoff_at
    if payload.pickup is not None:
        await _require_branch(session, payload.pickup.branch_id, "pickup")
        scope.require_branch(payload.pickup.branch_id)
        pickup_branch_id, pickup_at = payload.pickup.branch_id, payload.pickup.at
    if payload.dropoff is not None:
        await _require_branch(session, payload.dropoff.branch_id, "dropoff")
        dropoff_branch_id, dropoff_at = payload.dropoff.branch_id, payload.dropoff.at
    pickup_at, dropoff_at = validate_range(pickup_at, dropoff_at)

    previous_vehicle_id = reservation.vehicle_id
    vehicle_id = previous_vehicle_id
    if "vehicle_id" in fields:
        vehicle_id = payload.vehicle_id
        if vehicle_id is not None and vehicle_id != previous_vehicle_id:
            await _require_assignable_vehicle(
                session, vehicle_id, reservation.vehicle_model_id
            )

    needs_check = (
        vehicle_id is not None and reservation.status in BLOCKING_STATUSES and reschedules
    )
    guard = vehicle_lock(session, vehicle_id) if needs_check else nullcontext()
    async with guard:
        if needs_check:
            await _ensure_vehicle_free(
                session,
                vehicle_id=vehicle_id,
                start=pickup_at,
                end=dropoff_at,
                exclude_reservation_id=reservation.id,
            )
        reservation.pickup_branch_id = pickup_branch_id
        reservation.pickup_at = pickup_at
        reservation.dropoff_branch_id = dropoff_branch_id
        reservation.dropoff_at = dropoff_at
        reservation.vehicle_id = vehicle_id
        if "notes" in fields:
            reservation.notes = payload.notes or ""
        if "driver_snapshot" in fields:
            reservation.driver_snapshot = (
                payload.driver_snapshot.model_dump(mode="json", exclude_none=True)
                if payload.driver_snapshot
                else None
            )
        for touched in {previous_vehicle_id, vehicle_id} - {None}:
            await sync_availability_state(session, touched)
        await _commit(session, "Failed to update reservation")

    logger.info("Reservation %s updated", reservation_id)
    return await _load(session, reservation_id)


async def transition_reservation(
    session: AsyncSession,
    *,
    scope: Scope,
    reservation_id: uuid.UUID,
    new_status: ReservationStatus,
    background_tasks: BackgroundTasks | None = None,
) -> Reservation:
    """Move the reservation along its lifecycle with a compare-and-set write."""
    reservation = await _load(session, reservation_id)
    _require_staff_scope(scope, reservation)
    current = reservation.status
    _assert_transition(current, new_status)

    result = await session.execute(
        update(Reservation)
        .where(Reservation.id == reservation_id, Reservation.status == current)
        .values(status=new_status, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await session.rollback()
        raise ReservationStatusInvalid(
            "Reservation status changed concurrently; reload and retry",
            details={"from": current.value, "to": new_status.value},
        )
    if reservation.vehicle_id is not None:
        await sync_availability_state(session, reservation.vehicle_id)
    await _commit(session, "Failed to update reservation status")

    reservation = await _load(session, reservation_id)
    logger.info(
        "Reservation %s moved %s -> %s", reservation.code, current.value, new_status.value
    )
    if background_tasks is not None:
        notification_service.notify_status_change(reservation, background_tasks)
    return reservation


async def delete_reservation(
    session: AsyncSession, *, scope: Scope, reservation_id: uuid.UUID
) -> None:
    """Admin-only hard delete for data cleanup."""
    scope.require_admin()
    reservation = await _load(session, reservation_id)
    vehicle_id = reservation.vehicle_id
    code = reservation.code
    await session.delete(reservation)
    if vehicle_id is not None:
        await sync_availability_state(session, vehicle_id)
    await _commit(session, "Failed to delete reservation")
    logger.info("Reservation %s deleted", code)


async def check_vehicle_availability(
    session: AsyncSession,
    *,
    vehicle_id: uuid.UUID,
    start: datetime,
    end: datetime,
    service_aware: bool = False,
) -> bool:
    return await is_vehicle_free(
        session,
        vehicle_id=vehicle_id,
        start=start,
        end=end,
        service_aware=service_aware,
    )
