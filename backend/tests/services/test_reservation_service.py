"""Reservation engine tests: codes, overlap, transitions and concurrency."""

from __future__ import annotations

import asyncio
import random
import uuid
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from fleetdesk.core.errors import (
    Forbidden,
    ReservationStatusInvalid,
    ValidationFailed,
    VehicleUnavailable,
)
from fleetdesk.db.session import get_sessionmaker
from fleetdesk.models import (
    AvailabilityState,
    PromoCode,
    PromoType,
    Reservation,
    ReservationStatus,
    Vehicle,
)
from fleetdesk.models.reservation import ALLOWED_TRANSITIONS, BLOCKING_STATUSES
from fleetdesk.schemas.reservation import (
    ReservationCreate,
    ReservationListQuery,
    ReservationUpdate,
)
from fleetdesk.services import reservation_service
from fleetdesk.services.scope_service import Scope

pytestmark = pytest.mark.asyncio

PICKUP = datetime(2025, 7, 1, 9, 0, tzinfo=UTC)


def _payload(seeded: dict, *, days: int = 3, offset: int = 0, **overrides) -> ReservationCreate:
    start = PICKUP + timedelta(days=offset)
    data = {
        "user_id": seeded["customer_id"],
        "vehicle_model_id": seeded["corolla_id"],
        "vehicle_id": seeded["v1_id"],
        "pickup": {"branch_id": seeded["harare_id"], "at": start},
        "dropoff": {"branch_id": seeded["harare_id"], "at": start + timedelta(days=days)},
        "created_channel": "agent",
    }
    data.update(overrides)
    return ReservationCreate(**data)


async def test_codes_are_sequential_per_branch_prefix_and_year(seeded: dict) -> None:
    scope = Scope.admin(seeded["admin_id"])
    async with get_sessionmaker()() as session:
        first = await reservation_service.create_reservation(
            session, scope=scope, payload=_payload(seeded)
        )
        second = await reservation_service.create_reservation(
            session, scope=scope, payload=_payload(seeded, offset=10)
        )
        next_year = await reservation_service.create_reservation(
            session,
            scope=scope,
            payload=_payload(
                seeded,
                vehicle_id=None,
                pickup={"branch_id": seeded["harare_id"], "at": datetime(2026, 1, 5, tzinfo=UTC)},
                dropoff={"branch_id": seeded["harare_id"], "at": datetime(2026, 1, 7, tzinfo=UTC)},
            ),
        )

    assert first.code == "HRE-2025-000001"
    assert second.code == "HRE-2025-000002"
    assert next_year.code == "HRE-2026-000001"
    assert first.status is ReservationStatus.PENDING
    assert first.grand_total == Decimal("172.50")
    assert first.outstanding == Decimal("172.50")


async def test_overlapping_booking_is_rejected(seeded: dict) -> None:
    scope = Scope.admin(seeded["admin_id"])
    async with get_sessionmaker()() as session:
        existing = await reservation_service.create_reservation(
            session, scope=scope, payload=_payload(seeded)
        )
        existing_code = existing.code
        with pytest.raises(VehicleUnavailable) as excinfo:
            await reservation_service.create_reservation(
                session, scope=scope, payload=_payload(seeded, days=1, offset=2)
            )
        assert excinfo.value.details == {"conflicting_codes": [existing_code]}

        # Starting exactly at the previous dropoff is allowed.
        adjacent = await reservation_service.create_reservation(
            session, scope=scope, payload=_payload(seeded, days=1, offset=3)
        )
        assert adjacent.code.endswith("000002")

        vehicle = await session.get(Vehicle, seeded["v1_id"], populate_existing=True)
        assert vehicle.availability_state is AvailabilityState.RESERVED


async def test_concurrent_bookings_for_one_vehicle(seeded: dict) -> None:
    scope = Scope.admin(seeded["admin_id"])
    sessionmaker = get_sessionmaker()

    async def _attempt(offset_hours: int):
        async with sessionmaker() as session:
            payload = _payload(seeded)
            payload.pickup.at = payload.pickup.at + timedelta(hours=offset_hours)
            return await reservation_service.create_reservation(
                session, scope=scope, payload=payload
            )

    results = await asyncio.gather(
        _attempt(0), _attempt(1), _attempt(2), return_exceptions=True
    )
    created = [item for item in results if isinstance(item, Reservation)]
    rejected = [item for item in results if isinstance(item, VehicleUnavailable)]
    assert len(created) == 1
    assert len(rejected) == 2

    async with sessionmaker() as session:
        rows = (
            await session.execute(
                select(Reservation).where(Reservation.vehicle_id == seeded["v1_id"])
            )
        ).scalars().all()
    assert len(rows) == 1


async def test_customer_scope_restrictions(seeded: dict) -> None:
    renter = Scope.renter(seeded["customer_id"])
    async with get_sessionmaker()() as session:
        with pytest.raises(Forbidden):
            await reservation_service.create_reservation(
                session,
                scope=renter,
                payload=_payload(seeded, user_id=seeded["other_customer_id"]),
            )
        with pytest.raises(Forbidden):
            await reservation_service.create_reservation(
                session,
                scope=renter,
                payload=_payload(
                    seeded,
                    pricing={
                        "currency": "USD",
                        "breakdown": [
                            {"label": "Daily rate", "quantity": 3, "unit_amount": "1.00"}
                        ],
                    },
                ),
            )

        own = await reservation_service.create_reservation(
            session, scope=renter, payload=_payload(seeded, user_id=None)
        )
        assert own.user_id == seeded["customer_id"]
        assert own.created_by == seeded["customer_id"]

        with pytest.raises(Forbidden):
            await reservation_service.transition_reservation(
                session,
                scope=renter,
                reservation_id=own.id,
                new_status=ReservationStatus.CANCELLED,
            )


async def test_suspended_renter_cannot_be_booked(seeded: dict) -> None:
    async with get_sessionmaker()() as session:
        with pytest.raises(ValidationFailed):
            await reservation_service.create_reservation(
                session,
                scope=Scope.admin(seeded["admin_id"]),
                payload=_payload(seeded, user_id=seeded["suspended_id"]),
            )


# Valid route from a fresh pending booking to each lifecycle status.
_PATHS_TO = {
    ReservationStatus.PENDING: (),
    ReservationStatus.CONFIRMED: (ReservationStatus.CONFIRMED,),
    ReservationStatus.CHECKED_OUT: (ReservationStatus.CHECKED_OUT,),
    ReservationStatus.RETURNED: (ReservationStatus.CHECKED_OUT, ReservationStatus.RETURNED),
    ReservationStatus.CANCELLED: (ReservationStatus.CANCELLED,),
    ReservationStatus.NO_SHOW: (ReservationStatus.NO_SHOW,),
}


async def test_transition_table_is_enforced(seeded: dict) -> None:
    scope = Scope.admin(seeded["admin_id"])
    statuses = list(ReservationStatus)
    async with get_sessionmaker()() as session:
        for source, path in _PATHS_TO.items():
            for target in statuses:
                reservation = await reservation_service.create_reservation(
                    session, scope=scope, payload=_payload(seeded, vehicle_id=None)
                )
                reservation_id = reservation.id
                for step in path:
                    await reservation_service.transition_reservation(
                        session,
                        scope=scope,
                        reservation_id=reservation_id,
                        new_status=step,
                    )
                if target in ALLOWED_TRANSITIONS[source]:
                    moved = await reservation_service.transition_reservation(
                        session,
                        scope=scope,
                        reservation_id=reservation_id,
                        new_status=target,
                    )
                    assert moved.status is target
                else:
                    with pytest.raises(ReservationStatusInvalid):
                        await reservation_service.transition_reservation(
                            session,
                            scope=scope,
                            reservation_id=reservation_id,
                            new_status=target,
                        )


async def test_lifecycle_updates_availability_hint(seeded: dict) -> None:
    scope = Scope.admin(seeded["admin_id"])
    async with get_sessionmaker()() as session:
        reservation = await reservation_service.create_reservation(
            session, scope=scope, payload=_payload(seeded)
        )
        reservation_id = reservation.id
        expected = {
            ReservationStatus.CONFIRMED: AvailabilityState.RESERVED,
            ReservationStatus.CHECKED_OUT: AvailabilityState.OUT,
            ReservationStatus.RETURNED: AvailabilityState.AVAILABLE,
        }
        for status, state in expected.items():
            await reservation_service.transition_reservation(
                session, scope=scope, reservation_id=reservation_id, new_status=status
            )
            vehicle = await session.get(Vehicle, seeded["v1_id"], populate_existing=True)
            assert vehicle.availability_state is state

        # Once returned, the window is free again.
        again = await reservation_service.create_reservation(
            session, scope=scope, payload=_payload(seeded)
        )
        assert again.status is ReservationStatus.PENDING


async def test_reschedule_rechecks_overlap(seeded: dict) -> None:
    scope = Scope.admin(seeded["admin_id"])
    async with get_sessionmaker()() as session:
        first = await reservation_service.create_reservation(
            session, scope=scope, payload=_payload(seeded)
        )
        second = await reservation_service.create_reservation(
            session, scope=scope, payload=_payload(seeded, offset=10)
        )

        with pytest.raises(VehicleUnavailable):
            await reservation_service.update_reservation(
                session,
                scope=scope,
                reservation_id=second.id,
                payload=ReservationUpdate(
                    pickup={"branch_id": seeded["harare_id"], "at": PICKUP + timedelta(days=1)}
                ),
            )

        # Shifting a reservation within its own window is not a self-conflict.
        moved = await reservation_service.update_reservation(
            session,
            scope=scope,
            reservation_id=first.id,
            payload=ReservationUpdate(
                dropoff={"branch_id": seeded["harare_id"], "at": PICKUP + timedelta(days=4)},
                notes="Extended by phone",
            ),
        )
        assert moved.notes == "Extended by phone"
        assert moved.grand_total == Decimal("172.50")

        reassigned = await reservation_service.update_reservation(
            session,
            scope=scope,
            reservation_id=second.id,
            payload=ReservationUpdate(vehicle_id=seeded["v2_id"]),
        )
        assert reassigned.vehicle_id == seeded["v2_id"]


async def test_manager_cannot_touch_other_branch(seeded: dict) -> None:
    admin = Scope.admin(seeded["admin_id"])
    byo_manager = Scope.branches(seeded["other_manager_id"], [seeded["bulawayo_id"]])
    async with get_sessionmaker()() as session:
        reservation = await reservation_service.create_reservation(
            session, scope=admin, payload=_payload(seeded)
        )
        with pytest.raises(Forbidden):
            await reservation_service.get_reservation(
                session, scope=byo_manager, reservation_id=reservation.id
            )
        with pytest.raises(Forbidden):
            await reservation_service.transition_reservation(
                session,
                scope=byo_manager,
                reservation_id=reservation.id,
                new_status=ReservationStatus.CONFIRMED,
            )


async def test_promo_usage_is_counted(seeded: dict) -> None:
    scope = Scope.admin(seeded["admin_id"])
    async with get_sessionmaker()() as session:
        promo = PromoCode(
            code="WELCOME",
            type=PromoType.PERCENT,
            value=Decimal("10"),
            valid_from=PICKUP - timedelta(days=30),
            usage_limit=1,
        )
        session.add(promo)
        await session.commit()
        promo_id = promo.id

        reservation = await reservation_service.create_reservation(
            session, scope=scope, payload=_payload(seeded, promo_code="welcome")
        )
        # 150.00 - 15.00 discount + 15% VAT on 135.00
        assert reservation.grand_total == Decimal("155.25")

        with pytest.raises(ValidationFailed) as excinfo:
            await reservation_service.create_reservation(
                session,
                scope=scope,
                payload=_payload(seeded, offset=20, promo_code="WELCOME"),
            )
        assert excinfo.value.code == "PROMO_INVALID"

        refreshed = await session.get(PromoCode, promo_id, populate_existing=True)
        assert refreshed.used_count == 1


async def test_delete_requires_admin(seeded: dict) -> None:
    admin = Scope.admin(seeded["admin_id"])
    manager = Scope.branches(seeded["manager_id"], [seeded["harare_id"]])
    async with get_sessionmaker()() as session:
        reservation = await reservation_service.create_reservation(
            session, scope=admin, payload=_payload(seeded)
        )
        reservation_id = reservation.id
        with pytest.raises(Forbidden):
            await reservation_service.delete_reservation(
                session, scope=manager, reservation_id=reservation_id
            )
        await reservation_service.delete_reservation(
            session, scope=admin, reservation_id=reservation_id
        )
        assert await session.get(Reservation, reservation_id) is None
        vehicle = await session.get(Vehicle, seeded["v1_id"], populate_existing=True)
        assert vehicle.availability_state is AvailabilityState.AVAILABLE


async def test_staff_renter_cannot_read_out_of_scope_booking(seeded: dict) -> None:
    admin = Scope.admin(seeded["admin_id"])
    byo_manager = Scope.branches(seeded["other_manager_id"], [seeded["bulawayo_id"]])
    async with get_sessionmaker()() as session:
        reservation = await reservation_service.create_reservation(
            session,
            scope=admin,
            payload=_payload(seeded, user_id=seeded["other_manager_id"]),
        )
        with pytest.raises(Forbidden):
            await reservation_service.get_reservation(
                session, scope=byo_manager, reservation_id=reservation.id
            )
        listed = await reservation_service.list_reservations(
            session, scope=byo_manager, filters=ReservationListQuery()
        )
        assert listed == []


async def test_rented_and_closed_bookings_only_move_forward() -> None:
    assert ALLOWED_TRANSITIONS[ReservationStatus.CHECKED_OUT] == {ReservationStatus.RETURNED}
    for closed in (
        ReservationStatus.RETURNED,
        ReservationStatus.CANCELLED,
        ReservationStatus.NO_SHOW,
    ):
        assert ALLOWED_TRANSITIONS[closed] == frozenset()


async def test_random_edits_never_double_book_a_vehicle(seeded: dict) -> None:
    rng = random.Random(20250701)
    scope = Scope.admin(seeded["admin_id"])
    statuses = list(ReservationStatus)
    created: list = []
    async with get_sessionmaker()() as session:
        for _ in range(60):
            action = rng.choice(("create", "create", "update", "transition"))
            try:
                if action == "create" or not created:
                    reservation = await reservation_service.create_reservation(
                        session,
                        scope=scope,
                        payload=_payload(
                            seeded,
                            days=rng.randint(1, 4),
                            offset=rng.randint(0, 20),
                            vehicle_id=rng.choice((seeded["v1_id"], None)),
                        ),
                    )
                    created.append(reservation.id)
                elif action == "update":
                    start = PICKUP + timedelta(days=rng.randint(0, 20), hours=rng.randint(0, 12))
                    await reservation_service.update_reservation(
                        session,
                        scope=scope,
                        reservation_id=rng.choice(created),
                        payload=ReservationUpdate(
                            vehicle_id=seeded["v1_id"],
                            pickup={"branch_id": seeded["harare_id"], "at": start},
                            dropoff={
                                "branch_id": seeded["harare_id"],
                                "at": start + timedelta(days=rng.randint(1, 4)),
                            },
                        ),
                    )
                else:
                    await reservation_service.transition_reservation(
                        session,
                        scope=scope,
                        reservation_id=rng.choice(created),
                        new_status=rng.choice(statuses),
                    )
            except (VehicleUnavailable, ReservationStatusInvalid, ValidationFailed):
                await session.rollback()

        result = await session.execute(
            select(Reservation.pickup_at, Reservation.dropoff_at).where(
                Reservation.vehicle_id == seeded["v1_id"],
                Reservation.status.in_(BLOCKING_STATUSES),
            )
        )
        windows = sorted(result.all())

    assert windows
    for (_, earlier_end), (later_start, _) in zip(windows, windows[1:]):
        assert earlier_end <= later_start


async def test_store_constraint_failures_are_validation_errors(seeded: dict) -> None:
    scope = Scope.admin(seeded["admin_id"])
    async with get_sessionmaker()() as session:
        reservation = await reservation_service.create_reservation(
            session, scope=scope, payload=_payload(seeded, vehicle_id=None)
        )
        reservation_id = reservation.id
        reservation.user_id = uuid.uuid4()
        with pytest.raises(ValidationFailed) as excinfo:
            await reservation_service._commit(session, "Failed to update reservation")
        assert excinfo.value.code == "VALIDATION"

        stored = await reservation_service.get_reservation(
            session, scope=scope, reservation_id=reservation_id
        )
        assert stored.user_id == seeded["customer_id"]


async def test_missing_creator_is_not_a_code_collision(seeded: dict) -> None:
    ghost_admin = Scope.admin(uuid.uuid4())
    async with get_sessionmaker()() as session:
        with pytest.raises(ValidationFailed) as excinfo:
            await reservation_service.create_reservation(
                session, scope=ghost_admin, payload=_payload(seeded, vehicle_id=None)
            )
        assert excinfo.value.code == "VALIDATION"

        count = await session.scalar(select(func.count()).select_from(Reservation))
        assert count == 0
