"""Availability rules over half-open windows."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta

import pytest

from fleetdesk.core.errors import ValidationFailed
from fleetdesk.db.session import get_sessionmaker
from fleetdesk.models import (
    AvailabilityState,
    Reservation,
    ReservationStatus,
    ServiceOrder,
    ServiceOrderStatus,
    ServiceOrderType,
    Vehicle,
)
from fleetdesk.models.pricing import Currency
from fleetdesk.models.pricing_snapshot import BreakdownLine, PricingSnapshot
from fleetdesk.services import availability_service

BASE = datetime(2025, 3, 10, 10, 0, tzinfo=UTC)


def _snapshot() -> dict:
    line = BreakdownLine(label="Daily rate", quantity=1, unit_amount=10, total=10)
    return PricingSnapshot(
        currency=Currency.USD, breakdown=(line,), grand_total=10
    ).to_document()


def _reservation(seeded: dict, code: str, start: datetime, end: datetime, status) -> Reservation:
    return Reservation(
        code=code,
        user_id=seeded["customer_id"],
        created_by=seeded["customer_id"],
        vehicle_model_id=seeded["corolla_id"],
        vehicle_id=seeded["v1_id"],
        pickup_branch_id=seeded["harare_id"],
        pickup_at=start,
        dropoff_branch_id=seeded["harare_id"],
        dropoff_at=end,
        status=status,
        pricing=_snapshot(),
        outstanding=10,
    )


def test_ranges_overlap_is_half_open() -> None:
    end = BASE + timedelta(days=2)
    assert availability_service.ranges_overlap(BASE, end, BASE + timedelta(days=1), end)
    assert not availability_service.ranges_overlap(BASE, end, end, end + timedelta(days=1))
    assert not availability_service.ranges_overlap(
        BASE, end, BASE - timedelta(days=1), BASE
    )


def test_validate_range_rejects_empty_window() -> None:
    with pytest.raises(ValidationFailed) as excinfo:
        availability_service.validate_range(BASE, BASE)
    assert excinfo.value.code == "INVALID_RANGE"


def test_validate_range_treats_naive_as_utc() -> None:
    start, end = availability_service.validate_range(
        datetime(2025, 1, 1, 8, 0), datetime(2025, 1, 2, 8, 0)
    )
    assert start.tzinfo is not None and end.tzinfo is not None


@pytest.mark.asyncio
async def test_only_blocking_statuses_conflict(seeded: dict) -> None:
    async with get_sessionmaker()() as session:
        session.add_all(
            [
                _reservation(seeded, "HRE-2025-000001", BASE, BASE + timedelta(days=2), ReservationStatus.CANCELLED),
                _reservation(seeded, "HRE-2025-000002", BASE, BASE + timedelta(days=2), ReservationStatus.RETURNED),
            ]
        )
        await session.commit()

        free = await availability_service.is_vehicle_free(
            session,
            vehicle_id=seeded["v1_id"],
            start=BASE + timedelta(hours=2),
            end=BASE + timedelta(days=1),
        )
        assert free is True

        session.add(
            _reservation(seeded, "HRE-2025-000003", BASE, BASE + timedelta(days=2), ReservationStatus.CONFIRMED)
        )
        await session.commit()

        conflicts = await availability_service.overlapping_reservations(
            session,
            vehicle_id=seeded["v1_id"],
            start=BASE + timedelta(hours=2),
            end=BASE + timedelta(days=1),
        )
        assert [item.code for item in conflicts] == ["HRE-2025-000003"]

        # Back-to-back windows share only the boundary instant.
        assert await availability_service.is_vehicle_free(
            session,
            vehicle_id=seeded["v1_id"],
            start=BASE + timedelta(days=2),
            end=BASE + timedelta(days=3),
        )


@pytest.mark.asyncio
async def test_service_aware_check_and_state_sync(seeded: dict) -> None:
    async with get_sessionmaker()() as session:
        session.add(
            _reservation(seeded, "HRE-2025-000010", BASE, BASE + timedelta(days=1), ReservationStatus.PENDING)
        )
        await session.flush()
        state = await availability_service.sync_availability_state(session, seeded["v1_id"])
        assert state is AvailabilityState.RESERVED

        session.add(
            ServiceOrder(
                vehicle_id=seeded["v1_id"],
                type=ServiceOrderType.REPAIR,
                status=ServiceOrderStatus.OPEN,
            )
        )
        await session.flush()
        state = await availability_service.sync_availability_state(session, seeded["v1_id"])
        await session.commit()
        assert state is AvailabilityState.BLOCKED

        window = {"start": BASE + timedelta(days=5), "end": BASE + timedelta(days=6)}
        assert await availability_service.is_vehicle_free(
            session, vehicle_id=seeded["v1_id"], **window
        )
        assert not await availability_service.is_vehicle_free(
            session, vehicle_id=seeded["v1_id"], service_aware=True, **window
        )

        vehicle = await session.get(Vehicle, seeded["v1_id"])
        assert vehicle.availability_state is AvailabilityState.BLOCKED


@pytest.mark.asyncio
async def test_sync_unknown_vehicle_returns_none(seeded: dict) -> None:
    async with get_sessionmaker()() as session:
        assert await availability_service.sync_availability_state(session, uuid.uuid4()) is None
