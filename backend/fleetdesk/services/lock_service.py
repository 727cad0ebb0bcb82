"""Per-vehicle lock token held across the overlap check and the write."""

from __future__ import annotations

import asyncio
import logging
import secrets
import time
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import timedelta

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from fleetdesk.core.config import get_settings
from fleetdesk.core.errors import VehicleUnavailable
from fleetdesk.models.mixins import utcnow
from fleetdesk.models.vehicle_lock import VehicleLock

logger = logging.getLogger(__name__)

_POLL_INTERVAL_SECONDS = 0.05


async def _try_acquire(
    session: AsyncSession, vehicle_id: uuid.UUID, token: str, ttl: timedelta
) -> bool:
    now = utcnow()
    try:
        # Steal a lock whose holder died without releasing it.
        await session.execute(
            delete(VehicleLock).where(
                VehicleLock.vehicle_id == vehicle_id, VehicleLock.expires_at < now
            )
        )
        session.add(
            VehicleLock(
                vehicle_id=vehicle_id, token=token, acquired_at=now, expires_at=now + ttl
            )
        )
        await session.commit()
    except IntegrityError:
        await session.rollback()
        return False
    except OperationalError:
        # SQLite reports a busy writer instead of waiting on it.
        await session.rollback()
        logger.debug("Lock table busy for vehicle %s; retrying", vehicle_id)
        return False
    return True


async def _release(session: AsyncSession, vehicle_id: uuid.UUID, token: str) -> None:
    await session.execute(
        delete(VehicleLock).where(
            VehicleLock.vehicle_id == vehicle_id, VehicleLock.token == token
        )
    )
    await session.commit()


@asynccontextmanager
async def vehicle_lock(
    session: AsyncSession, vehicle_id: uuid.UUID
) -> AsyncIterator[str]:
    """Hold the vehicle's lock row for the duration of the block.

    The lock row lives in its own short transactions on a sibling session so
    that acquiring or releasing it never expires objects loaded by the caller.
    The block is responsible for committing its own work.
    """
    settings = get_settings()
    ttl = timedelta(seconds=settings.vehicle_lock_ttl_seconds)
    deadline = time.monotonic() + settings.vehicle_lock_wait_seconds
    token = secrets.token_hex(16)

    async with AsyncSession(session.bind, expire_on_commit=False) as lock_session:
        while not await _try_acquire(lock_session, vehicle_id, token, ttl):
            if time.monotonic() >= deadline:
                logger.warning("Timed out waiting for lock on vehicle %s", vehicle_id)
                raise VehicleUnavailable(
                    "Vehicle is being booked by another request; retry shortly",
                    code="VEHICLE_LOCKED",
                )
            await asyncio.sleep(_POLL_INTERVAL_SECONDS)

        try:
            yield token
        finally:
            await _release(lock_session, vehicle_id, token)


__all__ = ["vehicle_lock"]
