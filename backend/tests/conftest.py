"""Test fixtures for the FleetDesk backend."""
from __future__ import annotations

import os
from collections.abc import AsyncIterator
from datetime import UTC, datetime
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test.db")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("VEHICLE_LOCK_WAIT_SECONDS", "5")

from fleetdesk.core.config import get_settings
from fleetdesk.core.security import create_access_token
from fleetdesk.db.base import Base
from fleetdesk.db.session import dispose_engine, get_sessionmaker
from fleetdesk.main import app
from fleetdesk.models import (
    Branch,
    Currency,
    RatePlan,
    StaffProfile,
    User,
    UserRole,
    UserStatus,
    Vehicle,
    VehicleClass,
    VehicleModel,
)


@pytest.fixture(scope="session")
def db_url(tmp_path_factory: pytest.TempPathFactory) -> str:
    """Provide a temporary SQLite database URL for the test session."""
    db_path = tmp_path_factory.mktemp("db") / "test.db"
    return f"sqlite+aiosqlite:///{db_path}"


@pytest_asyncio.fixture()
async def reset_database(db_url: str) -> AsyncIterator[None]:
    """Drop and recreate the database schema for an isolated test."""
    os.environ["DATABASE_URL"] = db_url
    get_settings.cache_clear()
    get_settings()

    await dispose_engine(db_url)
    engine = create_async_engine(db_url, future=True)
    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.drop_all)
        await connection.run_sync(Base.metadata.create_all)
    await engine.dispose()
    yield
    await dispose_engine(db_url)


def _user(email: str, name: str, *roles: UserRole) -> User:
    return User(
        email=email,
        full_name=name,
        roles=[role.value for role in roles],
        status=UserStatus.ACTIVE,
    )


@pytest_asyncio.fixture()
async def seeded(reset_database: None, db_url: str) -> dict[str, object]:
    """Seed two branches, a small fleet, staff, renters and rate plans."""
    sessionmaker = get_sessionmaker(db_url)
    async with sessionmaker() as session:
        harare = Branch(code="HRE-CBD", name="Harare CBD", city="Harare")
        bulawayo = Branch(code="BYO-01", name="Bulawayo Airport", city="Bulawayo")
        session.add_all([harare, bulawayo])

        corolla = VehicleModel(
            make="Toyota", model="Corolla", year=2022, vehicle_class=VehicleClass.ECONOMY
        )
        rav4 = VehicleModel(
            make="Toyota", model="RAV4", year=2023, vehicle_class=VehicleClass.SUV
        )
        session.add_all([corolla, rav4])
        await session.flush()

        v1 = Vehicle(plate_number="AAA-1001", vehicle_model_id=corolla.id, branch_id=harare.id)
        v2 = Vehicle(plate_number="AAA-1002", vehicle_model_id=corolla.id, branch_id=harare.id)
        v3 = Vehicle(plate_number="BBB-2001", vehicle_model_id=rav4.id, branch_id=bulawayo.id)
        session.add_all([v1, v2, v3])

        admin = _user("admin@example.com", "Ada Admin", UserRole.ADMIN)
        manager = _user("manager@example.com", "Mo Manager", UserRole.MANAGER)
        other_manager = _user("byo.manager@example.com", "Bo Manager", UserRole.MANAGER)
        agent = _user("agent@example.com", "Al Agent", UserRole.AGENT)
        customer = _user("renter@example.com", "Rita Renter", UserRole.CUSTOMER)
        other_customer = _user("renter2@example.com", "Rob Renter", UserRole.CUSTOMER)
        suspended = _user("gone@example.com", "Sam Suspended", UserRole.CUSTOMER)
        suspended.status = UserStatus.SUSPENDED
        session.add_all(
            [admin, manager, other_manager, agent, customer, other_customer, suspended]
        )
        await session.flush()

        session.add_all(
            [
                StaffProfile(user_id=manager.id, branch_ids=[str(harare.id)]),
                StaffProfile(user_id=other_manager.id, branch_ids=[str(bulawayo.id)]),
                StaffProfile(user_id=agent.id, branch_ids=[str(harare.id)]),
            ]
        )

        valid_from = datetime(2024, 1, 1, tzinfo=UTC)
        session.add_all(
            [
                RatePlan(
                    name="Economy standard",
                    vehicle_class=VehicleClass.ECONOMY,
                    currency=Currency.USD,
                    daily_rate=Decimal("50.00"),
                    weekly_rate=Decimal("300.00"),
                    taxes=[{"code": "VAT", "rate": "0.15"}],
                    fees=[],
                    valid_from=valid_from,
                ),
                RatePlan(
                    name="Bulawayo SUV",
                    branch_id=bulawayo.id,
                    vehicle_class=VehicleClass.SUV,
                    currency=Currency.USD,
                    daily_rate=Decimal("80.00"),
                    taxes=[],
                    fees=[{"code": "AIRPORT", "amount": "10.00"}],
                    valid_from=valid_from,
                ),
            ]
        )
        await session.commit()

        return {
            "harare_id": harare.id,
            "bulawayo_id": bulawayo.id,
            "corolla_id": corolla.id,
            "rav4_id": rav4.id,
            "v1_id": v1.id,
            "v2_id": v2.id,
            "v3_id": v3.id,
            "admin_id": admin.id,
            "manager_id": manager.id,
            "other_manager_id": other_manager.id,
            "agent_id": agent.id,
            "customer_id": customer.id,
            "other_customer_id": other_customer.id,
            "suspended_id": suspended.id,
        }


def auth_headers(user_id: object) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(str(user_id))}"}


@pytest_asyncio.fixture()
async def app_context(seeded: dict[str, object]) -> AsyncIterator[dict[str, object]]:
    """Yield an async client, the seeded ids and per-role auth headers."""
    context = dict(seeded)
    for role in ("admin", "manager", "other_manager", "agent", "customer", "other_customer", "suspended"):
        context[f"{role}_headers"] = auth_headers(seeded[f"{role}_id"])

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        context["client"] = client
        yield context
