from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import select

from fleetdesk.core.config import get_settings
from fleetdesk.core.security import create_access_token
from fleetdesk.db.session import get_sessionmaker
from fleetdesk.models import (
    Branch,
    Currency,
    RatePlan,
    User,
    UserRole,
    UserStatus,
    Vehicle,
    VehicleClass,
    VehicleModel,
)

EMAIL = "admin@fleetdesk.local"
BRANCH_CODE = "HRE-CBD"


async def main() -> None:
    settings = get_settings()
    sessionmaker = get_sessionmaker(settings.database_url)
    async with sessionmaker() as session:
        existing = await session.scalar(select(User).where(User.email == EMAIL))
        if existing is not None:
            print(f"User {EMAIL} already exists")
            print(f"Bearer {create_access_token(str(existing.id))}")
            return

        branch = Branch(code=BRANCH_CODE, name="Harare CBD", city="Harare")
        model = VehicleModel(
            make="Toyota", model="Corolla", year=2022, vehicle_class=VehicleClass.ECONOMY
        )
        session.add_all([branch, model])
        await session.flush()

        session.add_all(
            [
                Vehicle(plate_number="DEV-0001", vehicle_model_id=model.id, branch_id=branch.id),
                Vehicle(plate_number="DEV-0002", vehicle_model_id=model.id, branch_id=branch.id),
                RatePlan(
                    name="Economy standard",
                    vehicle_class=VehicleClass.ECONOMY,
                    currency=Currency.USD,
                    daily_rate=Decimal("50.00"),
                    weekly_rate=Decimal("300.00"),
                    taxes=[{"code": "VAT", "rate": "0.15"}],
                    fees=[],
                    valid_from=datetime(2024, 1, 1, tzinfo=UTC),
                ),
            ]
        )
        admin = User(
            email=EMAIL,
            full_name="Dev Admin",
            roles=[UserRole.ADMIN.value],
            status=UserStatus.ACTIVE,
        )
        session.add(admin)
        await session.commit()

        print(f"Created branch {BRANCH_CODE} with two vehicles and admin {EMAIL}")
        print(f"Bearer {create_access_token(str(admin.id))}")


if __name__ == "__main__":
    asyncio.run(main())
