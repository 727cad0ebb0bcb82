"""Dashboard endpoints."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Query

from fleetdesk.api import deps
from fleetdesk.models.pricing import Currency
from fleetdesk.schemas.common import Envelope
from fleetdesk.schemas.reporting import DashboardRead
from fleetdesk.services import dashboard_service

router = APIRouter()


@router.get("", response_model=Envelope[DashboardRead], summary="Dashboard KPIs and charts")
async def get_dashboard(
    session: deps.DbSession,
    scope: deps.StaffScope,
    start: Annotated[datetime | None, Query(alias="from")] = None,
    end: Annotated[datetime | None, Query(alias="to")] = None,
    branch_id: uuid.UUID | None = None,
    currency: Currency | None = None,
) -> Envelope[DashboardRead]:
    dashboard = await dashboard_service.build_dashboard(
        session,
        scope=scope,
        start=start,
        end=end,
        branch_id=branch_id,
        currency=currency,
    )
    return Envelope(data=DashboardRead.model_validate(dashboard))
