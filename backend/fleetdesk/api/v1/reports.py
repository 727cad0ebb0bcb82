"""Reporting endpoints."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Query

from fleetdesk.api import deps
from fleetdesk.schemas.common import Envelope
from fleetdesk.schemas.reporting import ReportRead, ReportType
from fleetdesk.services import reporting_service

router = APIRouter()


@router.get("", response_model=Envelope[ReportRead], summary="Tabular report")
async def get_report(
    session: deps.DbSession,
    scope: deps.StaffScope,
    report_type: Annotated[ReportType, Query(alias="type")] = ReportType.RESERVATIONS,
    start: Annotated[datetime | None, Query(alias="from")] = None,
    end: Annotated[datetime | None, Query(alias="to")] = None,
    branch_id: uuid.UUID | None = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1)] = 25,
) -> Envelope[ReportRead]:
    report = await reporting_service.build_report(
        session,
        scope=scope,
        report_type=report_type,
        start=start,
        end=end,
        branch_id=branch_id,
        page=page,
        limit=limit,
    )
    return Envelope(data=ReportRead.model_validate(report))
