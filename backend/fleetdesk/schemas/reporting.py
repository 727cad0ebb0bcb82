"""Reporting schema definitions."""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Any

from pydantic import BaseModel


class ReportType(str, enum.Enum):
    RESERVATIONS = "reservations"
    PAYMENTS = "payments"
    INCIDENTS = "incidents"
    FLEET = "fleet"
    SERVICES = "services"


class ReportPaging(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class ReportRead(BaseModel):
    """Tabular report: column names, a page of rows and grouped summaries."""

    type: ReportType
    columns: list[str]
    rows: list[dict[str, Any]]
    summary: dict[str, Any]
    paging: ReportPaging


class DateRange(BaseModel):
    start: datetime
    end: datetime


class DashboardRead(BaseModel):
    range: DateRange
    kpis: dict[str, Any]
    charts: dict[str, Any]
