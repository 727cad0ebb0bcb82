"""Versioned API router."""

from fastapi import APIRouter

from . import (
    dashboards,
    health,
    incidents,
    pricing,
    reports,
    reservations,
    service_orders,
)

router = APIRouter()
router.include_router(health.router, prefix="/health", tags=["health"])
router.include_router(
    reservations.router, prefix="/reservations", tags=["reservations"]
)
router.include_router(pricing.router, tags=["pricing"])
router.include_router(
    service_orders.router, prefix="/service-orders", tags=["service-orders"]
)
router.include_router(
    incidents.router, prefix="/vehicle-incidents", tags=["vehicle-incidents"]
)
router.include_router(reports.router, prefix="/reports", tags=["reports"])
router.include_router(dashboards.router, prefix="/dashboards", tags=["dashboards"])
