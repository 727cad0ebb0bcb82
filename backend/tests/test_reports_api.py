"""Reports and dashboard API tests."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
from httpx import AsyncClient

pytestmark = pytest.mark.asyncio


async def _book(client: AsyncClient, ctx: dict[str, Any], *, branch: str, model: str, vehicle: str, days_ahead: int) -> dict[str, Any]:
    start = datetime(2030, 1, 1, 9, 0, tzinfo=UTC) + timedelta(days=days_ahead)
    response = await client.post(
        "/api/v1/reservations",
        json={
            "user_id": str(ctx["customer_id"]),
            "vehicle_model_id": str(ctx[model]),
            "vehicle_id": str(ctx[vehicle]),
            "pickup": {"branch_id": str(ctx[branch]), "at": start.isoformat()},
            "dropoff": {
                "branch_id": str(ctx[branch]),
                "at": (start + timedelta(days=2)).isoformat(),
            },
        },
        headers=ctx["admin_headers"],
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


async def _pay(client: AsyncClient, ctx: dict[str, Any], reservation: dict[str, Any], amount: str) -> None:
    response = await client.post(
        f"/api/v1/reservations/{reservation['id']}/payments",
        json={
            "payment_id": f"pi_{reservation['code']}",
            "amount": amount,
            "currency": "USD",
            "occurred_at": datetime.now(UTC).isoformat(),
        },
        headers=ctx["admin_headers"],
    )
    assert response.status_code == 200, response.text


async def _seed_activity(client: AsyncClient, ctx: dict[str, Any]) -> None:
    harare = await _book(client, ctx, branch="harare_id", model="corolla_id", vehicle="v1_id", days_ahead=0)
    await _book(client, ctx, branch="harare_id", model="corolla_id", vehicle="v2_id", days_ahead=0)
    bulawayo = await _book(client, ctx, branch="bulawayo_id", model="rav4_id", vehicle="v3_id", days_ahead=0)
    await _pay(client, ctx, harare, "50.00")
    await _pay(client, ctx, bulawayo, "170.00")
    await client.patch(
        f"/api/v1/reservations/{harare['id']}/status",
        json={"status": "confirmed"},
        headers=ctx["admin_headers"],
    )


async def test_reservations_report_paging_and_scope(app_context: dict[str, Any]) -> None:
    client: AsyncClient = app_context["client"]  # type: ignore[assignment]
    await _seed_activity(client, app_context)

    admin_report = await client.get(
        "/api/v1/reports",
        params={"type": "reservations", "limit": 2, "page": 1},
        headers=app_context["admin_headers"],
    )
    assert admin_report.status_code == 200
    data = admin_report.json()["data"]
    assert data["type"] == "reservations"
    assert "code" in data["columns"]
    assert len(data["rows"]) == 2
    assert data["paging"] == {"page": 1, "limit": 2, "total": 3, "total_pages": 2}
    by_status = {item["status"]: item["count"] for item in data["summary"]["by_status"]}
    assert by_status == {"pending": 2, "confirmed": 1}

    manager_report = await client.get(
        "/api/v1/reports", headers=app_context["manager_headers"]
    )
    assert manager_report.json()["data"]["paging"]["total"] == 2
    codes = {row["code"] for row in manager_report.json()["data"]["rows"]}
    assert all(code.startswith("HRE-") for code in codes)

    customer = await client.get("/api/v1/reports", headers=app_context["customer_headers"])
    assert customer.status_code == 403


async def test_payments_report_groups_by_kind(app_context: dict[str, Any]) -> None:
    client: AsyncClient = app_context["client"]  # type: ignore[assignment]
    await _seed_activity(client, app_context)

    response = await client.get(
        "/api/v1/reports", params={"type": "payments"}, headers=app_context["admin_headers"]
    )
    data = response.json()["data"]
    assert data["paging"]["total"] == 2
    assert data["summary"]["by_payment_status"] == [
        {"status": "charge", "currency": "USD", "count": 2, "total_amount": "220.00"}
    ]


async def test_report_rejects_inverted_range(app_context: dict[str, Any]) -> None:
    client: AsyncClient = app_context["client"]  # type: ignore[assignment]
    response = await client.get(
        "/api/v1/reports",
        params={"from": "2025-02-01T00:00:00Z", "to": "2025-01-01T00:00:00Z"},
        headers=app_context["admin_headers"],
    )
    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_RANGE"


async def test_dashboard_kpis_and_charts(app_context: dict[str, Any]) -> None:
    client: AsyncClient = app_context["client"]  # type: ignore[assignment]
    await _seed_activity(client, app_context)

    response = await client.get("/api/v1/dashboards", headers=app_context["admin_headers"])
    assert response.status_code == 200, response.text
    data = response.json()["data"]
    kpis = data["kpis"]
    assert kpis["active_branches"] == 2
    assert kpis["total_vehicles"] == 3
    assert kpis["reservations_in_range"] == 3
    assert kpis["active_reservations"] == 3
    assert kpis["revenue_currency"] == "USD"
    assert kpis["total_revenue_paid_in_range"] == "220.00"

    pie = {item["label"]: item["value"] for item in data["charts"]["pie"]["reservations_by_status"]}
    assert pie == {"pending": 2, "confirmed": 1, "checked_out": 0, "other": 0}
    assert sum(point["value"] for point in data["charts"]["lines"]["reservations_per_day"]) == 3
    bars = data["charts"]["bars"]["revenue_by_branch"]
    assert [bar["label"] for bar in bars] == ["Bulawayo Airport", "Harare CBD"]

    scoped = await client.get(
        "/api/v1/dashboards", headers=app_context["manager_headers"]
    )
    scoped_kpis = scoped.json()["data"]["kpis"]
    assert scoped_kpis["total_vehicles"] == 2
    assert scoped_kpis["total_revenue_paid_in_range"] == "50.00"

    forbidden = await client.get(
        "/api/v1/dashboards",
        params={"branch_id": str(app_context["bulawayo_id"])},
        headers=app_context["manager_headers"],
    )
    assert forbidden.status_code == 403


async def test_revenue_is_never_summed_across_currencies(app_context: dict[str, Any]) -> None:
    client: AsyncClient = app_context["client"]  # type: ignore[assignment]
    await _seed_activity(client, app_context)

    start = datetime(2030, 3, 1, 9, 0, tzinfo=UTC)
    created = await client.post(
        "/api/v1/reservations",
        json={
            "user_id": str(app_context["customer_id"]),
            "vehicle_model_id": str(app_context["corolla_id"]),
            "vehicle_id": str(app_context["v1_id"]),
            "pickup": {"branch_id": str(app_context["harare_id"]), "at": start.isoformat()},
            "dropoff": {
                "branch_id": str(app_context["harare_id"]),
                "at": (start + timedelta(days=1)).isoformat(),
            },
            "pricing": {
                "currency": "ZWL",
                "breakdown": [{"label": "Daily rate", "quantity": 1, "unit_amount": "5000.00"}],
            },
        },
        headers=app_context["admin_headers"],
    )
    assert created.status_code == 201, created.text
    zwl = created.json()["data"]
    paid = await client.post(
        f"/api/v1/reservations/{zwl['id']}/payments",
        json={
            "payment_id": "pi_zwl",
            "amount": "5000.00",
            "currency": "ZWL",
            "occurred_at": datetime.now(UTC).isoformat(),
        },
        headers=app_context["admin_headers"],
    )
    assert paid.status_code == 200, paid.text

    report = await client.get(
        "/api/v1/reports", params={"type": "payments"}, headers=app_context["admin_headers"]
    )
    groups = {
        item["currency"]: item for item in report.json()["data"]["summary"]["by_payment_status"]
    }
    assert groups["USD"]["total_amount"] == "220.00"
    assert groups["ZWL"]["total_amount"] == "5000.00"

    usd = await client.get("/api/v1/dashboards", headers=app_context["admin_headers"])
    assert usd.json()["data"]["kpis"]["total_revenue_paid_in_range"] == "220.00"

    local = await client.get(
        "/api/v1/dashboards", params={"currency": "ZWL"}, headers=app_context["admin_headers"]
    )
    kpis = local.json()["data"]["kpis"]
    assert kpis["revenue_currency"] == "ZWL"
    assert kpis["total_revenue_paid_in_range"] == "5000.00"
    assert [bar["value"] for bar in local.json()["data"]["charts"]["bars"]["revenue_by_branch"]] == [
        "5000.00"
    ]
