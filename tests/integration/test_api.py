"""
Integration Tests - API Endpoints
"""
from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient

from fleetops.config import Settings
from fleetops.config.settings import SecuritySettings
from fleetops.metrics.windows import to_epoch_ms
from fleetops.serving.api.main import create_api_app


def _now() -> datetime:
    return datetime.now(timezone.utc)


@pytest.fixture
async def vehicle(client) -> dict:
    response = await client.post("/api/v1/vehicles", json={
        "make": "Honda",
        "model": "CR-V",
        "year": 2023,
        "license_plate": "CRV-0001",
        "vin": "VIN87654321",
        "category": "Mid-size SUVs",
        "acquisition_cost": 34000,
        "current_latitude": 40.7,
        "current_longitude": -74.0,
    })
    assert response.status_code == 201
    return response.json()


@pytest.fixture
async def booking(client, vehicle) -> dict:
    now = _now()
    response = await client.post("/api/v1/bookings", json={
        "vehicle_id": vehicle["vehicle_id"],
        "customer_name": "John Doe",
        "customer_email": "john@example.com",
        "start_date": (now - timedelta(days=3)).isoformat(),
        "end_date": (now - timedelta(days=1)).isoformat(),
        "daily_rate": 62,
    })
    assert response.status_code == 201
    return response.json()


class TestHealth:
    """Tests for health endpoints"""

    async def test_liveness(self, client):
        response = await client.get("/api/v1/health/live")

        assert response.status_code == 200
        assert response.json() == {"status": "alive"}

    async def test_health_reports_aggregates(self, client):
        response = await client.get("/api/v1/health")

        body = response.json()
        assert body["status"] == "healthy"
        assert body["checks"]["database"]["status"] == "healthy"
        assert body["checks"]["aggregates"]["bookings"] == {"entries": 0, "total": 0.0}
        assert body["checks"]["redis"] == {"status": "disabled"}

    async def test_ready(self, client):
        response = await client.get("/api/v1/health/ready")

        assert response.status_code == 200

    async def test_not_ready_without_registry(self, app, client):
        app.state.registry = None

        response = await client.get("/api/v1/health/ready")

        assert response.status_code == 503
        assert response.json()["reason"] == "aggregates_not_loaded"

    async def test_info_and_headers(self, client):
        response = await client.get("/api/v1/info", headers={"X-Request-ID": "req-1"})

        assert response.json()["name"] == "Fleet Operations API"
        assert response.headers["X-Request-ID"] == "req-1"
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert "X-Response-Time" in response.headers


class TestVehicles:
    """Tests for vehicle endpoints"""

    async def test_create_and_get(self, client, vehicle):
        response = await client.get(f"/api/v1/vehicles/{vehicle['vehicle_id']}")

        assert response.status_code == 200
        assert response.json()["license_plate"] == "CRV-0001"
        assert response.json()["status"] == "available"

    async def test_unknown_vehicle_is_404(self, client):
        response = await client.get("/api/v1/vehicles/00000000-0000-0000-0000-000000000000")

        assert response.status_code == 404

    async def test_invalid_payload_is_422(self, client):
        response = await client.post("/api/v1/vehicles", json={"make": "Honda"})

        assert response.status_code == 422

    async def test_duplicate_license_plate_is_422(self, client, vehicle):
        response = await client.post("/api/v1/vehicles", json={
            "make": "Toyota",
            "model": "RAV4",
            "year": 2022,
            "license_plate": "CRV-0001",
            "vin": "VIN11112222",
            "category": "Mid-size SUVs",
            "acquisition_cost": 31000,
            "current_latitude": 40.7,
            "current_longitude": -74.0,
        })

        assert response.status_code == 422
        assert response.json()["error"] == "invalid_record"
        stats = (await client.get("/api/v1/admin/aggregates")).json()
        assert stats["vehicles"] == {"entries": 1, "total": 34000.0}

    async def test_telemetry_updates(self, client, vehicle):
        vehicle_id = vehicle["vehicle_id"]

        location = await client.patch(f"/api/v1/vehicles/{vehicle_id}/location", json={
            "latitude": 40.75,
            "longitude": -73.98,
        })
        odometer = await client.patch(f"/api/v1/vehicles/{vehicle_id}/odometer", json={"reading": 15000})
        status = await client.patch(f"/api/v1/vehicles/{vehicle_id}/status", json={"status": "maintenance"})

        assert location.json()["current_latitude"] == 40.75
        assert odometer.json()["current_odometer"] == 15000
        assert status.json()["status"] == "maintenance"

    async def test_list_by_category(self, client, vehicle):
        response = await client.get("/api/v1/vehicles", params={"category": "Mid-size SUVs"})

        assert [v["vehicle_id"] for v in response.json()] == [vehicle["vehicle_id"]]

    async def test_profitability(self, client, vehicle):
        response = await client.get(f"/api/v1/vehicles/{vehicle['vehicle_id']}/profitability")

        body = response.json()
        assert body["net_profit"] == -34000
        assert body["roi"] == -100
        assert body["vehicle"]["vehicle_id"] == vehicle["vehicle_id"]


class TestBookings:
    """Tests for booking endpoints"""

    async def test_create_reserves_vehicle(self, client, vehicle, booking):
        assert booking["status"] == "confirmed"
        assert booking["total_amount"] == 124
        assert booking["vehicle"]["status"] == "reserved"

        metrics = await client.get("/api/v1/dashboard/active-bookings")
        assert metrics.json()["current"] == 1

    async def test_end_before_start_is_422(self, client, vehicle):
        response = await client.post("/api/v1/bookings", json={
            "vehicle_id": vehicle["vehicle_id"],
            "customer_name": "John Doe",
            "customer_email": "john@example.com",
            "start_date": _now().isoformat(),
            "end_date": (_now() - timedelta(days=1)).isoformat(),
            "daily_rate": 62,
        })

        assert response.status_code == 422

    async def test_complete_updates_revenue(self, client, booking):
        response = await client.patch(
            f"/api/v1/bookings/{booking['booking_id']}/status", json={"status": "completed"}
        )

        assert response.json()["status"] == "completed"
        assert response.json()["vehicle"]["status"] == "available"
        revenue = (await client.get("/api/v1/dashboard/revenue")).json()
        assert revenue == {"current": 124.0, "previous": 0.0, "trend": 0.0}

    async def test_unknown_booking_is_404(self, client):
        response = await client.patch(
            "/api/v1/bookings/00000000-0000-0000-0000-000000000000/status", json={"status": "active"}
        )

        assert response.status_code == 404

    async def test_deleted_vehicle_renders_null(self, client, vehicle, booking):
        await client.delete(f"/api/v1/vehicles/{vehicle['vehicle_id']}")

        response = await client.get(f"/api/v1/bookings/{booking['booking_id']}")

        assert response.status_code == 200
        assert response.json()["vehicle"] is None

    async def test_list_filtered_by_status(self, client, booking):
        confirmed = await client.get("/api/v1/bookings", params={"status": "confirmed"})
        completed = await client.get("/api/v1/bookings", params={"status": "completed"})

        assert len(confirmed.json()) == 1
        assert completed.json() == []

    async def test_delete(self, client, booking):
        response = await client.delete(f"/api/v1/bookings/{booking['booking_id']}")

        assert response.status_code == 204
        stats = (await client.get("/api/v1/admin/aggregates")).json()
        assert stats["bookings"]["entries"] == 0


class TestMaintenance:
    """Tests for maintenance endpoints"""

    async def test_create_list_delete(self, client, vehicle):
        created = await client.post("/api/v1/maintenance", json={
            "vehicle_id": vehicle["vehicle_id"],
            "date": _now().isoformat(),
            "type": "Oil Change",
            "cost": 65,
            "odometer_at_service": 12000,
        })

        assert created.status_code == 201
        assert created.json()["vehicle"]["license_plate"] == "CRV-0001"

        listed = await client.get("/api/v1/maintenance", params={"vehicle_id": vehicle["vehicle_id"]})
        assert len(listed.json()) == 1

        path = f"/api/v1/maintenance/{created.json()['maintenance_id']}"
        fetched = await client.get(path)
        assert fetched.json()["cost"] == 65

        deleted = await client.delete(path)
        assert deleted.status_code == 204
        assert (await client.get(path)).status_code == 404


class TestDashboard:
    """Tests for dashboard endpoints"""

    async def test_card_metrics(self, client, booking):
        response = await client.get("/api/v1/dashboard/metrics")

        body = response.json()
        assert set(body) == {"total_revenue", "net_profit", "fleet_utilization", "active_bookings"}
        assert body["fleet_utilization"]["active_vehicles"] == 1
        assert body["net_profit"]["current"] == pytest.approx(-34000 / 12)

    async def test_daily_revenue(self, client):
        response = await client.get("/api/v1/dashboard/daily-revenue", params={"days": 7})

        assert len(response.json()) == 7

    async def test_daily_revenue_days_validated(self, client):
        response = await client.get("/api/v1/dashboard/daily-revenue", params={"days": 0})

        assert response.status_code == 422


class TestAnalytics:
    """Tests for analytics endpoints, served uncached without Redis"""

    async def test_overview(self, client, vehicle):
        response = await client.get("/api/v1/analytics/overview")

        body = response.json()
        assert body["total_vehicles"] == 1
        assert body["total_costs"] == 34000

    async def test_rankings(self, client, vehicle):
        for path in ("vehicle-profitability", "categories", "break-even"):
            response = await client.get(f"/api/v1/analytics/{path}")
            assert response.status_code == 200
            assert len(response.json()) == 1


class TestAdmin:
    """Tests for aggregate administration"""

    async def test_range_query(self, client, booking):
        end_ms = to_epoch_ms(datetime.fromisoformat(booking["end_date"]))

        response = await client.post("/api/v1/admin/aggregates/bookings/query", json={
            "lower": {"key": ["confirmed", end_ms]},
            "upper": {"key": ["confirmed"]},
        })

        assert response.json() == {"entity": "bookings", "sum": 124.0, "count": 1}

    async def test_inverted_range_is_400(self, client):
        response = await client.post("/api/v1/admin/aggregates/maintenance/query", json={
            "lower": {"key": 10},
            "upper": {"key": 1},
        })

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_bounds"

    async def test_drift_is_409_until_backfill(self, client, registry, booking):
        registry.bookings.aggregate.clear()
        path = f"/api/v1/bookings/{booking['booking_id']}/status"

        response = await client.patch(path, json={"status": "active"})

        assert response.status_code == 409
        assert response.json()["error"] == "aggregate_out_of_sync"

        backfill = await client.post("/api/v1/admin/backfill")
        assert backfill.status_code == 200
        assert {r["entity"] for r in backfill.json()} == {"bookings", "maintenance", "vehicles"}

        retry = await client.patch(path, json={"status": "active"})
        assert retry.status_code == 200
        assert retry.json()["status"] == "active"

    async def test_backfill_subset(self, client, vehicle):
        response = await client.post("/api/v1/admin/backfill", json={"entities": ["vehicles"], "chunk_size": 10})

        assert [r["entity"] for r in response.json()] == ["vehicles"]
        assert response.json()[0]["entries"] == 1


class TestRateLimit:
    """Tests for the rate limiting middleware"""

    async def test_limit_exceeded(self, database, registry):
        settings = Settings(security=SecuritySettings(RATE_LIMIT_REQUESTS=2))
        app = create_api_app(settings)
        app.state.registry = registry

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            statuses = [(await client.get("/api/v1/info")).status_code for _ in range(3)]
            health = await client.get("/api/v1/health/live")

        assert statuses == [200, 200, 429]
        assert health.status_code == 200
