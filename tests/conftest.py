"""
Test Suite Configuration
"""
import logging
import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from typing import AsyncGenerator

import pytest
import structlog
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from fleetops.aggregation import AggregateRegistry, build_registry
from fleetops.database.connection import close_database, get_db, init_database
from fleetops.database.models import (
    Booking,
    BookingStatus,
    MaintenanceRecord,
    Vehicle,
    VehicleCategory,
    VehicleStatus,
)
from fleetops.serving.api.main import create_api_app

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Fixed "now" for metric tests
NOW = datetime(2024, 6, 30, 12, 0, 0)


@pytest.fixture(scope="session", autouse=True)
def quiet_logging():
    """Aggregate writes log at debug; keep test output to warnings"""
    structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(logging.WARNING))


class FleetBuilder:
    """Adds records straight to the session, bypassing the services."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def vehicle(self, **overrides) -> Vehicle:
        values = {
            "vehicle_id": uuid.uuid4(),
            "make": "Toyota",
            "model": "Corolla",
            "year": 2023,
            "license_plate": f"TST-{uuid.uuid4().hex[:6].upper()}",
            "vin": "VIN10000001",
            "category": VehicleCategory.ECONOMY,
            "status": VehicleStatus.AVAILABLE,
            "acquisition_cost": Decimal("24000"),
            "current_latitude": 40.71,
            "current_longitude": -74.0,
            "last_location_update": NOW,
            "current_odometer": 1000,
            "last_odometer_update": NOW,
            "created_at": NOW - timedelta(days=90),
        }
        values.update(overrides)
        vehicle = Vehicle(**values)
        self.session.add(vehicle)
        return vehicle

    def booking(
        self,
        vehicle: Vehicle,
        start: datetime,
        end: datetime,
        total: float,
        status: BookingStatus = BookingStatus.COMPLETED,
    ) -> Booking:
        booking = Booking(
            booking_id=uuid.uuid4(),
            vehicle_id=vehicle.vehicle_id,
            customer_name="Jane Smith",
            customer_email="jane@example.com",
            start_date=start,
            end_date=end,
            daily_rate=Decimal("50"),
            total_amount=Decimal(str(total)),
            status=status,
            created_at=start,
        )
        self.session.add(booking)
        return booking

    def maintenance(self, vehicle: Vehicle, date: datetime, cost: float) -> MaintenanceRecord:
        record = MaintenanceRecord(
            maintenance_id=uuid.uuid4(),
            vehicle_id=vehicle.vehicle_id,
            date=date,
            type="Oil Change",
            description="Routine oil change",
            cost=Decimal(str(cost)),
            odometer_at_service=1000,
        )
        self.session.add(record)
        return record

    async def commit(self) -> None:
        await self.session.commit()


@pytest.fixture
async def database():
    """In-memory record store, fresh per test"""
    await init_database(TEST_DATABASE_URL, create_tables=True)
    yield
    await close_database()


@pytest.fixture
async def db(database) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session"""
    async with get_db() as session:
        yield session


@pytest.fixture
def registry() -> AggregateRegistry:
    return build_registry()


@pytest.fixture
def fleet(db) -> FleetBuilder:
    return FleetBuilder(db)


@pytest.fixture
async def app(database, registry):
    """API app with the registry installed, as the lifespan would"""
    app = create_api_app()
    app.state.registry = registry
    return app


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def now() -> datetime:
    return NOW
