"""
Database Models - Fleet Record Store

Canonical tables for the rental fleet. Aggregates are derived from these
tables and can always be rebuilt from them.

Tables:
- Vehicle: fleet inventory with acquisition cost and live position
- Booking: rentals with status and billed amount
- MaintenanceRecord: service events and their cost
- VehicleLocationHistory / VehicleOdometerHistory: append-only telemetry
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional
import uuid

from sqlalchemy import (
    DateTime,
    Enum as SQLEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


# =============================================================================
# ENUMERATIONS
# =============================================================================

class VehicleStatus(str, Enum):
    """Vehicle availability"""
    AVAILABLE = "available"
    RESERVED = "reserved"
    IN_USE = "in-use"
    MAINTENANCE = "maintenance"


class VehicleCategory(str, Enum):
    """Rental categories"""
    ECONOMY = "Economy Cars"
    MIDSIZE_SUV = "Mid-size SUVs"
    LUXURY_SEDAN = "Luxury Sedans"
    LARGE_SUV = "Large SUVs"
    TRUCK = "Trucks"


class BookingStatus(str, Enum):
    """Booking lifecycle"""
    CONFIRMED = "confirmed"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


# =============================================================================
# RECORD TABLES
# =============================================================================

class Vehicle(Base):
    """
    Vehicle Table

    One row per fleet vehicle. ``acquisition_cost`` feeds the vehicles
    aggregate, keyed by ``last_location_update``.
    """
    __tablename__ = "vehicles"

    vehicle_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    make: Mapped[str] = mapped_column(String(100), nullable=False)
    model: Mapped[str] = mapped_column(String(100), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    license_plate: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    vin: Mapped[str] = mapped_column(String(32), nullable=False)
    category: Mapped[VehicleCategory] = mapped_column(
        SQLEnum(VehicleCategory, values_callable=_enum_values), nullable=False
    )
    status: Mapped[VehicleStatus] = mapped_column(
        SQLEnum(VehicleStatus, values_callable=_enum_values), default=VehicleStatus.AVAILABLE
    )

    acquisition_cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    # Telemetry
    current_latitude: Mapped[float] = mapped_column(Float, nullable=False)
    current_longitude: Mapped[float] = mapped_column(Float, nullable=False)
    last_location_update: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    current_odometer: Mapped[int] = mapped_column(Integer, nullable=False)
    last_odometer_update: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    # Audit - doubles as the acquisition date
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, server_default=func.now())

    __table_args__ = (
        Index("ix_vehicles_status", "status"),
        Index("ix_vehicles_category", "category"),
    )


class Booking(Base):
    """
    Booking Table

    Feeds the bookings aggregate keyed by ``(status, end_date)`` summing
    ``total_amount``. ``vehicle_id`` is not enforced: a booking may outlive
    its vehicle and then renders with no vehicle attached.
    """
    __tablename__ = "bookings"

    booking_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    vehicle_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("vehicles.vehicle_id", ondelete="SET NULL"), nullable=True
    )

    customer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    customer_email: Mapped[str] = mapped_column(String(200), nullable=False)

    start_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    daily_rate: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    status: Mapped[BookingStatus] = mapped_column(
        SQLEnum(BookingStatus, values_callable=_enum_values), default=BookingStatus.CONFIRMED
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, server_default=func.now())

    __table_args__ = (
        Index("ix_bookings_vehicle", "vehicle_id"),
        Index("ix_bookings_status", "status"),
        Index("ix_bookings_start_date", "start_date"),
    )


class MaintenanceRecord(Base):
    """
    Maintenance Table

    Feeds the maintenance aggregate keyed by ``date`` summing ``cost``.
    """
    __tablename__ = "maintenance"

    maintenance_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    vehicle_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("vehicles.vehicle_id", ondelete="SET NULL"), nullable=True
    )

    date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    type: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    cost: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    odometer_at_service: Mapped[int] = mapped_column(Integer, nullable=False)
    next_service_due: Mapped[Optional[datetime]] = mapped_column(DateTime)
    next_service_mileage: Mapped[Optional[int]] = mapped_column(Integer)

    __table_args__ = (
        Index("ix_maintenance_vehicle", "vehicle_id"),
        Index("ix_maintenance_date", "date"),
        Index("ix_maintenance_next_service_due", "next_service_due"),
    )


class VehicleLocationHistory(Base):
    """Location telemetry trail"""
    __tablename__ = "vehicle_location_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    vehicle_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("vehicles.vehicle_id", ondelete="CASCADE"), nullable=False
    )
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        Index("ix_location_history_vehicle_ts", "vehicle_id", "timestamp"),
    )


class VehicleOdometerHistory(Base):
    """Odometer telemetry trail"""
    __tablename__ = "vehicle_odometer_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    vehicle_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("vehicles.vehicle_id", ondelete="CASCADE"), nullable=False
    )
    reading: Mapped[int] = mapped_column(Integer, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        Index("ix_odometer_history_vehicle_ts", "vehicle_id", "timestamp"),
    )
