"""
Database Module
"""
from .connection import init_database, close_database, get_db, get_db_dependency
from .models import Base, Booking, BookingStatus, MaintenanceRecord, Vehicle, VehicleCategory, VehicleStatus

__all__ = [
    "init_database",
    "close_database",
    "get_db",
    "get_db_dependency",
    "Base",
    "Booking",
    "BookingStatus",
    "MaintenanceRecord",
    "Vehicle",
    "VehicleCategory",
    "VehicleStatus",
]
