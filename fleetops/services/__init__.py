"""
Record Store Services

Mutations of vehicles, bookings and maintenance records, each committed
together with its aggregate operations.
"""
from .errors import InvalidRecord, RecordNotFound
from .base import RecordService
from .bookings import BookingService
from .maintenance import MaintenanceService
from .vehicles import VehicleService

__all__ = [
    "InvalidRecord",
    "RecordNotFound",
    "RecordService",
    "BookingService",
    "MaintenanceService",
    "VehicleService",
]
