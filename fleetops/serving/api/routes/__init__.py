"""
API Routes Module
"""
from .health import router as health_router
from .vehicles import router as vehicles_router
from .bookings import router as bookings_router
from .maintenance import router as maintenance_router
from .dashboard import router as dashboard_router
from .analytics import router as analytics_router
from .admin import router as admin_router

__all__ = [
    "health_router",
    "vehicles_router",
    "bookings_router",
    "maintenance_router",
    "dashboard_router",
    "analytics_router",
    "admin_router",
]
