"""
Data Generation Module
"""
from .generators import FleetGenerator, VEHICLE_MODELS

__all__ = [
    "FleetGenerator",
    "VEHICLE_MODELS",
]
