"""
Synthetic Data Generator

Generates a realistic rental fleet for development and demos:
- Vehicles across five categories with realistic acquisition costs
- Three months of completed bookings per vehicle, sized to a target
  utilization per vehicle type, plus some upcoming confirmed bookings
- Two to five maintenance events per vehicle
"""

import random
import uuid
from datetime import datetime, timedelta
from typing import Dict, List, NamedTuple, Optional

import numpy as np
import polars as pl
from faker import Faker

from fleetops.database.models import BookingStatus, VehicleCategory, VehicleStatus
from fleetops.metrics.windows import utc_now


# =============================================================================
# CONFIGURATION
# =============================================================================

class VehicleModel(NamedTuple):
    make: str
    model: str
    year: int
    category: VehicleCategory
    body: str
    daily_rate: int
    acquisition_cost: int


VEHICLE_MODELS = [
    VehicleModel("Toyota", "Corolla", 2023, VehicleCategory.ECONOMY, "Sedan", 45, 25000),
    VehicleModel("Toyota", "Corolla", 2023, VehicleCategory.ECONOMY, "Sedan", 45, 25000),
    VehicleModel("Toyota", "Corolla", 2022, VehicleCategory.ECONOMY, "Sedan", 40, 22000),
    VehicleModel("Honda", "Civic", 2023, VehicleCategory.ECONOMY, "Sedan", 48, 26000),
    VehicleModel("Honda", "Civic", 2023, VehicleCategory.ECONOMY, "Sedan", 48, 26000),
    VehicleModel("Hyundai", "Elantra", 2023, VehicleCategory.ECONOMY, "Sedan", 42, 23000),
    VehicleModel("Toyota", "RAV4", 2023, VehicleCategory.MIDSIZE_SUV, "SUV", 65, 35000),
    VehicleModel("Toyota", "RAV4", 2023, VehicleCategory.MIDSIZE_SUV, "SUV", 65, 35000),
    VehicleModel("Toyota", "RAV4", 2022, VehicleCategory.MIDSIZE_SUV, "SUV", 60, 32000),
    VehicleModel("Honda", "CR-V", 2023, VehicleCategory.MIDSIZE_SUV, "SUV", 62, 34000),
    VehicleModel("Honda", "CR-V", 2023, VehicleCategory.MIDSIZE_SUV, "SUV", 62, 34000),
    VehicleModel("Mazda", "CX-5", 2023, VehicleCategory.MIDSIZE_SUV, "SUV", 63, 33000),
    VehicleModel("Tesla", "Model 3", 2023, VehicleCategory.LUXURY_SEDAN, "Sedan", 95, 45000),
    VehicleModel("Tesla", "Model 3", 2023, VehicleCategory.LUXURY_SEDAN, "Sedan", 95, 45000),
    VehicleModel("BMW", "3 Series", 2023, VehicleCategory.LUXURY_SEDAN, "Sedan", 110, 50000),
    VehicleModel("Mercedes-Benz", "C-Class", 2023, VehicleCategory.LUXURY_SEDAN, "Sedan", 115, 52000),
    VehicleModel("Chevrolet", "Tahoe", 2023, VehicleCategory.LARGE_SUV, "SUV", 85, 55000),
    VehicleModel("Ford", "Explorer", 2023, VehicleCategory.LARGE_SUV, "SUV", 80, 50000),
    VehicleModel("Toyota", "Highlander", 2023, VehicleCategory.LARGE_SUV, "SUV", 78, 48000),
    VehicleModel("Ford", "F-150", 2023, VehicleCategory.TRUCK, "Truck", 90, 50000),
    VehicleModel("Chevrolet", "Silverado", 2023, VehicleCategory.TRUCK, "Truck", 88, 48000),
]

MAINTENANCE_TYPES = [
    ("Oil Change", (50, 80)),
    ("Tire Rotation", (40, 60)),
    ("Brake Service", (200, 400)),
    ("General Inspection", (75, 125)),
    ("Battery Replacement", (150, 250)),
    ("Air Filter Replacement", (30, 50)),
    ("Transmission Service", (300, 500)),
]

# Booking length in days, weighted toward 3-5
BOOKING_DURATIONS = [1, 2, 3, 4, 5, 6, 7]
BOOKING_DURATION_WEIGHTS = [0.1, 0.1, 0.2, 0.2, 0.2, 0.1, 0.1]

# Depot the fleet is scattered around (New York City)
DEPOT = (40.7128, -74.0060)

HISTORY_DAYS = 90


def target_utilization(model: VehicleModel) -> float:
    """Share of days a vehicle of this kind is rented."""
    if model.body == "SUV" and model.daily_rate < 70:
        return 0.70
    if model.body == "Sedan" and model.daily_rate < 50:
        return 0.65
    if model.make in ("Tesla", "BMW"):
        return 0.50
    if model.body == "Truck":
        return 0.35
    return 0.55


# =============================================================================
# GENERATORS
# =============================================================================

class FleetGenerator:
    """
    Generate a consistent fleet with booking and maintenance history.

    Example:
        frames = FleetGenerator(seed=42).generate()
        frames["vehicles"], frames["bookings"], frames["maintenance"]
    """

    def __init__(self, seed: Optional[int] = 42, now: Optional[datetime] = None):
        self.random = random.Random(seed)
        self.np_random = np.random.default_rng(seed)
        self.fake = Faker()
        if seed is not None:
            self.fake.seed_instance(seed)
        self.now = now or utc_now()
        self.history_start = self.now - timedelta(days=HISTORY_DAYS)

    def _vehicles(self) -> List[Dict]:
        vehicles = []
        for model in VEHICLE_MODELS:
            vehicles.append({
                "vehicle_id": str(uuid.UUID(int=self.random.getrandbits(128), version=4)),
                "make": model.make,
                "model": model.model,
                "year": model.year,
                "license_plate": self.fake.unique.bothify("???-####").upper(),
                "vin": f"VIN{self.random.randint(10000000, 99999999)}",
                "category": model.category.value,
                "status": VehicleStatus.AVAILABLE.value,
                "acquisition_cost": float(model.acquisition_cost),
                "current_latitude": DEPOT[0] + (self.random.random() - 0.5) * 0.1,
                "current_longitude": DEPOT[1] + (self.random.random() - 0.5) * 0.1,
                "last_location_update": self.now,
                "current_odometer": self.random.randint(5000, 25000),
                "last_odometer_update": self.now,
                "created_at": self.history_start,
                "daily_rate": float(model.daily_rate),
                "target_utilization": target_utilization(model),
            })
        return vehicles

    def _customer(self) -> Dict[str, str]:
        name = self.fake.name()
        return {"customer_name": name, "customer_email": self.fake.email()}

    def _bookings_for(self, vehicle: Dict) -> List[Dict]:
        bookings = []
        target_days = int(HISTORY_DAYS * vehicle["target_utilization"])
        rented_days = 0
        cursor = self.history_start

        while rented_days < target_days and cursor < self.now:
            duration = int(self.np_random.choice(BOOKING_DURATIONS, p=BOOKING_DURATION_WEIGHTS))
            start = cursor
            end = start + timedelta(days=duration)
            if end > self.now:
                break
            bookings.append({
                "vehicle_id": vehicle["vehicle_id"],
                **self._customer(),
                "start_date": start,
                "end_date": end,
                "daily_rate": vehicle["daily_rate"],
                "total_amount": vehicle["daily_rate"] * duration,
                "status": BookingStatus.COMPLETED.value,
            })
            rented_days += duration
            cursor = end + timedelta(days=self.random.randint(0, 3))

        # Some vehicles also have an upcoming booking
        if self.random.random() > 0.7:
            start = self.now + timedelta(days=self.random.randint(1, 7))
            duration = self.random.randint(3, 7)
            bookings.append({
                "vehicle_id": vehicle["vehicle_id"],
                **self._customer(),
                "start_date": start,
                "end_date": start + timedelta(days=duration),
                "daily_rate": vehicle["daily_rate"],
                "total_amount": vehicle["daily_rate"] * duration,
                "status": BookingStatus.CONFIRMED.value,
            })
        return bookings

    def _maintenance_for(self, vehicle: Dict) -> List[Dict]:
        records = []
        odometer = vehicle["current_odometer"]
        for _ in range(self.random.randint(2, 5)):
            service_type, (low, high) = self.random.choice(MAINTENANCE_TYPES)
            date = self.fake.date_time_between(start_date=self.history_start, end_date=self.now)
            records.append({
                "vehicle_id": vehicle["vehicle_id"],
                "date": date,
                "type": service_type,
                "description": f"Routine {service_type.lower()}",
                "cost": float(self.random.randint(low, high)),
                "odometer_at_service": max(0, odometer - self.random.randint(0, 3000)),
                "next_service_due": date + timedelta(days=90),
                "next_service_mileage": odometer + 5000,
            })
        return records

    def generate(self) -> Dict[str, pl.DataFrame]:
        vehicles = self._vehicles()
        bookings = [b for v in vehicles for b in self._bookings_for(v)]
        maintenance = [m for v in vehicles for m in self._maintenance_for(v)]

        # Vehicles with an upcoming booking are reserved
        reserved = {b["vehicle_id"] for b in bookings if b["status"] == BookingStatus.CONFIRMED.value}
        for vehicle in vehicles:
            if vehicle["vehicle_id"] in reserved:
                vehicle["status"] = VehicleStatus.RESERVED.value

        return {
            "vehicles": pl.DataFrame(vehicles).drop(["daily_rate", "target_utilization"]),
            "bookings": pl.DataFrame(bookings),
            "maintenance": pl.DataFrame(maintenance),
        }
