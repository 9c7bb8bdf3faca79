"""
Acquisition Cost Amortization

Net profit charges each period a share of the fleet's acquisition cost.
How that share is computed is a business choice, so it is injected into the
dashboard as a policy:

- StraightLineAmortization: total acquisition cost spread evenly over a
  fixed number of months. Needs only the vehicles aggregate sum.
- AgeWeightedDepreciation: sum-of-years'-digits style schedule per vehicle,
  heavier in the first months after acquisition and zero once a vehicle is
  past its useful life. Needs each vehicle's cost and acquisition date.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import NamedTuple, Optional, Sequence

from fleetops.config.settings import MetricsSettings
from fleetops.metrics.windows import utc_now

AVG_DAYS_PER_MONTH = 30.44


class FleetAsset(NamedTuple):
    acquisition_cost: float
    acquired_at: datetime


class AmortizationPolicy(ABC):
    """Monthly acquisition-cost charge for net profit."""

    #: Whether ``monthly_cost`` needs per-vehicle assets
    needs_assets: bool = False

    @abstractmethod
    def monthly_cost(
        self,
        total_acquisition_cost: float,
        assets: Sequence[FleetAsset] = (),
        now: Optional[datetime] = None,
    ) -> float:
        ...

    def describe(self) -> dict:
        return {"policy": type(self).__name__}


class StraightLineAmortization(AmortizationPolicy):
    def __init__(self, months: int = 12):
        if months <= 0:
            raise ValueError("Amortization months must be positive")
        self.months = months

    def monthly_cost(self, total_acquisition_cost, assets=(), now=None) -> float:
        return total_acquisition_cost / self.months

    def describe(self) -> dict:
        return {"policy": "straight_line", "months": self.months}


class AgeWeightedDepreciation(AmortizationPolicy):
    """
    Declining monthly charge over ``useful_life_months``.

    A vehicle of age ``a`` months is charged
    ``cost * 2 * (life - a) / life**2`` per month, which sums to its cost
    over its useful life.
    """

    needs_assets = True

    def __init__(self, useful_life_months: int = 60):
        if useful_life_months <= 0:
            raise ValueError("Useful life must be positive")
        self.useful_life_months = useful_life_months

    def charge(self, asset: FleetAsset, now: datetime) -> float:
        age_months = max(0.0, (now - asset.acquired_at).total_seconds() / 86400 / AVG_DAYS_PER_MONTH)
        life = self.useful_life_months
        if age_months >= life:
            return 0.0
        return asset.acquisition_cost * 2 * (life - age_months) / (life * life)

    def monthly_cost(self, total_acquisition_cost, assets=(), now=None) -> float:
        now = now or utc_now()
        return sum(self.charge(asset, now) for asset in assets)

    def describe(self) -> dict:
        return {"policy": "age_weighted", "useful_life_months": self.useful_life_months}


def policy_from_settings(settings: MetricsSettings) -> AmortizationPolicy:
    if settings.amortization_policy == "age_weighted":
        return AgeWeightedDepreciation(settings.useful_life_months)
    return StraightLineAmortization(settings.amortization_months)
