"""
Metrics Module

Windowed dashboard metrics over the fleet aggregates. Import the dashboard
and fleet analytics from their own modules; the aggregation package depends
on ``windows``.
"""
from .windows import DAY_MS, TimeWindow, current_and_previous_windows, daily_windows, to_epoch_ms
from .trends import point_trend, profit_trend, round1, trend
from .amortization import (
    AgeWeightedDepreciation,
    AmortizationPolicy,
    FleetAsset,
    StraightLineAmortization,
    policy_from_settings,
)

__all__ = [
    "DAY_MS",
    "TimeWindow",
    "current_and_previous_windows",
    "daily_windows",
    "to_epoch_ms",
    "point_trend",
    "profit_trend",
    "round1",
    "trend",
    "AgeWeightedDepreciation",
    "AmortizationPolicy",
    "FleetAsset",
    "StraightLineAmortization",
    "policy_from_settings",
]
