"""
Unit Tests - Windows, Trends and Amortization
"""
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from fleetops.config import MetricsSettings
from fleetops.metrics import (
    DAY_MS,
    AgeWeightedDepreciation,
    FleetAsset,
    StraightLineAmortization,
    TimeWindow,
    current_and_previous_windows,
    daily_windows,
    point_trend,
    policy_from_settings,
    profit_trend,
    round1,
    to_epoch_ms,
    trend,
)
from fleetops.metrics.dashboard import overlap_days, window_bounds
from fleetops.metrics.windows import as_naive_utc, from_epoch_ms

T = 1_700_000_000_000


class TestTrends:
    """Tests for period-over-period trends"""

    def test_percentage_change(self):
        assert trend(250, 200) == 25.0

    def test_zero_baseline_reports_no_trend(self):
        assert trend(250, 0) == 0

    def test_negative_baseline_reports_no_trend(self):
        assert trend(250, -10) == 0

    def test_decline(self):
        assert trend(150, 200) == -25.0

    def test_rounded_to_one_decimal(self):
        assert trend(1, 3) == -66.7
        assert round1(2.449) == 2.4

    def test_profit_trend_from_a_loss(self):
        # Smaller loss reads as an improvement
        assert profit_trend(-50, -100) == 50.0
        assert profit_trend(-150, -100) == -50.0

    def test_profit_trend_zero_baseline(self):
        assert profit_trend(500, 0) == 0

    def test_point_trend(self):
        assert point_trend(62.34, 60.0) == 2.3
        assert point_trend(40.0, 45.0) == -5.0


class TestWindows:
    """Tests for epoch helpers and comparison windows"""

    def test_epoch_ms(self):
        assert to_epoch_ms(datetime(1970, 1, 2)) == DAY_MS
        assert from_epoch_ms(DAY_MS) == datetime(1970, 1, 2)

    def test_aware_datetime_converted_to_utc(self):
        aware = datetime(1970, 1, 1, 1, 0, tzinfo=timezone(timedelta(hours=1)))

        assert to_epoch_ms(aware) == 0
        assert as_naive_utc(aware) == datetime(1970, 1, 1)

    def test_adjacent_windows(self):
        current, previous = current_and_previous_windows(T, 30)

        assert current.end == T
        assert current.start == T - 30 * DAY_MS
        assert previous.end == current.start
        assert previous.start == T - 60 * DAY_MS
        assert current.days == 30

    def test_boundary_belongs_to_current_window(self):
        current, previous = current_and_previous_windows(T, 30)

        assert current.contains(current.start)
        assert not previous.contains(current.start)
        assert current.contains(T)
        assert previous.contains(previous.start)

    def test_window_bounds_carry_exclusive_end(self):
        _, previous = current_and_previous_windows(T, 30)

        bounds = window_bounds(previous, ("completed",))

        assert bounds.lower.key == ("completed", previous.start)
        assert bounds.upper.key == ("completed", previous.end)
        assert not bounds.upper.inclusive

    def test_daily_windows(self):
        windows = daily_windows(datetime(2024, 3, 10, 15, 30), 3)

        assert [day for day, _ in windows] == ["2024-03-08", "2024-03-09", "2024-03-10"]
        _, today = windows[-1]
        assert today.start == to_epoch_ms(datetime(2024, 3, 10))
        assert today.end - today.start == DAY_MS
        assert not today.end_inclusive


class TestOverlapDays:
    """Tests for booking/window overlap"""

    @pytest.fixture
    def window(self) -> TimeWindow:
        return TimeWindow(start=T, end=T + 30 * DAY_MS)

    def test_booking_inside_window(self, window):
        assert overlap_days(T + DAY_MS, T + 4 * DAY_MS, window) == 3

    def test_partial_day_rounds_up(self, window):
        assert overlap_days(T, T + DAY_MS + DAY_MS // 2, window) == 2

    def test_clipped_to_window(self, window):
        assert overlap_days(T - 10 * DAY_MS, T + 2 * DAY_MS, window) == 2
        assert overlap_days(T - DAY_MS, T + 40 * DAY_MS, window) == 30

    def test_no_overlap(self, window):
        assert overlap_days(T - 10 * DAY_MS, T - 5 * DAY_MS, window) == 0


class TestAmortization:
    """Tests for acquisition cost policies"""

    def test_straight_line(self):
        policy = StraightLineAmortization(12)

        assert policy.monthly_cost(120000) == 10000
        assert not policy.needs_assets
        assert policy.describe() == {"policy": "straight_line", "months": 12}

    def test_straight_line_needs_positive_months(self):
        with pytest.raises(ValueError):
            StraightLineAmortization(0)

    def test_age_weighted_new_vehicle(self):
        policy = AgeWeightedDepreciation(60)
        now = datetime(2024, 6, 1)

        # 2 / life of the cost in the first month
        assert policy.charge(FleetAsset(60000, now), now) == pytest.approx(2000)

    def test_age_weighted_declines_with_age(self):
        policy = AgeWeightedDepreciation(60)
        now = datetime(2024, 6, 1)
        acquired = now - timedelta(days=30.44 * 6)

        assert policy.charge(FleetAsset(60000, acquired), now) == pytest.approx(1800)

    def test_age_weighted_past_useful_life(self):
        policy = AgeWeightedDepreciation(12)
        now = datetime(2024, 6, 1)

        assert policy.charge(FleetAsset(60000, now - timedelta(days=400)), now) == 0

    def test_age_weighted_sums_fleet(self):
        policy = AgeWeightedDepreciation(60)
        now = datetime(2024, 6, 1)
        assets = [FleetAsset(60000, now), FleetAsset(30000, now)]

        assert policy.needs_assets
        assert policy.monthly_cost(90000, assets, now) == pytest.approx(3000)

    def test_policy_from_settings(self):
        assert isinstance(policy_from_settings(MetricsSettings()), StraightLineAmortization)

        policy = policy_from_settings(MetricsSettings(amortization_policy="age_weighted", useful_life_months=48))
        assert isinstance(policy, AgeWeightedDepreciation)
        assert policy.useful_life_months == 48

    def test_unknown_policy_rejected(self):
        with pytest.raises(ValidationError):
            MetricsSettings(amortization_policy="double_declining")
