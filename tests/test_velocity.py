"""
Tests for growth velocity and trends.
"""
from datetime import date, datetime, timedelta, timezone

import pytest

from growthstd.models.data_structures import (
    Gender, GrowthRecord, Measurement, MeasurementType,
)
from growthstd.models.velocity import (
    build_trend, calculate_velocity, days_between,
)

W = MeasurementType.WEIGHT


def _m(d, age, value, mt=W, z=None):
    return Measurement(d, age, value, mt, z_score=z)


class TestVelocity:

    def test_first_and_last_points(self):
        history = [
            _m(date(2024, 1, 1), 30, 4.0),
            _m(date(2024, 1, 31), 60, 4.9),
            _m(date(2024, 3, 1), 90, 5.6),
        ]
        v = calculate_velocity(history, W)
        assert v.days_between == 60
        assert v.total_change == 1.6
        assert v.per_day == 0.0267
        assert v.per_week == 0.1867
        assert v.per_month == 0.8117
        assert v.per_year == 9.74
        assert v.age_change_months == 1.97

    def test_intermediate_points_ignored(self):
        base = [_m(date(2024, 1, 1), 30, 4.0), _m(date(2024, 3, 1), 90, 5.6)]
        wiggly = base[:1] + [_m(date(2024, 2, 1), 61, 9.9)] + base[1:]
        assert calculate_velocity(base, W) == calculate_velocity(wiggly, W)

    def test_unsorted_history(self):
        history = [_m(date(2024, 3, 1), 90, 5.6), _m(date(2024, 1, 1), 30, 4.0)]
        assert calculate_velocity(history, W).total_change == 1.6

    def test_single_point(self):
        assert calculate_velocity([_m(date(2024, 1, 1), 30, 4.0)], W) is None

    def test_no_points(self):
        assert calculate_velocity([], W) is None

    def test_zero_time_span(self):
        history = [_m(date(2024, 1, 1), 30, 4.0), _m(date(2024, 1, 1), 30, 4.2)]
        assert calculate_velocity(history, W) is None

    def test_sub_day_span_keeps_minimum_one_day(self):
        history = [_m(datetime(2024, 1, 1, 8), 30, 4.0),
                   _m(datetime(2024, 1, 1, 14), 30, 4.1)]
        v = calculate_velocity(history, W)
        assert v.days_between == 1
        assert v.per_day == pytest.approx(0.4, abs=1e-4)

    def test_mixed_utc_offsets(self):
        eastern = timezone(timedelta(hours=-5))
        history = [_m(datetime(2024, 1, 1, 20, tzinfo=eastern), 30, 5.0),
                   _m(datetime(2024, 1, 2, 3, tzinfo=timezone.utc), 30, 5.1)]
        assert days_between(history[0].date, history[1].date) == pytest.approx(2 / 24)
        v = calculate_velocity(history, W)
        assert v.per_day == pytest.approx(1.2)

    def test_aware_datetimes_in_naive_window(self):
        tokyo = timezone(timedelta(hours=9))
        # 2024-01-02 02:00 in Tokyo is still 2024-01-01 in UTC
        history = [_m(datetime(2024, 1, 2, 2, tzinfo=tokyo), 30, 4.0),
                   _m(datetime(2024, 1, 31, 12, tzinfo=tokyo), 60, 4.9)]
        assert calculate_velocity(history, W, date(2024, 1, 2)) is None
        assert calculate_velocity(history, W, date(2024, 1, 1)).total_change == pytest.approx(0.9)

    def test_window(self):
        history = [
            _m(date(2023, 6, 1), 0, 3.3),
            _m(date(2024, 1, 1), 214, 8.0),
            _m(date(2024, 3, 1), 274, 8.6),
        ]
        v = calculate_velocity(history, W, date(2024, 1, 1), date(2024, 3, 1))
        assert v.days_between == 60
        assert v.total_change == pytest.approx(0.6)

    def test_ignores_other_types_and_missing_values(self):
        history = [
            _m(date(2024, 1, 1), 30, 4.0),
            _m(date(2024, 2, 1), 61, 55.0, MeasurementType.HEIGHT),
            _m(date(2024, 2, 15), 75, None),
            _m(date(2024, 3, 1), 90, 5.6),
        ]
        assert calculate_velocity(history, W).days_between == 60

    def test_growth_records(self):
        records = [
            GrowthRecord(date(2024, 1, 1), 30, weight=4.0, height=54.0),
            GrowthRecord(date(2024, 3, 1), 90, weight=5.6, height=60.0),
        ]
        assert calculate_velocity(records, W).total_change == 1.6
        assert calculate_velocity(records, 'Height').total_change == 6.0
        assert calculate_velocity(records, 'HeadCircumference') is None

    def test_days_between_mixes_dates_and_datetimes(self):
        assert days_between(date(2024, 1, 1), datetime(2024, 1, 2, 12)) == 1.5


class TestTrend:

    def test_points_and_summary(self, weight_history):
        trend = build_trend(weight_history, W)
        assert trend.status == 'ok'
        assert [p.age_days for p in trend.points] == [30, 60, 90, 180]
        assert trend.summary.total_measurements == 4
        assert trend.summary.first_date == date(2024, 1, 1)
        assert trend.summary.last_date == date(2024, 5, 30)
        assert trend.summary.current_value == 7.9
        assert trend.velocity.total_change == pytest.approx(3.4)

    def test_percentile_from_stored_zscore(self):
        history = [_m(date(2024, 1, 1), 30, 4.0, z=0.0),
                   _m(date(2024, 2, 1), 61, 5.0)]
        trend = build_trend(history, W)
        assert trend.points[0].percentile == 50.0
        assert trend.points[1].z_score is None
        assert trend.points[1].percentile is None

    def test_zscores_computed_with_engine(self, weight_history, who_engine):
        trend = build_trend(weight_history, W, engine=who_engine,
                            gender=Gender.MALE)
        assert all(p.z_score is not None for p in trend.points)
        assert trend.summary.current_percentile == trend.points[-1].percentile

    def test_date_range(self, weight_history):
        trend = build_trend(weight_history, W, start_date=date(2024, 1, 15),
                            end_date=date(2024, 3, 1))
        assert [p.age_days for p in trend.points] == [60, 90]

    def test_insufficient_data(self, weight_history):
        trend = build_trend(weight_history[:1], W)
        assert trend.status == 'insufficient_data'
        assert trend.velocity is None
        assert trend.summary.total_measurements == 1

    def test_empty(self):
        trend = build_trend([], W)
        assert trend.points == []
        assert trend.summary.current_value is None
        assert trend.to_dict()['measurement_type'] == 'Weight'
