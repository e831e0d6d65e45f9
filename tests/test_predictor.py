"""
Tests for growth projection and alert detection.
"""
from datetime import date, timedelta

import pytest

from growthstd.models.data_structures import Gender, MeasurementType, TrendPoint
from growthstd.models.predictor import (
    INSUFFICIENT_DATA_MESSAGE, average_monthly_growth, detect_alerts,
    project_by_zscore, project_growth,
)


def _points(pairs, z_scores=None, percentiles=None):
    """pairs: (age_months, value) oldest first."""
    points = []
    for i, (age_months, value) in enumerate(pairs):
        points.append(TrendPoint(
            date=date(2024, 1, 1) + timedelta(days=30 * i),
            age_days=int(round(age_months * 30.44)),
            age_months=age_months,
            value=value,
            z_score=z_scores[i] if z_scores else None,
            percentile=percentiles[i] if percentiles else None,
        ))
    return points


class TestLinearProjection:

    def test_uses_three_most_recent_points(self):
        # oldest point would pull the rate down if it were used
        points = _points([(1, 2.0), (2, 5.0), (3, 6.0), (4, 8.0)])
        result = project_growth(points, horizon_months=12)
        assert result.status == 'ok'
        assert result.method == 'linear'
        assert result.average_monthly_growth == pytest.approx(1.5)
        assert result.current_value == 8.0
        assert result.current_age_months == 4

    def test_steps_and_values(self):
        points = _points([(2, 5.0), (3, 6.0), (4, 8.0)])
        result = project_growth(points, horizon_months=12)
        assert [p.months_ahead for p in result.projections] == [1, 4, 7, 10]
        assert [p.age_months for p in result.projections] == [5, 8, 11, 14]
        values = [p.projected_value for p in result.projections]
        assert values == pytest.approx([9.5, 14.0, 18.5, 23.0])

    def test_confidence_decays_to_floor(self):
        points = _points([(2, 5.0), (3, 6.0), (4, 8.0)])
        confidences = [p.confidence for p in project_growth(points, 24).projections]
        assert confidences[:3] == pytest.approx([0.65, 0.5, 0.35])
        assert all(c == 0.3 for c in confidences[3:])
        assert confidences == sorted(confidences, reverse=True)

    def test_overall_confidence(self):
        growing = project_growth(_points([(1, 4.0), (2, 5.0)]))
        shrinking = project_growth(_points([(1, 5.0), (2, 4.8)]))
        assert growing.confidence == 'moderate'
        assert shrinking.confidence == 'low'

    def test_short_horizon(self):
        result = project_growth(_points([(1, 4.0), (2, 5.0)]), horizon_months=3)
        assert [p.months_ahead for p in result.projections] == [1]

    def test_insufficient_data(self):
        result = project_growth(_points([(1, 4.0)]))
        assert result.status == 'insufficient_data'
        assert result.projections == []
        assert result.confidence == 'low'
        assert result.message == INSUFFICIENT_DATA_MESSAGE

    def test_same_age_pairs_skipped(self):
        assert average_monthly_growth(_points([(1, 4.0), (1, 4.2)])) is None
        assert project_growth(_points([(1, 4.0), (1, 4.2)])).status == 'insufficient_data'
        rate = average_monthly_growth(_points([(1, 4.0), (1, 4.2), (2, 5.2)]))
        assert rate == pytest.approx(1.0)


class TestZScoreProjection:

    def test_follows_reference_curve(self, who_engine):
        points = _points([(3, 6.3762)], z_scores=[0.0])
        result = project_by_zscore(points, who_engine, Gender.MALE,
                                   MeasurementType.WEIGHT, horizon_months=12)
        assert result.status == 'ok'
        assert result.method == 'zscore_persistence'
        values = [p.projected_value for p in result.projections]
        assert values == sorted(values)
        assert all(p.projected_zscore == 0.0 for p in result.projections)
        assert values[0] > 6.3762

    def test_computes_missing_zscore(self, who_engine):
        points = _points([(6, 7.934)])
        result = project_by_zscore(points, who_engine, Gender.MALE)
        assert result.projections[0].projected_zscore == pytest.approx(0.0, abs=0.01)

    def test_no_points(self, who_engine):
        assert project_by_zscore([], who_engine, Gender.MALE).status == 'insufficient_data'


class TestAlerts:

    def test_extreme_zscores(self):
        points = _points([(1, 2.5), (2, 9.0), (3, 6.0)], z_scores=[-3.4, 3.2, 0.0])
        alerts = detect_alerts(points)
        types = [(a.alert_type, a.severity) for a in alerts]
        assert ('SEVERE_UNDERWEIGHT', 'critical') in types
        assert ('OBESE', 'warning') in types

    def test_thresholds_are_strict(self):
        points = _points([(1, 3.0), (2, 9.0)], z_scores=[-3.0, 3.0],
                         percentiles=[0.13, 99.87])
        assert detect_alerts(points) == []

    def test_percentile_drop(self):
        points = _points([(1, 4.0), (2, 4.2)], percentiles=[60.0, 20.0])
        alerts = detect_alerts(points)
        assert len(alerts) == 1
        assert alerts[0].alert_type == 'PERCENTILE_DROP'
        assert alerts[0].percentile_drop == pytest.approx(40.0)
        assert alerts[0].date == points[1].date

    def test_small_drop_ignored(self):
        points = _points([(1, 4.0), (2, 4.2)], percentiles=[60.0, 40.0])
        assert detect_alerts(points) == []
