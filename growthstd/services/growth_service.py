"""
Growth service: comparison, projection, batch and chart operations over a
caller-supplied measurement history.

The service is stateless; every call receives the history it works on.
"""
import logging
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Mapping, Optional, Sequence

import pandas as pd

from config.settings import (
    DEFAULT_PERCENTILE_LINES, PATIENT_CHART_MATCH_DAYS, PROJECTION_LOOKBACK_DAYS,
    VELOCITY_THRESHOLDS, VELOCITY_WINDOW_MONTHS,
)
from growthstd.models.data_structures import (
    BatchItemResult, BatchResult, BatchStatistics, ChartSeries,
    ComparisonResult, DateLike, Gender, GrowthAlert, GrowthAssessment,
    GrowthRecord, HistoryItem, MeasurementType, ProjectionResult, TrendResult,
    VelocityResult, ZScoreResult,
)
from growthstd.models.classification import growth_status
from growthstd.models.interpolator import lookup_lms
from growthstd.models.predictor import (
    detect_alerts, project_by_zscore, project_growth,
)
from growthstd.models.reference_store import get_default_store
from growthstd.models.velocity import (
    build_trend, calculate_velocity, usable_measurements,
)
from growthstd.models.who_engine import INVALID_INPUT, WHOZScoreEngine

logger = logging.getLogger(__name__)

PROJECTION_METHODS = ('linear', 'zscore_persistence')

# (SD level, label, colour, lower curve, upper curve)
SD_AREAS = [
    (-3, 'Severe Underweight', '#ff4444', 'sd4neg', 'sd3neg'),
    (-2, 'Moderate Underweight', '#ff8800', 'sd3neg', 'sd2neg'),
    (-1, 'Mild Underweight', '#ffbb33', 'sd2neg', 'sd1neg'),
    (0, 'Normal', '#00C851', 'sd1neg', 'sd1pos'),
    (1, 'Mild Overweight', '#ffbb33', 'sd1pos', 'sd2pos'),
    (2, 'Moderate Overweight', '#ff8800', 'sd2pos', 'sd3pos'),
    (3, 'Severe Overweight', '#ff4444', 'sd3pos', 'sd4pos'),
]
_CURVE_FALLBACK = {'sd4neg': 'sd3neg', 'sd4pos': 'sd3pos'}


def _curve(point, name: str) -> Optional[float]:
    value = getattr(point, name)
    if value is None and name in _CURVE_FALLBACK:
        value = getattr(point, _CURVE_FALLBACK[name])
    return value


def _field(item, name: str, default=None):
    if isinstance(item, Mapping):
        return item.get(name, default)
    return getattr(item, name, default)


class GrowthService:
    """Growth-standards operations built on a shared z-score engine."""

    def __init__(self, engine: WHOZScoreEngine = None):
        self.engine = engine or WHOZScoreEngine(store=get_default_store())

    # ── Z-scores ──────────────────────────────────────────────

    def get_zscore(self, value: float, age_days: int, gender,
                   measurement_type=MeasurementType.WEIGHT) -> ZScoreResult:
        return self.engine.get_zscore(value, age_days, gender, measurement_type)

    def _batch_item(self, item) -> BatchItemResult:
        raw_value = _field(item, 'value', _field(item, 'weight'))
        raw_age = _field(item, 'age_days')
        raw_gender = _field(item, 'gender')
        raw_type = _field(item, 'measurement_type') or MeasurementType.WEIGHT
        try:
            gender = Gender(raw_gender)
            measurement_type = MeasurementType(raw_type)
            value = float(raw_value)
            age_days = float(raw_age)
            if age_days.is_integer():
                age_days = int(age_days)
        except (KeyError, TypeError, ValueError, OverflowError) as exc:
            logger.warning("Skipping malformed batch item %r: %s", item, exc)
            return BatchItemResult(
                age_days=raw_age if isinstance(raw_age, (int, float)) else None,
                value=raw_value if isinstance(raw_value, (int, float)) else None,
                gender=str(raw_gender) if raw_gender is not None else None,
                measurement_type=str(getattr(raw_type, 'value', raw_type)),
                result=self.engine.failure_result(INVALID_INPUT),
            )
        return BatchItemResult(
            age_days=age_days, value=value, gender=gender.value,
            measurement_type=measurement_type.value,
            result=self.engine.get_zscore(value, age_days, gender, measurement_type),
        )

    @staticmethod
    def _batch_statistics(results: Sequence[BatchItemResult]) -> BatchStatistics:
        valid = [r.result for r in results if r.result.is_valid]
        if not valid:
            return BatchStatistics(
                total=len(results), valid=0, invalid=len(results),
                average_z_score=None, average_percentile=None,
            )

        df = pd.DataFrame({
            'z_score': [r.z_score for r in valid],
            'percentile': [r.percentile for r in valid],
            'classification': [r.classification for r in valid],
        })
        counts = df['classification'].value_counts(sort=False)
        return BatchStatistics(
            total=len(results),
            valid=len(valid),
            invalid=len(results) - len(valid),
            average_z_score=round(float(df['z_score'].mean()), 3),
            average_percentile=round(float(df['percentile'].mean()), 1),
            classifications={k: int(v) for k, v in counts.items()},
        )

    def get_zscores_batch(self, items: Iterable) -> BatchResult:
        """Compute every item independently; malformed items count as invalid."""
        results = [self._batch_item(item) for item in items]
        stats = self._batch_statistics(results)
        logger.info("Batch z-scores: %d total, %d valid", stats.total, stats.valid)
        return BatchResult(results=results, statistics=stats)

    # ── Trends & velocity ─────────────────────────────────────

    def get_trend(self, history: Iterable[HistoryItem], measurement_type,
                  start_date: Optional[DateLike] = None,
                  end_date: Optional[DateLike] = None,
                  gender=None) -> TrendResult:
        return build_trend(history, measurement_type, start_date, end_date,
                           engine=self.engine, gender=gender)

    def get_velocity(self, history: Iterable[HistoryItem], measurement_type,
                     start_date: Optional[DateLike] = None,
                     end_date: Optional[DateLike] = None) -> Optional[VelocityResult]:
        return calculate_velocity(history, measurement_type, start_date, end_date)

    # ── Projection ────────────────────────────────────────────

    def get_projection(self, history: Iterable[HistoryItem], measurement_type,
                       horizon_months: int = 12, gender=None,
                       method: str = 'linear',
                       as_of: Optional[DateLike] = None) -> ProjectionResult:
        """Project growth from the measurements of the trailing year.

        The year ends at ``as_of``, or at the latest measurement when omitted.
        """
        if method not in PROJECTION_METHODS:
            raise ValueError(f"Unknown projection method {method!r}")
        if method == 'zscore_persistence' and gender is None:
            raise ValueError("gender is required for z-score projection")

        history = list(history)
        measurement_type = MeasurementType(measurement_type)
        if as_of is None:
            available = usable_measurements(history, measurement_type)
            as_of = available[-1].date if available else None

        if as_of is None:
            points = []
        else:
            start = as_of - timedelta(days=PROJECTION_LOOKBACK_DAYS)
            points = self.get_trend(history, measurement_type, start, as_of,
                                    gender=gender).points

        if method == 'zscore_persistence':
            return project_by_zscore(points, self.engine, gender,
                                     measurement_type, horizon_months)
        return project_growth(points, horizon_months)

    # ── Comparison ────────────────────────────────────────────

    def compare(self, history: Iterable[HistoryItem], measurement_type,
                comparison_type: str, reference_age_months: float = 0.0,
                gender=None, as_of: Optional[DateLike] = None) -> ComparisonResult:
        history = list(history)
        measurement_type = MeasurementType(measurement_type)
        measurements = usable_measurements(history, measurement_type)
        if not measurements:
            return ComparisonResult(comparison='No data available',
                                    status='unknown', details=None)

        latest = measurements[-1]
        current_age_months = round(latest.age_months, 2)

        if comparison_type == 'age':
            difference = round(current_age_months - reference_age_months, 2)
            return ComparisonResult(
                comparison='Age',
                status='ahead' if difference >= 0 else 'behind',
                details={
                    'current_age_months': current_age_months,
                    'reference_age_months': reference_age_months,
                    'difference_months': difference,
                },
            )

        if comparison_type == 'percentile':
            if gender is None:
                return ComparisonResult(comparison='Percentile',
                                        status='no_data', details=None)
            result = self.engine.get_zscore(latest.value, latest.age_days,
                                            gender, measurement_type)
            return ComparisonResult(
                comparison='Percentile',
                status=result.classification.lower().replace(' ', '_'),
                details={
                    'current_percentile': result.percentile,
                    'z_score': result.z_score,
                    'classification': result.classification,
                },
            )

        if comparison_type == 'velocity':
            return self._compare_velocity(history, measurement_type,
                                          as_of or latest.date)

        return ComparisonResult(comparison='Unknown', status='unknown', details=None)

    def _compare_velocity(self, history, measurement_type: MeasurementType,
                          as_of: DateLike) -> ComparisonResult:
        end = pd.Timestamp(as_of)
        start = (end - pd.DateOffset(months=VELOCITY_WINDOW_MONTHS)).to_pydatetime()
        velocity = calculate_velocity(history, measurement_type, start,
                                      end.to_pydatetime())
        if velocity is None:
            return ComparisonResult(comparison='Velocity',
                                    status='insufficient_data', details=None)

        status = 'normal'
        thresholds = VELOCITY_THRESHOLDS.get(measurement_type.value)
        if thresholds:
            slow, fast = thresholds
            if velocity.per_month < slow:
                status = 'slow'
            elif velocity.per_month > fast:
                status = 'fast'

        return ComparisonResult(
            comparison='Velocity',
            status=status,
            details={
                'per_month': velocity.per_month,
                'per_year': velocity.per_year,
                'total_change': velocity.total_change,
                'days_between': velocity.days_between,
            },
        )

    # ── Alerts ────────────────────────────────────────────────

    def assess_alerts(self, history: Iterable[HistoryItem], measurement_type,
                      gender=None) -> List[GrowthAlert]:
        trend = self.get_trend(history, measurement_type, gender=gender)
        return detect_alerts(trend.points)

    # ── Visit assessment ──────────────────────────────────────

    def assess_record(self, record: GrowthRecord, gender,
                      history: Optional[Iterable[HistoryItem]] = None) -> GrowthAssessment:
        """Score every measurement taken at one visit and derive its status.

        The returned record carries the computed z-scores. With a ``history``
        of at least two weights the weight velocity is attached.
        """
        results = {
            m.measurement_type: self.engine.get_zscore(
                m.value, m.age_days, gender, m.measurement_type)
            for m in record.to_measurements()
        }
        weight = results.get(MeasurementType.WEIGHT)
        height = results.get(MeasurementType.HEIGHT)
        head = results.get(MeasurementType.HEAD_CIRCUMFERENCE)

        scored = replace(
            record,
            weight_for_age_z=weight.z_score if weight else None,
            height_for_age_z=height.z_score if height else None,
            hc_for_age_z=head.z_score if head else None,
        )
        status = growth_status(scored.weight_for_age_z, scored.height_for_age_z)
        velocity = None
        if history is not None:
            velocity = calculate_velocity(history, MeasurementType.WEIGHT)

        logger.info("Visit at %s days assessed as %s", record.age_days, status.value)
        return GrowthAssessment(
            record=scored,
            growth_status=status,
            weight_for_age=weight,
            height_for_age=height,
            head_circumference_for_age=head,
            velocity=velocity,
        )

    # ── Charts ────────────────────────────────────────────────

    def get_chart_series(self, gender, measurement_type=MeasurementType.WEIGHT,
                         step_days: Optional[int] = None) -> ChartSeries:
        """Reference curves for plotting, optionally resampled every ``step_days``."""
        gender = Gender(gender)
        measurement_type = MeasurementType(measurement_type)
        series = self.engine.store.get_series(gender, measurement_type)

        points = list(series.points)
        if step_days and not series.is_empty:
            if step_days <= 0:
                raise ValueError("step_days must be positive")
            first, last = series.age_range
            ages = list(range(first, last + 1, int(step_days)))
            if ages[-1] != last:
                ages.append(last)
            points = [lookup_lms(series, age).point for age in ages]

        age_range = None
        if points:
            age_range = {
                'min_age_days': points[0].age_days,
                'max_age_days': points[-1].age_days,
                'min_age_months': round(points[0].age_months, 2),
                'max_age_months': round(points[-1].age_months, 2),
            }

        return ChartSeries(
            gender=gender,
            measurement_type=measurement_type,
            points=points,
            age_range=age_range,
            metadata={
                'total_points': len(points),
                'data_source': 'WHO',
                'interpolated': bool(step_days),
                'generated_at': datetime.now(timezone.utc),
            },
        )

    def get_zscore_areas(self, gender,
                         measurement_type=MeasurementType.WEIGHT) -> dict:
        """SD bands between consecutive curves plus the median line."""
        chart = self.get_chart_series(gender, measurement_type)
        areas = []
        for level, name, color, lower, upper in SD_AREAS:
            areas.append({
                'sd_level': level,
                'name': name,
                'color': color,
                'data': [
                    {
                        'age_days': p.age_days,
                        'age_months': round(p.age_months, 2),
                        'lower': _curve(p, lower),
                        'upper': _curve(p, upper),
                    }
                    for p in chart.points
                ],
            })
        median = [
            {'age_days': p.age_days, 'age_months': round(p.age_months, 2),
             'value': p.sd0}
            for p in chart.points
        ]
        return {
            'gender': chart.gender.value,
            'measurement_type': chart.measurement_type.value,
            'sd_areas': areas,
            'median': median,
        }

    def get_patient_chart(self, history: Iterable[HistoryItem], gender,
                          measurement_type=MeasurementType.WEIGHT,
                          step_days: Optional[int] = None) -> dict:
        """A child's measurements overlaid on the reference curve.

        Each curve point is paired with the first measurement taken within
        ``PATIENT_CHART_MATCH_DAYS`` of its age.
        """
        chart = self.get_chart_series(gender, measurement_type, step_days)
        trend = self.get_trend(history, chart.measurement_type, gender=chart.gender)

        combined = []
        for p in chart.points:
            match = next((tp for tp in trend.points
                          if abs(tp.age_days - p.age_days) < PATIENT_CHART_MATCH_DAYS),
                         None)
            combined.append({
                'age_days': p.age_days,
                'age_months': round(p.age_months, 2),
                'patient': match.to_dict() if match else None,
                'chart': p.to_dict(),
            })

        return {
            'chart': chart.to_dict(),
            'patient_data': [tp.to_dict() for tp in trend.points],
            'combined': combined,
        }

    def get_percentile_lines(self, gender, measurement_type=MeasurementType.WEIGHT,
                             percentiles: Optional[Sequence[float]] = None,
                             step_days: Optional[int] = None) -> dict:
        """Measurement values at each requested percentile along the age axis."""
        percentiles = list(percentiles or DEFAULT_PERCENTILE_LINES)
        for pct in percentiles:
            if not 0 < pct < 100:
                raise ValueError(f"Percentile {pct} outside (0, 100)")

        chart = self.get_chart_series(gender, measurement_type, step_days)
        lines = []
        for pct in percentiles:
            points = []
            for p in chart.points:
                value = self.engine.get_percentile_value(
                    chart.gender, chart.measurement_type, p.age_days, pct)
                if value is None:
                    continue
                points.append({
                    'age_days': p.age_days,
                    'age_months': round(p.age_months, 2),
                    'value': round(value, 2),
                })
            lines.append({'percentile': pct, 'points': points})

        return {
            'gender': chart.gender.value,
            'measurement_type': chart.measurement_type.value,
            'lines': lines,
        }
