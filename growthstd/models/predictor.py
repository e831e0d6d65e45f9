"""
Growth projections and alerting over a trend:
- Linear projection from the average monthly growth of the most recent points
- Z-score persistence projection through the inverse LMS transform
- Alerts via extreme z-scores and percentile crossing
"""
import logging
from typing import List, Optional, Sequence

from config.settings import (
    ALERT_PERCENTILE_DROP, ALERT_Z_CRITICAL_LOW, ALERT_Z_WARNING_HIGH,
    DAYS_PER_MONTH, PROJECTION_BASE_CONFIDENCE, PROJECTION_CONFIDENCE_DECAY,
    PROJECTION_MIN_CONFIDENCE, PROJECTION_RECENT_POINTS, PROJECTION_STEP_MONTHS,
)
from growthstd.models.data_structures import (
    GrowthAlert, MeasurementType, ProjectionPoint, ProjectionResult, TrendPoint,
)
from growthstd.models.lms import zscore_to_percentile

logger = logging.getLogger(__name__)

INSUFFICIENT_DATA_MESSAGE = 'Insufficient data for projection'


def _step_confidence(months_ahead: int) -> float:
    confidence = PROJECTION_BASE_CONFIDENCE - PROJECTION_CONFIDENCE_DECAY * months_ahead
    return round(max(confidence, PROJECTION_MIN_CONFIDENCE), 2)


def _steps(horizon_months: int) -> range:
    return range(1, int(horizon_months) + 1, PROJECTION_STEP_MONTHS)


def _insufficient(method: str) -> ProjectionResult:
    return ProjectionResult(
        projections=[], confidence='low', status='insufficient_data',
        method=method, message=INSUFFICIENT_DATA_MESSAGE,
    )


def average_monthly_growth(points: Sequence[TrendPoint]) -> Optional[float]:
    """Mean of per-pair monthly rates; pairs with no age difference are skipped."""
    rates = []
    for prev, curr in zip(points, points[1:]):
        age_diff = curr.age_months - prev.age_months
        if age_diff == 0:
            continue
        rates.append((curr.value - prev.value) / age_diff)
    if not rates:
        return None
    return sum(rates) / len(rates)


def project_growth(trend_points: Sequence[TrendPoint],
                   horizon_months: int = 12) -> ProjectionResult:
    """Linear projection from the most recent measurements.

    Points must be ordered oldest first (as ``build_trend`` returns them).
    Projections are produced at 1, 4, 7, ... months ahead up to the horizon.
    """
    if len(trend_points) < 2:
        return _insufficient('linear')

    recent = list(trend_points[-PROJECTION_RECENT_POINTS:])
    growth = average_monthly_growth(recent)
    if growth is None:
        logger.debug("All recent points share one age; cannot project")
        return _insufficient('linear')

    last = recent[-1]
    projections = [
        ProjectionPoint(
            months_ahead=i,
            age_months=round(last.age_months + i, 2),
            projected_value=last.value + growth * i,
            confidence=_step_confidence(i),
        )
        for i in _steps(horizon_months)
    ]

    return ProjectionResult(
        projections=projections,
        confidence='moderate' if growth > 0 else 'low',
        method='linear',
        current_age_months=last.age_months,
        current_value=last.value,
        average_monthly_growth=growth,
    )


def project_by_zscore(trend_points: Sequence[TrendPoint], engine, gender,
                      measurement_type=MeasurementType.WEIGHT,
                      horizon_months: int = 12) -> ProjectionResult:
    """Carry the latest z-score forward along the reference curve."""
    if not trend_points:
        return _insufficient('zscore_persistence')

    last = trend_points[-1]
    z = last.z_score
    if z is None:
        z = engine.get_zscore(last.value, last.age_days, gender,
                              measurement_type).z_score
    if z is None:
        return _insufficient('zscore_persistence')

    projections = []
    for i in _steps(horizon_months):
        age_days = last.age_days + int(round(i * DAYS_PER_MONTH))
        value = engine.zscore_to_value(gender, measurement_type, age_days, z)
        if value is None:
            continue
        projections.append(ProjectionPoint(
            months_ahead=i,
            age_months=round(last.age_months + i, 2),
            projected_value=value,
            confidence=_step_confidence(i),
            projected_zscore=z,
        ))

    if not projections:
        return _insufficient('zscore_persistence')

    return ProjectionResult(
        projections=projections,
        confidence='moderate',
        method='zscore_persistence',
        current_age_months=last.age_months,
        current_value=last.value,
    )


def detect_alerts(points: Sequence[TrendPoint],
                  z_critical_low: float = ALERT_Z_CRITICAL_LOW,
                  z_warning_high: float = ALERT_Z_WARNING_HIGH,
                  pct_drop_threshold: float = ALERT_PERCENTILE_DROP) -> List[GrowthAlert]:
    """Detect growth alerts from a trend ordered oldest first."""
    alerts = []

    # Extreme z-score detection
    for p in points:
        if p.z_score is None:
            continue
        if p.z_score < z_critical_low:
            alerts.append(GrowthAlert(
                alert_type='SEVERE_UNDERWEIGHT', severity='critical',
                message=f"Z-score {p.z_score:.2f} at {p.age_months:.0f}mo",
                date=p.date, z_score=p.z_score,
            ))
        elif p.z_score > z_warning_high:
            alerts.append(GrowthAlert(
                alert_type='OBESE', severity='warning',
                message=f"Z-score {p.z_score:.2f} at {p.age_months:.0f}mo",
                date=p.date, z_score=p.z_score,
            ))

    # Percentile crossing detection
    for prev, curr in zip(points, points[1:]):
        prev_pct = prev.percentile
        curr_pct = curr.percentile
        if prev_pct is None and prev.z_score is not None:
            prev_pct = zscore_to_percentile(prev.z_score)
        if curr_pct is None and curr.z_score is not None:
            curr_pct = zscore_to_percentile(curr.z_score)
        if prev_pct is None or curr_pct is None:
            continue
        drop = prev_pct - curr_pct
        if drop > pct_drop_threshold:
            alerts.append(GrowthAlert(
                alert_type='PERCENTILE_DROP', severity='warning',
                message=(
                    f"P{prev_pct:.0f}→P{curr_pct:.0f} "
                    f"({prev.age_months:.0f}→{curr.age_months:.0f}mo)"
                ),
                date=curr.date, percentile_drop=round(drop, 2),
            ))

    return alerts
