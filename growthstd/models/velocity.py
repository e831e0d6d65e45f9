"""
Growth trends and velocity over a child's measurement history.

Velocity uses only the first and last measurement of the window; intermediate
points do not affect it.
"""
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from config.settings import (
    DAYS_PER_MONTH, DAYS_PER_WEEK, DAYS_PER_YEAR, VELOCITY_DECIMALS,
)
from growthstd.models.data_structures import (
    DateLike, HistoryItem, Measurement, MeasurementType, TrendPoint,
    TrendResult, TrendSummary, VelocityResult, measurements_of,
)
from growthstd.models.lms import zscore_to_percentile

_SECONDS_PER_DAY = 86400.0


def _as_datetime(value: DateLike) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    return datetime(value.year, value.month, value.day)


def days_between(start: DateLike, end: DateLike) -> float:
    """Fractional days from ``start`` to ``end`` (dates and datetimes mix)."""
    delta = _as_datetime(end) - _as_datetime(start)
    return delta.total_seconds() / _SECONDS_PER_DAY


def _in_window(when: DateLike, start_date: Optional[DateLike],
               end_date: Optional[DateLike]) -> bool:
    moment = _as_datetime(when)
    if start_date is not None and moment < _as_datetime(start_date):
        return False
    if end_date is not None and moment > _as_datetime(end_date):
        return False
    return True


def usable_measurements(history: Iterable[HistoryItem], measurement_type,
                        start_date: Optional[DateLike] = None,
                        end_date: Optional[DateLike] = None) -> List[Measurement]:
    """Measurements of one type with a value, inside the window, oldest first."""
    selected = [
        m for m in measurements_of(history, measurement_type)
        if m.has_value and _in_window(m.date, start_date, end_date)
    ]
    selected.sort(key=lambda m: _as_datetime(m.date))
    return selected


def velocity_between(first: Measurement, last: Measurement) -> Optional[VelocityResult]:
    days = days_between(first.date, last.date)
    if days <= 0:
        return None

    change = last.value - first.value
    per_day = change / days
    return VelocityResult(
        per_day=round(per_day, VELOCITY_DECIMALS),
        per_week=round(per_day * DAYS_PER_WEEK, VELOCITY_DECIMALS),
        per_month=round(per_day * DAYS_PER_MONTH, VELOCITY_DECIMALS),
        per_year=round(per_day * DAYS_PER_YEAR, VELOCITY_DECIMALS),
        total_change=round(change, VELOCITY_DECIMALS),
        days_between=max(int(round(days)), 1),
        age_change_months=round(last.age_months - first.age_months, 2),
    )


def calculate_velocity(history: Iterable[HistoryItem], measurement_type,
                       start_date: Optional[DateLike] = None,
                       end_date: Optional[DateLike] = None) -> Optional[VelocityResult]:
    """Rate of change between the first and last measurement in the window.

    Returns None with fewer than two usable measurements or a non-positive
    time span.
    """
    points = usable_measurements(history, measurement_type, start_date, end_date)
    if len(points) < 2:
        return None
    return velocity_between(points[0], points[-1])


def build_trend(history: Iterable[HistoryItem], measurement_type,
                start_date: Optional[DateLike] = None,
                end_date: Optional[DateLike] = None,
                engine=None, gender=None) -> TrendResult:
    points = usable_measurements(history, measurement_type, start_date, end_date)

    trend = []
    for m in points:
        z = m.z_score
        if z is None and engine is not None and gender is not None:
            z = engine.get_zscore(m.value, m.age_days, gender,
                                  m.measurement_type).z_score
        trend.append(TrendPoint(
            date=m.date,
            age_days=m.age_days,
            age_months=round(m.age_months, 2),
            value=m.value,
            z_score=z,
            percentile=zscore_to_percentile(z) if z is not None else None,
        ))

    velocity = velocity_between(points[0], points[-1]) if len(points) >= 2 else None

    last = trend[-1] if trend else None
    summary = TrendSummary(
        total_measurements=len(trend),
        first_date=trend[0].date if trend else None,
        last_date=last.date if last else None,
        current_value=last.value if last else None,
        current_percentile=last.percentile if last else None,
    )
    return TrendResult(
        measurement_type=MeasurementType(measurement_type),
        points=trend,
        velocity=velocity,
        summary=summary,
        status='ok' if len(trend) >= 2 else 'insufficient_data',
    )
