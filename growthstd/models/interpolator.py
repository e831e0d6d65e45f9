"""
LMS lookup with clamped linear interpolation between reference ages.
"""
from dataclasses import replace
from typing import NamedTuple, Optional

import numpy as np

from growthstd.models.data_structures import (
    CURVE_LEVELS, ReferencePoint, ReferenceSeries,
)

_INTERPOLATED_FIELDS = ('l_value', 'm_value', 's_value') + tuple(CURVE_LEVELS)


class LMSLookup(NamedTuple):
    point: Optional[ReferencePoint]
    interpolated: bool
    exact_match: bool


NO_DATA = LMSLookup(point=None, interpolated=False, exact_match=False)


def _lerp(lower: Optional[float], upper: Optional[float],
          progress: float) -> Optional[float]:
    if lower is None or upper is None:
        return None
    return lower + (upper - lower) * progress


def interpolate_point(lower: ReferencePoint, upper: ReferencePoint,
                      age_days: int) -> ReferencePoint:
    span = upper.age_days - lower.age_days
    progress = 0.0 if span == 0 else (age_days - lower.age_days) / span
    values = {
        name: _lerp(getattr(lower, name), getattr(upper, name), progress)
        for name in _INTERPOLATED_FIELDS
    }
    return replace(lower, age_days=age_days, **values)


def lookup_lms(series: ReferenceSeries, age_days: int) -> LMSLookup:
    """Reference point for ``age_days``.

    Ages outside the table return the nearest boundary row flagged as
    interpolated; values are never extrapolated past observed WHO ages.
    """
    if series.is_empty:
        return NO_DATA

    ages = series.ages
    idx = int(np.searchsorted(ages, age_days, side='left'))

    if idx < len(ages) and ages[idx] == age_days:
        return LMSLookup(series.points[idx], interpolated=False, exact_match=True)
    if idx == 0:
        return LMSLookup(series.points[0], interpolated=True, exact_match=False)
    if idx == len(ages):
        return LMSLookup(series.points[-1], interpolated=True, exact_match=False)

    lower, upper = series.points[idx - 1], series.points[idx]
    return LMSLookup(interpolate_point(lower, upper, age_days),
                     interpolated=True, exact_match=False)
