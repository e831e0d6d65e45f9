"""
WHO Child Growth Standards — LMS z-score computation engine.
Source: WHO Multicentre Growth Reference Study (MGRS, 2006)
"""
import math
from typing import Dict, Optional

from scipy import stats

from config.settings import FULL_DIAGNOSTICS, MIN_AGE_DAYS, MAX_AGE_DAYS
from growthstd.models.classification import (
    UNABLE_TO_ASSESS, BaseClassifier, default_classifiers,
)
from growthstd.models.data_structures import (
    Gender, MeasurementType, ReferenceValues, ZScoreResult,
)
from growthstd.models.interpolator import LMSLookup, lookup_lms
from growthstd.models.lms import lms_value, lms_zscore, zscore_to_percentile
from growthstd.models.reference_store import ReferenceTableStore

__all__ = [
    'WHOZScoreEngine', 'lms_zscore', 'lms_value', 'zscore_to_percentile',
    'INVALID_INPUT', 'NO_REFERENCE_DATA', 'INVALID_REFERENCE_DATA',
]

INVALID_INPUT = 'Invalid input data'
NO_REFERENCE_DATA = 'No reference data available'
INVALID_REFERENCE_DATA = 'Invalid reference data'

_EMPTY_REFERENCE = ReferenceValues()


class WHOZScoreEngine:
    """WHO Child Growth Standards z-score computation engine using LMS method.

    ``full_diagnostics=False`` produces lean results without reference curve
    values; every other field is computed by the same code path.
    """

    def __init__(self, store: ReferenceTableStore = None,
                 classifiers: Dict[MeasurementType, BaseClassifier] = None,
                 full_diagnostics: bool = FULL_DIAGNOSTICS):
        self.store = store or ReferenceTableStore()
        self.classifiers = default_classifiers()
        if classifiers:
            self.classifiers.update(
                {MeasurementType(k): v for k, v in classifiers.items()})
        self.full_diagnostics = full_diagnostics

    def lookup(self, gender, measurement_type, age_days: int) -> LMSLookup:
        series = self.store.get_series(gender, measurement_type)
        return lookup_lms(series, age_days)

    def failure_result(self, reason: str, lookup: LMSLookup = None) -> ZScoreResult:
        reference = None
        if self.full_diagnostics:
            reference = _EMPTY_REFERENCE
            if lookup is not None and lookup.point is not None:
                reference = ReferenceValues.from_point(lookup.point)
        return ZScoreResult(
            z_score=None, percentile=None,
            classification=reason,
            severity=UNABLE_TO_ASSESS.severity,
            recommendation=UNABLE_TO_ASSESS.recommendation,
            exact_match=bool(lookup and lookup.exact_match),
            interpolated=bool(lookup and lookup.interpolated),
            reference_values=reference,
        )

    @staticmethod
    def _valid_input(value, age_days) -> bool:
        try:
            value = float(value)
            age_days = float(age_days)
        except (TypeError, ValueError):
            return False
        if not math.isfinite(value) or value <= 0:
            return False
        return MIN_AGE_DAYS <= age_days <= MAX_AGE_DAYS

    def get_zscore(self, value: float, age_days: int, gender,
                   measurement_type=MeasurementType.WEIGHT) -> ZScoreResult:
        """Z-score, percentile and classification of one measurement.

        Clinical edge cases (bad input, missing or degenerate reference data)
        produce a result with ``z_score=None`` instead of raising.
        """
        try:
            gender = Gender(gender)
            measurement_type = MeasurementType(measurement_type)
        except ValueError:
            return self.failure_result(INVALID_INPUT)
        if not self._valid_input(value, age_days):
            return self.failure_result(INVALID_INPUT)

        lookup = self.lookup(gender, measurement_type, age_days)
        point = lookup.point
        if point is None:
            return self.failure_result(NO_REFERENCE_DATA)
        if point.m_value <= 0 or point.s_value <= 0:
            return self.failure_result(INVALID_REFERENCE_DATA, lookup)

        z = lms_zscore(float(value), point.l_value, point.m_value, point.s_value)
        verdict = self.classifiers[measurement_type].classify(z)

        return ZScoreResult(
            z_score=round(z, 2),
            percentile=zscore_to_percentile(z),
            classification=verdict.classification,
            severity=verdict.severity,
            recommendation=verdict.recommendation,
            exact_match=lookup.exact_match,
            interpolated=lookup.interpolated,
            reference_values=(ReferenceValues.from_point(point)
                              if self.full_diagnostics else None),
        )

    def zscore_to_value(self, gender, measurement_type, age_days: int,
                        z: float) -> Optional[float]:
        point = self.lookup(gender, measurement_type, age_days).point
        if point is None or point.m_value <= 0 or point.s_value <= 0:
            return None
        return lms_value(point.l_value, point.m_value, point.s_value, z)

    def get_percentile_value(self, gender, measurement_type, age_days: int,
                             percentile: float) -> Optional[float]:
        z = stats.norm.ppf(percentile / 100.0)
        return self.zscore_to_value(gender, measurement_type, age_days, float(z))

    def get_median(self, gender, measurement_type, age_days: int) -> Optional[float]:
        point = self.lookup(gender, measurement_type, age_days).point
        return None if point is None else point.m_value

    @property
    def available_series(self) -> list:
        return [
            f"{g.value}_{mt.value}"
            for (g, mt), series in self.store.get_or_load_all().items()
            if not series.is_empty
        ]
