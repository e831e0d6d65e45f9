"""
Z-score severity bands.

The weight-for-age bands are applied to every measurement type by default.
A measurement-specific classifier can be passed to the engine per type.
"""
from abc import ABC, abstractmethod
from typing import Dict, Optional, Sequence, Tuple

from config.settings import (
    GROWTH_STATUS_LOW_Z, GROWTH_STATUS_OBESE_Z, GROWTH_STATUS_OVERWEIGHT_Z,
)
from growthstd.models.data_structures import (
    Classification, GrowthStatus, MeasurementType,
)

UNABLE_TO_ASSESS = Classification(
    classification='Unable to assess',
    severity='normal',
    recommendation='Please verify age and measurement data',
)


class BaseClassifier(ABC):
    """Maps a z-score to a clinical classification."""

    @abstractmethod
    def classify(self, z_score: Optional[float]) -> Classification:
        pass


class BandClassifier(BaseClassifier):
    """Ordered z-score bands.

    Each band is ``(upper_bound, inclusive, classification)``; the first band
    whose bound admits the z-score wins, the last band must be open-ended
    (``upper_bound=None``).
    """

    def __init__(self, bands: Sequence[Tuple[Optional[float], bool, Classification]]):
        if not bands or bands[-1][0] is not None:
            raise ValueError("Last band must be open-ended")
        self.bands = tuple(bands)

    def classify(self, z_score: Optional[float]) -> Classification:
        if z_score is None:
            return UNABLE_TO_ASSESS
        for bound, inclusive, result in self.bands:
            if bound is None:
                return result
            if z_score < bound or (inclusive and z_score == bound):
                return result
        return self.bands[-1][2]


WEIGHT_FOR_AGE_BANDS = (
    (-3.0, False, Classification(
        'Severe Underweight', 'severe',
        'Urgent medical assessment required. Consider referral to pediatric '
        'nutrition specialist.')),
    (-2.0, False, Classification(
        'Moderate Underweight', 'moderate',
        'Nutritional intervention needed. Monitor growth closely and provide '
        'dietary counseling.')),
    (-1.0, False, Classification(
        'Mild Underweight', 'mild',
        'Monitor growth pattern. Provide nutritional education and follow up '
        'in 1 month.')),
    (1.0, True, Classification(
        'Normal Weight', 'normal',
        'Continue current feeding practices. Regular growth monitoring '
        'recommended.')),
    (2.0, True, Classification(
        'Overweight', 'mild',
        'Monitor growth pattern. Encourage balanced diet and physical activity.')),
    (3.0, True, Classification(
        'Obese', 'moderate',
        'Nutritional counseling required. Assess dietary habits and physical '
        'activity levels.')),
    (None, True, Classification(
        'Severely Obese', 'severe',
        'Urgent medical assessment. Comprehensive management plan needed.')),
)

weight_for_age_classifier = BandClassifier(WEIGHT_FOR_AGE_BANDS)


def default_classifiers() -> Dict[MeasurementType, BaseClassifier]:
    return {mt: weight_for_age_classifier for mt in MeasurementType}


def growth_status(weight_z: Optional[float],
                  height_z: Optional[float]) -> GrowthStatus:
    """Overall visit status; weight-for-age takes precedence over stunting."""
    if weight_z is not None:
        if weight_z < GROWTH_STATUS_LOW_Z:
            return GrowthStatus.UNDERWEIGHT
        if weight_z > GROWTH_STATUS_OBESE_Z:
            return GrowthStatus.OBESE
        if weight_z > GROWTH_STATUS_OVERWEIGHT_Z:
            return GrowthStatus.OVERWEIGHT
    if height_z is not None and height_z < GROWTH_STATUS_LOW_Z:
        return GrowthStatus.STUNTED
    return GrowthStatus.NORMAL
