"""
Data structures for the growth-standards engine.
"""
import math
from dataclasses import dataclass, field, asdict
from datetime import date, datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple, Union

import numpy as np

from config.settings import DAYS_PER_MONTH
from growthstd.models.lms import lms_value

DateLike = Union[date, datetime]


class ReferenceDataError(ValueError):
    """Reference rows that violate the table invariants."""


class Gender(str, Enum):
    MALE = 'MALE'
    FEMALE = 'FEMALE'

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            key = value.strip().upper()
            key = {'M': 'MALE', 'F': 'FEMALE'}.get(key, key)
            for member in cls:
                if member.value == key:
                    return member
        return None


class MeasurementType(str, Enum):
    WEIGHT = 'Weight'
    HEIGHT = 'Height'
    HEAD_CIRCUMFERENCE = 'HeadCircumference'

    @classmethod
    def _missing_(cls, value):
        # accepts 'weight', 'HEIGHT', 'head_circumference', ...
        if isinstance(value, str):
            key = value.strip().replace('_', '').replace(' ', '').lower()
            for member in cls:
                if member.value.lower() == key:
                    return member
        return None

    @property
    def unit(self) -> str:
        return 'kg' if self is MeasurementType.WEIGHT else 'cm'


# Curve field -> SD level
CURVE_LEVELS = {
    'sd4neg': -4, 'sd3neg': -3, 'sd2neg': -2, 'sd1neg': -1, 'sd0': 0,
    'sd1pos': 1, 'sd2pos': 2, 'sd3pos': 3, 'sd4pos': 4,
}


def _to_primitive(value):
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, dict):
        return {(k.value if isinstance(k, Enum) else k): _to_primitive(v)
                for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_primitive(v) for v in value]
    if isinstance(value, np.generic):
        return value.item()
    return value


class _Serializable:
    def to_dict(self) -> dict:
        return _to_primitive(asdict(self))


# =============================================================================
# Reference tables
# =============================================================================

@dataclass(frozen=True)
class ReferencePoint(_Serializable):
    """One WHO LMS row plus its precomputed SD curve values."""
    age_days: int
    gender: Gender
    l_value: float
    m_value: float
    s_value: float
    sd4neg: Optional[float] = None
    sd3neg: Optional[float] = None
    sd2neg: Optional[float] = None
    sd1neg: Optional[float] = None
    sd0: Optional[float] = None
    sd1pos: Optional[float] = None
    sd2pos: Optional[float] = None
    sd3pos: Optional[float] = None
    sd4pos: Optional[float] = None

    def __post_init__(self):
        object.__setattr__(self, 'gender', Gender(self.gender))

    @property
    def age_months(self) -> float:
        return self.age_days / DAYS_PER_MONTH

    @classmethod
    def from_lms(cls, age_days: int, gender, l_value: float, m_value: float,
                 s_value: float) -> 'ReferencePoint':
        """Build a point whose curve values are derived from L, M and S."""
        curves = {}
        if m_value > 0 and s_value > 0:
            curves = {
                name: lms_value(l_value, m_value, s_value, level)
                for name, level in CURVE_LEVELS.items()
            }
        return cls(age_days=int(age_days), gender=Gender(gender),
                   l_value=float(l_value), m_value=float(m_value),
                   s_value=float(s_value), **curves)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data['age_months'] = round(self.age_months, 2)
        return data


class ReferenceSeries:
    """All reference points of one (gender, measurement type), ascending by age."""

    def __init__(self, gender, measurement_type,
                 points: Iterable[ReferencePoint] = ()):
        self.gender = Gender(gender)
        self.measurement_type = MeasurementType(measurement_type)
        ordered = sorted(points, key=lambda p: p.age_days)
        for point in ordered:
            if point.age_days < 0:
                raise ReferenceDataError(
                    f"Negative age {point.age_days} in {self.key_label} series")
            if point.gender != self.gender:
                raise ReferenceDataError(
                    f"{point.gender.value} row in {self.key_label} series")
        ages = [p.age_days for p in ordered]
        if len(set(ages)) != len(ages):
            raise ReferenceDataError(
                f"Duplicate ages in {self.key_label} series")
        self.points: Tuple[ReferencePoint, ...] = tuple(ordered)
        self.ages = np.asarray(ages, dtype=np.int64)

    @property
    def key(self) -> Tuple[Gender, MeasurementType]:
        return (self.gender, self.measurement_type)

    @property
    def key_label(self) -> str:
        return f"{self.gender.value}_{self.measurement_type.value}"

    @property
    def is_empty(self) -> bool:
        return not self.points

    @property
    def age_range(self) -> Optional[Tuple[int, int]]:
        if self.is_empty:
            return None
        return (self.points[0].age_days, self.points[-1].age_days)

    def __len__(self) -> int:
        return len(self.points)

    def __iter__(self):
        return iter(self.points)

    def __repr__(self) -> str:
        return f"ReferenceSeries({self.key_label}, {len(self)} points)"


# =============================================================================
# Patient measurements
# =============================================================================

@dataclass(frozen=True)
class Measurement(_Serializable):
    date: DateLike
    age_days: int
    value: Optional[float]
    measurement_type: MeasurementType = MeasurementType.WEIGHT
    z_score: Optional[float] = None
    percentile: Optional[float] = None
    classification: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, 'measurement_type',
                           MeasurementType(self.measurement_type))

    @property
    def age_months(self) -> float:
        return self.age_days / DAYS_PER_MONTH

    @property
    def has_value(self) -> bool:
        return (self.value is not None and math.isfinite(self.value)
                and self.value > 0)


@dataclass
class GrowthRecord(_Serializable):
    """A clinical-encounter row carrying every measurement taken at one visit."""
    date: DateLike
    age_days: int
    weight: Optional[float] = None
    height: Optional[float] = None
    head_circumference: Optional[float] = None
    weight_for_age_z: Optional[float] = None
    height_for_age_z: Optional[float] = None
    hc_for_age_z: Optional[float] = None

    def value_for(self, measurement_type) -> Optional[float]:
        measurement_type = MeasurementType(measurement_type)
        if measurement_type is MeasurementType.WEIGHT:
            return self.weight
        if measurement_type is MeasurementType.HEIGHT:
            return self.height
        if measurement_type is MeasurementType.HEAD_CIRCUMFERENCE:
            return self.head_circumference
        raise ValueError(f"Unsupported measurement type {measurement_type!r}")

    def zscore_for(self, measurement_type) -> Optional[float]:
        measurement_type = MeasurementType(measurement_type)
        if measurement_type is MeasurementType.WEIGHT:
            return self.weight_for_age_z
        if measurement_type is MeasurementType.HEIGHT:
            return self.height_for_age_z
        if measurement_type is MeasurementType.HEAD_CIRCUMFERENCE:
            return self.hc_for_age_z
        raise ValueError(f"Unsupported measurement type {measurement_type!r}")

    def to_measurement(self, measurement_type) -> Measurement:
        measurement_type = MeasurementType(measurement_type)
        return Measurement(
            date=self.date, age_days=self.age_days,
            value=self.value_for(measurement_type),
            measurement_type=measurement_type,
            z_score=self.zscore_for(measurement_type),
        )

    def to_measurements(self) -> List[Measurement]:
        return [self.to_measurement(mt) for mt in MeasurementType
                if self.value_for(mt) is not None]


HistoryItem = Union[Measurement, GrowthRecord]


def measurements_of(history: Iterable[HistoryItem],
                    measurement_type) -> List[Measurement]:
    """Normalise a mixed history into Measurements of one type."""
    measurement_type = MeasurementType(measurement_type)
    selected = []
    for item in history:
        if isinstance(item, GrowthRecord):
            selected.append(item.to_measurement(measurement_type))
        elif item.measurement_type is measurement_type:
            selected.append(item)
    return selected


# =============================================================================
# Calculator results
# =============================================================================

@dataclass(frozen=True)
class ReferenceValues(_Serializable):
    median: float = 0.0
    sd1neg: Optional[float] = 0.0
    sd1pos: Optional[float] = 0.0
    sd2neg: Optional[float] = 0.0
    sd2pos: Optional[float] = 0.0
    sd3neg: Optional[float] = 0.0
    sd3pos: Optional[float] = 0.0

    @classmethod
    def from_point(cls, point: ReferencePoint) -> 'ReferenceValues':
        return cls(
            median=point.m_value,
            sd1neg=point.sd1neg, sd1pos=point.sd1pos,
            sd2neg=point.sd2neg, sd2pos=point.sd2pos,
            sd3neg=point.sd3neg, sd3pos=point.sd3pos,
        )


@dataclass(frozen=True)
class Classification(_Serializable):
    classification: str
    severity: str  # 'normal' | 'mild' | 'moderate' | 'severe'
    recommendation: str


@dataclass(frozen=True)
class ZScoreResult(_Serializable):
    z_score: Optional[float]
    percentile: Optional[float]
    classification: str
    severity: str
    recommendation: str
    exact_match: bool = False
    interpolated: bool = False
    reference_values: Optional[ReferenceValues] = None

    @property
    def is_valid(self) -> bool:
        return self.z_score is not None


@dataclass(frozen=True)
class VelocityResult(_Serializable):
    per_day: float
    per_week: float
    per_month: float
    per_year: float
    total_change: float
    days_between: int
    age_change_months: float = 0.0


# =============================================================================
# Trends, projections, comparisons
# =============================================================================

@dataclass(frozen=True)
class TrendPoint(_Serializable):
    date: DateLike
    age_days: int
    age_months: float
    value: float
    z_score: Optional[float] = None
    percentile: Optional[float] = None


@dataclass(frozen=True)
class TrendSummary(_Serializable):
    total_measurements: int = 0
    first_date: Optional[DateLike] = None
    last_date: Optional[DateLike] = None
    current_value: Optional[float] = None
    current_percentile: Optional[float] = None


@dataclass(frozen=True)
class TrendResult(_Serializable):
    measurement_type: MeasurementType
    points: List[TrendPoint]
    velocity: Optional[VelocityResult]
    summary: TrendSummary
    status: str = 'ok'  # 'ok' | 'insufficient_data'


@dataclass(frozen=True)
class ProjectionPoint(_Serializable):
    months_ahead: int
    age_months: float
    projected_value: float
    confidence: float
    projected_zscore: Optional[float] = None


@dataclass(frozen=True)
class ProjectionResult(_Serializable):
    projections: List[ProjectionPoint]
    confidence: str  # 'moderate' | 'low'
    status: str = 'ok'  # 'ok' | 'insufficient_data'
    method: str = 'linear'
    current_age_months: Optional[float] = None
    current_value: Optional[float] = None
    average_monthly_growth: Optional[float] = None
    message: Optional[str] = None


@dataclass(frozen=True)
class ComparisonResult(_Serializable):
    comparison: str
    status: str
    details: Optional[dict] = None


class GrowthStatus(str, Enum):
    NORMAL = 'NORMAL'
    UNDERWEIGHT = 'UNDERWEIGHT'
    STUNTED = 'STUNTED'
    OVERWEIGHT = 'OVERWEIGHT'
    OBESE = 'OBESE'


@dataclass(frozen=True)
class GrowthAssessment(_Serializable):
    """Z-scores and overall status of a single visit."""
    record: GrowthRecord
    growth_status: GrowthStatus
    weight_for_age: Optional[ZScoreResult] = None
    height_for_age: Optional[ZScoreResult] = None
    head_circumference_for_age: Optional[ZScoreResult] = None
    velocity: Optional[VelocityResult] = None


@dataclass(frozen=True)
class GrowthAlert(_Serializable):
    alert_type: str  # 'SEVERE_UNDERWEIGHT' | 'OBESE' | 'PERCENTILE_DROP'
    severity: str    # 'warning' | 'critical'
    message: str
    date: Optional[DateLike] = None
    z_score: Optional[float] = None
    percentile_drop: Optional[float] = None


# =============================================================================
# Batch & chart payloads
# =============================================================================

@dataclass(frozen=True)
class BatchItemResult(_Serializable):
    age_days: Optional[float]
    value: Optional[float]
    gender: Optional[str]
    measurement_type: Optional[str]
    result: ZScoreResult


@dataclass(frozen=True)
class BatchStatistics(_Serializable):
    total: int
    valid: int
    invalid: int
    average_z_score: Optional[float]
    average_percentile: Optional[float]
    classifications: Dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class BatchResult(_Serializable):
    results: List[BatchItemResult]
    statistics: BatchStatistics


@dataclass(frozen=True)
class ChartSeries:
    gender: Gender
    measurement_type: MeasurementType
    points: List[ReferencePoint]
    age_range: Optional[dict]
    metadata: dict

    def to_dict(self) -> dict:
        return {
            'gender': self.gender.value,
            'measurement_type': self.measurement_type.value,
            'points': [p.to_dict() for p in self.points],
            'age_range': self.age_range,
            'metadata': _to_primitive(self.metadata),
        }
