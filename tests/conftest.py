"""
Shared fixtures: a tiny hand-checkable reference series and the bundled WHO store.
"""
from datetime import date

import pytest

from growthstd.models.data_structures import (
    Gender, Measurement, MeasurementType, ReferencePoint, ReferenceSeries,
)
from growthstd.models.reference_store import ReferenceTableStore
from growthstd.models.who_engine import WHOZScoreEngine
from growthstd.services.growth_service import GrowthService


def make_series(rows, gender=Gender.MALE,
                measurement_type=MeasurementType.WEIGHT) -> ReferenceSeries:
    """rows: iterable of (age_days, L, M, S)."""
    return ReferenceSeries(gender, measurement_type, [
        ReferencePoint.from_lms(age, gender, l, m, s) for age, l, m, s in rows
    ])


# L=1 keeps the z-score linear in the value: z = (v/M - 1) / S
TOY_ROWS = [
    (0, 1.0, 3.0, 0.1),
    (90, 1.0, 6.0, 0.1),
    (365, 0.0, 9.0, 0.1),
]


@pytest.fixture
def toy_series():
    return make_series(TOY_ROWS)


@pytest.fixture
def toy_store(toy_series):
    def loader(gender, measurement_type):
        if (gender, measurement_type) == toy_series.key:
            return toy_series
        return None
    return ReferenceTableStore(loader=loader)


@pytest.fixture
def toy_engine(toy_store):
    return WHOZScoreEngine(store=toy_store)


@pytest.fixture
def who_store():
    return ReferenceTableStore()


@pytest.fixture
def who_engine(who_store):
    return WHOZScoreEngine(store=who_store)


@pytest.fixture
def service(who_engine):
    return GrowthService(engine=who_engine)


@pytest.fixture
def weight_history():
    """Boy weighed at roughly 1, 2, 3 and 6 months."""
    return [
        Measurement(date(2024, 1, 1), 30, 4.5, MeasurementType.WEIGHT),
        Measurement(date(2024, 1, 31), 60, 5.6, MeasurementType.WEIGHT),
        Measurement(date(2024, 3, 1), 90, 6.4, MeasurementType.WEIGHT),
        Measurement(date(2024, 5, 30), 180, 7.9, MeasurementType.WEIGHT),
    ]
