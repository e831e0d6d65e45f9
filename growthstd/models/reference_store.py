"""
Process-scoped store of WHO reference series.

The tables are static, so they are loaded once and never invalidated while the
process runs. Population is single-flight: the first caller performs the load,
concurrent callers block on the same future instead of issuing their own.
"""
import logging
import threading
from concurrent.futures import Future
from itertools import product
from typing import Dict, Iterable, Optional, Tuple

from config.settings import WHO_REFERENCE_CSV
from growthstd.models.data_structures import (
    Gender, MeasurementType, ReferenceSeries,
)
from growthstd.models.reference_data import (
    SeriesLoader, bundled_loader, csv_loader,
)

logger = logging.getLogger(__name__)

SeriesKey = Tuple[Gender, MeasurementType]
SeriesMap = Dict[SeriesKey, ReferenceSeries]

ALL_KEYS = tuple(product(Gender, MeasurementType))


class ReferenceTableStore:
    """Memoized map of ``(gender, measurement_type) -> ReferenceSeries``."""

    def __init__(self, loader: Optional[SeriesLoader] = None,
                 keys: Optional[Iterable[SeriesKey]] = None):
        self._loader = loader or bundled_loader
        self._keys = tuple(keys) if keys is not None else ALL_KEYS
        self._lock = threading.Lock()
        self._tables: Optional[SeriesMap] = None
        self._pending: Optional[Future] = None
        self.load_count = 0

    @property
    def is_loaded(self) -> bool:
        return self._tables is not None

    def load(self, gender, measurement_type) -> ReferenceSeries:
        """Fetch one series from the underlying source (no caching)."""
        gender = Gender(gender)
        measurement_type = MeasurementType(measurement_type)
        self.load_count += 1
        series = self._loader(gender, measurement_type)
        if series is None:
            series = ReferenceSeries(gender, measurement_type)
        elif not isinstance(series, ReferenceSeries):
            series = ReferenceSeries(gender, measurement_type, series)
        if series.is_empty:
            logger.warning("Reference series %s is empty", series.key_label)
        return series

    def _load_all(self) -> SeriesMap:
        tables = {key: self.load(*key) for key in self._keys}
        logger.info("Loaded %d reference series (%d points)",
                    len(tables), sum(len(s) for s in tables.values()))
        return tables

    def get_or_load_all(self) -> SeriesMap:
        tables = self._tables
        if tables is not None:
            return tables

        with self._lock:
            if self._tables is not None:
                return self._tables
            future = self._pending
            owner = future is None
            if owner:
                future = Future()
                self._pending = future

        if not owner:
            return future.result()

        try:
            tables = self._load_all()
        except BaseException as exc:
            with self._lock:
                self._pending = None
            future.set_exception(exc)
            raise

        with self._lock:
            self._tables = tables
            self._pending = None
        future.set_result(tables)
        return tables

    def get_series(self, gender, measurement_type) -> ReferenceSeries:
        gender = Gender(gender)
        measurement_type = MeasurementType(measurement_type)
        series = self.get_or_load_all().get((gender, measurement_type))
        if series is None:
            return ReferenceSeries(gender, measurement_type)
        return series

    def reset(self) -> None:
        """Drop the memoized tables (test isolation only)."""
        with self._lock:
            self._tables = None
            self._pending = None
            self.load_count = 0


_default_store: Optional[ReferenceTableStore] = None
_default_lock = threading.Lock()


def get_default_store() -> ReferenceTableStore:
    """Store shared by the API process, backed by the configured source."""
    global _default_store
    with _default_lock:
        if _default_store is None:
            loader = csv_loader(WHO_REFERENCE_CSV) if WHO_REFERENCE_CSV else None
            _default_store = ReferenceTableStore(loader=loader)
        return _default_store
