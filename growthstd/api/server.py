"""
Pediatric Growth Standards — FastAPI Backend
=============================================

WHO Child Growth Standards z-scores, trends and projections.
The API is stateless: callers send the measurement history they hold.

REST API endpoints:
    POST   /zscore                      Z-score & percentile of one measurement
    POST   /zscore/batch                Z-scores of many measurements + statistics
    POST   /trend                       Trend points, velocity and summary
    POST   /velocity                    Growth velocity between two dates
    POST   /projection                  Growth projection
    POST   /compare                     Age / percentile / velocity comparison
    POST   /alerts                      Growth alerts
    POST   /assessment                  Visit-level growth assessment
    GET    /who/chart                   WHO reference curves
    GET    /who/zscore-areas            WHO SD bands for plotting
    GET    /who/percentile-lines        WHO reference percentile lines
    POST   /who/patient-chart           Patient measurements over WHO curves
    GET    /health                      Health check
"""
import datetime as dt
import logging
import secrets
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query, Depends
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from pydantic import BaseModel, Field

from config.settings import HOST, PORT, DEBUG, LOG_LEVEL, MAX_AGE_DAYS
from config.settings import AUTH_ENABLED, AUTH_USERNAME, AUTH_PASSWORD
from growthstd.models.data_structures import (
    Gender, GrowthRecord, Measurement, MeasurementType,
)
from growthstd.services.growth_service import GrowthService

logger = logging.getLogger(__name__)

VERSION = "1.0.0"

# ── Auth ─────────────────────────────────────────────────────────
security = HTTPBasic()

def verify_credentials(credentials: HTTPBasicCredentials = Depends(security)):
    """HTTP Basic Auth — only enforced when AUTH_ENABLED=true."""
    if not AUTH_ENABLED:
        return True
    correct_user = secrets.compare_digest(credentials.username, AUTH_USERNAME)
    correct_pass = secrets.compare_digest(credentials.password, AUTH_PASSWORD)
    if not (correct_user and correct_pass):
        raise HTTPException(
            status_code=401,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Basic"},
        )
    return True

# ── Global State ──────────────────────────────────────────────

_service: Optional[GrowthService] = None


def get_service() -> GrowthService:
    global _service
    if _service is None:
        _service = GrowthService()
    return _service


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Warm the reference tables on startup."""
    service = get_service()
    tables = service.engine.store.get_or_load_all()
    logger.info("Growth standards ready — %d reference series", len(tables))
    yield
    logger.info("Shutting down")


# ── App ──────────────────────────────────────────────────────

_deps = [Depends(verify_credentials)] if AUTH_ENABLED else []

app = FastAPI(
    title="Pediatric Growth Standards API",
    description=(
        "WHO Child Growth Standards engine. Provides LMS z-scores, percentiles, "
        "clinical classification, growth trends, velocity, projections and "
        "reference chart data for children 0–5 years."
    ),
    version=VERSION,
    lifespan=lifespan,
    dependencies=_deps,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Request Models ────────────────────────────────────────────

class ZScoreRequest(BaseModel):
    value: float = Field(..., gt=0, description="Measurement in kg or cm")
    age_days: int = Field(..., ge=0, le=MAX_AGE_DAYS)
    gender: Gender
    measurement_type: MeasurementType = MeasurementType.WEIGHT

class BatchZScoreRequest(BaseModel):
    # Raw items: malformed entries are reported per item, not rejected
    items: List[Dict[str, Any]]

class MeasurementIn(BaseModel):
    date: dt.date
    age_days: int = Field(..., ge=0)
    value: Optional[float] = None
    z_score: Optional[float] = None

class HistoryRequest(BaseModel):
    measurement_type: MeasurementType = MeasurementType.WEIGHT
    gender: Optional[Gender] = None
    measurements: List[MeasurementIn] = Field(default_factory=list)
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None

    def history(self) -> List[Measurement]:
        return [
            Measurement(date=m.date, age_days=m.age_days, value=m.value,
                        measurement_type=self.measurement_type,
                        z_score=m.z_score)
            for m in self.measurements
        ]

class ProjectionRequest(HistoryRequest):
    horizon_months: int = Field(12, ge=1, le=60)
    method: str = Field("linear", pattern="^(linear|zscore_persistence)$")
    as_of: Optional[dt.date] = None

class CompareRequest(HistoryRequest):
    comparison_type: str
    reference_age_months: float = 0.0
    as_of: Optional[dt.date] = None

class PatientChartRequest(HistoryRequest):
    gender: Gender
    step_days: Optional[int] = Field(None, ge=1)

class VisitIn(BaseModel):
    date: dt.date
    age_days: int = Field(..., ge=0)
    weight: Optional[float] = None
    height: Optional[float] = None
    head_circumference: Optional[float] = None

class AssessmentRequest(BaseModel):
    gender: Gender
    visit: VisitIn
    # earlier weights, used for velocity
    weights: List[MeasurementIn] = Field(default_factory=list)

    def record(self) -> GrowthRecord:
        return GrowthRecord(**self.visit.model_dump())

    def history(self) -> List[Measurement]:
        return [
            Measurement(date=m.date, age_days=m.age_days, value=m.value,
                        measurement_type=MeasurementType.WEIGHT)
            for m in self.weights
        ]


# ── Helper ────────────────────────────────────────────────────

def _parse_percentiles(raw: str) -> List[float]:
    try:
        return [float(x.strip()) for x in raw.split(",") if x.strip()]
    except ValueError:
        raise HTTPException(400, f"Invalid percentile list '{raw}'")


# ── Endpoints ─────────────────────────────────────────────────

@app.get("/health")
async def health_check():
    store = get_service().engine.store
    return {
        "status": "healthy",
        "reference_loaded": store.is_loaded,
        "series_available": get_service().engine.available_series
        if store.is_loaded else [],
        "version": VERSION,
    }


# ── Z-Scores ─────────────────────────────────────────────────

@app.post("/zscore")
async def calculate_zscore(req: ZScoreRequest):
    result = get_service().get_zscore(
        req.value, req.age_days, req.gender, req.measurement_type)
    return {
        "age_days": req.age_days,
        "value": req.value,
        "gender": req.gender.value,
        "measurement_type": req.measurement_type.value,
        **result.to_dict(),
    }


@app.post("/zscore/batch")
async def calculate_zscores_batch(req: BatchZScoreRequest):
    return get_service().get_zscores_batch(req.items).to_dict()


# ── Trends & Velocity ────────────────────────────────────────

@app.post("/trend")
async def growth_trend(req: HistoryRequest):
    trend = get_service().get_trend(
        req.history(), req.measurement_type,
        req.start_date, req.end_date, gender=req.gender)
    return trend.to_dict()


@app.post("/velocity")
async def growth_velocity(req: HistoryRequest):
    velocity = get_service().get_velocity(
        req.history(), req.measurement_type, req.start_date, req.end_date)
    return {
        "measurement_type": req.measurement_type.value,
        "velocity": velocity.to_dict() if velocity else None,
    }


# ── Projection & Comparison ──────────────────────────────────

@app.post("/projection")
async def growth_projection(req: ProjectionRequest):
    try:
        projection = get_service().get_projection(
            req.history(), req.measurement_type, req.horizon_months,
            gender=req.gender, method=req.method, as_of=req.as_of)
    except ValueError as e:
        raise HTTPException(400, str(e))
    return projection.to_dict()


@app.post("/compare")
async def compare_growth(req: CompareRequest):
    comparison = get_service().compare(
        req.history(), req.measurement_type, req.comparison_type,
        req.reference_age_months, gender=req.gender, as_of=req.as_of)
    return comparison.to_dict()


# ── Alerts ───────────────────────────────────────────────────

@app.post("/alerts")
async def growth_alerts(req: HistoryRequest):
    alerts = get_service().assess_alerts(
        req.history(), req.measurement_type, gender=req.gender)
    return [a.to_dict() for a in alerts]


@app.post("/assessment")
async def assess_visit(req: AssessmentRequest):
    history = req.history()
    assessment = get_service().assess_record(
        req.record(), req.gender, history if history else None)
    return assessment.to_dict()


# ── WHO Reference Data ───────────────────────────────────────

@app.get("/who/chart")
async def who_chart(
    gender: Gender = Query(Gender.MALE),
    measurement_type: MeasurementType = Query(MeasurementType.WEIGHT),
    step_days: Optional[int] = Query(None, ge=1),
):
    return get_service().get_chart_series(gender, measurement_type, step_days).to_dict()


@app.get("/who/zscore-areas")
async def who_zscore_areas(
    gender: Gender = Query(Gender.MALE),
    measurement_type: MeasurementType = Query(MeasurementType.WEIGHT),
):
    return get_service().get_zscore_areas(gender, measurement_type)


@app.get("/who/percentile-lines")
async def who_percentile_lines(
    gender: Gender = Query(Gender.MALE),
    measurement_type: MeasurementType = Query(MeasurementType.WEIGHT),
    percentiles: str = Query("3,15,50,85,97"),
    step_days: Optional[int] = Query(None, ge=1),
):
    pct_list = _parse_percentiles(percentiles)
    try:
        return get_service().get_percentile_lines(
            gender, measurement_type, pct_list, step_days)
    except ValueError as e:
        raise HTTPException(400, str(e))


@app.post("/who/patient-chart")
async def who_patient_chart(req: PatientChartRequest):
    return get_service().get_patient_chart(
        req.history(), req.gender, req.measurement_type, req.step_days)


# ── Run ───────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run("growthstd.api.server:app", host=HOST, port=PORT, reload=DEBUG)
