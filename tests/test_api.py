"""
Tests for the Pediatric Growth Standards API
Run: pytest tests/test_api.py -v
"""
import pytest
from fastapi.testclient import TestClient

from growthstd.api.server import app


@pytest.fixture(scope="module")
def client():
    with TestClient(app) as c:
        yield c


HISTORY = [
    {"date": "2024-01-01", "age_days": 30, "value": 4.5},
    {"date": "2024-01-31", "age_days": 60, "value": 5.6},
    {"date": "2024-03-01", "age_days": 90, "value": 6.4},
    {"date": "2024-05-30", "age_days": 180, "value": 7.9},
]


class TestHealth:

    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        data = r.json()
        assert data["status"] == "healthy"
        assert data["reference_loaded"] is True
        assert "MALE_Weight" in data["series_available"]

    def test_docs_available(self, client):
        r = client.get("/docs")
        assert r.status_code == 200


class TestZScore:

    def test_zscore(self, client):
        r = client.post("/zscore", json={
            "value": 3.3464, "age_days": 0,
            "gender": "MALE", "measurement_type": "Weight",
        })
        assert r.status_code == 200
        data = r.json()
        assert data["z_score"] == 0.0
        assert data["percentile"] == 50.0
        assert data["classification"] == "Normal Weight"
        assert data["exact_match"] is True
        assert data["reference_values"]["median"] == pytest.approx(3.3464)

    def test_zscore_defaults_to_weight(self, client):
        r = client.post("/zscore", json={"value": 9.0, "age_days": 365,
                                         "gender": "FEMALE"})
        assert r.status_code == 200
        assert r.json()["measurement_type"] == "Weight"

    def test_non_positive_value_rejected(self, client):
        r = client.post("/zscore", json={"value": -1, "age_days": 30,
                                         "gender": "MALE"})
        assert r.status_code == 422

    def test_age_out_of_range_rejected(self, client):
        r = client.post("/zscore", json={"value": 10, "age_days": 2000,
                                         "gender": "MALE"})
        assert r.status_code == 422

    def test_invalid_gender_rejected(self, client):
        r = client.post("/zscore", json={"value": 10, "age_days": 100,
                                         "gender": "OTHER"})
        assert r.status_code == 422

    def test_batch(self, client):
        r = client.post("/zscore/batch", json={"items": [
            {"value": 3.3464, "age_days": 0, "gender": "MALE"},
            {"value": 3.2322, "age_days": 0, "gender": "FEMALE"},
            {"value": -1, "age_days": 0, "gender": "MALE"},
            {"value": 3.2, "age_days": 0, "gender": "?"},
        ]})
        assert r.status_code == 200
        stats = r.json()["statistics"]
        assert stats["total"] == 4
        assert stats["valid"] == 2
        assert stats["invalid"] == 2
        assert stats["average_z_score"] == 0.0
        assert len(r.json()["results"]) == 4


class TestHistory:

    def test_trend(self, client):
        r = client.post("/trend", json={
            "measurement_type": "Weight", "gender": "MALE",
            "measurements": HISTORY,
        })
        assert r.status_code == 200
        data = r.json()
        assert data["status"] == "ok"
        assert len(data["points"]) == 4
        assert data["points"][0]["z_score"] is not None
        assert data["summary"]["last_date"] == "2024-05-30"

    def test_velocity(self, client):
        r = client.post("/velocity", json={
            "measurements": HISTORY[:3],
            "start_date": "2024-01-01", "end_date": "2024-03-01",
        })
        assert r.status_code == 200
        v = r.json()["velocity"]
        assert v["days_between"] == 60
        assert v["per_month"] == pytest.approx(0.9639, abs=1e-4)

    def test_velocity_insufficient(self, client):
        r = client.post("/velocity", json={"measurements": HISTORY[:1]})
        assert r.status_code == 200
        assert r.json()["velocity"] is None

    def test_projection(self, client):
        r = client.post("/projection", json={
            "measurements": HISTORY, "horizon_months": 12,
        })
        assert r.status_code == 200
        data = r.json()
        assert data["status"] == "ok"
        assert [p["months_ahead"] for p in data["projections"]] == [1, 4, 7, 10]

    def test_projection_zscore_needs_gender(self, client):
        r = client.post("/projection", json={
            "measurements": HISTORY, "method": "zscore_persistence",
        })
        assert r.status_code == 400

    def test_projection_insufficient(self, client):
        r = client.post("/projection", json={"measurements": []})
        assert r.status_code == 200
        assert r.json()["message"] == "Insufficient data for projection"

    def test_compare(self, client):
        r = client.post("/compare", json={
            "measurements": HISTORY, "comparison_type": "age",
            "reference_age_months": 6,
        })
        assert r.status_code == 200
        assert r.json()["status"] == "behind"

    def test_compare_unknown(self, client):
        r = client.post("/compare", json={
            "measurements": HISTORY, "comparison_type": "bmi",
        })
        assert r.status_code == 200
        assert r.json() == {"comparison": "Unknown", "status": "unknown",
                            "details": None}

    def test_alerts(self, client):
        r = client.post("/alerts", json={
            "gender": "MALE",
            "measurements": [
                {"date": "2024-01-01", "age_days": 365, "value": 9.6479},
                {"date": "2024-03-01", "age_days": 425, "value": 7.0},
            ],
        })
        assert r.status_code == 200
        types = {a["alert_type"] for a in r.json()}
        assert "PERCENTILE_DROP" in types


class TestWHOEndpoints:

    def test_chart(self, client):
        r = client.get("/who/chart", params={"gender": "FEMALE",
                                             "measurement_type": "Height"})
        assert r.status_code == 200
        data = r.json()
        assert data["metadata"]["data_source"] == "WHO"
        assert data["age_range"]["min_age_days"] == 0
        assert len(data["points"]) == data["metadata"]["total_points"]

    def test_chart_resampled(self, client):
        r = client.get("/who/chart", params={"step_days": 7})
        assert r.status_code == 200
        assert r.json()["metadata"]["interpolated"] is True

    def test_zscore_areas(self, client):
        r = client.get("/who/zscore-areas", params={"gender": "MALE"})
        assert r.status_code == 200
        assert len(r.json()["sd_areas"]) == 7

    def test_percentile_lines(self, client):
        r = client.get("/who/percentile-lines",
                       params={"measurement_type": "Weight", "gender": "MALE"})
        assert r.status_code == 200
        data = r.json()
        assert len(data["lines"]) == 5  # P3, P15, P50, P85, P97

    def test_percentile_lines_custom(self, client):
        r = client.get("/who/percentile-lines",
                       params={"measurement_type": "HeadCircumference",
                               "gender": "FEMALE", "percentiles": "10,90"})
        assert r.status_code == 200
        assert [line["percentile"] for line in r.json()["lines"]] == [10, 90]

    def test_percentile_lines_invalid(self, client):
        r = client.get("/who/percentile-lines", params={"percentiles": "a,b"})
        assert r.status_code == 400
        r = client.get("/who/percentile-lines", params={"percentiles": "0,50"})
        assert r.status_code == 400

    def test_patient_chart(self, client):
        r = client.post("/who/patient-chart", json={
            "gender": "MALE", "measurement_type": "Weight",
            "measurements": HISTORY})
        assert r.status_code == 200
        data = r.json()
        assert len(data["patient_data"]) == 4
        assert len(data["combined"]) == data["chart"]["metadata"]["total_points"]
        matched = [c for c in data["combined"] if c["patient"]]
        assert matched
        assert all(abs(c["patient"]["age_days"] - c["age_days"]) < 15 for c in matched)

    def test_patient_chart_needs_gender(self, client):
        r = client.post("/who/patient-chart", json={"measurements": HISTORY})
        assert r.status_code == 422


class TestAssessment:

    def test_assessment(self, client):
        r = client.post("/assessment", json={
            "gender": "MALE",
            "visit": {"date": "2024-05-30", "age_days": 0, "weight": 3.3464},
        })
        assert r.status_code == 200
        data = r.json()
        assert data["growth_status"] == "NORMAL"
        assert data["record"]["weight_for_age_z"] == 0.0
        assert data["height_for_age"] is None
        assert data["velocity"] is None

    def test_assessment_with_weights(self, client):
        r = client.post("/assessment", json={
            "gender": "MALE",
            "visit": {"date": "2024-05-30", "age_days": 180, "weight": 7.9},
            "weights": HISTORY,
        })
        assert r.status_code == 200
        assert r.json()["velocity"]["days_between"] == 150
