"""Tests for predictions and prediction history."""

import json

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from app.models.prediction import PredictionRecord
from app.services.prediction import ModelOutput, PredictionClient, PredictionUnavailable

FEATURES = {
    "age": 45,
    "glucose": 150,
    "bloodPressure": 80,
    "skinThickness": 20,
    "insulin": 85,
    "bmi": 32.5,
    "diabetesPedigreeFunction": 0.5,
    "pregnancies": 2,
}


class TestModelOutput:
    """Tests for risk classification."""

    @pytest.mark.parametrize(
        "probability,expected",
        [(0.95, "High"), (0.7, "High"), (0.69, "Moderate"), (0.3, "Moderate"), (0.29, "Low"), (0.0, "Low")],
    )
    def test_risk_level(self, probability: float, expected: str):
        assert ModelOutput(prediction=1, probability=probability).risk_level == expected

    def test_confidence(self):
        assert ModelOutput(prediction=1, probability=0.8).confidence == 0.8
        assert ModelOutput(prediction=0, probability=0.2).confidence == pytest.approx(0.8)
        assert ModelOutput(prediction=0, probability=0.5).confidence == 0.5


class TestPredictionClient:
    """Tests for the ML API client."""

    def _client(self, handler) -> PredictionClient:
        return PredictionClient("http://ml.test/", timeout=5, transport=httpx.MockTransport(handler))

    def test_sends_model_payload(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"prediction": 0, "probability": 0.1, "label": "Non-Diabetic"})

        output = self._client(handler).predict({"age": 30, "bmi": 22.0, "glucose": 90, "blood_pressure": 70})
        assert seen["path"] == "/predict/"
        assert seen["body"] == {"Age": 30, "BMI": 22.0, "Glucose": 90, "Insulin": 0, "BloodPressure": 70}
        assert output.label == "Non-Diabetic"
        assert output.risk_level == "Low"

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(500, json={"detail": "model crashed"}),
            httpx.Response(200, text="not json"),
            httpx.Response(200, json={"prediction": 1}),
            httpx.Response(200, json={"prediction": 1, "probability": 1.5}),
        ],
    )
    def test_bad_responses(self, response: httpx.Response):
        client = self._client(lambda request: response)
        with pytest.raises(PredictionUnavailable):
            client.predict({"age": 30, "bmi": 22.0, "glucose": 90, "blood_pressure": 70})

    def test_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(PredictionUnavailable, match="in time"):
            self._client(handler).predict({"age": 30, "bmi": 22.0, "glucose": 90, "blood_pressure": 70})

    def test_health_check(self):
        healthy = self._client(lambda request: httpx.Response(200, text="ok"))
        assert healthy.health_check()["status"] == "healthy"

        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        assert self._client(refuse).health_check()["status"] == "unhealthy"


class TestPredictEndpoint:
    """Tests for POST /api/predict."""

    def test_anonymous_prediction(self, client: TestClient, ml_api: dict, db_session: Session):
        response = client.post("/api/predict", json=FEATURES)
        assert response.status_code == 200
        data = response.json()
        assert data["predictionResult"] == 1
        assert data["probability"] == 0.82
        assert data["confidence"] == 0.82
        assert data["riskLevel"] == "High"
        assert data["label"] == "Diabetic"
        assert data["modelVersion"] == "1.0.0"

        record = db_session.get(PredictionRecord, data["id"])
        assert record.user_id is None
        assert record.user_agent == "testclient"

    def test_authenticated_prediction(self, client: TestClient, ml_api: dict, test_user: dict, db_session: Session):
        ml_api["response"] = {"prediction": 0, "probability": 0.2, "label": "Non-Diabetic"}
        response = client.post("/api/predict", json=FEATURES, headers=test_user["headers"])
        assert response.status_code == 200
        assert response.json()["riskLevel"] == "Low"
        assert response.json()["confidence"] == pytest.approx(0.8)

        record = db_session.get(PredictionRecord, response.json()["id"])
        assert record.user_id == test_user["user_id"]

    def test_optional_features_default(self, client: TestClient, ml_api: dict):
        response = client.post("/api/predict", json={"age": 45, "glucose": 150, "bloodPressure": 80, "bmi": 32.5})
        assert response.status_code == 200
        assert response.json()["pregnancies"] == 0
        assert response.json()["insulin"] is None

    def test_out_of_range_feature(self, client: TestClient, ml_api: dict):
        response = client.post("/api/predict", json={**FEATURES, "age": 150})
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "validation_failed"
        assert body["details"][0]["field"] == "age"
        assert ml_api["requests"] == []

    def test_missing_required_feature(self, client: TestClient, ml_api: dict):
        features = {k: v for k, v in FEATURES.items() if k != "bmi"}
        response = client.post("/api/predict", json=features)
        assert response.status_code == 400
        assert "bmi" in {d["field"] for d in response.json()["details"]}

    def test_ml_service_error(self, client: TestClient, ml_api: dict, db_session: Session):
        ml_api["status_code"] = 500
        response = client.post("/api/predict", json=FEATURES)
        assert response.status_code == 503
        assert response.json()["error"] == "prediction_unavailable"
        assert db_session.query(PredictionRecord).count() == 0

    def test_ml_service_unreachable(self, client: TestClient, ml_api: dict):
        ml_api["error"] = httpx.ConnectError("connection refused")
        response = client.post("/api/predict", json=FEATURES)
        assert response.status_code == 503
        assert response.json()["detail"] == "Prediction service is unreachable"

    def test_service_health(self, client: TestClient, ml_api: dict):
        response = client.get("/api/predict/service-health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestBatchPredictEndpoint:
    """Tests for POST /api/predict/batch."""

    def test_mixed_items(self, client: TestClient, ml_api: dict, test_user: dict, db_session: Session):
        """Invalid items are reported by index while valid ones are stored."""
        body = {"predictions": [FEATURES, {**FEATURES, "glucose": 400}, {"age": 30}]}
        response = client.post("/api/predict/batch", json=body, headers=test_user["headers"])
        assert response.status_code == 200
        data = response.json()
        assert data["summary"] == {"total": 3, "successful": 1, "failed": 2}

        first, second, third = data["results"]
        assert first["index"] == 0
        assert first["success"] is True
        assert first["prediction"]["riskLevel"] == "High"
        assert second["success"] is False
        assert second["error"] == "Validation failed"
        assert [d["field"] for d in second["details"]] == ["glucose"]
        assert {"glucose", "bloodPressure", "bmi"} <= {d["field"] for d in third["details"]}

        assert len(ml_api["requests"]) == 1
        record = db_session.get(PredictionRecord, first["prediction"]["id"])
        assert record.user_id == test_user["user_id"]

    def test_ten_items_allowed(self, client: TestClient, ml_api: dict, db_session: Session):
        response = client.post("/api/predict/batch", json={"predictions": [FEATURES] * 10})
        assert response.status_code == 200
        assert response.json()["summary"]["successful"] == 10
        assert db_session.query(PredictionRecord).count() == 10

    def test_more_than_ten_rejected(self, client: TestClient, ml_api: dict, db_session: Session):
        response = client.post("/api/predict/batch", json={"predictions": [FEATURES] * 11})
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "validation_failed"
        assert body["details"][0]["field"] == "predictions"
        assert ml_api["requests"] == []
        assert db_session.query(PredictionRecord).count() == 0

    @pytest.mark.parametrize("body", [{"predictions": []}, {"predictions": "none"}, {}])
    def test_missing_or_empty_list(self, client: TestClient, ml_api: dict, body: dict):
        response = client.post("/api/predict/batch", json=body)
        assert response.status_code == 400
        assert "predictions" in {d["field"] for d in response.json()["details"]}

    def test_ml_failure_is_per_item(self, client: TestClient, ml_api: dict):
        ml_api["status_code"] = 500
        response = client.post("/api/predict/batch", json={"predictions": [FEATURES, FEATURES]})
        assert response.status_code == 200
        data = response.json()
        assert data["summary"] == {"total": 2, "successful": 0, "failed": 2}
        assert all(r["error"] and r["prediction"] is None for r in data["results"])


class TestModelInfo:
    """Tests for GET /api/predict/model-info."""

    def test_describes_model(self, client: TestClient):
        response = client.get("/api/predict/model-info")
        assert response.status_code == 200
        data = response.json()
        assert data["modelName"] == "Random Forest Classifier"
        assert data["modelVersion"] == "1.0.0"
        assert data["performance"]["accuracy"] == 0.85

        features = {f["name"]: f for f in data["features"]}
        assert list(features) == list(FEATURES)
        assert features["glucose"]["required"] is True
        assert features["insulin"]["required"] is False
        assert features["pregnancies"]["type"] == "integer"


class TestPredictionHistory:
    """Tests for /api/user/predictions."""

    def _predict(self, client: TestClient, headers: dict) -> int:
        response = client.post("/api/predict", json=FEATURES, headers=headers)
        assert response.status_code == 200
        return response.json()["id"]

    def test_list_paginates(self, client: TestClient, ml_api: dict, test_user: dict):
        ids = [self._predict(client, test_user["headers"]) for _ in range(3)]

        response = client.get("/api/user/predictions?page=1&limit=2", headers=test_user["headers"])
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 3
        assert data["pages"] == 2
        assert [item["id"] for item in data["items"]] == [ids[2], ids[1]]

        page_two = client.get("/api/user/predictions?page=2&limit=2", headers=test_user["headers"]).json()
        assert [item["id"] for item in page_two["items"]] == [ids[0]]

    def test_list_only_own(self, client: TestClient, ml_api: dict, test_user: dict, other_user: dict):
        self._predict(client, other_user["headers"])
        self._predict(client, {})

        data = client.get("/api/user/predictions", headers=test_user["headers"]).json()
        assert data["total"] == 0
        assert data["items"] == []

    def test_list_requires_auth(self, client: TestClient):
        assert client.get("/api/user/predictions").status_code == 401

    def test_get_own(self, client: TestClient, ml_api: dict, test_user: dict):
        prediction_id = self._predict(client, test_user["headers"])
        response = client.get(f"/api/user/predictions/{prediction_id}", headers=test_user["headers"])
        assert response.status_code == 200
        assert response.json()["id"] == prediction_id

    def test_get_other_users(self, client: TestClient, ml_api: dict, test_user: dict, other_user: dict):
        prediction_id = self._predict(client, other_user["headers"])
        response = client.get(f"/api/user/predictions/{prediction_id}", headers=test_user["headers"])
        assert response.status_code == 403
        assert response.json()["error"] == "forbidden"

    def test_get_missing(self, client: TestClient, test_user: dict):
        response = client.get("/api/user/predictions/9999", headers=test_user["headers"])
        assert response.status_code == 404

    def test_delete(self, client: TestClient, ml_api: dict, test_user: dict, other_user: dict):
        prediction_id = self._predict(client, test_user["headers"])

        assert client.delete(f"/api/user/predictions/{prediction_id}", headers=other_user["headers"]).status_code == 403

        response = client.delete(f"/api/user/predictions/{prediction_id}", headers=test_user["headers"])
        assert response.status_code == 200
        assert response.json()["message"] == "Prediction deleted successfully"
        assert client.get(f"/api/user/predictions/{prediction_id}", headers=test_user["headers"]).status_code == 404

    def test_stats_in_me(self, client: TestClient, ml_api: dict, test_user: dict):
        self._predict(client, test_user["headers"])
        ml_api["response"] = {"prediction": 0, "probability": 0.4}
        self._predict(client, test_user["headers"])

        stats = client.get("/api/auth/me", headers=test_user["headers"]).json()["stats"]
        assert stats["totalPredictions"] == 2
        assert stats["avgProbability"] == pytest.approx(0.61)
        assert stats["highRiskCount"] == 1
        assert stats["moderateRiskCount"] == 1
        assert stats["lowRiskCount"] == 0
        assert stats["lastPrediction"] is not None


class TestCorrectModelMetadata:
    """Stored features and results are immutable; only model metadata may change."""

    def test_correct_metadata(self, client: TestClient, ml_api: dict, db_session: Session):
        prediction_id = client.post("/api/predict", json=FEATURES).json()["id"]
        service = client.app.state.prediction_service
        record = db_session.get(PredictionRecord, prediction_id)

        service.correct_model_metadata(db_session, record, confidence=0.9, model_version="1.0.1")
        assert record.confidence == 0.9
        assert record.model_version == "1.0.1"
        assert record.probability == 0.82
