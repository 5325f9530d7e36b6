"""
Integration tests for API endpoints.

Tests the full HTTP request/response cycle against a temporary store, with
the analysis service mocked.
"""
import pytest
from unittest.mock import AsyncMock

from app.main import app
from app.api.dependencies import get_analysis_client
from app.infrastructure.analysis_client import AgronomicAnalysisClient, AnalysisServiceError


BASE = "/api/v1/evaluations"


def create(test_client, **info) -> dict:
    response = test_client.post(BASE, json=info)
    assert response.status_code == 201
    return response.json()


def record(test_client, evaluation_id: str, tree_ids, **fields):
    for tree_id in tree_ids:
        response = test_client.put(f"{BASE}/{evaluation_id}/trees/{tree_id}", json=fields)
        assert response.status_code == 200


# ============================================================
# Health Check Tests
# ============================================================

class TestHealthEndpoints:
    """Tests for health check endpoints."""

    def test_root_endpoint(self, test_client):
        """Root endpoint should return healthy status."""
        response = test_client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "service" in data
        assert "version" in data

    def test_health_endpoint(self, test_client):
        """Health endpoint should return healthy status."""
        response = test_client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


# ============================================================
# Evaluation Lifecycle Tests
# ============================================================

class TestEvaluationEndpoints:
    """Tests for creating, editing and listing evaluations."""

    def test_create_evaluation(self, test_client):
        data = create(test_client, plot_name="LoteA", grower_name="Ana")

        assert data["plot_name"] == "LoteA"
        assert data["status"] == "in_progress"
        assert len(data["trees"]) == 100
        assert data["trees"][0] == {
            "id": 1,
            "fruits_on_tree": 0,
            "bored_fruits_on_tree": 0,
            "fruits_on_ground": 0,
            "bored_fruits_on_ground": 0,
            "total_leaves": 0,
            "rusted_leaves": 0,
            "rust_severity_grade": 0,
            "nutrient_deficiency_code": 0,
            "sampled": False,
        }

    def test_list_evaluations(self, test_client):
        evaluation = create(test_client, plot_name="LoteA")
        record(test_client, evaluation["id"], range(1, 26), fruits_on_tree=10)

        response = test_client.get(BASE)

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 1
        assert data["results"][0]["progress_percent"] == 25

    def test_list_summarizes_loaded_records(self, test_client, service, monkeypatch):
        """Listing computes progress from one read, not one lookup per record."""
        for name in ("LoteA", "LoteB", "LoteC"):
            create(test_client, plot_name=name)

        def no_lookup(evaluation_id):
            raise AssertionError(f"unexpected lookup of {evaluation_id}")

        monkeypatch.setattr(service.repository, "get", no_lookup)
        response = test_client.get(BASE)

        assert response.status_code == 200
        assert response.json()["count"] == 3
        assert all(item["progress_percent"] == 0 for item in response.json()["results"])

    def test_get_unknown_evaluation(self, test_client):
        response = test_client.get(f"{BASE}/does-not-exist")

        assert response.status_code == 404
        assert response.json()["error"] == "Not found"

    def test_update_tree(self, test_client):
        evaluation = create(test_client)

        response = test_client.put(
            f"{BASE}/{evaluation['id']}/trees/3",
            json={"fruits_on_tree": 60, "bored_fruits_on_tree": 4, "nutrient_deficiency_code": 2},
        )

        assert response.status_code == 200
        tree = response.json()["trees"][2]
        assert tree["fruits_on_tree"] == 60
        assert tree["nutrient_deficiency_code"] == 2
        assert tree["sampled"] is True

    def test_update_tree_above_cap(self, test_client):
        evaluation = create(test_client)

        response = test_client.put(f"{BASE}/{evaluation['id']}/trees/1", json={"total_leaves": 80})

        assert response.status_code == 400

    def test_update_tree_invalid_grade(self, test_client):
        evaluation = create(test_client)

        response = test_client.put(f"{BASE}/{evaluation['id']}/trees/1", json={"rust_severity_grade": 12})

        assert response.status_code == 422

    def test_update_general_info(self, test_client):
        evaluation = create(test_client, plot_name="LoteA")

        response = test_client.patch(
            f"{BASE}/{evaluation['id']}",
            json={"variety": "Castillo", "location": {"lat": 4.81, "lng": -75.69, "accuracy": 5}},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["variety"] == "Castillo"
        assert data["location"]["lat"] == 4.81

    def test_move_cursor(self, test_client):
        evaluation = create(test_client)

        response = test_client.put(f"{BASE}/{evaluation['id']}/cursor", json={"index": 1})

        assert response.status_code == 200
        assert response.json()["current_tree_index"] == 1
        assert response.json()["trees"][0]["sampled"] is True

    def test_delete_evaluation(self, test_client):
        evaluation = create(test_client)

        assert test_client.delete(f"{BASE}/{evaluation['id']}").status_code == 204
        assert test_client.get(f"{BASE}/{evaluation['id']}").status_code == 404

    def test_editing_completed_evaluation_conflicts(self, test_client):
        evaluation = create(test_client)
        test_client.post(f"{BASE}/{evaluation['id']}/finalize", json={})

        response = test_client.put(f"{BASE}/{evaluation['id']}/trees/1", json={"fruits_on_tree": 1})

        assert response.status_code == 409

    def test_reopen(self, test_client):
        evaluation = create(test_client)
        test_client.post(f"{BASE}/{evaluation['id']}/finalize", json={})

        response = test_client.post(f"{BASE}/{evaluation['id']}/reopen")

        assert response.status_code == 200
        assert response.json()["status"] == "in_progress"


# ============================================================
# Summary and Finalize Tests
# ============================================================

class TestSummaryAndFinalize:
    """Tests for aggregation, projection and export over HTTP."""

    def test_homogeneous_round_summary(self, test_client):
        """100 trees with 50 fruits and 1 bored: 2% infestation, moderate risk."""
        evaluation = create(test_client)
        record(test_client, evaluation["id"], range(1, 101), fruits_on_tree=50, bored_fruits_on_tree=1)

        response = test_client.get(
            f"{BASE}/{evaluation['id']}/summary",
            params={"harvest_estimate": 1000, "price_per_unit": 2},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["summary"]["infestation_rate"] == pytest.approx(2.0)
        assert data["summary"]["infestation_risk"] == "moderate"
        assert data["summary"]["progress_percent"] == 100
        assert data["estimated_loss"] == pytest.approx(40.0)

    def test_blank_round_summary_and_projection(self, test_client):
        """Nothing sampled: zero rates, and projection is refused without saving."""
        evaluation = create(test_client)

        summary = test_client.get(f"{BASE}/{evaluation['id']}/summary").json()["summary"]
        assert summary["infestation_rate"] == 0
        assert summary["rust_incidence_rate"] == 0
        assert summary["progress_percent"] == 0
        assert test_client.get(f"{BASE}/{evaluation['id']}/summary").json()["estimated_loss"] is None

        response = test_client.post(f"{BASE}/{evaluation['id']}/finalize", json={"impute": True})

        assert response.status_code == 422
        assert response.json()["sampled_count"] == 0
        assert test_client.get(f"{BASE}/{evaluation['id']}").json()["status"] == "in_progress"

    def test_finalize_with_projection(self, test_client):
        evaluation = create(test_client)
        record(test_client, evaluation["id"], range(1, 99), total_leaves=10, rusted_leaves=0)

        response = test_client.post(
            f"{BASE}/{evaluation['id']}/finalize",
            json={"impute": True, "seed": 5},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "completed"
        assert all(t["sampled"] for t in data["trees"])
        assert data["trees"][99]["total_leaves"] == 10
        assert data["trees"][99]["rusted_leaves"] == 0

        summary = test_client.get(f"{BASE}/{evaluation['id']}/summary").json()["summary"]
        assert summary["rust_incidence_rate"] == 0

    def test_statistics(self, test_client):
        evaluation = create(test_client)
        record(test_client, evaluation["id"], [1], fruits_on_tree=10)
        record(test_client, evaluation["id"], [2], fruits_on_tree=20)

        response = test_client.get(f"{BASE}/{evaluation['id']}/statistics")

        assert response.status_code == 200
        data = response.json()
        assert data["sample_size"] == 2
        assert data["numeric"]["fruits_on_tree"] == {"mean": 15.0, "std": 5.0}

    def test_export_requires_completion(self, test_client):
        evaluation = create(test_client, plot_name="LoteA")

        assert test_client.get(f"{BASE}/{evaluation['id']}/export").status_code == 409

        test_client.post(f"{BASE}/{evaluation['id']}/finalize", json={})
        response = test_client.get(f"{BASE}/{evaluation['id']}/export")

        assert response.status_code == 200
        data = response.json()
        assert data["plot_name"] == "LoteA"
        assert len(data["trees"]) == 100


# ============================================================
# History Tests
# ============================================================

class TestHistory:
    """Tests for the plot trend endpoint."""

    def complete_visit(self, test_client, visit_date: str, bored: int) -> str:
        evaluation = create(test_client, plot_name="LoteA", visit_date=visit_date)
        record(test_client, evaluation["id"], range(1, 11), fruits_on_tree=10)
        record(test_client, evaluation["id"], [1], bored_fruits_on_tree=bored)
        test_client.post(f"{BASE}/{evaluation['id']}/finalize", json={})
        return evaluation["id"]

    def test_two_visits(self, test_client):
        self.complete_visit(test_client, "2024-06-01", bored=6)
        evaluation_id = self.complete_visit(test_client, "2024-03-01", bored=3)

        response = test_client.get(f"{BASE}/{evaluation_id}/history")

        assert response.status_code == 200
        points = response.json()["points"]
        assert [p["visit_date"] for p in points] == ["2024-03-01", "2024-06-01"]
        assert [p["infestation_rate"] for p in points] == pytest.approx([3.0, 6.0])

    def test_single_visit(self, test_client):
        evaluation_id = self.complete_visit(test_client, "2024-03-01", bored=3)

        response = test_client.get(f"{BASE}/{evaluation_id}/history")

        assert response.status_code == 422
        assert response.json()["point_count"] == 1


# ============================================================
# Analysis Tests
# ============================================================

class TestAnalysisEndpoint:
    """Tests for the agronomic analysis endpoint."""

    def test_analysis_response(self, test_client):
        evaluation = create(test_client, plot_name="LoteA")
        mock_client = AsyncMock(spec=AgronomicAnalysisClient)
        mock_client.analyze.return_value = "## Recommendation"
        app.dependency_overrides[get_analysis_client] = lambda: mock_client

        response = test_client.post(f"{BASE}/{evaluation['id']}/analysis")

        assert response.status_code == 200
        assert response.json() == {
            "evaluation_id": evaluation["id"],
            "analysis": "## Recommendation",
        }

    def test_analysis_error_status_passed_through(self, test_client):
        evaluation = create(test_client)
        mock_client = AsyncMock(spec=AgronomicAnalysisClient)
        mock_client.analyze.side_effect = AnalysisServiceError("no key", status_code=401)
        app.dependency_overrides[get_analysis_client] = lambda: mock_client

        response = test_client.post(f"{BASE}/{evaluation['id']}/analysis")

        assert response.status_code == 401
        assert response.json()["detail"] == "no key"


# ============================================================
# Response Format Tests
# ============================================================

class TestResponseFormats:
    """Tests for API response formats."""

    def test_openapi_schema_available(self, test_client):
        """OpenAPI schema should be available."""
        response = test_client.get("/openapi.json")

        assert response.status_code == 200
        data = response.json()
        assert "/api/v1/evaluations/{evaluation_id}/finalize" in data["paths"]

    def test_rate_limit_documented_in_openapi(self, test_client):
        """429 should be documented for evaluation endpoints."""
        data = test_client.get("/openapi.json").json()

        summary_path = data["paths"]["/api/v1/evaluations/{evaluation_id}/summary"]
        assert "429" in summary_path["get"]["responses"]

    def test_docs_endpoint_available(self, test_client):
        """Swagger docs should be available."""
        response = test_client.get("/docs")

        assert response.status_code == 200


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
