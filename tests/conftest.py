"""
Shared pytest fixtures for all tests.

This module provides common fixtures including:
- Sample tree sequences
- Seeded and scripted random sources
- A temporary evaluation store and service
- FastAPI test client wired to that service
"""
import os

# Keep the limiter out of the way of the integration tests
os.environ.setdefault("RATE_LIMIT_REQUESTS", "100000")

import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.domain.models import TreeSample
from app.infrastructure.evaluation_repository import JsonEvaluationRepository
from app.services.application.evaluation_service import (
    EvaluationService,
    get_evaluation_service,
)
from app.services.domain.imputation_engine import NumpyUniformSource


def make_trees(count: int = 100, **fields) -> tuple[TreeSample, ...]:
    """Build ``count`` identical trees with ids 1..count."""
    return tuple(TreeSample(id=i, **fields) for i in range(1, count + 1))


# ============================================================
# Sample Data Fixtures
# ============================================================

@pytest.fixture
def blank_trees() -> tuple[TreeSample, ...]:
    """A fresh round: 100 zeroed, un-sampled trees."""
    return make_trees(100)


@pytest.fixture
def partial_trees() -> tuple[TreeSample, ...]:
    """A round with 10 sampled trees of varied counts and 90 blank ones."""
    trees = []
    for i in range(1, 101):
        if i <= 10:
            trees.append(TreeSample(
                id=i,
                fruits_on_tree=40 + i,
                bored_fruits_on_tree=i % 4,
                fruits_on_ground=5 + i % 3,
                bored_fruits_on_ground=i % 2,
                total_leaves=30 + i,
                rusted_leaves=i % 5,
                rust_severity_grade=[0, 1, 1, 2, 3][i % 5],
                nutrient_deficiency_code=[0, 0, 1, 3][i % 4],
                sampled=True,
            ))
        else:
            trees.append(TreeSample(id=i))
    return tuple(trees)


@pytest.fixture
def seeded_source() -> NumpyUniformSource:
    return NumpyUniformSource(seed=42)


# ============================================================
# Service Fixtures
# ============================================================

@pytest.fixture
def repository(tmp_path) -> JsonEvaluationRepository:
    """Evaluation store in a temporary directory."""
    return JsonEvaluationRepository(tmp_path / "evaluations.json")


@pytest.fixture
def service(repository) -> EvaluationService:
    return EvaluationService(repository=repository)


# ============================================================
# FastAPI Test Client Fixtures
# ============================================================

@pytest.fixture
def test_client(service) -> TestClient:
    """Synchronous test client whose service uses the temporary store."""
    app.dependency_overrides[get_evaluation_service] = lambda: service
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
