"""
Dependency injection for FastAPI.
"""
from typing import Annotated
from fastapi import Depends

from app.infrastructure.analysis_client import (
    AgronomicAnalysisClient,
    get_analysis_client,
)
from app.services.application.evaluation_service import (
    EvaluationService,
    get_evaluation_service,
)


# Type aliases for cleaner route signatures
EvaluationServiceDep = Annotated[EvaluationService, Depends(get_evaluation_service)]
AnalysisClientDep = Annotated[AgronomicAnalysisClient, Depends(get_analysis_client)]
