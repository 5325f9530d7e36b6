"""
API response models using Pydantic.
"""
from datetime import date
from typing import List, Optional
from pydantic import BaseModel, Field

from app.domain.models import AggregateSummary, EvaluationStatus, GeoLocation, TreeSample


class EvaluationListItem(BaseModel):
    """Evaluation overview for list screens."""
    id: str
    plot_name: str
    grower_name: str
    visit_date: date
    status: EvaluationStatus
    progress_percent: int = Field(description="Share of trees evaluated")


class EvaluationListResponse(BaseModel):
    """Response model for the evaluation list endpoint."""
    count: int
    results: List[EvaluationListItem]


class SummaryResponse(BaseModel):
    """Aggregate summary plus the optional economic estimate."""
    evaluation_id: str
    summary: AggregateSummary
    estimated_loss: Optional[float] = Field(
        default=None,
        description="Value lost to bore damage, when harvest and price are given"
    )


class ExportResponse(BaseModel):
    """Final tree table handed to spreadsheet and report generators."""
    evaluation_id: str
    plot_name: str
    grower_name: str
    visit_date: date
    variety: str
    location: Optional[GeoLocation] = None
    summary: AggregateSummary
    trees: List[TreeSample]


class AnalysisResponse(BaseModel):
    """Agronomic recommendation text."""
    evaluation_id: str
    analysis: str = Field(description="Recommendation in Markdown")

    class Config:
        json_schema_extra = {
            "example": {
                "evaluation_id": "3f2a9c0e5b7d4e1f8a6b2c9d0e1f2a3b",
                "analysis": "## Recommendation\n- Infestation is below the economic threshold...",
            }
        }
