"""
API request models using Pydantic.
"""
from datetime import date
from typing import Optional
from pydantic import BaseModel, Field

from app.domain.models import GeoLocation, NutrientDeficiency


class GeneralInfoRequest(BaseModel):
    """Plot and grower details of an evaluation."""
    plot_name: Optional[str] = Field(default=None, examples=["LoteA"])
    grower_name: Optional[str] = None
    visit_date: Optional[date] = None
    renovation_type: Optional[str] = None
    variety: Optional[str] = Field(default=None, examples=["Castillo"])
    plot_area_ha: Optional[float] = Field(default=None, ge=0)
    age_years: Optional[float] = Field(default=None, ge=0)
    planting_density: Optional[int] = Field(default=None, ge=0)
    location: Optional[GeoLocation] = None


class TreeUpdateRequest(BaseModel):
    """Counts observed at one tree; omitted fields keep their value."""
    fruits_on_tree: Optional[int] = Field(default=None, ge=0)
    bored_fruits_on_tree: Optional[int] = Field(default=None, ge=0)
    fruits_on_ground: Optional[int] = Field(default=None, ge=0)
    bored_fruits_on_ground: Optional[int] = Field(default=None, ge=0)
    total_leaves: Optional[int] = Field(default=None, ge=0)
    rusted_leaves: Optional[int] = Field(default=None, ge=0)
    rust_severity_grade: Optional[int] = Field(default=None, ge=0, le=9)
    nutrient_deficiency_code: Optional[NutrientDeficiency] = None


class CursorRequest(BaseModel):
    """New position of the navigation cursor."""
    index: int = Field(ge=0, description="Zero-based tree position")


class FinalizeRequest(BaseModel):
    """Options for closing an evaluation."""
    impute: bool = Field(
        default=False,
        description="Project un-sampled trees from the sampled ones"
    )
    seed: Optional[int] = Field(
        default=None,
        description="Seed for reproducible projection"
    )
