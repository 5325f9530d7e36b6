"""
Domain models for plot evaluations and tree samples.

These models represent the core domain entities and should be independent
of any infrastructure concerns (storage, HTTP clients, etc.). All of them
are immutable values: updates go through ``model_copy(update=...)`` and
produce a new instance.
"""
import uuid
from datetime import date, datetime, timezone
from enum import Enum, IntEnum
from typing import Iterable, Optional
from pydantic import BaseModel, Field, model_validator


NUMERIC_FIELDS: tuple[str, ...] = (
    "fruits_on_tree",
    "bored_fruits_on_tree",
    "fruits_on_ground",
    "bored_fruits_on_ground",
    "total_leaves",
    "rusted_leaves",
)
"""Count columns of a tree sample, in draw order."""

CATEGORICAL_FIELDS: tuple[str, ...] = (
    "rust_severity_grade",
    "nutrient_deficiency_code",
)

SUB_COUNT_PAIRS: tuple[tuple[str, str], ...] = (
    ("bored_fruits_on_tree", "fruits_on_tree"),
    ("bored_fruits_on_ground", "fruits_on_ground"),
    ("rusted_leaves", "total_leaves"),
)
"""(sub-count, total) pairs, in the order they are reconciled."""

FRUIT_FIELDS: tuple[str, ...] = NUMERIC_FIELDS[:4]
LEAF_FIELDS: tuple[str, ...] = NUMERIC_FIELDS[4:]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NutrientDeficiency(IntEnum):
    """Visible nutrient deficiency observed on a tree."""
    NONE = 0
    NITROGEN = 1
    PHOSPHORUS = 2
    POTASSIUM = 3
    MAGNESIUM = 4


class RiskLevel(str, Enum):
    """Traffic-light risk bucket derived from a rate."""
    LOW = "low"
    MODERATE = "moderate"
    SEVERE = "severe"


class EvaluationStatus(str, Enum):
    """Lifecycle status of an evaluation."""
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class TreeSample(BaseModel):
    """Field data for one sampling site."""
    id: int = Field(ge=1, description="Site number, 1..N")
    fruits_on_tree: int = Field(default=0, ge=0)
    bored_fruits_on_tree: int = Field(default=0, ge=0)
    fruits_on_ground: int = Field(default=0, ge=0)
    bored_fruits_on_ground: int = Field(default=0, ge=0)
    total_leaves: int = Field(default=0, ge=0)
    rusted_leaves: int = Field(default=0, ge=0)
    rust_severity_grade: int = Field(default=0, ge=0, le=9, description="Ordinal rust severity 0-9")
    nutrient_deficiency_code: NutrientDeficiency = NutrientDeficiency.NONE
    sampled: bool = Field(
        default=False,
        description="True once the site has been deliberately evaluated"
    )

    class Config:
        frozen = True

    @property
    def has_data(self) -> bool:
        return any(getattr(self, name) > 0 for name in NUMERIC_FIELDS)

    @property
    def is_sampled(self) -> bool:
        """Sampled flag, or any recorded count for records saved without it."""
        return self.sampled or self.has_data


def normalize_samples(trees: Iterable[TreeSample]) -> tuple[TreeSample, ...]:
    """
    Fold the legacy "has data" rule into the ``sampled`` flag.

    After normalisation the flag alone answers whether a site was evaluated,
    so aggregation and imputation never disagree about it.

    Args:
        trees: Tree samples as stored

    Returns:
        New tuple with ``sampled`` set on every record that has data
    """
    return tuple(
        tree if tree.sampled or not tree.has_data
        else tree.model_copy(update={"sampled": True})
        for tree in trees
    )


class GeoLocation(BaseModel):
    """GPS fix taken when the evaluation was started."""
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    accuracy: float = Field(default=0.0, ge=0, description="Accuracy radius in metres")


class Evaluation(BaseModel):
    """One visit to a plot with its fixed-size tree sample set."""
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = Field(default_factory=_utcnow)
    last_modified: datetime = Field(default_factory=_utcnow)

    # General info
    plot_name: str = ""
    grower_name: str = ""
    visit_date: date = Field(default_factory=date.today)
    renovation_type: str = ""
    variety: str = ""
    plot_area_ha: float = Field(default=0.0, ge=0)
    age_years: float = Field(default=0.0, ge=0)
    planting_density: int = Field(default=0, ge=0, description="Trees per hectare")
    location: Optional[GeoLocation] = None

    # Data
    trees: tuple[TreeSample, ...]
    current_tree_index: int = Field(default=0, ge=0)
    status: EvaluationStatus = EvaluationStatus.IN_PROGRESS

    class Config:
        frozen = True

    @model_validator(mode="after")
    def _check_tree_sequence(self) -> "Evaluation":
        if not self.trees:
            raise ValueError("An evaluation needs at least one tree site")
        for position, tree in enumerate(self.trees, start=1):
            if tree.id != position:
                raise ValueError(
                    f"Tree ids must run 1..{len(self.trees)} in order, "
                    f"found id {tree.id} at position {position}"
                )
        if self.current_tree_index >= len(self.trees):
            raise ValueError(
                f"current_tree_index {self.current_tree_index} is outside "
                f"0..{len(self.trees) - 1}"
            )
        return self

    @property
    def tree_count(self) -> int:
        return len(self.trees)

    @property
    def is_completed(self) -> bool:
        return self.status == EvaluationStatus.COMPLETED


def new_evaluation(tree_count: int, **info) -> Evaluation:
    """
    Start an evaluation with ``tree_count`` zeroed, un-sampled sites.

    Args:
        tree_count: Number of sampling sites (N)
        **info: General info fields (plot_name, grower_name, ...)

    Returns:
        New in-progress Evaluation
    """
    trees = tuple(TreeSample(id=i) for i in range(1, tree_count + 1))
    return Evaluation(trees=trees, **info)


class FieldStatistics(BaseModel):
    """Mean and population standard deviation of one count column."""
    mean: float
    std: float


class ColumnStatistics(BaseModel):
    """Per-column distribution of the sampled subset."""
    sample_size: int
    numeric: dict[str, FieldStatistics]
    rust_severity_grades: list[int]
    nutrient_deficiency_codes: list[NutrientDeficiency]


class AggregateSummary(BaseModel):
    """Plot-level totals, rates and risk levels."""
    total_fruits: int
    total_bored_fruits: int
    infestation_rate: float = Field(description="Bored / total fruits, percent")
    total_leaves_sampled: int
    total_rusted_leaves: int
    rust_incidence_rate: float = Field(description="Rusted / total leaves, percent")
    sampled_count: int
    progress_percent: int
    infestation_risk: RiskLevel
    rust_risk: RiskLevel


class TrendPoint(BaseModel):
    """Rates of one completed evaluation."""
    evaluation_id: str
    visit_date: date
    infestation_rate: float
    rust_incidence_rate: float


class PlotHistory(BaseModel):
    """Time-ordered rate series for one plot."""
    plot_name: str
    points: list[TrendPoint]
