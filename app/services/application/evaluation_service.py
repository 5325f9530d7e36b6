"""
Application service: Orchestration layer for evaluation operations.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from app.config import Settings, settings as default_settings
from app.domain.exceptions import (
    EvaluationNotFoundError,
    EvaluationStateError,
)
from app.domain.models import (
    FRUIT_FIELDS,
    LEAF_FIELDS,
    AggregateSummary,
    ColumnStatistics,
    Evaluation,
    EvaluationStatus,
    PlotHistory,
    TreeSample,
    new_evaluation,
    normalize_samples,
)
from app.infrastructure.analysis_client import AgronomicAnalysisClient
from app.infrastructure.evaluation_repository import (
    JsonEvaluationRepository,
    get_repository,
)
from app.services.domain.aggregation_engine import (
    RiskThresholds,
    aggregate,
    estimate_economic_loss,
)
from app.services.domain.column_statistics import compute_column_statistics
from app.services.domain.imputation_engine import (
    ImputationConfig,
    ImputationEngine,
    NumpyUniformSource,
    UniformSource,
)
from app.services.domain.trend_aggregator import build_plot_history

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EvaluationService:
    """
    Application service for plot evaluations.

    Coordinates the record store with the domain services and owns the
    editing session: at most one in-progress evaluation is active for
    editing at a time. No business rules live here, only sequencing and
    lifecycle checks.
    """

    def __init__(
        self,
        repository: JsonEvaluationRepository,
        config: Optional[Settings] = None,
        random_source_factory: Optional[Callable[[Optional[int]], UniformSource]] = None,
    ):
        """
        Initialize the service with dependencies.

        Args:
            repository: Evaluation store
            config: Settings (defaults to the global settings)
            random_source_factory: Builds the imputation random source from a seed
        """
        self.repository = repository
        self.config = config or default_settings
        self.random_source_factory = random_source_factory or NumpyUniformSource
        self.thresholds = RiskThresholds(
            infestation_moderate=self.config.infestation_moderate_threshold,
            infestation_severe=self.config.infestation_severe_threshold,
            rust_moderate=self.config.rust_moderate_threshold,
            rust_severe=self.config.rust_severe_threshold,
        )
        self.active_evaluation_id: Optional[str] = None

    # ------------------------------------------------------------------
    # Lookup and lifecycle
    # ------------------------------------------------------------------

    def get_evaluation(self, evaluation_id: str) -> Evaluation:
        """
        Load an evaluation with its sampled flags normalised.

        Raises:
            EvaluationNotFoundError: If the id is unknown
        """
        evaluation = self.repository.get(evaluation_id)
        if evaluation is None:
            raise EvaluationNotFoundError(evaluation_id)
        return evaluation.model_copy(update={"trees": normalize_samples(evaluation.trees)})

    def list_evaluations(self) -> List[Evaluation]:
        """All evaluations, most recently modified first."""
        return sorted(
            self.repository.list(),
            key=lambda e: e.last_modified,
            reverse=True,
        )

    def create_evaluation(self, **info) -> Evaluation:
        """Start a new evaluation and make it the active one."""
        evaluation = new_evaluation(self.config.tree_count, **info)
        self.repository.save(evaluation)
        self.active_evaluation_id = evaluation.id
        logger.info(f"Created evaluation {evaluation.id} for plot '{evaluation.plot_name}'")
        return evaluation

    def open_evaluation(self, evaluation_id: str) -> Evaluation:
        """Select an evaluation; an in-progress one becomes the active one."""
        evaluation = self.get_evaluation(evaluation_id)
        if not evaluation.is_completed:
            self.active_evaluation_id = evaluation.id
        return evaluation

    def reopen(self, evaluation_id: str) -> Evaluation:
        """Return a completed evaluation to editing."""
        evaluation = self.get_evaluation(evaluation_id)
        if not evaluation.is_completed:
            raise EvaluationStateError(f"Evaluation '{evaluation_id}' is already in progress")

        reopened = self._touch(evaluation, status=EvaluationStatus.IN_PROGRESS)
        self.repository.save(reopened)
        self.active_evaluation_id = reopened.id
        logger.info(f"Reopened evaluation {evaluation_id}")
        return reopened

    def delete_evaluation(self, evaluation_id: str) -> None:
        if not self.repository.delete(evaluation_id):
            raise EvaluationNotFoundError(evaluation_id)
        if self.active_evaluation_id == evaluation_id:
            self.active_evaluation_id = None

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def _editable(self, evaluation_id: str) -> Evaluation:
        evaluation = self.get_evaluation(evaluation_id)
        if evaluation.is_completed:
            raise EvaluationStateError(
                f"Evaluation '{evaluation_id}' is completed; reopen it to edit"
            )
        if self.active_evaluation_id != evaluation_id:
            raise EvaluationStateError(
                f"Evaluation '{evaluation_id}' is not the active evaluation"
            )
        return evaluation

    def _touch(self, evaluation: Evaluation, **changes) -> Evaluation:
        return evaluation.model_copy(update={**changes, "last_modified": _utcnow()})

    def update_general_info(self, evaluation_id: str, **info) -> Evaluation:
        """Change plot/grower details of the active evaluation."""
        evaluation = self._editable(evaluation_id)
        data = {**evaluation.model_dump(), **info, "last_modified": _utcnow()}
        updated = Evaluation.model_validate(data)
        self.repository.save(updated)
        return updated

    def _check_caps(self, fields: Dict[str, Any]) -> None:
        for name in FRUIT_FIELDS:
            if fields.get(name, 0) > self.config.max_fruit_count:
                raise ValueError(f"{name} cannot exceed {self.config.max_fruit_count}")
        for name in LEAF_FIELDS:
            if fields.get(name, 0) > self.config.max_leaf_count:
                raise ValueError(f"{name} cannot exceed {self.config.max_leaf_count}")

    def update_tree(self, evaluation_id: str, tree_id: int, **fields) -> Evaluation:
        """
        Record field data for one tree of the active evaluation.

        The tree is marked sampled. Sub-count bounds are not checked here
        since an operator may correct them on a later edit.

        Args:
            evaluation_id: Active evaluation
            tree_id: Site number (1..N)
            **fields: TreeSample fields to change

        Returns:
            Updated evaluation

        Raises:
            EvaluationStateError: If the evaluation is not editable
            ValueError: If the tree id is unknown or a value is out of range
        """
        evaluation = self._editable(evaluation_id)
        if not 1 <= tree_id <= evaluation.tree_count:
            raise ValueError(f"Tree {tree_id} is outside 1..{evaluation.tree_count}")

        fields.pop("id", None)
        self._check_caps(fields)

        tree = evaluation.trees[tree_id - 1]
        updated_tree = TreeSample.model_validate({**tree.model_dump(), **fields, "sampled": True})

        trees = list(evaluation.trees)
        trees[tree_id - 1] = updated_tree
        updated = self._touch(evaluation, trees=tuple(trees))
        self.repository.save(updated)
        return updated

    def move_cursor(self, evaluation_id: str, index: int) -> Evaluation:
        """
        Move the navigation cursor.

        Moving forward marks the tree being left as sampled, since the
        operator has visited it even if every count was zero.
        """
        evaluation = self._editable(evaluation_id)
        if not 0 <= index < evaluation.tree_count:
            raise ValueError(f"Cursor {index} is outside 0..{evaluation.tree_count - 1}")

        trees = evaluation.trees
        current = evaluation.current_tree_index
        if index > current and not trees[current].sampled:
            trees = list(trees)
            trees[current] = trees[current].model_copy(update={"sampled": True})
            trees = tuple(trees)

        updated = self._touch(evaluation, trees=trees, current_tree_index=index)
        self.repository.save(updated)
        return updated

    def finalize(
        self,
        evaluation_id: str,
        impute: bool = False,
        seed: Optional[int] = None,
    ) -> Evaluation:
        """
        Complete the active evaluation, optionally projecting missing trees.

        Either the evaluation is stored completed with its final tree
        sequence, or (if imputation is not possible) storage is untouched.

        Args:
            evaluation_id: Active evaluation
            impute: Fill un-sampled trees from the sampled ones
            seed: Seed for the imputation draws (falls back to settings)

        Returns:
            Completed evaluation

        Raises:
            EvaluationStateError: If the evaluation is not editable
            InsufficientSampleError: If imputation needs more sampled trees
        """
        evaluation = self._editable(evaluation_id)
        trees = evaluation.trees

        if impute:
            engine = ImputationEngine(
                random_source=self.random_source_factory(
                    seed if seed is not None else self.config.imputation_seed
                ),
                config=ImputationConfig(
                    max_fruit_count=self.config.max_fruit_count,
                    max_leaf_count=self.config.max_leaf_count,
                    min_sampled=self.config.min_sampled_trees,
                ),
            )
            trees = engine.impute(trees)

        completed = self._touch(
            evaluation,
            trees=trees,
            status=EvaluationStatus.COMPLETED,
        )
        self.repository.save(completed)
        self.active_evaluation_id = None
        logger.info(f"Finalized evaluation {evaluation_id} (impute={impute})")
        return completed

    # ------------------------------------------------------------------
    # Read models
    # ------------------------------------------------------------------

    def summarize(self, evaluation_id: str) -> AggregateSummary:
        return self.summarize_evaluation(self.get_evaluation(evaluation_id))

    def summarize_evaluation(self, evaluation: Evaluation) -> AggregateSummary:
        """Summary of an evaluation that is already loaded."""
        return aggregate(evaluation.trees, evaluation.tree_count, self.thresholds)

    def estimate_loss(
        self,
        evaluation_id: str,
        harvest_estimate: float,
        price_per_unit: float,
    ) -> float:
        summary = self.summarize(evaluation_id)
        return estimate_economic_loss(harvest_estimate, price_per_unit, summary.infestation_rate)

    def column_statistics(self, evaluation_id: str) -> ColumnStatistics:
        evaluation = self.get_evaluation(evaluation_id)
        return compute_column_statistics(evaluation.trees, self.config.min_sampled_trees)

    def plot_history(self, evaluation_id: str) -> PlotHistory:
        """Trend of every completed visit to this evaluation's plot."""
        evaluation = self.get_evaluation(evaluation_id)
        return build_plot_history(self.repository.list(), evaluation.plot_name)

    def export_evaluation(self, evaluation_id: str) -> Evaluation:
        """
        Final evaluation handed to spreadsheet/report collaborators.

        Raises:
            EvaluationStateError: If the evaluation is still in progress
        """
        evaluation = self.get_evaluation(evaluation_id)
        if not evaluation.is_completed:
            raise EvaluationStateError(
                f"Evaluation '{evaluation_id}' must be completed before export"
            )
        return evaluation

    async def request_analysis(
        self,
        evaluation_id: str,
        client: AgronomicAnalysisClient,
    ) -> str:
        """Ask the analysis service for a recommendation on this evaluation."""
        evaluation = self.get_evaluation(evaluation_id)
        summary = aggregate(evaluation.trees, evaluation.tree_count, self.thresholds)
        return await client.analyze(evaluation, summary)


# Singleton instance
_evaluation_service: Optional[EvaluationService] = None


def get_evaluation_service() -> EvaluationService:
    """
    Get or create the singleton service; it holds the editing session.

    Returns:
        EvaluationService instance
    """
    global _evaluation_service
    if _evaluation_service is None:
        _evaluation_service = EvaluationService(repository=get_repository())
    return _evaluation_service
