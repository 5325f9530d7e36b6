"""
Domain service: Statistical projection of un-sampled tree sites.

When a sampling round is closed early, every site that was not evaluated is
filled with plausible values drawn from the distribution of the sampled
sites:
- Count columns: independent Gaussian draws (Box-Muller) per column
- Sub-count consistency: bored/rusted counts clamped to their totals
- Categorical columns: uniform pick from the observed values
"""
import math
import logging
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence
import numpy as np

from app.domain.models import (
    FRUIT_FIELDS,
    NUMERIC_FIELDS,
    SUB_COUNT_PAIRS,
    ColumnStatistics,
    NutrientDeficiency,
    TreeSample,
)
from app.services.domain.column_statistics import (
    MIN_SAMPLED_TREES,
    compute_column_statistics,
)

logger = logging.getLogger(__name__)


class UniformSource(Protocol):
    """Source of uniform random numbers in the half-open interval (0, 1]."""

    def uniform(self) -> float:
        ...


class NumpyUniformSource:
    """UniformSource backed by a numpy ``Generator``."""

    def __init__(self, seed: Optional[int] = None):
        self._rng = np.random.default_rng(seed)

    def uniform(self) -> float:
        # Generator.random() is [0, 1); flip it so ln(u) is always defined.
        return 1.0 - float(self._rng.random())


@dataclass
class ImputationConfig:
    """Configuration for the imputation engine."""

    max_fruit_count: int = 300
    """Cap applied to every generated fruit count"""

    max_leaf_count: int = 50
    """Cap applied to every generated leaf count"""

    min_sampled: int = MIN_SAMPLED_TREES
    """Minimum sampled trees needed before projecting the rest"""


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class ImputationEngine:
    """
    Domain service that fills un-sampled trees from the sampled ones.

    The engine never touches a tree that is already sampled and never
    mutates its input; it returns a new, complete tree sequence.
    """

    def __init__(
        self,
        random_source: Optional[UniformSource] = None,
        config: Optional[ImputationConfig] = None,
    ):
        """
        Initialize the engine.

        Args:
            random_source: Uniform generator; seeded sources make runs repeatable
            config: Caps and preconditions (defaults to the standard round)
        """
        self.random_source = random_source or NumpyUniformSource()
        self.config = config or ImputationConfig()

    def normal(self, mean: float, std: float) -> float:
        """Draw from N(mean, std) with the Box-Muller transform."""
        u = self.random_source.uniform()
        v = self.random_source.uniform()
        z = math.sqrt(-2.0 * math.log(u)) * math.cos(2.0 * math.pi * v)
        return mean + z * std

    def pick(self, observations: Sequence):
        """Uniform pick from raw observations, i.e. weighted by frequency."""
        index = int(self.random_source.uniform() * len(observations))
        return observations[min(index, len(observations) - 1)]

    def _cap(self, field_name: str) -> int:
        if field_name in FRUIT_FIELDS:
            return self.config.max_fruit_count
        return self.config.max_leaf_count

    def generate_tree(self, tree_id: int, statistics: ColumnStatistics) -> TreeSample:
        """
        Synthesize one tree from the column statistics.

        Args:
            tree_id: Site number of the tree being filled
            statistics: Distribution of the sampled subset

        Returns:
            New sampled TreeSample satisfying all sub-count bounds
        """
        values = {}
        for name in NUMERIC_FIELDS:
            column = statistics.numeric[name]
            drawn = round_half_up(self.normal(column.mean, column.std))
            values[name] = min(max(drawn, 0), self._cap(name))

        for sub_count, total in SUB_COUNT_PAIRS:
            values[sub_count] = min(values[sub_count], values[total])

        return TreeSample(
            id=tree_id,
            rust_severity_grade=self.pick(statistics.rust_severity_grades),
            nutrient_deficiency_code=NutrientDeficiency(
                self.pick(statistics.nutrient_deficiency_codes)
            ),
            sampled=True,
            **values,
        )

    def impute(self, trees: Sequence[TreeSample]) -> tuple[TreeSample, ...]:
        """
        Fill every un-sampled tree in the sequence.

        Args:
            trees: Full tree sequence of an evaluation

        Returns:
            New tuple of the same length with every tree sampled

        Raises:
            InsufficientSampleError: If fewer than ``min_sampled`` trees are sampled
        """
        pending = [t.id for t in trees if not t.is_sampled]
        if not pending:
            logger.info("No un-sampled trees, nothing to impute")
            return tuple(trees)

        statistics = compute_column_statistics(trees, self.config.min_sampled)
        logger.info(f"Imputing {len(pending)} trees from {statistics.sample_size} sampled")

        result = tuple(
            tree if tree.is_sampled else self.generate_tree(tree.id, statistics)
            for tree in trees
        )

        logger.debug(f"Imputed tree ids: {pending}")
        return result
