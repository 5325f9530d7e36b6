"""
Domain service: Per-column distribution of the sampled trees.

Numeric count columns are reduced to mean and population standard deviation
(divide by n). Categorical columns keep their raw observations so that a
uniform pick from the list reproduces the observed frequencies.
"""
import logging
from typing import Sequence
import numpy as np

from app.domain.exceptions import InsufficientSampleError
from app.domain.models import (
    NUMERIC_FIELDS,
    ColumnStatistics,
    FieldStatistics,
    TreeSample,
)

logger = logging.getLogger(__name__)

MIN_SAMPLED_TREES = 2


def sampled_subset(trees: Sequence[TreeSample]) -> list[TreeSample]:
    """Trees that were evaluated in the field."""
    return [t for t in trees if t.is_sampled]


def compute_column_statistics(
    trees: Sequence[TreeSample],
    min_sampled: int = MIN_SAMPLED_TREES,
) -> ColumnStatistics:
    """
    Compute the distribution of every column over the sampled subset.

    Args:
        trees: Full tree sequence of an evaluation
        min_sampled: Minimum sampled trees required

    Returns:
        ColumnStatistics for the sampled subset

    Raises:
        InsufficientSampleError: If fewer than ``min_sampled`` trees are sampled
    """
    source = sampled_subset(trees)
    if len(source) < max(min_sampled, MIN_SAMPLED_TREES):
        raise InsufficientSampleError(len(source), max(min_sampled, MIN_SAMPLED_TREES))

    numeric = {}
    for name in NUMERIC_FIELDS:
        values = np.array([getattr(t, name) for t in source], dtype=float)
        numeric[name] = FieldStatistics(
            mean=float(values.mean()),
            std=float(values.std(ddof=0)),
        )
        logger.debug(f"{name}: mean={numeric[name].mean:.2f}, std={numeric[name].std:.2f}")

    return ColumnStatistics(
        sample_size=len(source),
        numeric=numeric,
        rust_severity_grades=[t.rust_severity_grade for t in source],
        nutrient_deficiency_codes=[t.nutrient_deficiency_code for t in source],
    )
