"""
Domain service: Plot-level aggregation of tree samples.

Sums the count columns over a tree sequence, derives the bore infestation
and rust incidence rates and maps each rate to a risk level. Nothing here
raises on an empty or all-zero plot: a zero denominator yields a rate of 0.
"""
import math
import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from app.domain.models import (
    AggregateSummary,
    RiskLevel,
    TreeSample,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RiskThresholds:
    """Lower bounds (percent) of the moderate and severe buckets."""

    infestation_moderate: float = 2.0
    infestation_severe: float = 5.0
    rust_moderate: float = 5.0
    rust_severe: float = 10.0

    def __post_init__(self):
        if not 0 <= self.infestation_moderate < self.infestation_severe:
            raise ValueError("Infestation thresholds must be ordered and non-negative")
        if not 0 <= self.rust_moderate < self.rust_severe:
            raise ValueError("Rust thresholds must be ordered and non-negative")


DEFAULT_THRESHOLDS = RiskThresholds()


def percentage(part: int, whole: int) -> float:
    """``part / whole * 100``, or 0 when ``whole`` is 0."""
    if whole <= 0:
        return 0.0
    return part * 100 / whole


def _bucket(rate: float, moderate: float, severe: float) -> RiskLevel:
    # Boundary values belong to the higher bucket.
    if rate < moderate:
        return RiskLevel.LOW
    if rate < severe:
        return RiskLevel.MODERATE
    return RiskLevel.SEVERE


def classify_infestation(
    rate: float,
    thresholds: RiskThresholds = DEFAULT_THRESHOLDS,
) -> RiskLevel:
    """Risk level for a bore infestation rate (percent)."""
    return _bucket(rate, thresholds.infestation_moderate, thresholds.infestation_severe)


def classify_rust(
    rate: float,
    thresholds: RiskThresholds = DEFAULT_THRESHOLDS,
) -> RiskLevel:
    """Risk level for a rust incidence rate (percent)."""
    return _bucket(rate, thresholds.rust_moderate, thresholds.rust_severe)


def fruit_totals(trees: Sequence[TreeSample]) -> Tuple[int, int]:
    """(all fruits, bored fruits), tree and ground combined."""
    total = sum(t.fruits_on_tree + t.fruits_on_ground for t in trees)
    bored = sum(t.bored_fruits_on_tree + t.bored_fruits_on_ground for t in trees)
    return total, bored


def leaf_totals(trees: Sequence[TreeSample]) -> Tuple[int, int]:
    """(all leaves, rusted leaves)."""
    return sum(t.total_leaves for t in trees), sum(t.rusted_leaves for t in trees)


def infestation_rate(trees: Sequence[TreeSample]) -> float:
    total, bored = fruit_totals(trees)
    return percentage(bored, total)


def rust_incidence_rate(trees: Sequence[TreeSample]) -> float:
    leaves, rusted = leaf_totals(trees)
    return percentage(rusted, leaves)


def progress_percent(sampled_count: int, tree_count: int) -> int:
    """Share of sites evaluated, rounded half up to a whole percent."""
    if tree_count <= 0:
        return 0
    return int(math.floor(sampled_count * 100 / tree_count + 0.5))


def aggregate(
    trees: Sequence[TreeSample],
    tree_count: Optional[int] = None,
    thresholds: RiskThresholds = DEFAULT_THRESHOLDS,
) -> AggregateSummary:
    """
    Aggregate a tree sequence into totals, rates and risk levels.

    Args:
        trees: Tree samples of one evaluation
        tree_count: Sites in the round (N); defaults to ``len(trees)``
        thresholds: Risk bucket boundaries

    Returns:
        AggregateSummary for the sequence
    """
    n = len(trees) if tree_count is None else tree_count

    total_fruits, total_bored = fruit_totals(trees)
    total_leaves, total_rusted = leaf_totals(trees)
    sampled_count = sum(1 for t in trees if t.is_sampled)

    bore_rate = percentage(total_bored, total_fruits)
    rust_rate = percentage(total_rusted, total_leaves)

    summary = AggregateSummary(
        total_fruits=total_fruits,
        total_bored_fruits=total_bored,
        infestation_rate=bore_rate,
        total_leaves_sampled=total_leaves,
        total_rusted_leaves=total_rusted,
        rust_incidence_rate=rust_rate,
        sampled_count=sampled_count,
        progress_percent=progress_percent(sampled_count, n),
        infestation_risk=classify_infestation(bore_rate, thresholds),
        rust_risk=classify_rust(rust_rate, thresholds),
    )

    logger.debug(f"Aggregated {sampled_count}/{n} sampled trees: "
                 f"infestation={bore_rate:.2f}%, rust={rust_rate:.2f}%")
    return summary


def estimate_economic_loss(
    harvest_estimate: float,
    price_per_unit: float,
    infestation_rate: float,
) -> float:
    """
    Value lost to bore damage, treating infested fruit as a total loss.

    Args:
        harvest_estimate: Expected harvest in the unit the price is quoted in
        price_per_unit: Price per kilo (or per carga)
        infestation_rate: Bore infestation rate in percent

    Returns:
        Estimated loss in the price's currency
    """
    if harvest_estimate < 0 or price_per_unit < 0:
        raise ValueError("Harvest estimate and price must be non-negative")
    return harvest_estimate * price_per_unit * infestation_rate / 100
