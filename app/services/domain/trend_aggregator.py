"""
Domain service: Rate history of a plot across completed evaluations.
"""
import logging
from typing import Iterable

from app.domain.exceptions import InsufficientHistoryError
from app.domain.models import Evaluation, PlotHistory, TrendPoint
from app.services.domain.aggregation_engine import (
    infestation_rate,
    rust_incidence_rate,
)

logger = logging.getLogger(__name__)

MIN_TREND_POINTS = 2


def plot_key(plot_name: str) -> str:
    """Plot names match case-insensitively, ignoring surrounding blanks."""
    return plot_name.strip().lower()


def build_plot_history(
    evaluations: Iterable[Evaluation],
    plot_name: str,
) -> PlotHistory:
    """
    Build the ascending rate series of all completed visits to a plot.

    Args:
        evaluations: Evaluations to search (any plot, any status)
        plot_name: Plot to build the history for

    Returns:
        PlotHistory with points ordered by visit date

    Raises:
        InsufficientHistoryError: If fewer than two completed visits match
    """
    key = plot_key(plot_name)
    points = [
        TrendPoint(
            evaluation_id=evaluation.id,
            visit_date=evaluation.visit_date,
            infestation_rate=infestation_rate(evaluation.trees),
            rust_incidence_rate=rust_incidence_rate(evaluation.trees),
        )
        for evaluation in evaluations
        if evaluation.is_completed and plot_key(evaluation.plot_name) == key
    ]

    if len(points) < MIN_TREND_POINTS:
        raise InsufficientHistoryError(plot_name.strip(), len(points))

    points.sort(key=lambda p: p.visit_date)
    logger.info(f"Built history for plot '{plot_name.strip()}' with {len(points)} points")

    return PlotHistory(plot_name=plot_name.strip(), points=points)
