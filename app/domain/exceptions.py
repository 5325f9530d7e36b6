"""
Domain exceptions.
"""


class SamplingError(Exception):
    """Base class for all sampling domain errors."""
    pass


class InsufficientSampleError(SamplingError):
    """Raised when too few trees are sampled to compute column statistics."""

    def __init__(self, sampled_count: int, required: int = 2):
        self.sampled_count = sampled_count
        self.required = required
        super().__init__(
            f"Need at least {required} sampled trees to project the rest, "
            f"found {sampled_count}"
        )


class InsufficientHistoryError(SamplingError):
    """Raised when a plot has fewer than two completed evaluations."""

    def __init__(self, plot_name: str, point_count: int):
        self.plot_name = plot_name
        self.point_count = point_count
        super().__init__(
            f"Plot '{plot_name}' has {point_count} completed evaluation(s); "
            f"at least 2 are needed for a trend"
        )


class EvaluationNotFoundError(SamplingError):
    """Raised when an evaluation id is not in the store."""

    def __init__(self, evaluation_id: str):
        self.evaluation_id = evaluation_id
        super().__init__(f"Evaluation '{evaluation_id}' not found")


class EvaluationStateError(SamplingError):
    """Raised when an operation does not fit the evaluation's lifecycle state."""
    pass


class StorageError(SamplingError):
    """Raised when the evaluation store cannot be read or written."""
    pass
