"""
strokeml error taxonomy.

Per-sample errors (EmptyStrokeError, QualityCheckFailedError) are caught by
the orchestrators, counted and the sample dropped. Stage errors propagate and
fail only the current run.
"""

from typing import List, Optional


class StrokeMLError(Exception):
    """Base class for pipeline errors."""


class EmptyStrokeError(StrokeMLError):
    """Stroke has no points."""


class QualityCheckFailedError(StrokeMLError):
    """Stroke rejected by the data quality validator."""

    def __init__(self, reasons: List[str], stroke_id: Optional[str] = None):
        self.reasons = list(reasons)
        self.stroke_id = stroke_id
        super().__init__(f"Quality check failed ({stroke_id}): {', '.join(self.reasons)}")


class ConsentRequiredError(StrokeMLError):
    """Data-collection consent has not been granted. Re-request consent."""


class InsufficientDataError(StrokeMLError):
    """Not enough samples to train."""

    def __init__(self, available: int, required: int):
        self.available = available
        self.required = required
        super().__init__(f"Insufficient training data: {available} samples, need {required}")


class TrainingFailedError(StrokeMLError):
    """The training routine raised or produced no usable model."""


class PredictionFailedError(StrokeMLError):
    """A trained model could not produce a prediction."""


class MissingTestResultsError(StrokeMLError):
    """Deployment recommendation requested without evaluation results."""


class PipelineBusyError(StrokeMLError):
    """A run is already in progress on this orchestrator."""


class ConfigError(StrokeMLError, ValueError):
    """Invalid pipeline configuration."""
