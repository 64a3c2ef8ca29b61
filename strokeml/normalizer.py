"""
Stroke Normalizer and Data Quality Validator

Maps raw canvas strokes into the unit square and resamples them to a fixed
number of points spaced evenly along the path (arc-length resampling), so
every normalized stroke of a configuration has the same point count.

The quality validator rejects degenerate captures (too short, static, dragged
with constant pressure, or with no curvature) before they reach training.
"""

import logging
from typing import List, Optional

import numpy as np

from .config import PipelineConfig
from .errors import EmptyStrokeError, QualityCheckFailedError
from .schema import (
    Stroke, NormalizedStroke, BoundingBox,
    X, Y, DEFAULT_RESAMPLE_POINTS
)

logger = logging.getLogger(__name__)


# =============================================================================
# GEOMETRY HELPERS
# =============================================================================

def segment_lengths(points: np.ndarray) -> np.ndarray:
    """Euclidean length of each consecutive segment, shape (N-1,)."""
    if len(points) < 2:
        return np.zeros(0)
    return np.hypot(np.diff(points[:, X]), np.diff(points[:, Y]))


def path_length(points: np.ndarray) -> float:
    return float(segment_lengths(points).sum())


def turning_angles(points: np.ndarray) -> np.ndarray:
    """
    Absolute change of direction between consecutive segments.

    Each angle is wrapped into [0, pi]: a 350 degree change counts as 10.
    """
    if len(points) < 3:
        return np.zeros(0)
    headings = np.arctan2(np.diff(points[:, Y]), np.diff(points[:, X]))
    change = np.abs(np.diff(headings))
    return np.minimum(change, 2 * np.pi - change)


def complexity(points: np.ndarray) -> float:
    """Mean absolute turning angle (radians). 0 for fewer than 3 points."""
    angles = turning_angles(points)
    return float(angles.mean()) if len(angles) else 0.0


def pressure_std(points: np.ndarray) -> float:
    """Population standard deviation of pressure."""
    if len(points) == 0:
        return 0.0
    return float(np.std(points[:, 3]))


# =============================================================================
# RESAMPLING
# =============================================================================

def resample(points: np.ndarray, target_count: int = DEFAULT_RESAMPLE_POINTS) -> np.ndarray:
    """
    Resample a polyline to target_count points by cumulative arc length.

    All four channels (x, y, timestamp, pressure) are linearly interpolated
    inside the bracketing segment. Targets at or past the total length clamp
    to the last point.

    Args:
        points: (N, 4) point array, N >= 1
        target_count: Number of output points (>= 2)

    Returns:
        (target_count, 4) array
    """
    points = np.asarray(points, dtype=np.float64)
    if len(points) == 0:
        raise EmptyStrokeError("Cannot resample an empty stroke")
    if target_count < 2:
        raise ValueError(f"target_count must be >= 2, got {target_count}")

    if len(points) == 1:
        return np.repeat(points, target_count, axis=0)

    cumulative = np.concatenate([[0.0], np.cumsum(segment_lengths(points))])
    total = cumulative[-1]
    if total <= 0:
        # All samples coincide: nothing to walk along
        return np.repeat(points[:1], target_count, axis=0)

    targets = np.linspace(0.0, total, target_count)

    # Bracketing segment index for each target
    idx = np.searchsorted(cumulative, targets, side='right') - 1
    idx = np.clip(idx, 0, len(points) - 2)

    seg_start = cumulative[idx]
    seg_len = cumulative[idx + 1] - seg_start
    with np.errstate(divide='ignore', invalid='ignore'):
        frac = np.where(seg_len > 0, (targets - seg_start) / seg_len, 0.0)
    frac = np.clip(frac, 0.0, 1.0)

    resampled = points[idx] + frac[:, None] * (points[idx + 1] - points[idx])
    resampled[targets >= total] = points[-1]
    return resampled


def normalize(stroke: Stroke, target_count: int = DEFAULT_RESAMPLE_POINTS) -> NormalizedStroke:
    """
    Rescale a stroke into [0, 1] x [0, 1] and resample it to target_count points.

    A zero width or height is replaced by 1.0 so degenerate axes collapse to 0
    instead of dividing by zero.

    Raises:
        EmptyStrokeError: stroke has no points
    """
    points = stroke.points
    if len(points) == 0:
        raise EmptyStrokeError(f"Stroke {stroke.stroke_id} has no points")

    bbox = BoundingBox.from_points(points)
    scale_x = bbox.width if bbox.width > 0 else 1.0
    scale_y = bbox.height if bbox.height > 0 else 1.0

    scaled = points.copy()
    scaled[:, X] = (points[:, X] - bbox.min_x) / scale_x
    scaled[:, Y] = (points[:, Y] - bbox.min_y) / scale_y

    return NormalizedStroke(
        points=resample(scaled, target_count),
        duration=stroke.duration,
        stroke_id=stroke.stroke_id,
        original_bbox=bbox
    )


# =============================================================================
# DATA QUALITY VALIDATOR
# =============================================================================

# Weights of the quality sub-scores
QUALITY_WEIGHTS = {
    'points': 0.3,
    'duration': 0.2,
    'pressure': 0.3,
    'complexity': 0.2,
}


class StrokeQualityValidator:
    """
    Rejects degenerate strokes and scores the rest.

    A stroke passes when it has at least min_points samples, lasts longer
    than min_duration, shows pressure variation above min_pressure_std and a
    mean turning angle above min_complexity.
    """

    def __init__(
        self,
        min_points: int = 10,
        min_duration: float = 0.1,
        min_pressure_std: float = 0.05,
        min_complexity: float = 0.2
    ):
        self.min_points = min_points
        self.min_duration = min_duration
        self.min_pressure_std = min_pressure_std
        self.min_complexity = min_complexity

    @classmethod
    def from_config(cls, config: PipelineConfig) -> 'StrokeQualityValidator':
        return cls(
            min_points=config.min_points,
            min_duration=config.min_duration,
            min_pressure_std=config.min_pressure_std,
            min_complexity=config.min_complexity
        )

    def failures(self, stroke: Stroke) -> List[str]:
        """Reasons the stroke would be rejected (empty list when it passes)."""
        reasons = []
        n = len(stroke)
        if n < self.min_points:
            reasons.append(f"too few points ({n} < {self.min_points})")
        if stroke.duration <= self.min_duration:
            reasons.append(f"too short ({stroke.duration:.3f}s)")
        p_std = pressure_std(stroke.points)
        if p_std <= self.min_pressure_std:
            reasons.append(f"flat pressure (std {p_std:.3f})")
        c = complexity(stroke.points)
        if c <= self.min_complexity:
            reasons.append(f"low complexity ({c:.3f})")
        return reasons

    def validate(self, stroke: Stroke) -> bool:
        return not self.failures(stroke)

    def check(self, stroke: Stroke):
        """Raise QualityCheckFailedError when the stroke is rejected."""
        reasons = self.failures(stroke)
        if reasons:
            raise QualityCheckFailedError(reasons, stroke_id=stroke.stroke_id)

    @staticmethod
    def sub_scores(stroke: Stroke) -> dict:
        """Individual quality components, each capped at 1.0."""
        return {
            'points': min(len(stroke) / 100.0, 1.0),
            'duration': min(max(stroke.duration, 0.0) / 5.0, 1.0),
            'pressure': min(pressure_std(stroke.points) * 5.0, 1.0),
            'complexity': min(complexity(stroke.points) * 2.0, 1.0),
        }

    def quality_score(self, stroke: Stroke) -> float:
        """Weighted sum of the sub-scores, in [0, 1]."""
        scores = self.sub_scores(stroke)
        return float(sum(QUALITY_WEIGHTS[k] * v for k, v in scores.items()))


def normalize_checked(
    stroke: Stroke,
    validator: Optional[StrokeQualityValidator] = None,
    target_count: int = DEFAULT_RESAMPLE_POINTS
) -> NormalizedStroke:
    """Validate then normalize. Raises QualityCheckFailedError on rejection."""
    if validator is not None:
        validator.check(stroke)
    return normalize(stroke, target_count)
