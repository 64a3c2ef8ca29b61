"""
Feature Extraction for Stroke Classification

Converts a stroke into a fixed-length numeric vector. Three feature modes
are supported:

    summary   - FEATURE_NAMES statistics (geometry, timing, pressure, shape)
    points    - stroke resampled to N points, flattened to [x, y, pressure] * N
    combined  - summary followed by points

Undefined quantities (aspect ratio of a flat stroke, compactness of a
zero-area stroke, speed over a zero time step) are reported as 0.0 so a
feature vector never contains NaN or inf.
"""

import asyncio
import logging
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .normalizer import complexity, resample, segment_lengths
from .schema import Stroke, NormalizedStroke, BoundingBox, X, Y, T, P, DEFAULT_RESAMPLE_POINTS

logger = logging.getLogger(__name__)

FEATURE_NAMES = [
    # Geometry (canvas-space size for normalized strokes)
    'length', 'width', 'height', 'aspect_ratio', 'complexity',
    # Timing
    'duration', 'mean_speed', 'speed_std',
    # Pressure
    'pressure_mean', 'pressure_std', 'pressure_range',
    # Shape (point-space bounding box)
    'bbox_width', 'bbox_height', 'bbox_aspect', 'centroid_x', 'centroid_y', 'compactness',
    # Extras
    'point_count', 'straightness',
]
NUM_FEATURES = len(FEATURE_NAMES)

EPS = 1e-9


def _ratio(num: float, den: float) -> float:
    return float(num / den) if abs(den) > EPS else 0.0


def segment_speeds(points: np.ndarray) -> np.ndarray:
    """Per-segment speed distance/dt, skipping segments with dt <= 0."""
    if len(points) < 2:
        return np.zeros(0)
    dt = np.diff(points[:, T])
    dist = segment_lengths(points)
    valid = dt > 0
    return dist[valid] / dt[valid]


def shoelace_area(points: np.ndarray) -> float:
    """Area of the closed polygon through the points (absolute value)."""
    if len(points) < 3:
        return 0.0
    x, y = points[:, X], points[:, Y]
    return float(0.5 * abs(np.dot(x, np.roll(y, -1)) - np.dot(y, np.roll(x, -1))))


def closed_perimeter(points: np.ndarray) -> float:
    if len(points) < 2:
        return 0.0
    closing = np.hypot(points[-1, X] - points[0, X], points[-1, Y] - points[0, Y])
    return float(segment_lengths(points).sum() + closing)


def featurize(stroke: Stroke) -> np.ndarray:
    """
    Summary feature vector for one stroke.

    Args:
        stroke: Raw or normalized stroke. For a normalized stroke the
            width/height/aspect_ratio features use its original canvas
            bounding box so absolute size survives normalization.

    Returns:
        float64 array of length NUM_FEATURES
    """
    points = stroke.points
    if len(points) == 0:
        return np.zeros(NUM_FEATURES)

    length = float(segment_lengths(points).sum())
    point_box = BoundingBox.from_points(points)
    if isinstance(stroke, NormalizedStroke):
        size_box = stroke.original_bbox
    else:
        size_box = point_box

    speeds = segment_speeds(points)
    pressures = points[:, P]

    area = shoelace_area(points)
    perimeter = closed_perimeter(points)
    endpoint_distance = float(np.hypot(points[-1, X] - points[0, X],
                                       points[-1, Y] - points[0, Y]))

    features = [
        length,
        size_box.width,
        size_box.height,
        _ratio(size_box.width, size_box.height),
        complexity(points),

        stroke.duration,
        float(speeds.mean()) if len(speeds) else 0.0,
        float(speeds.std()) if len(speeds) else 0.0,

        float(pressures.mean()),
        float(pressures.std()),
        float(pressures.max() - pressures.min()),

        point_box.width,
        point_box.height,
        _ratio(point_box.width, point_box.height),
        float(points[:, X].mean()),
        float(points[:, Y].mean()),
        _ratio(perimeter * perimeter, area),

        float(len(points)),
        _ratio(endpoint_distance, length),
    ]
    return np.nan_to_num(np.array(features, dtype=np.float64),
                         nan=0.0, posinf=0.0, neginf=0.0)


def flatten_points(stroke: Stroke, n: int = DEFAULT_RESAMPLE_POINTS) -> np.ndarray:
    """
    Classifier input of [x, y, pressure] triples, length 3 * n.

    The stroke is resampled by arc length to n points first; an empty stroke
    gives all zeros.
    """
    out = np.zeros(3 * n)
    if len(stroke) == 0:
        return out
    points = resample(stroke.points, n)
    flat = points[:, [X, Y, P]].reshape(-1)
    out[:len(flat)] = flat
    return out


def feature_length(mode: str, n: int = DEFAULT_RESAMPLE_POINTS) -> int:
    if mode == 'summary':
        return NUM_FEATURES
    if mode == 'points':
        return 3 * n
    if mode == 'combined':
        return NUM_FEATURES + 3 * n
    raise ValueError(f"Unknown feature mode: {mode}")


def extract(stroke: Stroke, mode: str = 'summary',
            n: int = DEFAULT_RESAMPLE_POINTS) -> np.ndarray:
    """Feature vector for one stroke in the given mode."""
    if mode == 'summary':
        return featurize(stroke)
    if mode == 'points':
        return flatten_points(stroke, n)
    if mode == 'combined':
        return np.concatenate([featurize(stroke), flatten_points(stroke, n)])
    raise ValueError(f"Unknown feature mode: {mode}")


# =============================================================================
# FEATURE CACHE
# =============================================================================

class FeatureCache:
    """
    Memoizes feature vectors by (stroke_id, mode, n).

    Constructed and owned by whoever runs a training pipeline; there is no
    shared module-level cache.
    """

    def __init__(self):
        self._store: Dict[Tuple[str, str, int], np.ndarray] = {}
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._store)

    def get(self, stroke: Stroke, mode: str, n: int) -> Optional[np.ndarray]:
        vec = self._store.get((stroke.stroke_id, mode, n))
        if vec is None:
            self.misses += 1
        else:
            self.hits += 1
        return vec

    def put(self, stroke: Stroke, mode: str, n: int, vector: np.ndarray):
        self._store[(stroke.stroke_id, mode, n)] = vector

    def clear(self):
        self._store.clear()
        self.hits = 0
        self.misses = 0


def _extract_cached(stroke: Stroke, mode: str, n: int,
                    cache: Optional[FeatureCache]) -> np.ndarray:
    if cache is None:
        return extract(stroke, mode, n)
    vec = cache.get(stroke, mode, n)
    if vec is None:
        vec = extract(stroke, mode, n)
        cache.put(stroke, mode, n, vec)
    return vec


def build_feature_matrix(
    strokes: Sequence[Stroke],
    mode: str = 'summary',
    n: int = DEFAULT_RESAMPLE_POINTS,
    cache: Optional[FeatureCache] = None
) -> np.ndarray:
    """Stack feature vectors into an (len(strokes), feature_length) matrix."""
    if not strokes:
        return np.zeros((0, feature_length(mode, n)))
    return np.vstack([_extract_cached(s, mode, n, cache) for s in strokes])


async def featurize_many(
    strokes: Sequence[Stroke],
    mode: str = 'summary',
    n: int = DEFAULT_RESAMPLE_POINTS,
    cache: Optional[FeatureCache] = None
) -> np.ndarray:
    """
    Extract features for every stroke concurrently and stack the results.

    Each extraction runs in a worker thread; the matrix is assembled only
    after every extraction has finished, in input order.
    """
    if not strokes:
        return np.zeros((0, feature_length(mode, n)))
    vectors: List[np.ndarray] = await asyncio.gather(*[
        asyncio.to_thread(_extract_cached, s, mode, n, cache) for s in strokes
    ])
    return np.vstack(vectors)
