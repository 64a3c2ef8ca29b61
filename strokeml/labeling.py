"""
Heuristic shape labeling for unlabeled captures.

Scores a stroke's circularity, rectangularity and linearity and picks a
label from fixed thresholds. Used to pre-label raw strokes imported into the
sample store; the trained classifier replaces it for everything else.
"""

import numpy as np

from .normalizer import normalize
from .schema import Stroke, ShapeLabel, X, Y

CIRCULARITY_THRESHOLD = 0.7
RECTANGULARITY_THRESHOLD = 0.7
LINEARITY_THRESHOLD = 0.8
EDGE_TOLERANCE = 0.05        # unit-box units
MIN_RECT_ASPECT = 0.1        # thinner boxes are treated as lines


def circularity(points: np.ndarray) -> float:
    """1 - (std of centroid distance / mean distance), floored at 0."""
    if len(points) <= 3:
        return 0.0
    xy = points[:, [X, Y]]
    distances = np.linalg.norm(xy - xy.mean(axis=0), axis=1)
    mean = distances.mean()
    if mean <= 0:
        return 0.0
    return float(max(0.0, 1.0 - distances.std() / mean))


def rectangularity(points: np.ndarray, tolerance: float = EDGE_TOLERANCE) -> float:
    """Fraction of points within `tolerance` of a bounding-box edge."""
    if len(points) <= 4:
        return 0.0
    x, y = points[:, X], points[:, Y]
    width, height = np.ptp(x), np.ptp(y)
    if max(width, height) <= 0 or min(width, height) / max(width, height) < MIN_RECT_ASPECT:
        return 0.0
    near = ((np.abs(x - x.min()) < tolerance) | (np.abs(x - x.max()) < tolerance) |
            (np.abs(y - y.min()) < tolerance) | (np.abs(y - y.max()) < tolerance))
    return float(near.mean())


def linearity(points: np.ndarray) -> float:
    """1 - mean distance from the endpoint chord / (10% of chord length)."""
    if len(points) <= 2:
        return 0.0
    start, end = points[0, [X, Y]], points[-1, [X, Y]]
    chord = end - start
    length = float(np.hypot(*chord))
    if length == 0:
        return 0.0
    rel = points[:, [X, Y]] - start
    deviation = np.abs(chord[0] * rel[:, 1] - chord[1] * rel[:, 0]) / length
    return float(max(0.0, 1.0 - deviation.mean() / (length * 0.1)))


def label_stroke(stroke: Stroke) -> ShapeLabel:
    """
    Heuristic label: circle, rectangle, line, otherwise curve.

    Scores are computed in the unit box. Rectangularity checks the box's
    aspect ratio on the original canvas size, since normalization stretches
    a flat line to full width.
    """
    norm = normalize(stroke)
    bbox = norm.original_bbox
    points = norm.points

    if circularity(points) > CIRCULARITY_THRESHOLD:
        return ShapeLabel.CIRCLE
    long_side = max(bbox.width, bbox.height)
    if long_side > 0 and min(bbox.width, bbox.height) / long_side >= MIN_RECT_ASPECT:
        if rectangularity(points) > RECTANGULARITY_THRESHOLD:
            return ShapeLabel.RECTANGLE
    if linearity(points) > LINEARITY_THRESHOLD:
        return ShapeLabel.LINE
    return ShapeLabel.CURVE
