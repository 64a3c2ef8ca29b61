"""
Synthetic Stroke Generator

Procedurally draws each shape label on a 224x224 canvas, then degrades the
ideal geometry with hand tremor, uneven drawing speed and pressure
variation, so synthetic samples look like real hand-drawn input rather than
perfect vector shapes.

Usage:
    from strokeml.simulation import SyntheticStrokeGenerator

    gen = SyntheticStrokeGenerator(seed=42)
    stroke = gen.generate(ShapeLabel.CIRCLE, variation=7)
    samples = gen.generate_samples(ShapeLabel.OVAL, count=100)
"""

import logging
from typing import List, Optional

import numpy as np

from ..schema import (
    RawStroke, LabeledSample, ShapeLabel, SampleSource,
    CANVAS_SIZE, X, Y, T, P
)

logger = logging.getLogger(__name__)

CENTER = CANVAS_SIZE / 2          # 112
SECONDS_PER_POINT = 0.05

# Imperfection ranges applied after the ideal shape is drawn
TREMOR_RANGE = (-2.0, 2.0)
SPEED_FACTOR_RANGE = (0.8, 1.2)
PRESSURE_FACTOR_RANGE = (0.6, 1.0)


def _label_index(label: ShapeLabel) -> int:
    return list(ShapeLabel).index(label)


def _polyline(corners: np.ndarray, count: int, closed: bool = True) -> np.ndarray:
    """
    Evenly interpolate points along the edges between corners.

    Returns (count, 2) xy positions. Each edge receives count // n_edges
    points, the remainder going to the first edges.
    """
    n_edges = len(corners) if closed else len(corners) - 1
    per_edge = np.full(n_edges, count // n_edges)
    per_edge[:count % n_edges] += 1

    segments = []
    for edge, n in enumerate(per_edge):
        start = corners[edge]
        end = corners[(edge + 1) % len(corners)]
        t = np.arange(n) / n
        segments.append(start + t[:, None] * (end - start))
    return np.concatenate(segments)


class SyntheticStrokeGenerator:
    """
    Generates human-like strokes for every ShapeLabel.

    Each call to generate() seeds its own RNG from (seed, label, variation),
    so the same variation index always reproduces the same stroke and
    different indices give a diverse family.

    Args:
        seed: Base seed for the whole generator (default 0)
    """

    def __init__(self, seed: Optional[int] = None):
        self.seed = 0 if seed is None else int(seed)

    def _rng(self, label: ShapeLabel, variation: int) -> np.random.Generator:
        return np.random.default_rng([self.seed, _label_index(label), int(variation)])

    # -------------------------------------------------------------------------
    # Ideal shapes: each returns (xy, pressure)
    # -------------------------------------------------------------------------

    def _circle(self, rng, count: int, v: int):
        radius = 60.0 + v % 20
        angles = 2 * np.pi * np.arange(count) / count + rng.uniform(-0.1, 0.1, count)
        radii = radius + rng.uniform(-5, 5, count)
        xy = np.column_stack([CENTER + radii * np.cos(angles),
                              CENTER + radii * np.sin(angles)])
        return xy, rng.uniform(0.3, 0.9, count)

    def _rectangle(self, rng, count: int, v: int):
        w = 80.0 + v % 20
        h = 60.0 + v % 15
        corners = np.array([
            [CENTER - w / 2, CENTER - h / 2],
            [CENTER + w / 2, CENTER - h / 2],
            [CENTER + w / 2, CENTER + h / 2],
            [CENTER - w / 2, CENTER + h / 2],
        ])
        xy = _polyline(corners, count) + rng.uniform(-2, 2, (count, 1))
        return xy, rng.uniform(0.4, 0.8, count)

    def _line(self, rng, count: int, v: int):
        start = np.array([50.0 + v % 20, CENTER + rng.uniform(-20, 20)])
        end = np.array([174.0 - v % 20, CENTER + v % 20 - 10 + rng.uniform(-20, 20)])
        t = np.linspace(0.0, 1.0, count)
        xy = start + t[:, None] * (end - start)
        xy[:, 1] += rng.uniform(-3, 3, count)           # wobble
        return xy, rng.uniform(0.3, 0.7, count)

    def _oval(self, rng, count: int, v: int):
        rx = 70.0 + v % 15
        ry = 45.0 + v % 10
        angles = 2 * np.pi * np.arange(count) / count
        xy = np.column_stack([
            CENTER + (rx + rng.uniform(-3, 3, count)) * np.cos(angles),
            CENTER + (ry + rng.uniform(-3, 3, count)) * np.sin(angles),
        ])
        return xy, rng.uniform(0.3, 0.9, count)

    def _curve(self, rng, count: int, v: int):
        # Cubic Bezier
        p0 = np.array([50.0 + v % 20, CENTER])
        p1 = np.array([CENTER / 3 + v % 20, CENTER / 3 + v % 20])
        p2 = np.array([2 * CENTER / 3 - v % 20, 2 * CENTER / 3 - v % 20])
        p3 = np.array([174.0 - v % 20, CENTER + v % 30 - 15])
        t = np.linspace(0.0, 1.0, count)[:, None]
        u = 1.0 - t
        xy = u ** 3 * p0 + 3 * u ** 2 * t * p1 + 3 * u * t ** 2 * p2 + t ** 3 * p3
        xy = xy + rng.uniform(-1.5, 1.5, (count, 1))
        return xy, rng.uniform(0.4, 0.8, count)

    def _polygon(self, rng, count: int, v: int):
        sides = 5 + v % 3
        radius = 60.0 + v % 20
        angles = 2 * np.pi * np.arange(sides) / sides + rng.uniform(-0.1, 0.1, sides)
        radii = radius + rng.uniform(-5, 5, sides)
        corners = np.column_stack([CENTER + radii * np.cos(angles),
                                   CENTER + radii * np.sin(angles)])
        return _polyline(corners, count), rng.uniform(0.3, 0.8, count)

    def ideal_shape(self, rng: np.random.Generator, label: ShapeLabel,
                    count: int, variation: int):
        """Dispatch to the per-label construction. Returns (xy, pressure)."""
        label = ShapeLabel(label)
        if label is ShapeLabel.CIRCLE:
            return self._circle(rng, count, variation)
        if label is ShapeLabel.RECTANGLE:
            return self._rectangle(rng, count, variation)
        if label is ShapeLabel.LINE:
            return self._line(rng, count, variation)
        if label is ShapeLabel.OVAL:
            return self._oval(rng, count, variation)
        if label is ShapeLabel.CURVE:
            return self._curve(rng, count, variation)
        if label is ShapeLabel.POLYGON:
            return self._polygon(rng, count, variation)
        raise ValueError(f"Unhandled shape label: {label}")

    # -------------------------------------------------------------------------
    # Imperfections
    # -------------------------------------------------------------------------

    @staticmethod
    def degrade(rng: np.random.Generator, points: np.ndarray) -> np.ndarray:
        """
        Add tremor, uneven speed and pressure variation to an ideal stroke.

        Speed variation scales each inter-sample interval, so timestamps
        stay non-decreasing.
        """
        points = points.copy()
        n = len(points)
        points[:, [X, Y]] += rng.uniform(*TREMOR_RANGE, size=(n, 2))

        intervals = np.diff(points[:, T], prepend=points[0, T])
        intervals *= rng.uniform(*SPEED_FACTOR_RANGE, size=n)
        points[:, T] = points[0, T] + np.cumsum(intervals)

        points[:, P] *= rng.uniform(*PRESSURE_FACTOR_RANGE, size=n)
        return points

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def generate(self, label: ShapeLabel, variation: int = 0) -> RawStroke:
        """
        Generate one human-like stroke.

        Args:
            label: Shape to draw
            variation: Family index; controls size, point count (50-69)
                and the RNG stream

        Returns:
            RawStroke in canvas coordinates
        """
        label = ShapeLabel(label)
        rng = self._rng(label, variation)
        count = 50 + variation % 20

        xy, pressure = self.ideal_shape(rng, label, count, variation)
        points = np.column_stack([
            xy,
            np.arange(count) * SECONDS_PER_POINT,
            pressure
        ])
        points = self.degrade(rng, points)
        return RawStroke(points=points)

    def generate_samples(
        self,
        label: ShapeLabel,
        count: int,
        start_variation: int = 0
    ) -> List[LabeledSample]:
        """Generate `count` labeled synthetic samples for one label."""
        label = ShapeLabel(label)
        samples = []
        for v in range(start_variation, start_variation + count):
            samples.append(LabeledSample(
                stroke=self.generate(label, v),
                label=label,
                metadata={'source': SampleSource.SYNTHETIC.value, 'variation': v}
            ))
        logger.debug("Generated %d synthetic %s samples", count, label.value)
        return samples
