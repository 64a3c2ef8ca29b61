"""
Data Augmentation Engine

Multiplies a normalized stroke into perturbed variants for training
diversity. Every transform keeps the point count of its input.

Usage:
    engine = AugmentationEngine(rng=np.random.default_rng(42))
    rotated = engine.augment(stroke, AugmentationKind.ROTATION)
    variants = engine.augment_sample(sample, multiplier=3)
"""

import logging
from typing import List, Optional

import numpy as np

from .schema import (
    NormalizedStroke, LabeledSample, AugmentationKind, SampleSource,
    X, Y, T
)

logger = logging.getLogger(__name__)

# Parameter ranges, sampled uniformly
ROTATION_RANGE = (-0.3, 0.3)          # radians
SCALE_RANGE = (0.8, 1.2)
TRANSLATION_RANGE = (-0.1, 0.1)       # unit-box units, per axis
NOISE_INTENSITY_RANGE = (0.01, 0.05)
TIME_WARP_RANGE = (0.8, 1.2)

# Rotation and scaling pivot on the centre of the unit box
PIVOT = np.array([0.5, 0.5])


class AugmentationEngine:
    """
    Geometric and temporal perturbations of normalized strokes.

    Args:
        rng: numpy Generator supplying all randomness. Pass a seeded
            generator for reproducible augmentation.
    """

    def __init__(self, rng: Optional[np.random.Generator] = None):
        self.rng = rng if rng is not None else np.random.default_rng()

    # -------------------------------------------------------------------------
    # Individual transforms
    # -------------------------------------------------------------------------

    def rotate(self, stroke: NormalizedStroke, angle: float) -> NormalizedStroke:
        c, s = np.cos(angle), np.sin(angle)
        rotation = np.array([[c, -s], [s, c]])
        points = stroke.points.copy()
        xy = points[:, [X, Y]] - PIVOT
        points[:, [X, Y]] = xy @ rotation.T + PIVOT
        return stroke.with_points(points, new_id=True)

    def scale(self, stroke: NormalizedStroke, factor: float) -> NormalizedStroke:
        points = stroke.points.copy()
        points[:, [X, Y]] = (points[:, [X, Y]] - PIVOT) * factor + PIVOT
        return stroke.with_points(points, new_id=True)

    def translate(self, stroke: NormalizedStroke, dx: float, dy: float) -> NormalizedStroke:
        points = stroke.points.copy()
        points[:, X] += dx
        points[:, Y] += dy
        return stroke.with_points(points, new_id=True)

    def add_noise(self, stroke: NormalizedStroke, intensity: float) -> NormalizedStroke:
        points = stroke.points.copy()
        jitter = self.rng.uniform(-intensity, intensity, size=(len(points), 2))
        points[:, [X, Y]] += jitter
        return stroke.with_points(points, new_id=True)

    def time_warp(self, stroke: NormalizedStroke, factor: float) -> NormalizedStroke:
        points = stroke.points.copy()
        points[:, T] *= factor
        return stroke.with_points(points, duration=stroke.duration * factor, new_id=True)

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    def augment(self, stroke: NormalizedStroke, kind: AugmentationKind) -> NormalizedStroke:
        """
        Apply one randomly parameterised transform of the given kind.

        Args:
            stroke: Normalized input stroke
            kind: Which perturbation to apply

        Returns:
            A new NormalizedStroke (fresh id) with the same point count
        """
        kind = AugmentationKind(kind)
        if kind is AugmentationKind.ROTATION:
            return self.rotate(stroke, self.rng.uniform(*ROTATION_RANGE))
        if kind is AugmentationKind.SCALING:
            return self.scale(stroke, self.rng.uniform(*SCALE_RANGE))
        if kind is AugmentationKind.TRANSLATION:
            dx, dy = self.rng.uniform(*TRANSLATION_RANGE, size=2)
            return self.translate(stroke, dx, dy)
        if kind is AugmentationKind.NOISE:
            return self.add_noise(stroke, self.rng.uniform(*NOISE_INTENSITY_RANGE))
        if kind is AugmentationKind.TIME_WARP:
            return self.time_warp(stroke, self.rng.uniform(*TIME_WARP_RANGE))
        raise ValueError(f"Unhandled augmentation kind: {kind}")

    def augment_sample(self, sample: LabeledSample, multiplier: int) -> List[LabeledSample]:
        """
        Produce `multiplier` variants of a sample, cycling through the kinds.

        Each variant is tagged with source=augmented, its augmentation kind
        and its index among the variants.
        """
        kinds = list(AugmentationKind)
        variants = []
        for i in range(multiplier):
            kind = kinds[i % len(kinds)]
            stroke = self.augment(sample.stroke, kind)
            variants.append(sample.derive(
                stroke,
                source=SampleSource.AUGMENTED.value,
                augmentation_kind=kind.value,
                augmentation_index=i,
                parent_id=sample.stroke.stroke_id
            ))
        return variants

    def augment_corpus(self, samples: List[LabeledSample], multiplier: int) -> List[LabeledSample]:
        """Originals followed by their augmented variants."""
        augmented = []
        for sample in samples:
            augmented.extend(self.augment_sample(sample, multiplier))
        logger.info("Augmented %d samples into %d variants (x%d)",
                    len(samples), len(augmented), multiplier)
        return list(samples) + augmented
