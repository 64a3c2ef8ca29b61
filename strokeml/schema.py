"""
strokeml Data Schema and Shape Vocabulary

Defines the shape vocabulary, stroke containers and labeled samples shared by
every stage of the retraining pipeline.

Strokes store their samples as an (N, 4) float array with columns
[x, y, timestamp, pressure]. Arrays are made read-only on construction so a
captured stroke cannot be mutated by a later stage.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any, Iterable, Sequence, Tuple

import numpy as np


# Point array layout
X, Y, T, P = 0, 1, 2, 3
POINT_COLUMNS = ('x', 'y', 'timestamp', 'pressure')

# Drawing canvas used by the synthetic and scenario generators (points)
CANVAS_SIZE = 224.0
DEFAULT_RESAMPLE_POINTS = 100


# =============================================================================
# ENUMS - Label Categories
# =============================================================================

class ShapeLabel(str, Enum):
    """Shapes the on-device classifier recognises."""
    CIRCLE = "circle"
    RECTANGLE = "rectangle"
    LINE = "line"
    OVAL = "oval"
    CURVE = "curve"
    POLYGON = "polygon"

    @classmethod
    def names(cls) -> List[str]:
        return [s.value for s in cls]

    @classmethod
    def from_name(cls, name: str) -> 'ShapeLabel':
        return cls(name.lower())


class SampleSource(str, Enum):
    """Where a training sample came from."""
    REAL = "real"
    SYNTHETIC = "synthetic"
    AUGMENTED = "augmented"


class AugmentationKind(str, Enum):
    """Geometric / temporal perturbations applied by the augmentation engine."""
    ROTATION = "rotation"
    SCALING = "scaling"
    TRANSLATION = "translation"
    NOISE = "noise"
    TIME_WARP = "time_warp"


class ScenarioKind(str, Enum):
    """Real-world drawing imperfections used to stress-test a model."""
    SHAKY_LINES = "shaky_lines"                  # hand shake / tremor
    HESITANT_STROKES = "hesitant_strokes"        # irregular timing
    IMPERFECT_CIRCLES = "imperfect_circles"      # imperfect geometry
    CORRECTIVE_OVERDRAWS = "corrective_overdraws"  # correction marks
    VARIABLE_PRESSURE = "variable_pressure"      # pressure variability

    @property
    def display_name(self) -> str:
        return self.value.replace('_', ' ').title()


class TrainingStatus(str, Enum):
    """Model trainer state machine."""
    IDLE = "idle"
    PREPARING = "preparing"
    TRAINING = "training"
    COMPLETED = "completed"
    FAILED = "failed"


class RunStatus(str, Enum):
    """Orchestrator run state."""
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class DeploymentStatus(str, Enum):
    """Integration / deployment state. ROLLED_BACK is terminal."""
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DEPLOYED = "deployed"
    MONITORING = "monitoring"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"


# =============================================================================
# STROKES
# =============================================================================

@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned bounding box in canvas coordinates."""
    min_x: float = 0.0
    min_y: float = 0.0
    width: float = 0.0
    height: float = 0.0

    @property
    def max_x(self) -> float:
        return self.min_x + self.width

    @property
    def max_y(self) -> float:
        return self.min_y + self.height

    @classmethod
    def from_points(cls, points: np.ndarray) -> 'BoundingBox':
        if len(points) == 0:
            return cls()
        min_x, min_y = points[:, X].min(), points[:, Y].min()
        return cls(
            min_x=float(min_x),
            min_y=float(min_y),
            width=float(points[:, X].max() - min_x),
            height=float(points[:, Y].max() - min_y)
        )

    def to_dict(self) -> Dict[str, float]:
        return {"min_x": self.min_x, "min_y": self.min_y,
                "width": self.width, "height": self.height}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'BoundingBox':
        return cls(
            min_x=float(d.get('min_x', 0.0)),
            min_y=float(d.get('min_y', 0.0)),
            width=float(d.get('width', 0.0)),
            height=float(d.get('height', 0.0))
        )


def _as_point_array(points) -> np.ndarray:
    arr = np.array(points, dtype=np.float64)
    if arr.size == 0:
        arr = arr.reshape(0, 4)
    if arr.ndim != 2 or arr.shape[1] != 4:
        raise ValueError(f"Stroke points must have shape (N, 4), got {arr.shape}")
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class Stroke:
    """
    A time-ordered sequence of drawing samples.

    Attributes:
        points: (N, 4) array of [x, y, timestamp, pressure]
        duration: Stroke duration in seconds. Derived from the timestamps
            when not given.
        stroke_id: Opaque identifier, preserved through normalization
    """
    points: np.ndarray
    duration: Optional[float] = None
    stroke_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def __post_init__(self):
        pts = _as_point_array(self.points)
        object.__setattr__(self, 'points', pts)
        if self.duration is None:
            duration = float(pts[-1, T] - pts[0, T]) if len(pts) else 0.0
            object.__setattr__(self, 'duration', duration)
        else:
            object.__setattr__(self, 'duration', float(self.duration))

    def __len__(self) -> int:
        return len(self.points)

    @property
    def xs(self) -> np.ndarray:
        return self.points[:, X]

    @property
    def ys(self) -> np.ndarray:
        return self.points[:, Y]

    @property
    def timestamps(self) -> np.ndarray:
        return self.points[:, T]

    @property
    def pressures(self) -> np.ndarray:
        return self.points[:, P]

    @property
    def bounding_box(self) -> BoundingBox:
        return BoundingBox.from_points(self.points)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stroke_id": self.stroke_id,
            "duration": self.duration,
            "points": self.points.tolist()
        }


@dataclass(frozen=True, eq=False)
class RawStroke(Stroke):
    """Stroke exactly as captured by the canvas."""

    @classmethod
    def from_points(cls, points: Iterable[Sequence[float]],
                    duration: Optional[float] = None) -> 'RawStroke':
        """Build from an iterable of (x, y, timestamp, pressure) tuples."""
        return cls(points=list(points), duration=duration)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'RawStroke':
        kwargs = {"points": d.get('points', []), "duration": d.get('duration')}
        if 'stroke_id' in d:
            kwargs['stroke_id'] = d['stroke_id']
        return cls(**kwargs)


@dataclass(frozen=True, eq=False)
class NormalizedStroke(Stroke):
    """
    Stroke rescaled into the unit box and resampled to a fixed point count.

    original_bbox keeps the canvas-space bounding box the stroke was mapped
    from so geometric size information survives normalization.
    """
    original_bbox: BoundingBox = field(default_factory=BoundingBox)

    def with_points(self, points: np.ndarray,
                    duration: Optional[float] = None,
                    new_id: bool = False) -> 'NormalizedStroke':
        """Copy with new point data, keeping the original bbox (and id unless new_id)."""
        return NormalizedStroke(
            points=points,
            duration=self.duration if duration is None else duration,
            stroke_id=uuid.uuid4().hex if new_id else self.stroke_id,
            original_bbox=self.original_bbox
        )

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["original_bbox"] = self.original_bbox.to_dict()
        result["normalized"] = True
        return result

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'NormalizedStroke':
        kwargs = {
            "points": d.get('points', []),
            "duration": d.get('duration'),
            "original_bbox": BoundingBox.from_dict(d.get('original_bbox', {}))
        }
        if 'stroke_id' in d:
            kwargs['stroke_id'] = d['stroke_id']
        return cls(**kwargs)


def stroke_from_dict(d: Dict[str, Any]) -> Stroke:
    """Rebuild a raw or normalized stroke from its dict form."""
    if d.get('normalized'):
        return NormalizedStroke.from_dict(d)
    return RawStroke.from_dict(d)


# =============================================================================
# LABELED SAMPLES
# =============================================================================

def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class LabeledSample:
    """
    A stroke paired with its shape label.

    metadata carries free-form provenance: 'source' (real / synthetic /
    augmented), 'quality_score', 'augmentation_kind', 'augmentation_index',
    'variation', 'collected_at', ...
    """
    stroke: Stroke
    label: ShapeLabel
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not isinstance(self.label, ShapeLabel):
            self.label = ShapeLabel.from_name(str(self.label))
        self.metadata.setdefault('source', SampleSource.REAL.value)

    @property
    def source(self) -> SampleSource:
        return SampleSource(self.metadata['source'])

    def derive(self, stroke: Stroke, **metadata) -> 'LabeledSample':
        """New sample with the same label and merged metadata."""
        merged = dict(self.metadata)
        merged.update(metadata)
        return LabeledSample(stroke=stroke, label=self.label, metadata=merged)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label.value,
            "metadata": self.metadata,
            "stroke": self.stroke.to_dict()
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'LabeledSample':
        return cls(
            stroke=stroke_from_dict(d['stroke']),
            label=ShapeLabel.from_name(d['label']),
            metadata=dict(d.get('metadata', {}))
        )


def count_by_label(samples: Iterable[LabeledSample]) -> Dict[ShapeLabel, int]:
    """Per-label sample counts, with every label present."""
    counts = {label: 0 for label in ShapeLabel}
    for sample in samples:
        counts[sample.label] += 1
    return counts


def split_xy(samples: Sequence[LabeledSample]) -> Tuple[List[Stroke], List[str]]:
    """Separate strokes and string labels."""
    return [s.stroke for s in samples], [s.label.value for s in samples]
