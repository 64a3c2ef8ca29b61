"""
strokeml Shape Classifier Retraining Pipeline

Modules:
    schema - Shape vocabulary, strokes and labeled samples
    normalizer - Unit-box normalization, arc-length resampling, quality checks
    augmentation - Geometric and temporal stroke perturbations
    simulation - Synthetic human-like strokes and imperfection scenarios
    features - Feature vectors and classifier inputs
    classifier - Black-box classifier strategies
    training - Model trainer and training orchestrator
    evaluator - Old vs new model scenario comparison
    deployment - Deployment gate, risk assessment and rollback
    monitoring - Production monitoring loop
    storage - Sample store, audit records, consent and cipher interfaces
    train - Command-line pipeline
"""

from .schema import (
    ShapeLabel, RawStroke, NormalizedStroke, LabeledSample, BoundingBox
)
from .config import PipelineConfig, load_config
from .normalizer import normalize, resample, StrokeQualityValidator
from .features import featurize, flatten_points, FEATURE_NAMES

__all__ = [
    'ShapeLabel',
    'RawStroke',
    'NormalizedStroke',
    'LabeledSample',
    'BoundingBox',
    'PipelineConfig',
    'load_config',
    'normalize',
    'resample',
    'StrokeQualityValidator',
    'featurize',
    'flatten_points',
    'FEATURE_NAMES'
]
