"""
strokeml Training Package

- ModelTrainer: split, featurize, fit and validate one classifier
- TrainingOrchestrator: consent check, real/synthetic corpus assembly,
  augmentation and training with progress reporting
"""

from .trainer import (
    ModelTrainer,
    TrainedModelArtifact,
    save_artifact,
    load_artifact,
    split_samples,
)
from .orchestrator import TrainingOrchestrator, TrainingRunResult

__all__ = [
    'ModelTrainer',
    'TrainedModelArtifact',
    'save_artifact',
    'load_artifact',
    'split_samples',
    'TrainingOrchestrator',
    'TrainingRunResult',
]
