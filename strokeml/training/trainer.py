"""
Model Trainer

Splits labeled samples into training and validation sets, builds feature
matrices, hands them to a classifier strategy and scores the fitted model on
the held-out split.

State machine:
    idle -> preparing -> training -> completed | failed

Any exception raised while preparing or training moves the trainer to
`failed` and propagates to the caller.
"""

import json
import logging
import pickle
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from ..classifier import ClassifierStrategy, SklearnClassifierStrategy, KerasStrokeModel
from ..config import PipelineConfig
from ..errors import (
    StrokeMLError, InsufficientDataError, TrainingFailedError, PredictionFailedError
)
from ..features import FeatureCache, build_feature_matrix
from ..progress import ProgressTracker
from ..schema import LabeledSample, Stroke, TrainingStatus, utc_now, split_xy

logger = logging.getLogger(__name__)

MODEL_FILE = "model.pkl"
METADATA_FILE = "metadata.json"


# =============================================================================
# ARTIFACT
# =============================================================================

@dataclass
class TrainedModelArtifact:
    """
    A fitted model and the facts needed to use and audit it.

    Attributes:
        model: Fitted classifier (predict / predict_proba / classes_)
        accuracy: Exact-match accuracy on the validation split
        train_count: Samples used for fitting
        val_count: Samples held out for validation
        feature_mode: Feature mode the model was trained on
        resample_points: Point count used by the 'points' features
        labels: Label vocabulary seen during training
        path: Storage location once saved
    """
    model: Any
    accuracy: float
    train_count: int
    val_count: int
    feature_mode: str = 'summary'
    resample_points: int = 100
    labels: List[str] = field(default_factory=list)
    strategy: str = 'sklearn'
    path: Optional[str] = None
    created_at: str = field(default_factory=utc_now)
    training_time_s: float = 0.0

    def features(self, strokes: Sequence[Stroke],
                 cache: Optional[FeatureCache] = None) -> np.ndarray:
        return build_feature_matrix(strokes, self.feature_mode, self.resample_points, cache)

    def predict_with_confidence(self, strokes: Sequence[Stroke]) -> Tuple[List[str], np.ndarray]:
        """
        Predicted labels and the probability of each predicted label.

        Raises:
            PredictionFailedError: the model could not score the strokes
        """
        if not strokes:
            return [], np.zeros(0)
        try:
            X = self.features(strokes)
            proba = np.asarray(self.model.predict_proba(X))
            classes = np.asarray(self.model.classes_)
        except Exception as e:
            raise PredictionFailedError(f"Prediction failed: {e}") from e
        best = np.argmax(proba, axis=1)
        return [str(c) for c in classes[best]], proba[np.arange(len(best)), best]

    def predict(self, strokes: Sequence[Stroke]) -> List[str]:
        labels, _ = self.predict_with_confidence(strokes)
        return labels

    def metadata(self) -> Dict[str, Any]:
        return {
            'accuracy': self.accuracy,
            'train_count': self.train_count,
            'val_count': self.val_count,
            'feature_mode': self.feature_mode,
            'resample_points': self.resample_points,
            'labels': self.labels,
            'strategy': self.strategy,
            'created_at': self.created_at,
            'training_time_s': self.training_time_s,
        }


def save_artifact(artifact: TrainedModelArtifact, directory: Union[str, Path]) -> Path:
    """
    Persist a model and its metadata under `directory`.

    Sklearn models are pickled to model.pkl; Keras models are saved in the
    native format. Sets artifact.path and returns the directory.
    """
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)

    if isinstance(artifact.model, KerasStrokeModel):
        artifact.model.save(directory)
    else:
        with open(directory / MODEL_FILE, 'wb') as f:
            pickle.dump(artifact.model, f)

    artifact.path = str(directory)
    with open(directory / METADATA_FILE, 'w') as f:
        json.dump(artifact.metadata(), f, indent=2)

    logger.info("Saved model artifact to %s", directory)
    return directory


def load_artifact(path: Union[str, Path]) -> TrainedModelArtifact:
    """Load an artifact written by save_artifact."""
    directory = Path(path)
    with open(directory / METADATA_FILE) as f:
        meta = json.load(f)

    if meta.get('strategy') == 'keras':
        model = KerasStrokeModel.load(directory)
    else:
        with open(directory / MODEL_FILE, 'rb') as f:
            model = pickle.load(f)

    return TrainedModelArtifact(model=model, path=str(directory), **meta)


# =============================================================================
# TRAINER
# =============================================================================

def split_samples(
    samples: Sequence[LabeledSample],
    validation_split: float,
    rng: np.random.Generator
) -> Tuple[List[LabeledSample], List[LabeledSample]]:
    """
    Shuffle and split into (train, validation).

    The validation set always holds at least one sample and the training set
    keeps at least one.
    """
    n = len(samples)
    order = rng.permutation(n)
    n_val = min(n - 1, max(1, n - int(n * (1.0 - validation_split))))
    val_idx, train_idx = order[:n_val], order[n_val:]
    return [samples[i] for i in train_idx], [samples[i] for i in val_idx]


class ModelTrainer:
    """
    Trains one classifier from labeled samples.

    Args:
        config: Pipeline configuration (split, feature mode, minimum size)
        strategy: Classifier strategy; logistic regression by default
        cache: Optional feature cache shared with the caller
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        strategy: Optional[ClassifierStrategy] = None,
        cache: Optional[FeatureCache] = None
    ):
        self.config = config or PipelineConfig()
        self.strategy = strategy or SklearnClassifierStrategy(seed=self.config.seed)
        self.cache = cache
        self.status = TrainingStatus.IDLE
        self.tracker = ProgressTracker()
        self.rng = np.random.default_rng(self.config.seed)

    @property
    def progress(self) -> float:
        return self.tracker.progress

    @property
    def current_step(self) -> str:
        return self.tracker.step

    def _set_status(self, status: TrainingStatus, step: Optional[str] = None):
        self.status = status
        self.tracker.update(step=step or status.value)

    def train(
        self,
        samples: Sequence[LabeledSample],
        progress_callback: Optional[Callable[[float], None]] = None
    ) -> TrainedModelArtifact:
        """
        Fit and validate a model.

        Args:
            samples: Labeled samples (normalized strokes)
            progress_callback: Receives the trainer's [0, 1] progress

        Returns:
            TrainedModelArtifact with validation accuracy

        Raises:
            InsufficientDataError: fewer than min_training_samples samples
            TrainingFailedError: the strategy raised or the model is unusable
        """
        self.tracker.reset("Preparing training data")
        forward = None
        if progress_callback is not None:
            def forward(p, _step):
                progress_callback(p)
            self.tracker.subscribe(forward)
        try:
            return self._train(samples)
        finally:
            if forward is not None:
                self.tracker.unsubscribe(forward)

    def _train(self, samples: Sequence[LabeledSample]) -> TrainedModelArtifact:
        self._set_status(TrainingStatus.PREPARING, "Preparing training data")
        start = time.time()

        try:
            required = max(2, self.config.min_training_samples)
            if len(samples) < required:
                raise InsufficientDataError(len(samples), required)

            train_set, val_set = split_samples(samples, self.config.validation_split, self.rng)
            train_strokes, y_train = split_xy(train_set)
            val_strokes, y_val = split_xy(val_set)

            mode, n = self.config.feature_mode, self.config.resample_points
            X_train = build_feature_matrix(train_strokes, mode, n, self.cache)
            self.tracker.update(0.2)
            X_val = build_feature_matrix(val_strokes, mode, n, self.cache)
            self.tracker.update(0.3, "Training classifier")

            self._set_status(TrainingStatus.TRAINING, "Training classifier")
            model = self.strategy.fit(X_train, y_train)
            self.tracker.update(0.9, "Validating")

            predictions = np.asarray(model.predict(X_val))
            accuracy = float(np.mean(predictions == np.asarray(y_val)))
        except StrokeMLError:
            self._set_status(TrainingStatus.FAILED)
            raise
        except Exception as e:
            self._set_status(TrainingStatus.FAILED)
            raise TrainingFailedError(f"Training failed: {e}") from e

        artifact = TrainedModelArtifact(
            model=model,
            accuracy=accuracy,
            train_count=len(train_set),
            val_count=len(val_set),
            feature_mode=mode,
            resample_points=n,
            labels=sorted(set(y_train) | set(y_val)),
            strategy=self.strategy.name,
            training_time_s=time.time() - start
        )
        self.tracker.update(1.0)
        self._set_status(TrainingStatus.COMPLETED, "Training complete")
        logger.info("Trained %s model: %.1f%% validation accuracy (%d train / %d val)",
                    artifact.strategy, accuracy * 100, artifact.train_count, artifact.val_count)
        return artifact
