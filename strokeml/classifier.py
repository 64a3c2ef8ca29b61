"""
strokeml Classifier Strategies

The trainer treats the classifier as a black box: a strategy's fit(X, y)
returns a fitted model exposing predict(X), predict_proba(X) and classes_.

    SklearnClassifierStrategy  - StandardScaler + LogisticRegression (default)
    KerasClassifierStrategy    - small dense network (requires TensorFlow)
"""

import json
import logging
from pathlib import Path
from typing import Sequence, Tuple, Optional

import numpy as np
from sklearn.linear_model import LogisticRegression
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import StandardScaler

# Optional imports - gracefully handle missing dependencies
try:
    from tensorflow import keras
    from tensorflow.keras import layers
    HAS_TF = True
except ImportError:
    HAS_TF = False

logger = logging.getLogger(__name__)


class ClassifierStrategy:
    """Interface: fit(features, labels) -> fitted model."""

    name = "base"

    def fit(self, X: np.ndarray, y: Sequence[str]):
        raise NotImplementedError


class SklearnClassifierStrategy(ClassifierStrategy):
    """
    Multinomial logistic regression on standardized features.

    Args:
        max_iter: Solver iteration cap
        C: Inverse regularization strength
        seed: random_state for the solver
    """

    name = "sklearn"

    def __init__(self, max_iter: int = 1000, C: float = 1.0, seed: Optional[int] = None):
        self.max_iter = max_iter
        self.C = C
        self.seed = seed

    def fit(self, X: np.ndarray, y: Sequence[str]) -> Pipeline:
        model = Pipeline([
            ('scaler', StandardScaler()),
            ('clf', LogisticRegression(max_iter=self.max_iter, C=self.C,
                                       random_state=self.seed)),
        ])
        model.fit(X, np.asarray(y))
        return model


class KerasStrokeModel:
    """
    Keras network plus its label vocabulary, with the sklearn-style
    predict / predict_proba / classes_ surface the trainer relies on.
    """

    MODEL_FILE = "model.keras"
    LABELS_FILE = "labels.json"

    def __init__(self, model: 'keras.Model', classes: Sequence[str],
                 mean: np.ndarray, scale: np.ndarray):
        self.model = model
        self.classes_ = np.asarray(classes)
        self.mean = mean
        self.scale = scale

    def _standardize(self, X: np.ndarray) -> np.ndarray:
        return (np.asarray(X, dtype=np.float32) - self.mean) / self.scale

    def predict_proba(self, X: np.ndarray) -> np.ndarray:
        return self.model.predict(self._standardize(X), verbose=0)

    def predict(self, X: np.ndarray) -> np.ndarray:
        return self.classes_[np.argmax(self.predict_proba(X), axis=1)]

    def save(self, directory: Path):
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        self.model.save(directory / self.MODEL_FILE)
        with open(directory / self.LABELS_FILE, 'w') as f:
            json.dump({
                'classes': self.classes_.tolist(),
                'mean': self.mean.tolist(),
                'scale': self.scale.tolist(),
            }, f, indent=2)

    @classmethod
    def load(cls, directory: Path) -> 'KerasStrokeModel':
        if not HAS_TF:
            raise ImportError("TensorFlow/Keras not installed. Run: pip install tensorflow")
        directory = Path(directory)
        with open(directory / cls.LABELS_FILE) as f:
            meta = json.load(f)
        model = keras.models.load_model(directory / cls.MODEL_FILE)
        return cls(model, meta['classes'],
                   np.asarray(meta['mean'], dtype=np.float32),
                   np.asarray(meta['scale'], dtype=np.float32))


def create_dense_model_keras(
    num_features: int,
    num_classes: int,
    hidden: Tuple[int, ...] = (64, 32),
    dropout: float = 0.2
) -> 'keras.Model':
    """
    Create a small dense classifier.

    Architecture:
        Input -> [Dense -> ReLU -> Dropout] x len(hidden) -> Dense -> Softmax

    Returns:
        Compiled Keras model
    """
    if not HAS_TF:
        raise ImportError("TensorFlow/Keras not installed. Run: pip install tensorflow")

    stack = [layers.Input(shape=(num_features,))]
    for units in hidden:
        stack.append(layers.Dense(units, activation='relu'))
        stack.append(layers.Dropout(dropout))
    stack.append(layers.Dense(num_classes, activation='softmax'))
    model = keras.Sequential(stack)

    model.compile(
        optimizer=keras.optimizers.Adam(learning_rate=1e-3),
        loss='sparse_categorical_crossentropy',
        metrics=['accuracy']
    )
    return model


class KerasClassifierStrategy(ClassifierStrategy):
    """Dense network trained with early stopping on a held-out slice."""

    name = "keras"

    def __init__(self, epochs: int = 50, batch_size: int = 32,
                 early_stopping_patience: int = 10):
        if not HAS_TF:
            raise ImportError("TensorFlow/Keras not installed. Run: pip install tensorflow")
        self.epochs = epochs
        self.batch_size = batch_size
        self.early_stopping_patience = early_stopping_patience

    def fit(self, X: np.ndarray, y: Sequence[str]) -> KerasStrokeModel:
        X = np.asarray(X, dtype=np.float32)
        classes, y_idx = np.unique(np.asarray(y), return_inverse=True)

        mean = X.mean(axis=0)
        scale = X.std(axis=0)
        scale[scale == 0] = 1.0

        model = create_dense_model_keras(X.shape[1], len(classes))
        callbacks = [
            keras.callbacks.EarlyStopping(
                monitor='val_loss',
                patience=self.early_stopping_patience,
                restore_best_weights=True
            )
        ]
        model.fit(
            (X - mean) / scale, y_idx,
            validation_split=0.1,
            epochs=self.epochs,
            batch_size=self.batch_size,
            callbacks=callbacks,
            verbose=0
        )
        return KerasStrokeModel(model, classes.tolist(), mean, scale)


def get_strategy(name: str = "sklearn", seed: Optional[int] = None) -> ClassifierStrategy:
    """Strategy by name ('sklearn' or 'keras')."""
    if name == "sklearn":
        return SklearnClassifierStrategy(seed=seed)
    if name == "keras":
        return KerasClassifierStrategy()
    raise ValueError(f"Unknown classifier strategy: {name}")
