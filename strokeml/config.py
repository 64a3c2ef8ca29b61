"""
Pipeline configuration.

All tunables for a retraining cycle live in one PipelineConfig. It can be
built from a JSON file; keys may use either snake_case or the camelCase names
used by the mobile app (minimumSamplesPerShape, validationSplit, ...).
"""

import json
from dataclasses import dataclass, asdict, fields
from pathlib import Path
from typing import Dict, Any, Optional, Union

from .errors import ConfigError
from .schema import DEFAULT_RESAMPLE_POINTS

FEATURE_MODES = ('summary', 'points', 'combined')

# camelCase aliases accepted by from_dict
_ALIASES = {
    'minimumSamplesPerShape': 'minimum_samples_per_shape',
    'validationSplit': 'validation_split',
    'augmentationMultiplier': 'augmentation_multiplier',
    'requiredAccuracyImprovement': 'required_accuracy_improvement',
    'requiredUserSatisfactionImprovement': 'required_user_satisfaction_improvement',
    'statisticalConfidenceRequired': 'statistical_confidence_required',
    'maxRollbackWindowHours': 'max_rollback_window_hours',
}


@dataclass
class PipelineConfig:
    """Tunables for one retraining / integration cycle."""

    # Data sufficiency and training
    minimum_samples_per_shape: int = 100
    validation_split: float = 0.2
    augmentation_multiplier: int = 3
    min_training_samples: int = 10
    resample_points: int = DEFAULT_RESAMPLE_POINTS
    feature_mode: str = 'summary'

    # Quality validator thresholds
    min_points: int = 10
    min_duration: float = 0.1          # seconds
    min_pressure_std: float = 0.05
    min_complexity: float = 0.2        # radians, mean turning angle

    # Evaluation
    scenario_sample_size: int = 50

    # Deployment gate
    required_accuracy_improvement: float = 0.10
    required_user_satisfaction_improvement: float = 0.15
    statistical_confidence_required: float = 0.95

    # Production monitoring
    max_rollback_window_hours: float = 24.0
    monitor_interval_seconds: float = 300.0
    degradation_tolerance: float = 0.05
    max_user_complaints: int = 10
    max_crash_rate: float = 0.005

    seed: Optional[int] = None

    def __post_init__(self):
        self.validate()

    def validate(self):
        if self.minimum_samples_per_shape < 1:
            raise ConfigError("minimum_samples_per_shape must be >= 1")
        if not 0.0 < self.validation_split < 1.0:
            raise ConfigError("validation_split must be in (0, 1)")
        if self.augmentation_multiplier < 0:
            raise ConfigError("augmentation_multiplier must be >= 0")
        if self.resample_points < 2:
            raise ConfigError("resample_points must be >= 2")
        if self.feature_mode not in FEATURE_MODES:
            raise ConfigError(f"feature_mode must be one of {FEATURE_MODES}")
        if self.scenario_sample_size < 2:
            raise ConfigError("scenario_sample_size must be >= 2")
        if not 0.0 <= self.statistical_confidence_required <= 1.0:
            raise ConfigError("statistical_confidence_required must be in [0, 1]")
        if self.max_rollback_window_hours <= 0 or self.monitor_interval_seconds <= 0:
            raise ConfigError("monitoring window and interval must be positive")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'PipelineConfig':
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in d.items():
            name = _ALIASES.get(key, key)
            if name not in known:
                raise ConfigError(f"Unknown configuration option: {key}")
            kwargs[name] = value
        return cls(**kwargs)


def load_config(path: Optional[Union[str, Path]] = None) -> PipelineConfig:
    """Load a PipelineConfig from JSON, or defaults when path is None."""
    if path is None:
        return PipelineConfig()
    path = Path(path)
    try:
        with open(path, 'r') as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Could not read config {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config {path} must contain a JSON object")
    return PipelineConfig.from_dict(data)
