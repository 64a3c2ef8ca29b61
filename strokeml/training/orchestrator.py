"""
Training Orchestrator

Runs one retraining cycle:

    1. check consent
    2. load real samples per label, normalize and quality-check them
    3. top up labels below minimum_samples_per_shape with synthetic strokes
    4. augment the combined corpus
    5. train and validate

Progress is 0 -> 0.3 while preparing data and 0.3 -> 1.0 while training
(remapped from the trainer's own progress). Per-sample failures are logged,
counted and skipped; stage failures mark the run failed and propagate.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import numpy as np

from ..augmentation import AugmentationEngine
from ..classifier import ClassifierStrategy
from ..config import PipelineConfig
from ..errors import ConsentRequiredError, PipelineBusyError, EmptyStrokeError, QualityCheckFailedError
from ..features import FeatureCache
from ..normalizer import StrokeQualityValidator, normalize
from ..progress import ProgressTracker
from ..schema import LabeledSample, ShapeLabel, RunStatus
from ..simulation import SyntheticStrokeGenerator
from ..storage import ConsentGate, SampleStore
from .trainer import ModelTrainer, TrainedModelArtifact

logger = logging.getLogger(__name__)

DATA_PREP_SHARE = 0.3


@dataclass
class TrainingRunResult:
    """Artifact and corpus metrics of one completed run."""
    artifact: TrainedModelArtifact
    real_counts: Dict[str, int] = field(default_factory=dict)
    synthetic_counts: Dict[str, int] = field(default_factory=dict)
    dropped_count: int = 0
    augmented_count: int = 0
    total_samples: int = 0

    @property
    def accuracy(self) -> float:
        return self.artifact.accuracy

    @property
    def used_synthetic(self) -> bool:
        return any(self.synthetic_counts.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            'accuracy': self.accuracy,
            'real_counts': self.real_counts,
            'synthetic_counts': self.synthetic_counts,
            'dropped_count': self.dropped_count,
            'augmented_count': self.augmented_count,
            'total_samples': self.total_samples,
            'artifact': self.artifact.metadata(),
            'artifact_path': self.artifact.path,
        }


class TrainingOrchestrator:
    """
    Owns one training pipeline. Only one run may be active at a time.

    Args:
        store: Source of real labeled samples
        consent: Data-collection consent gate
        config: Pipeline configuration
        strategy: Classifier strategy handed to the trainer
        generator: Synthetic stroke generator for label top-ups
    """

    def __init__(
        self,
        store: SampleStore,
        consent: ConsentGate,
        config: Optional[PipelineConfig] = None,
        strategy: Optional[ClassifierStrategy] = None,
        generator: Optional[SyntheticStrokeGenerator] = None
    ):
        self.store = store
        self.consent = consent
        self.config = config or PipelineConfig()
        self.strategy = strategy
        self.generator = generator or SyntheticStrokeGenerator(seed=self.config.seed)
        self.validator = StrokeQualityValidator.from_config(self.config)
        self.cache = FeatureCache()
        self.status = RunStatus.NOT_STARTED
        self.tracker = ProgressTracker()
        self.result: Optional[TrainingRunResult] = None
        self.last_error: Optional[BaseException] = None
        self._running = False

    @property
    def progress(self) -> float:
        return self.tracker.progress

    @property
    def current_step(self) -> str:
        return self.tracker.step

    # -------------------------------------------------------------------------
    # Data preparation
    # -------------------------------------------------------------------------

    def prepare_real(self, label: ShapeLabel):
        """Normalized, quality-checked real samples of one label, plus the drop count."""
        kept, dropped = [], 0
        for sample in self.store.load(label):
            try:
                self.validator.check(sample.stroke)
                stroke = normalize(sample.stroke, self.config.resample_points)
            except (EmptyStrokeError, QualityCheckFailedError) as e:
                logger.info("Dropping %s sample: %s", label.value, e)
                dropped += 1
                continue
            metadata = {'quality_score': self.validator.quality_score(sample.stroke)}
            kept.append(sample.derive(stroke, **metadata))
        return kept, dropped

    def synthesize(self, label: ShapeLabel, count: int, start_variation: int = 0) -> List[LabeledSample]:
        samples = self.generator.generate_samples(label, count, start_variation)
        return [s.derive(normalize(s.stroke, self.config.resample_points)) for s in samples]

    def prepare_corpus(self):
        """
        Real samples topped up with synthetic ones, before augmentation.

        Returns:
            (samples, real_counts, synthetic_counts, dropped)
        """
        minimum = self.config.minimum_samples_per_shape
        corpus: List[LabeledSample] = []
        real_counts, synthetic_counts = {}, {}
        dropped = 0
        labels = list(ShapeLabel)

        for i, label in enumerate(labels):
            self.tracker.update(step=f"Preparing {label.value} samples")
            real, label_dropped = self.prepare_real(label)
            dropped += label_dropped
            real_counts[label.value] = len(real)
            corpus.extend(real)

            shortfall = minimum - len(real)
            if shortfall > 0:
                logger.warning("Only %d real %s samples (need %d); generating %d synthetic",
                               len(real), label.value, minimum, shortfall)
                corpus.extend(self.synthesize(label, shortfall))
                synthetic_counts[label.value] = shortfall
            else:
                synthetic_counts[label.value] = 0

            self.tracker.update(DATA_PREP_SHARE * 0.8 * (i + 1) / len(labels))

        return corpus, real_counts, synthetic_counts, dropped

    def _prepare(self):
        corpus, real_counts, synthetic_counts, dropped = self.prepare_corpus()
        engine = AugmentationEngine(rng=np.random.default_rng(self.config.seed))
        self.tracker.update(step="Augmenting corpus")
        augmented = engine.augment_corpus(corpus, self.config.augmentation_multiplier)
        self.tracker.update(DATA_PREP_SHARE)
        return augmented, real_counts, synthetic_counts, dropped, len(augmented) - len(corpus)

    # -------------------------------------------------------------------------
    # Run
    # -------------------------------------------------------------------------

    async def run(self) -> TrainingRunResult:
        """
        Execute one training cycle.

        Raises:
            ConsentRequiredError: consent has not been granted
            PipelineBusyError: a run is already active on this orchestrator
            InsufficientDataError / TrainingFailedError: from the trainer

        `result` is replaced only when the run completes; a failed run leaves
        the previous completed result in place.
        """
        if self._running:
            raise PipelineBusyError("A training run is already in progress")
        if not self.consent.granted:
            raise ConsentRequiredError("Data-collection consent is required before training")

        self._running = True
        self.last_error = None
        self.status = RunStatus.IN_PROGRESS
        self.tracker.reset("Collecting training data")
        try:
            corpus, real_counts, synthetic_counts, dropped, n_aug = \
                await asyncio.to_thread(self._prepare)
            logger.info("Corpus ready: %d samples (%d real, %d synthetic, %d augmented, %d dropped)",
                        len(corpus), sum(real_counts.values()), sum(synthetic_counts.values()),
                        n_aug, dropped)

            trainer = ModelTrainer(self.config, self.strategy, self.cache)
            self.tracker.update(step="Training model")
            artifact = await asyncio.to_thread(
                trainer.train, corpus, self.tracker.remap(DATA_PREP_SHARE, 1.0)
            )
        except Exception as e:
            self.status = RunStatus.FAILED
            self.last_error = e
            self.tracker.update(step=f"Training failed: {e}")
            logger.error("Training run failed: %s", e)
            raise
        finally:
            self._running = False

        self.result = TrainingRunResult(
            artifact=artifact,
            real_counts=real_counts,
            synthetic_counts=synthetic_counts,
            dropped_count=dropped,
            augmented_count=n_aug,
            total_samples=len(corpus)
        )
        self.status = RunStatus.COMPLETED
        self.tracker.update(1.0, "Training complete")
        return self.result

    def corpus_summary(self) -> Dict[str, int]:
        """Real sample file counts per label, as currently stored."""
        return {label.value: n for label, n in self.store.count_by_label().items()}
