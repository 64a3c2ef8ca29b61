"""
Tests for the training orchestrator: consent, corpus assembly and run state.
"""

import asyncio

import pytest

from strokeml.config import PipelineConfig
from strokeml.errors import ConsentRequiredError, PipelineBusyError, TrainingFailedError
from strokeml.schema import LabeledSample, RawStroke, RunStatus, SampleSource, ShapeLabel
from strokeml.simulation import SyntheticStrokeGenerator
from strokeml.storage import ConsentGate, SampleStore
from strokeml.training import TrainingOrchestrator


def small_config(**overrides):
    values = dict(minimum_samples_per_shape=5, augmentation_multiplier=1, seed=0)
    values.update(overrides)
    return PipelineConfig(**values)


class ExplodingStrategy:
    name = "exploding"

    def fit(self, X, y):
        raise RuntimeError("out of memory")


def test_requires_consent(tmp_path):
    orchestrator = TrainingOrchestrator(SampleStore(tmp_path), ConsentGate(granted=False), small_config())
    with pytest.raises(ConsentRequiredError):
        asyncio.run(orchestrator.run())
    assert orchestrator.status is RunStatus.NOT_STARTED


def test_empty_store_falls_back_to_synthetic(tmp_path):
    orchestrator = TrainingOrchestrator(SampleStore(tmp_path), ConsentGate(granted=True), small_config())
    seen = []
    orchestrator.tracker.subscribe(lambda p, step: seen.append(p))

    result = asyncio.run(orchestrator.run())

    assert orchestrator.status is RunStatus.COMPLETED
    assert orchestrator.progress == 1.0
    assert seen == sorted(seen)
    assert result.used_synthetic
    assert result.real_counts == {label.value: 0 for label in ShapeLabel}
    assert result.synthetic_counts == {label.value: 5 for label in ShapeLabel}
    assert result.augmented_count == 30
    assert result.total_samples == 60
    assert result.artifact.train_count + result.artifact.val_count == 60
    assert sorted(result.artifact.labels) == sorted(ShapeLabel.names())
    assert orchestrator.result is result


def test_real_samples_are_checked_and_topped_up(tmp_path):
    store = SampleStore(tmp_path)
    gen = SyntheticStrokeGenerator(seed=42)
    for v in range(3):
        store.save(LabeledSample(gen.generate(ShapeLabel.CIRCLE, v), ShapeLabel.CIRCLE))
    # Too few points: dropped by the quality check
    store.save(LabeledSample(
        RawStroke.from_points([(i, i % 2, i * 0.1, 0.2 + 0.1 * (i % 3)) for i in range(5)]),
        ShapeLabel.CIRCLE
    ))

    orchestrator = TrainingOrchestrator(store, ConsentGate(granted=True), small_config())
    corpus, real_counts, synthetic_counts, dropped = orchestrator.prepare_corpus()

    assert dropped == 1
    assert real_counts['circle'] == 3
    assert synthetic_counts['circle'] == 2
    assert synthetic_counts['line'] == 5

    circles = [s for s in corpus if s.label is ShapeLabel.CIRCLE]
    real = [s for s in circles if s.source is SampleSource.REAL]
    assert len(real) == 3
    assert all(0.0 < s.metadata['quality_score'] <= 1.0 for s in real)
    assert all(len(s.stroke) == orchestrator.config.resample_points for s in corpus)


def test_concurrent_run_is_rejected(tmp_path):
    orchestrator = TrainingOrchestrator(SampleStore(tmp_path), ConsentGate(granted=True), small_config())

    async def both():
        return await asyncio.gather(orchestrator.run(), orchestrator.run(),
                                    return_exceptions=True)

    first, second = asyncio.run(both())
    assert first.accuracy >= 0.0
    assert isinstance(second, PipelineBusyError)
    assert orchestrator.status is RunStatus.COMPLETED


def test_training_failure_marks_run_failed(tmp_path):
    orchestrator = TrainingOrchestrator(SampleStore(tmp_path), ConsentGate(granted=True),
                                        small_config(), strategy=ExplodingStrategy())
    with pytest.raises(TrainingFailedError):
        asyncio.run(orchestrator.run())

    assert orchestrator.status is RunStatus.FAILED
    assert orchestrator.result is None
    assert isinstance(orchestrator.last_error, TrainingFailedError)
    assert "failed" in orchestrator.current_step.lower()

    # A failed run does not block the next one
    orchestrator.strategy = None
    result = asyncio.run(orchestrator.run())
    assert orchestrator.status is RunStatus.COMPLETED
    assert result.total_samples == 60


def test_corpus_summary_counts_files(tmp_path):
    store = SampleStore(tmp_path)
    gen = SyntheticStrokeGenerator()
    store.save(LabeledSample(gen.generate(ShapeLabel.LINE), ShapeLabel.LINE))
    orchestrator = TrainingOrchestrator(store, ConsentGate(granted=True))
    summary = orchestrator.corpus_summary()
    assert summary['line'] == 1
    assert summary['circle'] == 0


def test_failed_run_keeps_previous_result(tmp_path):
    orchestrator = TrainingOrchestrator(SampleStore(tmp_path), ConsentGate(granted=True),
                                        small_config())
    completed = asyncio.run(orchestrator.run())

    orchestrator.strategy = ExplodingStrategy()
    with pytest.raises(TrainingFailedError):
        asyncio.run(orchestrator.run())

    assert orchestrator.status is RunStatus.FAILED
    assert orchestrator.result is completed
    assert isinstance(orchestrator.last_error, TrainingFailedError)
